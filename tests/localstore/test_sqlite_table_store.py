from __future__ import annotations

from pathlib import Path

import pytest

from hbaseimport.domain.exceptions import StoreError
from hbaseimport.domain.models import Cell, CellCoordinate, MutationSpec
from hbaseimport.infra.localstore import SqliteTableAdmin, SqliteTableStore, open_local_store


def put(key: str, **values: str) -> MutationSpec:
    return MutationSpec(
        row_key=key.encode(),
        cells=tuple(Cell("cf", q, v.encode()) for q, v in values.items()),
    )


@pytest.fixture()
def engine():
    eng = open_local_store(":memory:")
    yield eng
    eng.close()


def test_admin_create_and_exists(engine):
    admin = SqliteTableAdmin(engine)

    assert admin.exists("t1") is False
    admin.create("t1", "cf")
    admin.create("t1", "cf")

    assert admin.exists("t1") is True
    assert admin.list_tables() == ["t1"]


def test_write_batch_and_read_back(engine):
    SqliteTableAdmin(engine).create("t1", "cf")
    store = SqliteTableStore(engine, "t1")

    ack = store.write_batch([put("r1", a="1", b="2"), put("r2", a="3")])

    assert ack.mutations == 2
    assert ack.cells == 3
    assert store.get_cell(b"r1", "cf", "b") == b"2"
    assert store.get_cell(b"r2", "cf", "b") is None
    assert store.count_rows() == 2


def test_write_to_missing_table_is_rejected(engine):
    store = SqliteTableStore(engine, "absent")

    with pytest.raises(StoreError) as exc_info:
        store.write_batch([put("r1", a="1")])

    assert exc_info.value.code == "MISSING_TABLE"
    assert store.count_rows() == 0


def test_unknown_family_rejects_whole_batch(engine):
    SqliteTableAdmin(engine).create("t1", "cf")
    store = SqliteTableStore(engine, "t1")
    bad = MutationSpec(row_key=b"r2", cells=(Cell("other", "x", b"1"),))

    with pytest.raises(StoreError) as exc_info:
        store.write_batch([put("r1", a="1"), bad])

    assert exc_info.value.code == "NO_SUCH_FAMILY"
    assert store.count_rows() == 0


def test_last_write_wins_per_cell(engine):
    SqliteTableAdmin(engine).create("t1", "cf")
    store = SqliteTableStore(engine, "t1")

    store.write_batch([put("r1", a="old", b="keep")])
    store.write_batch([put("r1", a="new")])

    assert store.get_cell(b"r1", "cf", "a") == b"new"
    assert store.get_cell(b"r1", "cf", "b") == b"keep"


def test_scan_rows_is_ordered_by_key_and_honours_limit(engine):
    SqliteTableAdmin(engine).create("t1", "cf")
    store = SqliteTableStore(engine, "t1")
    store.write_batch([put("b", x="2"), put("a", x="1", y="9"), put("c", x="3")])

    rows = list(store.scan_rows())
    limited = list(store.scan_rows(limit=2))

    assert [key for key, _ in rows] == [b"a", b"b", b"c"]
    assert rows[0][1] == {CellCoordinate("cf", "x"): b"1", CellCoordinate("cf", "y"): b"9"}
    assert [key for key, _ in limited] == [b"a", b"b"]
    assert list(store.scan_rows(limit=0)) == []


def test_tables_are_isolated(engine):
    admin = SqliteTableAdmin(engine)
    admin.create("t1", "cf")
    admin.create("t2", "cf")

    SqliteTableStore(engine, "t1").write_batch([put("r1", a="1")])

    assert SqliteTableStore(engine, "t2").count_rows() == 0


def test_file_store_persists_between_opens(tmp_path: Path):
    path = tmp_path / "nested" / "store.sqlite3"
    first = open_local_store(str(path))
    SqliteTableAdmin(first).create("t1", "cf")
    SqliteTableStore(first, "t1").write_batch([put("r1", a="1")])
    first.close()

    second = open_local_store(str(path))
    try:
        assert SqliteTableStore(second, "t1").get_cell(b"r1", "cf", "a") == b"1"
        assert SqliteTableStore(second, "t1").is_available() is True
    finally:
        second.close()
