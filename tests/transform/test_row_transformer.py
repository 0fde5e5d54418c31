from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from hbaseimport.domain.exceptions import RowKeyColumnError
from hbaseimport.domain.mapping import ColumnMapping
from hbaseimport.domain.models import CellCoordinate, JobConfig, Record
from hbaseimport.domain.transform import RowTransformer, serialize_value, transform


def col(i: int) -> str:
    return f"DATA_COL{i}"


def make_record(values, types=None) -> Record:
    return Record.of([col(i) for i in range(len(values))], values, types=types, line_no=1)


def test_basic_row_uses_first_column_as_key_and_omits_it_from_cells():
    mapping = ColumnMapping(default_family="BasicColFam")

    mutation = transform(make_record([0, 1], types=["INT", "INT"]), mapping)

    assert mutation is not None
    assert mutation.row_key == b"0"
    assert mutation.cell_map() == {CellCoordinate("BasicColFam", col(1)): b"1"}


def test_null_column_produces_no_cell():
    mapping = ColumnMapping(default_family="nullF")

    mutation = transform(make_record([0, 42, None]), mapping)

    assert mutation is not None
    cells = mutation.cell_map()
    assert cells == {CellCoordinate("nullF", col(1)): b"42"}
    assert CellCoordinate("nullF", col(2)) not in cells


def test_null_is_never_written_as_empty_cell():
    mapping = ColumnMapping(default_family="f")

    mutation = transform(make_record([7, None, ""]), mapping)

    assert mutation is not None
    # пустая строка - это значение, NULL - отсутствие ячейки
    assert mutation.cell_map() == {CellCoordinate("f", col(2)): b""}


def test_absent_row_key_yields_no_mutation_even_with_other_values():
    mapping = ColumnMapping(default_family="f")

    assert transform(make_record([None, 1, 2]), mapping) is None


def test_row_with_only_null_values_yields_empty_mutation():
    mapping = ColumnMapping(default_family="nullRowF")

    mutation = transform(make_record([0, None]), mapping)

    assert mutation is not None
    assert mutation.row_key == b"0"
    assert mutation.is_empty


def test_add_row_key_column_writes_key_as_cell_too():
    mapping = ColumnMapping(default_family="addRowKeyF")

    mutation = RowTransformer(mapping, add_row_key_column=True).transform(make_record([0, 1]))

    assert mutation is not None
    assert mutation.row_key == b"0"
    assert mutation.cell_map() == {
        CellCoordinate("addRowKeyF", col(0)): b"0",
        CellCoordinate("addRowKeyF", col(1)): b"1",
    }


def test_row_key_by_name_and_by_index():
    record = Record.of(["id", "name", "code"], [5, "abc", "X1"])

    by_name = transform(record, ColumnMapping(default_family="f", row_key_columns=("code",)))
    by_index = transform(record, ColumnMapping(default_family="f", row_key_index=1))

    assert by_name is not None and by_name.row_key == b"X1"
    assert set(by_name.cell_map()) == {CellCoordinate("f", "id"), CellCoordinate("f", "name")}
    assert by_index is not None and by_index.row_key == b"abc"
    assert set(by_index.cell_map()) == {CellCoordinate("f", "id"), CellCoordinate("f", "code")}


def test_composite_row_key_is_joined_and_skipped_when_any_part_is_null():
    mapping = ColumnMapping(default_family="f", row_key_columns=("a", "b"))
    transformer = RowTransformer(mapping)

    full = transformer.transform(Record.of(["a", "b", "c"], [1, "x", 3]))
    partial = transformer.transform(Record.of(["a", "b", "c"], [1, None, 3]))

    assert full is not None
    assert full.row_key == b"1_x"
    assert full.cell_map() == {CellCoordinate("f", "c"): b"3"}
    assert partial is None


def test_column_overrides_route_cells_to_other_family():
    config = JobConfig(
        target_table="t",
        default_column_family="d",
        column_overrides={"email": "contact:mail", "age": "years"},
    )
    mapping = ColumnMapping.from_job_config(config)

    mutation = transform(Record.of(["id", "email", "age", "city"], [1, "a@b.c", 30, "Riga"]), mapping)

    assert mutation is not None
    assert mutation.cell_map() == {
        CellCoordinate("contact", "mail"): b"a@b.c",
        CellCoordinate("d", "years"): b"30",
        CellCoordinate("d", "city"): b"Riga",
    }


def test_unknown_row_key_column_is_a_configuration_error():
    mapping = ColumnMapping(default_family="f", row_key_columns=("missing",))

    with pytest.raises(RowKeyColumnError) as exc:
        transform(Record.of(["a"], [1]), mapping)

    assert exc.value.code == "ROW_KEY_COLUMN"


def test_row_key_configured_twice_is_rejected():
    with pytest.raises(ValueError):
        ColumnMapping(default_family="f", row_key_columns=("a",), row_key_index=0)


@pytest.mark.parametrize(
    "typed, text",
    [
        (1, "1"),
        (-42, "-42"),
        (1.5, "1.5"),
        (Decimal("10.25"), "10.25"),
        (date(2024, 1, 31), "2024-01-31"),
    ],
)
def test_typed_values_serialize_like_their_text_form(typed, text):
    assert serialize_value(typed) == serialize_value(text) == text.encode("utf-8")


def test_serialize_special_kinds():
    assert serialize_value(True) == b"true"
    assert serialize_value(False) == b"false"
    assert serialize_value(b"\x00\xff") == b"\x00\xff"
    assert serialize_value(bytearray(b"ab")) == b"ab"
    assert serialize_value("привет") == "привет".encode("utf-8")
    with pytest.raises(ValueError):
        serialize_value(None)
