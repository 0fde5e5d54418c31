from __future__ import annotations

import threading

import pytest

from hbaseimport.domain.error_codes import ErrorCode
from hbaseimport.domain.exceptions import (
    AdminError,
    ClientUnavailableError,
    ImportCancelledError,
    MissingTableError,
    RowKeyColumnError,
    SourceReadError,
    StoreError,
    WriteError,
)
from hbaseimport.domain.models import CellCoordinate, JobConfig, JobState, Record
from hbaseimport.domain.reporting.collector import ReportCollector
from hbaseimport.infra.localstore import SqliteTableAdmin, SqliteTableStore, open_local_store
from hbaseimport.usecases.availability import ForcedUnavailable
from hbaseimport.usecases.import_coordinator import ImportCoordinator

TABLE = "ImportTable"
FAMILY = "ImportFamily"


class CountingStore:
    """Обёртка над локальной таблицей: считает вызовы и умеет падать на N-м пакете."""

    def __init__(self, inner: SqliteTableStore, fail_on_batch: int | None = None):
        self.inner = inner
        self.fail_on_batch = fail_on_batch
        self.write_calls = 0
        self.availability_probes = 0
        self._lock = threading.Lock()

    def write_batch(self, mutations):
        with self._lock:
            self.write_calls += 1
            call_no = self.write_calls
        if self.fail_on_batch is not None and call_no == self.fail_on_batch:
            raise StoreError("region server rejected the batch", code="HTTP_ERROR", retryable=True)
        return self.inner.write_batch(mutations)

    def is_available(self) -> bool:
        self.availability_probes += 1
        return self.inner.is_available()


class CountingAdmin:
    def __init__(self, inner: SqliteTableAdmin):
        self.inner = inner
        self.create_calls: list[tuple[str, str]] = []

    def exists(self, table: str) -> bool:
        return self.inner.exists(table)

    def create(self, table: str, column_family: str) -> None:
        self.create_calls.append((table, column_family))
        self.inner.create(table, column_family)


class TrackingSource:
    def __init__(self, records):
        self._records = list(records)
        self.pulled = 0

    def __iter__(self):
        for record in self._records:
            self.pulled += 1
            yield record


@pytest.fixture()
def local():
    engine = open_local_store(":memory:")
    yield engine
    engine.close()


def _records(rows, names=None):
    out = []
    for i, values in enumerate(rows, start=1):
        cols = names or [f"DATA_COL{n}" for n in range(len(values))]
        out.append(Record.of(cols, values, line_no=i))
    return out


def _coordinator(local, *, create=True, existing=False, fail_on_batch=None, **config):
    admin = CountingAdmin(SqliteTableAdmin(local))
    if existing:
        admin.inner.create(TABLE, FAMILY)
    store = CountingStore(SqliteTableStore(local, TABLE), fail_on_batch=fail_on_batch)
    job = JobConfig(
        target_table=TABLE,
        default_column_family=FAMILY,
        create_table_if_missing=create,
        **config,
    )
    return ImportCoordinator(store, admin, job), store, admin


def test_basic_import_writes_cells_without_row_key_column(local):
    coordinator, store, admin = _coordinator(local)

    outcome = coordinator.run(_records([[0, 1]]))

    assert outcome.state == JobState.COMPLETED
    assert outcome.ok
    assert outcome.table_created is True
    assert admin.create_calls == [(TABLE, FAMILY)]
    table = store.inner
    assert table.get_cell(b"0", FAMILY, "DATA_COL1") == b"1"
    assert table.get_cell(b"0", FAMILY, "DATA_COL0") is None
    assert table.count_rows() == 1
    assert outcome.stats.rows_written == 1
    assert outcome.stats.cells_written == 1


def test_add_row_key_stores_key_column_as_cell(local):
    coordinator, store, _ = _coordinator(local, add_row_key_column=True)

    outcome = coordinator.run(_records([[0, 1]]))

    assert outcome.ok
    assert store.inner.get_cell(b"0", FAMILY, "DATA_COL0") == b"0"
    assert store.inner.get_cell(b"0", FAMILY, "DATA_COL1") == b"1"


def test_null_cells_are_not_written(local):
    coordinator, store, _ = _coordinator(local)

    outcome = coordinator.run(_records([[0, 42, None]]))

    assert outcome.ok
    _, cells = next(store.inner.scan_rows())
    assert cells == {CellCoordinate(FAMILY, "DATA_COL1"): b"42"}


def test_row_with_only_null_values_is_skipped(local):
    coordinator, store, _ = _coordinator(local)

    outcome = coordinator.run(_records([[0, None]]))

    assert outcome.ok
    assert store.inner.count_rows() == 0
    assert store.write_calls == 0
    assert outcome.stats.rows_skipped == 1
    assert outcome.stats.skipped_by_reason == {"NO_CELLS": 1}


def test_absent_row_key_skips_row_without_error(local):
    coordinator, store, _ = _coordinator(local)
    report = ReportCollector(run_id="r1", command="import")

    outcome = coordinator.run(_records([[None, "x"], ["k", "y"]]), report=report)

    assert outcome.ok
    assert store.inner.count_rows() == 1
    assert store.inner.get_cell(b"k", FAMILY, "DATA_COL1") == b"y"
    assert outcome.stats.skipped_by_reason == {"ROW_KEY_ABSENT": 1}
    assert report.summary.rows_skipped == 1
    assert report.items[0].status == "SKIPPED"
    assert report.items[0].line_no == 1
    assert report.build().status == "SUCCESS"


def test_string_values_are_stored_as_utf8(local):
    coordinator, store, _ = _coordinator(local)

    outcome = coordinator.run(_records([["this is a test", "ключ"]]))

    assert outcome.ok
    assert store.inner.get_cell("this is a test".encode(), FAMILY, "DATA_COL1") == "ключ".encode("utf-8")


def test_missing_table_fails_before_reading_and_writes_nothing(local):
    coordinator, store, admin = _coordinator(local, create=False)
    source = TrackingSource(_records([[0, 1]]))

    outcome = coordinator.run(source)

    assert outcome.state == JobState.FAILED
    assert isinstance(outcome.error, MissingTableError)
    assert outcome.error.code == ErrorCode.MISSING_TABLE.value
    assert source.pulled == 0
    assert store.write_calls == 0
    assert admin.create_calls == []
    with pytest.raises(MissingTableError):
        outcome.raise_for_failure()


def test_existing_table_is_not_recreated(local):
    coordinator, _, admin = _coordinator(local, create=True, existing=True)

    outcome = coordinator.run(_records([[0, 1]]))

    assert outcome.ok
    assert outcome.table_created is False
    assert admin.create_calls == []


def test_client_unavailable_fails_with_zero_submissions(local):
    admin = CountingAdmin(SqliteTableAdmin(local))
    store = CountingStore(SqliteTableStore(local, TABLE))
    job = JobConfig(target_table=TABLE, default_column_family=FAMILY, create_table_if_missing=True)
    coordinator = ImportCoordinator(store, admin, job, availability=ForcedUnavailable())
    source = TrackingSource(_records([[0, 1]]))

    outcome = coordinator.run(source)

    assert outcome.state == JobState.FAILED
    assert isinstance(outcome.error, ClientUnavailableError)
    assert "disabled by configuration" in str(outcome.error)
    assert store.write_calls == 0
    assert source.pulled == 0
    assert admin.create_calls == []


def test_reimport_is_idempotent(local):
    rows = [[1, "a", "b"], [2, "c", None]]
    first, store, _ = _coordinator(local)
    assert first.run(_records(rows)).ok
    snapshot = list(store.inner.scan_rows())

    second, _, _ = _coordinator(local)
    assert second.run(_records(rows)).ok

    assert list(store.inner.scan_rows()) == snapshot


def test_later_value_for_same_cell_wins(local):
    coordinator, store, _ = _coordinator(local)

    outcome = coordinator.run(_records([["k", "old"], ["k", "new"]]))

    assert outcome.ok
    assert store.inner.get_cell(b"k", FAMILY, "DATA_COL1") == b"new"
    assert store.inner.count_rows() == 1


def test_write_error_fails_job_and_keeps_flushed_batches(local):
    coordinator, store, _ = _coordinator(local, fail_on_batch=2, batch_size=2)
    rows = [[i, f"v{i}"] for i in range(6)]

    outcome = coordinator.run(_records(rows))

    assert outcome.state == JobState.FAILED
    assert isinstance(outcome.error, WriteError)
    assert outcome.error.batch_no == 2
    assert outcome.error.cause_code == "HTTP_ERROR"
    assert outcome.stats.batches_ok == 1
    assert outcome.stats.batches_failed == 1
    # первый пакет остаётся в таблице, дальше запись не идёт
    assert store.inner.count_rows() == 2
    assert store.write_calls == 2


def test_unknown_row_key_column_fails_job(local):
    coordinator, store, _ = _coordinator(local, row_key_columns=("missing",))

    outcome = coordinator.run(_records([[0, 1]]))

    assert outcome.state == JobState.FAILED
    assert isinstance(outcome.error, RowKeyColumnError)
    assert store.write_calls == 0


def test_composite_row_key_and_column_override(local):
    coordinator, store, _ = _coordinator(
        local,
        row_key_columns=("region", "id"),
        column_overrides={"name": f"{FAMILY}:full_name"},
    )
    records = _records([["eu", 7, "Ann"]], names=["region", "id", "name"])

    outcome = coordinator.run(records)

    assert outcome.ok
    assert store.inner.get_cell(b"eu_7", FAMILY, "full_name") == b"Ann"


def test_multiple_workers_produce_same_content_as_single_worker():
    rows = [[i, f"value-{i}", i * 2 if i % 3 else None] for i in range(250)]

    def run(workers: int):
        engine = open_local_store(":memory:")
        try:
            coordinator, store, _ = _coordinator(engine, workers=workers, batch_size=7)
            outcome = coordinator.run(_records(rows))
            return outcome, list(store.inner.scan_rows())
        finally:
            engine.close()

    single, single_rows = run(1)
    parallel, parallel_rows = run(4)

    assert single.ok and parallel.ok
    assert parallel.stats.rows_read == 250
    assert parallel.stats.rows_written == single.stats.rows_written == 250
    assert parallel.stats.cells_written == single.stats.cells_written
    assert parallel_rows == single_rows


def test_cancel_stops_pulling_records(local):
    coordinator, store, _ = _coordinator(local, batch_size=1000)

    def source():
        yield from _records([[1, "a"], [2, "b"]])
        coordinator.cancel()
        yield from _records([[3, "c"], [4, "d"]])

    outcome = coordinator.run(source())

    assert outcome.state == JobState.FAILED
    assert isinstance(outcome.error, ImportCancelledError)
    assert outcome.stats.mutations_discarded >= 1
    assert store.inner.count_rows() == 0


def test_source_error_becomes_source_read_error(local):
    coordinator, _, _ = _coordinator(local)

    def source():
        yield from _records([[1, "a"]])
        raise OSError("disk went away")

    outcome = coordinator.run(source())

    assert outcome.state == JobState.FAILED
    assert isinstance(outcome.error, SourceReadError)
    assert "disk went away" in str(outcome.error)


def test_report_counters_after_run(local):
    coordinator, _, _ = _coordinator(local, batch_size=2)
    report = ReportCollector(run_id="r1", command="import")

    outcome = coordinator.run(_records([[1, "a"], [2, None], [3, "c"], [None, "d"]]), report=report)

    assert outcome.ok
    summary = report.summary
    assert summary.rows_total == 4
    assert summary.rows_written == 2
    assert summary.rows_skipped == 2
    assert summary.skipped_by_reason == {"NO_CELLS": 1, "ROW_KEY_ABSENT": 1}
    assert summary.ops["create_table"]["ok"] == 1
    assert summary.ops["put"] == {"ok": 2, "failed": 0, "count": 4}
    assert report.meta.target_table == TABLE
    assert report.status == "SUCCESS"


def test_run_is_single_use(local):
    coordinator, _, _ = _coordinator(local)
    coordinator.run(_records([[1, "a"]]))

    with pytest.raises(RuntimeError):
        coordinator.run(_records([[1, "a"]]))


def test_cancel_after_last_record_still_flushes_buffer(local):
    coordinator, store, _ = _coordinator(local, batch_size=1000)

    def source():
        yield from _records([[1, "x"], [2, "y"]])
        coordinator.cancel()

    outcome = coordinator.run(source())

    assert outcome.state == JobState.COMPLETED
    assert outcome.stats.mutations_discarded == 0
    assert outcome.stats.rows_written == 2
    assert store.inner.count_rows() == 2


class FailingAdmin:
    def __init__(self, fail_on: str):
        self.fail_on = fail_on

    def exists(self, table: str) -> bool:
        if self.fail_on == "exists":
            raise AdminError("schema lookup failed", table=table, operation="exists")
        return False

    def create(self, table: str, column_family: str) -> None:
        raise AdminError("table creation rejected", table=table, operation="create")


@pytest.mark.parametrize("fail_on", ["exists", "create"])
def test_admin_error_fails_job_before_reading(local, fail_on):
    store = CountingStore(SqliteTableStore(local, TABLE))
    job = JobConfig(target_table=TABLE, default_column_family=FAMILY, create_table_if_missing=True)
    coordinator = ImportCoordinator(store, FailingAdmin(fail_on), job)
    source = TrackingSource(_records([[0, 1]]))

    outcome = coordinator.run(source)

    assert outcome.state == JobState.FAILED
    assert isinstance(outcome.error, AdminError)
    assert outcome.error.details["operation"] == fail_on
    assert store.write_calls == 0
    assert source.pulled == 0


def test_failed_batch_is_counted_in_report(local):
    coordinator, _, _ = _coordinator(local, fail_on_batch=2, batch_size=2)
    report = ReportCollector(run_id="r1", command="import")

    outcome = coordinator.run(_records([[i, f"v{i}"] for i in range(6)]), report=report)

    assert outcome.state == JobState.FAILED
    assert outcome.stats.mutations_failed == 2
    assert report.summary.ops["put"]["ok"] == 2
    assert report.summary.ops["put"]["failed"] == 2
    assert report.status == "FAILED"


def test_source_is_closed_when_job_stops_early(local):
    coordinator, _, _ = _coordinator(local, fail_on_batch=1, batch_size=1)
    closed = []

    def source():
        try:
            yield from _records([[i, "v"] for i in range(10)])
        finally:
            closed.append(True)

    outcome = coordinator.run(source())

    assert outcome.state == JobState.FAILED
    assert outcome.stats.rows_read < 10
    assert closed == [True]
