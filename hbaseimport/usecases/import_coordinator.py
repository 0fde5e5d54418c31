from __future__ import annotations

import itertools
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Iterable, Iterator

from hbaseimport.domain.exceptions import (
    ClientUnavailableError,
    ImportCancelledError,
    ImportJobError,
    MissingTableError,
    SourceReadError,
)
from hbaseimport.domain.load.mutation_writer import MutationWriter, WriteResult
from hbaseimport.domain.mapping import ColumnMapping
from hbaseimport.domain.models import JobConfig, JobState, Record, SkippedRowEvent, SkipReason
from hbaseimport.domain.ports.store import AvailabilityPolicy, StoreClientProtocol, TableAdminProtocol
from hbaseimport.domain.reporting.collector import ReportCollector
from hbaseimport.domain.transform.row_transformer import RowTransformer
from hbaseimport.infra.logging.setup import logEvent
from hbaseimport.usecases.availability import ProbeAvailability

_TRANSITIONS: dict[JobState, tuple[JobState, ...]] = {
    JobState.INIT: (JobState.CHECK_PREREQS,),
    JobState.CHECK_PREREQS: (JobState.RUNNING, JobState.FAILED),
    JobState.RUNNING: (JobState.COMPLETED, JobState.FAILED),
    JobState.COMPLETED: (),
    JobState.FAILED: (),
}


@dataclass
class ImportStats:
    rows_read: int = 0
    rows_written: int = 0
    rows_skipped: int = 0
    skipped_by_reason: dict[str, int] = field(default_factory=dict)
    cells_written: int = 0
    batches_ok: int = 0
    batches_failed: int = 0
    mutations_failed: int = 0
    mutations_discarded: int = 0


@dataclass
class ImportOutcome:
    """
    Назначение:
        Результат задания импорта, возвращаемый вызывающему инструменту.
    Инварианты/гарантии:
        - state COMPLETED <=> error is None.
    """

    state: JobState
    stats: ImportStats
    error: ImportJobError | None = None
    table_created: bool = False

    @property
    def ok(self) -> bool:
        return self.state == JobState.COMPLETED

    def raise_for_failure(self) -> None:
        if self.error is not None:
            raise self.error


class ImportCoordinator:
    """
    Назначение/ответственность:
        Оркестратор задания импорта: проверка предусловий, прогон записей через
        RowTransformer и MutationWriter, эскалация ошибок до уровня задания.

    Состояния:
        INIT -> CHECK_PREREQS -> RUNNING -> COMPLETED | FAILED

    Инварианты/гарантии:
        - Предусловия (доступность клиента, наличие таблицы) проверяются до чтения
          первой записи; их нарушение не приводит ни к одной записи в хранилище.
        - Таблица создаётся не более одного раза и до старта воркеров.
        - WriteError любого пакета переводит задание в FAILED; повторов нет.
        - Пропуск записи (нет ключа / нет ячеек) не является ошибкой.
        - При FAILED уже сброшенные пакеты не откатываются, несброшенные буферы
          остальных воркеров отбрасываются.
        - COMPLETED только если источник дочитан и ни одна мутация не отброшена;
          отмена после конца источника не мешает сбросить буферы.
    Ограничения:
        Экземпляр одноразовый: run() вызывается один раз.
    """

    def __init__(
        self,
        store: StoreClientProtocol,
        admin: TableAdminProtocol,
        config: JobConfig,
        *,
        mapping: ColumnMapping | None = None,
        availability: AvailabilityPolicy | None = None,
        logger: logging.Logger | None = None,
        run_id: str | None = None,
    ) -> None:
        self.store = store
        self.admin = admin
        self.config = config
        self.mapping = mapping or ColumnMapping.from_job_config(config)
        self.availability = availability or ProbeAvailability()
        self.logger = logger
        self.run_id = run_id or ""
        self.transformer = RowTransformer(
            self.mapping,
            add_row_key_column=config.add_row_key_column,
            row_key_delimiter=config.row_key_delimiter,
        )

        self.state = JobState.INIT
        self._cancel = threading.Event()
        self._lock = threading.Lock()
        self._batch_numbers = itertools.count(1)
        self._exhausted = False
        self._first_error: ImportJobError | None = None

    def cancel(self) -> None:
        """Кооперативная отмена: воркеры перестают забирать новые записи."""
        self._cancel.set()

    def run(self, source: Iterable[Record], report: ReportCollector | None = None) -> ImportOutcome:
        if self.state != JobState.INIT:
            raise RuntimeError("ImportCoordinator.run() may be called only once")
        stats = ImportStats()
        if report is not None:
            report.set_meta(target_table=self.config.target_table)

        self._transition(JobState.CHECK_PREREQS)
        try:
            table_created = self._check_prerequisites(report)
        except ImportJobError as exc:
            return self._finish(JobState.FAILED, stats, report, error=exc)

        self._transition(JobState.RUNNING)
        records = iter(source)
        try:
            self._run_workers(records, stats, report)
        except Exception:
            self._transition(JobState.FAILED)
            raise
        finally:
            close = getattr(records, "close", None)
            if callable(close):
                close()

        error = self._first_error
        if error is None and (not self._exhausted or stats.mutations_discarded):
            error = ImportCancelledError(f"Import was cancelled after {stats.rows_read} rows")
        if error is not None:
            return self._finish(JobState.FAILED, stats, report, error=error, table_created=table_created)
        return self._finish(JobState.COMPLETED, stats, report, table_created=table_created)

    def _check_prerequisites(self, report: ReportCollector | None) -> bool:
        if not self.availability.check(self.store):
            reason = getattr(self.availability, "reason", "store client is unavailable")
            raise ClientUnavailableError(reason)

        table = self.config.target_table
        if self.admin.exists(table):
            return False
        if not self.config.create_table_if_missing:
            raise MissingTableError(table)

        family = self.config.default_column_family
        self._log(logging.INFO, f"Creating table '{table}' with column family '{family}'")
        self.admin.create(table, family)
        if report is not None:
            report.add_op("create_table", ok=1)
        return True

    def _run_workers(self, records: Iterator[Record], stats: ImportStats, report: ReportCollector | None) -> None:
        workers = self.config.workers
        if workers == 1:
            self._worker(records, stats, report)
            return
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="import-worker") as pool:
            futures = [pool.submit(self._worker, records, stats, report) for _ in range(workers)]
            for future in futures:
                future.result()

    def _worker(self, records: Iterator[Record], stats: ImportStats, report: ReportCollector | None) -> None:
        writer = MutationWriter(
            self.store,
            batch_size=self.config.batch_size,
            flush_interval_seconds=self.config.flush_interval_seconds,
            batch_numbers=self._batch_numbers,
            logger=self.logger,
            run_id=self.run_id,
        )
        try:
            while not self._cancel.is_set():
                record = self._next_record(records, stats)
                if record is None:
                    break
                mutation = self.transformer.transform(record)
                if mutation is None:
                    self._skip(SkippedRowEvent(record.line_no, SkipReason.ROW_KEY_ABSENT), stats, report)
                    continue
                if mutation.is_empty:
                    # строка без ячеек не существует в таблице
                    self._skip(SkippedRowEvent(record.line_no, SkipReason.NO_CELLS), stats, report)
                    continue
                if not self._account(writer.submit(mutation), stats):
                    return

            with self._lock:
                drained = self._exhausted and self._first_error is None
            if not drained:
                # остановка до конца источника: несброшенный буфер не пишется
                dropped = writer.discard()
                if dropped:
                    with self._lock:
                        stats.mutations_discarded += dropped
                    self._log(logging.WARNING, f"Discarded {dropped} unflushed mutations after cancellation")
                return
            self._account(writer.close(), stats)
        except ImportJobError as exc:
            self._escalate(exc)
        except Exception:
            self._cancel.set()
            raise

    def _next_record(self, records: Iterator[Record], stats: ImportStats) -> Record | None:
        with self._lock:
            if self._exhausted:
                return None
            try:
                record = next(records)
            except StopIteration:
                self._exhausted = True
                return None
            except ImportJobError:
                raise
            except Exception as exc:  # noqa: BLE001
                raise SourceReadError(f"Source read failed after {stats.rows_read} rows: {exc}") from exc
            stats.rows_read += 1
            return record

    def _account(self, result: WriteResult | None, stats: ImportStats) -> bool:
        if result is None:
            return True
        with self._lock:
            if result.ok:
                stats.batches_ok += 1
                stats.rows_written += result.mutations
                stats.cells_written += result.cells
            else:
                stats.batches_failed += 1
                stats.mutations_failed += result.mutations
        if not result.ok and result.error is not None:
            self._escalate(result.error)
            return False
        return True

    def _skip(self, event: SkippedRowEvent, stats: ImportStats, report: ReportCollector | None) -> None:
        reason = event.reason.value
        with self._lock:
            stats.rows_skipped += 1
            stats.skipped_by_reason[reason] = stats.skipped_by_reason.get(reason, 0) + 1
        if report is not None:
            report.add_skip(event)
        self._log(logging.DEBUG, f"Row skipped line_no={event.line_no} reason={reason}")

    def _escalate(self, error: ImportJobError) -> None:
        with self._lock:
            if self._first_error is None:
                self._first_error = error
        self._cancel.set()

    def _finish(
        self,
        state: JobState,
        stats: ImportStats,
        report: ReportCollector | None,
        *,
        error: ImportJobError | None = None,
        table_created: bool = False,
    ) -> ImportOutcome:
        self._transition(state)
        if error is not None:
            self._log(logging.ERROR, f"Import failed: [{error.code}] {error}")
        self._log(
            logging.INFO,
            f"Import {state.value}: rows_read={stats.rows_read} rows_written={stats.rows_written} "
            f"rows_skipped={stats.rows_skipped} cells_written={stats.cells_written} "
            f"batches_ok={stats.batches_ok} batches_failed={stats.batches_failed}",
        )
        if report is not None:
            self._fill_report(report, stats, error)
        return ImportOutcome(state=state, stats=stats, error=error, table_created=table_created)

    @staticmethod
    def _fill_report(report: ReportCollector, stats: ImportStats, error: ImportJobError | None) -> None:
        report.summary.rows_total = stats.rows_read
        report.summary.rows_written = stats.rows_written
        report.summary.cells_written = stats.cells_written
        report.summary.batches_ok = stats.batches_ok
        report.summary.batches_failed = stats.batches_failed
        report.add_op("put", ok=stats.rows_written, failed=stats.mutations_failed, count=stats.rows_read)
        report.add_op("skip", count=stats.rows_skipped)
        if error is not None:
            report.add_error(code=error.code, message=error.message, details=error.details)
            report.status = "FAILED"
        else:
            report.status = "SUCCESS"

    def _transition(self, target: JobState) -> None:
        if target not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal job state transition {self.state.value} -> {target.value}")
        self._log(logging.INFO, f"Job state {self.state.value} -> {target.value}")
        self.state = target

    def _log(self, level: int, message: str) -> None:
        if self.logger is not None:
            logEvent(self.logger, level, self.run_id, "import", message)
