from __future__ import annotations

import threading
from dataclasses import asdict
from typing import Any

from hbaseimport.common.time import getNowIso
from hbaseimport.domain.models import SkippedRowEvent
from hbaseimport.domain.reporting.models import (
    ReportEnvelope,
    ReportItem,
    ReportMeta,
    ReportSummary,
)


class ReportCollector:
    """
    Назначение/ответственность:
        Единый сборщик отчёта для команд импорта.
    Инварианты/гарантии:
        - Пропуски записей считаются в summary всегда, а в items попадают в пределах items_limit.
        - Методы add_* безопасны для вызова из нескольких воркеров.
    """

    def __init__(self, run_id: str, command: str, started_at: str | None = None) -> None:
        self.meta = ReportMeta(
            run_id=run_id,
            command=command,
            started_at=started_at or getNowIso(),
        )
        self.summary = ReportSummary()
        self.items: list[ReportItem] = []
        self.context: dict[str, Any] = {}
        self.status: str | None = None
        self._lock = threading.Lock()

    def set_meta(
        self,
        *,
        target_table: str | None = None,
        store: str | None = None,
        source: str | None = None,
        items_limit: int | None = None,
    ) -> None:
        if target_table is not None:
            self.meta.target_table = target_table
        if store is not None:
            self.meta.store = store
        if source is not None:
            self.meta.source = source
        if items_limit is not None:
            self.meta.items_limit = items_limit

    def set_context(self, name: str, value: dict[str, Any]) -> None:
        self.context[name] = value

    def add_op(self, name: str, *, ok: int = 0, failed: int = 0, count: int = 0) -> None:
        with self._lock:
            entry = self.summary.ops.setdefault(name, {"ok": 0, "failed": 0, "count": 0})
            entry["ok"] += ok
            entry["failed"] += failed
            entry["count"] += count

    def add_skip(self, event: SkippedRowEvent) -> None:
        reason = event.reason.value
        with self._lock:
            self.summary.rows_skipped += 1
            self.summary.skipped_by_reason[reason] = self.summary.skipped_by_reason.get(reason, 0) + 1
            self._store_item(ReportItem(status="SKIPPED", code=reason, line_no=event.line_no))

    def add_error(
        self,
        *,
        code: str,
        message: str,
        line_no: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        with self._lock:
            self.summary.errors_total += 1
            self._store_item(
                ReportItem(status="FAILED", code=code, line_no=line_no, message=message, details=details or {})
            )

    def finish(self, finished_at: str | None = None, duration_ms: int | None = None) -> None:
        self.meta.finished_at = finished_at or getNowIso()
        self.meta.duration_ms = duration_ms
        if self.status is None:
            self.status = self._derive_status()

    def build(self) -> ReportEnvelope:
        return ReportEnvelope(
            status=self.status or self._derive_status(),
            meta=self.meta,
            summary=self.summary,
            items=list(self.items),
            context=self.context,
        )

    def _store_item(self, item: ReportItem) -> None:
        limit = self.meta.items_limit
        if limit is not None and len(self.items) >= limit:
            self.meta.items_truncated = True
            return
        self.items.append(item)

    def _derive_status(self) -> str:
        return "SUCCESS" if self.summary.errors_total == 0 else "FAILED"


def asdict_report(envelope: ReportEnvelope) -> dict[str, Any]:
    return {
        "status": envelope.status,
        "meta": asdict(envelope.meta),
        "summary": asdict(envelope.summary),
        "items": [asdict(item) for item in envelope.items],
        "context": envelope.context,
    }
