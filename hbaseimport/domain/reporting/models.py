from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class ReportMeta:
    """
    Назначение:
        Метаданные запуска команды.
    """

    run_id: str
    command: str
    started_at: str
    target_table: str | None = None
    store: str | None = None
    source: str | None = None
    finished_at: str | None = None
    duration_ms: int | None = None
    items_limit: int | None = None
    items_truncated: bool = False


@dataclass
class ReportSummary:
    """
    Назначение:
        Счётчики выполнения импорта.
    """

    rows_total: int = 0
    rows_written: int = 0
    rows_skipped: int = 0
    skipped_by_reason: dict[str, int] = field(default_factory=dict)
    cells_written: int = 0
    batches_ok: int = 0
    batches_failed: int = 0
    errors_total: int = 0
    ops: dict[str, dict[str, int]] = field(default_factory=dict)


@dataclass(frozen=True)
class ReportItem:
    """
    Назначение:
        Единица отчёта: пропущенная запись или ошибка задания.
    """

    status: str
    code: str
    line_no: int | None = None
    message: str | None = None
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class ReportEnvelope:
    status: str
    meta: ReportMeta
    summary: ReportSummary
    items: list[ReportItem]
    context: dict[str, Any] = field(default_factory=dict)
