from __future__ import annotations

from typing import Any

from hbaseimport.domain.error_codes import ErrorCode
from hbaseimport.errors import AppError


class ImportJobError(AppError):
    """
    Назначение:
        Базовая ошибка уровня задания импорта. Любая такая ошибка переводит
        ImportCoordinator в состояние FAILED и возвращается вызывающему как результат.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        *,
        retryable: bool = False,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(
            category="job",
            code=code.value,
            message=message,
            retryable=retryable,
            details=details or {},
        )

    @property
    def error_code(self) -> ErrorCode:
        return ErrorCode(self.code)


class MissingTableError(ImportJobError):
    """
    Целевая таблица отсутствует, а создание таблицы выключено.
    Возникает до чтения первой записи, запись в хранилище не выполняется.
    """

    def __init__(self, table: str):
        super().__init__(
            ErrorCode.MISSING_TABLE,
            f"Target table '{table}' does not exist and table creation is disabled",
            details={"table": table},
        )
        self.table = table


class ClientUnavailableError(ImportJobError):
    """
    Клиент целевого хранилища недоступен (не сконфигурирован, не отвечает
    или принудительно выключен политикой доступности).
    """

    def __init__(self, reason: str, details: dict[str, Any] | None = None):
        super().__init__(
            ErrorCode.CLIENT_UNAVAILABLE,
            f"Store client is unavailable: {reason}",
            details=details,
        )
        self.reason = reason


class WriteError(ImportJobError):
    """
    Назначение:
        Ошибка сброса пакета мутаций в хранилище.
    Инварианты/гарантии:
        - Относится ко всему пакету: каждая мутация пакета считается неуспешной.
        - Ранее успешно сброшенные пакеты не откатываются.
    """

    def __init__(
        self,
        message: str,
        *,
        batch_no: int,
        mutations: int,
        cause_code: str | None = None,
        retryable: bool = False,
    ):
        super().__init__(
            ErrorCode.WRITE_FAILED,
            message,
            retryable=retryable,
            details={"batch_no": batch_no, "mutations": mutations, "cause_code": cause_code},
        )
        self.batch_no = batch_no
        self.mutations = mutations
        self.cause_code = cause_code


class AdminError(ImportJobError):
    """Ошибка проверки существования или создания таблицы."""

    def __init__(self, message: str, *, table: str, operation: str, details: dict[str, Any] | None = None):
        merged = {"table": table, "operation": operation}
        merged.update(details or {})
        super().__init__(ErrorCode.ADMIN_ERROR, message, details=merged)
        self.table = table
        self.operation = operation


class RowKeyColumnError(ImportJobError):
    """Колонка ключа строки не найдена в записи источника (ошибка конфигурации)."""

    def __init__(self, column: str | int, available: list[str]):
        super().__init__(
            ErrorCode.ROW_KEY_COLUMN,
            f"Row key column {column!r} is not present in source columns {available}",
            details={"column": column, "available": available},
        )
        self.column = column


class ImportCancelledError(ImportJobError):
    """Задание остановлено кооперативной отменой до обработки всех записей."""

    def __init__(self, message: str = "Import was cancelled"):
        super().__init__(ErrorCode.CANCELLED, message)


class SourceReadError(ImportJobError):
    """Источник записей оборвался ошибкой чтения (формат CSV, сбой SQL и т.п.)."""

    def __init__(self, message: str, *, line_no: int | None = None):
        super().__init__(ErrorCode.SOURCE_ERROR, message, details={"line_no": line_no})
        self.line_no = line_no


class StoreError(AppError):
    """
    Назначение:
        Инфраструктурная ошибка адаптера хранилища (REST-шлюз, локальное хранилище).
    Взаимодействия:
        MutationWriter превращает StoreError в WriteError для всего пакета.
    """

    def __init__(
        self,
        message: str,
        *,
        code: str = ErrorCode.UNEXPECTED_ERROR.value,
        retryable: bool = False,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(
            category="store",
            code=code,
            message=message,
            retryable=retryable,
            details=details or {},
        )


__all__ = [
    "AdminError",
    "ClientUnavailableError",
    "ImportCancelledError",
    "ImportJobError",
    "MissingTableError",
    "RowKeyColumnError",
    "SourceReadError",
    "StoreError",
    "WriteError",
]
