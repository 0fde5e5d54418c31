from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    """
    Назначение:
        Единая таксономия кодов ошибок импорта и инфраструктуры хранилища.
    """

    MISSING_TABLE = "MISSING_TABLE"
    CLIENT_UNAVAILABLE = "CLIENT_UNAVAILABLE"
    WRITE_FAILED = "WRITE_FAILED"
    ADMIN_ERROR = "ADMIN_ERROR"
    ROW_KEY_COLUMN = "ROW_KEY_COLUMN"
    CANCELLED = "CANCELLED"
    NETWORK_ERROR = "NETWORK_ERROR"
    HTTP_ERROR = "HTTP_ERROR"
    INVALID_JSON = "INVALID_JSON"
    NO_SUCH_FAMILY = "NO_SUCH_FAMILY"
    SOURCE_ERROR = "SOURCE_ERROR"
    UNEXPECTED_ERROR = "UNEXPECTED_ERROR"

    @classmethod
    def from_status(cls, status_code: int | None) -> "ErrorCode":
        """
        Назначение:
            Подбор общего кода по HTTP-статусу REST-шлюза.
        """
        if status_code == 404:
            return cls.MISSING_TABLE
        if status_code in (502, 503, 504):
            return cls.CLIENT_UNAVAILABLE
        return cls.HTTP_ERROR
