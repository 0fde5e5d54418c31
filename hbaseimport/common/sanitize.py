from __future__ import annotations


def maskSecret(value: str | None) -> str | None:
    """
    Назначение:
        Маскирует секрет (пароль REST-шлюза) для вывода в stdout/логи.
        None остаётся None, любое заданное значение превращается в '***'.
    """
    if value is None:
        return None
    return "***"


def truncateText(value: str | None, limit: int = 500) -> str | None:
    """
    Назначение:
        Ограничивает длину текста ответа, чтобы не раздувать логи и отчёты.
    """
    if value is None:
        return None
    if len(value) <= limit:
        return value
    suffix = "..." if limit > 3 else ""
    return value[: limit - len(suffix)] + suffix
