from __future__ import annotations


class CsvFormatError(Exception):
    """
    Назначение:
        Ошибка критического формата CSV (нет заголовка, разное число колонок).
    """


def parseNull(value: str | None, nullString: str | None, emptyAsNull: bool) -> str | None:
    """
    Назначение:
        Переводит маркер NULL источника в None; остальные значения не меняет.
    """
    if value is None:
        return None
    if nullString is not None and value == nullString:
        return None
    if emptyAsNull and value == "":
        return None
    return value
