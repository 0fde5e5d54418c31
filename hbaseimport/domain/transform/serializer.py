from __future__ import annotations

from typing import Any


def serialize_value(value: Any) -> bytes:
    """
    Назначение:
        Переводит значение поля в его внешнее байтовое представление.

    Контракт:
        - None не сериализуется: отсутствующее значение никогда не становится пустой ячейкой.
        - bytes/bytearray/memoryview передаются как есть.
        - bool -> b"true"/b"false".
        - Остальные типы (int, float, Decimal, str, date/datetime) -> str(value) в UTF-8,
          поэтому целое 1 и строка "1" дают одинаковые байты.
    """
    if value is None:
        raise ValueError("absent values must not be serialized")
    if isinstance(value, bytes):
        return value
    if isinstance(value, (bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, bool):
        return b"true" if value else b"false"
    return str(value).encode("utf-8")
