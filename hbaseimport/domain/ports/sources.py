from __future__ import annotations

from typing import Iterator, Protocol

from hbaseimport.domain.models import Record


class RecordSource(Protocol):
    """
    Назначение/ответственность:
        Источник извлечённых записей для импорта.
    Инварианты/гарантии:
        - Ленивая, конечная, одноразовая последовательность Record в порядке поступления.
    """

    def __iter__(self) -> Iterator[Record]:
        """
        Контракт:
            Возвращает итератор Record; повторный обход не гарантируется.
        """
        ...
