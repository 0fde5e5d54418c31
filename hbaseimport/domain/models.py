from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping, Sequence


@dataclass(frozen=True)
class Field:
    """
    Назначение:
        Одно типизированное поле записи источника.
    Инварианты/гарантии:
        - value is None означает отсутствующее значение (SQL NULL).
    """

    name: str
    value: Any
    sql_type: str | None = None

    @property
    def is_absent(self) -> bool:
        return self.value is None


@dataclass(frozen=True)
class Record:
    """
    Назначение:
        Извлечённая строка источника: упорядоченная последовательность полей.
    Инварианты/гарантии:
        - Неизменяема после создания, порядок полей совпадает с порядком колонок источника.
        - line_no: порядковый номер записи в потоке источника (1-based), для диагностики.
    """

    fields: tuple[Field, ...]
    line_no: int = 0

    @classmethod
    def of(
        cls,
        names: Sequence[str],
        values: Sequence[Any],
        *,
        types: Sequence[str | None] | None = None,
        line_no: int = 0,
    ) -> "Record":
        if len(names) != len(values):
            raise ValueError(f"names/values length mismatch: {len(names)} != {len(values)}")
        sql_types = list(types) if types is not None else [None] * len(names)
        return cls(
            fields=tuple(Field(name, value, sql_type) for name, value, sql_type in zip(names, values, sql_types)),
            line_no=line_no,
        )

    @property
    def column_names(self) -> list[str]:
        return [f.name for f in self.fields]

    def get(self, name: str) -> Field | None:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    def as_dict(self) -> dict[str, Any]:
        return {f.name: f.value for f in self.fields}


@dataclass(frozen=True)
class CellCoordinate:
    """
    Назначение:
        Адрес ячейки внутри строки целевой таблицы: (column family, qualifier).
    """

    family: str
    qualifier: str

    @classmethod
    def parse(cls, value: str, default_family: str) -> "CellCoordinate":
        """
        Формат: "family:qualifier" или просто "qualifier" (тогда family = default_family).
        """
        text = value.strip()
        if ":" in text:
            family, qualifier = text.split(":", 1)
        else:
            family, qualifier = default_family, text
        if not family or not qualifier:
            raise ValueError(f"Invalid cell coordinate: {value!r}")
        return cls(family=family, qualifier=qualifier)

    def __str__(self) -> str:
        return f"{self.family}:{self.qualifier}"


@dataclass(frozen=True)
class Cell:
    family: str
    qualifier: str
    value: bytes

    @property
    def coordinate(self) -> CellCoordinate:
        return CellCoordinate(self.family, self.qualifier)


@dataclass(frozen=True)
class MutationSpec:
    """
    Назначение:
        Запись одной строки целевой таблицы: ключ строки и набор ячеек.
    Инварианты/гарантии:
        - Не содержит ячеек для отсутствующих (NULL) значений источника.
        - Порядок ячеек совпадает с порядком колонок источника.
    """

    row_key: bytes
    cells: tuple[Cell, ...]

    @property
    def is_empty(self) -> bool:
        return not self.cells

    def cell_map(self) -> dict[CellCoordinate, bytes]:
        return {cell.coordinate: cell.value for cell in self.cells}


class SkipReason(str, Enum):
    ROW_KEY_ABSENT = "ROW_KEY_ABSENT"
    NO_CELLS = "NO_CELLS"


@dataclass(frozen=True)
class SkippedRowEvent:
    """
    Назначение:
        Штатный пропуск записи (не ошибка): ключ строки отсутствует
        или после подавления NULL не осталось ни одной ячейки.
    """

    line_no: int
    reason: SkipReason


class JobState(str, Enum):
    INIT = "INIT"
    CHECK_PREREQS = "CHECK_PREREQS"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


@dataclass(frozen=True)
class JobConfig:
    """
    Назначение:
        Параметры одного задания импорта.

    Поля:
        target_table: имя целевой таблицы.
        default_column_family: column family для колонок без явного маппинга,
            а также для создаваемой таблицы.
        create_table_if_missing: создавать таблицу, если её нет.
        add_row_key_column: дополнительно записывать колонку ключа как обычную ячейку.
        row_key_column_index: позиция колонки ключа (если не заданы имена).
        row_key_columns: имена колонок ключа; несколько имён дают составной ключ.
        row_key_delimiter: разделитель частей составного ключа.
        batch_size / flush_interval_seconds: политика сброса пакетов.
        workers: число параллельных воркеров.
        column_overrides: имя колонки -> "family:qualifier".
    """

    target_table: str
    default_column_family: str
    create_table_if_missing: bool = False
    add_row_key_column: bool = False
    row_key_column_index: int | None = None
    row_key_columns: tuple[str, ...] = ()
    row_key_delimiter: str = "_"
    batch_size: int = 100
    flush_interval_seconds: float | None = None
    workers: int = 1
    column_overrides: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.target_table:
            raise ValueError("target_table is required")
        if not self.default_column_family:
            raise ValueError("default_column_family is required")
        if self.batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        if self.workers < 1:
            raise ValueError("workers must be >= 1")
        if self.row_key_column_index is not None and self.row_key_column_index < 0:
            raise ValueError("row_key_column_index must be >= 0")
        if self.flush_interval_seconds is not None and self.flush_interval_seconds <= 0:
            raise ValueError("flush_interval_seconds must be > 0")


def split_column_list(value: str | Iterable[str] | None) -> tuple[str, ...]:
    """Разбирает список колонок вида "a,b,c" в кортеж имён без пустых элементов."""
    if value is None:
        return ()
    parts = value.split(",") if isinstance(value, str) else list(value)
    return tuple(p.strip() for p in parts if p and p.strip())
