from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping

from hbaseimport.domain.exceptions import RowKeyColumnError
from hbaseimport.domain.models import CellCoordinate, JobConfig, Record


@dataclass(frozen=True)
class ColumnMapping:
    """
    Назначение/ответственность:
        Статический маппинг колонок источника на координаты ячеек целевой таблицы
        и выбор колонки (колонок) с ролью ключа строки.
    Инварианты/гарантии:
        - Роль ключа задаётся именами, либо позицией, либо (по умолчанию) первой колонкой.
        - Колонка без явного маппинга пишется в (default_family, имя колонки).
    """

    default_family: str
    row_key_columns: tuple[str, ...] = ()
    row_key_index: int | None = None
    overrides: Mapping[str, CellCoordinate] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.row_key_columns and self.row_key_index is not None:
            raise ValueError("row key is configured both by name and by index")

    @classmethod
    def from_job_config(cls, config: JobConfig) -> "ColumnMapping":
        overrides = {
            name: CellCoordinate.parse(coordinate, config.default_column_family)
            for name, coordinate in (config.column_overrides or {}).items()
        }
        return cls(
            default_family=config.default_column_family,
            row_key_columns=tuple(config.row_key_columns),
            row_key_index=config.row_key_column_index,
            overrides=overrides,
        )

    def row_key_positions(self, record: Record) -> tuple[int, ...]:
        """
        Контракт:
            Возвращает позиции полей записи, образующих ключ строки, в порядке конфигурации.
        Ошибки/исключения:
            RowKeyColumnError, если колонка ключа отсутствует в записи.
        """
        if self.row_key_columns:
            names = record.column_names
            positions: list[int] = []
            for name in self.row_key_columns:
                if name not in names:
                    raise RowKeyColumnError(name, names)
                positions.append(names.index(name))
            return tuple(positions)

        index = self.row_key_index if self.row_key_index is not None else 0
        if index >= len(record.fields):
            raise RowKeyColumnError(index, record.column_names)
        return (index,)

    def coordinate_for(self, column: str) -> CellCoordinate:
        coordinate = self.overrides.get(column)
        if coordinate is not None:
            return coordinate
        return CellCoordinate(self.default_family, column)
