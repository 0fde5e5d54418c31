from __future__ import annotations

from hbaseimport.domain.mapping import ColumnMapping
from hbaseimport.domain.models import Cell, MutationSpec, Record
from hbaseimport.domain.transform.serializer import serialize_value


class RowTransformer:
    """
    Назначение/ответственность:
        Превращает одну запись источника в ноль или одну мутацию целевой таблицы.
    Инварианты/гарантии:
        - Отсутствующий ключ строки (любая часть составного ключа) -> None, ни одной ячейки.
        - Отсутствующее значение колонки -> ячейка не создаётся.
        - add_row_key_column=False: колонки ключа не попадают в ячейки.
          add_row_key_column=True: колонки ключа пишутся и как ключ, и как обычные ячейки.
    Ограничения:
        Чистая функция без состояния, безопасна для параллельного вызова.
    """

    def __init__(
        self,
        mapping: ColumnMapping,
        *,
        add_row_key_column: bool = False,
        row_key_delimiter: str = "_",
    ) -> None:
        self.mapping = mapping
        self.add_row_key_column = add_row_key_column
        self.row_key_delimiter = row_key_delimiter.encode("utf-8")

    def transform(self, record: Record) -> MutationSpec | None:
        key_positions = self.mapping.row_key_positions(record)
        key_parts: list[bytes] = []
        for pos in key_positions:
            value = record.fields[pos].value
            if value is None:
                return None
            key_parts.append(serialize_value(value))
        row_key = self.row_key_delimiter.join(key_parts)

        cells: list[Cell] = []
        for pos, source_field in enumerate(record.fields):
            if pos in key_positions and not self.add_row_key_column:
                continue
            if source_field.value is None:
                continue
            coordinate = self.mapping.coordinate_for(source_field.name)
            cells.append(Cell(coordinate.family, coordinate.qualifier, serialize_value(source_field.value)))

        return MutationSpec(row_key=row_key, cells=tuple(cells))


def transform(record: Record, mapping: ColumnMapping, *, add_row_key_column: bool = False) -> MutationSpec | None:
    """Функциональная форма RowTransformer.transform с настройками по умолчанию."""
    return RowTransformer(mapping, add_row_key_column=add_row_key_column).transform(record)
