from __future__ import annotations

import csv
from typing import Iterator, Sequence

from hbaseimport.domain.models import Record
from hbaseimport.infra.sources.csv_utils import CsvFormatError, parseNull


class CsvRecordSource:
    """
    Назначение/ответственность:
        Источник Record из CSV-выгрузки таблицы.
    Инварианты/гарантии:
        - Все строки имеют одинаковое число колонок, иначе CsvFormatError.
        - Значение, равное null_string (по умолчанию \\N), становится отсутствующим.
        - Без заголовка колонки называются column_names или col_0..col_N.
    """

    def __init__(
        self,
        path: str,
        has_header: bool = True,
        *,
        delimiter: str = ",",
        null_string: str | None = "\\N",
        empty_as_null: bool = False,
        column_names: Sequence[str] | None = None,
    ) -> None:
        self.path = path
        self.has_header = has_header
        self.delimiter = delimiter
        self.null_string = null_string
        self.empty_as_null = empty_as_null
        self.column_names = list(column_names) if column_names else None

    def __iter__(self) -> Iterator[Record]:
        with open(self.path, "r", encoding="utf-8-sig", newline="") as f:
            reader = csv.reader(f, delimiter=self.delimiter)
            names = self.column_names
            first_data_line = 1
            if self.has_header:
                header = next(reader, None)
                if header is None:
                    raise CsvFormatError(f"Missing header in source CSV: {self.path}")
                names = names or [h.strip() for h in header]
                first_data_line = 2

            record_no = 0
            for csv_line_no, row in enumerate(reader, start=first_data_line):
                if not row:
                    continue
                if names is None:
                    names = [f"col_{idx}" for idx in range(len(row))]
                if len(row) != len(names):
                    raise CsvFormatError(
                        f"Invalid column count at line {csv_line_no}: expected {len(names)}, got {len(row)}"
                    )
                record_no += 1
                values = [parseNull(value, self.null_string, self.empty_as_null) for value in row]
                yield Record.of(names, values, line_no=record_no)
