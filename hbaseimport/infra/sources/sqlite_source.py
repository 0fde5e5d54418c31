from __future__ import annotations

import sqlite3
from typing import Iterator, Sequence

from hbaseimport.domain.models import Record


def _quote_ident(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


class SqliteQuerySource:
    """
    Назначение/ответственность:
        Реляционный источник Record: строки таблицы или результата SQL-запроса SQLite.
    Инварианты/гарантии:
        - Ровно один из table/query.
        - Порядок полей совпадает с порядком колонок результата; NULL -> отсутствующее значение.
        - Для table в sql_type попадает объявленный тип колонки.
    Ограничения:
        Одноразовый ленивый обход; соединение открывается на время итерации.
    """

    def __init__(
        self,
        db_path: str,
        *,
        table: str | None = None,
        query: str | None = None,
        columns: Sequence[str] | None = None,
        fetch_size: int = 500,
    ) -> None:
        if (table is None) == (query is None):
            raise ValueError("exactly one of table or query must be set")
        if query is not None and columns:
            raise ValueError("columns can be used only with table")
        self.db_path = db_path
        self.table = table
        self.query = query
        self.columns = list(columns) if columns else None
        self.fetch_size = fetch_size

    def build_sql(self) -> str:
        if self.query is not None:
            return self.query
        cols = ", ".join(_quote_ident(c) for c in self.columns) if self.columns else "*"
        return f"SELECT {cols} FROM {_quote_ident(self.table or '')}"

    def __iter__(self) -> Iterator[Record]:
        # next() может вызываться из разных воркеров (под блокировкой координатора)
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        try:
            declared = self._declared_types(conn)
            cursor = conn.execute(self.build_sql())
            names = [d[0] for d in cursor.description]
            types = [declared.get(name) for name in names]
            line_no = 0
            while True:
                rows = cursor.fetchmany(self.fetch_size)
                if not rows:
                    break
                for row in rows:
                    line_no += 1
                    yield Record.of(names, list(row), types=types, line_no=line_no)
        finally:
            conn.close()

    def _declared_types(self, conn: sqlite3.Connection) -> dict[str, str | None]:
        if self.table is None:
            return {}
        rows = conn.execute(f"PRAGMA table_info({_quote_ident(self.table)})").fetchall()
        return {row[1]: (row[2] or None) for row in rows}
