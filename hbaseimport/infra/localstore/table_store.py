from __future__ import annotations

import sqlite3
from typing import Iterator, Sequence

from hbaseimport.common.time import getNowIso
from hbaseimport.domain.error_codes import ErrorCode
from hbaseimport.domain.exceptions import AdminError, StoreError
from hbaseimport.domain.models import CellCoordinate, MutationSpec
from hbaseimport.domain.ports.store import StoreClientProtocol, TableAdminProtocol, WriteAck
from hbaseimport.infra.localstore.sqlite_engine import SqliteEngine


class SqliteTableStore(StoreClientProtocol):
    """
    Назначение/ответственность:
        Локальная таблица с семантикой HBase поверх SQLite: ячейка адресуется
        (row_key, family, qualifier), повторная запись заменяет значение.
    Инварианты/гарантии:
        - Пакет пишется в одной транзакции: либо весь, либо ничего.
        - Запись в отсутствующую таблицу или column family отклоняется StoreError.
        - scan_rows() отдаёт строки в байтовом порядке ключей.
    """

    def __init__(self, engine: SqliteEngine, table: str):
        self.engine = engine
        self.table = table

    def write_batch(self, mutations: Sequence[MutationSpec]) -> WriteAck:
        rows: list[tuple] = []
        for mutation in mutations:
            for cell in mutation.cells:
                rows.append((self.table, mutation.row_key, cell.family, cell.qualifier, cell.value))
        try:
            with self.engine.transaction():
                families = self._families()
                if families is None:
                    raise StoreError(
                        f"Table '{self.table}' does not exist",
                        code=ErrorCode.MISSING_TABLE.value,
                        details={"table": self.table},
                    )
                unknown = sorted({row[2] for row in rows} - families)
                if unknown:
                    raise StoreError(
                        f"Unknown column family {unknown} in table '{self.table}'",
                        code=ErrorCode.NO_SUCH_FAMILY.value,
                        details={"table": self.table, "families": unknown},
                    )
                self.engine.executemany(
                    """
                    INSERT OR REPLACE INTO store_cells(table_name, row_key, family, qualifier, value)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    rows,
                )
        except sqlite3.Error as exc:
            raise StoreError(f"Local store write failed: {exc}", retryable=True) from exc
        return WriteAck(mutations=len(mutations), cells=len(rows))

    def is_available(self) -> bool:
        try:
            self.engine.fetchone("SELECT 1")
        except sqlite3.Error:
            return False
        return True

    def get_cell(self, row_key: bytes, family: str, qualifier: str) -> bytes | None:
        row = self.engine.fetchone(
            """
            SELECT value FROM store_cells
            WHERE table_name = ? AND row_key = ? AND family = ? AND qualifier = ?
            """,
            (self.table, row_key, family, qualifier),
        )
        return bytes(row["value"]) if row is not None else None

    def count_rows(self) -> int:
        row = self.engine.fetchone(
            "SELECT COUNT(DISTINCT row_key) AS cnt FROM store_cells WHERE table_name = ?",
            (self.table,),
        )
        return int(row["cnt"]) if row is not None else 0

    def scan_rows(self, limit: int | None = None) -> Iterator[tuple[bytes, dict[CellCoordinate, bytes]]]:
        if limit is not None and limit <= 0:
            return
        rows = self.engine.fetchall(
            """
            SELECT row_key, family, qualifier, value FROM store_cells
            WHERE table_name = ?
            ORDER BY row_key, family, qualifier
            """,
            (self.table,),
        )
        current_key: bytes | None = None
        current: dict[CellCoordinate, bytes] = {}
        emitted = 0
        for row in rows:
            key = bytes(row["row_key"])
            if current_key is not None and key != current_key:
                yield current_key, current
                emitted += 1
                if limit is not None and emitted >= limit:
                    return
                current = {}
            current_key = key
            current[CellCoordinate(row["family"], row["qualifier"])] = bytes(row["value"])
        if current_key is not None:
            yield current_key, current

    def _families(self) -> set[str] | None:
        exists = self.engine.fetchone("SELECT 1 FROM store_tables WHERE name = ?", (self.table,))
        if exists is None:
            return None
        rows = self.engine.fetchall("SELECT family FROM store_families WHERE table_name = ?", (self.table,))
        return {row["family"] for row in rows}


class SqliteTableAdmin(TableAdminProtocol):
    """
    Назначение/ответственность:
        Проверка/создание таблиц локального хранилища.
    """

    def __init__(self, engine: SqliteEngine):
        self.engine = engine

    def exists(self, table: str) -> bool:
        try:
            row = self.engine.fetchone("SELECT 1 FROM store_tables WHERE name = ?", (table,))
        except sqlite3.Error as exc:
            raise AdminError(f"Table check for '{table}' failed: {exc}", table=table, operation="exists") from exc
        return row is not None

    def create(self, table: str, column_family: str) -> None:
        try:
            with self.engine.transaction():
                self.engine.execute(
                    "INSERT OR IGNORE INTO store_tables(name, created_at) VALUES (?, ?)",
                    (table, getNowIso()),
                )
                self.engine.execute(
                    "INSERT OR IGNORE INTO store_families(table_name, family) VALUES (?, ?)",
                    (table, column_family),
                )
        except sqlite3.Error as exc:
            raise AdminError(f"Create table '{table}' failed: {exc}", table=table, operation="create") from exc

    def list_tables(self) -> list[str]:
        return [row["name"] for row in self.engine.fetchall("SELECT name FROM store_tables ORDER BY name")]
