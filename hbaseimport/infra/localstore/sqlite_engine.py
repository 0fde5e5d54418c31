from __future__ import annotations

import sqlite3
import threading
from contextlib import contextmanager
from typing import Iterator


class SqliteEngine:
    """
    Назначение/ответственность:
        Тонкая обёртка над sqlite3.Connection с единым API для SQL-операций.
    Инварианты/гарантии:
        - Все обращения к соединению сериализуются блокировкой: одно соединение
          разделяется воркерами импорта.
        - Соединение открыто в autocommit-режиме, запись идёт через transaction().
    """

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self._lock = threading.RLock()

    def execute(self, sql: str, params: tuple | dict | None = None) -> sqlite3.Cursor:
        with self._lock:
            if params is None:
                return self.conn.execute(sql)
            return self.conn.execute(sql, params)

    def executemany(self, sql: str, seq_of_params: list[tuple] | list[dict]) -> sqlite3.Cursor:
        with self._lock:
            return self.conn.executemany(sql, seq_of_params)

    def fetchone(self, sql: str, params: tuple | dict | None = None) -> sqlite3.Row | None:
        with self._lock:
            return self.execute(sql, params).fetchone()

    def fetchall(self, sql: str, params: tuple | dict | None = None) -> list[sqlite3.Row]:
        with self._lock:
            return self.execute(sql, params).fetchall()

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self._lock:
            self.conn.execute("BEGIN")
            try:
                yield
                self.conn.execute("COMMIT")
            except Exception:
                self.conn.execute("ROLLBACK")
                raise

    def close(self) -> None:
        with self._lock:
            self.conn.close()
