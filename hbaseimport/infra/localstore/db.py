from __future__ import annotations

import sqlite3
from pathlib import Path


def openStoreDb(dbPath: str) -> sqlite3.Connection:
    """
    Открывает/создаёт SQLite-файл локального хранилища таблиц.
    Соединение разделяется воркерами, поэтому check_same_thread=False;
    транзакции управляются явно (isolation_level=None).
    """
    if dbPath != ":memory:":
        Path(dbPath).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(dbPath, timeout=5.0, check_same_thread=False, isolation_level=None)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    if dbPath != ":memory:":
        conn.execute("PRAGMA journal_mode = WAL")
    conn.execute("PRAGMA synchronous = NORMAL")
    conn.execute("PRAGMA busy_timeout = 5000")
    return conn
