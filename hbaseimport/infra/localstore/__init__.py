from .db import openStoreDb
from .schema import ensure_schema
from .sqlite_engine import SqliteEngine
from .table_store import SqliteTableAdmin, SqliteTableStore


def open_local_store(dbPath: str) -> SqliteEngine:
    """Открывает локальное хранилище и гарантирует актуальную схему."""
    engine = SqliteEngine(openStoreDb(dbPath))
    ensure_schema(engine)
    return engine


__all__ = [
    "SqliteEngine",
    "SqliteTableAdmin",
    "SqliteTableStore",
    "ensure_schema",
    "openStoreDb",
    "open_local_store",
]
