from __future__ import annotations

from hbaseimport.infra.localstore.sqlite_engine import SqliteEngine

SCHEMA_VERSION = 1

_DDL = (
    """
    CREATE TABLE IF NOT EXISTS meta (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS store_tables (
        name TEXT PRIMARY KEY,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS store_families (
        table_name TEXT NOT NULL REFERENCES store_tables(name) ON DELETE CASCADE,
        family TEXT NOT NULL,
        PRIMARY KEY (table_name, family)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS store_cells (
        table_name TEXT NOT NULL,
        row_key BLOB NOT NULL,
        family TEXT NOT NULL,
        qualifier TEXT NOT NULL,
        value BLOB NOT NULL,
        PRIMARY KEY (table_name, row_key, family, qualifier),
        FOREIGN KEY (table_name, family) REFERENCES store_families(table_name, family) ON DELETE CASCADE
    )
    """,
)


def ensure_schema(engine: SqliteEngine) -> None:
    """
    Назначение:
        Создаёт служебные таблицы локального хранилища и фиксирует версию схемы.
    Ошибки/исключения:
        ValueError, если файл создан другой версией схемы.
    """
    for ddl in _DDL:
        engine.execute(ddl)
    row = engine.fetchone("SELECT value FROM meta WHERE key = 'schema_version'")
    if row is None:
        engine.execute(
            "INSERT INTO meta(key, value) VALUES('schema_version', ?)",
            (str(SCHEMA_VERSION),),
        )
        return
    if int(row["value"]) != SCHEMA_VERSION:
        raise ValueError(f"Unsupported local store schema version: {row['value']}")
