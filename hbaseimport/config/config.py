from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Callable

import yaml

STORE_SQLITE = "sqlite"
STORE_HBASE_REST = "hbase-rest"
STORES = (STORE_SQLITE, STORE_HBASE_REST)
LOG_LEVELS = ("ERROR", "WARN", "WARNING", "INFO", "DEBUG")


@dataclass(frozen=True)
class Settings:
    # Store
    store: str = STORE_SQLITE
    rest_url: str | None = None
    rest_username: str | None = None
    rest_password: str | None = None
    timeout_seconds: float = 20.0
    retries: int = 3
    retry_backoff_seconds: float = 0.5
    tls_skip_verify: bool = False
    ca_file: str | None = None
    local_store_path: str = "./store/hbase_local.sqlite3"

    # Import
    batch_size: int = 100
    flush_interval_seconds: float | None = None
    workers: int = 1
    null_string: str | None = "\\N"
    columns: dict[str, str] = field(default_factory=dict)

    # Paths / logging / reports
    log_dir: str = "./logs"
    report_dir: str = "./reports"
    log_level: str = "INFO"
    report_items_limit: int = 200


@dataclass(frozen=True)
class LoadedSettings:
    settings: Settings
    sources_used: list[str]


def _parse_bool(v: str) -> bool:
    vv = v.lower()
    if vv in ("1", "true", "yes", "y"):
        return True
    if vv in ("0", "false", "no", "n"):
        return False
    raise ValueError(f"Invalid boolean env value: {v}")


# ключ Settings -> парсер строкового значения из ENV
_ENV_PARSERS: dict[str, Callable[[str], Any]] = {
    "store": str,
    "rest_url": str,
    "rest_username": str,
    "rest_password": str,
    "timeout_seconds": float,
    "retries": int,
    "retry_backoff_seconds": float,
    "tls_skip_verify": _parse_bool,
    "ca_file": str,
    "local_store_path": str,
    "batch_size": int,
    "flush_interval_seconds": float,
    "workers": int,
    "null_string": str,
    "log_dir": str,
    "report_dir": str,
    "log_level": str,
    "report_items_limit": int,
}

ENV_PREFIX = "HBASE_IMPORT_"


def _read_yaml_config(path: Path) -> dict:
    if not path.exists() or not path.is_file():
        return {}
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        return {}
    return data


def _env_get(name: str) -> str | None:
    v = os.getenv(name)
    if v is None or v.strip() == "":
        return None
    return v.strip()


def loadSettings(config_path: str | None, cli_overrides: dict) -> LoadedSettings:
    """
    Назначение:
        Собирает итоговые настройки.

    Приоритет:
        CLI > ENV (HBASE_IMPORT_*) > YAML-конфиг > значения по умолчанию.

    Ошибки/исключения:
        ValueError при неизвестном store, некорректном ENV или секции columns.
    """
    sources: list[str] = []
    known = {f.name for f in fields(Settings)}
    merged: dict[str, Any] = {}

    # 1) config file
    if config_path:
        cfg = _read_yaml_config(Path(config_path))
        if cfg:
            sources.append("config")
            merged.update({k: v for k, v in cfg.items() if k in known})

    # 2) env
    env_used = False
    for key, parser in _ENV_PARSERS.items():
        raw = _env_get(ENV_PREFIX + key.upper())
        if raw is None:
            continue
        merged[key] = parser(raw)
        env_used = True
    if env_used:
        sources.append("env")

    # 3) CLI (только явно переданные значения)
    cli_values = {k: v for k, v in cli_overrides.items() if v is not None}
    if cli_values:
        sources.append("cli")
        merged.update(cli_values)

    columns = merged.get("columns") or {}
    if not isinstance(columns, dict):
        raise ValueError("config 'columns' must be a mapping of column -> family:qualifier")
    merged["columns"] = {str(k): str(v) for k, v in columns.items()}

    if "tls_skip_verify" in merged:
        merged["tls_skip_verify"] = bool(merged["tls_skip_verify"])

    settings = Settings(**merged)
    if settings.store not in STORES:
        raise ValueError(f"Unsupported store '{settings.store}', expected one of {', '.join(STORES)}")
    if settings.log_level.strip().upper() not in LOG_LEVELS:
        raise ValueError(f"Unsupported log level '{settings.log_level}'")
    return LoadedSettings(settings=settings, sources_used=sources)
