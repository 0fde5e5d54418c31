from __future__ import annotations

import logging
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable

import typer

from hbaseimport.common.run_id import generate_run_id
from hbaseimport.common.sanitize import maskSecret
from hbaseimport.common.time import getDurationMs
from hbaseimport.config.config import STORE_HBASE_REST, Settings, loadSettings
from hbaseimport.domain.error_codes import ErrorCode
from hbaseimport.domain.exceptions import ClientUnavailableError, ImportJobError
from hbaseimport.domain.models import JobConfig, Record, split_column_list
from hbaseimport.domain.ports.store import AvailabilityPolicy, StoreClientProtocol, TableAdminProtocol
from hbaseimport.domain.reporting.collector import ReportCollector
from hbaseimport.infra.artifacts.report_writer import createEmptyReport, finalizeReport, writeReportJson
from hbaseimport.infra.hbase.table_store import HBaseTableAdmin, HBaseTableStore
from hbaseimport.infra.http.rest_client import HBaseRestClient
from hbaseimport.infra.localstore import SqliteTableAdmin, SqliteTableStore, open_local_store
from hbaseimport.infra.logging.setup import StreamTee, closeCommandLogger, createCommandLogger, logEvent
from hbaseimport.infra.sources.csv_source import CsvRecordSource
from hbaseimport.infra.sources.sqlite_source import SqliteQuerySource
from hbaseimport.usecases.availability import ForcedUnavailable
from hbaseimport.usecases.import_coordinator import ImportCoordinator

app = typer.Typer(no_args_is_help=True, add_completion=False)
tableApp = typer.Typer(no_args_is_help=True)

# ошибки предусловий/конфигурации -> 2, ошибки во время прогона -> 1
_PREREQ_CODES = {
    ErrorCode.MISSING_TABLE,
    ErrorCode.CLIENT_UNAVAILABLE,
    ErrorCode.ADMIN_ERROR,
    ErrorCode.ROW_KEY_COLUMN,
}


@dataclass
class StoreBackend:
    """
    Назначение:
        Собранные адаптеры хранилища для одной команды.
    """

    name: str
    store: StoreClientProtocol
    admin: TableAdminProtocol
    close: Callable[[], None]


def exitCodeFor(error: ImportJobError | None) -> int:
    if error is None:
        return 0
    return 2 if error.error_code in _PREREQ_CODES else 1


def _optionOr(value, default):
    return default if value is None else value


def buildStoreBackend(settings: Settings, table: str) -> StoreBackend:
    """
    Назначение:
        Создаёт клиент хранилища и админку таблиц по настройкам.

    Ошибки/исключения:
        ClientUnavailableError, если для REST-хранилища не задан адрес шлюза.
    """
    if settings.store == STORE_HBASE_REST:
        if not settings.rest_url:
            raise ClientUnavailableError("HBase REST URL is not configured (--rest-url)")
        client = HBaseRestClient(
            baseUrl=settings.rest_url,
            username=settings.rest_username,
            password=settings.rest_password,
            timeoutSeconds=settings.timeout_seconds,
            tlsSkipVerify=settings.tls_skip_verify,
            caFile=settings.ca_file,
            retries=settings.retries,
            retryBackoffSeconds=settings.retry_backoff_seconds,
        )
        return StoreBackend(
            name=STORE_HBASE_REST,
            store=HBaseTableStore(client, table),
            admin=HBaseTableAdmin(client),
            close=client.close,
        )

    engine = open_local_store(settings.local_store_path)
    return StoreBackend(
        name=settings.store,
        store=SqliteTableStore(engine, table),
        admin=SqliteTableAdmin(engine),
        close=engine.close,
    )


def buildRecordSource(
    csvPath: str | None,
    csvHasHeader: bool,
    sourceDb: str | None,
    sourceTable: str | None,
    query: str | None,
    columns: str | None,
    nullString: str | None,
) -> tuple[Iterable[Record], str]:
    """
    Выходные данные:
        (источник записей, описание источника для отчёта)

    Ошибки/исключения:
        ValueError при неполной или противоречивой конфигурации источника.
    """
    if csvPath and sourceDb:
        raise ValueError("use either --csv or --source-db, not both")
    if csvPath:
        p = Path(csvPath)
        if not p.exists() or not p.is_file():
            raise ValueError(f"CSV file not found: {csvPath}")
        return (
            CsvRecordSource(
                csvPath,
                has_header=csvHasHeader,
                null_string=nullString,
                column_names=split_column_list(columns) or None,
            ),
            f"csv:{csvPath}",
        )
    if sourceDb:
        if not Path(sourceDb).is_file():
            raise ValueError(f"Source database not found: {sourceDb}")
        source = SqliteQuerySource(
            sourceDb,
            table=sourceTable,
            query=query,
            columns=split_column_list(columns) or None,
        )
        return source, f"sqlite:{sourceDb}:{sourceTable or 'query'}"
    raise ValueError("a source is required: --csv or --source-db with --source-table/--query")


def printRunHeader(runId: str, command: str, settings: Settings, sources: list[str]) -> None:
    """
    Назначение:
        Печатает безопасную сводку параметров запуска (без секретов).
    """
    target = settings.rest_url if settings.store == STORE_HBASE_REST else settings.local_store_path
    typer.echo(
        f"run_id={runId} command={command} store={settings.store} target={target} "
        f"rest_username={settings.rest_username} rest_password={maskSecret(settings.rest_password)} "
        f"sources={sources} log_level={settings.log_level}"
    )


def runWithReport(ctx: typer.Context, commandName: str, runner: Callable[[logging.Logger, ReportCollector], int]) -> None:
    """
    Назначение:
        Унифицированная обвязка выполнения команд:
        - создаёт логгер и файл лога
        - создаёт скелет report.json
        - дублирует stdout/stderr в лог
        - гарантирует запись отчёта в finally и выходит с кодом runner
    """
    runId = ctx.obj["runId"]
    settings: Settings = ctx.obj["settings"]
    sources = ctx.obj["sources"]

    startMonotonic = time.monotonic()
    logger, logFilePath = createCommandLogger(
        commandName=commandName,
        logDir=settings.log_dir,
        runId=runId,
        logLevel=settings.log_level,
    )
    report = createEmptyReport(runId=runId, command=commandName, configSources=sources)
    report.set_meta(store=settings.store, items_limit=settings.report_items_limit)

    originalStdout = sys.stdout
    originalStderr = sys.stderr
    sys.stdout = StreamTee(originalStdout, logger, logging.INFO, runId, "stdout")
    sys.stderr = StreamTee(originalStderr, logger, logging.ERROR, runId, "stderr")

    exitCode: int | None = None
    try:
        logEvent(logger, logging.INFO, runId, "core", "Command started")
        printRunHeader(runId, commandName, settings, sources)
        exitCode = runner(logger, report)
    finally:
        durationMs = getDurationMs(startMonotonic, time.monotonic())
        finalizeReport(report=report, durationMs=durationMs, logFile=logFilePath, reportDir=settings.report_dir)
        reportPath = writeReportJson(report, settings.report_dir, f"report_{commandName}_{runId}")
        logEvent(logger, logging.INFO, runId, "report", f"Report written: {reportPath}")

        sys.stdout.flush()
        sys.stderr.flush()
        sys.stdout = originalStdout
        sys.stderr = originalStderr
        closeCommandLogger(logger)

    if exitCode is not None:
        raise typer.Exit(code=exitCode)


def runImportCommand(
    ctx: typer.Context,
    jobOptions: dict,
    sourceOptions: dict,
    simulateStoreUnavailable: bool,
) -> None:
    settings: Settings = ctx.obj["settings"]
    runId = ctx.obj["runId"]

    def execute(logger: logging.Logger, report: ReportCollector) -> int:
        try:
            config = JobConfig(
                target_table=jobOptions["table"],
                default_column_family=jobOptions["family"],
                create_table_if_missing=jobOptions["create_table"],
                add_row_key_column=jobOptions["add_row_key"],
                row_key_column_index=jobOptions["row_key_index"],
                row_key_columns=split_column_list(jobOptions["row_key"]),
                batch_size=_optionOr(jobOptions["batch_size"], settings.batch_size),
                flush_interval_seconds=_optionOr(jobOptions["flush_interval_seconds"], settings.flush_interval_seconds),
                workers=_optionOr(jobOptions["workers"], settings.workers),
                column_overrides=settings.columns,
            )
            source, sourceLabel = buildRecordSource(**sourceOptions)
        except ValueError as exc:
            logEvent(logger, logging.ERROR, runId, "config", f"Invalid import options: {exc}")
            typer.echo(f"ERROR: {exc}", err=True)
            return 2
        report.set_meta(source=sourceLabel)
        report.set_context(
            "job",
            {
                "target_table": config.target_table,
                "column_family": config.default_column_family,
                "create_table_if_missing": config.create_table_if_missing,
                "add_row_key_column": config.add_row_key_column,
                "row_key_columns": list(config.row_key_columns),
                "row_key_column_index": config.row_key_column_index,
                "batch_size": config.batch_size,
                "workers": config.workers,
            },
        )

        try:
            backend = buildStoreBackend(settings, config.target_table)
        except ImportJobError as exc:
            logEvent(logger, logging.ERROR, runId, "store", f"Import failed: {exc}")
            report.add_error(code=exc.code, message=exc.message, details=exc.details)
            typer.echo(f"ERROR: {exc.code}: {exc}", err=True)
            return exitCodeFor(exc)

        availability: AvailabilityPolicy | None = None
        if simulateStoreUnavailable:
            availability = ForcedUnavailable()
        try:
            coordinator = ImportCoordinator(
                backend.store,
                backend.admin,
                config,
                availability=availability,
                logger=logger,
                run_id=runId,
            )
            outcome = coordinator.run(source, report=report)
        except ValueError as exc:
            logEvent(logger, logging.ERROR, runId, "config", f"Invalid column mapping: {exc}")
            typer.echo(f"ERROR: {exc}", err=True)
            return 2
        finally:
            backend.close()

        stats = outcome.stats
        typer.echo(
            f"import {outcome.state.value}: table={config.target_table} rows_read={stats.rows_read} "
            f"rows_written={stats.rows_written} rows_skipped={stats.rows_skipped} "
            f"cells_written={stats.cells_written} batches={stats.batches_ok}"
        )
        if outcome.error is not None:
            typer.echo(f"ERROR: {outcome.error.code}: {outcome.error}", err=True)
        return exitCodeFor(outcome.error)

    runWithReport(ctx, "import", execute)


def runCheckStoreCommand(ctx: typer.Context) -> None:
    settings: Settings = ctx.obj["settings"]
    runId = ctx.obj["runId"]

    def execute(logger: logging.Logger, report: ReportCollector) -> int:
        try:
            backend = buildStoreBackend(settings, table="")
        except ImportJobError as exc:
            logEvent(logger, logging.ERROR, runId, "store", f"Store check failed: {exc}")
            typer.echo(f"ERROR: {exc}", err=True)
            return 2
        try:
            start = time.monotonic()
            available = backend.store.is_available()
            latencyMs = int((time.monotonic() - start) * 1000)
        finally:
            backend.close()
        report.set_context("store_check", {"available": available, "latency_ms": latencyMs})
        if not available:
            logEvent(logger, logging.ERROR, runId, "store", f"Store {backend.name} is unavailable")
            typer.echo("ERROR: store is unavailable (see logs/report)", err=True)
            return 2
        logEvent(logger, logging.INFO, runId, "store", f"store ok latency_ms={latencyMs}")
        typer.echo(f"store ok: {backend.name} latency_ms={latencyMs}")
        return 0

    runWithReport(ctx, "check-store", execute)


def runTableCommand(ctx: typer.Context, commandName: str, table: str, action: Callable[[StoreBackend], int]) -> None:
    settings: Settings = ctx.obj["settings"]
    runId = ctx.obj["runId"]

    def execute(logger: logging.Logger, report: ReportCollector) -> int:
        report.set_meta(target_table=table)
        try:
            backend = buildStoreBackend(settings, table)
        except ImportJobError as exc:
            typer.echo(f"ERROR: {exc}", err=True)
            return 2
        try:
            return action(backend)
        except ImportJobError as exc:
            logEvent(logger, logging.ERROR, runId, "admin", f"{commandName} failed: {exc}")
            report.add_error(code=exc.code, message=exc.message, details=exc.details)
            typer.echo(f"ERROR: {exc}", err=True)
            return 2
        finally:
            backend.close()

    runWithReport(ctx, commandName, execute)


@app.callback()
def main(
    ctx: typer.Context,
    config: str | None = typer.Option(None, "--config", help="Path to config.yml"),
    runId: str | None = typer.Option(None, "--run-id", help="Run identifier (UUID). If omitted, generated."),
    logLevel: str | None = typer.Option(None, "--log-level", help="Log level: ERROR|WARN|INFO|DEBUG"),
    logDir: str | None = typer.Option(None, "--log-dir", help="Directory for logs."),
    reportDir: str | None = typer.Option(None, "--report-dir", help="Directory for reports."),
    store: str | None = typer.Option(None, "--store", help="Target store: sqlite|hbase-rest"),
    localStore: str | None = typer.Option(None, "--local-store", help="SQLite file of the local table store"),
    restUrl: str | None = typer.Option(None, "--rest-url", help="HBase REST gateway base URL"),
    restUsername: str | None = typer.Option(None, "--rest-username", help="REST gateway username"),
    restPassword: str | None = typer.Option(None, "--rest-password", help="REST gateway password (avoid; use env/file)"),
    restPasswordFile: str | None = typer.Option(None, "--rest-password-file", help="Read REST password from file"),
    tlsSkipVerify: bool | None = typer.Option(None, "--tls-skip-verify", help="Disable TLS verification"),
    caFile: str | None = typer.Option(None, "--ca-file", help="CA file path"),
    timeoutSeconds: float | None = typer.Option(None, "--timeout-seconds", help="REST timeout in seconds"),
    retries: int | None = typer.Option(None, "--retries", help="Retry attempts for REST calls"),
    retryBackoffSeconds: float | None = typer.Option(None, "--retry-backoff-seconds", help="Base backoff for retries"),
):
    """
    Назначение:
        Глобальная инициализация CLI:
        - генерирует/принимает run_id
        - загружает настройки (CLI > ENV > config > defaults)
        - сохраняет всё в ctx.obj для подкоманд
    """
    if restPasswordFile and not restPassword:
        p = Path(restPasswordFile)
        if not p.exists() or not p.is_file():
            typer.echo(f"ERROR: rest-password-file not found: {restPasswordFile}", err=True)
            raise typer.Exit(code=2)
        restPassword = p.read_text(encoding="utf-8").strip()

    cliOverrides = {
        "store": store,
        "local_store_path": localStore,
        "rest_url": restUrl,
        "rest_username": restUsername,
        "rest_password": restPassword,
        "tls_skip_verify": tlsSkipVerify,
        "ca_file": caFile,
        "timeout_seconds": timeoutSeconds,
        "retries": retries,
        "retry_backoff_seconds": retryBackoffSeconds,
        "log_level": logLevel,
        "log_dir": logDir,
        "report_dir": reportDir,
    }
    try:
        loaded = loadSettings(config_path=config, cli_overrides=cliOverrides)
    except ValueError as exc:
        typer.echo(f"ERROR: invalid settings: {exc}", err=True)
        raise typer.Exit(code=2)

    ctx.obj = {
        "runId": runId or generate_run_id(),
        "settings": loaded.settings,
        "sources": loaded.sources_used,
        "configPath": config,
    }


@app.command("import")
def importCommand(
    ctx: typer.Context,
    hbaseTable: str = typer.Option(..., "--hbase-table", help="Target table"),
    columnFamily: str = typer.Option(..., "--column-family", help="Default column family"),
    hbaseRowKey: str | None = typer.Option(None, "--hbase-row-key", help="Row key column(s), comma separated"),
    rowKeyIndex: int | None = typer.Option(None, "--row-key-index", help="Row key column position (0-based)"),
    createTable: bool = typer.Option(False, "--hbase-create-table/--no-hbase-create-table", help="Create missing table"),
    addRowKey: bool = typer.Option(False, "--add-row-key/--no-add-row-key", help="Also store row key column(s) as cells"),
    csv: str | None = typer.Option(None, "--csv", help="Path to source CSV"),
    csvHasHeader: bool = typer.Option(True, "--csv-has-header/--no-csv-has-header", help="CSV includes header row"),
    sourceDb: str | None = typer.Option(None, "--source-db", help="Source SQLite database"),
    sourceTable: str | None = typer.Option(None, "--source-table", help="Source table name"),
    query: str | None = typer.Option(None, "--query", help="Free-form source query"),
    columns: str | None = typer.Option(None, "--columns", help="Source columns, comma separated"),
    nullString: str | None = typer.Option(None, "--null-string", help="Token treated as NULL in CSV"),
    batchSize: int | None = typer.Option(None, "--batch-size", help="Mutations per batch"),
    flushIntervalSeconds: float | None = typer.Option(None, "--flush-interval-seconds", help="Max age of a batch"),
    workers: int | None = typer.Option(None, "--workers", help="Parallel import workers"),
    simulateStoreUnavailable: bool = typer.Option(
        False,
        "--simulate-store-unavailable",
        hidden=True,
        help="Treat the store client as unavailable",
    ),
):
    settings: Settings = ctx.obj["settings"]
    runImportCommand(
        ctx,
        jobOptions={
            "table": hbaseTable,
            "family": columnFamily,
            "row_key": hbaseRowKey,
            "row_key_index": rowKeyIndex,
            "create_table": createTable,
            "add_row_key": addRowKey,
            "batch_size": batchSize,
            "flush_interval_seconds": flushIntervalSeconds,
            "workers": workers,
        },
        sourceOptions={
            "csvPath": csv,
            "csvHasHeader": csvHasHeader,
            "sourceDb": sourceDb,
            "sourceTable": sourceTable,
            "query": query,
            "columns": columns,
            "nullString": nullString if nullString is not None else settings.null_string,
        },
        simulateStoreUnavailable=simulateStoreUnavailable,
    )


@app.command("check-store")
def checkStore(ctx: typer.Context):
    runCheckStoreCommand(ctx)


@tableApp.command("exists")
def tableExists(ctx: typer.Context, table: str = typer.Option(..., "--table", help="Table name")):
    def action(backend: StoreBackend) -> int:
        exists = backend.admin.exists(table)
        typer.echo(f"table={table} exists={str(exists).lower()}")
        return 0 if exists else 1

    runTableCommand(ctx, "table-exists", table, action)


@tableApp.command("create")
def tableCreate(
    ctx: typer.Context,
    table: str = typer.Option(..., "--table", help="Table name"),
    columnFamily: str = typer.Option(..., "--column-family", help="Column family"),
):
    def action(backend: StoreBackend) -> int:
        if backend.admin.exists(table):
            typer.echo(f"table={table} already exists")
            return 0
        backend.admin.create(table, columnFamily)
        typer.echo(f"table={table} created family={columnFamily}")
        return 0

    runTableCommand(ctx, "table-create", table, action)


@tableApp.command("scan")
def tableScan(
    ctx: typer.Context,
    table: str = typer.Option(..., "--table", help="Table name"),
    limit: int = typer.Option(20, "--limit", help="Max rows to print"),
):
    def action(backend: StoreBackend) -> int:
        if not isinstance(backend.store, SqliteTableStore):
            typer.echo("ERROR: scan is supported only for the local store", err=True)
            return 2
        if not backend.admin.exists(table):
            typer.echo(f"ERROR: table {table} does not exist", err=True)
            return 2
        for rowKey, cells in backend.store.scan_rows(limit=limit):
            rendered = " ".join(
                f"{coord}={value.decode('utf-8', errors='replace')}" for coord, value in cells.items()
            )
            typer.echo(f"{rowKey.decode('utf-8', errors='replace')} {rendered}")
        typer.echo(f"rows={backend.store.count_rows()}")
        return 0

    runTableCommand(ctx, "table-scan", table, action)


app.add_typer(tableApp, name="table")
