from __future__ import annotations

import base64
from typing import Any, Sequence
from urllib.parse import quote

from hbaseimport.common.sanitize import truncateText
from hbaseimport.domain.error_codes import ErrorCode
from hbaseimport.domain.exceptions import AdminError, StoreError
from hbaseimport.domain.models import MutationSpec
from hbaseimport.domain.ports.store import StoreClientProtocol, TableAdminProtocol, WriteAck
from hbaseimport.infra.http.rest_client import ApiError, HBaseRestClient

# REST-шлюз принимает пакет строк через PUT на произвольный ключ строки;
# реальные ключи берутся из тела CellSet.
FAKE_ROW = "false-row-key"


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def build_cellset(mutations: Sequence[MutationSpec]) -> dict[str, Any]:
    """
    Назначение:
        Собирает JSON CellSet для multi-row PUT: ключи, колонки "family:qualifier"
        и значения кодируются base64.
    """
    return {
        "Row": [
            {
                "key": _b64(mutation.row_key),
                "Cell": [
                    {
                        "column": _b64(f"{cell.family}:{cell.qualifier}".encode("utf-8")),
                        "$": _b64(cell.value),
                    }
                    for cell in mutation.cells
                ],
            }
            for mutation in mutations
        ]
    }


def _table_path(table: str, *parts: str) -> str:
    return "/" + "/".join([quote(table, safe=""), *parts])


class HBaseTableStore(StoreClientProtocol):
    """
    Назначение/ответственность:
        Адаптер StoreClientProtocol поверх REST-шлюза HBase для одной таблицы.
    Ограничения:
        - Один PUT на пакет; ретраи 429/5xx выполняет HBaseRestClient.
        - Ошибки нормализуются в StoreError.
    """

    def __init__(self, client: HBaseRestClient, table: str):
        self.client = client
        self.table = table

    def write_batch(self, mutations: Sequence[MutationSpec]) -> WriteAck:
        if not mutations:
            return WriteAck(mutations=0, cells=0)
        try:
            status, _body, snippet = self.client.request(
                "PUT",
                _table_path(self.table, FAKE_ROW),
                json=build_cellset(mutations),
            )
        except ApiError as exc:
            raise StoreError(
                f"PUT {self.table} failed: {exc.message}",
                code=ErrorCode.NETWORK_ERROR.value if exc.code == "NETWORK_ERROR" else ErrorCode.HTTP_ERROR.value,
                retryable=exc.retryable,
                details={"status_code": exc.status_code},
            ) from exc

        if status not in (200, 201):
            raise StoreError(
                f"PUT {self.table} returned HTTP {status}",
                code=ErrorCode.from_status(status).value,
                retryable=status >= 500,
                details={"status_code": status, "body_snippet": truncateText(snippet)},
            )
        return WriteAck(mutations=len(mutations), cells=sum(len(m.cells) for m in mutations))

    def is_available(self) -> bool:
        try:
            status, _body, _snippet = self.client.request("GET", "/version/cluster")
        except ApiError:
            return False
        return status == 200


class HBaseTableAdmin(TableAdminProtocol):
    """
    Назначение/ответственность:
        Проверка существования и создание таблицы через /{table}/schema.
    """

    def __init__(self, client: HBaseRestClient):
        self.client = client

    def exists(self, table: str) -> bool:
        status, _body, snippet = self._call("GET", table, "exists")
        if status == 200:
            return True
        if status == 404:
            return False
        raise AdminError(
            f"Table check for '{table}' returned HTTP {status}",
            table=table,
            operation="exists",
            details={"status_code": status, "body_snippet": truncateText(snippet)},
        )

    def create(self, table: str, column_family: str) -> None:
        schema = {"name": table, "ColumnSchema": [{"name": column_family}]}
        status, _body, snippet = self._call("PUT", table, "create", json=schema)
        if status not in (200, 201):
            raise AdminError(
                f"Create table '{table}' returned HTTP {status}",
                table=table,
                operation="create",
                details={"status_code": status, "body_snippet": truncateText(snippet)},
            )

    def _call(self, method: str, table: str, operation: str, json: Any | None = None):
        try:
            return self.client.request(method, _table_path(table, "schema"), json=json)
        except ApiError as exc:
            raise AdminError(
                f"Table {operation} for '{table}' failed: {exc.message}",
                table=table,
                operation=operation,
            ) from exc
