from __future__ import annotations

import time
from typing import Any

import httpx

from hbaseimport.errors import AppError


class ApiError(AppError):
    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        body_snippet: str | None = None,
        retryable: bool = False,
        details: dict | None = None,
        code: str | None = None,
    ):
        """
        Назначение:
            Исключение транспортного уровня HBaseRestClient.
        Контракт:
            - code: HTTP_<status>, NETWORK_ERROR и т.п.
            - status_code/body_snippet используются для диагностики.
        """
        super().__init__(
            category="api",
            code=code or (f"HTTP_{status_code}" if status_code else "API_ERROR"),
            message=message,
            retryable=retryable,
            details=details or {},
        )
        self.status_code = status_code
        self.body_snippet = body_snippet


class HBaseRestClient:
    """
    Назначение/ответственность:
        HTTP-клиент REST-шлюза HBase (Stargate) с простой политикой ретраев.
    Инварианты/гарантии:
        - 429/5xx и сетевые ошибки повторяются до retries раз с экспоненциальной задержкой.
        - Остальные статусы возвращаются вызывающему без исключения.
    Взаимодействия:
        Используется HBaseTableStore/HBaseTableAdmin; разделяется между воркерами
        (httpx.Client потокобезопасен).
    """

    def __init__(
        self,
        baseUrl: str,
        username: str | None = None,
        password: str | None = None,
        timeoutSeconds: float = 20.0,
        tlsSkipVerify: bool = False,
        caFile: str | None = None,
        retries: int = 3,
        retryBackoffSeconds: float = 0.5,
        transport: httpx.BaseTransport | None = None,
    ):
        verify: bool | str = True
        if tlsSkipVerify:
            verify = False
        elif caFile:
            verify = caFile

        auth = httpx.BasicAuth(username, password or "") if username else None

        self.baseUrl = baseUrl.rstrip("/")
        self.retries = retries
        self.retryBackoffSeconds = retryBackoffSeconds
        self.retry_attempts = 0

        self.client = httpx.Client(
            base_url=self.baseUrl,
            timeout=timeoutSeconds,
            verify=verify,
            auth=auth,
            transport=transport,
            headers={"accept": "application/json"},
        )

    def close(self) -> None:
        self.client.close()

    def getRetryAttempts(self) -> int:
        """Возвращает количество выполненных повторных попыток."""
        return self.retry_attempts

    def _should_retry(self, resp: httpx.Response) -> bool:
        return resp.status_code == 429 or 500 <= resp.status_code <= 599

    def _sleep_backoff(self, attempt: int) -> None:
        time.sleep(self.retryBackoffSeconds * (2 ** attempt))

    def request(
        self,
        method: str,
        path: str,
        json: Any | None = None,
        params: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> tuple[int, Any | None, str | None]:
        """
        Выполняет запрос без проверки ожидаемых статусов.

        Возвращает кортеж: (status_code, response_json_or_text, body_snippet).
        Бросает ApiError(code=NETWORK_ERROR), если сеть недоступна после всех попыток.
        """
        attempt = 0
        kwargs: dict[str, Any] = {"params": params or {}, "json": json}
        if timeout is not None:
            kwargs["timeout"] = timeout
        while True:
            try:
                resp = self.client.request(method, path, **kwargs)
            except (httpx.TimeoutException, httpx.TransportError) as exc:
                if attempt >= self.retries:
                    raise ApiError(
                        f"Network error: {exc}", status_code=None, retryable=True, code="NETWORK_ERROR"
                    ) from exc
                self.retry_attempts += 1
                self._sleep_backoff(attempt)
                attempt += 1
                continue

            if self._should_retry(resp) and attempt < self.retries:
                self.retry_attempts += 1
                self._sleep_backoff(attempt)
                attempt += 1
                continue

            body_snippet = resp.text[:200] if resp.text else None
            if resp.text:
                try:
                    return resp.status_code, resp.json(), body_snippet
                except ValueError:
                    return resp.status_code, resp.text, body_snippet
            return resp.status_code, None, body_snippet
