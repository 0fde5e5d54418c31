from __future__ import annotations

import itertools
import logging
import time
from dataclasses import dataclass
from typing import Callable, Iterator

from hbaseimport.domain.error_codes import ErrorCode
from hbaseimport.domain.exceptions import StoreError, WriteError
from hbaseimport.domain.models import MutationSpec
from hbaseimport.domain.ports.store import StoreClientProtocol
from hbaseimport.infra.logging.setup import logEvent


@dataclass(frozen=True)
class WriteResult:
    """
    Назначение:
        Итог сброса одного пакета мутаций.
    Инварианты/гарантии:
        - ok=False <=> error задан; ошибка относится ко всем mutations пакета.
    """

    ok: bool
    batch_no: int
    mutations: int
    cells: int
    error: WriteError | None = None
    duration_ms: int | None = None


class MutationWriter:
    """
    Назначение/ответственность:
        Буферизует мутации и сбрасывает их пакетами в клиент хранилища.
    Инварианты/гарантии:
        - Пакет сбрасывается при достижении batch_size или по истечении
          flush_interval_seconds с момента первой буферизованной мутации.
        - Мутации пакета передаются клиенту в порядке submit.
        - Сбой сброса помечает неуспешными все мутации пакета одной WriteError,
          частичного успеха пакета не бывает.
        - Повторов не делает: решение о retry/abort принимает вызывающий.
    Ограничения:
        Не потокобезопасен; каждый воркер владеет своим экземпляром.
    """

    def __init__(
        self,
        store: StoreClientProtocol,
        *,
        batch_size: int = 100,
        flush_interval_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
        batch_numbers: Iterator[int] | None = None,
        logger: logging.Logger | None = None,
        run_id: str | None = None,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.store = store
        self.batch_size = batch_size
        self.flush_interval_seconds = flush_interval_seconds
        self.clock = clock
        self.batch_numbers = batch_numbers if batch_numbers is not None else itertools.count(1)
        self.logger = logger
        self.run_id = run_id or ""

        self._buffer: list[MutationSpec] = []
        self._buffer_started: float | None = None

        self.batches_ok = 0
        self.batches_failed = 0
        self.mutations_written = 0
        self.cells_written = 0

    @property
    def pending(self) -> int:
        return len(self._buffer)

    def submit(self, mutation: MutationSpec) -> WriteResult | None:
        """
        Контракт (вход/выход):
            - Вход: MutationSpec.
            - Выход: WriteResult, если submit вызвал сброс пакета; None, если мутация
              только буферизована.
        """
        if not self._buffer:
            self._buffer_started = self.clock()
        self._buffer.append(mutation)
        if len(self._buffer) >= self.batch_size or self._interval_elapsed():
            return self.flush()
        return None

    def flush(self) -> WriteResult | None:
        if not self._buffer:
            return None
        batch = list(self._buffer)
        self._buffer.clear()
        self._buffer_started = None

        batch_no = next(self.batch_numbers)
        cells = sum(len(m.cells) for m in batch)
        start = time.perf_counter()
        try:
            self.store.write_batch(batch)
        except StoreError as exc:
            return self._failed(batch_no, batch, cells, start, str(exc), exc.code, exc.retryable)
        except Exception as exc:  # noqa: BLE001
            return self._failed(batch_no, batch, cells, start, str(exc), ErrorCode.UNEXPECTED_ERROR.value, False)

        duration_ms = int((time.perf_counter() - start) * 1000)
        self.batches_ok += 1
        self.mutations_written += len(batch)
        self.cells_written += cells
        self._log(
            logging.DEBUG,
            f"Batch {batch_no} flushed mutations={len(batch)} cells={cells} duration_ms={duration_ms}",
        )
        return WriteResult(
            ok=True,
            batch_no=batch_no,
            mutations=len(batch),
            cells=cells,
            duration_ms=duration_ms,
        )

    def close(self) -> WriteResult | None:
        """Сбрасывает остаток буфера."""
        return self.flush()

    def discard(self) -> int:
        """
        Назначение:
            Отбрасывает несброшенный буфер при кооперативной отмене.
            Возвращает число отброшенных мутаций.
        """
        dropped = len(self._buffer)
        self._buffer.clear()
        self._buffer_started = None
        return dropped

    def _interval_elapsed(self) -> bool:
        if self.flush_interval_seconds is None or self._buffer_started is None:
            return False
        return self.clock() - self._buffer_started >= self.flush_interval_seconds

    def _failed(
        self,
        batch_no: int,
        batch: list[MutationSpec],
        cells: int,
        start: float,
        message: str,
        cause_code: str,
        retryable: bool,
    ) -> WriteResult:
        self.batches_failed += 1
        error = WriteError(
            f"Batch {batch_no} failed ({len(batch)} mutations): {message}",
            batch_no=batch_no,
            mutations=len(batch),
            cause_code=cause_code,
            retryable=retryable,
        )
        self._log(logging.ERROR, str(error))
        return WriteResult(
            ok=False,
            batch_no=batch_no,
            mutations=len(batch),
            cells=cells,
            error=error,
            duration_ms=int((time.perf_counter() - start) * 1000),
        )

    def _log(self, level: int, message: str) -> None:
        if self.logger is not None:
            logEvent(self.logger, level, self.run_id, "writer", message)
