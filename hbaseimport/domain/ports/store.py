from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Sequence

from hbaseimport.domain.models import MutationSpec


@dataclass(frozen=True)
class WriteAck:
    """
    Назначение:
        Подтверждение успешной записи пакета хранилищем.
    """

    mutations: int
    cells: int


class StoreClientProtocol(Protocol):
    """
    Назначение/ответственность:
        Порт записи мутаций в целевую таблицу.
    Взаимодействия:
        Используется MutationWriter; реализация привязана к одной таблице.
    Ограничения:
        Синхронное выполнение, один пакет за вызов. Порядок мутаций внутри пакета
        сохраняется при применении.
    """

    def write_batch(self, mutations: Sequence[MutationSpec]) -> WriteAck:
        """
        Контракт (вход/выход):
            - Вход: непустая последовательность мутаций.
            - Выход: WriteAck.
        Ошибки/исключения:
            StoreError при любом сбое записи; пакет считается неуспешным целиком.
        """
        ...

    def is_available(self) -> bool:
        """Проверка доступности клиента хранилища без побочных эффектов."""
        ...


class TableAdminProtocol(Protocol):
    """
    Назначение/ответственность:
        Администрирование таблиц в объёме, нужном импорту: проверка и создание.
    """

    def exists(self, table: str) -> bool:
        """
        Ошибки/исключения:
            AdminError, если проверку выполнить не удалось.
        """
        ...

    def create(self, table: str, column_family: str) -> None:
        """
        Ошибки/исключения:
            AdminError при сбое создания.
        """
        ...


class AvailabilityPolicy(Protocol):
    """
    Назначение/ответственность:
        Явная стратегия проверки доступности клиента хранилища, передаваемая
        в ImportCoordinator вместо глобальных флагов процесса.
    """

    def check(self, store: StoreClientProtocol) -> bool: ...
