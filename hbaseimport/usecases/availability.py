from __future__ import annotations

from dataclasses import dataclass

from hbaseimport.domain.ports.store import StoreClientProtocol


@dataclass(frozen=True)
class ProbeAvailability:
    """
    Назначение:
        Политика по умолчанию: спрашивает клиент хранилища через is_available().
    """

    reason: str = "store client did not respond to availability probe"

    def check(self, store: StoreClientProtocol) -> bool:
        return bool(store.is_available())


@dataclass(frozen=True)
class ForcedUnavailable:
    """
    Назначение:
        Политика, всегда сообщающая о недоступности клиента: клиент не сконфигурирован
        или режим «без хранилища» включён явно (например, в тестах).
    """

    reason: str = "store client is disabled by configuration"

    def check(self, store: StoreClientProtocol) -> bool:
        _ = store
        return False
