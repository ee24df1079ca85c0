"""
Client wiring.

Builds the component graph from settings::

    settings ─┬─▶ LocalStore(SqliteBackend | MemoryBackend)
              ├─▶ RemoteGateway(store, transport)
              ├─▶ ConnectivityMonitor(gateway)
              ├─▶ ReconciliationEngine(store, gateway, monitor)
              └─▶ RecordOperations(store, gateway, monitor, engine)

Usage::

    async with build_client() as client:
        client.set_credential(token)
        result = await client.records.fetch_all()
"""

from __future__ import annotations

from typing import Any

import httpx

from quotesync.core.events import EventBus
from quotesync.core.events.memory import InMemoryEventBus
from quotesync.core.logging import get_logger
from quotesync.core.settings import QuoteSyncSettings, get_settings
from quotesync.sync.gateway import RemoteGateway
from quotesync.sync.monitor import ConnectivityMonitor
from quotesync.sync.reconcile import ReconciliationEngine, SyncResult
from quotesync.sync.records import RecordOperations
from quotesync.sync.store import LocalStore, SqliteBackend, StorageBackend

logger = get_logger(__name__)


class QuoteSyncClient:
    """Owns every sync component and their lifecycles."""

    def __init__(
        self,
        settings: QuoteSyncSettings,
        store: LocalStore,
        gateway: RemoteGateway,
        monitor: ConnectivityMonitor,
        engine: ReconciliationEngine,
        records: RecordOperations,
        bus: EventBus,
    ) -> None:
        self.settings = settings
        self.store = store
        self.gateway = gateway
        self.monitor = monitor
        self.engine = engine
        self.records = records
        self.bus = bus

    async def __aenter__(self) -> QuoteSyncClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()

    async def start(self) -> None:
        """Begin background connectivity polling."""
        await self.monitor.start()

    async def aclose(self) -> None:
        await self.monitor.stop()
        await self.gateway.aclose()
        await self.bus.close()
        self.store.close()

    def set_credential(self, token: str) -> None:
        self.store.set_credential(token)

    def clear_credential(self) -> None:
        self.store.clear_credential()

    async def sync(self) -> SyncResult:
        return await self.monitor.trigger_sync()

    def status(self) -> dict[str, Any]:
        return {
            "state": self.monitor.state.value,
            "signed_in": self.store.credential() is not None,
            "pending": self.store.pending_counts(),
            "recently_deleted": len(self.store.deleted_ring()),
            "remote": self.settings.api_url,
        }


def build_client(
    settings: QuoteSyncSettings | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
    backend: StorageBackend | None = None,
    bus: EventBus | None = None,
) -> QuoteSyncClient:
    """Assemble a :class:`QuoteSyncClient`.

    Args:
        settings: Defaults to :func:`get_settings`
        transport: httpx transport override (tests, proxies)
        backend: Storage backend; defaults to SQLite at ``settings.resolved_store_path``
        bus: Event bus; defaults to a fresh :class:`InMemoryEventBus`
    """
    settings = settings or get_settings()
    bus = bus or InMemoryEventBus()
    backend = backend or SqliteBackend(settings.resolved_store_path)

    store = LocalStore(backend, deleted_capacity=settings.deleted_history_capacity)
    gateway = RemoteGateway(settings, store, transport=transport, bus=bus)
    monitor = ConnectivityMonitor(gateway, bus=bus, poll_interval=settings.poll_interval)
    engine = ReconciliationEngine(
        store, gateway, monitor, bus=bus, temp_prefix=settings.temp_id_prefix
    )
    monitor.attach(engine)
    records = RecordOperations(
        store, gateway, monitor, engine, bus=bus, temp_prefix=settings.temp_id_prefix
    )
    logger.debug("client_built", remote=settings.api_url, backend=repr(backend))
    return QuoteSyncClient(settings, store, gateway, monitor, engine, records, bus)


__all__ = ["QuoteSyncClient", "build_client"]
