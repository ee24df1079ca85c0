"""
Connectivity monitor.

Tracks whether the remote store is reachable as explicit state owned by one
object, instead of a process-wide flag. Transitions are debounced: events are
published and reconciliation is scheduled only when the state actually flips.

    ┌────────┐   probe fails / mark_offline()   ┌─────────┐
    │ ONLINE │ ───────────────────────────────▶ │ OFFLINE │
    │        │ ◀─────────────────────────────── │         │
    └────────┘   probe ok / mark_online()       └─────────┘
                 (publishes connection.restored,
                  schedules reconciliation)

The initial state is ONLINE: the first real request or probe corrects it.
"""

from __future__ import annotations

import asyncio
import contextlib
from enum import Enum
from typing import TYPE_CHECKING

from quotesync.core.events import CONNECTION_LOST, CONNECTION_RESTORED, Event, EventBus
from quotesync.core.logging import get_logger
from quotesync.sync.gateway import RemoteGateway
from quotesync.sync.reconcile import SyncResult

if TYPE_CHECKING:
    from quotesync.sync.reconcile import ReconciliationEngine

logger = get_logger(__name__)

RESTORED_MESSAGE = "Connection restored!"
LOST_MESSAGE = "Connection lost. Operating in offline mode."


class ConnectionState(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"


class ConnectivityMonitor:
    """Owns the ONLINE/OFFLINE state and the background probe loop."""

    def __init__(
        self,
        gateway: RemoteGateway,
        *,
        bus: EventBus | None = None,
        poll_interval: float = 30.0,
    ) -> None:
        self._gateway = gateway
        self._bus = bus
        self.poll_interval = poll_interval
        self.state = ConnectionState.ONLINE
        self._engine: ReconciliationEngine | None = None
        self._task: asyncio.Task[None] | None = None

    def attach(self, engine: ReconciliationEngine) -> None:
        """Connect the engine that runs when connectivity is restored."""
        self._engine = engine

    @property
    def is_online(self) -> bool:
        return self.state is ConnectionState.ONLINE

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def check(self) -> ConnectionState:
        """Probe the remote once and apply the resulting transition."""
        result = await self._gateway.probe()
        if result.is_ok():
            await self.mark_online()
        else:
            await self.mark_offline(reason=str(result.error))
        return self.state

    async def mark_offline(self, reason: str = "") -> bool:
        """Record that the remote is unreachable. Returns True if the state flipped."""
        if self.state is ConnectionState.OFFLINE:
            return False
        self.state = ConnectionState.OFFLINE
        logger.warning("connection_lost", reason=reason)
        await self._publish(CONNECTION_LOST, LOST_MESSAGE)
        return True

    async def mark_online(self) -> bool:
        """Record that the remote answered. Returns True if the state flipped."""
        if self.state is ConnectionState.ONLINE:
            return False
        self.state = ConnectionState.ONLINE
        logger.info("connection_restored")
        await self._publish(CONNECTION_RESTORED, RESTORED_MESSAGE)
        if self._engine is not None:
            self._engine.schedule()
        return True

    async def trigger_sync(self) -> SyncResult:
        """Manual reconciliation; refused while offline."""
        if not self.is_online or self._engine is None:
            logger.info("manual_sync_refused", state=self.state.value)
            return SyncResult.refused("offline")
        return await self._engine.reconcile()

    # ── Polling ──────────────────────────────────────────────────

    async def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._poll_loop(), name="quotesync-monitor")
        logger.debug("monitor_started", interval=self.poll_interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.debug("monitor_stopped")

    async def _poll_loop(self) -> None:
        while True:
            try:
                await self.check()
            except Exception as e:
                logger.error("connectivity_check_failed", error=str(e), exc_info=True)
            await asyncio.sleep(self.poll_interval)

    async def _publish(self, event_type: str, message: str) -> None:
        if self._bus is None:
            return
        await self._bus.publish(
            Event(event_type=event_type, source="monitor", payload={"message": message})
        )


__all__ = ["ConnectionState", "ConnectivityMonitor", "LOST_MESSAGE", "RESTORED_MESSAGE"]
