"""Notification events for the presentation layer.

Why This Package Exists
-----------------------
The sync engine must tell the user what is happening ("operating offline",
"queued, will sync", "connection restored", "sync completed") without
blocking and without knowing anything about the UI. Components publish
:class:`Event` objects on an :class:`EventBus`; the presentation layer
subscribes to the patterns it cares about.

The bus is injected into each component (no module-level singleton), so two
clients in one process never see each other's notifications.

Usage::

    from quotesync.core.events import Event
    from quotesync.core.events.memory import InMemoryEventBus

    bus = InMemoryEventBus()

    async def toast(event: Event):
        print(event.payload["message"])

    await bus.subscribe("connection.*", toast)

Event types
-----------
connection.lost       monitor flipped to offline
connection.restored   monitor flipped to online
records.offline       fetch served stale local data
record.queued         a mutation was recorded locally for later sync
sync.completed        reconciliation run finished without item errors
sync.failed           reconciliation run aborted or had item errors
auth.expired          the stored credential was rejected and cleared
"""

from __future__ import annotations

import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from quotesync.core.timestamps import utc_now

__all__ = [
    "Event",
    "EventBus",
    "EventHandler",
    "CONNECTION_LOST",
    "CONNECTION_RESTORED",
    "RECORDS_OFFLINE",
    "RECORD_QUEUED",
    "SYNC_COMPLETED",
    "SYNC_FAILED",
    "AUTH_EXPIRED",
]

CONNECTION_LOST = "connection.lost"
CONNECTION_RESTORED = "connection.restored"
RECORDS_OFFLINE = "records.offline"
RECORD_QUEUED = "record.queued"
SYNC_COMPLETED = "sync.completed"
SYNC_FAILED = "sync.failed"
AUTH_EXPIRED = "auth.expired"


@dataclass
class Event:
    """Notification payload.

    Attributes:
        event_type: Dot-separated type (e.g., ``connection.lost``)
        source: Origin component
        payload: Event-specific data
        timestamp: When the event occurred (UTC)
        correlation_id: Optional ID linking related events (e.g. a sync run)
        event_id: Unique event identifier
    """

    event_type: str
    source: str
    payload: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utc_now)
    correlation_id: str | None = None
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def matches(self, pattern: str) -> bool:
        """Check if event type matches a pattern (supports wildcards).

        Examples:
            - ``sync.*`` matches ``sync.completed``, ``sync.failed``
            - ``*`` matches everything
            - ``record.queued`` matches exactly ``record.queued``
        """
        if pattern == "*":
            return True
        if pattern.endswith(".*"):
            prefix = pattern[:-2]
            return self.event_type.startswith(prefix + ".")
        return self.event_type == pattern


EventHandler = Callable[[Event], Awaitable[None]]


@runtime_checkable
class EventBus(Protocol):
    """Protocol for event bus implementations."""

    async def publish(self, event: Event) -> None:
        """Publish an event to all matching subscribers."""
        ...

    async def subscribe(self, event_type: str, handler: EventHandler) -> str:
        """Subscribe to events matching a pattern; returns a subscription id."""
        ...

    async def unsubscribe(self, subscription_id: str) -> None:
        """Remove a subscription."""
        ...

    async def close(self) -> None:
        """Clean up resources."""
        ...
