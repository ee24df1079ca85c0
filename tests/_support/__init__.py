"""
Test support utilities for quotesync tests.

Helpers that don't fit as pytest fixtures but are used across test modules.
"""

from __future__ import annotations

from typing import Any

from quotesync.core.events import Event
from quotesync.core.events.memory import InMemoryEventBus


def make_draft(
    reference: str = "BG 2.13",
    text: str = "As the embodied soul continuously passes...",
    *,
    tags: list[str] | None = None,
    collection: str = "Mix",
    local_id: str | None = None,
) -> dict[str, Any]:
    """Build a camelCase record draft as the presentation layer would send it."""
    statement: dict[str, Any] = {"text": text, "tags": tags or [], "keywords": []}
    if local_id:
        statement["localId"] = local_id
    return {"reference": reference, "collection": collection, "statements": [statement]}


class RecordingBus(InMemoryEventBus):
    """Event bus that also keeps every published event."""

    def __init__(self) -> None:
        super().__init__()
        self.events: list[Event] = []

    async def publish(self, event: Event) -> None:
        self.events.append(event)
        await super().publish(event)

    def types(self) -> list[str]:
        return [e.event_type for e in self.events]

    def of_type(self, event_type: str) -> list[Event]:
        return [e for e in self.events if e.event_type == event_type]
