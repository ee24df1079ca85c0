"""
Shared pytest fixtures and configuration for quotesync tests.

This module provides:
- An in-process fake remote store and a transport that can go "offline"
- Settings with zero retry delay and a per-test data directory
- Fully wired clients on an in-memory backend
- Logging / settings cache cleanup between tests

Usage:
    async tests take the fixtures as arguments::

        @pytest.mark.asyncio
        async def test_something(client, transport, remote):
            transport.online = False
            ...
"""

from __future__ import annotations

from collections.abc import Generator
from pathlib import Path

import pytest
import structlog

from quotesync.client import QuoteSyncClient, build_client
from quotesync.core.logging import clear_context
from quotesync.core.settings import QuoteSyncSettings, clear_settings_cache
from quotesync.sync.store import LocalStore, MemoryBackend
from tests._support import RecordingBus
from tests._support.remote import FakeRemote, SwitchableTransport


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests based on their location."""
    for item in items:
        test_path = Path(item.fspath).relative_to(Path(__file__).parent)
        if "integration" in str(test_path) or "scenario" in str(test_path):
            item.add_marker(pytest.mark.integration)
        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Cleanup
# =============================================================================


@pytest.fixture(autouse=True)
def reset_global_state() -> Generator[None, None, None]:
    """Reset structlog configuration, bound context and the settings cache."""
    yield
    structlog.reset_defaults()
    clear_context()
    clear_settings_cache()


# =============================================================================
# Remote store
# =============================================================================


@pytest.fixture
def remote() -> FakeRemote:
    return FakeRemote()


@pytest.fixture
def transport(remote: FakeRemote) -> SwitchableTransport:
    return SwitchableTransport(remote.app)


# =============================================================================
# Client
# =============================================================================


@pytest.fixture
def settings(tmp_path: Path) -> QuoteSyncSettings:
    return QuoteSyncSettings(
        base_url="http://remote.test",
        retry_delay=0.0,
        poll_interval=0.01,
        data_dir=tmp_path,
    )


@pytest.fixture
def backend() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture
def bus() -> RecordingBus:
    return RecordingBus()


@pytest.fixture
def client(
    settings: QuoteSyncSettings,
    transport: SwitchableTransport,
    backend: MemoryBackend,
    bus: RecordingBus,
    remote: FakeRemote,
) -> QuoteSyncClient:
    """Signed-in client talking to the fake remote."""
    client = build_client(settings, transport=transport, backend=backend, bus=bus)
    client.set_credential(remote.token)
    return client


@pytest.fixture
def store(client: QuoteSyncClient) -> LocalStore:
    return client.store
