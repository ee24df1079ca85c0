"""Tests for quotesync.core.timestamps - ULIDs, temporary ids and UTC helpers."""

from __future__ import annotations

import time
from datetime import UTC

from quotesync.core.timestamps import (
    DEFAULT_TEMP_PREFIX,
    generate_ulid,
    is_temporary_id,
    temporary_id,
    utc_now,
)


class TestUtcNow:
    def test_has_utc_timezone(self):
        assert utc_now().tzinfo is UTC


class TestGenerateUlid:
    def test_shape(self):
        result = generate_ulid()
        assert len(result) == 26
        assert set(result) <= set("0123456789ABCDEFGHJKMNPQRSTVWXYZ")

    def test_time_sortable(self):
        first = generate_ulid()
        time.sleep(0.002)
        second = generate_ulid()
        assert first[:10] <= second[:10]


class TestTemporaryId:
    def test_default_prefix(self):
        value = temporary_id()
        assert value.startswith(DEFAULT_TEMP_PREFIX)
        assert is_temporary_id(value)

    def test_unique(self):
        assert len({temporary_id() for _ in range(100)}) == 100

    def test_custom_prefix(self):
        value = temporary_id("local-")
        assert is_temporary_id(value, "local-")
        assert not is_temporary_id(value)

    def test_remote_ids_are_not_temporary(self):
        assert not is_temporary_id("65f1c2a9e4b0a1b2c3d4e5f6")
        assert not is_temporary_id(None)
        assert not is_temporary_id("")
