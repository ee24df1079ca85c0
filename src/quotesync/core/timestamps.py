"""
Identifier and timestamp utilities (stdlib-only).

Temporary identifiers for records created while offline are built from a
time-sortable ULID so pending creates keep their creation order when listed.

Features:
    - **generate_ulid():** Time-sortable, 26-char, Crockford base32
    - **temporary_id():** ``temp_<ULID>`` placeholder ids
    - **is_temporary_id():** Distinguish placeholder ids from remote ids
    - **utc_now():** Timezone-aware UTC datetime

Tags:
    timestamps, ulid, utc, temporary-id, quotesync, stdlib-only
"""

import random
import time
from datetime import UTC, datetime

DEFAULT_TEMP_PREFIX = "temp_"

# ULID base32 alphabet (Crockford's)
_ENCODING = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
_ENCODING_LEN = len(_ENCODING)


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(UTC)


def generate_ulid() -> str:
    """
    Generate a ULID-like identifier.

    Format: 26 characters, base32 encoded, time-sortable.
    """
    # Time component: milliseconds since epoch (48 bits -> 10 chars)
    timestamp_ms = int(time.time() * 1000)
    timestamp_chars = _encode_base32(timestamp_ms, 10)

    # Random component (80 bits -> 16 chars)
    random_part = "".join(random.choices(_ENCODING, k=16))

    return timestamp_chars + random_part


def temporary_id(prefix: str = DEFAULT_TEMP_PREFIX) -> str:
    """Allocate a temporary identifier for a record not yet known remotely."""
    return f"{prefix}{generate_ulid()}"


def is_temporary_id(value: str | None, prefix: str = DEFAULT_TEMP_PREFIX) -> bool:
    """True if *value* lives in the temporary identifier namespace."""
    return bool(value) and value.startswith(prefix)


def _encode_base32(value: int, length: int) -> str:
    """Encode integer to base32 string of fixed length."""
    result = []
    for _ in range(length):
        result.append(_ENCODING[value % _ENCODING_LEN])
        value //= _ENCODING_LEN
    return "".join(reversed(result))
