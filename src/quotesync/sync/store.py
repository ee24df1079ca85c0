"""
Durable local store.

Holds the last remote snapshot, the three pending-mutation queues, the
recently-deleted ring and the bearer credential. Everything is a JSON document
under a fixed key in a key-value backend; every write is committed
immediately so a crash never loses an acknowledged mutation.

Keys::

    snapshot-of-records     list[Record]
    pending-creates         list[PendingCreate]
    pending-updates         list[PendingUpdate]   (one entry per target)
    pending-deletes         list[PendingDelete]   (one entry per target)
    recently-deleted-ring   list[DeletedEntry]    (newest first, bounded)
    auth-credential         str | null

Usage::

    from quotesync.sync.store import LocalStore, SqliteBackend

    store = LocalStore(SqliteBackend("~/.quotesync/store.db"))
    store.save_snapshot(records)
    store.pending_counts()   # {'creates': 0, 'updates': 0, 'deletes': 0}
"""

from __future__ import annotations

import copy
import json
import sqlite3
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol, TypeVar

import pydantic

from quotesync.core.errors import StorageError
from quotesync.core.logging import get_logger
from quotesync.core.models import (
    DeletedEntry,
    PendingCreate,
    PendingDelete,
    PendingUpdate,
    Record,
    WireModel,
    merge_patches,
)

logger = get_logger(__name__)

M = TypeVar("M", bound=WireModel)

SNAPSHOT_KEY = "snapshot-of-records"
PENDING_CREATES_KEY = "pending-creates"
PENDING_UPDATES_KEY = "pending-updates"
PENDING_DELETES_KEY = "pending-deletes"
DELETED_RING_KEY = "recently-deleted-ring"
CREDENTIAL_KEY = "auth-credential"

_SCHEMA = """
CREATE TABLE IF NOT EXISTS kv_store (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
)
"""


class StorageBackend(Protocol):
    """Raw string key-value persistence."""

    def read(self, key: str) -> str | None: ...

    def write(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...

    def close(self) -> None: ...


class SqliteBackend:
    """File-backed key-value table on ``sqlite3``.

    One row per key; each write is its own committed transaction.
    """

    def __init__(self, path: str | Path = ":memory:") -> None:
        self.path = str(path)
        if self.path != ":memory:":
            Path(self.path).expanduser().parent.mkdir(parents=True, exist_ok=True)
            self.path = str(Path(self.path).expanduser())
        try:
            self._conn = sqlite3.connect(self.path, check_same_thread=False)
            self._conn.execute(_SCHEMA)
            self._conn.commit()
        except sqlite3.Error as e:
            raise StorageError(f"Cannot open local store at {self.path}", cause=e) from e

    def read(self, key: str) -> str | None:
        try:
            row = self._conn.execute(
                "SELECT value FROM kv_store WHERE key = ?", (key,)
            ).fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Cannot read {key!r}", cause=e) from e
        return row[0] if row else None

    def write(self, key: str, value: str) -> None:
        try:
            self._conn.execute(
                "INSERT INTO kv_store (key, value) VALUES (?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                (key, value),
            )
            self._conn.commit()
        except sqlite3.Error as e:
            self._conn.rollback()
            raise StorageError(f"Cannot write {key!r}", cause=e) from e

    def delete(self, key: str) -> None:
        try:
            self._conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
            self._conn.commit()
        except sqlite3.Error as e:
            self._conn.rollback()
            raise StorageError(f"Cannot delete {key!r}", cause=e) from e

    def close(self) -> None:
        self._conn.close()

    def __repr__(self) -> str:
        return f"SqliteBackend({self.path!r})"


class MemoryBackend:
    """Process-local backend for tests and ephemeral clients."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self.data: dict[str, str] = dict(initial or {})

    def read(self, key: str) -> str | None:
        return self.data.get(key)

    def write(self, key: str, value: str) -> None:
        self.data[key] = value

    def delete(self, key: str) -> None:
        self.data.pop(key, None)

    def close(self) -> None:
        pass


class LocalStore:
    """Typed access to the local collections with a write-through cache.

    ``get``/``set`` work on raw JSON values; the typed helpers below parse
    them into models. A key that was never written reads as ``[]``.
    """

    def __init__(self, backend: StorageBackend, *, deleted_capacity: int = 10) -> None:
        self._backend = backend
        self._cache: dict[str, Any] = {}
        self.deleted_capacity = deleted_capacity

    # ── Raw access ───────────────────────────────────────────────

    def get(self, key: str, default: Any = None) -> Any:
        if key not in self._cache:
            raw = self._backend.read(key)
            if raw is None:
                return [] if default is None else copy.deepcopy(default)
            try:
                self._cache[key] = json.loads(raw)
            except json.JSONDecodeError as e:
                raise StorageError(f"Corrupt local data under {key!r}", cause=e).with_context(
                    operation="read"
                ) from e
        return copy.deepcopy(self._cache[key])

    def set(self, key: str, value: Any) -> None:
        raw = json.dumps(value, ensure_ascii=False)
        self._backend.write(key, raw)
        self._cache[key] = copy.deepcopy(value)

    def close(self) -> None:
        self._cache.clear()
        self._backend.close()

    def _load(self, key: str, model: type[M]) -> list[M]:
        try:
            return [model.model_validate(item) for item in self.get(key)]
        except pydantic.ValidationError as e:
            raise StorageError(f"Invalid local data under {key!r}", cause=e) from e

    def _save(self, key: str, items: Iterable[WireModel]) -> None:
        self.set(key, [item.to_wire() for item in items])

    # ── Snapshot ─────────────────────────────────────────────────

    def snapshot(self) -> list[Record]:
        return self._load(SNAPSHOT_KEY, Record)

    def save_snapshot(self, records: Iterable[Record]) -> None:
        self._save(SNAPSHOT_KEY, records)

    # ── Pending queues ───────────────────────────────────────────

    def pending_creates(self) -> list[PendingCreate]:
        return self._load(PENDING_CREATES_KEY, PendingCreate)

    def save_pending_creates(self, items: Iterable[PendingCreate]) -> None:
        self._save(PENDING_CREATES_KEY, items)

    def pending_updates(self) -> list[PendingUpdate]:
        return self._load(PENDING_UPDATES_KEY, PendingUpdate)

    def save_pending_updates(self, items: Iterable[PendingUpdate]) -> None:
        self._save(PENDING_UPDATES_KEY, items)

    def pending_deletes(self) -> list[PendingDelete]:
        return self._load(PENDING_DELETES_KEY, PendingDelete)

    def save_pending_deletes(self, items: Iterable[PendingDelete]) -> None:
        self._save(PENDING_DELETES_KEY, items)

    def enqueue_create(self, entry: PendingCreate) -> None:
        self.save_pending_creates([*self.pending_creates(), entry])

    def upsert_update(self, target_id: str, patch: dict[str, Any], at: datetime) -> PendingUpdate:
        """Record a pending update, merging field-wise into any existing entry."""
        entries = self.pending_updates()
        for i, entry in enumerate(entries):
            if entry.target_id == target_id:
                merged = PendingUpdate(
                    target_id=target_id,
                    patch=merge_patches(entry.patch, patch),
                    updated_at=at,
                )
                entries[i] = merged
                break
        else:
            merged = PendingUpdate(target_id=target_id, patch=dict(patch), updated_at=at)
            entries.append(merged)
        self.save_pending_updates(entries)
        return merged

    def discard_update_fields(self, target_id: str, fields: Iterable[str]) -> None:
        """Drop fields a newer remote write already set from a pending update."""
        fields = set(fields)
        entries = []
        for entry in self.pending_updates():
            if entry.target_id == target_id:
                entry.patch = {k: v for k, v in entry.patch.items() if k not in fields}
                if not entry.patch:
                    continue
            entries.append(entry)
        self.save_pending_updates(entries)

    def acknowledge_update(self, target_id: str, sent: dict[str, Any]) -> None:
        """Drop fields the remote store accepted, keeping any edited since they were sent."""
        entries = []
        for entry in self.pending_updates():
            if entry.target_id == target_id:
                entry.patch = {
                    k: v for k, v in entry.patch.items() if k not in sent or sent[k] != v
                }
                if not entry.patch:
                    continue
            entries.append(entry)
        self.save_pending_updates(entries)

    def upsert_delete(self, entry: PendingDelete) -> None:
        entries = [e for e in self.pending_deletes() if e.target_id != entry.target_id]
        entries.append(entry)
        self.save_pending_deletes(entries)

    def pending_counts(self) -> dict[str, int]:
        return {
            "creates": len(self.get(PENDING_CREATES_KEY)),
            "updates": len(self.get(PENDING_UPDATES_KEY)),
            "deletes": len(self.get(PENDING_DELETES_KEY)),
        }

    def has_pending(self) -> bool:
        return any(self.pending_counts().values())

    # ── Recently-deleted ring ────────────────────────────────────

    def deleted_ring(self) -> list[DeletedEntry]:
        return self._load(DELETED_RING_KEY, DeletedEntry)

    def push_deleted(self, entry: DeletedEntry) -> None:
        """Insert at the front, evicting the oldest entries beyond capacity."""
        ring = [entry, *self.deleted_ring()][: self.deleted_capacity]
        self._save(DELETED_RING_KEY, ring)

    def pop_deleted(self) -> DeletedEntry | None:
        ring = self.deleted_ring()
        if not ring:
            return None
        newest, rest = ring[0], ring[1:]
        self._save(DELETED_RING_KEY, rest)
        return newest

    # ── Credential ───────────────────────────────────────────────

    def credential(self) -> str | None:
        value = self.get(CREDENTIAL_KEY, default="")
        return value or None

    def set_credential(self, token: str) -> None:
        self.set(CREDENTIAL_KEY, token)

    def clear_credential(self) -> None:
        self._backend.delete(CREDENTIAL_KEY)
        self._cache.pop(CREDENTIAL_KEY, None)

    # ── Identifier rewriting ─────────────────────────────────────

    def rewrite_identifier(
        self, temp_id: str, record_id: str, confirmed: Record | None = None
    ) -> None:
        """Replace every local reference to *temp_id* with *record_id*.

        Covers the update and delete queues, the deleted ring and the
        snapshot. When *confirmed* is given it replaces the snapshot copy.
        """
        def renamed(value: str) -> str:
            return record_id if value == temp_id else value

        updates = self.pending_updates()
        for entry in updates:
            entry.target_id = renamed(entry.target_id)
        self.save_pending_updates(updates)

        deletes = self.pending_deletes()
        for entry in deletes:
            entry.target_id = renamed(entry.target_id)
            if entry.original is not None and entry.original.temp_id == temp_id:
                entry.original = _promote(entry.original, record_id)
        self.save_pending_deletes(deletes)

        ring = self.deleted_ring()
        for slot in ring:
            slot.source_id = renamed(slot.source_id)
            if slot.record.temp_id == temp_id:
                slot.record = _promote(slot.record, record_id)
        self._save(DELETED_RING_KEY, ring)

        still_pending = {e.target_id for e in updates} | {e.target_id for e in deletes}
        snapshot = []
        for record in self.snapshot():
            if record.temp_id == temp_id:
                record = confirmed or _promote(record, record_id)
                record = record.model_copy(
                    update={"id": record_id, "temp_id": None, "pending_sync": record_id in still_pending}
                )
            snapshot.append(record)
        self.save_snapshot(snapshot)

        logger.debug("identifier_rewritten", temp_id=temp_id, record_id=record_id)


def _promote(record: Record, record_id: str) -> Record:
    return record.model_copy(update={"id": record_id, "temp_id": None})


__all__ = [
    "LocalStore",
    "StorageBackend",
    "SqliteBackend",
    "MemoryBackend",
    "SNAPSHOT_KEY",
    "PENDING_CREATES_KEY",
    "PENDING_UPDATES_KEY",
    "PENDING_DELETES_KEY",
    "DELETED_RING_KEY",
    "CREDENTIAL_KEY",
]
