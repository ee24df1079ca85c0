"""
Record operations facade - the API the presentation layer calls.

Each operation tries the remote store first. When the remote is unreachable
(or the monitor already knows it is) the operation falls back to the local
store and records a pending mutation for the reconciliation engine. Any other
remote failure is returned to the caller untouched and leaves local state
alone.

Every operation returns ``Result[Outcome]``::

    match await records.create({"reference": "BG 2.13", "statements": [...]}):
        case Ok(Outcome(status=OutcomeStatus.QUEUED, record=record)):
            toast(f"Saved offline as {record.temp_id}")
        case Ok(outcome):
            toast("Saved")
        case Err(error):
            toast(error.message)

Mutations require a stored credential; without one they return
``Err(UnauthenticatedError)`` before touching anything.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import pydantic

from quotesync.core.errors import (
    NetworkUnreachableError,
    NotFoundError,
    UnauthenticatedError,
    ValidationError,
)
from quotesync.core.events import RECORD_QUEUED, RECORDS_OFFLINE, Event, EventBus
from quotesync.core.logging import get_logger
from quotesync.core.models import (
    Collection,
    DeletedEntry,
    PendingCreate,
    PendingDelete,
    Record,
    check_draft,
    normalize_patch,
    resolve_record,
)
from quotesync.core.result import Err, Ok, Result
from quotesync.core.timestamps import DEFAULT_TEMP_PREFIX, is_temporary_id, temporary_id, utc_now
from quotesync.sync.gateway import RemoteGateway
from quotesync.sync.monitor import ConnectivityMonitor
from quotesync.sync.reconcile import ReconciliationEngine
from quotesync.sync.store import LocalStore

logger = get_logger(__name__)

OFFLINE_MESSAGE = "Operating in offline mode. Showing locally stored records."
QUEUED_MESSAGE = "Saved locally. Will sync when the connection is restored."


class OutcomeStatus(str, Enum):
    SYNCED = "synced"
    QUEUED = "queued"
    OFFLINE = "offline"
    ALREADY_DELETED = "already_deleted"
    RESTORED = "restored"


@dataclass
class Outcome:
    """What an operation did and the data the caller should display."""

    status: OutcomeStatus
    record: Record | None = None
    records: list[Record] = field(default_factory=list)
    message: str = ""


class RecordOperations:
    """Remote-first CRUD with local fallback."""

    def __init__(
        self,
        store: LocalStore,
        gateway: RemoteGateway,
        monitor: ConnectivityMonitor,
        engine: ReconciliationEngine,
        *,
        bus: EventBus | None = None,
        temp_prefix: str = DEFAULT_TEMP_PREFIX,
    ) -> None:
        self._store = store
        self._gateway = gateway
        self._monitor = monitor
        self._engine = engine
        self._bus = bus
        self._temp_prefix = temp_prefix

    # ── Reads ────────────────────────────────────────────────────

    async def fetch_all(
        self,
        collection: Collection | str | None = None,
        search: str | None = None,
        tags: list[str] | None = None,
    ) -> Result[Outcome]:
        """List records, falling back to the local snapshot when offline.

        Only an unfiltered remote read replaces the snapshot.
        """
        if self._monitor.is_online:
            match await self._gateway.list_records(collection, search, tags):
                case Ok(records):
                    if collection is None and search is None and not tags:
                        self._store.save_snapshot(records)
                    if self._store.has_pending() and self._store.credential():
                        self._engine.schedule()
                    return Ok(Outcome(OutcomeStatus.SYNCED, records=records))
                case Err(NetworkUnreachableError() as error):
                    await self._monitor.mark_offline(reason=str(error))
                case Err(error):
                    return Err(error)

        records = _filter(self.local_view(), collection, search, tags)
        logger.info("serving_offline_records", count=len(records))
        await self._notify(RECORDS_OFFLINE, OFFLINE_MESSAGE, count=len(records))
        return Ok(Outcome(OutcomeStatus.OFFLINE, records=records, message=OFFLINE_MESSAGE))

    def local_view(self) -> list[Record]:
        """Snapshot overlaid with every pending mutation, newest creates first."""
        snapshot = self._store.snapshot()
        known = {r.key for r in snapshot}
        deleted = {entry.target_id for entry in self._store.pending_deletes()}
        patches = {entry.target_id: entry for entry in self._store.pending_updates()}

        view = []
        # creates missing from the snapshot were dropped by a remote overwrite
        for entry in reversed(self._store.pending_creates()):
            if entry.temp_id in known or entry.temp_id in deleted:
                continue
            record = entry.draft.model_copy(update={"temp_id": entry.temp_id, "pending_sync": True})
            pending = patches.get(entry.temp_id)
            if pending is not None:
                record = record.with_patch(pending.patch, pending.updated_at)
            view.append(record)

        for record in snapshot:
            if record.key in deleted:
                continue
            pending = patches.get(record.key)
            if pending is not None and not record.pending_sync:
                record = record.with_patch(pending.patch, pending.updated_at)
                record.pending_sync = True
            view.append(record)
        return view

    # ── Mutations ────────────────────────────────────────────────

    async def create(self, draft: Record | Mapping[str, Any]) -> Result[Outcome]:
        if not self._store.credential():
            return Err(UnauthenticatedError("Sign in to add records").with_context(operation="create"))

        try:
            record = draft if isinstance(draft, Record) else Record.model_validate(draft)
        except pydantic.ValidationError as e:
            return Err(ValidationError(_first_problem(e), cause=e).with_context(operation="create"))
        problem = check_draft(record)
        if problem:
            return Err(ValidationError(problem).with_context(operation="create"))
        record = record.model_copy(update={"id": None, "temp_id": None, "pending_sync": False})

        if self._monitor.is_online:
            match await self._gateway.create_record(record):
                case Ok(created):
                    self._store.save_snapshot(
                        [created, *(r for r in self._store.snapshot() if r.key != created.key)]
                    )
                    return Ok(Outcome(OutcomeStatus.SYNCED, record=created))
                case Err(NetworkUnreachableError() as error):
                    await self._monitor.mark_offline(reason=str(error))
                case Err(error):
                    return Err(error)

        return Ok(await self._queue_create(record))

    async def update(self, identifier: str, patch: Mapping[str, Any]) -> Result[Outcome]:
        if not self._store.credential():
            return Err(UnauthenticatedError("Sign in to edit records").with_context(operation="update"))

        try:
            wire = normalize_patch(patch)
        except KeyError as e:
            return Err(ValidationError(f"Unknown field: {e.args[0]}", field=e.args[0]))
        except ValueError as e:
            return Err(ValidationError(str(e)))
        if not wire:
            return Err(ValidationError("Nothing to update"))

        now = utc_now()
        current = resolve_record(self.local_view(), identifier)
        patched: Record | None = None
        if current is not None:
            try:
                patched = current.with_patch(wire, now)
            except pydantic.ValidationError as e:
                return Err(ValidationError(_first_problem(e), cause=e).with_context(record_id=current.key))
            problem = check_draft(patched)
            if problem:
                return Err(ValidationError(problem).with_context(record_id=current.key))
        target = current.key if current is not None else identifier

        if self._monitor.is_online and not is_temporary_id(target, self._temp_prefix):
            match await self._gateway.update_record(target, wire):
                case Ok(updated):
                    self._store.discard_update_fields(target, wire.keys())
                    self._replace_in_snapshot(target, updated)
                    return Ok(Outcome(OutcomeStatus.SYNCED, record=updated))
                case Err(NetworkUnreachableError() as error):
                    await self._monitor.mark_offline(reason=str(error))
                case Err(error):
                    return Err(error)

        if current is None or patched is None:
            return Err(NotFoundError("Record not found").with_context(operation="update", record_id=identifier))

        self._store.upsert_update(target, wire, now)
        patched = patched.model_copy(update={"pending_sync": True})
        self._replace_in_snapshot(target, patched)
        logger.info("record_queued", queue="pending-updates", record_id=target)
        await self._notify(RECORD_QUEUED, QUEUED_MESSAGE, operation="update", record_id=target)
        return Ok(Outcome(OutcomeStatus.QUEUED, record=patched, message=QUEUED_MESSAGE))

    async def delete(self, identifier: str) -> Result[Outcome]:
        if not self._store.credential():
            return Err(UnauthenticatedError("Sign in to delete records").with_context(operation="delete"))

        current = resolve_record(self.local_view(), identifier)
        target = current.key if current is not None else identifier
        now = utc_now()

        if self._monitor.is_online and not is_temporary_id(target, self._temp_prefix):
            match await self._gateway.delete_record(target):
                case Ok(_):
                    self._forget(target)
                    if current is not None:
                        self._store.push_deleted(
                            DeletedEntry(record=current, deleted_at=now, source_id=target)
                        )
                    return Ok(Outcome(OutcomeStatus.SYNCED, record=current, message="Deleted"))
                case Err(NotFoundError()):
                    self._forget(target)
                    logger.info("record_already_deleted", record_id=target)
                    return Ok(
                        Outcome(OutcomeStatus.ALREADY_DELETED, record=current, message="Already deleted")
                    )
                case Err(NetworkUnreachableError() as error):
                    await self._monitor.mark_offline(reason=str(error))
                case Err(error):
                    return Err(error)

        if current is None:
            return Err(NotFoundError("Record not found").with_context(operation="delete", record_id=identifier))

        self._store.upsert_delete(PendingDelete(target_id=target, deleted_at=now, original=current))
        self._store.push_deleted(DeletedEntry(record=current, deleted_at=now, source_id=target))
        self._store.save_snapshot(r for r in self._store.snapshot() if r.key != target)
        logger.info("record_queued", queue="pending-deletes", record_id=target)
        await self._notify(RECORD_QUEUED, QUEUED_MESSAGE, operation="delete", record_id=target)
        return Ok(Outcome(OutcomeStatus.QUEUED, record=current, message=QUEUED_MESSAGE))

    async def restore_last(self) -> Result[Outcome]:
        """Undo the most recent delete."""
        if not self._store.credential():
            return Err(UnauthenticatedError("Sign in to restore records").with_context(operation="restore"))

        entry = self._store.pop_deleted()
        if entry is None:
            return Err(NotFoundError("No recently deleted records").with_context(operation="restore"))

        pending = [d for d in self._store.pending_deletes() if d.target_id == entry.source_id]
        if pending:
            self._store.save_pending_deletes(
                d for d in self._store.pending_deletes() if d.target_id != entry.source_id
            )
            restored = self._reinsert(entry.record)
            logger.info("pending_delete_cancelled", record_id=entry.source_id)
            return Ok(Outcome(OutcomeStatus.RESTORED, record=restored, message="Restored"))

        if self._monitor.is_online:
            match await self._gateway.undo_delete():
                case Ok(record):
                    self._replace_in_snapshot(record.key, record, prepend=True)
                    return Ok(Outcome(OutcomeStatus.RESTORED, record=record, message="Restored"))
                case Err(NetworkUnreachableError() as error):
                    await self._monitor.mark_offline(reason=str(error))
                case Err(error):
                    self._store.push_deleted(entry)
                    return Err(error)

        draft = entry.record.model_copy(update={"id": None, "temp_id": None, "pending_sync": False})
        queued = await self._queue_create(draft)
        queued.status = OutcomeStatus.RESTORED
        return Ok(queued)

    # ── Local helpers ────────────────────────────────────────────

    async def _queue_create(self, record: Record) -> Outcome:
        now = utc_now()
        temp_id = temporary_id(self._temp_prefix)
        local = record.model_copy(
            update={
                "temp_id": temp_id,
                "pending_sync": True,
                "created_at": record.created_at or now,
            }
        )
        self._store.enqueue_create(PendingCreate(draft=local, temp_id=temp_id, created_at=now))
        self._store.save_snapshot([local, *self._store.snapshot()])
        logger.info("record_queued", queue="pending-creates", record_id=temp_id)
        await self._notify(RECORD_QUEUED, QUEUED_MESSAGE, operation="create", record_id=temp_id)
        return Outcome(OutcomeStatus.QUEUED, record=local, message=QUEUED_MESSAGE)

    def _reinsert(self, record: Record) -> Record:
        pending_targets = {u.target_id for u in self._store.pending_updates()}
        restored = record.model_copy(
            update={"pending_sync": record.temp_id is not None or record.key in pending_targets}
        )
        self._replace_in_snapshot(restored.key, restored, prepend=True)
        return restored

    def _replace_in_snapshot(self, key: str | None, record: Record, *, prepend: bool = False) -> None:
        snapshot = self._store.snapshot()
        for i, existing in enumerate(snapshot):
            if existing.key == key or (record.id and existing.id == record.id):
                snapshot[i] = record
                break
        else:
            snapshot = [record, *snapshot] if prepend else [*snapshot, record]
        self._store.save_snapshot(snapshot)

    def _forget(self, target: str) -> None:
        self._store.save_snapshot(r for r in self._store.snapshot() if r.key != target)
        self._store.save_pending_updates(
            u for u in self._store.pending_updates() if u.target_id != target
        )

    async def _notify(self, event_type: str, message: str, **payload: Any) -> None:
        if self._bus is None:
            return
        await self._bus.publish(
            Event(event_type=event_type, source="records", payload={"message": message, **payload})
        )


def _filter(
    records: Iterable[Record],
    collection: Collection | str | None,
    search: str | None,
    tags: list[str] | None,
) -> list[Record]:
    """Apply the remote store's list filters to local records."""
    if isinstance(collection, Collection):
        collection = collection.value
    wanted_tags = set(tags or ())
    needle = search.lower() if search else None

    selected = []
    for record in records:
        if collection and collection != "all" and record.collection.value != collection:
            continue
        if wanted_tags and not any(wanted_tags & s.tags for s in record.statements):
            continue
        if needle is not None:
            haystack = [record.reference]
            for s in record.statements:
                haystack.extend([s.text, *s.tags, *s.keywords])
            if not any(needle in item.lower() for item in haystack):
                continue
        selected.append(record)
    return selected


def _first_problem(error: pydantic.ValidationError) -> str:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"{location}: {first['msg']}" if location else first["msg"]


__all__ = ["Outcome", "OutcomeStatus", "RecordOperations"]
