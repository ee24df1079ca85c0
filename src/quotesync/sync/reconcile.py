"""
Reconciliation engine - drains locally queued mutations into the remote store.

Manifesto:
    - **Order:** creates, then updates, then deletes. Creates first so the
      temporary ids they replace can be rewritten before anything else
      addresses them.
    - **Isolation:** one failing entry is recorded and skipped; it never
      blocks the rest of its queue or the other queues.
    - **Exactly once:** an entry leaves its queue the moment the remote
      acknowledges it, and never earlier.
    - **Coalesced:** a second ``reconcile()`` while a run is in flight joins
      that run instead of starting another one.

Architecture:
    ::

        reconcile()
            │  preconditions: monitor ONLINE, credential present
            ▼
        probe ──✗──▶ monitor.mark_offline(), abort
            │
            ▼
        drain creates ── temp_id → id, rewrite queues / ring / snapshot
            ▼
        drain updates ── temp targets deferred, 404 = resolved
            ▼
        drain deletes ── temp targets deferred, 404 = already applied
            ▼
        refresh snapshot from GET /records
            ▼
        publish sync.completed | sync.failed

A network failure in the middle of a drain stops the run: the monitor is
marked offline and every entry not yet acknowledged stays queued.

Tags:
    reconciliation, offline-sync, queues, asyncio, quotesync
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from quotesync.core.errors import (
    NetworkUnreachableError,
    NotFoundError,
    QuoteSyncError,
    categorize_error,
    is_retryable,
)
from quotesync.core.events import SYNC_COMPLETED, SYNC_FAILED, Event, EventBus
from quotesync.core.logging import LogContext, get_logger
from quotesync.core.result import Err, Ok
from quotesync.core.timestamps import DEFAULT_TEMP_PREFIX, generate_ulid, is_temporary_id
from quotesync.sync.gateway import RemoteGateway
from quotesync.sync.store import LocalStore

if TYPE_CHECKING:
    from quotesync.sync.monitor import ConnectivityMonitor

logger = get_logger(__name__)

QUEUES = ("creates", "updates", "deletes")


@dataclass
class QueueCounts:
    applied: int = 0
    failed: int = 0
    deferred: int = 0


@dataclass
class SyncItemError:
    """A queue entry the remote store rejected during a run."""

    queue: str
    target_id: str
    error: QuoteSyncError

    def to_dict(self) -> dict[str, Any]:
        return {"queue": self.queue, "target_id": self.target_id, **self.error.to_dict()}


@dataclass
class SyncResult:
    """Outcome of one reconciliation run.

    Attributes:
        success: True when every queue drained and the snapshot was refreshed
        counts: Per-queue applied / failed / deferred counts
        errors: Entries rejected by the remote store
        id_map: Temporary id → authoritative id for creates applied in this run
        refreshed: Whether the snapshot was replaced with a fresh remote read
        message: Reason for a refused or aborted run
        run_id: Identifier bound to every log line of the run
    """

    success: bool = False
    counts: dict[str, QueueCounts] = field(
        default_factory=lambda: {name: QueueCounts() for name in QUEUES}
    )
    errors: list[SyncItemError] = field(default_factory=list)
    id_map: dict[str, str] = field(default_factory=dict)
    refreshed: bool = False
    message: str = ""
    run_id: str | None = None

    @classmethod
    def refused(cls, message: str) -> SyncResult:
        return cls(success=False, message=message)

    @property
    def applied(self) -> int:
        return sum(c.applied for c in self.counts.values())

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "counts": {
                name: {"applied": c.applied, "failed": c.failed, "deferred": c.deferred}
                for name, c in self.counts.items()
            },
            "errors": [e.to_dict() for e in self.errors],
            "id_map": dict(self.id_map),
            "refreshed": self.refreshed,
            "message": self.message,
            "run_id": self.run_id,
        }


class _ConnectionDropped(Exception):
    def __init__(self, error: NetworkUnreachableError) -> None:
        super().__init__(str(error))
        self.error = error


class ReconciliationEngine:
    """Applies the pending-mutation queues to the remote store."""

    def __init__(
        self,
        store: LocalStore,
        gateway: RemoteGateway,
        monitor: ConnectivityMonitor,
        *,
        bus: EventBus | None = None,
        temp_prefix: str = DEFAULT_TEMP_PREFIX,
    ) -> None:
        self._store = store
        self._gateway = gateway
        self._monitor = monitor
        self._bus = bus
        self._temp_prefix = temp_prefix
        self._inflight: asyncio.Future[SyncResult] | None = None
        self._background: set[asyncio.Task[SyncResult]] = set()

    @property
    def in_progress(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    async def reconcile(self) -> SyncResult:
        """Run reconciliation, or join the run already in flight."""
        if self.in_progress:
            logger.debug("sync_joined_inflight")
        else:
            self._inflight = asyncio.ensure_future(self._run())
        return await asyncio.shield(self._inflight)

    def schedule(self) -> asyncio.Task[SyncResult]:
        """Fire-and-forget reconciliation; failures are logged, never raised."""
        task = asyncio.get_running_loop().create_task(self.reconcile())
        self._background.add(task)
        task.add_done_callback(self._on_background_done)
        return task

    def _on_background_done(self, task: asyncio.Task[SyncResult]) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("background_sync_crashed", error=str(error), exc_info=error)

    # ── Run ──────────────────────────────────────────────────────

    async def _run(self) -> SyncResult:
        if not self._monitor.is_online:
            return SyncResult.refused("offline")
        if not self._store.credential():
            return SyncResult.refused("unauthenticated")

        run_id = generate_ulid()
        async with LogContext(sync_run=run_id):
            result = SyncResult(run_id=run_id)
            logger.info("sync_started", pending=self._store.pending_counts())

            probe = await self._gateway.probe()
            if probe.is_err():
                await self._monitor.mark_offline(reason="probe failed before sync")
                result.message = "remote unreachable"
                await self._finish(result)
                return result

            try:
                await self._drain_creates(result)
                await self._drain_updates(result)
                await self._drain_deletes(result)
                await self._refresh(result)
            except _ConnectionDropped as dropped:
                await self._monitor.mark_offline(reason=str(dropped.error))
                result.message = "connection lost during sync"

            result.success = result.refreshed and not result.errors and not result.message
            await self._finish(result)
            return result

    async def _drain_creates(self, result: SyncResult) -> None:
        counts = result.counts["creates"]
        for entry in self._store.pending_creates():
            match await self._gateway.create_record(entry.draft):
                case Ok(record):
                    self._store.save_pending_creates(
                        e for e in self._store.pending_creates() if e.temp_id != entry.temp_id
                    )
                    if record.id:
                        result.id_map[entry.temp_id] = record.id
                        self._store.rewrite_identifier(entry.temp_id, record.id, confirmed=record)
                    counts.applied += 1
                    logger.info("sync_item_applied", queue="creates", temp_id=entry.temp_id, record_id=record.id)
                case Err(NetworkUnreachableError() as error):
                    raise _ConnectionDropped(error)
                case Err(error):
                    self._record_failure(result, "creates", entry.temp_id, error)

    async def _drain_updates(self, result: SyncResult) -> None:
        counts = result.counts["updates"]
        for entry in self._store.pending_updates():
            target = result.id_map.get(entry.target_id, entry.target_id)
            if is_temporary_id(target, self._temp_prefix):
                counts.deferred += 1
                logger.info("sync_item_deferred", queue="updates", target_id=target)
                continue
            match await self._gateway.update_record(target, entry.patch):
                case Ok(_):
                    self._store.acknowledge_update(target, entry.patch)
                    counts.applied += 1
                    logger.info("sync_item_applied", queue="updates", target_id=target)
                case Err(NotFoundError()):
                    self._store.save_pending_updates(
                        e for e in self._store.pending_updates() if e.target_id != target
                    )
                    counts.applied += 1
                    logger.info("sync_item_applied", queue="updates", target_id=target, resolved_by_404=True)
                case Err(NetworkUnreachableError() as error):
                    raise _ConnectionDropped(error)
                case Err(error):
                    self._record_failure(result, "updates", target, error)

    async def _drain_deletes(self, result: SyncResult) -> None:
        counts = result.counts["deletes"]
        for entry in self._store.pending_deletes():
            target = result.id_map.get(entry.target_id, entry.target_id)
            if is_temporary_id(target, self._temp_prefix):
                counts.deferred += 1
                logger.info("sync_item_deferred", queue="deletes", target_id=target)
                continue
            match await self._gateway.delete_record(target):
                case Ok(_) | Err(NotFoundError()) as outcome:
                    self._store.save_pending_deletes(
                        e for e in self._store.pending_deletes() if e.target_id != target
                    )
                    counts.applied += 1
                    logger.info(
                        "sync_item_applied",
                        queue="deletes",
                        target_id=target,
                        already_deleted=outcome.is_err(),
                    )
                case Err(NetworkUnreachableError() as error):
                    raise _ConnectionDropped(error)
                case Err(error):
                    self._record_failure(result, "deletes", target, error)

    async def _refresh(self, result: SyncResult) -> None:
        match await self._gateway.list_records():
            case Ok(records):
                self._store.save_snapshot(records)
                result.refreshed = True
                logger.info("snapshot_refreshed", records=len(records))
            case Err(NetworkUnreachableError() as error):
                raise _ConnectionDropped(error)
            case Err(error):
                logger.warning("snapshot_refresh_failed", error=str(error))
                result.message = f"snapshot refresh failed: {error}"

    def _record_failure(
        self, result: SyncResult, queue: str, target_id: str, error: Exception
    ) -> None:
        if not isinstance(error, QuoteSyncError):
            error = QuoteSyncError(
                str(error),
                category=categorize_error(error),
                retryable=is_retryable(error),
                cause=error,
            )
        result.counts[queue].failed += 1
        result.errors.append(SyncItemError(queue=queue, target_id=target_id, error=error))
        logger.warning(
            "sync_item_failed",
            queue=queue,
            target_id=target_id,
            category=error.category.value,
            error=error.message,
        )

    async def _finish(self, result: SyncResult) -> None:
        event_type = SYNC_COMPLETED if result.success else SYNC_FAILED
        if result.success:
            message = "Sync completed"
        else:
            message = result.message or f"Sync finished with {len(result.errors)} error(s)"
        logger.info(
            "sync_finished",
            success=result.success,
            applied=result.applied,
            failed=len(result.errors),
            refreshed=result.refreshed,
        )
        if self._bus is not None:
            await self._bus.publish(
                Event(
                    event_type=event_type,
                    source="reconcile",
                    payload={"message": message, **result.to_dict()},
                    correlation_id=result.run_id,
                )
            )


__all__ = ["QueueCounts", "SyncItemError", "SyncResult", "ReconciliationEngine"]
