"""
Sync components, leaf first:

- store      durable local collections (snapshot, queues, deleted ring)
- gateway    HTTP calls to the remote store, classified into Result
- retry      bounded transport retry
- monitor    ONLINE/OFFLINE state and background probing
- reconcile  drains the pending queues when connectivity returns
- records    remote-first operations with local fallback
"""

from quotesync.sync.gateway import Operation, RemoteGateway
from quotesync.sync.monitor import ConnectionState, ConnectivityMonitor
from quotesync.sync.reconcile import ReconciliationEngine, SyncResult
from quotesync.sync.records import Outcome, OutcomeStatus, RecordOperations
from quotesync.sync.store import LocalStore, MemoryBackend, SqliteBackend

__all__ = [
    "LocalStore",
    "SqliteBackend",
    "MemoryBackend",
    "Operation",
    "RemoteGateway",
    "ConnectionState",
    "ConnectivityMonitor",
    "ReconciliationEngine",
    "SyncResult",
    "Outcome",
    "OutcomeStatus",
    "RecordOperations",
]
