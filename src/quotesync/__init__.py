"""
quotesync - offline-first synchronization engine for a quote store.

- quotesync.core: models, errors, Result, settings, logging, events
- quotesync.sync: local store, remote gateway, connectivity monitor,
  reconciliation engine and the record operations facade
- quotesync.client: wiring (``build_client``)
"""

__version__ = "0.1.0"

from quotesync.client import QuoteSyncClient, build_client  # noqa: E402

__all__ = ["QuoteSyncClient", "build_client", "__version__"]
