"""
Core primitives shared by every quotesync component.

Re-exports the pieces most callers need::

    from quotesync.core import Ok, Err, Record, NetworkUnreachableError
"""

from quotesync.core.errors import (
    ConfigError,
    ErrorCategory,
    ErrorContext,
    NetworkUnreachableError,
    NotFoundError,
    QuoteSyncError,
    ServerError,
    StorageError,
    TransientError,
    UnauthenticatedError,
    ValidationError,
    categorize_error,
    is_retryable,
)
from quotesync.core.models import (
    Collection,
    DeletedEntry,
    PendingCreate,
    PendingDelete,
    PendingUpdate,
    Record,
    Statement,
    resolve_record,
)
from quotesync.core.result import Err, Ok, Result

__all__ = [
    # errors
    "ErrorCategory",
    "ErrorContext",
    "QuoteSyncError",
    "TransientError",
    "NetworkUnreachableError",
    "NotFoundError",
    "UnauthenticatedError",
    "ValidationError",
    "ServerError",
    "ConfigError",
    "StorageError",
    "is_retryable",
    "categorize_error",
    # models
    "Collection",
    "Statement",
    "Record",
    "PendingCreate",
    "PendingUpdate",
    "PendingDelete",
    "DeletedEntry",
    "resolve_record",
    # result
    "Ok",
    "Err",
    "Result",
]
