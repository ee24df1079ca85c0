"""
Structured error types for quotesync.

Every failure the sync engine can observe is classified into a small, closed
taxonomy. The gateway and the record facade hand these errors back inside
``Err`` results instead of raising them, so callers always see a typed error
with a category, a retry flag and structured context.

Manifesto:
    - **Closed taxonomy:** network-unreachable, not-found, unauthenticated,
      validation, server. Nothing else crosses the gateway boundary.
    - **Explicit retry semantics:** only transient (network) errors are
      retryable; everything else must be fixed by the caller.
    - **Rich context:** errors carry the operation, record id, URL and HTTP
      status that produced them.
    - **Error chaining:** the underlying httpx / sqlite exception is kept as
      ``cause`` for root cause analysis.

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────┐
        │                      QuoteSyncError                          │
        │   (category, retryable, context, cause)                      │
        ├─────────────────────────────────────────────────────────────┤
        │  TransientError          NotFoundError     ValidationError   │
        │  (NETWORK, retryable)    (NOT_FOUND)       (VALIDATION)      │
        │       │                                                      │
        │  NetworkUnreachableError AuthError         ServerError       │
        │                          (AUTH)            (SERVER)          │
        │                               │                              │
        │                          UnauthenticatedError                │
        │                                                              │
        │  ConfigError (CONFIG)    StorageError (STORAGE)              │
        └─────────────────────────────────────────────────────────────┘

Examples:
    >>> error = NetworkUnreachableError("remote store unreachable")
    >>> error.retryable
    True
    >>> error.category
    <ErrorCategory.NETWORK: 'NETWORK'>

    >>> error = NotFoundError("record not found").with_context(record_id="abc123")
    >>> error.context.record_id
    'abc123'

Tags:
    error-handling, exception-hierarchy, retry-logic, error-context,
    quotesync, offline-sync
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """
    Standard error categories for classification and routing.

    The first five categories are the outcomes the remote gateway can
    classify a call into; the rest describe local failures.

    Attributes:
        NETWORK: Remote store unreachable (connect error, timeout, dropped
            connection)
        NOT_FOUND: The addressed record does not exist remotely or locally
        AUTH: Credential missing, expired or rejected
        VALIDATION: Request rejected because of its content
        SERVER: Remote store failed while handling a valid request
        CONFIG: Invalid local configuration
        STORAGE: Local durable store could not be read or written
        INTERNAL: Bugs, unexpected state
        UNKNOWN: Uncategorized errors
    """

    # Remote outcomes
    NETWORK = "NETWORK"
    NOT_FOUND = "NOT_FOUND"
    AUTH = "AUTH"
    VALIDATION = "VALIDATION"
    SERVER = "SERVER"

    # Local failures
    CONFIG = "CONFIG"
    STORAGE = "STORAGE"

    INTERNAL = "INTERNAL"
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Attributes:
        operation: Logical operation name (e.g. ``create``, ``reconcile``)
        record_id: Record identifier the operation addressed
        method: HTTP method of the remote call
        url: URL that was being accessed
        http_status: HTTP status code if a response was received
        attempts: Number of attempts made before giving up
        metadata: Additional key-value pairs
    """

    operation: str | None = None
    record_id: str | None = None
    method: str | None = None
    url: str | None = None
    http_status: int | None = None
    attempts: int | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["operation", "record_id", "method", "url", "http_status", "attempts"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class QuoteSyncError(Exception):
    """
    Base exception for all quotesync errors.

    Every instance carries:
    - **category:** ErrorCategory for classification
    - **retryable:** whether repeating the same call may succeed
    - **context:** ErrorContext with structured metadata
    - **cause:** the underlying exception, if any

    Subclasses set ``default_category`` and ``default_retryable``.

    Examples:
        >>> error = QuoteSyncError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.to_dict()["retryable"]
        False
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> QuoteSyncError:
        """
        Add context to this error (fluent API).

        Usage:
            return Err(NotFoundError("Record not found").with_context(
                operation="delete", record_id=record_id,
            ))
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# TRANSIENT ERRORS (Retryable)
# =============================================================================


class TransientError(QuoteSyncError):
    """
    Temporary error that may succeed on retry.

    Raised (or returned) for conditions that can clear up on their own. In
    quotesync the only transient condition is an unreachable remote store,
    and it is the only failure that triggers the local fallback path.
    """

    default_category = ErrorCategory.NETWORK
    default_retryable = True


class NetworkUnreachableError(TransientError):
    """Remote store could not be reached after the bounded retries."""


# =============================================================================
# REMOTE APPLICATION ERRORS (Never retryable)
# =============================================================================


class NotFoundError(QuoteSyncError):
    """The addressed record (or undo history) does not exist."""

    default_category = ErrorCategory.NOT_FOUND


class AuthError(QuoteSyncError):
    """Authentication or authorization error."""

    default_category = ErrorCategory.AUTH


class UnauthenticatedError(AuthError):
    """Credential missing, expired or rejected; the user must log in again."""


class ValidationError(QuoteSyncError):
    """
    Request content was rejected.

    Never retryable - input must be corrected.
    """

    default_category = ErrorCategory.VALIDATION

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        value: Any = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.field = field
        self.value = value

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.field:
            result["field"] = self.field
        if self.value is not None:
            result["value"] = repr(self.value)
        return result


class ServerError(QuoteSyncError):
    """Remote store failed while handling the request."""

    default_category = ErrorCategory.SERVER


# =============================================================================
# LOCAL ERRORS
# =============================================================================


class ConfigError(QuoteSyncError):
    """
    Configuration error.

    Never retryable - configuration must be fixed.
    """

    default_category = ErrorCategory.CONFIG


class StorageError(QuoteSyncError):
    """Local durable store could not be read or written."""

    default_category = ErrorCategory.STORAGE


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def is_retryable(error: Exception) -> bool:
    """Check if an error is retryable."""
    if isinstance(error, QuoteSyncError):
        return error.retryable
    return isinstance(error, (ConnectionError, TimeoutError))


def categorize_error(error: Exception) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, QuoteSyncError):
        return error.category
    if isinstance(error, (ConnectionError, TimeoutError)):
        return ErrorCategory.NETWORK
    if isinstance(error, ValueError):
        return ErrorCategory.VALIDATION
    return ErrorCategory.UNKNOWN


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "QuoteSyncError",
    "TransientError",
    "NetworkUnreachableError",
    "NotFoundError",
    "AuthError",
    "UnauthenticatedError",
    "ValidationError",
    "ServerError",
    "ConfigError",
    "StorageError",
    "is_retryable",
    "categorize_error",
]
