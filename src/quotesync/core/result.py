"""
Result envelope for consistent success/failure handling.

The remote gateway and the record facade never raise for expected failures.
They return ``Ok[T]`` on success or ``Err[T]`` wrapping a
:class:`~quotesync.core.errors.QuoteSyncError`, so every caller has to look at
the outcome before using it, and batch code (the reconciliation drain) can
record a per-item failure and carry on with the next item.

Manifesto:
    - **Explicit over Implicit:** no hidden exceptions on the network path
    - **Batch-friendly:** one failed queue entry never aborts the drain
    - **Pattern matching:** ``match result: case Ok(value) / case Err(error)``

Examples:
    >>> from quotesync.core.result import Ok, Err, Result
    >>> def divide(a: int, b: int) -> Result[float]:
    ...     if b == 0:
    ...         return Err(ValueError("Division by zero"))
    ...     return Ok(a / b)
    >>> match divide(10, 2):
    ...     case Ok(value):
    ...         print(f"Result: {value}")
    ...     case Err(error):
    ...         print(f"Error: {error}")
    Result: 5.0

    >>> Ok(10).map(lambda x: x * 2).unwrap()
    20
    >>> Err(ValueError("oops")).map(lambda x: x * 2).is_err()
    True

Tags:
    result-pattern, error-handling, functional-programming, quotesync
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar

from quotesync.core.errors import QuoteSyncError

T = TypeVar("T")
U = TypeVar("U")


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """
    Successful result containing a value.

    Examples:
        >>> ok = Ok(42)
        >>> ok.is_ok()
        True
        >>> ok.unwrap()
        42
        >>> Ok("hello").map(str.upper).unwrap()
        'HELLO'
    """

    value: T

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        """Get the value. Safe for Ok."""
        return self.value

    def map(self, f: Callable[[T], U]) -> Result[U]:
        """Transform the value if Ok."""
        return Ok(f(self.value))

    def flat_map(self, f: Callable[[T], Result[U]]) -> Result[U]:
        """Chain to another Result-returning function."""
        return f(self.value)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {"ok": True, "value": self.value}

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True, slots=True)
class Err(Generic[T]):
    """
    Failed result containing an error.

    ``map`` and ``flat_map`` pass the error through unchanged; ``unwrap``
    raises it.

    Examples:
        >>> err = Err(ValueError("something went wrong"))
        >>> err.is_err()
        True
        >>> err.error
        ValueError('something went wrong')
    """

    error: Exception

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def unwrap(self) -> T:
        """Raise the error. Use only when you're sure it's Ok."""
        raise self.error

    def map(self, f: Callable[[T], U]) -> Result[U]:
        """No-op for Err."""
        return Err(self.error)

    def flat_map(self, f: Callable[[T], Result[U]]) -> Result[U]:
        """No-op for Err."""
        return Err(self.error)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        if isinstance(self.error, QuoteSyncError):
            return {"ok": False, "error": self.error.to_dict()}
        return {
            "ok": False,
            "error": {
                "error_type": type(self.error).__name__,
                "message": str(self.error),
            },
        }

    def __repr__(self) -> str:
        return f"Err({self.error!r})"


Result = Ok[T] | Err[T]


def try_result_with(
    f: Callable[[], T],
    error_mapper: Callable[[Exception], Exception] | None = None,
) -> Result[T]:
    """
    Execute function and map exceptions to custom error types.

    Bridges exception-throwing library code (JSON decoding, pydantic
    validation) into the Result world.

    Examples:
        >>> import json
        >>> try_result_with(lambda: json.loads('{"a": 1}')).unwrap()
        {'a': 1}
        >>> from quotesync.core.errors import ServerError
        >>> result = try_result_with(
        ...     lambda: json.loads("<html>"),
        ...     lambda e: ServerError(f"Malformed response: {e}"),
        ... )
        >>> type(result.error).__name__
        'ServerError'
    """
    try:
        return Ok(f())
    except Exception as e:
        if error_mapper:
            return Err(error_mapper(e))
        return Err(e)


__all__ = [
    "Ok",
    "Err",
    "Result",
    "try_result_with",
]
