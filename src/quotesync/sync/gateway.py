"""
Remote gateway - the only component that talks HTTP.

Every call goes through :meth:`RemoteGateway.invoke`, which applies the
per-request timeout and the bounded transport retry, attaches the bearer
credential and classifies the outcome into a closed set:

    ==========================  =======================================
    Outcome                     Trigger
    ==========================  =======================================
    ``Ok(data)``                2xx (``None`` for an empty body)
    ``NetworkUnreachableError`` connect error / timeout / dropped
                                connection after all retries
    ``NotFoundError``           404
    ``UnauthenticatedError``    401, or no credential on an
                                authenticated call
    ``ValidationError``         400, 422 and any other 4xx
    ``ServerError``             5xx, malformed JSON
    ==========================  =======================================

Nothing is raised for these outcomes; callers ``match`` on the returned
``Result``. A 401 clears the stored credential and publishes
``auth.expired``.

Tags:
    httpx, http-client, retry, result-pattern, quotesync
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx

from quotesync.core.errors import (
    NetworkUnreachableError,
    NotFoundError,
    QuoteSyncError,
    ServerError,
    UnauthenticatedError,
    ValidationError,
)
from quotesync.core.events import AUTH_EXPIRED, Event, EventBus
from quotesync.core.logging import get_logger
from quotesync.core.models import Collection, Record
from quotesync.core.result import Err, Ok, Result, try_result_with
from quotesync.core.settings import QuoteSyncSettings
from quotesync.sync.retry import ConstantBackoff, with_retry
from quotesync.sync.store import LocalStore

logger = get_logger(__name__)

RECORDS_PATH = "/records"
UNDO_PATH = "/records/undo"
HEALTH_PATH = "/health"


@dataclass(frozen=True)
class Operation:
    """A single remote request."""

    method: str
    path: str
    body: Any = None
    params: dict[str, Any] | None = None
    authenticated: bool = True


class RemoteGateway:
    """HTTP/JSON client for the remote record store.

    Args:
        settings: Base URL, timeout and retry configuration
        store: Local store holding the bearer credential
        transport: Optional httpx transport (tests inject an ASGI app here)
        bus: Event bus for ``auth.expired`` notifications
    """

    def __init__(
        self,
        settings: QuoteSyncSettings,
        store: LocalStore,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        bus: EventBus | None = None,
    ) -> None:
        self._store = store
        self._bus = bus
        self._client = httpx.AsyncClient(
            base_url=settings.api_url,
            timeout=settings.request_timeout,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )
        self.retry_strategy = ConstantBackoff(
            max_retries=settings.retry_attempts,
            delay=settings.retry_delay,
            retryable_errors=(httpx.TransportError,),
        )
        self._send = with_retry(self.retry_strategy, on_retry=self._log_retry)(self._send_once)

    async def __aenter__(self) -> RemoteGateway:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # ── Core call ────────────────────────────────────────────────

    async def invoke(self, operation: Operation) -> Result[Any]:
        """Perform *operation* and classify the outcome."""
        headers: dict[str, str] = {}
        if operation.authenticated:
            token = self._store.credential()
            if not token:
                return Err(
                    UnauthenticatedError("Not signed in").with_context(
                        method=operation.method, url=operation.path
                    )
                )
            headers["Authorization"] = f"Bearer {token}"

        params = {k: v for k, v in (operation.params or {}).items() if v is not None}

        try:
            response = await self._send(
                operation.method,
                operation.path,
                json=operation.body,
                params=params or None,
                headers=headers,
            )
        except httpx.TransportError as e:
            logger.warning(
                "remote_unreachable",
                method=operation.method,
                path=operation.path,
                error=str(e) or type(e).__name__,
            )
            return Err(
                NetworkUnreachableError("Remote store unreachable", cause=e).with_context(
                    method=operation.method,
                    url=operation.path,
                    attempts=self.retry_strategy.max_retries + 1,
                )
            )

        return await self._classify(operation, response)

    async def _send_once(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        if kwargs.get("json") is None:
            kwargs.pop("json", None)
        return await self._client.request(method, path, **kwargs)

    def _log_retry(self, attempt: int, error: Exception, delay: float) -> None:
        logger.info("gateway_retry", attempt=attempt, delay=delay, error=type(error).__name__)

    async def _classify(self, operation: Operation, response: httpx.Response) -> Result[Any]:
        status = response.status_code

        if response.is_success:
            if status == 204 or not response.content:
                return Ok(None)
            return try_result_with(
                response.json,
                lambda e: ServerError("Malformed response from remote store", cause=e).with_context(
                    method=operation.method, url=operation.path, http_status=status
                ),
            )

        message = _error_message(response)
        error: QuoteSyncError
        if status == 401:
            error = UnauthenticatedError(message)
            self._store.clear_credential()
            logger.warning("credential_rejected", path=operation.path, reason=message)
            if self._bus is not None:
                await self._bus.publish(
                    Event(event_type=AUTH_EXPIRED, source="gateway", payload={"message": message})
                )
        elif status == 404:
            error = NotFoundError(message)
        elif 400 <= status < 500:
            error = ValidationError(message)
        else:
            error = ServerError(message)

        return Err(error.with_context(method=operation.method, url=operation.path, http_status=status))

    # ── Convenience wrappers ─────────────────────────────────────

    async def list_records(
        self,
        collection: Collection | str | None = None,
        search: str | None = None,
        tags: list[str] | None = None,
    ) -> Result[list[Record]]:
        if isinstance(collection, Collection):
            collection = collection.value
        params = {
            "collection": collection,
            "search": search,
            "tags": ",".join(tags) if tags else None,
        }
        result = await self.invoke(
            Operation("GET", RECORDS_PATH, params=params, authenticated=False)
        )
        return result.flat_map(_parse_records)

    async def create_record(self, draft: Record) -> Result[Record]:
        result = await self.invoke(Operation("POST", RECORDS_PATH, body=draft.to_remote()))
        return result.flat_map(_parse_record)

    async def update_record(self, record_id: str, patch: dict[str, Any]) -> Result[Record]:
        result = await self.invoke(Operation("PUT", f"{RECORDS_PATH}/{record_id}", body=patch))
        return result.flat_map(_parse_record)

    async def delete_record(self, record_id: str) -> Result[None]:
        result = await self.invoke(Operation("DELETE", f"{RECORDS_PATH}/{record_id}"))
        return result.map(lambda _: None)

    async def undo_delete(self) -> Result[Record]:
        result = await self.invoke(Operation("POST", UNDO_PATH))
        return result.flat_map(_parse_record)

    async def probe(self) -> Result[None]:
        """Liveness check; any HTTP answer other than a network failure counts."""
        result = await self.invoke(Operation("GET", HEALTH_PATH, authenticated=False))
        match result:
            case Err(NetworkUnreachableError() as error):
                return Err(error)
            case _:
                return Ok(None)


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for key in ("msg", "message", "detail"):
            if body.get(key):
                return str(body[key])
    return response.text.strip() or response.reason_phrase or f"HTTP {response.status_code}"


def _parse_record(data: Any) -> Result[Record]:
    return try_result_with(
        lambda: Record.model_validate(data),
        lambda e: ServerError("Remote store returned an invalid record", cause=e),
    )


def _parse_records(data: Any) -> Result[list[Record]]:
    return try_result_with(
        lambda: [Record.model_validate(item) for item in data],
        lambda e: ServerError("Remote store returned an invalid record list", cause=e),
    )


__all__ = ["Operation", "RemoteGateway", "RECORDS_PATH", "UNDO_PATH", "HEALTH_PATH"]
