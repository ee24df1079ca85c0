"""
Root Typer application for the quotesync CLI.

Each command builds a client from settings, runs one async operation and
renders the outcome. Mutations that could not reach the remote store are
queued locally exactly as they are for any other caller; ``quotesync sync``
pushes them once the remote is reachable again.
"""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import typer

from quotesync.cli.utils import (
    console,
    fail,
    output,
    print_json,
    print_records,
    unwrap_or_exit,
)
from quotesync.client import QuoteSyncClient, build_client
from quotesync.core.errors import ConfigError
from quotesync.core.logging import configure_logging
from quotesync.core.settings import get_settings
from quotesync.sync.reconcile import SyncResult

T = TypeVar("T")

app = typer.Typer(
    name="quotesync",
    help="quotesync - offline-first quote store client.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
token_app = typer.Typer(no_args_is_help=True)
app.add_typer(token_app, name="token", help="Manage the stored bearer credential.")


def _version_callback(value: bool) -> None:
    if value:
        from quotesync import __version__

        typer.echo(f"quotesync {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log debug output to stderr."),
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """quotesync CLI - list, delete and restore quotes, and sync offline changes."""
    try:
        settings = get_settings()
    except ConfigError as e:
        fail(e)
    configure_logging(
        level="DEBUG" if verbose else "WARNING",
        json_format=settings.log_format == "json",
        stream=sys.stderr,
        cache_loggers=False,
    )


def _run(operation: Callable[[QuoteSyncClient], Awaitable[T]]) -> T:
    """Run *operation* against a fresh client and close it afterwards."""

    async def runner() -> T:
        async with build_client() as client:
            return await operation(client)

    return asyncio.run(runner())


# ── Commands ─────────────────────────────────────────────────────────────


@app.command("status")
def status(json_out: bool = typer.Option(False, "--json")) -> None:
    """Show connectivity and pending changes per queue."""

    async def op(client: QuoteSyncClient) -> dict[str, Any]:
        await client.monitor.check()
        return client.status()

    data = _run(op)
    if json_out:
        print_json(data)
        return
    state = data["state"]
    colour = "green" if state == "online" else "yellow"
    console.print(f"[bold]Connection[/bold]: [{colour}]{state}[/{colour}]")
    console.print(f"[bold]Signed in[/bold]: {'yes' if data['signed_in'] else 'no'}")
    pending = data["pending"]
    console.print(
        f"[bold]Pending[/bold]: {pending['creates']} create(s), "
        f"{pending['updates']} update(s), {pending['deletes']} delete(s)"
    )
    console.print(f"[bold]Recently deleted[/bold]: {data['recently_deleted']}")


@app.command("sync")
def sync(json_out: bool = typer.Option(False, "--json")) -> None:
    """Push offline changes to the remote store (refused while offline)."""

    async def op(client: QuoteSyncClient) -> SyncResult:
        await client.monitor.check()
        return await client.sync()

    result = _run(op)
    if json_out:
        print_json(result.to_dict())
    elif result.success:
        applied = ", ".join(f"{name}: {c.applied}" for name, c in result.counts.items())
        console.print(f"[green]Sync completed[/green] ({applied})")
    if not result.success:
        reason = result.message or f"{len(result.errors)} item(s) failed"
        fail(f"Sync failed: {reason}")


@app.command("list")
def list_records(
    collection: str | None = typer.Option(None, "--collection", "-c"),
    search: str | None = typer.Option(None, "--search", "-s"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List records (served from the local snapshot when offline)."""
    outcome = unwrap_or_exit(
        _run(lambda client: client.records.fetch_all(collection=collection, search=search))
    )
    if json_out:
        print_json({"status": outcome.status.value, "records": [r.to_wire() for r in outcome.records]})
        return
    print_records(outcome.records, title=f"Records ({outcome.status.value})")
    if outcome.message:
        console.print(f"[yellow]{outcome.message}[/yellow]")


@app.command("delete")
def delete(
    record_id: str = typer.Argument(..., help="Record id, temporary id or statement id."),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Delete a record (queued if the remote store is unreachable)."""
    outcome = unwrap_or_exit(_run(lambda client: client.records.delete(record_id)))
    output(
        {"status": outcome.status.value, "id": record_id, "message": outcome.message},
        as_json=json_out,
        title="Delete",
    )


@app.command("undo")
def undo(json_out: bool = typer.Option(False, "--json")) -> None:
    """Restore the most recently deleted record."""
    outcome = unwrap_or_exit(_run(lambda client: client.records.restore_last()))
    record = outcome.record
    output(
        {
            "status": outcome.status.value,
            "id": record.key if record else None,
            "reference": record.reference if record else None,
            "message": outcome.message,
        },
        as_json=json_out,
        title="Undo",
    )


@token_app.command("set")
def token_set(token: str = typer.Argument(..., help="Bearer token issued by the server.")) -> None:
    """Store the bearer credential used for mutations."""

    async def op(client: QuoteSyncClient) -> None:
        client.set_credential(token)

    _run(op)
    console.print("[green]Credential stored.[/green]")


@token_app.command("clear")
def token_clear() -> None:
    """Forget the stored credential."""

    async def op(client: QuoteSyncClient) -> None:
        client.clear_credential()

    _run(op)
    console.print("Credential cleared.")
