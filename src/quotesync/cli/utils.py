"""
CLI utility helpers - output formatting and Result rendering.
"""

from __future__ import annotations

import json
from dataclasses import asdict
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from quotesync.core.errors import AuthError, QuoteSyncError
from quotesync.core.models import Record
from quotesync.core.result import Err, Ok, Result

console = Console()
err_console = Console(stderr=True)


def _to_dict(obj: Any) -> dict[str, Any]:
    """Convert dataclass / pydantic model / dict to plain dict."""
    if isinstance(obj, Record):
        return obj.to_wire()
    if hasattr(obj, "model_dump"):
        return obj.model_dump(mode="json")
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if hasattr(obj, "__dataclass_fields__"):
        return asdict(obj)
    if isinstance(obj, dict):
        return obj
    return {"value": str(obj)}


def unwrap_or_exit(result: Result[Any]) -> Any:
    """Return the value of an ``Ok`` or print the error and exit 1."""
    match result:
        case Ok(value):
            return value
        case Err(error):
            fail(error)


def fail(error: Exception | str) -> None:
    if isinstance(error, QuoteSyncError):
        err_console.print(f"[bold red]Error[/bold red] ({error.category.value}): {error.message}")
        if isinstance(error, AuthError):
            err_console.print("Store a credential with [bold]quotesync token set TOKEN[/bold].")
    else:
        err_console.print(f"[bold red]Error[/bold red]: {error}")
    raise typer.Exit(code=1)


def print_json(payload: Any) -> None:
    console.print_json(json.dumps(payload, default=str, ensure_ascii=False))


def print_records(records: list[Record], *, title: str = "") -> None:
    """Render records as a Rich table."""
    if not records:
        console.print("[dim]No records.[/dim]")
        return
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    table.add_column("id", overflow="fold")
    table.add_column("reference")
    table.add_column("collection")
    table.add_column("statements", justify="right")
    table.add_column("pending")
    for record in records:
        table.add_row(
            record.key or "",
            record.reference,
            record.collection.value,
            str(len(record.statements)),
            "yes" if record.pending_sync else "",
        )
    console.print(table)


def print_dict(data: dict[str, Any], *, title: str = "") -> None:
    """Render a single dict as key-value pairs."""
    if title:
        console.print(f"[bold]{title}[/bold]")
    for k, v in data.items():
        console.print(f"  [cyan]{k}[/cyan]: {v}")


def output(obj: Any, *, as_json: bool = False, title: str = "") -> None:
    if as_json:
        print_json(_to_dict(obj))
    else:
        print_dict(_to_dict(obj), title=title)
