"""
CLI utility helpers: output formatting, error rendering, connections.
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import asdict
from datetime import datetime
from enum import Enum
from typing import Any, NoReturn

import typer
from rich.console import Console
from rich.table import Table

from mailspine.core.errors import MailspineError, ValidationError
from mailspine.core.settings import get_settings
from mailspine.core.sqlite_conn import SqliteConnection
from mailspine.core.timestamps import from_iso8601, utc_now

console = Console()
err_console = Console(stderr=True)


# ── Connection helper ────────────────────────────────────────────────────


def get_connection(database: str | None = None) -> SqliteConnection:
    """Open a database connection.  Defaults to the configured database.

    Use it as a context manager so the connection is closed on exit.
    """
    return SqliteConnection(database or get_settings().database)


def parse_time(value: str | None, option: str = "--now") -> datetime:
    """Parse an ISO-8601 option value; ``None`` means the current time.

    Naive values are taken as UTC.
    """
    if value is None:
        return utc_now()
    try:
        return from_iso8601(value)
    except ValueError:
        raise ValidationError(
            f"{option} is not an ISO-8601 timestamp: {value!r}", field=option, value=value
        ) from None


# ── Error helpers ────────────────────────────────────────────────────────


def fail(code: str, message: str) -> NoReturn:
    """Print an error line to stderr and exit 1."""
    err_console.print(f"[bold red]Error[/bold red] ({code}): {message}")
    raise typer.Exit(code=1)


@contextmanager
def handle_errors() -> Iterator[None]:
    """Turn ``MailspineError`` into the standard error line and exit 1."""
    try:
        yield
    except MailspineError as e:
        fail(e.category.value, e.message)


# ── Output helpers ───────────────────────────────────────────────────────


def to_plain(obj: Any) -> Any:
    """Convert dataclasses, enums and datetimes to JSON-friendly values."""
    if hasattr(obj, "__dataclass_fields__"):
        return {k: to_plain(v) for k, v in asdict(obj).items()}
    if isinstance(obj, dict):
        return {k: to_plain(v) for k, v in obj.items()}
    if isinstance(obj, list | tuple):
        return [to_plain(v) for v in obj]
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, datetime):
        return obj.isoformat()
    return obj


def output(data: Any, *, as_json: bool = False, title: str = "") -> None:
    """Render a dict or list of dicts to the terminal."""
    payload = to_plain(data)

    if as_json:
        console.print_json(json.dumps(payload, default=str))
        return

    if isinstance(payload, list):
        if not payload:
            console.print("[dim]No items.[/dim]")
            return
        _print_table(payload, title=title)
    else:
        _print_dict(payload, title=title)


# ── Private helpers ──────────────────────────────────────────────────────


def _print_table(items: list[dict[str, Any]], *, title: str = "") -> None:
    """Render a list of dicts as a Rich table."""
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in items[0]:
        table.add_column(col, overflow="fold")
    for item in items:
        table.add_row(*(str(v) for v in item.values()))
    console.print(table)


def _print_dict(data: dict[str, Any], *, title: str = "") -> None:
    """Render a single dict as key-value pairs."""
    if title:
        console.print(f"[bold]{title}[/bold]")
    for k, v in data.items():
        console.print(f"  [cyan]{k}[/cyan]: {v}")
