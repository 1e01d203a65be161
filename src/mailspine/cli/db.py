"""
CLI: ``mailspine db``: database management commands.
"""

from __future__ import annotations

import typer

from mailspine.cli.utils import get_connection, output
from mailspine.core.schema import CORE_TABLES, create_core_tables

app = typer.Typer(no_args_is_help=True)


@app.command()
def init(
    database: str | None = typer.Option(None, "--database", "-d", help="Database path"),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Initialise database schema (create tables)."""
    with get_connection(database) as conn:
        create_core_tables(conn)
    output({"tables": sorted(CORE_TABLES.values())}, as_json=json_out, title="Database Init")
