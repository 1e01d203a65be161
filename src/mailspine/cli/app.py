"""
Root Typer application for the mailspine CLI.
"""

from __future__ import annotations

import sys

import typer
from typer import Typer

from mailspine import __version__
from mailspine.core.logging import configure_logging
from mailspine.cli.utils import handle_errors
from mailspine.core.settings import get_settings

app = Typer(
    name="mailspine",
    help="mailspine: scheduled dispatch for message templates.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"mailspine {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at the configured level."),
) -> None:
    """mailspine CLI: inspect schedules and find due templates."""
    with handle_errors():
        settings = get_settings()
    configure_logging(
        level=settings.log_level if verbose else "WARNING",
        json_format=settings.json_logs,
        stream=sys.stderr,
    )


# ── Sub-command registration ─────────────────────────────────────────────

from mailspine.cli.db import app as db_app  # noqa: E402
from mailspine.cli.schedule import app as sched_app  # noqa: E402

app.add_typer(db_app, name="db", help="Database operations.")
app.add_typer(sched_app, name="schedule", help="Template schedules.")
