"""
CLI: ``mailspine schedule``: inspect and exercise template schedules.
"""

from __future__ import annotations

import typer

from mailspine.cli.utils import get_connection, handle_errors, output, parse_time
from mailspine.core.scheduling.locator import SqlDueItemLocator
from mailspine.core.scheduling.reconciler import reconcile
from mailspine.core.scheduling.recurrence import compute_candidate
from mailspine.core.scheduling.repository import ScheduleEdit, TemplateScheduleRepository
from mailspine.core.scheduling.service import housekeep as _housekeep
from mailspine.core.scheduling.types import ScheduleType, SendingMethod

app = typer.Typer(no_args_is_help=True)


@app.command("next")
def next_send(
    measure: int = typer.Option(..., "--measure", "-m", help="Interval count"),
    unit: str = typer.Option(..., "--unit", "-u", help="minute, hour, day, week, month, year"),
    anchor: str | None = typer.Option(None, "--anchor", help="Window start (ISO-8601)"),
    now: str | None = typer.Option(None, "--now", help="Reference time (ISO-8601)"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Compute the next fire time of a repeating schedule."""
    with handle_errors():
        reference = parse_time(now)
        start = parse_time(anchor, "--anchor") if anchor else None
        candidate = compute_candidate(start, measure, unit, reference)
    output(
        {"anchor": start, "now": reference, "next_send": candidate},
        as_json=json_out,
        title="Next Send",
    )


@app.command("due")
def due(
    now: str | None = typer.Option(None, "--now", help="Reference time (ISO-8601)"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List templates due at NOW, fixed-date first."""
    with handle_errors():
        reference = parse_time(now)
        with get_connection(database) as conn:
            locator = SqlDueItemLocator(conn)
            items = [
                {"template_id": template_id, "schedule_type": ScheduleType.FIXED_DATE}
                for template_id in locator.due_fixed_date(reference)
            ] + [
                {"template_id": template_id, "schedule_type": ScheduleType.REPEATING}
                for template_id in locator.due_repeating(reference)
            ]
    output(items, as_json=json_out, title="Due Templates")


@app.command("show")
def show(
    template_id: str = typer.Argument(..., help="Template ID"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show a template's schedule record."""
    with handle_errors():
        with get_connection(database) as conn:
            record = TemplateScheduleRepository(conn).get_record(template_id)
    output(record, as_json=json_out, title=f"Template: {template_id}")


@app.command("list")
def list_records(
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List every template schedule record."""
    with get_connection(database) as conn:
        records = TemplateScheduleRepository(conn).list_all()
    output(records, as_json=json_out, title="Template Schedules")


@app.command("create")
def create(
    template_id: str = typer.Argument(..., help="Template ID"),
    name: str = typer.Option("", "--name", help="Display name"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Register a template with manual sending."""
    with handle_errors():
        with get_connection(database) as conn:
            record = TemplateScheduleRepository(conn).create(template_id, name=name)
    output(record, as_json=json_out, title="Template Registered")


@app.command("set")
def set_schedule(
    template_id: str = typer.Argument(..., help="Template ID"),
    method: SendingMethod = typer.Option(SendingMethod.SCHEDULED, "--method"),
    schedule_type: ScheduleType | None = typer.Option(None, "--type"),
    date: str | None = typer.Option(None, "--date", help="Fixed send date (ISO-8601)"),
    measure: int | None = typer.Option(None, "--measure", "-m"),
    unit: str | None = typer.Option(None, "--unit", "-u"),
    start: str | None = typer.Option(None, "--start", help="Window start (ISO-8601)"),
    end: str | None = typer.Option(None, "--end", help="Window end (ISO-8601)"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Save a template's schedule settings."""
    with handle_errors():
        edit = ScheduleEdit(
            sending_method=method,
            schedule_type=schedule_type,
            schedule_date=parse_time(date, "--date") if date else None,
            schedule_measure=measure,
            schedule_unit=unit,
            schedule_start_date=parse_time(start, "--start") if start else None,
            schedule_end_date=parse_time(end, "--end") if end else None,
        )
        with get_connection(database) as conn:
            record = TemplateScheduleRepository(conn).save_schedule(template_id, edit)
    output(record, as_json=json_out, title="Schedule Saved")


@app.command("reconcile")
def reconcile_cmd(
    template_id: str = typer.Argument(..., help="Template ID"),
    now: str | None = typer.Option(None, "--now", help="Reference time (ISO-8601)"),
    mark_sent: bool = typer.Option(False, "--mark-sent", help="Record a fixed-date send"),
    apply: bool = typer.Option(False, "--apply", help="Persist the update"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show (and optionally persist) the fields that must change."""
    with handle_errors():
        reference = parse_time(now)
        with get_connection(database) as conn:
            repo = TemplateScheduleRepository(conn)
            record = repo.get_record(template_id)
            changes = reconcile(record, reference, mark_as_sent=mark_sent).without_noops(record)
            applied = False
            if apply:
                applied = repo.apply_update(
                    template_id, changes, expected_version=record.version, now=reference
                )
    output(
        {"template_id": template_id, "changes": changes.changes(), "applied": applied},
        as_json=json_out,
        title="Reconcile",
    )


@app.command("housekeep")
def housekeep(
    now: str | None = typer.Option(None, "--now", help="Reference time (ISO-8601)"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Reconcile every scheduled template once."""
    with handle_errors():
        reference = parse_time(now)
        with get_connection(database) as conn:
            written = _housekeep(TemplateScheduleRepository(conn), reference)
    output({"records_written": written}, as_json=json_out, title="Housekeeping")
