"""Due-item locator - which templates must fire at ``now``.

Two read-only queries over the template store, one per schedule type.
Neither re-checks the repeating window: reconciliation clears
``schedule_next_send_date`` once a window closes, so a record with a
next-send date is by construction inside its window.

Architecture:
    ::

        due_fixed_date(now)                 due_repeating(now)
        ┌──────────────────────────────┐    ┌──────────────────────────────┐
        │ sending_method = scheduled   │    │ sending_method = scheduled   │
        │ schedule_type  = fixed_date  │    │ schedule_type  = repeating   │
        │ schedule_sent  false or NULL │    │ next_send_date IS NOT NULL   │
        │ schedule_date  <= now        │    │ next_send_date <= now        │
        │ ORDER BY date, template_id   │    │ ORDER BY next, template_id   │
        └──────────────────────────────┘    └──────────────────────────────┘

Tags:
    mailspine, scheduling, query, protocol, sql
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol, runtime_checkable

from mailspine.core.dialect import Dialect, SQLiteDialect
from mailspine.core.protocols import Connection
from mailspine.core.scheduling.types import ScheduleType, SendingMethod
from mailspine.core.timestamps import to_iso8601


@runtime_checkable
class DueItemLocator(Protocol):
    """Finds template ids that are due at a given instant."""

    def due_fixed_date(self, now: datetime) -> list[str]:
        """Unsent fixed-date templates whose send date has passed."""
        ...

    def due_repeating(self, now: datetime) -> list[str]:
        """Repeating templates whose next send date has passed."""
        ...


class SqlDueItemLocator:
    """``DueItemLocator`` over ``core_template_schedules``.

    Example:
        >>> locator = SqlDueItemLocator(conn)
        >>> locator.due_fixed_date(datetime(2026, 3, 1, 9, tzinfo=UTC))
        ['launch-announcement']
    """

    def __init__(self, conn: Connection, dialect: Dialect | None = None) -> None:
        self.conn = conn
        self.dialect: Dialect = dialect or SQLiteDialect()

    def due_fixed_date(self, now: datetime) -> list[str]:
        ph = self.dialect.placeholder
        cursor = self.conn.execute(
            f"""
            SELECT template_id FROM core_template_schedules
            WHERE sending_method = {ph(0)}
              AND schedule_type = {ph(1)}
              AND (schedule_sent IS NULL OR schedule_sent = {self.dialect.boolean_false()})
              AND schedule_date IS NOT NULL
              AND schedule_date <= {ph(2)}
            ORDER BY schedule_date, template_id
            """,
            (SendingMethod.SCHEDULED.value, ScheduleType.FIXED_DATE.value, to_iso8601(now)),
        )
        return [row[0] for row in cursor.fetchall()]

    def due_repeating(self, now: datetime) -> list[str]:
        ph = self.dialect.placeholder
        cursor = self.conn.execute(
            f"""
            SELECT template_id FROM core_template_schedules
            WHERE sending_method = {ph(0)}
              AND schedule_type = {ph(1)}
              AND schedule_next_send_date IS NOT NULL
              AND schedule_next_send_date <= {ph(2)}
            ORDER BY schedule_next_send_date, template_id
            """,
            (SendingMethod.SCHEDULED.value, ScheduleType.REPEATING.value, to_iso8601(now)),
        )
        return [row[0] for row in cursor.fetchall()]


__all__ = ["DueItemLocator", "SqlDueItemLocator"]
