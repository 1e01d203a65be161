"""Schedule field reconciler - which persisted fields must change.

Manifesto:
    Templates flip between manual, fixed-date and repeating sending while
    their old schedule fields linger in the row. Rather than trusting every
    edit path to tidy up, one pure function looks at the record and the
    current time and answers: which fields must be overwritten so the
    record is consistent again, and when does it fire next.

    The function never writes. The caller applies the returned
    ``PartialUpdate`` in one statement, or discards it.

Architecture:
    ::

        reconcile(record, now, mark_as_sent)
        │
        ├── MANUAL ───────────► clear every schedule field
        │
        ├── SCHEDULED/FIXED ──► clear repeating-only fields
        │                       (+ schedule_sent=True when mark_as_sent)
        │
        └── SCHEDULED/REPEAT ─► clear schedule_date, schedule_sent
                                ├── start > now      → next_send = None
                                ├── end < now        → next_send = None
                                └── in window        → candidate
                                    write candidate unless the stored
                                    next_send is still ahead and sooner

Invariants after applying the update:
    - manual      ⇒ every schedule field is None
    - fixed-date  ⇒ measure, unit, start, end, next_send are None
    - repeating   ⇒ schedule_date and schedule_sent are None, and
                    next_send is None outside [start, end], otherwise > now

Tags:
    mailspine, scheduling, reconciliation, state-machine, pure-function
"""

from __future__ import annotations

from datetime import datetime

from mailspine.core.errors import InvalidScheduleError
from mailspine.core.scheduling.recurrence import check_comparable, compute_candidate
from mailspine.core.scheduling.types import (
    FIXED_DATE_ONLY_FIELDS,
    KEEP,
    Keep,
    REPEATING_ONLY_FIELDS,
    SCHEDULE_FIELDS,
    PartialUpdate,
    ScheduleRecord,
    ScheduleType,
    SendingMethod,
)


def reconcile(record: ScheduleRecord, now: datetime, mark_as_sent: bool = False) -> PartialUpdate:
    """Fields of ``record`` that must change at ``now``.

    Args:
        record: Current schedule state of the template.
        now: Reference time; never read from the clock here.
        mark_as_sent: True right after a successful fixed-date send.

    Returns:
        Sparse update; fields absent from ``changes()`` stay as they are.

    Raises:
        InvalidScheduleError: a scheduled record has no schedule type, or a
            repeating record has a malformed measure/unit. Nothing may be
            applied in that case.
    """
    if record.sending_method == SendingMethod.MANUAL:
        return PartialUpdate.clearing(*SCHEDULE_FIELDS)

    if record.schedule_type == ScheduleType.FIXED_DATE:
        if mark_as_sent:
            return PartialUpdate.clearing(*REPEATING_ONLY_FIELDS, schedule_sent=True)
        return PartialUpdate.clearing(*REPEATING_ONLY_FIELDS)

    if record.schedule_type == ScheduleType.REPEATING:
        return PartialUpdate.clearing(
            *FIXED_DATE_ONLY_FIELDS,
            schedule_next_send_date=_next_send_date(record, now),
        )

    raise InvalidScheduleError(
        f"Scheduled template {record.template_id!r} has no schedule type",
        field="schedule_type",
        value=record.schedule_type,
    ).with_context(template_id=record.template_id, operation="reconcile")


def _next_send_date(record: ScheduleRecord, now: datetime) -> datetime | None | Keep:
    """New value for ``schedule_next_send_date``, or ``KEEP``."""
    start = record.schedule_start_date
    end = record.schedule_end_date
    for name in ("schedule_start_date", "schedule_end_date", "schedule_next_send_date"):
        value = getattr(record, name)
        if value is not None:
            check_comparable(value, now, field=name)

    if start is not None and start > now:
        return None
    if end is not None and end < now:
        return None

    candidate = compute_candidate(start, record.schedule_measure, record.schedule_unit, now)
    existing = record.schedule_next_send_date
    if existing is None or existing <= now or existing > candidate:
        return candidate
    return KEEP


__all__ = ["reconcile"]
