"""Recurrence calculator - next fire time of a repeating schedule.

Manifesto:
    The next fire time must depend only on the anchor, the interval and
    the ``now`` handed in by the caller. No clock reads, no stored state,
    no iteration from the anchor one step at a time: the number of elapsed
    intervals is computed directly, so a schedule anchored in 1900 costs
    the same as one anchored yesterday.

Architecture:
    ::

        compute_candidate(anchor, measure, unit, now)
        ┌───────────────────────────────────────────────────────────────┐
        │ anchor is None  ──►  now + measure·unit                       │
        │                                                               │
        │ anchor present  ──►  elapsed = whole_units_between(anchor, now)│
        │                      k       = elapsed // measure + 1         │
        │                      result  = anchor + k·measure·unit        │
        │                      (k advanced while result <= now)         │
        └───────────────────────────────────────────────────────────────┘

        minute/hour/day/week  → fixed timedelta, floor division
        month/year            → dateutil.relativedelta from the anchor,
                                month-end clamped (Jan 31 + 1 month = Feb 28)

Examples:
    >>> from datetime import datetime
    >>> compute_candidate(datetime(1900, 1, 1, 9), 1, "day", datetime(2026, 3, 4, 12))
    datetime.datetime(2026, 3, 5, 9, 0)
    >>> compute_candidate(None, 2, "day", datetime(2026, 3, 4, 12))
    datetime.datetime(2026, 3, 6, 12, 0)

Tags:
    mailspine, scheduling, recurrence, relativedelta, pure-function
"""

from __future__ import annotations

from datetime import datetime, timedelta

from dateutil.relativedelta import relativedelta

from mailspine.core.errors import InvalidScheduleError
from mailspine.core.scheduling.types import ScheduleUnit

_FIXED_UNITS: dict[ScheduleUnit, timedelta] = {
    ScheduleUnit.MINUTE: timedelta(minutes=1),
    ScheduleUnit.HOUR: timedelta(hours=1),
    ScheduleUnit.DAY: timedelta(days=1),
    ScheduleUnit.WEEK: timedelta(weeks=1),
}

# Calendar units expressed in months
_CALENDAR_UNITS: dict[ScheduleUnit, int] = {
    ScheduleUnit.MONTH: 1,
    ScheduleUnit.YEAR: 12,
}


def coerce_unit(unit: ScheduleUnit | str | None) -> ScheduleUnit:
    """Return ``unit`` as a ``ScheduleUnit`` or raise ``InvalidScheduleError``."""
    try:
        return ScheduleUnit(unit)
    except ValueError:
        raise InvalidScheduleError(
            f"Unknown schedule unit: {unit!r}",
            field="schedule_unit",
            value=unit,
            constraint=", ".join(u.value for u in ScheduleUnit),
        ) from None


def check_measure(measure: int | None) -> int:
    """Return ``measure`` when it is a positive integer, else raise."""
    if isinstance(measure, bool) or not isinstance(measure, int) or measure <= 0:
        raise InvalidScheduleError(
            f"Schedule measure must be a positive integer, got {measure!r}",
            field="schedule_measure",
            value=measure,
            constraint="> 0",
        )
    return measure


def _offset(unit: ScheduleUnit, count: int) -> timedelta | relativedelta:
    if unit in _FIXED_UNITS:
        return _FIXED_UNITS[unit] * count
    return relativedelta(months=_CALENDAR_UNITS[unit] * count)


def check_comparable(value: datetime, now: datetime, field: str = "schedule_start_date") -> None:
    """Raise ``InvalidScheduleError`` when ``value`` and ``now`` mix naive and aware."""
    if (value.utcoffset() is None) != (now.utcoffset() is None):
        raise InvalidScheduleError(
            f"{field} and now must both be timezone-aware or both naive",
            field=field,
            value=value,
        )


def whole_units_between(start: datetime, end: datetime, unit: ScheduleUnit | str) -> int:
    """Number of whole ``unit`` intervals from ``start`` to ``end``.

    Floors partial intervals; returns 0 when ``end`` precedes ``start``.
    Month and year counts follow ``relativedelta``: 31 Jan to 27 Feb is
    zero months, 31 Jan to 28 Feb (the clamped month end) is one.
    """
    unit = coerce_unit(unit)
    if end <= start:
        return 0
    if unit in _FIXED_UNITS:
        return (end - start) // _FIXED_UNITS[unit]
    delta = relativedelta(end, start)
    return (delta.years * 12 + delta.months) // _CALENDAR_UNITS[unit]


def compute_candidate(
    anchor: datetime | None,
    measure: int,
    unit: ScheduleUnit | str,
    now: datetime,
) -> datetime:
    """Smallest ``anchor + k·measure·unit`` (k >= 1) strictly after ``now``.

    Without an anchor the interval is counted from ``now`` itself.

    Raises:
        InvalidScheduleError: ``measure`` is not a positive integer, ``unit``
            is not one of minute/hour/day/week/month/year, or ``anchor`` and
            ``now`` mix naive and aware datetimes.
    """
    unit = coerce_unit(unit)
    measure = check_measure(measure)

    if anchor is None:
        return now + _offset(unit, measure)

    check_comparable(anchor, now)
    k = whole_units_between(anchor, now, unit) // measure + 1
    candidate = anchor + _offset(unit, k * measure)
    # Month-end clamping can land on or before now (31 Jan -> 28 Feb)
    while candidate <= now:
        k += 1
        candidate = anchor + _offset(unit, k * measure)
    return candidate


__all__ = [
    "compute_candidate",
    "whole_units_between",
    "coerce_unit",
    "check_measure",
    "check_comparable",
]
