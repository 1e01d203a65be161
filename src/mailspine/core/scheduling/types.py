"""Schedule record and partial-update types.

Manifesto:
    The reconciler's answer is "overwrite these fields, leave the rest".
    A plain dict cannot tell "leave unchanged" apart from "set to NULL",
    and confusing the two silently un-schedules templates. ``PartialUpdate``
    therefore carries one slot per field holding either the ``KEEP``
    sentinel or the new value, where ``None`` is an explicit clear.

Architecture:
    ::

        ScheduleRecord (frozen)            PartialUpdate (frozen)
        ┌──────────────────────────┐       ┌──────────────────────────────┐
        │ template_id, version     │       │ schedule_type      KEEP|v|None│
        │ sending_method           │       │ schedule_date      KEEP|v|None│
        │ schedule_type            │       │ ...                           │
        │ schedule_date / _sent    │       │ changes() -> {field: value}   │
        │ measure / unit           │       │ apply_to(record) -> record    │
        │ start / end / next_send  │       └──────────────────────────────┘
        └──────────────────────────┘

Tags:
    mailspine, scheduling, dataclasses, enums, data-model
"""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from datetime import datetime
from enum import Enum
from typing import Any, Literal


class SendingMethod(str, Enum):
    """Whether scheduling applies to a template at all."""

    MANUAL = "manual"
    SCHEDULED = "scheduled"


class ScheduleType(str, Enum):
    """One-off send on a date, or recurring send inside a window."""

    FIXED_DATE = "fixed_date"
    REPEATING = "repeating"


class ScheduleUnit(str, Enum):
    """Recurrence interval units."""

    MINUTE = "minute"
    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


class _Keep(Enum):
    KEEP = "KEEP"

    def __repr__(self) -> str:
        return "KEEP"


KEEP = _Keep.KEEP
"""Marks a ``PartialUpdate`` slot whose field must be left unchanged."""

Keep = Literal[_Keep.KEEP]

SCHEDULE_FIELDS: tuple[str, ...] = (
    "schedule_type",
    "schedule_date",
    "schedule_sent",
    "schedule_measure",
    "schedule_unit",
    "schedule_start_date",
    "schedule_end_date",
    "schedule_next_send_date",
)

REPEATING_ONLY_FIELDS: tuple[str, ...] = (
    "schedule_start_date",
    "schedule_end_date",
    "schedule_unit",
    "schedule_measure",
    "schedule_next_send_date",
)

FIXED_DATE_ONLY_FIELDS: tuple[str, ...] = (
    "schedule_date",
    "schedule_sent",
)


@dataclass(frozen=True)
class ScheduleRecord:
    """Schedule state of one template (``core_template_schedules`` row).

    ``None`` means absent for every optional field.
    """

    template_id: str = ""
    sending_method: SendingMethod = SendingMethod.MANUAL
    schedule_type: ScheduleType | None = None
    schedule_date: datetime | None = None
    schedule_sent: bool | None = None
    schedule_measure: int | None = None
    schedule_unit: ScheduleUnit | None = None
    schedule_start_date: datetime | None = None
    schedule_end_date: datetime | None = None
    schedule_next_send_date: datetime | None = None
    version: int = 1

    @property
    def is_scheduled(self) -> bool:
        return self.sending_method == SendingMethod.SCHEDULED

    @property
    def is_fixed_date(self) -> bool:
        return self.is_scheduled and self.schedule_type == ScheduleType.FIXED_DATE

    @property
    def is_repeating(self) -> bool:
        return self.is_scheduled and self.schedule_type == ScheduleType.REPEATING

    def is_due(self, now: datetime) -> bool:
        """Same predicate the due-item queries apply, evaluated in memory."""
        if self.is_fixed_date:
            return (
                not self.schedule_sent
                and self.schedule_date is not None
                and self.schedule_date <= now
            )
        if self.is_repeating:
            return (
                self.schedule_next_send_date is not None
                and self.schedule_next_send_date <= now
            )
        return False


@dataclass(frozen=True)
class PartialUpdate:
    """Sparse set of field overwrites produced by the reconciler.

    Each slot is ``KEEP`` (no-op) or the value to write; ``None`` clears
    the field.
    """

    schedule_type: ScheduleType | None | Keep = KEEP
    schedule_date: datetime | None | Keep = KEEP
    schedule_sent: bool | None | Keep = KEEP
    schedule_measure: int | None | Keep = KEEP
    schedule_unit: ScheduleUnit | None | Keep = KEEP
    schedule_start_date: datetime | None | Keep = KEEP
    schedule_end_date: datetime | None | Keep = KEEP
    schedule_next_send_date: datetime | None | Keep = KEEP

    @classmethod
    def clearing(cls, *field_names: str, **values: Any) -> PartialUpdate:
        """Build an update that clears ``field_names`` and sets ``values``."""
        return cls(**{name: None for name in field_names}, **values)

    def changes(self) -> dict[str, Any]:
        """Fields to overwrite, in declaration order."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not KEEP
        }

    @property
    def is_empty(self) -> bool:
        return not self.changes()

    def without_noops(self, record: ScheduleRecord) -> PartialUpdate:
        """Drop overwrites that would write the value ``record`` already has."""
        return PartialUpdate(
            **{
                name: value
                for name, value in self.changes().items()
                if getattr(record, name) != value
            }
        )

    def apply_to(self, record: ScheduleRecord) -> ScheduleRecord:
        """Return ``record`` with this update's overwrites applied."""
        return replace(record, **self.changes())

    def __repr__(self) -> str:
        inner = ", ".join(f"{k}={v!r}" for k, v in self.changes().items())
        return f"PartialUpdate({inner})"


__all__ = [
    "SendingMethod",
    "ScheduleType",
    "ScheduleUnit",
    "KEEP",
    "SCHEDULE_FIELDS",
    "REPEATING_ONLY_FIELDS",
    "FIXED_DATE_ONLY_FIELDS",
    "ScheduleRecord",
    "PartialUpdate",
]
