"""Scheduled-dispatch package for mailspine.

Manifesto:
    A template that sends "every 2 weeks from 1 March until June" needs
    three things: a calculator that knows when the next send is, a
    reconciler that keeps the stored schedule fields consistent when the
    user switches between manual, fixed-date and repeating sending, and
    queries that find what is due. All three are pure with respect to the
    clock; the dispatch service is the only part that reads it.

┌──────────────────────────────────────────────────────────────────────────────┐
│  MAILSPINE DISPATCH                                                           │
│                                                                               │
│  Quick Start:                                                                 │
│  ┌──────────────────────────────────────────────────────────────────────┐   │
│  │   from mailspine.core.scheduling import create_dispatcher            │   │
│  │                                                                      │   │
│  │   dispatcher = create_dispatcher(conn, sender)                       │   │
│  │   dispatcher.start()                                                 │   │
│  └──────────────────────────────────────────────────────────────────────┘   │
│                                                                               │
│  Pure core:                                                                   │
│  - recurrence.compute_candidate(anchor, measure, unit, now)                  │
│  - reconciler.reconcile(record, now, mark_as_sent) → PartialUpdate           │
│  - locator.DueItemLocator.due_fixed_date(now) / due_repeating(now)           │
│                                                                               │
│  Driver side:                                                                 │
│  - TemplateScheduleRepository  get_record / apply_update (versioned)          │
│  - LockManager                 per-template TTL locks                         │
│  - DispatchService             tick → housekeep → process due → persist       │
│  - ThreadSchedulerBackend      daemon-thread ticking                          │
│                                                                               │
│  Tables: core_template_schedules, core_template_locks                        │
└──────────────────────────────────────────────────────────────────────────────┘

Guardrails:
    ❌ Reading the clock inside reconcile() or compute_candidate()
    ✅ Read ``now`` once per tick and pass it down
    ❌ Writing a reconciler update without a version check
    ✅ ``apply_update(id, update, expected_version=record.version)``
    ❌ Treating ``None`` in a PartialUpdate as "leave unchanged"
    ✅ ``KEEP`` leaves a field alone, ``None`` clears it

Tags:
    mailspine, scheduling, recurrence, reconciliation, distributed-locks,
    beat-as-poller
"""

from __future__ import annotations

from mailspine.core.protocols import Connection
from mailspine.core.settings import MailspineSettings, get_settings

# Lock Manager
from .lock_manager import LockManager

# Locator
from .locator import DueItemLocator, SqlDueItemLocator

# Protocol
from .protocol import BackendHealth, MessageSender, SchedulerBackend

# Pure core
from .reconciler import reconcile
from .recurrence import compute_candidate, whole_units_between

# Repository
from .repository import ScheduleEdit, TemplateScheduleRepository

# Service
from .service import (
    DispatchHealth,
    DispatchOutcome,
    DispatchService,
    DispatchStats,
    housekeep,
)

# Backends
from .thread_backend import ThreadSchedulerBackend

# Types
from .types import (
    KEEP,
    PartialUpdate,
    ScheduleRecord,
    ScheduleType,
    ScheduleUnit,
    SendingMethod,
)

__all__ = [
    # Types
    "KEEP",
    "PartialUpdate",
    "ScheduleRecord",
    "ScheduleType",
    "ScheduleUnit",
    "SendingMethod",
    # Pure core
    "compute_candidate",
    "whole_units_between",
    "reconcile",
    "DueItemLocator",
    "SqlDueItemLocator",
    # Protocol
    "SchedulerBackend",
    "MessageSender",
    "BackendHealth",
    # Backends
    "ThreadSchedulerBackend",
    # Repository
    "TemplateScheduleRepository",
    "ScheduleEdit",
    # Lock Manager
    "LockManager",
    # Service
    "DispatchService",
    "DispatchOutcome",
    "DispatchStats",
    "DispatchHealth",
    "housekeep",
    "create_dispatcher",
]


def create_dispatcher(
    conn: Connection,
    sender: MessageSender,
    settings: MailspineSettings | None = None,
) -> DispatchService:
    """Factory function wiring a complete dispatch service.

    Tick interval, lock TTL, housekeeping cadence and lock owner id come
    from ``settings`` (``get_settings()`` when omitted).

    Args:
        conn: Database connection
        sender: Delivers a template's message
        settings: Driver settings

    Example:
        >>> dispatcher = create_dispatcher(conn, sender)
        >>> dispatcher.start()
    """
    settings = settings or get_settings()
    return DispatchService(
        repository=TemplateScheduleRepository(conn),
        locator=SqlDueItemLocator(conn),
        lock_manager=LockManager(
            conn, instance_id=settings.instance_id, ttl_seconds=settings.lock_ttl_seconds
        ),
        sender=sender,
        backend=ThreadSchedulerBackend(),
        interval_seconds=settings.tick_interval_seconds,
        housekeeping_every=settings.housekeeping_every,
    )
