"""Dispatch service - the driver loop around the pure scheduling core.

Manifesto:
    The calculator and reconciler never read the clock and never write.
    Something has to: read ``now`` once per tick, ask the locator what is
    due, send it, reconcile and persist. That loop is this service. It
    combines a timing backend, the template store, the lock manager and
    an injected sender, and keeps per-template failures from stopping
    the tick.

Tags:
    mailspine, scheduling, orchestrator, beat-as-poller, service

┌──────────────────────────────────────────────────────────────────────────────┐
│  DISPATCH SERVICE                                                             │
│                                                                               │
│   tick(now)                                                                   │
│   ├── every housekeeping_every ticks: housekeep(now)                          │
│   │     for each scheduled id not yet due: reconcile → apply if non-empty     │
│   ├── every lock_cleanup_every ticks: cleanup_expired_locks()                 │
│   └── for id in due_fixed_date(now) + due_repeating(now): process(id, now)   │
│                                                                               │
│   process(id, now)                                                            │
│   ├── acquire lock ─────────── held elsewhere → SKIPPED                       │
│   ├── get_record(id) ───────── no longer due  → SKIPPED                       │
│   ├── reconcile preview ────── window closed  → persist, SKIPPED              │
│   ├── sender.send(record) ──── False / raises → NOT_SENT                      │
│   ├── reconcile(record, now, mark_as_sent=sent)                               │
│   ├── apply_update(id, update, expected_version=record.version)               │
│   └── release lock (finally)                                                  │
│                                                                               │
│   Public API: start() stop() tick() process() housekeep() trigger()          │
│               health() get_stats() reset_stats()                              │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from mailspine.core.errors import (
    DispatchError,
    InvalidScheduleError,
    MailspineError,
    StaleRecordError,
    categorize_error,
    is_retryable,
)
from mailspine.core.logging import LogContext, get_logger
from mailspine.core.scheduling.lock_manager import LockManager
from mailspine.core.scheduling.locator import DueItemLocator
from mailspine.core.scheduling.protocol import MessageSender, SchedulerBackend
from mailspine.core.scheduling.reconciler import reconcile
from mailspine.core.scheduling.repository import TemplateScheduleRepository
from mailspine.core.scheduling.thread_backend import ThreadSchedulerBackend
from mailspine.core.scheduling.types import ScheduleRecord
from mailspine.core.timestamps import utc_now

logger = get_logger(__name__)

Clock = Callable[[], datetime]


class DispatchOutcome(str, Enum):
    """Result of processing one due template."""

    SENT = "sent"
    NOT_SENT = "not_sent"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class DispatchStats:
    """Counters for the dispatch service."""

    tick_count: int = 0
    templates_sent: int = 0
    templates_skipped: int = 0
    templates_failed: int = 0
    records_reconciled: int = 0
    last_tick: datetime | None = None
    last_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "tick_count": self.tick_count,
            "templates_sent": self.templates_sent,
            "templates_skipped": self.templates_skipped,
            "templates_failed": self.templates_failed,
            "records_reconciled": self.records_reconciled,
            "last_tick": self.last_tick.isoformat() if self.last_tick else None,
            "last_error": self.last_error,
        }


@dataclass
class DispatchHealth:
    """Health status for the dispatch service."""

    healthy: bool
    backend: dict[str, Any]
    templates_scheduled: int = 0
    active_locks: int = 0
    last_tick: datetime | None = None
    stats: DispatchStats = field(default_factory=DispatchStats)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "healthy": self.healthy,
            "backend": self.backend,
            "templates_scheduled": self.templates_scheduled,
            "active_locks": self.active_locks,
            "last_tick": self.last_tick.isoformat() if self.last_tick else None,
            "stats": self.stats.to_dict(),
        }


class DispatchService:
    """Periodic driver: locate due templates, send, reconcile, persist.

    Example:
        >>> service = DispatchService(
        ...     repository=TemplateScheduleRepository(conn),
        ...     locator=SqlDueItemLocator(conn),
        ...     lock_manager=LockManager(conn),
        ...     sender=my_sender,
        ... )
        >>> service.start()
        >>> # Later...
        >>> service.stop()
    """

    def __init__(
        self,
        repository: TemplateScheduleRepository,
        locator: DueItemLocator,
        lock_manager: LockManager,
        sender: MessageSender,
        backend: SchedulerBackend | None = None,
        interval_seconds: float = 10.0,
        housekeeping_every: int = 1,
        lock_cleanup_every: int = 6,
        clock: Clock = utc_now,
    ) -> None:
        """Initialize dispatch service.

        Args:
            repository: Template schedule store
            locator: Due-item queries
            lock_manager: Per-template lock manager
            sender: Delivers a template's message
            backend: Timing backend (defaults to ThreadSchedulerBackend)
            interval_seconds: Tick interval (default: 10s)
            housekeeping_every: Run housekeeping every N ticks
            lock_cleanup_every: Remove expired locks every N ticks
            clock: Source of ``now`` for ticks that are not given one
        """
        self.repository = repository
        self.locator = locator
        self.lock_manager = lock_manager
        self.sender = sender
        self.backend: SchedulerBackend = backend or ThreadSchedulerBackend()
        self.interval = interval_seconds
        self.housekeeping_every = housekeeping_every
        self.lock_cleanup_every = lock_cleanup_every
        self.clock = clock

        self._stats = DispatchStats()
        self._running = False

    # === Lifecycle ===

    def start(self) -> None:
        """Start ticking on the backend."""
        if self._running:
            logger.warning("dispatcher_already_running")
            return

        logger.info(
            "dispatcher_starting",
            backend=self.backend.name,
            interval_seconds=self.interval,
            instance_id=self.lock_manager.instance_id,
        )
        self.backend.start(self.tick, self.interval)
        self._running = True

    def stop(self) -> None:
        """Stop ticking; waits for the current tick to complete."""
        if not self._running:
            return

        self.backend.stop()
        self._running = False
        logger.info("dispatcher_stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    # === Tick Processing ===

    async def tick(self, now: datetime | None = None) -> None:
        """One pass of the driver loop.

        ``now`` is read from the clock once and handed to every call below.
        """
        now = now or self.clock()
        self._stats.tick_count += 1
        self._stats.last_tick = now

        try:
            if self._stats.tick_count % self.housekeeping_every == 0:
                self.housekeep(now)

            if self._stats.tick_count % self.lock_cleanup_every == 0:
                self.lock_manager.cleanup_expired_locks()

            due = self.locator.due_fixed_date(now) + self.locator.due_repeating(now)
            if not due:
                logger.debug("nothing_due", now=now.isoformat())
                return

            logger.info("templates_due", count=len(due))
            for template_id in due:
                await self.process(template_id, now)

        except Exception as e:
            self._stats.last_error = str(e)
            logger.exception("tick_failed")

    async def process(self, template_id: str, now: datetime) -> DispatchOutcome:
        """Send one due template and persist its reconciled schedule."""
        if not self.lock_manager.acquire(template_id):
            logger.debug("template_locked_elsewhere", template_id=template_id)
            self._stats.templates_skipped += 1
            return DispatchOutcome.SKIPPED

        try:
            with LogContext(template_id=template_id):
                record = self.repository.get_record(template_id)
                if not record.is_due(now):
                    logger.debug("template_no_longer_due")
                    self._stats.templates_skipped += 1
                    return DispatchOutcome.SKIPPED

                # Malformed schedules fail here, before anything is sent
                preview = reconcile(record, now)
                if record.is_repeating and preview.apply_to(record).schedule_next_send_date is None:
                    logger.info("schedule_window_closed")
                    self.repository.apply_update(
                        template_id,
                        preview.without_noops(record),
                        expected_version=record.version,
                        now=now,
                    )
                    self._stats.templates_skipped += 1
                    return DispatchOutcome.SKIPPED

                sent = await self._send(record)
                update = reconcile(record, now, mark_as_sent=sent).without_noops(record)
                self.repository.apply_update(
                    template_id, update, expected_version=record.version, now=now
                )

                if sent:
                    logger.info(
                        "template_sent",
                        next_send=_iso(update.changes().get("schedule_next_send_date")),
                    )
                    self._stats.templates_sent += 1
                    return DispatchOutcome.SENT

                self._stats.templates_failed += 1
                return DispatchOutcome.NOT_SENT

        except InvalidScheduleError as e:
            logger.warning("invalid_schedule", template_id=template_id, error=e.message)
            return self._failed(e)

        except StaleRecordError as e:
            logger.warning(
                "stale_record",
                template_id=template_id,
                expected_version=e.expected_version,
                retryable=is_retryable(e),
            )
            return self._failed(e)

        except MailspineError as e:
            logger.error("dispatch_failed", template_id=template_id, **e.to_dict())
            return self._failed(e)

        except Exception as e:
            logger.exception(
                "dispatch_failed",
                template_id=template_id,
                category=categorize_error(e).value,
                retryable=is_retryable(e),
            )
            return self._failed(e)

        finally:
            self.lock_manager.release(template_id)

    def housekeep(self, now: datetime) -> int:
        """Run one housekeeping pass; see :func:`housekeep`."""
        written = housekeep(self.repository, now)
        self._stats.records_reconciled += written
        return written

    async def _send(self, record: ScheduleRecord) -> bool:
        try:
            return bool(await self.sender.send(record))
        except Exception:
            logger.exception("send_failed")
            return False

    def _failed(self, error: Exception) -> DispatchOutcome:
        self._stats.templates_failed += 1
        self._stats.last_error = str(error)
        return DispatchOutcome.FAILED

    # === Manual Operations ===

    async def trigger(self, template_id: str, now: datetime | None = None) -> ScheduleRecord:
        """Send a template now, outside its schedule.

        The schedule itself is reconciled but not marked as sent, so a
        pending fixed-date send still happens. A record that is already due
        is left as it is for the next tick.

        Returns:
            The record as stored after the send

        Raises:
            TemplateNotFoundError: no such template
            LockError: another instance is dispatching the template
            DispatchError: the sender reported failure
        """
        now = now or self.clock()
        with self.lock_manager.hold(template_id), LogContext(template_id=template_id):
            record = self.repository.get_record(template_id)
            if not await self._send(record):
                raise DispatchError(f"Template {template_id} could not be sent").with_context(
                    template_id=template_id, operation="trigger"
                )
            logger.info("template_triggered")

            if record.is_scheduled and not record.is_due(now):
                update = reconcile(record, now).without_noops(record)
                self.repository.apply_update(
                    template_id, update, expected_version=record.version, now=now
                )
            return self.repository.get_record(template_id)

    # === Health & Stats ===

    def health(self) -> DispatchHealth:
        """Service health with backend status and counters."""
        backend_health = self.backend.health()
        return DispatchHealth(
            healthy=self._running and backend_health.get("healthy", False),
            backend=backend_health,
            templates_scheduled=self.repository.count_scheduled(),
            active_locks=len(self.lock_manager.list_active_locks()),
            last_tick=self._stats.last_tick,
            stats=self._stats,
        )

    def get_stats(self) -> DispatchStats:
        return self._stats

    def reset_stats(self) -> None:
        self._stats = DispatchStats()


def housekeep(repository: TemplateScheduleRepository, now: datetime) -> int:
    """Reconcile every scheduled record and persist non-empty updates.

    Gives repeating schedules whose window has opened a next-send date
    and clears it for those whose window has closed. Records that are due
    at ``now`` are left to the send path. Malformed records are logged
    and left as they are.

    Returns:
        Number of records written
    """
    written = 0
    for template_id in repository.list_scheduled_ids():
        try:
            record = repository.get_record(template_id)
            if record.is_due(now):
                # Left for process(), which reconciles after the send
                continue
            update = reconcile(record, now).without_noops(record)
            if repository.apply_update(
                template_id, update, expected_version=record.version, now=now
            ):
                written += 1
        except InvalidScheduleError as e:
            logger.warning("invalid_schedule", template_id=template_id, error=e.message)
        except MailspineError as e:
            # Deleted or changed concurrently; the next pass picks it up
            logger.debug("housekeeping_skipped", template_id=template_id, error=e.message)
        except Exception:
            logger.exception("housekeeping_failed", template_id=template_id)

    if written:
        logger.info("housekeeping_completed", records_written=written)
    return written


def _iso(value: Any) -> str | None:
    return value.isoformat() if isinstance(value, datetime) else None


__all__ = [
    "Clock",
    "DispatchOutcome",
    "DispatchStats",
    "DispatchHealth",
    "DispatchService",
    "housekeep",
]
