"""Driver collaborator protocols.

┌──────────────────────────────────────────────────────────────────────────────┐
│  DISPATCH COLLABORATORS                                                       │
│                                                                               │
│  The driver is "beat-as-poller": a backend decides WHEN ticks happen,        │
│  DispatchService decides WHAT a tick does, and a sender performs the         │
│  actual delivery.                                                             │
│                                                                               │
│   ┌─────────────────┐    tick()    ┌─────────────────┐   send(record)        │
│   │ SchedulerBackend│ ───────────► │ DispatchService │ ─────────────► Sender │
│   │ (thread)        │              │ - housekeep     │ ◄───────────── bool   │
│   └─────────────────┘              │ - locate due    │                       │
│                                    │ - lock, send    │                       │
│                                    │ - reconcile     │                       │
│                                    └─────────────────┘                       │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from mailspine.core.scheduling.types import ScheduleRecord

TickCallback = Callable[[], Awaitable[None]]


@runtime_checkable
class SchedulerBackend(Protocol):
    """Timing backend: calls the tick callback every ``interval_seconds``.

    All dispatch logic lives in ``DispatchService``.
    """

    name: str

    def start(
        self,
        tick_callback: TickCallback,
        interval_seconds: float = 10.0,
    ) -> None:
        """Start the loop.

        Args:
            tick_callback: Async function to call on each tick.
            interval_seconds: How often to tick (default: 10s).
        """
        ...

    def stop(self) -> None:
        """Stop the loop, waiting for the current tick to finish."""
        ...

    def health(self) -> dict[str, Any]:
        """Backend health: healthy, backend, tick_count, last_tick."""
        ...


@runtime_checkable
class MessageSender(Protocol):
    """Delivers a template's message.

    Return True when the message went out. Returning False or raising both
    count as "not sent"; the driver logs and carries on.
    """

    async def send(self, record: ScheduleRecord) -> bool:
        ...


@dataclass
class BackendHealth:
    """Structured backend health response."""

    healthy: bool
    backend: str
    tick_count: int = 0
    last_tick: datetime | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "healthy": self.healthy,
            "backend": self.backend,
            "tick_count": self.tick_count,
            "last_tick": self.last_tick.isoformat() if self.last_tick else None,
            **self.extra,
        }


__all__ = ["TickCallback", "SchedulerBackend", "MessageSender", "BackendHealth"]
