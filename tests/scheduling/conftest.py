"""Pytest fixtures for scheduling tests."""

from datetime import datetime

import pytest

from mailspine.core.scheduling import (
    DispatchService,
    ScheduleEdit,
    ScheduleRecord,
    ScheduleType,
    ScheduleUnit,
    SendingMethod,
    ThreadSchedulerBackend,
)


@pytest.fixture
def backend():
    """Create a ThreadSchedulerBackend."""
    return ThreadSchedulerBackend()


@pytest.fixture
def make_fixed(repository):
    """Register a template with a fixed-date schedule."""

    def _make(template_id: str, when: datetime) -> ScheduleRecord:
        repository.create(template_id)
        return repository.save_schedule(
            template_id,
            ScheduleEdit(
                sending_method=SendingMethod.SCHEDULED,
                schedule_type=ScheduleType.FIXED_DATE,
                schedule_date=when,
            ),
        )

    return _make


@pytest.fixture
def make_repeating(repository):
    """Register a template with a repeating schedule."""

    def _make(
        template_id: str,
        measure: int = 1,
        unit: ScheduleUnit = ScheduleUnit.DAY,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> ScheduleRecord:
        repository.create(template_id)
        return repository.save_schedule(
            template_id,
            ScheduleEdit(
                sending_method=SendingMethod.SCHEDULED,
                schedule_type=ScheduleType.REPEATING,
                schedule_measure=measure,
                schedule_unit=unit,
                schedule_start_date=start,
                schedule_end_date=end,
            ),
        )

    return _make


@pytest.fixture
def service(backend, repository, locator, lock_manager, sender, now):
    """DispatchService whose clock is pinned to ``now``."""
    return DispatchService(
        backend=backend,
        repository=repository,
        locator=locator,
        lock_manager=lock_manager,
        sender=sender,
        interval_seconds=0.05,
        clock=lambda: now,
    )
