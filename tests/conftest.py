"""
Shared pytest fixtures and configuration for mailspine tests.

This module provides:
- An in-memory SQLite database with the core tables
- Repository, locator and lock manager wired to that database
- A recording sender for driver tests
- A fixed reference time so assertions never depend on the wall clock
"""

import sys
from datetime import UTC, datetime
from pathlib import Path

import pytest

# Ensure mailspine package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from mailspine.core.schema import create_core_tables
from mailspine.core.scheduling import (
    LockManager,
    ScheduleRecord,
    SqlDueItemLocator,
    TemplateScheduleRepository,
)
from mailspine.core.sqlite_conn import SqliteConnection


class RecordingSender:
    """Sender double: records every template it is asked to send."""

    def __init__(self, result: bool = True, error: Exception | None = None):
        self.result = result
        self.error = error
        self.sent: list[str] = []

    async def send(self, record: ScheduleRecord) -> bool:
        self.sent.append(record.template_id)
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def now() -> datetime:
    """Fixed reference time: Wednesday 4 March 2026, 12:00 UTC."""
    return datetime(2026, 3, 4, 12, 0, tzinfo=UTC)


@pytest.fixture
def db_conn():
    """In-memory SQLite database with the core tables."""
    conn = SqliteConnection(":memory:")
    create_core_tables(conn)
    yield conn
    conn.close()


@pytest.fixture
def repository(db_conn):
    """TemplateScheduleRepository on the test database."""
    return TemplateScheduleRepository(db_conn)


@pytest.fixture
def locator(db_conn):
    """SqlDueItemLocator on the test database."""
    return SqlDueItemLocator(db_conn)


@pytest.fixture
def lock_manager(db_conn):
    """LockManager with a fixed instance id."""
    return LockManager(db_conn, instance_id="test-instance")


@pytest.fixture
def sender():
    """Sender that always succeeds."""
    return RecordingSender()
