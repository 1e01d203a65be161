"""
Canonical protocol definitions for mailspine.

Every module that needs a database connection imports ``Connection``
from here. The template store, the due-item locator and the lock manager
all accept any object with this shape: ``sqlite3.Connection``, the
:class:`~mailspine.core.sqlite_conn.SqliteConnection` adapter, or a
psycopg2 connection.

Guardrails:
    ❌ DON'T: Redefine Connection(Protocol) in other modules
    ✅ DO: Import from mailspine.core.protocols

Tags:
    protocol, connection, database, mailspine, contracts
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class Connection(Protocol):
    """
    Minimal SYNCHRONOUS connection interface for database operations.

    ``execute`` must return a cursor-like object exposing ``fetchone``,
    ``fetchall`` and ``rowcount``.

    Examples:
        >>> cursor = conn.execute("SELECT * FROM core_template_schedules WHERE template_id = ?", ("weekly",))
        >>> row = cursor.fetchone()
        >>> conn.commit()
    """

    def execute(self, sql: str, params: tuple = ()) -> Any:
        """Execute SQL statement with optional parameters. SYNC."""
        ...

    def commit(self) -> None:
        """Commit current transaction. SYNC."""
        ...

    def rollback(self) -> None:
        """Rollback current transaction. SYNC."""
        ...


__all__ = ["Connection"]
