"""
SQL dialect abstraction for the template store and lock manager.

The store queries are plain ANSI SQL except for parameter placeholders,
``INSERT OR IGNORE`` and boolean literals. A ``Dialect`` returns those
fragments so the same repository code runs on SQLite and PostgreSQL.

Examples:
    >>> SQLiteDialect().placeholders(3)
    '?, ?, ?'
    >>> PostgreSQLDialect().insert_or_ignore("core_template_locks", ["template_id", "locked_by"])
    'INSERT INTO core_template_locks (template_id, locked_by) VALUES (%s, %s) ON CONFLICT DO NOTHING'

Tags:
    dialect, sql, portability, database, mailspine
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class Dialect(Protocol):
    """SQL dialect contract.

    Every method returns a **SQL fragment** (string) valid for the target
    database.
    """

    @property
    def name(self) -> str:
        """Human-readable dialect name (e.g. ``'sqlite'``)."""
        ...

    def placeholder(self, index: int) -> str:
        """Single positional placeholder (0-based index)."""
        ...

    def placeholders(self, count: int) -> str:
        """Comma-separated placeholder list."""
        ...

    def insert_or_ignore(self, table: str, columns: list[str]) -> str:
        """``INSERT … ON CONFLICT DO NOTHING`` (or equivalent)."""
        ...

    def boolean_true(self) -> str:
        """SQL literal for boolean true."""
        ...

    def boolean_false(self) -> str:
        """SQL literal for boolean false."""
        ...


class SQLiteDialect:
    """SQLite dialect: ``?`` placeholders."""

    @property
    def name(self) -> str:
        return "sqlite"

    def placeholder(self, index: int) -> str:  # noqa: ARG002
        return "?"

    def placeholders(self, count: int) -> str:
        return ", ".join("?" for _ in range(count))

    def insert_or_ignore(self, table: str, columns: list[str]) -> str:
        cols = ", ".join(columns)
        ph = self.placeholders(len(columns))
        return f"INSERT OR IGNORE INTO {table} ({cols}) VALUES ({ph})"

    def boolean_true(self) -> str:
        return "1"

    def boolean_false(self) -> str:
        return "0"


class PostgreSQLDialect:
    """PostgreSQL dialect: ``%s`` placeholders (psycopg2)."""

    @property
    def name(self) -> str:
        return "postgresql"

    def placeholder(self, index: int) -> str:  # noqa: ARG002
        return "%s"

    def placeholders(self, count: int) -> str:
        return ", ".join("%s" for _ in range(count))

    def insert_or_ignore(self, table: str, columns: list[str]) -> str:
        cols = ", ".join(columns)
        ph = self.placeholders(len(columns))
        return f"INSERT INTO {table} ({cols}) VALUES ({ph}) ON CONFLICT DO NOTHING"

    def boolean_true(self) -> str:
        return "TRUE"

    def boolean_false(self) -> str:
        return "FALSE"


__all__ = ["Dialect", "SQLiteDialect", "PostgreSQLDialect"]
