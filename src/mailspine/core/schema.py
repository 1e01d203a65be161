"""
Tables backing the template schedule store and the dispatch locks.

Architecture:
    ::

        CORE_TABLES
        ┌────────────────────────────────────────────────────────────┐
        │ template_schedules → core_template_schedules               │
        │ template_locks     → core_template_locks                   │
        └────────────────────────────────────────────────────────────┘

        Timestamps are TEXT holding UTC ISO-8601 with microseconds
        ("2026-03-01T09:00:00.000000+00:00") so ORDER BY and <= compare
        chronologically. NULL is the only "unset" value.

Tags:
    schema, ddl, sqlite, mailspine, scheduling
"""

from __future__ import annotations

from mailspine.core.protocols import Connection

# =============================================================================
# TABLE NAMES
# =============================================================================

CORE_TABLES = {
    "template_schedules": "core_template_schedules",
    "template_locks": "core_template_locks",
}


# =============================================================================
# DDL STATEMENTS
# =============================================================================

CORE_DDL = {
    # One row per schedulable template. Only the schedule fields live here;
    # content, recipients and layout belong to the template store proper.
    "template_schedules": """
        CREATE TABLE IF NOT EXISTS core_template_schedules (
            template_id TEXT PRIMARY KEY,
            name TEXT NOT NULL DEFAULT '',

            sending_method TEXT NOT NULL DEFAULT 'manual',   -- manual, scheduled
            schedule_type TEXT,                              -- fixed_date, repeating

            -- fixed-date
            schedule_date TEXT,
            schedule_sent BOOLEAN,

            -- repeating
            schedule_measure INTEGER,
            schedule_unit TEXT,                              -- minute .. year
            schedule_start_date TEXT,
            schedule_end_date TEXT,
            schedule_next_send_date TEXT,

            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            version INTEGER NOT NULL DEFAULT 1
        )
    """,
    "template_schedules_idx_fixed": """
        CREATE INDEX IF NOT EXISTS idx_template_schedules_fixed
        ON core_template_schedules(sending_method, schedule_type, schedule_date)
    """,
    "template_schedules_idx_next": """
        CREATE INDEX IF NOT EXISTS idx_template_schedules_next
        ON core_template_schedules(sending_method, schedule_type, schedule_next_send_date)
    """,
    # At most one driver instance holds a template at a time.
    "template_locks": """
        CREATE TABLE IF NOT EXISTS core_template_locks (
            template_id TEXT PRIMARY KEY,
            locked_by TEXT NOT NULL,
            locked_at TEXT NOT NULL,
            expires_at TEXT NOT NULL
        )
    """,
}


def create_core_tables(conn: Connection) -> None:
    """
    Create the schedule and lock tables.

    Safe to call multiple times (CREATE IF NOT EXISTS).
    """
    for _name, ddl in CORE_DDL.items():
        conn.execute(ddl)
    conn.commit()


__all__ = ["CORE_TABLES", "CORE_DDL", "create_core_tables"]
