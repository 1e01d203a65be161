"""Mailspine Core -- foundation layer for the dispatch engine.

Architecture::

    Layer 1 -- Type System & Errors
        errors.py          Structured error hierarchy (MailspineError, ...)
        protocols.py       Connection protocol
        timestamps.py      ULID generation + UTC/ISO-8601 helpers (stdlib-only)

    Layer 2 -- Database
        dialect.py         SQL dialect abstraction (SQLite, PostgreSQL)
        sqlite_conn.py     sqlite3 adapter satisfying Connection
        schema.py          DDL registry + create_core_tables()

    Layer 3 -- Cross-Cutting Concerns
        logging.py         Structured logging (structlog)
        settings.py        MailspineSettings (pydantic-settings)

    Layer 4 -- Scheduling
        scheduling/        Recurrence, reconciler, locator, dispatch driver
"""
