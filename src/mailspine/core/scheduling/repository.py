"""Template schedule repository - record storage and conditional updates.

Manifesto:
    The reconciler decides, the repository writes. Keeping persistence
    here lets the core stay pure and lets tests run against an in-memory
    SQLite database. Every write bumps ``version`` so a driver can apply
    its update conditionally and lose races loudly instead of silently.

Tags:
    mailspine, scheduling, repository, CRUD, optimistic-concurrency

┌──────────────────────────────────────────────────────────────────────────────┐
│  TEMPLATE SCHEDULE REPOSITORY                                                 │
│                                                                               │
│   Template-save path:                                                         │
│   ├── create(template_id, name) → ScheduleRecord   (manual by default)       │
│   ├── save_schedule(id, ScheduleEdit) → ScheduleRecord                       │
│   └── delete(id) → bool                                                      │
│                                                                               │
│   Dispatch collaborator:                                                      │
│   ├── get_record(id) → ScheduleRecord   (TemplateNotFoundError)              │
│   ├── apply_update(id, PartialUpdate, expected_version) → bool               │
│   │       UPDATE ... SET <changed fields>, version = version + 1             │
│   │       WHERE template_id = ? [AND version = ?]                            │
│   ├── list_scheduled_ids() → list[str]                                       │
│   └── count_scheduled() → int                                                │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from mailspine.core.dialect import Dialect, SQLiteDialect
from mailspine.core.errors import (
    InvalidScheduleError,
    StaleRecordError,
    StorageError,
    TemplateNotFoundError,
)
from mailspine.core.logging import get_logger
from mailspine.core.protocols import Connection
from mailspine.core.scheduling.recurrence import check_measure, coerce_unit
from mailspine.core.scheduling.types import (
    PartialUpdate,
    ScheduleRecord,
    ScheduleType,
    ScheduleUnit,
    SendingMethod,
)
from mailspine.core.timestamps import (
    ensure_utc,
    from_iso8601,
    generate_ulid,
    to_iso8601,
    utc_now,
)

logger = get_logger(__name__)

_TABLE = "core_template_schedules"

_COLUMNS = (
    "template_id",
    "sending_method",
    "schedule_type",
    "schedule_date",
    "schedule_sent",
    "schedule_measure",
    "schedule_unit",
    "schedule_start_date",
    "schedule_end_date",
    "schedule_next_send_date",
    "version",
)


# ---------------------------------------------------------------------------
# Edit DTO
# ---------------------------------------------------------------------------


@dataclass
class ScheduleEdit:
    """User edit of a template's schedule settings.

    Written as a whole: fields left as ``None`` are stored as absent.
    """

    sending_method: SendingMethod = SendingMethod.MANUAL
    schedule_type: ScheduleType | None = None
    schedule_date: datetime | None = None
    schedule_measure: int | None = None
    schedule_unit: ScheduleUnit | str | None = None
    schedule_start_date: datetime | None = None
    schedule_end_date: datetime | None = None

    def validate(self) -> None:
        """Reject edits the reconciler could not make sense of.

        Raises:
            InvalidScheduleError: on the first problem found
        """
        if SendingMethod(self.sending_method) == SendingMethod.MANUAL:
            return
        if self.schedule_type is None:
            raise InvalidScheduleError(
                "Scheduled sending requires a schedule type", field="schedule_type"
            )
        if ScheduleType(self.schedule_type) == ScheduleType.FIXED_DATE:
            if self.schedule_date is None:
                raise InvalidScheduleError(
                    "Fixed-date schedule requires a send date", field="schedule_date"
                )
            return
        check_measure(self.schedule_measure)
        coerce_unit(self.schedule_unit)
        if (
            self.schedule_start_date is not None
            and self.schedule_end_date is not None
            and ensure_utc(self.schedule_start_date) > ensure_utc(self.schedule_end_date)
        ):
            raise InvalidScheduleError(
                "Schedule window ends before it starts",
                field="schedule_end_date",
                value=self.schedule_end_date,
                constraint=">= schedule_start_date",
            )


# ---------------------------------------------------------------------------
# Repository Implementation
# ---------------------------------------------------------------------------


class TemplateScheduleRepository:
    """Store for template schedule records.

    Example:
        >>> repo = TemplateScheduleRepository(conn)
        >>> record = repo.create("weekly-digest", name="Weekly digest")
        >>> record.sending_method
        <SendingMethod.MANUAL: 'manual'>
        >>> repo.apply_update(record.template_id, update, expected_version=record.version)
        True
    """

    def __init__(self, conn: Connection, dialect: Dialect | None = None) -> None:
        """Initialize repository with database connection.

        Args:
            conn: Database connection (any backend satisfying Connection protocol)
            dialect: SQL dialect for portable queries. Defaults to SQLiteDialect.
        """
        self.conn = conn
        self.dialect: Dialect = dialect or SQLiteDialect()

    def _ph(self, count: int = 1) -> str:
        """Generate placeholder string for this dialect."""
        return self.dialect.placeholders(count)

    # === Template-save path ===

    def create(
        self,
        template_id: str | None = None,
        name: str = "",
        now: datetime | None = None,
    ) -> ScheduleRecord:
        """Register a template with manual sending.

        Args:
            template_id: Template identifier (ULID generated when omitted)
            name: Display name
            now: Creation timestamp (defaults to the current UTC time)
        """
        template_id = template_id or generate_ulid()
        if self.get(template_id) is not None:
            raise StorageError(f"Template already exists: {template_id}").with_context(
                template_id=template_id, operation="create"
            )
        stamp = to_iso8601(now or utc_now())

        self.conn.execute(
            f"""
            INSERT INTO {_TABLE} (
                template_id, name, sending_method, created_at, updated_at, version
            ) VALUES ({self._ph(6)})
            """,
            (template_id, name, SendingMethod.MANUAL.value, stamp, stamp, 1),
        )
        self.conn.commit()
        logger.debug("template_registered", template_id=template_id)

        return self.get_record(template_id)

    def save_schedule(
        self,
        template_id: str,
        edit: ScheduleEdit,
        now: datetime | None = None,
    ) -> ScheduleRecord:
        """Persist a user edit of the schedule settings.

        The cached ``schedule_sent`` flag and ``schedule_next_send_date``
        survive only while the schedule they describe is unchanged; otherwise
        they are reset and the reconciler settles them on its next pass.

        Raises:
            InvalidScheduleError: edit fails validation
            TemplateNotFoundError: no such template
        """
        edit.validate()
        current = self.get_record(template_id)

        method = SendingMethod(edit.sending_method)
        unit = coerce_unit(edit.schedule_unit) if edit.schedule_unit is not None else None
        schedule_type = ScheduleType(edit.schedule_type) if edit.schedule_type is not None else None

        date = _as_utc(edit.schedule_date)
        start = _as_utc(edit.schedule_start_date)
        end = _as_utc(edit.schedule_end_date)

        same_kind = current.sending_method == method and current.schedule_type == schedule_type
        sent = current.schedule_sent
        if not same_kind or current.schedule_date != date:
            sent = None
        next_send = current.schedule_next_send_date
        if not same_kind or (
            current.schedule_measure,
            current.schedule_unit,
            current.schedule_start_date,
            current.schedule_end_date,
        ) != (edit.schedule_measure, unit, start, end):
            next_send = None

        cursor = self.conn.execute(
            f"""
            UPDATE {_TABLE} SET
                sending_method = {self._ph()},
                schedule_type = {self._ph()},
                schedule_date = {self._ph()},
                schedule_sent = {self._ph()},
                schedule_measure = {self._ph()},
                schedule_unit = {self._ph()},
                schedule_start_date = {self._ph()},
                schedule_end_date = {self._ph()},
                schedule_next_send_date = {self._ph()},
                updated_at = {self._ph()},
                version = version + 1
            WHERE template_id = {self._ph()}
            """,
            (
                method.value,
                schedule_type.value if schedule_type else None,
                to_iso8601(date),
                sent,
                edit.schedule_measure,
                unit.value if unit else None,
                to_iso8601(start),
                to_iso8601(end),
                to_iso8601(next_send),
                to_iso8601(now or utc_now()),
                template_id,
            ),
        )
        self.conn.commit()
        if cursor.rowcount == 0:
            raise TemplateNotFoundError(template_id)

        logger.info(
            "schedule_saved",
            template_id=template_id,
            sending_method=method.value,
            schedule_type=schedule_type.value if schedule_type else None,
        )
        return self.get_record(template_id)

    def delete(self, template_id: str) -> bool:
        """Delete a template's schedule record.

        Returns:
            True if deleted, False if not found
        """
        cursor = self.conn.execute(
            f"DELETE FROM {_TABLE} WHERE template_id = {self._ph()}",
            (template_id,),
        )
        self.conn.commit()
        return cursor.rowcount > 0

    # === Dispatch collaborator ===

    def get(self, template_id: str) -> ScheduleRecord | None:
        """Get a record by template id, or None."""
        cursor = self.conn.execute(
            f"SELECT {', '.join(_COLUMNS)} FROM {_TABLE} WHERE template_id = {self._ph()}",
            (template_id,),
        )
        row = cursor.fetchone()
        if not row:
            return None
        return self._row_to_record(row)

    def get_record(self, template_id: str) -> ScheduleRecord:
        """Get a record by template id.

        Raises:
            TemplateNotFoundError: no such template
        """
        record = self.get(template_id)
        if record is None:
            raise TemplateNotFoundError(template_id)
        return record

    def apply_update(
        self,
        template_id: str,
        update: PartialUpdate,
        expected_version: int | None = None,
        now: datetime | None = None,
    ) -> bool:
        """Write the fields ``update`` overwrites, in a single statement.

        Args:
            template_id: Template to update
            update: Reconciler output
            expected_version: Only write if the stored version still matches
            now: ``updated_at`` stamp (defaults to the current UTC time)

        Returns:
            True when a row was written, False when ``update`` is empty.

        Raises:
            TemplateNotFoundError: no such template
            StaleRecordError: stored version differs from ``expected_version``
        """
        changes = update.changes()
        if not changes:
            return False

        set_parts = [f"{name} = {self._ph()}" for name in changes]
        params: list[Any] = [self._to_db(value) for value in changes.values()]

        set_parts.append(f"updated_at = {self._ph()}")
        params.append(to_iso8601(now or utc_now()))
        set_parts.append("version = version + 1")

        where = f"template_id = {self._ph()}"
        params.append(template_id)
        if expected_version is not None:
            where += f" AND version = {self._ph()}"
            params.append(expected_version)

        cursor = self.conn.execute(
            f"UPDATE {_TABLE} SET {', '.join(set_parts)} WHERE {where}",
            tuple(params),
        )
        self.conn.commit()

        if cursor.rowcount == 0:
            if self.get(template_id) is None:
                raise TemplateNotFoundError(template_id)
            raise StaleRecordError(template_id, expected_version)

        logger.debug("update_applied", template_id=template_id, fields=sorted(changes))
        return True

    def list_scheduled_ids(self) -> list[str]:
        """Ids of every template with scheduled sending."""
        cursor = self.conn.execute(
            f"SELECT template_id FROM {_TABLE} WHERE sending_method = {self._ph()} ORDER BY template_id",
            (SendingMethod.SCHEDULED.value,),
        )
        return [row[0] for row in cursor.fetchall()]

    def list_all(self) -> list[ScheduleRecord]:
        """All records, ordered by template id."""
        cursor = self.conn.execute(
            f"SELECT {', '.join(_COLUMNS)} FROM {_TABLE} ORDER BY template_id"
        )
        return [self._row_to_record(row) for row in cursor.fetchall()]

    def count_scheduled(self) -> int:
        """Number of templates with scheduled sending."""
        cursor = self.conn.execute(
            f"SELECT COUNT(*) FROM {_TABLE} WHERE sending_method = {self._ph()}",
            (SendingMethod.SCHEDULED.value,),
        )
        return cursor.fetchone()[0]

    # === Private Helpers ===

    @staticmethod
    def _to_db(value: Any) -> Any:
        if isinstance(value, datetime):
            return to_iso8601(value)
        if isinstance(value, (SendingMethod, ScheduleType, ScheduleUnit)):
            return value.value
        return value

    def _row_to_record(self, row: tuple) -> ScheduleRecord:
        """Convert database row to ScheduleRecord."""
        data = dict(zip(_COLUMNS, row, strict=True))
        sent = data["schedule_sent"]
        return ScheduleRecord(
            template_id=data["template_id"],
            sending_method=SendingMethod(data["sending_method"]),
            schedule_type=ScheduleType(data["schedule_type"]) if data["schedule_type"] else None,
            schedule_date=from_iso8601(data["schedule_date"]),
            schedule_sent=bool(sent) if sent is not None else None,
            schedule_measure=data["schedule_measure"],
            schedule_unit=ScheduleUnit(data["schedule_unit"]) if data["schedule_unit"] else None,
            schedule_start_date=from_iso8601(data["schedule_start_date"]),
            schedule_end_date=from_iso8601(data["schedule_end_date"]),
            schedule_next_send_date=from_iso8601(data["schedule_next_send_date"]),
            version=data["version"],
        )


def _as_utc(value: datetime | None) -> datetime | None:
    return ensure_utc(value) if value is not None else None


__all__ = ["ScheduleEdit", "TemplateScheduleRepository"]
