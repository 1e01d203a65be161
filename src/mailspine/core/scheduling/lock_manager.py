"""Per-template dispatch locks.

Manifesto:
    Two driver instances must never send the same template for the same
    due time. The lock manager gives each template id an exclusive,
    TTL-bounded lock row; INSERT-or-ignore makes acquisition atomic and
    the TTL means a crashed instance cannot block a template forever.

Tags:
    mailspine, scheduling, distributed-locks, TTL, concurrency

    Lock Flow::

        instance A: acquire("digest") ─► INSERT OR IGNORE ─► rowcount 1 ─► True
        instance B: acquire("digest") ─► INSERT OR IGNORE ─► rowcount 0
                                        └─ held by B? no ─────────────► False
        instance A: acquire("digest") ─► rowcount 0, held by A ─► refresh ─► True
        expires_at < now ─► row deleted on next acquire or cleanup
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timedelta
from uuid import uuid4

from mailspine.core.dialect import Dialect, SQLiteDialect
from mailspine.core.errors import LockError
from mailspine.core.logging import get_logger
from mailspine.core.protocols import Connection
from mailspine.core.timestamps import to_iso8601, utc_now

logger = get_logger(__name__)


class LockManager:
    """Database-backed lock per template id.

    Example:
        >>> manager = LockManager(conn, instance_id="dispatcher-1")
        >>> if manager.acquire("weekly-digest"):
        ...     try:
        ...         pass  # send
        ...     finally:
        ...         manager.release("weekly-digest")
    """

    def __init__(
        self,
        conn: Connection,
        dialect: Dialect | None = None,
        instance_id: str | None = None,
        ttl_seconds: int = 300,
    ) -> None:
        """Initialize lock manager.

        Args:
            conn: Database connection
            dialect: SQL dialect for portable queries
            instance_id: Unique identifier for this driver instance.
                        Auto-generated if not provided.
            ttl_seconds: Default lock expiry
        """
        self.conn = conn
        self.dialect: Dialect = dialect or SQLiteDialect()
        self.instance_id = instance_id or str(uuid4())
        self.ttl_seconds = ttl_seconds

    def _ph(self, index: int) -> str:
        """Generate dialect-specific placeholder at 1-based position."""
        return self.dialect.placeholder(index - 1)

    # === Acquire / Release ===

    def acquire(
        self,
        template_id: str,
        ttl_seconds: int | None = None,
        now: datetime | None = None,
    ) -> bool:
        """Acquire the exclusive lock for a template.

        Args:
            template_id: Template to lock
            ttl_seconds: Lock expiry (defaults to the manager's TTL)
            now: Reference time (defaults to the current UTC time)

        Returns:
            True if acquired or refreshed, False if another instance holds it
            or the lock table could not be written
        """
        now = now or utc_now()
        expires = now + timedelta(seconds=ttl_seconds or self.ttl_seconds)

        try:
            self.conn.execute(
                f"""
                DELETE FROM core_template_locks
                WHERE template_id = {self._ph(1)} AND expires_at < {self._ph(2)}
                """,
                (template_id, to_iso8601(now)),
            )

            insert_sql = self.dialect.insert_or_ignore(
                "core_template_locks",
                ["template_id", "locked_by", "locked_at", "expires_at"],
            )
            cursor = self.conn.execute(
                insert_sql,
                (template_id, self.instance_id, to_iso8601(now), to_iso8601(expires)),
            )
            self.conn.commit()

            if cursor.rowcount > 0:
                logger.debug("lock_acquired", template_id=template_id)
                return True

            cursor = self.conn.execute(
                f"""
                SELECT locked_by FROM core_template_locks
                WHERE template_id = {self._ph(1)} AND locked_by = {self._ph(2)}
                """,
                (template_id, self.instance_id),
            )
            if cursor.fetchone():
                self.conn.execute(
                    f"""
                    UPDATE core_template_locks
                    SET expires_at = {self._ph(1)}
                    WHERE template_id = {self._ph(2)} AND locked_by = {self._ph(3)}
                    """,
                    (to_iso8601(expires), template_id, self.instance_id),
                )
                self.conn.commit()
                logger.debug("lock_refreshed", template_id=template_id)
                return True

            logger.debug("lock_held_elsewhere", template_id=template_id)
            return False

        except Exception as e:
            logger.error("lock_acquire_failed", template_id=template_id, error=str(e))
            return False

    def release(self, template_id: str) -> bool:
        """Release the lock if this instance holds it.

        Returns:
            True if released, False if not held
        """
        try:
            cursor = self.conn.execute(
                f"""
                DELETE FROM core_template_locks
                WHERE template_id = {self._ph(1)} AND locked_by = {self._ph(2)}
                """,
                (template_id, self.instance_id),
            )
            self.conn.commit()

            if cursor.rowcount > 0:
                logger.debug("lock_released", template_id=template_id)
                return True
            return False

        except Exception as e:
            logger.error("lock_release_failed", template_id=template_id, error=str(e))
            return False

    @contextmanager
    def hold(self, template_id: str, ttl_seconds: int | None = None) -> Iterator[None]:
        """Hold the lock for the duration of a ``with`` block.

        Raises:
            LockError: the lock is held by another instance
        """
        if not self.acquire(template_id, ttl_seconds):
            holder = self.get_lock_holder(template_id)
            raise LockError(f"Template {template_id} is locked").with_context(
                template_id=template_id,
                instance_id=self.instance_id,
                holder=holder,
            )
        try:
            yield
        finally:
            self.release(template_id)

    # === Inspection ===

    def is_locked(self, template_id: str, now: datetime | None = None) -> bool:
        """Check if a template is locked by any instance."""
        return self.get_lock_holder(template_id, now) is not None

    def get_lock_holder(self, template_id: str, now: datetime | None = None) -> str | None:
        """Instance id holding the lock, or None."""
        cursor = self.conn.execute(
            f"""
            SELECT locked_by FROM core_template_locks
            WHERE template_id = {self._ph(1)} AND expires_at > {self._ph(2)}
            """,
            (template_id, to_iso8601(now or utc_now())),
        )
        row = cursor.fetchone()
        return row[0] if row else None

    def list_active_locks(self, now: datetime | None = None) -> list[dict]:
        """List all non-expired locks, oldest first."""
        cursor = self.conn.execute(
            f"""
            SELECT template_id, locked_by, locked_at, expires_at
            FROM core_template_locks
            WHERE expires_at > {self._ph(1)}
            ORDER BY locked_at
            """,
            (to_iso8601(now or utc_now()),),
        )
        return [
            {
                "template_id": row[0],
                "locked_by": row[1],
                "locked_at": row[2],
                "expires_at": row[3],
            }
            for row in cursor.fetchall()
        ]

    # === Maintenance ===

    def cleanup_expired_locks(self, now: datetime | None = None) -> int:
        """Remove expired locks left behind by crashed instances.

        Returns:
            Number of locks removed
        """
        cursor = self.conn.execute(
            f"DELETE FROM core_template_locks WHERE expires_at < {self._ph(1)}",
            (to_iso8601(now or utc_now()),),
        )
        self.conn.commit()

        count = cursor.rowcount
        if count > 0:
            logger.info("expired_locks_cleaned", count=count)
        return count

    def force_release_all(self) -> int:
        """Drop every lock. Recovery and tests only."""
        cursor = self.conn.execute("DELETE FROM core_template_locks")
        self.conn.commit()
        count = cursor.rowcount
        logger.warning("locks_force_released", count=count)
        return count


__all__ = ["LockManager"]
