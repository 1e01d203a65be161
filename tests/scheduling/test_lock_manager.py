"""Tests for LockManager."""

from datetime import timedelta

import pytest

from mailspine.core.errors import LockError
from mailspine.core.scheduling import LockManager


class TestLockManager:
    """Test LockManager lock operations."""

    def test_acquire_lock(self, lock_manager):
        """Acquire template lock."""
        assert lock_manager.acquire("digest-1") is True

    def test_acquire_lock_twice_same_instance(self, lock_manager):
        """Same instance can re-acquire its own lock (refresh)."""
        lock_manager.acquire("digest-2")
        assert lock_manager.acquire("digest-2") is True

    def test_acquire_lock_different_instance(self, db_conn):
        """Different instance cannot acquire held lock."""
        manager1 = LockManager(db_conn, instance_id="instance-1")
        manager2 = LockManager(db_conn, instance_id="instance-2")

        assert manager1.acquire("digest-3") is True
        assert manager2.acquire("digest-3") is False

    def test_release_lock(self, lock_manager):
        """Release template lock."""
        lock_manager.acquire("digest-4")

        assert lock_manager.release("digest-4") is True
        assert lock_manager.acquire("digest-4") is True

    def test_release_lock_not_held(self, lock_manager):
        """Release lock not held returns False."""
        assert lock_manager.release("not-held") is False

    def test_release_lock_held_by_other(self, db_conn):
        """Cannot release lock held by other instance."""
        manager1 = LockManager(db_conn, instance_id="instance-a")
        manager2 = LockManager(db_conn, instance_id="instance-b")

        manager1.acquire("digest-5")

        assert manager2.release("digest-5") is False
        assert manager1.is_locked("digest-5") is True

    def test_is_locked(self, lock_manager):
        """Check if template is locked."""
        assert lock_manager.is_locked("digest-6") is False

        lock_manager.acquire("digest-6")
        assert lock_manager.is_locked("digest-6") is True

        lock_manager.release("digest-6")
        assert lock_manager.is_locked("digest-6") is False

    def test_get_lock_holder(self, lock_manager):
        """Get instance holding the lock."""
        assert lock_manager.get_lock_holder("digest-7") is None

        lock_manager.acquire("digest-7")

        assert lock_manager.get_lock_holder("digest-7") == "test-instance"

    def test_generated_instance_id(self, db_conn):
        manager = LockManager(db_conn)
        assert len(manager.instance_id) == 36


class TestLockExpiry:
    """Locks expire after their TTL."""

    def test_expired_lock_can_be_taken_over(self, db_conn, now):
        manager1 = LockManager(db_conn, instance_id="crashed", ttl_seconds=60)
        manager2 = LockManager(db_conn, instance_id="survivor", ttl_seconds=60)

        manager1.acquire("digest", now=now)

        assert manager2.acquire("digest", now=now + timedelta(seconds=30)) is False
        assert manager2.acquire("digest", now=now + timedelta(seconds=61)) is True
        assert manager2.get_lock_holder("digest", now=now + timedelta(seconds=62)) == "survivor"

    def test_expired_lock_not_reported(self, lock_manager, now):
        lock_manager.acquire("digest", ttl_seconds=10, now=now)

        assert lock_manager.is_locked("digest", now=now + timedelta(seconds=5))
        assert not lock_manager.is_locked("digest", now=now + timedelta(seconds=11))

    def test_refresh_extends_expiry(self, lock_manager, now):
        lock_manager.acquire("digest", ttl_seconds=10, now=now)
        lock_manager.acquire("digest", ttl_seconds=10, now=now + timedelta(seconds=8))

        assert lock_manager.is_locked("digest", now=now + timedelta(seconds=15))

    def test_cleanup_expired_locks(self, lock_manager, now):
        lock_manager.acquire("old", ttl_seconds=10, now=now - timedelta(minutes=5))
        lock_manager.acquire("fresh", ttl_seconds=600, now=now)

        removed = lock_manager.cleanup_expired_locks(now=now)

        assert removed == 1
        assert [lock["template_id"] for lock in lock_manager.list_active_locks(now=now)] == [
            "fresh"
        ]


class TestListAndForceRelease:
    """Inspection and recovery helpers."""

    def test_list_active_locks(self, db_conn, now):
        manager1 = LockManager(db_conn, instance_id="one")
        manager2 = LockManager(db_conn, instance_id="two")
        manager1.acquire("a", now=now)
        manager2.acquire("b", now=now + timedelta(seconds=1))

        locks = manager1.list_active_locks(now=now + timedelta(seconds=2))

        assert [(lock["template_id"], lock["locked_by"]) for lock in locks] == [
            ("a", "one"),
            ("b", "two"),
        ]
        assert set(locks[0]) == {"template_id", "locked_by", "locked_at", "expires_at"}

    def test_force_release_all(self, db_conn):
        LockManager(db_conn, instance_id="one").acquire("a")
        LockManager(db_conn, instance_id="two").acquire("b")
        manager = LockManager(db_conn, instance_id="admin")

        assert manager.force_release_all() == 2
        assert manager.list_active_locks() == []


class TestHold:
    """The hold() context manager."""

    def test_hold_releases_after_block(self, lock_manager):
        with lock_manager.hold("digest"):
            assert lock_manager.is_locked("digest")
        assert not lock_manager.is_locked("digest")

    def test_hold_releases_on_error(self, lock_manager):
        with pytest.raises(RuntimeError):
            with lock_manager.hold("digest"):
                raise RuntimeError("boom")
        assert not lock_manager.is_locked("digest")

    def test_hold_raises_when_held_elsewhere(self, db_conn):
        LockManager(db_conn, instance_id="other").acquire("digest")
        manager = LockManager(db_conn, instance_id="mine")

        with pytest.raises(LockError) as exc_info:
            with manager.hold("digest"):
                pass

        assert exc_info.value.context.template_id == "digest"
        assert exc_info.value.context.metadata["holder"] == "other"
        assert exc_info.value.retryable is True


def test_acquire_on_broken_connection_returns_false(db_conn):
    manager = LockManager(db_conn, instance_id="x")
    db_conn.execute("DROP TABLE core_template_locks")
    db_conn.commit()

    assert manager.acquire("digest") is False
