"""Tests for ThreadSchedulerBackend."""

import threading
import time
from datetime import datetime

from mailspine.core.scheduling import BackendHealth, SchedulerBackend, ThreadSchedulerBackend


def counting_tick(target: int = 1):
    """Async tick callback that sets an event after ``target`` calls."""
    reached = threading.Event()
    calls = []

    async def tick():
        calls.append(time.monotonic())
        if len(calls) >= target:
            reached.set()

    return tick, reached, calls


class TestThreadSchedulerBackend:
    """Test the daemon-thread backend."""

    def test_implements_protocol(self, backend):
        assert isinstance(backend, SchedulerBackend)
        assert backend.name == "thread"

    def test_ticks_until_stopped(self, backend):
        tick, reached, calls = counting_tick(target=3)

        backend.start(tick, interval_seconds=0.05)
        assert reached.wait(timeout=2.0)
        backend.stop()

        assert not backend.is_running
        count = len(calls)
        time.sleep(0.15)
        assert len(calls) == count

    def test_thread_is_daemon(self, backend):
        tick, _, _ = counting_tick()
        backend.start(tick, interval_seconds=1.0)
        try:
            assert backend._thread.daemon is True
            assert backend._thread.name == "mailspine-dispatcher"
        finally:
            backend.stop()

    def test_double_start_ignored(self, backend):
        tick, _, _ = counting_tick()
        backend.start(tick, interval_seconds=1.0)
        first_thread = backend._thread

        backend.start(tick, interval_seconds=1.0)

        assert backend._thread is first_thread
        backend.stop()

    def test_stop_before_start_is_safe(self, backend):
        backend.stop()
        assert not backend.is_running

    def test_failing_tick_keeps_loop_alive(self, backend):
        reached = threading.Event()
        attempts = []

        async def failing_tick():
            attempts.append(1)
            if len(attempts) >= 2:
                reached.set()
            raise RuntimeError("smtp relay refused connection")

        backend.start(failing_tick, interval_seconds=0.05)
        assert reached.wait(timeout=2.0)
        assert backend.is_running
        backend.stop()


class TestBackendHealth:
    """Health reporting."""

    def test_health_before_start(self, backend):
        health = backend.health()

        assert health == {
            "healthy": False,
            "backend": "thread",
            "tick_count": 0,
            "last_tick": None,
            "interval_seconds": 10.0,
        }

    def test_health_while_running(self, backend):
        tick, reached, _ = counting_tick()
        backend.start(tick, interval_seconds=0.05)
        try:
            assert reached.wait(timeout=2.0)
            health = backend.get_health()

            assert isinstance(health, BackendHealth)
            assert health.healthy is True
            assert health.tick_count >= 1
            assert isinstance(backend.last_tick, datetime)
            assert health.extra == {"interval_seconds": 0.05}
        finally:
            backend.stop()

    def test_to_dict_serializes_last_tick(self, backend):
        tick, reached, _ = counting_tick()
        backend.start(tick, interval_seconds=0.05)
        assert reached.wait(timeout=2.0)
        backend.stop()

        last_tick = backend.health()["last_tick"]

        assert datetime.fromisoformat(last_tick) == backend.last_tick
        assert backend.health()["healthy"] is False
