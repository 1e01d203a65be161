"""Tests for the due-item locator."""

from datetime import timedelta

from mailspine.core.scheduling import (
    DueItemLocator,
    PartialUpdate,
    ScheduleEdit,
    SqlDueItemLocator,
)


class TestDueFixedDate:
    """Test due_fixed_date query."""

    def test_satisfies_protocol(self, locator):
        assert isinstance(locator, DueItemLocator)

    def test_empty_store(self, locator, now):
        assert locator.due_fixed_date(now) == []

    def test_past_date_is_due(self, locator, make_fixed, now):
        make_fixed("launch", now - timedelta(minutes=1))
        assert locator.due_fixed_date(now) == ["launch"]

    def test_date_equal_to_now_is_due(self, locator, make_fixed, now):
        make_fixed("launch", now)
        assert locator.due_fixed_date(now) == ["launch"]

    def test_future_date_not_due(self, locator, make_fixed, now):
        make_fixed("launch", now + timedelta(seconds=1))
        assert locator.due_fixed_date(now) == []

    def test_absent_sent_flag_counts_as_unsent(self, locator, make_fixed, repository, now):
        record = make_fixed("launch", now - timedelta(hours=1))
        assert record.schedule_sent is None
        assert locator.due_fixed_date(now) == ["launch"]

    def test_false_sent_flag_is_due(self, locator, make_fixed, repository, now):
        make_fixed("launch", now - timedelta(hours=1))
        repository.apply_update("launch", PartialUpdate(schedule_sent=False))
        assert locator.due_fixed_date(now) == ["launch"]

    def test_sent_not_due(self, locator, make_fixed, repository, now):
        make_fixed("launch", now - timedelta(hours=1))
        repository.apply_update("launch", PartialUpdate(schedule_sent=True))
        assert locator.due_fixed_date(now) == []

    def test_absent_date_never_returned(self, locator, make_fixed, repository, now):
        make_fixed("launch", now - timedelta(hours=1))
        repository.apply_update("launch", PartialUpdate(schedule_date=None))
        assert locator.due_fixed_date(now) == []

    def test_manual_never_returned(self, locator, make_fixed, repository, now):
        make_fixed("launch", now - timedelta(hours=1))
        repository.save_schedule("launch", ScheduleEdit())
        repository.apply_update("launch", PartialUpdate(schedule_date=now - timedelta(days=1)))
        assert locator.due_fixed_date(now) == []

    def test_ordered_by_date_then_id(self, locator, make_fixed, now):
        make_fixed("c-late", now - timedelta(minutes=5))
        make_fixed("b-early", now - timedelta(days=2))
        make_fixed("a-tie", now - timedelta(minutes=5))

        assert locator.due_fixed_date(now) == ["b-early", "a-tie", "c-late"]

    def test_repeating_not_returned(self, locator, make_repeating, repository, now):
        make_repeating("digest")
        repository.apply_update("digest", PartialUpdate(schedule_date=now - timedelta(days=1)))
        assert locator.due_fixed_date(now) == []


class TestDueRepeating:
    """Test due_repeating query."""

    def test_absent_next_send_never_returned(self, locator, make_repeating, now):
        make_repeating("digest")
        assert locator.due_repeating(now) == []

    def test_next_send_in_past_is_due(self, locator, make_repeating, repository, now):
        make_repeating("digest")
        repository.apply_update(
            "digest", PartialUpdate(schedule_next_send_date=now - timedelta(minutes=1))
        )
        assert locator.due_repeating(now) == ["digest"]

    def test_next_send_in_future_not_due(self, locator, make_repeating, repository, now):
        make_repeating("digest")
        repository.apply_update(
            "digest", PartialUpdate(schedule_next_send_date=now + timedelta(minutes=1))
        )
        assert locator.due_repeating(now) == []

    def test_no_window_check(self, locator, make_repeating, repository, now):
        """A stale next-send outside the window is still returned."""
        make_repeating("digest", end=now - timedelta(days=3))
        repository.apply_update(
            "digest", PartialUpdate(schedule_next_send_date=now - timedelta(days=1))
        )
        assert locator.due_repeating(now) == ["digest"]

    def test_ordered_by_next_send(self, locator, make_repeating, repository, now):
        for template_id, offset in [("x", 3), ("y", 10), ("z", 1)]:
            make_repeating(template_id)
            repository.apply_update(
                template_id,
                PartialUpdate(schedule_next_send_date=now - timedelta(minutes=offset)),
            )

        assert locator.due_repeating(now) == ["y", "x", "z"]

    def test_results_reevaluated_per_call(self, locator, make_repeating, repository, now):
        make_repeating("digest")
        repository.apply_update(
            "digest", PartialUpdate(schedule_next_send_date=now - timedelta(minutes=1))
        )
        assert locator.due_repeating(now) == ["digest"]

        repository.apply_update(
            "digest", PartialUpdate(schedule_next_send_date=now + timedelta(days=1))
        )
        assert locator.due_repeating(now) == []


def test_naive_now_treated_as_utc(db_conn, make_fixed, now):
    make_fixed("launch", now)
    naive = now.replace(tzinfo=None)
    assert SqlDueItemLocator(db_conn).due_fixed_date(naive) == ["launch"]
