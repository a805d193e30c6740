"""Tests for the sync building blocks: backoff, dedup, cursor and items."""

from datetime import datetime, timezone

import pytest

from taskwatch.config import BackoffConfig
from taskwatch.errors import InvalidResponse
from taskwatch.models import Item, ItemStatus, parse_timestamp
from taskwatch.sync import BackoffPolicy, CompletionDeduper, CursorTracker


class TestBackoffPolicy:
    """Tests for BackoffPolicy."""

    def test_defaults_match_observed_schedule(self):
        """Test the default schedule: 5s base, x1.5, capped at 30s."""
        policy = BackoffPolicy()

        assert policy.compute_delay(0) == 5.0
        assert policy.compute_delay(1) == 7.5
        assert policy.compute_delay(2) == 11.25
        assert policy.compute_delay(5) == 30.0

    def test_non_decreasing_and_bounded(self):
        """Test delays never shrink and never exceed the ceiling."""
        policy = BackoffPolicy()
        delays = [policy.compute_delay(n) for n in range(101)]

        assert delays == sorted(delays)
        assert max(delays) <= policy.max_delay

    def test_huge_attempt_does_not_overflow(self):
        """Test the exponent is capped before it is applied."""
        policy = BackoffPolicy(max_delay=1e308, growth_factor=10.0)

        delay = policy.compute_delay(10**9)

        assert delay == policy.base_delay * 10.0**policy.attempt_cap

    def test_negative_attempt_rejected(self):
        with pytest.raises(ValueError):
            BackoffPolicy().compute_delay(-1)

    def test_from_config(self):
        """Test building a policy from configuration."""
        policy = BackoffPolicy.from_config(
            BackoffConfig(
                base_delay_seconds=1.0,
                growth_factor=2.0,
                max_delay_seconds=8.0,
                attempt_cap=3,
            )
        )

        assert [policy.compute_delay(n) for n in range(6)] == [1, 2, 4, 8, 8, 8]


class TestCompletionDeduper:
    """Tests for CompletionDeduper."""

    def test_accepts_first_sighting_only(self):
        deduper = CompletionDeduper()
        item = Item(id="a", status=ItemStatus.COMPLETED)

        assert deduper.accept(item) is True
        assert deduper.accept(item) is False
        assert deduper.accept(Item(id="a")) is False

    def test_each_id_accepted_once_across_batches(self):
        """Test repeated ids across batches are delivered exactly once."""
        deduper = CompletionDeduper()
        batches = [["a", "b"], ["b", "c"], ["a", "c", "d"], ["d"]]

        accepted = [
            item_id
            for batch in batches
            for item_id in batch
            if deduper.accept(Item(id=item_id))
        ]

        assert accepted == ["a", "b", "c", "d"]
        assert len(deduper) == 4
        assert "c" in deduper
        assert deduper.seen("z") is False


class TestCursorTracker:
    """Tests for CursorTracker."""

    def test_starts_empty(self):
        cursor = CursorTracker()

        assert cursor.current() is None
        assert cursor.query_params() == {}

    def test_advance_and_reset(self):
        cursor = CursorTracker()

        cursor.advance("b")
        assert cursor.current() == "b"
        assert cursor.query_params() == {"since": "b"}

        cursor.reset()
        assert cursor.current() is None


class TestItem:
    """Tests for the Item model."""

    def test_from_completion_documented_shape(self):
        item = Item.from_completion(
            {
                "id": "t1",
                "data": "resize images",
                "priority": 3,
                "completion_time": "2026-02-03T10:00:00+00:00",
            }
        )

        assert item.id == "t1"
        assert item.status is ItemStatus.COMPLETED
        assert item.priority == 3
        assert item.payload == "resize images"
        assert item.completion_time == datetime(2026, 2, 3, 10, tzinfo=timezone.utc)

    def test_from_completion_legacy_shape(self):
        """Test records keyed by task_id with epoch completion times."""
        item = Item.from_completion({"task_id": "t2", "completion_time": 0})

        assert item.id == "t2"
        assert item.priority is None
        assert item.completion_time == datetime(1970, 1, 1, tzinfo=timezone.utc)

    def test_from_completion_requires_id(self):
        with pytest.raises(InvalidResponse):
            Item.from_completion({"data": "no id"})

    def test_from_completion_rejects_non_object(self):
        with pytest.raises(InvalidResponse):
            Item.from_completion(["t1"])

    def test_completion_is_monotonic(self):
        """Test a completed item never changes again."""
        first = datetime(2026, 1, 1, tzinfo=timezone.utc)
        item = Item(id="t3").mark_completed(first)

        again = item.mark_completed(datetime(2026, 6, 1, tzinfo=timezone.utc))

        assert again is item
        assert again.completion_time == first

    def test_to_dict(self):
        item = Item(id="t4", priority=2, payload="x").mark_completed(
            datetime(2026, 1, 1, tzinfo=timezone.utc)
        )

        assert item.to_dict() == {
            "id": "t4",
            "status": "completed",
            "priority": 2,
            "data": "x",
            "completion_time": "2026-01-01T00:00:00+00:00",
        }


class TestParseTimestamp:
    """Tests for completion time parsing."""

    def test_epoch_and_iso(self):
        assert parse_timestamp(0) == datetime(1970, 1, 1, tzinfo=timezone.utc)
        assert parse_timestamp("2026-01-01T00:00:00+00:00") == datetime(
            2026, 1, 1, tzinfo=timezone.utc
        )
        assert parse_timestamp("0") == datetime(1970, 1, 1, tzinfo=timezone.utc)

    def test_empty_is_none(self):
        assert parse_timestamp(None) is None
        assert parse_timestamp("") is None

    @pytest.mark.parametrize(
        "value", [1e20, -1e20, float("nan"), float("inf"), "1e20", "nan", True]
    )
    def test_unrepresentable_values_rejected(self, value):
        with pytest.raises(InvalidResponse):
            parse_timestamp(value)

    def test_garbage_string_rejected(self):
        with pytest.raises(InvalidResponse):
            parse_timestamp("yesterday")
