"""Unit tests for the limits tracker and in-memory store"""

import threading
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from risk_gateway.domain.exceptions import LimitsStoreUnavailableError
from risk_gateway.domain.limits import LimitsTracker, limits_escalations
from risk_gateway.domain.models import Decision, EngineConfig, TimeWindow, WindowUsage
from risk_gateway.infrastructure.stores.memory import InMemoryLimitsStore
from risk_gateway.utils.date_utils import start_of_day, window_start

NOW = datetime(2024, 3, 15, 14, 30, tzinfo=timezone.utc)  # matches the clock fixture


def test_fresh_user_is_within_limits(tracker):
    result = tracker.check_and_preview("user_1", Decimal("1000"))

    assert result.within_limits is True
    assert result.decision == Decision.ALLOW
    assert result.amount_used == Decimal("0")
    assert result.amount_remaining == Decimal("100000")
    assert result.transaction_count == 0
    assert result.degraded is False


def test_preview_does_not_consume_limits(tracker):
    for _ in range(3):
        tracker.check_and_preview("user_1", Decimal("40000"))

    assert tracker.check_and_preview("user_1", Decimal("40000")).amount_used == Decimal("0")


def test_daily_ceiling_counts_recorded_volume(tracker):
    tracker.record("user_1", Decimal("45000"), NOW - timedelta(hours=1))
    tracker.record("user_1", Decimal("45000"), NOW - timedelta(hours=2))

    ok = tracker.check_and_preview("user_1", Decimal("10000"))
    over = tracker.check_and_preview("user_1", Decimal("10000.01"))

    assert ok.within_limits is True
    assert ok.amount_used == Decimal("90000")
    assert ok.amount_remaining == Decimal("10000")
    assert over.within_limits is False
    assert over.decision == Decision.BLOCK
    assert "daily transaction limit exceeded" in over.reasons


def test_yesterday_does_not_count_toward_daily(tracker):
    tracker.record("user_1", Decimal("90000"), start_of_day(NOW) - timedelta(seconds=1))

    result = tracker.check_and_preview("user_1", Decimal("50000"))

    assert result.within_limits is True
    assert result.amount_used == Decimal("0")


def test_count_ceiling(tracker, config):
    for i in range(config.hourly_transaction_count):
        tracker.record("user_1", Decimal("1"), NOW - timedelta(minutes=i))

    result = tracker.check_and_preview("user_1", Decimal("1"))

    assert result.within_limits is False
    assert result.transaction_count == config.hourly_transaction_count
    assert "transaction count limit exceeded" in result.reasons


def test_single_transaction_ceiling(tracker):
    result = tracker.check_and_preview("user_1", Decimal("50001"))

    assert result.within_limits is False
    assert result.reasons == ("amount exceeds single transaction limit",)


def test_users_are_isolated(tracker):
    tracker.record("user_1", Decimal("99000"), NOW)
    assert tracker.check_and_preview("user_2", Decimal("5000")).within_limits is True


@pytest.mark.parametrize(
    "window, recorded_at, counted",
    [
        (TimeWindow.HOURLY, NOW - timedelta(minutes=59), True),
        (TimeWindow.HOURLY, NOW - timedelta(minutes=61), False),
        (TimeWindow.WEEKLY, NOW - timedelta(days=6), True),
        (TimeWindow.WEEKLY, NOW - timedelta(days=8), False),
        (TimeWindow.MONTHLY, NOW - timedelta(days=29), True),
        (TimeWindow.MONTHLY, NOW - timedelta(days=31), False),
    ],
)
def test_other_windows_are_evaluated_analogously(tracker, window, recorded_at, counted):
    tracker.record("user_1", Decimal("100"), recorded_at)

    result = tracker.check_and_preview("user_1", Decimal("1"), window)

    assert result.window == window
    assert result.transaction_count == (1 if counted else 0)


def test_window_start_daily_is_midnight():
    assert window_start(TimeWindow.DAILY, NOW) == datetime(2024, 3, 15, tzinfo=timezone.utc)


def test_store_failure_fails_open(config, clock):
    store = MagicMock()
    store.read_window.side_effect = LimitsStoreUnavailableError("redis down")
    failures = []
    tracker = LimitsTracker(store, config, clock=clock, on_store_failure=failures.append)

    result = tracker.check_and_preview("user_1", Decimal("99999999"))

    assert result.within_limits is True
    assert result.decision == Decision.ALLOW
    assert result.degraded is True
    assert len(failures) == 1


def test_admit_is_race_free_under_concurrency(clock):
    """Two concurrent 60000 transactions against a 100000 daily ceiling: only one gets in"""
    config = EngineConfig(single_transaction_limit=Decimal("75000"), daily_transaction_limit=Decimal("100000"))
    store = InMemoryLimitsStore()
    real_read = store.read_window
    barrier = threading.Barrier(2, timeout=5)

    def slow_read(user_id, since):
        # Give the other thread every chance to interleave between read and record
        usage = real_read(user_id, since)
        try:
            barrier.wait(timeout=0.2)
        except threading.BrokenBarrierError:
            pass
        return usage

    store.read_window = slow_read
    tracker = LimitsTracker(store, config, clock=clock)
    results = []

    def worker(txn_id):
        results.append(tracker.admit("user_1", Decimal("60000"), transaction_id=txn_id))

    threads = [threading.Thread(target=worker, args=(f"txn_{i}",)) for i in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    admitted = [r for r in results if r.within_limits]
    rejected = [r for r in results if not r.within_limits]
    assert len(admitted) == 1
    assert len(rejected) == 1
    assert rejected[0].amount_used == Decimal("60000")
    assert real_read("user_1", start_of_day(NOW)) == WindowUsage(total=Decimal("60000"), count=1)


def test_different_users_do_not_share_a_lock(tracker):
    assert tracker._lock_for("user_1") is tracker._lock_for("user_1")
    assert tracker._lock_for("user_1") is not tracker._lock_for("user_2")


def test_limits_escalations():
    config = EngineConfig()
    store = InMemoryLimitsStore()
    store.record("user_1", Decimal("95000"), NOW)
    tracker = LimitsTracker(store, config, clock=lambda: NOW)

    escalations = limits_escalations(tracker.check_and_preview("user_1", Decimal("10000")))

    assert [e.decision for e in escalations] == [Decision.BLOCK]
    assert escalations[0].reason == "limits check failed: daily transaction limit exceeded"
    assert limits_escalations(tracker.check_and_preview("user_2", Decimal("1"))) == []


def test_memory_store_purge_expired():
    store = InMemoryLimitsStore()
    store.record("user_1", Decimal("10"), NOW - timedelta(days=2))
    store.record("user_1", Decimal("20"), NOW)

    assert store.purge_expired(start_of_day(NOW)) == 1
    assert store.read_window("user_1", NOW - timedelta(days=30)) == WindowUsage(total=Decimal("20"), count=1)


def test_naive_timestamps_are_treated_as_utc(tracker):
    tracker.record("user_1", Decimal("70000"), datetime(2024, 3, 15, 10, 0))
    tracker.record("user_1", Decimal("5000"), datetime(2024, 3, 14, 23, 59))

    result = tracker.check_and_preview("user_1", Decimal("40000"))

    assert result.within_limits is False
    assert result.amount_used == Decimal("70000")


def test_memory_store_accepts_naive_bounds():
    store = InMemoryLimitsStore()
    store.record("user_1", Decimal("10"), NOW)
    store.record("user_1", Decimal("20"), datetime(2024, 3, 15, 9, 0))

    assert store.read_window("user_1", datetime(2024, 3, 15)) == WindowUsage(total=Decimal("30"), count=2)
    assert store.purge_expired(datetime(2024, 3, 15, 12, 0)) == 1


def test_recording_same_transaction_replaces_entry(tracker):
    tracker.record("user_1", Decimal("60000"), NOW, transaction_id="txn_1")
    tracker.record("user_1", Decimal("55000"), NOW, transaction_id="txn_1")
    tracker.record("user_1", Decimal("100"), NOW)
    tracker.record("user_1", Decimal("100"), NOW)

    result = tracker.check_and_preview("user_1", Decimal("1"))

    assert result.amount_used == Decimal("55200")
    assert result.transaction_count == 3


def test_release_returns_volume(tracker):
    tracker.record("user_1", Decimal("60000"), NOW, transaction_id="txn_1")

    assert tracker.release("user_1", "txn_1") is True
    assert tracker.release("user_1", "txn_1") is False
    assert tracker.check_and_preview("user_1", Decimal("1")).amount_used == Decimal("0")


def test_idle_user_locks_are_dropped(tracker):
    for i in range(50):
        tracker.check_and_preview(f"user_{i}", Decimal("1"))
        tracker.record(f"user_{i}", Decimal("1"), NOW)

    assert len(tracker._locks) == 0


def test_lock_is_shared_while_held(tracker):
    lock = tracker._lock_for("user_1")
    assert tracker._lock_for("user_1") is lock
