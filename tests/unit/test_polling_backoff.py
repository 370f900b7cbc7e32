from __future__ import annotations

from datetime import datetime, timedelta

from council_tasks.domain.polling_backoff import (
    BACKOFF_SCHEDULE,
    MAX_POLLING_DAYS,
    next_poll_eligible_at,
    should_skip_polling,
    tier_for,
    tier_label,
)

NOW = datetime(2026, 3, 1, 12, 0, 0)


def _ago(days: float) -> datetime:
    return NOW - timedelta(days=days)


def test_never_polled_is_never_skipped():
    assert should_skip_polling(None, None, now=NOW) is None


def test_first_week_polls_every_run():
    assert should_skip_polling(_ago(1), _ago(0.01), now=NOW) is None
    assert should_skip_polling(_ago(6.9), _ago(0), now=NOW) is None


def test_second_week_needs_two_days_between_polls():
    reason = should_skip_polling(_ago(10), _ago(1), now=NOW)
    assert reason is not None
    assert reason.startswith("backoff:")
    assert "min interval 2 days" in reason

    assert should_skip_polling(_ago(10), _ago(2), now=NOW) is None


def test_third_week_needs_three_days():
    assert should_skip_polling(_ago(15), _ago(2), now=NOW) is not None
    assert should_skip_polling(_ago(15), _ago(3), now=NOW) is None


def test_after_three_weeks_weekly():
    assert should_skip_polling(_ago(30), _ago(6), now=NOW) is not None
    assert should_skip_polling(_ago(30), _ago(7), now=NOW) is None


def test_stops_after_max_window():
    reason = should_skip_polling(_ago(MAX_POLLING_DAYS), _ago(30), now=NOW)
    assert reason is not None
    assert reason.startswith(f"exceeded {MAX_POLLING_DAYS}-day polling window")


def test_missing_last_poll_falls_back_to_first():
    assert should_skip_polling(_ago(8), None, now=NOW) is None


def test_schedule_is_monotonic():
    afters = [t.after_days for t in BACKOFF_SCHEDULE]
    intervals = [t.min_interval_days for t in BACKOFF_SCHEDULE]
    assert afters == sorted(afters)
    assert intervals == sorted(intervals)
    assert BACKOFF_SCHEDULE[0].after_days == 0


def test_tier_for_boundaries():
    assert tier_for(0).min_interval_days == 0
    assert tier_for(7).min_interval_days == 2
    assert tier_for(13.9).min_interval_days == 2
    assert tier_for(14).min_interval_days == 3
    assert tier_for(60).min_interval_days == 7


def test_tier_labels():
    assert tier_label(None, now=NOW) is None
    assert tier_label(_ago(2), now=NOW) == "Every cron run"
    assert tier_label(_ago(8), now=NOW) == "Every 2d"
    assert tier_label(_ago(25), now=NOW) == "Every 7d"
    assert tier_label(_ago(95), now=NOW) == f"Stopped (exceeded {MAX_POLLING_DAYS} days)"


def test_next_poll_eligible_at():
    assert next_poll_eligible_at(None, None, now=NOW) is None
    assert next_poll_eligible_at(_ago(2), _ago(1), now=NOW) is None
    assert next_poll_eligible_at(_ago(10), _ago(1), now=NOW) == _ago(1) + timedelta(days=2)
    assert next_poll_eligible_at(_ago(100), _ago(1), now=NOW) is None
