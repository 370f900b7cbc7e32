"""
Backoff-политика автоматического опроса реестра решений.

Сразу после первой попытки встречу опрашиваем на каждом запуске cron,
дальше всё реже, а после MAX_POLLING_DAYS автоматический опрос прекращается
(ручной запрос остаётся доступен).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from council_tasks.common.time import days_between, utc_now_naive


@dataclass(frozen=True)
class BackoffTier:
    after_days: int
    min_interval_days: int


# Ступенчатая функция: tiers по возрастанию after_days, интервалы не убывают
BACKOFF_SCHEDULE: tuple[BackoffTier, ...] = (
    BackoffTier(after_days=0, min_interval_days=0),
    BackoffTier(after_days=7, min_interval_days=2),
    BackoffTier(after_days=14, min_interval_days=3),
    BackoffTier(after_days=21, min_interval_days=7),
)

MAX_POLLING_DAYS = 90


def tier_for(days_since_first: float) -> BackoffTier:
    """
    Последний tier, чей after_days <= days_since_first.
    """
    selected = BACKOFF_SCHEDULE[0]
    for tier in BACKOFF_SCHEDULE:
        if tier.after_days <= days_since_first:
            selected = tier
    return selected


def should_skip_polling(
    first_poll_at: datetime | None,
    last_poll_at: datetime | None,
    *,
    now: datetime | None = None,
) -> str | None:
    """
    Возвращает причину пропуска или None, если встречу можно опрашивать.
    """
    if first_poll_at is None:
        return None

    current = now or utc_now_naive()
    days_since_first = days_between(first_poll_at, current)
    if days_since_first >= MAX_POLLING_DAYS:
        return (
            f"exceeded {MAX_POLLING_DAYS}-day polling window "
            f"(first poll {days_since_first:.1f} days ago)"
        )

    tier = tier_for(days_since_first)
    if tier.min_interval_days == 0:
        return None

    days_since_last = days_between(last_poll_at or first_poll_at, current)
    if days_since_last < tier.min_interval_days:
        return (
            f"backoff: last poll {days_since_last:.1f} days ago, "
            f"min interval {tier.min_interval_days} days "
            f"(day {days_since_first:.1f} since first poll)"
        )
    return None


def tier_label(first_poll_at: datetime | None, *, now: datetime | None = None) -> str | None:
    if first_poll_at is None:
        return None
    current = now or utc_now_naive()
    days_since_first = days_between(first_poll_at, current)
    if days_since_first >= MAX_POLLING_DAYS:
        return f"Stopped (exceeded {MAX_POLLING_DAYS} days)"
    tier = tier_for(days_since_first)
    if tier.min_interval_days == 0:
        return "Every cron run"
    return f"Every {tier.min_interval_days}d"


def next_poll_eligible_at(
    first_poll_at: datetime | None,
    last_poll_at: datetime | None,
    *,
    now: datetime | None = None,
) -> datetime | None:
    """
    Когда встреча снова станет доступна автоматическому опросу.
    None: ограничений нет (ни разу не опрашивали / каждый запуск) или опрос остановлен.
    """
    if first_poll_at is None:
        return None
    current = now or utc_now_naive()
    days_since_first = days_between(first_poll_at, current)
    if days_since_first >= MAX_POLLING_DAYS:
        return None
    tier = tier_for(days_since_first)
    if tier.min_interval_days == 0:
        return None
    return (last_poll_at or first_poll_at) + timedelta(days=tier.min_interval_days)
