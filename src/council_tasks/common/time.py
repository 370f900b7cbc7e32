"""
Утилиты времени.

Назначение:
- единый "сейчас" в UTC
- naive-UTC значения для колонок DateTime (БД хранит UTC без зоны)
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

SECONDS_PER_DAY = 24 * 60 * 60


def utc_now() -> datetime:
    """
    Текущее время в UTC (aware datetime).
    """
    return datetime.now(UTC)


def utc_now_naive() -> datetime:
    """
    Текущее время в UTC без tzinfo (формат колонок БД).
    """
    return utc_now().replace(tzinfo=None)


def as_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def days_between(earlier: datetime, later: datetime) -> float:
    return (as_naive_utc(later) - as_naive_utc(earlier)).total_seconds() / SECONDS_PER_DAY


def days_ago(days: float, *, now: datetime | None = None) -> datetime:
    base = as_naive_utc(now) if now is not None else utc_now_naive()
    return base - timedelta(days=days)


def iso_or_none(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None
