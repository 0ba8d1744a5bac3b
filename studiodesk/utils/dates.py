"""Datetime helpers."""

from __future__ import annotations

import os
from datetime import date, datetime, timedelta, timezone

import pendulum

DEFAULT_TZ = "Asia/Jakarta"


def timezone_name() -> str:
    return os.environ.get("TIMEZONE", DEFAULT_TZ)


def now_in_tz() -> pendulum.DateTime:
    tz = pendulum.timezone(timezone_name())
    return pendulum.now(tz)


def today_in_tz() -> date:
    return now_in_tz().date()


def utc_now() -> datetime:
    """Naive UTC timestamp, the form every datetime column is stored in."""
    now = pendulum.now("UTC")
    return datetime(now.year, now.month, now.day, now.hour, now.minute, now.second, now.microsecond)


def cooldown_deadline(now: datetime, days: int) -> datetime:
    if days <= 0:
        raise ValueError("Cooldown period must be at least one day")
    return now + timedelta(days=days)


def days_between(start: datetime, end: datetime) -> int:
    return (end - start).days


def to_utc_naive(value: datetime) -> datetime:
    """Aware datetimes are converted to UTC and stripped; naive ones are taken as UTC."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def format_date(value: date) -> str:
    return value.strftime("%Y-%m-%d")
