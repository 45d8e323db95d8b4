"""Due/not-due predicates for dataset refresh cadences.

Every predicate takes the current time and the time of the last successful
sync (None if the dataset was never synced) and is a pure function of them.
Calendar boundaries are computed in UTC.
"""

from __future__ import annotations

import calendar
from datetime import datetime, timedelta, timezone
from typing import Optional


def _utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _start_of_day(value: datetime) -> datetime:
    return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)


def add_months(value: datetime, months: int) -> datetime:
    """Shift by whole months, clamping the day to the target month's length."""
    index = value.month - 1 + months
    year = value.year + index // 12
    month = index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def most_recent_quarter_end(value: datetime) -> datetime:
    """Last instant (23:59:59 UTC) of the last quarter completed before ``value``."""
    value = _utc(value)
    quarter_end_month = ((value.month - 1) // 3) * 3
    year = value.year
    if quarter_end_month == 0:
        quarter_end_month = 12
        year -= 1
    last_day = calendar.monthrange(year, quarter_end_month)[1]
    return datetime(year, quarter_end_month, last_day, 23, 59, 59, tzinfo=timezone.utc)


def daily_schedule(now: datetime, last_sync: Optional[datetime]) -> bool:
    if last_sync is None:
        return True
    return _utc(last_sync) < _start_of_day(_utc(now))


def weekly_schedule(now: datetime, last_sync: Optional[datetime]) -> bool:
    """Due once per Monday-start week."""
    if last_sync is None:
        return True
    now = _utc(now)
    week_start = _start_of_day(now) - timedelta(days=now.weekday())
    return _utc(last_sync) < week_start


def monthly_schedule(now: datetime, last_sync: Optional[datetime]) -> bool:
    if last_sync is None:
        return True
    now = _utc(now)
    month_start = datetime(now.year, now.month, 1, tzinfo=timezone.utc)
    return _utc(last_sync) < month_start


def annual_after(now: datetime, last_sync: Optional[datetime], release_month: int) -> bool:
    """Due once per year, on or after the 1st of ``release_month``."""
    if last_sync is None:
        return True
    now = _utc(now)
    release = datetime(now.year, release_month, 1, tzinfo=timezone.utc)
    return now >= release and _utc(last_sync) < release


def quarterly_with_lag(now: datetime, last_sync: Optional[datetime], lag_months: int) -> bool:
    """Due once a quarter's data is published ``lag_months`` after quarter end."""
    return _quarterly(now, last_sync, lambda quarter_end: add_months(quarter_end, lag_months))


def quarterly_after_delay(now: datetime, last_sync: Optional[datetime], delay_days: int) -> bool:
    """Due once a quarter's data is published ``delay_days`` after quarter end."""
    return _quarterly(now, last_sync, lambda quarter_end: quarter_end + timedelta(days=delay_days))


def one_time_load(now: datetime, last_sync: Optional[datetime]) -> bool:
    """Historic datasets that never change after the first successful load."""
    return last_sync is None


def _quarterly(now: datetime, last_sync: Optional[datetime], available_after) -> bool:
    if last_sync is None:
        return True
    now = _utc(now)

    quarter_end = most_recent_quarter_end(now)
    available = available_after(quarter_end)
    if now < available:
        # Latest quarter not published yet; the one before may still be unsynced.
        quarter_end = most_recent_quarter_end(quarter_end - timedelta(days=1))
        available = available_after(quarter_end)
        if now < available:
            return False
    return _utc(last_sync) < available
