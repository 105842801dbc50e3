# portfolio_engine/utils/date_utils.py
"""
Date and time helpers shared by the ledger, the valuation cache and the
replay engine.

All times handled by the engine are timezone-aware UTC datetimes. Naive
datetimes coming from callers or from SQLite are interpreted as UTC.

Usage:
    from portfolio_engine.utils.date_utils import to_reference_time

    t = to_reference_time(cash_flow.date)
"""

from datetime import date, datetime, time, timezone

from portfolio_engine.config import settings


def ensure_utc(value: datetime) -> datetime:
    """
    Normalize a datetime to timezone-aware UTC.

    Args:
        value: Naive (assumed UTC) or aware datetime

    Returns:
        The same instant as an aware UTC datetime
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_reference_time(d: date, hour: int | None = None) -> datetime:
    """
    Turn a calendar date into the point in time used to value it.

    One FX rate and one mark apply per date; the reference hour fixes
    which one.

    Args:
        d: Calendar date
        hour: Hour of day in UTC (defaults to settings.fx_reference_hour)

    Returns:
        Aware UTC datetime at the reference hour of the date

    Example:
        >>> to_reference_time(date(2024, 1, 15), 20)
        datetime(2024, 1, 15, 20, 0, tzinfo=timezone.utc)
    """
    ref_hour = settings.fx_reference_hour if hour is None else hour
    return datetime.combine(d, time(hour=ref_hour), tzinfo=timezone.utc)


def in_window(d: date, start: date | None, end: date | None) -> bool:
    """
    Check if a date falls inside the half-open window [start, end).

    A missing bound is unbounded on that side.
    """
    if start is not None and d < start:
        return False
    if end is not None and d >= end:
        return False
    return True

