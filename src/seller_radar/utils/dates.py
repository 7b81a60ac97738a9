"""
Date Utility Functions

Calendar arithmetic shared by the feature store builder and the scorer.
All inputs are expected to be timezone-aware UTC datetimes.
"""
from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def isoformat_utc(value: datetime) -> str:
    """
    Format a datetime as an ISO-8601 UTC string with millisecond precision
    and a ``Z`` suffix, e.g. ``2024-06-01T00:00:00.000Z``.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    stamp = value.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    return stamp.replace("+00:00", "Z")


def file_timestamp(value: datetime) -> str:
    """Filesystem-safe variant of ``isoformat_utc`` (no colons or dots)."""
    return isoformat_utc(value).replace(":", "-").replace(".", "-")


def calendar_months_between(later: datetime, earlier: datetime) -> int:
    """
    Whole calendar months from ``earlier`` to ``later``.

    A month only counts once the day-of-month has been reached, so
    2024-01-31 -> 2024-02-29 is 0 months. Negative when ``later`` precedes
    ``earlier``.
    """
    months = (later.year - earlier.year) * 12 + (later.month - earlier.month)
    if later.day < earlier.day:
        months -= 1
    return months


def months_between(later: datetime, earlier: datetime) -> int:
    return max(0, calendar_months_between(later, earlier))


def whole_years_between(later: datetime, earlier: datetime) -> int:
    """Completed years between two datetimes (anniversary based), never negative."""
    return max(0, calendar_months_between(later, earlier) // 12)


def days_between(later: datetime, earlier: datetime) -> int:
    delta = later - earlier
    if delta.total_seconds() <= 0:
        return 0
    return delta.days
