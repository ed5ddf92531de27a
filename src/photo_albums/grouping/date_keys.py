"""Grouping keys for albums: ISO week, month and day buckets.

Weeks follow ISO-8601: Monday=1..Sunday=7, and the Thursday of a week
decides both its number and the year it belongs to. Every key function is
pure; only ``is_today``/``is_this_week``/``relative_date_string`` look at
the clock, and only when ``now`` is not given.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta
from typing import Any, Callable, Iterable, Union

Timestamp = Union[datetime, date, str]

GROUP_BY_CHOICES = ("week", "month", "day")


def to_local_datetime(value: Timestamp) -> datetime:
    """Resolve a timestamp to a naive local datetime.

    Strings are ISO-8601 (a trailing ``Z`` is accepted); aware datetimes are
    converted to local time; naive values are already local.
    """
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        value = datetime.fromisoformat(text)
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone().replace(tzinfo=None)
        return value
    if isinstance(value, date):
        return datetime.combine(value, time())
    raise TypeError(f"Unsupported timestamp type: {type(value).__name__}")


def to_local_date(value: Timestamp) -> date:
    """Resolve a timestamp to its local calendar date (i.e. local midnight)."""
    if type(value) is date:
        return value
    return to_local_datetime(value).date()


def _first_thursday(year: int) -> date:
    jan1 = date(year, 1, 1)
    return jan1 + timedelta(days=(3 - jan1.weekday()) % 7)


def week_key(value: Timestamp) -> str:
    """Return the ISO week key ``YYYY-Www`` for a timestamp.

    The date is shifted to the Thursday of its week; that Thursday's year is
    the week-owning year, so 2021-01-01 (a Friday) gives ``2020-W53`` and
    2024-12-30 (a Monday) gives ``2025-W01``.
    """
    d = to_local_date(value)
    thursday = d + timedelta(days=4 - d.isoweekday())
    week = (thursday - _first_thursday(thursday.year)).days // 7 + 1
    return f"{thursday.year:04d}-W{week:02d}"


def month_key(value: Timestamp) -> str:
    d = to_local_date(value)
    return f"{d.year:04d}-{d.month:02d}"


def day_key(value: Timestamp) -> str:
    d = to_local_date(value)
    return f"{d.year:04d}-{d.month:02d}-{d.day:02d}"


_KEY_FUNCTIONS: dict[str, Callable[[Timestamp], str]] = {
    "week": week_key,
    "month": month_key,
    "day": day_key,
}


def group_key(value: Timestamp, group_by: str = "week") -> str:
    """Return the grouping key for ``value`` at the given granularity."""
    try:
        key_func = _KEY_FUNCTIONS[group_by]
    except KeyError:
        raise ValueError(
            f"Unknown grouping {group_by!r}, expected one of {GROUP_BY_CHOICES}"
        ) from None
    return key_func(value)


def is_same_week(now: Timestamp, value: Timestamp) -> bool:
    return week_key(now) == week_key(value)


def is_same_day(now: Timestamp, value: Timestamp) -> bool:
    return day_key(now) == day_key(value)


def is_this_week(value: Timestamp, now: Timestamp | None = None) -> bool:
    return is_same_week(now if now is not None else datetime.now(), value)


def is_today(value: Timestamp, now: Timestamp | None = None) -> bool:
    return is_same_day(now if now is not None else datetime.now(), value)


# --- Display helpers ---

def _short_date(d: date) -> str:
    return f"{d:%b} {d.day}"


def format_date_display(value: Timestamp) -> str:
    """Format a date for display, e.g. ``Nov 15, 2024``."""
    d = to_local_date(value)
    return f"{_short_date(d)}, {d.year}"


def format_week_display(key: str) -> str:
    """Format a week key as its Monday-Sunday range, e.g. ``Nov 11 - Nov 17, 2024``."""
    year, _, week = key.partition("-W")
    monday = date.fromisocalendar(int(year), int(week), 1)
    sunday = monday + timedelta(days=6)
    return f"{_short_date(monday)} - {_short_date(sunday)}, {sunday.year}"


def format_month_display(key: str) -> str:
    """Format a month key, e.g. ``2024-11`` -> ``November 2024``."""
    year, month = key.split("-")
    return f"{date(int(year), int(month), 1):%B} {year}"


def relative_date_string(value: Timestamp, now: Timestamp | None = None) -> str:
    """Describe a date relative to ``now``: Today, Yesterday, This week, or the date."""
    today = to_local_date(now if now is not None else datetime.now())
    d = to_local_date(value)
    if d == today:
        return "Today"
    if d == today - timedelta(days=1):
        return "Yesterday"
    if is_same_week(today, d):
        return "This week"
    return format_date_display(d)


def group_photos_by_date(
    photos: Iterable[Any],
    group_by: str = "week",
    date_attr: str = "date_taken",
) -> dict[str, list[Any]]:
    """Bucket photos by grouping key, preserving input order within each bucket."""
    groups: dict[str, list[Any]] = {}
    for photo in photos:
        key = group_key(getattr(photo, date_attr), group_by)
        groups.setdefault(key, []).append(photo)
    return groups


def sort_date_keys(keys: Iterable[str]) -> list[str]:
    """Sort grouping keys newest first.

    Keys of one granularity are zero-padded and fixed width, so string order
    is chronological order.
    """
    return sorted(keys, reverse=True)
