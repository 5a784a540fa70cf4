"""Dose schedule derivation for antimicrobial episodes.

Converts a dosing frequency into the number of dose slots per calendar day
and works out which calendar dates an episode's administration log covers.

Day numbering follows the ward convention: the start date is Day 1.
"""

from datetime import date, datetime, timedelta

from .config import config


def to_date(value: date | datetime) -> date:
    """Drop the time component of a datetime; dates pass through."""
    if isinstance(value, datetime):
        return value.date()
    return value


def slots_per_day(frequency_hours: int | float | None) -> int:
    """Number of dose slots in one calendar day.

    Args:
        frequency_hours: Dosing interval in hours (e.g. 8 for q8h).

    Returns:
        max(1, floor(24 / frequency_hours)), or 1 when the frequency is
        missing or not positive.
    """
    if not frequency_hours or frequency_hours <= 0:
        return 1
    return max(1, int(24 // frequency_hours))


def day_number(start_date: date | datetime, target_date: date | datetime) -> int:
    """Therapy day label for a log column (start date is Day 1, never below 1)."""
    diff_days = (to_date(target_date) - to_date(start_date)).days
    return max(1, diff_days + 1)


def log_window(
    start_date: date | datetime,
    end_date: date | datetime | None = None,
    today: date | None = None,
    max_days: int | None = None,
) -> list[date]:
    """Calendar dates an episode's administration log is shown against.

    The window runs from the start date through the end date (the stop,
    shift or completion date, or today while the episode is active). Long
    courses are clipped so the window begins no earlier than
    ``end - max_days``.

    Args:
        start_date: Episode start date.
        end_date: Terminal date for ended episodes, None while active.
        today: Reference date used when end_date is None.
        max_days: Clip length. Defaults to config.LOG_WINDOW_DAYS.

    Returns:
        Ascending list of dates, empty if the start is after the end.
    """
    if max_days is None:
        max_days = config.LOG_WINDOW_DAYS

    start = to_date(start_date)
    if end_date is not None:
        end = to_date(end_date)
    else:
        end = today or date.today()

    earliest = end - timedelta(days=max_days)
    first = max(start, earliest)
    if first > end:
        return []

    return [first + timedelta(days=offset) for offset in range((end - first).days + 1)]


def window_contains(
    target_date: date | datetime,
    start_date: date | datetime,
    end_date: date | datetime | None = None,
    today: date | None = None,
) -> bool:
    """Whether a date falls between the start and end of the episode.

    Unlike log_window this is not clipped, so older dates of a long course
    can still be logged or corrected.
    """
    target = to_date(target_date)
    end = to_date(end_date) if end_date is not None else (today or date.today())
    return to_date(start_date) <= target <= end
