"""Time helpers.

Timestamps are stored as naive UTC datetimes; calendar-day arithmetic
(buckets, streaks, due dates) happens on those naive values.
"""

from datetime import UTC, date, datetime, time, timedelta


def utc_now() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


def start_of_day(moment: datetime) -> datetime:
    return datetime.combine(moment.date(), time.min)


def end_of_day(moment: datetime) -> datetime:
    return datetime.combine(moment.date(), time.max)


def days_between(later: datetime, earlier: datetime) -> int:
    """Whole days from ``earlier`` to ``later``, truncated toward zero."""
    return int((later - earlier) / timedelta(days=1))


def day_range(day: date) -> tuple[datetime, datetime]:
    """Half-open ``[00:00, next 00:00)`` bounds of a calendar day."""
    start = datetime.combine(day, time.min)
    return start, start + timedelta(days=1)


def as_naive_utc(moment: datetime) -> datetime:
    """Normalise an aware datetime to the naive UTC form stored in the database."""
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(UTC).replace(tzinfo=None)


def add_years(moment: datetime, years: int) -> datetime:
    try:
        return moment.replace(year=moment.year + years)
    except ValueError:
        # Feb 29 -> Feb 28
        return moment.replace(year=moment.year + years, day=28)
