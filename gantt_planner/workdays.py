"""Workday-aware date helpers used by every scheduling function.

All values are plain ``datetime.date`` objects; anything carrying a time of day
is truncated to its calendar date on the way in.
"""
from datetime import date, datetime, timedelta

import pytz

DATE_FORMAT = '%Y-%m-%d'
SATURDAY = 5
# ten years of calendar days
MAX_DURATION = 3650
# keep range padding and cascades clear of date.min and date.max
FIRST_PLANNABLE = date(1000, 1, 1)
LAST_PLANNABLE = date(9000, 12, 31)


def parse_date(value):
    """Return a ``date`` from a date, datetime or ISO string.

    Strings may carry a time suffix ("2025-11-11 14:00:00" or "2025-11-11T14:00")
    which is dropped. Raises ValueError when nothing usable is found.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if value is None:
        raise ValueError('Missing date')
    text = str(value).strip()
    if not text:
        raise ValueError('Missing date')
    head = text.replace('T', ' ').split(' ')[0]
    return datetime.strptime(head, DATE_FORMAT).date()


def parse_datetime(value):
    """Like parse_date but keeps the time of day (midnight when absent)."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    text = str(value or '').strip()
    if not text:
        raise ValueError('Missing date')
    return datetime.fromisoformat(text)


def format_date(d):
    return d.strftime(DATE_FORMAT)


def today(tz_name=None):
    if not tz_name:
        return date.today()
    return datetime.now(pytz.timezone(tz_name)).date()


def end_date(start, duration):
    # duration counts calendar days, start inclusive
    return start + timedelta(days=duration - 1)


def is_weekend(d):
    return d.weekday() >= SATURDAY


def next_workday(d):
    nxt = d + timedelta(days=1)
    while is_weekend(nxt):
        nxt += timedelta(days=1)
    return nxt


def first_workday_on_or_after(d):
    while is_weekend(d):
        d += timedelta(days=1)
    return d


def week_start(d):
    """Monday of the ISO week containing ``d``."""
    d = parse_date(d)
    return d - timedelta(days=d.weekday())


def week_number(d):
    """ISO-8601 week number: the week belongs to the year holding its Thursday."""
    d = parse_date(d)
    thursday = d + timedelta(days=3 - d.weekday())
    year_start = date(thursday.year, 1, 1)
    return 1 + (thursday - year_start).days // 7


def fits_calendar(start, duration):
    """True when ``duration`` days from ``start`` stay inside the plannable calendar."""
    return 1 <= duration <= MAX_DURATION and FIRST_PLANNABLE <= start <= LAST_PLANNABLE
