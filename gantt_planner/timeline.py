"""Visible date span, grid scale and header cells for the chart."""
from collections import namedtuple
from datetime import timedelta
from enum import Enum

from .workdays import is_weekend, today as current_day, week_number, week_start

DAY_WIDTH = 40
LEAD_DAYS = 2
TRAIL_DAYS = 7
EMPTY_SPAN_DAYS = 14

DateRange = namedtuple('DateRange', ['min_date', 'max_date'])
HeaderCell = namedtuple('HeaderCell', ['label', 'sublabel', 'span_width'])
Bar = namedtuple('Bar', ['task_id', 'offset', 'left', 'width'])

MONTH_LABELS = ['Jan', 'Feb', 'Mar', 'Apr', 'May', 'Jun',
                'Jul', 'Aug', 'Sep', 'Oct', 'Nov', 'Dec']
WEEKDAY_LABELS = ['Mon', 'Tue', 'Wed', 'Thu', 'Fri', 'Sat', 'Sun']


class Granularity(str, Enum):
    DAY = 'day'
    WEEK = 'week'
    MONTH = 'month'
    QUARTER = 'quarter'
    YEAR = 'year'

    @classmethod
    def parse(cls, value, default=None):
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            return default or cls.DAY


# a month is always 30 day-units wide, a quarter 90
COLUMN_WIDTHS = {
    Granularity.DAY: 1.0,
    Granularity.WEEK: 1 / 7,
    Granularity.MONTH: 1 / 30,
    Granularity.QUARTER: 1 / 90,
    Granularity.YEAR: 1 / 365,
}


def compute_column_width(granularity):
    return COLUMN_WIDTHS[Granularity.parse(granularity)]


def compute_range(tasks, granularity=Granularity.DAY, explicit_week=None, today=None):
    if explicit_week is not None:
        monday = week_start(explicit_week)
        return DateRange(monday, monday + timedelta(days=6))
    tasks = list(tasks)
    if not tasks:
        start = today or current_day()
        return DateRange(start, start + timedelta(days=EMPTY_SPAN_DAYS))
    min_date = min(t.start_date for t in tasks) - timedelta(days=LEAD_DAYS)
    max_date = max(t.end_date for t in tasks) + timedelta(days=TRAIL_DAYS)
    return DateRange(min_date, max_date)


def dates_in(date_range):
    days = (date_range.max_date - date_range.min_date).days
    return [date_range.min_date + timedelta(days=i) for i in range(days + 1)]


def task_offset(task, min_date):
    return max(0, (task.start_date - min_date).days)


def task_bar(task, min_date, granularity=Granularity.DAY, day_width=DAY_WIDTH):
    unit = compute_column_width(granularity) * day_width
    offset = task_offset(task, min_date)
    return Bar(task.id, offset, offset * unit, task.duration * unit)


def _group_key(d, granularity):
    if granularity is Granularity.WEEK:
        return d.isocalendar()[:2]
    if granularity is Granularity.MONTH:
        return d.year, d.month
    if granularity is Granularity.QUARTER:
        return d.year, (d.month - 1) // 3 + 1
    if granularity is Granularity.YEAR:
        return d.year
    return d


def _labels(d, granularity):
    if granularity is Granularity.WEEK:
        return f'W{week_number(d)}', week_start(d).strftime('%d/%m')
    if granularity is Granularity.MONTH:
        return MONTH_LABELS[d.month - 1], str(d.year)
    if granularity is Granularity.QUARTER:
        return f'Q{(d.month - 1) // 3 + 1}', str(d.year)
    if granularity is Granularity.YEAR:
        return str(d.year), ''
    return f'{d.day:02d} {MONTH_LABELS[d.month - 1]}', WEEKDAY_LABELS[d.weekday()]


def group_header_labels(dates, granularity=Granularity.DAY, day_width=DAY_WIDTH):
    """Merge consecutive dates sharing a week/month/quarter/year into one header cell."""
    granularity = Granularity.parse(granularity)
    unit = compute_column_width(granularity) * day_width
    cells = []
    current_key = None
    for d in dates:
        key = _group_key(d, granularity)
        if cells and key == current_key:
            label, sublabel, width = cells[-1]
            cells[-1] = HeaderCell(label, sublabel, width + unit)
        else:
            label, sublabel = _labels(d, granularity)
            cells.append(HeaderCell(label, sublabel, unit))
            current_key = key
    return cells


def weekend_columns(dates):
    return [i for i, d in enumerate(dates) if is_weekend(d)]
