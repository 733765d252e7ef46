"""CSV import/export of task lists.

Two input shapes are understood: the planner's own simple five column layout and
the richer export produced by the project backend. ``detect_format`` picks the
parser from the header row.
"""
import csv
import math
from dataclasses import dataclass
from enum import Enum

from .models import DEFAULT_TASK_TYPE, Task, TaskStore
from .results import EmptyInputError, Err, Ok, ValidationError
from .workdays import fits_calendar, format_date, parse_date, parse_datetime, today as current_day

EXPORT_HEADER = ['Name', 'Resource', 'StartDate', 'Duration', 'Type', 'Dependencies']
MIN_FIELDS = 3
HOURS_PER_DAY = 8
DEFAULT_PLANNED_HOURS = 4
IMPORT_MODES = ('replace', 'append')


class CsvFormat(str, Enum):
    SIMPLE = 'simple'
    RICH_EXPORT = 'rich_export'


class SimpleFormat:
    """Positional ``Name,Resource,StartDate,Duration,Type``; every column optional."""
    kind = CsvFormat.SIMPLE
    columns = ('Name', 'Resource', 'StartDate', 'Duration', 'Type')

    def __init__(self, headers, today):
        self.headers = headers
        self.today = today

    def parse_row(self, values):
        def col(i):
            return values[i].strip() if i < len(values) else ''

        try:
            start = parse_date(col(2)) if col(2) else self.today
        except ValueError:
            return None
        try:
            duration = max(1, int(col(3)))
        except ValueError:
            duration = 1
        if not fits_calendar(start, duration):
            return None
        return {
            'name': col(0) or 'Untitled',
            'resource': col(1) or 'Unassigned',
            'start_date': start,
            'duration': duration,
            'type': col(4) or DEFAULT_TASK_TYPE,
        }


class RichExportFormat:
    """Backend export located by header name; title/assignee/start/end/hours columns."""
    kind = CsvFormat.RICH_EXPORT
    markers = ('Titolo', 'Assegnato a', 'Start Date', 'Title', 'Assigned to')
    title_columns = ('Titolo', 'Title')
    assignee_columns = ('Assegnato a', 'Assigned to')
    start_columns = ('Start Date', 'Data di inizio')
    end_columns = ('Data finale', 'End Date')
    hours_columns = ('Ore inizialmente pianificate', 'Initially Planned Hours')

    def __init__(self, headers, today):
        self.today = today
        self.title = self._index(headers, self.title_columns)
        self.assignee = self._index(headers, self.assignee_columns)
        self.start = self._index(headers, self.start_columns)
        self.end = self._index(headers, self.end_columns)
        self.hours = self._index(headers, self.hours_columns)

    @staticmethod
    def _index(headers, names):
        for name in names:
            if name in headers:
                return headers.index(name)
        return None

    @staticmethod
    def _value(values, idx):
        if idx is None or idx >= len(values):
            return ''
        return values[idx].strip()

    def parse_row(self, values):
        start_text = self._value(values, self.start)
        end_text = self._value(values, self.end)
        try:
            hours = float(self._value(values, self.hours).replace(',', '.'))
        except ValueError:
            hours = 0
        if not math.isfinite(hours):
            hours = 0
        duration = max(1, math.ceil((hours or DEFAULT_PLANNED_HOURS) / HOURS_PER_DAY))
        try:
            start = parse_date(start_text) if start_text else self.today
            if start_text and end_text:
                delta = abs(parse_datetime(end_text) - parse_datetime(start_text))
                duration = max(1, math.ceil(delta.total_seconds() / 86400) or duration)
        except ValueError:
            return None
        if not fits_calendar(start, duration):
            return None
        return {
            'name': self._value(values, self.title) or 'Untitled',
            'resource': self._value(values, self.assignee) or 'Unassigned',
            'start_date': start,
            'duration': duration,
            'type': DEFAULT_TASK_TYPE,
        }


def detect_format(headers):
    if any(h in RichExportFormat.markers for h in headers):
        return CsvFormat.RICH_EXPORT
    return CsvFormat.SIMPLE


PARSERS = {
    CsvFormat.SIMPLE: SimpleFormat,
    CsvFormat.RICH_EXPORT: RichExportFormat,
}


@dataclass(frozen=True)
class ImportOutcome:
    store: TaskStore
    imported: int
    format: CsvFormat


def read_rows(text):
    lines = [line for line in text.splitlines() if line.strip()]
    return [[v.strip() for v in row] for row in csv.reader(lines)]


def parse_tasks(rows, first_id=1, today=None):
    """Turn header + data rows into Tasks; malformed rows are dropped."""
    if not rows:
        return CsvFormat.SIMPLE, []
    headers = [h.lstrip('\ufeff').strip() for h in rows[0]]
    fmt = detect_format(headers)
    parser = PARSERS[fmt](headers, today or current_day())
    parsed = []
    for values in rows[1:]:
        if len(values) < MIN_FIELDS:
            continue
        fields = parser.parse_row(values)
        if fields is not None:
            parsed.append(fields)
    parsed.sort(key=lambda f: (f['start_date'], f['resource']))
    tasks = [Task(id=first_id + i, original_duration=f['duration'], **f) for i, f in enumerate(parsed)]
    return fmt, tasks


def import_csv(text, store=None, mode='replace', today=None):
    """Parse CSV ``text`` and merge it into ``store`` (replace or append)."""
    if mode not in IMPORT_MODES:
        return Err(ValidationError(f'Unknown import mode: {mode!r}', field='mode'))
    store = store or TaskStore()
    first_id = 1 if mode == 'replace' else store.next_id()
    fmt, tasks = parse_tasks(read_rows(text), first_id=first_id, today=today)
    if not tasks:
        return Err(EmptyInputError('No valid tasks found in the CSV file'))
    merged = TaskStore(tasks) if mode == 'replace' else store.appended(*tasks)
    return Ok(ImportOutcome(merged, len(tasks), fmt))


def _quoted(value):
    return '"' + str(value).replace('"', '""') + '"'


def _field(value):
    text = str(value)
    if any(c in text for c in ',"\r\n'):
        return _quoted(text)
    return text


def export_csv(store):
    """Dependencies always go out as one quoted ``;``-joined field, even when empty."""
    lines = [','.join(EXPORT_HEADER)]
    for t in store:
        fields = [t.name, t.resource, format_date(t.start_date), t.duration, t.type]
        deps = ';'.join(str(d) for d in t.dependencies)
        lines.append(','.join(_field(v) for v in fields) + ',' + _quoted(deps))
    return '\n'.join(lines) + '\n'


def export_filename(day=None):
    return f'gantt_{format_date(day or current_day())}.csv'
