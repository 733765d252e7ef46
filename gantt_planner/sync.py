"""Merge tasks pulled from the external backend into the local task set."""
from dataclasses import dataclass

from .models import DEFAULT_TASK_TYPE, Task, TaskStore
from .results import Err, Ok, ValidationError
from .scheduling import whole_number
from .workdays import fits_calendar, parse_date

SYNC_MODES = ('replace', 'append')
REQUIRED_FIELDS = ('name', 'resource', 'start_date', 'duration')


@dataclass(frozen=True)
class SyncOutcome:
    store: TaskStore
    added: int
    skipped: int


def _normalize(record, position):
    missing = [f for f in REQUIRED_FIELDS if record.get(f) in (None, '')]
    if missing:
        return None, ValidationError(f'Source task #{position} is missing {", ".join(missing)}', field=missing[0])
    try:
        start = parse_date(record['start_date'])
    except ValueError:
        return None, ValidationError(
            f'Source task #{position} has an invalid start date: {record["start_date"]!r}', field='start_date')
    duration = whole_number(record['duration'])
    if duration is None or duration < 1:
        return None, ValidationError(
            f'Source task #{position} has an invalid duration: {record["duration"]!r}', field='duration')
    if not fits_calendar(start, duration):
        return None, ValidationError(
            f'Source task #{position} does not fit the plannable calendar', field='duration')
    return {
        'name': str(record['name']),
        'resource': str(record['resource']),
        'start_date': start,
        'duration': duration,
        'original_duration': duration,
        'type': record.get('type') or DEFAULT_TASK_TYPE,
        'external_id': record.get('external_id'),
        'project_id': record.get('project_id'),
        'project_name': record.get('project_name'),
        'stage': record.get('stage'),
        'tags': tuple(record.get('tags') or ()),
    }, None


def _as_record(item):
    if isinstance(item, Task):
        data = item.to_dict()
        data['start_date'] = item.start_date
        return data
    return dict(item)


def sync(store, source_tasks, mode='replace'):
    """Bring ``source_tasks`` into ``store``.

    ``replace`` drops every local task; ``append`` keeps them and skips source
    tasks whose external id is already known. New tasks get fresh local ids and
    dependencies expressed as external ids are translated to local ids.
    """
    if mode not in SYNC_MODES:
        return Err(ValidationError(f'Unknown sync mode: {mode!r}', field='mode'))
    store = store or TaskStore()
    base = TaskStore() if mode == 'replace' else store
    known = base.external_ids()

    records = [_as_record(item) for item in source_tasks]
    incoming = []
    skipped = 0
    for position, record in enumerate(records, start=1):
        fields, error = _normalize(record, position)
        if error:
            return Err(error)
        external_id = fields['external_id']
        if external_id is not None and external_id in known:
            skipped += 1
            continue
        if external_id is not None:
            known.add(external_id)
        incoming.append((fields, record.get('dependencies') or ()))

    next_id = base.next_id()
    local_ids = {t.external_id: t.id for t in base if t.external_id is not None}
    for offset, (fields, _) in enumerate(incoming):
        if fields['external_id'] is not None:
            local_ids[fields['external_id']] = next_id + offset

    added = []
    for offset, (fields, deps) in enumerate(incoming):
        dependencies = tuple(local_ids[d] for d in deps if d in local_ids)
        added.append(Task(id=next_id + offset, dependencies=dependencies, **fields))
    return Ok(SyncOutcome(base.appended(*added), len(added), skipped))
