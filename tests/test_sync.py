from datetime import date

from gantt_planner.models import Task, TaskStore
from gantt_planner.results import ValidationError
from gantt_planner.sync import sync

MONDAY = date(2024, 11, 11)


def source(external_id, name='Remote', deps=(), **kw):
    record = {'name': name, 'resource': 'Mario', 'start_date': '2024-11-11', 'duration': 2,
              'external_id': external_id, 'dependencies': list(deps)}
    record.update(kw)
    return record


def local(id, external_id=None):
    return Task(id=id, name=f'Local {id}', resource='Mario', start_date=MONDAY, duration=1, external_id=external_id)


def test_replace_wipes_local_tasks():
    store = TaskStore([local(1), local(2, external_id=100)])
    outcome = sync(store, [source(200), source(201)], mode='replace').value
    assert [t.external_id for t in outcome.store] == [200, 201]
    assert outcome.store.ids() == [1, 2]
    assert outcome.added == 2
    assert outcome.skipped == 0


def test_append_skips_known_external_ids():
    store = TaskStore([local(1), local(7, external_id=100)])
    outcome = sync(store, [source(100), source(101)], mode='append').value
    assert outcome.store.ids() == [1, 7, 8]
    assert outcome.store.get(8).external_id == 101
    assert outcome.added == 1
    assert outcome.skipped == 1


def test_append_twice_adds_nothing_new():
    first = sync(TaskStore(), [source(100), source(101)], mode='append').value
    second = sync(first.store, [source(100), source(101)], mode='append').value
    assert second.store == first.store
    assert second.added == 0
    assert second.skipped == 2


def test_dependencies_translated_to_local_ids():
    store = TaskStore([local(3, external_id=100)])
    outcome = sync(store, [source(101, deps=[100, 102, 999]), source(102)], mode='append').value
    assert outcome.store.get(4).dependencies == (3, 5)


def test_sync_does_not_modify_input_store():
    store = TaskStore([local(1)])
    sync(store, [source(100)], mode='replace')
    assert store.ids() == [1]


def test_invalid_record_rejects_whole_sync():
    result = sync(TaskStore([local(1)]), [source(100), source(101, start_date='soon')], mode='append')
    assert not result.ok
    assert isinstance(result.error, ValidationError)
    assert result.error.field == 'start_date'


def test_missing_fields_reported():
    result = sync(TaskStore(), [{'name': 'x'}])
    assert not result.ok
    assert result.error.field == 'resource'


def test_unknown_mode():
    assert isinstance(sync(TaskStore(), [], mode='merge').error, ValidationError)


def test_accepts_task_instances():
    remote = Task(id=50, name='Remote', resource='Anna', start_date=MONDAY, duration=3, external_id=9)
    outcome = sync(TaskStore(), [remote]).value
    t = outcome.store.get(1)
    assert (t.name, t.resource, t.start_date, t.duration, t.external_id) == ('Remote', 'Anna', MONDAY, 3, 9)


def test_oversized_duration_rejects_sync():
    result = sync(TaskStore([local(1)]), [source(100, duration=10_000_000)], mode='append')
    assert not result.ok
    assert result.error.field == 'duration'


def test_start_beyond_calendar_rejects_sync():
    result = sync(TaskStore(), [source(100, start_date='9999-12-30')])
    assert not result.ok
    assert isinstance(result.error, ValidationError)
