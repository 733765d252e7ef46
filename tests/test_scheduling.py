from datetime import date, timedelta

import pytest

from gantt_planner.models import Task, TaskRequest, TaskStore
from gantt_planner.results import NotFoundError, ValidationError
from gantt_planner.scheduling import (adjusted_duration, find_next_available_slot, insert_task,
                                      recalculate_allocation, resource_summary, whole_number)
from gantt_planner.workdays import LAST_PLANNABLE, MAX_DURATION, is_weekend

MONDAY = date(2024, 11, 11)


def make_store(*tasks):
    return TaskStore(tasks)


def task(id, start, duration, resource='R', **kw):
    return Task(id=id, name=f'Task {id}', resource=resource, start_date=start, duration=duration, **kw)


def assert_no_overlap(store, resource):
    seq = store.for_resource(resource)
    for prev, nxt in zip(seq, seq[1:]):
        assert nxt.start_date > prev.end_date


# --- slot finder ---

def test_slot_after_single_task():
    store = make_store(task(1, MONDAY, 3))
    slot = find_next_available_slot(store, 'R')
    assert slot.date == date(2024, 11, 14)
    assert slot.after_task_id == 1


def test_slot_for_empty_resource_is_today():
    assert find_next_available_slot(TaskStore(), 'R', today=date(2024, 11, 13)) == (date(2024, 11, 13), None)


def test_slot_for_empty_resource_on_weekend_rolls_to_monday():
    slot = find_next_available_slot(TaskStore(), 'R', today=date(2024, 11, 16))
    assert slot.date == date(2024, 11, 18)


def test_slot_uses_latest_end_not_latest_start():
    store = make_store(task(1, MONDAY, 10), task(2, date(2024, 11, 12), 1))
    slot = find_next_available_slot(store, 'R')
    assert slot.after_task_id == 1
    assert slot.date == date(2024, 11, 21)


def test_slot_ignores_other_resources():
    store = make_store(task(1, MONDAY, 3), task(2, MONDAY, 20, resource='Other'))
    assert find_next_available_slot(store, 'R').date == date(2024, 11, 14)


def test_slot_skips_weekend_after_friday_end():
    store = make_store(task(1, MONDAY, 5))
    assert find_next_available_slot(store, 'R').date == date(2024, 11, 18)


def test_slot_never_moves_backwards_when_tasks_are_added():
    store = make_store(task(1, MONDAY, 3))
    previous = find_next_available_slot(store, 'R').date
    for n in range(5):
        store = insert_task(store, TaskRequest(f'n{n}', 'R', duration=n + 1)).value.store
        current = find_next_available_slot(store, 'R').date
        assert current >= previous
        previous = current


def test_resource_summary():
    store = make_store(task(1, MONDAY, 3), task(2, date(2024, 11, 14), 2))
    summary = resource_summary(store, 'R')
    assert summary.total_tasks == 2
    assert summary.next_available == date(2024, 11, 18)
    assert summary.last_task_end == date(2024, 11, 15)


# --- inserter ---

def test_insert_after_task_cascades_later_tasks():
    store = make_store(task(1, MONDAY, 3), task(2, date(2024, 11, 20), 2))
    result = insert_task(store, TaskRequest('New', 'R', duration=2, insert_after_id=1))
    assert result.ok
    insertion = result.value
    assert insertion.task.start_date == date(2024, 11, 14)
    assert insertion.task.end_date == date(2024, 11, 15)
    assert insertion.task.dependencies == (1,)
    assert insertion.store.get(2).start_date == date(2024, 11, 18)
    assert insertion.shifted_ids == (2,)
    assert_no_overlap(insertion.store, 'R')


def test_insert_leaves_input_store_untouched():
    store = make_store(task(1, MONDAY, 3), task(2, date(2024, 11, 20), 2))
    before = store.to_list()
    insert_task(store, TaskRequest('New', 'R', duration=2, insert_after_id=1))
    assert store.to_list() == before


def test_insert_cascade_chains_back_to_back():
    store = make_store(task(1, MONDAY, 1), task(2, date(2024, 11, 12), 2), task(3, date(2024, 11, 14), 3))
    insertion = insert_task(store, TaskRequest('New', 'R', duration=4, insert_after_id=1)).value
    # new: Tue 12 - Fri 15; task 2: Mon 18 - Tue 19; task 3: Wed 20 - Fri 22
    assert insertion.store.get(2).start_date == date(2024, 11, 18)
    assert insertion.store.get(3).start_date == date(2024, 11, 20)
    assert_no_overlap(insertion.store, 'R')
    for t in insertion.store:
        assert not is_weekend(t.start_date)


def test_insert_does_not_touch_other_resources():
    other = task(2, date(2024, 11, 14), 2, resource='Other')
    store = make_store(task(1, MONDAY, 3), other)
    insertion = insert_task(store, TaskRequest('New', 'R', duration=5, insert_after_id=1)).value
    assert insertion.store.get(2) == other
    assert insertion.shifted_ids == ()


def test_insert_without_anchor_appends_at_next_slot():
    store = make_store(task(1, MONDAY, 3))
    insertion = insert_task(store, TaskRequest('New', 'R', duration=2)).value
    assert insertion.task.id == 2
    assert insertion.task.start_date == date(2024, 11, 14)
    assert insertion.task.dependencies == ()
    assert len(insertion.store) == 2


def test_insert_into_empty_store_gets_first_id_and_today():
    insertion = insert_task(TaskStore(), TaskRequest('First', 'R', duration='2'), today=date(2024, 11, 13)).value
    assert insertion.task.id == 1
    assert insertion.task.start_date == date(2024, 11, 13)
    assert insertion.task.duration == 2
    assert insertion.task.original_duration == 2
    assert insertion.task.type == 'Consulenza'


def test_insert_ids_are_max_plus_one():
    store = make_store(task(4, MONDAY, 1), task(9, date(2024, 11, 12), 1))
    assert insert_task(store, TaskRequest('x', 'R')).value.task.id == 10


@pytest.mark.parametrize('wanted, field', [
    (TaskRequest('', 'R'), 'name'),
    (TaskRequest('   ', 'R'), 'name'),
    (TaskRequest('x', ''), 'resource'),
    (TaskRequest('x', 'R', duration=0), 'duration'),
    (TaskRequest('x', 'R', duration=-2), 'duration'),
    (TaskRequest('x', 'R', duration=1.5), 'duration'),
    (TaskRequest('x', 'R', duration='abc'), 'duration'),
])
def test_insert_rejects_invalid_request(wanted, field):
    result = insert_task(make_store(task(1, MONDAY, 1)), wanted)
    assert not result.ok
    assert isinstance(result.error, ValidationError)
    assert result.error.field == field


def test_insert_after_unknown_task_is_not_found():
    result = insert_task(make_store(task(1, MONDAY, 1)), TaskRequest('x', 'R', insert_after_id=42))
    assert not result.ok
    assert isinstance(result.error, NotFoundError)
    assert result.error.task_id == 42


def test_insert_after_task_of_other_resource_is_rejected():
    result = insert_task(make_store(task(1, MONDAY, 1, resource='Other')), TaskRequest('x', 'R', insert_after_id=1))
    assert not result.ok
    assert isinstance(result.error, ValidationError)


# --- allocation ---

def test_allocation_half_doubles_duration():
    store = make_store(task(1, MONDAY, 5, original_duration=5))
    relaid = recalculate_allocation(store, 50).value
    assert relaid.get(1).duration == 10
    assert relaid.get(1).start_date == MONDAY
    assert relaid.get(1).original_duration == 5


def test_allocation_rounds_up():
    assert adjusted_duration(7, 70) == 10
    assert adjusted_duration(3, 80) == 4
    assert adjusted_duration(1, 60) == 2
    assert adjusted_duration(5, 100) == 5


def test_allocation_relays_each_resource_from_first_start():
    store = make_store(task(1, MONDAY, 2), task(2, date(2024, 11, 13), 3), task(3, MONDAY, 2, resource='B'))
    relaid = recalculate_allocation(store, 50).value
    assert relaid.get(1).end_date == date(2024, 11, 14)
    assert relaid.get(2).start_date == date(2024, 11, 15)
    assert relaid.get(2).duration == 6
    assert relaid.get(3).start_date == MONDAY
    assert relaid.ids() == [1, 2, 3]
    assert_no_overlap(relaid, 'R')


def test_allocation_full_is_idempotent():
    store = make_store(task(1, MONDAY, 2), task(2, date(2024, 11, 13), 3))
    once = recalculate_allocation(store, 100).value
    twice = recalculate_allocation(once, 100).value
    assert once == twice


def test_allocation_round_trip_restores_durations():
    store = make_store(task(1, MONDAY, 2), task(2, date(2024, 11, 13), 3))
    halved = recalculate_allocation(store, 50).value
    back = recalculate_allocation(halved, 100).value
    assert [t.duration for t in back] == [t.original_duration for t in store]


def test_allocation_closes_gaps():
    store = make_store(task(1, MONDAY, 1), task(2, MONDAY + timedelta(days=14), 1))
    relaid = recalculate_allocation(store, 100).value
    assert relaid.get(2).start_date == date(2024, 11, 12)


@pytest.mark.parametrize('percentage', [0, -10, 101, 'abc', None, 33.5])
def test_allocation_rejects_bad_percentage(percentage):
    result = recalculate_allocation(make_store(task(1, MONDAY, 1)), percentage)
    assert not result.ok
    assert isinstance(result.error, ValidationError)


def test_allocation_of_empty_store():
    assert recalculate_allocation(TaskStore(), 50).value == TaskStore()


def test_whole_number():
    assert whole_number(3) == 3
    assert whole_number(3.0) == 3
    assert whole_number(' 3 ') == 3
    assert whole_number(True) is None
    assert whole_number(2.5) is None
    assert whole_number('x') is None


# --- calendar bounds ---

def test_insert_rejects_duration_beyond_cap():
    store = make_store(task(1, MONDAY, 3))
    result = insert_task(store, TaskRequest('x', 'R', duration=10_000_000, insert_after_id=1))
    assert not result.ok
    assert isinstance(result.error, ValidationError)
    assert result.error.field == 'duration'


def test_insert_after_task_at_end_of_calendar_is_rejected():
    store = make_store(task(1, LAST_PLANNABLE, 5))
    result = insert_task(store, TaskRequest('x', 'R', duration=1, insert_after_id=1))
    assert not result.ok
    assert result.error.field == 'start_date'


def test_allocation_that_stretches_past_cap_is_rejected():
    store = make_store(task(1, MONDAY, MAX_DURATION))
    before = store.to_list()
    result = recalculate_allocation(store, 50)
    assert not result.ok
    assert result.error.field == 'percentage'
    assert store.to_list() == before
