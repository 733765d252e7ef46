"""Placement of tasks on a resource's timeline.

Every function here is pure: it receives a TaskStore and returns a new one
(wrapped in Ok) or an Err describing why nothing changed.
"""
from collections import namedtuple
from dataclasses import dataclass
from functools import reduce

from .models import DEFAULT_TASK_TYPE, Task, TaskStore
from .results import Err, NotFoundError, Ok, ValidationError
from .workdays import MAX_DURATION, first_workday_on_or_after, fits_calendar, next_workday, today as current_day

Slot = namedtuple('Slot', ['date', 'after_task_id'])


@dataclass(frozen=True)
class Insertion:
    store: TaskStore
    task: Task
    shifted_ids: tuple = ()


@dataclass(frozen=True)
class ResourceSummary:
    resource: str
    total_tasks: int
    next_available: object
    last_task_end: object


def find_next_available_slot(store, resource, today=None):
    """Next free start date for ``resource`` and the task it would follow.

    With no tasks the slot is today (rolled to Monday on a weekend). Otherwise
    it is the workday after the latest end date among the resource's tasks.
    """
    resource_tasks = store.for_resource(resource)
    if not resource_tasks:
        return Slot(first_workday_on_or_after(today or current_day()), None)
    # later start wins ties
    last = max(reversed(resource_tasks), key=lambda t: t.end_date)
    return Slot(next_workday(last.end_date), last.id)


def resource_summary(store, resource, today=None):
    slot = find_next_available_slot(store, resource, today=today)
    resource_tasks = store.for_resource(resource)
    last_end = max((t.end_date for t in resource_tasks), default=None)
    return ResourceSummary(resource, len(resource_tasks), slot.date, last_end)


def whole_number(value):
    """int for 3, 3.0 or "3"; None for anything else."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def validate_request(wanted):
    if not wanted.name or not wanted.name.strip():
        return ValidationError('Task name is required', field='name')
    if not wanted.resource or not str(wanted.resource).strip():
        return ValidationError('Resource is required', field='resource')
    duration = whole_number(wanted.duration)
    if duration is None or duration < 1:
        return ValidationError('Duration must be a positive whole number of days', field='duration')
    if duration > MAX_DURATION:
        return ValidationError(f'Duration cannot exceed {MAX_DURATION} days', field='duration')
    return None


def _chain(previous_end):
    def step(acc, task):
        placed, cursor = acc
        moved = task.moved(cursor)
        return placed + (moved,), next_workday(moved.end_date)
    return step, ((), next_workday(previous_end))


def insert_task(store, wanted, today=None):
    """Add a task at the end of the resource queue or right after ``wanted.insert_after_id``.

    Inserting mid-sequence re-lays every later task of the same resource one
    after another, starting from the workday after the new task ends.
    """
    error = validate_request(wanted)
    if error:
        return Err(error)
    duration = whole_number(wanted.duration)
    resource = wanted.resource.strip()

    anchor = None
    if wanted.insert_after_id not in (None, ''):
        try:
            anchor_id = int(wanted.insert_after_id)
        except (TypeError, ValueError):
            return Err(ValidationError(f'Invalid task id: {wanted.insert_after_id!r}', field='insert_after_id'))
        anchor = store.get(anchor_id)
        if anchor is None:
            return Err(NotFoundError(f'Task {anchor_id} not found', task_id=anchor_id))
        if anchor.resource != resource:
            return Err(ValidationError(
                f'Task {anchor_id} belongs to {anchor.resource}, not {resource}', field='insert_after_id'))
        start = next_workday(anchor.end_date)
    else:
        start = find_next_available_slot(store, resource, today=today).date
    if not fits_calendar(start, duration):
        return Err(ValidationError(f'Task start {start} is outside the plannable calendar', field='start_date'))

    new_task = Task(
        id=store.next_id(),
        name=wanted.name.strip(),
        resource=resource,
        start_date=start,
        duration=duration,
        original_duration=duration,
        type=wanted.type or DEFAULT_TASK_TYPE,
        dependencies=(anchor.id,) if anchor else (),
    )
    if anchor is None:
        return Ok(Insertion(store.appended(new_task), new_task))

    later = [t for t in store.for_resource(resource) if t.start_date > anchor.start_date]
    step, initial = _chain(new_task.end_date)
    shifted, _ = reduce(step, later, initial)
    updated = store.with_updates(shifted).appended(new_task)
    return Ok(Insertion(updated, new_task, tuple(t.id for t in shifted)))


def adjusted_duration(original_duration, percentage):
    # ceil(original / (percentage / 100)) in integer arithmetic
    return -(-original_duration * 100 // percentage)


def validate_percentage(percentage):
    value = whole_number(percentage)
    if value is None:
        return ValidationError(f'Invalid allocation: {percentage!r}', field='percentage')
    if not 0 < value <= 100:
        return ValidationError('Allocation must be between 1 and 100', field='percentage')
    return None


def recalculate_allocation(store, percentage):
    """Stretch every duration for a partial allocation and re-lay each resource.

    Each resource keeps its first task's start date; the rest follow back to back
    on workdays. Gaps between tasks do not survive, even at 100%.
    """
    error = validate_percentage(percentage)
    if error:
        return Err(error)
    percentage = whole_number(percentage)

    relaid = []
    for resource in store.resources():
        resource_tasks = store.for_resource(resource)
        cursor = resource_tasks[0].start_date
        for task in resource_tasks:
            duration = adjusted_duration(task.original_duration, percentage)
            if not fits_calendar(cursor, duration):
                return Err(ValidationError(
                    f'Allocation {percentage}% pushes task {task.id} past the plannable calendar', field='percentage'))
            placed = task.moved(cursor, duration)
            relaid.append(placed)
            cursor = next_workday(placed.end_date)
    return Ok(store.with_updates(relaid))
