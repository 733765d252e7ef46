from dataclasses import dataclass, field, replace
from datetime import date
from typing import Optional

from .workdays import end_date, format_date

DEFAULT_TASK_TYPE = 'Consulenza'
ALL = 'Tutti'


@dataclass(frozen=True)
class Task:
    id: int
    name: str
    resource: str
    start_date: date
    duration: int
    original_duration: Optional[int] = None
    type: str = DEFAULT_TASK_TYPE
    dependencies: tuple = ()
    external_id: Optional[int] = None
    project_id: Optional[int] = None
    project_name: Optional[str] = None
    stage: Optional[str] = None
    tags: tuple = ()

    def __post_init__(self):
        if self.original_duration is None:
            object.__setattr__(self, 'original_duration', self.duration)
        object.__setattr__(self, 'dependencies', tuple(self.dependencies or ()))
        object.__setattr__(self, 'tags', tuple(self.tags or ()))

    @property
    def end_date(self):
        return end_date(self.start_date, self.duration)

    def moved(self, start_date, duration=None):
        return replace(self, start_date=start_date,
                       duration=self.duration if duration is None else duration)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'resource': self.resource,
            'start_date': format_date(self.start_date),
            'end_date': format_date(self.end_date),
            'duration': self.duration,
            'original_duration': self.original_duration,
            'type': self.type,
            'dependencies': list(self.dependencies),
            'external_id': self.external_id,
            'project_id': self.project_id,
            'project_name': self.project_name,
            'stage': self.stage,
            'tags': list(self.tags),
        }


@dataclass(frozen=True)
class TaskRequest:
    """What the user asks for when adding a task by hand."""
    name: str
    resource: str
    duration: int = 1
    type: str = DEFAULT_TASK_TYPE
    insert_after_id: Optional[int] = None


@dataclass(frozen=True)
class TaskStore:
    """Immutable task collection handed to and returned from every core operation."""
    tasks: tuple = field(default_factory=tuple)

    def __post_init__(self):
        object.__setattr__(self, 'tasks', tuple(self.tasks))

    def __iter__(self):
        return iter(self.tasks)

    def __len__(self):
        return len(self.tasks)

    def __bool__(self):
        return bool(self.tasks)

    def get(self, task_id):
        return next((t for t in self.tasks if t.id == task_id), None)

    def ids(self):
        return [t.id for t in self.tasks]

    def next_id(self):
        return max(self.ids(), default=0) + 1

    def external_ids(self):
        return {t.external_id for t in self.tasks if t.external_id is not None}

    def resources(self):
        seen = []
        for t in self.tasks:
            if t.resource not in seen:
                seen.append(t.resource)
        return seen

    def types(self):
        seen = []
        for t in self.tasks:
            if t.type not in seen:
                seen.append(t.type)
        return seen

    def for_resource(self, resource):
        """Tasks of one resource ordered by start date (stable on ties)."""
        return sorted((t for t in self.tasks if t.resource == resource),
                      key=lambda t: t.start_date)

    def filter(self, resource=None, task_type=None):
        selected = self.tasks
        if resource and resource != ALL:
            selected = [t for t in selected if t.resource == resource]
        if task_type and task_type != ALL:
            selected = [t for t in selected if t.type == task_type]
        return TaskStore(selected)

    def with_updates(self, updated):
        """Replace tasks by id, keeping the original order of the collection."""
        by_id = {t.id: t for t in updated}
        return TaskStore(by_id.get(t.id, t) for t in self.tasks)

    def appended(self, *tasks):
        return TaskStore(self.tasks + tuple(tasks))

    def to_list(self):
        return [t.to_dict() for t in self.tasks]
