"""Typed outcomes returned by the scheduling core instead of raised exceptions."""
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class ScheduleError:
    message: str
    kind = 'error'

    def __str__(self):
        return self.message


@dataclass(frozen=True)
class ValidationError(ScheduleError):
    field: str = ''
    kind = 'validation'


@dataclass(frozen=True)
class NotFoundError(ScheduleError):
    task_id: Any = None
    kind = 'not_found'


@dataclass(frozen=True)
class EmptyInputError(ScheduleError):
    kind = 'empty_input'


@dataclass(frozen=True)
class Ok:
    value: Any
    ok = True


@dataclass(frozen=True)
class Err:
    error: ScheduleError
    ok = False

    @property
    def message(self):
        return self.error.message
