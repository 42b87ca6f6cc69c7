"""
Tagged outcomes for scheduling operations.

Operations return either the success record or one of these failures. They are
ordinary control flow (a Conflict is expected under contention) and are never
raised; infrastructure trouble is raised instead, see ``core.locks.LockTimeout``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TypeVar, Union

from backend.app.domain.models import TimeWindow


T = TypeVar("T")


@dataclass(frozen=True)
class Conflict:
    table_id: int | None
    window: TimeWindow
    conflicting_ids: tuple[int, ...] = ()

    @property
    def message(self) -> str:
        if self.table_id is None:
            return "No table is free for the requested window"
        return f"Table {self.table_id} is already booked for the requested window"


@dataclass(frozen=True)
class CapacityExceeded:
    table_id: int | None
    party_size: int
    capacity: int

    @property
    def message(self) -> str:
        if self.table_id is None:
            return f"No table seats a party of {self.party_size}"
        return f"Table {self.table_id} seats {self.capacity}, party of {self.party_size} requested"


@dataclass(frozen=True)
class InvalidTransition:
    entity: str
    entity_id: int
    current: str
    attempted: str

    @property
    def message(self) -> str:
        return f"{self.entity} {self.entity_id}: cannot move from {self.current} to {self.attempted}"


@dataclass(frozen=True)
class NotFound:
    entity: str
    entity_id: int | str

    @property
    def message(self) -> str:
        return f"{self.entity} {self.entity_id} not found"


@dataclass(frozen=True)
class ValidationFailed:
    errors: tuple[str, ...]

    @property
    def message(self) -> str:
        return "; ".join(self.errors)


Failure = Union[Conflict, CapacityExceeded, InvalidTransition, NotFound, ValidationFailed]
FAILURE_TYPES = (Conflict, CapacityExceeded, InvalidTransition, NotFound, ValidationFailed)

Outcome = Union[T, Failure]


def is_failure(outcome: object) -> bool:
    return isinstance(outcome, FAILURE_TYPES)
