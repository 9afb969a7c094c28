"""
Maintenance Intake — Workflow States

The intake workflow as an explicit tagged union:

    Drafted → MatchChecked → {LinkedToExisting | CreatedNew}
    CreatedNew → {Observation | ResolvedImmediately | Dispatched}
    {Observation | ResolvedImmediately | Dispatched} → Closed

Each state is a frozen dataclass carrying exactly the data valid in that
state. advance() enforces the transition table; anything else raises
InvalidTransition.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

from engine.errors import InvalidTransition
from intake.types import (
    DuplicateCandidate,
    IncidentDraft,
    Occurrence,
    OccurrenceStatus,
    WorkOrder,
)


@dataclass(frozen=True)
class Drafted:
    draft: IncidentDraft


@dataclass(frozen=True)
class MatchChecked:
    draft: IncidentDraft
    candidates: tuple[DuplicateCandidate, ...] = ()
    resume_token: str | None = None
    skipped: bool = False  # force create without a reviewed list


@dataclass(frozen=True)
class LinkedToExisting:
    draft: IncidentDraft
    root: Occurrence


@dataclass(frozen=True)
class CreatedNew:
    draft: IncidentDraft
    occurrence: Occurrence


@dataclass(frozen=True)
class Observation:
    occurrence: Occurrence


@dataclass(frozen=True)
class ResolvedImmediately:
    occurrence: Occurrence


@dataclass(frozen=True)
class Dispatched:
    occurrence: Occurrence
    work_order: WorkOrder | None = None


@dataclass(frozen=True)
class Closed:
    occurrence: Occurrence
    reason: str = field(default="")


IntakeState = Union[
    Drafted, MatchChecked, LinkedToExisting, CreatedNew,
    Observation, ResolvedImmediately, Dispatched, Closed,
]


_TRANSITIONS: dict[type, set[type]] = {
    Drafted:             {MatchChecked},
    MatchChecked:        {LinkedToExisting, CreatedNew},
    CreatedNew:          {Observation, ResolvedImmediately, Dispatched},
    Observation:         {Closed},
    ResolvedImmediately: {Closed},
    Dispatched:          {Closed},
}


def advance(current: IntakeState, to: IntakeState) -> IntakeState:
    """Return `to` if current → to is allowed, else raise InvalidTransition."""
    allowed = _TRANSITIONS.get(type(current), set())
    if type(to) not in allowed:
        raise InvalidTransition(
            f"{type(current).__name__} → {type(to).__name__} is not allowed. "
            f"Valid transitions: {sorted(t.__name__ for t in allowed)}",
            state=type(current).__name__,
        )
    return to


def is_terminal(state: IntakeState) -> bool:
    return type(state) not in _TRANSITIONS


def state_of(occurrence: Occurrence) -> IntakeState:
    """Rehydrate the post-commit state of a persisted occurrence."""
    if occurrence.status == OccurrenceStatus.CLOSED:
        return Closed(occurrence)
    if occurrence.status == OccurrenceStatus.OBSERVATION:
        return Observation(occurrence)
    return Dispatched(occurrence)


def state_name(state: IntakeState) -> str:
    return type(state).__name__
