"""
Maintenance Intake — Type Definitions

Drafts, durable occurrences and work orders, the read-only duplicate
candidate projection, match-check bookkeeping, and the three
submission results returned to callers.
"""

from __future__ import annotations

import enum
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Union


def iso(ts: float | None) -> str | None:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


# ─── Enumerations ───────────────────────────────────────────────────

class OccurrenceStatus(str, enum.Enum):
    """Persisted lifecycle status of an occurrence."""
    OBSERVATION = "observation"
    DISPATCHED = "dispatched"
    CLOSED = "closed"


class Outcome(str, enum.Enum):
    """How a newly created occurrence was classified."""
    OBSERVATION = "observation"
    RESOLVED_IMMEDIATELY = "resolved_immediately"
    DISPATCHED = "dispatched"


class Priority(str, enum.Enum):
    P1 = "P1"
    P2 = "P2"
    P3 = "P3"
    P4 = "P4"

    @property
    def work_order_priority(self) -> str:
        return _WO_PRIORITY[self]


_WO_PRIORITY = {
    Priority.P1: "urgent",
    Priority.P2: "high",
    Priority.P3: "medium",
    Priority.P4: "low",
}


class ResolutionOutcome(str, enum.Enum):
    WORKED = "worked"
    PARTIAL = "partial"
    FAILED = "failed"


class FailureCategory(str, enum.Enum):
    MECHANICAL = "mechanical"
    ELECTRICAL = "electrical"
    HYDRAULIC = "hydraulic"
    PNEUMATIC = "pneumatic"
    OTHER = "other"


class EventKind(str, enum.Enum):
    """Append-only history entries recorded against an occurrence."""
    REPORTED = "reported"
    LINKED = "linked"
    RESOLVED = "resolved"
    DISPATCHED = "dispatched"
    DOWNTIME_STARTED = "downtime_started"
    MERGED = "merged"            # this occurrence was folded into another root
    MERGED_INTO = "merged_into"  # another root was folded into this one
    CLOSED = "closed"


# ─── Drafts ─────────────────────────────────────────────────────────

@dataclass
class ResolutionRecord:
    """What the technician did on the spot."""
    diagnosis: str
    action_taken: str
    outcome: ResolutionOutcome
    elapsed_minutes: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "diagnosis": self.diagnosis,
            "actionTaken": self.action_taken,
            "outcome": self.outcome.value,
            "elapsedMinutes": self.elapsed_minutes,
        }

    @staticmethod
    def from_dict(d: dict[str, Any] | None) -> ResolutionRecord | None:
        if not d:
            return None
        return ResolutionRecord(
            diagnosis=d["diagnosis"],
            action_taken=d["actionTaken"],
            outcome=ResolutionOutcome(d["outcome"]),
            elapsed_minutes=d.get("elapsedMinutes"),
        )


@dataclass
class IncidentDraft:
    """
    A validated, not yet persisted report.

    is_observation and an immediate resolution are mutually exclusive:
    setting one through mark_observation / request_immediate_resolution
    clears the other.
    Observations never carry downtime.
    """
    asset_id: int
    title: str
    component_ids: list[int] = field(default_factory=list)
    subcomponent_ids: list[int] = field(default_factory=list)
    description: str = ""
    symptom_ids: frozenset[int] = field(default_factory=frozenset)
    caused_downtime: bool = False
    is_intermittent: bool = False
    is_safety_related: bool = False
    is_observation: bool = False
    attachments: list[str] = field(default_factory=list)
    resolution: ResolutionRecord | None = None
    notes: str = ""
    failure_category: FailureCategory = FailureCategory.MECHANICAL
    reported_by: str = ""

    @property
    def resolve_immediately(self) -> bool:
        return self.resolution is not None

    def mark_observation(self) -> None:
        self.is_observation = True
        self.resolution = None
        self.caused_downtime = False

    def request_immediate_resolution(self, record: ResolutionRecord) -> None:
        self.resolution = record
        self.is_observation = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "asset_id": self.asset_id,
            "title": self.title,
            "component_ids": list(self.component_ids),
            "subcomponent_ids": list(self.subcomponent_ids),
            "description": self.description,
            "symptom_ids": sorted(self.symptom_ids),
            "caused_downtime": self.caused_downtime,
            "is_intermittent": self.is_intermittent,
            "is_safety_related": self.is_safety_related,
            "is_observation": self.is_observation,
            "attachments": list(self.attachments),
            "resolution": self.resolution.to_dict() if self.resolution else None,
            "notes": self.notes,
            "failure_category": self.failure_category.value,
            "reported_by": self.reported_by,
        }


@dataclass
class Continuation:
    """Caller's decision after reviewing duplicate candidates."""
    force_create: bool = False
    link_to_occurrence_id: str | None = None
    resume_token: str | None = None

    @property
    def is_link(self) -> bool:
        return bool(self.link_to_occurrence_id)

    @staticmethod
    def from_raw(raw: dict[str, Any]) -> Continuation:
        return Continuation(
            force_create=bool(raw.get("forceCreate", False)),
            link_to_occurrence_id=raw.get("linkToOccurrenceId") or None,
            resume_token=raw.get("resumeToken") or None,
        )


# ─── Occurrences ────────────────────────────────────────────────────

@dataclass
class Occurrence:
    """
    Durable record of a reported problem. A root occurrence has no
    linked parent; only roots are duplicate candidates or dispatch
    targets.
    """
    occurrence_id: str
    asset_id: int
    title: str
    status: OccurrenceStatus
    outcome: Outcome
    priority: Priority
    created_at: float
    updated_at: float
    component_ids: list[int] = field(default_factory=list)
    subcomponent_ids: list[int] = field(default_factory=list)
    description: str = ""
    symptom_ids: list[int] = field(default_factory=list)
    attachments: list[str] = field(default_factory=list)
    failure_category: FailureCategory = FailureCategory.MECHANICAL
    caused_downtime: bool = False
    is_intermittent: bool = False
    is_safety_related: bool = False
    notes: str = ""
    resolution: ResolutionRecord | None = None
    linked_parent_id: str | None = None
    report_count: int = 1
    reported_by: str = ""
    closed_at: float | None = None

    @property
    def is_root(self) -> bool:
        return self.linked_parent_id is None

    @property
    def is_observation(self) -> bool:
        return self.outcome == Outcome.OBSERVATION

    @staticmethod
    def create(
        draft: IncidentDraft,
        outcome: Outcome,
        priority: Priority,
        now: float | None = None,
    ) -> Occurrence:
        now = now if now is not None else time.time()
        status = {
            Outcome.OBSERVATION: OccurrenceStatus.OBSERVATION,
            Outcome.RESOLVED_IMMEDIATELY: OccurrenceStatus.CLOSED,
            Outcome.DISPATCHED: OccurrenceStatus.DISPATCHED,
        }[outcome]
        return Occurrence(
            occurrence_id=f"occ_{uuid.uuid4().hex[:12]}",
            asset_id=draft.asset_id,
            title=draft.title,
            status=status,
            outcome=outcome,
            priority=priority,
            created_at=now,
            updated_at=now,
            component_ids=list(draft.component_ids),
            subcomponent_ids=list(draft.subcomponent_ids),
            description=draft.description,
            symptom_ids=sorted(draft.symptom_ids),
            attachments=list(draft.attachments),
            failure_category=draft.failure_category,
            caused_downtime=draft.caused_downtime,
            is_intermittent=draft.is_intermittent,
            is_safety_related=draft.is_safety_related,
            notes=draft.notes,
            resolution=draft.resolution if outcome == Outcome.RESOLVED_IMMEDIATELY else None,
            reported_by=draft.reported_by,
            closed_at=now if status == OccurrenceStatus.CLOSED else None,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.occurrence_id,
            "assetId": self.asset_id,
            "title": self.title,
            "description": self.description,
            "status": self.status.value,
            "outcome": self.outcome.value,
            "priority": self.priority.value,
            "componentIds": list(self.component_ids),
            "subcomponentIds": list(self.subcomponent_ids),
            "symptomTagIds": list(self.symptom_ids),
            "attachmentUrls": list(self.attachments),
            "failureCategory": self.failure_category.value,
            "causedDowntime": self.caused_downtime,
            "isIntermittent": self.is_intermittent,
            "isSafetyRelated": self.is_safety_related,
            "notes": self.notes,
            "resolution": self.resolution.to_dict() if self.resolution else None,
            "linkedParentId": self.linked_parent_id,
            "reportCount": self.report_count,
            "reportedBy": self.reported_by,
            "createdAt": iso(self.created_at),
            "updatedAt": iso(self.updated_at),
            "closedAt": iso(self.closed_at),
        }


@dataclass
class OccurrenceEvent:
    occurrence_id: str
    kind: EventKind
    created_at: float
    actor_id: str = ""
    payload: dict[str, Any] = field(default_factory=dict)
    event_id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "occurrenceId": self.occurrence_id,
            "kind": self.kind.value,
            "actorId": self.actor_id,
            "payload": self.payload,
            "createdAt": iso(self.created_at),
        }


@dataclass
class DuplicateCandidate:
    """Read-only projection of a root occurrence. Never persisted."""
    occurrence_id: str
    title: str
    status: OccurrenceStatus
    priority: Priority
    similarity: float
    reported_at: float
    asset_id: int
    asset_name: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "occurrenceId": self.occurrence_id,
            "title": self.title,
            "similarity": self.similarity,
            "reportedAt": iso(self.reported_at),
            "assetName": self.asset_name,
            "status": self.status.value,
            "priority": self.priority.value,
        }


# ─── Work Orders ────────────────────────────────────────────────────

@dataclass
class WorkOrder:
    """Corrective work order. At most one per root occurrence."""
    work_order_id: str
    source_occurrence_id: str
    asset_id: int
    title: str
    priority: str
    created_at: float
    description: str = ""
    status: str = "pending"
    assignee: str | None = None
    work_type: str = "corrective"
    origin: str = "failure"
    is_safety_related: bool = False

    @staticmethod
    def create(root: Occurrence, now: float | None = None) -> WorkOrder:
        return WorkOrder(
            work_order_id=f"wo_{uuid.uuid4().hex[:12]}",
            source_occurrence_id=root.occurrence_id,
            asset_id=root.asset_id,
            title=f"Fix — {root.title}",
            priority=root.priority.work_order_priority,
            created_at=now if now is not None else time.time(),
            description=root.description,
            is_safety_related=root.is_safety_related,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.work_order_id,
            "sourceOccurrenceId": self.source_occurrence_id,
            "assetId": self.asset_id,
            "title": self.title,
            "description": self.description,
            "priority": self.priority,
            "status": self.status,
            "assignee": self.assignee,
            "type": self.work_type,
            "origin": self.origin,
            "isSafetyRelated": self.is_safety_related,
            "createdAt": iso(self.created_at),
        }


# ─── Downtime ───────────────────────────────────────────────────────

@dataclass
class DowntimeLog:
    """Unplanned stop opened when a dispatched report says the asset went down."""
    downtime_id: str
    occurrence_id: str
    asset_id: int
    started_at: float
    work_order_id: str | None = None
    category: str = "unplanned"
    ended_at: float | None = None

    @staticmethod
    def open(root: Occurrence, work_order: WorkOrder, now: float | None = None) -> DowntimeLog:
        return DowntimeLog(
            downtime_id=f"dt_{uuid.uuid4().hex[:12]}",
            occurrence_id=root.occurrence_id,
            asset_id=root.asset_id,
            started_at=now if now is not None else time.time(),
            work_order_id=work_order.work_order_id,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.downtime_id,
            "occurrenceId": self.occurrence_id,
            "workOrderId": self.work_order_id,
            "assetId": self.asset_id,
            "category": self.category,
            "startedAt": iso(self.started_at),
            "endedAt": iso(self.ended_at),
        }


# ─── Match Checks ───────────────────────────────────────────────────

@dataclass
class MatchCheck:
    """One candidate list handed back to a caller, addressed by its resume token."""
    resume_token: str
    asset_id: int
    candidate_ids: list[str]
    created_at: float
    actor_id: str = ""

    @staticmethod
    def create(asset_id: int, candidate_ids: list[str], actor_id: str = "",
               now: float | None = None) -> MatchCheck:
        return MatchCheck(
            resume_token=f"mc_{uuid.uuid4().hex}",
            asset_id=asset_id,
            candidate_ids=list(candidate_ids),
            created_at=now if now is not None else time.time(),
            actor_id=actor_id,
        )


# ─── Submission Results ─────────────────────────────────────────────

@dataclass
class DuplicatesFound:
    candidates: list[DuplicateCandidate]
    resume_token: str
    http_status: int = 200

    def to_dict(self) -> dict[str, Any]:
        return {
            "hasDuplicates": True,
            "candidates": [c.to_dict() for c in self.candidates],
            "resumeToken": self.resume_token,
        }


@dataclass
class Linked:
    occurrence: Occurrence
    http_status: int = 200

    def to_dict(self) -> dict[str, Any]:
        return {
            "wasLinkedToExisting": True,
            "linkedToOccurrenceId": self.occurrence.occurrence_id,
            "reportCount": self.occurrence.report_count,
        }


@dataclass
class Created:
    occurrence: Occurrence
    work_order: WorkOrder | None = None
    may_assign: bool = False
    downtime: DowntimeLog | None = None
    http_status: int = 201

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "occurrence": self.occurrence.to_dict(),
            "isObservation": self.occurrence.outcome == Outcome.OBSERVATION,
            "resolvedImmediately": self.occurrence.outcome == Outcome.RESOLVED_IMMEDIATELY,
            "mayAssign": self.may_assign,
        }
        if self.work_order is not None:
            body["workOrder"] = self.work_order.to_dict()
        if self.downtime is not None:
            body["downtimeLog"] = self.downtime.to_dict()
        return body


SubmissionResult = Union[DuplicatesFound, Linked, Created]
