"""
Maintenance Intake — Incident intake and duplicate resolution.

A technician's report is validated, matched against recent occurrences
on the same asset, then either linked to an existing root occurrence or
created as a new one and classified as an observation, an immediate
resolution, or a dispatched corrective work order.
"""

from intake.coordinator import ResolutionCoordinator
from intake.types import (
    Created,
    DuplicateCandidate,
    DuplicatesFound,
    DowntimeLog,
    IncidentDraft,
    Linked,
    Occurrence,
    OccurrenceStatus,
    Outcome,
    Priority,
    WorkOrder,
)

__all__ = [
    "ResolutionCoordinator",
    "Created",
    "DuplicateCandidate",
    "DuplicatesFound",
    "DowntimeLog",
    "IncidentDraft",
    "Linked",
    "Occurrence",
    "OccurrenceStatus",
    "Outcome",
    "Priority",
    "WorkOrder",
]
