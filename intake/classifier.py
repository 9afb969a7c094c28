"""
Maintenance Intake — Outcome Classifier

Pure functions of the draft (and, for priority, the asset's criticality).
Observation outranks immediate resolution, which outranks dispatch.
"""

from __future__ import annotations

from intake.catalog import Asset
from intake.types import IncidentDraft, Outcome, Priority


class OutcomeClassifier:

    def classify(self, draft: IncidentDraft) -> Outcome:
        if draft.is_observation:
            return Outcome.OBSERVATION
        if draft.resolve_immediately:
            return Outcome.RESOLVED_IMMEDIATELY
        return Outcome.DISPATCHED

    def priority(self, draft: IncidentDraft, asset: Asset | None = None) -> Priority:
        """Derived, never user-set."""
        critical = bool(asset and asset.is_critical)
        if draft.is_observation:
            return Priority.P4
        if draft.is_safety_related:
            return Priority.P1
        if draft.caused_downtime:
            return Priority.P1 if critical else Priority.P2
        if draft.is_intermittent:
            return Priority.P3
        return Priority.P2 if critical else Priority.P3
