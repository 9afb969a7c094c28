"""
Maintenance Intake — Intake Validator

Turns a raw camelCase submission into an IncidentDraft or raises a
ValidationError subclass naming the offending field. Pure apart from
the read-only catalog lookup; nothing is written here.
"""

from __future__ import annotations

from typing import Any

from engine.errors import (
    InvalidAsset,
    InvalidComponentScope,
    InvalidResolution,
    InvalidTitle,
    ValidationError,
)
from intake.catalog import Asset, AssetCatalog
from intake.types import FailureCategory, IncidentDraft, ResolutionOutcome, ResolutionRecord

TITLE_MIN_LENGTH = 5
TITLE_MAX_LENGTH = 100


def _unique(values: list[Any]) -> list[Any]:
    """De-duplicate preserving first occurrence."""
    return list(dict.fromkeys(values))


def _int_list(raw: dict[str, Any], key: str, field_name: str) -> list[int]:
    values = raw.get(key) or []
    if not isinstance(values, (list, tuple, set, frozenset)):
        raise ValidationError(f"{key} must be a list of ids", field=field_name)
    try:
        return [int(v) for v in values]
    except (TypeError, ValueError):
        raise ValidationError(f"{key} must contain integer ids", field=field_name)


class IntakeValidator:
    """Validates raw submissions against the asset catalog."""

    def __init__(
        self,
        catalog: AssetCatalog,
        title_min: int = TITLE_MIN_LENGTH,
        title_max: int = TITLE_MAX_LENGTH,
    ):
        self.catalog = catalog
        self.title_min = title_min
        self.title_max = title_max

    def validate(self, raw: dict[str, Any], reported_by: str = "") -> IncidentDraft:
        asset = self._resolve_asset(raw.get("assetId"))

        title = str(raw.get("title") or "").strip()
        if not (self.title_min <= len(title) <= self.title_max):
            raise InvalidTitle(len(title), self.title_min, self.title_max)

        component_ids = _unique(_int_list(raw, "componentIds", "component_ids"))
        subcomponent_ids = _unique(_int_list(raw, "subcomponentIds", "subcomponent_ids"))
        foreign = asset.foreign_components(component_ids)
        if foreign:
            raise InvalidComponentScope(asset.asset_id, "component_ids", foreign)
        foreign = asset.foreign_subcomponents(subcomponent_ids)
        if foreign:
            raise InvalidComponentScope(asset.asset_id, "subcomponent_ids", foreign)

        symptom_ids = frozenset(_int_list(raw, "symptomTagIds", "symptom_ids"))
        attachments = _unique([str(u) for u in (raw.get("attachmentUrls") or []) if u])

        category = raw.get("failureCategory") or FailureCategory.MECHANICAL.value
        try:
            failure_category = FailureCategory(str(category).lower())
        except ValueError:
            raise ValidationError(
                f"Unknown failure category {category!r}", field="failure_category",
            )

        draft = IncidentDraft(
            asset_id=asset.asset_id,
            title=title,
            component_ids=component_ids,
            subcomponent_ids=subcomponent_ids,
            description=str(raw.get("description") or "").strip(),
            symptom_ids=symptom_ids,
            caused_downtime=bool(raw.get("causedDowntime", False)),
            is_intermittent=bool(raw.get("isIntermittent", False)),
            is_safety_related=bool(raw.get("isSafetyRelated", False)),
            attachments=attachments,
            notes=str(raw.get("notes") or "").strip(),
            failure_category=failure_category,
            reported_by=reported_by,
        )

        # Observation wins when both are requested
        if raw.get("isObservation"):
            draft.mark_observation()
        elif raw.get("resolveImmediately"):
            draft.request_immediate_resolution(self._resolution(raw))
        return draft

    def _resolve_asset(self, asset_id: Any) -> Asset:
        if asset_id is None or isinstance(asset_id, bool):
            raise InvalidAsset(asset_id)
        try:
            key = int(asset_id)
        except (TypeError, ValueError):
            raise InvalidAsset(asset_id)
        asset = self.catalog.get_asset(key)
        if asset is None:
            raise InvalidAsset(asset_id)
        return asset

    @staticmethod
    def _resolution(raw: dict[str, Any]) -> ResolutionRecord:
        diagnosis = str(raw.get("diagnosis") or "").strip()
        action = str(raw.get("actionTaken") or "").strip()
        if not diagnosis:
            raise InvalidResolution("Immediate resolution requires a diagnosis", field="diagnosis")
        if not action:
            raise InvalidResolution("Immediate resolution requires the action taken",
                                    field="action_taken")
        try:
            outcome = ResolutionOutcome(str(raw.get("outcome") or "").lower())
        except ValueError:
            raise InvalidResolution(
                "Immediate resolution requires an outcome of worked, partial or failed",
                field="outcome",
            )

        elapsed = raw.get("elapsedMinutes")
        if elapsed is not None:
            try:
                elapsed = int(elapsed)
            except (TypeError, ValueError):
                raise InvalidResolution("elapsedMinutes must be an integer",
                                        field="elapsed_minutes")
            if elapsed < 0:
                raise InvalidResolution("elapsedMinutes must not be negative",
                                        field="elapsed_minutes")
        return ResolutionRecord(diagnosis, action, outcome, elapsed)
