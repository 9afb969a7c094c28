"""
Maintenance Intake — API Models

Request schemas for the API server. Shape is checked here (types,
required keys) and reported as 422; business validation (title length,
asset scope, resolution completeness) belongs to IntakeValidator and is
reported as 400 with the offending field.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_raw(self) -> dict[str, Any]:
        """camelCase dict as consumed by ResolutionCoordinator.submit()."""
        return self.model_dump(by_alias=True, exclude_none=True)


class QuickReportRequest(_CamelModel):
    """POST /v1/occurrences/quick-report request body."""
    asset_id: int = Field(alias="assetId", description="Asset the problem was observed on")
    title: str = Field(description="Short statement of the problem (5-100 characters)")
    description: Optional[str] = Field(default=None, description="Free-text details")
    component_ids: list[int] = Field(default_factory=list, alias="componentIds")
    subcomponent_ids: list[int] = Field(default_factory=list, alias="subcomponentIds")
    symptom_tag_ids: list[int] = Field(default_factory=list, alias="symptomTagIds")
    caused_downtime: bool = Field(default=False, alias="causedDowntime")
    is_intermittent: bool = Field(default=False, alias="isIntermittent")
    is_safety_related: bool = Field(default=False, alias="isSafetyRelated")
    is_observation: bool = Field(
        default=False, alias="isObservation",
        description="Record only; never dispatched. Wins over resolveImmediately.",
    )
    attachment_urls: list[str] = Field(default_factory=list, alias="attachmentUrls")

    resolve_immediately: bool = Field(default=False, alias="resolveImmediately")
    diagnosis: Optional[str] = Field(default=None)
    action_taken: Optional[str] = Field(default=None, alias="actionTaken")
    outcome: Optional[str] = Field(default=None, description="worked, partial or failed")
    elapsed_minutes: Optional[int] = Field(default=None, alias="elapsedMinutes")

    notes: Optional[str] = Field(default=None)
    failure_category: Optional[str] = Field(
        default=None, alias="failureCategory",
        description="mechanical, electrical, hydraulic, pneumatic or other",
    )

    force_create: bool = Field(
        default=False, alias="forceCreate",
        description="Create a new occurrence after reviewing duplicate candidates",
    )
    link_to_occurrence_id: Optional[str] = Field(
        default=None, alias="linkToOccurrenceId",
        description="Attach this report to a reviewed candidate instead of creating one",
    )
    resume_token: Optional[str] = Field(
        default=None, alias="resumeToken",
        description="Token returned with the candidate list being acted on",
    )


class MergeRequest(_CamelModel):
    """POST /v1/occurrences/{id}/merge request body."""
    into_occurrence_id: str = Field(alias="intoOccurrenceId",
                                    description="Root occurrence that survives the merge")


class CloseRequest(_CamelModel):
    """POST /v1/occurrences/{id}/close request body."""
    note: Optional[str] = Field(default=None, description="Why the observation was closed")
