"""
Maintenance Intake: Structured Exception Hierarchy

Typed errors so callers can distinguish between:
- Client input failures → surface verbatim, field-attributable, no retry
- Stale client state → surface, client re-fetches candidates
- Transient storage / concurrency failures → safe to retry the whole submission

Each error carries: code, retryable flag, optional field, HTTP status.
"""

from __future__ import annotations

from typing import Any


# ═══════════════════════════════════════════════════════════════
# Base
# ═══════════════════════════════════════════════════════════════

class IntakeError(Exception):
    """Base exception for all intake workflow errors."""
    code: str = "intake_error"
    retryable: bool = False
    http_status: int = 500

    def __init__(self, message: str = "", field: str | None = None, **detail: Any):
        self.message = message or self.code
        self.field = field
        self.detail = detail
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "error": self.code,
            "message": self.message,
            "retryable": self.retryable,
        }
        if self.field:
            body["field"] = self.field
        if self.detail:
            body["detail"] = self.detail
        return body


# ═══════════════════════════════════════════════════════════════
# Validation Errors: client input, surfaced verbatim
# ═══════════════════════════════════════════════════════════════

class ValidationError(IntakeError):
    """Submission failed validation. Nothing was written."""
    code = "validation_error"
    http_status = 400


class InvalidAsset(ValidationError):
    code = "invalid_asset"

    def __init__(self, asset_id: Any):
        super().__init__(
            f"Asset {asset_id!r} does not exist",
            field="asset_id",
            asset_id=asset_id,
        )


class InvalidTitle(ValidationError):
    code = "invalid_title"

    def __init__(self, length: int, min_length: int, max_length: int):
        super().__init__(
            f"Title must be between {min_length} and {max_length} characters (got {length})",
            field="title",
            length=length,
        )


class InvalidComponentScope(ValidationError):
    code = "invalid_component_scope"

    def __init__(self, asset_id: Any, field: str, ids: list[int]):
        super().__init__(
            f"{field} {ids} do not belong to asset {asset_id!r}",
            field=field,
            asset_id=asset_id,
            ids=ids,
        )


class InvalidResolution(ValidationError):
    """Immediate resolution requested without a complete resolution record."""
    code = "invalid_resolution"


class InvalidMerge(ValidationError):
    code = "invalid_merge"


# ═══════════════════════════════════════════════════════════════
# Workflow State Errors
# ═══════════════════════════════════════════════════════════════

class CandidateNotFound(IntakeError):
    """Designated candidate is not among those most recently returned for the asset."""
    code = "candidate_not_found"
    http_status = 409

    def __init__(self, occurrence_id: str, asset_id: Any = None, reason: str = ""):
        msg = f"Occurrence {occurrence_id!r} is not a current duplicate candidate"
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(
            msg,
            field="link_to_occurrence_id",
            occurrence_id=occurrence_id,
            asset_id=asset_id,
        )

    @classmethod
    def for_token(cls, resume_token: str, asset_id: Any = None, reason: str = "") -> CandidateNotFound:
        """The reviewed candidate list itself is unknown, expired or superseded."""
        err = cls.__new__(cls)
        msg = f"Resume token {resume_token!r} does not match the current candidate list"
        if reason:
            msg = f"{msg}: {reason}"
        IntakeError.__init__(
            err, msg,
            field="resume_token",
            resume_token=resume_token,
            asset_id=asset_id,
        )
        return err


class OccurrenceNotFound(IntakeError):
    code = "occurrence_not_found"
    http_status = 404

    def __init__(self, occurrence_id: str):
        super().__init__(
            f"Occurrence {occurrence_id!r} not found",
            occurrence_id=occurrence_id,
        )


class InvalidTransition(IntakeError):
    """Workflow or occurrence state transition is not allowed."""
    code = "invalid_transition"
    http_status = 409


# ═══════════════════════════════════════════════════════════════
# Transient Errors: safe to retry, nothing was committed
# ═══════════════════════════════════════════════════════════════

class StorageUnavailable(IntakeError):
    code = "storage_unavailable"
    retryable = True
    http_status = 503


class ConcurrentConflict(IntakeError):
    """The atomic transition lost a race. A retry will see the sibling occurrence."""
    code = "concurrent_conflict"
    retryable = True
    http_status = 409
