"""
Maintenance Intake — Structured Logging with Trace IDs

Emits one JSON log line per workflow event. Every submission gets its
own trace_id so a report can be followed from validation through
matching, commit and dispatch.

Design decisions:
  - Transport: Python logging with JSON formatter
  - Schema: OTel-compatible field names (trace_id, service.name)
  - Configurable log level: DEBUG (full drafts), INFO (transitions), WARNING (failures)

Usage:
    from engine.logging import IntakeLogger, configure_logging

    configure_logging(level="INFO")
    log = IntakeLogger(asset_id=7, actor_id="u-12")
    log.on_match_checked(candidates=2, window_days=14)
"""

from __future__ import annotations

import json
import logging
import os
import sys
import uuid
from datetime import datetime, timezone
from typing import Any

ROOT_LOGGER = "maintenance_intake"


# ═══════════════════════════════════════════════════════════════════
# JSON Formatter (OTel-compatible)
# ═══════════════════════════════════════════════════════════════════

class JSONFormatter(logging.Formatter):
    """
    Formats log records as JSON lines.

    OTel semantic conventions used:
      - trace_id: maps to OTel trace ID
      - service.name: "maintenance_intake"
      - service.version: from env
    """

    def __init__(self, service_name: str = ROOT_LOGGER):
        super().__init__()
        self.service_name = service_name
        self.service_version = os.environ.get("MI_VERSION", "0.1.0")

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service.name": self.service_name,
            "service.version": self.service_version,
        }

        if hasattr(record, "structured"):
            entry.update(record.structured)

        if record.exc_info and record.exc_info[0] is not None:
            entry["exception.type"] = record.exc_info[0].__name__
            entry["exception.message"] = str(record.exc_info[1])

        return json.dumps(entry, default=str)


# ═══════════════════════════════════════════════════════════════════
# Log Configuration
# ═══════════════════════════════════════════════════════════════════

def configure_logging(
    level: str = "INFO",
    stream: Any = None,
    service_name: str = ROOT_LOGGER,
) -> logging.Logger:
    """
    Configure the maintenance_intake logger with JSON output.

    Safe to call repeatedly: handlers are replaced, not stacked.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    logger.handlers.clear()

    # Child loggers inherit from the namespace root
    for name in list(logging.Logger.manager.loggerDict.keys()):
        if name.startswith(ROOT_LOGGER + "."):
            child = logging.getLogger(name)
            child.handlers.clear()
            child.setLevel(logging.NOTSET)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(JSONFormatter(service_name=service_name))
    handler.setLevel(getattr(logging, level.upper(), logging.INFO))
    logger.addHandler(handler)
    logger.propagate = False
    return logger


def get_logger(name: str = "") -> logging.Logger:
    """Get a child logger under the maintenance_intake namespace."""
    if name:
        return logging.getLogger(f"{ROOT_LOGGER}.{name}")
    return logging.getLogger(ROOT_LOGGER)


def generate_trace_id() -> str:
    """Generate an OTel-compatible trace ID (32 hex chars)."""
    return uuid.uuid4().hex


# ═══════════════════════════════════════════════════════════════════
# Intake Logger
# ═══════════════════════════════════════════════════════════════════

class IntakeLogger:
    """
    Structured logger for one intake submission.

    Every entry carries trace_id, asset_id and actor_id.
    """

    def __init__(
        self,
        asset_id: Any = None,
        actor_id: str = "",
        trace_id: str | None = None,
    ):
        self.asset_id = asset_id
        self.actor_id = actor_id
        self.trace_id = trace_id or generate_trace_id()
        self._logger = get_logger("workflow")

    def bind(self, asset_id: Any) -> IntakeLogger:
        """Same trace, asset resolved after validation."""
        return IntakeLogger(asset_id=asset_id, actor_id=self.actor_id, trace_id=self.trace_id)

    def _base_fields(self) -> dict[str, Any]:
        fields: dict[str, Any] = {"trace_id": self.trace_id}
        if self.asset_id is not None:
            fields["asset_id"] = self.asset_id
        if self.actor_id:
            fields["actor_id"] = self.actor_id
        return fields

    def _emit(self, level: int, action: str, **fields):
        if not self._logger.isEnabledFor(level):
            return
        structured = {**self._base_fields(), "action": action, **fields}
        record = self._logger.makeRecord(
            name=self._logger.name,
            level=level,
            fn="", lno=0, msg=action,
            args=(), exc_info=None,
        )
        record.structured = structured
        self._logger.handle(record)

    # ── Workflow events ────────────────────────────────────────

    def on_submission_received(self, mode: str) -> None:
        self._emit(logging.INFO, "submission_received", mode=mode)

    def on_draft_validated(self, draft: dict[str, Any]) -> None:
        self._emit(logging.INFO, "draft_validated",
                   symptom_count=len(draft.get("symptom_ids", [])),
                   component_count=len(draft.get("component_ids", [])))
        if self._logger.isEnabledFor(logging.DEBUG):
            self._emit(logging.DEBUG, "draft_full", draft=draft)

    def on_validation_failed(self, code: str, field: str | None, message: str) -> None:
        self._emit(logging.WARNING, "validation_failed",
                   error_code=code, field=field, error=message[:500])

    def on_match_checked(self, candidates: int, window_days: float) -> None:
        self._emit(logging.INFO, "match_checked",
                   candidates=candidates, window_days=window_days)

    def on_duplicates_returned(self, resume_token: str, top_similarity: float) -> None:
        self._emit(logging.INFO, "duplicates_returned",
                   resume_token=resume_token, top_similarity=top_similarity)

    def on_occurrence_linked(self, occurrence_id: str, report_count: int) -> None:
        self._emit(logging.INFO, "occurrence_linked",
                   occurrence_id=occurrence_id, report_count=report_count)

    def on_occurrence_created(self, occurrence_id: str, priority: str) -> None:
        self._emit(logging.INFO, "occurrence_created",
                   occurrence_id=occurrence_id, priority=priority)

    def on_outcome_classified(self, occurrence_id: str, outcome: str) -> None:
        self._emit(logging.INFO, "outcome_classified",
                   occurrence_id=occurrence_id, outcome=outcome)

    def on_work_order_dispatched(self, work_order_id: str, occurrence_id: str,
                                 created: bool) -> None:
        self._emit(logging.INFO, "work_order_dispatched",
                   work_order_id=work_order_id, occurrence_id=occurrence_id,
                   created=created)

    def on_downtime_started(self, downtime_id: str, occurrence_id: str) -> None:
        self._emit(logging.INFO, "downtime_started",
                   downtime_id=downtime_id, occurrence_id=occurrence_id)

    def on_transition_failed(self, state: str, code: str, retryable: bool,
                             message: str) -> None:
        self._emit(logging.WARNING, "transition_failed",
                   state=state, error_code=code, retryable=retryable,
                   error=message[:500])
