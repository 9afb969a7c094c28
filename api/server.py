"""
Maintenance Intake — API Server

FastAPI application serving:
  POST /v1/occurrences/quick-report     — submit a report (check, link or force create)
  POST /v1/occurrences/candidates       — preview duplicate candidates, no writes
  GET  /v1/occurrences                  — list occurrences (assetId, status, limit)
  GET  /v1/occurrences/{id}             — occurrence with history and work order
  POST /v1/occurrences/{id}/close       — close an open observation
  POST /v1/occurrences/{id}/merge       — fold a root into another root
  GET  /v1/ledger                       — action ledger
  GET  /v1/stats                        — store statistics
  GET  /health                          — liveness
  GET  /ready                           — readiness

The acting user comes from the X-Actor-Id header and is resolved through
the coordinator's AuthorizationProvider.

Usage:
    uvicorn api.server:app --host 0.0.0.0 --port 8080

    # Alternate config file
    MI_CONFIG=/etc/intake/intake.yaml uvicorn api.server:app
"""

from __future__ import annotations

import logging
import os
import time
from typing import Any, Optional

from fastapi import FastAPI, Header, Query, Request
from fastapi.responses import JSONResponse

from api.models import CloseRequest, MergeRequest, QuickReportRequest
from engine.config import load_config
from engine.errors import IntakeError
from intake.coordinator import ResolutionCoordinator

logger = logging.getLogger("maintenance_intake.api")


def create_app(
    coordinator: ResolutionCoordinator | None = None,
    config: dict[str, Any] | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns the app instance. Separated from module-level creation
    so tests can create fresh instances around their own coordinator.
    """
    app = FastAPI(
        title="Maintenance Intake API",
        version="0.1.0",
        description="Incident intake and duplicate resolution",
    )

    # ── State ────────────────────────────────────────────────

    _coordinator: ResolutionCoordinator | None = coordinator

    def get_coordinator() -> ResolutionCoordinator:
        nonlocal _coordinator
        if _coordinator is None:
            cfg = config if config is not None else load_config(
                os.environ.get("MI_CONFIG", "intake.yaml")
            )
            _coordinator = ResolutionCoordinator.from_config(cfg)
        return _coordinator

    # ── Errors ───────────────────────────────────────────────

    @app.exception_handler(IntakeError)
    async def intake_error(request: Request, exc: IntakeError):
        if exc.http_status >= 500:
            logger.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.http_status, content=exc.to_dict())

    # ── Submission ───────────────────────────────────────────

    @app.post("/v1/occurrences/quick-report", response_model=None)
    def quick_report(body: QuickReportRequest,
                     x_actor_id: Optional[str] = Header(default=None)):
        result = get_coordinator().submit(body.to_raw(), actor=x_actor_id)
        return JSONResponse(status_code=result.http_status, content=result.to_dict())

    @app.post("/v1/occurrences/candidates", response_model=None)
    def preview_candidates(body: QuickReportRequest,
                           x_actor_id: Optional[str] = Header(default=None)):
        candidates = get_coordinator().find_candidates(body.to_raw(), actor=x_actor_id)
        return JSONResponse(content={
            "hasDuplicates": bool(candidates),
            "candidates": [c.to_dict() for c in candidates],
        })

    # ── Occurrences ──────────────────────────────────────────

    @app.get("/v1/occurrences")
    def list_occurrences(
        asset_id: Optional[int] = Query(default=None, alias="assetId"),
        status: Optional[str] = Query(default=None),
        limit: int = Query(default=100, ge=1, le=1000),
    ):
        occurrences = get_coordinator().list_occurrences(
            asset_id=asset_id, status=status, limit=limit,
        )
        return JSONResponse(content={
            "occurrences": [o.to_dict() for o in occurrences],
            "count": len(occurrences),
        })

    @app.get("/v1/occurrences/{occurrence_id}")
    def get_occurrence(occurrence_id: str):
        return JSONResponse(content=get_coordinator().get_occurrence(occurrence_id))

    @app.post("/v1/occurrences/{occurrence_id}/close")
    def close_observation(occurrence_id: str,
                          body: Optional[CloseRequest] = None,
                          x_actor_id: Optional[str] = Header(default=None)):
        occ = get_coordinator().close_observation(
            occurrence_id, actor=x_actor_id, note=(body.note or "") if body else "",
        )
        return JSONResponse(content={"occurrence": occ.to_dict()})

    @app.post("/v1/occurrences/{occurrence_id}/merge")
    def merge_occurrence(occurrence_id: str, body: MergeRequest,
                         x_actor_id: Optional[str] = Header(default=None)):
        root = get_coordinator().merge(occurrence_id, body.into_occurrence_id,
                                       actor=x_actor_id)
        return JSONResponse(content={
            "mergedOccurrenceId": occurrence_id,
            "occurrence": root.to_dict(),
        })

    # ── Ledger / Stats ───────────────────────────────────────

    @app.get("/v1/ledger")
    def get_ledger(
        occurrence_id: Optional[str] = Query(default=None, alias="occurrenceId"),
        asset_id: Optional[int] = Query(default=None, alias="assetId"),
        limit: int = Query(default=500, ge=1, le=5000),
    ):
        entries = get_coordinator().get_ledger(
            occurrence_id=occurrence_id, asset_id=asset_id, limit=limit,
        )
        return JSONResponse(content={"entries": entries, "count": len(entries)})

    @app.get("/v1/stats")
    def get_stats():
        return JSONResponse(content=get_coordinator().stats())

    # ── Health ────────────────────────────────────────────────

    @app.get("/health")
    def health():
        return JSONResponse(content={
            "status": "ok",
            "timestamp": time.time(),
        })

    @app.get("/ready")
    def ready():
        # Check the intake store is accessible
        try:
            get_coordinator().stats()
            return JSONResponse(content={"status": "ok"})
        except Exception as e:
            return JSONResponse(
                status_code=503,
                content={"status": "fail", "error": str(e)[:200]},
            )

    return app


# ── Module-level app for uvicorn ──────────────────────────────

app = create_app()
