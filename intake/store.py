"""
Maintenance Intake — State Store

Persistence for occurrences, their append-only history, work orders,
match checks and the action ledger, on top of engine.db (SQLite by
default, Postgres via MI_DB_BACKEND / storage.backend).

Writes are expected to run inside transaction(); individual statements
then join the caller's atomic unit and commit or roll back with it.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Iterator
from contextlib import contextmanager

from engine.db import DatabaseBackend, create_backend
from intake.types import (
    DowntimeLog,
    EventKind,
    FailureCategory,
    MatchCheck,
    Occurrence,
    OccurrenceEvent,
    OccurrenceStatus,
    Outcome,
    Priority,
    ResolutionRecord,
    WorkOrder,
)

logger = logging.getLogger("maintenance_intake.store")

_SCHEMA = """
    CREATE TABLE IF NOT EXISTS occurrences (
        occurrence_id TEXT PRIMARY KEY,
        asset_id INTEGER NOT NULL,
        title TEXT NOT NULL,
        description TEXT DEFAULT '',
        status TEXT NOT NULL,
        outcome TEXT NOT NULL,
        priority TEXT NOT NULL,
        component_ids TEXT DEFAULT '[]',
        subcomponent_ids TEXT DEFAULT '[]',
        symptom_ids TEXT DEFAULT '[]',
        attachments TEXT DEFAULT '[]',
        failure_category TEXT DEFAULT 'mechanical',
        caused_downtime INTEGER DEFAULT 0,
        is_intermittent INTEGER DEFAULT 0,
        is_safety_related INTEGER DEFAULT 0,
        notes TEXT DEFAULT '',
        resolution TEXT,
        linked_parent_id TEXT,
        report_count INTEGER DEFAULT 1,
        reported_by TEXT DEFAULT '',
        created_at DOUBLE PRECISION NOT NULL,
        updated_at DOUBLE PRECISION NOT NULL,
        closed_at DOUBLE PRECISION
    );

    CREATE TABLE IF NOT EXISTS occurrence_history (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        occurrence_id TEXT NOT NULL,
        kind TEXT NOT NULL,
        actor_id TEXT DEFAULT '',
        payload TEXT DEFAULT '{}',
        created_at DOUBLE PRECISION NOT NULL
    );

    CREATE TABLE IF NOT EXISTS work_orders (
        work_order_id TEXT PRIMARY KEY,
        source_occurrence_id TEXT NOT NULL UNIQUE,
        asset_id INTEGER NOT NULL,
        title TEXT NOT NULL,
        description TEXT DEFAULT '',
        priority TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'pending',
        assignee TEXT,
        work_type TEXT NOT NULL DEFAULT 'corrective',
        origin TEXT NOT NULL DEFAULT 'failure',
        is_safety_related INTEGER DEFAULT 0,
        created_at DOUBLE PRECISION NOT NULL
    );

    CREATE TABLE IF NOT EXISTS match_checks (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        resume_token TEXT NOT NULL UNIQUE,
        asset_id INTEGER NOT NULL,
        candidate_ids TEXT NOT NULL,
        actor_id TEXT DEFAULT '',
        created_at DOUBLE PRECISION NOT NULL
    );

    CREATE TABLE IF NOT EXISTS downtime_logs (
        downtime_id TEXT PRIMARY KEY,
        occurrence_id TEXT NOT NULL UNIQUE,
        work_order_id TEXT,
        asset_id INTEGER NOT NULL,
        category TEXT NOT NULL DEFAULT 'unplanned',
        started_at DOUBLE PRECISION NOT NULL,
        ended_at DOUBLE PRECISION
    );

    CREATE TABLE IF NOT EXISTS action_ledger (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        occurrence_id TEXT NOT NULL,
        asset_id INTEGER NOT NULL,
        action_type TEXT NOT NULL,
        details TEXT NOT NULL,
        actor_id TEXT DEFAULT '',
        idempotency_key TEXT UNIQUE,
        created_at DOUBLE PRECISION NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_occurrences_asset ON occurrences(asset_id, created_at);
    CREATE INDEX IF NOT EXISTS idx_occurrences_status ON occurrences(status);
    CREATE INDEX IF NOT EXISTS idx_history_occurrence ON occurrence_history(occurrence_id);
    CREATE INDEX IF NOT EXISTS idx_match_checks_asset ON match_checks(asset_id, created_at);
    CREATE INDEX IF NOT EXISTS idx_downtime_asset ON downtime_logs(asset_id, ended_at);
    CREATE INDEX IF NOT EXISTS idx_ledger_occurrence ON action_ledger(occurrence_id)
"""


class IntakeStore:
    """Store for intake state over a DatabaseBackend."""

    def __init__(self, backend: DatabaseBackend | None = None):
        self.db = backend or create_backend("sqlite", path=":memory:")
        self._create_tables()

    @staticmethod
    def open(backend: str = "sqlite", path: str = "intake.db", dsn: str = "") -> IntakeStore:
        return IntakeStore(create_backend(backend, path=path, dsn=dsn))

    def _create_tables(self):
        self.db.executescript(_SCHEMA)

    @contextmanager
    def transaction(self, lock_key: str | None = None, timeout: float | None = None) -> Iterator[None]:
        """
        Atomic unit. Everything written inside commits together or not at all.

        Usage:
            with store.transaction(lock_key="asset:7", timeout=5):
                store.insert_occurrence(occ)
                store.add_event(event)
        """
        with self.db.transaction(lock_key=lock_key, timeout=timeout):
            yield

    # ─── Occurrences ─────────────────────────────────────────────────

    def insert_occurrence(self, occ: Occurrence):
        self.db.execute("""
            INSERT INTO occurrences
            (occurrence_id, asset_id, title, description, status, outcome,
             priority, component_ids, subcomponent_ids, symptom_ids,
             attachments, failure_category, caused_downtime,
             is_intermittent, is_safety_related, notes, resolution,
             linked_parent_id, report_count, reported_by,
             created_at, updated_at, closed_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            occ.occurrence_id, occ.asset_id, occ.title, occ.description,
            occ.status.value, occ.outcome.value, occ.priority.value,
            json.dumps(occ.component_ids), json.dumps(occ.subcomponent_ids),
            json.dumps(occ.symptom_ids), json.dumps(occ.attachments),
            occ.failure_category.value, int(occ.caused_downtime),
            int(occ.is_intermittent), int(occ.is_safety_related), occ.notes,
            json.dumps(occ.resolution.to_dict()) if occ.resolution else None,
            occ.linked_parent_id, occ.report_count, occ.reported_by,
            occ.created_at, occ.updated_at, occ.closed_at,
        ))

    def update_occurrence(self, occ: Occurrence):
        """Persist the mutable fields: status, lineage, counters, timestamps."""
        self.db.execute("""
            UPDATE occurrences
            SET status = ?, linked_parent_id = ?, report_count = ?,
                resolution = ?, updated_at = ?, closed_at = ?
            WHERE occurrence_id = ?
        """, (
            occ.status.value, occ.linked_parent_id, occ.report_count,
            json.dumps(occ.resolution.to_dict()) if occ.resolution else None,
            occ.updated_at, occ.closed_at, occ.occurrence_id,
        ))

    def get_occurrence(self, occurrence_id: str) -> Occurrence | None:
        row = self.db.fetchone(
            "SELECT * FROM occurrences WHERE occurrence_id = ?", (occurrence_id,)
        )
        if not row:
            return None
        return self._row_to_occurrence(row)

    def recent_roots(self, asset_id: int, since: float) -> list[Occurrence]:
        """Root occurrences on the asset reported at or after `since`, newest first."""
        rows = self.db.fetchall("""
            SELECT * FROM occurrences
            WHERE asset_id = ? AND linked_parent_id IS NULL AND created_at >= ?
            ORDER BY created_at DESC
        """, (asset_id, since))
        return [self._row_to_occurrence(r) for r in rows]

    def list_occurrences(
        self,
        asset_id: int | None = None,
        status: OccurrenceStatus | None = None,
        roots_only: bool = False,
        limit: int = 100,
    ) -> list[Occurrence]:
        query = "SELECT * FROM occurrences WHERE 1=1"
        params: list[Any] = []
        if asset_id is not None:
            query += " AND asset_id = ?"
            params.append(asset_id)
        if status:
            query += " AND status = ?"
            params.append(status.value)
        if roots_only:
            query += " AND linked_parent_id IS NULL"
        query += " ORDER BY created_at DESC LIMIT ?"
        params.append(limit)
        rows = self.db.fetchall(query, tuple(params))
        return [self._row_to_occurrence(r) for r in rows]

    def count_occurrences(self, asset_id: int | None = None, roots_only: bool = False) -> int:
        query = "SELECT COUNT(*) AS cnt FROM occurrences WHERE 1=1"
        params: list[Any] = []
        if asset_id is not None:
            query += " AND asset_id = ?"
            params.append(asset_id)
        if roots_only:
            query += " AND linked_parent_id IS NULL"
        return int(self.db.fetchone(query, tuple(params))["cnt"])

    def _row_to_occurrence(self, row) -> Occurrence:
        return Occurrence(
            occurrence_id=row["occurrence_id"],
            asset_id=int(row["asset_id"]),
            title=row["title"],
            description=row["description"] or "",
            status=OccurrenceStatus(row["status"]),
            outcome=Outcome(row["outcome"]),
            priority=Priority(row["priority"]),
            component_ids=json.loads(row["component_ids"] or "[]"),
            subcomponent_ids=json.loads(row["subcomponent_ids"] or "[]"),
            symptom_ids=json.loads(row["symptom_ids"] or "[]"),
            attachments=json.loads(row["attachments"] or "[]"),
            failure_category=FailureCategory(row["failure_category"]),
            caused_downtime=bool(row["caused_downtime"]),
            is_intermittent=bool(row["is_intermittent"]),
            is_safety_related=bool(row["is_safety_related"]),
            notes=row["notes"] or "",
            resolution=ResolutionRecord.from_dict(
                json.loads(row["resolution"]) if row["resolution"] else None
            ),
            linked_parent_id=row["linked_parent_id"],
            report_count=int(row["report_count"]),
            reported_by=row["reported_by"] or "",
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            closed_at=row["closed_at"],
        )

    # ─── History ─────────────────────────────────────────────────────

    def add_event(self, event: OccurrenceEvent):
        self.db.execute("""
            INSERT INTO occurrence_history
            (occurrence_id, kind, actor_id, payload, created_at)
            VALUES (?, ?, ?, ?, ?)
        """, (
            event.occurrence_id, event.kind.value, event.actor_id,
            json.dumps(event.payload, default=str), event.created_at,
        ))

    def get_history(self, occurrence_id: str) -> list[OccurrenceEvent]:
        rows = self.db.fetchall("""
            SELECT * FROM occurrence_history
            WHERE occurrence_id = ? ORDER BY id
        """, (occurrence_id,))
        return [
            OccurrenceEvent(
                occurrence_id=r["occurrence_id"],
                kind=EventKind(r["kind"]),
                created_at=r["created_at"],
                actor_id=r["actor_id"] or "",
                payload=json.loads(r["payload"] or "{}"),
                event_id=r["id"],
            )
            for r in rows
        ]

    def count_events(self) -> int:
        return int(self.db.fetchone("SELECT COUNT(*) AS cnt FROM occurrence_history")["cnt"])

    # ─── Work Orders ─────────────────────────────────────────────────

    def insert_work_order(self, wo: WorkOrder):
        self.db.execute("""
            INSERT INTO work_orders
            (work_order_id, source_occurrence_id, asset_id, title, description,
             priority, status, assignee, work_type, origin, is_safety_related,
             created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            wo.work_order_id, wo.source_occurrence_id, wo.asset_id, wo.title,
            wo.description, wo.priority, wo.status, wo.assignee, wo.work_type,
            wo.origin, int(wo.is_safety_related), wo.created_at,
        ))

    def get_work_order_for(self, occurrence_id: str) -> WorkOrder | None:
        row = self.db.fetchone(
            "SELECT * FROM work_orders WHERE source_occurrence_id = ?", (occurrence_id,)
        )
        if not row:
            return None
        return self._row_to_work_order(row)

    def list_work_orders(self, asset_id: int | None = None) -> list[WorkOrder]:
        if asset_id is None:
            rows = self.db.fetchall("SELECT * FROM work_orders ORDER BY created_at")
        else:
            rows = self.db.fetchall(
                "SELECT * FROM work_orders WHERE asset_id = ? ORDER BY created_at", (asset_id,)
            )
        return [self._row_to_work_order(r) for r in rows]

    def _row_to_work_order(self, row) -> WorkOrder:
        return WorkOrder(
            work_order_id=row["work_order_id"],
            source_occurrence_id=row["source_occurrence_id"],
            asset_id=int(row["asset_id"]),
            title=row["title"],
            description=row["description"] or "",
            priority=row["priority"],
            status=row["status"],
            assignee=row["assignee"],
            work_type=row["work_type"],
            origin=row["origin"],
            is_safety_related=bool(row["is_safety_related"]),
            created_at=row["created_at"],
        )

    # ─── Match Checks ────────────────────────────────────────────────

    def save_match_check(self, check: MatchCheck):
        self.db.execute("""
            INSERT INTO match_checks
            (resume_token, asset_id, candidate_ids, actor_id, created_at)
            VALUES (?, ?, ?, ?, ?)
        """, (
            check.resume_token, check.asset_id, json.dumps(check.candidate_ids),
            check.actor_id, check.created_at,
        ))

    def get_match_check(self, resume_token: str) -> MatchCheck | None:
        row = self.db.fetchone(
            "SELECT * FROM match_checks WHERE resume_token = ?", (resume_token,)
        )
        return self._row_to_match_check(row) if row else None

    def latest_match_check(self, asset_id: int) -> MatchCheck | None:
        row = self.db.fetchone("""
            SELECT * FROM match_checks WHERE asset_id = ?
            ORDER BY id DESC LIMIT 1
        """, (asset_id,))
        return self._row_to_match_check(row) if row else None

    def prune_match_checks(self, before: float) -> int:
        """Drop checks issued before `before`; their tokens can no longer be honored."""
        cursor = self.db.execute(
            "DELETE FROM match_checks WHERE created_at < ?", (before,)
        )
        return cursor.rowcount

    def _row_to_match_check(self, row) -> MatchCheck:
        return MatchCheck(
            resume_token=row["resume_token"],
            asset_id=int(row["asset_id"]),
            candidate_ids=json.loads(row["candidate_ids"]),
            created_at=row["created_at"],
            actor_id=row["actor_id"] or "",
        )

    # ─── Downtime ────────────────────────────────────────────────────

    def insert_downtime(self, log: DowntimeLog):
        self.db.execute("""
            INSERT INTO downtime_logs
            (downtime_id, occurrence_id, work_order_id, asset_id, category,
             started_at, ended_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """, (
            log.downtime_id, log.occurrence_id, log.work_order_id, log.asset_id,
            log.category, log.started_at, log.ended_at,
        ))

    def get_downtime_for(self, occurrence_id: str) -> DowntimeLog | None:
        row = self.db.fetchone(
            "SELECT * FROM downtime_logs WHERE occurrence_id = ?", (occurrence_id,)
        )
        if not row:
            return None
        return DowntimeLog(
            downtime_id=row["downtime_id"],
            occurrence_id=row["occurrence_id"],
            work_order_id=row["work_order_id"],
            asset_id=int(row["asset_id"]),
            category=row["category"],
            started_at=row["started_at"],
            ended_at=row["ended_at"],
        )

    def open_downtime_count(self, asset_id: int | None = None) -> int:
        query = "SELECT COUNT(*) AS cnt FROM downtime_logs WHERE ended_at IS NULL"
        params: tuple = ()
        if asset_id is not None:
            query += " AND asset_id = ?"
            params = (asset_id,)
        return int(self.db.fetchone(query, params)["cnt"])

    # ─── Action Ledger ───────────────────────────────────────────────

    def log_action(
        self,
        occurrence_id: str,
        asset_id: int,
        action_type: str,
        details: dict[str, Any],
        actor_id: str = "",
        idempotency_key: str | None = None,
    ) -> bool:
        """
        Log an action to the ledger. Returns False if the idempotency
        key already exists (preventing duplicate execution).
        """
        cursor = self.db.execute("""
            INSERT OR IGNORE INTO action_ledger
            (occurrence_id, asset_id, action_type, details, actor_id,
             idempotency_key, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """, (
            occurrence_id, asset_id, action_type,
            json.dumps(details, default=str), actor_id,
            idempotency_key, time.time(),
        ))
        return cursor.rowcount == 1

    def get_ledger(
        self,
        occurrence_id: str | None = None,
        asset_id: int | None = None,
        limit: int = 500,
    ) -> list[dict[str, Any]]:
        query = "SELECT * FROM action_ledger WHERE 1=1"
        params: list[Any] = []
        if occurrence_id:
            query += " AND occurrence_id = ?"
            params.append(occurrence_id)
        if asset_id is not None:
            query += " AND asset_id = ?"
            params.append(asset_id)
        query += " ORDER BY id LIMIT ?"
        params.append(limit)
        rows = self.db.fetchall(query, tuple(params))
        return [
            {
                "id": r["id"],
                "occurrence_id": r["occurrence_id"],
                "asset_id": r["asset_id"],
                "action_type": r["action_type"],
                "details": json.loads(r["details"]),
                "actor_id": r["actor_id"],
                "idempotency_key": r["idempotency_key"],
                "created_at": r["created_at"],
            }
            for r in rows
        ]

    # ─── Statistics ──────────────────────────────────────────────────

    def stats(self) -> dict[str, Any]:
        """Return summary statistics for the intake store."""
        occurrences = self.db.fetchall(
            "SELECT status, COUNT(*) AS cnt FROM occurrences GROUP BY status"
        )
        outcomes = self.db.fetchall(
            "SELECT outcome, COUNT(*) AS cnt FROM occurrences "
            "WHERE linked_parent_id IS NULL GROUP BY outcome"
        )
        work_orders = self.db.fetchall(
            "SELECT status, COUNT(*) AS cnt FROM work_orders GROUP BY status"
        )
        linked = self.db.fetchone(
            "SELECT COUNT(*) AS cnt FROM occurrence_history WHERE kind = ?",
            (EventKind.LINKED.value,),
        )["cnt"]
        ledger_count = self.db.fetchone(
            "SELECT COUNT(*) AS cnt FROM action_ledger"
        )["cnt"]

        return {
            "occurrences": {r["status"]: r["cnt"] for r in occurrences},
            "root_outcomes": {r["outcome"]: r["cnt"] for r in outcomes},
            "work_orders": {r["status"]: r["cnt"] for r in work_orders},
            "linked_reports": linked,
            "open_downtime": self.open_downtime_count(),
            "action_ledger_entries": ledger_count,
        }

    def close(self):
        self.db.close()
