"""
Maintenance Intake — Work Order Dispatcher

Creates the corrective work order for a root occurrence, at most once.
Dispatch always resolves to the root of the lineage; a second call for
the same root returns the existing work order. The unique index on
work_orders.source_occurrence_id and the ledger idempotency key back
this up at the storage level.

A root reported with caused_downtime also opens an unplanned downtime
log in the same unit, linked to the new work order.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from engine.errors import InvalidTransition, OccurrenceNotFound
from intake.store import IntakeStore
from intake.types import DowntimeLog, EventKind, Occurrence, OccurrenceEvent, WorkOrder

logger = logging.getLogger("maintenance_intake.dispatcher")

MAX_LINEAGE_DEPTH = 32


class WorkOrderDispatcher:

    def __init__(self, store: IntakeStore, clock: Callable[[], float] = time.time):
        self.store = store
        self.clock = clock

    def resolve_root(self, occurrence: Occurrence) -> Occurrence:
        current = occurrence
        seen = {current.occurrence_id}
        while current.linked_parent_id is not None:
            parent = self.store.get_occurrence(current.linked_parent_id)
            if parent is None:
                raise OccurrenceNotFound(current.linked_parent_id)
            if parent.occurrence_id in seen or len(seen) > MAX_LINEAGE_DEPTH:
                raise InvalidTransition(
                    f"Occurrence {occurrence.occurrence_id} has a cyclic lineage"
                )
            seen.add(parent.occurrence_id)
            current = parent
        return current

    def dispatch(
        self,
        occurrence: Occurrence,
        actor_id: str = "",
        timeout: float | None = None,
    ) -> tuple[WorkOrder, bool]:
        """
        Return (work_order, created). Called inside the coordinator's
        atomic unit it joins that transaction; called on its own it opens
        one under the asset's lock.
        """
        with self.store.transaction(lock_key=f"asset:{occurrence.asset_id}", timeout=timeout):
            return self._dispatch_root(self.resolve_root(occurrence), actor_id)

    def _dispatch_root(self, root: Occurrence, actor_id: str) -> tuple[WorkOrder, bool]:
        if root.is_observation:
            raise InvalidTransition(
                f"Occurrence {root.occurrence_id} is an observation and is never dispatched",
                occurrence_id=root.occurrence_id,
            )

        existing = self.store.get_work_order_for(root.occurrence_id)
        if existing is not None:
            logger.debug("Work order %s already exists for %s",
                         existing.work_order_id, root.occurrence_id)
            return existing, False

        now = self.clock()
        wo = WorkOrder.create(root, now=now)
        first = self.store.log_action(
            root.occurrence_id, root.asset_id, "dispatch_work_order",
            {"work_order_id": wo.work_order_id, "priority": wo.priority},
            actor_id=actor_id,
            idempotency_key=f"dispatch:{root.occurrence_id}",
        )
        if not first:
            raise InvalidTransition(
                f"Occurrence {root.occurrence_id} was already dispatched",
                occurrence_id=root.occurrence_id,
            )
        self.store.insert_work_order(wo)
        self.store.add_event(OccurrenceEvent(
            occurrence_id=root.occurrence_id,
            kind=EventKind.DISPATCHED,
            created_at=now,
            actor_id=actor_id,
            payload={"work_order_id": wo.work_order_id, "priority": wo.priority},
        ))
        logger.info("Dispatched work order %s for %s", wo.work_order_id, root.occurrence_id)
        if root.caused_downtime:
            self._start_downtime(root, wo, actor_id, now)
        return wo, True

    def _start_downtime(self, root: Occurrence, wo: WorkOrder, actor_id: str,
                        now: float) -> DowntimeLog:
        log = DowntimeLog.open(root, wo, now=now)
        self.store.insert_downtime(log)
        self.store.add_event(OccurrenceEvent(
            occurrence_id=root.occurrence_id,
            kind=EventKind.DOWNTIME_STARTED,
            created_at=now,
            actor_id=actor_id,
            payload={"downtime_id": log.downtime_id, "work_order_id": wo.work_order_id,
                     "category": log.category},
        ))
        self.store.log_action(
            root.occurrence_id, root.asset_id, "start_downtime",
            {"downtime_id": log.downtime_id, "work_order_id": wo.work_order_id},
            actor_id=actor_id,
            idempotency_key=f"downtime:{root.occurrence_id}",
        )
        logger.info("Opened downtime %s for %s", log.downtime_id, root.occurrence_id)
        return log
