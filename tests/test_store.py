"""
Maintenance Intake — State Store Tests

Round-trips, window queries, history, match checks, ledger idempotency,
downtime logs, statistics and transaction rollback over the SQLite backend.
"""

import os
import sys
import unittest

_base = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _base)

from engine.errors import ConcurrentConflict
from intake.store import IntakeStore
from intake.types import (
    DowntimeLog,
    EventKind,
    FailureCategory,
    IncidentDraft,
    MatchCheck,
    Occurrence,
    OccurrenceEvent,
    OccurrenceStatus,
    Outcome,
    Priority,
    ResolutionOutcome,
    ResolutionRecord,
    WorkOrder,
)


def _occ(now=1000.0, asset_id=7, outcome=Outcome.DISPATCHED, **kw):
    draft = IncidentDraft(asset_id=asset_id, title="Pump leaking oil", **kw)
    return Occurrence.create(draft, outcome, Priority.P3, now=now)


class TestOccurrences(unittest.TestCase):

    def setUp(self):
        self.store = IntakeStore()

    def tearDown(self):
        self.store.close()

    def test_round_trip(self):
        draft = IncidentDraft(
            asset_id=7, title="Pump leaking oil", component_ids=[70],
            subcomponent_ids=[701], symptom_ids=frozenset({4, 2}),
            attachments=["a.jpg"], caused_downtime=True, notes="night shift",
            failure_category=FailureCategory.HYDRAULIC, reported_by="tech",
        )
        draft.request_immediate_resolution(
            ResolutionRecord("Loose fitting", "Tightened", ResolutionOutcome.PARTIAL, 10))
        occ = Occurrence.create(draft, Outcome.RESOLVED_IMMEDIATELY, Priority.P2, now=5.0)
        self.store.insert_occurrence(occ)

        loaded = self.store.get_occurrence(occ.occurrence_id)
        self.assertEqual(loaded, occ)
        self.assertEqual(loaded.symptom_ids, [2, 4])
        self.assertEqual(loaded.status, OccurrenceStatus.CLOSED)
        self.assertEqual(loaded.closed_at, 5.0)
        self.assertEqual(loaded.resolution.elapsed_minutes, 10)

    def test_missing(self):
        self.assertIsNone(self.store.get_occurrence("occ_nope"))

    def test_update(self):
        occ = _occ()
        self.store.insert_occurrence(occ)
        occ.report_count = 3
        occ.linked_parent_id = "occ_parent"
        occ.updated_at = 2000.0
        self.store.update_occurrence(occ)
        loaded = self.store.get_occurrence(occ.occurrence_id)
        self.assertEqual(loaded.report_count, 3)
        self.assertEqual(loaded.linked_parent_id, "occ_parent")
        self.assertFalse(loaded.is_root)

    def test_recent_roots(self):
        old, new, other = _occ(now=100.0), _occ(now=500.0), _occ(now=500.0, asset_id=12)
        child = _occ(now=600.0)
        child.linked_parent_id = new.occurrence_id
        for o in (old, new, other, child):
            self.store.insert_occurrence(o)
        roots = self.store.recent_roots(7, since=200.0)
        self.assertEqual([o.occurrence_id for o in roots], [new.occurrence_id])

    def test_list_and_count(self):
        a = _occ(now=1.0)
        b = _occ(now=2.0, outcome=Outcome.OBSERVATION)
        c = _occ(now=3.0, asset_id=12)
        for o in (a, b, c):
            self.store.insert_occurrence(o)
        self.assertEqual([o.occurrence_id for o in self.store.list_occurrences(asset_id=7)],
                         [b.occurrence_id, a.occurrence_id])
        obs = self.store.list_occurrences(status=OccurrenceStatus.OBSERVATION)
        self.assertEqual([o.occurrence_id for o in obs], [b.occurrence_id])
        self.assertEqual(self.store.count_occurrences(), 3)
        self.assertEqual(self.store.count_occurrences(asset_id=12), 1)


class TestHistoryAndChecks(unittest.TestCase):

    def setUp(self):
        self.store = IntakeStore()

    def tearDown(self):
        self.store.close()

    def test_history_in_order(self):
        for kind in (EventKind.REPORTED, EventKind.DISPATCHED, EventKind.LINKED):
            self.store.add_event(OccurrenceEvent("occ_1", kind, created_at=1.0,
                                                 payload={"k": kind.value}))
        history = self.store.get_history("occ_1")
        self.assertEqual([e.kind for e in history],
                         [EventKind.REPORTED, EventKind.DISPATCHED, EventKind.LINKED])
        self.assertEqual(history[2].payload, {"k": "linked"})
        self.assertEqual(self.store.count_events(), 3)

    def test_match_checks(self):
        first = MatchCheck.create(7, ["occ_a"], now=1.0)
        second = MatchCheck.create(7, ["occ_a", "occ_b"], now=2.0)
        other = MatchCheck.create(12, ["occ_c"], now=3.0)
        for c in (first, second, other):
            self.store.save_match_check(c)
        self.assertEqual(self.store.latest_match_check(7).resume_token, second.resume_token)
        self.assertEqual(self.store.get_match_check(first.resume_token).candidate_ids, ["occ_a"])
        self.assertIsNone(self.store.latest_match_check(99))
        self.assertIsNone(self.store.get_match_check("mc_unknown"))

    def test_latest_check_follows_insert_order(self):
        first = MatchCheck.create(7, ["occ_a"], now=5.0)
        second = MatchCheck.create(7, ["occ_b"], now=5.0)
        self.store.save_match_check(first)
        self.store.save_match_check(second)
        self.assertEqual(self.store.latest_match_check(7).resume_token, second.resume_token)

    def test_prune_match_checks(self):
        old = MatchCheck.create(7, ["occ_a"], now=1.0)
        fresh = MatchCheck.create(12, ["occ_c"], now=100.0)
        self.store.save_match_check(old)
        self.store.save_match_check(fresh)
        self.assertEqual(self.store.prune_match_checks(before=50.0), 1)
        self.assertIsNone(self.store.get_match_check(old.resume_token))
        self.assertIsNotNone(self.store.get_match_check(fresh.resume_token))
        self.assertEqual(self.store.prune_match_checks(before=50.0), 0)


class TestLedgerAndWorkOrders(unittest.TestCase):

    def setUp(self):
        self.store = IntakeStore()

    def tearDown(self):
        self.store.close()

    def test_idempotent_ledger(self):
        self.assertTrue(self.store.log_action("occ_1", 7, "dispatch", {"a": 1},
                                              idempotency_key="dispatch:occ_1"))
        self.assertFalse(self.store.log_action("occ_1", 7, "dispatch", {"a": 2},
                                               idempotency_key="dispatch:occ_1"))
        self.assertTrue(self.store.log_action("occ_1", 7, "link_report", {}))
        self.assertTrue(self.store.log_action("occ_1", 7, "link_report", {}))
        ledger = self.store.get_ledger(occurrence_id="occ_1")
        self.assertEqual(len(ledger), 3)
        self.assertEqual(ledger[0]["details"], {"a": 1})

    def test_unique_work_order_per_source(self):
        occ = _occ()
        self.store.insert_occurrence(occ)
        with self.assertRaises(ConcurrentConflict):
            with self.store.transaction(lock_key="asset:7"):
                self.store.insert_work_order(WorkOrder.create(occ, now=1.0))
                self.store.insert_work_order(WorkOrder.create(occ, now=2.0))
        self.assertEqual(self.store.list_work_orders(), [])

    def test_transaction_rollback(self):
        with self.assertRaises(RuntimeError):
            with self.store.transaction(lock_key="asset:7"):
                self.store.insert_occurrence(_occ())
                self.store.add_event(OccurrenceEvent("occ_x", EventKind.REPORTED, 1.0))
                raise RuntimeError("boom")
        self.assertEqual(self.store.count_occurrences(), 0)
        self.assertEqual(self.store.count_events(), 0)

    def test_downtime_round_trip(self):
        occ = _occ(caused_downtime=True)
        wo = WorkOrder.create(occ, now=1.0)
        self.store.insert_occurrence(occ)
        self.store.insert_work_order(wo)
        log = DowntimeLog.open(occ, wo, now=2.0)
        self.store.insert_downtime(log)

        self.assertEqual(self.store.get_downtime_for(occ.occurrence_id), log)
        self.assertIsNone(self.store.get_downtime_for("occ_missing"))
        self.assertEqual(self.store.open_downtime_count(), 1)
        self.assertEqual(self.store.open_downtime_count(asset_id=12), 0)
        self.assertTrue(log.downtime_id.startswith("dt_"))

    def test_one_downtime_per_occurrence(self):
        occ = _occ(caused_downtime=True)
        wo = WorkOrder.create(occ, now=1.0)
        with self.assertRaises(ConcurrentConflict):
            with self.store.transaction(lock_key="asset:7"):
                self.store.insert_downtime(DowntimeLog.open(occ, wo, now=2.0))
                self.store.insert_downtime(DowntimeLog.open(occ, wo, now=3.0))
        self.assertEqual(self.store.open_downtime_count(), 0)

    def test_stats(self):
        root = _occ()
        obs = _occ(outcome=Outcome.OBSERVATION)
        self.store.insert_occurrence(root)
        self.store.insert_occurrence(obs)
        self.store.insert_work_order(WorkOrder.create(root, now=1.0))
        self.store.add_event(OccurrenceEvent(root.occurrence_id, EventKind.LINKED, 1.0))
        self.store.log_action(root.occurrence_id, 7, "link_report", {})

        s = self.store.stats()
        self.assertEqual(s["occurrences"], {"dispatched": 1, "observation": 1})
        self.assertEqual(s["root_outcomes"], {"dispatched": 1, "observation": 1})
        self.assertEqual(s["work_orders"], {"pending": 1})
        self.assertEqual(s["linked_reports"], 1)
        self.assertEqual(s["action_ledger_entries"], 1)
        self.assertEqual(s["open_downtime"], 0)


if __name__ == "__main__":
    unittest.main()
