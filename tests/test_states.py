"""
Maintenance Intake — Workflow State Machine Tests

Valid and forbidden transitions of the intake tagged union.
"""

import os
import sys
import unittest

_base = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _base)

from engine.errors import InvalidTransition
from intake.states import (
    Closed,
    CreatedNew,
    Dispatched,
    Drafted,
    LinkedToExisting,
    MatchChecked,
    Observation,
    ResolvedImmediately,
    advance,
    is_terminal,
    state_of,
)
from intake.types import IncidentDraft, Occurrence, OccurrenceStatus, Outcome, Priority

DRAFT = IncidentDraft(asset_id=7, title="Pump leaking oil")


def _occ(outcome=Outcome.DISPATCHED):
    return Occurrence.create(DRAFT, outcome, Priority.P3, now=1.0)


class TestTransitions(unittest.TestCase):

    def test_happy_path_dispatch(self):
        occ = _occ()
        s = Drafted(DRAFT)
        s = advance(s, MatchChecked(DRAFT))
        s = advance(s, CreatedNew(DRAFT, occ))
        s = advance(s, Dispatched(occ))
        s = advance(s, Closed(occ))
        self.assertTrue(is_terminal(s))

    def test_link_path(self):
        s = advance(Drafted(DRAFT), MatchChecked(DRAFT))
        s = advance(s, LinkedToExisting(DRAFT, _occ()))
        self.assertTrue(is_terminal(s))

    def test_cannot_skip_match_check(self):
        with self.assertRaises(InvalidTransition):
            advance(Drafted(DRAFT), CreatedNew(DRAFT, _occ()))

    def test_linked_never_creates(self):
        linked = LinkedToExisting(DRAFT, _occ())
        with self.assertRaises(InvalidTransition):
            advance(linked, CreatedNew(DRAFT, _occ()))

    def test_observation_cannot_dispatch(self):
        occ = _occ(Outcome.OBSERVATION)
        with self.assertRaises(InvalidTransition):
            advance(Observation(occ), Dispatched(occ))

    def test_resolved_closes(self):
        occ = _occ(Outcome.RESOLVED_IMMEDIATELY)
        self.assertIsInstance(advance(ResolvedImmediately(occ), Closed(occ)), Closed)

    def test_closed_is_terminal(self):
        occ = _occ()
        with self.assertRaises(InvalidTransition) as ctx:
            advance(Closed(occ), Closed(occ))
        self.assertEqual(ctx.exception.http_status, 409)


class TestStateOf(unittest.TestCase):

    def test_rehydration(self):
        self.assertIsInstance(state_of(_occ(Outcome.OBSERVATION)), Observation)
        self.assertIsInstance(state_of(_occ(Outcome.DISPATCHED)), Dispatched)
        resolved = _occ(Outcome.RESOLVED_IMMEDIATELY)
        self.assertEqual(resolved.status, OccurrenceStatus.CLOSED)
        self.assertIsInstance(state_of(resolved), Closed)


if __name__ == "__main__":
    unittest.main()
