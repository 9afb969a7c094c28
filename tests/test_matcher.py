"""
Maintenance Intake — Duplicate Matcher Tests

Tests:
  - token normalization (case, accents, short words, stop-words)
  - sub-scores and the weighted score
  - window, root-only, same-asset, floor and max-candidates rules
  - ordering (similarity, then most recent)
  - monotonicity in shared symptoms, scope and title overlap
  - custom weights stay on the 0-100 scale
"""

import os
import sys
import unittest

_base = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _base)
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from _support import DAY, FakeClock, build_catalog
from intake.matcher import (
    DuplicateMatcher,
    normalize_tokens,
    scope_similarity,
    symptom_similarity,
    title_similarity,
)
from intake.settings import MatchingSettings
from intake.store import IntakeStore
from intake.types import (
    IncidentDraft,
    Occurrence,
    OccurrenceStatus,
    Outcome,
    Priority,
)


def _draft(title="Pump leaking oil", symptoms=(4,), components=(), subcomponents=(),
           asset_id=7):
    return IncidentDraft(
        asset_id=asset_id,
        title=title,
        symptom_ids=frozenset(symptoms),
        component_ids=list(components),
        subcomponent_ids=list(subcomponents),
    )


def _occurrence(now, **kw):
    draft = _draft(**kw)
    return Occurrence.create(draft, Outcome.DISPATCHED, Priority.P3, now=now)


# ═══════════════════════════════════════════════════════════════════
# 1. Sub-scores
# ═══════════════════════════════════════════════════════════════════

class TestNormalization(unittest.TestCase):

    def test_lowercase_and_punctuation(self):
        self.assertEqual(normalize_tokens("Pump LEAKING oil!!"), {"pump", "leaking", "oil"})

    def test_accents_folded(self):
        self.assertEqual(normalize_tokens("Válvula con fuga"), {"valvula", "fuga"})

    def test_short_tokens_and_stopwords_dropped(self):
        self.assertEqual(normalize_tokens("The oil is on the floor"), {"oil", "floor"})

    def test_empty(self):
        self.assertEqual(normalize_tokens(""), set())


class TestSubScores(unittest.TestCase):

    def test_title_jaccard(self):
        self.assertEqual(title_similarity("Pump leaking oil", "pump leaking oil"), 1.0)
        self.assertAlmostEqual(title_similarity("Pump leaking oil", "Pump leaking oil badly"), 0.75)
        self.assertEqual(title_similarity("Pump leaking oil", "Belt misaligned"), 0.0)

    def test_symptom_overlap_normalized_by_draft(self):
        self.assertEqual(symptom_similarity(frozenset(), [1, 2]), 0.0)
        self.assertEqual(symptom_similarity(frozenset({1, 2}), [2, 3]), 0.5)
        self.assertEqual(symptom_similarity(frozenset({1}), [1, 2, 3]), 1.0)

    def test_scope_levels(self):
        occ = _occurrence(0.0, components=(70,), subcomponents=(701,))
        self.assertEqual(scope_similarity(_draft(subcomponents=(701,)), occ), 1.0)
        self.assertEqual(scope_similarity(_draft(components=(70,)), occ), 0.7)
        self.assertEqual(scope_similarity(_draft(components=(71,)), occ), 0.3)
        self.assertEqual(scope_similarity(_draft(), occ), 0.3)


# ═══════════════════════════════════════════════════════════════════
# 2. Candidate search
# ═══════════════════════════════════════════════════════════════════

class TestFindCandidates(unittest.TestCase):

    def setUp(self):
        self.clock = FakeClock()
        self.store = IntakeStore()
        self.matcher = DuplicateMatcher(self.store, build_catalog(), clock=self.clock)

    def tearDown(self):
        self.store.close()

    def _insert(self, age_days=0.0, **kw):
        occ = _occurrence(self.clock() - age_days * DAY, **kw)
        self.store.insert_occurrence(occ)
        return occ

    def test_identical_report_scores_86(self):
        occ = self._insert()
        found = self.matcher.find_candidates(_draft())
        self.assertEqual(len(found), 1)
        self.assertEqual(found[0].occurrence_id, occ.occurrence_id)
        # 100 × (0.45·1 + 0.35·1 + 0.20·0.3)
        self.assertEqual(found[0].similarity, 86.0)
        self.assertEqual(found[0].asset_name, "Hydraulic press 7")

    def test_empty_store(self):
        self.assertEqual(self.matcher.find_candidates(_draft()), [])

    def test_outside_window_excluded(self):
        self._insert(age_days=15)
        self.assertEqual(self.matcher.find_candidates(_draft()), [])

    def test_inside_window_included(self):
        self._insert(age_days=13.9)
        self.assertEqual(len(self.matcher.find_candidates(_draft())), 1)

    def test_closed_occurrence_in_window_is_candidate(self):
        occ = self._insert()
        occ.status = OccurrenceStatus.CLOSED
        self.store.update_occurrence(occ)
        found = self.matcher.find_candidates(_draft())
        self.assertEqual(found[0].status, OccurrenceStatus.CLOSED)

    def test_linked_occurrences_never_candidates(self):
        root = self._insert()
        child = self._insert()
        child.linked_parent_id = root.occurrence_id
        self.store.update_occurrence(child)
        ids = [c.occurrence_id for c in self.matcher.find_candidates(_draft())]
        self.assertEqual(ids, [root.occurrence_id])

    def test_other_asset_excluded(self):
        self._insert(asset_id=12)
        self.assertEqual(self.matcher.find_candidates(_draft()), [])

    def test_below_floor_discarded(self):
        self._insert(title="Belt misaligned on roller", symptoms=(9,))
        self.assertEqual(self.matcher.find_candidates(_draft()), [])

    def test_floor_is_configurable(self):
        self._insert()
        strict = DuplicateMatcher(self.store, build_catalog(),
                                  MatchingSettings(relevance_floor=90), clock=self.clock)
        self.assertEqual(strict.find_candidates(_draft()), [])

    def test_max_candidates_and_recency_tiebreak(self):
        inserted = [self._insert(age_days=i) for i in range(7)]
        found = self.matcher.find_candidates(_draft())
        self.assertEqual(len(found), 5)
        self.assertEqual([c.occurrence_id for c in found],
                         [o.occurrence_id for o in inserted[:5]])

    def test_most_similar_first(self):
        weaker = self._insert(title="Pump leaking oil slowly overnight")
        stronger = self._insert(age_days=2)
        found = self.matcher.find_candidates(_draft())
        self.assertEqual(found[0].occurrence_id, stronger.occurrence_id)
        self.assertEqual(found[1].occurrence_id, weaker.occurrence_id)


# ═══════════════════════════════════════════════════════════════════
# 3. Monotonicity
# ═══════════════════════════════════════════════════════════════════

class TestMonotonicity(unittest.TestCase):
    """More overlap never lowers the score."""

    def setUp(self):
        self.matcher = DuplicateMatcher(IntakeStore(), build_catalog(), clock=FakeClock())

    def _scores(self, draft, occurrences):
        return [self.matcher.score(draft, o) for o in occurrences]

    def assertNonDecreasing(self, values):
        for a, b in zip(values, values[1:]):
            self.assertLessEqual(a, b, values)

    def test_shared_symptoms(self):
        draft = _draft(symptoms=(1, 2, 3))
        occs = [_occurrence(0.0, symptoms=s) for s in ((), (1,), (1, 2), (1, 2, 3), (1, 2, 3, 8))]
        scores = self._scores(draft, occs)
        self.assertNonDecreasing(scores)
        self.assertLess(scores[0], scores[3])

    def test_scope(self):
        draft = _draft(components=(70,), subcomponents=(701,))
        occs = [
            _occurrence(0.0, components=(71,)),
            _occurrence(0.0, components=(70,)),
            _occurrence(0.0, components=(70,), subcomponents=(701,)),
        ]
        scores = self._scores(draft, occs)
        self.assertNonDecreasing(scores)
        self.assertLess(scores[0], scores[2])

    def test_title_overlap(self):
        draft = _draft(title="Pump leaking oil seal")
        titles = ["Motor", "Pump motor", "Pump leaking motor", "Pump leaking oil motor"]
        scores = self._scores(draft, [_occurrence(0.0, title=t) for t in titles])
        self.assertNonDecreasing(scores)
        self.assertLess(scores[0], scores[-1])

    def test_scores_bounded(self):
        draft = _draft(components=(70,), subcomponents=(701,))
        occ = _occurrence(0.0, components=(70,), subcomponents=(701,))
        self.assertEqual(self.matcher.score(draft, occ), 100.0)
        self.assertEqual(self.matcher.score(_draft(title="Noise", symptoms=()),
                                            _occurrence(0.0, title="Vibration")), 6.0)


class TestCustomWeights(unittest.TestCase):

    def _score(self, settings, draft, occ):
        return DuplicateMatcher(IntakeStore(), build_catalog(), settings).score(draft, occ)

    def test_unit_weights_stay_on_scale(self):
        equal = MatchingSettings(title_weight=1, symptom_weight=1, scope_weight=1)
        draft = _draft(components=(70,), subcomponents=(701,))
        occ = _occurrence(0.0, components=(70,), subcomponents=(701,))
        self.assertEqual(self._score(equal, draft, occ), 100.0)
        # 100 × (1 + 1 + 0.3) / 3
        self.assertEqual(self._score(equal, _draft(), _occurrence(0.0)), 76.7)

    def test_scaled_weights_give_same_score(self):
        doubled = MatchingSettings(title_weight=0.9, symptom_weight=0.7, scope_weight=0.4)
        self.assertEqual(self._score(doubled, _draft(), _occurrence(0.0)), 86.0)

    def test_title_only(self):
        title_only = MatchingSettings(title_weight=2, symptom_weight=0, scope_weight=0)
        score = self._score(title_only, _draft(title="Pump leaking oil"),
                            _occurrence(0.0, title="Pump leaking oil badly"))
        self.assertEqual(score, 75.0)


class TestMatchingSettings(unittest.TestCase):

    def test_all_zero_weights_rejected(self):
        with self.assertRaises(ValueError):
            MatchingSettings(title_weight=0, symptom_weight=0, scope_weight=0)

    def test_negative_weight_rejected(self):
        with self.assertRaises(ValueError):
            MatchingSettings(title_weight=-0.1)

    def test_zero_max_candidates_rejected(self):
        with self.assertRaises(ValueError):
            MatchingSettings(max_candidates=0)


if __name__ == "__main__":
    unittest.main()
