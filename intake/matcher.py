"""
Maintenance Intake — Duplicate Matcher

Bounded-window similarity search over root occurrences on the same
asset. Read-only: safe to call speculatively, and called again inside
the coordinator's atomic unit before anything is committed.

Score in [0, 100]:

    100 × (w_title·title + w_symptom·symptom + w_scope·scope) / Σw

    title    Jaccard over normalized word tokens
    symptom  shared tags / draft tags (0 when the draft has none)
    scope    1.0 shared subcomponent, 0.7 shared component, 0.3 asset only

Every sub-score is non-decreasing in its overlap and the weights are
non-negative, so more overlap never lowers the score. Dividing by the
weight sum keeps custom weights on the same 0-100 scale.
"""

from __future__ import annotations

import re
import time
import unicodedata
from typing import Callable, Protocol

from intake.catalog import AssetCatalog
from intake.settings import MatchingSettings
from intake.types import DuplicateCandidate, IncidentDraft, Occurrence

SCOPE_SUBCOMPONENT = 1.0
SCOPE_COMPONENT = 0.7
SCOPE_ASSET = 0.3

MIN_TOKEN_LENGTH = 3

STOPWORDS = frozenset({
    "the", "and", "for", "with", "from", "not", "has", "have", "was", "are",
    "this", "that", "its", "into", "but", "out", "off", "when", "after",
    "del", "las", "los", "una", "con", "por", "que",
})

_WORD = re.compile(r"[a-z0-9]+")


class OccurrenceSource(Protocol):
    def recent_roots(self, asset_id: int, since: float) -> list[Occurrence]: ...


# ─── Sub-scores ─────────────────────────────────────────────────────

def normalize_tokens(text: str) -> set[str]:
    """Lower-case, fold accents, drop short tokens and stop-words."""
    folded = unicodedata.normalize("NFKD", text or "")
    folded = "".join(c for c in folded if not unicodedata.combining(c)).lower()
    return {
        t for t in _WORD.findall(folded)
        if len(t) >= MIN_TOKEN_LENGTH and t not in STOPWORDS
    }


def title_similarity(a: str, b: str) -> float:
    ta, tb = normalize_tokens(a), normalize_tokens(b)
    if not ta or not tb:
        return 0.0
    return len(ta & tb) / len(ta | tb)


def symptom_similarity(draft_ids: frozenset[int] | set[int], other_ids: list[int] | set[int]) -> float:
    if not draft_ids:
        return 0.0
    return len(set(draft_ids) & set(other_ids)) / len(draft_ids)


def scope_similarity(draft: IncidentDraft, occurrence: Occurrence) -> float:
    if set(draft.subcomponent_ids) & set(occurrence.subcomponent_ids):
        return SCOPE_SUBCOMPONENT
    if set(draft.component_ids) & set(occurrence.component_ids):
        return SCOPE_COMPONENT
    return SCOPE_ASSET


# ─── Matcher ────────────────────────────────────────────────────────

class DuplicateMatcher:
    """Finds root occurrences on the draft's asset that look like the same problem."""

    def __init__(
        self,
        source: OccurrenceSource,
        catalog: AssetCatalog,
        settings: MatchingSettings | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.source = source
        self.catalog = catalog
        self.settings = settings or MatchingSettings()
        self.clock = clock

    def score(self, draft: IncidentDraft, occurrence: Occurrence) -> float:
        w = self.settings
        raw = (
            w.title_weight * title_similarity(draft.title, occurrence.title)
            + w.symptom_weight * symptom_similarity(draft.symptom_ids, occurrence.symptom_ids)
            + w.scope_weight * scope_similarity(draft, occurrence)
        )
        return round(100.0 * raw / w.total_weight, 1)

    def find_candidates(self, draft: IncidentDraft) -> list[DuplicateCandidate]:
        """Most similar first, ties broken by most recent. Empty list is normal."""
        since = self.clock() - self.settings.recency_window_days * 86400
        asset = self.catalog.get_asset(draft.asset_id)
        asset_name = asset.name if asset else ""

        scored: list[DuplicateCandidate] = []
        for occ in self.source.recent_roots(draft.asset_id, since):
            if not occ.is_root or occ.asset_id != draft.asset_id:
                continue
            similarity = self.score(draft, occ)
            if similarity < self.settings.relevance_floor:
                continue
            scored.append(DuplicateCandidate(
                occurrence_id=occ.occurrence_id,
                title=occ.title,
                status=occ.status,
                priority=occ.priority,
                similarity=similarity,
                reported_at=occ.created_at,
                asset_id=occ.asset_id,
                asset_name=asset_name,
            ))

        scored.sort(key=lambda c: (-c.similarity, -c.reported_at))
        return scored[:self.settings.max_candidates]
