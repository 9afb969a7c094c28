"""
Maintenance Intake — Resolution Coordinator

Drives one submission through the intake state machine:

    Drafted → MatchChecked → {LinkedToExisting | CreatedNew}
    CreatedNew → {Observation | ResolvedImmediately | Dispatched}

Validation happens before anything is written. Matching and the
link/create commit run in one store transaction under the asset's lock,
so two near-simultaneous reports of the same problem cannot both create
a root occurrence: the second one sees the first as a candidate.

Force-create and link are continuations of a drafted submission. They
carry the resume token returned with the candidate list. A token is
honored only while it is the newest list issued for the asset and still
inside the recency window; older match checks are pruned as new checks
run. The atomic guarantee applies to whichever submission commits.

Usage:
    coord = ResolutionCoordinator.from_config(load_config("intake.yaml"))
    result = coord.submit({"assetId": 7, "title": "Pump leaking oil"}, actor="u-12")
    if isinstance(result, DuplicatesFound):
        result = coord.submit({..., "linkToOccurrenceId": result.candidates[0].occurrence_id,
                               "resumeToken": result.resume_token}, actor="u-12")
"""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Callable

from engine.errors import (
    CandidateNotFound,
    ConcurrentConflict,
    IntakeError,
    InvalidMerge,
    InvalidTransition,
    OccurrenceNotFound,
    ValidationError,
)
from engine.logging import IntakeLogger
from intake.catalog import AssetCatalog, InMemoryAssetCatalog, load_catalog
from intake.classifier import OutcomeClassifier
from intake.dispatcher import WorkOrderDispatcher
from intake.gate import Actor, AssignmentGate, AuthorizationProvider, StaticAuthorization
from intake.matcher import DuplicateMatcher
from intake.settings import IntakeSettings
from intake.states import (
    Closed,
    CreatedNew,
    Dispatched,
    Drafted,
    IntakeState,
    LinkedToExisting,
    MatchChecked,
    Observation,
    ResolvedImmediately,
    advance,
    state_name,
    state_of,
)
from intake.store import IntakeStore
from intake.types import (
    Continuation,
    Created,
    DuplicateCandidate,
    DuplicatesFound,
    EventKind,
    IncidentDraft,
    Linked,
    MatchCheck,
    Occurrence,
    OccurrenceEvent,
    OccurrenceStatus,
    Outcome,
    SubmissionResult,
)
from intake.validator import IntakeValidator

logger = logging.getLogger("maintenance_intake.coordinator")


@dataclass
class _Submission:
    """Mutable cursor over one submission's state."""
    draft: IncidentDraft
    continuation: Continuation
    actor: Actor
    log: IntakeLogger
    state: IntakeState

    def to(self, nxt: IntakeState) -> IntakeState:
        self.state = advance(self.state, nxt)
        return self.state


class ResolutionCoordinator:
    """Entry point for intake submissions and operator follow-ups."""

    def __init__(
        self,
        store: IntakeStore,
        catalog: AssetCatalog,
        settings: IntakeSettings | None = None,
        authorization: AuthorizationProvider | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings or IntakeSettings()
        self.store = store
        self.catalog = catalog
        self.clock = clock
        self.authorization = authorization or StaticAuthorization(self.settings.actors)
        self.lock_timeout = self.settings.storage.lock_timeout_seconds

        self.validator = IntakeValidator(catalog)
        self.matcher = DuplicateMatcher(store, catalog, self.settings.matching, clock=clock)
        self.classifier = OutcomeClassifier()
        self.dispatcher = WorkOrderDispatcher(store, clock=clock)
        self.gate = AssignmentGate(self.settings.assignment)

    @staticmethod
    def from_config(cfg: dict[str, Any] | None = None) -> ResolutionCoordinator:
        settings = IntakeSettings.from_config(cfg)
        store = IntakeStore.open(
            backend=settings.storage.backend,
            path=settings.storage.path,
            dsn=settings.storage.dsn,
        )
        catalog_path = settings.catalog_path
        source = (cfg or {}).get("_config_source")
        if catalog_path and source and not os.path.isabs(catalog_path):
            # Relative catalog paths are resolved next to the config file
            catalog_path = os.path.join(os.path.dirname(os.path.abspath(source)), catalog_path)
        catalog = load_catalog(catalog_path) if catalog_path else InMemoryAssetCatalog()
        return ResolutionCoordinator(store, catalog, settings)

    def resolve_actor(self, actor: Actor | str | None) -> Actor:
        if isinstance(actor, Actor):
            return actor
        if not actor:
            return Actor.anonymous()
        return self.authorization.resolve(actor)

    # ═══════════════════════════════════════════════════════════════
    # Submission
    # ═══════════════════════════════════════════════════════════════

    def submit(self, raw: dict[str, Any], actor: Actor | str | None = None) -> SubmissionResult:
        actor = self.resolve_actor(actor)
        cont = Continuation.from_raw(raw)
        log = IntakeLogger(asset_id=raw.get("assetId"), actor_id=actor.actor_id)
        mode = "link" if cont.is_link else "force" if cont.force_create else "check"
        log.on_submission_received(mode)

        try:
            if cont.force_create and cont.is_link:
                raise ValidationError(
                    "forceCreate and linkToOccurrenceId are mutually exclusive",
                    field="force_create",
                )
            draft = self.validator.validate(raw, reported_by=actor.actor_id)
        except ValidationError as e:
            log.on_validation_failed(e.code, e.field, e.message)
            raise

        log = log.bind(draft.asset_id)
        log.on_draft_validated(draft.to_dict())
        sub = _Submission(draft, cont, actor, log, Drafted(draft))

        try:
            with self.store.transaction(lock_key=f"asset:{draft.asset_id}",
                                        timeout=self.lock_timeout):
                result = self._run(sub)
        except IntakeError as e:
            log.on_transition_failed(state_name(sub.state), e.code, e.retryable, e.message)
            raise

        self._log_committed(log, result)
        return result

    def _run(self, sub: _Submission) -> SubmissionResult:
        if sub.continuation.is_link:
            return self._link(sub)
        if sub.continuation.force_create:
            self._recheck_forced(sub)
            return self._create(sub)

        self.store.prune_match_checks(self._window_start())
        candidates = self.matcher.find_candidates(sub.draft)
        sub.log.on_match_checked(len(candidates), self.settings.matching.recency_window_days)
        if not candidates:
            sub.to(MatchChecked(sub.draft))
            return self._create(sub)

        check = MatchCheck.create(
            sub.draft.asset_id,
            [c.occurrence_id for c in candidates],
            actor_id=sub.actor.actor_id,
            now=self.clock(),
        )
        self.store.save_match_check(check)
        sub.to(MatchChecked(sub.draft, tuple(candidates), check.resume_token))
        return DuplicatesFound(candidates, check.resume_token)

    def _window_start(self) -> float:
        return self.clock() - self.settings.matching.recency_window_days * 86400

    def _reviewed_check(self, sub: _Submission, token: str | None) -> MatchCheck:
        """
        The candidate list the caller acted on. Only the newest list issued
        for the asset is honored, and only while it is inside the recency
        window.
        """
        asset_id = sub.draft.asset_id
        latest = self.store.latest_match_check(asset_id)
        if token:
            check = self.store.get_match_check(token)
            if check is None or check.asset_id != asset_id:
                raise CandidateNotFound.for_token(
                    token, asset_id, reason="unknown or issued for another asset",
                )
            if latest is not None and latest.resume_token != check.resume_token:
                raise CandidateNotFound.for_token(
                    token, asset_id, reason="superseded by a newer candidate list",
                )
        elif latest is None:
            raise CandidateNotFound(
                sub.continuation.link_to_occurrence_id, asset_id,
                reason="no candidate list was returned for this asset",
            )
        else:
            check = latest

        if check.created_at < self._window_start():
            raise CandidateNotFound.for_token(
                check.resume_token, asset_id, reason="candidate list has expired",
            )
        return check

    def _recheck_forced(self, sub: _Submission):
        """Force create. With a token, anything new since review is a conflict."""
        token = sub.continuation.resume_token
        if not token:
            sub.to(MatchChecked(sub.draft, skipped=True))
            return

        check = self._reviewed_check(sub, token)
        candidates = self.matcher.find_candidates(sub.draft)
        sub.log.on_match_checked(len(candidates), self.settings.matching.recency_window_days)
        unseen = [c.occurrence_id for c in candidates if c.occurrence_id not in check.candidate_ids]
        if unseen:
            raise ConcurrentConflict(
                f"{len(unseen)} new candidate(s) appeared on asset {sub.draft.asset_id} "
                f"since review",
                new_candidate_ids=unseen,
            )
        sub.to(MatchChecked(sub.draft, tuple(candidates), token))

    def _link(self, sub: _Submission) -> Linked:
        draft = sub.draft
        target_id = sub.continuation.link_to_occurrence_id
        check = self._reviewed_check(sub, sub.continuation.resume_token)
        if target_id not in check.candidate_ids:
            raise CandidateNotFound(target_id, draft.asset_id,
                                    reason="not among the most recently returned candidates")
        sub.to(MatchChecked(draft, (), check.resume_token))

        root = self.store.get_occurrence(target_id)
        if root is None or not root.is_root or root.asset_id != draft.asset_id:
            raise CandidateNotFound(target_id, draft.asset_id,
                                    reason="no longer a root occurrence on this asset")
        if root.created_at < self._window_start():
            raise CandidateNotFound(target_id, draft.asset_id,
                                    reason="reported outside the recency window")

        now = self.clock()
        root.report_count += 1
        root.updated_at = now
        self.store.update_occurrence(root)
        self.store.add_event(OccurrenceEvent(
            occurrence_id=root.occurrence_id,
            kind=EventKind.LINKED,
            created_at=now,
            actor_id=sub.actor.actor_id,
            payload={
                "title": draft.title,
                "description": draft.description,
                "attachments": list(draft.attachments),
                "symptom_ids": sorted(draft.symptom_ids),
                "notes": draft.notes,
                "resume_token": check.resume_token,
            },
        ))
        self.store.log_action(
            root.occurrence_id, root.asset_id, "link_report",
            {"report_count": root.report_count, "title": draft.title},
            actor_id=sub.actor.actor_id,
        )
        sub.to(LinkedToExisting(draft, root))
        return Linked(root)

    def _create(self, sub: _Submission) -> Created:
        draft = sub.draft
        asset = self.catalog.get_asset(draft.asset_id)
        outcome = self.classifier.classify(draft)
        priority = self.classifier.priority(draft, asset)
        now = self.clock()

        occ = Occurrence.create(draft, outcome, priority, now=now)
        sub.to(CreatedNew(draft, occ))
        self.store.insert_occurrence(occ)
        self.store.add_event(OccurrenceEvent(
            occurrence_id=occ.occurrence_id,
            kind=EventKind.REPORTED,
            created_at=now,
            actor_id=sub.actor.actor_id,
            payload={"outcome": outcome.value, "priority": priority.value},
        ))
        self.store.log_action(
            occ.occurrence_id, occ.asset_id, "create_occurrence",
            {"outcome": outcome.value, "priority": priority.value},
            actor_id=sub.actor.actor_id,
            idempotency_key=f"create:{occ.occurrence_id}",
        )

        if outcome == Outcome.OBSERVATION:
            sub.to(Observation(occ))
            return Created(occ)

        if outcome == Outcome.RESOLVED_IMMEDIATELY:
            sub.to(ResolvedImmediately(occ))
            self.store.add_event(OccurrenceEvent(
                occurrence_id=occ.occurrence_id,
                kind=EventKind.RESOLVED,
                created_at=now,
                actor_id=sub.actor.actor_id,
                payload=occ.resolution.to_dict() if occ.resolution else {},
            ))
            sub.to(Closed(occ, reason="resolved_immediately"))
            return Created(occ)

        wo, _ = self.dispatcher.dispatch(occ, actor_id=sub.actor.actor_id)
        sub.to(Dispatched(occ, wo))
        downtime = self.store.get_downtime_for(occ.occurrence_id) if occ.caused_downtime else None
        return Created(occ, wo, may_assign=self.gate.may_auto_assign(sub.actor),
                       downtime=downtime)

    @staticmethod
    def _log_committed(log: IntakeLogger, result: SubmissionResult):
        if isinstance(result, DuplicatesFound):
            top = result.candidates[0].similarity if result.candidates else 0.0
            log.on_duplicates_returned(result.resume_token, top)
        elif isinstance(result, Linked):
            log.on_occurrence_linked(result.occurrence.occurrence_id,
                                     result.occurrence.report_count)
        else:
            occ = result.occurrence
            log.on_occurrence_created(occ.occurrence_id, occ.priority.value)
            log.on_outcome_classified(occ.occurrence_id, occ.outcome.value)
            if result.work_order is not None:
                log.on_work_order_dispatched(result.work_order.work_order_id,
                                             occ.occurrence_id, created=True)
            if result.downtime is not None:
                log.on_downtime_started(result.downtime.downtime_id, occ.occurrence_id)

    # ═══════════════════════════════════════════════════════════════
    # Preview
    # ═══════════════════════════════════════════════════════════════

    def find_candidates(self, raw: dict[str, Any],
                        actor: Actor | str | None = None) -> list[DuplicateCandidate]:
        """Validate and match without writing anything or issuing a token."""
        actor = self.resolve_actor(actor)
        draft = self.validator.validate(raw, reported_by=actor.actor_id)
        return self.matcher.find_candidates(draft)

    # ═══════════════════════════════════════════════════════════════
    # Operator follow-ups
    # ═══════════════════════════════════════════════════════════════

    def _require(self, occurrence_id: str) -> Occurrence:
        occ = self.store.get_occurrence(occurrence_id)
        if occ is None:
            raise OccurrenceNotFound(occurrence_id)
        return occ

    def close_observation(self, occurrence_id: str, actor: Actor | str | None = None,
                          note: str = "") -> Occurrence:
        """Observation → Closed. Any other state raises InvalidTransition."""
        actor = self.resolve_actor(actor)
        asset_id = self._require(occurrence_id).asset_id

        with self.store.transaction(lock_key=f"asset:{asset_id}", timeout=self.lock_timeout):
            occ = self._require(occurrence_id)
            state = state_of(occ)
            if not isinstance(state, Observation) or not occ.is_root:
                raise InvalidTransition(
                    f"Occurrence {occurrence_id} is {occ.status.value}; "
                    f"only open root observations can be closed",
                    occurrence_id=occurrence_id,
                )
            now = self.clock()
            occ.status = OccurrenceStatus.CLOSED
            occ.closed_at = now
            occ.updated_at = now
            advance(state, Closed(occ, reason="observation_closed"))
            self.store.update_occurrence(occ)
            self.store.add_event(OccurrenceEvent(
                occurrence_id=occ.occurrence_id,
                kind=EventKind.CLOSED,
                created_at=now,
                actor_id=actor.actor_id,
                payload={"note": note} if note else {},
            ))
            self.store.log_action(
                occ.occurrence_id, occ.asset_id, "close_observation",
                {"note": note}, actor_id=actor.actor_id,
                idempotency_key=f"close:{occ.occurrence_id}",
            )
        logger.info("Closed observation %s", occurrence_id)
        return occ

    def merge(self, occurrence_id: str, into_occurrence_id: str,
              actor: Actor | str | None = None) -> Occurrence:
        """
        Fold an already-created root into another root on the same asset.
        Returns the surviving root.
        """
        actor = self.resolve_actor(actor)
        if occurrence_id == into_occurrence_id:
            raise InvalidMerge("An occurrence cannot be merged into itself",
                               field="into_occurrence_id")
        asset_id = self._require(occurrence_id).asset_id

        with self.store.transaction(lock_key=f"asset:{asset_id}", timeout=self.lock_timeout):
            source = self._require(occurrence_id)
            target = self._require(into_occurrence_id)
            if source.asset_id != target.asset_id:
                raise InvalidMerge(
                    f"Occurrences are on different assets "
                    f"({source.asset_id} and {target.asset_id})",
                    field="into_occurrence_id",
                )
            if not source.is_root or not target.is_root:
                raise InvalidMerge("Only root occurrences can be merged",
                                   field="into_occurrence_id")
            if self.store.get_work_order_for(source.occurrence_id) is not None:
                raise InvalidMerge(
                    f"Occurrence {source.occurrence_id} already has a work order; "
                    f"merge the other occurrence into it instead",
                    field="occurrence_id",
                )

            now = self.clock()
            source.linked_parent_id = target.occurrence_id
            source.updated_at = now
            target.report_count += source.report_count
            target.updated_at = now
            self.store.update_occurrence(source)
            self.store.update_occurrence(target)
            self.store.add_event(OccurrenceEvent(
                occurrence_id=source.occurrence_id, kind=EventKind.MERGED,
                created_at=now, actor_id=actor.actor_id,
                payload={"into_occurrence_id": target.occurrence_id},
            ))
            self.store.add_event(OccurrenceEvent(
                occurrence_id=target.occurrence_id, kind=EventKind.MERGED_INTO,
                created_at=now, actor_id=actor.actor_id,
                payload={"from_occurrence_id": source.occurrence_id,
                         "report_count": target.report_count},
            ))
            self.store.log_action(
                target.occurrence_id, target.asset_id, "merge_occurrence",
                {"from_occurrence_id": source.occurrence_id},
                actor_id=actor.actor_id,
                idempotency_key=f"merge:{source.occurrence_id}",
            )
        logger.info("Merged %s into %s", occurrence_id, into_occurrence_id)
        return target

    # ═══════════════════════════════════════════════════════════════
    # Queries
    # ═══════════════════════════════════════════════════════════════

    def get_occurrence(self, occurrence_id: str) -> dict[str, Any]:
        """Occurrence with its history, root and the lineage's work order."""
        occ = self._require(occurrence_id)
        root = self.dispatcher.resolve_root(occ)
        wo = self.store.get_work_order_for(root.occurrence_id)
        downtime = self.store.get_downtime_for(root.occurrence_id)
        return {
            "occurrence": occ.to_dict(),
            "rootOccurrenceId": root.occurrence_id,
            "history": [e.to_dict() for e in self.store.get_history(occurrence_id)],
            "workOrder": wo.to_dict() if wo else None,
            "downtimeLog": downtime.to_dict() if downtime else None,
        }

    def list_occurrences(
        self,
        asset_id: int | None = None,
        status: OccurrenceStatus | str | None = None,
        limit: int = 100,
    ) -> list[Occurrence]:
        if isinstance(status, str):
            try:
                status = OccurrenceStatus(status)
            except ValueError:
                raise ValidationError(f"Unknown occurrence status {status!r}", field="status")
        return self.store.list_occurrences(asset_id=asset_id, status=status, limit=limit)

    def get_ledger(self, occurrence_id: str | None = None, asset_id: int | None = None,
                   limit: int = 500) -> list[dict[str, Any]]:
        return self.store.get_ledger(occurrence_id=occurrence_id, asset_id=asset_id, limit=limit)

    def stats(self) -> dict[str, Any]:
        return self.store.stats()

    def close(self):
        self.store.close()
