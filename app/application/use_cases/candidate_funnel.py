"""CandidateFilterPipeline — the six-stage provider funnel for one service order."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone

from app.application.services.distance_resolver import DistanceResolver
from app.domain.entities.assignment_log import (
    AssignmentLogEntry,
    Exclusion,
    FunnelExecution,
    ScoreBreakdown,
)
from app.domain.entities.candidate import Candidate, CandidateScore, FactorResult
from app.domain.entities.provider import Provider
from app.domain.entities.service_order import ServiceOrder
from app.domain.entities.workload import ProviderWorkload
from app.domain.policies.distance_scoring import DEFAULT_BANDS, DistanceBands
from app.domain.policies.eligibility import (
    StageVerdict,
    build_candidate,
    check_capacity,
    check_certification,
    check_geography,
    check_schedule,
    check_specialty,
)
from app.domain.policies.factor_scorers import (
    DEFAULT_RISK_PENALTIES,
    DEFAULT_SCORERS,
    DEFAULT_WEIGHTS,
    FactorScorer,
    ScoringContext,
    select_primary_option,
)
from app.domain.policies.ranking import RankingAggregator, normalize_weights
from app.domain.value_objects.enums import (
    NO_ELIGIBLE_PROVIDERS,
    DistanceMethod,
    ExclusionReason,
    FunnelStage,
    RiskLevel,
)

logger = logging.getLogger(__name__)

ALL_STAGES: tuple[FunnelStage, ...] = tuple(FunnelStage)
ELIGIBILITY_STAGES: tuple[FunnelStage, ...] = ALL_STAGES[:-1]


@dataclass(frozen=True)
class FunnelResult:
    execution: FunnelExecution
    ranked: tuple[CandidateScore, ...]
    survivors: tuple[Candidate, ...]

    @property
    def terminal(self) -> str | None:
        return self.execution.terminal

    @property
    def has_candidates(self) -> bool:
        return self.execution.terminal is None


@dataclass
class _RunState:
    """Mutable bookkeeping for one run; only frozen entries leave this object."""

    order: ServiceOrder
    now: datetime
    workloads: dict[str, ProviderWorkload]
    excluded_provider_ids: frozenset[str]
    candidates: list[Candidate]
    entries: list[AssignmentLogEntry] = field(default_factory=list)

    def record(
        self,
        stage: FunnelStage,
        candidates_in: int,
        exclusions: list[Exclusion],
        notes: Iterable[str] = (),
        scores: Iterable[CandidateScore] = (),
    ) -> None:
        self.entries.append(
            AssignmentLogEntry(
                stage=stage,
                timestamp=datetime.now(timezone.utc),
                candidates_in=candidates_in,
                candidates_out=len(self.candidates),
                survivors=tuple(c.provider_id for c in self.candidates),
                exclusions=tuple(exclusions),
                scores=tuple(ScoreBreakdown.of(s) for s in scores),
                notes=tuple(notes),
            )
        )


class CandidateFilterPipeline:
    """Filter providers through ordered hard stages, then score and rank survivors.

    Stages run in ``FunnelStage`` declaration order. Each executed stage
    appends exactly one log entry. If a stage leaves no candidates, the run
    stops there with the terminal marker ``NO_ELIGIBLE_PROVIDERS``.
    """

    def __init__(
        self,
        distance_resolver: DistanceResolver,
        scorers: Iterable[FactorScorer] = DEFAULT_SCORERS,
        weights: dict[str, float] | None = None,
        aggregator: RankingAggregator | None = None,
        bands: DistanceBands = DEFAULT_BANDS,
        risk_penalties: dict[RiskLevel, float] | None = None,
        distance_method: DistanceMethod | None = None,
    ):
        self._distances = distance_resolver
        self._scorers = tuple(scorers)
        self._weights = dict(weights if weights is not None else DEFAULT_WEIGHTS)
        self._aggregator = aggregator or RankingAggregator()
        self._bands = bands
        self._risk_penalties = dict(risk_penalties or DEFAULT_RISK_PENALTIES)
        self._distance_method = distance_method

        # Fail fast on unusable weights
        normalize_weights({s.name: self._weights.get(s.name, 0.0) for s in self._scorers})

    async def run(
        self,
        order: ServiceOrder,
        providers: list[Provider],
        *,
        workloads: dict[str, ProviderWorkload] | None = None,
        now: datetime | None = None,
        excluded_provider_ids: Iterable[str] = (),
        stages: tuple[FunnelStage, ...] = ALL_STAGES,
    ) -> FunnelResult:
        started_at = datetime.now(timezone.utc)
        stages = tuple(s for s in ALL_STAGES if s in stages)
        state = _RunState(
            order=order,
            now=now or started_at,
            workloads=workloads or {},
            excluded_provider_ids=frozenset(excluded_provider_ids),
            candidates=[build_candidate(p) for p in sorted(providers, key=lambda p: p.id)],
        )

        ranked: tuple[CandidateScore, ...] = ()
        terminal = None
        for stage in stages:
            if stage == FunnelStage.SCORING:
                ranked = await self._score_and_rank(state)
            else:
                self._filter(state, stage)
            if not state.candidates:
                terminal = NO_ELIGIBLE_PROVIDERS
                logger.info(
                    "Service order %s: no eligible providers after stage %s",
                    order.id, stage.value,
                )
                break

        execution = FunnelExecution(
            id=str(uuid.uuid4()),
            service_order_id=order.id,
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
            entries=tuple(state.entries),
            terminal=terminal,
        )
        logger.info(
            "Service order %s: funnel %s ran %d stages, %d ranked",
            order.id, execution.id, len(execution.entries), len(ranked),
        )
        scoring = execution.entry_for(FunnelStage.SCORING)
        if scoring is not None and scoring.notes:
            logger.warning(
                "Service order %s: %d distance lookups degraded in funnel %s",
                order.id, len(scoring.notes), execution.id,
            )
        return FunnelResult(
            execution=execution, ranked=ranked, survivors=tuple(state.candidates)
        )

    # ─── Hard stages ────────────────────────────────────────────────

    def _check(self, stage: FunnelStage, state: _RunState) -> Callable[[Candidate], StageVerdict]:
        order, now = state.order, state.now
        if stage == FunnelStage.GEOGRAPHIC:
            return lambda c: check_geography(c, order)
        if stage == FunnelStage.SPECIALTY:
            return lambda c: check_specialty(c, order, now)
        if stage == FunnelStage.CERTIFICATION:
            return lambda c: check_certification(c, order, now)
        if stage == FunnelStage.CAPACITY:
            return lambda c: check_capacity(
                c, order,
                state.workloads.get(c.provider_id) or ProviderWorkload.empty(c.provider_id),
                now,
            )
        if stage == FunnelStage.SCHEDULE:
            return lambda c: check_schedule(c, order)
        raise ValueError(f"{stage.value} is not a filtering stage")

    def _filter(self, state: _RunState, stage: FunnelStage) -> None:
        check = self._check(stage, state)
        candidates_in = len(state.candidates)
        survivors: list[Candidate] = []
        exclusions: list[Exclusion] = []

        for candidate in state.candidates:
            if stage == FunnelStage.GEOGRAPHIC and candidate.provider_id in state.excluded_provider_ids:
                exclusions.append(
                    Exclusion(
                        provider_id=candidate.provider_id,
                        reason=ExclusionReason.PREVIOUSLY_DECLINED,
                        detail="Provider already declined this service order",
                    )
                )
                continue
            verdict = check(candidate)
            if verdict.passed:
                survivors.append(candidate.with_options(verdict.options))
            else:
                exclusions.append(
                    Exclusion(
                        provider_id=candidate.provider_id,
                        reason=verdict.reason,
                        detail=verdict.detail,
                    )
                )
                logger.debug(
                    "Service order %s: provider %s excluded at %s (%s)",
                    state.order.id, candidate.provider_id, stage.value, verdict.reason.value,
                )

        state.candidates = survivors
        state.record(stage, candidates_in, exclusions)

    # ─── Scoring stage ──────────────────────────────────────────────

    async def _score_and_rank(self, state: _RunState) -> tuple[CandidateScore, ...]:
        order = state.order
        candidates_in = len(state.candidates)

        results = await self._distances.resolve_many(
            order.location,
            {c.provider_id: c.provider.location for c in state.candidates},
            method=self._distance_method,
        )
        notes = []
        for c in state.candidates:
            r = results.get(c.provider_id)
            if r is not None and r.fallback_reason:
                notes.append(f"Provider {c.provider_id}: {r.fallback_reason}; used Haversine")
            elif r is None and order.location is not None and c.provider.location is not None:
                notes.append(
                    f"Provider {c.provider_id}: stored location is out of range; distance unknown"
                )
        distances = {pid: (r.distance_km if r else None) for pid, r in results.items()}

        context = ScoringContext(
            now=state.now,
            weights=self._weights,
            distances_km=distances,
            workloads=state.workloads,
            bands=self._bands,
            risk_penalties=self._risk_penalties,
        )
        narrowed = [
            c.with_options((select_primary_option(c, order, context),))
            for c in state.candidates
        ]
        factor_results: dict[str, list[FactorResult]] = {
            c.provider_id: [s.score(c, order, context) for s in self._scorers]
            for c in narrowed
        }
        ranked = self._aggregator.aggregate(narrowed, factor_results, distances)

        state.candidates = [
            next(c for c in narrowed if c.provider_id == score.provider_id) for score in ranked
        ]
        state.record(FunnelStage.SCORING, candidates_in, [], notes, ranked)
        return ranked
