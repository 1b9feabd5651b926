"""FactorScorers — independent, pure scoring strategies for funnel stage 6.

Each scorer satisfies the FactorScorer protocol. The ranking aggregator only
sees the FactorResult list, so a new factor is just a new class added to
``DEFAULT_SCORERS``.

Scorers read the candidate's primary team option; the pipeline narrows each
candidate to a single option (see ``select_primary_option``) before scoring.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

from app.domain.entities.candidate import Candidate, FactorResult, TeamOption
from app.domain.entities.service_order import ServiceOrder
from app.domain.entities.workload import ProviderWorkload
from app.domain.policies.distance_scoring import DEFAULT_BANDS, DistanceBands
from app.domain.policies.eligibility import (
    active_priority_config,
    capacity_headroom,
    has_valid_certification,
)
from app.domain.value_objects.enums import RiskLevel, ServicePriorityType

MAX_FACTOR_SCORE = 20.0
BUNDLING_BONUS = 5.0

DEFAULT_WEIGHTS: dict[str, float] = {
    "distance": 0.30,
    "zone_priority": 0.15,
    "capacity_headroom": 0.15,
    "specialty_priority": 0.20,
    "certification_validity": 0.10,
    "risk_penalty": 0.10,
}

DEFAULT_RISK_PENALTIES: dict[RiskLevel, float] = {
    RiskLevel.NONE: 0.0,
    RiskLevel.LOW: 2.0,
    RiskLevel.MEDIUM: 5.0,
    RiskLevel.HIGH: 10.0,
    RiskLevel.CRITICAL: 20.0,
}


@dataclass(frozen=True)
class ScoringContext:
    """Read-only inputs shared by every scorer during one funnel run."""

    now: datetime
    weights: dict[str, float] = field(default_factory=lambda: dict(DEFAULT_WEIGHTS))
    distances_km: dict[str, float | None] = field(default_factory=dict)
    workloads: dict[str, ProviderWorkload] = field(default_factory=dict)
    bands: DistanceBands = DEFAULT_BANDS
    risk_penalties: dict[RiskLevel, float] = field(
        default_factory=lambda: dict(DEFAULT_RISK_PENALTIES)
    )

    def weight_for(self, name: str) -> float:
        return float(self.weights.get(name, 0.0))

    def workload_for(self, provider_id: str) -> ProviderWorkload:
        return self.workloads.get(provider_id) or ProviderWorkload.empty(provider_id)


class FactorScorer(Protocol):
    name: str

    def score(
        self, candidate: Candidate, order: ServiceOrder, context: ScoringContext
    ) -> FactorResult:
        ...


def _result(name: str, score: float, context: ScoringContext, rationale: str) -> FactorResult:
    return FactorResult(
        factor_name=name,
        raw_score=round(score, 4),
        weight=context.weight_for(name),
        rationale=rationale,
    )


class DistanceScorer:
    name = "distance"

    def score(self, candidate, order, context):
        distance = context.distances_km.get(candidate.provider_id)
        if distance is None:
            return _result(
                self.name, 0.0, context,
                "Distance unknown: provider or order location is not geocoded",
            )
        points = context.bands.score_for(distance)
        return _result(
            self.name, points, context,
            f"{distance:.1f} km from the service location ({points:g} pts)",
        )


class ZonePriorityScorer:
    name = "zone_priority"

    def score(self, candidate, order, context):
        option = candidate.primary_option
        priority = max(option.effective_priority, 1)
        points = MAX_FACTOR_SCORE / priority
        return _result(
            self.name, points, context,
            f"Zone {option.zone.name} has assignment priority {priority}",
        )


class CapacityHeadroomScorer:
    name = "capacity_headroom"

    def score(self, candidate, order, context):
        option = candidate.primary_option
        headroom = capacity_headroom(
            candidate.provider, option,
            context.workload_for(candidate.provider_id), order, context.now,
        )
        if headroom.remaining is None or not headroom.limit:
            return _result(
                self.name, MAX_FACTOR_SCORE, context, "No capacity limit configured"
            )
        ratio = max(headroom.remaining, 0) / headroom.limit
        return _result(
            self.name, MAX_FACTOR_SCORE * ratio, context,
            f"{headroom.remaining} of {headroom.limit} slots left ({headroom.label})",
        )


class SpecialtyPriorityScorer:
    name = "specialty_priority"

    def score(self, candidate, order, context):
        config = active_priority_config(candidate.provider, order.specialty_id, context.now)
        if config is None:
            return _result(
                self.name, 0.0, context, f"No active priority for {order.specialty_id}"
            )
        points = MAX_FACTOR_SCORE if config.priority_type == ServicePriorityType.P1 else 10.0
        rationale = f"{config.priority_type.value} provider for {order.specialty_id}"

        offered = frozenset({config.specialty_id}) | config.bundled_with_specialty_ids
        matched = offered & order.requested_specialties()
        if len(matched) >= 2:
            points += BUNDLING_BONUS
            rationale += f", bundling bonus for {len(matched)} matching specialties"
        return _result(self.name, points, context, rationale)


class CertificationValidityScorer:
    name = "certification_validity"

    def score(self, candidate, order, context):
        if not order.required_certification:
            return _result(
                self.name, MAX_FACTOR_SCORE, context, "No certification required"
            )
        if has_valid_certification(candidate.primary_option, order, context.now):
            return _result(
                self.name, MAX_FACTOR_SCORE, context,
                f"Valid {order.required_certification} certification",
            )
        return _result(
            self.name, 0.0, context,
            f"Missing or expired {order.required_certification} certification",
        )


class RiskPenaltyScorer:
    name = "risk_penalty"

    def score(self, candidate, order, context):
        level = candidate.provider.risk_level
        penalty = context.risk_penalties.get(level, 0.0)
        if not penalty:
            return _result(self.name, 0.0, context, f"Risk level {level.value}: no penalty")
        return _result(
            self.name, -penalty, context, f"Risk level {level.value}: -{penalty:g} pts"
        )


DEFAULT_SCORERS: tuple[FactorScorer, ...] = (
    DistanceScorer(),
    ZonePriorityScorer(),
    CapacityHeadroomScorer(),
    SpecialtyPriorityScorer(),
    CertificationValidityScorer(),
    RiskPenaltyScorer(),
)


def select_primary_option(
    candidate: Candidate, order: ServiceOrder, context: ScoringContext
) -> TeamOption:
    """Pick the option to score: best zone priority, then most headroom, then ids."""
    workload = context.workload_for(candidate.provider_id)

    def key(option: TeamOption):
        headroom = capacity_headroom(candidate.provider, option, workload, order, context.now)
        remaining = headroom.remaining if headroom.remaining is not None else float("inf")
        return (option.effective_priority, -remaining, option.work_team.id, option.zone.id)

    return min(candidate.options, key=key)
