"""Request / response schemas for the assignment API (camelCase on the wire)."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.application.use_cases.decide_assignment import (
    AssignmentStatistics,
    DeclineOutcome,
    FunnelTransparency,
)
from app.domain.entities.assignment import Assignment
from app.domain.entities.assignment_log import AssignmentLogEntry, FunnelExecution
from app.domain.entities.candidate import CandidateScore, FactorResult
from app.domain.value_objects.enums import AssignmentMode, AssignmentStatus


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── Requests ────────────────────────────────────────────────────────


class DirectAssignmentRequest(CamelModel):
    service_order_id: str
    provider_id: str


class OfferAssignmentRequest(CamelModel):
    service_order_id: str


class BroadcastAssignmentRequest(CamelModel):
    service_order_id: str
    top_n: int | None = Field(default=None, ge=1)


class DecisionRequest(CamelModel):
    reason: str | None = None


# ── Responses ───────────────────────────────────────────────────────


class FactorOut(CamelModel):
    name: str
    score: float
    weight: float
    rationale: str

    @classmethod
    def of(cls, factor: FactorResult) -> "FactorOut":
        return cls(
            name=factor.factor_name,
            score=factor.raw_score,
            weight=factor.weight,
            rationale=factor.rationale,
        )


class CandidateProviderOut(CamelModel):
    id: str
    name: str
    email: str | None = None
    phone: str | None = None
    status: str


class CandidateScoringOut(CamelModel):
    total_score: float
    distance_km: float | None = None
    work_team_id: str
    zone_id: str
    factors: list[FactorOut]


class CandidateOut(CamelModel):
    rank: int
    provider: CandidateProviderOut
    scoring: CandidateScoringOut

    @classmethod
    def of(cls, rank: int, score: CandidateScore) -> "CandidateOut":
        p = score.provider
        return cls(
            rank=rank,
            provider=CandidateProviderOut(
                id=p.id, name=p.name, email=p.email, phone=p.phone, status=p.status.value
            ),
            scoring=CandidateScoringOut(
                total_score=score.total_score,
                distance_km=score.distance_km,
                work_team_id=score.work_team.id,
                zone_id=score.zone.id,
                factors=[FactorOut.of(f) for f in score.factors],
            ),
        )


class AssignmentOut(CamelModel):
    id: str
    service_order_id: str
    provider_id: str
    work_team_id: str | None = None
    zone_id: str | None = None
    mode: AssignmentMode
    status: AssignmentStatus
    rank: int | None = None
    total_score: float | None = None
    funnel_execution_id: str
    created_at: datetime | None = None
    offered_at: datetime | None = None
    expires_at: datetime | None = None
    decided_at: datetime | None = None
    decision_reason: str | None = None

    @classmethod
    def of(cls, a: Assignment) -> "AssignmentOut":
        return cls(
            id=a.id,
            service_order_id=a.service_order_id,
            provider_id=a.provider_id,
            work_team_id=a.work_team_id,
            zone_id=a.zone_id,
            mode=a.mode,
            status=a.status,
            rank=a.rank,
            total_score=a.total_score,
            funnel_execution_id=a.funnel_execution_id,
            created_at=a.created_at,
            offered_at=a.offered_at,
            expires_at=a.expires_at,
            decided_at=a.decided_at,
            decision_reason=a.decision_reason,
        )


class AssignmentListOut(CamelModel):
    total: int
    page: int
    limit: int
    items: list[AssignmentOut]


class DeclineOut(CamelModel):
    assignment: AssignmentOut
    next_assignment: AssignmentOut | None = None
    terminal: str | None = None

    @classmethod
    def of(cls, outcome: DeclineOutcome) -> "DeclineOut":
        return cls(
            assignment=AssignmentOut.of(outcome.assignment),
            next_assignment=(
                AssignmentOut.of(outcome.next_assignment) if outcome.next_assignment else None
            ),
            terminal=outcome.terminal,
        )


class StatisticsOut(CamelModel):
    total: int
    by_status: dict[str, int]
    by_mode: dict[str, int]
    acceptance_rate: float

    @classmethod
    def of(cls, stats: AssignmentStatistics) -> "StatisticsOut":
        return cls(
            total=stats.total,
            by_status=stats.by_status,
            by_mode=stats.by_mode,
            acceptance_rate=stats.acceptance_rate,
        )


class ExclusionOut(CamelModel):
    provider_id: str
    reason: str
    detail: str | None = None


class ScoreBreakdownOut(CamelModel):
    provider_id: str
    total_score: float
    distance_km: float | None = None
    factors: list[FactorOut]


class FunnelLogEntryOut(CamelModel):
    stage: str
    timestamp: datetime
    candidates_in: int
    candidates_out: int
    survivors: list[str]
    exclusions: list[ExclusionOut]
    scores: list[ScoreBreakdownOut] = []
    notes: list[str] = []

    @classmethod
    def of(cls, entry: AssignmentLogEntry) -> "FunnelLogEntryOut":
        return cls(
            stage=entry.stage.value,
            timestamp=entry.timestamp,
            candidates_in=entry.candidates_in,
            candidates_out=entry.candidates_out,
            survivors=list(entry.survivors),
            exclusions=[
                ExclusionOut(provider_id=e.provider_id, reason=e.reason.value, detail=e.detail)
                for e in entry.exclusions
            ],
            scores=[
                ScoreBreakdownOut(
                    provider_id=s.provider_id,
                    total_score=s.total_score,
                    distance_km=s.distance_km,
                    factors=[FactorOut.of(f) for f in s.factors],
                )
                for s in entry.scores
            ],
            notes=list(entry.notes),
        )


class FunnelExecutionOut(CamelModel):
    id: str
    service_order_id: str
    started_at: datetime
    finished_at: datetime
    terminal: str | None = None
    entries: list[FunnelLogEntryOut]

    @classmethod
    def of(cls, execution: FunnelExecution) -> "FunnelExecutionOut":
        return cls(
            id=execution.id,
            service_order_id=execution.service_order_id,
            started_at=execution.started_at,
            finished_at=execution.finished_at,
            terminal=execution.terminal,
            entries=[FunnelLogEntryOut.of(e) for e in execution.entries],
        )


class FunnelOut(CamelModel):
    assignment_id: str
    funnel_data: dict
    terminal: str | None = None
    logs: list[FunnelLogEntryOut]

    @classmethod
    def of(cls, transparency: FunnelTransparency) -> "FunnelOut":
        return cls(
            assignment_id=transparency.assignment_id,
            funnel_data=transparency.funnel_data,
            terminal=transparency.terminal,
            logs=[FunnelLogEntryOut.of(e) for e in transparency.logs],
        )
