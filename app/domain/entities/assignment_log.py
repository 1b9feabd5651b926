"""Assignment log — the append-only audit trail of one funnel execution."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from app.domain.entities.candidate import CandidateScore, FactorResult
from app.domain.value_objects.enums import ExclusionReason, FunnelStage


@dataclass(frozen=True)
class Exclusion:
    provider_id: str
    reason: ExclusionReason
    detail: str | None = None


@dataclass(frozen=True)
class ScoreBreakdown:
    provider_id: str
    total_score: float
    distance_km: float | None
    factors: tuple[FactorResult, ...]

    @classmethod
    def of(cls, score: CandidateScore) -> "ScoreBreakdown":
        return cls(
            provider_id=score.provider_id,
            total_score=score.total_score,
            distance_km=score.distance_km,
            factors=score.factors,
        )


@dataclass(frozen=True)
class AssignmentLogEntry:
    stage: FunnelStage
    timestamp: datetime
    candidates_in: int
    candidates_out: int
    survivors: tuple[str, ...]
    exclusions: tuple[Exclusion, ...] = ()
    scores: tuple[ScoreBreakdown, ...] = ()
    notes: tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {
            "stage": self.stage.value,
            "timestamp": self.timestamp.isoformat(),
            "candidatesIn": self.candidates_in,
            "candidatesOut": self.candidates_out,
            "survivors": list(self.survivors),
            "exclusions": [
                {"providerId": e.provider_id, "reason": e.reason.value, "detail": e.detail}
                for e in self.exclusions
            ],
            "scores": [
                {
                    "providerId": s.provider_id,
                    "totalScore": s.total_score,
                    "distanceKm": s.distance_km,
                    "factors": [f.to_dict() for f in s.factors],
                }
                for s in self.scores
            ],
            "notes": list(self.notes),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AssignmentLogEntry":
        return cls(
            stage=FunnelStage(data["stage"]),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            candidates_in=data["candidatesIn"],
            candidates_out=data["candidatesOut"],
            survivors=tuple(data.get("survivors", ())),
            exclusions=tuple(
                Exclusion(
                    provider_id=e["providerId"],
                    reason=ExclusionReason(e["reason"]),
                    detail=e.get("detail"),
                )
                for e in data.get("exclusions", ())
            ),
            scores=tuple(
                ScoreBreakdown(
                    provider_id=s["providerId"],
                    total_score=s["totalScore"],
                    distance_km=s.get("distanceKm"),
                    factors=tuple(
                        FactorResult(
                            factor_name=f["name"],
                            raw_score=f["score"],
                            weight=f["weight"],
                            rationale=f["rationale"],
                        )
                        for f in s.get("factors", ())
                    ),
                )
                for s in data.get("scores", ())
            ),
            notes=tuple(data.get("notes", ())),
        )


@dataclass(frozen=True)
class FunnelExecution:
    """One run of the funnel for one service order. Never mutated once built."""

    id: str
    service_order_id: str
    started_at: datetime
    finished_at: datetime
    entries: tuple[AssignmentLogEntry, ...]
    terminal: str | None = None

    def entry_for(self, stage: FunnelStage) -> AssignmentLogEntry | None:
        return next((e for e in self.entries if e.stage == stage), None)

    def exclusion_for(self, provider_id: str) -> tuple[FunnelStage, Exclusion] | None:
        for entry in self.entries:
            for exclusion in entry.exclusions:
                if exclusion.provider_id == provider_id:
                    return entry.stage, exclusion
        return None
