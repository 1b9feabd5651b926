"""Candidate and score types flowing through the funnel."""

from __future__ import annotations

from dataclasses import dataclass

from app.domain.entities.provider import InterventionZone, Provider, WorkTeam


@dataclass(frozen=True)
class TeamOption:
    """One way a provider could serve the order: a work team inside a covering zone."""

    work_team: WorkTeam
    zone: InterventionZone

    @property
    def effective_priority(self) -> int:
        za = self.work_team.zone_assignment_for(self.zone.id)
        if za is not None and za.assignment_priority_override is not None:
            return za.assignment_priority_override
        return self.zone.assignment_priority


@dataclass(frozen=True)
class Candidate:
    """A provider still under consideration, with its viable team options."""

    provider: Provider
    options: tuple[TeamOption, ...]

    @property
    def provider_id(self) -> str:
        return self.provider.id

    @property
    def primary_option(self) -> TeamOption:
        return self.options[0]

    def with_options(self, options: tuple[TeamOption, ...]) -> "Candidate":
        return Candidate(provider=self.provider, options=options)


@dataclass(frozen=True)
class FactorResult:
    factor_name: str
    raw_score: float
    weight: float
    rationale: str

    def to_dict(self) -> dict:
        return {
            "name": self.factor_name,
            "score": self.raw_score,
            "weight": self.weight,
            "rationale": self.rationale,
        }


@dataclass(frozen=True)
class CandidateScore:
    provider: Provider
    work_team: WorkTeam
    zone: InterventionZone
    distance_km: float | None
    factors: tuple[FactorResult, ...]
    total_score: float

    @property
    def provider_id(self) -> str:
        return self.provider.id

    def to_dict(self) -> dict:
        return {
            "providerId": self.provider.id,
            "providerName": self.provider.name,
            "workTeamId": self.work_team.id,
            "zoneId": self.zone.id,
            "distanceKm": self.distance_km,
            "totalScore": self.total_score,
            "factors": [f.to_dict() for f in self.factors],
        }
