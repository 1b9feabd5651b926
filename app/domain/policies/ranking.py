"""RankingAggregator — weighted sum of factor scores with deterministic ordering."""

from __future__ import annotations

import math
from dataclasses import replace
from datetime import datetime, timezone

from app.domain.entities.candidate import Candidate, CandidateScore, FactorResult
from app.domain.errors import ConfigurationError

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def normalize_weights(weights: dict[str, float]) -> dict[str, float]:
    """Scale weights so they sum to 1.0.

    Raises:
        ConfigurationError: if a weight is negative or non-finite, or if all
            weights are zero.
    """
    for name, weight in weights.items():
        if not math.isfinite(weight) or weight < 0:
            raise ConfigurationError(f"Factor weight for '{name}' must be a non-negative number")
    total = sum(weights.values())
    if total <= 0:
        raise ConfigurationError("Factor weights sum to zero; cannot normalise")
    return {name: weight / total for name, weight in weights.items()}


def _created_key(candidate: CandidateScore) -> datetime:
    created = candidate.provider.created_at
    if created is None:
        return _EPOCH
    if created.tzinfo is None:
        return created.replace(tzinfo=timezone.utc)
    return created


def _sort_key(candidate: CandidateScore):
    distance = candidate.distance_km if candidate.distance_km is not None else math.inf
    return (-candidate.total_score, distance, _created_key(candidate), candidate.provider.id)


class RankingAggregator:
    """Turn per-factor results into a strictly ordered, immutable ranking.

    Ordering: total score descending, then distance ascending (unknown last),
    then provider creation date (oldest first), then provider id.
    """

    def aggregate(
        self,
        candidates: list[Candidate],
        factor_results: dict[str, list[FactorResult]],
        distances_km: dict[str, float | None] | None = None,
    ) -> tuple[CandidateScore, ...]:
        distances_km = distances_km or {}
        scored: list[CandidateScore] = []
        for candidate in candidates:
            factors = factor_results.get(candidate.provider_id, [])
            normalized = normalize_weights({f.factor_name: f.weight for f in factors})
            weighted = tuple(replace(f, weight=normalized[f.factor_name]) for f in factors)
            total = sum(f.raw_score * f.weight for f in weighted)
            option = candidate.primary_option
            scored.append(
                CandidateScore(
                    provider=candidate.provider,
                    work_team=option.work_team,
                    zone=option.zone,
                    distance_km=distances_km.get(candidate.provider_id),
                    factors=weighted,
                    total_score=total,
                )
            )
        return tuple(sorted(scored, key=_sort_key))
