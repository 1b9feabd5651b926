"""DistanceScoringPolicy — map a distance to a fixed score band."""

from __future__ import annotations

from dataclasses import dataclass

from app.domain.errors import ConfigurationError


@dataclass(frozen=True)
class DistanceBands:
    """Step function: each threshold is the inclusive upper edge of its band.

    ``scores`` has one more element than ``thresholds_km``: the last score
    applies beyond the final threshold.
    """

    thresholds_km: tuple[float, ...] = (10.0, 30.0, 50.0)
    scores: tuple[float, ...] = (20.0, 15.0, 10.0, 5.0)

    def __post_init__(self) -> None:
        if len(self.scores) != len(self.thresholds_km) + 1:
            raise ConfigurationError(
                "Distance bands need exactly one more score than thresholds"
            )
        if list(self.thresholds_km) != sorted(self.thresholds_km):
            raise ConfigurationError("Distance band thresholds must be ascending")

    @property
    def max_score(self) -> float:
        return max(self.scores)

    def score_for(self, distance_km: float) -> float:
        for upper, score in zip(self.thresholds_km, self.scores):
            if distance_km <= upper:
                return score
        return self.scores[-1]


DEFAULT_BANDS = DistanceBands()


def score_for_distance(distance_km: float, bands: DistanceBands = DEFAULT_BANDS) -> float:
    """Pure function: 0-10 km → 20, 10-30 → 15, 30-50 → 10, above 50 → 5."""
    return bands.score_for(distance_km)
