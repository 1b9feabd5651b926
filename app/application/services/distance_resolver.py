"""DistanceResolver — external distance API first, Haversine fallback."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Hashable

from app.application.ports.distance_matrix_port import DistanceMatrixPort
from app.domain.errors import InvalidCoordinateError
from app.domain.policies.distance_scoring import DEFAULT_BANDS, DistanceBands
from app.domain.value_objects.coordinates import Coordinates, decimal_to_coordinates
from app.domain.value_objects.enums import DistanceMethod

logger = logging.getLogger(__name__)

__all__ = ["DistanceResolver", "DistanceResult", "decimal_to_coordinates"]


@dataclass(frozen=True)
class DistanceResult:
    distance_km: float
    method: DistanceMethod
    calculated_at: datetime
    fallback_reason: str | None = None


class DistanceResolver:
    """Resolve distances between coordinates.

    When ``method`` is ``google_distance_matrix`` and a matrix client is
    configured, the external API is tried under a timeout. Every failure is
    swallowed and the result falls back to Haversine with ``fallback_reason``
    set, so a single bad lookup never fails the caller.
    """

    def __init__(
        self,
        matrix: DistanceMatrixPort | None = None,
        default_method: DistanceMethod = DistanceMethod.HAVERSINE,
        timeout_ms: int = 3000,
        max_concurrency: int = 8,
        bands: DistanceBands = DEFAULT_BANDS,
    ):
        self._matrix = matrix
        self._default_method = default_method
        self._timeout_ms = timeout_ms
        self._max_concurrency = max(1, max_concurrency)
        self._bands = bands

    @staticmethod
    def haversine_km(origin: Coordinates, destination: Coordinates) -> float:
        return round(origin.haversine_km(destination), 2)

    def score_for_distance(self, distance_km: float) -> float:
        return self._bands.score_for(distance_km)

    async def resolve(
        self,
        origin: Coordinates,
        destination: Coordinates,
        method: DistanceMethod | None = None,
        timeout_ms: int | None = None,
    ) -> DistanceResult:
        origin.validate()
        destination.validate()

        method = method or self._default_method
        fallback_reason = None

        if method == DistanceMethod.GOOGLE_DISTANCE_MATRIX:
            if self._matrix is None:
                fallback_reason = "Distance matrix API not configured"
            else:
                timeout_s = (timeout_ms or self._timeout_ms) / 1000
                try:
                    km = await asyncio.wait_for(
                        self._matrix.distance_km(origin, destination), timeout=timeout_s
                    )
                    return DistanceResult(
                        distance_km=round(km, 2),
                        method=DistanceMethod.GOOGLE_DISTANCE_MATRIX,
                        calculated_at=datetime.now(timezone.utc),
                    )
                except asyncio.TimeoutError:
                    fallback_reason = f"Distance matrix API timed out after {timeout_s:.1f}s"
                except Exception as e:
                    fallback_reason = f"Distance matrix API failed: {e}"
            logger.warning("Falling back to Haversine: %s", fallback_reason)

        return DistanceResult(
            distance_km=self.haversine_km(origin, destination),
            method=DistanceMethod.HAVERSINE,
            calculated_at=datetime.now(timezone.utc),
            fallback_reason=fallback_reason,
        )

    async def resolve_many(
        self,
        origin: Coordinates | None,
        targets: dict[Hashable, Coordinates | None],
        method: DistanceMethod | None = None,
        timeout_ms: int | None = None,
    ) -> dict[Hashable, DistanceResult | None]:
        """Resolve one distance per target with bounded concurrency.

        Targets without coordinates (or a missing origin) map to None. A target
        with out-of-range coordinates also maps to None so one bad record never
        fails the others; an out-of-range origin still raises.
        """
        if origin is not None:
            origin.validate()
        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def one(key: Hashable, target: Coordinates | None) -> DistanceResult | None:
            if origin is None or target is None:
                return None
            try:
                target.validate()
            except InvalidCoordinateError as e:
                logger.warning("Ignoring coordinates of %s: %s", key, e)
                return None
            async with semaphore:
                return await self.resolve(origin, target, method=method, timeout_ms=timeout_ms)

        keys = list(targets)
        results = await asyncio.gather(*(one(k, targets[k]) for k in keys))
        return dict(zip(keys, results))
