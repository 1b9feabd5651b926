"""Port interface for an external road-distance service."""

from __future__ import annotations

from abc import ABC, abstractmethod

from app.domain.value_objects.coordinates import Coordinates


class DistanceMatrixPort(ABC):
    @abstractmethod
    async def distance_km(self, origin: Coordinates, destination: Coordinates) -> float:
        """Return the road distance in km.

        Raises on any failure (network, quota, non-OK status); callers fall back.
        """
        ...
