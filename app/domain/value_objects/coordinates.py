"""Coordinates value object — immutable (lat, lng) pair."""

from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import Decimal

from app.domain.errors import InvalidCoordinateError

EARTH_RADIUS_KM = 6371.0


@dataclass(frozen=True)
class Coordinates:
    latitude: float
    longitude: float

    def validate(self) -> "Coordinates":
        """Raise InvalidCoordinateError if the pair is out of range."""
        if not -90 <= self.latitude <= 90:
            raise InvalidCoordinateError("Latitude must be between -90 and 90 degrees")
        if not -180 <= self.longitude <= 180:
            raise InvalidCoordinateError("Longitude must be between -180 and 180 degrees")
        return self

    def haversine_km(self, other: "Coordinates") -> float:
        """Calculate distance in km between two points using the Haversine formula."""
        lat1 = math.radians(self.latitude)
        lat2 = math.radians(other.latitude)
        dlat = math.radians(other.latitude - self.latitude)
        dlon = math.radians(other.longitude - self.longitude)

        a = (
            math.sin(dlat / 2) ** 2
            + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
        )
        c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

        return EARTH_RADIUS_KM * c


def decimal_to_coordinates(
    latitude: Decimal | float | str | None,
    longitude: Decimal | float | str | None,
) -> Coordinates | None:
    """Build Coordinates from nullable decimal columns.

    Returns None when either component is missing; such providers are simply
    left out of distance scoring.
    """
    if latitude is None or longitude is None:
        return None
    return Coordinates(latitude=float(latitude), longitude=float(longitude))
