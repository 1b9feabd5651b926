"""Google Distance Matrix adapter — implements DistanceMatrixPort."""

from __future__ import annotations

import logging

import httpx

from app.application.ports.distance_matrix_port import DistanceMatrixPort
from app.config import settings
from app.domain.value_objects.coordinates import Coordinates

logger = logging.getLogger(__name__)

GOOGLE_DISTANCE_MATRIX_URL = "https://maps.googleapis.com/maps/api/distancematrix/json"


class DistanceMatrixError(RuntimeError):
    """Raised for any unusable Distance Matrix response."""


class GoogleDistanceMatrixAdapter(DistanceMatrixPort):
    """Road distance via the Google Distance Matrix API.

    Errors are raised, not swallowed: the DistanceResolver owns the fallback.
    """

    def __init__(
        self,
        api_key: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._api_key = api_key or settings.google_maps_api_key
        self._timeout = timeout or settings.distance_api_timeout_ms / 1000
        self._transport = transport

    async def distance_km(self, origin: Coordinates, destination: Coordinates) -> float:
        if not self._api_key:
            raise DistanceMatrixError("Google Maps API key is not set")

        async with httpx.AsyncClient(transport=self._transport) as client:
            response = await client.get(
                GOOGLE_DISTANCE_MATRIX_URL,
                params={
                    "origins": f"{origin.latitude},{origin.longitude}",
                    "destinations": f"{destination.latitude},{destination.longitude}",
                    "units": "metric",
                    "key": self._api_key,
                },
                timeout=self._timeout,
            )
            response.raise_for_status()
            data = response.json()

        if data.get("status") != "OK":
            raise DistanceMatrixError(f"Distance Matrix status {data.get('status')}")

        try:
            element = data["rows"][0]["elements"][0]
        except (KeyError, IndexError) as e:
            raise DistanceMatrixError("Malformed Distance Matrix response") from e

        if element.get("status") != "OK":
            raise DistanceMatrixError(f"Distance Matrix element status {element.get('status')}")

        km = element["distance"]["value"] / 1000
        logger.debug(
            "Distance Matrix (%f, %f) → (%f, %f): %.2f km",
            origin.latitude, origin.longitude, destination.latitude, destination.longitude, km,
        )
        return km
