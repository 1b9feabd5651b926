"""Tests for the Google Distance Matrix adapter against a mocked transport."""

import httpx
import pytest

from app.adapters.distance.google_distance_matrix_adapter import (
    DistanceMatrixError,
    GoogleDistanceMatrixAdapter,
)
from app.config import settings
from app.domain.value_objects.coordinates import Coordinates

ORIGIN = Coordinates(latitude=40.4168, longitude=-3.7038)
DESTINATION = Coordinates(latitude=40.45, longitude=-3.69)


def _payload(element: dict, status: str = "OK") -> dict:
    return {"status": status, "rows": [{"elements": [element]}]}


def _adapter(handler, api_key="test-key"):
    return GoogleDistanceMatrixAdapter(
        api_key=api_key, timeout=1.0, transport=httpx.MockTransport(handler)
    )


@pytest.mark.asyncio
async def test_returns_kilometres():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.update(request.url.params)
        return httpx.Response(
            200, json=_payload({"status": "OK", "distance": {"value": 4850, "text": "4.9 km"}})
        )

    km = await _adapter(handler).distance_km(ORIGIN, DESTINATION)

    assert km == pytest.approx(4.85)
    assert seen["origins"] == "40.4168,-3.7038"
    assert seen["destinations"] == "40.45,-3.69"
    assert seen["units"] == "metric"
    assert seen["key"] == "test-key"


@pytest.mark.asyncio
async def test_request_denied_raises():
    def handler(request):
        return httpx.Response(200, json={"status": "REQUEST_DENIED", "rows": []})

    with pytest.raises(DistanceMatrixError, match="REQUEST_DENIED"):
        await _adapter(handler).distance_km(ORIGIN, DESTINATION)


@pytest.mark.asyncio
async def test_element_not_found_raises():
    def handler(request):
        return httpx.Response(200, json=_payload({"status": "NOT_FOUND"}))

    with pytest.raises(DistanceMatrixError, match="NOT_FOUND"):
        await _adapter(handler).distance_km(ORIGIN, DESTINATION)


@pytest.mark.asyncio
async def test_malformed_response_raises():
    def handler(request):
        return httpx.Response(200, json={"status": "OK", "rows": []})

    with pytest.raises(DistanceMatrixError, match="Malformed"):
        await _adapter(handler).distance_km(ORIGIN, DESTINATION)


@pytest.mark.asyncio
async def test_http_error_propagates():
    def handler(request):
        return httpx.Response(503)

    with pytest.raises(httpx.HTTPStatusError):
        await _adapter(handler).distance_km(ORIGIN, DESTINATION)


@pytest.mark.asyncio
async def test_missing_api_key(monkeypatch):
    monkeypatch.setattr(settings, "google_maps_api_key", "")
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200)

    with pytest.raises(DistanceMatrixError, match="API key"):
        await _adapter(handler, api_key=None).distance_km(ORIGIN, DESTINATION)
    assert calls == []
