"""Tests for DistanceResolver — API-first with isolated Haversine fallback."""

import pytest

from app.application.services.distance_resolver import DistanceResolver
from app.domain.errors import InvalidCoordinateError
from app.domain.value_objects.coordinates import Coordinates
from app.domain.value_objects.enums import DistanceMethod
from tests.fakes import FakeMatrix

MADRID = Coordinates(latitude=40.4168, longitude=-3.7038)
BARCELONA = Coordinates(latitude=41.3851, longitude=2.1734)
VALENCIA = Coordinates(latitude=39.4699, longitude=-0.3763)


@pytest.mark.asyncio
async def test_haversine_by_default():
    result = await DistanceResolver().resolve(MADRID, BARCELONA)
    assert result.method == DistanceMethod.HAVERSINE
    assert result.distance_km == pytest.approx(504, abs=10)
    assert result.fallback_reason is None


@pytest.mark.asyncio
async def test_matrix_used_when_requested():
    matrix = FakeMatrix(distances={(41.3851, 2.1734): 621.456})
    resolver = DistanceResolver(matrix=matrix, default_method=DistanceMethod.GOOGLE_DISTANCE_MATRIX)
    result = await resolver.resolve(MADRID, BARCELONA)
    assert result.method == DistanceMethod.GOOGLE_DISTANCE_MATRIX
    assert result.distance_km == 621.46


@pytest.mark.asyncio
async def test_matrix_failure_falls_back_to_haversine():
    matrix = FakeMatrix(fail_for=[(41.3851, 2.1734)])
    resolver = DistanceResolver(matrix=matrix)
    result = await resolver.resolve(MADRID, BARCELONA, method=DistanceMethod.GOOGLE_DISTANCE_MATRIX)
    assert result.method == DistanceMethod.HAVERSINE
    assert result.distance_km == pytest.approx(504, abs=10)
    assert "OVER_QUERY_LIMIT" in result.fallback_reason


@pytest.mark.asyncio
async def test_matrix_timeout_falls_back():
    resolver = DistanceResolver(matrix=FakeMatrix(delay_s=0.5), timeout_ms=20)
    result = await resolver.resolve(MADRID, BARCELONA, method=DistanceMethod.GOOGLE_DISTANCE_MATRIX)
    assert result.method == DistanceMethod.HAVERSINE
    assert "timed out" in result.fallback_reason


@pytest.mark.asyncio
async def test_unconfigured_matrix_falls_back():
    resolver = DistanceResolver(default_method=DistanceMethod.GOOGLE_DISTANCE_MATRIX)
    result = await resolver.resolve(MADRID, BARCELONA)
    assert result.method == DistanceMethod.HAVERSINE
    assert result.fallback_reason == "Distance matrix API not configured"


@pytest.mark.asyncio
async def test_invalid_coordinates_are_not_swallowed():
    with pytest.raises(InvalidCoordinateError):
        await DistanceResolver().resolve(Coordinates(latitude=95, longitude=0), MADRID)


@pytest.mark.asyncio
async def test_resolve_many_isolates_failures():
    matrix = FakeMatrix(distances={(39.4699, -0.3763): 355.0}, fail_for=[(41.3851, 2.1734)])
    resolver = DistanceResolver(
        matrix=matrix, default_method=DistanceMethod.GOOGLE_DISTANCE_MATRIX, max_concurrency=2
    )
    results = await resolver.resolve_many(
        MADRID, {"bcn": BARCELONA, "vlc": VALENCIA, "nowhere": None}
    )

    assert results["vlc"].method == DistanceMethod.GOOGLE_DISTANCE_MATRIX
    assert results["vlc"].distance_km == 355.0
    assert results["bcn"].method == DistanceMethod.HAVERSINE
    assert results["bcn"].fallback_reason is not None
    assert results["nowhere"] is None
    assert matrix.calls == 2


@pytest.mark.asyncio
async def test_resolve_many_skips_out_of_range_target():
    broken = Coordinates(latitude=95, longitude=0)
    results = await DistanceResolver().resolve_many(MADRID, {"bcn": BARCELONA, "broken": broken})

    assert results["broken"] is None
    assert results["bcn"].distance_km == pytest.approx(504, abs=10)


@pytest.mark.asyncio
async def test_resolve_many_rejects_out_of_range_origin():
    with pytest.raises(InvalidCoordinateError):
        await DistanceResolver().resolve_many(Coordinates(latitude=0, longitude=200), {"bcn": BARCELONA})


@pytest.mark.asyncio
async def test_resolve_many_without_origin():
    results = await DistanceResolver().resolve_many(None, {"bcn": BARCELONA})
    assert results == {"bcn": None}


def test_score_for_distance_uses_bands():
    resolver = DistanceResolver()
    assert resolver.score_for_distance(10) == 20
    assert resolver.score_for_distance(10.01) == 15
