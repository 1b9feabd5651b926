"""Tests for CandidateFilterPipeline — stage order, audit log and ranking."""

import pytest

from app.application.services.distance_resolver import DistanceResolver
from app.application.use_cases.candidate_funnel import (
    ELIGIBILITY_STAGES,
    CandidateFilterPipeline,
)
from app.domain.entities.assignment_log import AssignmentLogEntry
from app.domain.entities.workload import ProviderWorkload
from app.domain.errors import ConfigurationError
from app.domain.value_objects.coordinates import Coordinates
from app.domain.value_objects.enums import (
    NO_ELIGIBLE_PROVIDERS,
    DistanceMethod,
    ExclusionReason,
    FunnelStage,
    RiskLevel,
)
from tests.builders import NOW, TOLEDO, build_cert, build_order, build_provider
from tests.fakes import FakeMatrix


@pytest.fixture
def pipeline():
    return CandidateFilterPipeline(distance_resolver=DistanceResolver())


def _three_candidates():
    return [
        build_provider("p-nozone", postal_codes=("08001",), certifications=[build_cert()]),
        build_provider("p-nocert"),
        build_provider("p-ok", certifications=[build_cert()]),
    ]


# ─── Full scenario ──────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_one_of_three_candidates_survives(pipeline):
    order = build_order(postal_code="28001", specialty_id="ELECTRICAL", certification="ELEC-HV")
    result = await pipeline.run(order, _three_candidates(), now=NOW)

    assert [s.provider_id for s in result.ranked] == ["p-ok"]
    assert result.terminal is None

    entries = result.execution.entries
    assert [e.stage for e in entries] == list(FunnelStage)

    geo = result.execution.entry_for(FunnelStage.GEOGRAPHIC)
    assert (geo.candidates_in, geo.candidates_out) == (3, 2)
    assert [(e.provider_id, e.reason) for e in geo.exclusions] == [
        ("p-nozone", ExclusionReason.ZONE_MISMATCH)
    ]

    cert = result.execution.entry_for(FunnelStage.CERTIFICATION)
    assert [(e.provider_id, e.reason) for e in cert.exclusions] == [
        ("p-nocert", ExclusionReason.CERTIFICATION_INVALID)
    ]

    scoring = result.execution.entry_for(FunnelStage.SCORING)
    (breakdown,) = scoring.scores
    assert breakdown.provider_id == "p-ok"
    assert {f.factor_name for f in breakdown.factors} == {
        "distance", "zone_priority", "capacity_headroom",
        "specialty_priority", "certification_validity", "risk_penalty",
    }
    assert breakdown.total_score == pytest.approx(
        sum(f.raw_score * f.weight for f in breakdown.factors), abs=1e-6
    )


@pytest.mark.asyncio
async def test_exclusion_is_monotonic(pipeline):
    order = build_order(certification="ELEC-HV")
    providers = _three_candidates() + [
        build_provider("p-busy", certifications=[build_cert()], max_daily_jobs=1),
        build_provider("p-plumber", specialties=("PLUMBING",), certifications=[build_cert()]),
    ]
    workloads = {"p-busy": ProviderWorkload(provider_id="p-busy", jobs_today=1)}
    result = await pipeline.run(order, providers, workloads=workloads, now=NOW)

    entries = result.execution.entries
    for k, entry in enumerate(entries):
        for exclusion in entry.exclusions:
            for later in entries[k + 1:]:
                assert exclusion.provider_id not in later.survivors
        if k:
            assert entry.candidates_in == entries[k - 1].candidates_out

    reasons = {
        e.provider_id: e.reason for entry in entries for e in entry.exclusions
    }
    assert reasons == {
        "p-nozone": ExclusionReason.ZONE_MISMATCH,
        "p-plumber": ExclusionReason.SKILL_MISMATCH,
        "p-nocert": ExclusionReason.CERTIFICATION_INVALID,
        "p-busy": ExclusionReason.CAPACITY_EXHAUSTED,
    }


@pytest.mark.asyncio
async def test_stage_one_short_circuit(pipeline):
    providers = [build_provider("a", postal_codes=("08001",)), build_provider("b", postal_codes=("41001",))]
    result = await pipeline.run(build_order(postal_code="28001"), providers, now=NOW)

    assert result.ranked == ()
    assert result.terminal == NO_ELIGIBLE_PROVIDERS
    assert len(result.execution.entries) == 1
    assert result.execution.entries[0].stage == FunnelStage.GEOGRAPHIC
    assert result.execution.entries[0].candidates_out == 0


@pytest.mark.asyncio
async def test_empty_pool_is_terminal(pipeline):
    result = await pipeline.run(build_order(), [], now=NOW)
    assert result.terminal == NO_ELIGIBLE_PROVIDERS
    assert len(result.execution.entries) == 1


@pytest.mark.asyncio
async def test_previously_declined_providers_are_excluded_first(pipeline):
    providers = [build_provider("a"), build_provider("b")]
    result = await pipeline.run(build_order(), providers, now=NOW, excluded_provider_ids={"a"})
    geo = result.execution.entry_for(FunnelStage.GEOGRAPHIC)
    assert [(e.provider_id, e.reason) for e in geo.exclusions] == [
        ("a", ExclusionReason.PREVIOUSLY_DECLINED)
    ]
    assert [s.provider_id for s in result.ranked] == ["b"]


# ─── Ranking ────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_closer_lower_risk_provider_ranks_first(pipeline):
    providers = [
        build_provider("far", location=TOLEDO),
        build_provider("risky", risk_level=RiskLevel.HIGH),
        build_provider("best"),
    ]
    result = await pipeline.run(build_order(), providers, now=NOW)
    assert [s.provider_id for s in result.ranked] == ["best", "risky", "far"]
    assert result.ranked[0].distance_km < 10
    assert result.ranked[-1].distance_km > 50


@pytest.mark.asyncio
async def test_ranking_is_deterministic(pipeline):
    providers = [build_provider(pid) for pid in ("c", "a", "b")]
    first = await pipeline.run(build_order(), providers, now=NOW)
    second = await pipeline.run(build_order(), list(reversed(providers)), now=NOW)
    assert [s.provider_id for s in first.ranked] == ["a", "b", "c"]
    assert [s.provider_id for s in second.ranked] == ["a", "b", "c"]


@pytest.mark.asyncio
async def test_missing_locations_score_zero_distance(pipeline):
    result = await pipeline.run(build_order(location=None), [build_provider("a")], now=NOW)
    (score,) = result.ranked
    assert score.distance_km is None
    distance = next(f for f in score.factors if f.factor_name == "distance")
    assert distance.raw_score == 0


@pytest.mark.asyncio
async def test_fallback_is_noted_in_scoring_entry():
    matrix = FakeMatrix(fail_for=[(40.45, -3.69)])
    pipeline = CandidateFilterPipeline(
        distance_resolver=DistanceResolver(matrix=matrix),
        distance_method=DistanceMethod.GOOGLE_DISTANCE_MATRIX,
    )
    result = await pipeline.run(build_order(), [build_provider("a")], now=NOW)
    scoring = result.execution.entry_for(FunnelStage.SCORING)
    assert any("Haversine" in note for note in scoring.notes)
    assert result.ranked[0].distance_km < 10


@pytest.mark.asyncio
async def test_out_of_range_provider_location_does_not_sink_the_run(pipeline):
    broken = build_provider("broken", location=Coordinates(latitude=95, longitude=-3.7))
    result = await pipeline.run(build_order(), [build_provider("a"), broken], now=NOW)

    assert [s.provider_id for s in result.ranked] == ["a", "broken"]
    assert result.ranked[1].distance_km is None
    scoring = result.execution.entry_for(FunnelStage.SCORING)
    assert any(note.startswith("Provider broken:") for note in scoring.notes)


@pytest.mark.asyncio
async def test_eligibility_only_run_skips_scoring(pipeline):
    result = await pipeline.run(build_order(), [build_provider("a")], now=NOW, stages=ELIGIBILITY_STAGES)
    assert len(result.execution.entries) == 5
    assert result.ranked == ()
    assert result.has_candidates


def test_zero_weights_fail_fast():
    with pytest.raises(ConfigurationError):
        CandidateFilterPipeline(
            distance_resolver=DistanceResolver(),
            weights={name: 0.0 for name in (
                "distance", "zone_priority", "capacity_headroom",
                "specialty_priority", "certification_validity", "risk_penalty",
            )},
        )


@pytest.mark.asyncio
async def test_log_entries_serialise_round_trip(pipeline):
    result = await pipeline.run(build_order(certification="ELEC-HV"), _three_candidates(), now=NOW)
    for entry in result.execution.entries:
        assert AssignmentLogEntry.from_dict(entry.to_dict()) == entry
