"""Tests for the individual factor scorers and primary option selection."""

import pytest

from app.domain.entities.provider import InterventionZone, WorkTeamZoneAssignment
from app.domain.entities.workload import ProviderWorkload
from app.domain.policies.eligibility import build_candidate
from app.domain.policies.factor_scorers import (
    BUNDLING_BONUS,
    MAX_FACTOR_SCORE,
    CapacityHeadroomScorer,
    CertificationValidityScorer,
    DistanceScorer,
    RiskPenaltyScorer,
    ScoringContext,
    SpecialtyPriorityScorer,
    ZonePriorityScorer,
    select_primary_option,
)
from app.domain.value_objects.enums import RiskLevel, ServicePriorityType
from tests.builders import NOW, build_cert, build_order, build_provider


@pytest.fixture
def context():
    return ScoringContext(now=NOW)


def test_distance_scorer_uses_bands():
    ctx = ScoringContext(now=NOW, distances_km={"p1": 12.5})
    result = DistanceScorer().score(build_candidate(build_provider()), build_order(), ctx)
    assert result.factor_name == "distance"
    assert result.raw_score == 15
    assert "12.5 km" in result.rationale


def test_distance_scorer_unknown_distance_scores_zero(context):
    result = DistanceScorer().score(build_candidate(build_provider()), build_order(), context)
    assert result.raw_score == 0
    assert "unknown" in result.rationale


def test_zone_priority_scorer_inverse_of_priority(context):
    candidate = build_candidate(build_provider(zone_priority=2))
    result = ZonePriorityScorer().score(candidate, build_order(), context)
    assert result.raw_score == MAX_FACTOR_SCORE / 2


def test_zone_priority_override_wins(context):
    provider = build_provider(
        zone_priority=4,
        zone_assignments=[WorkTeamZoneAssignment(zone_id="p1-zone", assignment_priority_override=1)],
    )
    result = ZonePriorityScorer().score(build_candidate(provider), build_order(), context)
    assert result.raw_score == MAX_FACTOR_SCORE


def test_capacity_headroom_unlimited(context):
    result = CapacityHeadroomScorer().score(build_candidate(build_provider()), build_order(), context)
    assert result.raw_score == MAX_FACTOR_SCORE


def test_capacity_headroom_ratio():
    provider = build_provider(max_daily_jobs=4)
    ctx = ScoringContext(now=NOW, workloads={"p1": ProviderWorkload(provider_id="p1", jobs_today=3)})
    result = CapacityHeadroomScorer().score(build_candidate(provider), build_order(), ctx)
    assert result.raw_score == pytest.approx(5.0)
    assert "1 of 4" in result.rationale


def test_specialty_priority_p1_and_p2(context):
    p1 = build_candidate(build_provider(priority=ServicePriorityType.P1))
    p2 = build_candidate(build_provider(priority=ServicePriorityType.P2))
    assert SpecialtyPriorityScorer().score(p1, build_order(), context).raw_score == 20
    assert SpecialtyPriorityScorer().score(p2, build_order(), context).raw_score == 10


def test_specialty_bundling_bonus(context):
    provider = build_provider(bundled=frozenset({"LIGHTING"}))
    order = build_order(related=frozenset({"LIGHTING"}))
    result = SpecialtyPriorityScorer().score(build_candidate(provider), order, context)
    assert result.raw_score == 20 + BUNDLING_BONUS
    assert "bundling" in result.rationale


def test_specialty_no_bonus_without_related_request(context):
    provider = build_provider(bundled=frozenset({"LIGHTING"}))
    result = SpecialtyPriorityScorer().score(build_candidate(provider), build_order(), context)
    assert result.raw_score == 20


def test_certification_validity(context):
    order = build_order(certification="ELEC-HV")
    valid = build_candidate(build_provider(certifications=[build_cert()]))
    missing = build_candidate(build_provider())
    scorer = CertificationValidityScorer()
    assert scorer.score(valid, order, context).raw_score == MAX_FACTOR_SCORE
    assert scorer.score(missing, order, context).raw_score == 0
    assert scorer.score(missing, build_order(), context).raw_score == MAX_FACTOR_SCORE


@pytest.mark.parametrize(
    "level, expected",
    [(RiskLevel.NONE, 0), (RiskLevel.LOW, -2), (RiskLevel.HIGH, -10), (RiskLevel.CRITICAL, -20)],
)
def test_risk_penalty(context, level, expected):
    candidate = build_candidate(build_provider(risk_level=level))
    assert RiskPenaltyScorer().score(candidate, build_order(), context).raw_score == expected


def test_scorer_weight_comes_from_context():
    ctx = ScoringContext(now=NOW, weights={"risk_penalty": 0.5})
    result = RiskPenaltyScorer().score(build_candidate(build_provider()), build_order(), ctx)
    assert result.weight == 0.5


def test_primary_option_prefers_best_zone_priority(context):
    provider = build_provider(zone_priority=3)
    provider.zones.append(
        InterventionZone(id="a-zone", name="Primary", postal_codes=frozenset({"28001"}))
    )
    option = select_primary_option(build_candidate(provider), build_order(), context)
    assert option.zone.id == "a-zone"


def test_primary_option_prefers_more_headroom():
    provider = build_provider(team_max_daily_jobs=5)
    provider.zones.append(
        InterventionZone(id="a-zone", name="Busy", postal_codes=frozenset({"28001"}), max_daily_jobs_in_zone=2)
    )
    ctx = ScoringContext(
        now=NOW,
        workloads={"p1": ProviderWorkload(provider_id="p1", jobs_today_by_zone={"a-zone": 1})},
    )
    option = select_primary_option(build_candidate(provider), build_order(), ctx)
    assert option.zone.id == "p1-zone"
