"""Tests for the hard-filter eligibility checks (funnel stages 1-5)."""

from datetime import datetime, time, timedelta, timezone

from app.domain.entities.provider import (
    InterventionZone,
    PlannedAbsence,
    ServicePriorityConfig,
    Shift,
    WorkingSchedule,
    WorkTeam,
    WorkTeamZoneAssignment,
)
from app.domain.entities.workload import ProviderWorkload
from app.domain.policies.eligibility import (
    build_candidate,
    capacity_headroom,
    check_capacity,
    check_certification,
    check_geography,
    check_schedule,
    check_specialty,
    schedule_covers,
)
from app.domain.value_objects.coordinates import Coordinates
from app.domain.value_objects.enums import (
    CertificationStatus,
    ExclusionReason,
    ServicePriorityType,
)
from app.domain.value_objects.time_window import TimeWindow
from tests.builders import NOW, build_cert, build_order, build_provider


def _window(start_hour: int, end_hour: int, day: datetime = NOW) -> TimeWindow:
    base = day.replace(hour=0, minute=0)
    return TimeWindow(start=base + timedelta(hours=start_hour), end=base + timedelta(hours=end_hour))


# ─── Candidate expansion ────────────────────────────────────────────


def test_build_candidate_pairs_teams_with_served_zones():
    provider = build_provider()
    provider.zones.append(InterventionZone(id="z2", name="North", postal_codes=frozenset({"28100"})))
    provider.work_teams.append(
        WorkTeam(id="t2", name="North team", zone_assignments=[WorkTeamZoneAssignment(zone_id="z2")])
    )
    candidate = build_candidate(provider)
    pairs = {(o.work_team.id, o.zone.id) for o in candidate.options}
    # The first team has no explicit assignments and serves every zone
    assert pairs == {("p1-team", "p1-zone"), ("p1-team", "z2"), ("t2", "z2")}


# ─── Stage 1: geography ─────────────────────────────────────────────


def test_geography_exact_postal_code():
    verdict = check_geography(build_candidate(build_provider()), build_order(postal_code="28001"))
    assert verdict.passed


def test_geography_prefix_pattern():
    provider = build_provider(postal_codes=("28*",))
    assert check_geography(build_candidate(provider), build_order(postal_code="28045")).passed
    assert not check_geography(build_candidate(provider), build_order(postal_code="08001")).passed


def test_geography_mismatch_reason():
    verdict = check_geography(
        build_candidate(build_provider(postal_codes=("08001",))), build_order(postal_code="28001")
    )
    assert not verdict.passed
    assert verdict.reason == ExclusionReason.ZONE_MISMATCH


def test_geography_boundary_polygon_covers_location():
    provider = build_provider(postal_codes=())
    provider.zones[0].boundary = (
        Coordinates(40.3, -3.8),
        Coordinates(40.5, -3.8),
        Coordinates(40.5, -3.6),
        Coordinates(40.3, -3.6),
    )
    order = build_order(postal_code="99999", location=Coordinates(40.4168, -3.7038))
    assert check_geography(build_candidate(provider), order).passed

    outside = build_order(postal_code="99999", location=Coordinates(41.3851, 2.1734))
    assert not check_geography(build_candidate(provider), outside).passed


# ─── Stage 2: specialty ─────────────────────────────────────────────


def test_specialty_skill_mismatch():
    provider = build_provider(specialties=("PLUMBING",))
    verdict = check_specialty(build_candidate(provider), build_order(), NOW)
    assert verdict.reason == ExclusionReason.SKILL_MISMATCH


def test_specialty_opt_out():
    provider = build_provider(priority=ServicePriorityType.OPT_OUT)
    verdict = check_specialty(build_candidate(provider), build_order(), NOW)
    assert verdict.reason == ExclusionReason.SPECIALTY_OPTED_OUT


def test_specialty_missing_priority_config_is_opt_out():
    provider = build_provider(priority=None)
    verdict = check_specialty(build_candidate(provider), build_order(), NOW)
    assert verdict.reason == ExclusionReason.SPECIALTY_OPTED_OUT


def test_specialty_config_outside_validity_window():
    provider = build_provider()
    provider.service_priorities = [
        ServicePriorityConfig(
            specialty_id="ELECTRICAL",
            priority_type=ServicePriorityType.P1,
            valid_until=NOW - timedelta(days=1),
        )
    ]
    verdict = check_specialty(build_candidate(provider), build_order(), NOW)
    assert verdict.reason == ExclusionReason.SPECIALTY_OPTED_OUT


def test_specialty_p2_passes():
    provider = build_provider(priority=ServicePriorityType.P2)
    assert check_specialty(build_candidate(provider), build_order(), NOW).passed


# ─── Stage 3: certification ─────────────────────────────────────────


def test_certification_not_required_passes():
    assert check_certification(build_candidate(build_provider()), build_order(), NOW).passed


def test_certification_valid():
    provider = build_provider(certifications=[build_cert(expires_at=NOW + timedelta(days=30))])
    order = build_order(certification="ELEC-HV")
    assert check_certification(build_candidate(provider), order, NOW).passed


def test_certification_expired_by_date():
    provider = build_provider(certifications=[build_cert(expires_at=NOW - timedelta(days=1))])
    verdict = check_certification(build_candidate(provider), build_order(certification="ELEC-HV"), NOW)
    assert verdict.reason == ExclusionReason.CERTIFICATION_EXPIRED


def test_certification_pending_is_invalid():
    provider = build_provider(certifications=[build_cert(status=CertificationStatus.PENDING)])
    verdict = check_certification(build_candidate(provider), build_order(certification="ELEC-HV"), NOW)
    assert verdict.reason == ExclusionReason.CERTIFICATION_INVALID


def test_certification_missing_is_invalid():
    verdict = check_certification(
        build_candidate(build_provider()), build_order(certification="ELEC-HV"), NOW
    )
    assert verdict.reason == ExclusionReason.CERTIFICATION_INVALID


# ─── Stage 4: capacity ──────────────────────────────────────────────


def test_capacity_unlimited_passes():
    verdict = check_capacity(
        build_candidate(build_provider()), build_order(), ProviderWorkload.empty("p1"), NOW
    )
    assert verdict.passed


def test_capacity_provider_daily_exhausted():
    provider = build_provider(max_daily_jobs=3)
    workload = ProviderWorkload(provider_id="p1", jobs_today=3)
    verdict = check_capacity(build_candidate(provider), build_order(), workload, NOW)
    assert verdict.reason == ExclusionReason.CAPACITY_EXHAUSTED
    assert "provider daily" in verdict.detail


def test_capacity_zone_override_wins_over_zone_limit():
    provider = build_provider(
        zone_assignments=[WorkTeamZoneAssignment(zone_id="p1-zone", max_daily_jobs_override=5)]
    )
    provider.zones[0].max_daily_jobs_in_zone = 1
    workload = ProviderWorkload(provider_id="p1", jobs_today_by_zone={"p1-zone": 2})
    candidate = build_candidate(provider)

    headroom = capacity_headroom(provider, candidate.options[0], workload, build_order(), NOW)
    assert headroom.remaining == 3
    assert headroom.limit == 5
    assert check_capacity(candidate, build_order(), workload, NOW).passed


def test_capacity_picks_tightest_limit():
    provider = build_provider(max_daily_jobs=10, team_max_daily_jobs=4)
    workload = ProviderWorkload(provider_id="p1", jobs_today=2, jobs_today_by_team={"p1-team": 2})
    candidate = build_candidate(provider)
    headroom = capacity_headroom(provider, candidate.options[0], workload, build_order(), NOW)
    assert headroom.remaining == 2
    assert headroom.limit == 4


def test_capacity_monthly_specialty_volume():
    provider = build_provider(max_monthly_volume=20)
    workload = ProviderWorkload(provider_id="p1", jobs_this_month_by_specialty={"ELECTRICAL": 20})
    verdict = check_capacity(build_candidate(provider), build_order(), workload, NOW)
    assert verdict.reason == ExclusionReason.CAPACITY_EXHAUSTED


# ─── Stage 5: schedule ──────────────────────────────────────────────


def test_no_time_window_passes():
    assert check_schedule(build_candidate(build_provider()), build_order()).passed


def test_window_inside_morning_shift():
    order = build_order(window=_window(9, 11))
    assert check_schedule(build_candidate(build_provider()), order).passed


def test_window_spanning_lunch_break_conflicts():
    order = build_order(window=_window(13, 16))
    verdict = check_schedule(build_candidate(build_provider()), order)
    assert verdict.reason == ExclusionReason.SCHEDULE_CONFLICT


def test_weekend_window_conflicts():
    saturday = NOW + timedelta(days=5)
    order = build_order(window=_window(9, 11, saturday))
    assert not check_schedule(build_candidate(build_provider()), order).passed


def test_planned_absence_conflicts():
    schedule = WorkingSchedule(
        shifts=(Shift(time(8, 0), time(18, 0)),),
        planned_absences=(
            PlannedAbsence(start=NOW.replace(hour=0), end=NOW.replace(hour=23), reason="Training"),
        ),
    )
    assert not schedule_covers(schedule, _window(9, 11))
    next_day = NOW + timedelta(days=1)
    assert schedule_covers(schedule, _window(9, 11, next_day))


def test_multi_day_window_never_fits():
    window = TimeWindow(
        start=datetime(2026, 3, 2, 9, tzinfo=timezone.utc),
        end=datetime(2026, 3, 3, 11, tzinfo=timezone.utc),
    )
    assert not schedule_covers(WorkingSchedule(), window)
