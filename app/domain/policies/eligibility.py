"""EligibilityPolicy — pure hard-filter checks used by funnel stages 1-5.

Every check takes a candidate and returns a StageVerdict: the team options
that survive, or the reason the whole provider is excluded. Checks never
widen the option set, so a provider dropped by one stage cannot come back.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from app.domain.entities.candidate import Candidate, TeamOption
from app.domain.entities.provider import (
    Provider,
    ServicePriorityConfig,
    WorkingSchedule,
)
from app.domain.entities.service_order import ServiceOrder
from app.domain.entities.workload import ProviderWorkload
from app.domain.value_objects.enums import ExclusionReason, ServicePriorityType
from app.domain.value_objects.time_window import TimeWindow


@dataclass(frozen=True)
class StageVerdict:
    options: tuple[TeamOption, ...]
    reason: ExclusionReason | None = None
    detail: str | None = None

    @property
    def passed(self) -> bool:
        return bool(self.options)


@dataclass(frozen=True)
class Headroom:
    """Tightest remaining capacity for one team option. ``None`` means unlimited."""

    remaining: int | None
    limit: int | None
    label: str

    @property
    def exhausted(self) -> bool:
        return self.remaining is not None and self.remaining <= 0


def _excluded(reason: ExclusionReason, detail: str) -> StageVerdict:
    return StageVerdict(options=(), reason=reason, detail=detail)


def build_candidate(provider: Provider) -> Candidate:
    """Expand a provider into every (work team, zone) pair the team serves."""
    options = tuple(
        TeamOption(work_team=team, zone=zone)
        for team in provider.work_teams
        for zone in provider.zones
        if team.serves_zone(zone.id)
    )
    return Candidate(provider=provider, options=options)


# ─── Stage 1: geography ─────────────────────────────────────────────


def check_geography(candidate: Candidate, order: ServiceOrder) -> StageVerdict:
    kept = tuple(
        o for o in candidate.options if o.zone.covers(order.postal_code, order.location)
    )
    if not kept:
        return _excluded(
            ExclusionReason.ZONE_MISMATCH,
            f"No intervention zone covers postal code {order.postal_code}",
        )
    return StageVerdict(options=kept)


# ─── Stage 2: specialty ─────────────────────────────────────────────


def active_priority_config(
    provider: Provider, specialty_id: str, now: datetime
) -> ServicePriorityConfig | None:
    """The provider's usable priority config for a specialty, or None if opted out."""
    config = provider.priority_config_for(specialty_id)
    if config is None or config.priority_type == ServicePriorityType.OPT_OUT:
        return None
    if not config.is_active_at(now):
        return None
    return config


def check_specialty(candidate: Candidate, order: ServiceOrder, now: datetime) -> StageVerdict:
    kept = tuple(
        o for o in candidate.options if order.specialty_id in o.work_team.service_types
    )
    if not kept:
        return _excluded(
            ExclusionReason.SKILL_MISMATCH,
            f"No work team offers specialty {order.specialty_id}",
        )
    if active_priority_config(candidate.provider, order.specialty_id, now) is None:
        return _excluded(
            ExclusionReason.SPECIALTY_OPTED_OUT,
            f"Provider is not configured for specialty {order.specialty_id}",
        )
    return StageVerdict(options=kept)


# ─── Stage 3: certification ─────────────────────────────────────────


def check_certification(
    candidate: Candidate, order: ServiceOrder, now: datetime
) -> StageVerdict:
    required = order.required_certification
    if not required:
        return StageVerdict(options=candidate.options)

    kept: list[TeamOption] = []
    saw_expired = False
    for option in candidate.options:
        matching = [c for c in option.work_team.certifications if c.code == required]
        if any(c.is_valid_at(now) for c in matching):
            kept.append(option)
        elif any(c.is_expired_at(now) for c in matching):
            saw_expired = True

    if kept:
        return StageVerdict(options=tuple(kept))
    if saw_expired:
        return _excluded(
            ExclusionReason.CERTIFICATION_EXPIRED,
            f"Certification {required} has expired",
        )
    return _excluded(
        ExclusionReason.CERTIFICATION_INVALID,
        f"No approved certification {required}",
    )


def has_valid_certification(option: TeamOption, order: ServiceOrder, now: datetime) -> bool:
    if not order.required_certification:
        return True
    return any(
        c.code == order.required_certification and c.is_valid_at(now)
        for c in option.work_team.certifications
    )


# ─── Stage 4: capacity ──────────────────────────────────────────────


def capacity_headroom(
    provider: Provider,
    option: TeamOption,
    workload: ProviderWorkload,
    order: ServiceOrder,
    now: datetime,
) -> Headroom:
    """Compute the tightest of all configured limits for this team option."""
    zone_assignment = option.work_team.zone_assignment_for(option.zone.id)
    zone_limit = option.zone.max_daily_jobs_in_zone
    if zone_assignment is not None and zone_assignment.max_daily_jobs_override is not None:
        zone_limit = zone_assignment.max_daily_jobs_override

    config = active_priority_config(provider, order.specialty_id, now)
    monthly_limit = config.max_monthly_volume if config else None

    limits = [
        (provider.max_daily_jobs_total, workload.jobs_today, "provider daily"),
        (provider.max_weekly_jobs_total, workload.jobs_this_week, "provider weekly"),
        (
            option.work_team.max_daily_jobs,
            workload.jobs_today_by_team.get(option.work_team.id, 0),
            f"team {option.work_team.name} daily",
        ),
        (
            zone_limit,
            workload.jobs_today_by_zone.get(option.zone.id, 0),
            f"zone {option.zone.name} daily",
        ),
        (
            monthly_limit,
            workload.jobs_this_month_by_specialty.get(order.specialty_id, 0),
            f"{order.specialty_id} monthly volume",
        ),
    ]

    tightest = Headroom(remaining=None, limit=None, label="unlimited")
    for limit, used, label in limits:
        if limit is None:
            continue
        remaining = limit - used
        if tightest.remaining is None or remaining < tightest.remaining:
            tightest = Headroom(remaining=remaining, limit=limit, label=label)
    return tightest


def check_capacity(
    candidate: Candidate,
    order: ServiceOrder,
    workload: ProviderWorkload,
    now: datetime,
) -> StageVerdict:
    kept = []
    last: Headroom | None = None
    for option in candidate.options:
        headroom = capacity_headroom(candidate.provider, option, workload, order, now)
        if headroom.exhausted:
            last = headroom
        else:
            kept.append(option)
    if not kept:
        label = last.label if last else "capacity"
        return _excluded(ExclusionReason.CAPACITY_EXHAUSTED, f"No headroom left ({label})")
    return StageVerdict(options=tuple(kept))


# ─── Stage 5: schedule ──────────────────────────────────────────────


def schedule_covers(schedule: WorkingSchedule, window: TimeWindow) -> bool:
    """True if the window falls on a working day, inside one shift, outside absences."""
    if not window.is_single_day():
        return False
    if window.start.isoweekday() not in schedule.working_days:
        return False
    start, end = window.start.time(), window.end.time()
    if not any(s.start <= start and end <= s.end for s in schedule.shifts):
        return False
    return not any(window.overlaps(a.start, a.end) for a in schedule.planned_absences)


def check_schedule(candidate: Candidate, order: ServiceOrder) -> StageVerdict:
    if order.time_window is None:
        return StageVerdict(options=candidate.options)
    kept = tuple(
        o for o in candidate.options if schedule_covers(o.work_team.schedule, order.time_window)
    )
    if not kept:
        return _excluded(
            ExclusionReason.SCHEDULE_CONFLICT,
            f"No team available {order.time_window.start:%Y-%m-%d %H:%M}"
            f"-{order.time_window.end:%H:%M}",
        )
    return StageVerdict(options=kept)
