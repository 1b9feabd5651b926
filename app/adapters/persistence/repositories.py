"""SQLAlchemy repository implementations."""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.adapters.persistence.models import (
    ActiveAssignmentModel,
    AssignmentModel,
    FunnelExecutionModel,
    InterventionZoneModel,
    ProviderModel,
    ServiceOrderModel,
    WorkTeamModel,
)
from app.application.ports.assignment_log_repo import AssignmentLogRepository
from app.application.ports.assignment_repo import AssignmentFilters, AssignmentRepository
from app.application.ports.provider_repo import ProviderRepository
from app.application.ports.service_order_repo import ServiceOrderRepository
from app.domain.entities.assignment import Assignment, FunnelSnapshot
from app.domain.entities.assignment_log import AssignmentLogEntry, FunnelExecution
from app.domain.entities.provider import (
    Certification,
    InterventionZone,
    PlannedAbsence,
    Provider,
    ServicePriorityConfig,
    Shift,
    WorkingSchedule,
    WorkTeam,
    WorkTeamZoneAssignment,
)
from app.domain.entities.service_order import ServiceOrder
from app.domain.entities.workload import ProviderWorkload
from app.domain.value_objects.coordinates import Coordinates, decimal_to_coordinates
from app.domain.value_objects.enums import (
    AssignmentMode,
    AssignmentStatus,
    CertificationStatus,
    OrderPriority,
    ProviderStatus,
    RiskLevel,
    ServicePriorityType,
)
from app.domain.value_objects.time_window import TimeWindow

# ─── Mappers ─────────────────────────────────────────────────────────


def _order_to_domain(m: ServiceOrderModel) -> ServiceOrder:
    window = None
    if m.window_start is not None and m.window_end is not None:
        window = TimeWindow(start=m.window_start, end=m.window_end)
    return ServiceOrder(
        id=m.id,
        postal_code=m.postal_code,
        specialty_id=m.specialty_id,
        location=decimal_to_coordinates(m.latitude, m.longitude),
        related_specialty_ids=frozenset(m.related_specialty_ids or ()),
        required_certification=m.required_certification,
        time_window=window,
        priority=OrderPriority(m.priority),
        created_at=m.created_at,
    )


def _zone_to_domain(m: InterventionZoneModel) -> InterventionZone:
    boundary = None
    if m.boundary:
        boundary = tuple(Coordinates(latitude=lat, longitude=lng) for lat, lng in m.boundary)
    return InterventionZone(
        id=m.id,
        name=m.name,
        postal_codes=frozenset(m.postal_codes or ()),
        boundary=boundary,
        assignment_priority=m.assignment_priority,
        max_daily_jobs_in_zone=m.max_daily_jobs_in_zone,
    )


def _team_to_domain(m: WorkTeamModel) -> WorkTeam:
    schedule = WorkingSchedule(
        working_days=frozenset(m.working_days or ()),
        shifts=tuple(
            Shift(start=time.fromisoformat(s["start"]), end=time.fromisoformat(s["end"]))
            for s in (m.shifts or ())
        ),
        planned_absences=tuple(
            PlannedAbsence(start=a.starts_at, end=a.ends_at, reason=a.reason)
            for a in m.absences
        ),
    )
    return WorkTeam(
        id=m.id,
        name=m.name,
        service_types=frozenset(m.service_types or ()),
        max_daily_jobs=m.max_daily_jobs,
        min_technicians=m.min_technicians,
        max_technicians=m.max_technicians,
        schedule=schedule,
        zone_assignments=[
            WorkTeamZoneAssignment(
                zone_id=za.intervention_zone_id,
                max_daily_jobs_override=za.max_daily_jobs_override,
                assignment_priority_override=za.assignment_priority_override,
            )
            for za in m.zone_assignments
        ],
        certifications=[
            Certification(
                technician_id=c.technician_id,
                specialty_id=c.specialty_id,
                code=c.code,
                status=CertificationStatus(c.status),
                expires_at=c.expires_at,
            )
            for c in m.certifications
        ],
    )


def _provider_to_domain(m: ProviderModel) -> Provider:
    return Provider(
        id=m.id,
        name=m.name,
        email=m.email,
        phone=m.phone,
        status=ProviderStatus(m.status),
        risk_level=RiskLevel(m.risk_level),
        location=decimal_to_coordinates(m.latitude, m.longitude),
        max_daily_jobs_total=m.max_daily_jobs_total,
        max_weekly_jobs_total=m.max_weekly_jobs_total,
        zones=[_zone_to_domain(z) for z in sorted(m.zones, key=lambda z: z.id)],
        work_teams=[_team_to_domain(t) for t in sorted(m.work_teams, key=lambda t: t.id)],
        service_priorities=[
            ServicePriorityConfig(
                specialty_id=c.specialty_id,
                priority_type=ServicePriorityType(c.priority_type),
                bundled_with_specialty_ids=frozenset(c.bundled_with_specialty_ids or ()),
                max_monthly_volume=c.max_monthly_volume,
                valid_from=c.valid_from,
                valid_until=c.valid_until,
            )
            for c in m.service_priorities
        ],
        created_at=m.created_at,
    )


def _assignment_to_domain(m: AssignmentModel) -> Assignment:
    return Assignment(
        id=m.id,
        service_order_id=m.service_order_id,
        provider_id=m.provider_id,
        mode=AssignmentMode(m.mode),
        funnel_data=FunnelSnapshot.from_dict(m.funnel_execution_id, m.funnel_data),
        work_team_id=m.work_team_id,
        zone_id=m.zone_id,
        status=AssignmentStatus(m.status),
        rank=m.rank,
        total_score=m.total_score,
        created_at=m.created_at,
        offered_at=m.offered_at,
        expires_at=m.expires_at,
        decided_at=m.decided_at,
        decision_reason=m.decision_reason,
    )


def _execution_to_domain(m: FunnelExecutionModel) -> FunnelExecution:
    return FunnelExecution(
        id=m.id,
        service_order_id=m.service_order_id,
        started_at=m.started_at,
        finished_at=m.finished_at,
        entries=tuple(AssignmentLogEntry.from_dict(e) for e in m.entries),
        terminal=m.terminal,
    )


def _provider_graph():
    return (
        selectinload(ProviderModel.zones),
        selectinload(ProviderModel.service_priorities),
        selectinload(ProviderModel.work_teams).selectinload(WorkTeamModel.zone_assignments),
        selectinload(ProviderModel.work_teams).selectinload(WorkTeamModel.certifications),
        selectinload(ProviderModel.work_teams).selectinload(WorkTeamModel.absences),
    )


# ─── Repositories ────────────────────────────────────────────────────


class SqlServiceOrderRepository(ServiceOrderRepository):
    def __init__(self, session: AsyncSession):
        self._s = session

    async def get_by_id(self, service_order_id: str) -> ServiceOrder | None:
        m = await self._s.get(ServiceOrderModel, service_order_id)
        return _order_to_domain(m) if m else None


class SqlProviderRepository(ProviderRepository):
    def __init__(self, session: AsyncSession):
        self._s = session

    async def get_by_id(self, provider_id: str) -> Provider | None:
        result = await self._s.execute(
            select(ProviderModel).where(ProviderModel.id == provider_id).options(*_provider_graph())
        )
        m = result.scalar_one_or_none()
        return _provider_to_domain(m) if m else None

    async def get_candidate_pool(self, order: ServiceOrder) -> list[Provider]:
        # Geographic and skill filtering happen in the funnel so every exclusion is logged
        result = await self._s.execute(
            select(ProviderModel)
            .where(ProviderModel.status == ProviderStatus.ACTIVE.value)
            .options(*_provider_graph())
            .order_by(ProviderModel.id)
        )
        return [_provider_to_domain(m) for m in result.scalars()]

    async def get_workloads(
        self, provider_ids: list[str], day: date
    ) -> dict[str, ProviderWorkload]:
        workloads = {pid: ProviderWorkload.empty(pid) for pid in provider_ids}
        if not provider_ids:
            return workloads

        week_start = day - timedelta(days=day.isoweekday() - 1)
        month_start = day.replace(day=1)
        range_start = min(week_start, month_start)
        range_end = max(week_start + timedelta(days=7), (month_start + timedelta(days=32)).replace(day=1))

        job_time = func.coalesce(ServiceOrderModel.window_start, AssignmentModel.created_at)
        result = await self._s.execute(
            select(
                AssignmentModel.provider_id,
                AssignmentModel.work_team_id,
                AssignmentModel.zone_id,
                ServiceOrderModel.specialty_id,
                job_time,
            )
            .join(ServiceOrderModel, ServiceOrderModel.id == AssignmentModel.service_order_id)
            .where(
                AssignmentModel.provider_id.in_(provider_ids),
                AssignmentModel.status == AssignmentStatus.ACCEPTED.value,
                job_time >= _day_start(range_start),
                job_time < _day_start(range_end),
            )
        )
        for provider_id, team_id, zone_id, specialty_id, at in result.all():
            job_day = at.astimezone(timezone.utc).date()
            w = workloads[provider_id]
            if job_day == day:
                w.jobs_today += 1
                if team_id:
                    w.jobs_today_by_team[team_id] = w.jobs_today_by_team.get(team_id, 0) + 1
                if zone_id:
                    w.jobs_today_by_zone[zone_id] = w.jobs_today_by_zone.get(zone_id, 0) + 1
            if week_start <= job_day < week_start + timedelta(days=7):
                w.jobs_this_week += 1
            if (job_day.year, job_day.month) == (day.year, day.month):
                w.jobs_this_month_by_specialty[specialty_id] = (
                    w.jobs_this_month_by_specialty.get(specialty_id, 0) + 1
                )
        return workloads


def _day_start(d: date) -> datetime:
    return datetime.combine(d, time.min, tzinfo=timezone.utc)


class SqlAssignmentRepository(AssignmentRepository):
    def __init__(self, session: AsyncSession):
        self._s = session

    async def save(self, assignment: Assignment) -> Assignment:
        m = AssignmentModel(
            id=assignment.id,
            service_order_id=assignment.service_order_id,
            provider_id=assignment.provider_id,
            work_team_id=assignment.work_team_id,
            zone_id=assignment.zone_id,
            mode=assignment.mode.value,
            status=assignment.status.value,
            rank=assignment.rank,
            total_score=assignment.total_score,
            funnel_execution_id=assignment.funnel_execution_id,
            funnel_data=assignment.funnel_data.to_dict(),
            created_at=assignment.created_at,
            offered_at=assignment.offered_at,
            expires_at=assignment.expires_at,
            decided_at=assignment.decided_at,
            decision_reason=assignment.decision_reason,
        )
        self._s.add(m)
        await self._s.flush()
        return assignment

    async def update_status(self, assignment: Assignment) -> Assignment:
        await self._s.execute(
            update(AssignmentModel)
            .where(AssignmentModel.id == assignment.id)
            .values(
                status=assignment.status.value,
                offered_at=assignment.offered_at,
                expires_at=assignment.expires_at,
                decided_at=assignment.decided_at,
                decision_reason=assignment.decision_reason,
            )
        )
        await self._s.flush()
        return assignment

    async def get_by_id(self, assignment_id: str) -> Assignment | None:
        m = await self._s.get(AssignmentModel, assignment_id, populate_existing=True)
        return _assignment_to_domain(m) if m else None

    async def get_by_service_order(self, service_order_id: str) -> list[Assignment]:
        result = await self._s.execute(
            select(AssignmentModel)
            .where(AssignmentModel.service_order_id == service_order_id)
            .order_by(AssignmentModel.created_at, AssignmentModel.rank)
            .execution_options(populate_existing=True)
        )
        return [_assignment_to_domain(m) for m in result.scalars()]

    async def list(self, filters: AssignmentFilters) -> tuple[list[Assignment], int]:
        conditions = []
        if filters.status is not None:
            conditions.append(AssignmentModel.status == filters.status.value)
        if filters.mode is not None:
            conditions.append(AssignmentModel.mode == filters.mode.value)
        if filters.service_order_id is not None:
            conditions.append(AssignmentModel.service_order_id == filters.service_order_id)
        if filters.provider_id is not None:
            conditions.append(AssignmentModel.provider_id == filters.provider_id)

        total = await self._s.scalar(
            select(func.count()).select_from(AssignmentModel).where(*conditions)
        )
        result = await self._s.execute(
            select(AssignmentModel)
            .where(*conditions)
            .order_by(AssignmentModel.created_at.desc(), AssignmentModel.id)
            .offset((filters.page - 1) * filters.limit)
            .limit(filters.limit)
        )
        return [_assignment_to_domain(m) for m in result.scalars()], total or 0

    async def get_due_offers(self, now: datetime) -> list[Assignment]:
        result = await self._s.execute(
            select(AssignmentModel)
            .where(
                AssignmentModel.status == AssignmentStatus.OFFERED.value,
                AssignmentModel.expires_at <= now,
            )
            .order_by(AssignmentModel.expires_at)
        )
        return [_assignment_to_domain(m) for m in result.scalars()]

    async def claim_active(self, service_order_id: str, assignment_id: str) -> bool:
        stmt = (
            insert(ActiveAssignmentModel)
            .values(service_order_id=service_order_id, assignment_id=assignment_id)
            .on_conflict_do_nothing(index_elements=["service_order_id"])
            .returning(ActiveAssignmentModel.assignment_id)
        )
        claimed = (await self._s.execute(stmt)).scalar_one_or_none()
        await self._s.flush()
        return claimed == assignment_id

    async def get_active(self, service_order_id: str) -> str | None:
        return await self._s.scalar(
            select(ActiveAssignmentModel.assignment_id).where(
                ActiveAssignmentModel.service_order_id == service_order_id
            )
        )

    async def count_by_status_and_mode(
        self,
    ) -> dict[tuple[AssignmentStatus, AssignmentMode], int]:
        result = await self._s.execute(
            select(AssignmentModel.status, AssignmentModel.mode, func.count())
            .group_by(AssignmentModel.status, AssignmentModel.mode)
        )
        return {
            (AssignmentStatus(status), AssignmentMode(mode)): count
            for status, mode, count in result.all()
        }


class SqlAssignmentLogRepository(AssignmentLogRepository):
    def __init__(self, session: AsyncSession):
        self._s = session

    async def append(self, execution: FunnelExecution) -> FunnelExecution:
        self._s.add(
            FunnelExecutionModel(
                id=execution.id,
                service_order_id=execution.service_order_id,
                started_at=execution.started_at,
                finished_at=execution.finished_at,
                terminal=execution.terminal,
                entries=[e.to_dict() for e in execution.entries],
            )
        )
        await self._s.flush()
        return execution

    async def get_by_id(self, execution_id: str) -> FunnelExecution | None:
        m = await self._s.get(FunnelExecutionModel, execution_id)
        return _execution_to_domain(m) if m else None

    async def get_by_service_order(self, service_order_id: str) -> list[FunnelExecution]:
        result = await self._s.execute(
            select(FunnelExecutionModel)
            .where(FunnelExecutionModel.service_order_id == service_order_id)
            .order_by(FunnelExecutionModel.started_at)
        )
        return [_execution_to_domain(m) for m in result.scalars()]
