"""AssignmentDecisionService — DIRECT / OFFER / BROADCAST decisions on top of the funnel."""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from app.application.ports.assignment_log_repo import AssignmentLogRepository
from app.application.ports.assignment_repo import AssignmentFilters, AssignmentRepository
from app.application.ports.order_lock_port import OrderLockPort
from app.application.ports.provider_repo import ProviderRepository
from app.application.ports.service_order_repo import ServiceOrderRepository
from app.application.use_cases.candidate_funnel import (
    ALL_STAGES,
    ELIGIBILITY_STAGES,
    CandidateFilterPipeline,
    FunnelResult,
)
from app.domain.entities.assignment import Assignment, FunnelSnapshot
from app.domain.entities.assignment_log import AssignmentLogEntry, FunnelExecution
from app.domain.entities.candidate import CandidateScore
from app.domain.entities.provider import Provider
from app.domain.entities.service_order import ServiceOrder
from app.domain.errors import (
    ConcurrentAssignmentConflictError,
    FunnelTimeoutError,
    IneligibleProviderError,
    InvalidAssignmentTransitionError,
    NoEligibleProvidersError,
    NotFoundError,
    OfferExpiredError,
)
from app.domain.value_objects.enums import (
    AssignmentMode,
    AssignmentStatus,
    FunnelStage,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class DecisionSettings:
    broadcast_top_n: int = 3
    offer_expiry: timedelta = timedelta(minutes=30)
    funnel_timeout_s: float = 30.0


@dataclass(frozen=True)
class DeclineOutcome:
    """Result of a refusal or expiry: the closed branch and, in OFFER mode, the follow-up."""

    assignment: Assignment
    next_assignment: Assignment | None = None
    terminal: str | None = None


@dataclass(frozen=True)
class FunnelTransparency:
    assignment_id: str
    funnel_data: dict
    logs: tuple[AssignmentLogEntry, ...]
    terminal: str | None = None


@dataclass(frozen=True)
class AssignmentStatistics:
    total: int
    by_status: dict[str, int] = field(default_factory=dict)
    by_mode: dict[str, int] = field(default_factory=dict)
    acceptance_rate: float = 0.0


class AssignmentDecisionService:
    """Orchestrates funnel runs, assignment creation and the assignment state machine.

    Every funnel run and every decision for one service order happens while
    holding that order's lock. Accepting an offer additionally goes through
    the repository's compare-and-swap so only one assignment can ever become
    the order's active one.
    """

    def __init__(
        self,
        pipeline: CandidateFilterPipeline,
        service_order_repo: ServiceOrderRepository,
        provider_repo: ProviderRepository,
        assignment_repo: AssignmentRepository,
        log_repo: AssignmentLogRepository,
        order_lock: OrderLockPort,
        settings: DecisionSettings | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._pipeline = pipeline
        self._orders = service_order_repo
        self._providers = provider_repo
        self._assignments = assignment_repo
        self._logs = log_repo
        self._lock = order_lock
        self._settings = settings or DecisionSettings()
        self._clock = clock

    # ─── Decisions ──────────────────────────────────────────────────

    async def decide(
        self,
        service_order_id: str,
        mode: AssignmentMode,
        *,
        provider_id: str | None = None,
        top_n: int | None = None,
    ) -> Assignment | list[Assignment]:
        if mode == AssignmentMode.DIRECT:
            if not provider_id:
                raise ValueError("DIRECT assignments require a provider_id")
            return await self.create_direct(service_order_id, provider_id)
        if mode == AssignmentMode.OFFER:
            return await self.create_offer(service_order_id)
        return await self.create_broadcast(service_order_id, top_n)

    async def create_direct(self, service_order_id: str, provider_id: str) -> Assignment:
        order = await self._get_order(service_order_id)
        provider = await self._providers.get_by_id(provider_id)
        if provider is None:
            raise NotFoundError(f"Provider {provider_id} not found")

        async with self._lock.hold(order.id):
            await self._ensure_decidable(order.id)
            result = await self._run_funnel(order, stages=ELIGIBILITY_STAGES, providers=[provider])
            if not result.has_candidates:
                stage, exclusion = result.execution.exclusion_for(provider_id) or (
                    result.execution.entries[-1].stage, None
                )
                raise IneligibleProviderError(
                    provider_id, stage, exclusion.reason if exclusion else None, result.execution
                )

            now = self._clock()
            option = result.survivors[0].primary_option
            assignment = Assignment(
                id=str(uuid.uuid4()),
                service_order_id=order.id,
                provider_id=provider_id,
                work_team_id=option.work_team.id,
                zone_id=option.zone.id,
                mode=AssignmentMode.DIRECT,
                funnel_data=FunnelSnapshot.capture(
                    result.execution.id, AssignmentMode.DIRECT, now, (), [provider_id]
                ),
                created_at=now,
            )
            await self._assignments.save(assignment)

        logger.info(
            "Service order %s: DIRECT assignment %s to provider %s",
            order.id, assignment.id, provider_id,
        )
        return assignment

    async def create_offer(self, service_order_id: str) -> Assignment:
        order = await self._get_order(service_order_id)
        async with self._lock.hold(order.id):
            await self._ensure_decidable(order.id)
            excluded = await self._declined_provider_ids(order.id)
            result = await self._run_funnel(order, excluded=excluded)
            if not result.ranked:
                raise NoEligibleProvidersError(order.id, result.execution)
            return await self._offer_to_top(order, result)

    async def create_broadcast(
        self, service_order_id: str, top_n: int | None = None
    ) -> list[Assignment]:
        order = await self._get_order(service_order_id)
        top_n = top_n or self._settings.broadcast_top_n
        if top_n < 1:
            raise ValueError("top_n must be at least 1")

        async with self._lock.hold(order.id):
            await self._ensure_decidable(order.id)
            excluded = await self._declined_provider_ids(order.id)
            result = await self._run_funnel(order, excluded=excluded)
            if not result.ranked:
                raise NoEligibleProvidersError(order.id, result.execution)

            now = self._clock()
            selected = result.ranked[:top_n]
            snapshot = FunnelSnapshot.capture(
                result.execution.id, AssignmentMode.BROADCAST, now, result.ranked,
                [s.provider_id for s in selected],
            )
            assignments = []
            for rank, score in enumerate(selected, start=1):
                assignment = self._new_assignment(
                    order, score, AssignmentMode.BROADCAST, snapshot, rank, now
                )
                assignment.offer(now, now + self._settings.offer_expiry)
                assignments.append(await self._assignments.save(assignment))

        logger.info(
            "Service order %s: BROADCAST to %d providers (%s)",
            order.id, len(assignments), ", ".join(a.provider_id for a in assignments),
        )
        return assignments

    # ─── State transitions ──────────────────────────────────────────

    async def accept(self, assignment_id: str) -> Assignment:
        service_order_id = (await self._get_assignment(assignment_id)).service_order_id
        async with self._lock.hold(service_order_id):
            assignment = await self._get_assignment(assignment_id)
            now = self._clock()

            active = await self._assignments.get_active(service_order_id)
            if active is not None and active != assignment.id:
                logger.warning(
                    "Service order %s: accept of %s lost to %s",
                    service_order_id, assignment.id, active,
                )
                raise ConcurrentAssignmentConflictError(service_order_id, assignment.id)

            if assignment.is_past_expiry(now):
                outcome = await self._close_and_cascade(assignment, AssignmentStatus.EXPIRED, None)
                raise OfferExpiredError(
                    assignment.id,
                    outcome.next_assignment.id if outcome.next_assignment else None,
                    outcome.terminal,
                )

            assignment.accept(now)
            if not await self._assignments.claim_active(service_order_id, assignment.id):
                logger.warning(
                    "Service order %s: compare-and-swap rejected accept of %s",
                    service_order_id, assignment.id,
                )
                raise ConcurrentAssignmentConflictError(service_order_id, assignment.id)
            await self._assignments.update_status(assignment)

            for sibling in await self._assignments.get_by_service_order(service_order_id):
                if sibling.id != assignment.id and sibling.is_open():
                    sibling.cancel(now, f"Assignment {assignment.id} was accepted")
                    await self._assignments.update_status(sibling)

        logger.info(
            "Service order %s: assignment %s accepted by provider %s",
            service_order_id, assignment.id, assignment.provider_id,
        )
        return assignment

    async def refuse(self, assignment_id: str, reason: str | None = None) -> DeclineOutcome:
        return await self._decline(assignment_id, AssignmentStatus.REFUSED, reason)

    async def expire(self, assignment_id: str) -> DeclineOutcome:
        return await self._decline(assignment_id, AssignmentStatus.EXPIRED, None)

    async def cancel(self, assignment_id: str, reason: str | None = None) -> Assignment:
        service_order_id = (await self._get_assignment(assignment_id)).service_order_id
        async with self._lock.hold(service_order_id):
            assignment = await self._get_assignment(assignment_id)
            assignment.cancel(self._clock(), reason)
            await self._assignments.update_status(assignment)
        logger.info("Assignment %s cancelled: %s", assignment.id, reason)
        return assignment

    async def expire_due_offers(self, now: datetime | None = None) -> list[DeclineOutcome]:
        """Expire every OFFERED assignment whose deadline has passed at ``now``."""
        outcomes = []
        for assignment in await self._assignments.get_due_offers(now or self._clock()):
            try:
                outcomes.append(await self.expire(assignment.id))
            except InvalidAssignmentTransitionError:
                # Accepted or cancelled between the query and the lock
                logger.debug("Assignment %s no longer open, skipping expiry", assignment.id)
        return outcomes

    # ─── Queries ────────────────────────────────────────────────────

    async def get_candidates(self, service_order_id: str) -> tuple[CandidateScore, ...]:
        order = await self._get_order(service_order_id)
        async with self._lock.hold(order.id):
            result = await self._run_funnel(order)
        return result.ranked

    async def get_funnel_transparency(self, assignment_id: str) -> FunnelTransparency:
        assignment = await self._get_assignment(assignment_id)
        execution = await self._logs.get_by_id(assignment.funnel_execution_id)
        return FunnelTransparency(
            assignment_id=assignment.id,
            funnel_data=assignment.funnel_data.to_dict(),
            logs=execution.entries if execution else (),
            terminal=execution.terminal if execution else None,
        )

    async def get_funnel_history(self, service_order_id: str) -> list[FunnelExecution]:
        """Every funnel run recorded for a service order, oldest first."""
        order = await self._get_order(service_order_id)
        return await self._logs.get_by_service_order(order.id)

    async def get_assignment(self, assignment_id: str) -> Assignment:
        return await self._get_assignment(assignment_id)

    async def list_assignments(self, filters: AssignmentFilters) -> tuple[list[Assignment], int]:
        return await self._assignments.list(filters)

    async def get_statistics(self) -> AssignmentStatistics:
        counts = await self._assignments.count_by_status_and_mode()
        by_status: dict[str, int] = {}
        by_mode: dict[str, int] = {}
        for (status, mode), n in counts.items():
            by_status[status.value] = by_status.get(status.value, 0) + n
            by_mode[mode.value] = by_mode.get(mode.value, 0) + n

        accepted = by_status.get(AssignmentStatus.ACCEPTED.value, 0)
        decided = accepted + sum(
            by_status.get(s.value, 0) for s in (AssignmentStatus.REFUSED, AssignmentStatus.EXPIRED)
        )
        return AssignmentStatistics(
            total=sum(counts.values()),
            by_status=by_status,
            by_mode=by_mode,
            acceptance_rate=round(accepted / decided, 4) if decided else 0.0,
        )

    # ─── Internals ──────────────────────────────────────────────────

    async def _get_order(self, service_order_id: str) -> ServiceOrder:
        order = await self._orders.get_by_id(service_order_id)
        if order is None:
            raise NotFoundError(f"Service order {service_order_id} not found")
        return order

    async def _get_assignment(self, assignment_id: str) -> Assignment:
        assignment = await self._assignments.get_by_id(assignment_id)
        if assignment is None:
            raise NotFoundError(f"Assignment {assignment_id} not found")
        return assignment

    async def _ensure_decidable(self, service_order_id: str) -> None:
        active = await self._assignments.get_active(service_order_id)
        if active is not None:
            raise InvalidAssignmentTransitionError(
                f"Service order {service_order_id} already has accepted assignment {active}"
            )
        open_ids = [
            a.id for a in await self._assignments.get_by_service_order(service_order_id) if a.is_open()
        ]
        if open_ids:
            raise InvalidAssignmentTransitionError(
                f"Service order {service_order_id} has open assignments {', '.join(open_ids)}; "
                "cancel them before deciding again"
            )

    async def _declined_provider_ids(self, service_order_id: str) -> set[str]:
        return {
            a.provider_id
            for a in await self._assignments.get_by_service_order(service_order_id)
            if a.status in (AssignmentStatus.REFUSED, AssignmentStatus.EXPIRED)
        }

    async def _run_funnel(
        self,
        order: ServiceOrder,
        *,
        excluded: set[str] | None = None,
        stages: tuple[FunnelStage, ...] = ALL_STAGES,
        providers: list[Provider] | None = None,
    ) -> FunnelResult:
        now = self._clock()
        if providers is None:
            providers = await self._providers.get_candidate_pool(order)
        day = order.time_window.start.date() if order.time_window else now.date()
        workloads = await self._providers.get_workloads([p.id for p in providers], day)

        timeout_s = self._settings.funnel_timeout_s
        try:
            result = await asyncio.wait_for(
                self._pipeline.run(
                    order, providers,
                    workloads=workloads, now=now,
                    excluded_provider_ids=excluded or (), stages=stages,
                ),
                timeout=timeout_s,
            )
        except asyncio.TimeoutError as e:
            raise FunnelTimeoutError(order.id, timeout_s) from e

        await self._logs.append(result.execution)
        return result

    def _new_assignment(
        self,
        order: ServiceOrder,
        score: CandidateScore,
        mode: AssignmentMode,
        snapshot: FunnelSnapshot,
        rank: int,
        now: datetime,
    ) -> Assignment:
        return Assignment(
            id=str(uuid.uuid4()),
            service_order_id=order.id,
            provider_id=score.provider_id,
            work_team_id=score.work_team.id,
            zone_id=score.zone.id,
            mode=mode,
            funnel_data=snapshot,
            rank=rank,
            total_score=score.total_score,
            created_at=now,
        )

    async def _offer_to_top(self, order: ServiceOrder, result: FunnelResult) -> Assignment:
        now = self._clock()
        top = result.ranked[0]
        snapshot = FunnelSnapshot.capture(
            result.execution.id, AssignmentMode.OFFER, now, result.ranked, [top.provider_id]
        )
        assignment = self._new_assignment(order, top, AssignmentMode.OFFER, snapshot, 1, now)
        assignment.offer(now, now + self._settings.offer_expiry)
        await self._assignments.save(assignment)
        logger.info(
            "Service order %s: OFFER %s to provider %s (score %.2f)",
            order.id, assignment.id, top.provider_id, top.total_score,
        )
        return assignment

    async def _close_branch(
        self, assignment: Assignment, status: AssignmentStatus, now: datetime, reason: str | None = None
    ) -> None:
        if status == AssignmentStatus.REFUSED:
            assignment.refuse(now, reason)
        else:
            assignment.expire(now)
        await self._assignments.update_status(assignment)

    async def _decline(
        self, assignment_id: str, status: AssignmentStatus, reason: str | None
    ) -> DeclineOutcome:
        service_order_id = (await self._get_assignment(assignment_id)).service_order_id
        async with self._lock.hold(service_order_id):
            assignment = await self._get_assignment(assignment_id)
            return await self._close_and_cascade(assignment, status, reason)

    async def _close_and_cascade(
        self, assignment: Assignment, status: AssignmentStatus, reason: str | None
    ) -> DeclineOutcome:
        """Close one branch; in OFFER mode offer the order to the next candidate.

        Must be called while holding the order's lock.
        """
        service_order_id = assignment.service_order_id
        await self._close_branch(assignment, status, self._clock(), reason)
        logger.info(
            "Service order %s: assignment %s %s by provider %s",
            service_order_id, assignment.id, status.value.lower(), assignment.provider_id,
        )

        if assignment.mode != AssignmentMode.OFFER:
            return DeclineOutcome(assignment=assignment)

        # Cascade to the next candidate, skipping everyone who already declined
        order = await self._get_order(service_order_id)
        excluded = await self._declined_provider_ids(service_order_id)
        result = await self._run_funnel(order, excluded=excluded)
        if not result.ranked:
            logger.info(
                "Service order %s: offer cascade ended with %s", order.id, result.terminal
            )
            return DeclineOutcome(assignment=assignment, terminal=result.terminal)
        next_assignment = await self._offer_to_top(order, result)
        return DeclineOutcome(assignment=assignment, next_assignment=next_assignment)
