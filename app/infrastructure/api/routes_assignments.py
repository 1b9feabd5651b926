"""Assignment endpoints — candidate ranking, decisions, lifecycle and transparency."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.application.ports.assignment_repo import AssignmentFilters
from app.application.use_cases.decide_assignment import AssignmentDecisionService
from app.domain.errors import (
    AssignmentEngineError,
    IneligibleProviderError,
    NoEligibleProvidersError,
    OfferExpiredError,
)
from app.domain.value_objects.enums import AssignmentMode, AssignmentStatus
from app.infrastructure.api.dependencies import get_db_session, get_decision_service
from app.infrastructure.api.schemas import (
    AssignmentListOut,
    AssignmentOut,
    BroadcastAssignmentRequest,
    CandidateOut,
    DecisionRequest,
    DeclineOut,
    DirectAssignmentRequest,
    FunnelExecutionOut,
    FunnelOut,
    OfferAssignmentRequest,
    StatisticsOut,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/assignments", tags=["assignments"])

_STATUS_BY_CODE = {
    "NOT_FOUND": 404,
    "INVALID_COORDINATE": 422,
    "NO_ELIGIBLE_PROVIDERS": 409,
    "INELIGIBLE_PROVIDER": 409,
    "CONCURRENT_ASSIGNMENT_CONFLICT": 409,
    "INVALID_TRANSITION": 409,
    "CONFIGURATION_ERROR": 500,
    "FUNNEL_TIMEOUT": 504,
}


def _map_error_code(code: str) -> int:
    return _STATUS_BY_CODE.get(code, 500)


async def _raise_http(exc: AssignmentEngineError, session: AsyncSession) -> None:
    detail: dict = {"code": exc.code, "message": str(exc)}
    if isinstance(exc, NoEligibleProvidersError):
        detail["exclusionsByStage"] = exc.exclusions_by_stage
    if isinstance(exc, IneligibleProviderError):
        detail["stage"] = exc.stage.value
        detail["reason"] = exc.reason.value if exc.reason else None
    if isinstance(exc, OfferExpiredError):
        detail["nextAssignmentId"] = exc.next_assignment_id
        detail["terminal"] = exc.terminal
    if isinstance(exc, (NoEligibleProvidersError, IneligibleProviderError, OfferExpiredError)):
        # Keep the funnel audit log and the expiry cascade even though the request failed
        await session.commit()

    status_code = _map_error_code(exc.code)
    if status_code >= 500:
        logger.error("Assignment request failed: %s", exc)
    raise HTTPException(status_code=status_code, detail=detail) from exc


# ─── Queries ────────────────────────────────────────────────────────


@router.get("/candidates/{service_order_id}", response_model=list[CandidateOut])
async def get_candidates(
    service_order_id: str,
    service: AssignmentDecisionService = Depends(get_decision_service),
    session: AsyncSession = Depends(get_db_session),
):
    """Run the full funnel for a service order and return the ranked candidates."""
    try:
        ranked = await service.get_candidates(service_order_id)
    except AssignmentEngineError as e:
        await _raise_http(e, session)
    await session.commit()
    return [CandidateOut.of(i, score) for i, score in enumerate(ranked, start=1)]


@router.get("/orders/{service_order_id}/funnel-runs", response_model=list[FunnelExecutionOut])
async def get_funnel_history(
    service_order_id: str,
    service: AssignmentDecisionService = Depends(get_decision_service),
    session: AsyncSession = Depends(get_db_session),
):
    """Every funnel run for a service order, including runs that ended without a decision."""
    try:
        executions = await service.get_funnel_history(service_order_id)
    except AssignmentEngineError as e:
        await _raise_http(e, session)
    return [FunnelExecutionOut.of(x) for x in executions]


@router.get("/statistics", response_model=StatisticsOut)
async def get_statistics(service: AssignmentDecisionService = Depends(get_decision_service)):
    return StatisticsOut.of(await service.get_statistics())


@router.get("", response_model=AssignmentListOut)
async def list_assignments(
    status: AssignmentStatus | None = None,
    mode: AssignmentMode | None = None,
    service_order_id: str | None = Query(default=None, alias="serviceOrderId"),
    provider_id: str | None = Query(default=None, alias="providerId"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    service: AssignmentDecisionService = Depends(get_decision_service),
):
    filters = AssignmentFilters(
        status=status,
        mode=mode,
        service_order_id=service_order_id,
        provider_id=provider_id,
        page=page,
        limit=limit,
    )
    items, total = await service.list_assignments(filters)
    return AssignmentListOut(
        total=total, page=page, limit=limit, items=[AssignmentOut.of(a) for a in items]
    )


@router.get("/{assignment_id}", response_model=AssignmentOut)
async def get_assignment(
    assignment_id: str,
    service: AssignmentDecisionService = Depends(get_decision_service),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return AssignmentOut.of(await service.get_assignment(assignment_id))
    except AssignmentEngineError as e:
        await _raise_http(e, session)


@router.get("/{assignment_id}/funnel", response_model=FunnelOut)
async def get_funnel(
    assignment_id: str,
    service: AssignmentDecisionService = Depends(get_decision_service),
    session: AsyncSession = Depends(get_db_session),
):
    """Frozen funnel snapshot plus the per-stage log of the run that produced it."""
    try:
        return FunnelOut.of(await service.get_funnel_transparency(assignment_id))
    except AssignmentEngineError as e:
        await _raise_http(e, session)


# ─── Decisions ──────────────────────────────────────────────────────


@router.post("/direct", response_model=AssignmentOut, status_code=201)
async def create_direct(
    body: DirectAssignmentRequest,
    service: AssignmentDecisionService = Depends(get_decision_service),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        assignment = await service.create_direct(body.service_order_id, body.provider_id)
    except AssignmentEngineError as e:
        await _raise_http(e, session)
    await session.commit()
    return AssignmentOut.of(assignment)


@router.post("/offer", response_model=AssignmentOut, status_code=201)
async def create_offer(
    body: OfferAssignmentRequest,
    service: AssignmentDecisionService = Depends(get_decision_service),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        assignment = await service.create_offer(body.service_order_id)
    except AssignmentEngineError as e:
        await _raise_http(e, session)
    await session.commit()
    return AssignmentOut.of(assignment)


@router.post("/broadcast", response_model=list[AssignmentOut], status_code=201)
async def create_broadcast(
    body: BroadcastAssignmentRequest,
    service: AssignmentDecisionService = Depends(get_decision_service),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        assignments = await service.create_broadcast(body.service_order_id, body.top_n)
    except AssignmentEngineError as e:
        await _raise_http(e, session)
    await session.commit()
    return [AssignmentOut.of(a) for a in assignments]


# ─── Lifecycle ──────────────────────────────────────────────────────


@router.post("/{assignment_id}/accept", response_model=AssignmentOut)
async def accept_assignment(
    assignment_id: str,
    service: AssignmentDecisionService = Depends(get_decision_service),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        assignment = await service.accept(assignment_id)
    except AssignmentEngineError as e:
        await _raise_http(e, session)
    await session.commit()
    return AssignmentOut.of(assignment)


@router.post("/{assignment_id}/refuse", response_model=DeclineOut)
async def refuse_assignment(
    assignment_id: str,
    body: DecisionRequest | None = None,
    service: AssignmentDecisionService = Depends(get_decision_service),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        outcome = await service.refuse(assignment_id, body.reason if body else None)
    except AssignmentEngineError as e:
        await _raise_http(e, session)
    await session.commit()
    return DeclineOut.of(outcome)


@router.post("/{assignment_id}/expire", response_model=DeclineOut)
async def expire_assignment(
    assignment_id: str,
    service: AssignmentDecisionService = Depends(get_decision_service),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        outcome = await service.expire(assignment_id)
    except AssignmentEngineError as e:
        await _raise_http(e, session)
    await session.commit()
    return DeclineOut.of(outcome)


@router.post("/{assignment_id}/cancel", response_model=AssignmentOut)
async def cancel_assignment(
    assignment_id: str,
    body: DecisionRequest | None = None,
    service: AssignmentDecisionService = Depends(get_decision_service),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        assignment = await service.cancel(assignment_id, body.reason if body else None)
    except AssignmentEngineError as e:
        await _raise_http(e, session)
    await session.commit()
    return AssignmentOut.of(assignment)


@router.post("/expire-due")
async def expire_due_offers(
    service: AssignmentDecisionService = Depends(get_decision_service),
    session: AsyncSession = Depends(get_db_session),
):
    """Expire every overdue offer; OFFER-mode orders cascade to their next candidate."""
    try:
        outcomes = await service.expire_due_offers()
    except AssignmentEngineError as e:
        await _raise_http(e, session)
    await session.commit()
    return {"expired": len(outcomes), "outcomes": [DeclineOut.of(o) for o in outcomes]}
