"""FastAPI dependency injection — wires adapters into use cases."""

from __future__ import annotations

import logging
from datetime import timedelta

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.adapters.distance.google_distance_matrix_adapter import GoogleDistanceMatrixAdapter
from app.adapters.persistence.database import get_session
from app.adapters.persistence.locks import PgAdvisoryOrderLock
from app.adapters.persistence.repositories import (
    SqlAssignmentLogRepository,
    SqlAssignmentRepository,
    SqlProviderRepository,
    SqlServiceOrderRepository,
)
from app.application.services.distance_resolver import DistanceResolver
from app.application.use_cases.candidate_funnel import CandidateFilterPipeline
from app.application.use_cases.decide_assignment import (
    AssignmentDecisionService,
    DecisionSettings,
)
from app.config import Settings
from app.domain.policies.distance_scoring import DistanceBands
from app.domain.value_objects.enums import DistanceMethod, RiskLevel

logger = logging.getLogger(__name__)

# Re-export session dependency
get_db_session = get_session


def build_pipeline(cfg: Settings) -> CandidateFilterPipeline:
    """Build the funnel from settings. Bad weights or bands fail here, at startup."""
    method = DistanceMethod(cfg.distance_method)
    bands = DistanceBands(
        thresholds_km=tuple(cfg.distance_band_thresholds_km),
        scores=tuple(cfg.distance_band_scores),
    )

    matrix = None
    if method == DistanceMethod.GOOGLE_DISTANCE_MATRIX:
        if cfg.google_maps_api_key:
            matrix = GoogleDistanceMatrixAdapter(api_key=cfg.google_maps_api_key)
            logger.info("Using Google Distance Matrix for funnel distances")
        else:
            logger.warning("GOOGLE_MAPS_API_KEY not set, distances will use Haversine")

    resolver = DistanceResolver(
        matrix=matrix,
        default_method=method,
        timeout_ms=cfg.distance_api_timeout_ms,
        max_concurrency=cfg.distance_max_concurrency,
        bands=bands,
    )
    return CandidateFilterPipeline(
        distance_resolver=resolver,
        weights=cfg.factor_weights,
        bands=bands,
        risk_penalties={RiskLevel(k): v for k, v in cfg.risk_penalties.items()},
        distance_method=method,
    )


def build_decision_settings(cfg: Settings) -> DecisionSettings:
    return DecisionSettings(
        broadcast_top_n=cfg.broadcast_top_n,
        offer_expiry=timedelta(minutes=cfg.offer_expiry_minutes),
        funnel_timeout_s=cfg.funnel_timeout_seconds,
    )


def get_pipeline(request: Request) -> CandidateFilterPipeline:
    return request.app.state.pipeline


def get_decision_settings(request: Request) -> DecisionSettings:
    return request.app.state.decision_settings


def get_decision_service(
    session: AsyncSession = Depends(get_session),
    pipeline: CandidateFilterPipeline = Depends(get_pipeline),
    decision_settings: DecisionSettings = Depends(get_decision_settings),
) -> AssignmentDecisionService:
    return AssignmentDecisionService(
        pipeline=pipeline,
        service_order_repo=SqlServiceOrderRepository(session),
        provider_repo=SqlProviderRepository(session),
        assignment_repo=SqlAssignmentRepository(session),
        log_repo=SqlAssignmentLogRepository(session),
        order_lock=PgAdvisoryOrderLock(session),
        settings=decision_settings,
    )
