"""Provider Assignment Funnel — FastAPI application factory."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.adapters.persistence.database import engine
from app.config import settings
from app.infrastructure.api.dependencies import build_decision_settings, build_pipeline
from app.infrastructure.api.routes_assignments import router as assignments_router
from app.infrastructure.api.routes_health import router as health_router

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    try:
        async with engine.begin():
            pass  # Connection pool warmed up
        logger.info("Database connection established")
    except Exception as e:
        logger.warning("Database not available on startup: %s", e)
    yield
    await engine.dispose()


def create_app() -> FastAPI:
    app = FastAPI(
        title="Provider Assignment Funnel",
        description="Candidate filtering, weighted ranking and DIRECT / OFFER / BROADCAST assignment",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Built once per process; bad weights or bands fail here
    app.state.pipeline = build_pipeline(settings)
    app.state.decision_settings = build_decision_settings(settings)

    app.include_router(health_router, prefix="/api")
    app.include_router(assignments_router, prefix="/api")

    return app


app = create_app()
