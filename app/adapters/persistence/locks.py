"""Per-service-order lock backed by a transaction-scoped PostgreSQL advisory lock."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from app.application.ports.order_lock_port import OrderLockPort

logger = logging.getLogger(__name__)


class PgAdvisoryOrderLock(OrderLockPort):
    def __init__(self, session: AsyncSession):
        self._s = session

    @asynccontextmanager
    async def hold(self, service_order_id: str) -> AsyncIterator[None]:
        # Released automatically when the request transaction ends
        await self._s.execute(
            text("SELECT pg_advisory_xact_lock(hashtext(:key))"),
            {"key": f"service_order:{service_order_id}"},
        )
        logger.debug("Advisory lock taken for service order %s", service_order_id)
        yield

