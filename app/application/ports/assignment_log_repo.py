"""Port interface for the append-only funnel audit log."""

from __future__ import annotations

from abc import ABC, abstractmethod

from app.domain.entities.assignment_log import FunnelExecution


class AssignmentLogRepository(ABC):
    @abstractmethod
    async def append(self, execution: FunnelExecution) -> FunnelExecution:
        """Store a new execution. Existing executions are never modified."""
        ...

    @abstractmethod
    async def get_by_id(self, execution_id: str) -> FunnelExecution | None:
        ...

    @abstractmethod
    async def get_by_service_order(self, service_order_id: str) -> list[FunnelExecution]:
        ...
