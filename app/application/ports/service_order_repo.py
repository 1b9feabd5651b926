"""Port interface for the service order read model."""

from __future__ import annotations

from abc import ABC, abstractmethod

from app.domain.entities.service_order import ServiceOrder


class ServiceOrderRepository(ABC):
    @abstractmethod
    async def get_by_id(self, service_order_id: str) -> ServiceOrder | None:
        ...
