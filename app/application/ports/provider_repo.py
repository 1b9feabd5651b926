"""Port interface for the provider read model."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date

from app.domain.entities.provider import Provider
from app.domain.entities.service_order import ServiceOrder
from app.domain.entities.workload import ProviderWorkload


class ProviderRepository(ABC):
    @abstractmethod
    async def get_by_id(self, provider_id: str) -> Provider | None:
        ...

    @abstractmethod
    async def get_candidate_pool(self, order: ServiceOrder) -> list[Provider]:
        """Active providers with zones, teams, certifications and priority configs loaded."""
        ...

    @abstractmethod
    async def get_workloads(
        self, provider_ids: list[str], day: date
    ) -> dict[str, ProviderWorkload]:
        """Job counters for the given day, its ISO week and its month."""
        ...
