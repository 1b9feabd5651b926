"""Port interface for assignment persistence."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime

from app.domain.entities.assignment import Assignment
from app.domain.value_objects.enums import AssignmentMode, AssignmentStatus


@dataclass(frozen=True)
class AssignmentFilters:
    status: AssignmentStatus | None = None
    mode: AssignmentMode | None = None
    service_order_id: str | None = None
    provider_id: str | None = None
    page: int = 1
    limit: int = 20


class AssignmentRepository(ABC):
    @abstractmethod
    async def save(self, assignment: Assignment) -> Assignment:
        ...

    @abstractmethod
    async def update_status(self, assignment: Assignment) -> Assignment:
        """Persist a status transition. The funnel snapshot is never rewritten."""
        ...

    @abstractmethod
    async def get_by_id(self, assignment_id: str) -> Assignment | None:
        ...

    @abstractmethod
    async def get_by_service_order(self, service_order_id: str) -> list[Assignment]:
        ...

    @abstractmethod
    async def list(self, filters: AssignmentFilters) -> tuple[list[Assignment], int]:
        """Return one page of assignments and the total match count."""
        ...

    @abstractmethod
    async def get_due_offers(self, now: datetime) -> list[Assignment]:
        """OFFERED assignments whose expiry is at or before *now*."""
        ...

    @abstractmethod
    async def claim_active(self, service_order_id: str, assignment_id: str) -> bool:
        """Atomically record *assignment_id* as the order's active assignment.

        Compare-and-swap: returns False if another assignment already holds it.
        """
        ...

    @abstractmethod
    async def get_active(self, service_order_id: str) -> str | None:
        ...

    @abstractmethod
    async def count_by_status_and_mode(
        self,
    ) -> dict[tuple[AssignmentStatus, AssignmentMode], int]:
        ...
