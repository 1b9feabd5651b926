"""Port interface for per-service-order serialisation."""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager


class OrderLockPort(ABC):
    @abstractmethod
    def hold(self, service_order_id: str) -> AbstractAsyncContextManager[None]:
        """Async context manager held for the duration of one funnel run or decision."""
        ...
