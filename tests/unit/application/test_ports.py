"""Port interfaces import cleanly and their annotations resolve."""

from __future__ import annotations

import asyncio
import inspect
import typing

import pytest

from app.application.ports.assignment_log_repo import AssignmentLogRepository
from app.application.ports.assignment_repo import AssignmentRepository
from app.application.ports.distance_matrix_port import DistanceMatrixPort
from app.application.ports.order_lock_port import OrderLockPort
from app.application.ports.provider_repo import ProviderRepository
from app.application.ports.service_order_repo import ServiceOrderRepository
from app.domain.entities.assignment import Assignment
from tests.fakes import FakeAssignmentRepo, InProcessOrderLock

PORTS = [
    AssignmentLogRepository,
    AssignmentRepository,
    DistanceMatrixPort,
    OrderLockPort,
    ProviderRepository,
    ServiceOrderRepository,
]


@pytest.mark.parametrize("port", PORTS, ids=lambda p: p.__name__)
def test_port_annotations_resolve(port):
    for name, member in inspect.getmembers(port, inspect.isfunction):
        typing.get_type_hints(member)


def test_list_method_does_not_shadow_builtin_list():
    hints = typing.get_type_hints(AssignmentRepository.list)
    assert hints["return"] == tuple[list[Assignment], int]
    assert not inspect.isabstract(FakeAssignmentRepo)


@pytest.mark.asyncio
async def test_in_process_lock_drops_released_orders():
    lock = InProcessOrderLock()
    order = []

    async def worker(tag):
        async with lock.hold("so-1"):
            order.append(f"{tag}-in")
            await asyncio.sleep(0)
            order.append(f"{tag}-out")

    await asyncio.gather(worker("a"), worker("b"))

    assert order == ["a-in", "a-out", "b-in", "b-out"]
    assert lock._locks == {}
    assert lock._users == {}
