"""Tests for the Assignment state machine and the frozen funnel snapshot."""

from datetime import timedelta

import pytest

from app.domain.entities.assignment import Assignment, FunnelSnapshot
from app.domain.errors import InvalidAssignmentTransitionError
from app.domain.value_objects.enums import AssignmentMode, AssignmentStatus
from tests.builders import NOW


def _assignment(mode=AssignmentMode.OFFER) -> Assignment:
    return Assignment(
        id="a-1",
        service_order_id="so-1",
        provider_id="p1",
        mode=mode,
        funnel_data=FunnelSnapshot.capture("exec-1", mode, NOW, (), ["p1"]),
        created_at=NOW,
    )


def test_offer_then_accept():
    a = _assignment()
    a.offer(NOW, NOW + timedelta(minutes=30))
    a.accept(NOW + timedelta(minutes=5))
    assert a.status == AssignmentStatus.ACCEPTED
    assert a.decided_at == NOW + timedelta(minutes=5)


def test_direct_can_be_accepted_without_offer():
    a = _assignment(AssignmentMode.DIRECT)
    a.accept(NOW)
    assert a.status == AssignmentStatus.ACCEPTED


def test_offer_mode_must_be_offered_before_accept():
    a = _assignment(AssignmentMode.OFFER)
    with pytest.raises(InvalidAssignmentTransitionError):
        a.accept(NOW)
    assert a.status == AssignmentStatus.CREATED


@pytest.mark.parametrize("terminal", ["accept", "refuse", "expire", "cancel"])
def test_terminal_states_are_final(terminal):
    a = _assignment()
    a.offer(NOW, None)
    getattr(a, terminal)(NOW)
    assert not a.is_open()
    with pytest.raises(InvalidAssignmentTransitionError):
        a.cancel(NOW)


def test_refuse_records_reason():
    a = _assignment()
    a.offer(NOW, None)
    a.refuse(NOW, "Too far")
    assert a.status == AssignmentStatus.REFUSED
    assert a.decision_reason == "Too far"


def test_created_cannot_be_refused():
    with pytest.raises(InvalidAssignmentTransitionError):
        _assignment().refuse(NOW)


def test_past_expiry_only_for_open_offers():
    a = _assignment()
    a.offer(NOW, NOW + timedelta(minutes=30))
    assert not a.is_past_expiry(NOW + timedelta(minutes=29))
    assert a.is_past_expiry(NOW + timedelta(minutes=30))


def test_snapshot_returns_fresh_copies():
    snapshot = FunnelSnapshot.capture("exec-1", AssignmentMode.OFFER, NOW, (), ["p1"])
    data = snapshot.to_dict()
    data["selectedProviderIds"].append("intruder")
    assert snapshot.to_dict()["selectedProviderIds"] == ["p1"]
    assert snapshot.to_dict()["executionId"] == "exec-1"
    assert snapshot.to_dict()["mode"] == "OFFER"


def test_snapshot_round_trips_through_stored_json():
    snapshot = FunnelSnapshot.capture("exec-1", AssignmentMode.BROADCAST, NOW, (), ["p1", "p2"])
    restored = FunnelSnapshot.from_dict("exec-1", snapshot.to_dict())
    assert restored == snapshot
