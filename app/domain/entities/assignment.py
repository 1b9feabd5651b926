"""Assignment entity — the result of routing a service order to a provider."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime

from app.domain.entities.candidate import CandidateScore
from app.domain.errors import InvalidAssignmentTransitionError
from app.domain.value_objects.enums import AssignmentMode, AssignmentStatus

_TRANSITIONS: dict[AssignmentStatus, frozenset[AssignmentStatus]] = {
    AssignmentStatus.CREATED: frozenset(
        {AssignmentStatus.OFFERED, AssignmentStatus.ACCEPTED, AssignmentStatus.CANCELLED}
    ),
    AssignmentStatus.OFFERED: frozenset(
        {
            AssignmentStatus.ACCEPTED,
            AssignmentStatus.REFUSED,
            AssignmentStatus.EXPIRED,
            AssignmentStatus.CANCELLED,
        }
    ),
    AssignmentStatus.ACCEPTED: frozenset(),
    AssignmentStatus.REFUSED: frozenset(),
    AssignmentStatus.EXPIRED: frozenset(),
    AssignmentStatus.CANCELLED: frozenset(),
}


@dataclass(frozen=True)
class FunnelSnapshot:
    """Frozen copy of the ranked decision, serialised at decision time.

    Stored as JSON text so later changes to provider or zone objects can never
    leak into it; ``to_dict`` always hands out a fresh copy.
    """

    execution_id: str
    payload: str

    @classmethod
    def capture(
        cls,
        execution_id: str,
        mode: AssignmentMode,
        taken_at: datetime,
        ranked: tuple[CandidateScore, ...],
        selected_provider_ids: list[str],
        terminal: str | None = None,
    ) -> "FunnelSnapshot":
        payload = {
            "executionId": execution_id,
            "mode": mode.value,
            "takenAt": taken_at.isoformat(),
            "terminal": terminal,
            "selectedProviderIds": selected_provider_ids,
            "ranked": [
                {"rank": i + 1, **score.to_dict()} for i, score in enumerate(ranked)
            ],
        }
        return cls(execution_id=execution_id, payload=json.dumps(payload, sort_keys=True))

    @classmethod
    def from_dict(cls, execution_id: str, data: dict) -> "FunnelSnapshot":
        return cls(execution_id=execution_id, payload=json.dumps(data, sort_keys=True))

    def to_dict(self) -> dict:
        return json.loads(self.payload)


@dataclass
class Assignment:
    id: str
    service_order_id: str
    provider_id: str
    mode: AssignmentMode
    funnel_data: FunnelSnapshot
    work_team_id: str | None = None
    zone_id: str | None = None
    status: AssignmentStatus = AssignmentStatus.CREATED
    rank: int | None = None
    total_score: float | None = None
    created_at: datetime | None = None
    offered_at: datetime | None = None
    expires_at: datetime | None = None
    decided_at: datetime | None = None
    decision_reason: str | None = field(default=None)

    @property
    def funnel_execution_id(self) -> str:
        return self.funnel_data.execution_id

    def is_open(self) -> bool:
        return self.status in (AssignmentStatus.CREATED, AssignmentStatus.OFFERED)

    def _transition(self, target: AssignmentStatus) -> None:
        if target not in _TRANSITIONS[self.status]:
            raise InvalidAssignmentTransitionError(
                f"Assignment {self.id} cannot move from {self.status.value} to {target.value}"
            )
        if (
            self.status == AssignmentStatus.CREATED
            and target == AssignmentStatus.ACCEPTED
            and self.mode != AssignmentMode.DIRECT
        ):
            raise InvalidAssignmentTransitionError(
                f"Assignment {self.id} must be offered before it can be accepted"
            )
        self.status = target

    def offer(self, now: datetime, expires_at: datetime | None) -> None:
        self._transition(AssignmentStatus.OFFERED)
        self.offered_at = now
        self.expires_at = expires_at

    def accept(self, now: datetime) -> None:
        self._transition(AssignmentStatus.ACCEPTED)
        self.decided_at = now

    def refuse(self, now: datetime, reason: str | None = None) -> None:
        self._transition(AssignmentStatus.REFUSED)
        self.decided_at = now
        self.decision_reason = reason

    def expire(self, now: datetime) -> None:
        self._transition(AssignmentStatus.EXPIRED)
        self.decided_at = now
        self.decision_reason = "Offer expired"

    def cancel(self, now: datetime, reason: str | None = None) -> None:
        self._transition(AssignmentStatus.CANCELLED)
        self.decided_at = now
        self.decision_reason = reason

    def is_past_expiry(self, now: datetime) -> bool:
        return (
            self.status == AssignmentStatus.OFFERED
            and self.expires_at is not None
            and self.expires_at <= now
        )
