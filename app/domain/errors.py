"""Domain error hierarchy for the assignment engine."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from app.domain.entities.assignment_log import FunnelExecution
    from app.domain.value_objects.enums import ExclusionReason, FunnelStage


class AssignmentEngineError(RuntimeError):
    """Base exception for every error raised by the funnel and decision service."""

    def __init__(self, message: str, code: str = "ASSIGNMENT_ENGINE_ERROR") -> None:
        super().__init__(message)
        self.code = code


class InvalidCoordinateError(AssignmentEngineError):
    def __init__(self, message: str) -> None:
        super().__init__(message, code="INVALID_COORDINATE")


class ConfigurationError(AssignmentEngineError):
    def __init__(self, message: str) -> None:
        super().__init__(message, code="CONFIGURATION_ERROR")


class NotFoundError(AssignmentEngineError):
    def __init__(self, message: str) -> None:
        super().__init__(message, code="NOT_FOUND")


class NoEligibleProvidersError(AssignmentEngineError):
    """Raised when the funnel eliminates every candidate.

    Carries the funnel execution so callers can show per-stage exclusion reasons.
    """

    def __init__(self, service_order_id: str, execution: FunnelExecution) -> None:
        super().__init__(
            f"No eligible providers for service order {service_order_id}",
            code="NO_ELIGIBLE_PROVIDERS",
        )
        self.service_order_id = service_order_id
        self.execution = execution

    @property
    def exclusions_by_stage(self) -> dict[str, list[dict[str, str]]]:
        return {
            entry.stage.value: [
                {"providerId": e.provider_id, "reason": e.reason.value}
                for e in entry.exclusions
            ]
            for entry in self.execution.entries
        }


class IneligibleProviderError(AssignmentEngineError):
    """Raised when the provider chosen for a DIRECT assignment fails a hard stage."""

    def __init__(
        self,
        provider_id: str,
        stage: FunnelStage,
        reason: ExclusionReason | None,
        execution: FunnelExecution,
    ) -> None:
        reason_text = reason.value if reason else "unknown"
        super().__init__(
            f"Provider {provider_id} is not eligible: rejected at stage "
            f"{stage.value} ({reason_text})",
            code="INELIGIBLE_PROVIDER",
        )
        self.provider_id = provider_id
        self.stage = stage
        self.reason = reason
        self.execution = execution


class ConcurrentAssignmentConflictError(AssignmentEngineError):
    def __init__(self, service_order_id: str, assignment_id: str) -> None:
        super().__init__(
            f"Service order {service_order_id} already has an accepted assignment; "
            f"assignment {assignment_id} lost the race",
            code="CONCURRENT_ASSIGNMENT_CONFLICT",
        )
        self.service_order_id = service_order_id
        self.assignment_id = assignment_id


class InvalidAssignmentTransitionError(AssignmentEngineError):
    def __init__(self, message: str) -> None:
        super().__init__(message, code="INVALID_TRANSITION")


class OfferExpiredError(InvalidAssignmentTransitionError):
    """Raised when an offer is accepted after its deadline.

    The offer has already been closed as EXPIRED by the time this is raised;
    in OFFER mode the order has moved on to the next candidate.
    """

    def __init__(
        self,
        assignment_id: str,
        next_assignment_id: str | None = None,
        terminal: str | None = None,
    ) -> None:
        super().__init__(f"Offer {assignment_id} has expired")
        self.assignment_id = assignment_id
        self.next_assignment_id = next_assignment_id
        self.terminal = terminal


class FunnelTimeoutError(AssignmentEngineError):
    def __init__(self, service_order_id: str, timeout_s: float) -> None:
        super().__init__(
            f"Funnel for service order {service_order_id} exceeded {timeout_s:.1f}s",
            code="FUNNEL_TIMEOUT",
        )
