"""Domain enums — pure Python, no external dependencies."""

from enum import Enum


class ProviderStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    SUSPENDED = "SUSPENDED"


class RiskLevel(str, Enum):
    NONE = "NONE"
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class OrderPriority(str, Enum):
    STANDARD = "STANDARD"
    URGENT = "URGENT"


class ServicePriorityType(str, Enum):
    P1 = "P1"
    P2 = "P2"
    OPT_OUT = "OPT_OUT"


class CertificationStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"


class AssignmentMode(str, Enum):
    DIRECT = "DIRECT"
    OFFER = "OFFER"
    BROADCAST = "BROADCAST"


class AssignmentStatus(str, Enum):
    CREATED = "CREATED"
    OFFERED = "OFFERED"
    ACCEPTED = "ACCEPTED"
    REFUSED = "REFUSED"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"


class FunnelStage(str, Enum):
    """Funnel stages, declared in execution order."""

    GEOGRAPHIC = "GEOGRAPHIC"
    SPECIALTY = "SPECIALTY"
    CERTIFICATION = "CERTIFICATION"
    CAPACITY = "CAPACITY"
    SCHEDULE = "SCHEDULE"
    SCORING = "SCORING"

    @property
    def position(self) -> int:
        return list(FunnelStage).index(self) + 1


class ExclusionReason(str, Enum):
    ZONE_MISMATCH = "ZONE_MISMATCH"
    PREVIOUSLY_DECLINED = "PREVIOUSLY_DECLINED"
    SKILL_MISMATCH = "SKILL_MISMATCH"
    SPECIALTY_OPTED_OUT = "SPECIALTY_OPTED_OUT"
    CERTIFICATION_INVALID = "CERTIFICATION_INVALID"
    CERTIFICATION_EXPIRED = "CERTIFICATION_EXPIRED"
    CAPACITY_EXHAUSTED = "CAPACITY_EXHAUSTED"
    SCHEDULE_CONFLICT = "SCHEDULE_CONFLICT"


class DistanceMethod(str, Enum):
    HAVERSINE = "haversine"
    GOOGLE_DISTANCE_MATRIX = "google_distance_matrix"


NO_ELIGIBLE_PROVIDERS = "NO_ELIGIBLE_PROVIDERS"
