"""Provider aggregate — provider, intervention zones, work teams and their configuration."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, time

from app.domain.value_objects.coordinates import Coordinates
from app.domain.value_objects.enums import (
    CertificationStatus,
    ProviderStatus,
    RiskLevel,
    ServicePriorityType,
)


@dataclass
class InterventionZone:
    id: str
    name: str
    postal_codes: frozenset[str] = field(default_factory=frozenset)
    boundary: tuple[Coordinates, ...] | None = None
    assignment_priority: int = 1
    max_daily_jobs_in_zone: int | None = None

    def covers_postal_code(self, postal_code: str) -> bool:
        """Exact match, or prefix match for patterns such as ``"28*"``."""
        code = postal_code.strip()
        for pattern in self.postal_codes:
            if pattern.endswith("*"):
                if code.startswith(pattern[:-1]):
                    return True
            elif pattern == code:
                return True
        return False

    def contains_point(self, point: Coordinates) -> bool:
        """Ray casting against the boundary ring (lng = x, lat = y)."""
        if not self.boundary or len(self.boundary) < 3:
            return False
        inside = False
        ring = self.boundary
        j = len(ring) - 1
        for i in range(len(ring)):
            xi, yi = ring[i].longitude, ring[i].latitude
            xj, yj = ring[j].longitude, ring[j].latitude
            if (yi > point.latitude) != (yj > point.latitude):
                x_cross = (xj - xi) * (point.latitude - yi) / (yj - yi) + xi
                if point.longitude < x_cross:
                    inside = not inside
            j = i
        return inside

    def covers(self, postal_code: str, location: Coordinates | None) -> bool:
        if self.covers_postal_code(postal_code):
            return True
        return location is not None and self.contains_point(location)


@dataclass
class WorkTeamZoneAssignment:
    zone_id: str
    max_daily_jobs_override: int | None = None
    assignment_priority_override: int | None = None


@dataclass(frozen=True)
class Shift:
    start: time
    end: time


@dataclass(frozen=True)
class PlannedAbsence:
    start: datetime
    end: datetime
    reason: str | None = None


@dataclass
class WorkingSchedule:
    # ISO weekdays: 1 = Monday ... 7 = Sunday
    working_days: frozenset[int] = field(default_factory=lambda: frozenset({1, 2, 3, 4, 5}))
    shifts: tuple[Shift, ...] = field(
        default_factory=lambda: (Shift(time(8, 0), time(14, 0)), Shift(time(15, 0), time(20, 0)))
    )
    planned_absences: tuple[PlannedAbsence, ...] = ()


@dataclass
class Certification:
    technician_id: str
    specialty_id: str
    code: str
    status: CertificationStatus
    expires_at: datetime | None = None

    def is_valid_at(self, moment: datetime) -> bool:
        if self.status != CertificationStatus.APPROVED:
            return False
        return self.expires_at is None or self.expires_at > moment

    def is_expired_at(self, moment: datetime) -> bool:
        if self.status == CertificationStatus.EXPIRED:
            return True
        return self.expires_at is not None and self.expires_at <= moment


@dataclass
class WorkTeam:
    id: str
    name: str
    service_types: frozenset[str] = field(default_factory=frozenset)
    max_daily_jobs: int | None = None
    min_technicians: int = 1
    max_technicians: int = 1
    schedule: WorkingSchedule = field(default_factory=WorkingSchedule)
    zone_assignments: list[WorkTeamZoneAssignment] = field(default_factory=list)
    certifications: list[Certification] = field(default_factory=list)

    def zone_assignment_for(self, zone_id: str) -> WorkTeamZoneAssignment | None:
        return next((za for za in self.zone_assignments if za.zone_id == zone_id), None)

    def serves_zone(self, zone_id: str) -> bool:
        # A team without explicit zone assignments serves every provider zone
        if not self.zone_assignments:
            return True
        return self.zone_assignment_for(zone_id) is not None


@dataclass
class ServicePriorityConfig:
    specialty_id: str
    priority_type: ServicePriorityType
    bundled_with_specialty_ids: frozenset[str] = field(default_factory=frozenset)
    max_monthly_volume: int | None = None
    valid_from: datetime | None = None
    valid_until: datetime | None = None

    def is_active_at(self, moment: datetime) -> bool:
        if self.valid_from is not None and moment < self.valid_from:
            return False
        if self.valid_until is not None and moment > self.valid_until:
            return False
        return True


@dataclass
class Provider:
    id: str
    name: str
    email: str | None = None
    phone: str | None = None
    status: ProviderStatus = ProviderStatus.ACTIVE
    risk_level: RiskLevel = RiskLevel.NONE
    location: Coordinates | None = None
    max_daily_jobs_total: int | None = None
    max_weekly_jobs_total: int | None = None
    zones: list[InterventionZone] = field(default_factory=list)
    work_teams: list[WorkTeam] = field(default_factory=list)
    service_priorities: list[ServicePriorityConfig] = field(default_factory=list)
    created_at: datetime | None = None

    def priority_config_for(self, specialty_id: str) -> ServicePriorityConfig | None:
        return next(
            (c for c in self.service_priorities if c.specialty_id == specialty_id), None
        )
