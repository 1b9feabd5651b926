"""SQLAlchemy ORM models — maps to PostgreSQL tables."""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import ARRAY, JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.adapters.persistence.database import Base


class ServiceOrderModel(Base):
    __tablename__ = "service_orders"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    postal_code: Mapped[str] = mapped_column(String(20), nullable=False)
    latitude: Mapped[Decimal | None] = mapped_column(Numeric(10, 7), nullable=True)
    longitude: Mapped[Decimal | None] = mapped_column(Numeric(10, 7), nullable=True)
    specialty_id: Mapped[str] = mapped_column(String(64), nullable=False)
    related_specialty_ids: Mapped[list[str]] = mapped_column(
        ARRAY(String(64)), nullable=False, default=list
    )
    required_certification: Mapped[str | None] = mapped_column(String(64), nullable=True)
    window_start: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    window_end: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    priority: Mapped[str] = mapped_column(String(20), nullable=False, default="STANDARD")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (Index("idx_service_orders_postal", "postal_code"),)


class ProviderModel(Base):
    __tablename__ = "providers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str | None] = mapped_column(String(200), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="ACTIVE")
    risk_level: Mapped[str] = mapped_column(String(20), nullable=False, default="NONE")
    latitude: Mapped[Decimal | None] = mapped_column(Numeric(10, 7), nullable=True)
    longitude: Mapped[Decimal | None] = mapped_column(Numeric(10, 7), nullable=True)
    max_daily_jobs_total: Mapped[int | None] = mapped_column(Integer, nullable=True)
    max_weekly_jobs_total: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    zones: Mapped[list["InterventionZoneModel"]] = relationship(back_populates="provider")
    work_teams: Mapped[list["WorkTeamModel"]] = relationship(back_populates="provider")
    service_priorities: Mapped[list["ServicePriorityConfigModel"]] = relationship(
        back_populates="provider"
    )

    __table_args__ = (Index("idx_providers_status", "status"),)


class InterventionZoneModel(Base):
    __tablename__ = "intervention_zones"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    provider_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("providers.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    postal_codes: Mapped[list[str]] = mapped_column(ARRAY(String(20)), nullable=False, default=list)
    # [[lat, lng], ...] polygon ring
    boundary: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    assignment_priority: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    max_daily_jobs_in_zone: Mapped[int | None] = mapped_column(Integer, nullable=True)

    provider: Mapped["ProviderModel"] = relationship(back_populates="zones")

    __table_args__ = (Index("idx_zones_provider", "provider_id"),)


class WorkTeamModel(Base):
    __tablename__ = "work_teams"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    provider_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("providers.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    service_types: Mapped[list[str]] = mapped_column(ARRAY(String(64)), nullable=False, default=list)
    max_daily_jobs: Mapped[int | None] = mapped_column(Integer, nullable=True)
    min_technicians: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    max_technicians: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    working_days: Mapped[list[int]] = mapped_column(
        ARRAY(Integer), nullable=False, default=lambda: [1, 2, 3, 4, 5]
    )
    # [{"start": "08:00", "end": "14:00"}, ...]
    shifts: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)

    provider: Mapped["ProviderModel"] = relationship(back_populates="work_teams")
    zone_assignments: Mapped[list["WorkTeamZoneAssignmentModel"]] = relationship(
        back_populates="work_team"
    )
    certifications: Mapped[list["CertificationModel"]] = relationship(back_populates="work_team")
    absences: Mapped[list["PlannedAbsenceModel"]] = relationship(back_populates="work_team")

    __table_args__ = (Index("idx_work_teams_provider", "provider_id"),)


class WorkTeamZoneAssignmentModel(Base):
    __tablename__ = "work_team_zone_assignments"

    work_team_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("work_teams.id", ondelete="CASCADE"), primary_key=True
    )
    intervention_zone_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("intervention_zones.id", ondelete="CASCADE"), primary_key=True
    )
    max_daily_jobs_override: Mapped[int | None] = mapped_column(Integer, nullable=True)
    assignment_priority_override: Mapped[int | None] = mapped_column(Integer, nullable=True)

    work_team: Mapped["WorkTeamModel"] = relationship(back_populates="zone_assignments")


class PlannedAbsenceModel(Base):
    __tablename__ = "planned_absences"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    work_team_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("work_teams.id", ondelete="CASCADE"), nullable=False
    )
    starts_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    ends_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    work_team: Mapped["WorkTeamModel"] = relationship(back_populates="absences")


class CertificationModel(Base):
    __tablename__ = "certifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    work_team_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("work_teams.id", ondelete="CASCADE"), nullable=False
    )
    technician_id: Mapped[str] = mapped_column(String(36), nullable=False)
    specialty_id: Mapped[str] = mapped_column(String(64), nullable=False)
    code: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="PENDING")
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    work_team: Mapped["WorkTeamModel"] = relationship(back_populates="certifications")

    __table_args__ = (Index("idx_certifications_team", "work_team_id"),)


class ServicePriorityConfigModel(Base):
    __tablename__ = "service_priority_configs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    provider_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("providers.id", ondelete="CASCADE"), nullable=False
    )
    specialty_id: Mapped[str] = mapped_column(String(64), nullable=False)
    priority_type: Mapped[str] = mapped_column(String(20), nullable=False)
    bundled_with_specialty_ids: Mapped[list[str]] = mapped_column(
        ARRAY(String(64)), nullable=False, default=list
    )
    max_monthly_volume: Mapped[int | None] = mapped_column(Integer, nullable=True)
    valid_from: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    valid_until: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    provider: Mapped["ProviderModel"] = relationship(back_populates="service_priorities")

    __table_args__ = (UniqueConstraint("provider_id", "specialty_id"),)


class AssignmentModel(Base):
    __tablename__ = "assignments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    service_order_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("service_orders.id", ondelete="CASCADE"), nullable=False
    )
    provider_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("providers.id"), nullable=False
    )
    work_team_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    zone_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    mode: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    rank: Mapped[int | None] = mapped_column(Integer, nullable=True)
    total_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    funnel_execution_id: Mapped[str] = mapped_column(String(36), nullable=False)
    funnel_data: Mapped[dict] = mapped_column(JSONB, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    offered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    decided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    decision_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    service_order: Mapped["ServiceOrderModel"] = relationship()

    __table_args__ = (
        Index("idx_assignments_order", "service_order_id"),
        Index("idx_assignments_provider", "provider_id"),
        Index("idx_assignments_status", "status"),
    )


class FunnelExecutionModel(Base):
    """Insert-only audit log: one row per funnel run, entries kept as JSONB."""

    __tablename__ = "assignment_logs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    service_order_id: Mapped[str] = mapped_column(String(36), nullable=False)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    finished_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    terminal: Mapped[str | None] = mapped_column(String(50), nullable=True)
    entries: Mapped[list] = mapped_column(JSONB, nullable=False)

    __table_args__ = (Index("idx_assignment_logs_order", "service_order_id"),)


class ActiveAssignmentModel(Base):
    """One row per service order once an assignment is accepted (compare-and-swap target)."""

    __tablename__ = "active_assignments"

    service_order_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    assignment_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("assignments.id"), nullable=False
    )
    claimed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
