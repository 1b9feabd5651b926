"""Initial schema — providers, service orders, assignments and funnel logs.

Revision ID: 001
Revises: None
Create Date: 2026-10-18
"""

from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import ARRAY, JSONB

from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Service orders (read model owned by the order subsystem)
    op.create_table(
        "service_orders",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("postal_code", sa.String(20), nullable=False),
        sa.Column("latitude", sa.Numeric(10, 7), nullable=True),
        sa.Column("longitude", sa.Numeric(10, 7), nullable=True),
        sa.Column("specialty_id", sa.String(64), nullable=False),
        sa.Column(
            "related_specialty_ids", ARRAY(sa.String(64)), nullable=False, server_default="{}"
        ),
        sa.Column("required_certification", sa.String(64), nullable=True),
        sa.Column("window_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("window_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("priority", sa.String(20), nullable=False, server_default="STANDARD"),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
    )
    op.create_index("idx_service_orders_postal", "service_orders", ["postal_code"])

    # Providers
    op.create_table(
        "providers",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("email", sa.String(200), nullable=True),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="ACTIVE"),
        sa.Column("risk_level", sa.String(20), nullable=False, server_default="NONE"),
        sa.Column("latitude", sa.Numeric(10, 7), nullable=True),
        sa.Column("longitude", sa.Numeric(10, 7), nullable=True),
        sa.Column("max_daily_jobs_total", sa.Integer, nullable=True),
        sa.Column("max_weekly_jobs_total", sa.Integer, nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
    )
    op.create_index("idx_providers_status", "providers", ["status"])

    # Intervention zones
    op.create_table(
        "intervention_zones",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "provider_id",
            sa.String(36),
            sa.ForeignKey("providers.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("postal_codes", ARRAY(sa.String(20)), nullable=False, server_default="{}"),
        sa.Column("boundary", JSONB, nullable=True),
        sa.Column("assignment_priority", sa.Integer, nullable=False, server_default="1"),
        sa.Column("max_daily_jobs_in_zone", sa.Integer, nullable=True),
    )
    op.create_index("idx_zones_provider", "intervention_zones", ["provider_id"])

    # Work teams
    op.create_table(
        "work_teams",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "provider_id",
            sa.String(36),
            sa.ForeignKey("providers.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("service_types", ARRAY(sa.String(64)), nullable=False, server_default="{}"),
        sa.Column("max_daily_jobs", sa.Integer, nullable=True),
        sa.Column("min_technicians", sa.Integer, nullable=False, server_default="1"),
        sa.Column("max_technicians", sa.Integer, nullable=False, server_default="1"),
        sa.Column(
            "working_days", ARRAY(sa.Integer), nullable=False, server_default="{1,2,3,4,5}"
        ),
        sa.Column("shifts", JSONB, nullable=False, server_default="[]"),
    )
    op.create_index("idx_work_teams_provider", "work_teams", ["provider_id"])

    op.create_table(
        "work_team_zone_assignments",
        sa.Column(
            "work_team_id",
            sa.String(36),
            sa.ForeignKey("work_teams.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "intervention_zone_id",
            sa.String(36),
            sa.ForeignKey("intervention_zones.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("max_daily_jobs_override", sa.Integer, nullable=True),
        sa.Column("assignment_priority_override", sa.Integer, nullable=True),
    )

    op.create_table(
        "planned_absences",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "work_team_id",
            sa.String(36),
            sa.ForeignKey("work_teams.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ends_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("reason", sa.Text, nullable=True),
    )

    op.create_table(
        "certifications",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "work_team_id",
            sa.String(36),
            sa.ForeignKey("work_teams.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("technician_id", sa.String(36), nullable=False),
        sa.Column("specialty_id", sa.String(64), nullable=False),
        sa.Column("code", sa.String(64), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="PENDING"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("idx_certifications_team", "certifications", ["work_team_id"])

    op.create_table(
        "service_priority_configs",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "provider_id",
            sa.String(36),
            sa.ForeignKey("providers.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("specialty_id", sa.String(64), nullable=False),
        sa.Column("priority_type", sa.String(20), nullable=False),
        sa.Column(
            "bundled_with_specialty_ids", ARRAY(sa.String(64)), nullable=False, server_default="{}"
        ),
        sa.Column("max_monthly_volume", sa.Integer, nullable=True),
        sa.Column("valid_from", sa.DateTime(timezone=True), nullable=True),
        sa.Column("valid_until", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("provider_id", "specialty_id"),
    )

    # Assignments
    op.create_table(
        "assignments",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "service_order_id",
            sa.String(36),
            sa.ForeignKey("service_orders.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("provider_id", sa.String(36), sa.ForeignKey("providers.id"), nullable=False),
        sa.Column("work_team_id", sa.String(36), nullable=True),
        sa.Column("zone_id", sa.String(36), nullable=True),
        sa.Column("mode", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("rank", sa.Integer, nullable=True),
        sa.Column("total_score", sa.Float, nullable=True),
        sa.Column("funnel_execution_id", sa.String(36), nullable=False),
        sa.Column("funnel_data", JSONB, nullable=False),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.Column("offered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("decision_reason", sa.Text, nullable=True),
    )
    op.create_index("idx_assignments_order", "assignments", ["service_order_id"])
    op.create_index("idx_assignments_provider", "assignments", ["provider_id"])
    op.create_index("idx_assignments_status", "assignments", ["status"])

    # Funnel audit log (insert-only)
    op.create_table(
        "assignment_logs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("service_order_id", sa.String(36), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("terminal", sa.String(50), nullable=True),
        sa.Column("entries", JSONB, nullable=False),
    )
    op.create_index("idx_assignment_logs_order", "assignment_logs", ["service_order_id"])

    # One accepted assignment per service order
    op.create_table(
        "active_assignments",
        sa.Column("service_order_id", sa.String(36), primary_key=True),
        sa.Column(
            "assignment_id", sa.String(36), sa.ForeignKey("assignments.id"), nullable=False
        ),
        sa.Column(
            "claimed_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
    )


def downgrade() -> None:
    op.drop_table("active_assignments")
    op.drop_table("assignment_logs")
    op.drop_table("assignments")
    op.drop_table("service_priority_configs")
    op.drop_table("certifications")
    op.drop_table("planned_absences")
    op.drop_table("work_team_zone_assignments")
    op.drop_table("work_teams")
    op.drop_table("intervention_zones")
    op.drop_table("providers")
    op.drop_table("service_orders")
