"""Booking core schema: directory, grants, resources, reservations, idempotency.

Revision ID: 0001_booking_core_schema
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "0001_booking_core_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

UUID = postgresql.UUID(as_uuid=True)
TZ = sa.DateTime(timezone=True)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", TZ, server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", TZ, server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column("display_name", sa.String(), nullable=False),
        sa.Column("is_super_admin", sa.Boolean(), server_default=sa.false(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "organizations",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("slug", sa.String(), nullable=False),
        sa.Column("granular_resource_permissions", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("granular_calendar_permissions", sa.Boolean(), server_default=sa.false(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_organizations_name", "organizations", ["name"])
    op.create_index("ix_organizations_slug", "organizations", ["slug"], unique=True)

    op.create_table(
        "organization_admins",
        sa.Column("organization_id", UUID, sa.ForeignKey("organizations.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("user_id", UUID, sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("assigned_by_id", UUID, sa.ForeignKey("users.id"), nullable=True),
        sa.Column("assigned_at", TZ, server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        "organization_memberships",
        sa.Column("organization_id", UUID, sa.ForeignKey("organizations.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("user_id", UUID, sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("role", sa.String(), server_default="member", nullable=False),
        sa.CheckConstraint("role IN ('member', 'admin')", name="ck_organization_memberships_role"),
    )

    op.create_table(
        "resource_types",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("organization_id", UUID, sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_resource_types_organization_id", "resource_types", ["organization_id"])

    op.create_table(
        "resources",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("resource_type_id", UUID, sa.ForeignKey("resource_types.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("capacity", sa.Integer(), server_default="1", nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column("public_booking_token", sa.String(), nullable=True),
        sa.Column("managed_by_id", UUID, sa.ForeignKey("users.id"), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("capacity >= 1", name="ck_resources_capacity_positive"),
    )
    op.create_index("ix_resources_resource_type_id", "resources", ["resource_type_id"])
    op.create_index("ix_resources_public_booking_token", "resources", ["public_booking_token"], unique=True)

    op.create_table(
        "reservation_calendars",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("organization_id", UUID, sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False),
        sa.Column("owning_calendar_id", UUID, nullable=True),
        sa.Column("name", sa.String(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_reservation_calendars_organization_id", "reservation_calendars", ["organization_id"])
    op.create_index("ix_reservation_calendars_owning_calendar_id", "reservation_calendars", ["owning_calendar_id"])

    op.create_table(
        "reservation_calendar_roles",
        sa.Column(
            "reservation_calendar_id", UUID,
            sa.ForeignKey("reservation_calendars.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column("user_id", UUID, sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("role", sa.String(), nullable=False),
        sa.Column("is_auto_assigned_from_org_admin", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("assigned_by_id", UUID, sa.ForeignKey("users.id"), nullable=True),
        sa.Column("assigned_at", TZ, server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("role IN ('editor', 'reviewer')", name="ck_reservation_calendar_roles_role"),
    )

    for table, target_col, target_table in (
        ("granular_resource_permissions", "resource_type_id", "resource_types"),
        ("granular_calendar_permissions", "reservation_calendar_id", "reservation_calendars"),
    ):
        op.create_table(
            table,
            sa.Column("id", UUID, primary_key=True),
            sa.Column("organization_id", UUID, sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False),
            sa.Column("user_id", UUID, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column(target_col, UUID, sa.ForeignKey(f"{target_table}.id", ondelete="CASCADE"), nullable=False),
            sa.Column("can_view", sa.Boolean(), server_default=sa.false(), nullable=False),
            sa.Column("can_edit", sa.Boolean(), server_default=sa.false(), nullable=False),
            sa.UniqueConstraint(
                "organization_id", "user_id", target_col,
                name=f"uq_{table[:-len('s')]}",
            ),
        )
        op.create_index(f"ix_{table}_organization_id", table, ["organization_id"])
        op.create_index(f"ix_{table}_user_id", table, ["user_id"])

    op.create_table(
        "reservations",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("resource_id", UUID, sa.ForeignKey("resources.id", ondelete="CASCADE"), nullable=False),
        sa.Column("start_time", TZ, nullable=False),
        sa.Column("end_time", TZ, nullable=False),
        sa.Column("quantity", sa.Integer(), server_default="1", nullable=False),
        sa.Column("status", sa.String(), server_default="pending", nullable=False),
        sa.Column("created_by_id", UUID, sa.ForeignKey("users.id"), nullable=True),
        sa.Column("customer_name", sa.String(), nullable=True),
        sa.Column("customer_email", sa.String(), nullable=True),
        sa.Column("customer_phone", sa.String(), nullable=True),
        sa.Column("notes", sa.String(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("quantity >= 1", name="ck_reservations_quantity_positive"),
        sa.CheckConstraint("start_time < end_time", name="ck_reservations_window"),
        sa.CheckConstraint(
            "status IN ('pending', 'confirmed', 'completed', 'cancelled', 'waitlist')",
            name="ck_reservations_status",
        ),
    )
    op.create_index("ix_reservations_resource_id", "reservations", ["resource_id"])
    op.create_index("ix_reservations_status", "reservations", ["status"])
    op.create_index(
        "ix_reservations_resource_window", "reservations", ["resource_id", "start_time", "end_time"]
    )

    op.create_table(
        "idempotency_records",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("key", sa.String(128), nullable=False),
        sa.Column("scope", sa.String(), nullable=False),
        sa.Column("user_id", UUID, nullable=False),
        sa.Column("payload_fingerprint", sa.String(64), nullable=False),
        sa.Column("status", sa.String(), server_default="in_progress", nullable=False),
        sa.Column("stored_result", postgresql.JSONB(), nullable=True),
        sa.Column("error_code", sa.String(), nullable=True),
        sa.Column("error_message", sa.String(), nullable=True),
        sa.Column("created_at", TZ, server_default=sa.func.now(), nullable=False),
        sa.Column("expires_at", TZ, nullable=False),
        sa.UniqueConstraint("key", "scope", "user_id", name="uq_idempotency_key_scope_user"),
        sa.CheckConstraint(
            "status IN ('in_progress', 'completed', 'failed')",
            name="ck_idempotency_records_status",
        ),
    )
    op.create_index("ix_idempotency_records_expires_at", "idempotency_records", ["expires_at"])


def downgrade() -> None:
    for table in (
        "idempotency_records",
        "reservations",
        "granular_calendar_permissions",
        "granular_resource_permissions",
        "reservation_calendar_roles",
        "reservation_calendars",
        "resources",
        "resource_types",
        "organization_memberships",
        "organization_admins",
        "organizations",
        "users",
    ):
        op.drop_table(table)
