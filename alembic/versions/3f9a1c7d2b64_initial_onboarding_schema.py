"""initial onboarding schema

Revision ID: 3f9a1c7d2b64
Revises: 
Create Date: 2026-10-19 09:12:44.201337

"""
from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '3f9a1c7d2b64'
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

# Types are created once up front; columns only reference them
user_role = postgresql.ENUM(
    "LANDLORD", "TENANT", "ADMIN", name="userrole", create_type=False,
)
unit_status = postgresql.ENUM(
    "AVAILABLE", "OCCUPIED", "MAINTENANCE", "UNAVAILABLE", "RESERVED",
    name="unitstatus", create_type=False,
)
tenant_status = postgresql.ENUM(
    "ACTIVE", "INACTIVE", "EVICTED", "MOVED_OUT", name="tenantstatus", create_type=False,
)
attempt_status = postgresql.ENUM(
    "IN_PROGRESS", "COMPLETED", "FAILED", "COMPENSATED",
    name="attemptstatus", create_type=False,
)
onboarding_stage = postgresql.ENUM(
    "STARTED", "TOKEN_VALID", "INVITATION_MARKED", "PROFILE_CREATED",
    "TENANT_CREATED", "OCCUPANCY_UPDATED", "NOTIFIED",
    name="onboardingstage", create_type=False,
)

_ENUMS = (user_role, unit_status, tenant_status, attempt_status, onboarding_stage)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade() -> None:
    bind = op.get_bind()
    for enum in _ENUMS:
        enum.create(bind, checkfirst=True)

    op.create_table(
        "identities",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("password_hash", sa.String(), nullable=False),
        sa.Column("role", user_role, nullable=False),
        sa.Column("user_metadata", sa.Text(), nullable=False, server_default="{}"),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_identities_email", "identities", ["email"], unique=True)

    op.create_table(
        "profiles",
        sa.Column("id", sa.Uuid(), sa.ForeignKey("identities.id"), primary_key=True),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("role", user_role, nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_profiles_email", "profiles", ["email"])

    op.create_table(
        "properties",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("landlord_id", sa.Uuid(), sa.ForeignKey("identities.id"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("address", sa.String(500), nullable=False),
        sa.Column("total_units", sa.Integer(), nullable=False),
        sa.Column("available_units", sa.Integer(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_properties_landlord_id", "properties", ["landlord_id"])

    op.create_table(
        "units",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("property_id", sa.Uuid(), sa.ForeignKey("properties.id"), nullable=False),
        sa.Column("unit_number", sa.String(50), nullable=False),
        sa.Column("status", unit_status, nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_units_property_id", "units", ["property_id"])
    op.create_index("ix_units_status", "units", ["status"])

    op.create_table(
        "tenant_invitations",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("landlord_id", sa.Uuid(), sa.ForeignKey("identities.id"), nullable=False),
        sa.Column("unit_id", sa.Uuid(), sa.ForeignKey("units.id"), nullable=True),
        sa.Column("property_id", sa.Uuid(), sa.ForeignKey("properties.id"), nullable=True),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("date_of_birth", sa.Date(), nullable=True),
        sa.Column("emergency_contact", sa.String(255), nullable=True),
        sa.Column("emergency_phone", sa.String(50), nullable=True),
        sa.Column("lease_start", sa.Date(), nullable=True),
        sa.Column("lease_end", sa.Date(), nullable=True),
        sa.Column("rent_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("security_deposit", sa.Numeric(12, 2), nullable=True),
        sa.Column("verification_token", sa.String(128), nullable=False),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("is_verified", sa.Boolean(), nullable=False),
        sa.Column("verified_at", sa.DateTime(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_tenant_invitations_landlord_id", "tenant_invitations", ["landlord_id"])
    op.create_index("ix_tenant_invitations_email", "tenant_invitations", ["email"])
    op.create_index(
        "ix_tenant_invitations_verification_token", "tenant_invitations", ["verification_token"]
    )

    op.create_table(
        "tenants",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("identity_id", sa.Uuid(), sa.ForeignKey("identities.id"), nullable=False),
        sa.Column("landlord_id", sa.Uuid(), sa.ForeignKey("identities.id"), nullable=False),
        sa.Column("property_id", sa.Uuid(), sa.ForeignKey("properties.id"), nullable=True),
        sa.Column("invitation_id", sa.Uuid(), nullable=True),
        sa.Column("unit_id", sa.Uuid(), sa.ForeignKey("units.id"), nullable=True),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("date_of_birth", sa.Date(), nullable=True),
        sa.Column("emergency_contact", sa.String(255), nullable=True),
        sa.Column("emergency_phone", sa.String(50), nullable=True),
        sa.Column("lease_start", sa.Date(), nullable=True),
        sa.Column("lease_end", sa.Date(), nullable=True),
        sa.Column("rent_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("security_deposit", sa.Numeric(12, 2), nullable=True),
        sa.Column("status", tenant_status, nullable=False),
        *_timestamps(),
    )
    for column in ("identity_id", "landlord_id", "property_id", "unit_id"):
        op.create_index(f"ix_tenants_{column}", "tenants", [column])
    # One tenant per invitation; compensation deletes the row before a retry
    op.create_index("ix_tenants_invitation_id", "tenants", ["invitation_id"], unique=True)

    op.create_table(
        "onboarding_attempts",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("invitation_id", sa.Uuid(), nullable=False),
        sa.Column("identity_id", sa.Uuid(), nullable=False),
        sa.Column("landlord_id", sa.Uuid(), nullable=False),
        sa.Column("status", attempt_status, nullable=False),
        sa.Column("stage", onboarding_stage, nullable=False),
        sa.Column("property_id", sa.Uuid(), nullable=True),
        sa.Column("unit_id", sa.Uuid(), nullable=True),
        sa.Column("profile_id", sa.Uuid(), nullable=True),
        sa.Column("tenant_id", sa.Uuid(), nullable=True),
        sa.Column("unit_flipped", sa.Boolean(), nullable=False),
        sa.Column("failed_stage", onboarding_stage, nullable=True),
        sa.Column("error_kind", sa.String(100), nullable=True),
        sa.Column("error_message", sa.String(2000), nullable=True),
        sa.Column("resume_count", sa.Integer(), nullable=False),
        *_timestamps(),
    )
    for column in ("invitation_id", "identity_id", "landlord_id", "status"):
        op.create_index(f"ix_onboarding_attempts_{column}", "onboarding_attempts", [column])


def downgrade() -> None:
    op.drop_table("onboarding_attempts")
    op.drop_table("tenants")
    op.drop_table("tenant_invitations")
    op.drop_table("units")
    op.drop_table("properties")
    op.drop_table("profiles")
    op.drop_table("identities")
    bind = op.get_bind()
    for enum in _ENUMS:
        enum.drop(bind, checkfirst=True)
