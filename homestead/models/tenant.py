"""Tenant model — the live occupant record produced by onboarding."""

import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import StrEnum

from sqlmodel import Field, SQLModel

from homestead.models.base import TimestampMixin, new_uuid


class TenantStatus(StrEnum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    EVICTED = "EVICTED"
    MOVED_OUT = "MOVED_OUT"


class Tenant(TimestampMixin, SQLModel, table=True):
    __tablename__ = "tenants"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    identity_id: uuid.UUID = Field(foreign_key="identities.id", nullable=False, index=True)
    landlord_id: uuid.UUID = Field(foreign_key="identities.id", nullable=False, index=True)
    property_id: uuid.UUID | None = Field(
        default=None, foreign_key="properties.id", nullable=True, index=True,
    )
    invitation_id: uuid.UUID | None = Field(
        default=None, nullable=True, unique=True, index=True,
    )
    # Null when the tenant is attached to the whole property
    unit_id: uuid.UUID | None = Field(
        default=None, foreign_key="units.id", nullable=True, index=True,
    )

    email: str = Field(max_length=320, nullable=False)
    first_name: str = Field(default="", max_length=100)
    last_name: str = Field(default="", max_length=100)
    phone: str | None = Field(default=None, max_length=50)
    date_of_birth: date | None = None
    emergency_contact: str | None = Field(default=None, max_length=255)
    emergency_phone: str | None = Field(default=None, max_length=50)

    lease_start: date | None = None
    lease_end: date | None = None
    rent_amount: Decimal | None = Field(default=None, max_digits=12, decimal_places=2)
    security_deposit: Decimal | None = Field(default=None, max_digits=12, decimal_places=2)

    status: TenantStatus = Field(default=TenantStatus.ACTIVE)


# ── Pydantic schemas ─────────────────────────────────────────

class TenantRead(SQLModel):
    id: uuid.UUID
    identity_id: uuid.UUID
    landlord_id: uuid.UUID
    invitation_id: uuid.UUID | None
    property_id: uuid.UUID | None
    unit_id: uuid.UUID | None
    email: str
    first_name: str
    last_name: str
    phone: str | None
    lease_start: date | None
    lease_end: date | None
    rent_amount: Decimal | None
    security_deposit: Decimal | None
    status: TenantStatus
    created_at: datetime
