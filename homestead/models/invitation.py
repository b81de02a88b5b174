"""Invitation model — a landlord-issued, time-boxed, single-use offer."""

import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import StrEnum

from pydantic import EmailStr
from sqlmodel import Field, SQLModel

from homestead.models.base import TimestampMixin, new_uuid, utcnow


class InvitationStatus(StrEnum):
    """Display status derived from ``is_verified`` and ``expires_at``."""
    PENDING = "pending"
    EXPIRED = "expired"
    VERIFIED = "verified"


class Invitation(TimestampMixin, SQLModel, table=True):
    __tablename__ = "tenant_invitations"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    landlord_id: uuid.UUID = Field(foreign_key="identities.id", nullable=False, index=True)
    unit_id: uuid.UUID | None = Field(default=None, foreign_key="units.id", nullable=True)
    property_id: uuid.UUID | None = Field(
        default=None, foreign_key="properties.id", nullable=True,
    )

    email: str = Field(max_length=320, nullable=False, index=True)
    first_name: str = Field(default="", max_length=100)
    last_name: str = Field(default="", max_length=100)
    phone: str | None = Field(default=None, max_length=50)
    date_of_birth: date | None = None
    emergency_contact: str | None = Field(default=None, max_length=255)
    emergency_phone: str | None = Field(default=None, max_length=50)

    # Lease terms, copied onto the Tenant on success
    lease_start: date | None = None
    lease_end: date | None = None
    rent_amount: Decimal | None = Field(default=None, max_digits=12, decimal_places=2)
    security_deposit: Decimal | None = Field(default=None, max_digits=12, decimal_places=2)

    verification_token: str = Field(max_length=128, nullable=False, index=True)
    expires_at: datetime = Field(nullable=False)
    is_verified: bool = Field(default=False)
    verified_at: datetime | None = None

    @property
    def display_status(self) -> InvitationStatus:
        if self.is_verified:
            return InvitationStatus.VERIFIED
        if utcnow() > self.expires_at:
            return InvitationStatus.EXPIRED
        return InvitationStatus.PENDING


# ── Pydantic schemas ─────────────────────────────────────────

class InvitationCreate(SQLModel):
    email: EmailStr
    first_name: str = Field(default="", max_length=100)
    last_name: str = Field(default="", max_length=100)
    phone: str | None = Field(default=None, max_length=50)
    date_of_birth: date | None = None
    emergency_contact: str | None = Field(default=None, max_length=255)
    emergency_phone: str | None = Field(default=None, max_length=50)
    unit_id: uuid.UUID | None = None
    property_id: uuid.UUID | None = None
    lease_start: date | None = None
    lease_end: date | None = None
    rent_amount: Decimal | None = Field(default=None, ge=0)
    security_deposit: Decimal | None = Field(default=None, ge=0)


class InvitationRead(SQLModel):
    id: uuid.UUID
    landlord_id: uuid.UUID
    unit_id: uuid.UUID | None
    property_id: uuid.UUID | None
    email: str
    first_name: str
    last_name: str
    phone: str | None
    lease_start: date | None
    lease_end: date | None
    rent_amount: Decimal | None
    security_deposit: Decimal | None
    expires_at: datetime
    is_verified: bool
    verified_at: datetime | None
    status: InvitationStatus
    created_at: datetime


class InvitationCreated(InvitationRead):
    """Returned to the landlord on create / resend — includes the link token."""
    verification_token: str
    verification_url: str
