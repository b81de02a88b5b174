"""Tenant invitations — landlord-scoped CRUD plus the public token lookup."""

import logging
import uuid
from datetime import date, datetime, timedelta
from decimal import Decimal

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from homestead.api.deps import Landlord, NotifierDep, Session
from homestead.core.config import get_settings
from homestead.models.invitation import (
    Invitation,
    InvitationCreate,
    InvitationCreated,
    InvitationRead,
)
from homestead.models.profile import Profile
from homestead.models.property import Property, Unit
from homestead.services.invitations import InvitationStore
from homestead.services.notifier import NotificationKind, Notifier
from homestead.services.occupancy import OccupancyAccountant

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/invitations", tags=["invitations"])

settings = get_settings()


# ── Public lookup schemas ─────────────────────────────────────

class PropertySummary(BaseModel):
    id: uuid.UUID
    name: str
    address: str


class UnitSummary(BaseModel):
    id: uuid.UUID
    unit_number: str


class LandlordSummary(BaseModel):
    first_name: str
    last_name: str
    email: str


class InvitationLookup(BaseModel):
    """What the prospective tenant sees before signing up."""
    id: uuid.UUID
    email: str
    first_name: str
    last_name: str
    phone: str | None
    lease_start: date | None
    lease_end: date | None
    rent_amount: Decimal | None
    security_deposit: Decimal | None
    expires_at: datetime
    unit: UnitSummary | None = None
    property: PropertySummary | None = None
    landlord: LandlordSummary | None = None


# ── Helpers ───────────────────────────────────────────────────

def _ttl() -> timedelta:
    return timedelta(days=settings.invitation_ttl_days)


def _verification_url(inv: Invitation) -> str:
    base = settings.app_base_url.rstrip("/")
    return f"{base}/auth/tenant-verify?token={inv.verification_token}&invitationId={inv.id}"


def _to_read(inv: Invitation) -> InvitationRead:
    return InvitationRead.model_validate(inv, update={"status": inv.display_status})


def _to_created(inv: Invitation) -> InvitationCreated:
    return InvitationCreated.model_validate(
        inv,
        update={
            "status": inv.display_status,
            "verification_url": _verification_url(inv),
        },
    )


async def _resolve_target(
    body: InvitationCreate, landlord_id: uuid.UUID, session: AsyncSession
) -> uuid.UUID:
    """Return the property the invitation targets, checking landlord ownership."""
    if body.unit_id is not None:
        unit = await session.get(Unit, body.unit_id)
        prop = await session.get(Property, unit.property_id) if unit else None
        if unit is None or prop is None or prop.landlord_id != landlord_id:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unit not found")
        if body.property_id is not None and body.property_id != unit.property_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Unit does not belong to the given property",
            )
        return unit.property_id

    if body.property_id is not None:
        prop = await session.get(Property, body.property_id)
        if prop is None or prop.landlord_id != landlord_id:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND, detail="Property not found"
            )
        return prop.id

    raise HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail="An invitation must target a unit or a property",
    )


async def _send_invitation_email(
    inv: Invitation, session: AsyncSession, notifier: Notifier
) -> bool:
    """Fire the invitation email. Never raises."""
    try:
        property_name, unit_number = await OccupancyAccountant(session).describe(
            inv.property_id, inv.unit_id
        )
        landlord = await session.get(Profile, inv.landlord_id)
        landlord_name = (
            f"{landlord.first_name} {landlord.last_name}".strip() if landlord else ""
        )
        return await notifier.send(NotificationKind.INVITATION, {
            "email": inv.email,
            "first_name": inv.first_name,
            "last_name": inv.last_name,
            "property_name": property_name,
            "unit_number": unit_number,
            "landlord_name": landlord_name or "Your property manager",
            "verification_url": _verification_url(inv),
            "expires_at": inv.expires_at.isoformat(),
        })
    except Exception:
        logger.warning("Invitation email failed for invitation %s", inv.id, exc_info=True)
        return False


async def _get_or_404(
    invitation_id: uuid.UUID, landlord_id: uuid.UUID, session: AsyncSession
) -> Invitation:
    inv = await InvitationStore(session).get_for_landlord(invitation_id, landlord_id)
    if inv is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invitation not found")
    return inv


# ── Routes ────────────────────────────────────────────────────

@router.post("", response_model=InvitationCreated, status_code=status.HTTP_201_CREATED)
async def create_invitation(
    body: InvitationCreate,
    auth: Landlord,
    session: Session,
    notifier: NotifierDep,
) -> InvitationCreated:
    property_id = await _resolve_target(body, auth.identity_id, session)
    inv = await InvitationStore(session).create(
        auth.identity_id, body, property_id=property_id, ttl=_ttl()
    )
    await _send_invitation_email(inv, session, notifier)
    return _to_created(inv)


@router.get("", response_model=list[InvitationRead])
async def list_invitations(
    auth: Landlord,
    session: Session,
) -> list[InvitationRead]:
    invitations = await InvitationStore(session).list_for_landlord(auth.identity_id)
    return [_to_read(inv) for inv in invitations]


@router.get("/lookup", response_model=InvitationLookup)
async def lookup_invitation(
    session: Session,
    token: str = Query(min_length=1),
) -> InvitationLookup:
    """Public: resolve an invitation link before the tenant signs up."""
    inv = await InvitationStore(session).find_open_by_token(token)
    if inv is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Invalid or expired invitation token",
        )

    unit = await session.get(Unit, inv.unit_id) if inv.unit_id else None
    prop = await session.get(Property, inv.property_id) if inv.property_id else None
    landlord = await session.get(Profile, inv.landlord_id)

    return InvitationLookup(
        id=inv.id,
        email=inv.email,
        first_name=inv.first_name,
        last_name=inv.last_name,
        phone=inv.phone,
        lease_start=inv.lease_start,
        lease_end=inv.lease_end,
        rent_amount=inv.rent_amount,
        security_deposit=inv.security_deposit,
        expires_at=inv.expires_at,
        unit=UnitSummary(id=unit.id, unit_number=unit.unit_number) if unit else None,
        property=(
            PropertySummary(id=prop.id, name=prop.name, address=prop.address) if prop else None
        ),
        landlord=(
            LandlordSummary(
                first_name=landlord.first_name,
                last_name=landlord.last_name,
                email=landlord.email,
            )
            if landlord
            else None
        ),
    )


@router.post("/{invitation_id}/resend", response_model=InvitationCreated)
async def resend_invitation(
    invitation_id: uuid.UUID,
    auth: Landlord,
    session: Session,
    notifier: NotifierDep,
) -> InvitationCreated:
    """Rotate the token, reset the expiry, and email the new link."""
    inv = await _get_or_404(invitation_id, auth.identity_id, session)
    if inv.is_verified:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Invitation already verified",
        )
    inv = await InvitationStore(session).rotate_token(inv, ttl=_ttl())
    await _send_invitation_email(inv, session, notifier)
    return _to_created(inv)


@router.delete("/{invitation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_invitation(
    invitation_id: uuid.UUID,
    auth: Landlord,
    session: Session,
) -> None:
    inv = await _get_or_404(invitation_id, auth.identity_id, session)
    await InvitationStore(session).delete(inv)
