"""Invitation store — reads and conditional writes on tenant invitations."""

from __future__ import annotations

import logging
import uuid
from datetime import timedelta

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from homestead.core.security import generate_verification_token
from homestead.models.base import touch, utcnow
from homestead.models.invitation import Invitation, InvitationCreate

logger = logging.getLogger(__name__)


class InvitationStore:
    """Thin wrapper over the ``tenant_invitations`` table.

    Writes that belong to the onboarding saga (``mark_verified``, ``reopen``)
    do not commit; the orchestrator commits them together with the attempt
    record. Landlord-facing writes commit immediately.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, invitation_id: uuid.UUID) -> Invitation | None:
        # Conditional updates bypass the identity map; always reload
        return await self.session.get(Invitation, invitation_id, populate_existing=True)

    async def get_for_landlord(
        self, invitation_id: uuid.UUID, landlord_id: uuid.UUID
    ) -> Invitation | None:
        stmt = select(Invitation).where(
            Invitation.id == invitation_id,
            Invitation.landlord_id == landlord_id,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_for_landlord(self, landlord_id: uuid.UUID) -> list[Invitation]:
        stmt = (
            select(Invitation)
            .where(Invitation.landlord_id == landlord_id)
            .order_by(Invitation.created_at.desc())  # type: ignore[union-attr]
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def find_open_by_token(self, token: str) -> Invitation | None:
        """Unverified, unexpired invitation carrying ``token``."""
        stmt = select(Invitation).where(
            Invitation.verification_token == token,
            Invitation.is_verified.is_(False),  # type: ignore[union-attr]
            Invitation.expires_at >= utcnow(),
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create(
        self,
        landlord_id: uuid.UUID,
        body: InvitationCreate,
        *,
        property_id: uuid.UUID | None,
        ttl: timedelta,
    ) -> Invitation:
        invitation = Invitation(
            landlord_id=landlord_id,
            unit_id=body.unit_id,
            property_id=property_id,
            email=str(body.email).lower(),
            first_name=body.first_name,
            last_name=body.last_name,
            phone=body.phone,
            date_of_birth=body.date_of_birth,
            emergency_contact=body.emergency_contact,
            emergency_phone=body.emergency_phone,
            lease_start=body.lease_start,
            lease_end=body.lease_end,
            rent_amount=body.rent_amount,
            security_deposit=body.security_deposit,
            verification_token=generate_verification_token(),
            expires_at=utcnow() + ttl,
        )
        self.session.add(invitation)
        await self.session.commit()
        await self.session.refresh(invitation)
        logger.info("Created invitation %s for %s", invitation.id, invitation.email)
        return invitation

    async def rotate_token(self, invitation: Invitation, *, ttl: timedelta) -> Invitation:
        """Resend: new opaque token and a fresh expiry. ``is_verified`` is untouched."""
        invitation.verification_token = generate_verification_token()
        invitation.expires_at = utcnow() + ttl
        touch(invitation)
        self.session.add(invitation)
        await self.session.commit()
        await self.session.refresh(invitation)
        logger.info("Rotated token for invitation %s", invitation.id)
        return invitation

    async def delete(self, invitation: Invitation) -> None:
        await self.session.delete(invitation)
        await self.session.commit()
        logger.info("Deleted invitation %s", invitation.id)

    async def mark_verified(self, invitation_id: uuid.UUID, token: str) -> bool:
        """Compare-and-set ``is_verified`` from false to true.

        Returns True only for the caller that flipped the flag. The token and
        expiry are re-checked in the same statement, so a concurrent resend or
        a second verifier cannot both win.
        """
        now = utcnow()
        stmt = (
            update(Invitation)
            .where(
                Invitation.id == invitation_id,
                Invitation.is_verified.is_(False),  # type: ignore[union-attr]
                Invitation.verification_token == token,
                Invitation.expires_at >= now,
            )
            .values(is_verified=True, verified_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def reopen(self, invitation_id: uuid.UUID) -> None:
        """Undo a consumed verification so the landlord can resend the invitation."""
        now = utcnow()
        stmt = (
            update(Invitation)
            .where(Invitation.id == invitation_id)
            .values(
                is_verified=False,
                verified_at=None,
                verification_token=generate_verification_token(),
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)
