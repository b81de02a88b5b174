"""Profile writer — durable profile and tenant rows for a new identity."""

from __future__ import annotations

import logging
import uuid

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from homestead.exceptions import DuplicateProfile, DuplicateTenant, StoreUnavailable
from homestead.models.invitation import Invitation
from homestead.models.profile import Profile, ProfileFields
from homestead.models.tenant import Tenant, TenantStatus

logger = logging.getLogger(__name__)


class ProfileWriter:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_profile(self, identity_id: uuid.UUID) -> Profile | None:
        return await self.session.get(Profile, identity_id)

    async def create_profile(self, identity_id: uuid.UUID, fields: ProfileFields) -> uuid.UUID:
        """Insert the profile keyed by ``identity_id`` and commit.

        Raises:
            DuplicateProfile: a profile already exists for this identity.
            StoreUnavailable: the write failed for any other reason.
        """
        if await self.get_profile(identity_id) is not None:
            raise DuplicateProfile()

        profile = Profile(
            id=identity_id,
            email=fields.email,
            first_name=fields.first_name,
            last_name=fields.last_name,
            phone=fields.phone,
            role=fields.role,
        )
        self.session.add(profile)
        try:
            await self.session.commit()
        except IntegrityError as exc:
            await self.session.rollback()
            raise DuplicateProfile() from exc
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise StoreUnavailable(f"Profile write failed: {exc}") from exc

        logger.info("Created %s profile for identity %s", fields.role, identity_id)
        return profile.id

    async def find_tenant_for_invitation(
        self, invitation_id: uuid.UUID, identity_id: uuid.UUID
    ) -> Tenant | None:
        stmt = select(Tenant).where(
            Tenant.invitation_id == invitation_id,
            Tenant.identity_id == identity_id,
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def create_tenant(
        self,
        invitation: Invitation,
        identity_id: uuid.UUID,
        property_id: uuid.UUID | None,
    ) -> Tenant:
        """Insert an ACTIVE tenant carrying the invitation's contact and lease terms.

        Raises:
            DuplicateTenant: the invitation already produced a tenant.
            StoreUnavailable: the write failed for any other reason.
        """
        tenant = Tenant(
            identity_id=identity_id,
            landlord_id=invitation.landlord_id,
            invitation_id=invitation.id,
            property_id=property_id,
            unit_id=invitation.unit_id,
            email=invitation.email,
            first_name=invitation.first_name,
            last_name=invitation.last_name,
            phone=invitation.phone,
            date_of_birth=invitation.date_of_birth,
            emergency_contact=invitation.emergency_contact,
            emergency_phone=invitation.emergency_phone,
            lease_start=invitation.lease_start,
            lease_end=invitation.lease_end,
            rent_amount=invitation.rent_amount,
            security_deposit=invitation.security_deposit,
            status=TenantStatus.ACTIVE,
        )
        self.session.add(tenant)
        try:
            await self.session.commit()
        except IntegrityError as exc:
            await self.session.rollback()
            raise DuplicateTenant() from exc
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise StoreUnavailable(f"Tenant write failed: {exc}") from exc

        logger.info("Created tenant %s from invitation %s", tenant.id, invitation.id)
        return tenant

    async def delete_tenant(self, tenant_id: uuid.UUID) -> None:
        """Does not commit."""
        tenant = await self.session.get(Tenant, tenant_id)
        if tenant is not None:
            await self.session.delete(tenant)

    async def delete_profile(self, identity_id: uuid.UUID) -> None:
        """Does not commit."""
        profile = await self.get_profile(identity_id)
        if profile is not None:
            await self.session.delete(profile)
