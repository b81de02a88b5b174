"""Identity provisioner — creates authentication accounts."""

from __future__ import annotations

import json
import logging
import uuid

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from homestead.core.security import hash_password, verify_password
from homestead.exceptions import DuplicateEmail, IdentityUnavailable, WeakCredential
from homestead.models.identity import Identity, UserRole
from homestead.models.profile import Profile
from homestead.models.tenant import Tenant

logger = logging.getLogger(__name__)


class IdentityProvisioner:
    def __init__(self, session: AsyncSession, *, min_password_length: int = 8) -> None:
        self.session = session
        self.min_password_length = min_password_length

    async def create_identity(
        self,
        email: str,
        password: str,
        metadata: dict | None = None,
        role: UserRole = UserRole.TENANT,
    ) -> uuid.UUID:
        """Create an account and return its id.

        Raises:
            WeakCredential: password shorter than the configured minimum.
            DuplicateEmail: an account already owns this email.
            IdentityUnavailable: the store could not be written.
        """
        if len(password) < self.min_password_length:
            raise WeakCredential(
                f"Password must be at least {self.min_password_length} characters long"
            )

        email = email.strip().lower()
        try:
            if await self.get_by_email(email) is not None:
                raise DuplicateEmail()

            identity = Identity(
                email=email,
                password_hash=hash_password(password),
                role=role,
                user_metadata=json.dumps(metadata or {}, default=str),
            )
            self.session.add(identity)
            await self.session.commit()
        except IntegrityError as exc:
            await self.session.rollback()
            raise DuplicateEmail() from exc
        except SQLAlchemyError as exc:
            await self.session.rollback()
            logger.exception("Identity creation failed for %s", email)
            raise IdentityUnavailable() from exc

        logger.info("Created %s identity %s", role, identity.id)
        return identity.id

    async def get_by_email(self, email: str) -> Identity | None:
        stmt = select(Identity).where(Identity.email == email.strip().lower())
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def authenticate(self, email: str, password: str) -> Identity | None:
        identity = await self.get_by_email(email)
        if identity is None or not verify_password(password, identity.password_hash):
            return None
        return identity

    async def delete_if_unreferenced(self, identity_id: uuid.UUID) -> bool:
        """Remove a tenant identity that no profile or tenant row points at.

        Does not commit. Returns whether the identity was deleted.
        """
        identity = await self.session.get(Identity, identity_id)
        if identity is None or identity.role != UserRole.TENANT:
            return False

        tenants = await self.session.execute(
            select(func.count()).select_from(Tenant).where(Tenant.identity_id == identity_id)
        )
        if tenants.scalar_one() or await self.session.get(Profile, identity_id) is not None:
            return False

        await self.session.delete(identity)
        return True
