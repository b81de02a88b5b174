"""Token verification — read-only checks on an (invitation, token) pair."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import datetime

from homestead.core.security import tokens_match
from homestead.exceptions import (
    AlreadyVerified,
    InvitationExpired,
    InvitationNotFound,
    TokenMismatch,
    VerificationError,
)
from homestead.models.base import utcnow
from homestead.models.invitation import Invitation
from homestead.services.invitations import InvitationStore

logger = logging.getLogger(__name__)


def check_invitation(invitation: Invitation | None, token: str, now: datetime) -> Invitation:
    """Raise the first failing check, else return the invitation.

    Order: not found, already verified, expired, token mismatch. A verified
    invitation reports AlreadyVerified even past expiry, and an expired one
    reports Expired whatever token was supplied.
    """
    if invitation is None:
        raise InvitationNotFound()
    if invitation.is_verified:
        raise AlreadyVerified()
    if now > invitation.expires_at:
        raise InvitationExpired()
    if not tokens_match(token, invitation.verification_token):
        raise TokenMismatch()
    return invitation


class TokenVerifier:
    """Validates a token against an invitation. Never writes."""

    def __init__(
        self,
        invitations: InvitationStore,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.invitations = invitations
        self.clock = clock

    async def verify(self, invitation_id: uuid.UUID, token: str) -> Invitation:
        invitation = await self.invitations.get(invitation_id)
        try:
            return check_invitation(invitation, token, self.clock())
        except VerificationError as exc:
            logger.info("Verification rejected for invitation %s: %s", invitation_id, exc)
            raise
