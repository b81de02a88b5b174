"""Onboarding orchestrator — turns an invitation into a live tenant.

Flow (the attempt record stores the last stage completed):

  STARTED → TOKEN_VALID → INVITATION_MARKED → PROFILE_CREATED
          → TENANT_CREATED → OCCUPANCY_UPDATED → NOTIFIED

Nothing is written before INVITATION_MARKED, so verification failures are
safe to retry. Marking the invitation is a compare-and-set committed together
with a new ``OnboardingAttempt``; from then on every stage commits on its own
and advances the attempt. A stage failure leaves the attempt ``failed`` with
the stage that broke, and ``recover`` later either resumes it from the last
completed stage or compensates it. Attempts past TENANT_CREATED are only
ever resumed.

Resuming and compensating both claim the attempt with a compare-and-set on
its status and resume count, and stage advances only land while the resume
count still matches, so one runner owns an attempt at a time.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from functools import partial
from typing import Any

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from homestead.core.config import Settings, get_settings
from homestead.exceptions import (
    AlreadyVerified,
    AttemptClaimed,
    AttemptNotFound,
    DuplicateTenant,
    HomesteadError,
    InvalidAttemptState,
    OnboardingError,
    StoreError,
    StoreUnavailable,
    UnitNotFound,
)
from homestead.models.base import touch, utcnow
from homestead.models.identity import UserRole
from homestead.models.invitation import Invitation
from homestead.models.onboarding import AttemptStatus, OnboardingAttempt, OnboardingStage
from homestead.models.profile import ProfileFields
from homestead.models.tenant import Tenant
from homestead.services.identity import IdentityProvisioner
from homestead.services.invitations import InvitationStore
from homestead.services.notifier import NotificationKind, Notifier
from homestead.services.occupancy import OccupancyAccountant
from homestead.services.profiles import ProfileWriter
from homestead.services.verification import TokenVerifier, check_invitation

logger = logging.getLogger(__name__)


@dataclass
class OnboardingResult:
    """Outcome of a successful (or already completed) onboarding."""
    tenant: Tenant
    attempt: OnboardingAttempt
    notified: bool = False


def _before(attempt: OnboardingAttempt, stage: OnboardingStage) -> bool:
    return OnboardingStage(attempt.stage).order < stage.order


class OnboardingOrchestrator:
    """Sequences verification, identity linking, tenant creation and occupancy.

    One instance serves one unit of work; it shares the caller's session with
    the stores it drives.
    """

    def __init__(
        self,
        session: AsyncSession,
        notifier: Notifier,
        *,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.session = session
        self.notifier = notifier
        self.settings = settings or get_settings()
        self.invitations = InvitationStore(session)
        self.verifier = TokenVerifier(self.invitations, clock)
        self.profiles = ProfileWriter(session)
        self.occupancy = OccupancyAccountant(session)
        self.identities = IdentityProvisioner(
            session, min_password_length=self.settings.password_min_length
        )

    # ── Entry points ──────────────────────────────────────────

    async def onboard(
        self, invitation_id: uuid.UUID, token: str, identity_id: uuid.UUID
    ) -> OnboardingResult:
        """Run one onboarding for ``identity_id``.

        Raises:
            VerificationError: the token check failed; nothing was written.
            OnboardingError: a stage failed after the invitation was consumed.
        """
        logger.info("Onboarding invitation %s: %s", invitation_id, OnboardingStage.STARTED)
        invitation = await self.verifier.verify(invitation_id, token)
        logger.info("Onboarding invitation %s: %s", invitation_id, OnboardingStage.TOKEN_VALID)

        attempt = await self._consume_invitation(invitation, token, identity_id)
        return await self._run(attempt, invitation)

    async def resume(self, attempt_id: uuid.UUID) -> OnboardingResult:
        """Continue a stalled attempt after its last completed stage.

        Raises:
            AttemptClaimed: another caller resumed or compensated it first.
            InvalidAttemptState: the attempt was rolled back or its invitation
                is no longer consumed.
            OnboardingError: a remaining stage failed again.
        """
        attempt = await self._load_attempt(attempt_id)
        if attempt.status == AttemptStatus.COMPLETED:
            tenant = await self.session.get(Tenant, attempt.tenant_id)
            return OnboardingResult(tenant=tenant, attempt=attempt)
        if attempt.status == AttemptStatus.COMPENSATED:
            raise InvalidAttemptState("Onboarding attempt was rolled back")
        if attempt.status == AttemptStatus.IN_PROGRESS and not self._stalled(attempt):
            raise AttemptClaimed()

        invitation = await self.invitations.get(attempt.invitation_id)
        if invitation is None or not invitation.is_verified:
            raise InvalidAttemptState("Invitation for this attempt is no longer consumed")

        await self._claim(
            attempt,
            status=AttemptStatus.IN_PROGRESS,
            resume_count=attempt.resume_count + 1,
            failed_stage=None,
            error_kind=None,
            error_message=None,
        )
        await self.session.commit()
        attempt = await self._load_attempt(attempt_id)

        logger.info(
            "Resuming attempt %s after %s (resume #%d)",
            attempt.id, attempt.stage, attempt.resume_count,
        )
        return await self._run(attempt, invitation)

    async def compensate(self, attempt_id: uuid.UUID) -> OnboardingAttempt:
        """Roll back everything a stalled attempt wrote and re-open its invitation.

        The rollback, the unit release and the status change commit together.
        """
        attempt = await self._load_attempt(attempt_id)
        if attempt.status == AttemptStatus.COMPENSATED:
            return attempt
        if attempt.status == AttemptStatus.COMPLETED:
            raise InvalidAttemptState("Completed onboardings cannot be rolled back")

        released = False
        try:
            await self._claim(attempt, status=AttemptStatus.COMPENSATED)

            tenant_id = attempt.tenant_id
            if tenant_id is None:
                orphan = await self.profiles.find_tenant_for_invitation(
                    attempt.invitation_id, attempt.identity_id
                )
                tenant_id = orphan.id if orphan else None
            if tenant_id is not None:
                await self.profiles.delete_tenant(tenant_id)

            # A profile committed just before a failed stage advance still belongs here
            profile = await self.profiles.get_profile(attempt.identity_id)
            if profile is not None and (
                attempt.profile_id is not None or profile.created_at >= attempt.created_at
            ):
                await self.profiles.delete_profile(attempt.identity_id)

            if attempt.unit_flipped and attempt.unit_id is not None:
                released = await self._release_unit(attempt)

            await self.session.flush()
            await self.identities.delete_if_unreferenced(attempt.identity_id)
            await self.invitations.reopen(attempt.invitation_id)
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            logger.exception("Compensation failed for attempt %s", attempt_id)
            raise StoreUnavailable(f"Compensation failed: {exc}") from exc
        except StoreError:
            await self.session.rollback()
            logger.exception("Compensation failed for attempt %s", attempt_id)
            raise

        if released:
            await self._recompute_after_release(attempt)

        logger.warning(
            "Compensated attempt %s for invitation %s (was at %s)",
            attempt.id, attempt.invitation_id, attempt.stage,
        )
        return await self._load_attempt(attempt_id)

    async def recover(self, attempt_id: uuid.UUID) -> OnboardingAttempt:
        """Resume while resumes remain, otherwise compensate.

        Once the tenant exists the attempt is only ever resumed: occupancy and
        notification failures leave the tenant in place and counters may lag.
        """
        attempt = await self._load_attempt(attempt_id)
        if attempt.status in (AttemptStatus.COMPLETED, AttemptStatus.COMPENSATED):
            return attempt
        if attempt.status == AttemptStatus.IN_PROGRESS and not self._stalled(attempt):
            logger.info("Attempt %s is still running, leaving it alone", attempt.id)
            return attempt

        tenant_created = not _before(attempt, OnboardingStage.TENANT_CREATED)
        if not tenant_created and attempt.resume_count >= self.settings.onboarding_max_resumes:
            logger.warning(
                "Attempt %s exhausted %d resumes, compensating",
                attempt.id, attempt.resume_count,
            )
            return await self.compensate(attempt_id)

        try:
            result = await self.resume(attempt_id)
        except AttemptClaimed:
            logger.info("Attempt %s was picked up by another recovery", attempt_id)
            return await self._load_attempt(attempt_id)
        except InvalidAttemptState:
            if tenant_created:
                raise
            return await self.compensate(attempt_id)
        except OnboardingError as exc:
            logger.warning("Resume of attempt %s failed: %s", attempt_id, exc)
            return await self._load_attempt(attempt_id)
        return result.attempt

    # ── Stage sequencing ──────────────────────────────────────

    async def _consume_invitation(
        self, invitation: Invitation, token: str, identity_id: uuid.UUID
    ) -> OnboardingAttempt:
        stage = OnboardingStage.INVITATION_MARKED
        attempt: OnboardingAttempt | None = None
        try:
            won = await self.invitations.mark_verified(invitation.id, token)
            if won:
                attempt = OnboardingAttempt(
                    invitation_id=invitation.id,
                    identity_id=identity_id,
                    landlord_id=invitation.landlord_id,
                    unit_id=invitation.unit_id,
                    property_id=invitation.property_id,
                    stage=stage,
                )
                self.session.add(attempt)
                await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            logger.exception("Failed to mark invitation %s as verified", invitation.id)
            raise OnboardingError(
                "unavailable", stage, "Failed to mark invitation as verified"
            ) from exc

        fresh = await self.invitations.get(invitation.id)
        if attempt is None:
            # Lost the race: report why, as a fresh verification would
            check_invitation(fresh, token, self.verifier.clock())
            raise AlreadyVerified()

        logger.info("Onboarding invitation %s: %s (attempt %s)", invitation.id, stage, attempt.id)
        return attempt

    async def _run(self, attempt: OnboardingAttempt, invitation: Invitation) -> OnboardingResult:
        if _before(attempt, OnboardingStage.PROFILE_CREATED):
            stage = OnboardingStage.PROFILE_CREATED
            if attempt.unit_id is not None and attempt.property_id is None:
                await self._step(
                    attempt, stage, "Failed to fetch unit for property_id",
                    partial(self._resolve_property, attempt),
                )
            await self._step(
                attempt, stage, "Failed to create tenant profile",
                partial(self._create_profile, attempt, invitation),
            )
            await self._advance(attempt, stage)

        if _before(attempt, OnboardingStage.TENANT_CREATED):
            stage = OnboardingStage.TENANT_CREATED
            await self._step(
                attempt, stage, "Failed to create tenant account",
                partial(self._create_tenant, attempt, invitation),
            )
            await self._advance(attempt, stage)

        if _before(attempt, OnboardingStage.OCCUPANCY_UPDATED):
            stage = OnboardingStage.OCCUPANCY_UPDATED
            # Whole-property tenants leave unit state and counters alone
            if attempt.unit_id is not None:
                await self._step(
                    attempt, stage, "Failed to update unit status",
                    partial(self._occupy_unit, attempt),
                )
                await self._step(
                    attempt, stage, "Failed to update property availability",
                    partial(self.occupancy.recompute_availability, attempt.property_id),
                )
            await self._advance(attempt, stage)

        notified = False
        if _before(attempt, OnboardingStage.NOTIFIED):
            notified = await self._notify_welcome(attempt, invitation)
            await self._advance(attempt, OnboardingStage.NOTIFIED, status=AttemptStatus.COMPLETED)

        tenant = await self.session.get(Tenant, attempt.tenant_id)
        logger.info("Onboarding attempt %s completed: tenant %s", attempt.id, attempt.tenant_id)
        return OnboardingResult(tenant=tenant, attempt=attempt, notified=notified)

    async def _step(
        self,
        attempt: OnboardingAttempt,
        stage: OnboardingStage,
        message: str,
        action: Callable[[], Awaitable[Any]],
    ) -> Any:
        # Stores roll back on error, which expires every loaded row
        attempt_id, invitation_id = attempt.id, attempt.invitation_id
        generation = attempt.resume_count
        try:
            return await action()
        except Exception as exc:
            kind = exc.kind if isinstance(exc, HomesteadError) else "unavailable"
            logger.error(
                "Onboarding attempt %s (invitation %s) failed at %s [%s]: %s",
                attempt_id, invitation_id, stage, kind, exc,
            )
            await self._record_failure(
                attempt, attempt_id, generation, stage, kind, f"{message}: {exc}"
            )
            raise OnboardingError(kind, stage, message) from exc

    async def _advance(
        self,
        attempt: OnboardingAttempt,
        stage: OnboardingStage,
        status: AttemptStatus = AttemptStatus.IN_PROGRESS,
    ) -> None:
        attempt_id, generation = attempt.id, attempt.resume_count
        attempt.stage = stage
        attempt.status = status
        touch(attempt)
        self.session.add(attempt)
        try:
            await self.session.flush()
            owned = await self.session.execute(
                update(OnboardingAttempt)
                .where(
                    OnboardingAttempt.id == attempt_id,
                    OnboardingAttempt.resume_count == generation,
                )
                .values(updated_at=attempt.updated_at)
                .execution_options(synchronize_session=False)
            )
            if owned.rowcount != 1:
                await self.session.rollback()
                logger.warning("Attempt %s was taken over before reaching %s", attempt_id, stage)
                raise AttemptClaimed()
            await self.session.commit()
        except SQLAlchemyError as exc:
            logger.error("Could not advance attempt %s to %s: %s", attempt_id, stage, exc)
            await self._record_failure(
                attempt, attempt_id, generation, stage, "unavailable", str(exc)
            )
            raise OnboardingError("unavailable", stage, "Failed to record onboarding progress") from exc
        logger.info("Onboarding attempt %s: %s", attempt_id, stage)

    async def _record_failure(
        self,
        attempt: OnboardingAttempt,
        attempt_id: uuid.UUID,
        generation: int,
        stage: OnboardingStage,
        kind: str,
        message: str,
    ) -> None:
        try:
            await self.session.rollback()
            await self.session.refresh(attempt)
            if attempt.resume_count != generation or attempt.status != AttemptStatus.IN_PROGRESS:
                logger.warning("Attempt %s has a new owner, not recording failure", attempt_id)
                return
            attempt.status = AttemptStatus.FAILED
            attempt.failed_stage = stage
            attempt.error_kind = kind
            attempt.error_message = message[:2000]
            touch(attempt)
            self.session.add(attempt)
            await self.session.commit()
        except SQLAlchemyError:
            await self.session.rollback()
            logger.exception("Could not record failure of attempt %s", attempt_id)

    async def _claim(self, attempt: OnboardingAttempt, **values: Any) -> None:
        """Compare-and-set the attempt row against its status and resume count as loaded.

        Does not commit. Raises ``AttemptClaimed`` when another caller changed
        the row first.
        """
        stmt = (
            update(OnboardingAttempt)
            .where(
                OnboardingAttempt.id == attempt.id,
                OnboardingAttempt.status == attempt.status,
                OnboardingAttempt.resume_count == attempt.resume_count,
            )
            .values(updated_at=utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        if result.rowcount != 1:
            await self.session.rollback()
            raise AttemptClaimed()

    def _stalled(self, attempt: OnboardingAttempt) -> bool:
        cutoff = utcnow() - timedelta(minutes=self.settings.onboarding_stall_minutes)
        return attempt.updated_at < cutoff

    async def _release_unit(self, attempt: OnboardingAttempt) -> bool:
        try:
            return await self.occupancy.release_unit(attempt.unit_id, commit=False)
        except UnitNotFound:
            logger.warning("Unit %s of attempt %s no longer exists", attempt.unit_id, attempt.id)
            return False

    async def _recompute_after_release(self, attempt: OnboardingAttempt) -> None:
        try:
            property_id = attempt.property_id or await self.occupancy.resolve_property_id(
                attempt.unit_id
            )
            await self.occupancy.recompute_availability(property_id)
        except StoreError as exc:
            # The unit is already AVAILABLE; the counter heals on the next recompute
            logger.warning(
                "Availability not recomputed after compensating attempt %s: %s", attempt.id, exc
            )

    async def _load_attempt(self, attempt_id: uuid.UUID) -> OnboardingAttempt:
        attempt = await self.session.get(OnboardingAttempt, attempt_id, populate_existing=True)
        if attempt is None:
            raise AttemptNotFound()
        return attempt

    # ── Stage bodies ──────────────────────────────────────────

    async def _resolve_property(self, attempt: OnboardingAttempt) -> None:
        attempt.property_id = await self.occupancy.resolve_property_id(attempt.unit_id)

    async def _create_profile(self, attempt: OnboardingAttempt, invitation: Invitation) -> None:
        if attempt.resume_count > 0:
            existing = await self.profiles.get_profile(attempt.identity_id)
            if existing is not None:
                attempt.profile_id = existing.id
                return

        attempt.profile_id = await self.profiles.create_profile(
            attempt.identity_id,
            ProfileFields(
                email=invitation.email,
                first_name=invitation.first_name,
                last_name=invitation.last_name,
                phone=invitation.phone,
                role=UserRole.TENANT,
            ),
        )

    async def _create_tenant(self, attempt: OnboardingAttempt, invitation: Invitation) -> None:
        invitation_id, identity_id = invitation.id, attempt.identity_id
        if attempt.resume_count > 0:
            existing = await self.profiles.find_tenant_for_invitation(invitation_id, identity_id)
            if existing is not None:
                attempt.tenant_id = existing.id
                return

        try:
            tenant = await self.profiles.create_tenant(
                invitation, identity_id, attempt.property_id
            )
        except DuplicateTenant:
            # A concurrent run inserted it first; adopt its row
            existing = await self.profiles.find_tenant_for_invitation(invitation_id, identity_id)
            if existing is None:
                raise
            await self.session.refresh(attempt)
            await self.session.refresh(invitation)
            attempt.tenant_id = existing.id
            return
        attempt.tenant_id = tenant.id

    async def _occupy_unit(self, attempt: OnboardingAttempt) -> None:
        flipped = await self.occupancy.occupy_unit(attempt.unit_id)
        if flipped:
            attempt.unit_flipped = True
            self.session.add(attempt)
            await self.session.commit()

    async def _notify_welcome(self, attempt: OnboardingAttempt, invitation: Invitation) -> bool:
        try:
            property_name, unit_number = await self.occupancy.describe(
                attempt.property_id, attempt.unit_id
            )
            sent = await self.notifier.send(NotificationKind.WELCOME, {
                "email": invitation.email,
                "first_name": invitation.first_name,
                "last_name": invitation.last_name,
                "property_name": property_name,
                "unit_number": unit_number,
                "login_url": f"{self.settings.app_base_url.rstrip('/')}/login",
            })
        except Exception:
            logger.warning("Welcome notification failed for attempt %s", attempt.id, exc_info=True)
            return False
        if not sent:
            logger.warning("Welcome notification not delivered for attempt %s", attempt.id)
        return sent
