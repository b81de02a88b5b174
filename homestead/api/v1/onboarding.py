"""Tenant onboarding — verification, sign-up, and saga diagnostics."""

import logging
import uuid
from datetime import timedelta
from typing import NoReturn

from arq.connections import ArqRedis, create_pool
from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field
from sqlmodel import select

from homestead.api.deps import Landlord, NotifierDep, Session
from homestead.core.config import get_settings
from homestead.exceptions import HomesteadError, VerificationError
from homestead.models.base import utcnow
from homestead.models.identity import UserRole
from homestead.models.onboarding import (
    AttemptStatus,
    OnboardingAttempt,
    OnboardingAttemptRead,
)
from homestead.models.tenant import TenantRead
from homestead.services.onboarding import OnboardingOrchestrator
from homestead.workers.main import _redis_settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/onboarding", tags=["onboarding"])

MISSING_FIELDS = "Token, invitation ID, and identity are required"


# ── Schemas ───────────────────────────────────────────────────

class OnboardRequest(BaseModel):
    """Everything optional so missing fields get a 400, not a 422."""
    model_config = ConfigDict(populate_by_name=True)

    token: str | None = None
    invitation_id: str | None = Field(default=None, alias="invitationId")
    identity_id: str | None = Field(default=None, alias="identityId")


class AcceptRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    token: str | None = None
    invitation_id: str | None = Field(default=None, alias="invitationId")
    password: str | None = None


class OnboardResponse(BaseModel):
    tenant: TenantRead


class RecoverResponse(BaseModel):
    status: str
    message: str


# ── Helpers ───────────────────────────────────────────────────

def _parse_uuid(value: str | None) -> uuid.UUID:
    try:
        return uuid.UUID(str(value))
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=MISSING_FIELDS) from exc


def _raise_http(exc: HomesteadError) -> NoReturn:
    raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc


async def _enqueue_recovery(attempt_id: uuid.UUID) -> None:
    redis: ArqRedis = await create_pool(_redis_settings())
    try:
        # Shares the sweep's job id
        await redis.enqueue_job(
            "recover_onboarding",
            attempt_id=str(attempt_id),
            _job_id=f"recover-onboarding:{attempt_id}",
        )
    finally:
        await redis.aclose()


# ── Endpoints ─────────────────────────────────────────────────

@router.post("", response_model=OnboardResponse)
async def onboard(
    body: OnboardRequest,
    session: Session,
    notifier: NotifierDep,
) -> OnboardResponse:
    """Verify an invitation token and turn the invitation into a tenant."""
    if not body.token or not body.invitation_id or not body.identity_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=MISSING_FIELDS)
    invitation_id = _parse_uuid(body.invitation_id)
    identity_id = _parse_uuid(body.identity_id)

    orchestrator = OnboardingOrchestrator(session, notifier)
    try:
        result = await orchestrator.onboard(invitation_id, body.token, identity_id)
    except HomesteadError as exc:
        _raise_http(exc)
    return OnboardResponse(tenant=TenantRead.model_validate(result.tenant))


@router.post("/accept", response_model=OnboardResponse)
async def accept_invitation(
    body: AcceptRequest,
    session: Session,
    notifier: NotifierDep,
) -> OnboardResponse:
    """Sign up with an invitation link: create the account, then onboard it."""
    if not body.token or not body.invitation_id or not body.password:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Token, invitation ID, and password are required",
        )
    invitation_id = _parse_uuid(body.invitation_id)

    orchestrator = OnboardingOrchestrator(session, notifier)
    identities = orchestrator.identities
    try:
        # Check the link before creating an account for it
        invitation = await orchestrator.verifier.verify(invitation_id, body.token)
        identity_id = await identities.create_identity(
            invitation.email,
            body.password,
            metadata={
                "first_name": invitation.first_name,
                "last_name": invitation.last_name,
                "phone": invitation.phone,
            },
            role=UserRole.TENANT,
        )
    except HomesteadError as exc:
        _raise_http(exc)

    try:
        result = await orchestrator.onboard(invitation_id, body.token, identity_id)
    except VerificationError as exc:
        # Lost the invitation to a concurrent sign-up; the fresh account is unused
        await session.rollback()
        if await identities.delete_if_unreferenced(identity_id):
            await session.commit()
        _raise_http(exc)
    except HomesteadError as exc:
        _raise_http(exc)
    return OnboardResponse(tenant=TenantRead.model_validate(result.tenant))


@router.get("/attempts", response_model=list[OnboardingAttemptRead])
async def list_attempts(
    auth: Landlord,
    session: Session,
    status_filter: AttemptStatus | None = Query(default=None, alias="status"),
) -> list[OnboardingAttempt]:
    stmt = select(OnboardingAttempt)
    if auth.role != UserRole.ADMIN:
        stmt = stmt.where(OnboardingAttempt.landlord_id == auth.identity_id)
    if status_filter:
        stmt = stmt.where(OnboardingAttempt.status == status_filter)
    stmt = stmt.order_by(OnboardingAttempt.created_at.desc())  # type: ignore[union-attr]
    result = await session.execute(stmt)
    return list(result.scalars().all())


@router.post(
    "/attempts/{attempt_id}/recover",
    response_model=RecoverResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def recover_attempt(
    attempt_id: uuid.UUID,
    auth: Landlord,
    session: Session,
) -> RecoverResponse:
    attempt = await session.get(OnboardingAttempt, attempt_id)
    if attempt is None or (
        auth.role != UserRole.ADMIN and attempt.landlord_id != auth.identity_id
    ):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Onboarding attempt not found"
        )
    if attempt.status in (AttemptStatus.COMPLETED, AttemptStatus.COMPENSATED):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Onboarding attempt is already {attempt.status}",
        )
    stall_cutoff = utcnow() - timedelta(minutes=get_settings().onboarding_stall_minutes)
    if attempt.status == AttemptStatus.IN_PROGRESS and attempt.updated_at >= stall_cutoff:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Onboarding attempt is still running",
        )

    await _enqueue_recovery(attempt.id)
    logger.info("Recovery of attempt %s requested by %s", attempt.id, auth.identity_id)
    return RecoverResponse(status="accepted", message="Recovery has been queued")
