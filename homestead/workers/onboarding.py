"""Onboarding recovery jobs — find stalled attempts and resume or roll them back."""

from __future__ import annotations

import logging
import uuid
from datetime import timedelta

from sqlalchemy import and_, or_
from sqlmodel import select

from homestead.core.config import get_settings
from homestead.core.database import async_session_factory
from homestead.exceptions import HomesteadError
from homestead.models.base import utcnow
from homestead.models.onboarding import AttemptStatus, OnboardingAttempt
from homestead.services.onboarding import OnboardingOrchestrator

logger = logging.getLogger(__name__)


async def sweep_stalled_onboardings(ctx: dict) -> dict:
    """Periodic job: enqueue recovery for failed or stalled onboarding attempts.

    An attempt is stalled when it is still ``in_progress`` and has not moved
    for ``onboarding_stall_minutes``. When run by ARQ, ``ctx["redis"]`` is the
    worker's ArqRedis pool; tests inject a mock.
    """
    settings = get_settings()
    cutoff = utcnow() - timedelta(minutes=settings.onboarding_stall_minutes)

    async with async_session_factory() as session:
        stmt = select(OnboardingAttempt.id).where(
            or_(
                OnboardingAttempt.status == AttemptStatus.FAILED,
                and_(
                    OnboardingAttempt.status == AttemptStatus.IN_PROGRESS,
                    OnboardingAttempt.updated_at < cutoff,
                ),
            )
        )
        result = await session.execute(stmt)
        attempt_ids = list(result.scalars().all())

    if not attempt_ids:
        logger.info("Onboarding sweep: nothing to recover")
        return {"enqueued": 0}

    redis = ctx["redis"]
    for attempt_id in attempt_ids:
        # One job per attempt; a duplicate id while queued is a no-op in ARQ
        await redis.enqueue_job(
            "recover_onboarding",
            attempt_id=str(attempt_id),
            _job_id=f"recover-onboarding:{attempt_id}",
        )
        logger.info("Enqueued recovery for onboarding attempt %s", attempt_id)

    logger.info("Onboarding sweep: enqueued %d attempts", len(attempt_ids))
    return {"enqueued": len(attempt_ids)}


async def recover_onboarding(ctx: dict, attempt_id: str) -> dict:
    """Resume an attempt while resumes remain, otherwise compensate it."""
    async with async_session_factory() as session:
        orchestrator = OnboardingOrchestrator(session, ctx["notifier"])
        try:
            attempt = await orchestrator.recover(uuid.UUID(attempt_id))
        except HomesteadError as exc:
            logger.error("Recovery of onboarding attempt %s failed: %s", attempt_id, exc)
            return {"attempt_id": attempt_id, "status": "error", "error": exc.message}

        logger.info(
            "Recovery of onboarding attempt %s finished: %s at %s",
            attempt_id, attempt.status, attempt.stage,
        )
        return {
            "attempt_id": attempt_id,
            "status": str(attempt.status),
            "stage": str(attempt.stage),
        }
