"""Saga recovery — resuming and compensating stalled onboarding attempts."""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest
from sqlmodel import select

from homestead.core.config import get_settings
from homestead.exceptions import (
    AttemptClaimed,
    DuplicateTenant,
    InvalidAttemptState,
    OnboardingError,
    StoreUnavailable,
)
from homestead.models.identity import Identity
from homestead.models.invitation import Invitation
from homestead.models.onboarding import AttemptStatus, OnboardingAttempt, OnboardingStage
from homestead.models.profile import Profile
from homestead.models.property import Property, Unit, UnitStatus
from homestead.models.tenant import Tenant
from homestead.services.onboarding import OnboardingOrchestrator, OnboardingResult
from homestead.services.profiles import ProfileWriter


async def _fail_at_tenant(orchestrator, inv, identity_id) -> OnboardingAttempt:
    with patch.object(
        orchestrator.profiles,
        "create_tenant",
        AsyncMock(side_effect=StoreUnavailable("connection reset")),
    ):
        with pytest.raises(OnboardingError) as excinfo:
            await orchestrator.onboard(inv.id, "abc", identity_id)
    assert excinfo.value.stage == OnboardingStage.TENANT_CREATED
    result = await orchestrator.session.execute(select(OnboardingAttempt))
    return result.scalar_one()


async def _fail_at_recompute(orchestrator, inv, identity_id) -> OnboardingAttempt:
    with patch.object(
        orchestrator.occupancy,
        "recompute_availability",
        AsyncMock(side_effect=StoreUnavailable("lock timeout")),
    ):
        with pytest.raises(OnboardingError) as excinfo:
            await orchestrator.onboard(inv.id, "abc", identity_id)
    assert excinfo.value.message == "Failed to update property availability"
    result = await orchestrator.session.execute(select(OnboardingAttempt))
    return result.scalar_one()


async def _count(session, model) -> int:
    result = await session.execute(select(model))
    return len(result.scalars().all())


@pytest.mark.asyncio
async def test_resume_continues_after_last_completed_stage(
    session, notifier, tenant_identity, make_property, make_invitation
):
    prop, units = await make_property(units=2)
    inv = await make_invitation(unit=units[0], prop=prop)
    orchestrator = OnboardingOrchestrator(session, notifier)

    attempt = await _fail_at_tenant(orchestrator, inv, tenant_identity)
    assert attempt.status == AttemptStatus.FAILED
    assert attempt.stage == OnboardingStage.PROFILE_CREATED

    result = await orchestrator.resume(attempt.id)

    assert result.attempt.status == AttemptStatus.COMPLETED
    assert result.attempt.resume_count == 1
    assert result.attempt.failed_stage is None
    assert result.tenant.identity_id == tenant_identity
    # The profile from the first run is reused, not recreated
    assert await _count(session, Profile) == 2  # landlord + tenant
    assert await _count(session, Tenant) == 1

    unit = await session.get(Unit, units[0].id, populate_existing=True)
    assert unit.status == UnitStatus.OCCUPIED
    fresh_prop = await session.get(Property, prop.id, populate_existing=True)
    assert fresh_prop.available_units == 1


@pytest.mark.asyncio
async def test_resume_of_completed_attempt_returns_tenant(
    session, notifier, tenant_identity, make_property, make_invitation
):
    prop, units = await make_property(units=1)
    inv = await make_invitation(unit=units[0], prop=prop)
    orchestrator = OnboardingOrchestrator(session, notifier)

    done = await orchestrator.onboard(inv.id, "abc", tenant_identity)
    again = await orchestrator.resume(done.attempt.id)

    assert again.tenant.id == done.tenant.id
    assert await _count(session, Tenant) == 1
    assert len(notifier.sent) == 1


@pytest.mark.asyncio
async def test_resume_after_occupancy_failure_keeps_unit_flip(
    session, notifier, tenant_identity, make_property, make_invitation
):
    prop, units = await make_property(units=4, occupied=2)
    inv = await make_invitation(unit=units[2], prop=prop)
    orchestrator = OnboardingOrchestrator(session, notifier)

    attempt = await _fail_at_recompute(orchestrator, inv, tenant_identity)
    assert attempt.unit_flipped is True
    assert attempt.stage == OnboardingStage.TENANT_CREATED

    result = await orchestrator.resume(attempt.id)

    assert result.attempt.status == AttemptStatus.COMPLETED
    fresh_prop = await session.get(Property, prop.id, populate_existing=True)
    assert fresh_prop.available_units == 1


@pytest.mark.asyncio
async def test_compensate_rolls_back_and_reopens_invitation(
    session, notifier, tenant_identity, make_property, make_invitation
):
    prop, units = await make_property(units=4, occupied=2)
    inv = await make_invitation(unit=units[2], prop=prop)
    orchestrator = OnboardingOrchestrator(session, notifier)

    attempt = await _fail_at_recompute(orchestrator, inv, tenant_identity)
    compensated = await orchestrator.compensate(attempt.id)

    assert compensated.status == AttemptStatus.COMPENSATED
    assert await _count(session, Tenant) == 0
    assert await session.get(Profile, tenant_identity) is None
    assert await session.get(Identity, tenant_identity) is None

    unit = await session.get(Unit, units[2].id, populate_existing=True)
    assert unit.status == UnitStatus.AVAILABLE
    fresh_prop = await session.get(Property, prop.id, populate_existing=True)
    assert fresh_prop.available_units == 2

    fresh_inv = await session.get(Invitation, inv.id, populate_existing=True)
    assert fresh_inv.is_verified is False
    assert fresh_inv.verified_at is None
    assert fresh_inv.verification_token != "abc"


@pytest.mark.asyncio
async def test_compensate_leaves_units_it_did_not_flip(
    session, notifier, tenant_identity, make_property, make_invitation
):
    prop, units = await make_property(units=2, occupied=1)
    # Invitation for a unit that is already OCCUPIED
    inv = await make_invitation(unit=units[0], prop=prop)
    orchestrator = OnboardingOrchestrator(session, notifier)

    attempt = await _fail_at_recompute(orchestrator, inv, tenant_identity)
    assert attempt.unit_flipped is False
    await orchestrator.compensate(attempt.id)

    unit = await session.get(Unit, units[0].id, populate_existing=True)
    assert unit.status == UnitStatus.OCCUPIED


@pytest.mark.asyncio
async def test_compensated_invitation_can_be_onboarded_again(
    session, notifier, tenant_identity, make_property, make_invitation
):
    prop, units = await make_property(units=1)
    inv = await make_invitation(unit=units[0], prop=prop)
    orchestrator = OnboardingOrchestrator(session, notifier)

    attempt = await _fail_at_tenant(orchestrator, inv, tenant_identity)
    await orchestrator.compensate(attempt.id)

    fresh_inv = await session.get(Invitation, inv.id, populate_existing=True)
    session.add(Identity(id=tenant_identity, email="tina@example.com", password_hash="x"))
    await session.commit()

    result = await orchestrator.onboard(inv.id, fresh_inv.verification_token, tenant_identity)
    assert result.attempt.status == AttemptStatus.COMPLETED
    assert await _count(session, OnboardingAttempt) == 2


@pytest.mark.asyncio
async def test_completed_attempt_cannot_be_compensated(
    session, notifier, tenant_identity, make_property, make_invitation
):
    prop, units = await make_property(units=1)
    inv = await make_invitation(unit=units[0], prop=prop)
    orchestrator = OnboardingOrchestrator(session, notifier)

    done = await orchestrator.onboard(inv.id, "abc", tenant_identity)

    with pytest.raises(InvalidAttemptState):
        await orchestrator.compensate(done.attempt.id)


@pytest.mark.asyncio
async def test_recover_resumes_then_compensates_when_exhausted(
    session, notifier, tenant_identity, make_property, make_invitation
):
    prop, units = await make_property(units=1)
    inv = await make_invitation(unit=units[0], prop=prop)
    orchestrator = OnboardingOrchestrator(session, notifier)
    attempt = await _fail_at_tenant(orchestrator, inv, tenant_identity)
    attempt_id = attempt.id

    failing = AsyncMock(side_effect=StoreUnavailable("still down"))
    with patch.object(orchestrator.profiles, "create_tenant", failing):
        for expected in range(1, get_settings().onboarding_max_resumes + 1):
            recovered = await orchestrator.recover(attempt_id)
            assert recovered.status == AttemptStatus.FAILED
            assert recovered.resume_count == expected

        recovered = await orchestrator.recover(attempt_id)

    assert recovered.status == AttemptStatus.COMPENSATED
    assert await _count(session, Tenant) == 0
    fresh_inv = await session.get(Invitation, inv.id, populate_existing=True)
    assert fresh_inv.is_verified is False


@pytest.mark.asyncio
async def test_recover_completes_when_store_is_back(
    session, notifier, tenant_identity, make_property, make_invitation
):
    prop, units = await make_property(units=1)
    inv = await make_invitation(unit=units[0], prop=prop)
    orchestrator = OnboardingOrchestrator(session, notifier)
    attempt = await _fail_at_tenant(orchestrator, inv, tenant_identity)

    recovered = await orchestrator.recover(attempt.id)

    assert recovered.status == AttemptStatus.COMPLETED
    assert recovered.stage == OnboardingStage.NOTIFIED
    assert [kind for kind, _ in notifier.sent] == ["welcome"]


@pytest.mark.asyncio
async def test_concurrent_resumes_create_one_tenant(
    session, test_session_factory, notifier, tenant_identity, make_property, make_invitation
):
    prop, units = await make_property(units=1)
    inv = await make_invitation(unit=units[0], prop=prop)
    attempt = await _fail_at_tenant(OnboardingOrchestrator(session, notifier), inv, tenant_identity)
    attempt_id = attempt.id
    await session.commit()

    async def _resume():
        async with test_session_factory() as own_session:
            return await OnboardingOrchestrator(own_session, notifier).resume(attempt_id)

    results = await asyncio.gather(_resume(), _resume(), return_exceptions=True)

    for result in results:
        assert isinstance(result, (OnboardingResult, AttemptClaimed)), result
    tenant_ids = {r.tenant.id for r in results if isinstance(r, OnboardingResult)}
    assert len(tenant_ids) == 1
    assert await _count(session, Tenant) == 1
    assert [kind for kind, _ in notifier.sent] == ["welcome"]

    fresh = await session.get(OnboardingAttempt, attempt_id, populate_existing=True)
    assert fresh.status == AttemptStatus.COMPLETED
    assert fresh.resume_count == 1


@pytest.mark.asyncio
async def test_resume_refuses_attempt_that_is_still_running(
    session, notifier, tenant_identity, make_property, make_invitation
):
    prop, units = await make_property(units=1)
    inv = await make_invitation(unit=units[0], prop=prop)
    orchestrator = OnboardingOrchestrator(session, notifier)
    attempt = await _fail_at_tenant(orchestrator, inv, tenant_identity)
    attempt.status = AttemptStatus.IN_PROGRESS
    session.add(attempt)
    await session.commit()

    with pytest.raises(AttemptClaimed):
        await orchestrator.resume(attempt.id)

    # recover leaves it alone instead of racing the live run
    recovered = await orchestrator.recover(attempt.id)
    assert recovered.status == AttemptStatus.IN_PROGRESS
    assert recovered.resume_count == 0
    assert await _count(session, Tenant) == 0


@pytest.mark.asyncio
async def test_second_tenant_for_invitation_is_rejected(
    session, tenant_identity, make_property, make_invitation
):
    prop, units = await make_property(units=1)
    inv = await make_invitation(unit=units[0], prop=prop)
    writer = ProfileWriter(session)

    await writer.create_tenant(inv, tenant_identity, prop.id)
    with pytest.raises(DuplicateTenant):
        await writer.create_tenant(inv, tenant_identity, prop.id)

    assert await _count(session, Tenant) == 1


@pytest.mark.asyncio
async def test_recover_never_rolls_back_a_created_tenant(
    session, notifier, tenant_identity, make_property, make_invitation
):
    prop, units = await make_property(units=4, occupied=2)
    inv = await make_invitation(unit=units[2], prop=prop)
    orchestrator = OnboardingOrchestrator(session, notifier)
    attempt = await _fail_at_recompute(orchestrator, inv, tenant_identity)
    attempt_id = attempt.id

    failing = AsyncMock(side_effect=StoreUnavailable("lock timeout"))
    with patch.object(orchestrator.occupancy, "recompute_availability", failing):
        for _ in range(get_settings().onboarding_max_resumes + 2):
            recovered = await orchestrator.recover(attempt_id)
            assert recovered.status == AttemptStatus.FAILED
            assert recovered.stage == OnboardingStage.TENANT_CREATED

    assert await _count(session, Tenant) == 1
    fresh_inv = await session.get(Invitation, inv.id, populate_existing=True)
    assert fresh_inv.is_verified is True

    recovered = await orchestrator.recover(attempt_id)

    assert recovered.status == AttemptStatus.COMPLETED
    assert await _count(session, Tenant) == 1
    fresh_prop = await session.get(Property, prop.id, populate_existing=True)
    assert fresh_prop.available_units == 1


@pytest.mark.asyncio
async def test_failed_unit_release_leaves_attempt_uncompensated(
    session, notifier, tenant_identity, make_property, make_invitation
):
    prop, units = await make_property(units=4, occupied=2)
    inv = await make_invitation(unit=units[2], prop=prop)
    orchestrator = OnboardingOrchestrator(session, notifier)
    attempt = await _fail_at_recompute(orchestrator, inv, tenant_identity)
    attempt_id = attempt.id

    failing = AsyncMock(side_effect=StoreUnavailable("unit locked"))
    with patch.object(orchestrator.occupancy, "release_unit", failing):
        with pytest.raises(StoreUnavailable):
            await orchestrator.compensate(attempt_id)

    # Nothing of the rollback landed, so the sweep can try again
    fresh = await session.get(OnboardingAttempt, attempt_id, populate_existing=True)
    assert fresh.status == AttemptStatus.FAILED
    assert await _count(session, Tenant) == 1
    fresh_inv = await session.get(Invitation, inv.id, populate_existing=True)
    assert fresh_inv.is_verified is True

    compensated = await orchestrator.compensate(attempt_id)

    assert compensated.status == AttemptStatus.COMPENSATED
    unit = await session.get(Unit, units[2].id, populate_existing=True)
    assert unit.status == UnitStatus.AVAILABLE


@pytest.mark.asyncio
async def test_compensate_tolerates_recompute_failure(
    session, notifier, tenant_identity, make_property, make_invitation
):
    prop, units = await make_property(units=4, occupied=2)
    inv = await make_invitation(unit=units[2], prop=prop)
    orchestrator = OnboardingOrchestrator(session, notifier)
    attempt = await _fail_at_recompute(orchestrator, inv, tenant_identity)

    failing = AsyncMock(side_effect=StoreUnavailable("lock timeout"))
    with patch.object(orchestrator.occupancy, "recompute_availability", failing):
        compensated = await orchestrator.compensate(attempt.id)

    assert compensated.status == AttemptStatus.COMPENSATED
    assert await _count(session, Tenant) == 0
    unit = await session.get(Unit, units[2].id, populate_existing=True)
    assert unit.status == UnitStatus.AVAILABLE


@pytest.mark.asyncio
async def test_compensation_loses_to_a_resume_that_claimed_first(
    session, test_session_factory, notifier, tenant_identity, make_property, make_invitation
):
    prop, units = await make_property(units=1)
    inv = await make_invitation(unit=units[0], prop=prop)
    orchestrator = OnboardingOrchestrator(session, notifier)
    attempt = await _fail_at_tenant(orchestrator, inv, tenant_identity)
    attempt_id = attempt.id
    assert attempt.status == AttemptStatus.FAILED

    # Another worker resumes it to completion while this one holds the FAILED row
    async with test_session_factory() as other:
        await OnboardingOrchestrator(other, notifier).resume(attempt_id)

    with patch.object(orchestrator, "_load_attempt", AsyncMock(return_value=attempt)):
        with pytest.raises(AttemptClaimed):
            await orchestrator.compensate(attempt_id)

    assert await _count(session, Tenant) == 1
    fresh = await session.get(OnboardingAttempt, attempt_id, populate_existing=True)
    assert fresh.status == AttemptStatus.COMPLETED
    fresh_inv = await session.get(Invitation, inv.id, populate_existing=True)
    assert fresh_inv.is_verified is True
