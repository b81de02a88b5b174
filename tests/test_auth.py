"""Landlord registration, login, and the identity provisioner."""

import json

import pytest
from httpx import AsyncClient

from homestead.exceptions import DuplicateEmail, WeakCredential
from homestead.models.identity import Identity, UserRole
from homestead.services.identity import IdentityProvisioner


@pytest.mark.asyncio
async def test_register_login_and_me(client: AsyncClient):
    resp = await client.post("/v1/landlords", json={
        "email": "Lana@Landlords.example.com",
        "password": "supersecret123",
        "first_name": "Lana",
        "last_name": "Lord",
    })
    assert resp.status_code == 201, resp.text
    data = resp.json()
    assert data["profile"]["email"] == "lana@landlords.example.com"
    assert data["profile"]["role"] == UserRole.LANDLORD

    resp = await client.post("/v1/auth/login", json={
        "email": "lana@landlords.example.com",
        "password": "supersecret123",
    })
    assert resp.status_code == 200
    token = resp.json()["access_token"]

    resp = await client.get("/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 200
    assert resp.json()["first_name"] == "Lana"

    # A registered landlord can use the invitation endpoints straight away
    resp = await client.get("/v1/invitations", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 200
    assert resp.json() == []


@pytest.mark.asyncio
async def test_duplicate_registration_rejected(client: AsyncClient):
    payload = {"email": "dup@landlords.example.com", "password": "supersecret123"}
    assert (await client.post("/v1/landlords", json=payload)).status_code == 201

    resp = await client.post("/v1/landlords", json=payload)
    assert resp.status_code == 409
    assert resp.json()["detail"] == "An account with this email already exists"


@pytest.mark.asyncio
async def test_weak_password_rejected(client: AsyncClient):
    resp = await client.post(
        "/v1/landlords", json={"email": "w@landlords.example.com", "password": "short"}
    )
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_login_with_wrong_password(client: AsyncClient, landlord):
    resp = await client.post("/v1/auth/login", json={
        "email": landlord.email,
        "password": "not-the-password",
    })
    assert resp.status_code == 401


# ── Provisioner ──────────────────────────────────────────────

@pytest.mark.asyncio
async def test_create_identity_stores_metadata(session):
    provisioner = IdentityProvisioner(session)

    identity_id = await provisioner.create_identity(
        " New@Example.com ", "longenough", metadata={"first_name": "Nia"}
    )

    identity = await session.get(Identity, identity_id)
    assert identity.email == "new@example.com"
    assert identity.role == UserRole.TENANT
    assert json.loads(identity.user_metadata) == {"first_name": "Nia"}
    assert identity.password_hash != "longenough"
    assert await provisioner.authenticate("new@example.com", "longenough") is not None


@pytest.mark.asyncio
async def test_create_identity_errors(session):
    provisioner = IdentityProvisioner(session, min_password_length=10)

    with pytest.raises(WeakCredential):
        await provisioner.create_identity("a@example.com", "123456789")

    await provisioner.create_identity("a@example.com", "1234567890")
    with pytest.raises(DuplicateEmail):
        await provisioner.create_identity("A@example.com", "1234567890")
