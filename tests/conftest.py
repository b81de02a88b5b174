"""Shared test fixtures — per-test async SQLite DB, test client, and seed data."""

import os
import uuid
from collections.abc import AsyncGenerator
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel

os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

# Import all models so metadata is populated
import homestead.models  # noqa: F401
from homestead.api.deps import get_notifier
from homestead.core.database import get_session
from homestead.core.security import create_jwt, hash_password
from homestead.main import app
from homestead.models.base import utcnow
from homestead.models.identity import Identity, UserRole
from homestead.models.invitation import Invitation
from homestead.models.profile import Profile
from homestead.models.property import Property, Unit, UnitStatus
from homestead.services.notifier import NotificationKind, Notifier


class RecordingNotifier(Notifier):
    """Keeps every notification in memory; set ``fail`` to simulate an outage."""

    def __init__(self) -> None:
        self.sent: list[tuple[NotificationKind, dict]] = []
        self.delivered: list[tuple[str, str, str]] = []
        self.fail = False

    async def send(self, kind, payload):
        self.sent.append((NotificationKind(kind), payload))
        return await super().send(kind, payload)

    async def _deliver(self, to_email: str, subject: str, body: str) -> None:
        if self.fail:
            raise ConnectionError("mail server unreachable")
        self.delivered.append((to_email, subject, body))


@dataclass
class SeededLandlord:
    id: uuid.UUID
    email: str
    headers: dict


@pytest.fixture
async def engine(tmp_path):
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    async with eng.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def test_session_factory(engine):
    """Session factory bound to the test SQLite engine."""
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(test_session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with test_session_factory() as sess:
        yield sess
        await sess.rollback()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
async def client(session, notifier) -> AsyncGenerator[AsyncClient, None]:
    """HTTPX async test client with DB session and notifier overrides."""

    async def _override_session():
        yield session

    app.dependency_overrides[get_session] = _override_session
    app.dependency_overrides[get_notifier] = lambda: notifier

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ── Seed data ────────────────────────────────────────────────

async def _add_identity(
    session: AsyncSession, email: str, role: UserRole, password: str
) -> Identity:
    identity = Identity(email=email, password_hash=hash_password(password), role=role)
    session.add(identity)
    await session.commit()
    return identity


@pytest.fixture
async def landlord(session) -> SeededLandlord:
    identity = await _add_identity(
        session, "olive@landlords.example.com", UserRole.LANDLORD, "ownerpass123"
    )
    session.add(Profile(
        id=identity.id,
        email=identity.email,
        first_name="Olive",
        last_name="Owner",
        role=UserRole.LANDLORD,
    ))
    await session.commit()
    token = create_jwt(str(identity.id), UserRole.LANDLORD)
    return SeededLandlord(
        id=identity.id,
        email=identity.email,
        headers={"Authorization": f"Bearer {token}"},
    )


@pytest.fixture
async def tenant_identity(session) -> uuid.UUID:
    """A freshly signed-up tenant account with no profile yet."""
    identity = await _add_identity(session, "tina@example.com", UserRole.TENANT, "tenantpass123")
    return identity.id


@pytest.fixture
def make_property(session, landlord):
    """Factory: a property with ``units`` units, the first ``occupied`` of them OCCUPIED."""

    async def _make(
        units: int = 4, occupied: int = 0, name: str = "Maple Court"
    ) -> tuple[Property, list[Unit]]:
        prop = Property(
            landlord_id=landlord.id,
            name=name,
            address="12 Maple Street",
            total_units=units,
            available_units=units - occupied,
        )
        unit_rows = [
            Unit(
                property_id=prop.id,
                unit_number=f"{i + 1}A",
                status=UnitStatus.OCCUPIED if i < occupied else UnitStatus.AVAILABLE,
            )
            for i in range(units)
        ]
        session.add(prop)
        session.add_all(unit_rows)
        await session.commit()
        return prop, unit_rows

    return _make


@pytest.fixture
def make_invitation(session, landlord):
    """Factory: an invitation row, by default valid until tomorrow with token ``abc``."""

    async def _make(
        *,
        unit: Unit | None = None,
        prop: Property | None = None,
        token: str = "abc",
        expires_in: timedelta = timedelta(days=1),
        is_verified: bool = False,
        email: str = "tina@example.com",
    ) -> Invitation:
        now = utcnow()
        inv = Invitation(
            landlord_id=landlord.id,
            unit_id=unit.id if unit else None,
            property_id=prop.id if prop else None,
            email=email,
            first_name="Tina",
            last_name="Tenant",
            phone="555-0100",
            emergency_contact="Tom Tenant",
            emergency_phone="555-0199",
            lease_start=date(2026, 11, 1),
            lease_end=date(2027, 10, 31),
            rent_amount=Decimal("1250.00"),
            security_deposit=Decimal("1250.00"),
            verification_token=token,
            expires_at=now + expires_in,
            is_verified=is_verified,
            verified_at=now if is_verified else None,
        )
        session.add(inv)
        await session.commit()
        return inv

    return _make
