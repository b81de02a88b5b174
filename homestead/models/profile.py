"""Profile model — durable user record keyed by the identity it describes."""

import uuid

from sqlmodel import Field, SQLModel

from homestead.models.base import TimestampMixin
from homestead.models.identity import UserRole


class Profile(TimestampMixin, SQLModel, table=True):
    __tablename__ = "profiles"

    id: uuid.UUID = Field(foreign_key="identities.id", primary_key=True)
    email: str = Field(max_length=320, nullable=False, index=True)
    first_name: str = Field(default="", max_length=100)
    last_name: str = Field(default="", max_length=100)
    phone: str | None = Field(default=None, max_length=50)
    role: UserRole = Field(nullable=False)


# ── Pydantic schemas ─────────────────────────────────────────

class ProfileFields(SQLModel):
    """Everything the profile writer needs besides the identity id."""
    email: str
    first_name: str = ""
    last_name: str = ""
    phone: str | None = None
    role: UserRole = UserRole.TENANT


class ProfileRead(SQLModel):
    id: uuid.UUID
    email: str
    first_name: str
    last_name: str
    phone: str | None
    role: UserRole
