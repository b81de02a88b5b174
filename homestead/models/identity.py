"""Identity model — the authentication account that owns credentials."""

import uuid
from enum import StrEnum

from sqlalchemy import Text
from sqlmodel import Column, Field, SQLModel

from homestead.models.base import TimestampMixin, new_uuid


class UserRole(StrEnum):
    LANDLORD = "LANDLORD"
    TENANT = "TENANT"
    ADMIN = "ADMIN"


class Identity(TimestampMixin, SQLModel, table=True):
    __tablename__ = "identities"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    email: str = Field(max_length=320, unique=True, nullable=False, index=True)
    password_hash: str = Field(nullable=False)
    role: UserRole = Field(default=UserRole.TENANT)
    # Sign-up metadata (names, phone) as JSON text
    user_metadata: str = Field(
        default="{}", sa_column=Column(Text, nullable=False, server_default="{}")
    )
    is_active: bool = Field(default=True)
