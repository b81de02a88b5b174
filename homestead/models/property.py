"""Property and Unit models — the occupancy side of the domain."""

import uuid
from enum import StrEnum

from sqlmodel import Field, SQLModel

from homestead.models.base import TimestampMixin, new_uuid


class UnitStatus(StrEnum):
    AVAILABLE = "AVAILABLE"
    OCCUPIED = "OCCUPIED"
    MAINTENANCE = "MAINTENANCE"
    UNAVAILABLE = "UNAVAILABLE"
    RESERVED = "RESERVED"


class Property(TimestampMixin, SQLModel, table=True):
    __tablename__ = "properties"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    landlord_id: uuid.UUID = Field(foreign_key="identities.id", nullable=False, index=True)
    name: str = Field(max_length=255, nullable=False)
    address: str = Field(default="", max_length=500)
    total_units: int = Field(default=0)
    # Derived cache: total_units - count(OCCUPIED units), recomputed on change
    available_units: int = Field(default=0)


class Unit(TimestampMixin, SQLModel, table=True):
    __tablename__ = "units"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    property_id: uuid.UUID = Field(foreign_key="properties.id", nullable=False, index=True)
    unit_number: str = Field(max_length=50, nullable=False)
    status: UnitStatus = Field(default=UnitStatus.AVAILABLE, index=True)
