"""Property occupancy — read the availability cache and force a recompute."""

import uuid

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from homestead.api.deps import AuthContext, Landlord, Session
from homestead.exceptions import StoreError
from homestead.models.identity import UserRole
from homestead.models.property import Property
from homestead.services.occupancy import OccupancyAccountant

router = APIRouter(prefix="/properties", tags=["properties"])


class OccupancyRead(BaseModel):
    property_id: uuid.UUID
    total_units: int
    occupied_units: int
    available_units: int


async def _get_owned_property(
    property_id: uuid.UUID, auth: AuthContext, session: AsyncSession
) -> Property:
    prop = await session.get(Property, property_id)
    if prop is None or (auth.role != UserRole.ADMIN and prop.landlord_id != auth.identity_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Property not found")
    return prop


@router.get("/{property_id}/occupancy", response_model=OccupancyRead)
async def get_occupancy(
    property_id: uuid.UUID,
    auth: Landlord,
    session: Session,
) -> OccupancyRead:
    prop = await _get_owned_property(property_id, auth, session)
    occupied = await OccupancyAccountant(session).count_occupied(prop.id)
    return OccupancyRead(
        property_id=prop.id,
        total_units=prop.total_units,
        occupied_units=occupied,
        available_units=prop.available_units,
    )


@router.post("/{property_id}/occupancy/recompute", response_model=OccupancyRead)
async def recompute_occupancy(
    property_id: uuid.UUID,
    auth: Landlord,
    session: Session,
) -> OccupancyRead:
    """Re-derive ``available_units`` from unit statuses."""
    prop = await _get_owned_property(property_id, auth, session)
    accountant = OccupancyAccountant(session)
    try:
        available = await accountant.recompute_availability(prop.id)
    except StoreError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc
    return OccupancyRead(
        property_id=property_id,
        total_units=prop.total_units,
        occupied_units=await accountant.count_occupied(property_id),
        available_units=available,
    )
