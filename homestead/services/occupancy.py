"""Occupancy accountant — unit status and the property availability cache.

``Property.available_units`` is always re-derived from a full count of
OCCUPIED units rather than incremented, so any earlier drift heals on the
next recompute. A recompute must follow the unit flip it accounts for; both
commit before returning.
"""

from __future__ import annotations

import logging
import uuid

from sqlalchemy import func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from homestead.exceptions import PropertyNotFound, StoreUnavailable, UnitNotFound
from homestead.models.base import touch, utcnow
from homestead.models.property import Property, Unit, UnitStatus

logger = logging.getLogger(__name__)


class OccupancyAccountant:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def resolve_property_id(self, unit_id: uuid.UUID) -> uuid.UUID:
        unit = await self.session.get(Unit, unit_id)
        if unit is None:
            raise UnitNotFound()
        return unit.property_id

    async def occupy_unit(self, unit_id: uuid.UUID) -> bool:
        """Set the unit OCCUPIED. Returns False if it already was."""
        return await self._set_status(unit_id, UnitStatus.OCCUPIED)

    async def release_unit(self, unit_id: uuid.UUID, *, commit: bool = True) -> bool:
        """Set the unit back to AVAILABLE. Returns False if it already was.

        With ``commit=False`` the change is only flushed, so it lands or rolls
        back with the caller's transaction.
        """
        return await self._set_status(unit_id, UnitStatus.AVAILABLE, commit=commit)

    async def recompute_availability(self, property_id: uuid.UUID) -> int:
        """Write ``total_units - count(OCCUPIED)`` to the property and return it."""
        try:
            prop = await self.session.get(Property, property_id)
            if prop is None:
                raise PropertyNotFound()

            occupied = await self.count_occupied(property_id)
            available = (prop.total_units or 0) - occupied

            stmt = (
                update(Property)
                .where(Property.id == property_id)
                .values(available_units=available, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            await self.session.execute(stmt)
            await self.session.commit()
            await self.session.refresh(prop)
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise StoreUnavailable(f"Availability recompute failed: {exc}") from exc

        logger.info(
            "Property %s: %d of %d units available", property_id, available, prop.total_units
        )
        return available

    async def count_occupied(self, property_id: uuid.UUID) -> int:
        stmt = (
            select(func.count())
            .select_from(Unit)
            .where(Unit.property_id == property_id, Unit.status == UnitStatus.OCCUPIED)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one()

    async def describe(
        self, property_id: uuid.UUID | None, unit_id: uuid.UUID | None
    ) -> tuple[str, str]:
        """(property name, unit number) for notification payloads."""
        property_name = "your property"
        unit_number = "N/A"
        if property_id is not None:
            prop = await self.session.get(Property, property_id)
            if prop is not None:
                property_name = prop.name
        if unit_id is not None:
            unit = await self.session.get(Unit, unit_id)
            if unit is not None:
                unit_number = unit.unit_number
        return property_name, unit_number

    async def _set_status(
        self, unit_id: uuid.UUID, status: UnitStatus, *, commit: bool = True
    ) -> bool:
        try:
            unit = await self.session.get(Unit, unit_id)
            if unit is None:
                raise UnitNotFound()
            if unit.status == status:
                return False
            unit.status = status
            touch(unit)
            self.session.add(unit)
            if commit:
                await self.session.commit()
            else:
                await self.session.flush()
        except SQLAlchemyError as exc:
            if commit:
                await self.session.rollback()
            raise StoreUnavailable(f"Unit status update failed: {exc}") from exc

        logger.info("Unit %s is now %s", unit_id, status)
        return True
