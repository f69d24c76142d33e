from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from db import session_execute, session_flush
from models.location import Location, LocationDTO


class LocationRepository:
    @staticmethod
    async def get_by_id(location_id: int, session: AsyncSession | Session) -> LocationDTO | None:
        stmt = select(Location).where(Location.id == location_id)
        location = await session_execute(stmt, session)
        location = location.scalar()
        if location is not None:
            return LocationDTO.model_validate(location, from_attributes=True)
        return None

    @staticmethod
    async def get_by_name(name: str, session: AsyncSession | Session) -> LocationDTO | None:
        stmt = select(Location).where(Location.name == name)
        location = await session_execute(stmt, session)
        location = location.scalar()
        if location is not None:
            return LocationDTO.model_validate(location, from_attributes=True)
        return None

    @staticmethod
    async def get_all(session: AsyncSession | Session) -> list[LocationDTO]:
        stmt = select(Location).order_by(Location.name)
        locations = await session_execute(stmt, session)
        return [LocationDTO.model_validate(location, from_attributes=True) for location in locations.scalars().all()]

    @staticmethod
    async def create(location_dto: LocationDTO, session: AsyncSession | Session) -> LocationDTO:
        location = Location(**location_dto.model_dump(exclude_none=True))
        session.add(location)
        await session_flush(session)
        return LocationDTO.model_validate(location, from_attributes=True)
