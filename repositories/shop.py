from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from db import session_execute, session_flush
from models.shop import Shop, ShopDTO


class ShopRepository:
    @staticmethod
    async def get_by_id(shop_id: int, session: AsyncSession | Session) -> ShopDTO | None:
        stmt = select(Shop).where(Shop.id == shop_id)
        shop = await session_execute(stmt, session)
        shop = shop.scalar()
        if shop is not None:
            return ShopDTO.model_validate(shop, from_attributes=True)
        return None

    @staticmethod
    async def get_by_name(name: str, session: AsyncSession | Session) -> ShopDTO | None:
        stmt = select(Shop).where(Shop.name == name)
        shop = await session_execute(stmt, session)
        shop = shop.scalar()
        if shop is not None:
            return ShopDTO.model_validate(shop, from_attributes=True)
        return None

    @staticmethod
    async def get_all(session: AsyncSession | Session, active_only: bool = True) -> list[ShopDTO]:
        stmt = select(Shop).order_by(Shop.name)
        if active_only:
            stmt = stmt.where(Shop.is_active.is_(True))
        shops = await session_execute(stmt, session)
        return [ShopDTO.model_validate(shop, from_attributes=True) for shop in shops.scalars().all()]

    @staticmethod
    async def create(shop_dto: ShopDTO, session: AsyncSession | Session) -> ShopDTO:
        shop = Shop(**shop_dto.model_dump(exclude_none=True))
        session.add(shop)
        await session_flush(session)
        return ShopDTO.model_validate(shop, from_attributes=True)
