from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from db import session_execute, session_flush
from models.pool import Pool, PoolDTO


class PoolRepository:
    @staticmethod
    async def get_by_id(pool_id: int, session: AsyncSession | Session) -> PoolDTO | None:
        stmt = select(Pool).where(Pool.id == pool_id)
        pool = await session_execute(stmt, session)
        pool = pool.scalar()
        if pool is not None:
            return PoolDTO.model_validate(pool, from_attributes=True)
        return None

    @staticmethod
    async def get_for_update(pool_id: int, session: AsyncSession | Session) -> Pool | None:
        # FOR UPDATE is dropped by the SQLite dialect; there BEGIN IMMEDIATE serializes writers
        stmt = select(Pool).where(Pool.id == pool_id).with_for_update()
        pool = await session_execute(stmt, session)
        return pool.scalar()

    @staticmethod
    async def get_accepting_for_update(shop_id: int, location_id: int, session: AsyncSession | Session) -> Pool | None:
        stmt = select(Pool).where(
            Pool.shop_id == shop_id,
            Pool.location_id == location_id,
            Pool.is_accepting.is_(True)
        ).with_for_update()
        pool = await session_execute(stmt, session)
        return pool.scalar()

    @staticmethod
    async def get_accepting(shop_id: int, location_id: int, session: AsyncSession | Session) -> PoolDTO | None:
        stmt = select(Pool).where(
            Pool.shop_id == shop_id,
            Pool.location_id == location_id,
            Pool.is_accepting.is_(True)
        )
        pool = await session_execute(stmt, session)
        pool = pool.scalar()
        if pool is not None:
            return PoolDTO.model_validate(pool, from_attributes=True)
        return None

    @staticmethod
    async def create(shop_id: int, location_id: int, min_amount: float, session: AsyncSession | Session) -> Pool:
        pool = Pool(shop_id=shop_id, location_id=location_id, min_amount=min_amount,
                    current_amount=0.0, is_accepting=True)
        session.add(pool)
        await session_flush(session)
        return pool
