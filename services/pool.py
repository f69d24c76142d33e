import logging

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from db import session_flush
from exceptions import PoolNotFoundException
from models.pool import Pool
from models.shop import ShopDTO
from repositories.pool import PoolRepository
from utils.pool_state_machine import PoolStateMachine

logger = logging.getLogger(__name__)


class PoolService:
    """
    Running totals of (shop, location) pools.

    Every method takes the caller's session: the amount adjustment must commit or
    roll back together with the basket mutation that caused it.
    """

    @staticmethod
    async def resolve_pool_for(shop: ShopDTO, location_id: int, session: AsyncSession | Session) -> Pool:
        """
        Return the accepting pool for (shop, location), creating an empty one if none exists.

        The new pool inherits the shop's current min_amount.
        """
        pool = await PoolRepository.get_accepting_for_update(shop.id, location_id, session)
        if pool is not None:
            return pool
        pool = await PoolRepository.create(shop.id, location_id, shop.min_amount, session)
        logger.info(f"Pool {pool.id} created for shop {shop.id} at location {location_id} (min {shop.min_amount:.2f})")
        return pool

    @staticmethod
    async def get_for_update(pool_id: int, session: AsyncSession | Session) -> Pool:
        pool = await PoolRepository.get_for_update(pool_id, session)
        if pool is None:
            raise PoolNotFoundException(pool_id)
        return pool

    @staticmethod
    async def _adjust(pool: Pool, delta: float, session: AsyncSession | Session) -> Pool:
        old_amount = pool.current_amount
        pool.current_amount = PoolStateMachine.apply_delta(pool.id, pool.is_accepting, pool.current_amount, delta)
        await session_flush(session)
        logger.debug(f"Pool {pool.id} amount {old_amount:.2f} -> {pool.current_amount:.2f}")
        return pool

    @staticmethod
    async def on_basket_added(pool: Pool, amount: float, session: AsyncSession | Session) -> Pool:
        return await PoolService._adjust(pool, amount, session)

    @staticmethod
    async def on_basket_removed(pool: Pool, amount: float, session: AsyncSession | Session) -> Pool:
        return await PoolService._adjust(pool, -amount, session)

    @staticmethod
    async def on_basket_amount_changed(pool: Pool, delta: float, session: AsyncSession | Session) -> Pool:
        if delta == 0:
            return pool
        return await PoolService._adjust(pool, delta, session)

    @staticmethod
    def is_funded(pool: Pool) -> bool:
        return pool.is_accepting and PoolStateMachine.is_funded(pool.current_amount, pool.min_amount)
