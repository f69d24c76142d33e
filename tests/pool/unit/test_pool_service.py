"""
Unit Tests: PoolService and pool funding under concurrency

Tests cover:
- current_amount always equals the sum of in_pool basket amounts
- at most one accepting pool per (shop, location)
- concurrent basket creation converts a pool exactly once
"""

import asyncio

import pytest
from sqlalchemy import func, select

from db import get_db_session
from enums.basket_status import BasketStatus
from exceptions import PoolNotAcceptingException, PoolNotFoundException
from models.basket import BasketUpdateDTO
from models.chatroom import Chatroom
from models.pool import Pool
from repositories.basket import BasketRepository
from repositories.pool import PoolRepository
from services.basket import BasketService
from services.chatroom import ChatroomService
from services.pool import PoolService
from services.query import QueryService
from utils.transaction_manager import TransactionManager


async def _assert_amount_matches_baskets(pool_id: int):
    async with get_db_session() as session:
        pool = await PoolRepository.get_by_id(pool_id, session)
        total = await BasketRepository.sum_in_pool(pool_id, session)
    assert pool.current_amount == total


class TestPoolAmountInvariant:

    @pytest.mark.asyncio
    async def test_amount_tracks_every_mutation(self, catalog, add_basket):
        first = await add_basket(1, 12.34)
        await _assert_amount_matches_baskets(first.pool_id)

        second = await add_basket(2, 7.66)
        await _assert_amount_matches_baskets(first.pool_id)

        await BasketService.update_basket(second.basket.id, 2, BasketUpdateDTO(amount=20.01))
        await _assert_amount_matches_baskets(first.pool_id)

        await BasketService.delete_basket(first.basket.id, 1)
        await _assert_amount_matches_baskets(first.pool_id)

        pool_status = await QueryService.get_pool_status(first.pool_id)
        assert pool_status.pool.current_amount == 20.01

    @pytest.mark.asyncio
    async def test_converted_pool_is_emptied(self, catalog, add_basket):
        await add_basket(1, 30.0)
        result = await add_basket(2, 25.0)

        pool_status = await QueryService.get_pool_status(result.pool_id)
        assert pool_status.pool.is_accepting is False
        assert pool_status.pool.converted_at is not None
        assert pool_status.pool.current_amount == 0.0
        assert pool_status.baskets == []
        assert pool_status.chatroom_id == result.chatroom_id
        await _assert_amount_matches_baskets(result.pool_id)

    @pytest.mark.asyncio
    async def test_new_cycle_after_chatroom_closed(self, catalog, add_basket):
        """Once the chatroom stops taking members, the next basket opens a fresh pool."""
        funded = await add_basket(1, 50.0)
        await ChatroomService.mark_ordered(funded.chatroom_id, 1)

        next_cycle = await add_basket(2, 10.0)

        assert next_cycle.pool_id != funded.pool_id
        assert next_cycle.basket.status == BasketStatus.IN_POOL
        async with get_db_session() as session:
            accepting = await session.execute(
                select(func.count(Pool.id)).where(Pool.is_accepting.is_(True))
            )
        assert accepting.scalar() == 1


class TestPoolService:

    @pytest.mark.asyncio
    async def test_resolve_pool_reuses_accepting_pool(self, catalog):
        shop, dorm = catalog["shop"], catalog["dorm_a"]
        async with TransactionManager.atomic_transaction() as session:
            first = await PoolService.resolve_pool_for(shop, dorm.id, session)
            second = await PoolService.resolve_pool_for(shop, dorm.id, session)
        assert first.id == second.id
        assert first.min_amount == shop.min_amount

    @pytest.mark.asyncio
    async def test_get_for_update_unknown_pool(self, catalog):
        with pytest.raises(PoolNotFoundException):
            async with TransactionManager.atomic_transaction() as session:
                await PoolService.get_for_update(404, session)

    @pytest.mark.asyncio
    async def test_converted_pool_rejects_amount_changes(self, catalog, add_basket):
        result = await add_basket(1, 50.0)

        with pytest.raises(PoolNotAcceptingException):
            async with TransactionManager.atomic_transaction() as session:
                pool = await PoolService.get_for_update(result.pool_id, session)
                await PoolService.on_basket_added(pool, 5.0, session)


class TestConcurrentBasketCreation:

    @pytest.mark.asyncio
    async def test_concurrent_creates_share_one_pool(self, catalog, add_basket):
        results = await asyncio.gather(*(add_basket(user_id, 8.0) for user_id in range(1, 6)))

        assert len({r.pool_id for r in results}) == 1
        pool_status = await QueryService.get_pool_status(results[0].pool_id)
        assert pool_status.pool.current_amount == 40.0
        assert len(pool_status.baskets) == 5

    @pytest.mark.asyncio
    async def test_concurrent_creates_convert_exactly_once(self, catalog, add_basket):
        results = await asyncio.gather(*(add_basket(user_id, 10.0) for user_id in range(1, 7)))

        chatroom_ids = {r.chatroom_id for r in results if r.chatroom_id is not None}
        assert len(chatroom_ids) == 1
        async with get_db_session() as session:
            chatroom_count = await session.execute(select(func.count(Chatroom.id)))
        assert chatroom_count.scalar() == 1

        chatroom_id = chatroom_ids.pop()
        detail = await QueryService.get_chatroom_detail(chatroom_id, 1)
        assert sorted(m.user_id for m in detail.members) == [1, 2, 3, 4, 5, 6]
        assert all(b.status == BasketStatus.IN_CHAT for b in detail.baskets)
        assert detail.chatroom.last_amount == 60.0
