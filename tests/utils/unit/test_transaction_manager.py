"""
Unit tests for utils/transaction_manager.py

Tests cover:
- Commit on success, rollback on exception
- Change publishing only after commit
- Retry of transient store errors and ConflictException after exhaustion
- Domain exceptions are never retried
"""

from unittest.mock import AsyncMock

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError

from exceptions import ConflictException, ShopNotFoundException
from models.location import Location, LocationDTO
from realtime.bus import set_change_bus
from repositories.location import LocationRepository
from utils.transaction_manager import TransactionManager


class TestAtomicTransaction:

    @pytest.mark.asyncio
    async def test_commit_on_success(self, database):
        async with TransactionManager.atomic_transaction() as session:
            await LocationRepository.create(LocationDTO(name="Dorm C"), session)

        async with TransactionManager.atomic_transaction() as session:
            assert await LocationRepository.get_by_name("Dorm C", session) is not None

    @pytest.mark.asyncio
    async def test_rollback_on_exception(self, database):
        with pytest.raises(RuntimeError):
            async with TransactionManager.atomic_transaction() as session:
                await LocationRepository.create(LocationDTO(name="Dorm D"), session)
                raise RuntimeError("boom")

        async with TransactionManager.atomic_transaction() as session:
            result = await session.execute(select(Location).where(Location.name == "Dorm D"))
            assert result.scalar() is None

    @pytest.mark.asyncio
    async def test_changes_published_after_commit(self, database):
        bus = AsyncMock()
        set_change_bus(bus)

        async with TransactionManager.atomic_transaction() as session:
            await LocationRepository.create(LocationDTO(name="Dorm E"), session)
            bus.publish.assert_not_awaited()

        bus.publish.assert_awaited_once()
        events = bus.publish.await_args.args[0]
        assert [(e.table, e.type.value) for e in events] == [("locations", "INSERT")]
        assert events[0].record["name"] == "Dorm E"

    @pytest.mark.asyncio
    async def test_rolled_back_changes_not_published(self, database):
        bus = AsyncMock()
        set_change_bus(bus)

        with pytest.raises(RuntimeError):
            async with TransactionManager.atomic_transaction() as session:
                await LocationRepository.create(LocationDTO(name="Dorm F"), session)
                raise RuntimeError("boom")

        bus.publish.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_publish_failure_does_not_fail_commit(self, database):
        bus = AsyncMock()
        bus.publish.side_effect = RuntimeError("broker down")
        set_change_bus(bus)

        async with TransactionManager.atomic_transaction() as session:
            await LocationRepository.create(LocationDTO(name="Dorm G"), session)

        async with TransactionManager.atomic_transaction() as session:
            assert await LocationRepository.get_by_name("Dorm G", session) is not None


class TestWithRetry:

    @pytest.mark.asyncio
    async def test_retries_transient_error_then_succeeds(self):
        calls = AsyncMock(side_effect=[OperationalError("BEGIN", {}, Exception("database is locked")), "ok"])

        @TransactionManager.with_retry(max_retries=2, delay_base=0)
        async def operation():
            return await calls()

        assert await operation() == "ok"
        assert calls.await_count == 2

    @pytest.mark.asyncio
    async def test_raises_conflict_when_exhausted(self):
        error = IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed: pools.shop_id"))
        calls = AsyncMock(side_effect=error)

        @TransactionManager.with_retry(max_retries=2, delay_base=0)
        async def create_pool():
            return await calls()

        with pytest.raises(ConflictException) as exc_info:
            await create_pool()
        assert calls.await_count == 3
        assert exc_info.value.operation == "create_pool"
        assert "UNIQUE constraint failed" in exc_info.value.reason

    @pytest.mark.asyncio
    async def test_domain_exceptions_not_retried(self):
        calls = AsyncMock(side_effect=ShopNotFoundException(3))

        @TransactionManager.with_retry(max_retries=3, delay_base=0)
        async def operation():
            return await calls()

        with pytest.raises(ShopNotFoundException):
            await operation()
        assert calls.await_count == 1
