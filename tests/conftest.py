"""
Pytest configuration and fixtures for tests.

This file is automatically loaded by pytest and provides shared fixtures
and configuration for all tests.
"""

import os
import sys

# Environment must be set before config is imported anywhere
os.environ["RUNTIME_ENVIRONMENT"] = "TEST"
os.environ["DB_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["STORAGE_SIGNING_SECRET"] = "test_signing_secret_0123456789abcdef"
os.environ["UI_LANGUAGE"] = "en"
os.environ.pop("REDIS_HOST", None)

# Add parent directory to Python path so tests can import modules
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import pytest
import pytest_asyncio
from fakeredis import FakeAsyncRedis

import db
from models.location import LocationDTO
from models.shop import ShopDTO
from realtime.bus import ChangeBus, set_change_bus
from repositories.location import LocationRepository
from repositories.shop import ShopRepository
from services.basket import BasketService
from utils.transaction_manager import TransactionManager


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest_asyncio.fixture
async def database(tmp_path):
    """
    File-backed SQLite database per test.

    A file (not :memory:) so concurrent transactions use separate connections
    and serialize on BEGIN IMMEDIATE like in production.
    """
    engine = db.init_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await db.create_db_and_tables()
    yield engine
    await db.dispose_engine()


@pytest.fixture(autouse=True)
def no_change_bus():
    """Tests run without realtime delivery unless they install a bus."""
    set_change_bus(None)
    yield
    set_change_bus(None)


@pytest_asyncio.fixture
async def catalog(database):
    """One shop (minimum 50.00) and two dormitories."""
    async with TransactionManager.atomic_transaction() as session:
        shop = await ShopRepository.create(ShopDTO(name="Pizza Place", min_amount=50.0, is_active=True), session)
        other_shop = await ShopRepository.create(ShopDTO(name="Asia Market", min_amount=30.0, is_active=True), session)
        dorm_a = await LocationRepository.create(LocationDTO(name="Dorm A"), session)
        dorm_b = await LocationRepository.create(LocationDTO(name="Dorm B"), session)
    return {"shop": shop, "other_shop": other_shop, "dorm_a": dorm_a, "dorm_b": dorm_b}


@pytest.fixture
def add_basket(catalog):
    """Create a basket in the Pizza Place / Dorm A pool through the service."""

    async def _add_basket(user_id: int, amount: float, shop=None, location=None, **fields):
        shop = shop or catalog["shop"]
        location = location or catalog["dorm_a"]
        fields.setdefault("link", f"https://pizza.example/cart/{user_id}")
        return await BasketService.create_basket(user_id, shop.id, location.id, amount, **fields)

    return _add_basket


@pytest.fixture
def chatroom_with_members(add_basket):
    """
    Fund a pool with one basket per user (in order) and return the spawned chatroom id.
    The first user becomes admin.
    """

    async def _chatroom_with_members(*user_ids: int):
        share = 50.0 / len(user_ids)
        result = None
        for user_id in user_ids:
            result = await add_basket(user_id, round(share + 0.01, 2))
        assert result.chatroom_id is not None
        return result.chatroom_id

    return _chatroom_with_members


# ============================================================================
# Redis Fixtures
# ============================================================================

@pytest_asyncio.fixture
async def redis_client():
    """Create fake Redis client for testing (no real Redis server needed)."""
    client = FakeAsyncRedis()
    yield client
    await client.aclose()


@pytest_asyncio.fixture
async def change_bus(redis_client):
    """ChangeBus over fake Redis, installed as the shared bus."""
    bus = ChangeBus(redis_client, channel_prefix="test")
    set_change_bus(bus)
    yield bus
    await bus.close()
    set_change_bus(None)
