from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any
import logging

from sqlalchemy import event, Result, CursorResult
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession, AsyncEngine

import config
from models.base import Base

"""
Imports of these models are needed to correctly create tables in the database.
For more information see https://stackoverflow.com/questions/7478403/sqlalchemy-classes-across-files
"""
from models.shop import Shop
from models.location import Location
from models.pool import Pool
from models.chatroom import Chatroom
from models.basket import Basket
from models.chat_membership import ChatMembership
from models.message import Message

logger = logging.getLogger(__name__)

engine: AsyncEngine | None = None
session_maker: async_sessionmaker[AsyncSession] | None = None


def _is_sqlite(url: str) -> bool:
    return make_url(url).get_backend_name() == "sqlite"


def init_engine(url: str | None = None) -> AsyncEngine:
    """
    (Re)bind the module level engine and session factory.

    SQLite serializes conflicting writers only if the transaction takes the
    write lock up front, so every transaction is opened with BEGIN IMMEDIATE
    (recipe from the SQLAlchemy aiosqlite dialect docs).
    """
    global engine, session_maker
    url = url or config.DB_URL

    if _is_sqlite(url):
        database = make_url(url).database
        if database and database != ":memory:":
            Path(database).parent.mkdir(parents=True, exist_ok=True)
        engine = create_async_engine(
            url,
            echo=config.SQL_ECHO,
            connect_args={"timeout": config.DB_BUSY_TIMEOUT_SECONDS},
        )

        @event.listens_for(engine.sync_engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            # Disable the driver's own BEGIN so ours below is the only one
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        @event.listens_for(engine.sync_engine, "begin")
        def do_begin(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")
    else:
        engine = create_async_engine(url, echo=config.SQL_ECHO)

    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    return engine


init_engine()


def is_sqlite() -> bool:
    return engine.dialect.name == "sqlite"


@asynccontextmanager
async def get_db_session() -> AsyncSession:
    async with session_maker() as session:
        yield session


async def session_execute(stmt, session: AsyncSession) -> Result[Any] | CursorResult[Any]:
    return await session.execute(stmt)


async def session_flush(session: AsyncSession) -> None:
    await session.flush()


async def session_commit(session: AsyncSession) -> None:
    await session.commit()


async def session_rollback(session: AsyncSession) -> None:
    await session.rollback()


async def create_db_and_tables():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info(f"Database ready: {list(Base.metadata.tables.keys())}")


async def dispose_engine():
    if engine is not None:
        await engine.dispose()
