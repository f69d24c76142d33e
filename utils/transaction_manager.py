import asyncio
import logging
import time
from contextlib import asynccontextmanager
from functools import wraps
from typing import AsyncGenerator, Optional

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from db import get_db_session, session_commit, session_rollback
from exceptions import ConflictException
from realtime.bus import get_change_bus
from realtime.change_capture import drain_changes
from realtime.events import ChangeEvent

logger = logging.getLogger(__name__)

# Lock contention (SQLite "database is locked") and uniqueness races on
# accepting pools / active memberships. Everything else propagates unchanged.
RETRYABLE_ERRORS = (OperationalError, IntegrityError)


class TransactionManager:
    """
    One lifecycle operation = one store transaction.

    Basket mutation, pool amount adjustment, funded check and chatroom spawn
    all run inside a single ``atomic_transaction()``; row changes it flushed
    are published to the change bus once the commit went through.
    """

    # Transactions slower than this are logged, not aborted
    SLOW_TRANSACTION_SECONDS = 30

    MAX_RETRIES = 3
    RETRY_DELAY_BASE = 0.1

    @staticmethod
    @asynccontextmanager
    async def atomic_transaction(slow_after: Optional[float] = None) -> AsyncGenerator[AsyncSession, None]:
        """
        Usage:
            async with TransactionManager.atomic_transaction() as session:
                pool = await PoolService.get_for_update(pool_id, session)
                ...

        Commits on normal exit, rolls back and re-raises on any exception.
        """
        slow_after = slow_after or TransactionManager.SLOW_TRANSACTION_SECONDS

        async with get_db_session() as session:
            started = time.monotonic()
            try:
                yield session
                await session_commit(session)
            except Exception as e:
                try:
                    await session_rollback(session)
                except Exception as rollback_error:
                    logger.critical(f"Rollback failed after {type(e).__name__}: {rollback_error}")
                else:
                    logger.info(f"Transaction rolled back ({type(e).__name__}): {e}")
                raise

            elapsed = time.monotonic() - started
            if elapsed > slow_after:
                logger.warning(f"Slow transaction: {elapsed:.2f}s (threshold {slow_after}s)")
            changes = drain_changes(session)

        await TransactionManager.publish_changes(changes)

    @staticmethod
    async def publish_changes(changes: list[ChangeEvent]) -> None:
        """Hand committed row changes to the change bus; a missing or failing bus is not fatal."""
        if not changes:
            return
        bus = get_change_bus()
        if bus is None:
            logger.debug(f"No change bus, {len(changes)} change(s) not pushed")
            return
        try:
            await bus.publish(changes)
        except Exception as e:
            # Already committed, views catch up on their next poll
            logger.error(f"Publishing {len(changes)} committed change(s) failed: {e}")

    @staticmethod
    def with_retry(max_retries: Optional[int] = None, delay_base: Optional[float] = None):
        """
        Re-run a whole transactional operation when the store reports a write
        conflict. Backoff doubles per attempt. Domain exceptions are never
        retried; exhausted retries raise ConflictException named after the
        decorated operation.
        """
        retries = TransactionManager.MAX_RETRIES if max_retries is None else max_retries
        base = TransactionManager.RETRY_DELAY_BASE if delay_base is None else delay_base

        def decorator(func):
            operation = func.__name__

            @wraps(func)
            async def wrapper(*args, **kwargs):
                attempt = 0
                while True:
                    try:
                        return await func(*args, **kwargs)
                    except RETRYABLE_ERRORS as e:
                        reason = str(getattr(e, "orig", None) or e)
                        if attempt >= retries:
                            logger.error(f"{operation} gave up after {attempt + 1} attempt(s): {reason}")
                            raise ConflictException(operation, reason) from e
                        delay = base * (2 ** attempt)
                        attempt += 1
                        logger.warning(f"{operation} hit a write conflict, attempt {attempt}/{retries} "
                                       f"in {delay:.2f}s: {reason}")
                        await asyncio.sleep(delay)

            return wrapper
        return decorator
