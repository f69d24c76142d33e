"""
Change Bus (Redis pub/sub)

Publishes committed row changes on one channel per table and delivers them to
in-process subscribers filtered by Topic.

Usage:
    from realtime.bus import get_change_bus
    bus = get_change_bus()
    subscription = await bus.subscribe(Topic(table="pools", column="id", value=7), handler)
    ...
    await subscription.unsubscribe()

Channel layout: ``{REALTIME_CHANNEL_PREFIX}:{table}``, payload is a ChangeEvent as JSON.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Iterable, Optional

from pydantic import ValidationError
from redis.asyncio import Redis
from redis.exceptions import RedisError

import config
from realtime.events import ChangeEvent, Topic

logger = logging.getLogger(__name__)

EventHandler = Callable[[ChangeEvent], Awaitable[None]]
InvalidHandler = Callable[[], Awaitable[None]]


class Subscription:
    """A single topic listener. Runs until ``unsubscribe()`` is awaited."""

    GET_MESSAGE_TIMEOUT = 1.0

    def __init__(self, redis: Redis, channel: str, topic: Topic, handler: EventHandler,
                 on_invalid: Optional[InvalidHandler] = None):
        self.channel = channel
        self.topic = topic
        self._handler = handler
        self._on_invalid = on_invalid
        self._pubsub = redis.pubsub()
        self._task: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def start(self) -> "Subscription":
        await self._pubsub.subscribe(self.channel)
        self._task = asyncio.create_task(self._listen(), name=f"subscription:{self.channel}")
        logger.debug(f"Subscribed to {self.channel} ({self.topic.column}={self.topic.value})")
        return self

    async def _listen(self):
        while not self._closed:
            try:
                message = await self._pubsub.get_message(
                    ignore_subscribe_messages=True, timeout=self.GET_MESSAGE_TIMEOUT
                )
            except asyncio.CancelledError:
                raise
            except RedisError as e:
                logger.error(f"Subscription {self.channel} read failed: {e}")
                await asyncio.sleep(self.GET_MESSAGE_TIMEOUT)
                continue
            if message is None or message.get("type") != "message":
                continue
            await self._dispatch(message["data"])

    async def _dispatch(self, data) -> None:
        if self._closed:
            return
        try:
            change = ChangeEvent.model_validate_json(data)
        except ValidationError as e:
            logger.warning(f"Malformed change event on {self.channel}: {e}")
            if self._on_invalid is not None:
                await self._on_invalid()
            return
        if not self.topic.matches(change):
            return
        try:
            await self._handler(change)
        except Exception as e:
            # One failing handler must not kill the listener loop
            logger.exception(f"Change handler failed on {self.channel}: {e}")

    async def unsubscribe(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._task is not None and self._task is not asyncio.current_task():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        try:
            await self._pubsub.unsubscribe(self.channel)
        finally:
            await self._pubsub.aclose()
        logger.debug(f"Unsubscribed from {self.channel}")


class ChangeBus:

    def __init__(self, redis: Redis, channel_prefix: Optional[str] = None):
        self.redis = redis
        self.channel_prefix = channel_prefix or config.REALTIME_CHANNEL_PREFIX
        self._subscriptions: list[Subscription] = []

    def channel_for(self, table: str) -> str:
        return f"{self.channel_prefix}:{table}"

    async def publish(self, events: Iterable[ChangeEvent]) -> int:
        """
        Publish committed changes. Returns the number of events sent.

        Delivery is best effort: the data is already committed, so a broker
        failure is logged and views recover through refresh/poll.
        """
        sent = 0
        committed_at = datetime.now(timezone.utc)
        for change in events:
            if change.committed_at is None:
                change.committed_at = committed_at
            try:
                await self.redis.publish(self.channel_for(change.table), change.model_dump_json())
                sent += 1
            except RedisError as e:
                logger.error(f"Failed to publish {change.type.value} on {change.table}: {e}")
        return sent

    async def subscribe(self, topic: Topic, handler: EventHandler,
                        on_invalid: Optional[InvalidHandler] = None) -> Subscription:
        subscription = Subscription(self.redis, self.channel_for(topic.table), topic, handler, on_invalid)
        await subscription.start()
        self._subscriptions = [s for s in self._subscriptions if not s.closed]
        self._subscriptions.append(subscription)
        return subscription

    async def close(self) -> None:
        for subscription in self._subscriptions:
            await subscription.unsubscribe()
        self._subscriptions.clear()


_bus_instance: Optional[ChangeBus] = None


def get_change_bus() -> Optional[ChangeBus]:
    """
    Get the shared ChangeBus.

    Created on first access when REDIS_HOST is configured; returns None when
    realtime delivery is disabled (views then rely on polling).
    """
    global _bus_instance
    if _bus_instance is None and config.REDIS_HOST:
        _bus_instance = ChangeBus(
            Redis(host=config.REDIS_HOST, port=config.REDIS_PORT, password=config.REDIS_PASSWORD)
        )
    return _bus_instance


def set_change_bus(bus: Optional[ChangeBus]) -> None:
    global _bus_instance
    _bus_instance = bus


async def close_change_bus():
    """
    Close all subscriptions and the Redis connection.

    Should be called during application shutdown.
    """
    global _bus_instance
    if _bus_instance is not None:
        await _bus_instance.close()
        await _bus_instance.redis.aclose()
        _bus_instance = None
