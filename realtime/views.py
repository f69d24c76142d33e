"""
Live views over the change bus.

A view holds the last fetched aggregate for one viewer and keeps it current:
low-risk fields are patched in place from the event payload, anything
structural triggers ``refresh()``. Push events and ``poll()`` both go through
``refresh()``, so there is exactly one fetch path per view.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

import config
from enums.basket_status import BasketStatus
from enums.change_type import ChangeType
from exceptions import ForbiddenException, NotFoundException
from models.message import MessageDTO
from realtime.bus import ChangeBus, Subscription, get_change_bus
from realtime.events import ChangeEvent, Topic
from services.message import MessageService
from services.query import QueryService
from utils.chatroom_state_machine import ChatroomStateMachine
from utils.pool_state_machine import PoolStateMachine

logger = logging.getLogger(__name__)

ChangeCallback = Callable[["LiveView"], Awaitable[None]]


class LiveView:
    """
    Base class. Subclasses implement ``load()``, ``topics()`` and ``apply_event()``.
    """

    def __init__(self, viewer_id: int, on_change: Optional[ChangeCallback] = None,
                 refetch_retries: Optional[int] = None, refetch_delay: Optional[float] = None):
        self.viewer_id = viewer_id
        self.data = None
        self.access_lost = False
        self._on_change = on_change
        self._refetch_retries = refetch_retries if refetch_retries is not None else config.REALTIME_REFETCH_RETRIES
        self._refetch_delay = refetch_delay if refetch_delay is not None else config.REALTIME_REFETCH_DELAY_SECONDS
        self._subscriptions: list[Subscription] = []
        self._poll_task: Optional[asyncio.Task] = None
        self._refresh_lock = asyncio.Lock()
        self._stopped = False

    async def load(self):
        raise NotImplementedError

    def topics(self) -> list[Topic]:
        raise NotImplementedError

    def apply_event(self, event: ChangeEvent) -> bool:
        """Patch ``self.data`` from the event. Returns False when a full refresh is needed."""
        return False

    async def _notify(self):
        if self._on_change is not None:
            await self._on_change(self)

    async def refresh(self):
        """
        Re-fetch the aggregate. A missing aggregate is retried a bounded number of
        times since its creation event may still be in flight on another topic.
        """
        async with self._refresh_lock:
            for attempt in range(self._refetch_retries + 1):
                try:
                    self.data = await self.load()
                    break
                except NotFoundException as e:
                    if attempt == self._refetch_retries:
                        logger.warning(f"{type(self).__name__} gave up re-fetching after {attempt + 1} attempt(s): {e}")
                        return self.data
                    await asyncio.sleep(self._refetch_delay)
                except ForbiddenException as e:
                    # Viewer was removed; keep the last snapshot
                    logger.info(f"{type(self).__name__} lost access for viewer {self.viewer_id}: {e}")
                    self.access_lost = True
                    return self.data
        await self._notify()
        return self.data

    async def handle_event(self, event: ChangeEvent) -> None:
        if self._stopped:
            return
        try:
            patched = self.data is not None and self.apply_event(event)
        except Exception as e:
            logger.warning(f"{type(self).__name__} could not apply {event.type.value} on {event.table}: {e}")
            patched = False
        if patched:
            await self._notify()
        else:
            await self.refresh()

    async def start(self, bus: Optional[ChangeBus] = None):
        """Subscribe to the view's topics, then load the initial snapshot."""
        self._stopped = False
        bus = bus or get_change_bus()
        if bus is None:
            logger.debug(f"{type(self).__name__} started without change bus, polling only")
        else:
            for topic in self.topics():
                self._subscriptions.append(await bus.subscribe(topic, self.handle_event, on_invalid=self.refresh))
        await self.refresh()
        return self

    def poll(self, interval: Optional[float] = None) -> asyncio.Task:
        """Reconcile by periodic refresh, independent of push delivery."""
        interval = interval if interval is not None else config.REALTIME_POLL_INTERVAL_SECONDS

        async def _poll_loop():
            while not self._stopped:
                await asyncio.sleep(interval)
                if not self._stopped:
                    await self.refresh()

        if self._poll_task is None or self._poll_task.done():
            self._poll_task = asyncio.create_task(_poll_loop(), name=f"poll:{type(self).__name__}")
        return self._poll_task

    async def stop(self):
        """Tear down subscriptions and polling; no events are handled afterwards."""
        self._stopped = True
        for subscription in self._subscriptions:
            await subscription.unsubscribe()
        self._subscriptions.clear()
        if self._poll_task is not None:
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
            self._poll_task = None


class PoolView(LiveView):
    """
    Pool page of one viewer. ``redirect_chatroom_id`` is set once the viewer's
    basket moved into a chatroom; the UI navigates there.
    """

    def __init__(self, pool_id: int, viewer_id: int, **kwargs):
        super().__init__(viewer_id, **kwargs)
        self.pool_id = pool_id
        self.redirect_chatroom_id: Optional[int] = None

    async def load(self):
        return await QueryService.get_pool_status(self.pool_id)

    def topics(self) -> list[Topic]:
        return [
            Topic(table="pools", column="id", value=self.pool_id),
            Topic(table="baskets", column="pool_id", value=self.pool_id),
            Topic(table="chatrooms", column="pool_id", value=self.pool_id),
        ]

    def apply_event(self, event: ChangeEvent) -> bool:
        if event.table == "pools":
            if event.type != ChangeType.UPDATE or event.changed("is_accepting"):
                return False
            current_amount = event.get("current_amount")
            self.data.pool.current_amount = current_amount
            self.data.progress_percent = PoolStateMachine.progress_percent(current_amount, self.data.pool.min_amount)
            self.data.remaining_amount = PoolStateMachine.remaining(current_amount, self.data.pool.min_amount)
            return True

        if event.table == "baskets":
            if (
                event.record is not None
                and event.record.get("user_id") == self.viewer_id
                and event.record.get("status") == BasketStatus.IN_CHAT.value
            ):
                self.redirect_chatroom_id = event.record.get("chatroom_id")
                logger.info(f"Viewer {self.viewer_id} redirected to chatroom {self.redirect_chatroom_id}")
            return False

        if event.table == "chatrooms" and event.type == ChangeType.INSERT:
            self.data.chatroom_id = event.get("id")
        return False


class ChatroomView(LiveView):
    """Chatroom page of one viewer: aggregate detail plus the message list."""

    PATCHABLE_COLUMNS = ("expire_at", "extensions_before_ordered", "extensions_ordered", "last_amount")

    def __init__(self, chatroom_id: int, viewer_id: int, **kwargs):
        super().__init__(viewer_id, **kwargs)
        self.chatroom_id = chatroom_id
        self.messages: list[MessageDTO] = []

    async def load(self):
        detail = await QueryService.get_chatroom_detail(self.chatroom_id, self.viewer_id)
        self.messages = await MessageService.get_messages(self.chatroom_id, self.viewer_id)
        return detail

    def topics(self) -> list[Topic]:
        return [
            Topic(table="chatrooms", column="id", value=self.chatroom_id),
            Topic(table="chat_memberships", column="chatroom_id", value=self.chatroom_id),
            Topic(table="baskets", column="chatroom_id", value=self.chatroom_id),
            Topic(table="messages", column="chatroom_id", value=self.chatroom_id),
        ]

    def _recompute_permissions(self):
        chatroom = self.data.chatroom
        self.data.permissions = ChatroomStateMachine.permissions_for(
            self.data.effective_state,
            chatroom.admin_id,
            self.viewer_id,
            self.data.permissions.is_member,
            chatroom.extensions_before_ordered,
            chatroom.extensions_ordered,
            config.EXTENSIONS_PER_PHASE,
        )

    def apply_event(self, event: ChangeEvent) -> bool:
        if event.table == "chatrooms":
            if event.type != ChangeType.UPDATE or event.changed("state") or event.changed("admin_id"):
                return False
            patched = self.data.chatroom.model_copy(
                update={column: event.get(column) for column in self.PATCHABLE_COLUMNS}
            )
            # Re-validate so ISO timestamps from the payload become datetimes
            self.data.chatroom = type(patched).model_validate(patched.model_dump())
            self._recompute_permissions()
            return True

        if event.table == "messages":
            if event.type == ChangeType.INSERT:
                message = MessageDTO.model_validate(event.record)
                if any(m.id == message.id for m in self.messages):
                    return True
                self.messages.append(MessageService.with_url(message))
                return True
            if event.type == ChangeType.UPDATE:
                for message in self.messages:
                    if message.id == event.get("id"):
                        message.read_at = MessageDTO.model_validate(event.record).read_at
                        return True
            return False

        # Membership and basket changes alter the member list, admin and counters
        return False
