import logging
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

import config
from db import session_flush
from enums.basket_status import BasketStatus
from enums.chatroom_state import ChatroomState
from exceptions import PoolNotAcceptingException, PoolNotFundedException
from models.base import utcnow
from models.basket import Basket
from models.chatroom import Chatroom, ChatroomDTO
from models.pool import Pool
from repositories.basket import BasketRepository
from repositories.chat_membership import ChatMembershipRepository
from repositories.chatroom import ChatroomRepository
from services.pool import PoolService
from utils.basket_state_machine import BasketStateMachine
from utils.pool_state_machine import PoolStateMachine
from utils.transaction_manager import TransactionManager

logger = logging.getLogger(__name__)


class ChatroomSpawner:

    @staticmethod
    async def spawn_chatroom_from_pool(pool: Pool, session: AsyncSession | Session) -> Chatroom:
        """
        Convert a funded pool into a chatroom inside the caller's transaction.

        The pool row must have been read for update in this transaction. Converting
        an already converted pool returns its existing chatroom, so a caller that
        lost the race sees the winner's result instead of an error.

        Effects:
        - chatroom in WAITING, expire_at = now + CHATROOM_WINDOW_HOURS
        - admin = owner of the earliest basket
        - every in_pool basket -> in_chat, pool reference cleared
        - one membership per basket owner
        - pool stops accepting, its final amount moves to chatroom.last_amount

        Raises:
            PoolNotFundedException: current amount below the pool minimum
        """
        existing = await ChatroomRepository.get_by_pool_id(pool.id, session)
        if existing is not None:
            logger.info(f"Pool {pool.id} already converted into chatroom {existing.id}, skipping spawn")
            return existing
        if not pool.is_accepting:
            raise PoolNotAcceptingException(pool.id)
        if not PoolStateMachine.is_funded(pool.current_amount, pool.min_amount):
            raise PoolNotFundedException(pool.id, pool.current_amount, pool.min_amount)

        baskets = await BasketRepository.get_in_pool(pool.id, session)
        if not baskets:
            raise PoolNotFundedException(pool.id, 0.0, pool.min_amount)

        now = utcnow()
        final_amount = pool.current_amount
        chatroom = await ChatroomRepository.create(ChatroomDTO(
            pool_id=pool.id,
            state=ChatroomState.WAITING,
            admin_id=baskets[0].user_id,
            last_amount=final_amount,
            expire_at=now + timedelta(hours=config.CHATROOM_WINDOW_HOURS),
            extensions_before_ordered=0,
            extensions_ordered=0,
        ), session)

        pool.is_accepting = False
        pool.converted_at = now
        pool.current_amount = 0.0

        member_ids = []
        for basket in baskets:
            basket.status = BasketStateMachine.transition(basket.id, basket.status, BasketStatus.IN_CHAT)
            basket.chatroom_id = chatroom.id
            basket.pool_id = None
            if basket.user_id not in member_ids:
                member_ids.append(basket.user_id)
        await session_flush(session)

        for user_id in member_ids:
            await ChatMembershipRepository.create(chatroom.id, user_id, session)

        logger.info(
            f"POOL_CONVERTED: Pool {pool.id} -> chatroom {chatroom.id} with {len(baskets)} basket(s), "
            f"amount {final_amount:.2f}/{pool.min_amount:.2f}, admin {chatroom.admin_id}"
        )
        logger.info(f"CHATROOM_TRANSITION: Chatroom {chatroom.id} created -> {ChatroomState.WAITING.value}")
        return chatroom

    @staticmethod
    async def route_into_chatroom(chatroom: Chatroom, basket: Basket, session: AsyncSession | Session) -> Basket:
        """
        Attach a basket created after its pool converted to the open chatroom of that pool.
        """
        basket.status = BasketStatus.IN_CHAT
        basket.chatroom_id = chatroom.id
        basket.pool_id = None
        chatroom.last_amount = round((chatroom.last_amount or 0.0) + basket.amount, 2)
        await session_flush(session)

        if await ChatMembershipRepository.get_active(chatroom.id, basket.user_id, session) is None:
            await ChatMembershipRepository.create(chatroom.id, basket.user_id, session)
        logger.info(f"BASKET_TRANSITION: Basket {basket.id} routed into open chatroom {chatroom.id}")
        return basket

    @staticmethod
    @TransactionManager.with_retry()
    async def spawn_for_pool(pool_id: int) -> ChatroomDTO:
        """
        Convert a funded pool in its own transaction (reprocessing entry point).

        Raises:
            PoolNotFoundException, PoolNotFundedException, PoolNotAcceptingException
        """
        async with TransactionManager.atomic_transaction() as session:
            pool = await PoolService.get_for_update(pool_id, session)
            chatroom = await ChatroomSpawner.spawn_chatroom_from_pool(pool, session)
            return ChatroomDTO.model_validate(chatroom, from_attributes=True)
