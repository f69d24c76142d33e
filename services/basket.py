import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from db import session_flush
from enums.basket_status import BasketStatus
from exceptions import (
    BasketNotFoundException,
    BasketOwnershipException,
    DuplicateActiveBasketException,
    LocationNotFoundException,
    ShopNotFoundException,
)
from models.basket import Basket, BasketDTO, BasketResultDTO, BasketUpdateDTO
from repositories.basket import BasketRepository
from repositories.chat_membership import ChatMembershipRepository
from repositories.chatroom import ChatroomRepository
from repositories.location import LocationRepository
from repositories.pool import PoolRepository
from repositories.shop import ShopRepository
from services.chatroom_spawner import ChatroomSpawner
from services.pool import PoolService
from utils.basket_state_machine import BasketStateMachine
from utils.transaction_manager import TransactionManager

logger = logging.getLogger(__name__)


class BasketService:
    """
    Owner commands on baskets.

    Each command is one atomic transaction: the basket mutation, the pool amount
    adjustment, the funded check and (when funded) the chatroom spawn commit
    together or not at all.
    """

    @staticmethod
    async def _get_owned_for_update(basket_id: int, user_id: int, session: AsyncSession | Session) -> Basket:
        basket = await BasketRepository.get_for_update(basket_id, session)
        if basket is None:
            raise BasketNotFoundException(basket_id)
        if basket.user_id != user_id:
            raise BasketOwnershipException(basket_id, user_id)
        return basket

    @staticmethod
    async def _spawn_if_funded(pool, session: AsyncSession | Session) -> Optional[int]:
        if not PoolService.is_funded(pool):
            return None
        chatroom = await ChatroomSpawner.spawn_chatroom_from_pool(pool, session)
        return chatroom.id

    @staticmethod
    def _result(basket: Basket, pool_id: Optional[int], chatroom_id: Optional[int]) -> BasketResultDTO:
        return BasketResultDTO(
            basket=BasketDTO.model_validate(basket, from_attributes=True),
            pool_id=pool_id,
            chatroom_id=chatroom_id,
        )

    @staticmethod
    @TransactionManager.with_retry()
    async def create_basket(user_id: int, shop_id: int, location_id: int, amount: float,
                            link: Optional[str] = None, note: Optional[str] = None) -> BasketResultDTO:
        """
        Create a basket and place it in the (shop, location) pool, or route it into
        the open chatroom of that pool's latest cycle.

        Returns:
            BasketResultDTO with the pool id and, if the pool converted in this
            call or the basket joined an open chatroom, the chatroom id

        Raises:
            InvalidBasketDataException: amount <= 0, malformed link, no link and no note
            DuplicateActiveBasketException: owner already has an active basket for the shop
            ShopNotFoundException / LocationNotFoundException
        """
        amount, link, note = BasketStateMachine.validate_fields(amount, link, note)

        async with TransactionManager.atomic_transaction() as session:
            shop = await ShopRepository.get_by_id(shop_id, session)
            if shop is None or not shop.is_active:
                raise ShopNotFoundException(shop_id)
            if await LocationRepository.get_by_id(location_id, session) is None:
                raise LocationNotFoundException(location_id)

            existing = await BasketRepository.get_active_for_shop(user_id, shop_id, session)
            if existing is not None:
                raise DuplicateActiveBasketException(user_id, shop_id, existing.id)

            pool = await PoolRepository.get_accepting_for_update(shop_id, location_id, session)

            if pool is None:
                chatroom = await ChatroomRepository.get_open_for_shop_location(shop_id, location_id, session)
                if chatroom is not None and await ChatMembershipRepository.has_ever_joined(chatroom.id, user_id, session):
                    # Left or removed earlier; a new basket must not undo that
                    logger.info(f"User {user_id} already left chatroom {chatroom.id}, opening a new pool instead")
                    chatroom = None
                if chatroom is not None:
                    basket = await BasketRepository.create(BasketDTO(
                        user_id=user_id, shop_id=shop_id, location_id=location_id,
                        amount=amount, link=link, note=note, is_ready=False,
                        status=BasketStatus.IN_CHAT, chatroom_id=chatroom.id,
                    ), session)
                    await ChatroomSpawner.route_into_chatroom(chatroom, basket, session)
                    return BasketService._result(basket, chatroom.pool_id, chatroom.id)
                pool = await PoolService.resolve_pool_for(shop, location_id, session)

            basket = await BasketRepository.create(BasketDTO(
                user_id=user_id, shop_id=shop_id, location_id=location_id,
                amount=amount, link=link, note=note, is_ready=False,
                status=BasketStatus.IN_POOL, pool_id=pool.id,
            ), session)
            await PoolService.on_basket_added(pool, amount, session)
            logger.info(f"Basket {basket.id} created by user {user_id} in pool {pool.id} "
                        f"({pool.current_amount:.2f}/{pool.min_amount:.2f})")

            pool_id = pool.id
            chatroom_id = await BasketService._spawn_if_funded(pool, session)
            return BasketService._result(basket, pool_id, chatroom_id)

    @staticmethod
    @TransactionManager.with_retry()
    async def update_basket(basket_id: int, user_id: int, fields: BasketUpdateDTO) -> BasketResultDTO:
        """
        Edit amount/link/note of an in_pool basket; only fields explicitly set are applied.

        Raises:
            BasketNotFoundException, BasketOwnershipException,
            InvalidBasketStateException (not in_pool), InvalidBasketDataException
        """
        async with TransactionManager.atomic_transaction() as session:
            basket = await BasketService._get_owned_for_update(basket_id, user_id, session)
            BasketStateMachine.ensure_editable(basket.id, basket.status)

            updates = fields.model_dump(include=fields.model_fields_set)
            amount, link, note = BasketStateMachine.validate_fields(
                updates.get("amount", basket.amount),
                updates.get("link", basket.link),
                updates.get("note", basket.note),
            )
            delta = round(amount - basket.amount, 2)
            basket.amount = amount
            basket.link = link
            basket.note = note
            await session_flush(session)

            pool = await PoolService.get_for_update(basket.pool_id, session)
            await PoolService.on_basket_amount_changed(pool, delta, session)
            logger.info(f"Basket {basket.id} updated by user {user_id} (amount delta {delta:+.2f})")

            pool_id = pool.id
            chatroom_id = None
            if delta > 0:
                chatroom_id = await BasketService._spawn_if_funded(pool, session)
            return BasketService._result(basket, pool_id, chatroom_id)

    @staticmethod
    @TransactionManager.with_retry()
    async def delete_basket(basket_id: int, user_id: int) -> None:
        """
        Remove an in_pool basket and take its amount out of the pool.

        Raises:
            BasketNotFoundException, BasketOwnershipException, InvalidBasketStateException
        """
        async with TransactionManager.atomic_transaction() as session:
            basket = await BasketService._get_owned_for_update(basket_id, user_id, session)
            BasketStateMachine.ensure_editable(basket.id, basket.status)

            pool = await PoolService.get_for_update(basket.pool_id, session)
            amount = basket.amount
            await BasketRepository.delete(basket, session)
            await PoolService.on_basket_removed(pool, amount, session)
            logger.info(f"Basket {basket_id} deleted by user {user_id}, pool {pool.id} now {pool.current_amount:.2f}")

    @staticmethod
    @TransactionManager.with_retry()
    async def toggle_ready(basket_id: int, user_id: int) -> BasketDTO:
        """
        Flip the readiness flag. Readiness is a signal to other pool members only;
        funding stays amount based.
        """
        async with TransactionManager.atomic_transaction() as session:
            basket = await BasketService._get_owned_for_update(basket_id, user_id, session)
            BasketStateMachine.ensure_editable(basket.id, basket.status)
            basket.is_ready = not basket.is_ready
            await session_flush(session)
            logger.info(f"Basket {basket.id} ready={basket.is_ready} (user {user_id})")
            return BasketDTO.model_validate(basket, from_attributes=True)
