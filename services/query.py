"""
Read side of the lifecycle: normalized aggregates for views.

Every query opens its own session and never mutates; reading the same aggregate
twice yields the same result.
"""

import config
from db import get_db_session
from enums.basket_status import BasketStatus
from exceptions import (
    BasketNotFoundException,
    BasketOwnershipException,
    ChatroomNotFoundException,
    NotChatroomMemberException,
    PoolNotFoundException,
)
from models.basket import BasketDTO
from models.chat_membership import ChatMembershipDTO
from models.chatroom import ChatMemberDTO, ChatroomDetailDTO, DashboardDTO
from models.pool import PoolStatusDTO
from repositories.basket import BasketRepository
from repositories.chat_membership import ChatMembershipRepository
from repositories.chatroom import ChatroomRepository
from repositories.location import LocationRepository
from repositories.pool import PoolRepository
from repositories.shop import ShopRepository
from utils.chatroom_state_machine import ChatroomStateMachine
from utils.pool_state_machine import PoolStateMachine


class QueryService:

    @staticmethod
    async def get_basket(basket_id: int, user_id: int) -> BasketDTO:
        async with get_db_session() as session:
            basket = await BasketRepository.get_by_id(basket_id, session)
        if basket is None:
            raise BasketNotFoundException(basket_id)
        if basket.user_id != user_id:
            raise BasketOwnershipException(basket_id, user_id)
        return basket

    @staticmethod
    async def get_baskets_by_owner(user_id: int, active_only: bool = False) -> list[BasketDTO]:
        async with get_db_session() as session:
            return await BasketRepository.get_by_owner(user_id, session, active_only=active_only)

    @staticmethod
    async def get_pool_status(pool_id: int) -> PoolStatusDTO:
        """
        Pool with its shop, location and in_pool baskets, plus funding progress.
        chatroom_id is set once the pool was converted.
        """
        async with get_db_session() as session:
            pool = await PoolRepository.get_by_id(pool_id, session)
            if pool is None:
                raise PoolNotFoundException(pool_id)
            shop = await ShopRepository.get_by_id(pool.shop_id, session)
            location = await LocationRepository.get_by_id(pool.location_id, session)
            baskets = [
                BasketDTO.model_validate(basket, from_attributes=True)
                for basket in await BasketRepository.get_in_pool(pool_id, session)
            ]
            chatroom = await ChatroomRepository.get_by_pool_id(pool_id, session)
            chatroom_id = chatroom.id if chatroom is not None else None

        return PoolStatusDTO(
            pool=pool,
            shop=shop,
            location=location,
            baskets=baskets,
            ready_count=sum(1 for basket in baskets if basket.is_ready),
            progress_percent=PoolStateMachine.progress_percent(pool.current_amount, pool.min_amount),
            remaining_amount=PoolStateMachine.remaining(pool.current_amount, pool.min_amount),
            chatroom_id=chatroom_id,
        )

    @staticmethod
    async def get_chatroom_detail(chatroom_id: int, viewer_id: int) -> ChatroomDetailDTO:
        """
        Chatroom aggregate as seen by ``viewer_id``: members with their baskets,
        effective state and the viewer's permitted actions.

        Raises:
            ChatroomNotFoundException
            NotChatroomMemberException: viewer never joined this chatroom
        """
        async with get_db_session() as session:
            chatroom = await ChatroomRepository.get_by_id(chatroom_id, session)
            if chatroom is None:
                raise ChatroomNotFoundException(chatroom_id)
            pool = await PoolRepository.get_by_id(chatroom.pool_id, session)
            memberships = await ChatMembershipRepository.get_by_chatroom(chatroom_id, session)
            baskets = [
                BasketDTO.model_validate(basket, from_attributes=True)
                for basket in await BasketRepository.get_by_chatroom(chatroom_id, session)
            ]

        if not any(m.user_id == viewer_id for m in memberships):
            raise NotChatroomMemberException(chatroom_id, viewer_id)

        baskets_by_owner: dict[int, BasketDTO] = {}
        for basket in baskets:
            # Latest basket per owner wins
            baskets_by_owner[basket.user_id] = basket

        members, former_members = [], []
        active_ids = set()
        for membership in memberships:
            member = ChatMemberDTO(
                user_id=membership.user_id,
                joined_at=membership.joined_at,
                left_at=membership.left_at,
                is_admin=membership.is_active and membership.user_id == chatroom.admin_id,
                basket=baskets_by_owner.get(membership.user_id),
            )
            if membership.is_active:
                members.append(member)
                active_ids.add(membership.user_id)
            else:
                former_members.append(member)

        effective_state = ChatroomStateMachine.effective_state(chatroom.state, len(members))
        permissions = ChatroomStateMachine.permissions_for(
            effective_state,
            chatroom.admin_id,
            viewer_id,
            viewer_id in active_ids,
            chatroom.extensions_before_ordered,
            chatroom.extensions_ordered,
            config.EXTENSIONS_PER_PHASE,
        )
        return ChatroomDetailDTO(
            chatroom=chatroom,
            effective_state=effective_state,
            shop_id=pool.shop_id,
            location_id=pool.location_id,
            members=members,
            former_members=former_members,
            baskets=baskets,
            delivered_count=sum(
                1 for b in baskets if b.is_delivered_by_user or b.status == BasketStatus.RESOLVED
            ),
            permissions=permissions,
        )

    @staticmethod
    async def get_memberships(chatroom_id: int) -> list[ChatMembershipDTO]:
        async with get_db_session() as session:
            if await ChatroomRepository.get_by_id(chatroom_id, session) is None:
                raise ChatroomNotFoundException(chatroom_id)
            return await ChatMembershipRepository.get_by_chatroom(chatroom_id, session)

    @staticmethod
    async def get_user_memberships(user_id: int, active_only: bool = True) -> list[ChatMembershipDTO]:
        async with get_db_session() as session:
            return await ChatMembershipRepository.get_by_user(user_id, session, active_only=active_only)

    @staticmethod
    async def get_dashboard(user_id: int) -> DashboardDTO:
        """Active baskets of the user and the chatrooms they are an active member of."""
        async with get_db_session() as session:
            baskets = await BasketRepository.get_by_owner(user_id, session, active_only=True)
            memberships = await ChatMembershipRepository.get_by_user(user_id, session, active_only=True)
            chatrooms = await ChatroomRepository.get_by_ids([m.chatroom_id for m in memberships], session)
        return DashboardDTO(user_id=user_id, baskets=baskets, chatrooms=chatrooms)
