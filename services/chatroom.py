import logging

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

import config
from db import session_flush
from enums.basket_status import BasketStatus
from enums.chatroom_state import ChatroomState
from enums.extension_phase import ExtensionPhase
from exceptions import (
    CannotRemoveAdminException,
    ChatroomNotFoundException,
    InvalidChatroomStateException,
    MemberNotActiveException,
    NotChatroomMemberException,
)
from models.chat_membership import ChatMembership
from models.chatroom import Chatroom, ChatroomDTO
from repositories.basket import BasketRepository
from repositories.chat_membership import ChatMembershipRepository
from repositories.chatroom import ChatroomRepository
from utils.basket_state_machine import BasketStateMachine
from utils.chatroom_state_machine import ChatroomStateMachine
from utils.transaction_manager import TransactionManager

logger = logging.getLogger(__name__)


class ChatroomService:
    """
    Admin and member commands on a chatroom.

    Every command re-reads the chatroom row (state, admin) inside its own
    transaction before checking authority, so an action by an admin who was
    replaced concurrently is rejected. Checks run in a fixed order:
    final state, then admin authority, then transition legality.
    """

    @staticmethod
    async def _get_for_update(chatroom_id: int, session: AsyncSession | Session) -> Chatroom:
        chatroom = await ChatroomRepository.get_for_update(chatroom_id, session)
        if chatroom is None:
            raise ChatroomNotFoundException(chatroom_id)
        return chatroom

    @staticmethod
    async def _effective_state(chatroom: Chatroom, session: AsyncSession | Session) -> ChatroomState:
        active_count = await ChatMembershipRepository.count_active(chatroom.id, session)
        return ChatroomStateMachine.effective_state(chatroom.state, active_count)

    @staticmethod
    async def _require_active_member(chatroom_id: int, user_id: int,
                                     session: AsyncSession | Session) -> ChatMembership:
        membership = await ChatMembershipRepository.get_active(chatroom_id, user_id, session)
        if membership is not None:
            return membership
        if await ChatMembershipRepository.has_ever_joined(chatroom_id, user_id, session):
            raise MemberNotActiveException(chatroom_id, user_id)
        raise NotChatroomMemberException(chatroom_id, user_id)

    @staticmethod
    async def _release_member(chatroom: Chatroom, membership: ChatMembership,
                              session: AsyncSession | Session) -> None:
        """
        Soft-delete the membership. Before ordering the member's basket is resolved and
        its amount leaves last_amount; once ordered the basket was part of the placed
        order, so it stays in_chat (resolved by mark_delivered) and last_amount is kept.
        """
        await ChatMembershipRepository.mark_left(membership, session)
        if chatroom.state == ChatroomState.ORDERED:
            await session_flush(session)
            return
        basket = await BasketRepository.get_owner_basket_in_chatroom(chatroom.id, membership.user_id, session)
        if basket is not None:
            basket.status = BasketStateMachine.transition(basket.id, basket.status, BasketStatus.RESOLVED)
            chatroom.last_amount = max(0.0, round((chatroom.last_amount or 0.0) - basket.amount, 2))
        await session_flush(session)

    @staticmethod
    @TransactionManager.with_retry()
    async def mark_ordered(chatroom_id: int, user_id: int) -> ChatroomDTO:
        """
        Admin places the consolidated order: waiting/active -> ordered. Baskets are not touched.

        Raises:
            ChatroomNotFoundException, NotChatroomAdminException, InvalidChatroomStateException
        """
        async with TransactionManager.atomic_transaction() as session:
            chatroom = await ChatroomService._get_for_update(chatroom_id, session)
            state = await ChatroomService._effective_state(chatroom, session)
            ChatroomStateMachine.ensure_not_final(chatroom.id, state)
            ChatroomStateMachine.ensure_admin(chatroom.id, chatroom.admin_id, user_id, "mark the order as placed")
            chatroom.state = ChatroomStateMachine.validate_transition(
                chatroom.id, state, ChatroomState.ORDERED, user_id
            )
            await session_flush(session)
            return ChatroomDTO.model_validate(chatroom, from_attributes=True)

    @staticmethod
    @TransactionManager.with_retry()
    async def mark_delivered(chatroom_id: int, user_id: int) -> ChatroomDTO:
        """
        Admin confirms delivery: ordered -> resolved, and every basket of the chatroom
        becomes resolved in the same transaction.

        Raises:
            ChatroomNotFoundException, NotChatroomAdminException, InvalidChatroomStateException
        """
        async with TransactionManager.atomic_transaction() as session:
            chatroom = await ChatroomService._get_for_update(chatroom_id, session)
            state = await ChatroomService._effective_state(chatroom, session)
            ChatroomStateMachine.ensure_not_final(chatroom.id, state)
            ChatroomStateMachine.ensure_admin(chatroom.id, chatroom.admin_id, user_id, "confirm the delivery")
            chatroom.state = ChatroomStateMachine.validate_transition(
                chatroom.id, state, ChatroomState.RESOLVED, user_id
            )

            resolved = 0
            for basket in await BasketRepository.get_by_chatroom(chatroom.id, session):
                if basket.status == BasketStatus.RESOLVED:
                    continue
                basket.status = BasketStateMachine.transition(basket.id, basket.status, BasketStatus.RESOLVED)
                resolved += 1
            await session_flush(session)
            logger.info(f"Chatroom {chatroom.id} resolved, {resolved} basket(s) resolved")
            return ChatroomDTO.model_validate(chatroom, from_attributes=True)

    @staticmethod
    @TransactionManager.with_retry()
    async def leave_chatroom(chatroom_id: int, user_id: int) -> ChatroomDTO:
        """
        Member leaves. Before ordering their basket in this chatroom is resolved; if they were the admin,
        authority passes to the earliest-joined remaining member, or the chatroom is left
        without an admin when nobody remains.

        Raises:
            ChatroomNotFoundException, NotChatroomMemberException,
            MemberNotActiveException, InvalidChatroomStateException
        """
        async with TransactionManager.atomic_transaction() as session:
            chatroom = await ChatroomService._get_for_update(chatroom_id, session)
            ChatroomStateMachine.ensure_not_final(chatroom.id, chatroom.state)
            membership = await ChatroomService._require_active_member(chatroom.id, user_id, session)
            await ChatroomService._release_member(chatroom, membership, session)
            logger.info(f"User {user_id} left chatroom {chatroom.id}")

            if chatroom.admin_id == user_id:
                remaining = await ChatMembershipRepository.get_active_members(chatroom.id, session)
                chatroom.admin_id = remaining[0].user_id if remaining else None
                await session_flush(session)
                if chatroom.admin_id is None:
                    logger.warning(f"Chatroom {chatroom.id} has no active members left and no admin")
                else:
                    logger.info(f"ADMIN_TRANSFER: Chatroom {chatroom.id} admin {user_id} -> {chatroom.admin_id} (leave)")
            return ChatroomDTO.model_validate(chatroom, from_attributes=True)

    @staticmethod
    @TransactionManager.with_retry()
    async def make_admin(chatroom_id: int, acting_admin_id: int, target_user_id: int) -> ChatroomDTO:
        """
        Raises:
            NotChatroomAdminException: caller is not the current admin
            MemberNotActiveException: target is not an active member
        """
        async with TransactionManager.atomic_transaction() as session:
            chatroom = await ChatroomService._get_for_update(chatroom_id, session)
            ChatroomStateMachine.ensure_not_final(chatroom.id, chatroom.state)
            ChatroomStateMachine.ensure_admin(chatroom.id, chatroom.admin_id, acting_admin_id, "transfer admin")
            membership = await ChatMembershipRepository.get_active(chatroom.id, target_user_id, session)
            if membership is None:
                raise MemberNotActiveException(chatroom.id, target_user_id)
            if target_user_id != chatroom.admin_id:
                chatroom.admin_id = target_user_id
                await session_flush(session)
                logger.info(f"ADMIN_TRANSFER: Chatroom {chatroom.id} admin {acting_admin_id} -> {target_user_id}")
            return ChatroomDTO.model_validate(chatroom, from_attributes=True)

    @staticmethod
    @TransactionManager.with_retry()
    async def remove_member(chatroom_id: int, acting_admin_id: int, target_user_id: int) -> ChatroomDTO:
        """
        Raises:
            NotChatroomAdminException: caller is not the current admin
            CannotRemoveAdminException: admin targeted themself (must leave instead)
            MemberNotActiveException: target is not an active member
        """
        async with TransactionManager.atomic_transaction() as session:
            chatroom = await ChatroomService._get_for_update(chatroom_id, session)
            ChatroomStateMachine.ensure_not_final(chatroom.id, chatroom.state)
            ChatroomStateMachine.ensure_admin(chatroom.id, chatroom.admin_id, acting_admin_id, "remove members")
            if target_user_id == chatroom.admin_id:
                raise CannotRemoveAdminException(chatroom.id, target_user_id)
            membership = await ChatMembershipRepository.get_active(chatroom.id, target_user_id, session)
            if membership is None:
                raise MemberNotActiveException(chatroom.id, target_user_id)
            await ChatroomService._release_member(chatroom, membership, session)
            logger.info(f"User {target_user_id} removed from chatroom {chatroom.id} by admin {acting_admin_id}")
            return ChatroomDTO.model_validate(chatroom, from_attributes=True)

    @staticmethod
    @TransactionManager.with_retry()
    async def extend_deadline(chatroom_id: int, acting_admin_id: int) -> ChatroomDTO:
        """
        Push expire_at forward by DEADLINE_EXTENSION_HOURS, at most EXTENSIONS_PER_PHASE
        times before ordering and as many times again while ordered.

        Raises:
            NotChatroomAdminException, InvalidChatroomStateException (resolved),
            ExtensionLimitReachedException (phase extension already used)
        """
        async with TransactionManager.atomic_transaction() as session:
            chatroom = await ChatroomService._get_for_update(chatroom_id, session)
            state = await ChatroomService._effective_state(chatroom, session)
            ChatroomStateMachine.ensure_not_final(chatroom.id, state)
            ChatroomStateMachine.ensure_admin(chatroom.id, chatroom.admin_id, acting_admin_id, "extend the deadline")
            phase = ChatroomStateMachine.validate_extension(
                chatroom.id, state, chatroom.extensions_before_ordered, chatroom.extensions_ordered,
                config.EXTENSIONS_PER_PHASE
            )
            old_expiry = chatroom.expire_at
            chatroom.expire_at = ChatroomStateMachine.extended_expiry(old_expiry, config.DEADLINE_EXTENSION_HOURS)
            if phase == ExtensionPhase.BEFORE_ORDERED:
                chatroom.extensions_before_ordered = (chatroom.extensions_before_ordered or 0) + 1
            else:
                chatroom.extensions_ordered = (chatroom.extensions_ordered or 0) + 1
            await session_flush(session)
            logger.info(f"Chatroom {chatroom.id} deadline extended ({phase.value}): {old_expiry} -> {chatroom.expire_at}")
            return ChatroomDTO.model_validate(chatroom, from_attributes=True)

    @staticmethod
    @TransactionManager.with_retry()
    async def confirm_delivery(chatroom_id: int, user_id: int) -> tuple[int, int]:
        """
        Member confirms they received their part of the order. Does not change the
        chatroom state; the admin still resolves with mark_delivered.

        Returns:
            tuple[int, int]: (confirmed, total) over the chatroom's open baskets

        Raises:
            NotChatroomMemberException / MemberNotActiveException,
            InvalidChatroomStateException: chatroom is not ordered
        """
        async with TransactionManager.atomic_transaction() as session:
            chatroom = await ChatroomService._get_for_update(chatroom_id, session)
            await ChatroomService._require_active_member(chatroom.id, user_id, session)
            if chatroom.state != ChatroomState.ORDERED:
                raise InvalidChatroomStateException(chatroom.id, chatroom.state.value, ChatroomState.ORDERED.value)

            basket = await BasketRepository.get_owner_basket_in_chatroom(chatroom.id, user_id, session)
            if basket is not None and not basket.is_delivered_by_user:
                basket.is_delivered_by_user = True
                await session_flush(session)

            open_baskets = [
                b for b in await BasketRepository.get_by_chatroom(chatroom.id, session)
                if b.status != BasketStatus.RESOLVED
            ]
            confirmed = sum(1 for b in open_baskets if b.is_delivered_by_user)
            logger.info(f"User {user_id} confirmed delivery in chatroom {chatroom.id} ({confirmed}/{len(open_baskets)})")
            return confirmed, len(open_baskets)

