from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from db import session_execute, session_flush
from models.base import utcnow
from models.chat_membership import ChatMembership, ChatMembershipDTO


class ChatMembershipRepository:
    @staticmethod
    async def create(chatroom_id: int, user_id: int, session: AsyncSession | Session) -> ChatMembership:
        membership = ChatMembership(chatroom_id=chatroom_id, user_id=user_id, joined_at=utcnow())
        session.add(membership)
        await session_flush(session)
        return membership

    @staticmethod
    async def get_active(chatroom_id: int, user_id: int, session: AsyncSession | Session) -> ChatMembership | None:
        stmt = select(ChatMembership).where(
            ChatMembership.chatroom_id == chatroom_id,
            ChatMembership.user_id == user_id,
            ChatMembership.left_at.is_(None)
        )
        membership = await session_execute(stmt, session)
        return membership.scalar()

    @staticmethod
    async def has_ever_joined(chatroom_id: int, user_id: int, session: AsyncSession | Session) -> bool:
        stmt = select(func.count(ChatMembership.id)).where(
            ChatMembership.chatroom_id == chatroom_id,
            ChatMembership.user_id == user_id
        )
        count = await session_execute(stmt, session)
        return count.scalar() > 0

    @staticmethod
    async def get_active_members(chatroom_id: int, session: AsyncSession | Session) -> list[ChatMembership]:
        # Earliest joined first: next admin on handover
        stmt = select(ChatMembership).where(
            ChatMembership.chatroom_id == chatroom_id,
            ChatMembership.left_at.is_(None)
        ).order_by(ChatMembership.joined_at, ChatMembership.id)
        memberships = await session_execute(stmt, session)
        return list(memberships.scalars().all())

    @staticmethod
    async def count_active(chatroom_id: int, session: AsyncSession | Session) -> int:
        stmt = select(func.count(ChatMembership.id)).where(
            ChatMembership.chatroom_id == chatroom_id,
            ChatMembership.left_at.is_(None)
        )
        count = await session_execute(stmt, session)
        return count.scalar()

    @staticmethod
    async def get_by_chatroom(chatroom_id: int, session: AsyncSession | Session) -> list[ChatMembershipDTO]:
        stmt = select(ChatMembership).where(
            ChatMembership.chatroom_id == chatroom_id
        ).order_by(ChatMembership.joined_at, ChatMembership.id)
        memberships = await session_execute(stmt, session)
        return [ChatMembershipDTO.model_validate(m, from_attributes=True) for m in memberships.scalars().all()]

    @staticmethod
    async def get_by_user(user_id: int, session: AsyncSession | Session,
                          active_only: bool = False) -> list[ChatMembershipDTO]:
        stmt = select(ChatMembership).where(ChatMembership.user_id == user_id)
        if active_only:
            stmt = stmt.where(ChatMembership.left_at.is_(None))
        stmt = stmt.order_by(ChatMembership.joined_at.desc(), ChatMembership.id.desc())
        memberships = await session_execute(stmt, session)
        return [ChatMembershipDTO.model_validate(m, from_attributes=True) for m in memberships.scalars().all()]

    @staticmethod
    async def mark_left(membership: ChatMembership, session: AsyncSession | Session) -> None:
        membership.left_at = utcnow()
        await session_flush(session)
