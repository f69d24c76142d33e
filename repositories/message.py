from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from db import session_execute, session_flush
from enums.message_type import MessageType
from models.base import utcnow
from models.message import Message, MessageDTO


class MessageRepository:
    @staticmethod
    async def create(chatroom_id: int, user_id: int, content: str, message_type: MessageType,
                     session: AsyncSession | Session) -> Message:
        message = Message(chatroom_id=chatroom_id, user_id=user_id, content=content,
                          type=message_type, sent_at=utcnow())
        session.add(message)
        await session_flush(session)
        return message

    @staticmethod
    async def get_by_chatroom(chatroom_id: int, session: AsyncSession | Session,
                              after: datetime | None = None, limit: int | None = None) -> list[MessageDTO]:
        stmt = select(Message).where(Message.chatroom_id == chatroom_id)
        if after is not None:
            stmt = stmt.where(Message.sent_at > after)
        stmt = stmt.order_by(Message.sent_at, Message.id)
        if limit is not None:
            stmt = stmt.limit(limit)
        messages = await session_execute(stmt, session)
        return [MessageDTO.model_validate(message, from_attributes=True) for message in messages.scalars().all()]

    @staticmethod
    async def mark_read(chatroom_id: int, viewer_id: int, session: AsyncSession | Session) -> int:
        """Set read_at on unread messages from other senders. Returns the number updated."""
        stmt = select(Message).where(
            Message.chatroom_id == chatroom_id,
            Message.user_id != viewer_id,
            Message.read_at.is_(None)
        )
        messages = await session_execute(stmt, session)
        messages = messages.scalars().all()
        read_at = utcnow()
        for message in messages:
            message.read_at = read_at
        await session_flush(session)
        return len(messages)
