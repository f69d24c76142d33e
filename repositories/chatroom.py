from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from db import session_execute, session_flush
from enums.chatroom_state import ChatroomState
from models.chatroom import Chatroom, ChatroomDTO
from models.pool import Pool


class ChatroomRepository:
    @staticmethod
    async def create(chatroom_dto: ChatroomDTO, session: AsyncSession | Session) -> Chatroom:
        chatroom = Chatroom(**chatroom_dto.model_dump(exclude_none=True))
        session.add(chatroom)
        await session_flush(session)
        return chatroom

    @staticmethod
    async def get_by_id(chatroom_id: int, session: AsyncSession | Session) -> ChatroomDTO | None:
        stmt = select(Chatroom).where(Chatroom.id == chatroom_id)
        chatroom = await session_execute(stmt, session)
        chatroom = chatroom.scalar()
        if chatroom is not None:
            return ChatroomDTO.model_validate(chatroom, from_attributes=True)
        return None

    @staticmethod
    async def get_for_update(chatroom_id: int, session: AsyncSession | Session) -> Chatroom | None:
        stmt = select(Chatroom).where(Chatroom.id == chatroom_id).with_for_update()
        chatroom = await session_execute(stmt, session)
        return chatroom.scalar()

    @staticmethod
    async def get_by_pool_id(pool_id: int, session: AsyncSession | Session) -> Chatroom | None:
        stmt = select(Chatroom).where(Chatroom.pool_id == pool_id)
        chatroom = await session_execute(stmt, session)
        return chatroom.scalar()

    @staticmethod
    async def get_open_for_shop_location(shop_id: int, location_id: int,
                                         session: AsyncSession | Session) -> Chatroom | None:
        """
        The chatroom of the latest converted pool for (shop, location), if it still takes members:
        not ordered yet and with an admin to coordinate.
        """
        stmt = select(Chatroom).join(Pool, Pool.id == Chatroom.pool_id).where(
            Pool.shop_id == shop_id,
            Pool.location_id == location_id
        ).order_by(Chatroom.created_at.desc(), Chatroom.id.desc()).limit(1).with_for_update()
        chatroom = await session_execute(stmt, session)
        chatroom = chatroom.scalar()
        if chatroom is None:
            return None
        if chatroom.state not in (ChatroomState.WAITING, ChatroomState.ACTIVE) or chatroom.admin_id is None:
            return None
        return chatroom

    @staticmethod
    async def get_by_ids(chatroom_ids: list[int], session: AsyncSession | Session) -> list[ChatroomDTO]:
        if not chatroom_ids:
            return []
        stmt = select(Chatroom).where(Chatroom.id.in_(chatroom_ids)).order_by(Chatroom.created_at.desc())
        chatrooms = await session_execute(stmt, session)
        return [ChatroomDTO.model_validate(chatroom, from_attributes=True) for chatroom in chatrooms.scalars().all()]
