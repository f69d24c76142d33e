from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from db import session_execute, session_flush
from enums.basket_status import BasketStatus
from models.basket import Basket, BasketDTO
from utils.basket_state_machine import BasketStateMachine


class BasketRepository:
    @staticmethod
    async def create(basket_dto: BasketDTO, session: AsyncSession | Session) -> Basket:
        basket = Basket(**basket_dto.model_dump(exclude_none=True))
        session.add(basket)
        await session_flush(session)
        return basket

    @staticmethod
    async def get_by_id(basket_id: int, session: AsyncSession | Session) -> BasketDTO | None:
        stmt = select(Basket).where(Basket.id == basket_id)
        basket = await session_execute(stmt, session)
        basket = basket.scalar()
        if basket is not None:
            return BasketDTO.model_validate(basket, from_attributes=True)
        return None

    @staticmethod
    async def get_for_update(basket_id: int, session: AsyncSession | Session) -> Basket | None:
        stmt = select(Basket).where(Basket.id == basket_id).with_for_update()
        basket = await session_execute(stmt, session)
        return basket.scalar()

    @staticmethod
    async def get_active_for_shop(user_id: int, shop_id: int, session: AsyncSession | Session) -> Basket | None:
        stmt = select(Basket).where(
            Basket.user_id == user_id,
            Basket.shop_id == shop_id,
            Basket.status.in_(list(BasketStateMachine.ACTIVE_STATUSES))
        ).limit(1)
        basket = await session_execute(stmt, session)
        return basket.scalar()

    @staticmethod
    async def get_in_pool(pool_id: int, session: AsyncSession | Session) -> list[Basket]:
        # Earliest first: the first basket's owner becomes the chatroom admin
        stmt = select(Basket).where(
            Basket.pool_id == pool_id,
            Basket.status == BasketStatus.IN_POOL
        ).order_by(Basket.created_at, Basket.id)
        baskets = await session_execute(stmt, session)
        return list(baskets.scalars().all())

    @staticmethod
    async def sum_in_pool(pool_id: int, session: AsyncSession | Session) -> float:
        stmt = select(func.coalesce(func.sum(Basket.amount), 0.0)).where(
            Basket.pool_id == pool_id,
            Basket.status == BasketStatus.IN_POOL
        )
        total = await session_execute(stmt, session)
        return round(float(total.scalar()), 2)

    @staticmethod
    async def get_by_chatroom(chatroom_id: int, session: AsyncSession | Session) -> list[Basket]:
        stmt = select(Basket).where(Basket.chatroom_id == chatroom_id).order_by(Basket.created_at, Basket.id)
        baskets = await session_execute(stmt, session)
        return list(baskets.scalars().all())

    @staticmethod
    async def get_owner_basket_in_chatroom(chatroom_id: int, user_id: int,
                                           session: AsyncSession | Session) -> Basket | None:
        stmt = select(Basket).where(
            Basket.chatroom_id == chatroom_id,
            Basket.user_id == user_id,
            Basket.status.in_([BasketStatus.IN_CHAT, BasketStatus.ORDERED])
        ).order_by(Basket.created_at.desc()).limit(1)
        basket = await session_execute(stmt, session)
        return basket.scalar()

    @staticmethod
    async def get_by_owner(user_id: int, session: AsyncSession | Session, active_only: bool = False) -> list[BasketDTO]:
        stmt = select(Basket).where(Basket.user_id == user_id)
        if active_only:
            stmt = stmt.where(Basket.status.in_(list(BasketStateMachine.ACTIVE_STATUSES)))
        stmt = stmt.order_by(Basket.created_at.desc(), Basket.id.desc())
        baskets = await session_execute(stmt, session)
        return [BasketDTO.model_validate(basket, from_attributes=True) for basket in baskets.scalars().all()]

    @staticmethod
    async def delete(basket: Basket, session: AsyncSession | Session) -> None:
        await session.delete(basket)
        await session_flush(session)
