from datetime import datetime

from pydantic import BaseModel
from sqlalchemy import Column, Integer, Float, Boolean, DateTime, ForeignKey, String, Text, CheckConstraint
from sqlalchemy import Enum as SQLEnum

from enums.basket_status import BasketStatus
from models.base import Base, utcnow


class Basket(Base):
    __tablename__ = "baskets"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, nullable=False, index=True)
    shop_id = Column(Integer, ForeignKey('shops.id'), nullable=False)
    location_id = Column(Integer, ForeignKey('locations.id'), nullable=False)
    amount = Column(Float, nullable=False)
    # At least one of link / note is required
    link = Column(String, nullable=True)
    note = Column(Text, nullable=True)
    is_ready = Column(Boolean, nullable=False, default=False)
    is_delivered_by_user = Column(Boolean, nullable=False, default=False)
    status = Column(SQLEnum(BasketStatus), nullable=False, default=BasketStatus.IN_POOL)
    # Exactly one of pool_id / chatroom_id is meaningful, depending on status
    pool_id = Column(Integer, ForeignKey('pools.id'), nullable=True, index=True)
    chatroom_id = Column(Integer, ForeignKey('chatrooms.id'), nullable=True, index=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint('amount > 0', name='check_basket_amount_positive'),
    )


class BasketDTO(BaseModel):
    id: int | None = None
    user_id: int | None = None
    shop_id: int | None = None
    location_id: int | None = None
    amount: float | None = None
    link: str | None = None
    note: str | None = None
    is_ready: bool | None = None
    is_delivered_by_user: bool | None = None
    status: BasketStatus | None = None
    pool_id: int | None = None
    chatroom_id: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class BasketUpdateDTO(BaseModel):
    """Owner edits; only fields explicitly set are applied (model_fields_set)."""
    amount: float | None = None
    link: str | None = None
    note: str | None = None


class BasketResultDTO(BaseModel):
    """Outcome of a basket command: where the basket ended up."""
    basket: BasketDTO
    pool_id: int | None = None
    chatroom_id: int | None = None
