from datetime import datetime

from pydantic import BaseModel
from sqlalchemy import Column, Integer, String, Float, Boolean, DateTime, CheckConstraint

from models.base import Base, utcnow


class Shop(Base):
    __tablename__ = "shops"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False, unique=True)
    # Funding threshold copied onto every pool created for this shop
    min_amount = Column(Float, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow)

    __table_args__ = (
        CheckConstraint('min_amount > 0', name='check_shop_min_amount_positive'),
    )


class ShopDTO(BaseModel):
    id: int | None = None
    name: str | None = None
    min_amount: float | None = None
    is_active: bool | None = None
    created_at: datetime | None = None
