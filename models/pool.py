from datetime import datetime

from pydantic import BaseModel
from sqlalchemy import Column, Integer, Float, Boolean, DateTime, ForeignKey, CheckConstraint, Index, text

from models.base import Base, utcnow
from models.basket import BasketDTO
from models.location import LocationDTO
from models.shop import ShopDTO


class Pool(Base):
    __tablename__ = "pools"

    id = Column(Integer, primary_key=True)
    shop_id = Column(Integer, ForeignKey('shops.id'), nullable=False)
    location_id = Column(Integer, ForeignKey('locations.id'), nullable=False)
    min_amount = Column(Float, nullable=False)
    # Sum of amounts of baskets with status in_pool referencing this pool
    current_amount = Column(Float, nullable=False, default=0.0)
    # False once converted into a chatroom
    is_accepting = Column(Boolean, nullable=False, default=True)
    converted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    __table_args__ = (
        CheckConstraint('current_amount >= 0', name='check_pool_current_amount_non_negative'),
        CheckConstraint('min_amount > 0', name='check_pool_min_amount_positive'),
        # One accepting pool per (shop, location)
        Index(
            'uq_pools_accepting_shop_location',
            'shop_id', 'location_id',
            unique=True,
            sqlite_where=text('is_accepting = 1'),
            postgresql_where=text('is_accepting'),
        ),
    )


class PoolDTO(BaseModel):
    id: int | None = None
    shop_id: int | None = None
    location_id: int | None = None
    min_amount: float | None = None
    current_amount: float | None = None
    is_accepting: bool | None = None
    converted_at: datetime | None = None
    created_at: datetime | None = None


class PoolStatusDTO(BaseModel):
    pool: PoolDTO
    shop: ShopDTO
    location: LocationDTO
    baskets: list[BasketDTO] = []
    ready_count: int = 0
    progress_percent: float = 0.0
    remaining_amount: float = 0.0
    # Set once the pool was converted
    chatroom_id: int | None = None
