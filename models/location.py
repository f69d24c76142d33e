from datetime import datetime

from pydantic import BaseModel
from sqlalchemy import Column, Integer, String, DateTime

from models.base import Base, utcnow


# A dormitory; pools are scoped to one (shop, location) pair
class Location(Base):
    __tablename__ = "locations"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False, unique=True)
    created_at = Column(DateTime, default=utcnow)


class LocationDTO(BaseModel):
    id: int | None = None
    name: str | None = None
    created_at: datetime | None = None
