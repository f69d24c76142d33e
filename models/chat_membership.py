from datetime import datetime

from pydantic import BaseModel
from sqlalchemy import Column, Integer, DateTime, ForeignKey, Index, text

from models.base import Base, utcnow


class ChatMembership(Base):
    __tablename__ = "chat_memberships"

    id = Column(Integer, primary_key=True)
    chatroom_id = Column(Integer, ForeignKey('chatrooms.id'), nullable=False, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    joined_at = Column(DateTime, nullable=False, default=utcnow)
    # Soft delete: set on leave or removal
    left_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index(
            'uq_chat_memberships_active',
            'chatroom_id', 'user_id',
            unique=True,
            sqlite_where=text('left_at IS NULL'),
            postgresql_where=text('left_at IS NULL'),
        ),
    )


class ChatMembershipDTO(BaseModel):
    id: int | None = None
    chatroom_id: int | None = None
    user_id: int | None = None
    joined_at: datetime | None = None
    left_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.left_at is None
