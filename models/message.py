from datetime import datetime

from pydantic import BaseModel
from sqlalchemy import Column, Integer, DateTime, ForeignKey, Text
from sqlalchemy import Enum as SQLEnum

from enums.message_type import MessageType
from models.base import Base, utcnow


# Append-only; read_at is the only column ever updated
class Message(Base):
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True)
    chatroom_id = Column(Integer, ForeignKey('chatrooms.id'), nullable=False, index=True)
    user_id = Column(Integer, nullable=False)
    # Text, or a storage object path for image/audio
    content = Column(Text, nullable=False)
    type = Column(SQLEnum(MessageType), nullable=False, default=MessageType.TEXT)
    sent_at = Column(DateTime, nullable=False, default=utcnow)
    read_at = Column(DateTime, nullable=True)


class MessageDTO(BaseModel):
    id: int | None = None
    chatroom_id: int | None = None
    user_id: int | None = None
    content: str | None = None
    type: MessageType | None = None
    sent_at: datetime | None = None
    read_at: datetime | None = None
    # Signed URL for image/audio attachments, filled on read
    url: str | None = None
