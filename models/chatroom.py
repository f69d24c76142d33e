from datetime import datetime

from pydantic import BaseModel
from sqlalchemy import Column, Integer, Float, DateTime, ForeignKey
from sqlalchemy import Enum as SQLEnum

from enums.chatroom_state import ChatroomState
from models.basket import BasketDTO
from models.base import Base, utcnow


class Chatroom(Base):
    __tablename__ = "chatrooms"

    id = Column(Integer, primary_key=True)
    # Unique: at most one chatroom per pool
    pool_id = Column(Integer, ForeignKey('pools.id'), nullable=False, unique=True)
    state = Column(SQLEnum(ChatroomState), nullable=False, default=ChatroomState.WAITING)
    # Null only when every member left and nobody could take over
    admin_id = Column(Integer, nullable=True)
    # Pool amount at conversion plus baskets routed in afterwards
    last_amount = Column(Float, nullable=False, default=0.0)
    expire_at = Column(DateTime, nullable=False)
    extensions_before_ordered = Column(Integer, nullable=False, default=0)
    extensions_ordered = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class ChatroomDTO(BaseModel):
    id: int | None = None
    pool_id: int | None = None
    state: ChatroomState | None = None
    admin_id: int | None = None
    last_amount: float | None = None
    expire_at: datetime | None = None
    extensions_before_ordered: int | None = None
    extensions_ordered: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ChatroomPermissions(BaseModel):
    """Actions the viewer may take; the UI disables the rest instead of surfacing errors."""
    is_admin: bool = False
    is_member: bool = False
    can_mark_ordered: bool = False
    can_mark_delivered: bool = False
    can_extend_deadline: bool = False
    can_manage_members: bool = False
    can_leave: bool = False
    can_send_message: bool = False
    can_confirm_delivery: bool = False


class ChatMemberDTO(BaseModel):
    user_id: int
    joined_at: datetime | None = None
    left_at: datetime | None = None
    is_admin: bool = False
    basket: BasketDTO | None = None


class ChatroomDetailDTO(BaseModel):
    """Normalized chatroom aggregate: one shape regardless of how it was loaded."""
    chatroom: ChatroomDTO
    effective_state: ChatroomState
    shop_id: int
    location_id: int
    members: list[ChatMemberDTO] = []
    former_members: list[ChatMemberDTO] = []
    baskets: list[BasketDTO] = []
    delivered_count: int = 0
    permissions: ChatroomPermissions


class DashboardDTO(BaseModel):
    """A user's active baskets plus the chatrooms they currently belong to."""
    user_id: int
    baskets: list[BasketDTO] = []
    chatrooms: list[ChatroomDTO] = []
