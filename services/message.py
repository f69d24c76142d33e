import logging

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

import config
from db import get_db_session
from enums.message_type import MessageType
from exceptions import (
    ChatroomNotFoundException,
    InvalidChatroomStateException,
    InvalidMessageException,
    MemberNotActiveException,
    NotChatroomMemberException,
)
from models.message import MessageDTO
from repositories.chat_membership import ChatMembershipRepository
from repositories.chatroom import ChatroomRepository
from repositories.message import MessageRepository
from services.storage import StorageService
from utils.chatroom_state_machine import ChatroomStateMachine
from utils.transaction_manager import TransactionManager

logger = logging.getLogger(__name__)


class MessageService:

    @staticmethod
    def validate_content(content: str, message_type: MessageType) -> str:
        if content is None:
            raise InvalidMessageException("content is required")
        if message_type == MessageType.TEXT:
            content = content.strip()
            if not content:
                raise InvalidMessageException("text message is empty")
            if len(content) > config.MESSAGE_MAX_LENGTH:
                raise InvalidMessageException(f"text longer than {config.MESSAGE_MAX_LENGTH} characters")
            return content
        if not StorageService.signing_configured():
            raise InvalidMessageException("attachments are disabled, STORAGE_SIGNING_SECRET is not configured")
        if not StorageService.is_valid_object_path(content, message_type):
            raise InvalidMessageException(
                f"{message_type.value} content must be a path under '{message_type.storage_folder()}/'"
            )
        return content

    @staticmethod
    def with_url(message: MessageDTO) -> MessageDTO:
        if message.type == MessageType.TEXT:
            return message
        if not StorageService.signing_configured():
            # Archived attachment, signing switched off later: no link rather than a failed read
            logger.warning(f"Message {message.id} attachment left unsigned, STORAGE_SIGNING_SECRET is not configured")
            return message
        message.url = StorageService.signed_url(message.content)
        return message

    @staticmethod
    async def _require_reader(chatroom_id: int, user_id: int, session: AsyncSession | Session) -> None:
        if await ChatroomRepository.get_by_id(chatroom_id, session) is None:
            raise ChatroomNotFoundException(chatroom_id)
        # Former members keep read access to the archive
        if not await ChatMembershipRepository.has_ever_joined(chatroom_id, user_id, session):
            raise NotChatroomMemberException(chatroom_id, user_id)

    @staticmethod
    @TransactionManager.with_retry()
    async def send_message(chatroom_id: int, sender_id: int, content: str,
                           message_type: MessageType = MessageType.TEXT) -> MessageDTO:
        """
        Append a message. Only active members may send, and not into a resolved chatroom.

        Raises:
            InvalidMessageException, ChatroomNotFoundException,
            NotChatroomMemberException / MemberNotActiveException,
            InvalidChatroomStateException
        """
        content = MessageService.validate_content(content, message_type)
        async with TransactionManager.atomic_transaction() as session:
            chatroom = await ChatroomRepository.get_by_id(chatroom_id, session)
            if chatroom is None:
                raise ChatroomNotFoundException(chatroom_id)
            if ChatroomStateMachine.is_final_state(chatroom.state):
                raise InvalidChatroomStateException(chatroom_id, chatroom.state.value, "not resolved")
            if await ChatMembershipRepository.get_active(chatroom_id, sender_id, session) is None:
                if await ChatMembershipRepository.has_ever_joined(chatroom_id, sender_id, session):
                    raise MemberNotActiveException(chatroom_id, sender_id)
                raise NotChatroomMemberException(chatroom_id, sender_id)

            message = await MessageRepository.create(chatroom_id, sender_id, content, message_type, session)
            logger.debug(f"Message {message.id} ({message_type.value}) sent to chatroom {chatroom_id} by {sender_id}")
            return MessageDTO.model_validate(message, from_attributes=True)

    @staticmethod
    async def get_messages(chatroom_id: int, viewer_id: int, limit: int | None = None) -> list[MessageDTO]:
        """Messages in ascending send order; attachments carry a signed URL."""
        async with get_db_session() as session:
            await MessageService._require_reader(chatroom_id, viewer_id, session)
            messages = await MessageRepository.get_by_chatroom(chatroom_id, session, limit=limit)
        return [MessageService.with_url(message) for message in messages]

    @staticmethod
    @TransactionManager.with_retry()
    async def mark_messages_read(chatroom_id: int, viewer_id: int) -> int:
        async with TransactionManager.atomic_transaction() as session:
            await MessageService._require_reader(chatroom_id, viewer_id, session)
            return await MessageRepository.mark_read(chatroom_id, viewer_id, session)
