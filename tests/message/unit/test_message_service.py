"""
Unit Tests: MessageService

Tests cover:
- send_message() - content validation, membership and state guards
- get_messages() - ordering, attachment URLs, former member read access
- mark_messages_read() - only other senders' unread messages
"""

import pytest

import config
from enums.message_type import MessageType
from exceptions import (
    ChatroomNotFoundException,
    InvalidChatroomStateException,
    InvalidMessageException,
    MemberNotActiveException,
    NotChatroomMemberException,
)
from services.chatroom import ChatroomService
from services.message import MessageService
from services.storage import StorageService


class TestSendMessage:

    @pytest.mark.asyncio
    async def test_text_message_is_trimmed(self, chatroom_with_members):
        chatroom_id = await chatroom_with_members(1, 2)

        message = await MessageService.send_message(chatroom_id, 1, "  who orders the drinks?  ")

        assert message.id is not None
        assert message.content == "who orders the drinks?"
        assert message.type == MessageType.TEXT
        assert message.read_at is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content", ["", "   "])
    async def test_empty_text_rejected(self, chatroom_with_members, content):
        chatroom_id = await chatroom_with_members(1, 2)

        with pytest.raises(InvalidMessageException):
            await MessageService.send_message(chatroom_id, 1, content)

    @pytest.mark.asyncio
    async def test_too_long_text_rejected(self, chatroom_with_members):
        chatroom_id = await chatroom_with_members(1, 2)

        with pytest.raises(InvalidMessageException):
            await MessageService.send_message(chatroom_id, 1, "x" * (config.MESSAGE_MAX_LENGTH + 1))

    @pytest.mark.asyncio
    async def test_attachment_must_reference_its_folder(self, chatroom_with_members):
        chatroom_id = await chatroom_with_members(1, 2)

        with pytest.raises(InvalidMessageException):
            await MessageService.send_message(chatroom_id, 1, "audio/1/1/a.ogg", MessageType.IMAGE)
        with pytest.raises(InvalidMessageException):
            await MessageService.send_message(chatroom_id, 1, "images/../secrets.txt", MessageType.IMAGE)

    @pytest.mark.asyncio
    async def test_attachment_rejected_without_signing_secret(self, chatroom_with_members, monkeypatch):
        chatroom_id = await chatroom_with_members(1, 2)
        monkeypatch.setattr(config, "STORAGE_SIGNING_SECRET", "")
        path = StorageService.build_object_path(chatroom_id, 1, MessageType.IMAGE, "menu.jpg")

        with pytest.raises(InvalidMessageException):
            await MessageService.send_message(chatroom_id, 1, path, MessageType.IMAGE)

        assert await MessageService.get_messages(chatroom_id, 2) == []
        text = await MessageService.send_message(chatroom_id, 1, "text still works")
        assert text.url is None

    @pytest.mark.asyncio
    async def test_stranger_and_former_member(self, chatroom_with_members):
        chatroom_id = await chatroom_with_members(1, 2)
        await ChatroomService.leave_chatroom(chatroom_id, 2)

        with pytest.raises(NotChatroomMemberException):
            await MessageService.send_message(chatroom_id, 99, "hi")
        with pytest.raises(MemberNotActiveException):
            await MessageService.send_message(chatroom_id, 2, "hi again")

    @pytest.mark.asyncio
    async def test_resolved_chatroom_is_read_only(self, chatroom_with_members):
        chatroom_id = await chatroom_with_members(1, 2)
        await ChatroomService.mark_ordered(chatroom_id, 1)
        await ChatroomService.mark_delivered(chatroom_id, 1)

        with pytest.raises(InvalidChatroomStateException):
            await MessageService.send_message(chatroom_id, 1, "thanks all")

    @pytest.mark.asyncio
    async def test_unknown_chatroom(self, catalog):
        with pytest.raises(ChatroomNotFoundException):
            await MessageService.send_message(404, 1, "hello")


class TestGetMessages:

    @pytest.mark.asyncio
    async def test_messages_in_send_order_with_signed_urls(self, chatroom_with_members):
        chatroom_id = await chatroom_with_members(1, 2)
        image_path = StorageService.build_object_path(chatroom_id, 2, MessageType.IMAGE, "receipt.JPG")

        await MessageService.send_message(chatroom_id, 1, "first")
        await MessageService.send_message(chatroom_id, 2, image_path, MessageType.IMAGE)
        await MessageService.send_message(chatroom_id, 1, "third")

        messages = await MessageService.get_messages(chatroom_id, 2)

        assert [m.content for m in messages] == ["first", image_path, "third"]
        assert messages[0].url is None
        assert messages[1].url.startswith(f"{config.STORAGE_BASE_URL}/{config.STORAGE_BUCKET}/images/")
        assert "signature=" in messages[1].url

    @pytest.mark.asyncio
    async def test_limit(self, chatroom_with_members):
        chatroom_id = await chatroom_with_members(1, 2)
        for text in ("a", "b", "c"):
            await MessageService.send_message(chatroom_id, 1, text)

        messages = await MessageService.get_messages(chatroom_id, 1, limit=2)
        assert [m.content for m in messages] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_former_member_keeps_read_access(self, chatroom_with_members):
        chatroom_id = await chatroom_with_members(1, 2)
        await MessageService.send_message(chatroom_id, 1, "before you go")
        await ChatroomService.leave_chatroom(chatroom_id, 2)

        messages = await MessageService.get_messages(chatroom_id, 2)
        assert [m.content for m in messages] == ["before you go"]

    @pytest.mark.asyncio
    async def test_archived_attachment_readable_after_secret_removed(self, chatroom_with_members, monkeypatch):
        chatroom_id = await chatroom_with_members(1, 2)
        path = StorageService.build_object_path(chatroom_id, 1, MessageType.AUDIO, "note.ogg")
        await MessageService.send_message(chatroom_id, 1, path, MessageType.AUDIO)
        monkeypatch.setattr(config, "STORAGE_SIGNING_SECRET", "")

        messages = await MessageService.get_messages(chatroom_id, 2)

        assert [m.content for m in messages] == [path]
        assert messages[0].url is None

    @pytest.mark.asyncio
    async def test_stranger_cannot_read(self, chatroom_with_members):
        chatroom_id = await chatroom_with_members(1, 2)

        with pytest.raises(NotChatroomMemberException):
            await MessageService.get_messages(chatroom_id, 99)


class TestMarkMessagesRead:

    @pytest.mark.asyncio
    async def test_marks_only_other_senders(self, chatroom_with_members):
        chatroom_id = await chatroom_with_members(1, 2)
        await MessageService.send_message(chatroom_id, 1, "from admin")
        await MessageService.send_message(chatroom_id, 2, "from member")

        assert await MessageService.mark_messages_read(chatroom_id, 2) == 1
        assert await MessageService.mark_messages_read(chatroom_id, 2) == 0

        messages = {m.content: m for m in await MessageService.get_messages(chatroom_id, 1)}
        assert messages["from admin"].read_at is not None
        assert messages["from member"].read_at is None
