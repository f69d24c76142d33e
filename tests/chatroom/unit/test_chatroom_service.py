"""
Unit Tests: ChatroomService

Tests for services/chatroom.py covering:
- mark_ordered() / mark_delivered() - admin transitions and basket cascade
- leave_chatroom() - basket resolution and admin handover
- make_admin() / remove_member() - admin member management
- extend_deadline() - one extension per phase
- confirm_delivery() - member receipt confirmation
"""

from datetime import timedelta

import pytest

import config
from enums.basket_status import BasketStatus
from enums.chatroom_state import ChatroomState
from exceptions import (
    CannotRemoveAdminException,
    ChatroomNotFoundException,
    ExtensionLimitReachedException,
    InvalidChatroomStateException,
    MemberNotActiveException,
    NotChatroomAdminException,
    NotChatroomMemberException,
)
from services.chatroom import ChatroomService
from services.query import QueryService


class TestMarkOrdered:

    @pytest.mark.asyncio
    async def test_admin_orders(self, chatroom_with_members):
        chatroom_id = await chatroom_with_members(1, 2)

        chatroom = await ChatroomService.mark_ordered(chatroom_id, 1)

        assert chatroom.state == ChatroomState.ORDERED
        detail = await QueryService.get_chatroom_detail(chatroom_id, 1)
        # Ordering does not move baskets
        assert all(b.status == BasketStatus.IN_CHAT for b in detail.baskets)

    @pytest.mark.asyncio
    async def test_waiting_chatroom_can_be_ordered(self, chatroom_with_members):
        chatroom_id = await chatroom_with_members(1)

        chatroom = await ChatroomService.mark_ordered(chatroom_id, 1)
        assert chatroom.state == ChatroomState.ORDERED

    @pytest.mark.asyncio
    async def test_non_admin_rejected(self, chatroom_with_members):
        chatroom_id = await chatroom_with_members(1, 2)

        with pytest.raises(NotChatroomAdminException):
            await ChatroomService.mark_ordered(chatroom_id, 2)
        detail = await QueryService.get_chatroom_detail(chatroom_id, 1)
        assert detail.chatroom.state == ChatroomState.WAITING

    @pytest.mark.asyncio
    async def test_ordering_twice_is_invalid(self, chatroom_with_members):
        chatroom_id = await chatroom_with_members(1, 2)
        await ChatroomService.mark_ordered(chatroom_id, 1)

        with pytest.raises(InvalidChatroomStateException):
            await ChatroomService.mark_ordered(chatroom_id, 1)

    @pytest.mark.asyncio
    async def test_unknown_chatroom(self, catalog):
        with pytest.raises(ChatroomNotFoundException):
            await ChatroomService.mark_ordered(404, 1)


class TestMarkDelivered:

    @pytest.mark.asyncio
    async def test_resolves_chatroom_and_baskets(self, chatroom_with_members):
        chatroom_id = await chatroom_with_members(1, 2, 3)
        await ChatroomService.mark_ordered(chatroom_id, 1)

        chatroom = await ChatroomService.mark_delivered(chatroom_id, 1)

        assert chatroom.state == ChatroomState.RESOLVED
        detail = await QueryService.get_chatroom_detail(chatroom_id, 1)
        assert all(b.status == BasketStatus.RESOLVED for b in detail.baskets)

    @pytest.mark.asyncio
    async def test_requires_ordered(self, chatroom_with_members):
        chatroom_id = await chatroom_with_members(1, 2)

        with pytest.raises(InvalidChatroomStateException):
            await ChatroomService.mark_delivered(chatroom_id, 1)

    @pytest.mark.asyncio
    async def test_resolved_chatroom_rejects_everything(self, chatroom_with_members):
        chatroom_id = await chatroom_with_members(1, 2)
        await ChatroomService.mark_ordered(chatroom_id, 1)
        await ChatroomService.mark_delivered(chatroom_id, 1)

        with pytest.raises(InvalidChatroomStateException):
            await ChatroomService.mark_delivered(chatroom_id, 1)
        with pytest.raises(InvalidChatroomStateException):
            await ChatroomService.extend_deadline(chatroom_id, 1)
        with pytest.raises(InvalidChatroomStateException):
            await ChatroomService.leave_chatroom(chatroom_id, 2)

    @pytest.mark.asyncio
    async def test_final_state_checked_before_authority(self, chatroom_with_members):
        chatroom_id = await chatroom_with_members(1, 2)
        await ChatroomService.mark_ordered(chatroom_id, 1)
        await ChatroomService.mark_delivered(chatroom_id, 1)

        with pytest.raises(InvalidChatroomStateException):
            await ChatroomService.mark_ordered(chatroom_id, 2)


class TestLeaveChatroom:

    @pytest.mark.asyncio
    async def test_member_leaves(self, chatroom_with_members):
        chatroom_id = await chatroom_with_members(1, 2, 3)
        before = await QueryService.get_chatroom_detail(chatroom_id, 1)
        leaving_basket = next(b for b in before.baskets if b.user_id == 3)

        chatroom = await ChatroomService.leave_chatroom(chatroom_id, 3)

        assert chatroom.admin_id == 1
        assert chatroom.last_amount == round(before.chatroom.last_amount - leaving_basket.amount, 2)
        detail = await QueryService.get_chatroom_detail(chatroom_id, 3)
        assert [m.user_id for m in detail.former_members] == [3]
        assert detail.former_members[0].left_at is not None
        assert detail.former_members[0].basket.status == BasketStatus.RESOLVED
        assert not detail.permissions.is_member

    @pytest.mark.asyncio
    async def test_admin_leave_hands_over_to_earliest_member(self, chatroom_with_members):
        chatroom_id = await chatroom_with_members(1, 2, 3)

        chatroom = await ChatroomService.leave_chatroom(chatroom_id, 1)

        assert chatroom.admin_id == 2

    @pytest.mark.asyncio
    async def test_last_member_leaves_chatroom_adminless(self, chatroom_with_members):
        chatroom_id = await chatroom_with_members(1)

        chatroom = await ChatroomService.leave_chatroom(chatroom_id, 1)

        assert chatroom.admin_id is None
        assert chatroom.last_amount == 0.0
        with pytest.raises(NotChatroomAdminException):
            await ChatroomService.extend_deadline(chatroom_id, 1)

    @pytest.mark.asyncio
    async def test_leave_twice(self, chatroom_with_members):
        chatroom_id = await chatroom_with_members(1, 2)
        await ChatroomService.leave_chatroom(chatroom_id, 2)

        with pytest.raises(MemberNotActiveException):
            await ChatroomService.leave_chatroom(chatroom_id, 2)

    @pytest.mark.asyncio
    async def test_stranger_cannot_leave(self, chatroom_with_members):
        chatroom_id = await chatroom_with_members(1, 2)

        with pytest.raises(NotChatroomMemberException):
            await ChatroomService.leave_chatroom(chatroom_id, 99)

    @pytest.mark.asyncio
    async def test_leaving_frees_the_shop_for_a_new_pool(self, chatroom_with_members, add_basket):
        chatroom_id = await chatroom_with_members(1, 2, 3)
        await ChatroomService.leave_chatroom(chatroom_id, 2)

        result = await add_basket(2, 5.0)

        assert result.basket.status == BasketStatus.IN_POOL
        assert result.chatroom_id is None
        members = await QueryService.get_chatroom_detail(chatroom_id, 1)
        assert [m.user_id for m in members.members] == [1, 3]

    @pytest.mark.asyncio
    async def test_leaving_after_order_keeps_ordered_amount(self, chatroom_with_members):
        chatroom_id = await chatroom_with_members(1, 2, 3)
        ordered = await ChatroomService.mark_ordered(chatroom_id, 1)

        chatroom = await ChatroomService.leave_chatroom(chatroom_id, 3)

        assert chatroom.last_amount == ordered.last_amount
        detail = await QueryService.get_chatroom_detail(chatroom_id, 1)
        left_basket = next(b for b in detail.baskets if b.user_id == 3)
        assert left_basket.status == BasketStatus.IN_CHAT

        await ChatroomService.mark_delivered(chatroom_id, 1)
        detail = await QueryService.get_chatroom_detail(chatroom_id, 1)
        assert {b.status for b in detail.baskets} == {BasketStatus.RESOLVED}


class TestMemberManagement:

    @pytest.mark.asyncio
    async def test_make_admin(self, chatroom_with_members):
        chatroom_id = await chatroom_with_members(1, 2)

        chatroom = await ChatroomService.make_admin(chatroom_id, 1, 2)

        assert chatroom.admin_id == 2
        with pytest.raises(NotChatroomAdminException):
            await ChatroomService.mark_ordered(chatroom_id, 1)
        assert (await ChatroomService.mark_ordered(chatroom_id, 2)).state == ChatroomState.ORDERED

    @pytest.mark.asyncio
    async def test_make_admin_requires_admin(self, chatroom_with_members):
        chatroom_id = await chatroom_with_members(1, 2, 3)

        with pytest.raises(NotChatroomAdminException):
            await ChatroomService.make_admin(chatroom_id, 2, 3)

    @pytest.mark.asyncio
    async def test_make_admin_target_must_be_active(self, chatroom_with_members):
        chatroom_id = await chatroom_with_members(1, 2)
        await ChatroomService.leave_chatroom(chatroom_id, 2)

        with pytest.raises(MemberNotActiveException):
            await ChatroomService.make_admin(chatroom_id, 1, 2)
        with pytest.raises(MemberNotActiveException):
            await ChatroomService.make_admin(chatroom_id, 1, 99)

    @pytest.mark.asyncio
    async def test_remove_member(self, chatroom_with_members):
        chatroom_id = await chatroom_with_members(1, 2, 3)

        await ChatroomService.remove_member(chatroom_id, 1, 3)

        detail = await QueryService.get_chatroom_detail(chatroom_id, 1)
        assert [m.user_id for m in detail.members] == [1, 2]
        removed = next(b for b in detail.baskets if b.user_id == 3)
        assert removed.status == BasketStatus.RESOLVED

    @pytest.mark.asyncio
    async def test_remove_member_guards(self, chatroom_with_members):
        chatroom_id = await chatroom_with_members(1, 2, 3)

        with pytest.raises(NotChatroomAdminException):
            await ChatroomService.remove_member(chatroom_id, 2, 3)
        with pytest.raises(CannotRemoveAdminException):
            await ChatroomService.remove_member(chatroom_id, 1, 1)
        with pytest.raises(MemberNotActiveException):
            await ChatroomService.remove_member(chatroom_id, 1, 99)

    @pytest.mark.asyncio
    async def test_removed_member_not_routed_back(self, chatroom_with_members, add_basket):
        chatroom_id = await chatroom_with_members(1, 2, 3)
        await ChatroomService.remove_member(chatroom_id, 1, 3)

        result = await add_basket(3, 5.0)

        assert result.chatroom_id != chatroom_id
        assert result.basket.status == BasketStatus.IN_POOL
        detail = await QueryService.get_chatroom_detail(chatroom_id, 1)
        assert [m.user_id for m in detail.members] == [1, 2]
        assert [m.user_id for m in detail.former_members] == [3]

    @pytest.mark.asyncio
    async def test_late_basket_of_newcomer_still_routed(self, chatroom_with_members, add_basket):
        chatroom_id = await chatroom_with_members(1, 2)

        result = await add_basket(4, 5.0)

        assert result.chatroom_id == chatroom_id
        assert result.basket.status == BasketStatus.IN_CHAT

    @pytest.mark.asyncio
    async def test_removed_member_can_still_read(self, chatroom_with_members):
        chatroom_id = await chatroom_with_members(1, 2)
        await ChatroomService.remove_member(chatroom_id, 1, 2)

        detail = await QueryService.get_chatroom_detail(chatroom_id, 2)
        assert detail.effective_state == ChatroomState.WAITING
        assert not detail.permissions.can_send_message


class TestExtendDeadline:

    @pytest.mark.asyncio
    async def test_one_extension_before_ordering(self, chatroom_with_members):
        chatroom_id = await chatroom_with_members(1, 2)
        before = await QueryService.get_chatroom_detail(chatroom_id, 1)

        chatroom = await ChatroomService.extend_deadline(chatroom_id, 1)

        assert chatroom.expire_at == before.chatroom.expire_at + timedelta(hours=config.DEADLINE_EXTENSION_HOURS)
        assert chatroom.extensions_before_ordered == 1
        with pytest.raises(ExtensionLimitReachedException):
            await ChatroomService.extend_deadline(chatroom_id, 1)

    @pytest.mark.asyncio
    async def test_ordered_phase_grants_another_extension(self, chatroom_with_members):
        chatroom_id = await chatroom_with_members(1, 2)
        await ChatroomService.extend_deadline(chatroom_id, 1)
        await ChatroomService.mark_ordered(chatroom_id, 1)

        chatroom = await ChatroomService.extend_deadline(chatroom_id, 1)

        assert chatroom.extensions_ordered == 1
        with pytest.raises(ExtensionLimitReachedException):
            await ChatroomService.extend_deadline(chatroom_id, 1)

    @pytest.mark.asyncio
    async def test_non_admin_cannot_extend(self, chatroom_with_members):
        chatroom_id = await chatroom_with_members(1, 2)

        with pytest.raises(NotChatroomAdminException):
            await ChatroomService.extend_deadline(chatroom_id, 2)


class TestConfirmDelivery:

    @pytest.mark.asyncio
    async def test_members_confirm_receipt(self, chatroom_with_members):
        chatroom_id = await chatroom_with_members(1, 2)
        await ChatroomService.mark_ordered(chatroom_id, 1)

        assert await ChatroomService.confirm_delivery(chatroom_id, 2) == (1, 2)
        # Confirming twice changes nothing
        assert await ChatroomService.confirm_delivery(chatroom_id, 2) == (1, 2)
        assert await ChatroomService.confirm_delivery(chatroom_id, 1) == (2, 2)

        detail = await QueryService.get_chatroom_detail(chatroom_id, 1)
        assert detail.chatroom.state == ChatroomState.ORDERED
        assert detail.delivered_count == 2

    @pytest.mark.asyncio
    async def test_requires_ordered(self, chatroom_with_members):
        chatroom_id = await chatroom_with_members(1, 2)

        with pytest.raises(InvalidChatroomStateException):
            await ChatroomService.confirm_delivery(chatroom_id, 2)

    @pytest.mark.asyncio
    async def test_requires_membership(self, chatroom_with_members):
        chatroom_id = await chatroom_with_members(1, 2)
        await ChatroomService.mark_ordered(chatroom_id, 1)

        with pytest.raises(NotChatroomMemberException):
            await ChatroomService.confirm_delivery(chatroom_id, 99)
