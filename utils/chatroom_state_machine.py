"""
Chatroom State Machine for validating chatroom lifecycle transitions and admin authority.

This module implements a finite state machine over ChatroomState. All checks are
pure functions of the chatroom's current values, so the service layer calls them
inside the transaction that performs the effect, right after re-reading the row.
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Set

from enums.chatroom_state import ChatroomState
from enums.extension_phase import ExtensionPhase
from exceptions import (
    ExtensionLimitReachedException,
    InvalidChatroomStateException,
    NotChatroomAdminException,
)
from models.chatroom import ChatroomPermissions

logger = logging.getLogger(__name__)


class ChatroomStateTransition:
    """Represents a valid state transition with metadata"""

    def __init__(self, from_state: ChatroomState, to_state: ChatroomState, requires_admin: bool = False,
                 description: str = ""):
        self.from_state = from_state
        self.to_state = to_state
        self.requires_admin = requires_admin
        self.description = description

    def __repr__(self):
        admin_flag = " (Admin)" if self.requires_admin else ""
        return f"{self.from_state.value} -> {self.to_state.value}{admin_flag}"


class ChatroomStateMachine:
    """
    Finite state machine for chatroom lifecycle.

    Valid state transitions:
    - WAITING -> ACTIVE (implicit, once at least two members are active; derived, not stored)
    - WAITING -> ORDERED (admin)
    - ACTIVE -> ORDERED (admin)
    - ORDERED -> RESOLVED (admin, cascades basket resolution)
    - WAITING/ACTIVE/ORDERED -> CANCELED (reserved, not used by the primary flow)

    RESOLVED and CANCELED are final: no further state-mutating actions.
    """

    MIN_ACTIVE_MEMBERS = 2

    VALID_TRANSITIONS: List[ChatroomStateTransition] = [
        ChatroomStateTransition(
            ChatroomState.WAITING,
            ChatroomState.ACTIVE,
            requires_admin=False,
            description="Second member joined"
        ),
        ChatroomStateTransition(
            ChatroomState.WAITING,
            ChatroomState.ORDERED,
            requires_admin=True,
            description="Consolidated order placed by admin"
        ),
        ChatroomStateTransition(
            ChatroomState.ACTIVE,
            ChatroomState.ORDERED,
            requires_admin=True,
            description="Consolidated order placed by admin"
        ),
        ChatroomStateTransition(
            ChatroomState.ORDERED,
            ChatroomState.RESOLVED,
            requires_admin=True,
            description="Delivery confirmed by admin"
        ),
        ChatroomStateTransition(ChatroomState.WAITING, ChatroomState.CANCELED, requires_admin=True),
        ChatroomStateTransition(ChatroomState.ACTIVE, ChatroomState.CANCELED, requires_admin=True),
        ChatroomStateTransition(ChatroomState.ORDERED, ChatroomState.CANCELED, requires_admin=True),
    ]

    FINAL_STATES: Set[ChatroomState] = {ChatroomState.RESOLVED, ChatroomState.CANCELED}

    _transition_map: Dict[ChatroomState, Set[ChatroomState]] = {}

    @classmethod
    def _build_transition_map(cls):
        """Build internal transition map"""
        if cls._transition_map:
            return
        for transition in cls.VALID_TRANSITIONS:
            cls._transition_map.setdefault(transition.from_state, set()).add(transition.to_state)

    @classmethod
    def is_valid_transition(cls, from_state: ChatroomState, to_state: ChatroomState) -> bool:
        """
        Check if a state transition is valid according to the state machine.

        Args:
            from_state: Current (effective) chatroom state
            to_state: Desired new state

        Returns:
            True if transition is valid, False otherwise
        """
        cls._build_transition_map()
        return to_state in cls._transition_map.get(from_state, set())

    @classmethod
    def sources_of(cls, to_state: ChatroomState) -> List[str]:
        return [t.from_state.value for t in cls.VALID_TRANSITIONS if t.to_state == to_state]

    @classmethod
    def is_final_state(cls, state: ChatroomState) -> bool:
        return state in cls.FINAL_STATES

    @classmethod
    def effective_state(cls, stored_state: ChatroomState, active_member_count: int) -> ChatroomState:
        """WAITING is reported as ACTIVE once enough members are present."""
        if stored_state == ChatroomState.WAITING and active_member_count >= cls.MIN_ACTIVE_MEMBERS:
            return ChatroomState.ACTIVE
        return stored_state

    @classmethod
    def ensure_not_final(cls, chatroom_id: int, state: ChatroomState) -> None:
        if cls.is_final_state(state):
            raise InvalidChatroomStateException(chatroom_id, state.value, "not resolved")

    @staticmethod
    def ensure_admin(chatroom_id: int, admin_id: Optional[int], user_id: int, action: str) -> None:
        # An adminless chatroom rejects every admin action
        if admin_id is None or admin_id != user_id:
            raise NotChatroomAdminException(chatroom_id, user_id, action)

    @classmethod
    def validate_transition(cls, chatroom_id: int, from_state: ChatroomState, to_state: ChatroomState,
                            performed_by: int) -> ChatroomState:
        """
        Validate a transition and write the audit log line.

        Returns:
            The new state to store

        Raises:
            InvalidChatroomStateException: if the transition is not allowed
        """
        if not cls.is_valid_transition(from_state, to_state):
            logger.error(f"Invalid state transition for chatroom {chatroom_id}: {from_state.value} -> {to_state.value}")
            raise InvalidChatroomStateException(chatroom_id, from_state.value, " or ".join(cls.sources_of(to_state)))
        logger.info(
            f"CHATROOM_TRANSITION: Chatroom {chatroom_id} {from_state.value} -> {to_state.value} by user {performed_by}"
        )
        return to_state

    @staticmethod
    def extension_phase(state: ChatroomState) -> Optional[ExtensionPhase]:
        if state in (ChatroomState.WAITING, ChatroomState.ACTIVE):
            return ExtensionPhase.BEFORE_ORDERED
        if state == ChatroomState.ORDERED:
            return ExtensionPhase.ORDERED
        return None

    @classmethod
    def extensions_used(cls, phase: ExtensionPhase, extensions_before_ordered: int, extensions_ordered: int) -> int:
        if phase == ExtensionPhase.BEFORE_ORDERED:
            return extensions_before_ordered or 0
        return extensions_ordered or 0

    @classmethod
    def validate_extension(cls, chatroom_id: int, state: ChatroomState, extensions_before_ordered: int,
                           extensions_ordered: int, limit: int) -> ExtensionPhase:
        """
        Check that the deadline may be extended in the current phase.

        Raises:
            InvalidChatroomStateException: chatroom is resolved or canceled
            ExtensionLimitReachedException: the phase's extension was already used
        """
        phase = cls.extension_phase(state)
        if phase is None:
            raise InvalidChatroomStateException(chatroom_id, state.value, "waiting, active or ordered")
        if cls.extensions_used(phase, extensions_before_ordered, extensions_ordered) >= limit:
            raise ExtensionLimitReachedException(chatroom_id, phase.value, limit)
        return phase

    @staticmethod
    def extended_expiry(expire_at: datetime, hours: int) -> datetime:
        new_expiry = expire_at + timedelta(hours=hours)
        if new_expiry <= expire_at:
            raise ValueError("Deadline extension must move expire_at forward")
        return new_expiry

    @classmethod
    def permissions_for(cls, state: ChatroomState, admin_id: Optional[int], viewer_id: int, is_active_member: bool,
                        extensions_before_ordered: int, extensions_ordered: int, limit: int) -> ChatroomPermissions:
        """Actions available to ``viewer_id`` given the chatroom's effective state."""
        is_admin = is_active_member and admin_id is not None and admin_id == viewer_id
        open_room = not cls.is_final_state(state)
        phase = cls.extension_phase(state)
        can_extend = (
            is_admin
            and phase is not None
            and cls.extensions_used(phase, extensions_before_ordered, extensions_ordered) < limit
        )
        return ChatroomPermissions(
            is_admin=is_admin,
            is_member=is_active_member,
            can_mark_ordered=is_admin and cls.is_valid_transition(state, ChatroomState.ORDERED),
            can_mark_delivered=is_admin and cls.is_valid_transition(state, ChatroomState.RESOLVED),
            can_extend_deadline=can_extend,
            can_manage_members=is_admin and open_room,
            can_leave=is_active_member and open_room,
            can_send_message=is_active_member and open_room,
            can_confirm_delivery=is_active_member and state == ChatroomState.ORDERED,
        )
