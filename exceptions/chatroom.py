"""
Chatroom-related exceptions.
"""

from .base import NotFoundException, ForbiddenException, InvalidStateException


class ChatroomNotFoundException(NotFoundException):
    """Raised when chatroom is not found in database."""

    def __init__(self, chatroom_id: int):
        super().__init__(
            f"Chatroom {chatroom_id} not found",
            details={'chatroom_id': chatroom_id}
        )
        self.chatroom_id = chatroom_id


class NotChatroomAdminException(ForbiddenException):
    """Raised when a non-admin attempts an admin-only action."""

    def __init__(self, chatroom_id: int, user_id: int, action: str):
        super().__init__(
            f"User {user_id} is not the admin of chatroom {chatroom_id} and cannot {action}",
            details={'chatroom_id': chatroom_id, 'user_id': user_id, 'action': action}
        )
        self.chatroom_id = chatroom_id
        self.user_id = user_id
        self.action = action


class NotChatroomMemberException(ForbiddenException):
    """Raised when a user who never joined the chatroom tries to access it."""

    def __init__(self, chatroom_id: int, user_id: int):
        super().__init__(
            f"User {user_id} is not a member of chatroom {chatroom_id}",
            details={'chatroom_id': chatroom_id, 'user_id': user_id}
        )
        self.chatroom_id = chatroom_id
        self.user_id = user_id


class InvalidChatroomStateException(InvalidStateException):
    """Raised when chatroom is in invalid state for requested operation."""

    def __init__(self, chatroom_id: int, current_state: str, required_state: str):
        super().__init__(
            f"Chatroom {chatroom_id} is in state '{current_state}', required '{required_state}'",
            details={'chatroom_id': chatroom_id, 'current_state': current_state, 'required_state': required_state}
        )
        self.chatroom_id = chatroom_id
        self.current_state = current_state
        self.required_state = required_state


class MemberNotActiveException(InvalidStateException):
    """Raised when the target user has no active membership in the chatroom."""

    def __init__(self, chatroom_id: int, user_id: int):
        super().__init__(
            f"User {user_id} is not an active member of chatroom {chatroom_id}",
            details={'chatroom_id': chatroom_id, 'user_id': user_id}
        )
        self.chatroom_id = chatroom_id
        self.user_id = user_id


class CannotRemoveAdminException(InvalidStateException):
    """Raised when the admin targets themself with a removal."""

    def __init__(self, chatroom_id: int, user_id: int):
        super().__init__(
            f"Admin {user_id} cannot remove themself from chatroom {chatroom_id}, use leave instead",
            details={'chatroom_id': chatroom_id, 'user_id': user_id}
        )
        self.chatroom_id = chatroom_id
        self.user_id = user_id


class ExtensionLimitReachedException(InvalidStateException):
    """Raised when the deadline was already extended in the current phase."""

    def __init__(self, chatroom_id: int, phase: str, limit: int):
        super().__init__(
            f"Chatroom {chatroom_id} deadline already extended {limit} time(s) in phase '{phase}'",
            details={'chatroom_id': chatroom_id, 'phase': phase, 'limit': limit}
        )
        self.chatroom_id = chatroom_id
        self.phase = phase
        self.limit = limit
