"""
Base exception classes for the group-buy lifecycle.

The five taxonomy classes below describe *why* an operation failed; the
domain modules (basket, pool, chatroom, message, catalog) subclass them to
say *what* failed.
"""


class GroupBuyException(Exception):
    """
    Base exception for all group-buy errors.

    All custom exceptions should inherit from this class.
    This allows catching all domain exceptions with a single handler.

    Attributes:
        message: Human-readable error message
        details: Optional dict with additional context (entity IDs, states, etc.)
    """

    def __init__(self, message: str, details: dict | None = None):
        """
        Initialize base exception.

        Args:
            message: Human-readable error message
            details: Optional dict with additional context
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return the error message."""
        return self.message

    def __repr__(self) -> str:
        """Return detailed representation with context."""
        if self.details:
            details_str = ', '.join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.__class__.__name__}('{self.message}', {details_str})"
        return f"{self.__class__.__name__}('{self.message}')"


class ValidationException(GroupBuyException):
    """Malformed input: missing required fields, non-positive amount, invalid URL."""
    pass


class NotFoundException(GroupBuyException):
    """Referenced basket, pool, chatroom, shop or location does not exist."""
    pass


class ForbiddenException(GroupBuyException):
    """Caller lacks authority (not the owner, not the chatroom admin)."""
    pass


class InvalidStateException(GroupBuyException):
    """Action is not legal in the current lifecycle state."""
    pass


class ConflictException(GroupBuyException):
    """Concurrent mutation detected by the store and not resolved by retrying."""

    def __init__(self, operation: str, reason: str):
        super().__init__(
            f"Conflicting concurrent update during {operation}: {reason}",
            details={'operation': operation, 'reason': reason}
        )
        self.operation = operation
        self.reason = reason
