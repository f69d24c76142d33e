"""
Message-related exceptions.
"""

from .base import ValidationException


class InvalidMessageException(ValidationException):
    """Raised when message content fails validation."""

    def __init__(self, reason: str):
        super().__init__(
            f"Invalid message: {reason}",
            details={'reason': reason}
        )
        self.reason = reason
