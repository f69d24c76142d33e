"""
Basket-related exceptions.
"""

from .base import ValidationException, NotFoundException, ForbiddenException, InvalidStateException


class BasketNotFoundException(NotFoundException):
    """Raised when basket is not found in database."""

    def __init__(self, basket_id: int):
        super().__init__(
            f"Basket {basket_id} not found",
            details={'basket_id': basket_id}
        )
        self.basket_id = basket_id


class InvalidBasketDataException(ValidationException):
    """Raised when basket fields fail validation."""

    def __init__(self, field: str, reason: str):
        super().__init__(
            f"Invalid basket {field}: {reason}",
            details={'field': field, 'reason': reason}
        )
        self.field = field
        self.reason = reason


class DuplicateActiveBasketException(ValidationException):
    """Raised when the owner already has an active basket for the shop."""

    def __init__(self, user_id: int, shop_id: int, basket_id: int):
        super().__init__(
            f"User {user_id} already has an active basket {basket_id} for shop {shop_id}",
            details={'user_id': user_id, 'shop_id': shop_id, 'basket_id': basket_id}
        )
        self.user_id = user_id
        self.shop_id = shop_id
        self.basket_id = basket_id


class BasketOwnershipException(ForbiddenException):
    """Raised when user attempts to modify a basket they don't own."""

    def __init__(self, basket_id: int, user_id: int):
        super().__init__(
            f"User {user_id} does not own basket {basket_id}",
            details={'basket_id': basket_id, 'user_id': user_id}
        )
        self.basket_id = basket_id
        self.user_id = user_id


class InvalidBasketStateException(InvalidStateException):
    """Raised when basket is in invalid state for requested operation."""

    def __init__(self, basket_id: int, current_state: str, required_state: str):
        super().__init__(
            f"Basket {basket_id} is in state '{current_state}', required '{required_state}'",
            details={'basket_id': basket_id, 'current_state': current_state, 'required_state': required_state}
        )
        self.basket_id = basket_id
        self.current_state = current_state
        self.required_state = required_state
