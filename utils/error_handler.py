"""
Error Handler Utility for UI commands

Provides centralized error handling for view/command callers with:
- Localized, actionable inline messages
- Silent handling of forbidden and conflict errors
- Logging for debugging

Usage:
    from utils.error_handler import handle_service_error

    try:
        await ChatroomService.mark_ordered(chatroom_id, user_id)
    except GroupBuyException as e:
        message = handle_service_error(e)
        if message is not None:
            show_inline_error(message)

Or wrap the command:
    @safe_service_call()
    async def on_mark_ordered(chatroom_id, user_id):
        return await ChatroomService.mark_ordered(chatroom_id, user_id)
"""

import logging
from functools import wraps
from typing import Any, Optional

from pydantic import BaseModel

from exceptions import (
    GroupBuyException,
    ValidationException,
    NotFoundException,
    ForbiddenException,
    InvalidStateException,
    ConflictException,
    InvalidBasketDataException,
    DuplicateActiveBasketException,
    InvalidMessageException,
    BasketNotFoundException,
    PoolNotFoundException,
    ChatroomNotFoundException,
    ShopNotFoundException,
    LocationNotFoundException,
    InvalidBasketStateException,
    PoolNotAcceptingException,
    PoolNotFundedException,
    InvalidChatroomStateException,
    MemberNotActiveException,
    CannotRemoveAdminException,
    ExtensionLimitReachedException,
)
from utils.localizator import Localizator

# Most specific class first; lookup walks the exception's MRO
ERROR_MAPPING = {
    # Validation
    InvalidBasketDataException: "error_invalid_basket_data",
    DuplicateActiveBasketException: "error_duplicate_active_basket",
    InvalidMessageException: "error_invalid_message",
    ValidationException: "error_validation",

    # Not found
    BasketNotFoundException: "error_basket_not_found",
    PoolNotFoundException: "error_pool_not_found",
    ChatroomNotFoundException: "error_chatroom_not_found",
    ShopNotFoundException: "error_shop_not_found",
    LocationNotFoundException: "error_location_not_found",
    NotFoundException: "error_not_found",

    # Invalid state
    InvalidBasketStateException: "error_basket_not_editable",
    PoolNotAcceptingException: "error_pool_not_accepting",
    PoolNotFundedException: "error_pool_not_funded",
    InvalidChatroomStateException: "error_chatroom_invalid_state",
    MemberNotActiveException: "error_member_not_active",
    CannotRemoveAdminException: "error_cannot_remove_admin",
    ExtensionLimitReachedException: "error_extension_limit_reached",
    InvalidStateException: "error_invalid_state",
}

# UI disables these actions instead of showing an error
SILENT_EXCEPTIONS = (ForbiddenException, ConflictException)


class CommandResult(BaseModel):
    ok: bool
    value: Any = None
    # Inline message for the user, None when the failure is silent
    error: Optional[str] = None
    error_kind: Optional[str] = None


def error_kind(exception: Exception) -> str:
    for kind, cls in (
        ("validation", ValidationException),
        ("not_found", NotFoundException),
        ("forbidden", ForbiddenException),
        ("invalid_state", InvalidStateException),
        ("conflict", ConflictException),
    ):
        if isinstance(exception, cls):
            return kind
    return "unexpected"


def handle_service_error(exception: GroupBuyException, lang: Optional[str] = None) -> Optional[str]:
    """
    Convert service exception to a localized user-facing message.

    Args:
        exception: The custom exception raised by a service
        lang: Optional language code, defaults to config.UI_LANGUAGE

    Returns:
        Localized message, or None for forbidden/conflict errors
    """
    # Log the error for debugging
    logging.warning(f"Service error handled: {type(exception).__name__} - {str(exception)}")

    if isinstance(exception, SILENT_EXCEPTIONS):
        return None

    localization_key = None
    for cls in type(exception).__mro__:
        localization_key = ERROR_MAPPING.get(cls)
        if localization_key:
            break

    if not localization_key:
        logging.error(f"Unmapped exception type: {type(exception).__name__}")
        return Localizator.get_text("error_unexpected", lang=lang)

    exception_data = {'message': exception.message}
    exception_data.update(exception.details)

    try:
        return Localizator.get_text(localization_key, lang=lang).format(**exception_data)
    except KeyError as e:
        # Missing formatting parameter - log and return without formatting
        logging.error(f"Missing format parameter in error message: {e}")
        return Localizator.get_text(localization_key, lang=lang)


def handle_unexpected_error(exception: Exception, lang: Optional[str] = None) -> str:
    """
    Handle unexpected exceptions (non-GroupBuyException).

    Logs the full exception and returns the generic error message.
    """
    logging.error(f"Unexpected error: {type(exception).__name__} - {str(exception)}", exc_info=True)
    return Localizator.get_text("error_unexpected", lang=lang)


def safe_service_call(lang: Optional[str] = None):
    """
    Decorator for UI commands: returns a CommandResult instead of raising.

    Usage:
        @safe_service_call()
        async def create(user_id, ...):
            return await BasketService.create_basket(user_id, ...)
    """
    def decorator(command_func):
        @wraps(command_func)
        async def wrapper(*args, **kwargs) -> CommandResult:
            try:
                return CommandResult(ok=True, value=await command_func(*args, **kwargs))
            except GroupBuyException as e:
                return CommandResult(ok=False, error=handle_service_error(e, lang), error_kind=error_kind(e))
            except Exception as e:
                return CommandResult(ok=False, error=handle_unexpected_error(e, lang), error_kind="unexpected")

        return wrapper
    return decorator
