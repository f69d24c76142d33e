"""
Custom exceptions for the dormitory group-buy service.

This module provides a hierarchy of custom exceptions for consistent error handling
throughout the application.

Exception Hierarchy:
--------------------
GroupBuyException (base)
├── ValidationException
│   ├── InvalidBasketDataException
│   ├── DuplicateActiveBasketException
│   └── InvalidMessageException
├── NotFoundException
│   ├── BasketNotFoundException
│   ├── PoolNotFoundException
│   ├── ChatroomNotFoundException
│   ├── ShopNotFoundException
│   └── LocationNotFoundException
├── ForbiddenException
│   ├── BasketOwnershipException
│   ├── NotChatroomAdminException
│   └── NotChatroomMemberException
├── InvalidStateException
│   ├── InvalidBasketStateException
│   ├── PoolNotAcceptingException
│   ├── PoolNotFundedException
│   ├── InvalidChatroomStateException
│   ├── MemberNotActiveException
│   ├── CannotRemoveAdminException
│   └── ExtensionLimitReachedException
└── ConflictException

Usage:
------
Services raise specific exceptions:
    raise BasketNotFoundException(basket_id=123)

Callers catch the taxonomy class they care about:
    try:
        await ChatroomService.mark_ordered(chatroom_id, user_id)
    except ForbiddenException:
        ...
"""

from .base import (
    GroupBuyException,
    ValidationException,
    NotFoundException,
    ForbiddenException,
    InvalidStateException,
    ConflictException,
)
from .basket import (
    BasketNotFoundException,
    InvalidBasketDataException,
    DuplicateActiveBasketException,
    BasketOwnershipException,
    InvalidBasketStateException,
)
from .catalog import ShopNotFoundException, LocationNotFoundException
from .chatroom import (
    ChatroomNotFoundException,
    NotChatroomAdminException,
    NotChatroomMemberException,
    InvalidChatroomStateException,
    MemberNotActiveException,
    CannotRemoveAdminException,
    ExtensionLimitReachedException,
)
from .message import InvalidMessageException
from .pool import PoolNotFoundException, PoolNotAcceptingException, PoolNotFundedException

__all__ = [
    # Base
    'GroupBuyException',
    'ValidationException',
    'NotFoundException',
    'ForbiddenException',
    'InvalidStateException',
    'ConflictException',

    # Basket
    'BasketNotFoundException',
    'InvalidBasketDataException',
    'DuplicateActiveBasketException',
    'BasketOwnershipException',
    'InvalidBasketStateException',

    # Catalog
    'ShopNotFoundException',
    'LocationNotFoundException',

    # Chatroom
    'ChatroomNotFoundException',
    'NotChatroomAdminException',
    'NotChatroomMemberException',
    'InvalidChatroomStateException',
    'MemberNotActiveException',
    'CannotRemoveAdminException',
    'ExtensionLimitReachedException',

    # Message
    'InvalidMessageException',

    # Pool
    'PoolNotFoundException',
    'PoolNotAcceptingException',
    'PoolNotFundedException',
]
