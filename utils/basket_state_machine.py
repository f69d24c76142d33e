"""
Basket State Machine for validating basket status transitions and basket fields.

Pure functions only: nothing here touches the database, so transition legality
and field validation can be tested without a store.
"""

import logging
from typing import Dict, List, Optional, Set
from urllib.parse import urlparse

from enums.basket_status import BasketStatus
from exceptions import InvalidBasketDataException, InvalidBasketStateException

logger = logging.getLogger(__name__)


class BasketStatusTransition:
    """Represents a valid status transition with metadata"""

    def __init__(self, from_status: BasketStatus, to_status: BasketStatus, description: str = ""):
        self.from_status = from_status
        self.to_status = to_status
        self.description = description

    def __repr__(self):
        return f"{self.from_status.value} -> {self.to_status.value}"


class BasketStateMachine:
    """
    Finite state machine for basket status transitions.

    Valid status transitions:
    - IN_POOL -> IN_CHAT (pool converted, or basket routed into an open chatroom)
    - IN_CHAT -> ORDERED (reserved)
    - IN_CHAT -> RESOLVED (delivery confirmed by admin, or owner left the chatroom)
    - ORDERED -> RESOLVED

    Owner edits (amount, link, note, readiness, delete) are only legal IN_POOL.
    """

    VALID_TRANSITIONS: List[BasketStatusTransition] = [
        BasketStatusTransition(BasketStatus.IN_POOL, BasketStatus.IN_CHAT, "Migrated into chatroom"),
        BasketStatusTransition(BasketStatus.IN_CHAT, BasketStatus.ORDERED, "Order placed"),
        BasketStatusTransition(BasketStatus.IN_CHAT, BasketStatus.RESOLVED, "Chatroom resolved or left"),
        BasketStatusTransition(BasketStatus.ORDERED, BasketStatus.RESOLVED, "Chatroom resolved or left"),
    ]

    # One active basket per user per shop
    ACTIVE_STATUSES: Set[BasketStatus] = {BasketStatus.IN_POOL, BasketStatus.IN_CHAT, BasketStatus.ORDERED}
    EDITABLE_STATUSES: Set[BasketStatus] = {BasketStatus.IN_POOL}

    _transition_map: Dict[BasketStatus, Set[BasketStatus]] = {}

    @classmethod
    def _build_transition_map(cls):
        if cls._transition_map:
            return
        for transition in cls.VALID_TRANSITIONS:
            cls._transition_map.setdefault(transition.from_status, set()).add(transition.to_status)

    @classmethod
    def is_valid_transition(cls, from_status: BasketStatus, to_status: BasketStatus) -> bool:
        cls._build_transition_map()
        return to_status in cls._transition_map.get(from_status, set())

    @classmethod
    def is_active(cls, status: BasketStatus) -> bool:
        return status in cls.ACTIVE_STATUSES

    @classmethod
    def is_editable(cls, status: BasketStatus) -> bool:
        return status in cls.EDITABLE_STATUSES

    @classmethod
    def ensure_editable(cls, basket_id: int, status: BasketStatus) -> None:
        if not cls.is_editable(status):
            raise InvalidBasketStateException(basket_id, status.value, BasketStatus.IN_POOL.value)

    @classmethod
    def transition(cls, basket_id: int, from_status: BasketStatus, to_status: BasketStatus) -> BasketStatus:
        """
        Validate a status transition and log it.

        Returns:
            The new status

        Raises:
            InvalidBasketStateException: if the transition is not allowed
        """
        if not cls.is_valid_transition(from_status, to_status):
            raise InvalidBasketStateException(basket_id, from_status.value, f"one of {cls.sources_of(to_status)}")
        logger.info(f"BASKET_TRANSITION: Basket {basket_id} {from_status.value} -> {to_status.value}")
        return to_status

    @classmethod
    def sources_of(cls, to_status: BasketStatus) -> List[str]:
        return sorted(t.from_status.value for t in cls.VALID_TRANSITIONS if t.to_status == to_status)

    @staticmethod
    def validate_amount(amount) -> float:
        if amount is None:
            raise InvalidBasketDataException("amount", "amount is required")
        try:
            value = float(amount)
        except (TypeError, ValueError):
            raise InvalidBasketDataException("amount", f"'{amount}' is not a number")
        if value != value or value in (float("inf"), float("-inf")):
            raise InvalidBasketDataException("amount", "amount must be finite")
        if value <= 0:
            raise InvalidBasketDataException("amount", "amount must be greater than 0")
        return round(value, 2)

    @staticmethod
    def validate_link(link: Optional[str]) -> Optional[str]:
        if link is None:
            return None
        link = link.strip()
        if not link:
            return None
        parsed = urlparse(link)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise InvalidBasketDataException("link", f"'{link}' is not a valid http(s) URL")
        return link

    @staticmethod
    def validate_note(note: Optional[str]) -> Optional[str]:
        if note is None:
            return None
        note = note.strip()
        return note or None

    @classmethod
    def validate_fields(cls, amount, link: Optional[str], note: Optional[str]) -> tuple[float, Optional[str], Optional[str]]:
        """
        Validate and normalize the owner supplied basket fields.

        Returns:
            (amount, link, note) with blank link/note normalized to None

        Raises:
            InvalidBasketDataException: non-positive amount, malformed link,
                or neither link nor note present
        """
        amount = cls.validate_amount(amount)
        link = cls.validate_link(link)
        note = cls.validate_note(note)
        if link is None and note is None:
            raise InvalidBasketDataException("link", "either an order link or a note is required")
        return amount, link, note
