from enum import Enum


class ExtensionPhase(str, Enum):
    BEFORE_ORDERED = "before_ordered"  # waiting / active
    ORDERED = "ordered"                # waiting for delivery confirmation
