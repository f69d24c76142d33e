from enum import Enum


class BasketStatus(str, Enum):
    IN_POOL = "in_pool"      # Waiting in a pool for the shop's minimum amount
    IN_CHAT = "in_chat"      # Migrated into a chatroom
    ORDERED = "ordered"      # Reserved, chatroom ordering does not move baskets here
    RESOLVED = "resolved"    # Delivered, or owner left the chatroom
