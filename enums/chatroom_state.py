from enum import Enum


class ChatroomState(str, Enum):
    """
    Lifecycle of a chatroom spawned from a funded pool.

    WAITING: initial state, stored until the admin orders
    ACTIVE: WAITING with at least two active members (derived, never stored by the spawner)
    ORDERED: admin placed the consolidated order
    RESOLVED: admin confirmed delivery, terminal
    CANCELED: reserved terminal state, unused by the primary flow
    """
    WAITING = "waiting"
    ACTIVE = "active"
    ORDERED = "ordered"
    RESOLVED = "resolved"
    CANCELED = "canceled"
