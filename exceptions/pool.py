"""
Pool-related exceptions.
"""

from .base import NotFoundException, InvalidStateException


class PoolNotFoundException(NotFoundException):
    """Raised when pool is not found in database."""

    def __init__(self, pool_id: int):
        super().__init__(
            f"Pool {pool_id} not found",
            details={'pool_id': pool_id}
        )
        self.pool_id = pool_id


class PoolNotAcceptingException(InvalidStateException):
    """Raised when a converted pool receives an amount change."""

    def __init__(self, pool_id: int):
        super().__init__(
            f"Pool {pool_id} was converted into a chatroom and no longer accepts baskets",
            details={'pool_id': pool_id}
        )
        self.pool_id = pool_id


class PoolNotFundedException(InvalidStateException):
    """Raised when a chatroom spawn is requested for an under-funded pool."""

    def __init__(self, pool_id: int, current_amount: float, min_amount: float):
        super().__init__(
            f"Pool {pool_id} holds {current_amount:.2f} of required {min_amount:.2f}",
            details={'pool_id': pool_id, 'current_amount': current_amount, 'min_amount': min_amount}
        )
        self.pool_id = pool_id
        self.current_amount = current_amount
        self.min_amount = min_amount
