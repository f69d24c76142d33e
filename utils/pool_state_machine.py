"""
Pool funding rules.

A pool is ACCEPTING until its running total reaches the shop's minimum,
at which point it is converted into a chatroom and stops accepting baskets.
"""

from exceptions import PoolNotAcceptingException


class PoolStateMachine:

    @staticmethod
    def is_funded(current_amount: float, min_amount: float) -> bool:
        return round(current_amount, 2) >= round(min_amount, 2)

    @staticmethod
    def remaining(current_amount: float, min_amount: float) -> float:
        return max(0.0, round(min_amount - current_amount, 2))

    @staticmethod
    def progress_percent(current_amount: float, min_amount: float) -> float:
        if min_amount <= 0:
            return 100.0
        return min(100.0, round(current_amount / min_amount * 100, 1))

    @staticmethod
    def apply_delta(pool_id: int, is_accepting: bool, current_amount: float, delta: float) -> float:
        """
        New running total after a basket mutation.

        Raises:
            PoolNotAcceptingException: the pool was already converted
        """
        if not is_accepting:
            raise PoolNotAcceptingException(pool_id)
        # Float drift must never push the total below zero
        return max(0.0, round(current_amount + delta, 2))
