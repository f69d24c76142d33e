"""
Shop and location lookup exceptions.
"""

from .base import NotFoundException


class ShopNotFoundException(NotFoundException):
    """Raised when shop is unknown or inactive."""

    def __init__(self, shop_id: int):
        super().__init__(
            f"Shop {shop_id} not found",
            details={'shop_id': shop_id}
        )
        self.shop_id = shop_id


class LocationNotFoundException(NotFoundException):
    """Raised when location is unknown."""

    def __init__(self, location_id: int):
        super().__init__(
            f"Location {location_id} not found",
            details={'location_id': location_id}
        )
        self.location_id = location_id
