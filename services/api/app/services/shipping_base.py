from __future__ import annotations

from typing import Protocol


class ShippingFeeError(Exception):
    """Base class for shipping-rate errors."""


class ShippingAddressUnsupportedError(ShippingFeeError):
    def __init__(self, address_id: int) -> None:
        super().__init__(f"No shipping rate is available for address {address_id}")
        self.address_id = address_id


class ShippingRateService(Protocol):
    name: str

    async def calculate_fee(self, address_id: int) -> int: ...
