from __future__ import annotations

from services.api.app.services.shipping_base import ShippingAddressUnsupportedError


class MockShippingRateService:
    name = "MOCK"

    def __init__(self, fees: dict[int, int] | None = None) -> None:
        # address_id -> fee in VND, matching the seeded storefront addresses.
        self._fees = dict(fees) if fees is not None else {1: 25000, 2: 32000}

    async def calculate_fee(self, address_id: int) -> int:
        fee = self._fees.get(address_id)
        if fee is None:
            raise ShippingAddressUnsupportedError(address_id)
        return fee
