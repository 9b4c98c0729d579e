from __future__ import annotations

import httpx

from services.api.app.services.auth_context import AuthContext
from services.api.app.services.pricing import is_valid_shipping_fee
from services.api.app.services.shipping_base import ShippingFeeError
from services.api.app.services.storefront_http import HttpConfig, error_message


class ShippingRateUnavailableError(ShippingFeeError):
    def __init__(self, detail: str) -> None:
        super().__init__(f"Could not calculate the shipping fee: {detail}")
        self.detail = detail


class HttpShippingRateService:
    """Shipping fee lookup through the storefront's ``/shipping/calculate-fee`` endpoint.

    The storefront asks the carrier (GHN) for a quote keyed by the saved address, so this
    client only ever sends the address id.
    """

    name = "HTTP"

    def __init__(
        self,
        cfg: HttpConfig,
        auth: AuthContext,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._cfg = cfg
        self._auth = auth
        self._transport = transport

    @classmethod
    def from_env(cls, auth: AuthContext) -> "HttpShippingRateService":
        return cls(HttpConfig.from_env(), auth)

    async def calculate_fee(self, address_id: int) -> int:
        try:
            async with httpx.AsyncClient(
                base_url=self._cfg.base_url,
                timeout=self._cfg.timeout_seconds,
                headers=self._auth.headers(),
                transport=self._transport,
            ) as client:
                response = await client.get(
                    "/shipping/calculate-fee", params={"addressId": address_id}
                )
        except httpx.HTTPError as e:
            raise ShippingRateUnavailableError(str(e) or type(e).__name__) from e

        if response.status_code in (401, 403):
            self._auth.clear()
            raise ShippingRateUnavailableError("storefront session expired")

        if response.status_code >= 400:
            raise ShippingRateUnavailableError(error_message(response))

        try:
            fee = response.json()
        except ValueError as e:
            raise ShippingRateUnavailableError("response was not JSON") from e

        if isinstance(fee, dict):
            fee = fee.get("fee")

        if not is_valid_shipping_fee(fee):
            raise ShippingRateUnavailableError(f"unexpected fee value {fee!r}")

        return int(fee)
