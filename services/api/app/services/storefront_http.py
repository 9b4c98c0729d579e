from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from packages.shared.schemas.checkout_v1 import (
    AddressRequestV1,
    AddressV1,
    CheckoutInfoV1,
    CreateOrderRequestV1,
    OrderV1,
)
from services.api.app.services.auth_context import AuthContext
from services.api.app.services.storefront_base import (
    StorefrontAuthError,
    StorefrontRejectedError,
    StorefrontUnavailableError,
)

logger = logging.getLogger(__name__)

_M = TypeVar("_M", bound=BaseModel)


@dataclass(frozen=True, slots=True)
class HttpConfig:
    base_url: str
    timeout_seconds: float

    @classmethod
    def from_env(cls) -> "HttpConfig":
        base_url = os.getenv("FOODHUB_API_BASE_URL", "http://localhost:8080/api").rstrip("/")
        timeout_seconds = float(os.getenv("FOODHUB_HTTP_TIMEOUT_SECONDS", "10"))
        return cls(base_url=base_url, timeout_seconds=timeout_seconds)


def error_message(response: httpx.Response) -> str:
    """Pull the human-readable error the storefront put in the body, if any."""

    try:
        data = response.json()
    except ValueError:
        data = None

    if isinstance(data, dict):
        for key in ("error", "message", "detail"):
            value = data.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()

    return f"Request failed (HTTP {response.status_code})"


def _dish_ids_param(dish_ids: list[int] | None) -> dict[str, str]:
    if not dish_ids:
        return {}
    return {"dishIds": ",".join(str(d) for d in dish_ids)}


class HttpStorefrontBackend:
    """Storefront backend reached over its JSON REST API.

    Env vars:
    - FOODHUB_STOREFRONT_ADAPTER=http
    - FOODHUB_API_BASE_URL (default: http://localhost:8080/api)
    - FOODHUB_HTTP_TIMEOUT_SECONDS (default: 10)
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
    def from_env(cls, auth: AuthContext) -> "HttpStorefrontBackend":
        return cls(HttpConfig.from_env(), auth)

    async def get_checkout_info(self, dish_ids: list[int] | None) -> CheckoutInfoV1:
        data = await self._request("GET", "/checkout", params=_dish_ids_param(dish_ids))
        return _parse(CheckoutInfoV1, data)

    async def apply_coupon(self, code: str, dish_ids: list[int] | None) -> CheckoutInfoV1:
        data = await self._request(
            "POST",
            "/checkout/apply-coupon",
            params=_dish_ids_param(dish_ids),
            json={"couponCode": code},
        )
        return _parse(CheckoutInfoV1, data)

    async def list_addresses(self) -> list[AddressV1]:
        data = await self._request("GET", "/addresses")
        if not isinstance(data, list):
            raise StorefrontUnavailableError("address list response was not a list")
        return [_parse(AddressV1, item) for item in data]

    async def create_address(self, payload: AddressRequestV1) -> AddressV1:
        data = await self._request(
            "POST", "/addresses", json=payload.model_dump(mode="json", by_alias=True)
        )
        return _parse(AddressV1, data)

    async def update_address(self, address_id: int, payload: AddressRequestV1) -> AddressV1:
        data = await self._request(
            "PUT",
            f"/addresses/{address_id}",
            json=payload.model_dump(mode="json", by_alias=True),
        )
        return _parse(AddressV1, data)

    async def delete_address(self, address_id: int) -> None:
        await self._request("DELETE", f"/addresses/{address_id}")

    async def set_default_address(self, address_id: int) -> AddressV1:
        data = await self._request("PUT", f"/addresses/{address_id}/default")
        return _parse(AddressV1, data)

    async def create_order(self, payload: CreateOrderRequestV1) -> OrderV1:
        body = payload.model_dump(mode="json", by_alias=True, exclude_none=True)
        data = await self._request("POST", "/orders", json=body)
        return _parse(OrderV1, data)

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, str] | None = None,
        json: Any = None,
    ) -> Any:
        try:
            async with httpx.AsyncClient(
                base_url=self._cfg.base_url,
                timeout=self._cfg.timeout_seconds,
                headers=self._auth.headers(),
                transport=self._transport,
            ) as client:
                response = await client.request(method, path, params=params, json=json)
        except httpx.HTTPError as e:
            logger.warning("Storefront %s %s failed: %s", method, path, e)
            raise StorefrontUnavailableError(str(e) or type(e).__name__) from e

        if response.status_code in (401, 403):
            self._auth.clear()
            raise StorefrontAuthError(response.status_code)

        if response.status_code >= 500:
            raise StorefrontUnavailableError(error_message(response))

        if response.status_code >= 400:
            raise StorefrontRejectedError(error_message(response), response.status_code)

        if not response.content:
            return None

        try:
            return response.json()
        except ValueError as e:
            raise StorefrontUnavailableError(f"{method} {path} returned invalid JSON") from e


def _parse(model: type[_M], data: Any) -> _M:
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise StorefrontUnavailableError(
            f"unexpected {model.__name__} payload: {e.error_count()} error(s)"
        ) from e
