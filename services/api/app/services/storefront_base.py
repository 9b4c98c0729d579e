from __future__ import annotations

from typing import Protocol

from packages.shared.schemas.checkout_v1 import (
    AddressRequestV1,
    AddressV1,
    CheckoutInfoV1,
    CreateOrderRequestV1,
    OrderV1,
)


class StorefrontBackendError(Exception):
    """Base class for storefront backend errors."""


class StorefrontUnavailableError(StorefrontBackendError):
    def __init__(self, detail: str) -> None:
        super().__init__(f"Storefront backend is unavailable: {detail}")
        self.detail = detail


class StorefrontRejectedError(StorefrontBackendError):
    """The storefront refused the request. ``message`` is the server's own text."""

    def __init__(self, message: str, status_code: int = 400) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class StorefrontAuthError(StorefrontRejectedError):
    def __init__(self, status_code: int = 401) -> None:
        super().__init__("Storefront session expired. Please sign in again.", status_code)


class StorefrontBackend(Protocol):
    name: str

    async def get_checkout_info(self, dish_ids: list[int] | None) -> CheckoutInfoV1: ...

    async def apply_coupon(self, code: str, dish_ids: list[int] | None) -> CheckoutInfoV1: ...

    async def list_addresses(self) -> list[AddressV1]: ...

    async def create_address(self, payload: AddressRequestV1) -> AddressV1: ...

    async def update_address(self, address_id: int, payload: AddressRequestV1) -> AddressV1: ...

    async def delete_address(self, address_id: int) -> None: ...

    async def set_default_address(self, address_id: int) -> AddressV1: ...

    async def create_order(self, payload: CreateOrderRequestV1) -> OrderV1: ...
