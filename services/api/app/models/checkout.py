from __future__ import annotations

from packages.shared.schemas.checkout_v1 import PaymentMethodV1
from pydantic import BaseModel, Field


class StartCheckoutRequest(BaseModel):
    # Dishes picked on the cart page; None checks out the whole cart.
    dish_ids: list[int] | None = None


class SelectAddressRequest(BaseModel):
    address_id: int


class ApplyCouponRequest(BaseModel):
    code: str = Field(default="", max_length=64)


class PlaceOrderRequest(BaseModel):
    payment_method: PaymentMethodV1 | None = PaymentMethodV1.COD
    notes: str | None = None

    # The user's answer to "Confirm this order?". Nothing is sent unless this is true.
    confirmed: bool = False
