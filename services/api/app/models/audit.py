from __future__ import annotations

from pydantic import BaseModel, Field


class PlacedOrderOut(BaseModel):
    id: str
    session_id: str
    order_id: int
    order_number: str
    payment_method: str
    total_amount: int
    created_at: str

    order_payload_json: dict = Field(default_factory=dict)


class CheckoutSessionOut(BaseModel):
    session_id: str
    storefront: str
    status: str
    dish_ids: list[int] | None = None
    total_amount: int | None = None

    created_at: str
    updated_at: str
