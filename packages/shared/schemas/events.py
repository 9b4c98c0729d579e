"""Shared event schema (v1).

The checkout API stores an append-only event log per checkout session. Clients can
consume these events to render what happened to a session's totals.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class EntityTypeV1(str, Enum):
    CHECKOUT_SESSION = "CheckoutSession"
    ORDER = "Order"


class EventTypeV1(str, Enum):
    SESSION_STARTED = "SESSION_STARTED"
    LOAD_FAILED = "LOAD_FAILED"
    SESSION_ABANDONED = "SESSION_ABANDONED"
    ADDRESS_SELECTED = "ADDRESS_SELECTED"
    ADDRESS_CHANGED = "ADDRESS_CHANGED"
    SHIPPING_FEE_RESOLVED = "SHIPPING_FEE_RESOLVED"
    SHIPPING_FEE_FALLBACK = "SHIPPING_FEE_FALLBACK"
    COUPON_APPLIED = "COUPON_APPLIED"
    COUPON_REJECTED = "COUPON_REJECTED"
    COUPON_REMOVED = "COUPON_REMOVED"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    ORDER_DECLINED = "ORDER_DECLINED"
    ORDER_REJECTED = "ORDER_REJECTED"
    ORDER_PLACED = "ORDER_PLACED"


class EventV1(BaseModel):
    id: str
    session_id: str

    entity_type: EntityTypeV1
    entity_id: str

    event_type: EventTypeV1
    payload: dict[str, Any] = Field(default_factory=dict)
    created_at: str
