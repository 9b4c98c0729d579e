from __future__ import annotations

import os

from services.api.app.services.auth_context import AuthContext
from services.api.app.services.shipping_base import ShippingRateService
from services.api.app.services.shipping_mock import MockShippingRateService


def get_shipping_rate_service(auth: AuthContext) -> ShippingRateService:
    provider = os.getenv("FOODHUB_SHIPPING_ADAPTER", "mock").strip().lower()

    if provider in ("mock", "demo"):
        return MockShippingRateService()

    if provider in ("http", "ghn"):
        from services.api.app.services.shipping_http import HttpShippingRateService

        return HttpShippingRateService.from_env(auth)

    raise ValueError(f"Unknown FOODHUB_SHIPPING_ADAPTER={provider!r}. Expected mock or http.")
