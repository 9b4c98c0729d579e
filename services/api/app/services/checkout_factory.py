from __future__ import annotations

import os

from services.api.app.services.auth_context import AuthContext
from services.api.app.services.reconciler import CheckoutReconciler
from services.api.app.services.shipping_factory import get_shipping_rate_service
from services.api.app.services.storefront_factory import get_storefront_backend


def build_reconciler(auth: AuthContext, dish_ids: list[int] | None) -> CheckoutReconciler:
    """Wire a reconciler to the configured adapters.

    Env vars:
    - FOODHUB_SHIPPING_TIMEOUT_SECONDS (default: 5)
    - FOODHUB_SHIPPING_ATTEMPTS (default: 1)
    - FOODHUB_SHIPPING_RETRY_DELAY_SECONDS (default: 1)
    """

    return CheckoutReconciler(
        get_storefront_backend(auth),
        get_shipping_rate_service(auth),
        dish_ids=dish_ids,
        shipping_timeout=float(os.getenv("FOODHUB_SHIPPING_TIMEOUT_SECONDS", "5")),
        shipping_attempts=int(os.getenv("FOODHUB_SHIPPING_ATTEMPTS", "1")),
        shipping_retry_delay=float(os.getenv("FOODHUB_SHIPPING_RETRY_DELAY_SECONDS", "1")),
    )
