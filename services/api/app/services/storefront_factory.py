from __future__ import annotations

import os

from services.api.app.services.auth_context import AuthContext
from services.api.app.services.storefront_base import StorefrontBackend
from services.api.app.services.storefront_mock import MockStorefrontBackend


def get_storefront_backend(auth: AuthContext) -> StorefrontBackend:
    """Select a storefront backend based on env vars.

    Defaults to the in-memory mock so tests and local dev are deterministic unless
    explicitly configured otherwise.
    """

    mode = os.getenv("FOODHUB_STOREFRONT_ADAPTER", "mock").strip().lower()

    if mode == "mock":
        return MockStorefrontBackend()

    if mode == "http":
        from services.api.app.services.storefront_http import HttpStorefrontBackend

        return HttpStorefrontBackend.from_env(auth)

    raise ValueError(f"Unknown FOODHUB_STOREFRONT_ADAPTER={mode!r}. Expected mock or http.")
