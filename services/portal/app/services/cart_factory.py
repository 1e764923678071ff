from __future__ import annotations

import os

from services.portal.app.services.cart_base import RemoteCartService
from services.portal.app.services.cart_mock import MockCartService


def get_cart_service() -> RemoteCartService:
    """Select the remote cart service based on env vars.

    Defaults to the in-memory mock so tests and local dev are deterministic unless
    explicitly configured otherwise.
    """

    mode = os.getenv("PORTAL_CART_SERVICE", "mock").strip().lower()

    if mode == "mock":
        return MockCartService()

    if mode == "http":
        from services.portal.app.services.cart_http import HttpCartService

        return HttpCartService.from_env()

    raise ValueError(f"Unknown PORTAL_CART_SERVICE={mode!r}. Expected mock or http.")


def cart_timeout_seconds() -> float:
    return float(os.getenv("PORTAL_CART_TIMEOUT_SECONDS", "10"))
