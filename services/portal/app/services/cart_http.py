from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any

import httpx
import structlog
from packages.shared.schemas.cart_v1 import AddToCartV1, CartV1, OrderSummaryV1, UpdateCartItemV1
from services.portal.app.services.cart_base import (
    STALE_REFERENCE_MESSAGE,
    CartServiceError,
    RemoteForbiddenError,
    RemoteRejectedError,
    RemoteUnauthenticatedError,
    RemoteUnavailableError,
    StaleReferenceError,
)

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class _HttpConfig:
    base_url: str
    timeout_seconds: float


class HttpCartService:
    """Remote cart service reached over JSON/HTTPS with a bearer token.

    Env vars:
    - PORTAL_CART_SERVICE=http
    - PORTAL_CART_BASE_URL (default: http://127.0.0.1:8080/api)
    - PORTAL_CART_TIMEOUT_SECONDS (default: 10)
    """

    name = "HTTP_CART"

    def __init__(self, cfg: _HttpConfig, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._cfg = cfg
        self._transport = transport

    @classmethod
    def from_env(cls, transport: httpx.AsyncBaseTransport | None = None) -> HttpCartService:
        base_url = os.getenv("PORTAL_CART_BASE_URL", "http://127.0.0.1:8080/api").rstrip("/")
        timeout_seconds = float(os.getenv("PORTAL_CART_TIMEOUT_SECONDS", "10"))
        return cls(_HttpConfig(base_url=base_url, timeout_seconds=timeout_seconds), transport)

    async def get_cart(self, token: str) -> CartV1:
        body = await self._request("GET", "cart", token)
        if not body:
            return CartV1()
        return CartV1.model_validate(body)

    async def add_item(self, token: str, product_id: str, quantity: int) -> None:
        payload = AddToCartV1(product_id=product_id, quantity=quantity)
        await self._request(
            "POST",
            "cart/add",
            token,
            json=payload.model_dump(),
            reference=product_id,
            stale_message="product not found",
        )

    async def update_item(self, token: str, line_id: str, quantity: int) -> None:
        payload = UpdateCartItemV1(quantity=quantity)
        await self._request(
            "PUT", f"cart/{line_id}", token, json=payload.model_dump(), reference=line_id
        )

    async def remove_item(self, token: str, line_id: str) -> None:
        await self._request("DELETE", f"cart/{line_id}", token, reference=line_id)

    async def clear_cart(self, token: str) -> None:
        await self._request("DELETE", "cart", token)

    async def checkout(self, token: str) -> OrderSummaryV1:
        body = await self._request("POST", "cart/checkout", token)
        order = body.get("order", body) if isinstance(body, dict) else body
        return OrderSummaryV1.model_validate(order)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._cfg.base_url,
            timeout=self._cfg.timeout_seconds,
            headers={"Content-Type": "application/json"},
            transport=self._transport,
        )

    async def _request(
        self,
        method: str,
        path: str,
        token: str,
        *,
        json: dict[str, Any] | None = None,
        reference: str = "",
        stale_message: str = STALE_REFERENCE_MESSAGE,
    ) -> Any:
        if not token:
            raise RemoteUnauthenticatedError()

        try:
            async with self._client() as client:
                response = await client.request(
                    method,
                    path,
                    json=json,
                    headers={"Authorization": f"Bearer {token}"},
                )
        except httpx.TimeoutException as e:
            raise RemoteUnavailableError("cart service timed out, please retry") from e
        except httpx.HTTPError as e:
            raise RemoteUnavailableError(f"cart service unreachable: {e}") from e

        if response.status_code >= 400:
            raise _error_for(response, reference=reference, stale_message=stale_message)

        if not response.content:
            return {}
        return response.json()


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"cart service returned {response.status_code}"

    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return f"cart service returned {response.status_code}"


def _error_for(response: httpx.Response, *, reference: str, stale_message: str) -> CartServiceError:
    status = response.status_code
    message = _error_message(response)
    logger.warning("Cart service request failed", status_code=status, message=message)

    if status == 401:
        return RemoteUnauthenticatedError()

    if status == 403:
        return RemoteForbiddenError(message)

    if status == 404:
        return StaleReferenceError(stale_message, reference=reference)

    if status >= 500:
        return RemoteUnavailableError()

    return RemoteRejectedError(message, status_code=status)
