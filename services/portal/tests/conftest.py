from __future__ import annotations

import asyncio
from typing import Any

import pytest
from packages.shared.schemas.cart_v1 import RoleV1
from services.portal.app.services.cart_mock import MockCartService
from services.portal.app.services.cart_ops import CartOperations
from services.portal.app.services.cart_store import CartStore
from services.portal.app.services.checkout import CheckoutOrchestrator
from services.portal.app.services.session import Actor, SessionContext


class RecordingCartService:
    """Wraps the mock service, records every remote call and can inject failures or stalls."""

    name = "RECORDING"

    def __init__(self, inner: MockCartService | None = None) -> None:
        self.inner = inner or MockCartService()
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.failures: dict[str, list[Exception]] = {}
        self.holds: dict[str, asyncio.Event] = {}

    def fail_next(self, method: str, exc: Exception) -> None:
        self.failures.setdefault(method, []).append(exc)

    def count(self, method: str) -> int:
        return sum(1 for name, _ in self.calls if name == method)

    def methods(self) -> list[str]:
        return [name for name, _ in self.calls]

    def reset_calls(self) -> None:
        self.calls.clear()

    async def _call(self, method: str, *args: Any) -> Any:
        self.calls.append((method, args))
        hold = self.holds.get(method)
        if len(args) > 1:
            hold = self.holds.get(f"{method}:{args[1]}", hold)
        if hold is not None:
            await hold.wait()
        queued = self.failures.get(method)
        if queued:
            raise queued.pop(0)
        return await getattr(self.inner, method)(*args)

    async def get_cart(self, token: str) -> Any:
        return await self._call("get_cart", token)

    async def add_item(self, token: str, product_id: str, quantity: int) -> None:
        await self._call("add_item", token, product_id, quantity)

    async def update_item(self, token: str, line_id: str, quantity: int) -> None:
        await self._call("update_item", token, line_id, quantity)

    async def remove_item(self, token: str, line_id: str) -> None:
        await self._call("remove_item", token, line_id)

    async def clear_cart(self, token: str) -> None:
        await self._call("clear_cart", token)

    async def checkout(self, token: str) -> Any:
        return await self._call("checkout", token)


@pytest.fixture()
def service() -> RecordingCartService:
    return RecordingCartService()


@pytest.fixture()
def customer() -> SessionContext:
    return SessionContext(token="tok-customer", actor=Actor(id="u-1", role=RoleV1.CUSTOMER))


@pytest.fixture()
def admin() -> SessionContext:
    return SessionContext(token="tok-admin", actor=Actor(id="a-1", role="ADMIN"))


@pytest.fixture()
def operations(service: RecordingCartService) -> CartOperations:
    return CartOperations(CartStore(), service, timeout_seconds=1.0)


@pytest.fixture()
def orchestrator(operations: CartOperations) -> CheckoutOrchestrator:
    return CheckoutOrchestrator(operations)
