from __future__ import annotations

import asyncio
from decimal import Decimal

import pytest
from services.portal.app.services.cart_base import (
    RemoteRejectedError,
    RemoteUnauthenticatedError,
    StaleReferenceError,
)
from services.portal.app.services.cart_mock import CatalogProduct, MockCartService


def test_adding_same_product_merges_into_one_line() -> None:
    service = MockCartService()

    async def scenario():
        await service.add_item("tok", "P1", 1)
        await service.add_item("tok", "P1", 2)
        return await service.get_cart("tok")

    cart = asyncio.run(scenario())

    assert len(cart.items) == 1
    assert cart.items[0].quantity == 3
    assert cart.total == Decimal("30.00")


def test_carts_are_isolated_per_token() -> None:
    service = MockCartService()

    async def scenario():
        await service.add_item("tok-a", "P1", 1)
        return await service.get_cart("tok-b")

    assert asyncio.run(scenario()).items == []


def test_unknown_product_and_line_are_stale() -> None:
    service = MockCartService()

    with pytest.raises(StaleReferenceError, match="product not found"):
        asyncio.run(service.add_item("tok", "NOPE", 1))

    with pytest.raises(StaleReferenceError, match="item not in cart"):
        asyncio.run(service.remove_item("tok", "line_x"))


def test_update_to_zero_removes_line() -> None:
    service = MockCartService()

    async def scenario():
        await service.add_item("tok", "P2", 2)
        line_id = (await service.get_cart("tok")).items[0].id
        await service.update_item("tok", line_id, 0)
        return await service.get_cart("tok")

    assert asyncio.run(scenario()).items == []


def test_checkout_converts_cart_and_decrements_stock() -> None:
    catalog = {"P1": CatalogProduct(name="Towels", price=Decimal("4.00"), stock=3)}
    service = MockCartService(catalog)

    async def scenario():
        await service.add_item("tok", "P1", 2)
        order = await service.checkout("tok")
        return order, await service.get_cart("tok")

    order, cart = asyncio.run(scenario())

    assert order.total == Decimal("8.00")
    assert order.status == "pending"
    assert cart.items == []
    assert catalog["P1"].stock == 1
    assert service.orders == [order]


def test_checkout_rejects_empty_and_understocked_carts() -> None:
    catalog = {"P1": CatalogProduct(name="Towels", price=Decimal("4.00"), stock=1)}
    service = MockCartService(catalog)

    with pytest.raises(RemoteRejectedError, match="empty"):
        asyncio.run(service.checkout("tok"))

    asyncio.run(service.add_item("tok", "P1", 2))
    with pytest.raises(RemoteRejectedError, match="out of stock"):
        asyncio.run(service.checkout("tok"))


def test_missing_token_is_unauthenticated() -> None:
    with pytest.raises(RemoteUnauthenticatedError):
        asyncio.run(MockCartService().get_cart(""))
