from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

from packages.shared.schemas.cart_v1 import CartLineV1, CartV1, OrderItemV1, OrderSummaryV1
from services.portal.app.services.cart_base import (
    RemoteRejectedError,
    RemoteUnauthenticatedError,
    StaleReferenceError,
)


@dataclass
class CatalogProduct:
    name: str
    price: Decimal
    stock: int
    image_url: str | None = None


@dataclass
class _Line:
    id: str
    product_id: str
    quantity: int


def default_catalog() -> dict[str, CatalogProduct]:
    return {
        "P1": CatalogProduct(name="Paper towels", price=Decimal("10.00"), stock=100),
        "P2": CatalogProduct(name="Detergent", price=Decimal("15.00"), stock=100),
        "P3": CatalogProduct(name="Pet food", price=Decimal("25.00"), stock=5),
    }


class MockCartService:
    """In-memory cart service with the same semantics as the portal backend.

    Carts are keyed by bearer token. Adding a product that is already in the cart
    merges into its existing line.
    """

    name = "MOCK_CART"

    def __init__(self, catalog: dict[str, CatalogProduct] | None = None) -> None:
        self._catalog = catalog if catalog is not None else default_catalog()
        self._carts: dict[str, list[_Line]] = {}
        self.orders: list[OrderSummaryV1] = []

    async def get_cart(self, token: str) -> CartV1:
        lines = self._cart(token)

        items: list[CartLineV1] = []
        total = Decimal("0")
        for line in lines:
            product = self._catalog.get(line.product_id)
            if product is None:
                continue
            subtotal = product.price * line.quantity
            total += subtotal
            items.append(
                CartLineV1(
                    id=line.id,
                    product_id=line.product_id,
                    product_name=product.name,
                    product_price=product.price,
                    quantity=line.quantity,
                    subtotal=subtotal,
                    image_url=product.image_url,
                )
            )

        return CartV1(items=items, total=total)

    async def add_item(self, token: str, product_id: str, quantity: int) -> None:
        lines = self._cart(token)
        if product_id not in self._catalog:
            raise StaleReferenceError("product not found", reference=product_id)

        existing = next((line for line in lines if line.product_id == product_id), None)
        if existing is None:
            if quantity <= 0:
                raise RemoteRejectedError("quantity must be greater than 0", status_code=400)
            lines.append(_Line(id=f"line_{uuid4().hex[:12]}", product_id=product_id, quantity=quantity))
            return

        existing.quantity += quantity
        if existing.quantity <= 0:
            lines.remove(existing)

    async def update_item(self, token: str, line_id: str, quantity: int) -> None:
        lines = self._cart(token)
        line = self._find_line(lines, line_id)
        if quantity <= 0:
            lines.remove(line)
            return
        line.quantity = quantity

    async def remove_item(self, token: str, line_id: str) -> None:
        lines = self._cart(token)
        lines.remove(self._find_line(lines, line_id))

    async def clear_cart(self, token: str) -> None:
        self._cart(token).clear()

    async def checkout(self, token: str) -> OrderSummaryV1:
        lines = self._cart(token)
        if not lines:
            raise RemoteRejectedError("cart is empty, cannot check out", status_code=400)

        unavailable = [
            line.product_id
            for line in lines
            if line.product_id not in self._catalog
            or self._catalog[line.product_id].stock < line.quantity
        ]
        if unavailable:
            raise RemoteRejectedError(
                "some products are out of stock or unavailable: " + ", ".join(unavailable),
                status_code=400,
            )

        order_id = f"ord_{uuid4().hex[:10]}"
        order_items: list[OrderItemV1] = []
        total = Decimal("0")
        for line in lines:
            product = self._catalog[line.product_id]
            total += product.price * line.quantity
            product.stock -= line.quantity
            order_items.append(
                OrderItemV1(
                    id=uuid4().hex,
                    product_id=line.product_id,
                    quantity=line.quantity,
                    price=product.price,
                )
            )
        lines.clear()

        order = OrderSummaryV1(
            id=order_id,
            user_id=token,
            total=total,
            status="pending",
            items=order_items,
            created_at=datetime.now(timezone.utc).isoformat(),
        )
        self.orders.append(order)
        return order

    def _cart(self, token: str) -> list[_Line]:
        if not token:
            raise RemoteUnauthenticatedError()
        return self._carts.setdefault(token, [])

    @staticmethod
    def _find_line(lines: list[_Line], line_id: str) -> _Line:
        for line in lines:
            if line.id == line_id:
                return line
        raise StaleReferenceError(reference=line_id)
