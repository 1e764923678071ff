from __future__ import annotations

from decimal import Decimal

from packages.shared.schemas.cart_v1 import OrderSummaryV1
from pydantic import BaseModel, Field
from services.portal.app.services.cart_store import CartItem, CartSnapshot


class AddItemRequest(BaseModel):
    product_id: str = Field(..., min_length=1)
    quantity: int = 1


class UpdateQuantityRequest(BaseModel):
    quantity: int


class CartErrorOut(BaseModel):
    kind: str
    message: str


class CartItemOut(BaseModel):
    line_id: str
    product_id: str
    display_name: str
    unit_price: Decimal
    quantity: int
    image_url: str | None = None

    @classmethod
    def from_item(cls, item: CartItem) -> CartItemOut:
        return cls(
            line_id=item.line_id,
            product_id=item.product_id,
            display_name=item.display_name,
            unit_price=item.unit_price,
            quantity=item.quantity,
            image_url=item.image_url,
        )


class CartSnapshotOut(BaseModel):
    items: list[CartItemOut]
    total_item_count: int
    total_price: Decimal
    is_loading: bool
    last_error: CartErrorOut | None = None

    @classmethod
    def from_snapshot(cls, snapshot: CartSnapshot) -> CartSnapshotOut:
        last_error = None
        if snapshot.last_error is not None:
            last_error = CartErrorOut(
                kind=snapshot.last_error.kind.value, message=snapshot.last_error.message
            )
        return cls(
            items=[CartItemOut.from_item(item) for item in snapshot.items],
            total_item_count=snapshot.total_item_count,
            total_price=snapshot.total_price,
            is_loading=snapshot.is_loading,
            last_error=last_error,
        )


class CheckoutResponse(BaseModel):
    state: str
    order: OrderSummaryV1
    cart: CartSnapshotOut
