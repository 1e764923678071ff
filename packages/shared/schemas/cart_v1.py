"""Shared cart schema (v1).

These models describe the remote cart service contract. They are shared between the
portal service and clients and should remain backwards compatible once shipped.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field


class RoleV1(str, Enum):
    CUSTOMER = "customer"
    VENDOR = "vendor"
    ADMIN = "admin"

    @classmethod
    def parse(cls, value: str) -> RoleV1:
        normalized = value.strip().lower()
        for role in cls:
            if role.value == normalized:
                return role
        raise ValueError(f"Unknown role {value!r}. Expected customer, vendor or admin.")


class CartLineV1(BaseModel):
    """One cart line as the remote service reports it.

    `id` is the server-assigned line id, never the product id.
    """

    id: str
    product_id: str
    product_name: str
    product_price: Decimal = Field(..., ge=0)
    quantity: int
    subtotal: Decimal | None = None
    image_url: str | None = None


class CartV1(BaseModel):
    items: list[CartLineV1] = Field(default_factory=list)
    total: Decimal = Decimal("0")


class AddToCartV1(BaseModel):
    product_id: str
    quantity: int = Field(..., ge=1)


class UpdateCartItemV1(BaseModel):
    quantity: int


class OrderItemV1(BaseModel):
    id: str
    product_id: str
    quantity: int
    price: Decimal


class OrderSummaryV1(BaseModel):
    id: str
    user_id: str
    total: Decimal
    status: str
    items: list[OrderItemV1] = Field(default_factory=list)
    created_at: str | None = None
