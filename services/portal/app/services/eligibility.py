from __future__ import annotations

import os
from dataclasses import dataclass

from packages.shared.schemas.cart_v1 import RoleV1
from services.portal.app.services.cart_base import CartError, CartErrorKind
from services.portal.app.services.session import Actor, SessionContext

ADMIN_REJECTED_MESSAGE = "administrators cannot use the cart"
VENDOR_REJECTED_MESSAGE = "vendors cannot use the cart"
UNAUTHENTICATED_MESSAGE = "not signed in"


@dataclass(frozen=True, slots=True)
class CartPolicy:
    """Which roles besides customers may hold a cart.

    Administrators are always excluded. Vendors are allowed unless the deployment
    turns them off with PORTAL_CART_ALLOW_VENDOR=false.
    """

    allow_vendor: bool = True

    @classmethod
    def from_env(cls) -> CartPolicy:
        return cls(allow_vendor=_parse_bool(os.getenv("PORTAL_CART_ALLOW_VENDOR", "true")))


DEFAULT_POLICY = CartPolicy()


def _role_value(role: RoleV1 | str) -> str:
    if isinstance(role, RoleV1):
        return role.value
    return str(role).strip().lower()


def can_use_cart(actor: Actor | None, policy: CartPolicy | None = None) -> bool:
    if actor is None:
        return False

    policy = policy or DEFAULT_POLICY
    role = _role_value(actor.role)

    if role == RoleV1.ADMIN.value:
        return False

    if role == RoleV1.VENDOR.value:
        return policy.allow_vendor

    return role == RoleV1.CUSTOMER.value


def gate_error(session: SessionContext, policy: CartPolicy | None = None) -> CartError | None:
    """Return the rejection for this session, or None when cart use is permitted."""

    if not session.is_authenticated:
        return CartError(CartErrorKind.UNAUTHENTICATED, UNAUTHENTICATED_MESSAGE)

    if can_use_cart(session.actor, policy):
        return None

    assert session.actor is not None
    role = _role_value(session.actor.role)
    if role == RoleV1.ADMIN.value:
        return CartError(CartErrorKind.FORBIDDEN, ADMIN_REJECTED_MESSAGE)
    if role == RoleV1.VENDOR.value:
        return CartError(CartErrorKind.FORBIDDEN, VENDOR_REJECTED_MESSAGE)
    return CartError(CartErrorKind.FORBIDDEN, f"role {role!r} cannot use the cart")


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}
