import pytest
from packages.shared.schemas.cart_v1 import RoleV1
from services.portal.app.services.cart_base import CartErrorKind
from services.portal.app.services.eligibility import (
    ADMIN_REJECTED_MESSAGE,
    VENDOR_REJECTED_MESSAGE,
    CartPolicy,
    can_use_cart,
    gate_error,
)
from services.portal.app.services.session import Actor, SessionContext


def test_no_actor_cannot_use_cart() -> None:
    assert can_use_cart(None) is False


@pytest.mark.parametrize("role", [RoleV1.ADMIN, "admin", "ADMIN", " Admin "])
def test_admin_never_uses_cart(role: object) -> None:
    actor = Actor(id="a-1", role=role)
    assert can_use_cart(actor) is False
    assert can_use_cart(actor, CartPolicy(allow_vendor=True)) is False


@pytest.mark.parametrize("role", [RoleV1.CUSTOMER, "customer", "Customer"])
def test_customer_uses_cart(role: object) -> None:
    assert can_use_cart(Actor(id="u-1", role=role)) is True


def test_vendor_follows_policy() -> None:
    vendor = Actor(id="v-1", role=RoleV1.VENDOR)
    assert can_use_cart(vendor) is True
    assert can_use_cart(vendor, CartPolicy(allow_vendor=False)) is False


def test_unknown_role_is_rejected() -> None:
    assert can_use_cart(Actor(id="x-1", role="auditor")) is False


def test_gate_error_unauthenticated_without_token() -> None:
    session = SessionContext(token=None, actor=Actor(id="u-1", role=RoleV1.CUSTOMER))
    error = gate_error(session)
    assert error is not None
    assert error.kind == CartErrorKind.UNAUTHENTICATED


def test_gate_error_messages() -> None:
    admin = SessionContext(token="t", actor=Actor(id="a-1", role="admin"))
    vendor = SessionContext(token="t", actor=Actor(id="v-1", role="vendor"))

    admin_error = gate_error(admin)
    assert admin_error is not None
    assert admin_error.kind == CartErrorKind.FORBIDDEN
    assert admin_error.message == ADMIN_REJECTED_MESSAGE

    assert gate_error(vendor) is None
    vendor_error = gate_error(vendor, CartPolicy(allow_vendor=False))
    assert vendor_error is not None
    assert vendor_error.message == VENDOR_REJECTED_MESSAGE


def test_policy_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("PORTAL_CART_ALLOW_VENDOR", raising=False)
    assert CartPolicy.from_env().allow_vendor is True

    monkeypatch.setenv("PORTAL_CART_ALLOW_VENDOR", "false")
    assert CartPolicy.from_env().allow_vendor is False


def test_role_parse_is_case_insensitive() -> None:
    assert RoleV1.parse("VENDOR") is RoleV1.VENDOR
    with pytest.raises(ValueError, match="Unknown role"):
        RoleV1.parse("root")
