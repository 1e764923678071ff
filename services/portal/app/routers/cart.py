from __future__ import annotations

from typing import NoReturn

from fastapi import APIRouter, Depends, Header, HTTPException
from services.portal.app.models.cart import (
    AddItemRequest,
    CartSnapshotOut,
    CheckoutResponse,
    UpdateQuantityRequest,
)
from services.portal.app.services.cart_base import CartError, CartErrorKind
from services.portal.app.services.cart_ops import CartOutcome
from services.portal.app.services.cart_sessions import CartSessionRegistry, get_cart_registry
from services.portal.app.services.session import Actor, SessionContext

router = APIRouter()

_STATUS_BY_KIND: dict[CartErrorKind, int] = {
    CartErrorKind.UNAUTHENTICATED: 401,
    CartErrorKind.FORBIDDEN: 403,
    CartErrorKind.INVALID_QUANTITY: 422,
    CartErrorKind.EMPTY_CART: 409,
    CartErrorKind.STALE_REFERENCE: 409,
    CartErrorKind.CHECKOUT_IN_PROGRESS: 409,
    CartErrorKind.REMOTE_UNAVAILABLE: 503,
    CartErrorKind.UNCLASSIFIED: 502,
}


def get_session_context(
    authorization: str | None = Header(default=None),
    x_actor_id: str | None = Header(default=None),
    x_actor_role: str | None = Header(default=None),
) -> SessionContext:
    """Build the caller's session from headers set by the authentication gateway."""

    token = None
    if authorization:
        scheme, _, value = authorization.partition(" ")
        if scheme.lower() == "bearer" and value.strip():
            token = value.strip()

    actor = None
    if x_actor_id and x_actor_role:
        actor = Actor(id=x_actor_id, role=x_actor_role)

    return SessionContext(token=token, actor=actor)


def _raise_cart_http_error(error: CartError) -> NoReturn:
    status = _STATUS_BY_KIND.get(error.kind, 500)
    raise HTTPException(status_code=status, detail={"kind": error.kind.value, "message": error.message})


def _settle(outcome: CartOutcome) -> CartSnapshotOut:
    if outcome.error is not None:
        _raise_cart_http_error(outcome.error)
    return CartSnapshotOut.from_snapshot(outcome.snapshot)


@router.get("/v1/cart", response_model=CartSnapshotOut)
async def fetch_cart(
    ctx: SessionContext = Depends(get_session_context),
    registry: CartSessionRegistry = Depends(get_cart_registry),
) -> CartSnapshotOut:
    session = registry.session_for(ctx)
    return _settle(await session.operations.fetch_cart(ctx))


@router.get("/v1/cart/snapshot", response_model=CartSnapshotOut)
def read_snapshot(
    ctx: SessionContext = Depends(get_session_context),
    registry: CartSessionRegistry = Depends(get_cart_registry),
) -> CartSnapshotOut:
    if ctx.actor is None:
        raise HTTPException(status_code=401, detail={"kind": "Unauthenticated", "message": "not signed in"})

    return CartSnapshotOut.from_snapshot(registry.session_for(ctx).store.snapshot)


@router.post("/v1/cart/items", response_model=CartSnapshotOut)
async def add_item(
    payload: AddItemRequest,
    ctx: SessionContext = Depends(get_session_context),
    registry: CartSessionRegistry = Depends(get_cart_registry),
) -> CartSnapshotOut:
    session = registry.session_for(ctx)
    return _settle(await session.operations.add_item(ctx, payload.product_id, payload.quantity))


@router.put("/v1/cart/items/{line_id}", response_model=CartSnapshotOut)
async def update_quantity(
    line_id: str,
    payload: UpdateQuantityRequest,
    ctx: SessionContext = Depends(get_session_context),
    registry: CartSessionRegistry = Depends(get_cart_registry),
) -> CartSnapshotOut:
    session = registry.session_for(ctx)
    return _settle(await session.operations.update_quantity(ctx, line_id, payload.quantity))


@router.delete("/v1/cart/items/{line_id}", response_model=CartSnapshotOut)
async def remove_item(
    line_id: str,
    ctx: SessionContext = Depends(get_session_context),
    registry: CartSessionRegistry = Depends(get_cart_registry),
) -> CartSnapshotOut:
    session = registry.session_for(ctx)
    return _settle(await session.operations.remove_item(ctx, line_id))


@router.post("/v1/cart/checkout", response_model=CheckoutResponse)
async def checkout(
    ctx: SessionContext = Depends(get_session_context),
    registry: CartSessionRegistry = Depends(get_cart_registry),
) -> CheckoutResponse:
    session = registry.session_for(ctx)
    outcome = await session.checkout.checkout(ctx)
    if outcome.error is not None:
        _raise_cart_http_error(outcome.error)

    assert outcome.order is not None
    return CheckoutResponse(
        state=outcome.state.value,
        order=outcome.order,
        cart=CartSnapshotOut.from_snapshot(outcome.snapshot),
    )


@router.delete("/v1/cart/session")
def end_session(
    ctx: SessionContext = Depends(get_session_context),
    registry: CartSessionRegistry = Depends(get_cart_registry),
) -> dict:
    if ctx.actor is None:
        raise HTTPException(status_code=401, detail={"kind": "Unauthenticated", "message": "not signed in"})
    return {"ended": registry.end_session(ctx.actor.id)}
