"""Checkout orchestration: turns the server-held cart into an order.

Flow:
    Idle -> Validating -> Syncing -> Submitting -> Cleared
    any in-flight step -> Failed

Validating rejects ineligible actors and empty carts before any remote call. Syncing
repairs drift when the server cart is empty but the local snapshot is not, by pushing
each local line back. Submitting calls the remote checkout, which has no compensating
action: a failure there is surfaced for manual retry and the snapshot is left as is.
A cancelled checkout (dropped request, shutdown) also ends in Failed before the
cancellation propagates.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from uuid import uuid4

import structlog
from packages.shared.schemas.cart_v1 import OrderSummaryV1
from packages.shared.schemas.events import EntityTypeV1, EventTypeV1
from services.portal.app.services.cart_base import CartError, CartErrorKind
from services.portal.app.services.cart_ops import CartOperations, classify_error
from services.portal.app.services.cart_store import (
    CartCleared,
    CartItem,
    CartSnapshot,
    OperationKind,
    PendingOperation,
)
from services.portal.app.services.eligibility import gate_error
from services.portal.app.services.session import SessionContext

logger = structlog.get_logger(__name__)

EMPTY_CART_MESSAGE = "cart is empty"
CHECKOUT_IN_PROGRESS_MESSAGE = "a checkout is already in progress"


class CheckoutState(str, Enum):
    IDLE = "Idle"
    VALIDATING = "Validating"
    SYNCING = "Syncing"
    SUBMITTING = "Submitting"
    CLEARED = "Cleared"
    FAILED = "Failed"


_TRANSITIONS: dict[CheckoutState, frozenset[CheckoutState]] = {
    CheckoutState.IDLE: frozenset({CheckoutState.VALIDATING}),
    CheckoutState.VALIDATING: frozenset({CheckoutState.SYNCING, CheckoutState.FAILED}),
    CheckoutState.SYNCING: frozenset({CheckoutState.SUBMITTING, CheckoutState.FAILED}),
    CheckoutState.SUBMITTING: frozenset({CheckoutState.CLEARED, CheckoutState.FAILED}),
    CheckoutState.CLEARED: frozenset({CheckoutState.VALIDATING}),
    CheckoutState.FAILED: frozenset({CheckoutState.VALIDATING}),
}

IN_FLIGHT_STATES = frozenset(
    {CheckoutState.VALIDATING, CheckoutState.SYNCING, CheckoutState.SUBMITTING}
)


class IllegalCheckoutTransition(RuntimeError):
    def __init__(self, current: CheckoutState, target: CheckoutState) -> None:
        super().__init__(f"Illegal checkout transition {current.value} -> {target.value}")
        self.current = current
        self.target = target


@dataclass(frozen=True, slots=True)
class CheckoutOutcome:
    snapshot: CartSnapshot
    state: CheckoutState
    error: CartError | None = None
    order: OrderSummaryV1 | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class CheckoutOrchestrator:
    """Single-flight checkout for one actor's cart."""

    def __init__(self, operations: CartOperations) -> None:
        self._ops = operations
        self._state = CheckoutState.IDLE

    @property
    def state(self) -> CheckoutState:
        return self._state

    @property
    def in_flight(self) -> bool:
        return self._state in IN_FLIGHT_STATES

    async def checkout(self, session: SessionContext) -> CheckoutOutcome:
        if self.in_flight:
            logger.info("Checkout rejected; another is in flight", state=self._state.value)
            return CheckoutOutcome(
                self._ops.store.snapshot,
                self._state,
                CartError(CartErrorKind.CHECKOUT_IN_PROGRESS, CHECKOUT_IN_PROGRESS_MESSAGE),
            )

        self._advance(CheckoutState.VALIDATING)

        rejected = gate_error(session, self._ops.policy)
        if rejected is not None:
            return self._fail(rejected)

        store = self._ops.store
        local_items = store.snapshot.items
        if not local_items:
            return self._fail(CartError(CartErrorKind.EMPTY_CART, EMPTY_CART_MESSAGE))

        operation = store.begin(OperationKind.CHECKOUT)
        checkout_id = uuid4().hex
        self._ops.record(
            session,
            EntityTypeV1.CHECKOUT,
            checkout_id,
            EventTypeV1.CHECKOUT_STARTED,
            {
                "line_count": len(local_items),
                "total_price": str(store.snapshot.total_price),
            },
        )

        try:
            return await self._run(session, operation, checkout_id, local_items)
        except asyncio.CancelledError:
            interrupted = self._state
            logger.warning("Checkout cancelled", state=interrupted.value)
            store.finish(operation)
            if self.in_flight:
                self._advance(CheckoutState.FAILED)
            self._ops.record(
                session,
                EntityTypeV1.CHECKOUT,
                checkout_id,
                EventTypeV1.CHECKOUT_FAILED,
                {
                    "cancelled": True,
                    "state": interrupted.value,
                    "outcome_unknown": interrupted is CheckoutState.SUBMITTING,
                },
            )
            raise

    async def _run(
        self,
        session: SessionContext,
        operation: PendingOperation,
        checkout_id: str,
        local_items: tuple[CartItem, ...],
    ) -> CheckoutOutcome:
        store = self._ops.store
        token = session.token or ""

        self._advance(CheckoutState.SYNCING)
        await self._sync(session, local_items)

        self._advance(CheckoutState.SUBMITTING)
        try:
            order = await self._ops.call_remote(self._ops.service.checkout(token))
        except Exception as e:
            error = classify_error(e)
            logger.warning(
                "Checkout submit failed",
                actor_id=session.actor.id if session.actor else None,
                kind=error.kind.value,
                message=error.message,
            )
            self._ops.record(
                session,
                EntityTypeV1.CHECKOUT,
                checkout_id,
                EventTypeV1.CHECKOUT_FAILED,
                {
                    "kind": error.kind.value,
                    "message": error.message,
                    # The server may have committed before the response was lost.
                    "outcome_unknown": error.kind == CartErrorKind.REMOTE_UNAVAILABLE,
                },
            )
            store.finish(operation, error)
            return self._fail(error)

        store.dispatch(CartCleared())
        snapshot = store.finish(operation)
        self._advance(CheckoutState.CLEARED)

        logger.info(
            "Checkout completed",
            actor_id=session.actor.id if session.actor else None,
            order_id=order.id,
            total=str(order.total),
        )
        self._ops.record(
            session,
            EntityTypeV1.CHECKOUT,
            checkout_id,
            EventTypeV1.CHECKOUT_DONE,
            {"order_id": order.id, "total": str(order.total), "status": order.status},
        )
        return CheckoutOutcome(snapshot, self._state, order=order)

    async def _sync(self, session: SessionContext, local_items: tuple[CartItem, ...]) -> None:
        token = session.token or ""
        try:
            remote = await self._ops.call_remote(self._ops.service.get_cart(token))
        except Exception as e:
            logger.warning("Checkout pre-flight fetch failed; submitting anyway", error=str(e))
            return

        if remote.items:
            return

        logger.info(
            "Remote cart empty while local cart is not; pushing local lines",
            line_count=len(local_items),
        )
        pushed: list[str] = []
        for item in local_items:
            try:
                await self._ops.call_remote(
                    self._ops.service.add_item(token, item.product_id, item.quantity)
                )
            except Exception as e:
                logger.warning(
                    "Failed to push local line", product_id=item.product_id, error=str(e)
                )
                continue
            pushed.append(item.product_id)

        self._ops.record(
            session,
            EntityTypeV1.CART,
            "drift",
            EventTypeV1.CART_DRIFT_REPAIRED,
            {"pushed": pushed, "local_line_count": len(local_items)},
        )

    def _fail(self, error: CartError) -> CheckoutOutcome:
        self._advance(CheckoutState.FAILED)
        return CheckoutOutcome(self._ops.store.snapshot, self._state, error)

    def _advance(self, target: CheckoutState) -> None:
        if target not in _TRANSITIONS[self._state]:
            raise IllegalCheckoutTransition(self._state, target)
        self._state = target
