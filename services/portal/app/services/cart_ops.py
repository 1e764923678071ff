from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

import structlog
from packages.shared.schemas.events import EntityTypeV1, EventTypeV1
from services.portal.app.services.cart_base import (
    CartError,
    CartErrorKind,
    CartServiceError,
    RemoteCartService,
    RemoteUnavailableError,
)
from services.portal.app.services.cart_events import CartEventRecorder, NullEventRecorder
from services.portal.app.services.cart_store import (
    CartItem,
    CartLoaded,
    CartLoadFailed,
    CartSnapshot,
    CartStore,
    OperationKind,
    clamp_quantity,
)
from services.portal.app.services.eligibility import CartPolicy, gate_error
from services.portal.app.services.session import SessionContext

logger = structlog.get_logger(__name__)

T = TypeVar("T")

DEFAULT_TIMEOUT_SECONDS = 10.0


@dataclass(frozen=True, slots=True)
class CartOutcome:
    snapshot: CartSnapshot
    error: CartError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def classify_error(exc: Exception) -> CartError:
    if isinstance(exc, CartServiceError):
        return exc.to_error()
    return CartError(CartErrorKind.UNCLASSIFIED, str(exc) or exc.__class__.__name__)


class CartOperations:
    """The only mutation surface of a cart store.

    Every operation checks the eligibility gate before touching the remote service,
    and every add/update/remove settles with an authoritative fetch, on success and
    on failure alike. Operations resolve to a CartOutcome and never raise.
    """

    def __init__(
        self,
        store: CartStore,
        service: RemoteCartService,
        *,
        policy: CartPolicy | None = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        recorder: CartEventRecorder | None = None,
    ) -> None:
        self.store = store
        self.service = service
        self.policy = policy or CartPolicy()
        self._timeout_seconds = timeout_seconds
        self._recorder = recorder or NullEventRecorder()

    async def fetch_cart(self, session: SessionContext) -> CartOutcome:
        rejected = gate_error(session, self.policy)
        if rejected is not None:
            return self._rejected(session, OperationKind.FETCH, rejected)
        return await self._fetch(session)

    async def add_item(self, session: SessionContext, product_id: str, quantity: int) -> CartOutcome:
        rejected = gate_error(session, self.policy)
        if rejected is not None:
            return self._rejected(session, OperationKind.ADD, rejected)

        if quantity < 1:
            return self._invalid_quantity(quantity)

        quantity = clamp_quantity(quantity)
        return await self._mutate(
            session,
            OperationKind.ADD,
            product_id,
            lambda: self.service.add_item(session.token or "", product_id, quantity),
            EventTypeV1.CART_ITEM_ADDED,
            {"product_id": product_id, "quantity": quantity},
        )

    async def update_quantity(
        self, session: SessionContext, line_id: str, quantity: int
    ) -> CartOutcome:
        rejected = gate_error(session, self.policy)
        if rejected is not None:
            return self._rejected(session, OperationKind.UPDATE_QUANTITY, rejected)

        if quantity < 1:
            return self._invalid_quantity(quantity)

        quantity = clamp_quantity(quantity)
        self._check_local_line(session, line_id)
        return await self._mutate(
            session,
            OperationKind.UPDATE_QUANTITY,
            line_id,
            lambda: self.service.update_item(session.token or "", line_id, quantity),
            EventTypeV1.CART_ITEM_UPDATED,
            {"line_id": line_id, "quantity": quantity},
        )

    async def remove_item(self, session: SessionContext, line_id: str) -> CartOutcome:
        rejected = gate_error(session, self.policy)
        if rejected is not None:
            return self._rejected(session, OperationKind.REMOVE, rejected)

        self._check_local_line(session, line_id)
        return await self._mutate(
            session,
            OperationKind.REMOVE,
            line_id,
            lambda: self.service.remove_item(session.token or "", line_id),
            EventTypeV1.CART_ITEM_REMOVED,
            {"line_id": line_id},
            absent_is_settled=True,
        )

    async def call_remote(self, call: Awaitable[T]) -> T:
        """Await a remote call under the fixed client-side timeout."""

        try:
            return await asyncio.wait_for(call, timeout=self._timeout_seconds)
        except asyncio.TimeoutError as e:
            raise RemoteUnavailableError("cart service timed out, please retry") from e

    def record(
        self,
        session: SessionContext,
        entity_type: EntityTypeV1,
        entity_id: str,
        event_type: EventTypeV1,
        payload: dict[str, Any],
    ) -> None:
        if session.actor is None:
            return
        try:
            self._recorder.record(
                actor_id=session.actor.id,
                entity_type=entity_type,
                entity_id=entity_id,
                event_type=event_type,
                payload=payload,
            )
        except Exception:
            logger.exception("Failed to record cart event", event_type=event_type.value)

    async def _fetch(self, session: SessionContext) -> CartOutcome:
        operation = self.store.begin(OperationKind.FETCH)
        try:
            cart = await self.call_remote(self.service.get_cart(session.token or ""))
        except asyncio.CancelledError:
            self.store.finish(operation)
            raise
        except Exception as e:
            error = classify_error(e)
            logger.warning(
                "Cart fetch failed",
                actor_id=_actor_id(session),
                kind=error.kind.value,
                message=error.message,
            )
            self.store.dispatch(CartLoadFailed(error))
            return CartOutcome(self.store.finish(operation, error), error)

        items = tuple(CartItem.from_remote(line) for line in cart.items)
        self.store.dispatch(CartLoaded(items))
        return CartOutcome(self.store.finish(operation))

    async def _mutate(
        self,
        session: SessionContext,
        kind: OperationKind,
        target: str,
        call: Callable[[], Awaitable[None]],
        event_type: EventTypeV1,
        payload: dict[str, Any],
        *,
        absent_is_settled: bool = False,
    ) -> CartOutcome:
        operation = self.store.begin(kind, target)
        try:
            error = await self._apply(
                session, kind, target, call, event_type, payload, absent_is_settled
            )
        except asyncio.CancelledError:
            # The pending entry goes away with the caller; no resync is attempted.
            logger.warning(
                "Cart mutation cancelled",
                actor_id=_actor_id(session),
                operation=kind.value,
                target=target,
            )
            self.store.finish(operation)
            raise
        return CartOutcome(self.store.finish(operation, error), error)

    async def _apply(
        self,
        session: SessionContext,
        kind: OperationKind,
        target: str,
        call: Callable[[], Awaitable[None]],
        event_type: EventTypeV1,
        payload: dict[str, Any],
        absent_is_settled: bool,
    ) -> CartError | None:
        try:
            await self.call_remote(call())
        except Exception as e:
            error = classify_error(e)
            logger.warning(
                "Cart mutation failed; resynchronizing",
                actor_id=_actor_id(session),
                operation=kind.value,
                target=target,
                kind=error.kind.value,
                message=error.message,
            )
            resynced = await self._fetch(session)
            self.record(
                session,
                EntityTypeV1.CART,
                target,
                EventTypeV1.CART_RESYNCED,
                {"operation": kind.value, "kind": error.kind.value, "message": error.message},
            )

            if absent_is_settled and error.kind == CartErrorKind.STALE_REFERENCE:
                # The line is already gone server-side, which is what the caller asked for.
                return resynced.error
            return error

        self.record(session, EntityTypeV1.CART_LINE, target, event_type, payload)
        fetched = await self._fetch(session)
        return fetched.error

    def _check_local_line(self, session: SessionContext, line_id: str) -> None:
        if self.store.snapshot.find_line(line_id) is None:
            logger.info(
                "Line not in local snapshot; deferring to the cart service",
                actor_id=_actor_id(session),
                line_id=line_id,
            )

    def _rejected(
        self, session: SessionContext, kind: OperationKind, error: CartError
    ) -> CartOutcome:
        logger.info(
            "Cart operation rejected",
            actor_id=_actor_id(session),
            operation=kind.value,
            kind=error.kind.value,
        )
        return CartOutcome(self.store.snapshot, error)

    def _invalid_quantity(self, quantity: int) -> CartOutcome:
        error = CartError(
            CartErrorKind.INVALID_QUANTITY,
            f"quantity must be at least 1 (got {quantity}); remove the line instead",
        )
        return CartOutcome(self.store.snapshot, error)


def _actor_id(session: SessionContext) -> str | None:
    return session.actor.id if session.actor is not None else None
