from __future__ import annotations

import os
from dataclasses import dataclass

import structlog
from services.portal.app.services.cart_base import RemoteCartService
from services.portal.app.services.cart_events import CartEventRecorder
from services.portal.app.services.cart_factory import cart_timeout_seconds, get_cart_service
from services.portal.app.services.cart_ops import DEFAULT_TIMEOUT_SECONDS, CartOperations
from services.portal.app.services.cart_store import CartStore
from services.portal.app.services.checkout import CheckoutOrchestrator
from services.portal.app.services.eligibility import CartPolicy, gate_error
from services.portal.app.services.session import SessionContext

logger = structlog.get_logger(__name__)


@dataclass
class CartSession:
    actor_id: str | None
    store: CartStore
    operations: CartOperations
    checkout: CheckoutOrchestrator


class CartSessionRegistry:
    """One cart session per signed-in actor, alive until the actor's session ends."""

    def __init__(
        self,
        service: RemoteCartService,
        *,
        policy: CartPolicy | None = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        recorder: CartEventRecorder | None = None,
    ) -> None:
        self.service = service
        self.policy = policy or CartPolicy()
        self._timeout_seconds = timeout_seconds
        self._recorder = recorder
        self._sessions: dict[str, CartSession] = {}

    def session_for(self, ctx: SessionContext) -> CartSession:
        if ctx.actor is None or gate_error(ctx, self.policy) is not None:
            # Detached: rejections still go through the operations layer, nothing is kept.
            return self._new_session(None)

        session = self._sessions.get(ctx.actor.id)
        if session is None:
            session = self._new_session(ctx.actor.id)
            self._sessions[ctx.actor.id] = session
            logger.info("Cart session started", actor_id=ctx.actor.id)
        return session

    def get(self, actor_id: str) -> CartSession | None:
        return self._sessions.get(actor_id)

    def end_session(self, actor_id: str) -> bool:
        ended = self._sessions.pop(actor_id, None) is not None
        if ended:
            logger.info("Cart session ended", actor_id=actor_id)
        return ended

    def _new_session(self, actor_id: str | None) -> CartSession:
        store = CartStore()
        operations = CartOperations(
            store,
            self.service,
            policy=self.policy,
            timeout_seconds=self._timeout_seconds,
            recorder=self._recorder,
        )
        return CartSession(
            actor_id=actor_id,
            store=store,
            operations=operations,
            checkout=CheckoutOrchestrator(operations),
        )


_REGISTRY: CartSessionRegistry | None = None
_REGISTRY_KEY: tuple[str, ...] | None = None


def _registry_key() -> tuple[str, ...]:
    return (
        os.getenv("PORTAL_CART_SERVICE", "mock"),
        os.getenv("PORTAL_CART_BASE_URL", ""),
        os.getenv("PORTAL_CART_TIMEOUT_SECONDS", ""),
        os.getenv("PORTAL_CART_ALLOW_VENDOR", ""),
        os.getenv("DATABASE_URL", ""),
    )


def get_cart_registry() -> CartSessionRegistry:
    """Return the process-wide registry.

    Cached on the cart env vars so tests can change configuration before first use.
    """

    global _REGISTRY, _REGISTRY_KEY

    key = _registry_key()
    if _REGISTRY is not None and _REGISTRY_KEY == key:
        return _REGISTRY

    from services.portal.app.db.events import DbEventRecorder

    _REGISTRY = CartSessionRegistry(
        get_cart_service(),
        policy=CartPolicy.from_env(),
        timeout_seconds=cart_timeout_seconds(),
        recorder=DbEventRecorder(),
    )
    _REGISTRY_KEY = key
    return _REGISTRY
