from __future__ import annotations

from dataclasses import dataclass, field, replace
from decimal import Decimal
from enum import Enum
from itertools import count

from packages.shared.schemas.cart_v1 import CartLineV1
from services.portal.app.services.cart_base import CartError

MIN_LINE_QUANTITY = 1
MAX_LINE_QUANTITY = 99


def clamp_quantity(quantity: int) -> int:
    return max(MIN_LINE_QUANTITY, min(MAX_LINE_QUANTITY, quantity))


class OperationKind(str, Enum):
    FETCH = "fetch"
    ADD = "add"
    UPDATE_QUANTITY = "update_quantity"
    REMOVE = "remove"
    CHECKOUT = "checkout"


@dataclass(frozen=True, slots=True)
class PendingOperation:
    id: int
    kind: OperationKind
    target: str | None = None


@dataclass(frozen=True, slots=True)
class CartItem:
    line_id: str
    product_id: str
    display_name: str
    unit_price: Decimal
    quantity: int
    image_url: str | None = None

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

    @classmethod
    def from_remote(cls, line: CartLineV1) -> CartItem:
        return cls(
            line_id=line.id,
            product_id=line.product_id,
            display_name=line.product_name,
            unit_price=line.product_price,
            quantity=clamp_quantity(line.quantity),
            image_url=line.image_url,
        )


@dataclass(frozen=True, slots=True)
class CartSnapshot:
    items: tuple[CartItem, ...] = ()
    pending: tuple[PendingOperation, ...] = ()
    last_error: CartError | None = None
    loaded: bool = False

    @property
    def total_item_count(self) -> int:
        return sum(item.quantity for item in self.items)

    @property
    def total_price(self) -> Decimal:
        return sum((item.line_total for item in self.items), Decimal("0"))

    @property
    def is_loading(self) -> bool:
        return bool(self.pending)

    def find_line(self, line_id: str) -> CartItem | None:
        return next((item for item in self.items if item.line_id == line_id), None)


@dataclass(frozen=True, slots=True)
class OperationStarted:
    operation: PendingOperation


@dataclass(frozen=True, slots=True)
class OperationFinished:
    operation_id: int
    error: CartError | None = None


@dataclass(frozen=True, slots=True)
class CartLoaded:
    items: tuple[CartItem, ...]


@dataclass(frozen=True, slots=True)
class CartLoadFailed:
    error: CartError


@dataclass(frozen=True, slots=True)
class CartCleared:
    pass


CartAction = OperationStarted | OperationFinished | CartLoaded | CartLoadFailed | CartCleared


def reduce(snapshot: CartSnapshot, action: CartAction) -> CartSnapshot:
    if isinstance(action, OperationStarted):
        return replace(snapshot, pending=snapshot.pending + (action.operation,), last_error=None)

    if isinstance(action, OperationFinished):
        pending = tuple(op for op in snapshot.pending if op.id != action.operation_id)
        if action.error is None:
            return replace(snapshot, pending=pending)
        return replace(snapshot, pending=pending, last_error=action.error)

    if isinstance(action, CartLoaded):
        return replace(snapshot, items=action.items, last_error=None, loaded=True)

    if isinstance(action, CartLoadFailed):
        # A failed load never discards lines from an earlier successful load.
        return replace(snapshot, last_error=action.error)

    if isinstance(action, CartCleared):
        return replace(snapshot, items=(), loaded=True)

    raise TypeError(f"Unknown cart action: {action!r}")


@dataclass
class CartStore:
    """Holds one actor's cart snapshot.

    Readers use `snapshot`. Only the cart operations dispatch actions; every dispatch
    replaces the snapshot as a whole.
    """

    _snapshot: CartSnapshot = field(default_factory=CartSnapshot)
    _ids: count = field(default_factory=lambda: count(1))

    @property
    def snapshot(self) -> CartSnapshot:
        return self._snapshot

    def dispatch(self, action: CartAction) -> CartSnapshot:
        self._snapshot = reduce(self._snapshot, action)
        return self._snapshot

    def begin(self, kind: OperationKind, target: str | None = None) -> PendingOperation:
        operation = PendingOperation(id=next(self._ids), kind=kind, target=target)
        self.dispatch(OperationStarted(operation))
        return operation

    def finish(self, operation: PendingOperation, error: CartError | None = None) -> CartSnapshot:
        return self.dispatch(OperationFinished(operation.id, error))
