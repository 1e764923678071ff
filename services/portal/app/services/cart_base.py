from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from packages.shared.schemas.cart_v1 import CartV1, OrderSummaryV1

STALE_REFERENCE_MESSAGE = "item not in cart"


class CartErrorKind(str, Enum):
    UNAUTHENTICATED = "Unauthenticated"
    FORBIDDEN = "Forbidden"
    INVALID_QUANTITY = "InvalidQuantity"
    EMPTY_CART = "EmptyCart"
    STALE_REFERENCE = "StaleReference"
    REMOTE_UNAVAILABLE = "RemoteUnavailable"
    CHECKOUT_IN_PROGRESS = "CheckoutInProgress"
    UNCLASSIFIED = "Unclassified"


@dataclass(frozen=True, slots=True)
class CartError:
    """A classified, user-displayable failure."""

    kind: CartErrorKind
    message: str


class CartServiceError(Exception):
    """Base class for remote cart service errors."""

    kind = CartErrorKind.UNCLASSIFIED

    def to_error(self) -> CartError:
        return CartError(kind=self.kind, message=str(self))


class RemoteUnauthenticatedError(CartServiceError):
    kind = CartErrorKind.UNAUTHENTICATED

    def __init__(self, message: str = "session expired, please sign in again") -> None:
        super().__init__(message)


class RemoteForbiddenError(CartServiceError):
    kind = CartErrorKind.FORBIDDEN


class StaleReferenceError(CartServiceError):
    kind = CartErrorKind.STALE_REFERENCE

    def __init__(self, message: str = STALE_REFERENCE_MESSAGE, *, reference: str = "") -> None:
        super().__init__(message)
        self.reference = reference


class RemoteUnavailableError(CartServiceError):
    kind = CartErrorKind.REMOTE_UNAVAILABLE

    def __init__(self, message: str = "cart service unavailable, please retry") -> None:
        super().__init__(message)


class RemoteRejectedError(CartServiceError):
    """Any other remote error; the message is shown to the user verbatim."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RemoteCartService(Protocol):
    name: str

    async def get_cart(self, token: str) -> CartV1: ...

    async def add_item(self, token: str, product_id: str, quantity: int) -> None: ...

    async def update_item(self, token: str, line_id: str, quantity: int) -> None: ...

    async def remove_item(self, token: str, line_id: str) -> None: ...

    async def clear_cart(self, token: str) -> None: ...

    async def checkout(self, token: str) -> OrderSummaryV1: ...
