from __future__ import annotations

from dataclasses import dataclass

from packages.shared.schemas.cart_v1 import RoleV1


@dataclass(frozen=True, slots=True)
class Actor:
    id: str
    role: RoleV1 | str


@dataclass(frozen=True, slots=True)
class SessionContext:
    """Who is calling, resolved once per request and passed into every cart operation."""

    token: str | None
    actor: Actor | None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token) and self.actor is not None

    @classmethod
    def anonymous(cls) -> SessionContext:
        return cls(token=None, actor=None)
