"""Shared event schema (v1).

The portal stores an append-only log of cart activity per actor. Clients can consume
these events to render an activity trail or to investigate an ambiguous checkout.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class EntityTypeV1(str, Enum):
    CART = "Cart"
    CART_LINE = "CartLine"
    CHECKOUT = "Checkout"


class EventTypeV1(str, Enum):
    CART_ITEM_ADDED = "CART_ITEM_ADDED"
    CART_ITEM_UPDATED = "CART_ITEM_UPDATED"
    CART_ITEM_REMOVED = "CART_ITEM_REMOVED"
    CART_RESYNCED = "CART_RESYNCED"
    CART_DRIFT_REPAIRED = "CART_DRIFT_REPAIRED"
    CHECKOUT_STARTED = "CHECKOUT_STARTED"
    CHECKOUT_DONE = "CHECKOUT_DONE"
    CHECKOUT_FAILED = "CHECKOUT_FAILED"


class EventV1(BaseModel):
    id: str
    actor_id: str

    entity_type: EntityTypeV1
    entity_id: str

    event_type: EventTypeV1
    payload: dict[str, Any] = Field(default_factory=dict)
    created_at: str
