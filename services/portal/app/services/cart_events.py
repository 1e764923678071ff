from __future__ import annotations

from typing import Any, Protocol

from packages.shared.schemas.events import EntityTypeV1, EventTypeV1


class CartEventRecorder(Protocol):
    def record(
        self,
        *,
        actor_id: str,
        entity_type: EntityTypeV1,
        entity_id: str,
        event_type: EventTypeV1,
        payload: dict[str, Any],
    ) -> None: ...


class NullEventRecorder:
    def record(
        self,
        *,
        actor_id: str,
        entity_type: EntityTypeV1,
        entity_id: str,
        event_type: EventTypeV1,
        payload: dict[str, Any],
    ) -> None:
        del actor_id, entity_type, entity_id, event_type, payload
