from __future__ import annotations

from typing import Any
from uuid import uuid4

from packages.shared.schemas.events import EntityTypeV1, EventTypeV1, EventV1
from services.portal.app.db.database import db_session
from services.portal.app.db.models import EventLog
from sqlalchemy.orm import Session


class DbEventRecorder:
    """Appends cart activity to the event_log table, one short-lived session per event."""

    def record(
        self,
        *,
        actor_id: str,
        entity_type: EntityTypeV1,
        entity_id: str,
        event_type: EventTypeV1,
        payload: dict[str, Any],
    ) -> None:
        db = db_session()
        try:
            _log_event(
                db,
                actor_id=actor_id,
                entity_type=entity_type.value,
                entity_id=entity_id,
                event_type=event_type.value,
                event_payload=payload,
            )
            db.commit()
        finally:
            db.close()


def _log_event(
    db: Session,
    *,
    actor_id: str,
    entity_type: str,
    entity_id: str,
    event_type: str,
    event_payload: dict,
) -> None:
    db.add(
        EventLog(
            id=uuid4().hex,
            actor_id=actor_id,
            entity_type=entity_type,
            entity_id=entity_id,
            event_type=event_type,
            event_payload_json=event_payload,
        )
    )


def list_events(db: Session, actor_id: str, *, limit: int = 200) -> list[EventV1]:
    rows = (
        db.query(EventLog)
        .filter(EventLog.actor_id == actor_id)
        .order_by(EventLog.created_at.desc())
        .limit(limit)
        .all()
    )

    return [
        EventV1(
            id=row.id,
            actor_id=row.actor_id,
            entity_type=EntityTypeV1(row.entity_type),
            entity_id=row.entity_id,
            event_type=EventTypeV1(row.event_type),
            payload=row.event_payload_json,
            created_at=row.created_at.isoformat(),
        )
        for row in rows
    ]
