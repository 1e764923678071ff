from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from packages.shared.schemas.events import EventV1
from services.portal.app.db.database import get_db
from services.portal.app.db.events import list_events
from sqlalchemy.orm import Session

router = APIRouter()


@router.get("/v1/cart/events", response_model=list[EventV1])
def list_cart_events(
    actor_id: str,
    limit: int = Query(default=200, ge=1, le=1000),
    db: Session = Depends(get_db),
) -> list[EventV1]:
    return list_events(db, actor_id, limit=limit)
