"""Event-log storage: engine cache, sessions and schema creation."""

from __future__ import annotations

import os
from collections.abc import Generator
from dataclasses import dataclass

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from services.portal.app.db.models import Base

# Local-only default. Production must provide DATABASE_URL explicitly.
DEFAULT_DATABASE_URL = "sqlite+pysqlite:///.local/portal.db"

_ENGINE: Engine | None = None
_ENGINE_URL: str | None = None
_SESSIONMAKER: sessionmaker | None = None


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "y"}


@dataclass(frozen=True, slots=True)
class EventStoreConfig:
    url: str
    auto_create: bool

    @classmethod
    def from_env(cls) -> "EventStoreConfig":
        return cls(
            url=os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL),
            auto_create=_parse_bool(os.getenv("PORTAL_DB_AUTO_CREATE", "true")),
        )


def _ensure_sqlite_dir(url: str) -> None:
    if not url.startswith("sqlite") or ":///" not in url or url.endswith(":memory:"):
        return
    db_path = url.split(":///", 1)[1]
    if db_path:
        os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)


def get_engine() -> Engine:
    """Return the engine for the current DATABASE_URL, rebuilding it when the URL changes."""

    global _ENGINE, _ENGINE_URL, _SESSIONMAKER

    url = EventStoreConfig.from_env().url
    if _ENGINE is not None and _ENGINE_URL == url:
        return _ENGINE

    _ensure_sqlite_dir(url)
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    _ENGINE = create_engine(url, future=True, connect_args=connect_args)
    _ENGINE_URL = url
    _SESSIONMAKER = sessionmaker(bind=_ENGINE, class_=Session, autocommit=False, autoflush=False)
    return _ENGINE


def db_session() -> Session:
    get_engine()
    assert _SESSIONMAKER is not None
    return _SESSIONMAKER()


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency yielding a session closed after the request."""

    db = db_session()
    try:
        yield db
    finally:
        db.close()


def init_db() -> bool:
    """Create the event_log table unless PORTAL_DB_AUTO_CREATE is off. Returns whether it ran."""

    if not EventStoreConfig.from_env().auto_create:
        return False
    Base.metadata.create_all(bind=get_engine())
    return True
