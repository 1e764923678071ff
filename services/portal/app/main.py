"""Portal cart service entrypoint."""

from fastapi import FastAPI

from services.portal.app.db.database import init_db
from services.portal.app.routers.audit import router as audit_router
from services.portal.app.routers.cart import router as cart_router
from services.portal.app.utils.logging import configure_logging

app = FastAPI(title="Portal Cart API")

app.include_router(cart_router)
app.include_router(audit_router)


@app.on_event("startup")
def _startup() -> None:
    configure_logging()
    init_db()


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}
