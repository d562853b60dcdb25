from fastapi import Depends, FastAPI
from sqlalchemy import text
from sqlalchemy.orm import Session

from inventory_sync.api.endpoints import channels, inventory, marketplaces, sync
from inventory_sync.db import get_session

app = FastAPI(title="inventory-sync")

app.include_router(sync.router, prefix="/api/sync", tags=["Sync"])
app.include_router(channels.router, prefix="/api/channels", tags=["Channels"])
app.include_router(marketplaces.router, prefix="/api/marketplaces", tags=["Marketplaces"])
app.include_router(inventory.router, prefix="/api/inventory", tags=["Inventory"])


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.get("/db/ping")
def db_ping(session: Session = Depends(get_session)) -> dict:
    value = session.execute(text("SELECT 1")).scalar_one()
    return {"ok": value == 1}
