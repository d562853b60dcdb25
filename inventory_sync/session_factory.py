from sqlalchemy.orm import Session

from inventory_sync.db import SessionLocal


def session_factory() -> Session:
    return SessionLocal()
