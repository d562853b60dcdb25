import logging
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from inventory_sync.errors import PersistenceError
from inventory_sync.settings import settings

logger = logging.getLogger(__name__)

engine = create_engine(settings.database_url, pool_pre_ping=True)

SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    expire_on_commit=False,
)


def get_session() -> Iterator[Session]:
    with SessionLocal() as session:
        yield session


@contextmanager
def transaction(session: Session, operation: str) -> Iterator[Session]:
    """
    여러 statement를 하나의 트랜잭션으로 묶습니다.
    성공 시 commit, 실패 시 rollback 후 예외를 다시 던집니다.
    SQLAlchemy 오류는 PersistenceError로 변환됩니다.
    """
    try:
        yield session
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"[DB] {operation} rolled back: {e}")
        raise PersistenceError(f"{operation} failed: {e}", operation=operation) from e
    except Exception:
        session.rollback()
        raise
