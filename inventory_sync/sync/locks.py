import hashlib
import logging
import threading
import uuid
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from inventory_sync.errors import PersistenceError, SyncInProgressError

logger = logging.getLogger(__name__)

_registry_lock = threading.Lock()
_local_locks: dict[str, threading.Lock] = {}


def advisory_lock_id(marketplace_id: uuid.UUID | str) -> int:
    """안정적인 64비트 signed 정수 락 ID (Postgres bigint 호환)"""
    lock_id = int(hashlib.md5(f"marketplace-sync:{marketplace_id}".encode()).hexdigest()[:16], 16)
    if lock_id > 0x7FFFFFFFFFFFFFFF:
        lock_id -= 0x10000000000000000
    return lock_id


def _local_lock(key: str) -> threading.Lock:
    with _registry_lock:
        lock = _local_locks.get(key)
        if lock is None:
            lock = _local_locks[key] = threading.Lock()
        return lock


@contextmanager
def sync_lock(session: Session, marketplace_id: uuid.UUID | str) -> Iterator[None]:
    """
    마켓 단위 동기화 직렬화.

    - 프로세스 내부: 마켓별 non-blocking threading.Lock
    - 프로세스/인스턴스 간: PostgreSQL이면 pg_try_advisory_lock
      (세션 커넥션은 레코드마다 commit 되므로 락은 별도 커넥션에서 잡고 끝까지 유지)
    이미 실행 중이면 SyncInProgressError.
    """
    key = str(marketplace_id)
    local = _local_lock(key)
    if not local.acquire(blocking=False):
        logger.warning(f"[SYNC] marketplace {key} is already running in this process")
        raise SyncInProgressError(marketplace_id)

    try:
        engine = session.get_bind()
        if engine.dialect.name != "postgresql":
            yield
            return

        lock_id = advisory_lock_id(marketplace_id)
        try:
            conn = engine.connect()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to open lock connection: {e}", operation="sync_lock") from e
        try:
            acquired = conn.execute(text("SELECT pg_try_advisory_lock(:id)"), {"id": lock_id}).scalar()
            if not acquired:
                logger.warning(f"[SYNC] marketplace {key} is already running in another process")
                raise SyncInProgressError(marketplace_id)
            try:
                yield
            finally:
                try:
                    conn.execute(text("SELECT pg_advisory_unlock(:id)"), {"id": lock_id})
                except SQLAlchemyError as e:
                    logger.error(f"[SYNC] Failed to release lock for marketplace {key}: {e}")
        finally:
            conn.close()
    finally:
        local.release()


def is_locked(marketplace_id: uuid.UUID | str) -> bool:
    """현재 프로세스에서 해당 마켓 동기화가 실행 중인지"""
    return _local_lock(str(marketplace_id)).locked()
