"""
자동 동기화 스케줄러

마켓별 auto_sync_interval(분)이 지난 채널을 찾아 동기화합니다.
서로 다른 마켓은 병렬로 실행하되, 각 작업은 자신의 세션/채널 인스턴스만 사용합니다.
"""
import concurrent.futures
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.orm import Session

from inventory_sync.channels import as_utc, build_channel
from inventory_sync.errors import InventorySyncError
from inventory_sync.models import Marketplace
from inventory_sync.schemas.marketplace import ChannelOptions
from inventory_sync.schemas.sync import SyncResult
from inventory_sync.settings import settings

logger = logging.getLogger(__name__)

# error 상태 채널도 다음 주기에 다시 시도한다
SCHEDULABLE_STATUSES = ("active", "error")


def sync_interval(marketplace: Marketplace) -> timedelta:
    try:
        options = ChannelOptions.model_validate(marketplace.settings or {})
    except ValidationError as e:
        logger.warning(f"[SCHEDULER] invalid sync options for {marketplace.id}, using default interval: {e}")
        return timedelta(minutes=settings.default_auto_sync_interval)
    return timedelta(minutes=options.auto_sync_interval or settings.default_auto_sync_interval)


def find_due_marketplaces(session: Session, now: datetime | None = None) -> list[Marketplace]:
    """last_sync가 없거나 설정된 주기보다 오래된 마켓 목록"""
    now = now or datetime.now(timezone.utc)
    marketplaces = session.scalars(
        select(Marketplace)
        .where(Marketplace.status.in_(SCHEDULABLE_STATUSES))
        .order_by(Marketplace.created_at, Marketplace.id)
    ).all()

    due = []
    for marketplace in marketplaces:
        last_sync = as_utc(marketplace.last_sync)
        if last_sync is None or now - last_sync >= sync_interval(marketplace):
            due.append(marketplace)
    return due


def _sync_one(session_factory: Callable[[], Session], marketplace_id: uuid.UUID, client_options: dict) -> SyncResult:
    with session_factory() as session:
        marketplace = session.get(Marketplace, marketplace_id)
        if marketplace is None:
            return SyncResult.failure(f"Marketplace not found: {marketplace_id}")
        try:
            channel = build_channel(session, marketplace, **client_options)
        except InventorySyncError as e:
            logger.error(f"[SCHEDULER] cannot build channel for {marketplace_id}: {e.message}")
            return SyncResult.failure(e.message, error_code=e.error_code)
        try:
            return channel.sync()
        finally:
            channel.close()


def run_due_syncs(
    session_factory: Callable[[], Session],
    now: datetime | None = None,
    max_workers: int | None = None,
    **client_options: Any,
) -> dict[uuid.UUID, SyncResult]:
    with session_factory() as session:
        due_ids = [m.id for m in find_due_marketplaces(session, now)]

    if not due_ids:
        logger.info("[SCHEDULER] no marketplaces due for sync")
        return {}

    logger.info(f"[SCHEDULER] {len(due_ids)} marketplaces due for sync")
    results: dict[uuid.UUID, SyncResult] = {}
    with concurrent.futures.ThreadPoolExecutor(max_workers=max_workers or settings.scheduler_max_workers) as executor:
        futures = {
            executor.submit(_sync_one, session_factory, marketplace_id, client_options): marketplace_id
            for marketplace_id in due_ids
        }
        for future in concurrent.futures.as_completed(futures):
            marketplace_id = futures[future]
            try:
                results[marketplace_id] = future.result()
            except Exception as e:
                logger.exception(f"[SCHEDULER] sync crashed for marketplace {marketplace_id}")
                results[marketplace_id] = SyncResult.failure(f"Scheduled sync failed: {e}")

    succeeded = sum(1 for r in results.values() if r.success)
    logger.info(f"[SCHEDULER] finished: {succeeded}/{len(results)} succeeded")
    return results
