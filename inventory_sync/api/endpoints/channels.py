"""
채널 단위 API
- 카테고리별 동기화
- 헬스 체크 / 연결 테스트
"""
import logging
import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from inventory_sync.api.deps import ChannelBuilder, get_caller, get_channel_builder, load_channel, sync_response
from inventory_sync.channels import Channel
from inventory_sync.db import get_session
from inventory_sync.errors import InventorySyncError
from inventory_sync.schemas.caller import CallerIdentity
from inventory_sync.schemas.sync import HealthCheckResult, SyncResult

router = APIRouter()
logger = logging.getLogger(__name__)


def _run_category(channel: Channel, category: str):
    try:
        result = channel.sync_category(category)
    except InventorySyncError as e:
        logger.error(f"[API] {category} sync of {channel.marketplace.id} failed: {e.message}")
        result = SyncResult.failure(e.message, category=category, error_code=e.error_code)
    finally:
        channel.close()
    return sync_response(result)


@router.post("/{marketplace_id}/sync-products", response_model=SyncResult)
def sync_products(
    marketplace_id: uuid.UUID,
    session: Session = Depends(get_session),
    builder: ChannelBuilder = Depends(get_channel_builder),
    caller: CallerIdentity = Depends(get_caller),
):
    return _run_category(load_channel(session, marketplace_id, builder), "products")


@router.post("/{marketplace_id}/sync-orders", response_model=SyncResult)
def sync_orders(
    marketplace_id: uuid.UUID,
    session: Session = Depends(get_session),
    builder: ChannelBuilder = Depends(get_channel_builder),
    caller: CallerIdentity = Depends(get_caller),
):
    return _run_category(load_channel(session, marketplace_id, builder), "orders")


@router.post("/{marketplace_id}/sync-inventory", response_model=SyncResult)
def sync_inventory(
    marketplace_id: uuid.UUID,
    session: Session = Depends(get_session),
    builder: ChannelBuilder = Depends(get_channel_builder),
    caller: CallerIdentity = Depends(get_caller),
):
    return _run_category(load_channel(session, marketplace_id, builder), "inventory")


@router.get("/{marketplace_id}/health", response_model=HealthCheckResult)
def channel_health(
    marketplace_id: uuid.UUID,
    session: Session = Depends(get_session),
    builder: ChannelBuilder = Depends(get_channel_builder),
    caller: CallerIdentity = Depends(get_caller),
):
    """
    마켓 API 헬스 체크. 결과에 따라 마켓 상태(active/error)도 갱신됩니다.
    """
    channel = load_channel(session, marketplace_id, builder)
    try:
        return channel.health_check()
    finally:
        channel.close()


@router.post("/{marketplace_id}/test-connection", response_model=HealthCheckResult)
def test_connection(
    marketplace_id: uuid.UUID,
    session: Session = Depends(get_session),
    builder: ChannelBuilder = Depends(get_channel_builder),
    caller: CallerIdentity = Depends(get_caller),
):
    channel = load_channel(session, marketplace_id, builder)
    try:
        return channel.initialize()
    finally:
        channel.close()
