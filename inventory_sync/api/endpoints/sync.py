"""
전체 동기화 트리거 API
"""
import logging
import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from inventory_sync.api.deps import ChannelBuilder, get_caller, get_channel_builder, load_channel, sync_response
from inventory_sync.db import get_session
from inventory_sync.errors import InventorySyncError
from inventory_sync.schemas.caller import CallerIdentity
from inventory_sync.schemas.sync import SyncResult

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/{marketplace_id}", response_model=SyncResult)
def sync_marketplace(
    marketplace_id: uuid.UUID,
    session: Session = Depends(get_session),
    builder: ChannelBuilder = Depends(get_channel_builder),
    caller: CallerIdentity = Depends(get_caller),
):
    """
    마켓 전체 동기화 (products → orders → inventory).
    """
    channel = load_channel(session, marketplace_id, builder)
    logger.info(f"[API] full sync of {marketplace_id} requested by {caller.id}")
    try:
        result = channel.sync()
    except InventorySyncError as e:
        logger.error(f"[API] sync of {marketplace_id} failed: {e.message}")
        result = SyncResult.failure(e.message, error_code=e.error_code)
    finally:
        channel.close()
    return sync_response(result)
