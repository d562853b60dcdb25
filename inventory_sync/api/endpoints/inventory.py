"""
재고 조정 API
- 수동 재고 증감 (감사 원장 기록)
- 조정 이력 조회
"""
import logging
import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from inventory_sync.api.deps import ChannelBuilder, get_caller, get_channel_builder, require_manager
from inventory_sync.db import get_session
from inventory_sync.errors import (
    InsufficientStockError,
    InventoryNotFoundError,
    InventorySyncError,
    PersistenceError,
)
from inventory_sync.models import Marketplace, Product
from inventory_sync.schemas.caller import CallerIdentity
from inventory_sync.schemas.stock import StockAdjustmentEntry, StockAdjustmentRequest, StockAdjustmentResponse
from inventory_sync.stock import adjust_stock, list_adjustments

router = APIRouter()
logger = logging.getLogger(__name__)


def _push_quantity(
    session: Session,
    builder: ChannelBuilder,
    product_id: uuid.UUID,
    marketplace_id: uuid.UUID,
    quantity: int,
) -> tuple[bool, str]:
    marketplace = session.get(Marketplace, marketplace_id)
    product = session.get(Product, product_id)
    if marketplace is None or product is None:
        return False, "Marketplace or product not found"
    try:
        channel = builder(session, marketplace)
    except InventorySyncError as e:
        return False, e.message
    try:
        result = channel.update_inventory(product.sku, quantity)
    finally:
        channel.close()
    return result.success, result.message


@router.post("/adjust", response_model=StockAdjustmentResponse)
def adjust_inventory(
    payload: StockAdjustmentRequest,
    session: Session = Depends(get_session),
    builder: ChannelBuilder = Depends(get_channel_builder),
    caller: CallerIdentity = Depends(require_manager),
):
    """
    재고 수량을 증감합니다. push=true면 조정 결과를 마켓에도 반영합니다.
    """
    reason = payload.reason or f"manual adjustment by {caller.id}"
    try:
        result = adjust_stock(
            session,
            payload.product_id,
            payload.marketplace_id,
            payload.adjustment_type,
            payload.quantity,
            reason,
        )
    except InventoryNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except InsufficientStockError as e:
        raise HTTPException(status_code=409, detail=e.message)
    except PersistenceError as e:
        raise HTTPException(status_code=500, detail=e.message)

    response = StockAdjustmentResponse(
        success=result.success,
        new_quantity=result.new_quantity,
        adjustment_id=result.adjustment_id,
    )
    if payload.push:
        pushed, message = _push_quantity(
            session, builder, payload.product_id, payload.marketplace_id, result.new_quantity
        )
        if not pushed:
            logger.warning(f"[STOCK] push after adjustment failed: {message}")
        response = response.model_copy(update={"pushed": pushed, "push_message": message})
    return response


@router.get("/adjustments", response_model=List[StockAdjustmentEntry])
def get_adjustments(
    product_id: Optional[uuid.UUID] = Query(default=None, alias="productId"),
    marketplace_id: Optional[uuid.UUID] = Query(default=None, alias="marketplaceId"),
    limit: int = Query(default=100, ge=1, le=500),
    session: Session = Depends(get_session),
    caller: CallerIdentity = Depends(get_caller),
):
    return list_adjustments(session, product_id=product_id, marketplace_id=marketplace_id, limit=limit)
