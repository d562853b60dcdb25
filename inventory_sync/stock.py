"""
Stock Adjustment Engine.

재고 수량을 바꾸는 유일한 read-modify-write 경로입니다.
행 잠금(SELECT ... FOR UPDATE) → 새 수량 계산 → 음수 거부 → 수량/상태 + 감사 원장 기록을
하나의 트랜잭션에서 수행하고, 어느 단계든 실패하면 전부 되돌립니다.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from inventory_sync.db import transaction
from inventory_sync.errors import InsufficientStockError, InventoryNotFoundError
from inventory_sync.models import ADJUSTMENT_TYPES, Inventory, StockAdjustment
from inventory_sync.persistence import compute_inventory_status

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StockAdjustmentResult:
    success: bool
    new_quantity: int
    adjustment_id: uuid.UUID | None = None


def adjust_stock(
    session: Session,
    product_id: uuid.UUID,
    marketplace_id: uuid.UUID,
    adjustment_type: str,
    quantity: int,
    reason: str | None = None,
) -> StockAdjustmentResult:
    if adjustment_type not in ADJUSTMENT_TYPES:
        raise ValueError(f"Unknown adjustment type: {adjustment_type}")
    if quantity <= 0:
        raise ValueError(f"Adjustment quantity must be positive: {quantity}")

    with transaction(session, "adjust_stock"):
        inventory = session.scalars(
            select(Inventory)
            .where(
                Inventory.product_id == product_id,
                Inventory.marketplace_id == marketplace_id,
            )
            .with_for_update()
        ).one_or_none()
        if inventory is None:
            raise InventoryNotFoundError(product_id, marketplace_id)

        before = inventory.quantity
        delta = quantity if adjustment_type == "increase" else -quantity
        after = before + delta
        if after < 0:
            raise InsufficientStockError(current=before, requested=quantity)

        inventory.quantity = after
        inventory.status = compute_inventory_status(after, inventory.low_stock_threshold)
        adjustment = StockAdjustment(
            product_id=product_id,
            marketplace_id=marketplace_id,
            adjustment_type=adjustment_type,
            quantity=quantity,
            reason=reason,
            quantity_before=before,
            quantity_after=after,
        )
        session.add(adjustment)
        session.flush()

    logger.info(
        f"[STOCK] {adjustment_type} {quantity} for product {product_id} on {marketplace_id}: {before} -> {after}"
    )
    return StockAdjustmentResult(success=True, new_quantity=after, adjustment_id=adjustment.id)


def list_adjustments(
    session: Session,
    product_id: uuid.UUID | None = None,
    marketplace_id: uuid.UUID | None = None,
    since: datetime | None = None,
    limit: int = 100,
) -> list[StockAdjustment]:
    stmt = select(StockAdjustment)
    if product_id is not None:
        stmt = stmt.where(StockAdjustment.product_id == product_id)
    if marketplace_id is not None:
        stmt = stmt.where(StockAdjustment.marketplace_id == marketplace_id)
    if since is not None:
        stmt = stmt.where(StockAdjustment.created_at >= since)
    stmt = stmt.order_by(StockAdjustment.created_at.desc(), StockAdjustment.id).limit(limit)
    return list(session.scalars(stmt))
