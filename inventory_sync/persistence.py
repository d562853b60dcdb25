"""
Upsert / 생성 계층.

모든 쓰기는 자연 키(sku, (product_id, marketplace_id), (marketplace_id, order_number))로
먼저 조회한 뒤 update-or-insert 합니다. 같은 입력으로 여러 번 실행해도 결과가 같습니다.
"""
import logging
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from inventory_sync.db import transaction
from inventory_sync.errors import ItemValidationError, MarketplaceNotFoundError, PersistenceError
from inventory_sync.models import Inventory, Marketplace, Order, OrderItem, Product, StockAdjustment
from inventory_sync.normalizer import OrderRecord, ProductRecord
from inventory_sync.settings import settings

logger = logging.getLogger(__name__)


def compute_inventory_status(quantity: int, threshold: int) -> str:
    if quantity <= 0:
        return "out_of_stock"
    if quantity <= threshold:
        return "low_stock"
    return "in_stock"


@contextmanager
def record_unit(session: Session, operation: str) -> Iterator[Session]:
    """
    레코드 1건 단위 작업. SAVEPOINT 안에서 실행하고 성공하면 바로 commit 합니다.
    실패한 레코드는 자신의 변경만 되돌리고 예외를 호출자에게 넘깁니다.
    """
    try:
        with session.begin_nested():
            yield session
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"[DB] {operation} failed: {e}")
        raise PersistenceError(f"{operation} failed: {e}", operation=operation) from e


# --------------------------------------------------------------------------
# Marketplace
# --------------------------------------------------------------------------

def get_marketplace(session: Session, marketplace_id: uuid.UUID) -> Marketplace:
    marketplace = session.get(Marketplace, marketplace_id)
    if marketplace is None:
        raise MarketplaceNotFoundError(marketplace_id)
    return marketplace


def mark_synced(session: Session, marketplace: Marketplace, at: datetime) -> None:
    """동기화 워터마크(last_sync)를 전진시킵니다."""
    with transaction(session, "mark_synced"):
        marketplace.last_sync = at
    logger.info(f"[SYNC] marketplace {marketplace.id} watermark advanced to {at.isoformat()}")


def set_marketplace_status(session: Session, marketplace: Marketplace, status: str) -> None:
    if marketplace.status == status:
        return
    with transaction(session, "set_marketplace_status"):
        marketplace.status = status
    logger.info(f"[SYNC] marketplace {marketplace.id} status -> {status}")


def delete_marketplace(session: Session, marketplace_id: uuid.UUID) -> None:
    """
    마켓 삭제. 주문 아이템 → 주문 → 재고 조정 이력 → 재고 → 마켓 순으로
    하나의 트랜잭션에서 지웁니다. 중간에 실패하면 아무것도 지워지지 않습니다.
    """
    marketplace = get_marketplace(session, marketplace_id)
    with transaction(session, "delete_marketplace"):
        order_ids = select(Order.id).where(Order.marketplace_id == marketplace_id)
        session.execute(delete(OrderItem).where(OrderItem.order_id.in_(order_ids)))
        session.execute(delete(Order).where(Order.marketplace_id == marketplace_id))
        session.execute(delete(StockAdjustment).where(StockAdjustment.marketplace_id == marketplace_id))
        session.execute(delete(Inventory).where(Inventory.marketplace_id == marketplace_id))
        session.delete(marketplace)
    logger.info(f"[DB] marketplace {marketplace_id} deleted with dependent rows")


# --------------------------------------------------------------------------
# Product
# --------------------------------------------------------------------------

def get_product_by_sku(session: Session, sku: str) -> Product | None:
    return session.scalars(select(Product).where(Product.sku == sku)).one_or_none()


_PRODUCT_FIELDS = ("name", "description", "base_price", "cost_price", "status")


def upsert_product(session: Session, record: ProductRecord) -> tuple[Product, bool]:
    """
    sku로 조회해서 있으면 변경된 필드만 갱신, 없으면 생성합니다.
    Returns: (product, created)
    """
    product = get_product_by_sku(session, record.sku)
    if product is None:
        product = Product(
            sku=record.sku,
            name=record.name,
            description=record.description or None,
            base_price=record.base_price,
            cost_price=record.cost_price,
            status=record.status,
        )
        session.add(product)
        session.flush()
        return product, True

    changed = False
    for name in _PRODUCT_FIELDS:
        value = getattr(record, name)
        if name == "description":
            value = value or None
        if getattr(product, name) != value:
            setattr(product, name, value)
            changed = True
    if changed:
        product.updated_at = datetime.now(timezone.utc)
        session.flush()
    return product, False


# --------------------------------------------------------------------------
# Inventory
# --------------------------------------------------------------------------

def get_inventory(session: Session, product_id: uuid.UUID, marketplace_id: uuid.UUID) -> Inventory | None:
    return session.scalars(
        select(Inventory).where(
            Inventory.product_id == product_id,
            Inventory.marketplace_id == marketplace_id,
        )
    ).one_or_none()


def upsert_inventory(
    session: Session,
    product_id: uuid.UUID,
    marketplace_id: uuid.UUID,
    quantity: int,
    price: float | None = None,
    threshold: int | None = None,
) -> tuple[Inventory, bool]:
    """(product, marketplace) 재고 행을 만들거나 갱신하고 상태를 다시 계산합니다."""
    if quantity < 0:
        raise ItemValidationError(f"Negative quantity {quantity} for product {product_id}", identifier=str(product_id))

    inventory = get_inventory(session, product_id, marketplace_id)
    created = inventory is None
    if created:
        inventory = Inventory(
            product_id=product_id,
            marketplace_id=marketplace_id,
            quantity=quantity,
            price=price or 0.0,
            low_stock_threshold=threshold if threshold is not None else settings.low_stock_threshold,
        )
        session.add(inventory)
    else:
        inventory.quantity = quantity
        if price is not None:
            inventory.price = price
        if threshold is not None:
            inventory.low_stock_threshold = threshold
        inventory.updated_at = datetime.now(timezone.utc)

    inventory.status = compute_inventory_status(inventory.quantity, inventory.low_stock_threshold)
    session.flush()
    return inventory, created


# --------------------------------------------------------------------------
# Order
# --------------------------------------------------------------------------

def get_order_by_number(session: Session, marketplace_id: uuid.UUID, order_number: str) -> Order | None:
    return session.scalars(
        select(Order).where(
            Order.marketplace_id == marketplace_id,
            Order.order_number == order_number,
        )
    ).one_or_none()


def create_order(session: Session, marketplace_id: uuid.UUID, record: OrderRecord) -> Order | None:
    """
    주문이 이미 있으면 건너뛰고 None을 반환합니다 (갱신하지 않음).
    주문과 아이템은 같은 작업 단위에서 함께 저장됩니다.
    """
    if get_order_by_number(session, marketplace_id, record.order_number) is not None:
        logger.debug(f"[SYNC] order {record.order_number} already synced, skipping")
        return None

    order = Order(
        marketplace_id=marketplace_id,
        order_number=record.order_number,
        external_id=record.external_id,
        customer_name=record.customer_name or "Unknown Customer",
        customer_email=record.customer_email,
        customer_phone=record.customer_phone,
        shipping_address=record.shipping_address,
        status=record.status,
        payment_status=record.payment_status,
        subtotal=record.subtotal,
        tax=record.tax,
        shipping_cost=record.shipping_cost,
        total=record.total,
        notes=record.notes,
        ordered_at=record.ordered_at,
    )
    session.add(order)
    session.flush()

    for item in record.items:
        create_order_item(session, order, item)
    session.flush()
    return order


def create_order_item(session: Session, order: Order, item) -> OrderItem:
    product = get_product_by_sku(session, item.sku) if item.sku else None
    if item.sku and product is None:
        logger.warning(f"[SYNC] order {order.order_number} item SKU {item.sku} not in catalog")
    order_item = OrderItem(
        order_id=order.id,
        product_id=product.id if product else None,
        sku=item.sku,
        name=item.name or (product.name if product else None),
        quantity=item.quantity,
        unit_price=item.unit_price,
        total_price=item.total_price,
    )
    session.add(order_item)
    return order_item
