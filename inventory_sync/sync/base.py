"""
마켓 공통 카테고리 동기화 핸들러.

상품/주문/재고 각각 "가져오기 → 정규화 → 검증 → 저장"을 레코드 단위로 수행합니다.
레코드 하나의 실패는 errors[]에 기록되고 다음 레코드 처리를 막지 않습니다.
가져오기 자체가 실패하면(응답 구조 불일치, 재시도 소진) 해당 카테고리만 중단됩니다.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar, Iterable
import logging

from sqlalchemy.orm import Session

from inventory_sync.clients.base import MarketplaceClient
from inventory_sync.errors import InventorySyncError, ItemValidationError, is_retryable
from inventory_sync.models import Marketplace
from inventory_sync.normalizer import (
    InventoryRecord,
    OrderRecord,
    ProductRecord,
    record_identifier,
    validate_inventory,
    validate_order,
    validate_product,
)
from inventory_sync.persistence import (
    create_order,
    get_product_by_sku,
    record_unit,
    upsert_inventory,
    upsert_product,
)
from inventory_sync.schemas.marketplace import ChannelConfig
from inventory_sync.schemas.sync import SyncResult

logger = logging.getLogger(__name__)


@dataclass
class _Tally:
    synced: int = 0
    errors: list[str] = field(default_factory=list)
    retryable: int = 0

    def fail(self, entity: str, identifier: str, error: BaseException) -> None:
        reason = error.message if isinstance(error, InventorySyncError) else str(error)
        self.errors.append(f"Failed to sync {entity} {identifier}: {reason}")
        if is_retryable(error):
            self.retryable += 1


@dataclass
class CatalogSyncHandler:
    """
    카테고리별 동기화 루프. 마켓별 서브클래스는 필드 매핑만 구현합니다.

    map_products / map_inventory는 원본 1건에서 여러 레코드(variant)를 만들 수 있습니다.
    """

    session: Session
    marketplace: Marketplace
    client: MarketplaceClient
    config: ChannelConfig

    source_name: ClassVar[str] = "Marketplace"
    log_tag: ClassVar[str] = "[SYNC]"
    product_id_fields: ClassVar[tuple[str, ...]] = ("sku", "id", "name")
    order_id_fields: ClassVar[tuple[str, ...]] = ("orderNumber", "id")
    inventory_id_fields: ClassVar[tuple[str, ...]] = ("sku", "id")

    # ---- 마켓별 매핑 ---------------------------------------------------

    def map_products(self, raw: dict) -> list[ProductRecord]:
        raise NotImplementedError

    def map_order(self, raw: dict) -> OrderRecord:
        raise NotImplementedError

    def map_inventory(self, raw: dict) -> list[InventoryRecord]:
        raise NotImplementedError

    # ---- 공통 루프 -----------------------------------------------------

    def _abort(self, category: str, tally: _Tally, error: InventorySyncError) -> SyncResult:
        logger.error(f"{self.log_tag} {category} sync aborted: {error.message}")
        return SyncResult(
            success=False,
            message=f"Failed to sync {category} from {self.source_name}: {error.message}",
            synced_count=tally.synced,
            errors=[*tally.errors, error.message],
            category=category,
            retryable_errors=tally.retryable + (1 if is_retryable(error) else 0),
        )

    def _finish(self, category: str, tally: _Tally) -> SyncResult:
        suffix = f" ({len(tally.errors)} errors)" if tally.errors else ""
        logger.info(f"{self.log_tag} {category}: synced={tally.synced} errors={len(tally.errors)}")
        return SyncResult(
            success=True,
            message=f"Synced {tally.synced} {category} from {self.source_name}{suffix}",
            synced_count=tally.synced,
            errors=tally.errors,
            category=category,
            retryable_errors=tally.retryable,
        )

    def _map_each(self, entity: str, raw: Any, identifier: str, mapper, tally: _Tally) -> Iterable:
        if not isinstance(raw, dict):
            tally.fail(entity, identifier, ItemValidationError(f"Expected object, got {type(raw).__name__}"))
            return []
        try:
            return mapper(raw)
        except ItemValidationError as e:
            logger.error(f"{self.log_tag} {entity} {identifier}: {e.message}")
            tally.fail(entity, identifier, e)
        except (ValueError, TypeError, KeyError, AttributeError, ArithmeticError) as e:
            logger.exception(f"{self.log_tag} Failed to map {entity} {identifier}")
            tally.fail(entity, identifier, e)
        return []

    def sync_products(self, since: datetime | None = None) -> SyncResult:
        tally = _Tally()
        try:
            for raw in self.client.fetch_products(since):
                raw_id = record_identifier(raw, *self.product_id_fields)
                for record in self._map_each("product", raw, raw_id, self.map_products, tally):
                    identifier = record.sku or raw_id
                    try:
                        validate_product(record)
                        with record_unit(self.session, "upsert_product"):
                            upsert_product(self.session, record)
                        tally.synced += 1
                    except ItemValidationError as e:
                        logger.error(f"{self.log_tag} {e.message}")
                        tally.fail("product", identifier, e)
                    except InventorySyncError as e:
                        logger.error(f"{self.log_tag} Failed to sync product {identifier}: {e.message}")
                        tally.fail("product", identifier, e)
        except InventorySyncError as e:
            return self._abort("products", tally, e)
        return self._finish("products", tally)

    def sync_orders(self, since: datetime | None = None) -> SyncResult:
        tally = _Tally()
        try:
            for raw in self.client.fetch_orders(since):
                identifier = record_identifier(raw, *self.order_id_fields)
                for record in self._map_each("order", raw, identifier, lambda r: [self.map_order(r)], tally):
                    try:
                        validate_order(record)
                        with record_unit(self.session, "create_order"):
                            order = create_order(self.session, self.marketplace.id, record)
                        if order is not None:
                            tally.synced += 1
                    except InventorySyncError as e:
                        logger.error(f"{self.log_tag} Failed to sync order {identifier}: {e.message}")
                        tally.fail("order", identifier, e)
        except InventorySyncError as e:
            return self._abort("orders", tally, e)
        return self._finish("orders", tally)

    def sync_inventory(self, since: datetime | None = None) -> SyncResult:
        tally = _Tally()
        try:
            for raw in self.client.fetch_inventory(since):
                raw_id = record_identifier(raw, *self.inventory_id_fields)
                for record in self._map_each("inventory", raw, raw_id, self.map_inventory, tally):
                    identifier = record.sku or raw_id
                    try:
                        validate_inventory(record)
                        with record_unit(self.session, "upsert_inventory"):
                            product = get_product_by_sku(self.session, record.sku)
                            if product is None:
                                raise ItemValidationError(
                                    f"Product with SKU {record.sku} not found", identifier=record.sku
                                )
                            upsert_inventory(
                                self.session,
                                product.id,
                                self.marketplace.id,
                                record.quantity,
                                price=record.price,
                                threshold=self.config.low_stock_threshold,
                            )
                        tally.synced += 1
                    except InventorySyncError as e:
                        logger.error(f"{self.log_tag} Failed to sync inventory {identifier}: {e.message}")
                        tally.fail("inventory", identifier, e)
        except InventorySyncError as e:
            return self._abort("inventory", tally, e)
        return self._finish("inventory", tally)
