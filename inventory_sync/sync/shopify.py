from dataclasses import dataclass
from typing import ClassVar

from inventory_sync.clients.shopify import ShopifyClient
from inventory_sync.normalizer import (
    SHOPIFY_PAYMENT_STATUS_MAP,
    InventoryRecord,
    OrderItemRecord,
    OrderRecord,
    ProductRecord,
    clean_text,
    join_address,
    map_product_status,
    map_shopify_order_status,
    map_status,
    parse_optional_price,
    parse_price,
    parse_quantity,
    parse_timestamp,
    strip_html,
)
from inventory_sync.sync.base import CatalogSyncHandler


def _customer_name(order: dict) -> str:
    customer = order.get("customer") or {}
    name = " ".join(p for p in (customer.get("first_name"), customer.get("last_name")) if p).strip()
    return name or "Unknown Customer"


def _shipping_address(order: dict) -> str | None:
    address = order.get("shipping_address")
    if not isinstance(address, dict):
        return None
    region = " ".join(str(p) for p in (address.get("province"), address.get("zip")) if p)
    return join_address([address.get("address1"), address.get("city"), region, address.get("country")])


@dataclass
class ShopifySyncHandler(CatalogSyncHandler):
    client: ShopifyClient

    source_name: ClassVar[str] = "Shopify"
    log_tag: ClassVar[str] = "[SYNC:SHOPIFY]"
    product_id_fields: ClassVar[tuple[str, ...]] = ("id", "title")
    order_id_fields: ClassVar[tuple[str, ...]] = ("name", "order_number", "id")
    inventory_id_fields: ClassVar[tuple[str, ...]] = ("id", "title")

    def map_products(self, raw: dict) -> list[ProductRecord]:
        """
        variant마다 상품 1건. 첫 variant는 상품 제목을 그대로 쓰고,
        나머지는 "제목 - variant 제목" 형식입니다.
        """
        title = clean_text(raw.get("title"))
        description = strip_html(raw.get("body_html"))
        status = map_product_status(raw.get("status"))
        variants = [v for v in raw.get("variants") or [] if isinstance(v, dict)]
        if not variants:
            return [ProductRecord(name=title, sku="", description=description, status=status)]

        records = []
        for index, variant in enumerate(variants):
            variant_title = clean_text(variant.get("title"))
            name = title if index == 0 or not variant_title else clean_text(f"{title} - {variant_title}")
            records.append(
                ProductRecord(
                    name=name,
                    sku=clean_text(variant.get("sku")),
                    description=description,
                    base_price=parse_price(variant.get("price")),
                    cost_price=parse_optional_price(variant.get("compare_at_price")),
                    status=status,
                )
            )
        return records

    def map_order(self, raw: dict) -> OrderRecord:
        order_number = clean_text(raw.get("name") or raw.get("order_number") or raw.get("id"))
        items = tuple(
            OrderItemRecord(
                sku=clean_text(line.get("sku")) or None,
                name=clean_text(line.get("title") or line.get("name")) or None,
                quantity=parse_quantity(line.get("quantity", 1), order_number),
                unit_price=parse_price(line.get("price")),
            )
            for line in raw.get("line_items") or []
            if isinstance(line, dict)
        )
        shipping_cost = sum(parse_price(s.get("price")) for s in raw.get("shipping_lines") or [] if isinstance(s, dict))
        total = parse_price(raw.get("total_price"))
        return OrderRecord(
            order_number=order_number,
            external_id=clean_text(raw.get("id")) or None,
            customer_name=_customer_name(raw),
            customer_email=clean_text(raw.get("email") or (raw.get("customer") or {}).get("email")) or None,
            customer_phone=clean_text(raw.get("phone") or (raw.get("customer") or {}).get("phone")) or None,
            shipping_address=_shipping_address(raw),
            status=map_shopify_order_status(raw.get("fulfillment_status"), raw.get("financial_status")),
            payment_status=map_status(raw.get("financial_status"), SHOPIFY_PAYMENT_STATUS_MAP, "pending"),
            subtotal=parse_price(raw.get("subtotal_price")) if raw.get("subtotal_price") is not None else total,
            tax=parse_price(raw.get("total_tax")),
            shipping_cost=round(shipping_cost, 2),
            total=total,
            ordered_at=parse_timestamp(raw.get("created_at")),
            notes=f"Shopify Order ID: {raw['id']}" if raw.get("id") else None,
            items=items,
        )

    def map_inventory(self, raw: dict) -> list[InventoryRecord]:
        # SKU 없는 variant는 카탈로그와 연결할 수 없어 건너뛴다
        return [
            InventoryRecord(
                sku=clean_text(variant["sku"]),
                quantity=parse_quantity(variant.get("inventory_quantity"), variant["sku"]),
                price=parse_optional_price(variant.get("price")),
            )
            for variant in raw.get("variants") or []
            if isinstance(variant, dict) and variant.get("sku")
        ]
