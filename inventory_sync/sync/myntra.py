from dataclasses import dataclass
from typing import Any, ClassVar

from inventory_sync.clients.myntra import MyntraClient
from inventory_sync.normalizer import (
    MYNTRA_ORDER_STATUS_MAP,
    MYNTRA_PAYMENT_STATUS_MAP,
    InventoryRecord,
    OrderItemRecord,
    OrderRecord,
    ProductRecord,
    clean_text,
    first_present,
    join_address,
    map_product_status,
    map_status,
    parse_optional_price,
    parse_price,
    parse_quantity,
    parse_timestamp,
)
from inventory_sync.sync.base import CatalogSyncHandler


def _address(value: Any) -> str | None:
    if isinstance(value, dict):
        return join_address(
            [
                first_present(value, "line1", "address1", "addressLine1"),
                first_present(value, "line2", "address2"),
                value.get("city"),
                " ".join(str(p) for p in (value.get("state"), first_present(value, "pincode", "zip")) if p),
                value.get("country"),
            ]
        )
    return clean_text(value, 1000) or None


@dataclass
class MyntraSyncHandler(CatalogSyncHandler):
    client: MyntraClient

    source_name: ClassVar[str] = "Myntra"
    log_tag: ClassVar[str] = "[SYNC:MYNTRA]"
    product_id_fields: ClassVar[tuple[str, ...]] = ("sku", "productCode", "id", "name", "title")
    order_id_fields: ClassVar[tuple[str, ...]] = ("orderNumber", "orderId", "id")
    inventory_id_fields: ClassVar[tuple[str, ...]] = ("sku", "skuCode", "id")

    def map_products(self, raw: dict) -> list[ProductRecord]:
        """
        상품 1건 + variants/sizes/options 각각을 별도 상품(SKU)으로 매핑합니다.
        """
        parent = ProductRecord(
            name=clean_text(first_present(raw, "name", "title", "productName")),
            sku=clean_text(first_present(raw, "sku", "productCode", "id")),
            description=clean_text(first_present(raw, "description", "shortDescription"), 10000),
            base_price=parse_price(first_present(raw, "price", "mrp", "sellingPrice")),
            cost_price=parse_optional_price(raw.get("costPrice")),
            status=map_product_status(first_present(raw, "status", "state")),
        )
        records = [parent]

        variants = first_present(raw, "variants", "sizes", "options")
        if isinstance(variants, list):
            for variant in variants:
                if not isinstance(variant, dict):
                    continue
                label = first_present(variant, "size", "color", "name", "id")
                variant_price = parse_price(first_present(variant, "price", "mrp", "sellingPrice"))
                records.append(
                    ProductRecord(
                        name=clean_text(f"{parent.name} - {label}" if label else parent.name),
                        sku=clean_text(first_present(variant, "sku", "skuCode")),
                        description=parent.description,
                        base_price=variant_price or parent.base_price,
                        cost_price=parent.cost_price,
                        status="active",
                    )
                )
        return records

    def map_order(self, raw: dict) -> OrderRecord:
        order_number = clean_text(first_present(raw, "orderNumber", "orderId", "id"))
        customer = raw.get("customer") if isinstance(raw.get("customer"), dict) else {}

        items = []
        for line in first_present(raw, "items", "orderItems", "lineItems") or []:
            if not isinstance(line, dict):
                continue
            items.append(
                OrderItemRecord(
                    sku=clean_text(first_present(line, "sku", "skuCode")) or None,
                    name=clean_text(first_present(line, "name", "productName", "title")) or None,
                    quantity=parse_quantity(line.get("quantity", 1), order_number),
                    unit_price=parse_price(first_present(line, "price", "unitPrice", "sellingPrice")),
                )
            )

        total = parse_price(first_present(raw, "total", "totalAmount", "orderTotal"))
        subtotal_raw = first_present(raw, "subtotal", "subTotal")
        tax_raw = first_present(raw, "tax", "taxAmount")
        return OrderRecord(
            order_number=order_number,
            external_id=clean_text(raw.get("id")) or None,
            customer_name=clean_text(first_present(customer, "name", "fullName")) or "Unknown Customer",
            customer_email=clean_text(customer.get("email")) or None,
            customer_phone=clean_text(customer.get("phone")) or None,
            shipping_address=_address(first_present(raw, "shippingAddress", "address") or customer.get("address")),
            status=map_status(first_present(raw, "status", "orderStatus"), MYNTRA_ORDER_STATUS_MAP, "pending"),
            payment_status=map_status(raw.get("paymentStatus"), MYNTRA_PAYMENT_STATUS_MAP, "pending"),
            subtotal=parse_price(subtotal_raw) if subtotal_raw is not None else total,
            tax=parse_price(tax_raw),
            shipping_cost=parse_price(first_present(raw, "shippingCharge", "shippingCost")),
            total=total,
            ordered_at=parse_timestamp(first_present(raw, "createdAt", "orderDate")),
            notes=f"Myntra Order ID: {raw['id']}" if raw.get("id") else None,
            items=tuple(items),
        )

    def map_inventory(self, raw: dict) -> list[InventoryRecord]:
        sku = clean_text(first_present(raw, "sku", "skuCode"))
        return [
            InventoryRecord(
                sku=sku,
                quantity=parse_quantity(first_present(raw, "quantity", "availableQuantity", "inventory"), sku),
                price=parse_optional_price(first_present(raw, "price", "sellingPrice")),
            )
        ]
