"""
Shopify 카테고리 동기화 통합 테스트.
"""

from datetime import datetime, timezone

import pytest
from sqlalchemy import func, select

from conftest import SHOPIFY_BASE, make_stocked_product, reply
from inventory_sync.channels import build_channel
from inventory_sync.models import Inventory, Order, OrderItem, Product

PRODUCTS = f"{SHOPIFY_BASE}/products.json"
ORDERS = f"{SHOPIFY_BASE}/orders.json"

HOODIE = {
    "id": 1001,
    "title": "Hoodie",
    "body_html": "<p>Warm &amp; soft</p>",
    "status": "active",
    "variants": [
        {"id": 11, "title": "Small", "sku": "HOOD-S", "price": "39.00", "inventory_quantity": 4},
        {"id": 12, "title": "Large", "sku": "HOOD-L", "price": "42.00", "compare_at_price": "50.00", "inventory_quantity": 30},
        {"id": 13, "title": "Sample", "sku": "", "price": "0.00", "inventory_quantity": 1},
    ],
}


@pytest.fixture
def channel(test_session, shopify_marketplace, client_options):
    return build_channel(test_session, shopify_marketplace, **client_options)


@pytest.mark.integration
class TestShopifyProducts:

    def test_one_product_per_variant(self, channel, fake_api, test_session):
        fake_api.on("GET", PRODUCTS, reply(200, {"products": [HOODIE]}))

        result = channel.handler.sync_products()

        assert result.synced_count == 2
        assert len(result.errors) == 1
        products = {p.sku: p for p in test_session.scalars(select(Product))}
        assert products["HOOD-S"].name == "Hoodie"
        assert products["HOOD-L"].name == "Hoodie - Large"
        assert products["HOOD-L"].cost_price == 50.0
        assert products["HOOD-S"].description == "Warm & soft"

    def test_product_without_variants_is_rejected(self, channel, fake_api, test_session):
        fake_api.on("GET", PRODUCTS, reply(200, {"products": [{"id": 7, "title": "Gift Card", "variants": []}]}))

        result = channel.handler.sync_products()

        assert result.synced_count == 0
        assert result.errors[0].startswith("Failed to sync product 7:")
        assert test_session.scalar(select(func.count()).select_from(Product)) == 0

    def test_requests_carry_limit_and_since(self, channel, fake_api):
        fake_api.on("GET", PRODUCTS, reply(200, {"products": []}))

        channel.handler.sync_products(datetime(2024, 1, 2, tzinfo=timezone.utc))

        params = fake_api.calls[0].url.params
        assert params["limit"] == "250"
        assert params["updated_at_min"] == "2024-01-02T00:00:00+00:00"

    def test_data_envelope_is_not_accepted(self, channel, fake_api):
        fake_api.on("GET", PRODUCTS, reply(200, {"data": [HOODIE]}))

        result = channel.handler.sync_products()

        assert result.success is False
        assert "Expected products array, got: data" in result.message


@pytest.mark.integration
class TestShopifyOrders:

    ORDER = {
        "id": 5001,
        "name": "#1001",
        "email": "kim@example.com",
        "financial_status": "paid",
        "fulfillment_status": "fulfilled",
        "subtotal_price": "81.00",
        "total_tax": "8.10",
        "total_price": "99.10",
        "created_at": "2024-02-10T09:30:00-05:00",
        "customer": {"first_name": "Min", "last_name": "Kim"},
        "shipping_address": {"address1": "1 Main St", "city": "Austin", "province": "TX", "zip": "78701", "country": "US"},
        "shipping_lines": [{"price": "5.00"}, {"price": "5.00"}],
        "line_items": [
            {"sku": "HOOD-S", "title": "Hoodie", "quantity": 1, "price": "39.00"},
            {"sku": "HOOD-L", "title": "Hoodie", "quantity": 1, "price": "42.00"},
        ],
    }

    def test_order_mapping(self, channel, fake_api, test_session, shopify_marketplace):
        make_stocked_product(test_session, shopify_marketplace, sku="HOOD-S")
        fake_api.on("GET", ORDERS, reply(200, {"orders": [self.ORDER]}))

        result = channel.handler.sync_orders()

        assert result.synced_count == 1
        order = test_session.scalars(select(Order)).one()
        assert order.order_number == "#1001"
        assert order.customer_name == "Min Kim"
        assert order.status == "delivered"
        assert order.payment_status == "paid"
        assert order.subtotal == 81.0
        assert order.tax == 8.1
        assert order.shipping_cost == 10.0
        assert order.total == 99.1
        assert order.shipping_address == "1 Main St, Austin, TX 78701, US"
        assert order.notes == "Shopify Order ID: 5001"
        assert test_session.scalar(select(func.count()).select_from(OrderItem)) == 2

    def test_orders_request_all_statuses(self, channel, fake_api):
        fake_api.on("GET", ORDERS, reply(200, {"orders": []}))

        channel.handler.sync_orders()

        assert fake_api.calls[0].url.params["status"] == "any"

    def test_guest_checkout_defaults(self, channel, fake_api, test_session):
        guest = {"id": 5002, "name": "#1002", "total_price": "10.00", "line_items": []}
        fake_api.on("GET", ORDERS, reply(200, {"orders": [guest]}))

        channel.handler.sync_orders()

        order = test_session.scalars(select(Order)).one()
        assert order.customer_name == "Unknown Customer"
        assert order.status == "pending"
        assert order.subtotal == 10.0

    def test_malformed_line_item_is_item_error(self, channel, fake_api, test_session):
        orders = [
            {"id": 1, "name": "#1", "total_price": "10.00", "line_items": [{"sku": "A", "quantity": 1, "price": "10.00"}]},
            {"id": 2, "name": "#2", "total_price": "10.00", "line_items": [{"sku": "A", "quantity": "lots", "price": "10.00"}]},
            {"id": 3, "name": "#3", "total_price": "10.00", "line_items": [{"sku": "A", "quantity": 1, "price": "10.00"}]},
        ]
        fake_api.on("GET", ORDERS, reply(200, {"orders": orders}))

        result = channel.handler.sync_orders()

        assert result.success is True
        assert result.synced_count == 2
        assert len(result.errors) == 1
        assert result.errors[0].startswith("Failed to sync order #2:")
        assert {o.order_number for o in test_session.scalars(select(Order))} == {"#1", "#3"}


@pytest.mark.integration
class TestShopifyInventory:

    def test_fractional_variant_quantity_is_item_error(self, channel, fake_api, test_session, shopify_marketplace):
        """변환에 실패한 상품만 오류가 되고 다음 상품은 계속 처리된다."""
        for sku in ("V-1", "V-2", "V-3"):
            make_stocked_product(test_session, shopify_marketplace, sku=sku, quantity=0)
        products = [
            {"id": 1, "title": "Socks", "variants": [{"id": 1, "sku": "V-1", "price": "5.00", "inventory_quantity": 3}]},
            {"id": 2, "title": "Gloves", "variants": [{"id": 2, "sku": "V-2", "price": "5.00", "inventory_quantity": 2.5}]},
            {"id": 3, "title": "Scarf", "variants": [{"id": 3, "sku": "V-3", "price": "5.00", "inventory_quantity": 9}]},
        ]
        fake_api.on("GET", PRODUCTS, reply(200, {"products": products}))

        result = channel.handler.sync_inventory()

        assert result.success is True
        assert result.synced_count == 2
        assert result.errors == ["Failed to sync inventory 2: Invalid quantity for V-2: 2.5"]

    def test_variant_quantities(self, channel, fake_api, test_session, shopify_marketplace):
        make_stocked_product(test_session, shopify_marketplace, sku="HOOD-S", quantity=0)
        make_stocked_product(test_session, shopify_marketplace, sku="HOOD-L", quantity=0)
        fake_api.on("GET", PRODUCTS, reply(200, {"products": [HOODIE]}))

        result = channel.handler.sync_inventory()

        assert result.synced_count == 2
        assert result.errors == []
        rows = {
            sku: inventory
            for sku, inventory in test_session.execute(
                select(Product.sku, Inventory).join(Inventory, Inventory.product_id == Product.id)
            )
        }
        assert rows["HOOD-S"].quantity == 4
        assert rows["HOOD-S"].status == "low_stock"
        assert rows["HOOD-L"].status == "in_stock"
        assert rows["HOOD-L"].price == 42.0
        assert fake_api.calls[0].url.params["fields"] == "id,title,variants"

    def test_push_updates_variant(self, channel, fake_api):
        fake_api.on("GET", f"{SHOPIFY_BASE}/shop.json", reply(200, {"shop": {"name": "Test"}}))
        fake_api.on("GET", PRODUCTS, reply(200, {"products": [HOODIE]}))
        fake_api.on("PUT", f"{SHOPIFY_BASE}/variants/12.json", reply(200, {"variant": {"id": 12}}))

        result = channel.update_inventory("HOOD-L", 17)

        assert result.success is True
        assert result.message == "Updated inventory for SKU HOOD-L to 17"
        put = [c for c in fake_api.calls if c.method == "PUT"][0]
        assert b'"inventory_quantity":17' in put.content.replace(b" ", b"")

    def test_push_unknown_sku(self, channel, fake_api):
        fake_api.on("GET", f"{SHOPIFY_BASE}/shop.json", reply(200, {"shop": {"name": "Test"}}))
        fake_api.on("GET", PRODUCTS, reply(200, {"products": [HOODIE]}))

        result = channel.update_inventory("NOPE", 1)

        assert result.success is False
        assert "Shopify variant with SKU NOPE not found" in result.message
