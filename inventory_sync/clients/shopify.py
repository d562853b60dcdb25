from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Iterator

from inventory_sync.clients.base import MarketplaceClient
from inventory_sync.errors import MarketplaceAPIError
from inventory_sync.normalizer import strict_envelope
from inventory_sync.settings import settings

logger = logging.getLogger(__name__)

# Shopify Admin API는 envelope가 고정되어 있어 다른 구조를 허용하지 않는다
PRODUCT_ENVELOPES = strict_envelope("products")
ORDER_ENVELOPES = strict_envelope("orders")


def normalize_store_url(store_url: str) -> str:
    store = store_url.strip()
    for prefix in ("https://", "http://"):
        if store.startswith(prefix):
            store = store[len(prefix):]
    return store.rstrip("/")


class ShopifyClient(MarketplaceClient):
    marketplace_name = "Shopify"

    def __init__(
        self,
        store_url: str,
        admin_api_token: str,
        api_version: str | None = None,
        **kwargs: Any,
    ) -> None:
        self.store = normalize_store_url(store_url)
        self.api_version = api_version or settings.shopify_api_version
        super().__init__(f"https://{self.store}/admin/api/{self.api_version}", **kwargs)
        self._admin_api_token = admin_api_token

    def _auth_headers(self) -> dict[str, str]:
        return {"X-Shopify-Access-Token": self._admin_api_token}

    def fetch_products(self, since: datetime | None = None) -> Iterator[dict]:
        params: dict[str, Any] = {"limit": self.page_size}
        if since:
            params["updated_at_min"] = since.isoformat()
        yield from self.iter_link_pages("/products.json", params, PRODUCT_ENVELOPES, "products")

    def fetch_orders(self, since: datetime | None = None) -> Iterator[dict]:
        params: dict[str, Any] = {"limit": self.page_size, "status": "any"}
        if since:
            params["updated_at_min"] = since.isoformat()
        yield from self.iter_link_pages("/orders.json", params, ORDER_ENVELOPES, "orders")

    def fetch_inventory(self, since: datetime | None = None) -> Iterator[dict]:
        """
        variant 단위 재고는 상품 목록에 포함되어 있어 상품을 id/variants 필드만 받아옵니다.
        Shopify는 재고 변경만으로 updated_at이 바뀌지 않으므로 since는 사용하지 않습니다.
        """
        params: dict[str, Any] = {"limit": self.page_size, "fields": "id,title,variants"}
        yield from self.iter_link_pages("/products.json", params, PRODUCT_ENVELOPES, "products")

    def find_variant(self, sku: str) -> dict | None:
        for product in self.fetch_inventory():
            for variant in product.get("variants") or []:
                if variant.get("sku") == sku:
                    return variant
        return None

    def update_inventory(self, sku: str, quantity: int) -> str:
        variant = self.find_variant(sku)
        if variant is None:
            raise MarketplaceAPIError(f"Shopify variant with SKU {sku} not found", status_code=404)
        self.request(
            "PUT",
            f"/variants/{variant['id']}.json",
            json={"variant": {"id": variant["id"], "inventory_quantity": quantity}},
        )
        return f"Updated inventory for SKU {sku} to {quantity}"

    def get_product(self, sku: str) -> dict | None:
        params = {"limit": self.page_size, "fields": "id,title,body_html,status,variants,images"}
        for product in self.iter_link_pages("/products.json", params, PRODUCT_ENVELOPES, "products"):
            if any(v.get("sku") == sku for v in product.get("variants") or []):
                return product
        return None

    def _health_probe(self) -> str:
        data = self.request("GET", "/shop.json")
        shop = data.get("shop") if isinstance(data, dict) else None
        if not shop:
            raise MarketplaceAPIError("Invalid response from Shopify API: missing shop", url=self._url("/shop.json"))
        return f"Shopify connection successful ({shop.get('name') or self.store})"
