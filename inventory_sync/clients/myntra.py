from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Iterator

from inventory_sync.clients.base import MarketplaceClient
from inventory_sync.errors import MarketplaceAPIError, TransientAPIError
from inventory_sync.normalizer import envelope_strategies
from inventory_sync.settings import settings

logger = logging.getLogger(__name__)

PRODUCT_ENVELOPES = envelope_strategies("products")
ORDER_ENVELOPES = envelope_strategies("orders")
INVENTORY_ENVELOPES = envelope_strategies("inventory")


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


class MyntraClient(MarketplaceClient):
    """
    Myntra Seller API 클라이언트.

    상품 endpoint는 판매자 계정마다 다르게 열려 있어 후보 경로를 순서대로 탐색하고,
    처음 응답한 경로를 인스턴스에 기억합니다.
    """

    marketplace_name = "Myntra"

    PRODUCT_ENDPOINTS = (
        "/products",
        "/merchant/{merchant_id}/products",
        "/catalog/products",
    )
    HEALTH_ENDPOINTS = (
        "/health",
        "/status",
        "/ping",
        "/api/health",
        "/merchant/{merchant_id}/status",
    )

    def __init__(
        self,
        merchant_id: str,
        secret_key: str,
        warehouse_id: str | None = None,
        base_url: str | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(base_url or settings.myntra_api_base_url, **kwargs)
        self._merchant_id = merchant_id
        self._secret_key = secret_key
        self.warehouse_id = warehouse_id or settings.myntra_default_warehouse_id
        self._products_endpoint: str | None = None

    def _auth_headers(self) -> dict[str, str]:
        return {
            "X-Merchant-Id": self._merchant_id,
            "X-API-Key": self._secret_key,
            "Authorization": f"Bearer {self._secret_key}",
        }

    def _candidates(self, templates: tuple[str, ...]) -> list[str]:
        return [t.format(merchant_id=self._merchant_id) for t in templates]

    def fetch_products(self, since: datetime | None = None) -> Iterator[dict]:
        params: dict[str, Any] = {"merchant_id": self._merchant_id}
        if since:
            params["updatedAfter"] = _iso(since)

        first_payload = None
        if self._products_endpoint is None:
            endpoint, first_payload = self.probe(
                self._candidates(self.PRODUCT_ENDPOINTS),
                params={**params, "page": 1, "pageSize": self.page_size},
            )
            logger.info(f"[SYNC:MYNTRA] using product endpoint {endpoint}")
            self._products_endpoint = endpoint

        yield from self.iter_page_numbers(
            self._products_endpoint, params, PRODUCT_ENVELOPES, "products", first_payload=first_payload
        )

    def fetch_orders(self, since: datetime | None = None) -> Iterator[dict]:
        params: dict[str, Any] = {"merchantId": self._merchant_id}
        if since:
            params["createdAfter"] = _iso(since)
        yield from self.iter_page_numbers("/orders", params, ORDER_ENVELOPES, "orders")

    def fetch_inventory(self, since: datetime | None = None) -> Iterator[dict]:
        params: dict[str, Any] = {"merchantId": self._merchant_id, "warehouseId": self.warehouse_id}
        if since:
            params["updatedAfter"] = _iso(since)
        yield from self.iter_page_numbers("/inventory", params, INVENTORY_ENVELOPES, "inventory")

    def update_inventory(self, sku: str, quantity: int) -> str:
        self.request(
            "POST",
            "/inventory/update",
            json={
                "merchantId": self._merchant_id,
                "warehouseId": self.warehouse_id,
                "sku": sku,
                "quantity": quantity,
            },
        )
        return f"Updated inventory for SKU {sku} to {quantity}"

    def get_product(self, sku: str) -> dict | None:
        try:
            data = self.request("GET", f"/products/{sku}", params={"merchantId": self._merchant_id})
        except TransientAPIError as e:
            if isinstance(e.last_error, MarketplaceAPIError) and e.last_error.status_code == 404:
                return None
            raise
        if isinstance(data, dict):
            return data.get("product") or data.get("data") or data or None
        return None

    def _health_probe(self) -> str:
        endpoint, _ = self.probe(self._candidates(self.HEALTH_ENDPOINTS))
        return f"Myntra API connection successful (endpoint: {endpoint})"
