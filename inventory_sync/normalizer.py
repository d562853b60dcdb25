"""
Response normalization for marketplace payloads.

Marketplace APIs are not strictly contractual: the same endpoint may wrap its
list in ``{"products": [...]}``, ``{"data": [...]}``, ``{"items": [...]}`` or
return a bare array, and a record may call its title ``name``, ``title`` or
``productName``. Envelope extraction is an ordered list of explicit strategies
returning a tagged result; field mapping produces canonical records that the
persistence layer understands.
"""
import html
import logging
import math
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Sequence, Union

from inventory_sync.errors import ItemValidationError, ShapeMismatchError

logger = logging.getLogger(__name__)


# --------------------------------------------------------------------------
# Envelope strategies
# --------------------------------------------------------------------------

@dataclass(frozen=True)
class EnvelopeStrategy:
    name: str
    key: str | None  # None이면 최상위가 배열인 경우

    def extract(self, payload: Any) -> list | None:
        if self.key is None:
            return payload if isinstance(payload, list) else None
        if isinstance(payload, dict) and isinstance(payload.get(self.key), list):
            return payload[self.key]
        return None


@dataclass(frozen=True)
class Parsed:
    records: list
    strategy: str


@dataclass(frozen=True)
class ShapeMismatch:
    observed_keys: list[str]


ParseResult = Union[Parsed, ShapeMismatch]


def envelope_strategies(primary_key: str) -> tuple[EnvelopeStrategy, ...]:
    """엔티티 전용 키 → data → items → bare array 순서의 기본 전략"""
    return (
        EnvelopeStrategy(primary_key, primary_key),
        EnvelopeStrategy("data", "data"),
        EnvelopeStrategy("items", "items"),
        EnvelopeStrategy("bare_array", None),
    )


def strict_envelope(key: str) -> tuple[EnvelopeStrategy, ...]:
    return (EnvelopeStrategy(key, key),)


def extract_records(payload: Any, strategies: Sequence[EnvelopeStrategy]) -> ParseResult:
    """
    전략을 순서대로 시도합니다. 비어 있지 않은 목록을 주는 첫 전략이 이기고,
    모두 빈 목록이면 처음 매칭된 (빈) 결과를 돌려줍니다.
    """
    empty_match: Parsed | None = None
    for strategy in strategies:
        records = strategy.extract(payload)
        if records is None:
            continue
        if records:
            return Parsed(records=records, strategy=strategy.name)
        if empty_match is None:
            empty_match = Parsed(records=[], strategy=strategy.name)

    if empty_match is not None:
        return empty_match
    if isinstance(payload, dict):
        return ShapeMismatch(observed_keys=[str(k) for k in payload.keys()])
    return ShapeMismatch(observed_keys=[f"<{type(payload).__name__}>"])


def require_records(payload: Any, strategies: Sequence[EnvelopeStrategy], entity: str = "records") -> list:
    result = extract_records(payload, strategies)
    if isinstance(result, ShapeMismatch):
        logger.error(f"Unexpected {entity} response structure: {result.observed_keys}")
        raise ShapeMismatchError(result.observed_keys, entity=entity)
    logger.debug(f"Extracted {len(result.records)} {entity} using '{result.strategy}' envelope")
    return result.records


# --------------------------------------------------------------------------
# Field helpers
# --------------------------------------------------------------------------

def first_present(raw: dict, *names: str) -> Any:
    """None/빈 문자열이 아닌 첫 번째 필드 값을 반환"""
    for name in names:
        value = raw.get(name)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None


def clean_text(value: Any, max_length: int = 255) -> str:
    if value is None:
        return ""
    text = str(value).strip()
    return text[:max_length]


def parse_price(value: Any) -> float:
    """숫자/숫자 문자열을 float로. 파싱 불가 값은 0.0"""
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        try:
            number = float(str(value).replace(",", "").strip())
        except ValueError:
            return 0.0
    if math.isnan(number) or math.isinf(number):
        return 0.0
    return number


def parse_optional_price(value: Any) -> float | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    number = parse_price(value)
    return max(0.0, number)


def parse_quantity(value: Any, identifier: str | None = None) -> int:
    """정수 수량만 허용. 소수/무한대/NaN/숫자 아닌 값은 ItemValidationError"""
    if value is None:
        return 0
    invalid = ItemValidationError(f"Invalid quantity for {identifier}: {value!r}", identifier=identifier)
    if isinstance(value, bool):
        raise invalid
    if isinstance(value, int):
        return value
    try:
        number = float(str(value).strip())
    except ValueError:
        raise invalid
    if not math.isfinite(number) or not number.is_integer():
        raise invalid
    return int(number)


_TAG_RE = re.compile(r"<[^>]*>")


def strip_html(value: Any) -> str:
    if not value:
        return ""
    text = _TAG_RE.sub(" ", str(value))
    text = html.unescape(text)
    return re.sub(r"\s+", " ", text).strip()


def parse_timestamp(value: Any) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def join_address(parts: Iterable[Any]) -> str | None:
    text = ", ".join(str(p).strip() for p in parts if p and str(p).strip())
    return text or None


# --------------------------------------------------------------------------
# Status vocabularies
# --------------------------------------------------------------------------

PRODUCT_STATUS_MAP = {
    "active": "active",
    "live": "active",
    "inactive": "inactive",
    "draft": "inactive",
    "archived": "inactive",
    "discontinued": "discontinued",
}

MYNTRA_ORDER_STATUS_MAP = {
    "confirmed": "processing",
    "processing": "processing",
    "shipped": "shipped",
    "delivered": "delivered",
    "cancelled": "cancelled",
    "returned": "returned",
}

MYNTRA_PAYMENT_STATUS_MAP = {
    "paid": "paid",
    "success": "paid",
    "completed": "paid",
    "refunded": "refunded",
}

SHOPIFY_PAYMENT_STATUS_MAP = {
    "paid": "paid",
    "partially_paid": "paid",
    "refunded": "refunded",
    "partially_refunded": "refunded",
}

SHOPIFY_FULFILLMENT_STATUS_MAP = {
    "fulfilled": "delivered",
    "partial": "shipped",
    "restocked": "returned",
}


def map_status(value: Any, table: dict[str, str], default: str) -> str:
    if value is None:
        return default
    return table.get(str(value).strip().lower(), default)


def map_product_status(value: Any) -> str:
    return map_status(value, PRODUCT_STATUS_MAP, "active")


def map_shopify_order_status(fulfillment_status: Any, financial_status: Any) -> str:
    status = map_status(fulfillment_status, SHOPIFY_FULFILLMENT_STATUS_MAP, "")
    if status:
        return status
    if str(financial_status or "").lower() == "refunded":
        return "cancelled"
    return "pending"


# --------------------------------------------------------------------------
# Canonical records
# --------------------------------------------------------------------------

@dataclass(frozen=True)
class ProductRecord:
    name: str
    sku: str
    description: str = ""
    base_price: float = 0.0
    cost_price: float | None = None
    status: str = "active"


@dataclass(frozen=True)
class InventoryRecord:
    sku: str
    quantity: int
    price: float | None = None


@dataclass(frozen=True)
class OrderItemRecord:
    sku: str | None
    name: str | None
    quantity: int
    unit_price: float

    @property
    def total_price(self) -> float:
        return round(self.unit_price * self.quantity, 2)


@dataclass(frozen=True)
class OrderRecord:
    order_number: str
    customer_name: str
    status: str = "pending"
    payment_status: str = "pending"
    external_id: str | None = None
    customer_email: str | None = None
    customer_phone: str | None = None
    shipping_address: str | None = None
    subtotal: float = 0.0
    tax: float = 0.0
    shipping_cost: float = 0.0
    total: float = 0.0
    ordered_at: datetime | None = None
    notes: str | None = None
    items: tuple[OrderItemRecord, ...] = field(default_factory=tuple)


def validate_product(record: ProductRecord) -> ProductRecord:
    identifier = record.sku or record.name or None
    if not record.name or not record.sku:
        raise ItemValidationError(
            f'Product missing required fields: name="{record.name}", sku="{record.sku}"',
            identifier=identifier,
        )
    if record.base_price <= 0:
        raise ItemValidationError(
            f"Invalid price for product {record.sku}: {record.base_price}",
            identifier=record.sku,
        )
    return record


def validate_order(record: OrderRecord) -> OrderRecord:
    if not record.order_number:
        raise ItemValidationError("Order missing order number", identifier=record.external_id)
    for item in record.items:
        if item.quantity <= 0:
            raise ItemValidationError(
                f"Invalid quantity {item.quantity} for order item {item.sku} in order {record.order_number}",
                identifier=record.order_number,
            )
    return record


def validate_inventory(record: InventoryRecord) -> InventoryRecord:
    if not record.sku:
        raise ItemValidationError("Inventory record missing sku")
    if record.quantity < 0:
        raise ItemValidationError(
            f"Negative quantity {record.quantity} for SKU {record.sku}",
            identifier=record.sku,
        )
    return record


def record_identifier(raw: Any, *names: str) -> str:
    """오류 메시지에 사용할 레코드 식별자"""
    if isinstance(raw, dict):
        value = first_present(raw, *names)
        if value is not None:
            return str(value)
    return "Unknown"
