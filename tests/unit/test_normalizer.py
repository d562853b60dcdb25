"""
Response Normalizer 단위 테스트.
"""

import pytest

from inventory_sync.errors import ItemValidationError, ShapeMismatchError
from inventory_sync.normalizer import (
    Parsed,
    ProductRecord,
    ShapeMismatch,
    envelope_strategies,
    extract_records,
    first_present,
    map_product_status,
    map_shopify_order_status,
    parse_price,
    parse_quantity,
    parse_timestamp,
    require_records,
    strict_envelope,
    strip_html,
    validate_inventory,
    validate_product,
    InventoryRecord,
)

PRODUCTS = envelope_strategies("products")


@pytest.mark.unit
class TestEnvelopeExtraction:
    """envelope 전략 순서/태그 결과 테스트."""

    @pytest.mark.parametrize(
        "payload, strategy",
        [
            ({"products": [{"sku": "A"}]}, "products"),
            ({"data": [{"sku": "A"}]}, "data"),
            ({"items": [{"sku": "A"}]}, "items"),
            ([{"sku": "A"}], "bare_array"),
        ],
    )
    def test_known_envelopes(self, payload, strategy):
        result = extract_records(payload, PRODUCTS)
        assert isinstance(result, Parsed)
        assert result.strategy == strategy
        assert result.records == [{"sku": "A"}]

    def test_non_empty_list_wins_over_earlier_empty_one(self):
        result = extract_records({"products": [], "data": [{"sku": "B"}]}, PRODUCTS)
        assert result == Parsed(records=[{"sku": "B"}], strategy="data")

    def test_empty_envelope_is_still_a_match(self):
        result = extract_records({"products": []}, PRODUCTS)
        assert result == Parsed(records=[], strategy="products")

    def test_unknown_shape_reports_observed_keys(self):
        result = extract_records({"result": {"rows": []}, "meta": {}}, PRODUCTS)
        assert isinstance(result, ShapeMismatch)
        assert result.observed_keys == ["result", "meta"]

    def test_require_records_raises_with_keys_in_message(self):
        with pytest.raises(ShapeMismatchError) as excinfo:
            require_records({"result": [], "status": "ok"}, strict_envelope("products"), entity="products")
        assert excinfo.value.observed_keys == ["result", "status"]
        assert "Expected products array, got: result, status" in str(excinfo.value)

    def test_scalar_payload_is_a_mismatch(self):
        result = extract_records("oops", PRODUCTS)
        assert result == ShapeMismatch(observed_keys=["<str>"])


@pytest.mark.unit
class TestFieldHelpers:

    def test_first_present_skips_empty_values(self):
        raw = {"name": "", "title": None, "productName": "Kurta"}
        assert first_present(raw, "name", "title", "productName") == "Kurta"
        assert first_present(raw, "missing") is None

    @pytest.mark.parametrize(
        "value, expected",
        [(None, 0.0), ("12.50", 12.5), (7, 7.0), ("1,299.00", 1299.0), ("abc", 0.0), (True, 0.0)],
    )
    def test_parse_price(self, value, expected):
        assert parse_price(value) == expected

    def test_parse_quantity(self):
        assert parse_quantity("5") == 5
        assert parse_quantity(None) == 0
        assert parse_quantity(3.0) == 3
        with pytest.raises(ItemValidationError):
            parse_quantity("many", "SKU-1")

    @pytest.mark.parametrize("value", ["2.9", 2.5, float("inf"), "Infinity", "NaN", 1e400])
    def test_parse_quantity_rejects_non_integers(self, value):
        with pytest.raises(ItemValidationError):
            parse_quantity(value, "SKU-1")

    def test_strip_html(self):
        assert strip_html("<p>Soft &amp; warm</p><br/><b>cotton</b>") == "Soft & warm cotton"
        assert strip_html(None) == ""

    def test_parse_timestamp(self):
        parsed = parse_timestamp("2024-03-01T10:00:00Z")
        assert parsed.tzinfo is not None
        assert parsed.hour == 10
        assert parse_timestamp("not a date") is None


@pytest.mark.unit
class TestStatusMapping:

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("active", "active"),
            ("LIVE", "active"),
            ("draft", "inactive"),
            ("archived", "inactive"),
            ("discontinued", "discontinued"),
            ("something-new", "active"),
            (None, "active"),
        ],
    )
    def test_product_status(self, value, expected):
        assert map_product_status(value) == expected

    @pytest.mark.parametrize(
        "fulfillment, financial, expected",
        [
            ("fulfilled", "paid", "delivered"),
            ("partial", "paid", "shipped"),
            ("restocked", "refunded", "returned"),
            (None, "refunded", "cancelled"),
            (None, "paid", "pending"),
        ],
    )
    def test_shopify_order_status(self, fulfillment, financial, expected):
        assert map_shopify_order_status(fulfillment, financial) == expected


@pytest.mark.unit
class TestValidation:

    def test_valid_product_passes(self):
        record = ProductRecord(name="Kurta", sku="K-1", base_price=499.0)
        assert validate_product(record) is record

    def test_empty_sku_rejected(self):
        with pytest.raises(ItemValidationError) as excinfo:
            validate_product(ProductRecord(name="Kurta", sku="", base_price=499.0))
        assert excinfo.value.identifier == "Kurta"

    def test_non_positive_price_rejected(self):
        with pytest.raises(ItemValidationError) as excinfo:
            validate_product(ProductRecord(name="Kurta", sku="K-1", base_price=0))
        assert "Invalid price for product K-1" in excinfo.value.message

    def test_negative_inventory_rejected(self):
        with pytest.raises(ItemValidationError):
            validate_inventory(InventoryRecord(sku="K-1", quantity=-2))
