"""
Tests for OrderFormatConverter and its address/phone/SKU helpers.
"""
import json

import pytest

from ithink_gateway.core.config import CarrierConfig
from ithink_gateway.modules.shipping.order_format import (
    FALLBACK_CITY,
    FALLBACK_EMAIL,
    FALLBACK_PHONE,
    FALLBACK_PINCODE,
    FALLBACK_STATE,
    OrderFormatConverter,
    SkuAllocator,
    extract_shade,
    normalize_address_text,
    normalize_phone,
    parse_address,
    parse_price,
    slugify_shade,
    title_case_state,
)


class TestParseAddress:
    """Free-text address splitting."""

    def test_full_address_extracts_pincode_and_state(self):
        parsed = parse_address("221B Baker Street, London, West Zone - 400001")

        assert parsed.street == "221B Baker Street"
        assert parsed.city == "London"
        assert parsed.pincode == "400001"
        assert parsed.state == "West Zone"

    def test_middle_parts_are_ignored(self):
        parsed = parse_address("12 MG Road, Bengaluru, Near Metro, Karnataka 560001")

        assert parsed.street == "12 MG Road"
        assert parsed.city == "Bengaluru"
        assert parsed.state == "Karnataka"
        assert parsed.pincode == "560001"

    def test_last_part_without_pincode_is_state(self):
        parsed = parse_address("Flat 4, Pune, Maharashtra")

        assert parsed.state == "Maharashtra"
        assert parsed.pincode == ""

    def test_two_parts_are_street_and_city(self):
        parsed = parse_address("Flat 4, Pune")

        assert (parsed.street, parsed.city, parsed.state, parsed.pincode) == ("Flat 4", "Pune", "", "")

    def test_single_part_is_street(self):
        parsed = parse_address("Somewhere without commas")

        assert parsed.street == "Somewhere without commas"
        assert parsed.city == ""

    def test_empty_text(self):
        parsed = parse_address("")

        assert parsed.street == ""
        assert parsed.pincode == ""


class TestNormalizeAddressText:
    def test_multi_address_payload_uses_first_delivery_address(self):
        raw = json.dumps({"items": [{"deliveryAddress": "1 Park St, Kolkata, West Bengal 700016"}, {}]})

        assert normalize_address_text(raw) == "1 Park St, Kolkata, West Bengal 700016"

    def test_shipping_address_field(self):
        raw = json.dumps({"shippingAddress": "9 Lake Rd, Chennai, Tamil Nadu 600001"})

        assert normalize_address_text(raw) == "9 Lake Rd, Chennai, Tamil Nadu 600001"

    def test_broken_json_is_used_verbatim(self):
        assert normalize_address_text("{not json, Delhi") == "{not json, Delhi"

    def test_plain_text_is_trimmed(self):
        assert normalize_address_text("  5 Hill Rd, Mumbai  ") == "5 Hill Rd, Mumbai"

    @pytest.mark.parametrize("raw", [
        json.dumps(["Flat 1, MG Road, Pune, Maharashtra 411001"]),
        "[]",
    ])
    def test_json_array_is_ignored(self, raw):
        assert normalize_address_text(raw) == ""


class TestNormalizePhone:
    @pytest.mark.parametrize("raw,expected", [
        ("+91 98765 43210", "9876543210"),
        ("09876543210", "9876543210"),
        ("98765-43210", "9876543210"),
        ("12345", None),
        ("", None),
        (None, None),
    ])
    def test_normalize(self, raw, expected):
        assert normalize_phone(raw) == expected


class TestSkuGeneration:
    def test_slugify_shade(self):
        assert slugify_shade("Ruby red #2") == "RUBY-RED-2"
        assert len(slugify_shade("an extremely long shade name here")) == 18

    @pytest.mark.parametrize("item,expected", [
        ({"selectedShades": "Coral"}, "Coral"),
        ({"selectedShades": ["Nude", "Pink"]}, "Nude"),
        ({"selectedShades": [{"name": "Berry"}]}, "Berry"),
        ({"selectedShades": {"name": "Plum"}}, "Plum"),
        ({"productName": "Kajal (Shade: Jet Black)"}, "Jet Black"),
        ({"productName": "Kajal"}, None),
    ])
    def test_extract_shade(self, item, expected):
        assert extract_shade(item) == expected

    def test_identical_lines_get_distinct_skus(self):
        allocator = SkuAllocator()

        skus = [allocator.allocate("SKU42", "Ruby Red", index) for index in range(4)]

        assert skus[0] == "SKU42-RUBY-RED"
        assert skus[1] == "SKU42-RUBY-RED-01"
        assert len(set(skus)) == 4

    def test_counter_used_when_index_suffix_taken(self):
        allocator = SkuAllocator()
        allocator.allocate("SKU7-01")

        assert allocator.allocate("SKU7") == "SKU7"
        assert allocator.allocate("SKU7", index=1) == "SKU7-01-1"

    def test_long_collision_chain_stays_unique(self):
        allocator = SkuAllocator()
        allocator.allocate("SKU9")
        for counter in range(1, 60):
            allocator.allocate(f"SKU9-01-{counter}")
        allocator.allocate("SKU9-01")

        assert allocator.allocate("SKU9", index=1) == "SKU9-01-60"


class TestOrderFormatConverter:
    """End-to-end conversion of a storefront order record."""

    @pytest.fixture
    def converter(self):
        return OrderFormatConverter(CarrierConfig(channel_id="WEB", order_comment="Test order"))

    def test_converts_full_record(self, converter, order_record):
        order = converter.convert(order_record, pickup_location="Warehouse-1")

        assert order.order_id == "1001"
        assert order.order_date == "2026-10-18 14:05"
        assert order.pickup_location == "Warehouse-1"
        assert order.channel_id == "WEB"
        assert order.comment == "Test order"
        assert order.billing_address == "221B Baker Street"
        assert order.billing_city == "London"
        assert order.billing_state == "West Zone"
        assert order.billing_pincode == "400001"
        assert order.billing_phone == "9876543210"
        assert order.payment_method == "COD"
        assert order.sub_total == 1250.0
        assert (order.length, order.breadth, order.height) == (15.0, 10.0, 5.0)

    def test_line_items(self, converter, order_record):
        order = converter.convert(order_record)

        skus = [item.sku for item in order.order_items]
        assert skus == ["SKU42-RUBY-RED", "SKU42-RUBY-RED-01"]
        assert all(item.hsn == 610910 for item in order.order_items)
        assert order.order_items[0].selling_price == 625.0

    def test_weight_defaults_to_half_kg_per_unit(self, converter, order_record):
        order_record["items"][0]["quantity"] = 3

        order = converter.convert(order_record)

        assert order.weight == 2.0

    def test_explicit_weight_is_kept(self, converter, order_record):
        order_record["weight"] = 0.75

        assert converter.convert(order_record).weight == 0.75

    def test_prepaid_payment(self, converter, order_record):
        order_record["paymentMethod"] = "UPI"

        assert converter.convert(order_record).payment_method == "Prepaid"

    def test_bad_fields_fall_back_and_are_reported(self, converter, order_record):
        order_record["shippingAddress"] = "Plot 9, X, Y"
        order_record["customer"]["phone"] = "555"
        order_record["customer"]["email"] = ""

        order, fallbacks = converter.convert_with_diagnostics(order_record)

        assert order.billing_city == FALLBACK_CITY
        assert order.billing_state == FALLBACK_STATE
        assert order.billing_pincode == FALLBACK_PINCODE
        assert order.billing_phone == FALLBACK_PHONE
        assert order.billing_email == FALLBACK_EMAIL
        assert {f.field for f in fallbacks} == {"city", "state", "pincode", "phone", "email"}

    def test_short_street_uses_raw_address(self, converter, order_record):
        order_record["shippingAddress"] = "A1, Mumbai"

        order, fallbacks = converter.convert_with_diagnostics(order_record)

        assert order.billing_address == "A1, Mumbai"
        assert "street" in {f.field for f in fallbacks}

    def test_state_underscores_are_title_cased(self, converter, order_record):
        order_record["shippingAddress"] = "4 Ring Rd, Lucknow, UTTAR_PRADESH 226001"

        assert converter.convert(order_record).billing_state == "Uttar Pradesh"

    def test_json_array_address_uses_fallbacks(self, converter, order_record):
        order_record["shippingAddress"] = json.dumps(["Flat 1, MG Road, Pune, Maharashtra 411001"])

        order = converter.convert(order_record)

        assert order.billing_address == "Address Not Provided"
        assert order.billing_state == "Maharashtra"
        for value in (order.billing_address, order.billing_city, order.billing_state):
            assert "[" not in value and '"' not in value

    def test_clean_record_has_no_fallbacks(self, converter, order_record):
        _, fallbacks = converter.convert_with_diagnostics(order_record)

        assert fallbacks == []

    def test_missing_product_ids_still_unique(self, converter, order_record):
        for item in order_record["items"]:
            item.pop("productId")

        skus = [item.sku for item in converter.convert(order_record).order_items]

        assert len(set(skus)) == 2


def test_title_case_state():
    assert title_case_state("tamil_nadu") == "Tamil Nadu"


def test_parse_price_strips_currency():
    assert parse_price("₹1,499.50") == 1499.5
    assert parse_price("n/a") == 0.0
