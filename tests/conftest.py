"""
Pytest configuration and fixtures for the iThink carrier gateway tests.

The provider is faked with httpx.MockTransport handlers; no test talks to the
network. Retry delays are zero so the 401 re-authentication loop runs instantly.
"""
from datetime import date, datetime, timezone
from typing import Callable

import httpx
import pytest

from ithink_gateway.core.config import CarrierConfig

LEGACY_BASE_URL = "https://legacy.ithink.test"
MODERN_BASE_URL = "https://itl.ithink.test"
FIXED_NOW = datetime(2026, 10, 19, 9, 30, tzinfo=timezone.utc)
FIXED_TODAY = date(2026, 10, 19)


class FixedClock:
    """Controllable clock for AuthSession expiry maths."""

    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def legacy_config() -> CarrierConfig:
    """Legacy mode with email/password login."""
    return CarrierConfig(
        legacy_base_url=LEGACY_BASE_URL,
        legacy_email="ops@example.com",
        legacy_password="s3cret",
        retry_delay_seconds=0,
    )


@pytest.fixture
def provisioned_config() -> CarrierConfig:
    """Legacy mode with a pre-issued token, so backends never log in."""
    return CarrierConfig(
        legacy_base_url=LEGACY_BASE_URL,
        legacy_email="ops@example.com",
        legacy_password="s3cret",
        legacy_token="pre-issued-token",
        retry_delay_seconds=0,
    )


@pytest.fixture
def modern_config() -> CarrierConfig:
    return CarrierConfig(
        modern_base_url=MODERN_BASE_URL,
        modern_access_token="access-123",
        modern_secret_key="secret-456",
        company_name="Acme Retail",
        default_pickup_pincode="110001",
        retry_delay_seconds=0,
    )


@pytest.fixture
def make_client() -> Callable[[Callable[[httpx.Request], httpx.Response]], httpx.AsyncClient]:
    """Build an AsyncClient whose requests are answered by a handler function."""
    def factory(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler), timeout=5.0)
    return factory


@pytest.fixture
def order_record() -> dict:
    """Storefront order record as produced by order management."""
    return {
        "id": 1001,
        "createdAt": "2026-10-18T14:05:00",
        "paymentMethod": "Cash on Delivery",
        "totalAmount": "₹1,250.00",
        "shippingAddress": "221B Baker Street, London, West Zone - 400001",
        "customer": {
            "firstName": "Asha",
            "lastName": "Rao",
            "email": "asha@example.com",
            "phone": "+91 98765 43210",
        },
        "items": [
            {"productId": 42, "productName": "Matte Lipstick (Shade: Ruby Red)", "quantity": 1, "price": "625"},
            {"productId": 42, "productName": "Matte Lipstick (Shade: Ruby Red)", "quantity": 1, "price": "625"},
        ],
    }


@pytest.fixture
def normalized_payload() -> dict:
    """NormalizedOrder.to_payload() shaped order, as sent to create_order."""
    return {
        "order_id": "1001",
        "order_date": "2026-10-18 14:05",
        "pickup_location": "Primary",
        "comment": "Online Store Order",
        "billing_customer_name": "Asha",
        "billing_last_name": "Rao",
        "billing_address": "221B Baker Street",
        "billing_address_2": "",
        "billing_city": "London",
        "billing_pincode": "400001",
        "billing_state": "West Zone",
        "billing_country": "India",
        "billing_email": "asha@example.com",
        "billing_phone": "9876543210",
        "shipping_is_billing": True,
        "order_items": [
            {"name": "Matte Lipstick", "sku": "SKU42-RUBY-RED", "units": 2, "selling_price": 625.0,
             "discount": 0.0, "tax": 0.0, "hsn": 610910},
        ],
        "payment_method": "COD",
        "shipping_charges": 0.0,
        "giftwrap_charges": 0.0,
        "transaction_charges": 0.0,
        "total_discount": 0.0,
        "sub_total": 1250.0,
        "length": 15.0,
        "breadth": 10.0,
        "height": 5.0,
        "weight": 1.0,
    }
