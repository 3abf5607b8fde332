"""
Shipping Schemas for the iThink carrier gateway

Pydantic models for the normalized order sent to the provider. Field names
match the provider wire format so model_dump() is the request payload.
"""
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator
import re


PINCODE_PATTERN = re.compile(r"^\d{6}$")
PHONE_PATTERN = re.compile(r"^\d{10}$")


class OrderItem(BaseModel):
    """A single order line."""
    name: str = Field(..., min_length=1, max_length=50)
    sku: str = Field(..., min_length=1)
    units: int = Field(1, ge=1)
    selling_price: float = 0.0
    discount: float = 0.0
    tax: float = 0.0
    hsn: Optional[int] = None


class NormalizedOrder(BaseModel):
    """Order in the provider schema, built by OrderFormatConverter."""
    order_id: str
    order_date: str
    pickup_location: str = "Primary"
    channel_id: Optional[str] = None
    comment: str = ""

    billing_customer_name: str
    billing_last_name: str
    billing_address: str = Field(..., max_length=100)
    billing_address_2: str = ""
    billing_city: str
    billing_pincode: str
    billing_state: str
    billing_country: str = "India"
    billing_email: str
    billing_phone: str
    shipping_is_billing: bool = True

    order_items: List[OrderItem] = []

    payment_method: Literal["COD", "Prepaid"] = "Prepaid"
    shipping_charges: float = 0.0
    giftwrap_charges: float = 0.0
    transaction_charges: float = 0.0
    total_discount: float = 0.0
    sub_total: float = 0.0

    length: float = 0.0
    breadth: float = 0.0
    height: float = 0.0
    weight: float = 0.5

    @field_validator("billing_pincode")
    @classmethod
    def validate_pincode(cls, v):
        if not PINCODE_PATTERN.match(v):
            raise ValueError("Pincode must be exactly 6 digits")
        return v

    @field_validator("billing_phone")
    @classmethod
    def validate_phone(cls, v):
        if not PHONE_PATTERN.match(v):
            raise ValueError("Phone number must be exactly 10 digits")
        return v

    @field_validator("order_items")
    @classmethod
    def validate_unique_skus(cls, v):
        skus = [item.sku for item in v]
        if len(skus) != len(set(skus)):
            raise ValueError("SKU must be unique within an order")
        return v

    @property
    def is_cod(self) -> bool:
        return self.payment_method == "COD"

    def to_payload(self) -> Dict[str, Any]:
        """Provider request body."""
        return self.model_dump(exclude_none=True)


class FieldFallback(BaseModel):
    """One defaulting decision taken while normalizing an order."""
    field: str
    original: Optional[str] = None
    replacement: str
    reason: str
