"""
Order Format Converter

Turns an internal order record (customer, items, free-text shipping address,
totals, payment method, timestamps) into the provider order schema.

Bad address or contact data never blocks order creation: each field is
defaulted independently and every defaulting decision is logged and returned
as a FieldFallback.
"""
import json
import logging
import re
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, List, Mapping, Optional, Sequence, Set, Tuple

from ithink_gateway.core.config import CarrierConfig
from ithink_gateway.schemas.shipping import FieldFallback, NormalizedOrder, OrderItem

logger = logging.getLogger(__name__)

FALLBACK_STREET = "Address Not Provided"
FALLBACK_CITY = "Mumbai"
FALLBACK_STATE = "Maharashtra"
FALLBACK_PINCODE = "400001"
FALLBACK_PHONE = "9999999999"
FALLBACK_EMAIL = "customer@example.com"
FALLBACK_FIRST_NAME = "Customer"
FALLBACK_LAST_NAME = "Name"
DEFAULT_COUNTRY = "India"
DEFAULT_HSN_CODE = 610910

MAX_STREET_LENGTH = 100
MAX_ITEM_NAME_LENGTH = 50
MAX_SHADE_SLUG_LENGTH = 18
WEIGHT_PER_UNIT_KG = 0.5

PINCODE_SEARCH = re.compile(r"\b\d{6}\b")
PINCODE_EXACT = re.compile(r"^\d{6}$")
SHADE_IN_NAME = re.compile(r"\(\s*shade\s*:\s*([^)]+)\)", re.IGNORECASE)
COD_LABELS = {"cod", "cash on delivery"}


@dataclass
class ParsedAddress:
    street: str = ""
    city: str = ""
    state: str = ""
    pincode: str = ""


# ==================== Address ====================


def normalize_address_text(raw: Any) -> str:
    """
    Reduce a stored shipping address to plain text.

    Addresses may be stored as JSON: a multi-address payload
    ({"items": [{"deliveryAddress": ...}]}) or an object with a
    shippingAddress/address field. JSON that is not an object yields "".
    Anything unparseable is used verbatim.
    """
    if raw is None or raw == "":
        return ""
    if isinstance(raw, Mapping):
        return _address_from_payload(raw)
    if not isinstance(raw, str):
        return str(raw)

    trimmed = raw.strip()
    if trimmed.startswith("{") or trimmed.startswith("["):
        try:
            parsed = json.loads(trimmed)
        except ValueError:
            logger.debug("Shipping address looks like JSON but does not parse, using raw text")
            return trimmed
        if isinstance(parsed, Mapping):
            return _address_from_payload(parsed)
        logger.debug("Shipping address JSON is not an object, ignoring it")
        return ""
    return trimmed


def _address_from_payload(payload: Mapping) -> str:
    items = payload.get("items")
    if isinstance(items, list) and items:
        first = items[0] if isinstance(items[0], Mapping) else {}
        return str(first.get("deliveryAddress") or first.get("address") or "").strip()
    return str(payload.get("shippingAddress") or payload.get("address") or "").strip()


def parse_address(text: str) -> ParsedAddress:
    """
    Split a comma separated address.

    3+ parts: street, city, ..., "<state> <pincode>"
    2 parts:  street, city
    1 part:   street
    """
    parsed = ParsedAddress()
    if not text:
        return parsed

    parts = [p.strip() for p in text.split(",") if p.strip()]

    if len(parts) >= 3:
        parsed.street = parts[0]
        parsed.city = parts[1]
        last = parts[-1]
        match = PINCODE_SEARCH.search(last)
        if match:
            parsed.pincode = match.group(0)
            remainder = last.replace(parsed.pincode, "", 1).strip()
            parsed.state = re.sub(r"\s*-\s*", " ", remainder).strip()
        else:
            parsed.state = last
    elif len(parts) == 2:
        parsed.street, parsed.city = parts
    elif len(parts) == 1:
        parsed.street = parts[0]

    return parsed


def title_case_state(state: str) -> str:
    words = state.replace("_", " ").split(" ")
    return " ".join(w[:1].upper() + w[1:].lower() for w in words if w)


def normalize_phone(phone: Any) -> Optional[str]:
    """Return a 10 digit Indian mobile number, or None when it can't be made one."""
    digits = re.sub(r"\D", "", str(phone or ""))
    if len(digits) == 12 and digits.startswith("91"):
        digits = digits[2:]
    elif len(digits) == 11 and digits.startswith("0"):
        digits = digits[1:]
    return digits if re.fullmatch(r"\d{10}", digits) else None


# ==================== SKU ====================


def slugify_shade(value: Any) -> str:
    slug = str(value or "").strip().upper()
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"[^A-Z0-9\-]", "", slug)
    return slug[:MAX_SHADE_SLUG_LENGTH]


def _shade_from_mapping(value: Mapping) -> Optional[str]:
    for key in ("name", "shade", "value", "label"):
        if value.get(key):
            return str(value[key])
    return None


def extract_shade(item: Mapping) -> Optional[str]:
    """Shade/variant of a line item, from selectedShades or a "(Shade: x)" name suffix."""
    shades = item.get("selectedShades", item.get("selected_shades"))
    if isinstance(shades, str) and shades.strip():
        return shades.strip()
    if isinstance(shades, (list, tuple)) and shades:
        first = shades[0]
        if isinstance(first, str):
            return first
        if isinstance(first, Mapping):
            return _shade_from_mapping(first)
    elif isinstance(shades, Mapping):
        return _shade_from_mapping(shades)

    name = str(item.get("productName") or item.get("name") or "")
    match = SHADE_IN_NAME.search(name)
    if match:
        return match.group(1).strip()
    return None


class SkuAllocator:
    """Hands out SKUs that are unique within one order."""

    def __init__(self):
        self._used: Set[str] = set()

    def allocate(self, base_sku: str, shade: Optional[str] = None, index: int = 0) -> str:
        sku = base_sku
        shade_slug = slugify_shade(shade) if shade else ""
        if shade_slug:
            sku = f"{base_sku}-{shade_slug}"

        if sku not in self._used:
            self._used.add(sku)
            return sku

        seed = f"{index:02d}"
        candidate = f"{sku}-{seed}"
        counter = 0
        while candidate in self._used:
            counter += 1
            candidate = f"{sku}-{seed}-{counter}"
        self._used.add(candidate)
        return candidate


# ==================== Converter ====================


def _pick(record: Mapping, *keys: str, default: Any = None) -> Any:
    for key in keys:
        value = record.get(key)
        if value is not None and value != "":
            return value
    return default


def parse_price(value: Any) -> float:
    if isinstance(value, str):
        value = re.sub(r"[₹,\s]", "", value)
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def parse_quantity(value: Any) -> int:
    try:
        quantity = int(float(value))
    except (TypeError, ValueError):
        return 1
    return quantity if quantity > 0 else 1


def parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000 if value > 1e11 else value)
    if isinstance(value, str) and value.strip():
        try:
            return datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            pass
    return datetime.now()


class OrderFormatConverter:
    """
    Internal order record -> NormalizedOrder.

    Accepts the storefront's camelCase keys (customer.firstName, items[].productId,
    shippingAddress, totalAmount, paymentMethod, createdAt) and their snake_case
    equivalents.
    """

    def __init__(self, config: Optional[CarrierConfig] = None):
        self.config = config or CarrierConfig()

    def convert(self, order: Mapping, pickup_location: str = "Primary") -> NormalizedOrder:
        normalized, _ = self.convert_with_diagnostics(order, pickup_location)
        return normalized

    def convert_with_diagnostics(
        self,
        order: Mapping,
        pickup_location: str = "Primary",
    ) -> Tuple[NormalizedOrder, List[FieldFallback]]:
        fallbacks: List[FieldFallback] = []
        order_id = str(_pick(order, "id", "order_id", default=""))

        def fallback(field: str, original: Any, replacement: str, reason: str) -> str:
            entry = FieldFallback(
                field=field,
                original=None if original is None else str(original),
                replacement=replacement,
                reason=reason,
            )
            fallbacks.append(entry)
            logger.warning(
                f"Order {order_id}: {field} {reason}, using '{replacement}'",
                extra=entry.model_dump(),
            )
            return replacement

        customer = order.get("customer") or {}
        items = order.get("items") or []

        address_text = normalize_address_text(_pick(order, "shippingAddress", "shipping_address"))
        parsed = parse_address(address_text)

        street = parsed.street.strip()
        if len(street) < 3:
            street = fallback(
                "street", parsed.street, address_text or FALLBACK_STREET, "shorter than 3 characters"
            )
        street = street[:MAX_STREET_LENGTH]

        city = parsed.city.strip()
        if len(city) < 3:
            city = fallback("city", parsed.city, FALLBACK_CITY, "shorter than 3 characters")

        state = parsed.state.strip()
        if len(state) < 3:
            state = fallback("state", parsed.state, FALLBACK_STATE, "shorter than 3 characters")
        state = title_case_state(state)

        pincode = parsed.pincode
        if not PINCODE_EXACT.match(pincode or ""):
            pincode = fallback("pincode", parsed.pincode, FALLBACK_PINCODE, "is not 6 digits")

        raw_phone = _pick(customer, "phone")
        phone = normalize_phone(raw_phone)
        if phone is None:
            phone = fallback("phone", raw_phone, FALLBACK_PHONE, "is not a 10 digit number")

        email = str(_pick(customer, "email", default="")).strip()
        if not email:
            email = fallback("email", None, FALLBACK_EMAIL, "is blank")

        first_name = str(_pick(customer, "firstName", "first_name", default=FALLBACK_FIRST_NAME)).strip()
        last_name = str(_pick(customer, "lastName", "last_name", default=FALLBACK_LAST_NAME)).strip()

        order_items = self._convert_items(items)

        weight = _pick(order, "weight")
        if weight is None:
            weight = sum(WEIGHT_PER_UNIT_KG * parse_quantity(_pick(i, "quantity")) for i in items)

        payment_label = str(_pick(order, "paymentMethod", "payment_method", default="")).strip().lower()

        normalized = NormalizedOrder(
            order_id=order_id,
            order_date=parse_timestamp(_pick(order, "createdAt", "created_at")).strftime("%Y-%m-%d %H:%M"),
            pickup_location=pickup_location,
            channel_id=self.config.channel_id or None,
            comment=self.config.order_comment,
            billing_customer_name=first_name or FALLBACK_FIRST_NAME,
            billing_last_name=last_name or FALLBACK_LAST_NAME,
            billing_address=street,
            billing_city=city,
            billing_pincode=pincode,
            billing_state=state,
            billing_country=DEFAULT_COUNTRY,
            billing_email=email,
            billing_phone=phone,
            order_items=order_items,
            payment_method="COD" if payment_label in COD_LABELS else "Prepaid",
            sub_total=parse_price(_pick(order, "totalAmount", "total_amount", default=0)),
            length=self.config.package_length_cm,
            breadth=self.config.package_breadth_cm,
            height=self.config.package_height_cm,
            weight=float(weight),
        )

        logger.info(
            f"Normalized order {order_id}: {len(order_items)} items, "
            f"{city}, {state} {pincode}, {len(fallbacks)} fallbacks"
        )
        return normalized, fallbacks

    def _convert_items(self, items: Sequence[Mapping]) -> List[OrderItem]:
        allocator = SkuAllocator()
        seed = int(time.time() * 1000)
        converted = []

        for index, item in enumerate(items):
            base_id = _pick(item, "productId", "product_id", "comboId", "combo_id", "offerId", "offer_id")
            if base_id is None:
                base_id = seed + index
            name = str(_pick(item, "productName", "product_name", "name", default="Product"))

            converted.append(OrderItem(
                name=name[:MAX_ITEM_NAME_LENGTH],
                sku=allocator.allocate(f"SKU{base_id}", extract_shade(item), index),
                units=parse_quantity(_pick(item, "quantity")),
                selling_price=parse_price(_pick(item, "price", default=0)),
                discount=0,
                tax=0,
                hsn=DEFAULT_HSN_CODE,
            ))

        return converted
