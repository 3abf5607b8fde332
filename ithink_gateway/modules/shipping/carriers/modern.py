"""
Modern iThink backend (api_v2/api_v3, access_token + secret_key)

Differences from the legacy API that this module hides:
- Orders are synced as a one-element shipment batch in the provider's own schema
- AWB assignment is asynchronous; documents and tracking are keyed by AWB, so
  order ids are first resolved to an AWB through the order details endpoint
- Serviceability is a pincode coverage check merged with a separate rate check
"""
import asyncio
import logging
import math
import re
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Union

import httpx

from ithink_gateway.core.config import CarrierConfig, OperatingMode
from ithink_gateway.core.exceptions import (
    AwbNotAvailableError,
    CarrierError,
    DocumentUrlMissingError,
    OrderSyncError,
)
from ithink_gateway.modules.shipping.carriers import register_carrier
from ithink_gateway.modules.shipping.carriers.base import (
    AwbAssignment,
    AwbNumbers,
    CarrierBackend,
    CourierOption,
    CreatedOrder,
    ServiceabilityResult,
    TrackingActivity,
    TrackingResult,
    awb_list,
    to_float,
)
from ithink_gateway.modules.shipping.transport import ModernTransport

logger = logging.getLogger(__name__)

ORDER_NO_PREFIX = "ORD-"
SYNC_DATE_FORMAT = "%d-%m-%Y %H:%M:%S"
LOOKUP_DATE_FORMAT = "%Y-%m-%d"
INPUT_DATE_FORMATS = ("%Y-%m-%d %H:%M", "%Y-%m-%d %H:%M:%S", "%Y-%m-%d")
DEFAULT_COUNTRY_ID = 101
MIN_RATE_WEIGHT_KG = 0.01


def coerce_order_no(order_id: Union[int, str, None]) -> str:
    """Public order number the modern API is keyed by (ORD-<digits>)."""
    raw = str(order_id if order_id is not None else "").strip()
    if raw.upper().startswith(ORDER_NO_PREFIX):
        return raw
    digits = re.sub(r"\D", "", raw)
    if digits:
        return f"{ORDER_NO_PREFIX}{digits}"
    return raw or f"{ORDER_NO_PREFIX}0"


def format_number(value: Any) -> str:
    """Render numbers the way the provider expects (1250.0 -> '1250')."""
    if value is None or value == "":
        return ""
    if isinstance(value, bool):
        return str(int(value))
    if isinstance(value, (int, float)):
        if isinstance(value, float) and value.is_integer():
            return str(int(value))
        return str(value)
    return str(value)


def format_sync_date(order_date: Optional[str], now: Optional[datetime] = None) -> str:
    parsed = None
    if order_date:
        for fmt in INPUT_DATE_FORMATS:
            try:
                parsed = datetime.strptime(order_date, fmt)
                break
            except ValueError:
                continue
        if parsed is None:
            try:
                parsed = datetime.fromisoformat(order_date.replace("Z", "+00:00"))
            except ValueError:
                logger.warning(f"[CARRIER] Unparseable order_date {order_date!r}, using current time")
    return (parsed or now or datetime.now()).strftime(SYNC_DATE_FORMAT)


def order_total(order: Dict[str, Any]) -> float:
    """Sum of price * units - discount across line items."""
    total = 0.0
    for item in order.get("order_items") or []:
        units = to_float(item.get("units"), 1.0) or 1.0
        price = to_float(item.get("selling_price"))
        discount = to_float(item.get("discount"))
        total += price * units - discount
    return total


@register_carrier(OperatingMode.MODERN)
class ModernBackend(CarrierBackend):
    """Backend for the access-token api_v2/api_v3 endpoints."""

    def __init__(
        self,
        config: CarrierConfig,
        http_client: httpx.AsyncClient,
        today: Callable[[], date] = date.today,
    ):
        super().__init__(config, http_client)
        self.transport = ModernTransport(config, http_client)
        self._today = today

    # -------------------------------------------------------------------------
    # AWB resolution
    # -------------------------------------------------------------------------

    async def find_awb(self, order_no: str) -> Optional[str]:
        """AWB for an order number over the trailing lookup window, or None."""
        today = self._today()
        start = today - timedelta(days=self.config.awb_lookup_window_days)
        details = await self.transport.request("/api_v3/order/get_details.json", {
            "awb_number_list": "",
            "order_no": order_no,
            "start_date": start.strftime(LOOKUP_DATE_FORMAT),
            "end_date": today.strftime(LOOKUP_DATE_FORMAT),
        })

        data = details.get("data") if isinstance(details, dict) else None
        if not isinstance(data, dict) or not data:
            return None
        row = next(iter(data.values()))
        if not isinstance(row, dict):
            return None
        awb = str(row.get("awb_no") or row.get("awb") or "").strip()
        return awb or None

    async def require_awb(self, order_id: Union[int, str]) -> str:
        order_no = coerce_order_no(order_id)
        awb = await self.find_awb(order_no)
        if not awb:
            raise AwbNotAvailableError(order_no=order_no)
        return awb

    # -------------------------------------------------------------------------
    # Orders
    # -------------------------------------------------------------------------

    def build_shipment(self, order: Dict[str, Any]) -> Dict[str, Any]:
        """Re-shape a NormalizedOrder payload into one sync.json shipment."""
        is_cod = str(order.get("payment_method") or "").upper() == "COD"
        total = format_number(order_total(order))
        name = str(order.get("billing_customer_name") or "Customer")
        company = self.config.company_name
        phone = str(order.get("billing_phone") or "")

        address = {
            "add": str(order.get("billing_address") or ""),
            "add2": str(order.get("billing_address_2") or ""),
            "add3": "",
            "pin": str(order.get("billing_pincode") or ""),
            "city": str(order.get("billing_city") or ""),
            "state": str(order.get("billing_state") or ""),
            "country": str(order.get("billing_country") or "India"),
            "phone": phone,
            "alt_phone": phone,
            "email": str(order.get("billing_email") or ""),
        }

        shipment = {
            "order": str(order.get("order_id")),
            "sub_order": "",
            "order_date": format_sync_date(order.get("order_date")),
            "total_amount": total,
            "name": name,
            "company_name": company,
            **address,
            "is_billing_same_as_shipping": "yes",
            "billing_name": name,
            "billing_company_name": company,
        }
        shipment.update({f"billing_{key}": value for key, value in address.items()})
        shipment.update({
            "products": [
                {
                    "product_name": str(item.get("name") or "Product"),
                    "product_sku": str(item.get("sku") or ""),
                    "product_quantity": format_number(item.get("units", 1)),
                    "product_price": format_number(item.get("selling_price", 0)),
                    "product_tax_rate": format_number(item.get("tax")),
                    "product_hsn_code": format_number(item.get("hsn")),
                    "product_discount": format_number(item.get("discount", 0)),
                }
                for item in order.get("order_items") or []
            ],
            "shipment_length": format_number(order.get("length", 0)),
            "shipment_width": format_number(order.get("breadth", 0)),
            "shipment_height": format_number(order.get("height", 0)),
            "weight": format_number(order.get("weight", 0.5)),
            "shipping_charges": format_number(order.get("shipping_charges", 0)),
            "giftwrap_charges": format_number(order.get("giftwrap_charges", 0)),
            "transaction_charges": format_number(order.get("transaction_charges", 0)),
            "total_discount": format_number(order.get("total_discount", 0)),
            "first_attemp_discount": "0",
            "cod_charges": "0",
            "advance_amount": "0",
            "cod_amount": total if is_cod else "0",
            "payment_mode": "COD" if is_cod else "Prepaid",
            "reseller_name": "",
            "eway_bill_number": "",
            "gst_number": "",
        })
        return shipment

    async def create_order(self, order: Dict[str, Any]) -> CreatedOrder:
        order_no = str(order.get("order_id"))
        response = await self.transport.request(
            "/api_v3/order/sync.json", {"shipments": [self.build_shipment(order)]}
        )

        data = response.get("data") if isinstance(response, dict) else None
        row = data.get("1") if isinstance(data, dict) else None
        status = str((row or {}).get("status") or "").lower()
        if status and status != "success":
            reason = (row or {}).get("remark") or response.get("html_message") or "Unknown error"
            raise OrderSyncError(
                f"iThink order sync failed: {reason}",
                order_no=order_no,
                body=response,
            )

        # AWB assignment may lag the sync; a missing AWB is not a failure here
        try:
            awb = await self.find_awb(order_no)
        except CarrierError as e:
            logger.warning(f"[CARRIER] AWB lookup after sync failed for {order_no}: {e.message}")
            awb = None

        digits = re.sub(r"\D", "", order_no)
        numeric_id = int(digits) if digits and int(digits) else None
        return CreatedOrder(
            order_id=numeric_id or order_no,
            shipment_id=numeric_id,
            awb_code=awb,
            raw_response=response,
        )

    async def get_order_details(self, order_id: str) -> Any:
        return await self.transport.request("/api_v3/order/get_details.json", {
            "awb_number_list": "",
            "order_no": coerce_order_no(order_id),
            "start_date": "",
            "end_date": "",
        })

    async def cancel_order(self, order_id: str) -> Any:
        raise self._not_implemented("cancel_order")

    async def cancel_orders_by_awb(self, awb_numbers: AwbNumbers) -> Any:
        return await self.transport.request(
            "/api_v3/order/cancel.json", {"awb_numbers": ",".join(awb_list(awb_numbers))}
        )

    async def update_payment_by_awb(self, awb_numbers: AwbNumbers) -> Any:
        return await self.transport.request(
            "/api_v3/order/update-payment.json", {"awb_numbers": ",".join(awb_list(awb_numbers))}
        )

    async def get_airwaybill_list(self, start_date_time: str, end_date_time: str) -> Any:
        return await self.transport.request("/api_v3/awb/get_awb_list.json", {
            "start_date_time": start_date_time,
            "end_date_time": end_date_time,
        })

    # -------------------------------------------------------------------------
    # Tracking
    # -------------------------------------------------------------------------

    async def track_order(self, order_id: str) -> TrackingResult:
        awb = await self.require_awb(order_id)
        return await self.track_by_awb(awb)

    async def track_by_awb(self, awb_code: str) -> TrackingResult:
        response = await self.transport.request(
            "/api_v2/order/track.json", {"awb_number_list": str(awb_code)}
        )
        return parse_tracking(response, str(awb_code))

    # -------------------------------------------------------------------------
    # Couriers
    # -------------------------------------------------------------------------

    async def get_serviceability(
        self,
        pickup_pincode: str,
        delivery_pincode: str,
        weight: float,
        cod: bool = False,
        product_mrp: Optional[float] = None,
    ) -> ServiceabilityResult:
        pickup = str(pickup_pincode or self.config.default_pickup_pincode)
        delivery = str(delivery_pincode)
        weight_kg = max(MIN_RATE_WEIGHT_KG, to_float(weight, MIN_RATE_WEIGHT_KG))

        coverage, rate_rows = await asyncio.gather(
            self.transport.request("/api_v3/pincode/check.json", {"pincode": delivery}),
            self._rate_rows(pickup, delivery, weight_kg, cod, product_mrp),
        )

        data = coverage.get("data") if isinstance(coverage, dict) else None
        courier_map = data.get(delivery) if isinstance(data, dict) else None

        couriers: List[CourierOption] = []
        for name, details in (courier_map or {}).items():
            if not isinstance(details, dict):
                continue
            prepaid_ok = _flag(details.get("prepaid"))
            cod_ok = _flag(details.get("cod"))
            if _flag(details.get("pickup")) and (cod_ok if cod else prepaid_ok):
                couriers.append(CourierOption(
                    courier_company_id=len(couriers) + 1,
                    courier_name=name,
                    cod=cod_ok,
                    raw=details,
                ))

        merge_rates(couriers, rate_rows)
        return ServiceabilityResult(available_courier_companies=couriers, raw_response=coverage)

    async def _rate_rows(
        self,
        pickup: str,
        delivery: str,
        weight_kg: float,
        cod: bool,
        product_mrp: Optional[float],
    ) -> List[Dict[str, Any]]:
        payload = {
            "from_pincode": pickup,
            "to_pincode": delivery,
            "shipping_length_cms": format_number(self.config.default_length_cm),
            "shipping_width_cms": format_number(self.config.default_width_cm),
            "shipping_height_cms": format_number(self.config.default_height_cm),
            "shipping_weight_kg": format_number(weight_kg),
            "order_type": "forward",
            "payment_method": "cod" if cod else "prepaid",
            "product_mrp": format_number(max(0.0, to_float(product_mrp))),
        }
        try:
            response = await self.transport.request("/api_v3/rate/check.json", payload)
        except CarrierError as e:
            logger.warning(f"[CARRIER] Rate check failed, couriers returned without rates: {e.message}")
            return []
        rows = response.get("data") if isinstance(response, dict) else None
        return rows if isinstance(rows, list) else []

    async def generate_awb(self, shipment_id: Union[int, str], courier_id: Optional[int]) -> AwbAssignment:
        # courier assignment is implicit on this API
        awb = await self.require_awb(shipment_id)
        return AwbAssignment(awb_code=awb, shipment_id=shipment_id)

    # -------------------------------------------------------------------------
    # Documents
    # -------------------------------------------------------------------------

    async def _document(self, path: str, document: str, data: Dict[str, Any]) -> httpx.Response:
        response = await self.transport.request(path, data)
        url = str((response or {}).get("file_name") or "").strip() if isinstance(response, dict) else ""
        if not url:
            raise DocumentUrlMissingError(
                f"iThink {document} URL missing in response", document=document, body=response
            )
        return await self.transport.fetch_document(url)

    async def generate_invoice_pdf_response(self, order_id: Union[int, str]) -> httpx.Response:
        awb = await self.require_awb(order_id)
        return await self._document("/api_v2/shipping/invoice.json", "invoice", {"awb_numbers": awb})

    async def generate_label_pdf_response(self, shipment_id: Union[int, str]) -> httpx.Response:
        awb = await self.require_awb(shipment_id)
        return await self._document(
            "/api_v2/shipping/label.json", "label", {"awb_numbers": awb, "page_size": "A4"}
        )

    async def generate_manifest_pdf_response(self, awb_numbers: AwbNumbers) -> httpx.Response:
        return await self._document(
            "/api_v2/shipping/manifest.json", "manifest", {"awb_numbers": ",".join(awb_list(awb_numbers))}
        )

    # -------------------------------------------------------------------------
    # Ancillary lookups
    # -------------------------------------------------------------------------

    async def get_states(self, country_id: Union[int, str] = DEFAULT_COUNTRY_ID) -> Any:
        return await self.transport.request("/api_v3/state/get.json", {"country_id": str(country_id)})

    async def get_cities(self, state_id: Union[int, str]) -> Any:
        return await self.transport.request("/api_v3/city/get.json", {"state_id": str(state_id)})

    async def add_warehouse(self, payload: Dict[str, Any]) -> Any:
        return await self.transport.request("/api_v3/warehouse/add.json", payload)

    async def get_warehouse(self, warehouse_id: Optional[Union[int, str]] = None) -> Any:
        data = {"warehouse_id": str(warehouse_id)} if warehouse_id is not None else {}
        return await self.transport.request("/api_v3/warehouse/get.json", data)

    async def get_zone_wise_rate(self, params: Dict[str, Any]) -> Any:
        return await self.transport.request("/api_v3/rate/zone-rate.json", params)

    async def get_remittance(self, remittance_date: str) -> Any:
        return await self.transport.request(
            "/api_v3/remittance/get.json", {"remittance_date": remittance_date}
        )

    async def get_remittance_details(self, remittance_date: str) -> Any:
        return await self.transport.request(
            "/api_v3/remittance/get_details.json", {"remittance_date": remittance_date}
        )

    async def get_store(self, store_id: Optional[Union[int, str]] = None) -> Any:
        data = {"store_id": str(store_id)} if store_id is not None else {}
        return await self.transport.request("/api_v3/store/get.json", data)

    async def get_store_order_list(self, params: Dict[str, Any]) -> Any:
        return await self.transport.request("/api_v3/store/get-order-list.json", params)

    async def get_store_order_details(self, params: Dict[str, Any]) -> Any:
        return await self.transport.request("/api_v3/store/get-order-details.json", params)

    async def add_ndr_reattempt_or_rto(self, payload: Dict[str, Any]) -> Any:
        return await self.transport.request("/api_v3/ndr/add-reattempt-rto.json", payload)


def _flag(value: Any) -> bool:
    return str(value or "").upper() == "Y"


def merge_rates(couriers: List[CourierOption], rate_rows: List[Dict[str, Any]]) -> None:
    """
    Attach rates to couriers in place.

    Rates match courier names case-insensitively (cheapest row per name wins);
    couriers without a matching row get the cheapest rate observed overall.
    """
    rates: Dict[str, float] = {}
    for row in rate_rows:
        if not isinstance(row, dict):
            continue
        name = str(row.get("logistic_name") or row.get("logistics_name") or "").strip().lower()
        rate = to_float(row.get("rate"), math.nan)
        if not name or math.isnan(rate):
            continue
        if name not in rates or rate < rates[name]:
            rates[name] = rate

    if not rates:
        return

    min_rate = min(rates.values())
    for courier in couriers:
        courier.rate = rates.get(courier.courier_name.strip().lower(), min_rate)


def parse_tracking(response: Any, awb_code: str) -> TrackingResult:
    """Normalize an api_v2 track.json payload for one AWB."""
    data = response.get("data") if isinstance(response, dict) else None
    row = data.get(awb_code) if isinstance(data, dict) else None
    if not isinstance(row, dict):
        return TrackingResult(awb_code=awb_code, raw_response=response)

    activities = [
        TrackingActivity(
            date=str(scan.get("scan_date_time") or ""),
            status=str(scan.get("status") or ""),
            activity=str(scan.get("remark") or ""),
            location=str(scan.get("scan_location") or ""),
        )
        for scan in row.get("scan_details") or []
        if isinstance(scan, dict)
    ]

    return TrackingResult(
        shipment_status=row.get("current_status_code") or row.get("current_status"),
        awb_code=str(row.get("awb_no") or awb_code),
        courier_name=row.get("logistic"),
        current_status=row.get("current_status"),
        estimated_delivery_date=row.get("expected_delivery_date"),
        activities=activities,
        raw_response=response,
    )
