"""
Legacy iThink backend (/external API, bearer token)

Order payloads are posted in the NormalizedOrder wire schema as is. Document
endpoints return a URL that is fetched in a second request.
"""
import logging
from typing import Any, Dict, Iterable, Optional, Union

import httpx

from ithink_gateway.core.config import CarrierConfig, OperatingMode
from ithink_gateway.core.exceptions import ApiError, DocumentUrlMissingError
from ithink_gateway.modules.shipping.auth import AuthSession
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
from ithink_gateway.modules.shipping.transport import LegacyTransport

logger = logging.getLogger(__name__)

WRONG_PICKUP_LOCATION = "wrong pickup location"


@register_carrier(OperatingMode.LEGACY)
class LegacyBackend(CarrierBackend):
    """Backend for the token-authenticated /external API."""

    def __init__(
        self,
        config: CarrierConfig,
        http_client: httpx.AsyncClient,
        session: Optional[AuthSession] = None,
    ):
        super().__init__(config, http_client)
        self.session = session or AuthSession(config, http_client)
        self.transport = LegacyTransport(config, http_client, self.session)

    async def close(self) -> None:
        self.session.destroy()

    # -------------------------------------------------------------------------
    # Orders
    # -------------------------------------------------------------------------

    async def create_order(self, order: Dict[str, Any]) -> CreatedOrder:
        order = dict(order)
        corrected = False

        while True:
            try:
                response = await self.transport.request("/external/orders/create/adhoc", "POST", order)
                break
            except ApiError as e:
                suggested = None if corrected else _suggested_pickup_location(e)
                if not suggested or suggested == order.get("pickup_location"):
                    raise
                logger.warning(
                    f"[CARRIER] pickup_location '{order.get('pickup_location')}' rejected, "
                    f"retrying with '{suggested}'",
                    extra={"order_id": order.get("order_id")},
                )
                order["pickup_location"] = suggested
                corrected = True

        data = response if isinstance(response, dict) else {}
        return CreatedOrder(
            order_id=data.get("order_id"),
            shipment_id=data.get("shipment_id"),
            awb_code=data.get("awb_code") or None,
            raw_response=response,
        )

    async def get_order_details(self, order_id: str) -> Any:
        return await self.transport.request(f"/external/orders/show/{order_id}")

    async def cancel_order(self, order_id: str) -> Any:
        return await self.transport.request("/external/orders/cancel", "POST", {"ids": [order_id]})

    async def cancel_orders_by_awb(self, awb_numbers: AwbNumbers) -> Any:
        return await self.transport.request(
            "/external/orders/cancel/shipment/awbs", "POST", {"awbs": awb_list(awb_numbers)}
        )

    # -------------------------------------------------------------------------
    # Tracking
    # -------------------------------------------------------------------------

    async def track_order(self, order_id: str) -> TrackingResult:
        response = await self.transport.request("/external/courier/track", params={"order_id": order_id})
        return parse_tracking(response)

    async def track_by_awb(self, awb_code: str) -> TrackingResult:
        response = await self.transport.request(f"/external/courier/track/awb/{awb_code}")
        return parse_tracking(response)

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
        response = await self.transport.request(
            "/external/courier/serviceability",
            params={
                "pickup_postcode": pickup_pincode,
                "delivery_postcode": delivery_pincode,
                "weight": weight,
                "cod": 1 if cod else 0,
            },
        )
        data = response.get("data") if isinstance(response, dict) else None
        companies = (data or {}).get("available_courier_companies") or []

        couriers = []
        for company in companies:
            couriers.append(CourierOption(
                courier_company_id=company.get("courier_company_id"),
                courier_name=company.get("courier_name", ""),
                rate=to_float(company.get("rate"), None),
                cod=bool(company.get("cod")) if "cod" in company else None,
                raw=company,
            ))
        return ServiceabilityResult(available_courier_companies=couriers, raw_response=response)

    async def generate_awb(self, shipment_id: Union[int, str], courier_id: Optional[int]) -> AwbAssignment:
        response = await self.transport.request(
            "/external/courier/assign/awb",
            "POST",
            {"shipment_id": shipment_id, "courier_id": courier_id},
        )
        data = response if isinstance(response, dict) else {}
        awb_code = data.get("awb_code")
        if not awb_code and isinstance(data.get("response"), dict):
            awb_code = (data["response"].get("data") or {}).get("awb_code")
        return AwbAssignment(
            awb_code=awb_code,
            shipment_id=shipment_id,
            courier_id=courier_id,
            raw_response=response,
        )

    # -------------------------------------------------------------------------
    # Documents
    # -------------------------------------------------------------------------

    async def generate_invoice_pdf_response(self, order_id: Union[int, str]) -> httpx.Response:
        data = await self.transport.request(
            "/external/orders/print/invoice", "POST", {"ids": [str(order_id)]}
        )
        url = _document_url(data, ("invoice_url", "invoiceUrl", "url"))
        if not url:
            raise DocumentUrlMissingError("Invoice URL missing in response", document="invoice", body=data)
        return await self.transport.fetch_document(url)

    async def generate_label_pdf_response(self, shipment_id: Union[int, str]) -> httpx.Response:
        data = await self.transport.request(
            "/external/courier/generate/label", "POST", {"shipment_id": [shipment_id]}
        )
        url = _document_url(data, ("label_url", "labelUrl"))
        if not url:
            raise DocumentUrlMissingError("Label URL missing in response", document="label", body=data)
        return await self.transport.fetch_document(url)

    async def generate_manifest_pdf_response(self, awb_numbers: AwbNumbers) -> httpx.Response:
        data = await self.transport.request(
            "/external/manifests/print", "POST", {"awb_codes": awb_list(awb_numbers)}
        )
        url = _document_url(data, ("manifest_url", "manifestUrl"))
        if not url:
            raise DocumentUrlMissingError("Manifest URL missing in response", document="manifest", body=data)
        return await self.transport.fetch_document(url)


def _suggested_pickup_location(error: ApiError) -> Optional[str]:
    """First active pickup location enumerated by a 'wrong pickup location' rejection."""
    message = f"{error.provider_message} {error.message}".lower()
    if WRONG_PICKUP_LOCATION not in message or not isinstance(error.body, dict):
        return None

    data = error.body.get("data")
    locations = data.get("data") if isinstance(data, dict) else None
    if not isinstance(locations, list) or not locations:
        return None

    active = next((loc for loc in locations if _as_int(loc.get("status")) == 1), locations[0])
    return str(active.get("pickup_location") or "").strip() or None


def _as_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _document_url(data: Any, keys: Iterable[str]) -> Optional[str]:
    if not isinstance(data, dict):
        return None
    for key in keys:
        value = data.get(key)
        if isinstance(value, list):
            value = value[0] if value else None
        if value:
            return str(value)
    return None


def parse_tracking(response: Any) -> TrackingResult:
    """Normalize a legacy tracking_data payload."""
    tracking = response.get("tracking_data") if isinstance(response, dict) else None
    if not isinstance(tracking, dict):
        return TrackingResult(raw_response=response)

    tracks = tracking.get("shipment_track") or []
    track = tracks[0] if tracks else {}
    activities = [
        TrackingActivity(
            date=str(a.get("date") or ""),
            status=str(a.get("status") or ""),
            activity=str(a.get("activity") or ""),
            location=str(a.get("location") or ""),
        )
        for a in track.get("shipment_track_activities") or []
    ]

    return TrackingResult(
        shipment_status=tracking.get("shipment_status"),
        awb_code=track.get("awb_code"),
        courier_name=track.get("courier_name"),
        current_status=track.get("current_status"),
        estimated_delivery_date=track.get("edd"),
        activities=activities,
        raw_response=response,
    )
