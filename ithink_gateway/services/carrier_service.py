"""
iThink Logistics Carrier Service

Facade over the two iThink API generations. The backend (legacy or modern) is
chosen once from CarrierConfig and every operation dispatches to it; callers
never branch on mode.

Usage:
    async with CarrierService(CarrierConfig.from_settings()) as service:
        order = service.convert_to_ithink_format(order_record)
        created = await service.create_order(order)

Errors propagate unchanged after being logged. AwbNotAvailableError is logged
at INFO since the provider assigns AWBs asynchronously.
"""
import functools
import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

import httpx

from ithink_gateway.core.config import CarrierConfig, OperatingMode
from ithink_gateway.core.exceptions import CarrierError, log_carrier_error
from ithink_gateway.modules.shipping.carriers import create_backend
from ithink_gateway.modules.shipping.carriers.base import (
    AwbAssignment,
    AwbNumbers,
    CarrierBackend,
    CreatedOrder,
    ServiceabilityResult,
    TrackingResult,
)
from ithink_gateway.modules.shipping.order_format import OrderFormatConverter
from ithink_gateway.schemas.shipping import FieldFallback, NormalizedOrder

logger = logging.getLogger(__name__)


def carrier_operation(name: str) -> Callable:
    """Log carrier errors raised by the wrapped operation, then re-raise."""
    def decorator(func: Callable):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except CarrierError as e:
                log_carrier_error(logger, name, e)
                raise
        return wrapper
    return decorator


class CarrierService:
    """
    iThink Logistics API facade.

    Owns one httpx.AsyncClient unless one is injected. Call destroy() or
    aclose() (or use ``async with``) on shutdown to stop the background token
    refresh and release connections.
    """

    def __init__(
        self,
        config: CarrierConfig,
        http_client: Optional[httpx.AsyncClient] = None,
        backend: Optional[CarrierBackend] = None,
    ):
        self.config = config
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=config.request_timeout_seconds)
        self.backend = backend or create_backend(config, self._client)
        self.converter = OrderFormatConverter(config)
        self._closed = False

    @property
    def operating_mode(self) -> OperatingMode:
        return self.backend.mode

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def __aenter__(self) -> "CarrierService":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    def destroy(self) -> None:
        """Stop background token refresh. Safe to call repeatedly."""
        session = getattr(self.backend, "session", None)
        if session is not None:
            session.destroy()

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self.backend.close()
        if self._owns_client:
            await self._client.aclose()
        logger.info("Carrier service closed")

    # -------------------------------------------------------------------------
    # Orders
    # -------------------------------------------------------------------------

    def convert_to_ithink_format(self, order: Mapping, pickup_location: str = "Primary") -> NormalizedOrder:
        return self.converter.convert(order, pickup_location)

    def convert_with_diagnostics(
        self, order: Mapping, pickup_location: str = "Primary"
    ) -> Tuple[NormalizedOrder, List[FieldFallback]]:
        return self.converter.convert_with_diagnostics(order, pickup_location)

    @carrier_operation("create_order")
    async def create_order(self, order_data: Union[NormalizedOrder, Mapping]) -> CreatedOrder:
        if isinstance(order_data, NormalizedOrder):
            payload = order_data.to_payload()
        else:
            payload = dict(order_data)
        logger.info(f"[CARRIER] Creating order {payload.get('order_id')} ({self.operating_mode.value})")
        return await self.backend.create_order(payload)

    @carrier_operation("get_order_details")
    async def get_order_details(self, order_id: str) -> Any:
        return await self.backend.get_order_details(order_id)

    @carrier_operation("cancel_order")
    async def cancel_order(self, order_id: str) -> Any:
        return await self.backend.cancel_order(order_id)

    @carrier_operation("cancel_orders_by_awb")
    async def cancel_orders_by_awb(self, awb_numbers: AwbNumbers) -> Any:
        return await self.backend.cancel_orders_by_awb(awb_numbers)

    @carrier_operation("update_payment_by_awb")
    async def update_payment_by_awb(self, awb_numbers: AwbNumbers) -> Any:
        return await self.backend.update_payment_by_awb(awb_numbers)

    @carrier_operation("get_airwaybill_list")
    async def get_airwaybill_list(self, start_date_time: str, end_date_time: str) -> Any:
        return await self.backend.get_airwaybill_list(start_date_time, end_date_time)

    # -------------------------------------------------------------------------
    # Tracking and couriers
    # -------------------------------------------------------------------------

    @carrier_operation("track_order")
    async def track_order(self, order_id: str) -> TrackingResult:
        return await self.backend.track_order(order_id)

    @carrier_operation("track_by_awb")
    async def track_by_awb(self, awb_code: str) -> TrackingResult:
        return await self.backend.track_by_awb(awb_code)

    @carrier_operation("get_serviceability")
    async def get_serviceability(
        self,
        pickup_pincode: str,
        delivery_pincode: str,
        weight: float,
        cod: bool = False,
        product_mrp: Optional[float] = None,
    ) -> ServiceabilityResult:
        return await self.backend.get_serviceability(
            pickup_pincode, delivery_pincode, weight, cod, product_mrp
        )

    @carrier_operation("generate_awb")
    async def generate_awb(self, shipment_id: Union[int, str], courier_id: Optional[int] = None) -> AwbAssignment:
        return await self.backend.generate_awb(shipment_id, courier_id)

    # -------------------------------------------------------------------------
    # Documents
    # -------------------------------------------------------------------------

    @carrier_operation("generate_invoice_pdf_response")
    async def generate_invoice_pdf_response(self, order_id: Union[int, str]) -> httpx.Response:
        return await self.backend.generate_invoice_pdf_response(order_id)

    @carrier_operation("generate_label_pdf_response")
    async def generate_label_pdf_response(self, shipment_id: Union[int, str]) -> httpx.Response:
        return await self.backend.generate_label_pdf_response(shipment_id)

    @carrier_operation("generate_manifest_pdf_response")
    async def generate_manifest_pdf_response(self, awb_numbers: AwbNumbers) -> httpx.Response:
        return await self.backend.generate_manifest_pdf_response(awb_numbers)

    # -------------------------------------------------------------------------
    # Ancillary lookups
    # -------------------------------------------------------------------------

    @carrier_operation("get_states")
    async def get_states(self, country_id: Union[int, str] = 101) -> Any:
        return await self.backend.get_states(country_id)

    @carrier_operation("get_cities")
    async def get_cities(self, state_id: Union[int, str]) -> Any:
        return await self.backend.get_cities(state_id)

    @carrier_operation("add_warehouse")
    async def add_warehouse(self, payload: Dict[str, Any]) -> Any:
        return await self.backend.add_warehouse(payload)

    @carrier_operation("get_warehouse")
    async def get_warehouse(self, warehouse_id: Optional[Union[int, str]] = None) -> Any:
        return await self.backend.get_warehouse(warehouse_id)

    @carrier_operation("get_zone_wise_rate")
    async def get_zone_wise_rate(self, params: Dict[str, Any]) -> Any:
        return await self.backend.get_zone_wise_rate(params)

    @carrier_operation("get_remittance")
    async def get_remittance(self, remittance_date: str) -> Any:
        return await self.backend.get_remittance(remittance_date)

    @carrier_operation("get_remittance_details")
    async def get_remittance_details(self, remittance_date: str) -> Any:
        return await self.backend.get_remittance_details(remittance_date)

    @carrier_operation("get_store")
    async def get_store(self, store_id: Optional[Union[int, str]] = None) -> Any:
        return await self.backend.get_store(store_id)

    @carrier_operation("get_store_order_list")
    async def get_store_order_list(self, params: Dict[str, Any]) -> Any:
        return await self.backend.get_store_order_list(params)

    @carrier_operation("get_store_order_details")
    async def get_store_order_details(self, params: Dict[str, Any]) -> Any:
        return await self.backend.get_store_order_details(params)

    @carrier_operation("add_ndr_reattempt_or_rto")
    async def add_ndr_reattempt_or_rto(self, payload: Dict[str, Any]) -> Any:
        return await self.backend.add_ndr_reattempt_or_rto(payload)
