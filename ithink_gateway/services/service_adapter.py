"""
Stable carrier surface for route handlers.

Every method forwards to CarrierService with the same name and signature.
Handlers depend on this class so the service constructor and internals can
change without touching them.
"""
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import httpx

from ithink_gateway.core.config import CarrierConfig
from ithink_gateway.modules.shipping.carriers.base import (
    AwbAssignment,
    AwbNumbers,
    CreatedOrder,
    ServiceabilityResult,
    TrackingResult,
)
from ithink_gateway.schemas.shipping import FieldFallback, NormalizedOrder
from ithink_gateway.services.carrier_service import CarrierService


class ServiceAdapter:
    def __init__(self, service: Optional[CarrierService] = None):
        self._service = service or CarrierService(CarrierConfig.from_settings())

    def convert_to_ithink_format(self, order: Mapping, pickup_location: str = "Primary") -> NormalizedOrder:
        return self._service.convert_to_ithink_format(order, pickup_location)

    def convert_with_diagnostics(
        self, order: Mapping, pickup_location: str = "Primary"
    ) -> Tuple[NormalizedOrder, List[FieldFallback]]:
        return self._service.convert_with_diagnostics(order, pickup_location)

    async def create_order(self, order_data: Union[NormalizedOrder, Mapping]) -> CreatedOrder:
        return await self._service.create_order(order_data)

    async def track_order(self, order_id: str) -> TrackingResult:
        return await self._service.track_order(order_id)

    async def track_by_awb(self, awb_code: str) -> TrackingResult:
        return await self._service.track_by_awb(awb_code)

    async def get_serviceability(
        self,
        pickup_pincode: str,
        delivery_pincode: str,
        weight: float,
        cod: bool = False,
        product_mrp: Optional[float] = None,
    ) -> ServiceabilityResult:
        return await self._service.get_serviceability(
            pickup_pincode, delivery_pincode, weight, cod, product_mrp
        )

    async def generate_awb(self, shipment_id: Union[int, str], courier_id: Optional[int] = None) -> AwbAssignment:
        return await self._service.generate_awb(shipment_id, courier_id)

    async def get_order_details(self, order_id: str) -> Any:
        return await self._service.get_order_details(order_id)

    async def generate_invoice_pdf_response(self, order_id: Union[int, str]) -> httpx.Response:
        return await self._service.generate_invoice_pdf_response(order_id)

    async def generate_label_pdf_response(self, shipment_id: Union[int, str]) -> httpx.Response:
        return await self._service.generate_label_pdf_response(shipment_id)

    async def cancel_order(self, order_id: str) -> Any:
        return await self._service.cancel_order(order_id)

    async def cancel_orders_by_awb(self, awb_numbers: AwbNumbers) -> Any:
        return await self._service.cancel_orders_by_awb(awb_numbers)

    async def update_payment_by_awb(self, awb_numbers: AwbNumbers) -> Any:
        return await self._service.update_payment_by_awb(awb_numbers)

    async def get_airwaybill_list(self, start_date_time: str, end_date_time: str) -> Any:
        return await self._service.get_airwaybill_list(start_date_time, end_date_time)

    async def generate_manifest_pdf_response(self, awb_numbers: AwbNumbers) -> httpx.Response:
        return await self._service.generate_manifest_pdf_response(awb_numbers)

    async def get_states(self, country_id: Union[int, str] = 101) -> Any:
        return await self._service.get_states(country_id)

    async def get_cities(self, state_id: Union[int, str]) -> Any:
        return await self._service.get_cities(state_id)

    async def add_warehouse(self, payload: Dict[str, Any]) -> Any:
        return await self._service.add_warehouse(payload)

    async def get_warehouse(self, warehouse_id: Optional[Union[int, str]] = None) -> Any:
        return await self._service.get_warehouse(warehouse_id)

    async def get_zone_wise_rate(self, params: Dict[str, Any]) -> Any:
        return await self._service.get_zone_wise_rate(params)

    async def get_remittance(self, remittance_date: str) -> Any:
        return await self._service.get_remittance(remittance_date)

    async def get_remittance_details(self, remittance_date: str) -> Any:
        return await self._service.get_remittance_details(remittance_date)

    async def get_store(self, store_id: Optional[Union[int, str]] = None) -> Any:
        return await self._service.get_store(store_id)

    async def get_store_order_list(self, params: Dict[str, Any]) -> Any:
        return await self._service.get_store_order_list(params)

    async def get_store_order_details(self, params: Dict[str, Any]) -> Any:
        return await self._service.get_store_order_details(params)

    async def add_ndr_reattempt_or_rto(self, payload: Dict[str, Any]) -> Any:
        return await self._service.add_ndr_reattempt_or_rto(payload)

    def destroy(self) -> None:
        self._service.destroy()

    async def aclose(self) -> None:
        await self._service.aclose()
