"""
Carrier Backend Interface

One implementation per API generation:
- LegacyBackend: bearer-token /external API
- ModernBackend: access_token/secret_key api_v2/api_v3 API

The backend is selected once from CarrierConfig.operating_mode and injected
into CarrierService. Ancillary operations that a generation does not wire
raise CarrierNotImplementedError instead of silently returning.
"""
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Union

import httpx

from ithink_gateway.core.config import CarrierConfig, OperatingMode
from ithink_gateway.core.exceptions import CarrierNotImplementedError

AwbNumbers = Union[str, Sequence[str]]


# =============================================================================
# Carrier-Agnostic Data Classes
# =============================================================================

@dataclass
class CreatedOrder:
    """Result of order creation. awb_code is None until the provider assigns one."""
    order_id: Optional[Union[int, str]] = None
    shipment_id: Optional[Union[int, str]] = None
    awb_code: Optional[str] = None
    raw_response: Optional[Any] = None


@dataclass
class CourierOption:
    courier_company_id: int
    courier_name: str
    rate: Optional[float] = None
    cod: Optional[bool] = None
    raw: Optional[Dict[str, Any]] = None


@dataclass
class ServiceabilityResult:
    available_courier_companies: List[CourierOption] = field(default_factory=list)
    raw_response: Optional[Any] = None


@dataclass
class TrackingActivity:
    date: str
    status: str
    activity: str = ""
    location: str = ""


@dataclass
class TrackingResult:
    shipment_status: Optional[str] = None
    awb_code: Optional[str] = None
    courier_name: Optional[str] = None
    current_status: Optional[str] = None
    estimated_delivery_date: Optional[str] = None
    activities: List[TrackingActivity] = field(default_factory=list)
    raw_response: Optional[Any] = None

    def to_timeline(self) -> List[Dict[str, str]]:
        """Activities as customer-facing timeline steps."""
        return [
            {
                "step": activity.status,
                "status": timeline_status(activity.status),
                "date": activity.date,
                "description": " - ".join(p for p in (activity.activity, activity.location) if p),
            }
            for activity in self.activities
        ]


@dataclass
class AwbAssignment:
    awb_code: str
    shipment_id: Optional[Union[int, str]] = None
    courier_id: Optional[int] = None
    raw_response: Optional[Any] = None


COMPLETED_STATUSES = ("delivered", "out for delivery", "shipped")
ACTIVE_STATUSES = ("in transit", "picked up", "out for pickup")


def timeline_status(status: str) -> str:
    status = (status or "").lower()
    if any(s in status for s in COMPLETED_STATUSES):
        return "completed"
    if any(s in status for s in ACTIVE_STATUSES):
        return "active"
    return "pending"


def awb_list(awb_numbers: AwbNumbers) -> List[str]:
    if isinstance(awb_numbers, str):
        return [a.strip() for a in awb_numbers.split(",") if a.strip()]
    return [str(a) for a in awb_numbers]


def to_float(value: Any, default: Optional[float] = 0.0) -> Optional[float]:
    """Lenient float for provider values; non-numeric or non-finite gives default."""
    try:
        result = float(value)
    except (TypeError, ValueError):
        return default
    return result if math.isfinite(result) else default


# =============================================================================
# Base Backend Interface
# =============================================================================

class CarrierBackend(ABC):
    """
    Abstract base class for the two iThink API generations.

    Core operations must be implemented by both. Ancillary lookups default
    to CarrierNotImplementedError and are overridden where wired.
    """

    mode: OperatingMode

    def __init__(self, config: CarrierConfig, http_client: httpx.AsyncClient):
        self.config = config
        self._http = http_client

    def _not_implemented(self, operation: str):
        return CarrierNotImplementedError(
            f"{operation} is not implemented for {self.mode.value} mode",
            operation=operation,
            mode=self.mode.value,
        )

    @abstractmethod
    async def create_order(self, order: Dict[str, Any]) -> CreatedOrder:
        pass

    @abstractmethod
    async def track_order(self, order_id: str) -> TrackingResult:
        pass

    @abstractmethod
    async def track_by_awb(self, awb_code: str) -> TrackingResult:
        pass

    @abstractmethod
    async def get_serviceability(
        self,
        pickup_pincode: str,
        delivery_pincode: str,
        weight: float,
        cod: bool = False,
        product_mrp: Optional[float] = None,
    ) -> ServiceabilityResult:
        pass

    @abstractmethod
    async def generate_awb(self, shipment_id: Union[int, str], courier_id: Optional[int]) -> AwbAssignment:
        pass

    @abstractmethod
    async def get_order_details(self, order_id: str) -> Any:
        pass

    @abstractmethod
    async def generate_invoice_pdf_response(self, order_id: Union[int, str]) -> httpx.Response:
        pass

    @abstractmethod
    async def generate_label_pdf_response(self, shipment_id: Union[int, str]) -> httpx.Response:
        pass

    @abstractmethod
    async def generate_manifest_pdf_response(self, awb_numbers: AwbNumbers) -> httpx.Response:
        pass

    @abstractmethod
    async def cancel_order(self, order_id: str) -> Any:
        pass

    async def close(self) -> None:
        """Release backend-held resources (background timers)."""

    # -------------------------------------------------------------------------
    # Ancillary lookups
    # -------------------------------------------------------------------------

    async def cancel_orders_by_awb(self, awb_numbers: AwbNumbers) -> Any:
        raise self._not_implemented("cancel_orders_by_awb")

    async def update_payment_by_awb(self, awb_numbers: AwbNumbers) -> Any:
        raise self._not_implemented("update_payment_by_awb")

    async def get_airwaybill_list(self, start_date_time: str, end_date_time: str) -> Any:
        raise self._not_implemented("get_airwaybill_list")

    async def get_states(self, country_id: Union[int, str] = 101) -> Any:
        raise self._not_implemented("get_states")

    async def get_cities(self, state_id: Union[int, str]) -> Any:
        raise self._not_implemented("get_cities")

    async def add_warehouse(self, payload: Dict[str, Any]) -> Any:
        raise self._not_implemented("add_warehouse")

    async def get_warehouse(self, warehouse_id: Optional[Union[int, str]] = None) -> Any:
        raise self._not_implemented("get_warehouse")

    async def get_zone_wise_rate(self, params: Dict[str, Any]) -> Any:
        raise self._not_implemented("get_zone_wise_rate")

    async def get_remittance(self, remittance_date: str) -> Any:
        raise self._not_implemented("get_remittance")

    async def get_remittance_details(self, remittance_date: str) -> Any:
        raise self._not_implemented("get_remittance_details")

    async def get_store(self, store_id: Optional[Union[int, str]] = None) -> Any:
        raise self._not_implemented("get_store")

    async def get_store_order_list(self, params: Dict[str, Any]) -> Any:
        raise self._not_implemented("get_store_order_list")

    async def get_store_order_details(self, params: Dict[str, Any]) -> Any:
        raise self._not_implemented("get_store_order_details")

    async def add_ndr_reattempt_or_rto(self, payload: Dict[str, Any]) -> Any:
        raise self._not_implemented("add_ndr_reattempt_or_rto")
