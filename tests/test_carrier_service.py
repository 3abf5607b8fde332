"""
Tests for CarrierService dispatch, error logging and lifecycle, and for the
ServiceAdapter pass-through surface.
"""
import logging
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from ithink_gateway.core.config import CarrierConfig, OperatingMode
from ithink_gateway.core.exceptions import (
    ApiError,
    AwbNotAvailableError,
    CarrierNotImplementedError,
)
from ithink_gateway.modules.shipping.carriers import create_backend, get_registered_modes
from ithink_gateway.modules.shipping.carriers.base import CarrierBackend, CreatedOrder
from ithink_gateway.modules.shipping.carriers.legacy import LegacyBackend
from ithink_gateway.modules.shipping.carriers.modern import ModernBackend
from ithink_gateway.services.carrier_service import CarrierService
from ithink_gateway.services.service_adapter import ServiceAdapter


@pytest.fixture
def mock_backend() -> MagicMock:
    backend = MagicMock(spec=CarrierBackend)
    backend.mode = OperatingMode.MODERN
    backend.close = AsyncMock()
    backend.create_order = AsyncMock(return_value=CreatedOrder(order_id=1001, shipment_id=1001))
    backend.track_order = AsyncMock()
    backend.generate_awb = AsyncMock()
    backend.cancel_order = AsyncMock()
    return backend


class TestBackendSelection:

    def test_both_modes_registered(self):
        assert set(get_registered_modes()) == {OperatingMode.LEGACY, OperatingMode.MODERN}

    def test_modern_credentials_select_modern_backend(self, modern_config):
        service = CarrierService(modern_config, http_client=httpx.AsyncClient())

        assert isinstance(service.backend, ModernBackend)
        assert service.operating_mode == OperatingMode.MODERN

    def test_missing_modern_pair_selects_legacy_backend(self, legacy_config):
        config = CarrierConfig(legacy_email="a@b.c", legacy_password="p", modern_access_token="only-half")

        assert isinstance(create_backend(config, httpx.AsyncClient()), LegacyBackend)
        assert CarrierService(legacy_config, http_client=httpx.AsyncClient()).operating_mode == OperatingMode.LEGACY


class TestDispatch:

    @pytest.mark.asyncio
    async def test_create_order_accepts_normalized_order(self, modern_config, mock_backend, order_record):
        service = CarrierService(modern_config, backend=mock_backend)
        normalized = service.convert_to_ithink_format(order_record)

        created = await service.create_order(normalized)

        payload = mock_backend.create_order.await_args.args[0]
        assert isinstance(payload, dict)
        assert payload["order_id"] == "1001"
        assert payload["billing_phone"] == "9876543210"
        assert created.order_id == 1001
        await service.aclose()

    @pytest.mark.asyncio
    async def test_generate_awb_forwards_arguments(self, modern_config, mock_backend):
        service = CarrierService(modern_config, backend=mock_backend)

        await service.generate_awb(1001, 7)

        mock_backend.generate_awb.assert_awaited_once_with(1001, 7)
        await service.aclose()

    @pytest.mark.asyncio
    async def test_errors_are_logged_and_reraised(self, modern_config, mock_backend, caplog):
        mock_backend.track_order.side_effect = ApiError("boom", status=500, body={"message": "down"})
        service = CarrierService(modern_config, backend=mock_backend)

        with caplog.at_level(logging.INFO, logger="ithink_gateway.services.carrier_service"):
            with pytest.raises(ApiError):
                await service.track_order("1001")

        records = [r for r in caplog.records if r.name == "ithink_gateway.services.carrier_service"]
        assert records[-1].levelno == logging.ERROR
        assert records[-1].carrier_error["code"] == "CARRIER_API_ERROR"
        await service.aclose()

    @pytest.mark.asyncio
    async def test_awb_not_available_logged_below_error(self, modern_config, mock_backend, caplog):
        mock_backend.generate_awb.side_effect = AwbNotAvailableError(order_no="ORD-1001")
        service = CarrierService(modern_config, backend=mock_backend)

        with caplog.at_level(logging.INFO, logger="ithink_gateway.services.carrier_service"):
            with pytest.raises(AwbNotAvailableError):
                await service.generate_awb(1001, None)

        records = [r for r in caplog.records if r.name == "ithink_gateway.services.carrier_service"]
        assert records
        assert all(r.levelno < logging.ERROR for r in records)
        await service.aclose()

    @pytest.mark.asyncio
    async def test_modern_cancel_not_implemented(self, modern_config):
        service = CarrierService(modern_config, http_client=httpx.AsyncClient())

        with pytest.raises(CarrierNotImplementedError) as exc_info:
            await service.cancel_order("1001")

        assert exc_info.value.http_status == 501
        await service.aclose()


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_owned_client_closed_once(self, modern_config):
        service = CarrierService(modern_config)

        await service.aclose()
        await service.aclose()

        assert service._client.is_closed

    @pytest.mark.asyncio
    async def test_injected_client_left_open(self, modern_config):
        client = httpx.AsyncClient()

        async with CarrierService(modern_config, http_client=client):
            pass

        assert not client.is_closed
        await client.aclose()

    @pytest.mark.asyncio
    async def test_destroy_stops_token_refresh(self, legacy_config, make_client):
        client = make_client(lambda r: httpx.Response(200, json={"token": "t"}))
        service = CarrierService(legacy_config, http_client=client)

        await service.backend.session.authenticate()
        assert service.backend.session.refresher.running

        service.destroy()
        service.destroy()

        assert not service.backend.session.refresher.running
        await service.aclose()

    def test_destroy_without_session_is_noop(self, modern_config, mock_backend):
        service = CarrierService(modern_config, http_client=httpx.AsyncClient(), backend=mock_backend)

        service.destroy()


ADAPTER_CALLS = [
    ("create_order", ({"order_id": "1"},)),
    ("track_order", ("1001",)),
    ("track_by_awb", ("AWB1",)),
    ("get_serviceability", ("400001", "560001", 0.5, True, 499.0)),
    ("generate_awb", (1001, 3)),
    ("get_order_details", ("1001",)),
    ("generate_invoice_pdf_response", (1001,)),
    ("generate_label_pdf_response", (1001,)),
    ("cancel_order", ("1001",)),
    ("cancel_orders_by_awb", (["AWB1"],)),
    ("update_payment_by_awb", ("AWB1",)),
    ("get_airwaybill_list", ("2026-10-01 00:00:00", "2026-10-19 00:00:00")),
    ("generate_manifest_pdf_response", (["AWB1", "AWB2"],)),
    ("get_states", (101,)),
    ("get_cities", (10,)),
    ("add_warehouse", ({"name": "WH"},)),
    ("get_warehouse", (5,)),
    ("get_zone_wise_rate", ({"zone": "A"},)),
    ("get_remittance", ("2026-10-01",)),
    ("get_remittance_details", ("2026-10-01",)),
    ("get_store", (2,)),
    ("get_store_order_list", ({"page": 1},)),
    ("get_store_order_details", ({"order_no": "X"},)),
    ("add_ndr_reattempt_or_rto", ({"awb": "AWB1"},)),
]


class TestServiceAdapter:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method,args", ADAPTER_CALLS)
    async def test_methods_delegate_unchanged(self, method, args):
        service = MagicMock(spec=CarrierService)
        setattr(service, method, AsyncMock(return_value=f"{method}-result"))
        adapter = ServiceAdapter(service=service)

        result = await getattr(adapter, method)(*args)

        assert result == f"{method}-result"
        getattr(service, method).assert_awaited_once_with(*args)

    def test_convert_delegates(self, order_record):
        service = MagicMock(spec=CarrierService)
        adapter = ServiceAdapter(service=service)

        adapter.convert_to_ithink_format(order_record, "Warehouse-1")

        service.convert_to_ithink_format.assert_called_once_with(order_record, "Warehouse-1")

    @pytest.mark.asyncio
    async def test_lifecycle_delegates(self):
        service = MagicMock(spec=CarrierService)
        service.aclose = AsyncMock()
        adapter = ServiceAdapter(service=service)

        adapter.destroy()
        await adapter.aclose()

        service.destroy.assert_called_once_with()
        service.aclose.assert_awaited_once_with()

    def test_every_service_operation_is_exposed(self):
        public = {
            name for name in dir(CarrierService)
            if not name.startswith("_") and callable(getattr(CarrierService, name))
        }

        missing = public - set(dir(ServiceAdapter))

        assert missing == set()
