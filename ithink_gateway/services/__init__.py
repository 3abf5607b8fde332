# Carrier facade, handler adapter and PDF streaming
from ithink_gateway.services.carrier_service import CarrierService
from ithink_gateway.services.service_adapter import ServiceAdapter
from ithink_gateway.services.invoice_streamer import InvoiceStreamer

__all__ = ["CarrierService", "ServiceAdapter", "InvoiceStreamer"]
