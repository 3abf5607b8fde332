"""
Thermal invoice / label PDF responses.

Fetches the carrier-generated PDF and wraps the bytes in a Starlette
Response that route handlers return directly.
"""
import logging
from typing import Any, Optional, Union

from starlette.responses import Response

from ithink_gateway.services.service_adapter import ServiceAdapter

logger = logging.getLogger(__name__)

PDF_MEDIA_TYPE = "application/pdf"


def pdf_response(content: bytes, filename: str) -> Response:
    return Response(
        content=content,
        media_type=PDF_MEDIA_TYPE,
        headers={"Content-Disposition": f'inline; filename="{filename}"'},
    )


class InvoiceStreamer:
    def __init__(self, adapter: ServiceAdapter):
        self.adapter = adapter

    async def stream_thermal_invoice_pdf(
        self,
        order_id: Union[int, str],
        normalized_order: Any,
        awb: Optional[str],
        filename: str,
    ) -> Response:
        # normalized_order and awb are accepted for handler compatibility; the
        # carrier renders the invoice from its own copy of the order
        document = await self.adapter.generate_invoice_pdf_response(order_id)
        logger.info(f"[CARRIER] Streaming invoice for order {order_id} ({len(document.content)} bytes)")
        return pdf_response(document.content, filename)

    async def stream_thermal_label_pdf(self, shipment_id: Union[int, str], filename: str) -> Response:
        document = await self.adapter.generate_label_pdf_response(shipment_id)
        logger.info(f"[CARRIER] Streaming label for shipment {shipment_id} ({len(document.content)} bytes)")
        return pdf_response(document.content, filename)
