"""
Shipping Module

- AuthSession keeps the legacy bearer token fresh
- Legacy/Modern transports issue provider HTTP calls
- CarrierBackend implementations per API generation, chosen by create_backend
- OrderFormatConverter builds the provider order schema
"""
from ithink_gateway.modules.shipping.carriers import create_backend, register_carrier
from ithink_gateway.modules.shipping.carriers.base import CarrierBackend
from ithink_gateway.modules.shipping.order_format import OrderFormatConverter

__all__ = [
    "create_backend",
    "register_carrier",
    "CarrierBackend",
    "OrderFormatConverter",
]
