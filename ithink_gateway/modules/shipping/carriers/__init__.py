"""
Carrier Backend Registry

- Backends register themselves per OperatingMode
- create_backend() picks the implementation from CarrierConfig.operating_mode
"""
from typing import Callable, Dict, List, Optional, Type
import logging

import httpx

from ithink_gateway.core.config import CarrierConfig, OperatingMode
from ithink_gateway.modules.shipping.carriers.base import CarrierBackend

logger = logging.getLogger(__name__)

_BACKEND_REGISTRY: Dict[OperatingMode, Type[CarrierBackend]] = {}


def register_carrier(mode: OperatingMode) -> Callable[[Type[CarrierBackend]], Type[CarrierBackend]]:
    """
    Decorator to register a backend implementation.

    Usage:
        @register_carrier(OperatingMode.MODERN)
        class ModernBackend(CarrierBackend):
            ...
    """
    def decorator(cls: Type[CarrierBackend]):
        _BACKEND_REGISTRY[mode] = cls
        cls.mode = mode
        logger.debug(f"Registered carrier backend: {mode.value} -> {cls.__name__}")
        return cls
    return decorator


def get_registered_modes() -> List[OperatingMode]:
    return list(_BACKEND_REGISTRY.keys())


def create_backend(
    config: CarrierConfig,
    http_client: httpx.AsyncClient,
    mode: Optional[OperatingMode] = None,
) -> CarrierBackend:
    """Build the backend for the configured (or explicitly given) mode."""
    mode = mode or config.operating_mode
    backend_cls = _BACKEND_REGISTRY.get(mode)
    if backend_cls is None:
        raise ValueError(f"No carrier backend registered for mode: {mode.value}")
    logger.info(f"Using {backend_cls.__name__} ({mode.value} API)")
    return backend_cls(config, http_client)


# Import backends to trigger registration
# These imports must be at the bottom to avoid circular imports
from ithink_gateway.modules.shipping.carriers.legacy import LegacyBackend  # noqa: E402, F401
from ithink_gateway.modules.shipping.carriers.modern import ModernBackend  # noqa: E402, F401
