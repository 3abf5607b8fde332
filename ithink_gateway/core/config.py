"""
Carrier gateway configuration

Environment is read once through pydantic-settings. Services never touch the
environment directly; they receive a resolved CarrierConfig instead.

Operating mode:
- MODERN when both ITHINK_ACCESS_TOKEN and ITHINK_SECRET_KEY are present
- LEGACY otherwise (bearer token obtained with email/password)
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.ithinklogistics.com"


class OperatingMode(str, Enum):
    LEGACY = "legacy"  # token from /external/auth/login
    MODERN = "modern"  # access_token + secret_key in every request body


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
        populate_by_name=True,
    )

    # Legacy API (bearer token)
    ITHINK_EMAIL: str = ""
    ITHINK_PASSWORD: str = ""
    ITHINK_TOKEN: str = ""  # Pre-issued token, trusted for 30 days
    ITHINK_EXTERNAL_BASE_URL: str = ""

    # Modern API (access token + secret key)
    ITHINK_BASE_URL: str = Field(
        default="",
        validation_alias=AliasChoices("ITHINK_BASE_URL", "ITHINKLOGISTICS_BASE_URL"),
    )
    ITHINK_ACCESS_TOKEN: str = Field(
        default="",
        validation_alias=AliasChoices("ITHINK_ACCESS_TOKEN", "ITHINKLOGISTICS_ACCESS_TOKEN"),
    )
    ITHINK_SECRET_KEY: str = Field(
        default="",
        validation_alias=AliasChoices("ITHINK_SECRET_KEY", "ITHINKLOGISTICS_SECRET_KEY"),
    )

    # Rate check dimensions (cm)
    ITHINK_DEFAULT_LENGTH_CM: float = 22.0
    ITHINK_DEFAULT_WIDTH_CM: float = 12.0
    ITHINK_DEFAULT_HEIGHT_CM: float = 12.0

    # Package dimensions written into created orders (cm)
    ITHINK_PACKAGE_LENGTH_CM: float = 15.0
    ITHINK_PACKAGE_BREADTH_CM: float = 10.0
    ITHINK_PACKAGE_HEIGHT_CM: float = 5.0

    ITHINK_CHANNEL_ID: str = ""
    ITHINK_PICKUP_PINCODE: str = "400001"
    ITHINK_COMPANY_NAME: str = ""
    ITHINK_ORDER_COMMENT: str = "Online Store Order"

    ITHINK_REQUEST_TIMEOUT_SECONDS: float = 30.0
    ITHINK_RETRY_DELAY_SECONDS: float = 1.0
    ITHINK_MAX_AUTH_RETRIES: int = 2
    ITHINK_AWB_LOOKUP_WINDOW_DAYS: int = 7


@dataclass(frozen=True)
class CarrierConfig:
    """Fully resolved, immutable carrier configuration."""
    legacy_base_url: str = DEFAULT_BASE_URL
    legacy_email: str = ""
    legacy_password: str = ""
    legacy_token: str = ""

    modern_base_url: str = DEFAULT_BASE_URL
    modern_access_token: str = ""
    modern_secret_key: str = ""

    default_length_cm: float = 22.0
    default_width_cm: float = 12.0
    default_height_cm: float = 12.0

    package_length_cm: float = 15.0
    package_breadth_cm: float = 10.0
    package_height_cm: float = 5.0

    channel_id: str = ""
    default_pickup_pincode: str = "400001"
    company_name: str = ""
    order_comment: str = "Online Store Order"

    request_timeout_seconds: float = 30.0
    retry_delay_seconds: float = 1.0
    max_auth_retries: int = 2
    awb_lookup_window_days: int = 7

    def __post_init__(self):
        # frozen: normalise through object.__setattr__
        object.__setattr__(self, "legacy_base_url", _strip_slashes(self.legacy_base_url))
        object.__setattr__(self, "modern_base_url", _strip_slashes(self.modern_base_url))

    @property
    def operating_mode(self) -> OperatingMode:
        if self.modern_access_token and self.modern_secret_key:
            return OperatingMode.MODERN
        return OperatingMode.LEGACY

    @property
    def has_legacy_credentials(self) -> bool:
        return bool(self.legacy_email and self.legacy_password)

    @classmethod
    def from_settings(cls, source: Optional[Settings] = None) -> "CarrierConfig":
        """Resolve a CarrierConfig from Settings (defaults to the module settings)."""
        s = source or settings
        config = cls(
            legacy_base_url=s.ITHINK_EXTERNAL_BASE_URL or s.ITHINK_BASE_URL or DEFAULT_BASE_URL,
            legacy_email=s.ITHINK_EMAIL,
            legacy_password=s.ITHINK_PASSWORD,
            legacy_token=s.ITHINK_TOKEN,
            modern_base_url=s.ITHINK_BASE_URL or DEFAULT_BASE_URL,
            modern_access_token=s.ITHINK_ACCESS_TOKEN,
            modern_secret_key=s.ITHINK_SECRET_KEY,
            default_length_cm=s.ITHINK_DEFAULT_LENGTH_CM,
            default_width_cm=s.ITHINK_DEFAULT_WIDTH_CM,
            default_height_cm=s.ITHINK_DEFAULT_HEIGHT_CM,
            package_length_cm=s.ITHINK_PACKAGE_LENGTH_CM,
            package_breadth_cm=s.ITHINK_PACKAGE_BREADTH_CM,
            package_height_cm=s.ITHINK_PACKAGE_HEIGHT_CM,
            channel_id=s.ITHINK_CHANNEL_ID,
            default_pickup_pincode=s.ITHINK_PICKUP_PINCODE or "400001",
            company_name=s.ITHINK_COMPANY_NAME,
            order_comment=s.ITHINK_ORDER_COMMENT,
            request_timeout_seconds=s.ITHINK_REQUEST_TIMEOUT_SECONDS,
            retry_delay_seconds=s.ITHINK_RETRY_DELAY_SECONDS,
            max_auth_retries=s.ITHINK_MAX_AUTH_RETRIES,
            awb_lookup_window_days=s.ITHINK_AWB_LOOKUP_WINDOW_DAYS,
        )

        if config.operating_mode == OperatingMode.LEGACY and not (
            config.has_legacy_credentials or config.legacy_token
        ):
            logger.warning(
                "No iThink credentials configured: set ITHINK_ACCESS_TOKEN/ITHINK_SECRET_KEY "
                "or ITHINK_EMAIL/ITHINK_PASSWORD"
            )

        return config


def _strip_slashes(url: str) -> str:
    return (url or DEFAULT_BASE_URL).rstrip("/")


settings = Settings()
