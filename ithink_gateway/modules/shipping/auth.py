"""
Legacy API authentication

Bearer tokens from /external/auth/login are valid for 10 days. We treat them as
valid for 9, refresh proactively once less than 12 hours remain, and run a
background refresh every 8 days.

Concurrent callers share one in-flight login (single flight): a caller that
arrives while a refresh is running awaits that refresh instead of starting
another one.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import httpx

from ithink_gateway.core.config import CarrierConfig
from ithink_gateway.core.exceptions import (
    AuthenticationError,
    CarrierTimeoutError,
    TransportError,
)

logger = logging.getLogger(__name__)

LOGIN_PATH = "/external/auth/login"

TOKEN_LIFETIME = timedelta(days=9)
PROVISIONED_TOKEN_LIFETIME = timedelta(days=30)
PROACTIVE_REFRESH_WINDOW = timedelta(hours=12)
BACKGROUND_REFRESH_INTERVAL = timedelta(days=8)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class AuthToken:
    """Bearer token state. expires_at is None when no token is held."""
    value: Optional[str] = None
    expires_at: Optional[datetime] = None

    def remaining(self, now: datetime) -> timedelta:
        if self.expires_at is None:
            return timedelta(0)
        return self.expires_at - now

    def clear(self) -> None:
        self.value = None
        self.expires_at = None


class TokenRefresher:
    """Owns the repeating background refresh task for one AuthSession."""

    def __init__(self, session: "AuthSession", interval: timedelta = BACKGROUND_REFRESH_INTERVAL):
        self._session = session
        self._interval = interval
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop, background token refresh not scheduled")
            return
        self._task = loop.create_task(self._run())
        logger.info(f"Background token refresh scheduled every {self._interval.days} days")

    def stop(self) -> None:
        if self._task is None:
            return
        if not self._task.done():
            self._task.cancel()
            logger.info("Background token refresh stopped")
        self._task = None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval.total_seconds())
            logger.info("Background token refresh triggered")
            try:
                await self._session.authenticate(force_refresh=True)
            except (AuthenticationError, TransportError) as e:
                logger.error(f"Background token refresh failed: {e.message}")


class AuthSession:
    """
    Keeps a fresh bearer token for the legacy API.

    Usage:
        session = AuthSession(config, http_client)
        await session.authenticate()
        headers = {"Authorization": f"Bearer {session.access_token}"}
    """

    def __init__(
        self,
        config: CarrierConfig,
        http_client: httpx.AsyncClient,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.config = config
        self._http = http_client
        self._clock = clock
        self.token = AuthToken()
        self._inflight: Optional[asyncio.Future] = None
        self.refresher = TokenRefresher(self)

        if config.legacy_token:
            self.token.value = config.legacy_token
            self.token.expires_at = clock() + PROVISIONED_TOKEN_LIFETIME
            logger.info("Using pre-issued carrier token from configuration")

    @property
    def access_token(self) -> Optional[str]:
        return self.token.value

    @property
    def is_refreshing(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    def invalidate(self) -> None:
        """Drop the current token so the next authenticate() logs in again."""
        self.token.clear()

    async def authenticate(self, force_refresh: bool = False) -> None:
        if self.is_refreshing:
            logger.debug("Token refresh already in progress, joining it")
            await asyncio.shield(self._inflight)
            return

        remaining = self.token.remaining(self._clock())

        if self.token.value and remaining > PROACTIVE_REFRESH_WINDOW and not force_refresh:
            logger.debug(f"Carrier token valid for {int(remaining.total_seconds() // 3600)} more hours")
            return

        if self.token.value and timedelta(0) < remaining <= PROACTIVE_REFRESH_WINDOW:
            logger.info("Carrier token expiring soon, proactively refreshing")

        if not self.config.has_legacy_credentials:
            self.invalidate()
            raise AuthenticationError("Email and password are required", code="CARRIER_CREDENTIALS_MISSING")

        self._inflight = asyncio.ensure_future(self._login())
        try:
            await self._inflight
        finally:
            self._inflight = None

    async def _login(self) -> None:
        url = f"{self.config.legacy_base_url}{LOGIN_PATH}"
        logger.info("Authenticating with carrier API")

        try:
            try:
                response = await self._http.post(
                    url,
                    json={"email": self.config.legacy_email, "password": self.config.legacy_password},
                    headers={"Content-Type": "application/json"},
                )
            except httpx.TimeoutException as e:
                raise CarrierTimeoutError(f"Carrier login timed out: {e}")
            except httpx.RequestError as e:
                raise TransportError(f"Network error during authentication: {e}")

            try:
                data = response.json()
            except ValueError:
                logger.error(f"Failed to parse authentication response: {response.text[:200]}")
                raise AuthenticationError(
                    "Invalid authentication response",
                    details={"status": response.status_code},
                )

            if not response.is_success:
                logger.error(
                    f"Authentication failed: {response.status_code} {response.reason_phrase}",
                    extra={"response_body": data},
                )
                if response.status_code == 401:
                    raise AuthenticationError(
                        "Invalid credentials - check email and password",
                        code="CARRIER_INVALID_CREDENTIALS",
                        details={"status": 401},
                    )
                raise AuthenticationError(
                    f"Authentication failed: {response.reason_phrase}",
                    details={"status": response.status_code, "response": data},
                )

            token = data.get("token") if isinstance(data, dict) else None
            if not token:
                raise AuthenticationError("No token received from authentication")

        except (AuthenticationError, TransportError):
            self.token.clear()
            raise

        self.token.value = token
        self.token.expires_at = self._clock() + TOKEN_LIFETIME
        logger.info(f"Authentication successful, token valid until {self.token.expires_at.isoformat()}")
        self.refresher.start()

    def destroy(self) -> None:
        """Stop background refresh. Safe to call repeatedly."""
        self.refresher.stop()
