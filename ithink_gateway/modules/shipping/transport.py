"""
Carrier HTTP transports

Two API generations with incompatible auth and error conventions:

LegacyTransport
- Bearer token from AuthSession in the Authorization header
- 401 -> drop token, force re-login, retry (max_auth_retries times)
- 403 / 429 / other non-2xx -> ForbiddenError / RateLimitError / ApiError

ModernTransport
- Every request is a POST of {"data": {...fields, access_token, secret_key}}
- Failure can hide in a 2xx body: status_code != 200 -> ApiStatusError
"""
import asyncio
import logging
from typing import Any, Dict, Optional

import httpx

from ithink_gateway.core.config import CarrierConfig
from ithink_gateway.core.exceptions import (
    ApiError,
    ApiStatusError,
    AuthenticationError,
    AuthExhaustedError,
    CarrierTimeoutError,
    ForbiddenError,
    RateLimitError,
    TransportError,
)
from ithink_gateway.modules.shipping.auth import AuthSession

logger = logging.getLogger(__name__)

JSON_HEADERS = {"Content-Type": "application/json"}


class BaseTransport:
    """Shared httpx plumbing for both API generations."""

    def __init__(self, config: CarrierConfig, http_client: httpx.AsyncClient):
        self.config = config
        self._http = http_client

    async def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            response = await self._http.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            logger.error(f"[CARRIER] {method} {url} timed out: {e}")
            raise CarrierTimeoutError(f"Request to carrier timed out: {method} {url}")
        except httpx.RequestError as e:
            logger.error(f"[CARRIER] {method} {url} failed: {e}")
            raise TransportError(f"Network error: {e}")

        logger.debug(f"[CARRIER] {method} {url} -> {response.status_code}")
        return response

    @staticmethod
    def _parse_json(response: httpx.Response, url: str) -> Any:
        try:
            return response.json()
        except ValueError:
            snippet = response.text[:200]
            logger.error(f"[CARRIER] Non-JSON response from {url}: {response.status_code} {snippet}")
            raise TransportError(
                f"Invalid response: {response.reason_phrase} ({response.status_code}) from {url}. Body: {snippet}",
                status=response.status_code,
                body_snippet=snippet,
            )

    async def fetch_document(self, url: str) -> httpx.Response:
        """Download a generated document (PDF) from the URL the provider returned."""
        response = await self._send("GET", url)
        if not response.is_success:
            raise ApiError(
                f"Document download failed: HTTP {response.status_code}",
                status=response.status_code,
                status_text=response.reason_phrase,
                body=response.text[:200],
                endpoint=url,
                method="GET",
            )
        return response


class LegacyTransport(BaseTransport):
    """Bearer-token transport for the legacy /external API."""

    def __init__(self, config: CarrierConfig, http_client: httpx.AsyncClient, session: AuthSession):
        super().__init__(config, http_client)
        self.session = session

    async def request(
        self,
        endpoint: str,
        method: str = "GET",
        data: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        retry_count: int = 0,
    ) -> Any:
        url = f"{self.config.legacy_base_url}{endpoint}"
        max_retries = self.config.max_auth_retries

        await self.session.authenticate()
        if not self.session.access_token:
            raise AuthenticationError("Token not available")

        headers = {**JSON_HEADERS, "Authorization": f"Bearer {self.session.access_token}"}
        response = await self._send(
            method,
            url,
            headers=headers,
            json=data,
            params=params,
        )
        status = response.status_code

        if status == 401:
            if retry_count < max_retries:
                logger.warning(
                    f"[CARRIER] Token rejected (attempt {retry_count + 1}/{max_retries}), "
                    f"refreshing and retrying {method} {endpoint}"
                )
                self.session.invalidate()
                await self.session.authenticate(force_refresh=True)
                await asyncio.sleep(self.config.retry_delay_seconds)
                return await self.request(endpoint, method, data, params, retry_count + 1)
            logger.error(f"[CARRIER] {method} {endpoint}: still 401 after {max_retries} re-authentications")
            raise AuthExhaustedError(
                "Authentication failed after retries - token may be permanently invalid",
                attempts=retry_count + 1,
                details={"endpoint": endpoint, "method": method},
            )

        if status == 403:
            logger.error(f"[CARRIER] {method} {endpoint}: 403 forbidden")
            raise ForbiddenError(
                "Access forbidden - check API permissions",
                status=403,
                status_text=response.reason_phrase,
                body=_lenient_body(response),
                endpoint=endpoint,
                method=method,
            )

        if status == 429:
            logger.error(f"[CARRIER] {method} {endpoint}: 429 rate limited")
            raise RateLimitError(
                "Rate limit exceeded - please try again later",
                retry_after=response.headers.get("Retry-After"),
                status=429,
                status_text=response.reason_phrase,
                body=_lenient_body(response),
                endpoint=endpoint,
                method=method,
            )

        payload = self._parse_json(response, url)

        if not response.is_success:
            logger.error(
                f"[CARRIER] API error: {status} {response.reason_phrase} on {method} {endpoint}",
                extra={"response_body": payload, "retry_count": retry_count},
            )
            raise ApiError(
                f"API error: {response.reason_phrase} - {payload}",
                status=status,
                status_text=response.reason_phrase,
                body=payload,
                endpoint=endpoint,
                method=method,
            )

        return payload


class ModernTransport(BaseTransport):
    """Access-token/secret-key transport for the api_v2/api_v3 endpoints."""

    async def request(self, path: str, data: Optional[Dict[str, Any]] = None) -> Any:
        url = f"{self.config.modern_base_url}{'' if path.startswith('/') else '/'}{path}"
        payload = {
            "data": {
                **(data or {}),
                "access_token": self.config.modern_access_token,
                "secret_key": self.config.modern_secret_key,
            }
        }

        response = await self._send("POST", url, headers=JSON_HEADERS, json=payload)
        body = self._parse_json(response, url)

        if not response.is_success:
            logger.error(
                f"[CARRIER] API error: {response.status_code} {response.reason_phrase} on POST {path}",
                extra={"response_body": body},
            )
            raise ApiError(
                f"iThink API error: HTTP {response.status_code} - {response.reason_phrase}",
                status=response.status_code,
                status_text=response.reason_phrase,
                body=body,
                endpoint=path,
                method="POST",
            )

        status_code = _status_code(body)
        if status_code is not None and status_code != 200:
            logger.error(
                f"[CARRIER] POST {path} returned status_code={status_code}",
                extra={"response_body": body},
            )
            raise ApiStatusError(
                f"iThink API status_code={status_code}",
                status_code=status_code,
                body=body,
                details={"endpoint": path},
            )

        return body


def _status_code(body: Any) -> Optional[int]:
    if not isinstance(body, dict) or body.get("status_code") is None:
        return None
    try:
        return int(float(body["status_code"]))
    except (TypeError, ValueError, OverflowError):
        return None


def _lenient_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text[:200]
