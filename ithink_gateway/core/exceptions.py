"""
Carrier Gateway Exception Hierarchy

Every error raised by the gateway carries a code, message, details and severity
so route handlers can log and map it without inspecting message text.

Exception Hierarchy:
    CarrierError
    ├── AuthenticationError
    │   └── AuthExhaustedError
    ├── TransportError
    │   └── CarrierTimeoutError
    ├── ApiError
    │   ├── ForbiddenError
    │   └── RateLimitError
    ├── ApiStatusError
    ├── OrderSyncError
    ├── AwbNotAvailableError
    ├── DocumentUrlMissingError
    └── CarrierNotImplementedError
"""
import logging
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

BODY_SNIPPET_LENGTH = 200


class CarrierError(Exception):
    """
    Base exception for carrier integration errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code for programmatic handling
        details: Additional context for debugging/audit
        severity: P0-P3 severity level
        http_status: Suggested status for the route handler boundary
    """

    default_code: str = "CARRIER_ERROR"
    default_severity: str = "P2"
    http_status: int = 502
    expected: bool = False

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        severity: Optional[str] = None,
    ):
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        self.severity = severity or self.default_severity
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "severity": self.severity,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"


# =============================================================================
# AUTHENTICATION
# =============================================================================

class AuthenticationError(CarrierError):
    """Bad or missing credentials, or the login response carried no token."""
    default_code = "CARRIER_AUTH_FAILED"
    default_severity = "P0"
    http_status = 503


class AuthExhaustedError(AuthenticationError):
    """401 persisted after every re-authentication attempt."""
    default_code = "CARRIER_AUTH_EXHAUSTED"

    def __init__(self, message: str, attempts: Optional[int] = None, **kwargs):
        details = kwargs.pop("details", {})
        details["attempts"] = attempts
        super().__init__(message, details=details, **kwargs)


# =============================================================================
# TRANSPORT
# =============================================================================

class TransportError(CarrierError):
    """Network failure or a response body that is not JSON."""
    default_code = "CARRIER_TRANSPORT_ERROR"
    default_severity = "P1"
    http_status = 503

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        body_snippet: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        details.update({
            "status": status,
            "body_snippet": (body_snippet or "")[:BODY_SNIPPET_LENGTH] or None,
        })
        super().__init__(message, details=details, **kwargs)
        self.status = status


class CarrierTimeoutError(TransportError, TimeoutError):
    """Request exceeded the configured timeout."""
    default_code = "CARRIER_TIMEOUT"
    http_status = 504


# =============================================================================
# PROVIDER RESPONSES
# =============================================================================

class ApiError(CarrierError):
    """Provider answered with a non-2xx HTTP status."""
    default_code = "CARRIER_API_ERROR"
    default_severity = "P1"
    http_status = 502

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        status_text: Optional[str] = None,
        body: Any = None,
        endpoint: Optional[str] = None,
        method: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        details.update({
            "status": status,
            "status_text": status_text,
            "endpoint": endpoint,
            "method": method,
        })
        super().__init__(message, details=details, **kwargs)
        self.status = status
        self.status_text = status_text
        self.body = body
        self.endpoint = endpoint
        self.method = method

    @property
    def provider_message(self) -> str:
        if isinstance(self.body, dict):
            return str(self.body.get("message") or "")
        return ""


class ForbiddenError(ApiError):
    """403 from the provider: the account lacks API permissions."""
    default_code = "CARRIER_FORBIDDEN"
    default_severity = "P0"
    http_status = 503


class RateLimitError(ApiError):
    """429 from the provider."""
    default_code = "CARRIER_RATE_LIMITED"
    http_status = 503

    def __init__(self, message: str, retry_after: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        details["retry_after"] = retry_after
        super().__init__(message, details=details, **kwargs)
        self.retry_after = retry_after


class ApiStatusError(CarrierError):
    """Modern API reported a status_code other than 200 inside a 2xx body."""
    default_code = "CARRIER_STATUS_ERROR"
    default_severity = "P1"
    http_status = 502

    def __init__(self, message: str, status_code: Optional[int] = None, body: Any = None, **kwargs):
        details = kwargs.pop("details", {})
        details["status_code"] = status_code
        super().__init__(message, details=details, **kwargs)
        self.status_code = status_code
        self.body = body


class OrderSyncError(CarrierError):
    """Modern order sync returned a row whose status is not 'success'."""
    default_code = "CARRIER_ORDER_SYNC_FAILED"
    default_severity = "P1"
    http_status = 502

    def __init__(self, message: str, order_no: Optional[str] = None, body: Any = None, **kwargs):
        details = kwargs.pop("details", {})
        details["order_no"] = order_no
        super().__init__(message, details=details, **kwargs)
        self.body = body


# =============================================================================
# DOMAIN CONDITIONS
# =============================================================================

class AwbNotAvailableError(CarrierError):
    """
    No AWB assigned to the order yet.

    Assignment can lag behind order sync on the provider side, so this is an
    expected condition: callers should retry later and log below ERROR.
    """
    default_code = "AWB_NOT_AVAILABLE"
    default_severity = "P3"
    http_status = 409
    expected = True

    def __init__(self, message: str = "AWB not available for this order yet", order_no: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        details["order_no"] = order_no
        super().__init__(message, details=details, **kwargs)


class DocumentUrlMissingError(CarrierError):
    """Document endpoint answered without a file URL."""
    default_code = "DOCUMENT_URL_MISSING"
    default_severity = "P2"
    http_status = 502

    def __init__(self, message: str, document: Optional[str] = None, body: Any = None, **kwargs):
        details = kwargs.pop("details", {})
        details["document"] = document
        super().__init__(message, details=details, **kwargs)
        self.body = body


class CarrierNotImplementedError(CarrierError, NotImplementedError):
    """Operation is not available for the active API generation."""
    default_code = "CARRIER_NOT_IMPLEMENTED"
    default_severity = "P3"
    http_status = 501

    def __init__(self, message: str, operation: Optional[str] = None, mode: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        details.update({"operation": operation, "mode": mode})
        super().__init__(message, details=details, **kwargs)


def log_carrier_error(log: logging.Logger, operation: str, error: CarrierError) -> None:
    """Log a carrier error at the severity its kind calls for."""
    if error.expected:
        log.info(f"{operation}: {error.message}", extra={"carrier_error": error.to_dict()})
        return
    body = getattr(error, "body", None)
    log.error(
        f"{operation} failed: {error.code} - {error.message}",
        extra={"carrier_error": error.to_dict(), "response_body": body},
    )
