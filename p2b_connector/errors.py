"""
P2B Connector - Error Handling and Mapping.

============================================================
PURPOSE
============================================================
Standardized error handling for the P2B adapter with:
- Canonical error taxonomy
- Exact-match venue error code mapping
- Retry eligibility classification
- Error context preservation

============================================================
ERROR CATEGORIES
============================================================
1. AUTHENTICATION      - Credentials, signature, nonce problems
2. INVALID_REQUEST     - Malformed or out-of-range parameters
3. INSUFFICIENT_FUNDS  - Balance too low
4. SERVICE_UNAVAILABLE - Transient venue-side failure
5. MISSING_ARGUMENT    - Required adapter argument not supplied
6. NETWORK / TIMEOUT   - Transport failures
7. MALFORMED_RESPONSE  - Payload matches no known shape
8. UNKNOWN             - Unmapped venue code

============================================================
"""

import logging
from enum import Enum
from typing import Optional, Dict, Any, Tuple, Type
from dataclasses import dataclass


logger = logging.getLogger(__name__)

EXCHANGE_ID = "p2b"


# ============================================================
# ERROR TAXONOMY
# ============================================================

class ErrorCategory(Enum):
    """Standardized error categories."""

    AUTHENTICATION = "AUTHENTICATION"
    INVALID_REQUEST = "INVALID_REQUEST"
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    MISSING_ARGUMENT = "MISSING_ARGUMENT"
    UNKNOWN_MARKET = "UNKNOWN_MARKET"
    MALFORMED_RESPONSE = "MALFORMED_RESPONSE"
    NETWORK = "NETWORK"
    TIMEOUT = "TIMEOUT"
    UNKNOWN = "UNKNOWN"


class RetryEligibility(Enum):
    """Whether error is eligible for retry."""

    RETRY = "RETRY"           # Safe to retry
    NO_RETRY = "NO_RETRY"     # Should not retry
    BACKOFF = "BACKOFF"       # Retry with exponential backoff


# ============================================================
# EXCHANGE ERROR
# ============================================================

@dataclass(frozen=True)
class ExchangeError:
    """
    Standardized exchange error.

    Carried by every P2BError so callers inspect the category
    instead of matching on messages.
    """

    # Core fields
    category: ErrorCategory
    code: str               # Normalized error code
    message: str            # Human-readable message

    # Retry info
    retry_eligible: RetryEligibility = RetryEligibility.NO_RETRY

    # Original error info
    exchange_code: Optional[str] = None     # Original venue error code
    exchange_message: Optional[str] = None  # Original venue message
    http_status: Optional[int] = None

    # Context
    exchange_id: str = EXCHANGE_ID
    operation: Optional[str] = None
    symbol: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "category": self.category.value,
            "code": self.code,
            "message": self.message,
            "retry_eligible": self.retry_eligible.value,
            "exchange_code": self.exchange_code,
            "exchange_message": self.exchange_message,
            "http_status": self.http_status,
            "exchange_id": self.exchange_id,
            "operation": self.operation,
            "symbol": self.symbol,
        }

    def is_retryable(self) -> bool:
        """Check if error is retryable."""
        return self.retry_eligible in (RetryEligibility.RETRY, RetryEligibility.BACKOFF)

    def __str__(self) -> str:
        """String representation."""
        return f"[{self.category.value}] {self.code}: {self.message}"


# ============================================================
# EXCEPTIONS
# ============================================================

class P2BError(Exception):
    """Base exception for the P2B connector."""

    category = ErrorCategory.UNKNOWN
    retry_eligible = RetryEligibility.NO_RETRY

    def __init__(self, message: str, error: Optional[ExchangeError] = None):
        if error is None:
            error = ExchangeError(
                category=self.category,
                code=f"P2B_{self.category.value}",
                message=message,
                retry_eligible=self.retry_eligible,
            )
        self.error = error
        super().__init__(str(error))

    @property
    def code(self) -> str:
        return self.error.code

    def is_retryable(self) -> bool:
        return self.error.is_retryable()


class AuthenticationFailure(P2BError):
    """Credentials, signature or nonce rejected."""
    category = ErrorCategory.AUTHENTICATION


class InvalidRequest(P2BError):
    """Malformed or out-of-range parameters."""
    category = ErrorCategory.INVALID_REQUEST


class UnknownMarket(InvalidRequest):
    """Market id or symbol not present in the catalog."""
    category = ErrorCategory.UNKNOWN_MARKET


class InsufficientFunds(P2BError):
    """Balance too low for the requested operation."""
    category = ErrorCategory.INSUFFICIENT_FUNDS


class ServiceUnavailable(P2BError):
    """Transient venue-side failure."""
    category = ErrorCategory.SERVICE_UNAVAILABLE
    retry_eligible = RetryEligibility.BACKOFF


class MissingArgument(P2BError):
    """A required adapter-level argument was not supplied."""
    category = ErrorCategory.MISSING_ARGUMENT


class MalformedPayload(P2BError):
    """Payload does not match any known shape."""
    category = ErrorCategory.MALFORMED_RESPONSE


class NetworkFailure(P2BError):
    """Connection failure or timeout in the transport."""
    category = ErrorCategory.NETWORK
    retry_eligible = RetryEligibility.RETRY


class ExchangeRequestFailed(P2BError):
    """Venue signaled an error code with no canonical mapping."""
    category = ErrorCategory.UNKNOWN


# ============================================================
# P2B ERROR MAPPING
# ============================================================

_AUTH = (ErrorCategory.AUTHENTICATION, RetryEligibility.NO_RETRY)
_BAD = (ErrorCategory.INVALID_REQUEST, RetryEligibility.NO_RETRY)
_FUNDS = (ErrorCategory.INSUFFICIENT_FUNDS, RetryEligibility.NO_RETRY)

# P2B error codes to canonical category, keyed by the literal code string
P2B_ERROR_MAP: Dict[str, Tuple[ErrorCategory, RetryEligibility]] = {
    # Authentication
    "1001": _AUTH,  # X-TXC-APIKEY header missing
    "1002": _AUTH,  # X-TXC-PAYLOAD header missing
    "1003": _AUTH,  # X-TXC-SIGNATURE header missing
    "1004": _AUTH,  # request body empty
    "1005": _AUTH,  # invalid body data
    "1006": _AUTH,  # nonce not provided
    "1007": _AUTH,  # request not provided
    "1008": _AUTH,  # request does not match url
    "1009": _AUTH,  # payload does not match body
    "1010": _AUTH,  # api key unknown or api access disabled
    "1011": _AUTH,  # two-factor authentication disabled
    "1012": _AUTH,  # nonce is not a number
    "1013": _AUTH,  # repeated nonce or too many requests
    "1014": _AUTH,  # signature mismatch
    "1015": _AUTH,  # temporary block
    "1016": _AUTH,  # nonce reused within 10 seconds

    # Market / order validation
    "2010": _BAD,   # currency not found
    "2020": _BAD,   # market not available
    "2021": _BAD,   # unknown market
    "2030": _BAD,   # order not found
    "2050": _BAD,   # amount below minimum
    "2051": _BAD,   # amount above maximum
    "2052": _BAD,   # amount step size
    "2060": _BAD,   # price below minimum
    "2061": _BAD,   # price above maximum
    "2062": _BAD,   # price tick size
    "2070": _BAD,   # total below minimum

    # Insufficient funds
    "2040": _FUNDS,
    "6010": _FUNDS,

    # Parameter validation
    "3001": _BAD,
    "3020": _BAD,   # currency
    "3030": _BAD,   # market
    "3040": _BAD,   # amount
    "3050": _BAD,   # price
    "3060": _BAD,   # limit
    "3070": _BAD,   # offset
    "3080": _BAD,   # orderId
    "3090": _BAD,   # lastId
    "3100": _BAD,   # side
    "3110": _BAD,   # interval

    # Venue internal
    "4001": (ErrorCategory.SERVICE_UNAVAILABLE, RetryEligibility.BACKOFF),
}

_CATEGORY_EXCEPTIONS: Dict[ErrorCategory, Type[P2BError]] = {
    ErrorCategory.AUTHENTICATION: AuthenticationFailure,
    ErrorCategory.INVALID_REQUEST: InvalidRequest,
    ErrorCategory.UNKNOWN_MARKET: UnknownMarket,
    ErrorCategory.INSUFFICIENT_FUNDS: InsufficientFunds,
    ErrorCategory.SERVICE_UNAVAILABLE: ServiceUnavailable,
    ErrorCategory.MISSING_ARGUMENT: MissingArgument,
    ErrorCategory.MALFORMED_RESPONSE: MalformedPayload,
    ErrorCategory.NETWORK: NetworkFailure,
    ErrorCategory.TIMEOUT: NetworkFailure,
    ErrorCategory.UNKNOWN: ExchangeRequestFailed,
}


def map_p2b_error(
    code: Any,
    message: str,
    http_status: int = None,
    operation: str = None,
) -> ExchangeError:
    """
    Map P2B error to unified format.

    Exact match on the literal code string; no prefix matching.

    Args:
        code: P2B error code
        message: P2B error message
        http_status: HTTP status code
        operation: Endpoint that failed

    Returns:
        Unified ExchangeError
    """
    code_str = "" if code is None else str(code)

    if code_str in P2B_ERROR_MAP:
        category, retry = P2B_ERROR_MAP[code_str]
    else:
        category = ErrorCategory.UNKNOWN
        retry = RetryEligibility.NO_RETRY

    return ExchangeError(
        category=category,
        code=f"P2B_{code_str or 'UNKNOWN'}",
        message=message,
        retry_eligible=retry,
        exchange_code=code_str or None,
        exchange_message=message,
        http_status=http_status,
        operation=operation,
    )


def exception_for(error: ExchangeError) -> P2BError:
    """Build the exception matching an ExchangeError's category."""
    exc_class = _CATEGORY_EXCEPTIONS.get(error.category, ExchangeRequestFailed)
    return exc_class(error.message, error=error)


def raise_for_error(
    code: Any,
    message: str,
    http_status: int = None,
    operation: str = None,
) -> None:
    """Raise the canonical exception for a venue error code."""
    error = map_p2b_error(code, message, http_status, operation)
    if error.category == ErrorCategory.UNKNOWN:
        logger.warning(f"Unmapped P2B error code {error.exchange_code!r}: {message}")
    raise exception_for(error)


def extract_error(body: Any) -> Tuple[Optional[str], str]:
    """
    Pull the venue error code and message out of a response body.

    The code sits under error.code on HTTP 400 responses and under
    errorCode in the standard envelope.
    """
    if not isinstance(body, dict):
        return None, str(body)[:200] if body is not None else ""

    code = None
    message = body.get("message") or ""
    error = body.get("error")
    if isinstance(error, dict):
        code = error.get("code")
        message = error.get("message") or message
        errors = error.get("errors")
        if not message and errors:
            message = str(errors)
    if code in (None, ""):
        code = body.get("errorCode")
    if code in (None, ""):
        code = None
    return (None if code is None else str(code)), str(message)


def check_response(
    http_status: int,
    body: Any,
    operation: str = None,
) -> None:
    """
    Raise if a response signals failure.

    Failure is any non-2xx status or an envelope with success == false.
    """
    failed = not (200 <= http_status < 300)
    if isinstance(body, dict) and body.get("success") is False:
        failed = True
    if not failed:
        return

    code, message = extract_error(body)
    raise_for_error(
        code,
        message or f"HTTP {http_status}",
        http_status=http_status,
        operation=operation,
    )


# ============================================================
# NETWORK ERROR HELPERS
# ============================================================

def create_network_error(
    message: str,
    operation: str = None,
) -> NetworkFailure:
    """Create network error."""
    return NetworkFailure(message, error=ExchangeError(
        category=ErrorCategory.NETWORK,
        code="P2B_NETWORK_ERROR",
        message=message,
        retry_eligible=RetryEligibility.RETRY,
        operation=operation,
    ))


def create_timeout_error(
    timeout_ms: int,
    operation: str = None,
) -> NetworkFailure:
    """Create timeout error."""
    return NetworkFailure(f"Request timed out after {timeout_ms}ms", error=ExchangeError(
        category=ErrorCategory.TIMEOUT,
        code="P2B_TIMEOUT",
        message=f"Request timed out after {timeout_ms}ms",
        retry_eligible=RetryEligibility.RETRY,
        operation=operation,
    ))
