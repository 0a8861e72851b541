"""
P2B Adapter - Secure Logging Utilities.

============================================================
PURPOSE
============================================================
Secure logging for adapter operations with:
- Credential masking (API key, payload, signature)
- Request body hashing instead of clear-text bodies
- Structured JSON log lines

============================================================
SECURITY REQUIREMENTS
============================================================
1. NEVER log the API key, secret or signature in clear
2. The X-TXC-PAYLOAD header is the base64 request body and
   is masked like a credential
3. Request bodies are logged as a short hash only

============================================================
"""

import hashlib
import json
import logging
import re
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Any, Dict, Optional


logger = logging.getLogger(__name__)


# ============================================================
# SENSITIVE DATA PATTERNS
# ============================================================

# Header names that should be masked
SENSITIVE_HEADERS = {
    "x-txc-apikey",
    "x-txc-payload",
    "x-txc-signature",
    "authorization",
    "x-api-key",
}

# Parameter names that should be masked
SENSITIVE_PARAMS = {
    "apikey",
    "api_key",
    "secret",
    "api_secret",
    "signature",
    "sign",
    "payload",
    "token",
}

# Regex patterns for sensitive data
SENSITIVE_PATTERNS = [
    (re.compile(r'[a-f0-9]{128}', re.IGNORECASE), "***HMAC***"),  # SHA-512 hex digests
    (re.compile(r'[A-Za-z0-9]{32,}'), "***KEY***"),  # API keys (32+ chars)
]


# ============================================================
# MASKING FUNCTIONS
# ============================================================

def mask_value(value: str, show_chars: int = 4) -> str:
    """
    Mask a sensitive value, showing only first few chars.

    Args:
        value: Value to mask
        show_chars: Number of chars to show at start

    Returns:
        Masked value
    """
    if not value or len(value) <= show_chars:
        return "***"
    return f"{value[:show_chars]}...***"


def mask_headers(headers: Optional[Dict[str, str]]) -> Dict[str, str]:
    """Headers with sensitive values masked."""
    if not headers:
        return {}
    return {
        key: mask_value(str(value)) if key.lower() in SENSITIVE_HEADERS else value
        for key, value in headers.items()
    }


def mask_params(params: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Mask sensitive parameters.

    Nested dicts are masked recursively; string values are scanned
    for key- and signature-like patterns.
    """
    if not params:
        return {}

    masked = {}
    for key, value in params.items():
        if key.lower() in SENSITIVE_PARAMS:
            masked[key] = mask_value(str(value)) if value else value
        elif isinstance(value, dict):
            masked[key] = mask_params(value)
        elif isinstance(value, str):
            masked_value = value
            for pattern, replacement in SENSITIVE_PATTERNS:
                masked_value = pattern.sub(replacement, masked_value)
            masked[key] = masked_value
        else:
            masked[key] = value
    return masked


def mask_url(url: str) -> str:
    """Mask sensitive query-string parameters in a URL."""
    if not url:
        return url
    for param in SENSITIVE_PARAMS:
        pattern = re.compile(f'({param}=)([^&]+)', re.IGNORECASE)
        url = pattern.sub(lambda m: f'{m.group(1)}***', url)
    return url


def hash_body(body: Any) -> Optional[str]:
    """Short SHA-256 fingerprint of a request body."""
    if not body:
        return None
    if isinstance(body, (dict, list)):
        body = json.dumps(body, sort_keys=True, default=str)
    return hashlib.sha256(str(body).encode()).hexdigest()[:16]


# ============================================================
# LOG ENTRY STRUCTURES
# ============================================================

def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class RequestLogEntry:
    """Structured log entry for requests."""

    timestamp: str
    exchange_id: str
    operation: str
    method: str
    endpoint: str
    request_id: str

    # Request details (masked)
    headers: Dict[str, str] = None
    params: Dict[str, Any] = None
    body_hash: str = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


@dataclass
class ResponseLogEntry:
    """Structured log entry for responses."""

    timestamp: str
    exchange_id: str
    operation: str
    request_id: str

    status_code: int
    latency_ms: float
    success: bool

    error_code: str = None
    error_message: str = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


# ============================================================
# ADAPTER LOGGER
# ============================================================

class AdapterLogger:
    """
    Secure logger for adapter operations.

    Provides structured logging with automatic credential masking.
    """

    def __init__(self, exchange_id: str, logger_name: str = None):
        self._exchange_id = exchange_id
        self._logger = logging.getLogger(logger_name or f"p2b_connector.adapter.{exchange_id}")
        self._request_counter = 0

    def _generate_request_id(self) -> str:
        self._request_counter += 1
        return f"{self._exchange_id}-{self._request_counter}"

    def log_request(
        self,
        operation: str,
        method: str,
        endpoint: str,
        headers: Dict[str, str] = None,
        params: Dict[str, Any] = None,
        body: Any = None,
    ) -> str:
        """
        Log outgoing request.

        Returns:
            Request ID for correlation
        """
        request_id = self._generate_request_id()

        entry = RequestLogEntry(
            timestamp=_utcnow(),
            exchange_id=self._exchange_id,
            operation=operation,
            method=method,
            endpoint=mask_url(endpoint),
            request_id=request_id,
            headers=mask_headers(headers) if headers else None,
            params=mask_params(params) if params else None,
            body_hash=hash_body(body),
        )

        self._logger.debug(f"REQUEST: {entry.to_json()}")
        return request_id

    def log_response(
        self,
        operation: str,
        request_id: str,
        status_code: int,
        latency_ms: float,
        success: bool,
        error_code: str = None,
        error_message: str = None,
    ) -> None:
        """Log incoming response; failures go out at WARNING."""
        entry = ResponseLogEntry(
            timestamp=_utcnow(),
            exchange_id=self._exchange_id,
            operation=operation,
            request_id=request_id,
            status_code=status_code,
            latency_ms=round(latency_ms, 3),
            success=success,
            error_code=error_code,
            error_message=error_message[:200] if error_message else None,
        )

        if success:
            self._logger.debug(f"RESPONSE: {entry.to_json()}")
        else:
            self._logger.warning(f"RESPONSE_ERROR: {entry.to_json()}")

    def info(self, message: str, **kwargs) -> None:
        self._logger.info(f"[{self._exchange_id}] {message}", extra=kwargs)

