"""
P2B Connector - Request Signer.

============================================================
PURPOSE
============================================================
Builds the URL, body and authentication headers for a call.

PRIVATE CALL ENVELOPE:
    params + {"request": "/api/v2/<path>", "nonce": "<ms>"}
    body      = compact JSON of the extended params
    payload   = BASE64(body)
    signature = HEX(HMAC-SHA512(secret, payload))

Headers: X-TXC-APIKEY, X-TXC-PAYLOAD, X-TXC-SIGNATURE.

============================================================
"""

import base64
import hashlib
import hmac
import json
import threading
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable, Dict, Optional
from urllib.parse import urlencode

from .errors import AuthenticationFailure
from .utils import milliseconds


PUBLIC_API = "public"
PRIVATE_API = "private"

PRIVATE_REQUEST_PREFIX = "/api/v2/"

HEADER_API_KEY = "X-TXC-APIKEY"
HEADER_PAYLOAD = "X-TXC-PAYLOAD"
HEADER_SIGNATURE = "X-TXC-SIGNATURE"


# ============================================================
# NONCE
# ============================================================

class NonceGenerator:
    """
    Strictly increasing millisecond nonces.

    Two calls inside the same millisecond still get distinct,
    ordered values. Share one generator per API key (see shared_nonce).
    """

    def __init__(self, clock: Callable[[], int] = milliseconds):
        self._clock = clock
        self._last = 0
        self._lock = threading.Lock()

    def __call__(self) -> int:
        with self._lock:
            nonce = max(self._clock(), self._last + 1)
            self._last = nonce
            return nonce


_shared_nonces: Dict[str, NonceGenerator] = {}
_shared_nonces_lock = threading.Lock()


def shared_nonce(api_key: str) -> NonceGenerator:
    """Process-wide generator for one API key."""
    with _shared_nonces_lock:
        generator = _shared_nonces.get(api_key)
        if generator is None:
            generator = _shared_nonces[api_key] = NonceGenerator()
        return generator


# ============================================================
# SIGNED REQUEST
# ============================================================

@dataclass(frozen=True)
class SignedRequest:
    """Everything the transport needs to send one call."""

    url: str
    method: str
    body: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def encode_json(params: Dict[str, Any]) -> str:
    """Compact JSON in insertion order; Decimal values become strings."""
    return json.dumps(params, separators=(",", ":"), default=_json_default)


def hmac_sha512_hex(message: str, secret: str) -> str:
    return hmac.new(
        secret.encode("utf-8"),
        message.encode("utf-8"),
        hashlib.sha512,
    ).hexdigest()


# ============================================================
# SIGNER
# ============================================================

class RequestSigner:
    """
    Builds signed requests for public and private endpoints.

    Holds no mutable state beyond the nonce generator.
    """

    def __init__(
        self,
        api_urls: Dict[str, str],
        api_key: Optional[str] = None,
        api_secret: Optional[str] = None,
        nonce: Optional[Callable[[], int]] = None,
    ):
        """
        Args:
            api_urls: Base URL per api kind ("public", "private")
            api_key: API key for private calls
            api_secret: Secret for private calls
            nonce: Nonce source; defaults to the shared generator for api_key
        """
        self._api_urls = dict(api_urls)
        self._api_key = api_key or ""
        self._api_secret = api_secret or ""
        self._nonce = nonce or shared_nonce(self._api_key)

    @property
    def has_credentials(self) -> bool:
        return bool(self._api_key and self._api_secret)

    def signature(self, payload: str) -> str:
        """Hex HMAC-SHA512 of the base64 payload."""
        return hmac_sha512_hex(payload, self._api_secret)

    def sign(
        self,
        path: str,
        api: str = PUBLIC_API,
        method: str = "GET",
        params: Optional[Dict[str, Any]] = None,
        nonce: Optional[int] = None,
    ) -> SignedRequest:
        """
        Build the request for one endpoint call.

        Args:
            path: Endpoint path relative to the api base (e.g. "order/new")
            api: "public" or "private"
            method: HTTP method
            params: Request parameters
            nonce: Explicit nonce; drawn from the generator when None

        Returns:
            SignedRequest
        """
        if api not in self._api_urls:
            raise ValueError(f"Unknown api kind: {api!r}")

        method = method.upper()
        params = dict(params or {})
        url = f"{self._api_urls[api]}/{path}"

        if method == "GET" and params:
            url = f"{url}?{urlencode(params)}"

        if api != PRIVATE_API:
            return SignedRequest(url=url, method=method)

        if not self.has_credentials:
            raise AuthenticationFailure("p2b private endpoints require api_key and api_secret")

        params["request"] = PRIVATE_REQUEST_PREFIX + path
        params["nonce"] = str(self._nonce() if nonce is None else nonce)

        body = encode_json(params)
        payload = base64.b64encode(body.encode("utf-8")).decode("ascii")
        headers = {
            "Content-Type": "application/json",
            HEADER_API_KEY: self._api_key,
            HEADER_PAYLOAD: payload,
            HEADER_SIGNATURE: self.signature(payload),
        }
        return SignedRequest(url=url, method=method, body=body, headers=headers)
