"""
P2B Exchange Adapter.

============================================================
PURPOSE
============================================================
Async adapter for the P2B spot REST API.

EXCHANGE SPECIFICS:
- Public endpoints are GET under /api/v2/public
- Private endpoints are POST under /api/v2 with an
  HMAC-SHA512 signed base64 payload
- Limit orders only
- Trade and order history windows are capped at 24 hours
- Every response is an envelope:
    {"success", "errorCode", "message", "result",
     "cache_time", "current_time"}

This layer performs no retries and no rate-limit pacing.

============================================================
API DOCUMENTATION
============================================================
https://github.com/P2B-team/p2b-api-docs/blob/master/api-doc.md

============================================================
"""

import asyncio
import json
import logging
import time
from dataclasses import replace
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import aiohttp

from ..config import P2BConfig
from ..errors import (
    MalformedPayload,
    P2BError,
    check_response,
    create_network_error,
    create_timeout_error,
)
from ..markets import MarketCatalog, MarketCatalogStore, load_markets as build_markets
from ..parsers import (
    parse_balance,
    parse_closed_orders,
    parse_ohlcvs,
    parse_order,
    parse_order_book,
    parse_orders,
    parse_ticker,
    parse_tickers,
    parse_trades,
)
from ..signing import PRIVATE_API, PUBLIC_API, RequestSigner
from ..types import (
    Balances,
    Candle,
    Market,
    Order,
    OrderBookSnapshot,
    OrderSide,
    OrderType,
    Ticker,
    Timeframe,
    Trade,
)
from ..utils import safe_integer_product
from ..validation import (
    ensure_limit_order,
    require_argument,
    resolve_time_window,
    validate_side,
    validate_timeframe,
)
from .base import ExchangeAdapter
from .logging_utils import AdapterLogger
from .metrics import AdapterMetrics


logger = logging.getLogger(__name__)


# ============================================================
# CONSTANTS
# ============================================================

P2B_EXCHANGE_ID = "p2b"

# Public endpoints
ENDPOINT_MARKETS = "markets"
ENDPOINT_TICKERS = "tickers"
ENDPOINT_TICKER = "ticker"
ENDPOINT_DEPTH = "depth/result"
ENDPOINT_HISTORY = "history"
ENDPOINT_KLINE = "market/kline"

# Private endpoints
ENDPOINT_BALANCES = "account/balances"
ENDPOINT_ORDER_NEW = "order/new"
ENDPOINT_ORDER_CANCEL = "order/cancel"
ENDPOINT_OPEN_ORDERS = "orders"
ENDPOINT_ORDER_DEALS = "account/order"
ENDPOINT_MY_TRADES = "account/market_deal_history"
ENDPOINT_ORDER_HISTORY = "account/order_history"


def _decode_body(text: str) -> Any:
    """Decode a response body keeping every fractional number as Decimal."""
    try:
        return json.loads(text, parse_float=Decimal)
    except ValueError:
        return text


def _compact(params: Dict[str, Any]) -> Dict[str, Any]:
    """Drop unset optional parameters."""
    return {key: value for key, value in params.items() if value is not None}


# ============================================================
# P2B ADAPTER
# ============================================================

class P2BAdapter(ExchangeAdapter):
    """
    P2B spot adapter.

    Implements ExchangeAdapter over the P2B REST API v2.

    Features:
    - Market catalog loaded once and swapped atomically on reload
    - Strictly increasing nonces for private calls
    - Venue error codes raised as typed exceptions
    """

    def __init__(
        self,
        config: Optional[P2BConfig] = None,
        catalog_store: Optional[MarketCatalogStore] = None,
        nonce: Optional[Callable[[], int]] = None,
    ):
        """
        Initialize P2B adapter.

        Args:
            config: Adapter configuration (default: from environment)
            catalog_store: Shared market catalog store
            nonce: Nonce source (default: shared per API key)
        """
        self._config = config or P2BConfig.from_env()
        self._signer = RequestSigner(
            self._config.api_urls,
            api_key=self._config.api_key,
            api_secret=self._config.api_secret,
            nonce=nonce,
        )
        self._catalog_store = catalog_store or MarketCatalogStore()
        self._markets_lock = asyncio.Lock()

        # Session
        self._session: Optional[aiohttp.ClientSession] = None

        # Metrics and logging
        self._metrics = AdapterMetrics(P2B_EXCHANGE_ID)
        self._logger = AdapterLogger(P2B_EXCHANGE_ID)

    # --------------------------------------------------------
    # PROPERTIES
    # --------------------------------------------------------

    @property
    def exchange_id(self) -> str:
        return P2B_EXCHANGE_ID

    @property
    def is_connected(self) -> bool:
        return self._session is not None and not self._session.closed

    @property
    def metrics(self) -> AdapterMetrics:
        return self._metrics

    @property
    def catalog(self) -> MarketCatalog:
        """Current market catalog snapshot."""
        return self._catalog_store.snapshot()

    # --------------------------------------------------------
    # CONNECTION
    # --------------------------------------------------------

    async def connect(self) -> None:
        """Open the HTTP session."""
        if self.is_connected:
            return
        timeout = aiohttp.ClientTimeout(
            connect=self._config.timeout.connection_timeout_seconds,
            sock_read=self._config.timeout.read_timeout_seconds,
        )
        self._session = aiohttp.ClientSession(timeout=timeout)
        self._logger.info("Connected to P2B")

    async def disconnect(self) -> None:
        """Close the HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None
        self._logger.info("Disconnected from P2B")

    # --------------------------------------------------------
    # REQUEST HANDLING
    # --------------------------------------------------------

    async def _send(
        self,
        method: str,
        url: str,
        headers: Dict[str, str],
        body: Optional[str],
    ) -> Tuple[int, Any]:
        """
        Transport seam: one HTTP exchange.

        Returns:
            (HTTP status, decoded body)
        """
        if not self.is_connected:
            raise create_network_error("Not connected", url)
        async with self._session.request(method, url, headers=headers or None, data=body) as resp:
            text = await resp.text()
            return resp.status, _decode_body(text)

    async def _request(
        self,
        path: str,
        api: str = PUBLIC_API,
        method: str = "GET",
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Sign, send and check one call.

        Args:
            path: Endpoint path relative to the api base
            api: "public" or "private"
            method: HTTP method
            params: Request parameters

        Returns:
            Response envelope
        """
        signed = self._signer.sign(path, api=api, method=method, params=params)

        request_id = self._logger.log_request(
            operation=path,
            method=signed.method,
            endpoint=signed.url,
            headers=signed.headers,
            params=params,
            body=signed.body,
        )

        start_time = time.monotonic()
        try:
            status, data = await self._send(signed.method, signed.url, signed.headers, signed.body)
        except aiohttp.ClientError as e:
            error = create_network_error(str(e), path)
            self._record_failure(path, request_id, start_time, None, error)
            raise error from e
        except asyncio.TimeoutError as e:
            timeout_ms = int(self._config.timeout.read_timeout_seconds * 1000)
            error = create_timeout_error(timeout_ms, path)
            self._record_failure(path, request_id, start_time, None, error)
            raise error from e
        except P2BError as e:
            self._record_failure(path, request_id, start_time, None, e)
            raise

        try:
            check_response(status, data, operation=path)
            if not isinstance(data, dict):
                raise MalformedPayload(f"p2b {path} returned a non-object body")
        except P2BError as e:
            self._record_failure(path, request_id, start_time, status, e)
            raise

        latency_ms = (time.monotonic() - start_time) * 1000
        self._metrics.record_request(
            endpoint=path,
            latency_ms=latency_ms,
            success=True,
            status_code=status,
        )
        self._logger.log_response(
            operation=path,
            request_id=request_id,
            status_code=status,
            latency_ms=latency_ms,
            success=True,
        )
        return data

    def _record_failure(
        self,
        path: str,
        request_id: str,
        start_time: float,
        status: Optional[int],
        error: P2BError,
    ) -> None:
        latency_ms = (time.monotonic() - start_time) * 1000
        self._metrics.record_request(
            endpoint=path,
            latency_ms=latency_ms,
            success=False,
            status_code=status,
            error_code=error.code,
            category=error.error.category,
        )
        self._logger.log_response(
            operation=path,
            request_id=request_id,
            status_code=status or 0,
            latency_ms=latency_ms,
            success=False,
            error_code=error.code,
            error_message=error.error.message,
        )

    async def _public(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return await self._request(path, api=PUBLIC_API, method="GET", params=params)

    async def _private(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return await self._request(path, api=PRIVATE_API, method="POST", params=params)

    @staticmethod
    def _result(envelope: Dict[str, Any], default: Any) -> Any:
        result = envelope.get("result")
        return default if result is None else result

    def _result_list(self, envelope: Dict[str, Any], key: str, path: str) -> List[Any]:
        """List nested under key in an object result; absent means empty."""
        result = self._result(envelope, {})
        if not isinstance(result, dict):
            raise MalformedPayload(f"p2b {path} result must be an object, got {type(result).__name__}")
        records = result.get(key)
        if records is None:
            return []
        if not isinstance(records, list):
            raise MalformedPayload(f"p2b {path} result.{key} must be a list")
        return records

    # --------------------------------------------------------
    # MARKETS
    # --------------------------------------------------------

    async def load_markets(self, reload: bool = False) -> Dict[str, Market]:
        """Load the catalog once; concurrent callers share one fetch."""
        async with self._markets_lock:
            if reload or not self._catalog_store.is_loaded:
                markets = await self.fetch_markets()
                self._catalog_store.replace(markets)
        return dict(self.catalog.by_symbol)

    async def _market(self, symbol: str) -> Market:
        await self.load_markets()
        return self.catalog.resolve(symbol)

    async def fetch_markets(self) -> List[Market]:
        envelope = await self._public(ENDPOINT_MARKETS)
        return build_markets(self._result(envelope, []))

    # --------------------------------------------------------
    # MARKET DATA
    # --------------------------------------------------------

    async def fetch_tickers(self, symbols: Optional[Sequence[str]] = None) -> Dict[str, Ticker]:
        await self.load_markets()
        envelope = await self._public(ENDPOINT_TICKERS)
        return parse_tickers(self._result(envelope, {}), self.catalog, symbols)

    async def fetch_ticker(self, symbol: str) -> Ticker:
        """The single-ticker payload has no timestamp; the envelope cache_time is used."""
        market = await self._market(symbol)
        envelope = await self._public(ENDPOINT_TICKER, {"market": market.id})
        ticker = parse_ticker(self._result(envelope, {}), market)
        return replace(ticker, timestamp=safe_integer_product(envelope, "cache_time"))

    async def fetch_order_book(
        self,
        symbol: str,
        limit: Optional[int] = None,
        interval: Optional[str] = None,
    ) -> OrderBookSnapshot:
        """
        Args:
            symbol: Unified symbol
            limit: Depth per side (venue default 100)
            interval: Price aggregation step, e.g. "0.01" (venue default 0)
        """
        market = await self._market(symbol)
        params = _compact({"market": market.id, "limit": limit, "interval": interval})
        envelope = await self._public(ENDPOINT_DEPTH, params)
        return parse_order_book(
            self._result(envelope, {}),
            market.symbol,
            timestamp=safe_integer_product(envelope, "current_time"),
        )

    async def fetch_trades(
        self,
        symbol: str,
        since: Optional[int] = None,
        limit: Optional[int] = None,
        last_id: Optional[int] = None,
    ) -> List[Trade]:
        """
        Recent public trades after a cursor.

        Raises:
            MissingArgument: If last_id is not given
        """
        require_argument(last_id, "last_id", "fetchTrades")
        market = await self._market(symbol)
        params = _compact({"market": market.id, "lastId": last_id, "limit": limit})
        envelope = await self._public(ENDPOINT_HISTORY, params)
        return parse_trades(self._result(envelope, []), market, since, limit)

    async def fetch_ohlcv(
        self,
        symbol: str,
        timeframe: Timeframe = Timeframe.ONE_MINUTE,
        since: Optional[int] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[Candle]:
        timeframe = validate_timeframe(timeframe)
        market = await self._market(symbol)
        params = _compact({
            "market": market.id,
            "interval": timeframe.value,
            "limit": limit,
            "offset": offset,
        })
        envelope = await self._public(ENDPOINT_KLINE, params)
        return parse_ohlcvs(self._result(envelope, []), since, limit)

    # --------------------------------------------------------
    # ACCOUNT OPERATIONS
    # --------------------------------------------------------

    async def fetch_balance(self) -> Balances:
        envelope = await self._private(ENDPOINT_BALANCES)
        return parse_balance(self._result(envelope, {}))

    # --------------------------------------------------------
    # ORDER OPERATIONS
    # --------------------------------------------------------

    async def create_order(
        self,
        symbol: str,
        order_type: OrderType,
        side: OrderSide,
        amount: Decimal,
        price: Optional[Decimal] = None,
    ) -> Order:
        """
        Place a limit order.

        Amount is truncated to the market step size and price is
        rounded to the tick size before sending.

        Raises:
            InvalidRequest: For any order type other than limit
            MissingArgument: If price is not given
        """
        ensure_limit_order(order_type)
        side = validate_side(side)
        require_argument(price, "price", "createOrder")

        market = await self._market(symbol)
        params = {
            "market": market.id,
            "side": side.value,
            "amount": market.amount_to_precision(amount),
            "price": market.price_to_precision(price),
        }
        envelope = await self._private(ENDPOINT_ORDER_NEW, params)
        self._metrics.record_order_submitted()
        order = parse_order(self._result(envelope, {}), market, self.catalog)
        self._logger.info(f"Order placed: {order.id} {side.value} {params['amount']} {market.symbol} @ {params['price']}")
        return order

    async def cancel_order(self, order_id: str, symbol: Optional[str] = None) -> Order:
        """
        Raises:
            MissingArgument: If symbol is not given
        """
        require_argument(symbol, "symbol", "cancelOrder")
        market = await self._market(symbol)
        params = {"market": market.id, "orderId": order_id}
        envelope = await self._private(ENDPOINT_ORDER_CANCEL, params)
        self._metrics.record_order_canceled()
        self._logger.info(f"Order canceled: {order_id} {market.symbol}")
        return parse_order(self._result(envelope, {}), market, self.catalog)

    async def fetch_open_orders(
        self,
        symbol: Optional[str] = None,
        since: Optional[int] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[Order]:
        require_argument(symbol, "symbol", "fetchOpenOrders")
        market = await self._market(symbol)
        params = _compact({"market": market.id, "limit": limit, "offset": offset})
        envelope = await self._private(ENDPOINT_OPEN_ORDERS, params)
        return parse_orders(self._result(envelope, []), market, self.catalog, since, limit)

    async def fetch_order_trades(
        self,
        order_id: str,
        symbol: Optional[str] = None,
        since: Optional[int] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[Trade]:
        """
        Fills of one order.

        The deal records carry no market id, so the symbol is
        required to know the fee currency.
        """
        require_argument(symbol, "symbol", "fetchOrderTrades")
        market = await self._market(symbol)
        params = _compact({"orderId": order_id, "limit": limit, "offset": offset})
        envelope = await self._private(ENDPOINT_ORDER_DEALS, params)
        records = self._result_list(envelope, "records", ENDPOINT_ORDER_DEALS)
        return parse_trades(records, market, since, limit)

    async def fetch_my_trades(
        self,
        symbol: Optional[str] = None,
        since: Optional[int] = None,
        limit: Optional[int] = None,
        until: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[Trade]:
        """
        Own trades in one market within a window of at most 24 hours.

        Raises:
            MissingArgument: If symbol is not given
            InvalidRequest: If the window is longer than 24 hours
        """
        require_argument(symbol, "symbol", "fetchMyTrades")
        since, until = resolve_time_window(since, until, "fetchMyTrades")
        market = await self._market(symbol)
        params = _compact({
            "market": market.id,
            "startTime": since // 1000,
            "endTime": until // 1000,
            "limit": limit,
            "offset": offset,
        })
        envelope = await self._private(ENDPOINT_MY_TRADES, params)
        deals = self._result_list(envelope, "deals", ENDPOINT_MY_TRADES)
        return parse_trades(deals, market, since, limit)

    async def fetch_closed_orders(
        self,
        symbol: Optional[str] = None,
        since: Optional[int] = None,
        limit: Optional[int] = None,
        until: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[Order]:
        """
        Historical orders for one or all markets within a window of at most 24 hours.

        Raises:
            InvalidRequest: If the window is longer than 24 hours
        """
        since, until = resolve_time_window(since, until, "fetchClosedOrders")
        await self.load_markets()
        market = self.catalog.resolve(symbol) if symbol is not None else None
        params = _compact({
            "market": market.id if market is not None else None,
            "startTime": since // 1000,
            "endTime": until // 1000,
            "limit": limit,
            "offset": offset,
        })
        envelope = await self._private(ENDPOINT_ORDER_HISTORY, params)
        return parse_closed_orders(self._result(envelope, {}), self.catalog, market, since, limit)
