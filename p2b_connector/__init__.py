"""
P2B Connector Package.

============================================================
PURPOSE
============================================================
Translates between the P2B spot REST API and a venue-agnostic
canonical data model, and signs private requests.

CRITICAL PRINCIPLE:
    "A parsing bug corrupts financial data silently."
    Every amount is an exact Decimal; every unknown payload
    shape is rejected, never guessed at.

============================================================
MODULES
============================================================
- types: Canonical entities (Market, Ticker, Trade, Order, ...)
- utils: Safe field extraction, decimals, timestamps
- markets: Market parsing and the immutable catalog snapshot
- parsers: Response normalizers, one per entity kind
- signing: Nonces and HMAC-SHA512 request signing
- errors: Error taxonomy and the venue code table
- validation: Local checks run before any request
- config: Endpoints, credentials, timeouts, fee tiers
- adapters: Async aiohttp adapter, logging, metrics

============================================================
"""

# ============================================================
# TYPES
# ============================================================
from .types import (
    # Enums
    OrderSide,
    OrderType,
    TakerOrMaker,
    Timeframe,
    TickerShape,
    TradeShape,
    OrderShape,
    # Dataclasses
    Market,
    MarketPrecision,
    MarketLimits,
    MinMax,
    Ticker,
    OrderBookSnapshot,
    Candle,
    Fee,
    Trade,
    Order,
    Balance,
    Balances,
)

# ============================================================
# ERRORS
# ============================================================
from .errors import (
    ErrorCategory,
    RetryEligibility,
    ExchangeError,
    P2BError,
    AuthenticationFailure,
    InvalidRequest,
    UnknownMarket,
    InsufficientFunds,
    ServiceUnavailable,
    MissingArgument,
    MalformedPayload,
    NetworkFailure,
    ExchangeRequestFailed,
    P2B_ERROR_MAP,
    map_p2b_error,
    raise_for_error,
    check_response,
)

# ============================================================
# CORE
# ============================================================
from .markets import (
    MarketCatalog,
    MarketCatalogStore,
    parse_market,
    load_markets,
)
from .parsers import (
    parse_ticker,
    parse_tickers,
    parse_order_book,
    parse_trade,
    parse_trades,
    parse_ohlcv,
    parse_ohlcvs,
    parse_balance,
    parse_order,
    parse_orders,
    parse_closed_orders,
)
from .signing import (
    NonceGenerator,
    shared_nonce,
    RequestSigner,
    SignedRequest,
)
from .validation import (
    MAX_HISTORY_WINDOW_MS,
    resolve_time_window,
)

# ============================================================
# CONFIG
# ============================================================
from .config import (
    P2BConfig,
    TimeoutConfig,
)

# ============================================================
# ADAPTERS
# ============================================================
from .adapters import P2BAdapter


__all__ = [
    # Types
    "OrderSide",
    "OrderType",
    "TakerOrMaker",
    "Timeframe",
    "TickerShape",
    "TradeShape",
    "OrderShape",
    "Market",
    "MarketPrecision",
    "MarketLimits",
    "MinMax",
    "Ticker",
    "OrderBookSnapshot",
    "Candle",
    "Fee",
    "Trade",
    "Order",
    "Balance",
    "Balances",
    # Errors
    "ErrorCategory",
    "RetryEligibility",
    "ExchangeError",
    "P2BError",
    "AuthenticationFailure",
    "InvalidRequest",
    "UnknownMarket",
    "InsufficientFunds",
    "ServiceUnavailable",
    "MissingArgument",
    "MalformedPayload",
    "NetworkFailure",
    "ExchangeRequestFailed",
    "P2B_ERROR_MAP",
    "map_p2b_error",
    "raise_for_error",
    "check_response",
    # Core
    "MarketCatalog",
    "MarketCatalogStore",
    "parse_market",
    "load_markets",
    "parse_ticker",
    "parse_tickers",
    "parse_order_book",
    "parse_trade",
    "parse_trades",
    "parse_ohlcv",
    "parse_ohlcvs",
    "parse_balance",
    "parse_order",
    "parse_orders",
    "parse_closed_orders",
    "NonceGenerator",
    "shared_nonce",
    "RequestSigner",
    "SignedRequest",
    "MAX_HISTORY_WINDOW_MS",
    "resolve_time_window",
    # Config
    "P2BConfig",
    "TimeoutConfig",
    # Adapters
    "P2BAdapter",
]
