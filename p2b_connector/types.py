"""
P2B Connector - Types.

============================================================
PURPOSE
============================================================
Canonical, venue-agnostic entities produced by the normalizer.

CRITICAL PRINCIPLE:
    "Every monetary or quantity field is an exact Decimal."
    Entities are immutable and built fresh per API call.

============================================================
"""

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_DOWN, ROUND_HALF_UP
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .utils import decimal_to_precision, iso8601


# ============================================================
# ENUMERATIONS
# ============================================================

class OrderSide(Enum):
    """Order side."""

    BUY = "buy"
    SELL = "sell"


class OrderType(Enum):
    """Order type."""

    LIMIT = "limit"
    """The only type the venue accepts."""

    MARKET = "market"
    """Rejected locally before any request."""


class TakerOrMaker(Enum):
    """Execution role of a fill."""

    MAKER = "maker"
    TAKER = "taker"


class Timeframe(Enum):
    """Candle intervals supported by the kline endpoint."""

    ONE_MINUTE = "1m"
    ONE_HOUR = "1h"
    ONE_DAY = "1d"


class TickerShape(Enum):
    """Raw ticker payload shapes."""

    LISTING = "LISTING"
    """Multi-symbol listing: fields nested under 'ticker', time in 'at'."""

    SINGLE = "SINGLE"
    """Single-symbol endpoint: flat fields."""


class TradeShape(Enum):
    """Raw trade payload shapes."""

    PUBLIC_HISTORY = "PUBLIC_HISTORY"
    """id, type, time, price, amount."""

    MY_TRADES = "MY_TRADES"
    """deal_id, deal_time, deal_order_id, side, deal_fee, role as text."""

    ORDER_TRADES = "ORDER_TRADES"
    """id, time, dealOrderId, fee, role as 1 (maker) or 2 (taker)."""


class OrderShape(Enum):
    """Raw order payload shapes."""

    ACTIVE = "ACTIVE"
    """orderId + timestamp (create, cancel, open orders)."""

    HISTORY = "HISTORY"
    """id + ctime (order history)."""


# ============================================================
# MARKET
# ============================================================

@dataclass(frozen=True)
class MarketPrecision:
    """Minimum increments (not decimal-place counts)."""

    amount: Optional[Decimal] = None
    price: Optional[Decimal] = None


@dataclass(frozen=True)
class MinMax:
    """A pair of optional bounds."""

    min: Optional[Decimal] = None
    max: Optional[Decimal] = None


@dataclass(frozen=True)
class MarketLimits:
    """Order limits for a market."""

    amount: MinMax = field(default_factory=MinMax)
    price: MinMax = field(default_factory=MinMax)
    cost: MinMax = field(default_factory=MinMax)


@dataclass(frozen=True)
class Market:
    """A spot market definition."""

    id: str
    """Venue-native market id (e.g. ETH_BTC)."""

    symbol: str
    """Canonical symbol, always base + '/' + quote."""

    base: str
    quote: str
    base_id: str
    quote_id: str

    precision: MarketPrecision = field(default_factory=MarketPrecision)
    limits: MarketLimits = field(default_factory=MarketLimits)

    type: str = "spot"
    active: bool = True

    taker: Optional[Decimal] = None
    maker: Optional[Decimal] = None
    """Entry-tier fee rates as fractions (0.002 is 0.2%)."""

    info: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    def amount_to_precision(self, amount: Any) -> str:
        """Truncate an amount to the market step size."""
        return decimal_to_precision(amount, self.precision.amount, ROUND_DOWN)

    def price_to_precision(self, price: Any) -> str:
        """Round a price to the market tick size."""
        return decimal_to_precision(price, self.precision.price, ROUND_HALF_UP)


# ============================================================
# MARKET DATA
# ============================================================

@dataclass(frozen=True)
class Ticker:
    """24h statistics for one market."""

    symbol: Optional[str]
    timestamp: Optional[int]

    high: Optional[Decimal] = None
    low: Optional[Decimal] = None
    bid: Optional[Decimal] = None
    ask: Optional[Decimal] = None
    open: Optional[Decimal] = None
    close: Optional[Decimal] = None
    last: Optional[Decimal] = None
    base_volume: Optional[Decimal] = None
    quote_volume: Optional[Decimal] = None
    percentage: Optional[Decimal] = None

    info: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def datetime(self) -> Optional[str]:
        return iso8601(self.timestamp)


PriceLevel = Tuple[Decimal, Decimal]


@dataclass(frozen=True)
class OrderBookSnapshot:
    """Depth snapshot; level order is the venue's."""

    symbol: str
    timestamp: Optional[int]
    bids: Tuple[PriceLevel, ...] = ()
    asks: Tuple[PriceLevel, ...] = ()

    @property
    def datetime(self) -> Optional[str]:
        return iso8601(self.timestamp)


@dataclass(frozen=True)
class Candle:
    """OHLCV bar in canonical order."""

    timestamp: int
    open: Optional[Decimal]
    high: Optional[Decimal]
    low: Optional[Decimal]
    close: Optional[Decimal]
    volume: Optional[Decimal]

    def as_list(self) -> List[Any]:
        """[timestamp, open, high, low, close, volume]"""
        return [self.timestamp, self.open, self.high, self.low, self.close, self.volume]


# ============================================================
# ACCOUNT
# ============================================================

@dataclass(frozen=True)
class Fee:
    """Fee paid on a trade or order."""

    currency: Optional[str]
    cost: Optional[Decimal]


@dataclass(frozen=True)
class Trade:
    """A single fill, public or private."""

    id: Optional[str]
    order: Optional[str]
    symbol: Optional[str]
    timestamp: Optional[int]
    side: Optional[str]
    taker_or_maker: Optional[str]
    price: Optional[Decimal]
    amount: Optional[Decimal]
    cost: Optional[Decimal]
    fee: Optional[Fee] = None
    type: Optional[str] = None

    info: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def datetime(self) -> Optional[str]:
        return iso8601(self.timestamp)


@dataclass(frozen=True)
class Order:
    """
    An order as reported by the venue.

    Fields the venue never reports (status, cost, average,
    client_order_id, trigger_price, time_in_force, post_only,
    trades, last_trade_timestamp) are always None.
    """

    id: Optional[str]
    symbol: Optional[str]
    timestamp: Optional[int]
    type: Optional[str]
    side: Optional[str]
    price: Optional[Decimal]
    amount: Optional[Decimal]
    filled: Optional[Decimal]
    remaining: Optional[Decimal]
    fee: Optional[Fee]

    status: Optional[str] = None
    cost: Optional[Decimal] = None
    average: Optional[Decimal] = None
    client_order_id: Optional[str] = None
    trigger_price: Optional[Decimal] = None
    time_in_force: Optional[str] = None
    post_only: Optional[bool] = None
    trades: Optional[List[Trade]] = None
    last_trade_timestamp: Optional[int] = None

    info: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def datetime(self) -> Optional[str]:
        return iso8601(self.timestamp)


@dataclass(frozen=True)
class Balance:
    """Free and used amounts of one currency."""

    free: Optional[Decimal] = None
    used: Optional[Decimal] = None

    @property
    def total(self) -> Optional[Decimal]:
        if self.free is None or self.used is None:
            return None
        return self.free + self.used


Balances = Dict[str, Balance]
