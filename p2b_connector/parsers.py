"""
P2B Connector - Response Normalizer.

============================================================
PURPOSE
============================================================
Pure mappings from raw venue payloads to canonical entities.

DESIGN PRINCIPLES:
- No I/O, no shared mutable state; safe to call concurrently
- Each raw payload is tagged with its shape before parsing;
  payloads matching no known shape are rejected
- Fee currency always comes from the market context

============================================================
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .errors import MalformedPayload, UnknownMarket
from .markets import EMPTY_CATALOG, MarketCatalog
from .types import (
    Balance,
    Balances,
    Candle,
    Fee,
    Market,
    Order,
    OrderBookSnapshot,
    OrderShape,
    TakerOrMaker,
    Ticker,
    TickerShape,
    Trade,
    TradeShape,
)
from .utils import (
    filter_by_since_limit,
    safe_currency_code,
    safe_decimal,
    safe_decimal2,
    safe_string,
    safe_string2,
    safe_timestamp_ms,
    safe_timestamp_ms2,
    safe_value,
    to_decimal,
)


logger = logging.getLogger(__name__)


def _require_dict(raw: Any, kind: str) -> Dict[str, Any]:
    if not isinstance(raw, dict):
        raise MalformedPayload(f"{kind} payload must be an object, got {type(raw).__name__}")
    return raw


def _require_list(raw: Any, kind: str) -> List[Any]:
    if not isinstance(raw, list):
        raise MalformedPayload(f"{kind} payload must be a list, got {type(raw).__name__}")
    return raw


def _require_market(market: Optional[Market], kind: str) -> Market:
    if market is None:
        raise UnknownMarket(f"{kind} payload carries no market id; a market must be supplied")
    return market


# ============================================================
# TICKERS
# ============================================================

_TICKER_FIELDS = ("last", "bid", "ask", "high", "low", "open")


def classify_ticker(raw: Any) -> TickerShape:
    raw = _require_dict(raw, "ticker")
    if isinstance(raw.get("ticker"), dict):
        return TickerShape.LISTING
    if any(name in raw for name in _TICKER_FIELDS):
        return TickerShape.SINGLE
    raise MalformedPayload(f"unrecognized ticker payload keys: {sorted(raw)}")


def parse_ticker(raw: Dict[str, Any], market: Optional[Market] = None) -> Ticker:
    """
    Listing shape:
        {"at": "1699252631", "ticker": {"bid", "ask", "low", "high",
         "last", "vol", "deal", "change"}}
    Single shape:
        {"bid", "ask", "open", "high", "low", "last", "volume",
         "deal", "change"}
    """
    shape = classify_ticker(raw)
    timestamp = safe_timestamp_ms(raw, "at")
    fields = raw["ticker"] if shape is TickerShape.LISTING else raw

    last = safe_decimal(fields, "last")
    return Ticker(
        symbol=market.symbol if market is not None else None,
        timestamp=timestamp,
        high=safe_decimal(fields, "high"),
        low=safe_decimal(fields, "low"),
        bid=safe_decimal(fields, "bid"),
        ask=safe_decimal(fields, "ask"),
        open=safe_decimal(fields, "open"),
        close=last,
        last=last,
        base_volume=safe_decimal2(fields, "vol", "volume"),
        quote_volume=safe_decimal(fields, "deal"),
        percentage=safe_decimal(fields, "change"),
        info=fields,
    )


def parse_tickers(
    result: Dict[str, Any],
    catalog: MarketCatalog,
    symbols: Optional[Sequence[str]] = None,
) -> Dict[str, Ticker]:
    """Parse the listing keyed by native market id into tickers keyed by symbol."""
    wanted = set(symbols) if symbols else None
    tickers: Dict[str, Ticker] = {}
    for market_id, raw in _require_dict(result, "tickers").items():
        market = catalog.by_id.get(market_id)
        if market is None:
            logger.warning(f"Skipping ticker for unknown market {market_id!r}")
            continue
        if wanted is not None and market.symbol not in wanted:
            continue
        tickers[market.symbol] = parse_ticker(raw, market)
    return tickers


# ============================================================
# ORDER BOOK
# ============================================================

def _parse_levels(levels: Any, price_key: int, amount_key: int) -> tuple:
    if levels is None:
        return ()
    if not isinstance(levels, list):
        raise MalformedPayload("order book side must be a list")
    parsed = []
    for level in levels:
        price = to_decimal(safe_value(level, price_key))
        amount = to_decimal(safe_value(level, amount_key))
        if price is None or amount is None:
            raise MalformedPayload(f"order book level is not [price, amount]: {level!r}")
        parsed.append((price, amount))
    return tuple(parsed)


def parse_order_book(
    raw: Dict[str, Any],
    symbol: str,
    timestamp: Optional[int] = None,
    bids_key: str = "bids",
    asks_key: str = "asks",
    price_key: int = 0,
    amount_key: int = 1,
) -> OrderBookSnapshot:
    """Levels are passed through in venue order; no sorting, no aggregation."""
    raw = _require_dict(raw, "order book")
    return OrderBookSnapshot(
        symbol=symbol,
        timestamp=timestamp,
        bids=_parse_levels(raw.get(bids_key), price_key, amount_key),
        asks=_parse_levels(raw.get(asks_key), price_key, amount_key),
    )


# ============================================================
# TRADES
# ============================================================

def classify_trade(raw: Any) -> TradeShape:
    raw = _require_dict(raw, "trade")
    if "deal_id" in raw:
        return TradeShape.MY_TRADES
    if "dealOrderId" in raw:
        return TradeShape.ORDER_TRADES
    if "id" in raw and "type" in raw:
        return TradeShape.PUBLIC_HISTORY
    raise MalformedPayload(f"unrecognized trade payload keys: {sorted(raw)}")


_ROLE_CODES = {
    "1": TakerOrMaker.MAKER.value,
    "2": TakerOrMaker.TAKER.value,
}


def normalize_role(role: Any) -> Optional[str]:
    """1 -> maker, 2 -> taker, other text unchanged, absent -> None."""
    role = safe_string({"role": role}, "role")
    if role is None:
        return None
    return _ROLE_CODES.get(role, role)


def parse_trade(raw: Dict[str, Any], market: Optional[Market]) -> Trade:
    """
    Public history:
        {"id", "type", "time", "amount", "price"}
    My trades:
        {"deal_id", "deal_time", "deal_order_id", "opposite_order_id",
         "side", "price", "amount", "deal", "deal_fee", "role": "taker"}
    Order trades:
        {"id", "time", "fee", "price", "amount", "dealOrderId",
         "role": 1, "deal"}
    """
    shape = classify_trade(raw)
    market = _require_market(market, "trade")

    if shape is TradeShape.MY_TRADES:
        trade_id = safe_string(raw, "deal_id")
        timestamp = safe_timestamp_ms(raw, "deal_time")
        order_id = safe_string(raw, "deal_order_id")
        side = safe_string(raw, "side")
        fee_cost = safe_decimal(raw, "deal_fee")
    elif shape is TradeShape.ORDER_TRADES:
        trade_id = safe_string(raw, "id")
        timestamp = safe_timestamp_ms(raw, "time")
        order_id = safe_string(raw, "dealOrderId")
        side = safe_string(raw, "side")
        fee_cost = safe_decimal(raw, "fee")
    else:
        trade_id = safe_string(raw, "id")
        timestamp = safe_timestamp_ms(raw, "time")
        order_id = None
        side = safe_string(raw, "type")
        fee_cost = None

    return Trade(
        id=trade_id,
        order=order_id,
        symbol=market.symbol,
        timestamp=timestamp,
        side=side,
        taker_or_maker=normalize_role(raw.get("role")),
        price=safe_decimal(raw, "price"),
        amount=safe_decimal(raw, "amount"),
        cost=safe_decimal(raw, "deal"),
        fee=Fee(currency=market.quote, cost=fee_cost),
        info=raw,
    )


def parse_trades(
    raws: Iterable[Dict[str, Any]],
    market: Optional[Market],
    since: Optional[int] = None,
    limit: Optional[int] = None,
) -> List[Trade]:
    trades = [parse_trade(raw, market) for raw in _require_list(raws, "trades")]
    return filter_by_since_limit(trades, since, limit)


# ============================================================
# CANDLES
# ============================================================

def parse_ohlcv(raw: Sequence[Any]) -> Candle:
    """
    Raw kline:
        [open_time, open, close, high, low, stock_volume,
         money_volume, market_name]

    Positions 2/3/4 are close/high/low on the wire; the canonical
    candle is open, high, low, close.
    """
    if not isinstance(raw, (list, tuple)) or len(raw) < 6:
        raise MalformedPayload(f"kline must be an array of at least 6 fields: {raw!r}")
    timestamp = safe_timestamp_ms(raw, 0)
    if timestamp is None:
        raise MalformedPayload(f"kline has no open time: {raw!r}")
    return Candle(
        timestamp=timestamp,
        open=safe_decimal(raw, 1),
        high=safe_decimal(raw, 3),
        low=safe_decimal(raw, 4),
        close=safe_decimal(raw, 2),
        volume=safe_decimal(raw, 5),
    )


def parse_ohlcvs(
    raws: Iterable[Sequence[Any]],
    since: Optional[int] = None,
    limit: Optional[int] = None,
) -> List[Candle]:
    candles = [parse_ohlcv(raw) for raw in _require_list(raws, "klines")]
    return filter_by_since_limit(candles, since, limit)


# ============================================================
# BALANCES
# ============================================================

def parse_balance(raw: Dict[str, Any]) -> Balances:
    """
    {"USDT": {"available": "71.81328046", "freeze": "10.46103091"}, ...}

    Only currencies present in the payload are emitted.
    """
    balances: Balances = {}
    for currency_id, entry in _require_dict(raw, "balance").items():
        code = safe_currency_code(currency_id)
        balances[code] = Balance(
            free=safe_decimal(entry, "available"),
            used=safe_decimal(entry, "freeze"),
        )
    return balances


# ============================================================
# ORDERS
# ============================================================

def classify_order(raw: Any) -> OrderShape:
    raw = _require_dict(raw, "order")
    if "orderId" in raw or "timestamp" in raw:
        return OrderShape.ACTIVE
    if "id" in raw or "ctime" in raw:
        return OrderShape.HISTORY
    raise MalformedPayload(f"unrecognized order payload keys: {sorted(raw)}")


def parse_order(
    raw: Dict[str, Any],
    market: Optional[Market] = None,
    catalog: MarketCatalog = EMPTY_CATALOG,
) -> Order:
    """
    Active shape (create, cancel, open orders):
        {"orderId", "market", "price", "side", "type", "timestamp",
         "dealMoney", "dealStock", "amount", "takerFee", "makerFee",
         "left", "dealFee"}
    History shape:
        {"id", "amount", "price", "type", "side", "ctime", "ftime",
         "market", "takerFee", "makerFee", "dealFee", "dealStock",
         "dealMoney"}
    """
    shape = classify_order(raw)
    if shape is OrderShape.ACTIVE:
        order_id = safe_string2(raw, "orderId", "id")
        timestamp = safe_timestamp_ms2(raw, "timestamp", "ctime")
    else:
        order_id = safe_string2(raw, "id", "orderId")
        timestamp = safe_timestamp_ms2(raw, "ctime", "timestamp")

    market = catalog.safe_market(safe_string(raw, "market"), market)

    return Order(
        id=order_id,
        symbol=market.symbol,
        timestamp=timestamp,
        type=safe_string(raw, "type"),
        side=safe_string(raw, "side"),
        price=safe_decimal(raw, "price"),
        amount=safe_decimal(raw, "amount"),
        filled=safe_decimal(raw, "dealStock"),
        remaining=safe_decimal(raw, "left"),
        fee=Fee(currency=market.quote, cost=safe_decimal(raw, "dealFee")),
        info=raw,
    )


def parse_orders(
    raws: Iterable[Dict[str, Any]],
    market: Optional[Market] = None,
    catalog: MarketCatalog = EMPTY_CATALOG,
    since: Optional[int] = None,
    limit: Optional[int] = None,
) -> List[Order]:
    orders = [parse_order(raw, market, catalog) for raw in _require_list(raws, "orders")]
    return filter_by_since_limit(orders, since, limit)


def parse_closed_orders(
    result: Dict[str, Any],
    catalog: MarketCatalog,
    market: Optional[Market] = None,
    since: Optional[int] = None,
    limit: Optional[int] = None,
) -> List[Order]:
    """Order history arrives grouped by native market id."""
    orders: List[Order] = []
    for market_id, group in _require_dict(result, "order history").items():
        if not isinstance(group, list):
            raise MalformedPayload(f"order history for {market_id!r} must be a list")
        group_market = catalog.by_id.get(market_id, market)
        orders.extend(parse_order(raw, group_market, catalog) for raw in group)
    return filter_by_since_limit(orders, since, limit)
