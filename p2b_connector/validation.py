"""
P2B Connector - Local Request Validation.

============================================================
PURPOSE
============================================================
Checks that run before any request is built.

VALIDATION STEPS:
1. Required adapter arguments (symbol, last_id, price)
2. Order type (limit only)
3. History windows (at most 24 hours)
4. Candle timeframe

CRITICAL PRINCIPLE:
    "A request the venue would reject never leaves the process."

============================================================
"""

import logging
from typing import Any, Callable, Optional, Tuple

from .errors import InvalidRequest, MissingArgument
from .types import OrderSide, OrderType, Timeframe
from .utils import milliseconds


logger = logging.getLogger(__name__)


MAX_HISTORY_WINDOW_MS = 86_400_000
"""Venue limit on the span of my-trades and order-history queries."""


def require_argument(value: Any, name: str, operation: str) -> Any:
    """Raise MissingArgument when a required argument is None."""
    if value is None:
        raise MissingArgument(f"p2b {operation}() requires a {name} argument")
    return value


def ensure_limit_order(order_type: Any) -> OrderType:
    """Only limit orders are accepted by the venue."""
    try:
        parsed = order_type if isinstance(order_type, OrderType) else OrderType(str(order_type).lower())
    except ValueError:
        raise InvalidRequest(f"p2b createOrder() does not support order type {order_type!r}")
    if parsed is not OrderType.LIMIT:
        raise InvalidRequest('p2b createOrder() can only accept orders with type "limit"')
    return parsed


def validate_side(side: Any) -> OrderSide:
    try:
        return side if isinstance(side, OrderSide) else OrderSide(str(side).lower())
    except ValueError:
        raise InvalidRequest(f"p2b createOrder() side must be buy or sell, got {side!r}")


def validate_timeframe(timeframe: Any) -> Timeframe:
    try:
        return timeframe if isinstance(timeframe, Timeframe) else Timeframe(timeframe)
    except ValueError:
        supported = ", ".join(t.value for t in Timeframe)
        raise InvalidRequest(f"p2b does not support timeframe {timeframe!r}; use one of {supported}")


def resolve_time_window(
    since: Optional[int],
    until: Optional[int],
    operation: str,
    now: Callable[[], int] = milliseconds,
) -> Tuple[int, int]:
    """
    Resolve a [since, until] window in epoch ms.

    Defaults:
        until absent, since absent  -> until = now
        until absent, since present -> until = since + 24h
        since absent                -> since = until - 24h

    Raises:
        InvalidRequest: If the window is longer than 24h or inverted
    """
    if until is None:
        until = now() if since is None else since + MAX_HISTORY_WINDOW_MS
    if since is None:
        since = until - MAX_HISTORY_WINDOW_MS

    span = until - since
    if span > MAX_HISTORY_WINDOW_MS:
        raise InvalidRequest(
            f"p2b {operation}() the time between since and until cannot be greater than 24 hours"
        )
    if span < 0:
        raise InvalidRequest(f"p2b {operation}() until must not be earlier than since")

    logger.debug(f"{operation} window resolved: {since} -> {until}")
    return since, until
