"""
P2B Connector - Decimal and Timestamp Utilities.

============================================================
PURPOSE
============================================================
Safe extraction of fields from loosely-typed venue payloads.

RULES:
- Monetary and quantity values are Decimal, never float
- Venue timestamps are fractional Unix seconds; canonical
  timestamps are integer milliseconds
- Absent fields stay absent (None), never zero

============================================================
"""

import time
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_DOWN, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Optional, Sequence, TypeVar, Union


T = TypeVar("T")

Payload = Union[Dict[str, Any], Sequence[Any]]

ONE_THOUSAND = Decimal("1000")

# Venue currency ids that differ from the common code
COMMON_CURRENCIES: Dict[str, str] = {
    "XBT": "BTC",
    "BCC": "BCH",
    "BCHSV": "BSV",
}


# ============================================================
# RAW FIELD ACCESS
# ============================================================

def safe_value(payload: Optional[Payload], key: Union[str, int], default: Any = None) -> Any:
    """Read a key (or list index) without raising; empty strings count as absent."""
    if payload is None:
        return default
    try:
        value = payload[key]
    except (KeyError, IndexError, TypeError):
        return default
    if value is None or value == "":
        return default
    return value


def safe_string(payload: Optional[Payload], key: Union[str, int], default: Optional[str] = None) -> Optional[str]:
    value = safe_value(payload, key)
    if value is None:
        return default
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def safe_string2(
    payload: Optional[Payload],
    key1: Union[str, int],
    key2: Union[str, int],
    default: Optional[str] = None,
) -> Optional[str]:
    value = safe_string(payload, key1)
    if value is None:
        value = safe_string(payload, key2)
    return default if value is None else value


def to_decimal(value: Any) -> Optional[Decimal]:
    """
    Convert a raw value to an exact Decimal.

    Floats go through their shortest repr so no binary expansion
    leaks into the result. Non-numeric input yields None.
    """
    if value is None or value == "" or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    if not result.is_finite():
        return None
    return result


def safe_decimal(payload: Optional[Payload], key: Union[str, int]) -> Optional[Decimal]:
    """Field as an exact Decimal if present and non-null, else None."""
    return to_decimal(safe_value(payload, key))


def safe_decimal2(payload: Optional[Payload], key1: Union[str, int], key2: Union[str, int]) -> Optional[Decimal]:
    """First present of key1, key2 as an exact Decimal."""
    value = safe_decimal(payload, key1)
    if value is None:
        value = safe_decimal(payload, key2)
    return value


def safe_integer(payload: Optional[Payload], key: Union[str, int]) -> Optional[int]:
    value = safe_decimal(payload, key)
    if value is None:
        return None
    return int(value)


def safe_integer_product(
    payload: Optional[Payload],
    key: Union[str, int],
    factor: Union[int, Decimal] = 1000,
) -> Optional[int]:
    """
    Field multiplied by factor and rounded half-up to an integer.

    With the default factor this turns fractional Unix seconds into
    integer milliseconds.
    """
    value = safe_decimal(payload, key)
    if value is None:
        return None
    product = value * Decimal(factor)
    return int(product.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def safe_integer_product2(
    payload: Optional[Payload],
    key1: Union[str, int],
    key2: Union[str, int],
    factor: Union[int, Decimal] = 1000,
) -> Optional[int]:
    result = safe_integer_product(payload, key1, factor)
    if result is None:
        result = safe_integer_product(payload, key2, factor)
    return result


def safe_timestamp_ms(payload: Optional[Payload], key: Union[str, int]) -> Optional[int]:
    """Fractional-second epoch field as integer epoch milliseconds."""
    return safe_integer_product(payload, key, ONE_THOUSAND)


def safe_timestamp_ms2(payload: Optional[Payload], key1: Union[str, int], key2: Union[str, int]) -> Optional[int]:
    return safe_integer_product2(payload, key1, key2, ONE_THOUSAND)


def omit_zero(value: Any) -> Optional[Decimal]:
    """
    Treat a bound of exactly zero as unset.

    Only for maximum bounds; a zero minimum is a real minimum.
    """
    number = to_decimal(value)
    if number is None or number.is_zero():
        return None
    return number


def safe_currency_code(currency_id: Optional[str]) -> Optional[str]:
    """Canonical currency code for a venue currency id."""
    if currency_id is None:
        return None
    code = currency_id.upper()
    return COMMON_CURRENCIES.get(code, code)


# ============================================================
# PRECISION
# ============================================================

def decimal_to_precision(
    value: Union[Decimal, str, int, float],
    step: Optional[Decimal],
    rounding: str = ROUND_DOWN,
) -> str:
    """
    Snap a value onto a step-size grid and render it as a plain string.

    Args:
        value: Number to snap
        step: Increment (tick or step size); None leaves the value as is
        rounding: decimal rounding mode

    Returns:
        Exact decimal string without exponent
    """
    number = to_decimal(value)
    if number is None:
        raise ValueError(f"Not a number: {value!r}")

    if step is not None and not step.is_zero():
        units = (number / step).quantize(Decimal(1), rounding=rounding)
        number = (units * step).quantize(step)

    text = format(number, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text or "0"


# ============================================================
# TIME
# ============================================================

def milliseconds() -> int:
    """Current epoch time in milliseconds."""
    return int(time.time() * 1000)


def iso8601(timestamp_ms: Optional[int]) -> Optional[str]:
    """Render epoch milliseconds as ISO-8601 UTC with millisecond precision."""
    if timestamp_ms is None:
        return None
    dt = datetime.fromtimestamp(timestamp_ms // 1000, tz=timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{timestamp_ms % 1000:03d}Z"


# ============================================================
# COLLECTIONS
# ============================================================

def filter_by_since_limit(
    items: Iterable[T],
    since: Optional[int] = None,
    limit: Optional[int] = None,
    key: str = "timestamp",
) -> List[T]:
    """
    Sort by timestamp, drop entries before since, keep the first limit.

    Entries without a timestamp sort last and survive only when no
    since bound is given.
    """
    def sort_key(item):
        ts = getattr(item, key)
        return (ts is None, ts or 0)

    result = sorted(items, key=sort_key)
    if since is not None:
        result = [item for item in result if getattr(item, key) is not None and getattr(item, key) >= since]
    if limit is not None:
        result = result[:limit]
    return result
