"""
P2B Connector - Market Catalog.

============================================================
PURPOSE
============================================================
Parsed market definitions, looked up by native id or symbol.

CONCURRENCY:
- MarketCatalog is an immutable snapshot, safe for any
  number of concurrent readers
- MarketCatalogStore swaps in a freshly built snapshot on
  reload; readers never see a partially rebuilt catalog

============================================================
"""

import logging
import threading
from decimal import Decimal
from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional

from .config import MAKER_FEE_TIERS, TAKER_FEE_TIERS, fee_for_volume
from .errors import MalformedPayload, UnknownMarket
from .types import Market, MarketLimits, MarketPrecision, MinMax
from .utils import omit_zero, safe_currency_code, safe_decimal, safe_string, safe_value


logger = logging.getLogger(__name__)


# ============================================================
# PARSING
# ============================================================

def parse_market(raw: Dict[str, Any]) -> Market:
    """
    Convert a raw market definition to a canonical Market.

    Raw shape:
        {"name": "ETH_BTC", "stock": "ETH", "money": "BTC",
         "precision": {...},
         "limits": {"min_amount", "max_amount", "step_size",
                    "min_price", "max_price", "tick_size", "min_total"}}
    """
    if not isinstance(raw, dict):
        raise MalformedPayload(f"market definition must be an object: {raw!r}")
    for key in ("name", "stock", "money"):
        if not isinstance(raw.get(key), str) or not raw[key]:
            raise MalformedPayload(f"market definition has no {key}: {raw!r}")

    market_id = safe_string(raw, "name")
    base_id = safe_string(raw, "stock")
    quote_id = safe_string(raw, "money")
    base = safe_currency_code(base_id)
    quote = safe_currency_code(quote_id)
    limits = safe_value(raw, "limits", {})

    return Market(
        id=market_id,
        symbol=f"{base}/{quote}",
        base=base,
        quote=quote,
        base_id=base_id,
        quote_id=quote_id,
        precision=MarketPrecision(
            amount=safe_decimal(limits, "step_size"),
            price=safe_decimal(limits, "tick_size"),
        ),
        limits=MarketLimits(
            amount=MinMax(
                min=safe_decimal(limits, "min_amount"),
                max=omit_zero(safe_value(limits, "max_amount")),
            ),
            price=MinMax(
                min=safe_decimal(limits, "min_price"),
                max=omit_zero(safe_value(limits, "max_price")),
            ),
            cost=MinMax(
                min=safe_decimal(limits, "min_total"),
            ),
        ),
        taker=fee_for_volume(TAKER_FEE_TIERS, Decimal("0")) / 100,
        maker=fee_for_volume(MAKER_FEE_TIERS, Decimal("0")) / 100,
        info=raw,
    )


def load_markets(raw_list: Iterable[Dict[str, Any]]) -> List[Market]:
    """Parse every raw market definition; indexing is left to the caller."""
    if not isinstance(raw_list, (list, tuple)):
        raise MalformedPayload(f"market list must be an array, got {type(raw_list).__name__}")
    return [parse_market(raw) for raw in raw_list]


# ============================================================
# CATALOG SNAPSHOT
# ============================================================

class MarketCatalog:
    """
    Immutable snapshot of market definitions.

    Indexed by venue-native id and by canonical symbol.
    """

    def __init__(self, markets: Iterable[Market] = ()):
        by_id: Dict[str, Market] = {}
        by_symbol: Dict[str, Market] = {}
        for market in markets:
            by_id[market.id] = market
            by_symbol[market.symbol] = market
        self._by_id: Mapping[str, Market] = MappingProxyType(by_id)
        self._by_symbol: Mapping[str, Market] = MappingProxyType(by_symbol)

    @classmethod
    def from_raw(cls, raw_list: Iterable[Dict[str, Any]]) -> "MarketCatalog":
        return cls(load_markets(raw_list))

    @property
    def by_id(self) -> Mapping[str, Market]:
        return self._by_id

    @property
    def by_symbol(self) -> Mapping[str, Market]:
        return self._by_symbol

    @property
    def symbols(self) -> List[str]:
        return sorted(self._by_symbol)

    @property
    def ids(self) -> List[str]:
        return sorted(self._by_id)

    def __len__(self) -> int:
        return len(self._by_id)

    def __iter__(self) -> Iterator[Market]:
        return iter(self._by_symbol.values())

    def __contains__(self, key: object) -> bool:
        return key in self._by_id or key in self._by_symbol

    def resolve(self, id_or_symbol: str) -> Market:
        """
        Look a market up by native id or canonical symbol.

        Raises:
            UnknownMarket: If neither index has the key
        """
        market = self._by_symbol.get(id_or_symbol)
        if market is None:
            market = self._by_id.get(id_or_symbol)
        if market is None:
            raise UnknownMarket(f"p2b does not have market {id_or_symbol!r}")
        return market

    def safe_market(self, market_id: Optional[str], fallback: Optional[Market] = None) -> Market:
        """
        Market for a raw payload's market id.

        A known id wins; otherwise the caller-supplied market is used.

        Raises:
            UnknownMarket: If the id is unknown and no market was supplied
        """
        if market_id is not None:
            market = self._by_id.get(market_id)
            if market is not None:
                return market
        if fallback is not None:
            return fallback
        if market_id is None:
            raise UnknownMarket("payload carries no market id and no market was supplied")
        return self.resolve(market_id)


EMPTY_CATALOG = MarketCatalog()


# ============================================================
# CATALOG STORE
# ============================================================

class MarketCatalogStore:
    """
    Holds the current catalog snapshot.

    Reload builds a complete new snapshot and swaps the reference
    under a lock; readers keep whatever snapshot they already took.
    """

    def __init__(self, catalog: Optional[MarketCatalog] = None):
        self._catalog = catalog or EMPTY_CATALOG
        self._lock = threading.Lock()
        self._loaded = catalog is not None

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    def snapshot(self) -> MarketCatalog:
        return self._catalog

    def replace(self, markets: Iterable[Market]) -> MarketCatalog:
        """Build a new snapshot from markets and make it current."""
        catalog = MarketCatalog(markets)
        with self._lock:
            self._catalog = catalog
            self._loaded = True
        logger.info(f"Market catalog loaded: {len(catalog)} markets")
        return catalog
