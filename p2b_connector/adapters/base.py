"""
P2B Connector - Exchange Adapter Base.

============================================================
PURPOSE
============================================================
Abstract interface for venue adapters.

DESIGN PRINCIPLES:
- Venue-agnostic interface over canonical entities
- Clean separation from normalization and signing
- Fully testable by patching the transport seam

============================================================
"""

import logging
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

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


logger = logging.getLogger(__name__)


# ============================================================
# ABSTRACT EXCHANGE ADAPTER
# ============================================================

class ExchangeAdapter(ABC):
    """
    Abstract interface for venue adapters.

    Implementations:
    - P2BAdapter: P2B REST API v2
    """

    @property
    @abstractmethod
    def exchange_id(self) -> str:
        """Get exchange identifier."""
        pass

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Check if adapter is connected."""
        pass

    # --------------------------------------------------------
    # CONNECTION
    # --------------------------------------------------------

    @abstractmethod
    async def connect(self) -> None:
        """Open the HTTP session."""
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the HTTP session."""
        pass

    async def __aenter__(self) -> "ExchangeAdapter":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.disconnect()

    # --------------------------------------------------------
    # MARKET DATA
    # --------------------------------------------------------

    @abstractmethod
    async def load_markets(self, reload: bool = False) -> Dict[str, Market]:
        """
        Load the market catalog once and return it keyed by symbol.

        Args:
            reload: Fetch again even when a catalog is loaded
        """
        pass

    @abstractmethod
    async def fetch_markets(self) -> List[Market]:
        pass

    @abstractmethod
    async def fetch_tickers(self, symbols: Optional[Sequence[str]] = None) -> Dict[str, Ticker]:
        pass

    @abstractmethod
    async def fetch_ticker(self, symbol: str) -> Ticker:
        pass

    @abstractmethod
    async def fetch_order_book(self, symbol: str, limit: Optional[int] = None) -> OrderBookSnapshot:
        pass

    @abstractmethod
    async def fetch_trades(
        self,
        symbol: str,
        since: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[Trade]:
        pass

    @abstractmethod
    async def fetch_ohlcv(
        self,
        symbol: str,
        timeframe: Timeframe = Timeframe.ONE_MINUTE,
        since: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[Candle]:
        pass

    # --------------------------------------------------------
    # ACCOUNT OPERATIONS
    # --------------------------------------------------------

    @abstractmethod
    async def fetch_balance(self) -> Balances:
        pass

    # --------------------------------------------------------
    # ORDER OPERATIONS
    # --------------------------------------------------------

    @abstractmethod
    async def create_order(
        self,
        symbol: str,
        order_type: OrderType,
        side: OrderSide,
        amount: Decimal,
        price: Optional[Decimal] = None,
    ) -> Order:
        """
        Place an order.

        Raises:
            InvalidRequest: If the venue does not support the order type
        """
        pass

    @abstractmethod
    async def cancel_order(self, order_id: str, symbol: Optional[str] = None) -> Order:
        pass

    @abstractmethod
    async def fetch_open_orders(
        self,
        symbol: Optional[str] = None,
        since: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[Order]:
        pass

    @abstractmethod
    async def fetch_closed_orders(
        self,
        symbol: Optional[str] = None,
        since: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[Order]:
        pass

    @abstractmethod
    async def fetch_order_trades(
        self,
        order_id: str,
        symbol: Optional[str] = None,
        since: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[Trade]:
        pass

    @abstractmethod
    async def fetch_my_trades(
        self,
        symbol: Optional[str] = None,
        since: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[Trade]:
        pass
