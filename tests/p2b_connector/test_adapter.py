"""
P2B Adapter Tests.

============================================================
PURPOSE
============================================================
Tests for the async adapter with the transport seam patched.

TEST CATEGORIES:
- Market catalog loading
- Public endpoints: request building and envelope timestamps
- Private endpoints: signed POST bodies
- Local validation: nothing reaches the network
- Error handling: venue codes, transport failures, metrics
- Logging: credentials never logged in clear

============================================================
"""

import asyncio
import json
import logging
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import aiohttp
import pytest

from p2b_connector.adapters import P2BAdapter
from p2b_connector.config import P2BConfig
from p2b_connector.errors import (
    AuthenticationFailure,
    ErrorCategory,
    InsufficientFunds,
    InvalidRequest,
    MalformedPayload,
    MissingArgument,
    NetworkFailure,
    ServiceUnavailable,
    UnknownMarket,
)
from p2b_connector.signing import HEADER_API_KEY, HEADER_SIGNATURE, NonceGenerator
from p2b_connector.types import OrderSide, OrderType, Timeframe
from p2b_connector.validation import MAX_HISTORY_WINDOW_MS


API_KEY = "4a894c5c8a7e4337bb6b9fde16e3dddd"
API_SECRET = "57b8b22a4fc8ad4dc3b2a6ec26e8d31f"

RAW_MARKETS = [
    {
        "name": "ETH_BTC",
        "stock": "ETH",
        "money": "BTC",
        "limits": {"min_amount": "0.001", "max_amount": "0", "step_size": "0.001",
                   "min_price": "0.00001", "max_price": "0", "tick_size": "0.000001",
                   "min_total": "0.0001"},
    },
    {
        "name": "ADA_USDT",
        "stock": "ADA",
        "money": "USDT",
        "limits": {"min_amount": "0.1", "max_amount": "0", "step_size": "0.1",
                   "min_price": "0.0001", "max_price": "0", "tick_size": "0.0001",
                   "min_total": "5"},
    },
]


def envelope(result, **extra):
    data = {"success": True, "errorCode": "", "message": "", "result": result}
    data.update(extra)
    return data


def endpoint_of(url):
    path = url.split("/api/v2/", 1)[1].split("?", 1)[0]
    return path[len("public/"):] if path.startswith("public/") else path


def make_send(routes):
    """AsyncMock transport answering by endpoint path."""
    async def send(method, url, headers, body):
        return routes[endpoint_of(url)]
    return AsyncMock(side_effect=send)


def make_adapter(api_key=API_KEY, api_secret=API_SECRET):
    config = P2BConfig(api_key=api_key, api_secret=api_secret)
    return P2BAdapter(config=config, nonce=NonceGenerator(clock=lambda: 1699252631000))


def sent_calls(send, path):
    return [c for c in send.await_args_list if endpoint_of(c.args[1]) == path]


def sent_body(send, path):
    return json.loads(sent_calls(send, path)[-1].args[3])


MARKETS_ROUTE = {"markets": (200, envelope(RAW_MARKETS))}


# ============================================================
# MARKET TESTS
# ============================================================

class TestLoadMarkets:
    """Tests for market catalog loading."""

    @pytest.mark.asyncio
    async def test_loads_once(self):
        adapter = make_adapter()
        send = make_send(MARKETS_ROUTE)

        with patch.object(adapter, "_send", send):
            first = await adapter.load_markets()
            second = await adapter.load_markets()

        assert set(first) == {"ETH/BTC", "ADA/USDT"}
        assert first == second
        assert len(sent_calls(send, "markets")) == 1

    @pytest.mark.asyncio
    async def test_reload_swaps_catalog(self):
        adapter = make_adapter()
        send = make_send(MARKETS_ROUTE)

        with patch.object(adapter, "_send", send):
            await adapter.load_markets()
            before = adapter.catalog
            await adapter.load_markets(reload=True)

        assert adapter.catalog is not before
        assert len(sent_calls(send, "markets")) == 2

    @pytest.mark.asyncio
    async def test_concurrent_loads_share_one_fetch(self):
        adapter = make_adapter()
        send = make_send(MARKETS_ROUTE)

        with patch.object(adapter, "_send", send):
            await asyncio.gather(adapter.load_markets(), adapter.load_markets())

        assert len(sent_calls(send, "markets")) == 1

    @pytest.mark.asyncio
    async def test_unknown_symbol(self):
        adapter = make_adapter()

        with patch.object(adapter, "_send", make_send(MARKETS_ROUTE)):
            with pytest.raises(UnknownMarket):
                await adapter.fetch_ticker("DOGE/USDT")


# ============================================================
# PUBLIC ENDPOINT TESTS
# ============================================================

class TestPublicEndpoints:
    """Tests for public market data calls."""

    @pytest.mark.asyncio
    async def test_fetch_ticker_uses_cache_time(self):
        adapter = make_adapter()
        ticker = {"bid": "0.3423", "ask": "0.3426", "open": "0.3389", "high": "0.3467",
                  "low": "0.3366", "last": "0.3424", "volume": "1117436.6", "deal": "381911.8",
                  "change": "1.03"}
        routes = dict(MARKETS_ROUTE, ticker=(200, envelope(
            ticker, cache_time=Decimal("1699255571.413633"), current_time=Decimal("1699255571.413828"),
        )))
        send = make_send(routes)

        with patch.object(adapter, "_send", send):
            result = await adapter.fetch_ticker("ADA/USDT")

        assert result.symbol == "ADA/USDT"
        assert result.timestamp == 1699255571414
        assert result.last == result.close == Decimal("0.3424")
        call = sent_calls(send, "ticker")[0]
        assert call.args[0] == "GET"
        assert call.args[1].endswith("/public/ticker?market=ADA_USDT")

    @pytest.mark.asyncio
    async def test_fetch_tickers(self):
        adapter = make_adapter()
        listing = {"at": "1699252631", "ticker": {"last": "0.0536", "vol": "1"}}
        routes = dict(MARKETS_ROUTE, tickers=(200, envelope({"ETH_BTC": listing, "XYZ_USDT": listing})))

        with patch.object(adapter, "_send", make_send(routes)):
            tickers = await adapter.fetch_tickers()

        assert list(tickers) == ["ETH/BTC"]
        assert tickers["ETH/BTC"].timestamp == 1699252631000

    @pytest.mark.asyncio
    async def test_fetch_order_book(self):
        adapter = make_adapter()
        book = {"asks": [["4.53", "523.95"]], "bids": [["4.51", "244.75"]]}
        routes = dict(MARKETS_ROUTE, **{"depth/result": (200, envelope(
            book, cache_time=1698733470.469175, current_time=1698733470.469274,
        ))})
        send = make_send(routes)

        with patch.object(adapter, "_send", send):
            result = await adapter.fetch_order_book("ETH/BTC", limit=5)

        assert result.symbol == "ETH/BTC"
        assert result.timestamp == 1698733470469
        assert result.asks == ((Decimal("4.53"), Decimal("523.95")),)
        assert sent_calls(send, "depth/result")[0].args[1].endswith("?market=ETH_BTC&limit=5")

    @pytest.mark.asyncio
    async def test_fetch_trades_requires_last_id(self):
        """The cursor is checked before anything is sent."""
        adapter = make_adapter()
        send = make_send(MARKETS_ROUTE)

        with patch.object(adapter, "_send", send):
            with pytest.raises(MissingArgument):
                await adapter.fetch_trades("ADA/USDT")

        send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_fetch_trades(self):
        adapter = make_adapter()
        raw = [{"id": "7495738622", "type": "sell", "time": "1699255565.445418",
                "amount": "252.6", "price": "0.3422"}]
        routes = dict(MARKETS_ROUTE, history=(200, envelope(raw)))
        send = make_send(routes)

        with patch.object(adapter, "_send", send):
            trades = await adapter.fetch_trades("ADA/USDT", last_id=7495738600, limit=10)

        assert trades[0].side == "sell"
        assert trades[0].fee.currency == "USDT"
        assert "lastId=7495738600" in sent_calls(send, "history")[0].args[1]

    @pytest.mark.asyncio
    async def test_fetch_ohlcv(self):
        adapter = make_adapter()
        raw = [[1699253400, "0.3429", "0.3427", "0.3429", "0.3427", "1900.4", "651.46278", "ADA_USDT"]]
        routes = dict(MARKETS_ROUTE, **{"market/kline": (200, envelope(raw))})
        send = make_send(routes)

        with patch.object(adapter, "_send", send):
            candles = await adapter.fetch_ohlcv("ADA/USDT", Timeframe.ONE_HOUR, limit=1)

        assert candles[0].as_list() == [
            1699253400000, Decimal("0.3429"), Decimal("0.3429"),
            Decimal("0.3427"), Decimal("0.3427"), Decimal("1900.4"),
        ]
        assert "interval=1h" in sent_calls(send, "market/kline")[0].args[1]

    @pytest.mark.asyncio
    async def test_fetch_ohlcv_bad_timeframe(self):
        adapter = make_adapter()
        send = make_send(MARKETS_ROUTE)

        with patch.object(adapter, "_send", send):
            with pytest.raises(InvalidRequest):
                await adapter.fetch_ohlcv("ADA/USDT", "5m")

        send.assert_not_awaited()


# ============================================================
# PRIVATE ENDPOINT TESTS
# ============================================================

class TestPrivateEndpoints:
    """Tests for signed account and order calls."""

    @pytest.mark.asyncio
    async def test_fetch_balance(self):
        adapter = make_adapter()
        routes = {"account/balances": (200, envelope({
            "USDT": {"available": "71.81328046", "freeze": "10.46103091"},
        }))}
        send = make_send(routes)

        with patch.object(adapter, "_send", send):
            balances = await adapter.fetch_balance()

        assert balances["USDT"].free == Decimal("71.81328046")
        call = send.await_args
        assert call.args[0] == "POST"
        assert call.args[2][HEADER_API_KEY] == API_KEY
        assert len(call.args[2][HEADER_SIGNATURE]) == 128
        assert json.loads(call.args[3]) == {"request": "/api/v2/account/balances", "nonce": "1699252631000"}

    @pytest.mark.asyncio
    async def test_private_call_without_credentials(self):
        adapter = make_adapter(api_key=None, api_secret=None)
        send = make_send({})

        with patch.object(adapter, "_send", send):
            with pytest.raises(AuthenticationFailure):
                await adapter.fetch_balance()

        send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_create_order_snaps_amount_and_price(self):
        adapter = make_adapter()
        placed = {"orderId": 171906478744, "market": "ETH_BTC", "price": "0.04348", "side": "buy",
                  "type": "limit", "timestamp": 1698484861.746517, "dealMoney": "0", "dealStock": "0",
                  "amount": "0.027", "left": "0.027", "dealFee": "0"}
        routes = dict(MARKETS_ROUTE, **{"order/new": (200, envelope(placed))})
        send = make_send(routes)

        with patch.object(adapter, "_send", send):
            order = await adapter.create_order(
                "ETH/BTC", OrderType.LIMIT, OrderSide.BUY, Decimal("0.0277"), Decimal("0.0434751"),
            )

        body = sent_body(send, "order/new")
        assert body["market"] == "ETH_BTC"
        assert body["side"] == "buy"
        assert body["amount"] == "0.027"
        assert body["price"] == "0.043475"
        assert body["request"] == "/api/v2/order/new"
        assert order.id == "171906478744"
        assert order.symbol == "ETH/BTC"
        assert order.status is None
        assert adapter.metrics.get_summary()["orders"]["submitted"] == 1

    @pytest.mark.asyncio
    async def test_market_order_rejected_locally(self):
        adapter = make_adapter()
        send = make_send(MARKETS_ROUTE)

        with patch.object(adapter, "_send", send):
            with pytest.raises(InvalidRequest, match="limit"):
                await adapter.create_order("ETH/BTC", "market", "buy", Decimal("1"), Decimal("1"))

        send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_limit_order_requires_price(self):
        adapter = make_adapter()
        send = make_send(MARKETS_ROUTE)

        with patch.object(adapter, "_send", send):
            with pytest.raises(MissingArgument):
                await adapter.create_order("ETH/BTC", "limit", "buy", Decimal("1"))

        send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cancel_order(self):
        adapter = make_adapter()
        canceled = {"orderId": 171906478744, "market": "ETH_BTC", "price": "0.04348", "side": "buy",
                    "type": "limit", "timestamp": 1698484861.746517, "amount": "0.027", "left": "0.027"}
        routes = dict(MARKETS_ROUTE, **{"order/cancel": (200, envelope(canceled))})
        send = make_send(routes)

        with patch.object(adapter, "_send", send):
            order = await adapter.cancel_order("171906478744", "ETH/BTC")

        assert sent_body(send, "order/cancel")["orderId"] == "171906478744"
        assert order.symbol == "ETH/BTC"

    @pytest.mark.asyncio
    async def test_cancel_order_requires_symbol(self):
        adapter = make_adapter()
        send = make_send({})

        with patch.object(adapter, "_send", send):
            with pytest.raises(MissingArgument):
                await adapter.cancel_order("171906478744")

        send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_fetch_open_orders(self):
        adapter = make_adapter()
        raw = [{"orderId": 1, "market": "ETH_BTC", "price": "0.04", "side": "sell", "type": "limit",
                "timestamp": 1698484861, "amount": "1", "left": "1", "dealStock": "0", "dealFee": "0"}]
        routes = dict(MARKETS_ROUTE, orders=(200, envelope(raw)))
        send = make_send(routes)

        with patch.object(adapter, "_send", send):
            orders = await adapter.fetch_open_orders("ETH/BTC", limit=50, offset=10)

        body = sent_body(send, "orders")
        assert body["market"] == "ETH_BTC"
        assert body["limit"] == 50
        assert body["offset"] == 10
        assert orders[0].remaining == Decimal("1")

    @pytest.mark.asyncio
    async def test_fetch_order_trades(self):
        adapter = make_adapter()
        records = [{"id": 7429883128, "time": 1698237535.41196, "fee": "0.01755848704",
                    "price": "34293.92", "amount": "0.00032", "dealOrderId": 171366551416,
                    "role": 2, "deal": "10.9740544"}]
        routes = dict(MARKETS_ROUTE, **{"account/order": (200, envelope(
            {"offset": 0, "limit": 50, "records": records},
        ))})
        send = make_send(routes)

        with patch.object(adapter, "_send", send):
            trades = await adapter.fetch_order_trades("171366551416", "ADA/USDT")

        assert trades[0].taker_or_maker == "taker"
        assert trades[0].fee.currency == "USDT"
        assert sent_body(send, "account/order")["orderId"] == "171366551416"

    @pytest.mark.asyncio
    async def test_fetch_my_trades_window(self):
        adapter = make_adapter()
        deals = [{"deal_id": 7444563633, "deal_time": 1698506956.66224, "deal_order_id": 171955225751,
                  "side": "sell", "price": "0.05231", "amount": "0.002", "deal": "0.00010462",
                  "deal_fee": "0.000000209240", "role": "maker"}]
        routes = dict(MARKETS_ROUTE, **{"account/market_deal_history": (200, envelope(
            {"total": 1, "deals": deals},
        ))})
        send = make_send(routes)
        since = 1698500000123

        with patch.object(adapter, "_send", send):
            trades = await adapter.fetch_my_trades("ETH/BTC", since=since)

        body = sent_body(send, "account/market_deal_history")
        assert body["startTime"] == 1698500000
        assert body["endTime"] == (since + MAX_HISTORY_WINDOW_MS) // 1000
        assert trades[0].taker_or_maker == "maker"
        assert trades[0].fee.currency == "BTC"

    @pytest.mark.asyncio
    async def test_adapters_sharing_a_key_share_nonces(self):
        """Default nonce sources are per key, not per adapter."""
        config = P2BConfig(api_key="shared-adapter-key", api_secret=API_SECRET)
        first, second = P2BAdapter(config=config), P2BAdapter(config=config)
        routes = {"account/balances": (200, envelope({}))}
        send_first, send_second = make_send(routes), make_send(routes)

        with patch.object(first, "_send", send_first), patch.object(second, "_send", send_second):
            await first.fetch_balance()
            await second.fetch_balance()

        first_nonce = int(sent_body(send_first, "account/balances")["nonce"])
        second_nonce = int(sent_body(send_second, "account/balances")["nonce"])
        assert second_nonce > first_nonce

    @pytest.mark.asyncio
    async def test_fetch_my_trades_oversized_window(self):
        """A window longer than 24h is rejected before any request."""
        adapter = make_adapter()
        send = make_send(MARKETS_ROUTE)

        with patch.object(adapter, "_send", send):
            with pytest.raises(InvalidRequest):
                await adapter.fetch_my_trades("ETH/BTC", since=0, until=MAX_HISTORY_WINDOW_MS + 1)

        send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_fetch_my_trades_requires_symbol(self):
        adapter = make_adapter()
        send = make_send({})

        with patch.object(adapter, "_send", send):
            with pytest.raises(MissingArgument):
                await adapter.fetch_my_trades()

        send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_fetch_closed_orders_all_markets(self):
        adapter = make_adapter()
        history = {
            "ADA_USDT": [{"id": 1, "amount": "10", "price": "0.34", "type": "limit", "side": "buy",
                          "ctime": 1698237533.497241, "market": "ADA_USDT", "dealFee": "0.01",
                          "dealStock": "10", "dealMoney": "3.4"}],
        }
        routes = dict(MARKETS_ROUTE, **{"account/order_history": (200, envelope(history))})
        send = make_send(routes)

        with patch.object(adapter, "_send", send):
            orders = await adapter.fetch_closed_orders(since=1698200000000, until=1698280000000)

        body = sent_body(send, "account/order_history")
        assert "market" not in body
        assert body["startTime"] == 1698200000
        assert body["endTime"] == 1698280000
        assert orders[0].symbol == "ADA/USDT"
        assert orders[0].fee.currency == "USDT"


# ============================================================
# ERROR HANDLING TESTS
# ============================================================

class TestErrorHandling:
    """Tests for venue and transport failures."""

    @pytest.mark.asyncio
    async def test_venue_error_code(self):
        adapter = make_adapter()
        body = {"success": False, "message": "Balance not enough",
                "error": {"code": 2040, "message": "Balance not enough", "errors": []}}
        send = make_send({"account/balances": (400, body)})

        with patch.object(adapter, "_send", send):
            with pytest.raises(InsufficientFunds) as exc_info:
                await adapter.fetch_balance()

        assert exc_info.value.error.operation == "account/balances"
        summary = adapter.metrics.get_summary()
        assert summary["requests"]["failure"] == 1
        assert summary["errors"]["by_code"] == {"P2B_2040": 1}
        assert summary["errors"]["by_category"] == {"INSUFFICIENT_FUNDS": 1}

    @pytest.mark.asyncio
    async def test_success_false_envelope(self):
        adapter = make_adapter()
        send = make_send({"markets": (200, {"success": False, "errorCode": "4001",
                                            "message": "Service temporary unavailable", "result": None})})

        with patch.object(adapter, "_send", send):
            with pytest.raises(ServiceUnavailable) as exc_info:
                await adapter.fetch_markets()

        assert exc_info.value.error.category == ErrorCategory.SERVICE_UNAVAILABLE
        assert exc_info.value.is_retryable()

    @pytest.mark.asyncio
    async def test_non_object_body(self):
        adapter = make_adapter()
        send = make_send({"markets": (200, "not json")})

        with patch.object(adapter, "_send", send):
            with pytest.raises(MalformedPayload):
                await adapter.fetch_markets()

    @pytest.mark.asyncio
    async def test_order_deals_result_not_object(self):
        """A list where the records object belongs is a typed failure."""
        adapter = make_adapter()
        routes = dict(MARKETS_ROUTE, **{"account/order": (200, envelope([]))})

        with patch.object(adapter, "_send", make_send(routes)):
            with pytest.raises(MalformedPayload, match="account/order"):
                await adapter.fetch_order_trades("1", "ETH/BTC")

    @pytest.mark.asyncio
    async def test_deal_history_result_not_object(self):
        adapter = make_adapter()
        routes = dict(MARKETS_ROUTE, **{"account/market_deal_history": (200, envelope("deals"))})

        with patch.object(adapter, "_send", make_send(routes)):
            with pytest.raises(MalformedPayload):
                await adapter.fetch_my_trades("ETH/BTC")

    @pytest.mark.asyncio
    async def test_deals_not_a_list(self):
        adapter = make_adapter()
        routes = dict(MARKETS_ROUTE, **{"account/market_deal_history": (200, envelope({"deals": {}}))})

        with patch.object(adapter, "_send", make_send(routes)):
            with pytest.raises(MalformedPayload):
                await adapter.fetch_my_trades("ETH/BTC")

    @pytest.mark.asyncio
    async def test_empty_records(self):
        """A null result or missing records key means no fills."""
        adapter = make_adapter()
        routes = dict(MARKETS_ROUTE, **{"account/order": (200, envelope(None))})

        with patch.object(adapter, "_send", make_send(routes)):
            assert await adapter.fetch_order_trades("1", "ETH/BTC") == []

    @pytest.mark.asyncio
    async def test_trade_list_result_not_list(self):
        adapter = make_adapter()
        routes = dict(MARKETS_ROUTE, history=(200, envelope({"id": 1})))

        with patch.object(adapter, "_send", make_send(routes)):
            with pytest.raises(MalformedPayload):
                await adapter.fetch_trades("ETH/BTC", last_id=1)

    @pytest.mark.asyncio
    async def test_market_list_not_array(self):
        adapter = make_adapter()
        send = make_send({"markets": (200, envelope({"name": "ETH_BTC"}))})

        with patch.object(adapter, "_send", send):
            with pytest.raises(MalformedPayload):
                await adapter.load_markets()

        assert not adapter.catalog.by_id

    @pytest.mark.asyncio
    async def test_client_error_becomes_network_failure(self):
        adapter = make_adapter()
        send = AsyncMock(side_effect=aiohttp.ClientConnectionError("reset"))

        with patch.object(adapter, "_send", send):
            with pytest.raises(NetworkFailure) as exc_info:
                await adapter.fetch_markets()

        assert exc_info.value.error.category == ErrorCategory.NETWORK
        assert adapter.metrics.get_summary()["errors"]["by_code"] == {"P2B_NETWORK_ERROR": 1}

    @pytest.mark.asyncio
    async def test_timeout_becomes_network_failure(self):
        adapter = make_adapter()
        send = AsyncMock(side_effect=asyncio.TimeoutError())

        with patch.object(adapter, "_send", send):
            with pytest.raises(NetworkFailure) as exc_info:
                await adapter.fetch_markets()

        assert exc_info.value.error.category == ErrorCategory.TIMEOUT

    @pytest.mark.asyncio
    async def test_not_connected(self):
        """The real transport refuses to send without a session."""
        adapter = make_adapter()

        with pytest.raises(NetworkFailure):
            await adapter.fetch_markets()

    @pytest.mark.asyncio
    async def test_success_recorded(self):
        adapter = make_adapter()

        with patch.object(adapter, "_send", make_send(MARKETS_ROUTE)):
            await adapter.fetch_markets()

        summary = adapter.metrics.get_summary()
        assert summary["requests"]["success"] == 1
        assert "markets" in adapter.metrics.get_latency_by_endpoint()


# ============================================================
# CONNECTION AND LOGGING TESTS
# ============================================================

class TestConnection:
    """Tests for session lifecycle."""

    @pytest.mark.asyncio
    async def test_context_manager(self):
        adapter = make_adapter()

        async with adapter as connected:
            assert connected is adapter
            assert adapter.is_connected

        assert not adapter.is_connected

    def test_exchange_id(self):
        assert make_adapter().exchange_id == "p2b"


class TestLogging:
    """Tests that credentials never appear in logs."""

    @pytest.mark.asyncio
    async def test_credentials_masked(self, caplog):
        adapter = make_adapter()
        send = make_send({"account/balances": (200, envelope({}))})

        with caplog.at_level(logging.DEBUG, logger="p2b_connector"):
            with patch.object(adapter, "_send", send):
                await adapter.fetch_balance()

        signature = send.await_args.args[2][HEADER_SIGNATURE]
        assert "REQUEST" in caplog.text
        assert API_KEY not in caplog.text
        assert API_SECRET not in caplog.text
        assert signature not in caplog.text


# ============================================================
# RUN TESTS
# ============================================================

if __name__ == "__main__":
    pytest.main([__file__, "-v"])
