# tests/unit/test_market_data.py

from types import SimpleNamespace

import httpx
import pytest

import src.skills.alphavantage.market_data as market_data
from src.core.config import AlphaVantageConfig
from src.core.exceptions import MarketDataRateLimitError, MarketDataShapeError, MarketDataTransportError
from src.core.observability.errors import ErrorTracker
from src.skills.alphavantage.market_data import fetch_market_data

from conftest import DAILY_SERIES, NEWS_FEED, mock_alpha_vantage


@pytest.mark.asyncio
async def test_news_then_delay_then_time_series():
    calls = []
    client = mock_alpha_vantage({"NEWS_SENTIMENT": NEWS_FEED, "TIME_SERIES_DAILY": DAILY_SERIES}, calls)
    events = []

    bundle = await fetch_market_data(client, "aapl", events.append)

    assert calls == ["NEWS_SENTIMENT", "TIME_SERIES_DAILY"]
    assert [e.step for e in events] == [
        "alpha_vantage_news_fetch",
        "alpha_vantage_news_complete",
        "alpha_vantage_rate_limit_delay",
        "alpha_vantage_trading_fetch",
        "alpha_vantage_trading_complete",
    ]
    assert bundle.news.success and len(bundle.news.data.feed) == 2
    assert bundle.trading.success and bundle.trading.data.meta_data.symbol == "AAPL"


@pytest.mark.asyncio
async def test_first_failure_does_not_stop_second():
    client = mock_alpha_vantage({
        "NEWS_SENTIMENT": {"Note": "Our standard API call frequency is 5 calls per minute"},
        "TIME_SERIES_DAILY": DAILY_SERIES,
    })
    tracker = ErrorTracker()
    events = []

    bundle = await fetch_market_data(client, "AAPL", events.append, tracker)

    assert bundle.news.success is False
    assert "5 calls per minute" in bundle.news.error
    assert bundle.news.data is None
    assert bundle.trading.success is True
    assert "alpha_vantage_news_error" in [e.step for e in events]
    assert tracker.errors[-1]["component"] == "alpha_vantage_news"
    assert tracker.errors[-1]["failure_point"] == "market_data"


@pytest.mark.asyncio
async def test_time_series_failure_is_recorded():
    client = mock_alpha_vantage({
        "NEWS_SENTIMENT": NEWS_FEED,
        "TIME_SERIES_DAILY": {"Error Message": "Invalid API call."},
    })

    bundle = await fetch_market_data(client, "AAPL")

    assert bundle.news.success is True
    assert bundle.trading.success is False
    assert bundle.trading.error == "Invalid API call."


@pytest.mark.asyncio
async def test_query_sends_api_key_and_limit():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(dict(request.url.params))
        return httpx.Response(200, json=NEWS_FEED)

    client = mock_alpha_vantage({})
    client._http = httpx.AsyncClient(transport=httpx.MockTransport(handler))

    await client.fetch_news_sentiment("aapl")

    assert seen == [{"function": "NEWS_SENTIMENT", "tickers": "AAPL", "limit": "10", "apikey": "test-key"}]


@pytest.mark.asyncio
async def test_transport_errors_are_typed():
    client = mock_alpha_vantage({
        "TIME_SERIES_DAILY": httpx.Response(503, text="unavailable"),
        "SYMBOL_SEARCH": httpx.ConnectError("connection refused"),
        "TOP_GAINERS_LOSERS": httpx.Response(200, text="<html>not json</html>"),
    })

    with pytest.raises(MarketDataTransportError, match="503"):
        await client.fetch_time_series("AAPL")
    with pytest.raises(MarketDataTransportError, match="connection refused"):
        await client.search_symbols("tesla")
    with pytest.raises(MarketDataShapeError):
        await client.fetch_top_movers()


@pytest.mark.asyncio
async def test_information_notice_is_a_rate_limit():
    client = mock_alpha_vantage({"TOP_GAINERS_LOSERS": {"Information": "demo key"}})

    with pytest.raises(MarketDataRateLimitError):
        await client.fetch_top_movers()


def _record_sleeps(monkeypatch, log):
    async def fake_sleep(seconds):
        log.append(("sleep", seconds))

    monkeypatch.setattr(market_data, "asyncio", SimpleNamespace(sleep=fake_sleep))


@pytest.mark.asyncio
@pytest.mark.parametrize("news_body", [NEWS_FEED, {"Note": "Our standard API call frequency is 5 calls per minute"}])
async def test_configured_delay_separates_the_two_calls(monkeypatch, news_body):
    log = []
    _record_sleeps(monkeypatch, log)
    client = mock_alpha_vantage({"NEWS_SENTIMENT": news_body, "TIME_SERIES_DAILY": DAILY_SERIES}, log)
    client.config = AlphaVantageConfig(api_key="test-key")

    bundle = await fetch_market_data(client, "AAPL")

    assert AlphaVantageConfig().inter_call_delay_ms == 1000
    assert log == ["NEWS_SENTIMENT", ("sleep", 1.0), "TIME_SERIES_DAILY"]
    assert bundle.trading.success is True
