"""
Thin async client for the Alpha Vantage query endpoint.
"""
from typing import Any, Dict, List, Optional

import httpx

from src.core.config import AlphaVantageConfig
from src.core.exceptions import MarketDataShapeError, MarketDataTransportError
from src.skills.alphavantage.parsing import (
    parse_gainers_losers,
    parse_news_sentiment,
    parse_symbol_search,
    parse_time_series,
)
from src.skills.alphavantage.schemas import GainersLosers, NewsSentiment, TickerMatch, TimeSeries


class AlphaVantageClient:
    """
    One instance per process. Pass an httpx.AsyncClient to share a
    connection pool (or a MockTransport-backed one in tests).
    """

    def __init__(self, config: AlphaVantageConfig, http: Optional[httpx.AsyncClient] = None):
        self.config = config
        self._http = http
        self._owns_http = http is None

    async def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(
                timeout=self.config.timeout_sec,
                headers={"User-Agent": self.config.user_agent},
            )
        return self._http

    async def aclose(self) -> None:
        if self._http is not None and self._owns_http:
            await self._http.aclose()
            self._http = None

    async def _query(self, function: str, **params: Any) -> Dict[str, Any]:
        query = {"function": function, **params, "apikey": self.config.api_key}
        client = await self._client()
        try:
            response = await client.get(self.config.base_url, params=query)
        except httpx.HTTPError as e:
            raise MarketDataTransportError(f"Alpha Vantage request failed: {e}") from e

        if response.status_code < 200 or response.status_code >= 300:
            raise MarketDataTransportError(f"Alpha Vantage API returned status {response.status_code}")

        try:
            return response.json()
        except ValueError as e:
            raise MarketDataShapeError("Alpha Vantage returned a non-JSON body") from e

    async def fetch_time_series(self, ticker: str) -> TimeSeries:
        data = await self._query("TIME_SERIES_DAILY", symbol=ticker.upper())
        return parse_time_series(data)

    async def fetch_news_sentiment(self, ticker: str, limit: Optional[int] = None) -> NewsSentiment:
        data = await self._query(
            "NEWS_SENTIMENT",
            tickers=ticker.upper(),
            limit=limit or self.config.news_limit,
        )
        return parse_news_sentiment(data)

    async def search_symbols(self, keywords: str) -> List[TickerMatch]:
        data = await self._query("SYMBOL_SEARCH", keywords=keywords.strip())
        return parse_symbol_search(data)

    async def fetch_top_movers(self) -> GainersLosers:
        data = await self._query("TOP_GAINERS_LOSERS")
        return parse_gainers_losers(data)
