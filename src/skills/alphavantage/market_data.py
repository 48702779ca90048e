"""
Market data for one ticker: news sentiment, then (after the rate-limit gap)
the daily time series. Each call succeeds or fails on its own.
"""
import asyncio
from typing import Optional

from src.core.observability.errors import ErrorTracker
from src.core.progress import ProgressCallback, ProgressEvent, ProgressStatus, report
from src.core.schemas import MarketDataBundle, NewsOutcome, TimeSeriesOutcome
from src.skills.alphavantage.client import AlphaVantageClient


def _status(on_progress: Optional[ProgressCallback], message: str, step: str, status: ProgressStatus) -> None:
    print(f"[AlphaVantage] {message}")
    report(on_progress, ProgressEvent(message=message, step=step, status=status))


async def fetch_market_data(
    client: AlphaVantageClient,
    ticker: str,
    on_progress: Optional[ProgressCallback] = None,
    error_tracker: Optional[ErrorTracker] = None,
) -> MarketDataBundle:
    ticker = ticker.upper()

    def _record(error: Exception, component: str) -> None:
        if error_tracker is not None:
            error_tracker.record_error(
                error=error,
                component=component,
                context={"ticker": ticker},
                failure_point="market_data",
            )

    _status(on_progress, f"Fetching Alpha Vantage news sentiment for {ticker}...", "alpha_vantage_news_fetch", ProgressStatus.STARTED)
    try:
        news_data = await client.fetch_news_sentiment(ticker)
        news = NewsOutcome(success=True, data=news_data)
        _status(on_progress, "Alpha Vantage news sentiment data fetched successfully", "alpha_vantage_news_complete", ProgressStatus.SUCCEEDED)
    except Exception as e:
        message = str(e) or "Failed to fetch Alpha Vantage news data"
        news = NewsOutcome(success=False, error=message)
        _record(e, "alpha_vantage_news")
        _status(on_progress, f"Failed to fetch Alpha Vantage news data: {message}", "alpha_vantage_news_error", ProgressStatus.FAILED)

    delay_ms = client.config.inter_call_delay_ms
    _status(on_progress, f"Waiting {delay_ms}ms before next API call (rate limit)...", "alpha_vantage_rate_limit_delay", ProgressStatus.STARTED)
    await asyncio.sleep(delay_ms / 1000)

    _status(on_progress, f"Fetching Alpha Vantage time series for {ticker}...", "alpha_vantage_trading_fetch", ProgressStatus.STARTED)
    try:
        series = await client.fetch_time_series(ticker)
        trading = TimeSeriesOutcome(success=True, data=series)
        _status(on_progress, "Alpha Vantage time series data fetched successfully", "alpha_vantage_trading_complete", ProgressStatus.SUCCEEDED)
    except Exception as e:
        message = str(e) or "Failed to fetch Alpha Vantage trading data"
        trading = TimeSeriesOutcome(success=False, error=message)
        _record(e, "alpha_vantage_trading")
        _status(on_progress, f"Failed to fetch Alpha Vantage trading data: {message}", "alpha_vantage_trading_error", ProgressStatus.FAILED)

    return MarketDataBundle(news=news, trading=trading)
