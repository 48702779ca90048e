"""
Turn raw Alpha Vantage JSON into the typed records in schemas.py.

The provider reports failures inside a 200 body, so every payload goes
through check_provider_errors() before it is parsed.
"""
import re
from typing import Any, Dict, List

from pydantic import ValidationError

from src.core.exceptions import (
    MarketDataProviderError,
    MarketDataRateLimitError,
    MarketDataShapeError,
)
from src.skills.alphavantage.schemas import GainersLosers, NewsSentiment, TickerMatch, TimeSeries, TimeSeriesBar, TimeSeriesMeta

TIME_SERIES_KEY = "Time Series (Daily)"
META_DATA_KEY = "Meta Data"
US_REGION = "United States"

_ORDINAL_PREFIX = re.compile(r"^\d+\.\s*")


def clean_key(key: str) -> str:
    """'4. close' -> 'close'"""
    return _ORDINAL_PREFIX.sub("", key).lower()


def check_provider_errors(data: Any) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise MarketDataShapeError(f"Expected a JSON object, got {type(data).__name__}")
    if data.get("Error Message"):
        raise MarketDataProviderError(data["Error Message"])
    # "Note" is the classic frequency notice; newer responses use "Information"
    if data.get("Note"):
        raise MarketDataRateLimitError(data["Note"])
    if data.get("Information"):
        raise MarketDataRateLimitError(data["Information"])
    return data


def _to_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def normalize_time_series_record(raw: Dict[str, Any]) -> Dict[str, Any]:
    """
    Strip ordinal prefixes, lower-case the keys and add vwap = (high+low+close)/3.

    vwap is only added when high, low and close are all present and non-zero.
    """
    record = {clean_key(key): value for key, value in raw.items()}

    high = _to_float(record.get("high"))
    low = _to_float(record.get("low"))
    close = _to_float(record.get("close"))
    if high and low and close:
        record["vwap"] = f"{(high + low + close) / 3:.4f}"

    return record


def parse_time_series(data: Any) -> TimeSeries:
    data = check_provider_errors(data)
    series = data.get(TIME_SERIES_KEY)
    if not isinstance(series, dict):
        raise MarketDataShapeError(f"Response has no '{TIME_SERIES_KEY}' object")

    raw_meta = data.get(META_DATA_KEY) or {}
    if not isinstance(raw_meta, dict):
        raise MarketDataShapeError(f"'{META_DATA_KEY}' is not an object")
    meta = {clean_key(key).replace(" ", "_"): value for key, value in raw_meta.items()}

    for day, record in series.items():
        if not isinstance(record, dict):
            raise MarketDataShapeError(f"Time series bar for {day} is not an object")

    try:
        bars = {
            day: TimeSeriesBar(**normalize_time_series_record(record))
            for day, record in series.items()
        }
        return TimeSeries(meta_data=TimeSeriesMeta(**meta), bars=bars)
    except (TypeError, ValidationError) as e:
        raise MarketDataShapeError(f"Unexpected time series record: {e}") from e


def parse_news_sentiment(data: Any) -> NewsSentiment:
    data = check_provider_errors(data)
    if not isinstance(data.get("feed"), list):
        raise MarketDataShapeError("Response has no 'feed' list")
    try:
        return NewsSentiment.model_validate(data)
    except ValidationError as e:
        raise MarketDataShapeError(f"Unexpected news sentiment payload: {e}") from e


def parse_symbol_search(data: Any, region: str = US_REGION) -> List[TickerMatch]:
    """Keep matches in `region`, rename the numbered keys, best match first."""
    data = check_provider_errors(data)
    matches = data.get("bestMatches") or []
    if not isinstance(matches, list):
        raise MarketDataShapeError("'bestMatches' is not a list")

    results = []
    for match in matches:
        if not isinstance(match, dict):
            raise MarketDataShapeError("'bestMatches' entry is not an object")
        if match.get("4. region") != region:
            continue
        cleaned = {clean_key(key): value for key, value in match.items()}
        try:
            results.append(
                TickerMatch(
                    symbol=cleaned["symbol"],
                    name=cleaned.get("name", ""),
                    type=cleaned.get("type"),
                    region=cleaned.get("region"),
                    market_open=cleaned.get("marketopen"),
                    market_close=cleaned.get("marketclose"),
                    timezone=cleaned.get("timezone"),
                    currency=cleaned.get("currency"),
                    match_score=_to_float(cleaned.get("matchscore")),
                )
            )
        except (KeyError, ValidationError) as e:
            raise MarketDataShapeError(f"Unexpected symbol search match: {e}") from e

    results.sort(key=lambda m: m.match_score, reverse=True)
    return results


def parse_gainers_losers(data: Any) -> GainersLosers:
    data = check_provider_errors(data)
    fields = {
        key: data[key]
        for key in ("metadata", "last_updated", "top_gainers", "top_losers", "most_actively_traded")
        if data.get(key)
    }
    try:
        return GainersLosers(**fields)
    except ValidationError as e:
        raise MarketDataShapeError(f"Unexpected top movers payload: {e}") from e
