"""
Alpha Vantage records, validated at the API boundary.
Numeric fields stay as the provider's strings unless noted.
"""
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class TimeSeriesBar(BaseModel):
    """One daily bucket after key cleanup, e.g. {"open": "10", ..., "vwap": "10.6667"}."""

    model_config = ConfigDict(extra="allow")

    open: str
    high: str
    low: str
    close: str
    volume: str
    vwap: Optional[str] = None


class TimeSeriesMeta(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    information: Optional[str] = None
    symbol: Optional[str] = None
    last_refreshed: Optional[str] = Field(default=None, alias="lastRefreshed")
    output_size: Optional[str] = Field(default=None, alias="outputSize")
    time_zone: Optional[str] = Field(default=None, alias="timeZone")


class TimeSeries(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    meta_data: TimeSeriesMeta = Field(default_factory=TimeSeriesMeta, alias="metaData")
    bars: Dict[str, TimeSeriesBar] = Field(default_factory=dict, alias="timeSeries")

    def latest(self) -> Optional[Tuple[str, TimeSeriesBar]]:
        if not self.bars:
            return None
        day = max(self.bars)
        return day, self.bars[day]


class TickerSentiment(BaseModel):
    model_config = ConfigDict(extra="allow")

    ticker: str
    relevance_score: Optional[str] = None
    ticker_sentiment_score: Optional[str] = None
    ticker_sentiment_label: Optional[str] = None


class NewsItem(BaseModel):
    model_config = ConfigDict(extra="allow")

    title: str
    url: str
    time_published: Optional[str] = None
    summary: Optional[str] = None
    source: Optional[str] = None
    overall_sentiment_score: Optional[float] = None
    overall_sentiment_label: Optional[str] = None
    ticker_sentiment: List[TickerSentiment] = Field(default_factory=list)


class NewsSentiment(BaseModel):
    items: Optional[str] = None
    sentiment_score_definition: Optional[str] = None
    relevance_score_definition: Optional[str] = None
    feed: List[NewsItem] = Field(default_factory=list)


class TickerMatch(BaseModel):
    """Symbol search hit with the numbered provider keys renamed."""

    model_config = ConfigDict(populate_by_name=True)

    symbol: str
    name: str
    type: Optional[str] = None
    region: Optional[str] = None
    market_open: Optional[str] = Field(default=None, alias="marketOpen")
    market_close: Optional[str] = Field(default=None, alias="marketClose")
    timezone: Optional[str] = None
    currency: Optional[str] = None
    match_score: float = Field(default=0.0, alias="matchScore")


class MoverRow(BaseModel):
    model_config = ConfigDict(extra="allow")

    ticker: str
    price: str
    change_amount: str
    change_percentage: str
    volume: str


class GainersLosers(BaseModel):
    metadata: str = "Top gainers, losers, and most actively traded US tickers"
    last_updated: str = ""
    top_gainers: List[MoverRow] = Field(default_factory=list)
    top_losers: List[MoverRow] = Field(default_factory=list)
    most_actively_traded: List[MoverRow] = Field(default_factory=list)
