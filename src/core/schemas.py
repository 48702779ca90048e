"""
Result records returned by the capture pipeline.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from src.skills.alphavantage.schemas import NewsSentiment, TimeSeries


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a Z suffix."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class ScreenshotStepResult(BaseModel):
    """
    Outcome of one screenshot step.

    Exactly one of `image` (success) or `error` (failure) is populated.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    variant: Optional[str] = None
    success: bool
    image: Optional[str] = None
    url: str
    selector: Optional[str] = None
    error: Optional[str] = None
    timestamp: str = Field(default_factory=utc_timestamp)

    @model_validator(mode="after")
    def _exactly_one_outcome(self) -> "ScreenshotStepResult":
        if self.success and (self.image is None or self.error is not None):
            raise ValueError("successful result needs an image and no error")
        if not self.success and (self.error is None or self.image is not None):
            raise ValueError("failed result needs an error and no image")
        return self

    @classmethod
    def captured(
        cls,
        name: str,
        url: str,
        image: str,
        variant: Optional[str] = None,
        selector: Optional[str] = None,
    ) -> "ScreenshotStepResult":
        return cls(name=name, variant=variant, success=True, image=image, url=url, selector=selector)

    @classmethod
    def failed(
        cls,
        name: str,
        url: str,
        error: str,
        variant: Optional[str] = None,
        selector: Optional[str] = None,
    ) -> "ScreenshotStepResult":
        return cls(name=name, variant=variant, success=False, error=error or "Unknown error", url=url, selector=selector)

    @property
    def label(self) -> str:
        return f"{self.name}_{self.variant}" if self.variant else self.name


class _Outcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool
    error: Optional[str] = None

    @model_validator(mode="after")
    def _error_only_on_failure(self):
        if self.success == (self.error is not None):
            raise ValueError("error must be set exactly when success is false")
        if self.success and getattr(self, "data", None) is None:
            raise ValueError("successful outcome needs data")
        return self


class TimeSeriesOutcome(_Outcome):
    data: Optional[TimeSeries] = None


class NewsOutcome(_Outcome):
    data: Optional[NewsSentiment] = None


class MarketDataBundle(BaseModel):
    model_config = ConfigDict(frozen=True)

    news: Optional[NewsOutcome] = None
    trading: Optional[TimeSeriesOutcome] = None


class AggregateResult(BaseModel):
    """Terminal payload of one ticker request."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    success: bool
    ticker: str
    screenshots: List[ScreenshotStepResult] = Field(default_factory=list)
    market_data: Optional[MarketDataBundle] = Field(default=None, alias="alphaVantage")
    timestamp: str = Field(default_factory=utc_timestamp)

    @classmethod
    def assemble(
        cls,
        ticker: str,
        screenshots: List[ScreenshotStepResult],
        market_data: Optional[MarketDataBundle] = None,
    ) -> "AggregateResult":
        return cls(
            success=all(r.success for r in screenshots),
            ticker=ticker,
            screenshots=list(screenshots),
            market_data=market_data,
        )

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
