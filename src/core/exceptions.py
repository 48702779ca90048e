"""Exception types raised inside the capture pipeline and market-data client."""

from typing import Any, Dict, Optional


class BrowserLaunchError(Exception):
    """The capture session could not start a reachable browser."""

    failure_point = "session_creation"


class CaptureError(Exception):
    """A screenshot step failed; converted to a failed result at the step boundary."""

    def __init__(
        self,
        message: str,
        failure_point: str = "capture",
        diagnostics: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.failure_point = failure_point
        self.diagnostics = diagnostics or {}


class TickerNotFoundError(CaptureError):
    """Navigation did not land on a page for the requested ticker."""

    def __init__(self, message: str, diagnostics: Optional[Dict[str, Any]] = None):
        super().__init__(message, failure_point="ticker_not_found", diagnostics=diagnostics)


class MarketDataError(Exception):
    """Base class for market-data provider failures."""

    failure_point = "market_data"


class MarketDataTransportError(MarketDataError):
    """Non-2xx response or network failure."""


class MarketDataProviderError(MarketDataError):
    """Provider answered with an explicit error message."""


class MarketDataRateLimitError(MarketDataError):
    """Provider answered with a rate-limit notice."""


class MarketDataShapeError(MarketDataError):
    """Provider payload does not have the expected structure."""
