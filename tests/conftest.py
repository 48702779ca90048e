# tests/conftest.py

from dataclasses import fields
from typing import Any, Dict, List, Optional, Tuple

import httpx
import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from src.core.config import AlphaVantageConfig, AppConfig, BrowserConfig, StepTimings
from src.core.observability.errors import ErrorTracker
from src.core.pipeline import SnapshotContext
from src.skills.alphavantage.client import AlphaVantageClient
from src.skills.base import BODY_TEXT_JS

PNG_BYTES = b"\x89PNG\r\n\x1a\nfake-image"

FINVIZ_WRAPPER = ".screener_snapshot-table-wrapper"
TV_TOP = ".layout__area--top"
TV_CENTER = ".layout__area--center"
INTRADAY_BUTTON = 'button[aria-label="1 day in 1 minute intervals"]'

LAYOUT_RECTS = {
    "top": {"left": 0, "top": 0, "right": 2560, "bottom": 100},
    "center": {"left": 0, "top": 100, "right": 2500, "bottom": 1400},
}


def zero_timings() -> StepTimings:
    return StepTimings(**{f.name: 0 for f in fields(StepTimings)})


class FakeElement:
    def __init__(self, selector: str):
        self.selector = selector

    async def screenshot(self, **kwargs) -> bytes:
        return PNG_BYTES


class FakeKeyboard:
    def __init__(self):
        self.pressed: List[str] = []

    async def press(self, key: str) -> None:
        self.pressed.append(key)


class FakePage:
    """
    Stands in for a Playwright page.

    selectors: which selectors "exist" (wait_for_selector times out for the rest)
    redirects: goto(url) lands on redirects[url] instead of url
    body_texts: successive document.body.innerText values; the last one sticks
    """

    def __init__(
        self,
        selectors=(),
        redirects: Optional[Dict[str, str]] = None,
        body_texts: Optional[List[str]] = None,
        layout_rects: Optional[Dict[str, Any]] = None,
        goto_error: Optional[Exception] = None,
    ):
        self.selectors = set(selectors)
        self.redirects = redirects or {}
        self.body_texts = list(body_texts or [""])
        self.layout_rects = layout_rects
        self.goto_error = goto_error
        self.url = "about:blank"
        self.visited: List[str] = []
        self.clicks: List[str] = []
        self.clips: List[Dict[str, int]] = []
        self.waits: List[Tuple[str, Optional[str]]] = []
        self.keyboard = FakeKeyboard()

    async def goto(self, url: str, **kwargs):
        self.visited.append(url)
        if self.goto_error is not None:
            raise self.goto_error
        self.url = self.redirects.get(url, url)

    async def evaluate(self, script: str, arg=None):
        if script == BODY_TEXT_JS:
            if len(self.body_texts) > 1:
                return self.body_texts.pop(0)
            return self.body_texts[0]
        return self.layout_rects

    async def wait_for_selector(self, selector: str, timeout=None, state=None):
        self.waits.append((selector, state))
        if selector in self.selectors:
            return FakeElement(selector)
        raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded waiting for {selector}")

    async def wait_for_load_state(self, state: str = "load", timeout=None) -> None:
        return None

    async def click(self, selector: str) -> None:
        self.clicks.append(selector)

    async def screenshot(self, **kwargs) -> bytes:
        self.clips.append(kwargs.get("clip"))
        return PNG_BYTES

    async def title(self) -> str:
        return "Fake page"


class FakeSession:
    """Same surface the steps and pipeline use on CaptureSession."""

    def __init__(
        self,
        page: Optional[FakePage] = None,
        open_error: Optional[Exception] = None,
        new_page_error: Optional[Exception] = None,
        open_hook=None,
    ):
        self.page = None
        self._page = page or FakePage()
        self.config = BrowserConfig()
        self.timings = zero_timings()
        self.error_tracker = ErrorTracker()
        self.guardrails_enabled = True
        self.session_id = None
        self.open_error = open_error
        self.new_page_error = new_page_error
        self.open_hook = open_hook
        self.opened = False
        self.close_calls = 0

    @property
    def closed(self) -> bool:
        return self.close_calls > 0

    async def open(self):
        if self.open_hook is not None:
            await self.open_hook()
        if self.open_error is not None:
            raise self.open_error
        self.opened = True
        return self

    async def new_page(self):
        if self.new_page_error is not None:
            raise self.new_page_error
        self.page = self._page
        return self.page

    async def close(self) -> None:
        self.close_calls += 1


def happy_page(**overrides) -> FakePage:
    """A page on which every registered step succeeds."""
    options = dict(
        selectors={FINVIZ_WRAPPER, "table", TV_TOP, TV_CENTER, INTRADAY_BUTTON},
        layout_rects=LAYOUT_RECTS,
    )
    options.update(overrides)
    return FakePage(**options)


def mock_alpha_vantage(responses: Dict[str, Any], calls: Optional[List[str]] = None) -> AlphaVantageClient:
    """Client whose transport answers each `function` from `responses`."""

    def handler(request: httpx.Request) -> httpx.Response:
        function = request.url.params["function"]
        if calls is not None:
            calls.append(function)
        body = responses.get(function)
        if isinstance(body, httpx.Response):
            return body
        if isinstance(body, Exception):
            raise body
        return httpx.Response(200, json=body if body is not None else {})

    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    config = AlphaVantageConfig(api_key="test-key", inter_call_delay_ms=0)
    return AlphaVantageClient(config, http=http)


DAILY_SERIES = {
    "Meta Data": {
        "1. Information": "Daily Prices (open, high, low, close) and Volumes",
        "2. Symbol": "AAPL",
        "3. Last Refreshed": "2024-05-03",
        "4. Output Size": "Compact",
        "5. Time Zone": "US/Eastern",
    },
    "Time Series (Daily)": {
        "2024-05-03": {
            "1. open": "186.65",
            "2. high": "187.00",
            "3. low": "182.66",
            "4. close": "183.38",
            "5. volume": "163224109",
        },
        "2024-05-02": {
            "1. open": "172.51",
            "2. high": "173.42",
            "3. low": "170.89",
            "4. close": "173.03",
            "5. volume": "94214915",
        },
    },
}

NEWS_FEED = {
    "items": "2",
    "sentiment_score_definition": "x <= -0.35: Bearish; ...",
    "relevance_score_definition": "0 < x <= 1",
    "feed": [
        {
            "title": "Apple beats estimates",
            "url": "https://example.com/a",
            "time_published": "20240503T120000",
            "summary": "Strong quarter.",
            "source": "Example Wire",
            "overall_sentiment_score": 0.41,
            "overall_sentiment_label": "Bullish",
            "ticker_sentiment": [
                {"ticker": "AAPL", "relevance_score": "0.9", "ticker_sentiment_score": "0.5", "ticker_sentiment_label": "Bullish"}
            ],
        },
        {
            "title": "Supply chain worries",
            "url": "https://example.com/b",
            "overall_sentiment_score": 0.05,
            "overall_sentiment_label": "Neutral",
        },
    ],
}


@pytest.fixture
def app_config() -> AppConfig:
    return AppConfig(
        timings=zero_timings(),
        alpha_vantage=AlphaVantageConfig(api_key="test-key", inter_call_delay_ms=0),
        errors_dir=None,
    )


@pytest.fixture
def make_context(app_config):
    """Build a SnapshotContext whose sessions are FakeSessions; created sessions are kept on ctx.sessions."""

    def _make(page_factory=happy_page, market_data=None, **session_kwargs) -> SnapshotContext:
        sessions: List[FakeSession] = []

        def factory(ticker: str) -> FakeSession:
            session = FakeSession(page=page_factory(), **session_kwargs)
            sessions.append(session)
            return session

        ctx = SnapshotContext(
            config=app_config,
            market_data=market_data,
            error_tracker=ErrorTracker(),
            session_factory=factory,
        )
        ctx.sessions = sessions
        return ctx

    return _make
