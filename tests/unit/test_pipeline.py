# tests/unit/test_pipeline.py

import asyncio
import json
from dataclasses import replace

import pytest

import src.core.pipeline as pipeline
from src.core.config import StepTimings
from src.core.exceptions import BrowserLaunchError
from src.core.pipeline import capture_snapshot, run_steps, stream_snapshot
from src.skills.registry import SCREENSHOT_STEPS

from conftest import DAILY_SERIES, NEWS_FEED, FakeSession, happy_page, mock_alpha_vantage, zero_timings


def parse_frames(frames):
    parsed = []
    for frame in frames:
        assert frame.endswith("\n\n")
        event_line, data_line = frame.strip().split("\n")
        assert event_line.startswith("event: ")
        assert data_line.startswith("data: ")
        parsed.append((event_line[len("event: "):], json.loads(data_line[len("data: "):])))
    return parsed


async def collect(agen):
    return [frame async for frame in agen]


@pytest.mark.asyncio
async def test_all_steps_run_in_order(make_context):
    ctx = make_context()
    events = []

    result = await capture_snapshot(ctx, " aapl ", events.append)

    assert result.ticker == "AAPL"
    assert result.success is True
    assert [r.label for r in result.screenshots] == ["finviz", "tradingview_default", "tradingview_intraday"]
    assert result.market_data is None

    session = ctx.sessions[0]
    assert session.close_calls == 1
    assert session.page.visited == [
        "https://finviz.com/quote.ashx?t=AAPL",
        "https://www.tradingview.com/chart/?symbol=NASDAQ%3AAAPL",
        "https://www.tradingview.com/chart/?symbol=NASDAQ%3AAAPL",
    ]

    steps = [e.step for e in events]
    assert steps[:2] == ["browser_launch", "browser_ready"]
    assert steps.index("finviz_complete") < steps.index("tradingview_default_start")
    assert steps.index("tradingview_default_complete") < steps.index("tradingview_intraday_start")


@pytest.mark.asyncio
async def test_one_failed_step_does_not_stop_the_rest(make_context):
    # No Finviz table, TradingView layout still present
    ctx = make_context(page_factory=lambda: happy_page(selectors={".layout__area--top", ".layout__area--center"}))
    events = []

    result = await capture_snapshot(ctx, "AAPL", events.append)

    assert result.success is False
    assert [r.success for r in result.screenshots] == [False, True, True]
    assert result.screenshots[0].error == "Could not find any matching selector"
    failed = [e for e in events if e.step == "finviz_failed"][0]
    assert failed.success is False
    assert failed.status.value == "failed"


@pytest.mark.asyncio
async def test_page_creation_failure_still_closes_session(make_context):
    ctx = make_context(new_page_error=RuntimeError("context crashed"))

    with pytest.raises(RuntimeError, match="context crashed"):
        await capture_snapshot(ctx, "AAPL")

    assert ctx.sessions[0].close_calls == 1


@pytest.mark.asyncio
async def test_launch_failure_propagates(make_context):
    ctx = make_context(open_error=BrowserLaunchError("Browser connection lost after launch"))

    with pytest.raises(BrowserLaunchError):
        await capture_snapshot(ctx, "AAPL")

    assert ctx.sessions[0].close_calls == 1


@pytest.mark.asyncio
async def test_market_data_fetched_after_browser_closes(make_context):
    calls = []
    client = mock_alpha_vantage({"NEWS_SENTIMENT": NEWS_FEED, "TIME_SERIES_DAILY": DAILY_SERIES}, calls)
    ctx = make_context(market_data=client)
    events = []

    result = await capture_snapshot(ctx, "AAPL", events.append)

    assert calls == ["NEWS_SENTIMENT", "TIME_SERIES_DAILY"]
    assert result.market_data.news.success is True
    assert result.market_data.trading.success is True
    wire = result.to_wire()
    assert wire["alphaVantage"]["trading"]["data"]["metaData"]["symbol"] == "AAPL"

    steps = [e.step for e in events]
    assert steps.index("tradingview_intraday_complete") < steps.index("alpha_vantage_news_fetch")


@pytest.mark.asyncio
async def test_stream_emits_status_then_one_complete(make_context):
    ctx = make_context()

    frames = parse_frames(await collect(stream_snapshot(ctx, "aapl")))

    kinds = [kind for kind, _ in frames]
    assert kinds[0] == "status"
    assert frames[0][1]["step"] == "init"
    assert frames[0][1]["ticker"] == "AAPL"
    assert kinds[-1] == "complete"
    assert kinds.count("complete") + kinds.count("error") == 1
    assert set(kinds[:-1]) == {"status"}

    payload = frames[-1][1]
    assert payload["ticker"] == "AAPL"
    assert payload["success"] is True
    assert len(payload["screenshots"]) == 3

    starts = [d["step"] for k, d in frames if k == "status" and d["step"].endswith("_start")]
    assert starts == ["finviz_start", "tradingview_default_start", "tradingview_intraday_start"]


@pytest.mark.asyncio
async def test_stream_without_ticker_is_a_single_error(make_context):
    ctx = make_context()

    frames = parse_frames(await collect(stream_snapshot(ctx, "  ")))

    assert frames == [("error", {"error": "Ticker symbol is required. Use ?ticker=SYMBOL"})]
    assert ctx.sessions == []


@pytest.mark.asyncio
async def test_stream_launch_failure_ends_with_error(make_context):
    ctx = make_context(open_error=BrowserLaunchError("Could not start browser instance: no chromium"))

    frames = parse_frames(await collect(stream_snapshot(ctx, "AAPL")))

    kinds = [kind for kind, _ in frames]
    assert kinds[-1] == "error"
    assert "complete" not in kinds
    assert frames[-1][1]["error"] == "Failed to take screenshots"
    assert "no chromium" in frames[-1][1]["message"]
    assert ctx.sessions[0].close_calls == 1
    assert ctx.error_tracker.errors[-1]["failure_point"] == "session_creation"


@pytest.mark.asyncio
async def test_stream_disconnect_cancels_capture(make_context):
    never = asyncio.Event()
    ctx = make_context(open_hook=never.wait)

    agen = stream_snapshot(ctx, "AAPL")
    first = await agen.__anext__()
    assert "init" in first
    await agen.aclose()

    for _ in range(20):
        if ctx.sessions and ctx.sessions[0].closed:
            break
        await asyncio.sleep(0)

    assert ctx.sessions[0].close_calls == 1
    assert ctx.sessions[0].opened is False


@pytest.mark.asyncio
async def test_steps_are_separated_by_the_inter_step_delay(monkeypatch):
    log = []

    async def fake_pause(ms):
        log.append(("pause", ms))

    monkeypatch.setattr(pipeline, "pause", fake_pause)
    session = FakeSession(happy_page())
    session.timings = replace(zero_timings(), inter_step_delay_ms=500)
    await session.new_page()

    await run_steps(session, "AAPL", SCREENSHOT_STEPS, lambda e: log.append(e.step))

    assert StepTimings().inter_step_delay_ms == 500
    assert log.count(("pause", 500)) == 3
    for code in ("finviz", "tradingview_default", "tradingview_intraday"):
        assert log[log.index(f"{code}_complete") + 1] == ("pause", 500)
    assert log.index("finviz_complete") < log.index("tradingview_default_start")
    assert log.index("tradingview_default_complete") < log.index("tradingview_intraday_start")
    assert log[-1] == ("pause", 500)
