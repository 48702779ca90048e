"""
Screenshot pipeline for one ticker.

run_steps() executes the steps one after another on the session's page.
capture_snapshot() wraps it with session setup/teardown and the market-data
fetch, and is the only orchestration: the buffered endpoint, the streaming
endpoint and the CLI all go through it.
"""
import asyncio
from dataclasses import dataclass, field
from typing import AsyncIterator, Callable, List, Optional, Sequence

from src.core.browser_session import CaptureSession
from src.core.config import AppConfig
from src.core.observability.errors import ErrorTracker
from src.core.observability.guardrails import GuardrailTimer
from src.core.progress import (
    ProgressCallback,
    ProgressChannel,
    ProgressEvent,
    ProgressStatus,
    report,
)
from src.core.schemas import AggregateResult, ScreenshotStepResult
from src.skills.alphavantage.client import AlphaVantageClient
from src.skills.alphavantage.market_data import fetch_market_data
from src.skills.base import ScreenshotStep, pause
from src.skills.registry import SCREENSHOT_STEPS

SessionFactory = Callable[[str], CaptureSession]


async def run_steps(
    session: CaptureSession,
    ticker: str,
    steps: Sequence[ScreenshotStep],
    on_progress: Optional[ProgressCallback] = None,
) -> List[ScreenshotStepResult]:
    """
    Run every step in order against the one shared page. Never stops early:
    a failed step is recorded and the next one still runs.
    """
    results: List[ScreenshotStepResult] = []

    for step in steps:
        report(on_progress, ProgressEvent(
            message=f"Starting {step.display_name} screenshot...",
            step=f"{step.code}_start",
            status=ProgressStatus.STARTED,
            website=step.name,
            variant=step.variant,
        ))

        with GuardrailTimer(step.code, enabled=session.guardrails_enabled) as timer:
            result = await step.execute(session, ticker, on_progress)
        results.append(result)

        outcome = "completed" if result.success else "failed"
        if timer.duration_ms is not None:
            print(f"[Pipeline] {step.code} {outcome} in {timer.duration_ms / 1000:.1f}s")
        report(on_progress, ProgressEvent(
            message=f"{step.display_name} screenshot {outcome}",
            step=f"{step.code}_{'complete' if result.success else 'failed'}",
            status=ProgressStatus.SUCCEEDED if result.success else ProgressStatus.FAILED,
            website=step.name,
            variant=step.variant,
            url=result.url,
            success=result.success,
        ))

        await pause(session.timings.inter_step_delay_ms)

    return results


@dataclass
class SnapshotContext:
    """Everything a capture needs, built once per process."""

    config: AppConfig
    market_data: Optional[AlphaVantageClient] = None
    error_tracker: Optional[ErrorTracker] = None
    steps: Sequence[ScreenshotStep] = field(default_factory=lambda: SCREENSHOT_STEPS)
    session_factory: Optional[SessionFactory] = None

    def new_session(self, ticker: str) -> CaptureSession:
        if self.session_factory is not None:
            return self.session_factory(ticker)
        return CaptureSession(
            self.config.browser,
            self.config.timings,
            error_tracker=self.error_tracker,
            guardrails_enabled=self.config.guardrails_enabled,
            ticker=ticker,
        )


async def capture_snapshot(
    ctx: SnapshotContext,
    ticker: str,
    on_progress: Optional[ProgressCallback] = None,
) -> AggregateResult:
    """
    Open a session, run all steps, tear the session down, then fetch market data.

    Raises only when the pipeline cannot run at all (e.g. BrowserLaunchError);
    the browser is closed on every path.
    """
    ticker = ticker.strip().upper()
    print(f"[Pipeline] Taking screenshots for ticker: {ticker}")

    session = ctx.new_session(ticker)
    try:
        report(on_progress, ProgressEvent(message="Launching browser...", step="browser_launch"))
        with GuardrailTimer("session_creation", enabled=ctx.config.guardrails_enabled) as timer:
            await session.open()
        report(on_progress, ProgressEvent(
            message="Browser launched successfully",
            step="browser_ready",
            status=ProgressStatus.SUCCEEDED,
        ))
        if timer.duration_ms is not None:
            print(f"[Pipeline] Browser ready in {timer.duration_ms:.0f}ms")

        await session.new_page()
        results = await run_steps(session, ticker, ctx.steps, on_progress)
    finally:
        await session.close()

    market_data = None
    if ctx.market_data is not None:
        market_data = await fetch_market_data(ctx.market_data, ticker, on_progress, ctx.error_tracker)

    result = AggregateResult.assemble(ticker, results, market_data)
    succeeded = sum(1 for r in results if r.success)
    print(f"[Pipeline] {ticker}: {succeeded}/{len(results)} screenshot(s) captured")
    return result


async def stream_snapshot(ctx: SnapshotContext, ticker: Optional[str]) -> AsyncIterator[str]:
    """
    Server-sent-event frames for one capture: status events as they happen,
    then exactly one `complete` or `error` event.

    If the consumer stops reading (client disconnected), the capture task is
    cancelled, which closes its browser session.
    """
    channel = ProgressChannel()

    if not ticker or not ticker.strip():
        channel.fail("Ticker symbol is required. Use ?ticker=SYMBOL")
        async for frame in channel.frames():
            yield frame
        return

    ticker = ticker.strip().upper()

    async def _produce() -> None:
        channel.publish(ProgressEvent(
            message="Starting screenshot process...",
            step="init",
            ticker=ticker,
        ))
        try:
            result = await capture_snapshot(ctx, ticker, on_progress=channel.publish)
            payload = result.to_wire()
        except Exception as e:
            print(f"[ERROR] Capture for {ticker} failed: {e}")
            if ctx.error_tracker is not None:
                ctx.error_tracker.record_error(
                    error=e,
                    component="capture_snapshot",
                    context={"ticker": ticker, "mode": "stream"},
                    failure_point=getattr(e, "failure_point", None),
                )
            channel.fail("Failed to take screenshots", str(e) or "An error occurred while taking the screenshots")
            return
        channel.complete(payload)

    task = asyncio.create_task(_produce())
    try:
        async for frame in channel.frames():
            yield frame
    finally:
        if not task.done():
            print(f"[Pipeline] Stream for {ticker} closed early, cancelling capture")
            task.cancel()
