"""
TradingView chart: clipped screenshot of the symbol header plus the chart area.

Variants share the procedure and differ only in the UI interactions run
before the capture (e.g. switching the chart to a 1-day/1-minute range).
"""
from dataclasses import dataclass
from typing import Dict, Optional, Sequence, Tuple

from playwright.async_api import Error as PlaywrightError

from src.core.exceptions import CaptureError
from src.core.progress import ProgressStatus
from src.core.schemas import ScreenshotStepResult
from src.skills.base import CHALLENGE_PHRASES, ScreenshotStep, StepLog, encode_png, pause

TRADINGVIEW_BASE_URL = "https://www.tradingview.com/chart"
TOP_REGION = ".layout__area--top"
CENTER_REGION = ".layout__area--center"

LAYOUT_RECTS_JS = """
([topSelector, centerSelector]) => {
    const top = document.querySelector(topSelector);
    const center = document.querySelector(centerSelector);
    if (!top || !center) {
        return null;
    }
    const box = (el) => {
        const r = el.getBoundingClientRect();
        return { left: r.left, top: r.top, right: r.right, bottom: r.bottom };
    };
    return { top: box(top), center: box(center) };
}
"""


@dataclass(frozen=True)
class Interaction:
    """A click to perform before capturing. None means use the session timings."""

    selector: str
    settle_ms: Optional[int] = None
    await_selector: Optional[str] = None
    await_timeout_ms: Optional[int] = None


def combine_regions(top: Dict[str, float], center: Dict[str, float]) -> Dict[str, int]:
    """
    Clip rectangle covering the header and the chart.

    The right edge is the smaller of the two: the chart is narrower than the
    header and sets the usable width.
    """
    left = min(top["left"], center["left"])
    upper = min(top["top"], center["top"])
    right = min(top["right"], center["right"])
    bottom = max(top["bottom"], center["bottom"])
    return {
        "x": round(left),
        "y": round(upper),
        "width": round(right - left),
        "height": round(bottom - upper),
    }


class TradingViewStep(ScreenshotStep):
    name = "tradingview"
    site = "TradingView"
    # Chart pages mention "challenge" in ordinary content
    still_challenged_phrases = CHALLENGE_PHRASES
    past_challenge_selector = TOP_REGION

    def __init__(
        self,
        variant: str = "default",
        interactions: Sequence[Interaction] = (),
        exchange: str = "NASDAQ",
    ):
        self.variant = variant
        self.interactions: Tuple[Interaction, ...] = tuple(interactions)
        self.exchange = exchange

    def build_url(self, ticker: str) -> str:
        return f"{TRADINGVIEW_BASE_URL}/?symbol={self.exchange}%3A{ticker}"

    def is_ticker_page(self, url: str, ticker: str) -> bool:
        return ticker in url or "tradingview.com/chart" in url

    async def capture(self, session, ticker: str, url: str, log: StepLog) -> ScreenshotStepResult:
        page = session.page
        t = session.timings

        await self.navigate(session, url, log)
        await self.wait_out_challenge(session, log)
        self.ensure_ticker_page(session, ticker, log)

        log("Waiting for layout areas to load...", "waiting_layout")
        try:
            await page.wait_for_selector(TOP_REGION, timeout=t.layout_wait_ms)
            log("Top layout area found", "top_found", ProgressStatus.SUCCEEDED)
            await page.wait_for_selector(CENTER_REGION, timeout=t.layout_wait_ms)
            log("Center layout area found", "center_found", ProgressStatus.SUCCEEDED)
        except PlaywrightError:
            log("Layout areas not found, waiting additional time...", "waiting")
            await pause(t.layout_fallback_ms)

        await pause(t.layout_render_settle_ms)

        if self.interactions:
            await self.run_interactions(session, log)

        log("Calculating combined bounding box...", "calculating_bounds")
        rects = await page.evaluate(LAYOUT_RECTS_JS, [TOP_REGION, CENTER_REGION])
        if not rects:
            raise CaptureError(
                f"Could not find layout areas ({TOP_REGION} and {CENTER_REGION})",
                failure_point="layout",
            )

        clip = combine_regions(rects["top"], rects["center"])
        if clip["width"] <= 0 or clip["height"] <= 0:
            raise CaptureError(f"Layout areas have an empty combined box: {clip}", failure_point="layout")

        log(
            f"Taking screenshot of combined area: {clip['width']}x{clip['height']} at ({clip['x']}, {clip['y']})",
            "taking_screenshot",
        )
        png = await page.screenshot(type="png", clip=clip)
        log("Screenshot taken successfully", "screenshot_complete", ProgressStatus.SUCCEEDED)

        return ScreenshotStepResult.captured(
            name=self.name,
            variant=self.variant,
            url=url,
            image=encode_png(png),
            selector=f"{TOP_REGION} + {CENTER_REGION}",
        )

    async def run_interactions(self, session, log: StepLog) -> None:
        """Click through the configured interactions; one failing click does not stop the rest."""
        page = session.page
        t = session.timings
        total = len(self.interactions)
        log(f"Clicking {total} button(s) before taking screenshot...", "clicking_buttons")

        for number, interaction in enumerate(self.interactions, start=1):
            await_timeout = interaction.await_timeout_ms or t.interaction_await_ms
            try:
                log(f"Clicking button {number}/{total}: {interaction.selector}", f"click_button_{number}")
                await page.wait_for_selector(interaction.selector, timeout=await_timeout, state="visible")
                await page.click(interaction.selector)
                log(f"Button {number} clicked successfully", f"button_{number}_clicked", ProgressStatus.SUCCEEDED)

                if interaction.await_selector:
                    try:
                        await page.wait_for_selector(interaction.await_selector, timeout=await_timeout)
                    except PlaywrightError:
                        log(
                            f"Element {interaction.await_selector} not found, continuing...",
                            f"wait_skipped_{number}",
                        )

                settle = interaction.settle_ms if interaction.settle_ms is not None else t.interaction_settle_ms
                await pause(settle)
            except Exception as e:
                log(f"Error clicking button {number}: {e}", f"button_error_{number}", ProgressStatus.FAILED)

        log("All buttons clicked, dismissing tooltips...", "buttons_complete", ProgressStatus.SUCCEEDED)
        try:
            await page.keyboard.press("Escape")
            log("ESC key pressed to dismiss tooltips", "dismiss_tooltips")
            await pause(t.escape_settle_ms)
        except Exception as e:
            log(f"Error pressing ESC key, continuing: {e}", "esc_error", ProgressStatus.FAILED)

        await pause(t.post_interaction_settle_ms)
