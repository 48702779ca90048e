"""
Finviz quote page: element screenshot of the snapshot table.
"""
from src.core.progress import ProgressStatus
from src.core.schemas import ScreenshotStepResult
from src.skills.base import ScreenshotStep, StepLog, encode_png, pause

FINVIZ_BASE_URL = "https://finviz.com/quote.ashx"
FINVIZ_SELECTOR = ".screener_snapshot-table-wrapper"
FINVIZ_FALLBACK_SELECTORS = (
    "table.snapshot-table",
    "table.screener_snapshot-table",
    'table[class*="snapshot"]',
    "table",
)


class FinvizStep(ScreenshotStep):
    name = "finviz"
    site = "Finviz"
    past_challenge_selector = "table"

    def build_url(self, ticker: str) -> str:
        return f"{FINVIZ_BASE_URL}?t={ticker}"

    def is_ticker_page(self, url: str, ticker: str) -> bool:
        # Unknown symbols redirect away from the quote page
        return f"t={ticker}" in url or "finviz.com/quote" in url

    async def capture(self, session, ticker: str, url: str, log: StepLog) -> ScreenshotStepResult:
        await self.navigate(session, url, log)
        await self.wait_out_challenge(session, log)
        self.ensure_ticker_page(session, ticker, log)

        log("Page loaded successfully", "page_ready", ProgressStatus.SUCCEEDED)
        await pause(session.timings.post_navigation_settle_ms)

        selector, element = await self.find_element(
            session, FINVIZ_SELECTOR, FINVIZ_FALLBACK_SELECTORS, log
        )

        log("Taking screenshot...", "taking_screenshot")
        png = await element.screenshot(type="png")
        log("Screenshot taken successfully", "screenshot_complete", ProgressStatus.SUCCEEDED)

        return ScreenshotStepResult.captured(
            name=self.name,
            url=url,
            image=encode_png(png),
            selector=selector,
        )
