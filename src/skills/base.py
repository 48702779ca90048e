"""
Shared machinery for screenshot steps.

A step navigates the session's page to a ticker-specific URL, waits out any
bot-challenge interstitial, checks it landed on a page for that ticker,
locates the capture region and returns a ScreenshotStepResult. execute()
never raises: anything that goes wrong becomes a failed result.
"""
import asyncio
import base64
from abc import ABC, abstractmethod
from typing import Any, Optional, Sequence, Tuple

from playwright.async_api import Error as PlaywrightError

from src.core.exceptions import CaptureError, TickerNotFoundError
from src.core.observability.guardrails import GuardrailTimer, check_page_navigation
from src.core.progress import ProgressCallback, ProgressEvent, ProgressStatus, report
from src.core.retry_helpers import navigate_with_retry
from src.core.schemas import ScreenshotStepResult

BODY_TEXT_JS = "() => document.body ? document.body.innerText : ''"

CHALLENGE_PHRASES = ("Verifying you are human", "Just a moment")
CHALLENGE_SUCCESS_SELECTOR = "#challenge-success-text, .challenge-success-text"


async def pause(ms: int) -> None:
    if ms > 0:
        await asyncio.sleep(ms / 1000)


def encode_png(data: bytes) -> str:
    return "data:image/png;base64," + base64.b64encode(data).decode("ascii")


class StepLog:
    """Prints a tagged line and mirrors it to the progress callback."""

    def __init__(self, step: "ScreenshotStep", url: str, on_progress: Optional[ProgressCallback]):
        self.step = step
        self.url = url
        self.on_progress = on_progress
        self.prefix = f"[{step.display_name}]"

    def __call__(self, message: str, phase: str, status: ProgressStatus = ProgressStatus.STARTED) -> None:
        print(f"{self.prefix} {message}")
        report(
            self.on_progress,
            ProgressEvent(
                message=f"{self.prefix} {message}",
                step=f"{self.step.code}_{phase}",
                status=status,
                website=self.step.name,
                variant=self.step.variant,
                url=self.url,
            ),
        )


class ScreenshotStep(ABC):
    """
    One site-specific capture. Subclasses provide the URL, the ticker-page
    check and capture(); the helpers below cover the common parts.
    """

    name: str = ""
    site: str = ""
    variant: Optional[str] = None

    challenge_phrases: Tuple[str, ...] = CHALLENGE_PHRASES
    still_challenged_phrases: Tuple[str, ...] = CHALLENGE_PHRASES + ("challenge",)
    # Appears once the real page has rendered behind a challenge
    past_challenge_selector: Optional[str] = None

    @property
    def code(self) -> str:
        return f"{self.name}_{self.variant}" if self.variant else self.name

    @property
    def display_name(self) -> str:
        return f"{self.site} {self.variant}" if self.variant else self.site

    @abstractmethod
    def build_url(self, ticker: str) -> str:
        ...

    @abstractmethod
    def is_ticker_page(self, url: str, ticker: str) -> bool:
        ...

    @abstractmethod
    async def capture(self, session, ticker: str, url: str, log: StepLog) -> ScreenshotStepResult:
        """Run the site-specific procedure; raise CaptureError on failure."""

    async def execute(
        self,
        session,
        ticker: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ScreenshotStepResult:
        ticker = ticker.strip().upper()
        url = self.build_url(ticker)
        log = StepLog(self, url, on_progress)

        timer = GuardrailTimer(self.code, enabled=session.guardrails_enabled)
        try:
            with timer:
                return await self.capture(session, ticker, url, log)
        except Exception as e:
            message = str(e) or "An error occurred while taking the screenshot"
            log(f"Error: {message}", "error", ProgressStatus.FAILED)
            await self._record_failure(session, e, ticker, url, timer)
            return ScreenshotStepResult.failed(
                name=self.name,
                variant=self.variant,
                url=url,
                error=message,
            )

    async def _record_failure(self, session, error: Exception, ticker: str, url: str, timer: GuardrailTimer) -> None:
        tracker = session.error_tracker
        if tracker is None:
            return
        diagnostics = dict(getattr(error, "diagnostics", {}) or {})
        diagnostics.update(timer.get_diagnostics())
        diagnostics.update(await check_page_navigation(session.page, url, enabled=session.guardrails_enabled))
        tracker.record_error(
            error=error,
            component=self.code,
            context={"ticker": ticker, "url": url, "website": self.name},
            diagnostics=diagnostics,
            failure_point=getattr(error, "failure_point", "capture"),
            session_id=session.session_id,
        )

    async def navigate(self, session, url: str, log: StepLog) -> None:
        log(f"Navigating to {url}...", "navigating")
        try:
            await navigate_with_retry(
                session.page,
                url,
                max_retries=session.timings.navigation_retries,
                timeout=session.config.navigation_timeout_ms,
                wait_until="domcontentloaded",
            )
        except PlaywrightError as e:
            raise CaptureError(f"Navigation to {url} failed: {e}", failure_point="navigation") from e
        log(f"Page loaded at {session.page.url}", "page_loaded", ProgressStatus.SUCCEEDED)

    async def _page_has_text(self, page, phrases: Sequence[str]) -> bool:
        try:
            text = await page.evaluate(BODY_TEXT_JS)
        except PlaywrightError as e:
            # Happens while a challenge redirects mid-evaluate
            print(f"[{self.display_name}] Could not read page text: {e}")
            return False
        return any(phrase in (text or "") for phrase in phrases)

    async def wait_out_challenge(self, session, log: StepLog) -> None:
        """
        Bounded wait for a bot-challenge interstitial to clear. Proceeds
        even if it never does; the later checks decide whether that worked.
        """
        page = session.page
        t = session.timings

        if await self._page_has_text(page, self.challenge_phrases):
            log("Cloudflare challenge detected. Waiting for verification...", "cloudflare_challenge")
            try:
                await page.wait_for_selector(CHALLENGE_SUCCESS_SELECTOR, timeout=t.challenge_wait_ms)
                log("Cloudflare verification successful", "cloudflare_verified", ProgressStatus.SUCCEEDED)
                await pause(t.challenge_verified_settle_ms)
                try:
                    await page.wait_for_load_state("networkidle", timeout=t.challenge_network_idle_ms)
                except PlaywrightError:
                    log("No redirect after verification, continuing", "cloudflare_no_redirect")
            except PlaywrightError:
                log("Verification marker not seen, continuing after a short delay", "cloudflare_fallback")
                await pause(t.challenge_fallback_ms)

        if await self._page_has_text(page, self.still_challenged_phrases):
            log("Still on Cloudflare challenge, waiting longer...", "cloudflare_waiting")
            await pause(t.still_challenged_wait_ms)
            if self.past_challenge_selector:
                try:
                    await page.wait_for_selector(self.past_challenge_selector, timeout=t.past_challenge_check_ms)
                    log("Page loaded - past Cloudflare challenge", "cloudflare_complete", ProgressStatus.SUCCEEDED)
                except PlaywrightError:
                    log("Challenge may still be showing, continuing anyway", "cloudflare_unresolved")

    def ensure_ticker_page(self, session, ticker: str, log: StepLog) -> None:
        final_url = session.page.url
        if not self.is_ticker_page(final_url, ticker):
            log(f"Page redirected to: {final_url} - Ticker not found", "ticker_not_found", ProgressStatus.FAILED)
            raise TickerNotFoundError(
                f'Ticker symbol "{ticker}" was not found on {self.site}.',
                diagnostics={"final_url": final_url},
            )

    async def find_element(
        self,
        session,
        preferred: str,
        fallbacks: Sequence[str],
        log: StepLog,
    ) -> Tuple[str, Any]:
        """Preferred selector first, then each fallback, every wait bounded on its own."""
        t = session.timings
        log(f"Waiting for element with selector: {preferred}", "finding_element")

        for index, selector in enumerate((preferred, *fallbacks)):
            timeout = t.preferred_selector_ms if index == 0 else t.fallback_selector_ms
            try:
                element = await session.page.wait_for_selector(selector, timeout=timeout, state="attached")
            except PlaywrightError:
                continue
            if element is not None:
                kind = "fallback selector" if index else "selector"
                log(f"Found element with {kind}: {selector}", "element_found", ProgressStatus.SUCCEEDED)
                return selector, element

        raise CaptureError("Could not find any matching selector", failure_point="selector")
