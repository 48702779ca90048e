"""
Capture session: one browser and one page, owned by a single ticker request.

Two backends:
    local        headless Chromium launched through Playwright
    browserbase  remote stealth browser created through Stagehand
"""
import asyncio
from datetime import date
from typing import Any, Dict, Optional

from playwright.async_api import async_playwright

from src.core.config import BrowserConfig, StepTimings
from src.core.exceptions import BrowserLaunchError
from src.core.observability.errors import ErrorTracker

# Flags for containerised / serverless hosts
LOCAL_LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-blink-features=AutomationControlled",
    "--disable-features=IsolateOrigins,site-per-process",
    "--disable-gpu",
    "--no-first-run",
]

HIDE_WEBDRIVER_JS = """
    Object.defineProperty(navigator, 'webdriver', {
        get: () => false,
    });
"""


class CaptureSession:
    """
    Owns the browser process and the single page every step runs on.

    Usage:
        session = CaptureSession(config.browser, config.timings)
        try:
            await session.open()
            await session.new_page()
            ...
        finally:
            await session.close()

    close() is idempotent and never raises.
    """

    def __init__(
        self,
        config: BrowserConfig,
        timings: Optional[StepTimings] = None,
        error_tracker: Optional[ErrorTracker] = None,
        guardrails_enabled: bool = True,
        ticker: Optional[str] = None,
    ):
        self.config = config
        self.timings = timings or StepTimings()
        self.error_tracker = error_tracker
        self.guardrails_enabled = guardrails_enabled
        self.ticker = ticker
        self.page = None
        self._playwright = None
        self._browser = None
        self._context = None
        self._stagehand = None
        self._cdp = None
        self._closed = False

    @property
    def backend(self) -> str:
        return "browserbase" if self.config.env == "browserbase" else "local"

    @property
    def session_id(self) -> Optional[str]:
        return getattr(self._stagehand, "session_id", None)

    async def open(self) -> "CaptureSession":
        if self._closed:
            raise BrowserLaunchError("Capture session was already closed")
        try:
            if self.backend == "browserbase":
                await self._open_browserbase()
            else:
                await self._open_local()
        except BrowserLaunchError:
            await self.close()
            raise
        except Exception as e:
            await self.close()
            raise BrowserLaunchError(f"Could not start browser instance: {e}") from e
        return self

    async def _open_local(self) -> None:
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(
            headless=self.config.headless,
            args=LOCAL_LAUNCH_ARGS,
            timeout=self.config.launch_timeout_ms,
        )

        await asyncio.sleep(self.config.launch_settle_ms / 1000)

        if not self._browser.is_connected():
            raise BrowserLaunchError("Browser connection lost after launch")
        print("[Session] Browser launched successfully")

    async def _open_browserbase(self) -> None:
        bb = self.config.browserbase
        if not bb.is_configured:
            raise BrowserLaunchError("BROWSERBASE_API_KEY and BROWSERBASE_PROJECT_ID are required for BROWSER_ENV=browserbase")

        from stagehand import Stagehand, StagehandConfig

        user_metadata = {
            "source": "ticker_snapshot",
            "run_id": f"ticker_snapshot_{date.today().isoformat()}",
        }
        if self.ticker:
            user_metadata["ticker"] = self.ticker

        browser_settings: Dict[str, Any] = {
            "viewport": {
                "width": self.config.viewport_width,
                "height": self.config.viewport_height,
            },
        }
        if bb.advanced_stealth:
            browser_settings["advanced_stealth"] = True
            print("[Session] Advanced Stealth Mode enabled (requires Scale Plan)")
        if not bb.solve_captchas:
            browser_settings["solveCaptchas"] = False
            print("[Session] CAPTCHA solving disabled")

        config = StagehandConfig(
            env="BROWSERBASE",
            api_key=bb.api_key,
            project_id=bb.project_id,
            model_name=bb.model_name,
            model_api_key=bb.model_api_key,
            verbose=bb.verbose,
            browser_settings=browser_settings,
            proxies=bb.use_proxies,
            browserbase_session_create_params={
                "region": bb.region,
                "keepAlive": bb.keep_alive,
                "timeout": bb.timeout_sec,
                "userMetadata": user_metadata,
            },
        )

        self._stagehand = Stagehand(config)
        await self._stagehand.init()

        await asyncio.sleep(self.config.launch_settle_ms / 1000)

        if getattr(self._stagehand, "page", None) is None:
            raise BrowserLaunchError("Browserbase session started without a page")
        print(f"[Session] Browserbase session ready: {self.session_id}")

    async def new_page(self):
        """Configure and return the session's single page; later calls reuse it."""
        if self.page is not None:
            return self.page
        if self._closed:
            raise BrowserLaunchError("Capture session is closed")

        if self._stagehand is not None:
            page = self._stagehand.page
            await page.set_viewport_size({
                "width": self.config.viewport_width,
                "height": self.config.viewport_height,
            })
            await self._emulate_device(page)
            if self.config.hide_automation:
                await page.add_init_script(HIDE_WEBDRIVER_JS)
        elif self._browser is not None:
            self._context = await self._browser.new_context(
                viewport={
                    "width": self.config.viewport_width,
                    "height": self.config.viewport_height,
                },
                device_scale_factor=self.config.device_scale_factor,
                user_agent=self.config.user_agent,
            )
            if self.config.hide_automation:
                await self._context.add_init_script(HIDE_WEBDRIVER_JS)
            page = await self._context.new_page()
        else:
            raise BrowserLaunchError("Capture session is not open")

        page.set_default_timeout(self.config.default_timeout_ms)
        page.set_default_navigation_timeout(self.config.navigation_timeout_ms)
        self.page = page
        return page

    async def _emulate_device(self, page) -> None:
        """
        The remote browser already exists, so pixel density and identity
        cannot be set at context creation; apply them over CDP instead.
        """
        # StagehandPage wraps the Playwright page as _page
        raw_page = getattr(page, "_page", page)
        self._cdp = await raw_page.context.new_cdp_session(raw_page)
        await self._cdp.send("Emulation.setDeviceMetricsOverride", {
            "width": self.config.viewport_width,
            "height": self.config.viewport_height,
            "deviceScaleFactor": self.config.device_scale_factor,
            "mobile": False,
        })
        await self._cdp.send("Emulation.setUserAgentOverride", {"userAgent": self.config.user_agent})

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True

        closers = []
        if self._stagehand is None:
            closers.append(("page", self.page, "close"))
        closers += [
            ("context", self._context, "close"),
            ("browser", self._browser, "close"),
            ("playwright", self._playwright, "stop"),
            ("stagehand", self._stagehand, "close"),
        ]

        for label, target, method in closers:
            if target is None:
                continue
            try:
                await getattr(target, method)()
            except Exception as e:
                print(f"[WARN] Error closing {label}: {e}")

        self.page = None
        print("[Session] Browser closed")

    async def __aenter__(self) -> "CaptureSession":
        return await self.open()

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
