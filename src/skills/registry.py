"""Screenshot steps run for every ticker, in this order."""
from typing import Tuple

from src.skills.base import ScreenshotStep
from src.skills.finviz.screenshot import FinvizStep
from src.skills.tradingview.screenshot import Interaction, TradingViewStep

INTRADAY_INTERACTIONS = (
    # Switch the range to one day of one-minute bars
    Interaction(selector='button[aria-label="1 day in 1 minute intervals"]', settle_ms=2000),
)

SCREENSHOT_STEPS: Tuple[ScreenshotStep, ...] = (
    FinvizStep(),
    TradingViewStep(variant="default"),
    TradingViewStep(variant="intraday", interactions=INTRADAY_INTERACTIONS),
)
