"""
Process-wide configuration, read once from the environment (and .env).

Build it with load_config() and pass the result to whatever needs it.
"""
import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


def _env_flag(name: str, default: bool = True) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "y", "on")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        print(f"[Config] Ignoring non-integer {name}={raw!r}, using {default}")
        return default


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if not raw:
        return list(default)
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass(frozen=True)
class BrowserbaseConfig:
    """Options for the remote (Stagehand/Browserbase) capture backend."""
    api_key: Optional[str] = None
    project_id: Optional[str] = None
    region: str = "us-west-2"
    keep_alive: bool = False
    # Browserbase expects seconds
    timeout_sec: int = 900
    advanced_stealth: bool = False
    solve_captchas: bool = True
    use_proxies: bool = True
    model_name: str = "gpt-4.1-mini"
    model_api_key: Optional[str] = None
    verbose: int = 0

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key and self.project_id)


@dataclass(frozen=True)
class BrowserConfig:
    env: str = "local"
    headless: bool = True
    viewport_width: int = 2560
    viewport_height: int = 1440
    device_scale_factor: int = 2
    user_agent: str = DEFAULT_USER_AGENT
    hide_automation: bool = True
    launch_timeout_ms: int = 30000
    launch_settle_ms: int = 500
    default_timeout_ms: int = 60000
    navigation_timeout_ms: int = 120000
    browserbase: BrowserbaseConfig = field(default_factory=BrowserbaseConfig)


@dataclass(frozen=True)
class StepTimings:
    """Every bounded wait a screenshot step performs, in milliseconds."""
    challenge_wait_ms: int = 30000
    challenge_verified_settle_ms: int = 2000
    challenge_network_idle_ms: int = 30000
    challenge_fallback_ms: int = 5000
    still_challenged_wait_ms: int = 15000
    past_challenge_check_ms: int = 10000
    post_navigation_settle_ms: int = 1000
    layout_wait_ms: int = 30000
    layout_fallback_ms: int = 3000
    layout_render_settle_ms: int = 2000
    preferred_selector_ms: int = 3000
    fallback_selector_ms: int = 3000
    interaction_await_ms: int = 10000
    interaction_settle_ms: int = 1000
    escape_settle_ms: int = 500
    post_interaction_settle_ms: int = 1500
    inter_step_delay_ms: int = 500
    navigation_retries: int = 0


@dataclass(frozen=True)
class AlphaVantageConfig:
    api_key: str = "demo"
    base_url: str = "https://www.alphavantage.co/query"
    timeout_sec: float = 30.0
    inter_call_delay_ms: int = 1000
    news_limit: int = 10
    user_agent: str = "trade-with-edge-server"

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key) and self.api_key != "demo"


@dataclass(frozen=True)
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 3001
    cors_origins: List[str] = field(default_factory=lambda: ["http://localhost:5173"])


@dataclass(frozen=True)
class AppConfig:
    browser: BrowserConfig = field(default_factory=BrowserConfig)
    timings: StepTimings = field(default_factory=StepTimings)
    alpha_vantage: AlphaVantageConfig = field(default_factory=AlphaVantageConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    guardrails_enabled: bool = True
    errors_dir: Optional[str] = "data/errors"


def load_config() -> AppConfig:
    """Read configuration from the environment, loading .env first."""
    load_dotenv()

    browserbase = BrowserbaseConfig(
        api_key=os.getenv("BROWSERBASE_API_KEY"),
        project_id=os.getenv("BROWSERBASE_PROJECT_ID"),
        region=os.getenv("BROWSERBASE_REGION") or "us-west-2",
        keep_alive=_env_flag("BROWSERBASE_KEEP_ALIVE", default=False),
        timeout_sec=_env_int("BROWSERBASE_TIMEOUT", 900),
        advanced_stealth=_env_flag("BROWSERBASE_ADVANCED_STEALTH", default=False),
        solve_captchas=_env_flag("BROWSERBASE_SOLVE_CAPTCHAS", default=True),
        use_proxies=_env_flag("BROWSERBASE_USE_PROXIES", default=True),
        model_name=os.getenv("STAGEHAND_MODEL_NAME") or "gpt-4.1-mini",
        model_api_key=os.getenv("OPENAI_API_KEY"),
        verbose=_env_int("STAGEHAND_VERBOSE", 0),
    )

    browser = BrowserConfig(
        env=(os.getenv("BROWSER_ENV") or "local").strip().lower(),
        headless=_env_flag("BROWSER_HEADLESS", default=True),
        default_timeout_ms=_env_int("BROWSER_DEFAULT_TIMEOUT_MS", 60000),
        navigation_timeout_ms=_env_int("BROWSER_NAVIGATION_TIMEOUT_MS", 120000),
        browserbase=browserbase,
    )

    timings = StepTimings(
        navigation_retries=max(0, _env_int("NAVIGATION_RETRIES", 0)),
    )

    alpha_vantage = AlphaVantageConfig(
        api_key=os.getenv("ALPHA_VANTAGE_API_KEY") or "demo",
        inter_call_delay_ms=_env_int("ALPHA_VANTAGE_CALL_DELAY_MS", 1000),
    )

    server = ServerConfig(
        host=os.getenv("HOST") or "0.0.0.0",
        port=_env_int("PORT", 3001),
        cors_origins=_env_list("CORS_ORIGINS", ["http://localhost:5173"]),
    )

    errors_dir = os.getenv("ERRORS_DIR", "data/errors")

    return AppConfig(
        browser=browser,
        timings=timings,
        alpha_vantage=alpha_vantage,
        server=server,
        guardrails_enabled=_env_flag("ENABLE_GUARDRAILS", default=True),
        errors_dir=errors_dir or None,
    )
