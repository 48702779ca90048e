# src/core/retry_helpers.py

import asyncio
from typing import Any, Awaitable, Callable, Tuple, Type

from playwright.async_api import Error as PlaywrightError


async def retry_async(
    label: str,
    attempt_fn: Callable[[], Awaitable[Any]],
    max_retries: int = 0,
    base_delay: float = 1.0,
    retry_on: Tuple[Type[BaseException], ...] = (PlaywrightError,),
) -> Any:
    """
    Await attempt_fn() up to 1 + max_retries times with exponential backoff
    (base_delay, base_delay * 2, ...). Only `retry_on` errors are retried;
    the last one is re-raised.
    """
    for attempt in range(max_retries + 1):
        try:
            return await attempt_fn()
        except retry_on as e:
            if attempt >= max_retries:
                raise
            delay = base_delay * (2 ** attempt)
            print(f"[Retry] {label} failed (attempt {attempt + 1}/{max_retries + 1}): {e}. Retrying in {delay:.1f}s...")
            await asyncio.sleep(delay)


async def navigate_with_retry(
    page,
    url: str,
    max_retries: int = 0,
    timeout: int = 120000,
    wait_until: str = "domcontentloaded",
    base_delay: float = 1.0,
) -> None:
    """
    Navigate to URL, proceeding once the DOM is parsed.

    Each attempt is bounded by `timeout` (ms). With max_retries=0 a timeout
    surfaces straight away as a single failure.
    """
    await retry_async(
        f"goto {url}",
        lambda: page.goto(url, timeout=timeout, wait_until=wait_until),
        max_retries=max_retries,
        base_delay=base_delay,
    )
