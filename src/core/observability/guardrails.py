"""Failure diagnostics and timing around browser operations."""

import time
from typing import Dict, Any, Optional


async def check_page_navigation(page, expected_url: str, enabled: bool = True) -> Dict[str, Any]:
    """
    Snapshot where the page actually is, for attaching to a failure record.
    """
    diagnostics = {
        "navigation_success": False,
        "expected_url": expected_url,
        "actual_url": None,
        "page_title": None,
        "page_accessible": False,
    }

    if not enabled or page is None:
        return diagnostics

    try:
        actual_url = page.url
        page_title = await page.title()

        diagnostics.update({
            "navigation_success": actual_url == expected_url or expected_url in actual_url,
            "actual_url": actual_url,
            "page_title": page_title,
            "page_accessible": True,
        })
    except Exception as e:
        diagnostics["navigation_error"] = str(e)

    return diagnostics


class GuardrailTimer:
    """Context manager for timing operations."""

    def __init__(self, operation_name: str, enabled: bool = True):
        self.operation_name = operation_name
        self.enabled = enabled
        self.start_time: Optional[float] = None
        self.duration_ms: Optional[float] = None

    def __enter__(self):
        if self.enabled:
            self.start_time = time.monotonic()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.enabled and self.start_time is not None:
            self.duration_ms = (time.monotonic() - self.start_time) * 1000

    def get_diagnostics(self) -> Dict[str, Any]:
        if not self.enabled:
            return {}

        return {
            f"{self.operation_name}_duration_ms": self.duration_ms,
        }
