"""Observability module for failure tracking and diagnostics."""

from src.core.observability.errors import ErrorTracker
from src.core.observability.guardrails import GuardrailTimer, check_page_navigation

__all__ = ["ErrorTracker", "GuardrailTimer", "check_page_navigation"]
