"""Failure records for capture steps and market-data calls, grouped by component."""

import itertools
import json
import traceback
from collections import Counter, deque
from datetime import datetime, timezone
from pathlib import Path
from typing import Deque, Dict, Optional, Any, Union


class ErrorTracker:
    """
    Records what failed (component + failure point), why, and for which ticker.

    Built once per process and handed to the components that report into it.
    When `errors_dir` is set, each record is also written out as JSON along
    with a daily .jsonl log and a human-readable summary.

    Only the last `max_records` records stay in memory; the counts behind
    the summary cover the current day and reset when the date changes.
    """

    def __init__(
        self,
        errors_dir: Optional[Union[str, Path]] = None,
        clear_existing: bool = True,
        max_records: int = 200,
    ):
        self.errors: Deque[Dict[str, Any]] = deque(maxlen=max_records)
        self.errors_dir = Path(errors_dir) if errors_dir else None
        self._sequence = itertools.count(1)
        self._counted_day = self.today
        self._reset_counts()
        if self.errors_dir is not None:
            self.errors_dir.mkdir(parents=True, exist_ok=True)
            if clear_existing:
                self._clear_old_errors()

    def _clear_old_errors(self):
        """Delete error files left by a previous process."""
        deleted_count = 0
        for file in self.errors_dir.iterdir():
            if file.is_file() and file.suffix in (".json", ".jsonl", ".txt"):
                try:
                    file.unlink()
                    deleted_count += 1
                except OSError as e:
                    print(f"[ErrorTracker] Could not delete {file.name}: {e}")

        if deleted_count > 0:
            print(f"[ErrorTracker] Cleared {deleted_count} old error file(s)")

    def record_error(
        self,
        error: BaseException,
        component: str,  # e.g. "finviz", "tradingview_intraday", "alpha_vantage_news"
        context: Optional[Dict[str, Any]] = None,
        diagnostics: Optional[Dict[str, Any]] = None,
        failure_point: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Record an error with component identification and diagnostics.

        Args:
            error: The exception that occurred
            component: Which step or call failed
            context: Additional context (ticker, url, etc.)
            diagnostics: Page state captured when the failure happened
            failure_point: Stage that failed (e.g. "navigation", "selector", "market_data")
            session_id: Browserbase session ID, when the remote backend is in use
        """
        session_url = None
        if session_id:
            session_url = f"https://www.browserbase.com/sessions/{session_id}"

        error_record = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "component": component,
            "error_type": type(error).__name__,
            "error_message": str(error),
            "context": context or {},
            "failure_point": failure_point or getattr(error, "failure_point", None),
            "diagnostics": diagnostics or getattr(error, "diagnostics", None) or {},
            "session_id": session_id,
            "session_url": session_url,
            "traceback": self._extract_relevant_traceback(error),
        }

        day = self.today
        self._count(error_record, day)
        self.errors.append(error_record)
        if self.errors_dir is not None:
            try:
                self._save_error(error_record, day)
                self._update_summary(day)
            except OSError as e:
                print(f"[ErrorTracker] Could not write error files: {e}")
        return error_record

    def _extract_relevant_traceback(self, error: BaseException) -> str:
        """Keep the frames that point at our own files."""
        tb_lines = traceback.format_exception(type(error), error, error.__traceback__)

        relevant_lines = [
            line.strip()
            for line in tb_lines
            if "src/" in line or line.strip().startswith("File")
        ]

        if not relevant_lines:
            return "".join(tb_lines)

        return "\n".join(relevant_lines)

    @property
    def today(self) -> str:
        return datetime.now().strftime("%Y-%m-%d")

    def _reset_counts(self):
        self.total_errors = 0
        self._by_component: Counter = Counter()
        self._by_failure_point: Counter = Counter()
        self._by_error_type: Counter = Counter()

    def _count(self, error_record: Dict[str, Any], day: str):
        if day != self._counted_day:
            self._counted_day = day
            self._reset_counts()
        self.total_errors += 1
        self._by_component[error_record["component"]] += 1
        self._by_failure_point[error_record.get("failure_point") or "unknown"] += 1
        self._by_error_type[error_record["error_type"]] += 1

    def _save_error(self, error_record: Dict[str, Any], day: str):
        component = "".join(c if c.isalnum() or c in "-_" else "_" for c in error_record["component"])
        stamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
        # Sequence keeps same-second records from overwriting each other
        error_file = self.errors_dir / f"error_{stamp}_{next(self._sequence):05d}_{component}.json"

        with open(error_file, "w", encoding="utf-8") as f:
            json.dump(error_record, f, indent=2)

        daily_log = self.errors_dir / f"errors_{day}.jsonl"
        with open(daily_log, "a", encoding="utf-8") as f:
            f.write(json.dumps(error_record) + "\n")

    def _update_summary(self, day: str):
        summary = self.get_summary()

        summary_file = self.errors_dir / f"error_summary_{day}.json"
        with open(summary_file, "w", encoding="utf-8") as f:
            json.dump(summary, f, indent=2)

        summary_text_file = self.errors_dir / f"error_summary_{day}.txt"
        with open(summary_text_file, "w", encoding="utf-8") as f:
            f.write(self._format_summary_text(summary))

    def get_summary(self) -> Dict[str, Any]:
        if self.total_errors == 0:
            return {
                "total_errors": 0,
                "status": "no_errors",
                "message": "No errors occurred in this run.",
            }

        worst_component, worst_count = self._by_component.most_common(1)[0]

        return {
            "total_errors": self.total_errors,
            "status": "errors_occurred",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "summary": {
                "errors_by_component": dict(self._by_component),
                "errors_by_failure_point": dict(self._by_failure_point),
                "errors_by_type": dict(self._by_error_type),
                "most_problematic_component": {
                    "component": worst_component,
                    "error_count": worst_count,
                },
            },
            "errors": list(self.errors)[-10:],
        }

    def _format_summary_text(self, summary: Dict[str, Any]) -> str:
        lines = [
            "=" * 60,
            "ERROR SUMMARY",
            "=" * 60,
            "",
            f"Total Errors: {summary['total_errors']}",
            f"Status: {summary['status']}",
            "",
        ]

        if summary["status"] == "no_errors":
            lines.append("No errors occurred in this run.")
            return "\n".join(lines)

        lines.append("Errors by Component:")
        for component, count in summary["summary"]["errors_by_component"].items():
            lines.append(f"  - {component}: {count} error(s)")
        lines.append("")

        lines.append("Errors by Failure Point:")
        for point, count in summary["summary"]["errors_by_failure_point"].items():
            lines.append(f"  - {point}: {count}")
        lines.append("")

        worst = summary["summary"]["most_problematic_component"]
        lines.append(f"Most Problematic Component: {worst['component']} ({worst['error_count']} errors)")
        lines.append("")

        lines.append("Recent Errors:")
        for error in summary["errors"][-5:]:
            lines.append(f"\n  Component: {error['component']}")
            lines.append(f"  Error: {error['error_type']}: {error['error_message']}")
            if error.get("context"):
                ctx_str = ", ".join(f"{k}={v}" for k, v in error["context"].items())
                lines.append(f"  Context: {ctx_str}")
            if error.get("session_url"):
                lines.append(f"  Session: {error['session_url']}")

        return "\n".join(lines)

    def get_summary_path(self) -> Optional[str]:
        if self.errors_dir is None:
            return None
        return str((self.errors_dir / f"error_summary_{self.today}.json").absolute())
