# src/core/cli/run_snapshot.py
"""
Capture snapshots for a list of tickers and write them to disk.

    python -m src.core.cli.run_snapshot            # tickers from config/watchlist.json
    python -m src.core.cli.run_snapshot AAPL NVDA

Outputs:
    data/snapshots/<TICKER>_<date>.json
    data/snapshots/<TICKER>_<date>_<capture>.png
    data/reports/snapshot_<date>.md
"""
import asyncio
import base64
import json
import sys
import time
from datetime import date
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from src.core.config import AppConfig, load_config
from src.core.observability.errors import ErrorTracker
from src.core.pipeline import SnapshotContext, capture_snapshot
from src.core.report_builder import build_snapshot_report
from src.core.schemas import AggregateResult
from src.skills.alphavantage.client import AlphaVantageClient

WATCHLIST_PATH = Path("config/watchlist.json")
SNAPSHOT_DIR = Path("data/snapshots")
REPORTS_DIR = Path("data/reports")

DATA_URI_PREFIX = "data:image/png;base64,"


def load_watchlist(path: Path = WATCHLIST_PATH) -> List[str]:
    if not path.exists():
        raise FileNotFoundError(f"Watchlist not found: {path}")
    tickers = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(tickers, list):
        raise ValueError(f"{path} must contain a JSON list of ticker symbols")
    return [str(t).strip().upper() for t in tickers if str(t).strip()]


def write_images(result: AggregateResult, as_of: date, out_dir: Path) -> Dict[str, str]:
    """Decode each captured data URI to a PNG; returns {capture label: path}."""
    paths: Dict[str, str] = {}
    for shot in result.screenshots:
        if not shot.success or not shot.image or not shot.image.startswith(DATA_URI_PREFIX):
            continue
        path = out_dir / f"{result.ticker}_{as_of.isoformat()}_{shot.label}.png"
        path.write_bytes(base64.b64decode(shot.image[len(DATA_URI_PREFIX):]))
        paths[shot.label] = str(path)
    return paths


async def main(
    tickers: Optional[Sequence[str]] = None,
    config: Optional[AppConfig] = None,
    ctx: Optional[SnapshotContext] = None,
) -> List[AggregateResult]:
    config = config or (ctx.config if ctx else load_config())
    owns_client = ctx is None
    if ctx is None:
        ctx = SnapshotContext(
            config=config,
            market_data=AlphaVantageClient(config.alpha_vantage),
            error_tracker=ErrorTracker(config.errors_dir),
        )

    tickers = [t.strip().upper() for t in (tickers or load_watchlist()) if t.strip()]
    if not tickers:
        print("[WARN] No tickers to capture.")
        return []

    today = date.today()
    SNAPSHOT_DIR.mkdir(parents=True, exist_ok=True)
    REPORTS_DIR.mkdir(parents=True, exist_ok=True)

    print(f"Running ticker snapshot for {len(tickers)} ticker(s): {', '.join(tickers)}")
    pipeline_start = time.monotonic()

    results: List[AggregateResult] = []
    report_items = []
    try:
        for ticker in tickers:
            try:
                result = await capture_snapshot(ctx, ticker)
            except Exception as e:
                print(f"[ERROR] {ticker}: snapshot failed: {e}")
                if ctx.error_tracker is not None:
                    ctx.error_tracker.record_error(
                        error=e,
                        component="capture_snapshot",
                        context={"ticker": ticker, "mode": "cli"},
                    )
                continue

            snapshot_path = SNAPSHOT_DIR / f"{ticker}_{today.isoformat()}.json"
            snapshot_path.write_text(json.dumps(result.to_wire(), indent=2), encoding="utf-8")
            image_paths = write_images(result, today, SNAPSHOT_DIR)
            print(f"Snapshot written to: {snapshot_path} ({len(image_paths)} image(s))")

            results.append(result)
            report_items.append((result, image_paths))
    finally:
        if owns_client and ctx.market_data is not None:
            await ctx.market_data.aclose()

    print(f"[Timing] Pipeline finished in {time.monotonic() - pipeline_start:.1f}s")

    if not report_items:
        print("[WARN] No successful tickers to include in report.")
    else:
        report_path = REPORTS_DIR / f"snapshot_{today.isoformat()}.md"
        report_path.write_text(build_snapshot_report(today, report_items), encoding="utf-8")
        print(f"Ticker Snapshot written to: {report_path}")

    if ctx.error_tracker is not None:
        summary = ctx.error_tracker.get_summary()
        if summary["total_errors"] > 0:
            print(f"\n[ERRORS] {summary['total_errors']} error(s) occurred.")
            print(f"  Most problematic component: {summary['summary']['most_problematic_component']['component']}")
            summary_path = ctx.error_tracker.get_summary_path()
            if summary_path:
                print(f"  Error summary file: {summary_path}")

    return results


def main_cli():
    try:
        asyncio.run(main(sys.argv[1:] or None))
    except Exception as e:
        print(f"\n[FATAL ERROR] Pipeline failed: {e}")
        raise


if __name__ == "__main__":
    main_cli()
