from datetime import date
from typing import Dict, Iterable, List, Optional, Tuple

from src.core.schemas import AggregateResult, MarketDataBundle
from src.skills.alphavantage.schemas import NewsSentiment, TimeSeries

# Alpha Vantage sentiment score bands
BULLISH_THRESHOLD = 0.35
SOMEWHAT_BULLISH_THRESHOLD = 0.15


def _fmt_pct(x) -> str:
    """Format a percentage value with proper sign."""
    if x is None:
        return "n/a"
    try:
        val = float(x)
    except (TypeError, ValueError):
        return "n/a"
    sign = "+" if val >= 0 else ""
    return f"{sign}{val:.2f}%"


def _fmt_number(x, decimals: int = 2) -> str:
    """Format a number with commas for thousands."""
    if x is None:
        return "n/a"
    try:
        val = float(x)
        return f"{val:,.{decimals}f}".rstrip('0').rstrip('.')
    except (TypeError, ValueError):
        return "n/a"


def _daily_change_pct(series: TimeSeries) -> Optional[float]:
    """Close-to-close change between the two most recent bars."""
    days = sorted(series.bars, reverse=True)
    if len(days) < 2:
        return None
    try:
        latest = float(series.bars[days[0]].close)
        previous = float(series.bars[days[1]].close)
    except ValueError:
        return None
    if previous == 0:
        return None
    return (latest - previous) / previous * 100


def _determine_sentiment(news: NewsSentiment) -> Tuple[str, str]:
    """Bullish/bearish label from the average overall sentiment of the headlines."""
    scores = [item.overall_sentiment_score for item in news.feed if item.overall_sentiment_score is not None]
    if not scores:
        return "Neutral", "no scored headlines"

    avg = sum(scores) / len(scores)
    if avg >= BULLISH_THRESHOLD:
        label = "Bullish"
    elif avg >= SOMEWHAT_BULLISH_THRESHOLD:
        label = "Somewhat Bullish"
    elif avg <= -BULLISH_THRESHOLD:
        label = "Bearish"
    elif avg <= -SOMEWHAT_BULLISH_THRESHOLD:
        label = "Somewhat Bearish"
    else:
        label = "Neutral"
    return label, f"average score {avg:+.3f} across {len(scores)} headline(s)"


def _market_data_lines(market_data: Optional[MarketDataBundle], max_headlines: int) -> List[str]:
    lines: List[str] = []
    if market_data is None:
        return lines

    trading = market_data.trading
    if trading is not None:
        lines.append("**Statistics:**")
        latest = trading.data.latest() if trading.success else None
        if latest:
            day, bar = latest
            change = _daily_change_pct(trading.data)
            lines.append(f"- Close ({day}): **{_fmt_number(bar.close)}** ({_fmt_pct(change)})")
            lines.append(f"- Day Range: {_fmt_number(bar.low)} - {_fmt_number(bar.high)}")
            lines.append(f"- Open: {_fmt_number(bar.open)}")
            lines.append(f"- Volume: {_fmt_number(bar.volume, decimals=0)}")
            if bar.vwap:
                lines.append(f"- VWAP (typical price): {_fmt_number(bar.vwap, decimals=4)}")
        else:
            lines.append(f"- Trading data unavailable: {trading.error or 'no bars returned'}")
        lines.append("")

    news = market_data.news
    if news is not None:
        if news.success:
            label, summary = _determine_sentiment(news.data)
            lines.append(f"{label}: {summary}")
            headlines = news.data.feed[:max_headlines]
            if headlines:
                lines.append("")
                lines.append("**Headlines:**")
                for item in headlines:
                    source = f" ({item.source})" if item.source else ""
                    sentiment = f" [{item.overall_sentiment_label}]" if item.overall_sentiment_label else ""
                    lines.append(f"- [{item.title.strip()}]({item.url}){source}{sentiment}")
        else:
            lines.append(f"News unavailable: {news.error}")
        lines.append("")

    return lines


def format_ticker_block(
    result: AggregateResult,
    image_paths: Optional[Dict[str, str]] = None,
    max_headlines: int = 5,
) -> str:
    """Format one ticker block: capture table, latest bar and news headlines."""
    image_paths = image_paths or {}
    lines: List[str] = []

    status = "all captures succeeded" if result.success else "some captures failed"
    lines.append(f"### {result.ticker.upper()}")
    lines.append("")
    lines.append(f"_{status}, captured at {result.timestamp}_")
    lines.append("")

    lines.append("| Capture | Result | Detail |")
    lines.append("| --- | --- | --- |")
    for shot in result.screenshots:
        if shot.success:
            path = image_paths.get(shot.label)
            detail = f"[{path}]({path})" if path else (shot.selector or "")
            lines.append(f"| {shot.label} | ok | {detail} |")
        else:
            error = (shot.error or "").replace("|", "/")
            lines.append(f"| {shot.label} | failed | {error} |")
    lines.append("")

    lines.extend(_market_data_lines(result.market_data, max_headlines))

    return "\n".join(lines).strip()


def build_snapshot_report(
    as_of: date,
    items: Iterable[Tuple[AggregateResult, Optional[Dict[str, str]]]],
) -> str:
    """Build the Ticker Snapshot report in Markdown."""
    lines: List[str] = []

    lines.append(f"# Ticker Snapshot: {as_of.isoformat()}")
    lines.append("")
    lines.append("_Auto-generated from Finviz, TradingView and Alpha Vantage_")
    lines.append("")

    first = True
    for result, image_paths in items:
        if not first:
            lines.append("")
            lines.append("---")
            lines.append("")
        first = False
        lines.append(format_ticker_block(result, image_paths))

    lines.append("")
    return "\n".join(lines)
