"""
HTTP API.

    GET  /health
    GET  /api/screenshot?ticker=SYMBOL          buffered JSON result
    GET  /api/screenshot/stream?ticker=SYMBOL   server-sent events
    GET  /api/ticker/search?keywords=...
    GET  /api/gainers-losers

Run with:  python -m src.api.server
"""
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse

from src.core.config import AppConfig, load_config
from src.core.exceptions import MarketDataError
from src.core.observability.errors import ErrorTracker
from src.core.pipeline import SnapshotContext, capture_snapshot, stream_snapshot
from src.skills.alphavantage.client import AlphaVantageClient

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

router = APIRouter(prefix="/api")


def get_context(request: Request) -> SnapshotContext:
    return request.app.state.snapshot


def _missing_ticker() -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": "Ticker symbol is required. Use ?ticker=SYMBOL"})


@router.get("/screenshot")
async def screenshot(
    ticker: Optional[str] = Query(default=None),
    ctx: SnapshotContext = Depends(get_context),
):
    if not ticker or not ticker.strip():
        return _missing_ticker()

    try:
        result = await capture_snapshot(ctx, ticker)
    except Exception as e:
        print(f"[API] Error taking screenshots: {e}")
        if ctx.error_tracker is not None:
            ctx.error_tracker.record_error(
                error=e,
                component="capture_snapshot",
                context={"ticker": ticker.strip().upper(), "mode": "buffered"},
                failure_point=getattr(e, "failure_point", None),
            )
        return JSONResponse(
            status_code=500,
            content={
                "error": "Failed to take screenshots",
                "message": str(e) or "An error occurred while taking the screenshots",
            },
        )

    return result.to_wire()


@router.post("/screenshot")
async def screenshot_post():
    return JSONResponse(
        status_code=501,
        content={
            "error": "POST endpoint not implemented",
            "message": "Please use GET /api/screenshot?ticker=SYMBOL for stock screenshots",
        },
    )


@router.get("/screenshot/stream")
async def screenshot_stream(
    ticker: Optional[str] = Query(default=None),
    ctx: SnapshotContext = Depends(get_context),
):
    return StreamingResponse(
        stream_snapshot(ctx, ticker),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.get("/ticker/search")
async def ticker_search(
    keywords: Optional[str] = Query(default=None),
    ctx: SnapshotContext = Depends(get_context),
):
    if not keywords or not keywords.strip():
        return JSONResponse(status_code=400, content={"error": "Keywords are required. Use ?keywords=SYMBOL"})

    keywords = keywords.strip()
    print(f"[API] Searching for ticker: {keywords}")
    try:
        matches = await ctx.market_data.search_symbols(keywords)
    except MarketDataError as e:
        print(f"[API] Error searching for ticker: {e}")
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "Failed to search for ticker", "message": str(e)},
        )

    print(f"[API] Found {len(matches)} US stock(s) for '{keywords}'")
    return {
        "success": True,
        "keywords": keywords,
        "count": len(matches),
        "results": [m.model_dump(by_alias=True) for m in matches],
    }


@router.get("/gainers-losers")
async def gainers_losers(ctx: SnapshotContext = Depends(get_context)):
    try:
        movers = await ctx.market_data.fetch_top_movers()
    except MarketDataError as e:
        print(f"[API] Error fetching gainers and losers: {e}")
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "Failed to fetch gainers and losers", "message": str(e)},
        )

    print(
        f"[API] Fetched {len(movers.top_gainers)} gainers, {len(movers.top_losers)} losers, "
        f"{len(movers.most_actively_traded)} most active"
    )
    return {"success": True, "data": movers.model_dump()}


def create_app(config: Optional[AppConfig] = None, ctx: Optional[SnapshotContext] = None) -> FastAPI:
    """Build the app. Tests pass a ready SnapshotContext with fakes in it."""
    if ctx is None:
        config = config or load_config()
        ctx = SnapshotContext(
            config=config,
            market_data=AlphaVantageClient(config.alpha_vantage),
            error_tracker=ErrorTracker(config.errors_dir),
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if not ctx.config.alpha_vantage.is_configured:
            print("[API] ALPHA_VANTAGE_API_KEY not set, using the 'demo' key")
        yield
        if ctx.market_data is not None:
            await ctx.market_data.aclose()

    app = FastAPI(title="Ticker Snapshot API", lifespan=lifespan)
    app.state.snapshot = ctx
    app.add_middleware(
        CORSMiddleware,
        allow_origins=ctx.config.server.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health():
        return {"status": "ok", "message": "Server is running"}

    app.include_router(router)
    return app


def main() -> None:
    import uvicorn

    config = load_config()
    print(f"[API] Server running on http://localhost:{config.server.port}")
    print(f"[API] Screenshot API available at http://localhost:{config.server.port}/api/screenshot")
    uvicorn.run(create_app(config), host=config.server.host, port=config.server.port)


if __name__ == "__main__":
    main()
