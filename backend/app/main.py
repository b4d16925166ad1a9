"""Main application entry point."""

import asyncio
import logging
from contextlib import asynccontextmanager

# Configure logging FIRST, before any other imports
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
)

# Reduce noise from third-party libraries (must be set before importing them)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("asyncio").setLevel(logging.WARNING)
logging.getLogger("picows").setLevel(logging.WARNING)

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

# uvloop is used by uvicorn when available (Unix only)
try:
    import uvloop  # noqa: F401
    _UVLOOP_ENABLED = True
except ImportError:
    _UVLOOP_ENABLED = False

from app.api import router, websocket_endpoint
from app.config import Settings, get_settings
from app.models import PairKey
from app.services import MarketDataService
from core.errors import InvalidSymbolError

logger = logging.getLogger(__name__)


def parse_pair_entry(entry: str) -> PairKey:
    """Parse ``"BTCUSDT:1m"`` into a pair key."""
    symbol, _, interval = entry.partition(":")
    return PairKey.of(symbol, interval or "1m")


async def autostart_feeds(service: MarketDataService, entries: list[str]) -> None:
    """Warm the cache and start the feed for each configured pair.

    A failed history fetch still starts the feed; the cache then fills
    from live bars.
    """
    for entry in entries:
        try:
            pair = parse_pair_entry(entry)
        except InvalidSymbolError as e:
            logger.error(f"Skipping autostart pair {entry!r}: {e.message}")
            continue

        try:
            await service.load_history(pair, service.settings.max_seed_candles)
        except Exception as e:
            logger.warning(f"History warm-up failed for {pair}: {e}")
            await service.start_feed(pair)
        logger.info(f"Autostarted feed {pair}")


def create_app(
    service: MarketDataService | None = None,
    settings: Settings | None = None,
    autostart: bool = True,
) -> FastAPI:
    """Build the FastAPI app around a market data service."""
    settings = settings or get_settings()
    logging.getLogger().setLevel(settings.log_level.upper())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        service = app.state.market_data
        logger.info("Starting market data relay...")
        logger.info(f"Event loop: {'uvloop' if _UVLOOP_ENABLED else 'asyncio'}")

        startup_task = None
        if autostart and settings.autostart_pairs:
            startup_task = asyncio.create_task(autostart_feeds(service, settings.autostart_pairs))

        yield

        logger.info("Shutting down...")
        if startup_task and not startup_task.done():
            startup_task.cancel()
            try:
                await startup_task
            except asyncio.CancelledError:
                pass
        await service.shutdown()
        logger.info("Shutdown complete")

    # Create FastAPI app with orjson for faster JSON serialization
    app = FastAPI(
        title="Market Data Relay",
        description="Live klines, indicators and signals for crypto pairs",
        version="0.1.0",
        lifespan=lifespan,
        default_response_class=ORJSONResponse,
    )
    app.state.market_data = service or MarketDataService(settings)

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include REST routes
    app.include_router(router)

    # WebSocket endpoint
    app.websocket("/ws")(websocket_endpoint)

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "name": "Market Data Relay",
            "version": "0.1.0",
            "docs": "/docs",
            "event_loop": "uvloop" if _UVLOOP_ENABLED else "asyncio",
        }

    return app


app = create_app()


def main():
    """Run the application."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        loop="uvloop" if _UVLOOP_ENABLED else "asyncio",
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
