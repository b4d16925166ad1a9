"""REST API routes."""

import logging
from typing import Any, Optional

import httpx
import orjson
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import ORJSONResponse
from pydantic import BaseModel, ValidationError

from app.models import PairKey
from app.services import MarketDataService
from backtest import BacktestConfig
from core.errors import InsufficientDataError, InvalidInputError, UpstreamError

logger = logging.getLogger(__name__)

router = APIRouter()


# Response models
class HealthResponse(BaseModel):
    """Service health."""

    ok: bool
    uptime: float
    connections: int
    feeds: dict[str, dict[str, Any]]


class HistoryResponse(BaseModel):
    """Recent bars for one pair."""

    ok: bool
    symbol: str
    interval: str
    data: list[dict[str, Any]]


def get_market_data(request: Request) -> MarketDataService:
    return request.app.state.market_data


def error_response(status_code: int, code: str, message: Optional[str] = None) -> ORJSONResponse:
    content = {"error": code}
    if message:
        content["message"] = message
    return ORJSONResponse(status_code=status_code, content=content)


@router.get("/health", response_model=HealthResponse)
async def get_health(service: MarketDataService = Depends(get_market_data)):
    """Get service health."""
    return HealthResponse(ok=True, **service.status())


@router.get("/history", response_model=HistoryResponse)
async def get_history(
    symbol: str = Query("BTCUSDT"),
    interval: str = Query("1m"),
    limit: int = Query(500, ge=1),
    service: MarketDataService = Depends(get_market_data),
):
    """Get recent bars, from cache when warm, otherwise from the exchange."""
    try:
        pair = PairKey.of(symbol, interval)
    except InvalidInputError as e:
        return error_response(400, e.code, e.message)

    try:
        bars = await service.load_history(pair, limit)
    except InsufficientDataError as e:
        return error_response(404, e.code, e.message)
    except (UpstreamError, InvalidInputError, httpx.HTTPError) as e:
        logger.error(f"History fetch failed for {pair}: {e}")
        return error_response(502, UpstreamError.code, str(e))

    return HistoryResponse(
        ok=True,
        symbol=pair.symbol,
        interval=pair.interval,
        data=[bar.to_wire() for bar in bars],
    )


@router.get("/indicators")
async def get_indicators(
    symbol: str = Query("BTCUSDT"),
    interval: str = Query("1m"),
    service: MarketDataService = Depends(get_market_data),
):
    """Get the latest indicator snapshot for a pair."""
    try:
        pair = PairKey.of(symbol, interval)
    except InvalidInputError as e:
        return error_response(400, e.code, e.message)

    snapshot = service.latest_indicators(pair)
    if snapshot is None:
        return error_response(404, "not_found", f"No indicators for {pair}")
    return {"symbol": pair.symbol, "interval": pair.interval, **snapshot.to_wire()}


@router.post(
    "/backtest",
    openapi_extra={
        "requestBody": {
            "content": {"application/json": {"schema": BacktestConfig.model_json_schema()}},
        },
    },
)
async def post_backtest(
    request: Request,
    service: MarketDataService = Depends(get_market_data),
):
    """Run a backtest on recent bars.

    A body that is not a valid config is a 400 ``invalid_message``.
    """
    raw = await request.body()
    try:
        config = BacktestConfig.model_validate(orjson.loads(raw) if raw else {})
    except (orjson.JSONDecodeError, ValidationError) as e:
        return error_response(400, InvalidInputError.code, str(e))

    try:
        result = await service.run_backtest(config)
    except InsufficientDataError as e:
        return error_response(400, e.code, e.message)
    except Exception as e:
        logger.error(f"Backtest failed for {config.symbol} {config.interval}: {e}", exc_info=True)
        return error_response(500, "backtest_failed", str(e))

    return result.to_dict()
