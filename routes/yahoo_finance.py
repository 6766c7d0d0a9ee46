"""Yahoo Finance proxy endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse

from routes.helpers import error_response
from services.errors import UpstreamError, ValidationError
from services.providers import yahoo

router = APIRouter()

logger = logging.getLogger(__name__)


@router.get("/api/yahoo-finance")
async def chart(symbol: str | None = Query(None)) -> JSONResponse:
    if not symbol:
        raise ValidationError("Symbol is required")
    try:
        data = await yahoo.fetch_chart(symbol)
    except UpstreamError as exc:
        logger.warning("yahoo_chart_failed symbol=%s error=%s", symbol, exc.message)
        return error_response(502, "Failed to fetch stock data", exc)
    return JSONResponse(data)


@router.get("/api/yahoo-finance/intraday")
async def intraday(
    symbol: str | None = Query(None),
    interval: str = Query("5m"),
    range_: str = Query("1d", alias="range"),
) -> JSONResponse:
    if not symbol:
        raise ValidationError("Symbol parameter is required")
    if interval not in yahoo.INTERVALS:
        raise ValidationError("Invalid interval")
    if range_ not in yahoo.RANGES:
        raise ValidationError("Invalid range")
    try:
        rows = await yahoo.fetch_intraday(symbol, interval, range_)
    except UpstreamError as exc:
        logger.warning("yahoo_intraday_failed symbol=%s error=%s", symbol, exc.message)
        return error_response(502, "Failed to fetch intraday data", exc)
    return JSONResponse(rows)


@router.get("/api/yahoo-finance/latest-price")
def latest_price(symbol: str | None = Query(None)) -> JSONResponse:
    # yfinance blocks; a plain def runs in the threadpool.
    if not symbol:
        raise ValidationError("Symbol is required")
    try:
        quote = yahoo.fetch_latest_price(symbol)
    except UpstreamError as exc:
        logger.warning("yahoo_latest_price_failed symbol=%s error=%s", symbol, exc.message)
        return error_response(502, "Failed to fetch latest price", exc)
    return JSONResponse(quote)
