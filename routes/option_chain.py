"""Option chain endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from config import settings
from routes.helpers import error_response, get_nse_client, get_simulator
from services.errors import UpstreamError, ValidationError
from services.expiry import nifty_expiry, parse_expiry
from services.option_chain import simulate_chain
from services.pricing import MarketSimulator
from services.providers import upstox
from services.providers.nse import NseClient

router = APIRouter()

logger = logging.getLogger(__name__)


@router.get("/api/option-chain")
async def option_chain(
    instrument_key: str | None = Query(None),
    expiry_date: str | None = Query(None),
    simulator: MarketSimulator = Depends(get_simulator),
) -> JSONResponse:
    """Return the normalized NIFTY option chain for the expiry covering ``expiry_date``."""

    if not instrument_key or not expiry_date:
        raise ValidationError("Missing required parameters")
    if "nifty" not in instrument_key.lower():
        return error_response(
            400,
            "Only NIFTY option chain is supported with real-time data",
            status="error",
        )

    expiry = nifty_expiry(expiry_date)
    try:
        rows = await upstox.fetch_option_chain(expiry)
    except UpstreamError as exc:
        logger.warning(
            "option_chain_upstream_failed expiry=%s status=%s error=%s",
            expiry,
            exc.status,
            exc.message,
        )
        if settings.option_chain_simulate_on_failure:
            rows = simulate_chain(simulator, instrument_key, expiry)
            return JSONResponse({"status": "success", "data": rows, "simulated": True})
        return error_response(
            503,
            "Failed to fetch real-time option chain data",
            exc,
            status="error",
        )
    except Exception as exc:
        logger.exception("option_chain_failed instrument=%s", instrument_key)
        return error_response(
            500,
            "Failed to fetch option chain data",
            debug={"message": str(exc)},
            status="error",
        )
    return JSONResponse({"status": "success", "data": rows})


@router.get("/api/nse/option-chain")
async def nse_option_chain(
    symbol: str | None = Query(None),
    expiry: str | None = Query(None),
    client: NseClient = Depends(get_nse_client),
) -> JSONResponse:
    """Option chain straight from the exchange website, optionally for one expiry."""

    if not symbol:
        raise ValidationError("Symbol is required")
    if expiry and not parse_expiry(expiry).ok:
        raise ValidationError("Invalid expiry")
    try:
        rows = await client.fetch_option_chain(symbol.upper(), expiry)
    except UpstreamError as exc:
        logger.warning("nse_option_chain_failed symbol=%s error=%s", symbol, exc.message)
        return error_response(
            502, "Failed to fetch option chain data", exc, status="error"
        )
    return JSONResponse({"status": "success", "data": rows})
