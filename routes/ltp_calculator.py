"""Support/resistance summary from the LTP Calculator vendor."""

from __future__ import annotations

import logging
import math

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from routes.helpers import error_response, get_ltp_client
from services.errors import (
    InvalidResponseError,
    RateLimitError,
    UpstreamError,
    ValidationError,
)
from services.providers.ltp_calculator import LtpCalculatorClient, symbol_config

router = APIRouter()

logger = logging.getLogger(__name__)


@router.get("/api/ltp-calculator")
async def ltp_calculator(
    symbol: str | None = Query(None),
    expiry: str | None = Query(None),
    expiry_date: str | None = Query(None, alias="expiryDate"),
    lot_size: str | None = Query(None, alias="lotSize"),
    client: LtpCalculatorClient = Depends(get_ltp_client),
) -> JSONResponse:
    if not symbol:
        raise ValidationError("Symbol is required")

    mapped = symbol_config(symbol).upstream_symbol
    try:
        summary = await client.fetch_summary(
            symbol, expiry=expiry, expiry_date=expiry_date, lot_size=lot_size
        )
    except RateLimitError as exc:
        return error_response(
            429,
            exc.message,
            headers={"Retry-After": str(max(1, math.ceil(exc.retry_after)))},
        )
    except InvalidResponseError as exc:
        logger.warning("ltp_invalid_response symbol=%s error=%s", symbol, exc.message)
        return error_response(502, exc.message, symbol=symbol)
    except UpstreamError as exc:
        message = "Failed to fetch data from LTP Calculator API"
        if exc.retried:
            message += " after retry"
        logger.warning(
            "ltp_upstream_failed symbol=%s status=%s url=%s", symbol, exc.status, exc.url
        )
        return error_response(
            502, message, exc, debug={"mappedSymbol": mapped}, symbol=symbol
        )
    except Exception as exc:
        logger.exception("ltp_unexpected_error symbol=%s", symbol)
        return error_response(
            500,
            "Unexpected error in LTP Calculator API route",
            debug={"message": str(exc)},
            symbol=symbol,
        )
    return JSONResponse(summary)
