import logging

from fastapi import APIRouter, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from config import settings
from utils import market_is_open, now_ist

from .ltp_calculator import router as ltp_router
from .option_chain import router as option_chain_router
from .trades import router as trades_router
from .yahoo_finance import router as yahoo_router

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/api/market-status")
def market_status() -> JSONResponse:
    now = now_ist()
    return JSONResponse({"open": market_is_open(now), "time": now.isoformat()})


@router.get("/metrics")
def metrics() -> Response:
    if not settings.metrics_enabled:
        return JSONResponse({"error": "Not found"}, status_code=404)
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


router.include_router(option_chain_router)
router.include_router(ltp_router)
router.include_router(yahoo_router)
router.include_router(trades_router)

__all__ = ["router"]
