"""Shared pieces for route modules: app-owned state accessors and error bodies."""

from __future__ import annotations

from typing import Any, Optional

from fastapi import Request
from fastapi.responses import JSONResponse

from config import settings
from services.errors import GatewayError
from services.pricing import MarketSimulator
from services.providers.ltp_calculator import LtpCalculatorClient
from services.providers.nse import NseClient


def get_simulator(request: Request) -> MarketSimulator:
    return request.app.state.simulator


def get_ltp_client(request: Request) -> LtpCalculatorClient:
    return request.app.state.ltp_client


def get_nse_client(request: Request) -> NseClient:
    return request.app.state.nse_client


def error_response(
    status_code: int,
    message: str,
    exc: Optional[GatewayError] = None,
    *,
    debug: Optional[dict] = None,
    headers: Optional[dict] = None,
    **extra: Any,
) -> JSONResponse:
    """Build ``{"error": message, ...}``.

    Upstream diagnostics from ``exc`` and the ``debug`` mapping are only
    included when ``EXPOSE_ERROR_DETAILS`` is enabled.
    """

    payload: dict = {"error": message}
    if settings.expose_error_details:
        if exc is not None:
            payload.update({k: v for k, v in exc.diagnostics().items() if v is not None})
        if debug:
            payload.update({k: v for k, v in debug.items() if v is not None})
    payload.update(extra)
    return JSONResponse(payload, status_code=status_code, headers=headers)
