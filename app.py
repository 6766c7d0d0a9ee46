import contextvars
import json
import logging
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

import db
from config import settings
from routes import router
from services import http_client
from services.errors import (
    GatewayError,
    InternalError,
    RateLimitError,
    UpstreamError,
    ValidationError,
)
from services.pricing import MarketSimulator
from services.providers.ltp_calculator import LtpCalculatorClient
from services.providers.nse import NseClient

_REQUEST_ID: contextvars.ContextVar[str] = contextvars.ContextVar("request_id", default="")


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        data = {
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        request_id = getattr(record, "request_id", None)
        if request_id:
            data["request_id"] = request_id
        if record.exc_info:
            data["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(data)


def _add_request_id(record: logging.LogRecord) -> bool:
    setattr(record, "request_id", _REQUEST_ID.get())
    return True


handler = logging.StreamHandler()
handler.setFormatter(JsonFormatter())
handler.addFilter(_add_request_id)
logging.basicConfig(level=logging.INFO, handlers=[handler])
logger = logging.getLogger(__name__)

_STATUS_BY_ERROR = (
    (ValidationError, 400),
    (RateLimitError, 429),
    (UpstreamError, 502),
    (InternalError, 500),
)


def _status_for(exc: GatewayError) -> int:
    for cls, status in _STATUS_BY_ERROR:
        if isinstance(exc, cls):
            return status
    return 500


def create_app() -> FastAPI:
    if settings.run_migrations:
        logger.info("Initializing database")
        db.init_db()
    else:
        logger.info("Skipping database initialization")

    app = FastAPI(title="Options Gateway")
    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts="*")  # type: ignore[arg-type]

    # Process-wide state lives on the app so tests can swap it out.
    app.state.simulator = MarketSimulator()
    app.state.ltp_client = LtpCalculatorClient()
    app.state.nse_client = NseClient()

    @app.middleware("http")
    async def _request_id(request: Request, call_next):
        token = _REQUEST_ID.set(request.headers.get("x-request-id") or uuid4().hex[:12])
        try:
            response = await call_next(request)
        finally:
            _REQUEST_ID.reset(token)
        return response

    @app.exception_handler(GatewayError)
    async def _gateway_error(request: Request, exc: GatewayError):
        status = _status_for(exc)
        logger.warning(
            "gateway_error path=%s status=%s error=%s", request.url.path, status, exc.message
        )
        return JSONResponse(
            exc.to_payload(debug=settings.expose_error_details), status_code=status
        )

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception):
        logger.exception("unhandled_error path=%s", request.url.path)
        wrapped = InternalError("Internal server error", cause=exc)
        return JSONResponse(
            wrapped.to_payload(debug=settings.expose_error_details), status_code=500
        )

    app.include_router(router)

    @app.on_event("shutdown")
    async def _shutdown():
        await http_client.aclose()
        await app.state.nse_client.aclose()

    return app


app = create_app()
