import os
import sys
import tempfile
from pathlib import Path

import httpx
import pytest

_TMP = tempfile.mkdtemp(prefix="options-gateway-tests-")
os.environ.setdefault("DB_PATH", os.path.join(_TMP, "gateway.db"))
os.environ.pop("DATABASE_URL", None)
os.environ.setdefault("LTP_USERNAME", "test-user")
os.environ.setdefault("LTP_PASSWORD", "test-pass")
os.environ.setdefault("OPTIONS_GATEWAY_ENV_FILE", os.path.join(_TMP, "missing.env"))

# Ensure the project root is on the import path when running ``pytest`` directly.
ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from services import http_client


def install_mock(monkeypatch, handler) -> httpx.AsyncClient:
    """Route every ``http_client`` request through ``handler``."""

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    monkeypatch.setattr(http_client, "get_client", lambda: client)
    return client


@pytest.fixture(autouse=True)
def _disable_real_requests(monkeypatch):
    """Fail any outbound call a test did not stub explicitly."""

    def _refuse(request):
        raise httpx.ConnectError("network disabled in tests", request=request)

    install_mock(monkeypatch, _refuse)
    yield


@pytest.fixture
def no_sleep(monkeypatch):
    """Record ``asyncio.sleep`` calls made by the HTTP client instead of waiting."""

    waits = []

    async def fake_sleep(seconds):
        waits.append(seconds)

    monkeypatch.setattr(http_client, "_sleep", fake_sleep)
    return waits


@pytest.fixture
def app():
    from app import app as application
    from services.pricing import MarketSimulator
    from services.providers.ltp_calculator import LtpCalculatorClient
    from services.providers.nse import NseClient

    application.state.simulator = MarketSimulator()
    application.state.ltp_client = LtpCalculatorClient()
    application.state.nse_client = NseClient()
    return application


@pytest.fixture
def client(app):
    from fastapi.testclient import TestClient

    return TestClient(app, raise_server_exceptions=False)
