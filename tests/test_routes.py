import httpx

from config import settings
from conftest import install_mock
from services.providers import yahoo

UPSTOX_PAYLOAD = {
    "data": {
        "expiry": "13-06-2024",
        "spotPrice": 22010.0,
        "strategyChainData": {
            "strikeMap": {
                "22000": {
                    "callOptionData": {
                        "instrumentKey": "NSE_FO|1",
                        "marketData": {"ltp": 100.0},
                        "analytics": {"delta": 0.5},
                    },
                    "putOptionData": {
                        "instrumentKey": "NSE_FO|2",
                        "marketData": {"ltp": 90.0},
                        "analytics": {"delta": -0.5},
                    },
                    "pcr": 1.2,
                }
            }
        },
    }
}

LTP_MODEL = {
    "symbolMarketDirection": {
        "marketDirection": "BEARISH",
        "reversalModel": {"riskyResistance": 22300, "scenario": "TREND"},
    }
}


def test_option_chain_requires_parameters(client):
    resp = client.get("/api/option-chain", params={"instrument_key": "NSE_INDEX|Nifty 50"})
    assert resp.status_code == 400
    assert resp.json() == {"error": "Missing required parameters"}


def test_option_chain_rejects_non_nifty(client):
    resp = client.get(
        "/api/option-chain",
        params={"instrument_key": "NSE_INDEX|Bank", "expiry_date": "2024-06-10"},
    )
    assert resp.status_code == 400
    assert resp.json()["status"] == "error"


def test_option_chain_success(client, monkeypatch):
    seen = []

    def handler(request):
        seen.append(request.url)
        return httpx.Response(200, json=UPSTOX_PAYLOAD)

    install_mock(monkeypatch, handler)
    resp = client.get(
        "/api/option-chain",
        params={"instrument_key": "NSE_INDEX|Nifty 50", "expiry_date": "2024-06-10"},
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "success"
    assert body["data"][0]["strike_price"] == 22000.0
    assert seen[0].params["expiry"] == "13-06-2024"


def test_option_chain_upstream_failure_is_503(client, monkeypatch):
    install_mock(monkeypatch, lambda request: httpx.Response(500, text="oops"))
    resp = client.get(
        "/api/option-chain",
        params={"instrument_key": "NSE_INDEX|Nifty 50", "expiry_date": "2024-06-10"},
    )
    assert resp.status_code == 503
    body = resp.json()
    assert body == {"error": "Failed to fetch real-time option chain data", "status": "error"}


def test_option_chain_can_fall_back_to_simulation(client, monkeypatch):
    monkeypatch.setattr(settings, "option_chain_simulate_on_failure", True)
    install_mock(monkeypatch, lambda request: httpx.Response(500))
    resp = client.get(
        "/api/option-chain",
        params={"instrument_key": "NSE_INDEX|Nifty 50", "expiry_date": "2024-06-10"},
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["simulated"] is True
    assert len(body["data"]) == 11
    assert body["data"][5]["underlying_spot_price"] == 22000


def test_ltp_requires_symbol(client):
    resp = client.get("/api/ltp-calculator")
    assert resp.status_code == 400
    assert resp.json() == {"error": "Symbol is required"}


def test_ltp_success_then_rate_limited(client, monkeypatch):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json=LTP_MODEL)

    install_mock(monkeypatch, handler)
    params = {"symbol": "NIFTY", "expiry": "20-06-2024"}
    first = client.get("/api/ltp-calculator", params=params)
    assert first.status_code == 200
    assert first.json()["direction"] == "BEARISH"
    assert first.json()["riskySupport"] is None

    second = client.get("/api/ltp-calculator", params=params)
    assert second.status_code == 429
    assert second.json() == {"error": "Too many requests. Please wait before trying again."}
    assert int(second.headers["Retry-After"]) >= 1
    assert len(calls) == 1


def test_ltp_upstream_429_after_retry_is_502(client, monkeypatch, no_sleep):
    install_mock(monkeypatch, lambda request: httpx.Response(429, text="limited"))
    resp = client.get("/api/ltp-calculator", params={"symbol": "NIFTY", "expiry": "20-06-2024"})
    assert resp.status_code == 502
    assert resp.json() == {
        "error": "Failed to fetch data from LTP Calculator API after retry",
        "symbol": "NIFTY",
    }
    assert no_sleep == [5.0]


def test_ltp_error_details_only_when_enabled(client, monkeypatch):
    monkeypatch.setattr(settings, "expose_error_details", True)
    install_mock(monkeypatch, lambda request: httpx.Response(500, text="vendor broke"))
    resp = client.get("/api/ltp-calculator", params={"symbol": "NIFTY", "expiry": "20-06-2024"})
    assert resp.status_code == 502
    body = resp.json()
    assert body["status"] == 500
    assert body["details"] == "vendor broke"
    assert body["mappedSymbol"] == "NIFTY"
    assert "fetch-data" in body["url"]


def test_ltp_invalid_payload_is_502(client, monkeypatch):
    install_mock(monkeypatch, lambda request: httpx.Response(200, json={}))
    resp = client.get("/api/ltp-calculator", params={"symbol": "BANKNIFTY", "expiry": "26-06-2024"})
    assert resp.status_code == 502
    assert resp.json()["symbol"] == "BANKNIFTY"
    assert "missing symbolMarketDirection" in resp.json()["error"]


def test_intraday_validates_enums(client):
    assert client.get("/api/yahoo-finance/intraday").status_code == 400
    bad_interval = client.get(
        "/api/yahoo-finance/intraday", params={"symbol": "AAPL", "interval": "7m"}
    )
    assert bad_interval.json() == {"error": "Invalid interval"}
    bad_range = client.get(
        "/api/yahoo-finance/intraday", params={"symbol": "AAPL", "range": "2d"}
    )
    assert bad_range.json() == {"error": "Invalid range"}


def test_yahoo_chart_failure_is_502(client):
    resp = client.get("/api/yahoo-finance", params={"symbol": "AAPL"})
    assert resp.status_code == 502
    assert resp.json() == {"error": "Failed to fetch stock data"}


class _Ticker:
    fast_info = {"lastPrice": 187.5}


def test_latest_price_route(client, monkeypatch):
    monkeypatch.setattr(yahoo, "_ticker", lambda symbol: _Ticker())
    resp = client.get("/api/yahoo-finance/latest-price", params={"symbol": "AAPL"})
    assert resp.status_code == 200
    assert resp.json()["price"] == 187.5


def test_unhandled_errors_become_generic_500(client, monkeypatch):
    def boom(symbol, now=None):
        raise RuntimeError("secret detail")

    monkeypatch.setattr(yahoo, "fetch_latest_price", boom)
    resp = client.get("/api/yahoo-finance/latest-price", params={"symbol": "AAPL"})
    assert resp.status_code == 500
    assert resp.json() == {"error": "Internal server error"}


def test_market_status(client):
    body = client.get("/api/market-status").json()
    assert set(body) == {"open", "time"}
    assert isinstance(body["open"], bool)


def test_metrics_endpoint(client, monkeypatch):
    assert client.get("/metrics").status_code == 404
    monkeypatch.setattr(settings, "metrics_enabled", True)
    resp = client.get("/metrics")
    assert resp.status_code == 200
    assert "upstream_request_duration_seconds" in resp.text


def test_nse_option_chain_route(client, app):
    from services.providers.nse import NseClient

    def handler(request):
        if request.url.path == "/":
            return httpx.Response(200)
        return httpx.Response(
            200,
            json={
                "records": {
                    "underlyingValue": 22000,
                    "data": [{"strikePrice": 22000, "expiryDate": "27-Jun-2024"}],
                }
            },
        )

    app.state.nse_client = NseClient(
        base_url="https://nse.test",
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    resp = client.get("/api/nse/option-chain", params={"symbol": "nifty"})
    assert resp.status_code == 200
    rows = resp.json()["data"]
    assert rows[0]["underlying_key"] == "NIFTY"
    assert rows[0]["expiry"] == "27-06-2024"

    assert client.get("/api/nse/option-chain").status_code == 400


def test_nse_option_chain_rejects_unparseable_expiry(client):
    resp = client.get("/api/nse/option-chain", params={"symbol": "NIFTY", "expiry": "garbage"})
    assert resp.status_code == 400
    assert resp.json() == {"error": "Invalid expiry"}


def test_ltp_failure_after_rate_limit_retry_keeps_suffix(
    client, monkeypatch, no_sleep
):
    responses = iter([httpx.Response(429), httpx.Response(500, text="down")])
    install_mock(monkeypatch, lambda request: next(responses))
    resp = client.get("/api/ltp-calculator", params={"symbol": "NIFTY", "expiry": "20-06-2024"})
    assert resp.status_code == 502
    assert resp.json()["error"] == "Failed to fetch data from LTP Calculator API after retry"
    assert no_sleep == [5.0]
