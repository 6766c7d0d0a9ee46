import asyncio

import httpx
import pytest

from conftest import install_mock
from services.errors import InvalidResponseError, UpstreamError
from services.providers import upstox


def _side(key, ltp):
    return {
        "instrumentKey": key,
        "marketData": {
            "ltp": ltp,
            "volume": 1200,
            "oi": 5000,
            "cp": ltp - 1,
            "bidPrice": ltp - 0.5,
            "bidQty": 75,
            "askPrice": ltp + 0.5,
            "askQty": 150,
            "prevOi": 4800,
        },
        "analytics": {
            "vega": 12.1,
            "theta": -8.4,
            "gamma": 0.001,
            "delta": 0.52,
            "iv": 13.2,
            "pop": 48.0,
        },
    }


def _payload(**extra):
    data = {
        "expiry": "27-06-2024",
        "assetKey": "NSE_INDEX|Nifty 50",
        "strategyChainData": {
            "strikeMap": {
                "22100": {
                    "callOptionData": _side("NSE_FO|2", 80.0),
                    "putOptionData": _side("NSE_FO|3", 120.0),
                    "pcr": 1.4,
                },
                "22000": {
                    "callOptionData": _side("NSE_FO|0", 130.0),
                    "putOptionData": _side("NSE_FO|1", 70.0),
                },
            }
        },
    }
    data.update(extra)
    return {"status": "success", "data": data}


def test_transform_maps_fields_and_sorts_by_strike():
    rows = upstox.transform_chain(_payload(spotPrice=22041.5))
    assert [row["strike_price"] for row in rows] == [22000.0, 22100.0]
    first = rows[0]
    assert first["expiry"] == "27-06-2024"
    assert first["underlying_key"] == "NSE_INDEX|Nifty 50"
    assert first["underlying_spot_price"] == 22041.5
    assert first["pcr"] == 1.0
    call = first["call_options"]
    assert call["instrument_key"] == "NSE_FO|0"
    assert call["market_data"]["close_price"] == 129.0
    assert call["market_data"]["prev_oi"] == 4800
    assert call["option_greeks"]["delta"] == 0.52
    assert rows[1]["pcr"] == 1.4


def test_transform_derives_spot_from_strikes_when_missing():
    rows = upstox.transform_chain(_payload())
    assert rows[0]["underlying_spot_price"] == pytest.approx(22050.0)


@pytest.mark.parametrize(
    "payload",
    [
        {},
        {"data": {}},
        {"data": {"strategyChainData": {"strikeMap": {"22000": {"callOptionData": {}}}}}},
        {"data": {"strategyChainData": {"strikeMap": {"abc": {}}}}},
    ],
)
def test_transform_rejects_malformed_payloads(payload):
    with pytest.raises(InvalidResponseError):
        upstox.transform_chain(payload)


def test_fetch_sends_expected_query(monkeypatch):
    seen = {}

    def handler(request):
        seen["url"] = request.url
        return httpx.Response(200, json=_payload(spotPrice=22000))

    install_mock(monkeypatch, handler)
    rows = asyncio.run(upstox.fetch_option_chain("27-06-2024", base_url="https://upstox.test"))
    assert len(rows) == 2
    url = seen["url"]
    assert url.path == upstox.CHAIN_PATH
    assert url.params["assetKey"] == "NSE_INDEX|Nifty 50"
    assert url.params["strategyChainType"] == "PC_CHAIN"
    assert url.params["expiry"] == "27-06-2024"


def test_fetch_propagates_upstream_failure(monkeypatch):
    install_mock(monkeypatch, lambda request: httpx.Response(503, text="down"))
    with pytest.raises(UpstreamError) as info:
        asyncio.run(upstox.fetch_option_chain("27-06-2024", base_url="https://upstox.test"))
    assert info.value.status == 503
