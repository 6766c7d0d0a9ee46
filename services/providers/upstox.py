"""Upstox option-analytics strategy chain provider."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

from config import settings
from services import http_client
from services.errors import InvalidResponseError
from services.option_chain import make_leg, make_row

logger = logging.getLogger(__name__)

NIFTY_ASSET_KEY = "NSE_INDEX|Nifty 50"
CHAIN_PATH = "/option-analytics-tool/open/v1/strategy-chains"
DEFAULT_SPOT = 22000.0

HEADERS = {
    "Accept": "application/json",
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/123.0.0.0 Safari/537.36"
    ),
    "Cache-Control": "no-cache",
}

# Upstox field -> normalized field
_MARKET_DATA_MAP = {
    "ltp": "ltp",
    "volume": "volume",
    "oi": "oi",
    "cp": "close_price",
    "bidPrice": "bid_price",
    "bidQty": "bid_qty",
    "askPrice": "ask_price",
    "askQty": "ask_qty",
    "prevOi": "prev_oi",
}
_GREEKS_MAP = {
    "vega": "vega",
    "theta": "theta",
    "gamma": "gamma",
    "delta": "delta",
    "iv": "iv",
    "pop": "pop",
}


def _leg(data: Any, side: str, strike: str) -> Dict[str, Any]:
    if not isinstance(data, Mapping):
        raise InvalidResponseError(f"upstox: missing {side} data for strike {strike}")
    market = data.get("marketData")
    analytics = data.get("analytics")
    if not isinstance(market, Mapping) or not isinstance(analytics, Mapping):
        raise InvalidResponseError(
            f"upstox: missing {side} marketData/analytics for strike {strike}"
        )
    market_data = {dst: market.get(src) for src, dst in _MARKET_DATA_MAP.items()}
    greeks = {dst: analytics.get(src) for src, dst in _GREEKS_MAP.items()}
    return make_leg(data.get("instrumentKey"), market_data, greeks)


def _spot_price(data: Mapping[str, Any], strike_map: Mapping[str, Any]) -> float:
    for key in ("spotPrice", "underlyingSpotPrice"):
        value = data.get(key)
        if isinstance(value, (int, float)) and value > 0:
            return float(value)
    strikes: List[float] = []
    for raw in strike_map:
        try:
            strikes.append(float(raw))
        except (TypeError, ValueError):
            continue
    if not strikes:
        return DEFAULT_SPOT
    # The feed carries no spot, the strike grid is centred around it.
    return sum(strikes) / len(strikes)


def transform_chain(payload: Any) -> List[Dict[str, Any]]:
    """Map an Upstox strategy-chain payload into normalized chain rows."""

    data = payload.get("data") if isinstance(payload, Mapping) else None
    if not isinstance(data, Mapping):
        raise InvalidResponseError("upstox: response has no data object")
    chain = data.get("strategyChainData")
    strike_map = chain.get("strikeMap") if isinstance(chain, Mapping) else None
    if not isinstance(strike_map, Mapping):
        raise InvalidResponseError("upstox: response has no strikeMap")

    expiry = data.get("expiry")
    asset_key = data.get("assetKey") or NIFTY_ASSET_KEY
    spot = _spot_price(data, strike_map)

    rows: List[Dict[str, Any]] = []
    for strike_key, strike_data in strike_map.items():
        if not isinstance(strike_data, Mapping):
            raise InvalidResponseError(f"upstox: malformed strike {strike_key}")
        try:
            strike = float(strike_key)
        except (TypeError, ValueError) as exc:
            raise InvalidResponseError(f"upstox: bad strike key {strike_key!r}") from exc
        rows.append(
            make_row(
                expiry=expiry,
                strike=strike,
                underlying_key=asset_key,
                spot=spot,
                call=_leg(strike_data.get("callOptionData"), "call", strike_key),
                put=_leg(strike_data.get("putOptionData"), "put", strike_key),
                pcr=strike_data.get("pcr"),
            )
        )
    rows.sort(key=lambda row: row["strike_price"])
    return rows


async def fetch_option_chain(
    expiry: str, asset_key: str = NIFTY_ASSET_KEY, base_url: Optional[str] = None
) -> List[Dict[str, Any]]:
    """Fetch and normalize the put/call chain for ``expiry`` (``DD-MM-YYYY``)."""

    url = (base_url or settings.upstox_base_url).rstrip("/") + CHAIN_PATH
    params = {
        "assetKey": asset_key,
        "strategyChainType": "PC_CHAIN",
        "expiry": expiry,
    }
    payload = await http_client.get_json(url, params=params, headers=HEADERS)
    rows = transform_chain(payload)
    logger.info("upstox_chain expiry=%s rows=%d", expiry, len(rows))
    return rows


__all__ = ["NIFTY_ASSET_KEY", "fetch_option_chain", "transform_chain"]
