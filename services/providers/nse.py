"""NSE India option chain via the exchange website's JSON endpoint.

The endpoint only answers browsers that already hold the session cookies
set by the home page, so the client primes its cookie jar first and
refreshes it once when a fetch fails.
"""
from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, List, Mapping, Optional, Tuple

import httpx

from config import settings
from services.errors import InvalidResponseError, UpstreamError
from services.expiry import parse_expiry
from services.option_chain import make_leg, make_row

logger = logging.getLogger(__name__)

CHAIN_PATH = "/api/option-chain-indices"

BROWSER_HEADERS = {
    "accept": (
        "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,"
        "image/webp,image/apng,*/*;q=0.8"
    ),
    "accept-language": "en-IN,en;q=0.9,en-GB;q=0.8,en-US;q=0.7",
    "cache-control": "no-cache",
    "dnt": "1",
    "user-agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36"
    ),
}

_MARKET_DATA_MAP = {
    "lastPrice": "ltp",
    "totalTradedVolume": "volume",
    "openInterest": "oi",
    "prevClose": "close_price",
    "bidprice": "bid_price",
    "bidQty": "bid_qty",
    "askPrice": "ask_price",
    "askQty": "ask_qty",
    "prevOpenInterest": "prev_oi",
}


def _leg(data: Any) -> Dict[str, Any]:
    if not isinstance(data, Mapping):
        return make_leg(None, {}, {})
    market_data = {dst: data.get(src) for src, dst in _MARKET_DATA_MAP.items()}
    if market_data["prev_oi"] is None:
        oi = data.get("openInterest")
        change = data.get("changeinOpenInterest")
        if isinstance(oi, (int, float)) and isinstance(change, (int, float)):
            market_data["prev_oi"] = oi - change
    # The exchange feed carries implied volatility but no greeks.
    greeks = {
        "vega": 0.0,
        "theta": 0.0,
        "gamma": 0.0,
        "delta": 0.0,
        "iv": data.get("impliedVolatility"),
        "pop": 0.0,
    }
    return make_leg(data.get("identifier"), market_data, greeks)


def transform_chain(
    payload: Any, symbol: str, expiry: Optional[str] = None
) -> List[Dict[str, Any]]:
    """Map NSE ``records.data`` into normalized rows, optionally for one expiry."""

    records = payload.get("records") if isinstance(payload, Mapping) else None
    if not isinstance(records, Mapping) or not isinstance(records.get("data"), list):
        raise InvalidResponseError("nse: response has no records.data")

    wanted = None
    if expiry:
        wanted = parse_expiry(expiry).value
        if wanted is None:
            # A filter that matches no date matches no rows.
            return []
    spot = records.get("underlyingValue")
    keyed: List[Tuple[date, float, Dict[str, Any]]] = []
    for item in records["data"]:
        if not isinstance(item, Mapping):
            continue
        parsed = parse_expiry(item.get("expiryDate"))
        if wanted is not None and parsed.value != wanted:
            continue
        strike = item.get("strikePrice")
        if not isinstance(strike, (int, float)):
            continue
        ce, pe = item.get("CE"), item.get("PE")
        leg_spot = spot
        for leg in (ce, pe):
            if leg_spot is None and isinstance(leg, Mapping):
                leg_spot = leg.get("underlyingValue")
        oi_ce = ce.get("openInterest") if isinstance(ce, Mapping) else None
        oi_pe = pe.get("openInterest") if isinstance(pe, Mapping) else None
        pcr = None
        if isinstance(oi_ce, (int, float)) and isinstance(oi_pe, (int, float)) and oi_ce:
            pcr = oi_pe / oi_ce
        row = make_row(
            expiry=parsed.value.vendor() if parsed.ok else item.get("expiryDate"),
            strike=float(strike),
            underlying_key=symbol,
            spot=leg_spot,
            call=_leg(ce),
            put=_leg(pe),
            pcr=pcr,
        )
        sort_date = parsed.value.value if parsed.ok else date.max
        keyed.append((sort_date, row["strike_price"], row))
    keyed.sort(key=lambda item: (item[0], item[1]))
    return [row for _, _, row in keyed]


class NseClient:
    """Cookie-holding client for the NSE website API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = (base_url or settings.nse_base_url).rstrip("/")
        self._client = client
        self._primed = False

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers=BROWSER_HEADERS,
                timeout=settings.http_timeout,
                follow_redirects=True,
            )
        return self._client

    async def load_cookies(self) -> bool:
        client = self._get_client()
        try:
            resp = await client.get(self.base_url + "/")
        except httpx.RequestError as exc:
            logger.warning("nse_cookie_refresh_failed error=%s", exc)
            self._primed = False
            return False
        self._primed = resp.status_code < 400
        if not self._primed:
            logger.warning("nse_cookie_refresh_failed status=%s", resp.status_code)
        return self._primed

    async def _fetch_once(self, url: str, params: Dict[str, str]) -> Any:
        client = self._get_client()
        try:
            resp = await client.get(url, params=params)
        except httpx.RequestError as exc:
            raise UpstreamError(f"nse: request error: {exc}", url=url) from exc
        if resp.status_code >= 400:
            raise UpstreamError(
                "nse: option chain request failed",
                status=resp.status_code,
                body=(resp.text or "")[:2000],
                url=str(resp.request.url),
            )
        try:
            return resp.json()
        except ValueError as exc:
            raise InvalidResponseError(
                "nse: invalid JSON response",
                status=resp.status_code,
                url=str(resp.request.url),
            ) from exc

    async def fetch_raw_chain(self, symbol: str) -> Any:
        if not self._primed:
            await self.load_cookies()
        url = self.base_url + CHAIN_PATH
        params = {"symbol": symbol}
        try:
            return await self._fetch_once(url, params)
        except UpstreamError as exc:
            logger.warning("nse_chain_retry symbol=%s reason=%s", symbol, exc.message)
        await self.load_cookies()
        return await self._fetch_once(url, params)

    async def fetch_option_chain(
        self, symbol: str, expiry: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        payload = await self.fetch_raw_chain(symbol)
        rows = transform_chain(payload, symbol, expiry)
        logger.info("nse_chain symbol=%s expiry=%s rows=%d", symbol, expiry, len(rows))
        return rows

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            self._primed = False


__all__ = ["NseClient", "transform_chain"]
