"""LTP Calculator option analytics provider.

The vendor publishes a support/resistance "reversal model" per index and
expiry.  Calls to the data endpoint are spaced at least ``min_interval``
seconds apart (refused otherwise) and the list of available expiries is
cached per symbol for an hour.
"""
from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional

from config import settings
from services import http_client
from services.errors import InvalidResponseError, UpstreamError
from services.expiry import (
    current_month_expiry,
    iso_to_vendor,
    next_weekly_expiry,
    resolve_expiry,
)
from services.http_client import MinIntervalLimiter
from services.ttl_cache import TTLCache

logger = logging.getLogger(__name__)

EXPIRY_PATH = "/optionChain/symbol-expiry"
DATA_PATH = "/optionChain/fetch-data"


@dataclass(frozen=True)
class SymbolConfig:
    lot_size: str
    upstream_symbol: str


SYMBOLS: Dict[str, SymbolConfig] = {
    "NIFTY": SymbolConfig("75", "NIFTY"),
    "BANKNIFTY": SymbolConfig("30", "BANKNIFTY"),
    "FINNIFTY": SymbolConfig("40", "FINNIFTY"),
    "MIDCPNIFTY": SymbolConfig("75", "MIDCPNIFTY"),
    "NIFTYNXT50": SymbolConfig("75", "NIFTYNXT50"),
}
WEEKLY_SYMBOLS = {"NIFTY"}


def symbol_config(symbol: str) -> SymbolConfig:
    known = SYMBOLS.get(symbol)
    if known is not None:
        return known
    return SymbolConfig(SYMBOLS["NIFTY"].lot_size, symbol)


def _or_none(value: Any) -> Any:
    return value if value else None


def format_response(data: Any, symbol: str, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Reduce the vendor payload to the reversal-model summary."""

    direction = data.get("symbolMarketDirection") if isinstance(data, Mapping) else None
    if not isinstance(direction, Mapping):
        raise InvalidResponseError(
            "Invalid response structure from LTP Calculator API - missing symbolMarketDirection"
        )
    model = direction.get("reversalModel")
    if not isinstance(model, Mapping):
        raise InvalidResponseError(
            "Invalid response structure from LTP Calculator API - missing reversalModel"
        )
    fetched = direction.get("actualFetchTime") or (now or datetime.now()).isoformat()
    return {
        "fetchTime": fetched,
        "direction": direction.get("marketDirection") or "UNKNOWN",
        "riskyResistance": _or_none(model.get("riskyResistance")),
        "riskySupport": _or_none(model.get("riskySupport")),
        "moderateResistance": _or_none(model.get("moderateResistance")),
        "moderateSupport": _or_none(model.get("moderateSupport")),
        "rMaxGain": _or_none(model.get("resistanceTarget")),
        "sMaxGain": _or_none(model.get("supportTarget")),
        "rMaxPain": _or_none(model.get("resistanceSL")),
        "sMaxPain": _or_none(model.get("supportSL")),
        "scenario": model.get("scenario") or "UNKNOWN",
        "symbol": symbol,
    }


class LtpCalculatorClient:
    """Owns the request gap limiter and the expiry cache for the vendor."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        min_interval: Optional[float] = None,
        cache_ttl: Optional[float] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.base_url = (base_url or settings.ltp_base_url).rstrip("/")
        self.username = settings.ltp_username if username is None else username
        self.password = settings.ltp_password if password is None else password
        self.limiter = MinIntervalLimiter(
            settings.ltp_min_interval if min_interval is None else min_interval
        )
        self.expiry_cache: TTLCache[List[str]] = TTLCache(
            settings.expiry_cache_ttl if cache_ttl is None else cache_ttl
        )
        self._clock = clock or datetime.now

    def _headers(self) -> Dict[str, str]:
        token = base64.b64encode(f"{self.username}:{self.password}".encode()).decode()
        return {"Authorization": f"Basic {token}"}


    async def fetch_expiry_dates(self, symbol: str) -> List[str]:
        """Return the ``DD-MM-YYYY`` expiries the vendor lists for ``symbol``."""

        cached = self.expiry_cache.get(symbol)
        if cached is not None:
            logger.info("ltp_expiry_cache_hit symbol=%s", symbol)
            return cached
        url = f"{self.base_url}{EXPIRY_PATH}"
        dates = await http_client.get_json(
            url, params={"symbol": symbol}, headers=self._headers()
        )
        if not isinstance(dates, list) or not all(isinstance(d, str) for d in dates):
            raise InvalidResponseError("ltp: expiry list is not a list of strings", url=url)
        self.expiry_cache.set(symbol, dates)
        return dates

    async def choose_expiry(
        self,
        symbol: str,
        expiry: Optional[str] = None,
        expiry_date: Optional[str] = None,
    ) -> str:
        """Resolve which expiry to query for ``symbol``.

        An explicit ``expiry_date`` (``YYYY-MM-DD``) wins over ``expiry``.
        Without either the vendor's listed expiries are consulted and, when
        that list is empty or unavailable, the date is computed locally.
        """

        if expiry_date:
            return iso_to_vendor(expiry_date)
        if expiry:
            return expiry

        upstream = symbol_config(symbol).upstream_symbol
        weekly = symbol in WEEKLY_SYMBOLS
        try:
            dates = await self.fetch_expiry_dates(upstream)
        except UpstreamError as exc:
            logger.warning(
                "ltp_expiry_list_unavailable symbol=%s status=%s", upstream, exc.status
            )
            dates = []
        now = self._clock()
        if dates:
            return resolve_expiry(dates, prefer_weekly=weekly, now=now)
        if weekly:
            return next_weekly_expiry(now)
        return current_month_expiry(now)

    async def fetch_data(self, symbol: str, expiry: str, lot_size: str) -> Any:
        """Fetch the raw reversal-model payload; never cached."""

        upstream = symbol_config(symbol).upstream_symbol
        self.limiter.acquire()
        params = {"symbol": upstream, "expiry": expiry, "lotSize": lot_size}
        return await http_client.get_json(
            f"{self.base_url}{DATA_PATH}", params=params, headers=self._headers()
        )

    async def fetch_summary(
        self,
        symbol: str,
        expiry: Optional[str] = None,
        expiry_date: Optional[str] = None,
        lot_size: Optional[str] = None,
    ) -> Dict[str, Any]:
        chosen = await self.choose_expiry(symbol, expiry, expiry_date)
        lots = lot_size or symbol_config(symbol).lot_size
        data = await self.fetch_data(symbol, chosen, lots)
        return format_response(data, symbol, now=self._clock())


__all__ = [
    "SYMBOLS",
    "SymbolConfig",
    "LtpCalculatorClient",
    "format_response",
    "symbol_config",
]
