"""Yahoo Finance chart and quote provider."""
from __future__ import annotations

import logging
import time
from urllib.parse import quote
from typing import Any, Dict, List, Optional

import pandas as pd
import yfinance as yf

from config import settings
from services import http_client
from services.errors import InvalidResponseError, UpstreamError

logger = logging.getLogger(__name__)

INTERVALS = ("1m", "2m", "5m", "15m", "30m", "60m", "1h", "1d")
RANGES = ("1d", "5d", "1mo", "3mo", "6mo", "1y", "2y", "5y", "max")

_EXPECTED_COLUMNS = ["time", "open", "high", "low", "close"]
_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
)


def _chart_url(symbol: str) -> str:
    base = settings.yahoo_base_url.rstrip("/")
    return f"{base}/v8/finance/chart/{quote(symbol, safe='')}"


async def fetch_chart(symbol: str) -> Any:
    """Return Yahoo's daily chart payload for ``symbol`` untouched."""

    return await http_client.get_json(
        _chart_url(symbol),
        params={"interval": "1d"},
        headers={"User-Agent": _USER_AGENT},
    )


def normalize_chart(payload: Any) -> List[Dict[str, Any]]:
    """Turn a chart payload into ``{time, open, high, low, close}`` rows.

    Bars with any missing price are dropped.
    """

    try:
        result = payload["chart"]["result"][0]
        timestamps = result["timestamp"]
        quote = result["indicators"]["quote"][0]
    except (KeyError, IndexError, TypeError) as exc:
        raise InvalidResponseError("Invalid data format from Yahoo Finance") from exc
    if not isinstance(quote, dict):
        raise InvalidResponseError("Invalid data format from Yahoo Finance")
    if not timestamps:
        return []

    try:
        df = pd.DataFrame(
            {
                "time": timestamps,
                "open": quote.get("open"),
                "high": quote.get("high"),
                "low": quote.get("low"),
                "close": quote.get("close"),
            }
        )
    except ValueError as exc:
        raise InvalidResponseError("Yahoo Finance quote arrays do not line up") from exc
    df = df.reindex(columns=_EXPECTED_COLUMNS).dropna(how="any")
    df["time"] = df["time"].astype("int64")
    rows = df.to_dict(orient="records")
    return [
        {
            "time": int(row["time"]),
            "open": float(row["open"]),
            "high": float(row["high"]),
            "low": float(row["low"]),
            "close": float(row["close"]),
        }
        for row in rows
    ]


async def fetch_intraday(symbol: str, interval: str = "5m", range_: str = "1d") -> List[Dict[str, Any]]:
    payload = await http_client.get_json(
        _chart_url(symbol),
        params={"interval": interval, "range": range_},
        headers={"User-Agent": _USER_AGENT},
    )
    rows = normalize_chart(payload)
    logger.debug(
        "yahoo_intraday symbol=%s interval=%s range=%s rows=%d",
        symbol,
        interval,
        range_,
        len(rows),
    )
    return rows


def _ticker(symbol: str) -> yf.Ticker:
    return yf.Ticker(symbol)


def fetch_latest_price(symbol: str, now: Optional[float] = None) -> Dict[str, Any]:
    """Return ``{time, price}`` with ``time`` as epoch seconds in a string."""

    try:
        info = _ticker(symbol).fast_info
        last = info["lastPrice"]
    except Exception as exc:  # yfinance surfaces network issues as anything
        raise UpstreamError(f"yahoo: quote error for {symbol}: {exc}") from exc
    if last is None or pd.isna(last):
        raise InvalidResponseError(f"yahoo: no price for {symbol}")
    stamp = int(now if now is not None else time.time())
    return {"time": str(stamp), "price": float(last)}


__all__ = [
    "INTERVALS",
    "RANGES",
    "fetch_chart",
    "fetch_intraday",
    "fetch_latest_price",
    "normalize_chart",
]
