"""Normalized option chain rows shared by every provider.

A row describes one strike with its call and put legs::

    {
        "expiry": "27-06-2024",
        "pcr": 1.1,
        "strike_price": 22000.0,
        "underlying_key": "NSE_INDEX|Nifty 50",
        "underlying_spot_price": 22015.4,
        "call_options": {"instrument_key": ..., "market_data": {...},
                         "option_greeks": {...}},
        "put_options": {...},
    }
"""
from __future__ import annotations

import math
import random
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional

from services.expiry import parse_expiry
from services.pricing import MarketSimulator, OptionQuote, price

__all__ = [
    "MARKET_DATA_FIELDS",
    "GREEK_FIELDS",
    "make_leg",
    "make_row",
    "days_to_expiry",
    "simulate_chain",
]

MARKET_DATA_FIELDS = (
    "ltp",
    "volume",
    "oi",
    "close_price",
    "bid_price",
    "bid_qty",
    "ask_price",
    "ask_qty",
    "prev_oi",
)
GREEK_FIELDS = ("vega", "theta", "gamma", "delta", "iv", "pop")

STRIKE_STEP = 50
STRIKES_EACH_SIDE = 5


def make_leg(
    instrument_key: Optional[str],
    market_data: Mapping[str, Any],
    greeks: Mapping[str, Any],
) -> Dict[str, Any]:
    return {
        "instrument_key": instrument_key,
        "market_data": {f: market_data.get(f) for f in MARKET_DATA_FIELDS},
        "option_greeks": {f: greeks.get(f) for f in GREEK_FIELDS},
    }


def make_row(
    *,
    expiry: str,
    strike: float,
    underlying_key: str,
    spot: float,
    call: Dict[str, Any],
    put: Dict[str, Any],
    pcr: Optional[float] = None,
) -> Dict[str, Any]:
    return {
        "expiry": expiry,
        "pcr": pcr if pcr else 1.0,
        "strike_price": strike,
        "underlying_key": underlying_key,
        "underlying_spot_price": spot,
        "call_options": call,
        "put_options": put,
    }


def days_to_expiry(expiry: str, now: Optional[datetime] = None) -> int:
    """Whole days until ``expiry`` rounded up, never less than one."""

    result = parse_expiry(expiry)
    if not result.ok:
        return 1
    now = now or datetime.now()
    expires = datetime.combine(result.value.value, datetime.min.time())
    seconds = (expires - now).total_seconds()
    return max(1, math.ceil(seconds / 86400))


def _simulated_leg(
    instrument_key: str,
    quote: OptionQuote,
    volume: float,
    oi: float,
    pop: float,
    rng: Callable[[], float],
) -> Dict[str, Any]:
    ltp = quote.price
    market_data = {
        "ltp": ltp,
        "volume": volume,
        "oi": oi,
        "close_price": ltp * (1 + (rng() - 0.5) * 0.01),
        "bid_price": ltp * 0.99,
        "bid_qty": math.floor(rng() * 1000),
        "ask_price": ltp * 1.01,
        "ask_qty": math.floor(rng() * 1000),
        "prev_oi": oi * (1 + (rng() - 0.5) * 0.1),
    }
    greeks = {
        "vega": quote.vega,
        "theta": quote.theta,
        "gamma": quote.gamma,
        "delta": quote.delta,
        "iv": quote.iv,
        "pop": pop,
    }
    return make_leg(instrument_key, market_data, greeks)


def simulate_chain(
    simulator: MarketSimulator,
    instrument_key: str,
    expiry: str,
    now: Optional[datetime] = None,
    rng: Callable[[], float] = random.random,
) -> List[Dict[str, Any]]:
    """Build a demo chain of eleven strikes around the simulated spot."""

    base_price = 22000.0 if "nifty" in instrument_key.lower() else 18000.0
    spot = simulator.simulate_spot(base_price)
    days = days_to_expiry(expiry, now)
    atm = round(spot / STRIKE_STEP) * STRIKE_STEP

    rows: List[Dict[str, Any]] = []
    for i in range(2 * STRIKES_EACH_SIDE + 1):
        strike = float(atm + (i - STRIKES_EACH_SIDE) * STRIKE_STEP)
        pricing = price(spot, strike, days)
        volume = math.floor(rng() * 1_000_000)
        oi = math.floor(rng() * 100_000)
        skew = (strike - spot) / 10
        call = _simulated_leg(
            f"NSE_FO|{50000 + i}",
            pricing.call,
            volume,
            oi,
            max(0.0, min(100.0, 50 + skew)),
            rng,
        )
        put = _simulated_leg(
            f"NSE_FO|{51000 + i}",
            pricing.put,
            volume * 0.8,
            oi * 0.8,
            max(0.0, min(100.0, 50 - skew)),
            rng,
        )
        rows.append(
            make_row(
                expiry=expiry,
                strike=strike,
                underlying_key=instrument_key,
                spot=spot,
                call=call,
                put=put,
                pcr=rng() * 2 + 0.5,
            )
        )
    return rows
