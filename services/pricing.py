"""Black-Scholes pricing and a random-walk spot simulator.

Only used to produce demo option chains when the live data provider is
unavailable; live quotes are never replaced by these numbers.
"""
from __future__ import annotations

import math
import random
import time
from dataclasses import asdict, dataclass
from typing import Callable, Optional

__all__ = [
    "DRIFT",
    "RISK_FREE_RATE",
    "VOLATILITY",
    "PRICE_FLOOR",
    "OptionQuote",
    "OptionPricing",
    "MarketSimulator",
    "price",
]

DRIFT = 0.05
VOLATILITY = 0.15
RISK_FREE_RATE = 0.05
PRICE_FLOOR = 0.05
SPOT_FLOOR_RATIO = 0.9
_SECONDS_PER_YEAR = 365 * 24 * 60 * 60


@dataclass(frozen=True)
class OptionQuote:
    price: float
    delta: float
    gamma: float
    theta: float
    vega: float
    iv: float

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class OptionPricing:
    spot: float
    strike: float
    call: OptionQuote
    put: OptionQuote


class MarketSimulator:
    """Geometric Brownian motion walk of a single spot price.

    One instance is shared by every request handled by the process, so
    concurrent callers extend the same walk.  State lives only in memory.
    """

    def __init__(
        self,
        drift: float = DRIFT,
        volatility: float = VOLATILITY,
        clock: Callable[[], float] = time.time,
        rng: Callable[[], float] = random.random,
    ) -> None:
        self.drift = drift
        self.volatility = volatility
        self._clock = clock
        self._rng = rng
        self.last_price: Optional[float] = None
        self.last_update: Optional[float] = None

    def simulate_spot(self, base_price: float) -> float:
        now = self._clock()
        if self.last_price is None or self.last_update is None:
            self.last_price = float(base_price)
            self.last_update = now
            return self.last_price

        dt = max(0.0, now - self.last_update) / _SECONDS_PER_YEAR
        shock = self._rng() - 0.5
        sigma = self.volatility
        step = self.last_price * (
            (self.drift - 0.5 * sigma * sigma) * dt + sigma * math.sqrt(dt) * shock
        )
        self.last_price = max(self.last_price + step, base_price * SPOT_FLOOR_RATIO)
        self.last_update = now
        return self.last_price

    def reset(self) -> None:
        self.last_price = None
        self.last_update = None


def _norm_cdf(x: float) -> float:
    return 0.5 * (1.0 + math.erf(x / math.sqrt(2.0)))


def _norm_pdf(x: float) -> float:
    return math.exp(-0.5 * x * x) / math.sqrt(2.0 * math.pi)


def price(
    spot: float,
    strike: float,
    days_to_expiry: float,
    volatility: float = VOLATILITY,
    rate: float = RISK_FREE_RATE,
) -> OptionPricing:
    """Price a European call and put with Black-Scholes.

    Theta is per year.  Quoted prices never drop below :data:`PRICE_FLOOR`.
    """

    if spot <= 0 or strike <= 0:
        raise ValueError("spot and strike must be positive")
    if days_to_expiry <= 0:
        raise ValueError("days_to_expiry must be positive")
    if volatility <= 0:
        raise ValueError("volatility must be positive")

    t = days_to_expiry / 365.0
    sqrt_t = math.sqrt(t)
    d1 = (math.log(spot / strike) + (rate + volatility * volatility / 2.0) * t) / (
        volatility * sqrt_t
    )
    d2 = d1 - volatility * sqrt_t
    discount = math.exp(-rate * t)
    pdf_d1 = _norm_pdf(d1)

    call_price = spot * _norm_cdf(d1) - strike * discount * _norm_cdf(d2)
    put_price = strike * discount * _norm_cdf(-d2) - spot * _norm_cdf(-d1)

    gamma = pdf_d1 / (spot * volatility * sqrt_t)
    vega = spot * pdf_d1 * sqrt_t
    decay = -spot * pdf_d1 * volatility / (2.0 * sqrt_t)
    theta_call = decay - rate * strike * discount * _norm_cdf(d2)
    theta_put = decay + rate * strike * discount * _norm_cdf(-d2)
    iv = volatility * 100.0

    call = OptionQuote(
        price=max(PRICE_FLOOR, call_price),
        delta=_norm_cdf(d1),
        gamma=gamma,
        theta=theta_call,
        vega=vega,
        iv=iv,
    )
    put = OptionQuote(
        price=max(PRICE_FLOOR, put_price),
        delta=_norm_cdf(d1) - 1.0,
        gamma=gamma,
        theta=theta_put,
        vega=vega,
        iv=iv,
    )
    return OptionPricing(spot=spot, strike=strike, call=call, put=put)
