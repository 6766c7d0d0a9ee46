import itertools
import math

import pytest

from services.pricing import PRICE_FLOOR, MarketSimulator, price


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def test_first_simulated_spot_is_base_price():
    sim = MarketSimulator()
    assert sim.simulate_spot(22000) == 22000


def test_simulated_spot_never_below_floor():
    clock = FakeClock()
    draws = itertools.cycle([0.0, 0.01, 0.2])  # strongly negative shocks
    sim = MarketSimulator(clock=clock, rng=lambda: next(draws), volatility=5.0)
    sim.simulate_spot(22000)
    for _ in range(200):
        clock.advance(30 * 24 * 3600)
        assert sim.simulate_spot(22000) >= 0.9 * 22000


def test_simulated_spot_follows_gbm_step():
    clock = FakeClock()
    sim = MarketSimulator(clock=clock, rng=lambda: 1.0)
    sim.simulate_spot(20000)
    year = 365 * 24 * 3600
    clock.advance(year)
    expected = 20000 + 20000 * ((0.05 - 0.5 * 0.15**2) + 0.15 * 0.5)
    assert sim.simulate_spot(20000) == pytest.approx(expected)
    assert sim.last_update == clock.now


def test_simulator_state_is_shared_between_calls_and_resettable():
    clock = FakeClock()
    sim = MarketSimulator(clock=clock, rng=lambda: 0.9)
    sim.simulate_spot(100)
    clock.advance(86400)
    moved = sim.simulate_spot(100)
    assert moved != 100
    assert sim.last_price == moved
    sim.reset()
    assert sim.simulate_spot(150) == 150


def test_at_the_money_prices_and_delta_bounds():
    result = price(spot=22000, strike=22000, days_to_expiry=7)
    assert result.call.price >= PRICE_FLOOR
    assert result.put.price >= PRICE_FLOOR
    assert 0 <= result.call.delta <= 1
    assert -1 <= result.put.delta <= 0
    assert result.call.gamma > 0
    assert result.call.vega > 0
    assert result.call.iv == pytest.approx(15.0)


def test_put_call_parity():
    spot, strike, days = 22000.0, 21800.0, 30
    result = price(spot, strike, days)
    t = days / 365
    parity = spot - strike * math.exp(-0.05 * t)
    assert result.call.price - result.put.price == pytest.approx(parity, rel=1e-9)


def test_deep_out_of_the_money_is_floored():
    result = price(spot=22000, strike=30000, days_to_expiry=1)
    assert result.call.price == PRICE_FLOOR
    assert result.call.delta == pytest.approx(0.0, abs=1e-9)


def test_theta_is_negative_for_calls():
    assert price(22000, 22000, 14).call.theta < 0


@pytest.mark.parametrize(
    "spot,strike,days", [(0, 100, 7), (100, -1, 7), (100, 100, 0)]
)
def test_invalid_inputs(spot, strike, days):
    with pytest.raises(ValueError):
        price(spot, strike, days)
