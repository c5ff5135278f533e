import math

import pytest

from ticksim.core.config import EnginesConfig
from ticksim.core.price import MAX_LOG_STEP, MIN_PRICE, PriceEngine
from ticksim.core.rng import RNG
from ticksim.core.types import EventImpactSummary, Regime

NO_EFFECTS = EventImpactSummary()


def test_next_step_is_deterministic():
    config = EnginesConfig.default()
    a = PriceEngine(config, RNG(1337))
    b = PriceEngine(config, RNG(1337))
    path_a = [a.next_step(0.1, NO_EFFECTS) for _ in range(1000)]
    path_b = [b.next_step(0.1, NO_EFFECTS) for _ in range(1000)]
    assert path_a == path_b
    assert a.regime == b.regime


def test_price_positive_and_volume_clamped():
    config = EnginesConfig.default()
    engine = PriceEngine(config, RNG(9))
    engine.set_volatility(4.0)
    crash = EventImpactSummary(price_jump_multiplier=0.6, volatility_boost_multiplier=3.0)

    for i in range(5000):
        price, volume = engine.next_step(0.5, crash if i % 250 == 0 else NO_EFFECTS)
        assert price > 0
        assert config.volume.min <= volume <= config.volume.max


def test_jump_multiplier_scales_price():
    config = EnginesConfig.default()
    plain = PriceEngine(config, RNG(21))
    jumped = PriceEngine(config, RNG(21))

    p0, _ = plain.next_step(0.1, NO_EFFECTS)
    p1, _ = jumped.next_step(0.1, EventImpactSummary(price_jump_multiplier=1.1))
    assert p1 == pytest.approx(p0 * 1.1)


def test_jump_multiplier_floor():
    config = EnginesConfig.default()
    plain = PriceEngine(config, RNG(21))
    floored = PriceEngine(config, RNG(21))

    p0, _ = plain.next_step(0.1, NO_EFFECTS)
    p1, _ = floored.next_step(0.1, EventImpactSummary(price_jump_multiplier=-3.0))
    assert p1 == pytest.approx(p0 * 0.01)
    assert p1 > 0


def test_first_transition_check_at_start(raw_config):
    raw_config["transitions"] = {"range": [{"to": "mania", "p": 1.0}]}
    engine = PriceEngine(EnginesConfig.parse(raw_config), RNG(4))
    assert engine.regime == Regime.RANGE
    engine.next_step(0.1, NO_EFFECTS)
    assert engine.regime == Regime.MANIA


def test_regime_without_edges_is_absorbing(raw_config):
    raw_config["transitions"] = {}
    engine = PriceEngine(EnginesConfig.parse(raw_config), RNG(4))
    for _ in range(2000):
        engine.next_step(1.0, NO_EFFECTS)
    assert engine.regime == Regime.RANGE


def test_transition_only_every_check_interval(raw_config):
    raw_config["transitions"] = {
        "range": [{"to": "bull", "p": 1.0}],
        "bull": [{"to": "bear", "p": 1.0}],
        "bear": [{"to": "range", "p": 1.0}],
    }
    raw_config["transitionCheckSec"] = 10
    engine = PriceEngine(EnginesConfig.parse(raw_config), RNG(4))

    engine.next_step(1.0, NO_EFFECTS)
    assert engine.regime == Regime.BULL
    for _ in range(8):
        engine.next_step(1.0, NO_EFFECTS)
    assert engine.regime == Regime.BULL
    engine.next_step(1.0, NO_EFFECTS)
    engine.next_step(1.0, NO_EFFECTS)
    assert engine.regime == Regime.BEAR


def test_knob_bounds():
    engine = PriceEngine(EnginesConfig.default(), RNG(1))
    engine.set_volatility(0.0)
    assert engine.vol_scale == 0.2
    engine.set_volume_scale(100)
    assert engine.volume_scale == 5.0
    engine.set_volume_scale(0)
    assert engine.volume_scale == 0.1


def test_reset_restores_opening_state():
    config = EnginesConfig.default()
    engine = PriceEngine(config, RNG(1))
    for _ in range(100):
        engine.next_step(1.0, NO_EFFECTS)
    engine.reset()
    assert engine.price == config.opening_price
    assert engine.regime == Regime.RANGE
    assert engine.sim_time_ms == 0.0


def test_extreme_volatility_keeps_price_positive_and_finite():
    engine = PriceEngine(EnginesConfig.default(), RNG(7))
    storm = EventImpactSummary(price_jump_multiplier=0.5, volatility_boost_multiplier=1e6)

    previous = engine.price
    for _ in range(500):
        price, volume = engine.next_step(1.0, storm)
        assert 0 < price < float("inf")
        assert volume > 0
        # One step moves log-price by at most the clamp plus the jump
        assert abs(math.log(price / previous)) <= MAX_LOG_STEP + abs(math.log(0.5)) + 1e-9
        previous = price

    # The floor holds and the next step still works from it
    assert engine.price >= MIN_PRICE
    engine.next_step(1.0, NO_EFFECTS)
