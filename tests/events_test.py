import math

import pytest

from ticksim.core.config import EnginesConfig
from ticksim.core.events import IMPACT_BOUND, EventEngine
from ticksim.core.rng import RNG
from ticksim.core.types import Regime


def _run(engine, steps, dt_sec=0.1, start_ms=0):
    out = []
    for i in range(steps):
        out.append(engine.on_tick(dt_sec, start_ms + i * int(dt_sec * 1000)))
    return out


def test_on_tick_is_deterministic():
    config = EnginesConfig.default()
    a = EventEngine(config, RNG(11))
    b = EventEngine(config, RNG(11))
    a.set_regime(Regime.MANIA)
    b.set_regime(Regime.MANIA)
    a.set_rate_scale(20)
    b.set_rate_scale(20)

    assert _run(a, 500) == _run(b, 500)


def test_high_rate_produces_events():
    engine = EventEngine(EnginesConfig.default(), RNG(3))
    engine.set_regime(Regime.MANIA)
    engine.set_rate_scale(50)
    summaries = _run(engine, 600)
    events = [e for s in summaries for e in s.new_events]
    assert events
    assert all(-IMPACT_BOUND <= e.impact <= IMPACT_BOUND for e in events)
    assert {e.type for e in events} <= {"CT_Hype", "Dev_Rug_Rumor", "Listing_Tier3"}


def test_no_events_without_rate(quiet_config):
    engine = EventEngine(quiet_config, RNG(3))
    summaries = _run(engine, 200)
    assert all(s.new_events == () for s in summaries)
    assert all(s.price_jump_multiplier == 1.0 for s in summaries)


def test_rate_scale_floor():
    engine = EventEngine(EnginesConfig.default(), RNG(1))
    engine.set_rate_scale(0.0)
    assert engine.rate_scale == 0.1


def test_inject_unknown_type_raises(quiet_config):
    engine = EventEngine(quiet_config, RNG(1))
    with pytest.raises(ValueError):
        engine.inject("Moon_Landing", 0)


def test_injected_event_fields(quiet_config):
    engine = EventEngine(quiet_config, RNG(1))
    event = engine.inject("Dev_Rug_Rumor", 5_000)
    assert event.id.startswith("E5000-")
    assert event.timestamp == 5_000
    assert event.text == "Dev wallet rumor spreads"
    assert event.half_life_sec == 90
    assert engine.active_events == [event]


def test_jump_applies_exactly_once(quiet_config):
    engine = EventEngine(quiet_config, RNG(8))
    event = engine.inject("CT_Hype", 0)

    first = engine.on_tick(0.1, 0)
    assert first.price_jump_multiplier == pytest.approx(1 + event.impact)
    assert first.drift_boost == pytest.approx(quiet_config.event_defs["CT_Hype"].mu_boost)
    assert first.volatility_boost_multiplier == pytest.approx(1 + (event.volatility_boost - 1) * 0.8)

    second = engine.on_tick(0.1, 100)
    assert second.price_jump_multiplier == 1.0
    assert second.drift_boost > 0


def test_late_tick_still_applies_jump(quiet_config):
    engine = EventEngine(quiet_config, RNG(8))
    event = engine.inject("Listing_Tier3", 0)
    summary = engine.on_tick(0.01, 1_000)
    assert summary.price_jump_multiplier == pytest.approx(1 + event.impact)


def test_decay_by_half_life(quiet_config):
    engine = EventEngine(quiet_config, RNG(8))
    engine.inject("CT_Hype", 0)
    engine.on_tick(0.1, 0)

    summary = engine.on_tick(0.1, 60_000)
    assert summary.drift_boost == pytest.approx(quiet_config.event_defs["CT_Hype"].mu_boost * 0.5)


def test_event_expires_below_threshold(quiet_config):
    engine = EventEngine(quiet_config, RNG(8))
    engine.inject("CT_Hype", 0)

    # weight = 0.5 ** (age / 60) drops below 0.02 after about 339s
    cutoff_sec = 60 * math.log(1 / 0.02) / math.log(2)
    engine.on_tick(0.1, int((cutoff_sec - 1) * 1000))
    assert len(engine.active_events) == 1

    summary = engine.on_tick(0.1, int((cutoff_sec + 1) * 1000))
    assert engine.active_events == []
    assert summary.drift_boost == 0.0
    assert summary.volatility_boost_multiplier == 1.0
