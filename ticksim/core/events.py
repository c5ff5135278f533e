"""
News event engine.
Injects discrete events by Poisson arrival and decays their influence
exponentially by half-life.
"""
import math
from dataclasses import dataclass
from typing import List
import logging

from .config import EnginesConfig
from .rng import RNG
from .types import EventImpactSummary, Regime, SimEvent

logger = logging.getLogger(__name__)

IMPACT_BOUND = 0.4
MIN_ACTIVE_WEIGHT = 0.02
MAX_ACTIVE_EVENTS = 256

_LN2 = math.log(2)


@dataclass(frozen=True)
class ActiveImpact:
    event: SimEvent
    start_ms: int
    jumped: bool = False  # one-shot price jump already applied


class EventEngine:
    """
    Stateful event injector.

    on_tick() first draws new arrivals for the elapsed time, then folds every
    still-relevant event into one EventImpactSummary. An event applies its
    multiplicative price jump once, on the first tick that sees it, and
    keeps boosting drift and volatility while its weight decays.
    """

    def __init__(self, config: EnginesConfig, rng: RNG):
        self.config = config
        self.rng = rng
        self.regime = Regime.RANGE
        self.rate_scale = 1.0
        self._active: List[ActiveImpact] = []

        # Cumulative selection weights for random event types
        self._types = list(config.event_defs.keys())
        self._type_weights = [config.event_defs[t].weight for t in self._types]

    # ========================================================================
    # CONTROL
    # ========================================================================

    def set_regime(self, regime: Regime):
        self.regime = regime

    def set_rate_scale(self, multiplier: float):
        self.rate_scale = max(0.1, multiplier)
        logger.info(f"Event rate scale set to {self.rate_scale}x")

    @property
    def active_events(self) -> List[SimEvent]:
        return [a.event for a in self._active]

    # ========================================================================
    # INJECTION
    # ========================================================================

    def inject(self, event_type: str, now_ms: int) -> SimEvent:
        """Create an event of the given type and make it active"""
        if event_type not in self.config.event_defs:
            raise ValueError(f"Unknown event type: {event_type}")

        d = self.config.event_defs[event_type]
        impact = self.rng.normal() * d.impact_std + d.impact_mean
        impact = max(-IMPACT_BOUND, min(IMPACT_BOUND, impact))

        event = SimEvent(
            id=f"E{now_ms}-{math.floor(self.rng.next() * 1e6)}",
            timestamp=now_ms,
            type=event_type,
            text=d.text,
            impact=impact,
            volatility_boost=d.vol_boost,
            half_life_sec=d.half_life_sec
        )

        self._active.append(ActiveImpact(event=event, start_ms=now_ms))
        if len(self._active) > MAX_ACTIVE_EVENTS:
            self._active = self._active[-MAX_ACTIVE_EVENTS:]

        logger.info(f"Event {event.id}: {event.type} ({event.text}) impact={impact:+.4f}")
        return event

    def _schedule_auto(self, dt_sec: float, now_ms: int) -> List[SimEvent]:
        rate = self.config.regimes[self.regime].event_rate * self.rate_scale
        count = self.rng.poisson(rate * dt_sec)
        return [self.inject(self._pick_type(), now_ms) for _ in range(count)]

    def _pick_type(self) -> str:
        total = sum(self._type_weights)
        u = self.rng.next() * total
        for event_type, weight in zip(self._types, self._type_weights):
            u -= weight
            if u < 0:
                return event_type
        return self._types[-1]

    # ========================================================================
    # TICK
    # ========================================================================

    def on_tick(self, dt_sec: float, now_ms: int) -> EventImpactSummary:
        """Inject arrivals for dt_sec, decay active events, return their effect"""
        new_events = self._schedule_auto(dt_sec, now_ms)

        drift_boost = 0.0
        vol_boost = 1.0
        price_jump = 1.0

        still_active = []
        for active in self._active:
            event = active.event
            age_sec = (now_ms - active.start_ms) / 1000
            weight = math.exp(-_LN2 * age_sec / event.half_life_sec)
            if weight <= MIN_ACTIVE_WEIGHT:
                logger.debug(f"Event {event.id} expired after {age_sec:.1f}s")
                continue

            drift_boost += self.config.event_defs[event.type].mu_boost * weight
            vol_boost *= 1 + (event.volatility_boost - 1) * weight * 0.8
            if not active.jumped:
                price_jump *= 1 + event.impact
                active = ActiveImpact(event=event, start_ms=active.start_ms, jumped=True)
            still_active.append(active)

        self._active = still_active

        return EventImpactSummary(
            price_jump_multiplier=price_jump,
            drift_boost=drift_boost,
            volatility_boost_multiplier=vol_boost,
            new_events=tuple(new_events)
        )

    def reset(self):
        self._active.clear()
        self.regime = Regime.RANGE
