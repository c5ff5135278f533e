"""
Regime-switching jump-diffusion price engine with a synthetic volume model.
"""
import math
from typing import Tuple
import logging

from .config import EnginesConfig
from .rng import RNG
from .types import EventImpactSummary, Regime

logger = logging.getLogger(__name__)

MIN_MR_TAU_SEC = 5.0
MIN_JUMP_MULTIPLIER = 0.01
# Per-step log move and price range that keep the price positive and finite
MAX_LOG_STEP = 2.0
MIN_PRICE = 1e-12
MAX_PRICE = 1e12


class PriceEngine:
    """
    Advances price and volume one simulated step at a time.

    Per step:
    - Brownian log-return with regime drift and volatility, both shifted by
      the event summary
    - Poisson-arrival jumps of normal size
    - Optional pull toward a slow EMA anchor of log-price
    - The event summary's one-shot multiplicative jump
    - Volume from volatility, recent returns, an AR(1) drift, seasonality
      and lognormal noise
    - A regime transition draw every transition_check_sec
    """

    def __init__(self, config: EnginesConfig, rng: RNG):
        self.config = config
        self.rng = rng
        self.volume_config = config.volume

        # User-controlled scales
        self.vol_scale = 1.0
        self.volume_scale = 1.0

        self.reset()

    def reset(self):
        self.price = self.config.opening_price
        self.regime = Regime.RANGE
        self.sim_time_ms = 0.0
        self._next_transition_check_ms = 0.0

        self._mr_anchor = self.price
        self._abs_return_ewma = 0.0
        self._volume_drift = 0.0

    # ========================================================================
    # CONTROL
    # ========================================================================

    def set_volatility(self, multiplier: float):
        self.vol_scale = max(0.2, multiplier)
        logger.info(f"Volatility scale set to {self.vol_scale}x")

    def set_volume_scale(self, multiplier: float):
        self.volume_scale = max(0.1, min(5.0, multiplier))
        logger.info(f"Volume scale set to {self.volume_scale}x")

    def set_regime(self, regime: Regime):
        self.regime = regime

    # ========================================================================
    # STEP
    # ========================================================================

    def next_step(self, dt_sec: float, effects: EventImpactSummary) -> Tuple[float, float]:
        """Advance dt_sec of simulated time, returns (price, volume)"""
        params = self.config.regimes[self.regime]
        sigma = params.sigma * self.vol_scale * effects.volatility_boost_multiplier
        mu = params.mu + effects.drift_boost

        # Poisson jumps
        n_jumps = self.rng.poisson(max(0.0, params.lambda_ * dt_sec))
        jump = 0.0
        for _ in range(n_jumps):
            jump += self.rng.normal() * params.kappa

        # Diffusion
        d_log = (
            mu * dt_sec
            + sigma * math.sqrt(max(1e-6, dt_sec)) * self.rng.normal()
            + jump
        )

        # Mean reversion toward the log-price EMA
        tau = max(MIN_MR_TAU_SEC, self.config.mr_tau_sec)
        w = min(1.0, max(0.0, dt_sec / tau))
        self._mr_anchor = math.exp(
            (1 - w) * math.log(self._mr_anchor or self.price) + w * math.log(self.price)
        )
        deviation = math.log(self.price / self._mr_anchor)
        d_log_total = d_log - self.config.mr_k * deviation * dt_sec
        if math.isnan(d_log_total):
            d_log_total = 0.0
        d_log_total = max(-MAX_LOG_STEP, min(MAX_LOG_STEP, d_log_total))

        self.price *= math.exp(d_log_total)
        self.price *= max(MIN_JUMP_MULTIPLIER, effects.price_jump_multiplier)
        self.price = max(MIN_PRICE, min(MAX_PRICE, self.price))

        volume = self._next_volume(dt_sec, sigma, d_log, effects)

        self.sim_time_ms += dt_sec * 1000
        if self.sim_time_ms >= self._next_transition_check_ms:
            self._next_transition_check_ms = self.sim_time_ms + self.config.transition_check_sec * 1000
            previous = self.regime
            self.regime = self._sample_transition(previous)
            if self.regime is not previous:
                logger.info(f"Regime change: {previous.value} -> {self.regime.value}")

        return self.price, volume

    def _next_volume(
        self,
        dt_sec: float,
        sigma: float,
        d_log: float,
        effects: EventImpactSummary
    ) -> float:
        vc = self.volume_config

        self._abs_return_ewma = vc.ewma_alpha * abs(d_log) + (1 - vc.ewma_alpha) * self._abs_return_ewma
        self._volume_drift = 0.95 * self._volume_drift + vc.drift_std * self.rng.normal()

        t_sec = self.sim_time_ms / 1000
        season = 1 + vc.season_amp * math.sin(2 * math.pi * t_sec / vc.season_sec)

        baseline = (
            vc.base
            + vc.sigma_scale * sigma
            + vc.ret_scale * self._abs_return_ewma
            + self._volume_drift
        )
        noise = math.exp(vc.noise_std * self.rng.normal())

        volume = baseline * season * noise * effects.volatility_boost_multiplier * self.volume_scale
        # Keep small steps from producing explosive volume
        volume *= max(0.5, math.sqrt(dt_sec) * 2)

        return max(vc.min, min(vc.max, volume))

    def _sample_transition(self, current: Regime) -> Regime:
        edges = self.config.transitions.get(current, [])
        if not edges:
            return current

        total = sum(e.p for e in edges) or 1.0
        u = self.rng.next() * total
        for edge in edges:
            u -= edge.p
            if u <= 0:
                return edge.to
        return edges[-1].to
