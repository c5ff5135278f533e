"""
Batch simulation mode - runs the full pipeline in one shot and returns all data.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import logging

import numpy as np

from ..core.config import EnginesConfig
from ..core.types import Candle, PositionHistory, SimEvent, Trade
from ..simulation import MarketSimulation

logger = logging.getLogger(__name__)


@dataclass
class ScheduledOrder:
    """Order submitted once simulated time reaches at_sec"""
    at_sec: float
    side: str
    order_type: str = "market"
    qty: float = 0.0
    params: Dict[str, Any] = field(default_factory=dict)


@dataclass
class BatchSimulationResult:
    """Results from batch simulation"""
    times: np.ndarray
    prices: np.ndarray
    volumes: np.ndarray
    regimes: List[str]
    candles: List[Candle]
    events: List[SimEvent]
    trades: List[Trade]
    position_history: List[PositionHistory]
    realized_pnl: float

    @property
    def final_price(self) -> float:
        return float(self.prices[-1]) if len(self.prices) else float('nan')

    @property
    def log_returns(self) -> np.ndarray:
        return np.diff(np.log(self.prices))

    def realized_volatility(self) -> float:
        """Standard deviation of log returns per sqrt(second)"""
        returns = self.log_returns
        if len(returns) < 2:
            return 0.0
        dt_sec = float(np.mean(np.diff(self.times))) / 1000
        return float(np.std(returns, ddof=1) / np.sqrt(dt_sec))

    def max_drawdown(self) -> float:
        """Largest peak-to-trough fall as a fraction of the peak"""
        if len(self.prices) == 0:
            return 0.0
        peaks = np.maximum.accumulate(self.prices)
        return float(np.max(1 - self.prices / peaks))

    def to_dict(self) -> dict:
        return {
            'final_price': self.final_price,
            'steps': len(self.prices),
            'candles': len(self.candles),
            'events': len(self.events),
            'trades': len(self.trades),
            'closed_positions': len(self.position_history),
            'realized_pnl': self.realized_pnl,
            'realized_volatility': self.realized_volatility(),
            'max_drawdown': self.max_drawdown()
        }


class BatchSimulator:
    """
    Runs the simulation on a synthetic clock: no scheduler, no streaming
    consumers, just compute and return.

    Same seed and config always give the same series.
    """

    def __init__(
        self,
        config: Optional[EnginesConfig] = None,
        seed=1337,
        duration_seconds: float = 60,
        step_ms: int = 100,
        tf_sec: int = 1,
        start_time_ms: int = 0,
        orders: Optional[List[ScheduledOrder]] = None
    ):
        if step_ms <= 0:
            raise ValueError(f"step_ms must be positive, got {step_ms}")
        self.config = config or EnginesConfig.default()
        self.seed = seed
        self.duration_seconds = duration_seconds
        self.step_ms = step_ms
        self.tf_sec = tf_sec
        self.start_time_ms = start_time_ms
        self.orders = sorted(orders or [], key=lambda o: o.at_sec)

        self._now_ms = start_time_ms

    def _clock(self) -> int:
        return self._now_ms

    def run(self) -> BatchSimulationResult:
        """
        Run batch simulation and return all results.

        Returns:
            BatchSimulationResult with price/volume series, candles and ledgers
        """
        sim = MarketSimulation(
            config=self.config,
            seed=self.seed,
            tf_sec=self.tf_sec,
            tick_ms=self.step_ms,
            clock=self._clock
        )

        steps = max(1, int(self.duration_seconds * 1000 // self.step_ms))
        dt_sec = self.step_ms / 1000
        logger.info(f"Starting batch simulation: {steps} steps of {self.step_ms}ms, seed={self.seed}")

        times = np.empty(steps, dtype=np.int64)
        prices = np.empty(steps, dtype=np.float64)
        volumes = np.empty(steps, dtype=np.float64)
        regimes: List[str] = []
        events: List[SimEvent] = []

        pending = list(self.orders)
        self._now_ms = self.start_time_ms
        for i in range(steps):
            self._now_ms = self.start_time_ms + (i + 1) * self.step_ms
            elapsed_sec = (self._now_ms - self.start_time_ms) / 1000

            while pending and pending[0].at_sec <= elapsed_sec:
                scheduled = pending.pop(0)
                sim.account.place_order(
                    side=scheduled.side,
                    order_type=scheduled.order_type,
                    qty=scheduled.qty,
                    timestamp=self._now_ms,
                    **scheduled.params
                )

            result = sim.step(dt_sec, self._now_ms)
            times[i] = result.tick.time
            prices[i] = result.tick.price
            volumes[i] = result.tick.volume
            regimes.append(result.regime.value)
            events.extend(result.events.new_events)

        account = sim.account
        logger.info(
            f"Batch simulation complete: final price {prices[-1]:.8g}, "
            f"{len(account.trades)} trades"
        )

        return BatchSimulationResult(
            times=times,
            prices=prices,
            volumes=volumes,
            regimes=regimes,
            candles=sim.aggregator.series(),
            events=events,
            trades=list(account.trades),
            position_history=list(account.position_history),
            realized_pnl=account.realized_pnl
        )

    def get_config(self) -> dict:
        return {
            'seed': self.seed,
            'duration_seconds': self.duration_seconds,
            'step_ms': self.step_ms,
            'tf_sec': self.tf_sec,
            'scheduled_orders': len(self.orders)
        }
