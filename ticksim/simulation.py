"""
Main market simulation orchestrator.
Pure asyncio, no threads: the tick scheduler drives one synchronous step
per tick.
"""
from collections import deque
from typing import Callable, Deque, List, Optional
import logging

from .core.aggregator import CandleAggregator
from .core.config import EnginesConfig
from .core.events import EventEngine
from .core.price import PriceEngine
from .core.rng import RNG
from .core.time_engine import TickScheduler, now_ms
from .core.types import Candle, SimEvent, Tick, TickResult
from .ledger.account import TradingAccount
from .streaming.data_stream import BoundedTickStream
from .streaming.journal import SnapshotJournal

logger = logging.getLogger(__name__)

MAX_TICK_HISTORY = 200_000


class MarketSimulation:
    """
    Simulation coordinator.

    One step, in order:
    1. The event engine learns the current regime and produces this tick's
       impact summary
    2. The price engine advances price and volume under that summary
    3. The candle aggregator folds the tick in
    4. The trading account fills, exits and marks to market at the new price
    5. The result is offered to the output stream
    """

    def __init__(
        self,
        config: Optional[EnginesConfig] = None,
        seed=1337,
        tf_sec: int = 1,
        tick_ms: int = 100,
        speed_multiplier: float = 1.0,
        account: Optional[TradingAccount] = None,
        journal: Optional[SnapshotJournal] = None,
        output_stream: Optional[BoundedTickStream] = None,
        clock: Callable[[], int] = now_ms
    ):
        self.config = config or EnginesConfig.default()
        self.seed = seed
        self.clock = clock

        # Core components share one random stream
        self.rng = RNG(seed)
        self.price_engine = PriceEngine(self.config, self.rng)
        self.event_engine = EventEngine(self.config, self.rng)
        self.aggregator = CandleAggregator(tf_sec)
        self.account = account or TradingAccount(journal=journal, clock=clock)
        if journal is not None and self.account.journal is None:
            self.account.journal = journal

        # State
        self.ticks: Deque[Tick] = deque(maxlen=MAX_TICK_HISTORY)
        self.last_result: Optional[TickResult] = None

        # Streaming
        self.output_stream = output_stream or BoundedTickStream()

        self.scheduler = TickScheduler(
            on_tick=self.step,
            tick_ms=tick_ms,
            speed_multiplier=speed_multiplier,
            clock=clock
        )

        logger.info(
            f"Simulation initialized: seed={seed}, tf={tf_sec}s, "
            f"start price={self.price_engine.price}"
        )

    # ========================================================================
    # STEP
    # ========================================================================

    def step(self, dt_sec: float, now_ms: Optional[int] = None) -> TickResult:
        """Advance the whole pipeline by dt_sec of simulated time"""
        now = now_ms if now_ms is not None else self.clock()

        self.event_engine.set_regime(self.price_engine.regime)
        effects = self.event_engine.on_tick(dt_sec, now)

        price, volume = self.price_engine.next_step(dt_sec, effects)
        tick = Tick(time=now, price=price, volume=volume)
        self.ticks.append(tick)

        candle_update = self.aggregator.push_tick(tick.time, tick.price, tick.volume)
        account = self.account.on_price_tick(tick)

        result = TickResult(
            tick=tick,
            regime=self.price_engine.regime,
            candle_update=candle_update,
            events=effects,
            account=account
        )
        self.last_result = result
        self.output_stream.publish_nowait(result)
        return result

    # ========================================================================
    # CONTROL
    # ========================================================================

    def set_timeframe(self, tf_sec: int) -> List[Candle]:
        """Switch candle width and rebuild the series from the tick history"""
        self.aggregator = CandleAggregator.replay(tf_sec, self.ticks)
        logger.info(f"Timeframe set to {tf_sec}s, rebuilt {len(self.aggregator)} candles")
        return self.aggregator.series()

    def inject_event(self, event_type: str, now_ms: Optional[int] = None) -> SimEvent:
        """Queue a manual event; its jump lands on the next tick"""
        return self.event_engine.inject(event_type, now_ms if now_ms is not None else self.clock())

    def set_speed(self, multiplier: float):
        self.scheduler.set_speed(multiplier)

    def set_volatility(self, multiplier: float):
        self.price_engine.set_volatility(multiplier)

    def set_volume_scale(self, multiplier: float):
        self.price_engine.set_volume_scale(multiplier)

    def set_event_rate(self, multiplier: float):
        self.event_engine.set_rate_scale(multiplier)

    def hydrate(self):
        """Restore the account ledgers from the journal"""
        self.account.hydrate()

    # ========================================================================
    # QUERIES
    # ========================================================================

    @property
    def price(self) -> float:
        return self.price_engine.price

    @property
    def market_cap(self) -> float:
        return self.price_engine.price * self.config.initial.supply

    def seconds_left(self, now_ms: Optional[int] = None) -> int:
        """Seconds until the current candle closes"""
        return self.aggregator.seconds_left(now_ms if now_ms is not None else self.clock())

    # ========================================================================
    # RUN
    # ========================================================================

    def start(self):
        self.scheduler.start()

    def stop(self):
        self.scheduler.stop()

    async def run(self, duration_seconds: Optional[float] = None):
        """
        Run simulation.

        Args:
            duration_seconds: How long to run (None = forever)
        """
        logger.info("Starting simulation...")
        try:
            await self.scheduler.run(duration_seconds)
        finally:
            await self.shutdown()

    async def shutdown(self):
        """Graceful shutdown"""
        logger.info("Shutting down simulation...")
        self.scheduler.stop()
        await self.output_stream.close()
        logger.info("Simulation shutdown complete")

    # ========================================================================
    # STATISTICS
    # ========================================================================

    def get_stats(self) -> dict:
        stats = {
            'scheduler': self.scheduler.stats.__dict__,
            'price': self.price_engine.price,
            'regime': self.price_engine.regime.value,
            'market_cap': self.market_cap,
            'ticks': len(self.ticks),
            'candles': len(self.aggregator),
            'timeframe_sec': self.aggregator.tf_sec,
            'active_events': len(self.event_engine.active_events),
            'pending_orders': len(self.account.pending_orders),
            'stream': self.output_stream.get_stats().__dict__
        }
        if self.account.journal is not None:
            stats['journal'] = self.account.journal.get_stats()
        return stats
