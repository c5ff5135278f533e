"""
Wall-clock tick scheduler with speed control.
Pure orchestration: owns no simulation state.
"""
import asyncio
import time
from dataclasses import dataclass
from typing import Callable, Optional
import logging

logger = logging.getLogger(__name__)

TickHandler = Callable[[float, int], None]

MIN_SPEED = 0.1


@dataclass
class SchedulerStats:
    """Performance metrics"""
    ticks_fired: int = 0
    tick_errors: int = 0
    simulated_seconds: float = 0.0


def now_ms() -> int:
    return int(time.time() * 1000)


class TickScheduler:
    """
    Fires on_tick(dt_sec, now_ms) every tick_ms of wall-clock time.

    - dt_sec is the simulated time per tick: tick_ms * speed / 1000
    - start() / stop() are idempotent
    - A failing tick is logged and the loop keeps going
    """

    def __init__(
        self,
        on_tick: TickHandler,
        tick_ms: int = 100,
        speed_multiplier: float = 1.0,
        clock: Callable[[], int] = now_ms
    ):
        if tick_ms <= 0:
            raise ValueError(f"tick_ms must be positive, got {tick_ms}")
        self.on_tick = on_tick
        self.tick_ms = tick_ms
        self.speed_multiplier = max(MIN_SPEED, speed_multiplier)
        self.clock = clock

        self._task: Optional[asyncio.Task] = None
        self.stats = SchedulerStats()

    # ========================================================================
    # CONTROL METHODS
    # ========================================================================

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def set_speed(self, multiplier: float):
        """
        Set simulation speed.
        - 1.0 = real-time
        - 10.0 = ten simulated seconds per wall-clock second
        Floored at 0.1.
        """
        self.speed_multiplier = max(MIN_SPEED, multiplier)
        logger.info(f"Speed set to {self.speed_multiplier}x")

    def start(self):
        """Start ticking on the running event loop"""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._loop())
        logger.info(f"Tick scheduler started ({self.tick_ms}ms, {self.speed_multiplier}x)")

    def stop(self):
        """Stop ticking"""
        if self._task is None:
            return
        self._task.cancel()
        self._task = None
        logger.info(f"Tick scheduler stopped after {self.stats.ticks_fired} ticks")

    # ========================================================================
    # LOOP
    # ========================================================================

    def fire(self):
        """Run one tick now"""
        dt_sec = self.tick_ms * self.speed_multiplier / 1000
        try:
            self.on_tick(dt_sec, self.clock())
        except Exception as e:
            self.stats.tick_errors += 1
            logger.error(f"Tick handler failed: {e}", exc_info=True)
            return
        self.stats.ticks_fired += 1
        self.stats.simulated_seconds += dt_sec

    async def _loop(self):
        interval = self.tick_ms / 1000
        loop = asyncio.get_running_loop()
        next_at = loop.time() + interval
        try:
            while True:
                await asyncio.sleep(max(0.0, next_at - loop.time()))
                next_at += interval
                self.fire()
        except asyncio.CancelledError:
            logger.debug("Tick loop cancelled")
            raise

    async def run(self, duration_seconds: Optional[float] = None):
        """
        Run in the foreground.

        Args:
            duration_seconds: Wall-clock run time (None = until cancelled)
        """
        self.start()
        task = self._task
        try:
            if duration_seconds is None:
                await task
            else:
                await asyncio.sleep(duration_seconds)
        except asyncio.CancelledError:
            logger.info("Tick scheduler cancelled")
        finally:
            self.stop()
