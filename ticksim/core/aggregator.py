"""
Tick to OHLCV candle aggregation.
"""
from collections import deque
from dataclasses import replace
from typing import Deque, Iterable, List

from .types import Candle, CandleUpdate, Tick

DEFAULT_MAX_CANDLES = 3000


class CandleAggregator:
    """
    Buckets ticks into fixed-width candles aligned to tf_sec boundaries.

    The last candle is updated in place while ticks stay in its bucket.
    History is a ring buffer: the oldest candles fall off the front.
    """

    def __init__(self, tf_sec: int, max_len: int = DEFAULT_MAX_CANDLES):
        if tf_sec < 1:
            raise ValueError(f"Candle width must be at least 1s, got {tf_sec}")
        self.tf_sec = int(tf_sec)
        self._candles: Deque[Candle] = deque(maxlen=max_len)

    @classmethod
    def replay(cls, tf_sec: int, ticks: Iterable[Tick], max_len: int = DEFAULT_MAX_CANDLES) -> 'CandleAggregator':
        """Build a fresh aggregator from a tick history"""
        aggregator = cls(tf_sec, max_len=max_len)
        for tick in ticks:
            aggregator.push_tick(tick.time, tick.price, tick.volume)
        return aggregator

    def bucket_start(self, time_ms: int) -> int:
        t_sec = int(time_ms // 1000)
        return (t_sec // self.tf_sec) * self.tf_sec

    def push_tick(self, time_ms: int, price: float, volume: float) -> CandleUpdate:
        bucket = self.bucket_start(time_ms)

        last = self._candles[-1] if self._candles else None
        if last is None or last.time != bucket:
            candle = Candle(
                time=bucket,
                open=price,
                high=price,
                low=price,
                close=price,
                volume=volume
            )
            self._candles.append(candle)
            return CandleUpdate(mode="new", candle=replace(candle))

        last.high = max(last.high, price)
        last.low = min(last.low, price)
        last.close = price
        last.volume += volume
        return CandleUpdate(mode="update", candle=replace(last))

    def seconds_left(self, time_ms: int) -> int:
        """Seconds until the candle containing time_ms closes"""
        t_sec = int(time_ms // 1000)
        return max(0, self.tf_sec - (t_sec - self.bucket_start(time_ms)))

    def series(self) -> List[Candle]:
        """Copy of the retained candles, oldest first"""
        return [replace(c) for c in self._candles]

    def __len__(self) -> int:
        return len(self._candles)

    def reset(self):
        self._candles.clear()
