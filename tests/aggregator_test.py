import pytest

from ticksim.core.aggregator import CandleAggregator
from ticksim.core.types import Candle, Tick


def test_new_then_update_within_bucket():
    agg = CandleAggregator(1)
    first = agg.push_tick(1_000, 10.0, 2.0)
    second = agg.push_tick(1_500, 12.0, 3.0)
    third = agg.push_tick(1_900, 9.0, 1.0)

    assert first.mode == "new"
    assert second.mode == "update"
    assert third.candle == Candle(time=1, open=10.0, high=12.0, low=9.0, close=9.0, volume=6.0)
    assert len(agg) == 1


def test_bucket_alignment():
    agg = CandleAggregator(5)
    assert agg.bucket_start(12_345) == 10
    assert agg.bucket_start(14_999) == 10
    assert agg.bucket_start(15_000) == 15

    agg.push_tick(12_345, 1.0, 1.0)
    update = agg.push_tick(15_000, 2.0, 1.0)
    assert update.mode == "new"
    assert update.candle.time == 15


def test_published_candle_is_a_copy():
    agg = CandleAggregator(1)
    update = agg.push_tick(1_000, 10.0, 1.0)
    agg.push_tick(1_100, 20.0, 1.0)
    assert update.candle.high == 10.0
    assert agg.series()[-1].high == 20.0


def test_replay_equals_live_aggregation():
    ticks = [Tick(time=1_000 + i * 370, price=100 + (i % 7) - 3, volume=1 + i % 3) for i in range(500)]

    live = CandleAggregator(3)
    for tick in ticks:
        live.push_tick(tick.time, tick.price, tick.volume)

    replayed = CandleAggregator.replay(3, ticks)
    assert replayed.series() == live.series()


def test_history_is_capped():
    agg = CandleAggregator(1, max_len=3)
    for sec in range(10):
        agg.push_tick(sec * 1000, float(sec), 1.0)
    assert [c.time for c in agg.series()] == [7, 8, 9]


def test_buckets_never_go_backwards():
    agg = CandleAggregator(2)
    for t in range(0, 60_000, 250):
        agg.push_tick(t, 1.0, 1.0)
    times = [c.time for c in agg.series()]
    assert times == sorted(times)
    assert len(set(times)) == len(times)


def test_seconds_left():
    agg = CandleAggregator(5)
    assert agg.seconds_left(12_345) == 3
    assert agg.seconds_left(10_000) == 5


def test_rejects_sub_second_width():
    with pytest.raises(ValueError):
        CandleAggregator(0)
