import pytest

from ticksim.core.types import Position, Side
from ticksim.ledger.positions import (
    apply_fill, isolated_margin, liquidation_price, record_fill_for_history, roe_pct, unrealized_pnl
)

SYMBOL = "MEME/USDC"


def _fold(fills):
    position, realized = None, 0.0
    for side, qty, price, fee in fills:
        position, delta = apply_fill(position, SYMBOL, side, qty, price, fee)
        realized += delta
    return position, realized


def _history(fills):
    acc, closed = None, []
    for side, qty, price, fee, ts in fills:
        acc, history = record_fill_for_history(acc, SYMBOL, side, qty, price, fee, ts)
        if history is not None:
            closed.append(history)
    return acc, closed


def test_weighted_average_entry():
    position, realized = _fold([(Side.BUY, 10, 100.0, 0.0), (Side.BUY, 10, 120.0, 0.0)])
    assert position.qty == 20
    assert position.entry_price == pytest.approx(110.0)
    assert realized == 0.0


def test_partial_close_keeps_entry():
    position, realized = _fold([(Side.BUY, 10, 100.0, 0.0), (Side.SELL, 4, 110.0, 0.0)])
    assert position.qty == 6
    assert position.entry_price == 100.0
    assert realized == pytest.approx(40.0)


def test_full_close_returns_none():
    position, realized = _fold([(Side.SELL, 5, 100.0, 0.1), (Side.BUY, 5, 90.0, 0.1)])
    assert position is None
    assert realized == pytest.approx(50.0 - 0.2)


def test_flip_opens_opposite_remainder():
    position, realized = _fold([(Side.BUY, 5, 100.0, 0.0), (Side.SELL, 8, 120.0, 0.0)])
    assert position.side == Side.SELL
    assert position.qty == pytest.approx(3)
    assert position.entry_price == 120.0
    assert position.accumulated_fees == 0.0
    assert realized == pytest.approx(100.0)


def test_unrealized_pnl_nets_fees():
    position, _ = _fold([(Side.BUY, 10, 100.0, 0.5)])
    assert unrealized_pnl(position, 105.0) == pytest.approx(49.5)
    short, _ = _fold([(Side.SELL, 10, 100.0, 0.0)])
    assert unrealized_pnl(short, 105.0) == pytest.approx(-50.0)


def test_fifo_lot_matching():
    acc, closed = _history([
        (Side.BUY, 5, 100.0, 0.0, 0),
        (Side.BUY, 5, 110.0, 0.0, 1_000),
        (Side.SELL, 8, 120.0, 0.0, 2_000),
    ])
    assert closed == []
    assert len(acc.lots) == 1
    assert acc.lots[0].qty == pytest.approx(2)
    assert acc.lots[0].price == 110.0
    assert acc.closed_entry_avg == pytest.approx(103.75)
    assert acc.closed_exit_avg == pytest.approx(120.0)


def test_round_trip_history_across_partial_closes():
    _, closed = _history([
        (Side.BUY, 10, 100.0, 0.01, 1_000),
        (Side.SELL, 4, 110.0, 0.004, 3_000),
        (Side.SELL, 6, 120.0, 0.006, 7_400),
    ])
    assert len(closed) == 1
    h = closed[0]
    assert h.side == Side.BUY
    assert h.size == pytest.approx(10)
    assert h.entry_avg == pytest.approx(100.0)
    assert h.exit_avg == pytest.approx(116.0)
    assert h.notional == pytest.approx(1000.0)
    assert h.fees == pytest.approx(0.02)
    assert h.pnl == pytest.approx(160.0 - 0.02)
    assert h.open_timestamp == 1_000
    assert h.close_timestamp == 7_400
    assert h.duration_sec == 6


def test_open_fees_split_proportionally():
    acc, _ = _history([
        (Side.BUY, 10, 100.0, 0.01, 0),
        (Side.SELL, 4, 100.0, 0.004, 1_000),
    ])
    assert acc.attributed_fees == pytest.approx(0.01 * 0.4 + 0.004)
    assert acc.fees == pytest.approx(0.006)


def test_over_close_starts_new_sequence():
    acc, closed = _history([
        (Side.SELL, 5, 100.0, 0.0, 0),
        (Side.BUY, 8, 90.0, 0.3, 5_000),
    ])
    assert len(closed) == 1
    assert closed[0].side == Side.SELL
    assert closed[0].size == 5
    assert closed[0].fees == pytest.approx(0.3)
    assert acc.side == Side.BUY
    assert acc.open_qty == pytest.approx(3)
    assert acc.fees == 0.0
    assert acc.open_timestamp == 5_000


def test_liquidation_price_at_leverage():
    long = Position(symbol=SYMBOL, side=Side.BUY, qty=10, entry_price=100.0)
    short = Position(symbol=SYMBOL, side=Side.SELL, qty=10, entry_price=100.0)

    assert liquidation_price(long, 3) == pytest.approx(100.0 * (1 - 1 / 3))
    assert liquidation_price(short, 3) == pytest.approx(100.0 * (1 + 1 / 3))
    assert liquidation_price(long, 1) is None
    assert liquidation_price(short, 0.5) is None


def test_isolated_margin_and_roe():
    position = Position(symbol=SYMBOL, side=Side.BUY, qty=10, entry_price=100.0, unrealized_pnl=50.0)

    assert isolated_margin(position, 4) == pytest.approx(250.0)
    assert roe_pct(position, 4) == pytest.approx(20.0)
    # Leverage below 1x posts the full notional
    assert isolated_margin(position, 0.5) == pytest.approx(1000.0)

    flat = Position(symbol=SYMBOL, side=Side.BUY, qty=0, entry_price=100.0, unrealized_pnl=5.0)
    assert roe_pct(flat, 3) == 0.0
