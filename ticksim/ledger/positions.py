"""
Position bookkeeping.

Two independent views of the same fills:
- apply_fill keeps the live Position (weighted-average entry) and returns
  the realized P&L delta of each fill
- record_fill_for_history matches fills FIFO against open lots and emits a
  PositionHistory once a lot sequence fully unwinds
"""
from collections import deque
from dataclasses import dataclass, field, replace
from typing import Deque, Optional, Tuple
import uuid

from ..core.types import Position, PositionHistory, Side

QTY_EPSILON = 1e-12


# ============================================================================
# LIVE POSITION
# ============================================================================

def apply_fill(
    position: Optional[Position],
    symbol: str,
    side: Side,
    qty: float,
    price: float,
    fee: float
) -> Tuple[Optional[Position], float]:
    """
    Fold one fill into the symbol's position.
    Returns (new_position or None when flat, realized_delta).
    """
    if position is None:
        return Position(
            symbol=symbol,
            side=side,
            qty=qty,
            entry_price=price,
            accumulated_fees=fee
        ), -fee

    if position.side == side:
        new_qty = position.qty + qty
        new_entry = (position.entry_price * position.qty + price * qty) / new_qty
        return replace(
            position,
            qty=new_qty,
            entry_price=new_entry,
            accumulated_fees=position.accumulated_fees + fee
        ), -fee

    # Opposite direction: close, possibly flip
    close_qty = min(position.qty, qty)
    if position.side == Side.BUY:
        gross = (price - position.entry_price) * close_qty
    else:
        gross = (position.entry_price - price) * close_qty
    realized = gross - fee

    remaining = position.qty - close_qty
    if remaining > QTY_EPSILON:
        return replace(position, qty=remaining), realized

    open_qty = qty - close_qty
    if open_qty > QTY_EPSILON:
        return Position(
            symbol=symbol,
            side=side,
            qty=open_qty,
            entry_price=price
        ), realized

    return None, realized


def unrealized_pnl(position: Position, last_price: float) -> float:
    """Mark-to-market P&L net of the fees already paid on the position"""
    if position.side == Side.BUY:
        gross = (last_price - position.entry_price) * position.qty
    else:
        gross = (position.entry_price - last_price) * position.qty
    return gross - position.accumulated_fees


# ============================================================================
# ISOLATED MARGIN
# ============================================================================

def liquidation_price(position: Position, max_leverage: float) -> Optional[float]:
    """
    Simplified liquidation level with no maintenance margin:
    long entry*(1 - 1/lev), short entry*(1 + 1/lev).
    None when leverage is 1x or less (the position cannot be liquidated).
    """
    if max_leverage <= 1:
        return None
    if position.side == Side.BUY:
        return position.entry_price * (1 - 1 / max_leverage)
    return position.entry_price * (1 + 1 / max_leverage)


def isolated_margin(position: Position, max_leverage: float) -> float:
    """Entry notional posted at max_leverage"""
    return position.entry_price * position.qty / max(1.0, max_leverage)


def roe_pct(position: Position, max_leverage: float) -> float:
    """Unrealized P&L as a percentage of the isolated margin"""
    margin = isolated_margin(position, max_leverage)
    if margin <= 0:
        return 0.0
    return position.unrealized_pnl / margin * 100


# ============================================================================
# FIFO LOT HISTORY
# ============================================================================

@dataclass
class Lot:
    qty: float
    price: float
    timestamp: int


@dataclass
class LotAccumulator:
    """Open lot sequence for one symbol plus the running totals of its close"""
    side: Side
    open_timestamp: int
    lots: Deque[Lot] = field(default_factory=deque)
    fees: float = 0.0  # open fees not yet attributed to a close

    closed_qty: float = 0.0
    entry_notional: float = 0.0
    exit_notional: float = 0.0
    realized_pnl: float = 0.0
    attributed_fees: float = 0.0

    @property
    def open_qty(self) -> float:
        return sum(lot.qty for lot in self.lots)

    @property
    def closed_entry_avg(self) -> float:
        return self.entry_notional / self.closed_qty if self.closed_qty > 0 else 0.0

    @property
    def closed_exit_avg(self) -> float:
        return self.exit_notional / self.closed_qty if self.closed_qty > 0 else 0.0


def record_fill_for_history(
    acc: Optional[LotAccumulator],
    symbol: str,
    side: Side,
    qty: float,
    price: float,
    fee: float,
    timestamp: int
) -> Tuple[Optional[LotAccumulator], Optional[PositionHistory]]:
    """
    Match one fill against the symbol's open lots.
    Returns (accumulator or None when flat, closed round trip or None).
    """
    if acc is None:
        return _open_sequence(side, qty, price, fee, timestamp), None

    if acc.side == side:
        acc.lots.append(Lot(qty=qty, price=price, timestamp=timestamp))
        acc.fees += fee
        return acc, None

    # Closing against existing lots, oldest first
    open_qty_before = acc.open_qty
    remaining = qty
    closed_qty = 0.0
    entry_notional = 0.0
    exit_notional = 0.0
    while remaining > QTY_EPSILON and acc.lots:
        lot = acc.lots[0]
        use = min(lot.qty, remaining)
        closed_qty += use
        entry_notional += lot.price * use
        exit_notional += price * use
        lot.qty -= use
        remaining -= use
        if lot.qty <= QTY_EPSILON:
            acc.lots.popleft()

    if acc.side == Side.BUY:
        gross = exit_notional - entry_notional
    else:
        gross = entry_notional - exit_notional

    # Open fees split by the fraction of the sequence this fill closes
    if open_qty_before > 0:
        open_fees = acc.fees * min(1.0, closed_qty / open_qty_before)
    else:
        open_fees = 0.0
    acc.fees = max(0.0, acc.fees - open_fees)

    acc.closed_qty += closed_qty
    acc.entry_notional += entry_notional
    acc.exit_notional += exit_notional
    acc.realized_pnl += gross - open_fees - fee
    acc.attributed_fees += open_fees + fee

    if acc.lots:
        return acc, None

    history = PositionHistory(
        id=str(uuid.uuid4()),
        symbol=symbol,
        side=acc.side,
        size=acc.closed_qty,
        entry_avg=acc.closed_entry_avg,
        exit_avg=acc.closed_exit_avg,
        notional=acc.entry_notional,
        pnl=acc.realized_pnl,
        fees=acc.attributed_fees,
        open_timestamp=acc.open_timestamp,
        close_timestamp=timestamp,
        duration_sec=max(0, round((timestamp - acc.open_timestamp) / 1000))
    )

    if remaining > QTY_EPSILON:
        return _open_sequence(side, remaining, price, 0.0, timestamp), history
    return None, history


def _open_sequence(side: Side, qty: float, price: float, fee: float, timestamp: int) -> LotAccumulator:
    acc = LotAccumulator(side=side, open_timestamp=timestamp, fees=fee)
    acc.lots.append(Lot(qty=qty, price=price, timestamp=timestamp))
    return acc
