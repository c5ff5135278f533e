"""
Single-symbol trading account.
Owns the order list, live positions, trade ledger and closed-position
history. Every mutation goes through place_order, cancel_order,
set_stop_loss_take_profit, close_pct, reverse_position or on_price_tick.
"""
from collections import deque
from dataclasses import replace
from typing import Callable, Deque, Dict, List, Optional, Union
import logging
import uuid

from sortedcontainers import SortedKeyList

from ..core.time_engine import now_ms
from ..core.types import (
    AccountSnapshot, Order, OrderStatus, OrderType, PlaceResult,
    Position, PositionHistory, RiskLimits, Side, Tick, Trade
)
from .matching import MatchingEngine
from .positions import LotAccumulator, apply_fill, record_fill_for_history, unrealized_pnl
from .risk import RateLimiter, validate_risk

logger = logging.getLogger(__name__)

DEFAULT_SYMBOL = "MEME/USDC"
MAX_LEDGER_RECORDS = 2000


class TradingAccount:
    """
    Accounting engine driven by simulated ticks.

    Per tick:
    - Pending orders are evaluated in submission order against the tick price
    - Fills update the live position (weighted-average entry) and the FIFO
      lot history, and accrue realized P&L per symbol
    - Breached stop-loss / take-profit levels close the position through a
      reduce-only market fill
    - Surviving positions are marked to market
    """

    def __init__(
        self,
        symbol: str = DEFAULT_SYMBOL,
        fee_bps: float = 0.03,
        slippage_pct: float = 0.05,
        reduce_only: bool = False,
        risk_limits: Optional[RiskLimits] = None,
        journal: Optional['SnapshotJournal'] = None,
        max_records: int = MAX_LEDGER_RECORDS,
        clock: Callable[[], int] = now_ms
    ):
        self.symbol = symbol
        self.fee_bps = fee_bps
        self.slippage_pct = slippage_pct
        self.reduce_only = reduce_only
        self.risk_limits = risk_limits or RiskLimits()
        self.journal = journal
        self.max_records = max_records
        self.clock = clock

        self.last_price = 0.0
        self.rate_limiter = RateLimiter()

        # Pending and recent orders in submission order
        self._sequence: Dict[str, int] = {}
        self._next_sequence = 0
        self._orders = SortedKeyList(key=lambda o: self._sequence[o.id])

        self.positions: Dict[str, Position] = {}
        self.trades: Deque[Trade] = deque(maxlen=max_records)
        self.position_history: Deque[PositionHistory] = deque(maxlen=max_records)
        self.realized_by_symbol: Dict[str, float] = {}
        self._lot_accumulators: Dict[str, LotAccumulator] = {}

    # ========================================================================
    # QUERIES
    # ========================================================================

    @property
    def orders(self) -> List[Order]:
        """Orders oldest first"""
        return list(self._orders)

    @property
    def pending_orders(self) -> List[Order]:
        return [o for o in self._orders if o.status == OrderStatus.NEW]

    @property
    def position(self) -> Optional[Position]:
        """Open position on the account's symbol"""
        return self.positions.get(self.symbol)

    @property
    def realized_pnl(self) -> float:
        return self.realized_by_symbol.get(self.symbol, 0.0)

    def get_order(self, order_id: str) -> Optional[Order]:
        return next((o for o in self._orders if o.id == order_id), None)

    def lot_accumulator(self, symbol: Optional[str] = None) -> Optional[LotAccumulator]:
        return self._lot_accumulators.get(symbol or self.symbol)

    def snapshot(self, fills: tuple = ()) -> AccountSnapshot:
        return AccountSnapshot(
            symbol=self.symbol,
            last_price=self.last_price,
            orders=tuple(reversed(self._orders)),
            positions=tuple(self.positions.values()),
            trades=tuple(reversed(self.trades)),
            position_history=tuple(reversed(self.position_history)),
            realized_by_symbol=dict(self.realized_by_symbol),
            fills=tuple(fills),
            max_leverage=self.risk_limits.max_leverage
        )

    # ========================================================================
    # INGRESS
    # ========================================================================

    def place_order(
        self,
        side: Union[Side, str],
        order_type: Union[OrderType, str],
        qty: float,
        price: Optional[float] = None,
        trigger: Optional[float] = None,
        sl_pct: Optional[float] = None,
        tp_pct: Optional[float] = None,
        slippage_pct: Optional[float] = None,
        reduce_only: Optional[bool] = None,
        timestamp: Optional[int] = None
    ) -> PlaceResult:
        """
        Validate and queue a new order.
        A rejected submission creates no order and changes no ledger state.
        """
        now = timestamp if timestamp is not None else self.clock()
        side = Side(side)
        order_type = OrderType(order_type)

        order = Order(
            id=str(uuid.uuid4()),
            timestamp=now,
            symbol=self.symbol,
            side=side,
            order_type=order_type,
            qty=qty,
            price=price,
            trigger=trigger,
            sl_pct=sl_pct,
            tp_pct=tp_pct,
            slippage_pct=slippage_pct if slippage_pct is not None else self.slippage_pct,
            reduce_only=reduce_only if reduce_only is not None else self.reduce_only
        )

        if not self.rate_limiter.rate_limit(now, self.risk_limits.max_orders_per_minute):
            return self._reject(order, "rate-limit")

        if order_type == OrderType.LIMIT and price is None:
            return self._reject(order, "Limit order must have price")

        check = validate_risk(order, self.last_price, self.risk_limits, self.position)
        if not check.ok:
            return self._reject(order, check.reason)

        self._add_order(order)
        logger.info(
            f"Order placed: {order.id} {side.value} {order_type.value} qty={qty}"
            f"{f' @ {price}' if price is not None else ''}"
            f"{f' trigger {trigger}' if trigger is not None else ''}"
        )
        self._persist()
        return PlaceResult(order=order)

    def cancel_order(self, order_id: str) -> Optional[Order]:
        """Cancel a pending order, returns the cancelled order or None"""
        order = self.get_order(order_id)
        if order is None or order.status != OrderStatus.NEW:
            logger.warning(f"Cannot cancel order {order_id}: not pending")
            return None

        cancelled = self._update_order(order, status=OrderStatus.CANCELLED)
        logger.info(f"Cancelled order {order_id}")
        self._persist()
        return cancelled

    def set_stop_loss_take_profit(
        self,
        stop_loss: Optional[float] = None,
        take_profit: Optional[float] = None
    ) -> Optional[Position]:
        """Move the exit levels of the open position; None leaves a level as is"""
        position = self.position
        if position is None:
            logger.warning("No open position to attach SL/TP to")
            return None

        updated = replace(
            position,
            stop_loss=stop_loss if stop_loss is not None else position.stop_loss,
            take_profit=take_profit if take_profit is not None else position.take_profit
        )
        self.positions[self.symbol] = updated
        logger.info(f"SL/TP set: sl={updated.stop_loss} tp={updated.take_profit}")
        return updated

    def close_pct(self, pct: float, timestamp: Optional[int] = None) -> Optional[Order]:
        """Queue a reduce-only market order closing a fraction of the position"""
        position = self.position
        if position is None or position.qty <= 0:
            return None

        qty = max(0.0, min(position.qty, position.qty * pct))
        if qty <= 0:
            return None

        order = Order(
            id=str(uuid.uuid4()),
            timestamp=timestamp if timestamp is not None else self.clock(),
            symbol=self.symbol,
            side=position.side.opposite,
            order_type=OrderType.MARKET,
            qty=qty,
            slippage_pct=self.slippage_pct,
            reduce_only=True
        )
        self._add_order(order)
        logger.info(f"Close {pct:.0%} queued: {order.side.value} {qty}")
        self._persist()
        return order

    def reverse_position(self, timestamp: Optional[int] = None) -> Optional[PlaceResult]:
        """
        Flip the open position: a market order for twice its size on the
        opposite side, submitted through the normal risk checks.
        Returns None when there is no position.
        """
        position = self.position
        if position is None or position.qty <= 0:
            return None

        logger.info(f"Reversing {position.side.value} {position.qty}")
        return self.place_order(
            side=position.side.opposite,
            order_type=OrderType.MARKET,
            qty=position.qty * 2,
            reduce_only=False,
            timestamp=timestamp
        )

    # ========================================================================
    # TICK PROCESSING
    # ========================================================================

    def on_price_tick(self, tick: Tick) -> AccountSnapshot:
        """Fill orders, run exits and mark positions to the tick price"""
        price = tick.price
        self.last_price = price
        fills = []

        for order in list(self._orders):
            if order.status != OrderStatus.NEW:
                continue

            fill_price = MatchingEngine.fill_price(order, price)
            if fill_price is None:
                continue

            qty = order.qty
            if order.reduce_only:
                position = self.positions.get(order.symbol)
                if position is None or position.side == order.side:
                    self._update_order(order, status=OrderStatus.CANCELLED)
                    logger.info(f"Reduce-only order {order.id} cancelled: nothing to reduce")
                    continue
                qty = min(qty, position.qty)

            fills.append(self._execute(order, fill_price, qty, tick.time))
            self._update_order(
                order,
                status=OrderStatus.FILLED,
                price=order.price if order.price is not None else fill_price
            )

        fills.extend(self._check_exits(tick))
        self._mark_to_market(price)

        if fills:
            logger.debug(f"Tick {tick.time}: {len(fills)} fills at ~{price}")
            self._persist()

        return self.snapshot(fills)

    def _execute(self, order: Order, fill_price: float, qty: float, timestamp: int) -> Trade:
        """Record a fill and fold it into the position and the lot history"""
        symbol = order.symbol
        fee = qty * self.fee_bps / 10000

        trade = Trade(
            id=str(uuid.uuid4()),
            order_id=order.id,
            price=fill_price,
            qty=qty,
            fee=fee,
            timestamp=timestamp,
            side=order.side
        )
        self.trades.append(trade)

        previous = self.positions.get(symbol)
        position, realized = apply_fill(previous, symbol, order.side, qty, fill_price, fee)
        if position is None:
            self.positions.pop(symbol, None)
        else:
            if previous is None or previous.side != position.side:
                position = self._with_brackets(position, order)
            self.positions[symbol] = position
        self.realized_by_symbol[symbol] = self.realized_by_symbol.get(symbol, 0.0) + realized

        acc, history = record_fill_for_history(
            self._lot_accumulators.get(symbol), symbol, order.side, qty, fill_price, fee, timestamp
        )
        if acc is None:
            self._lot_accumulators.pop(symbol, None)
        else:
            self._lot_accumulators[symbol] = acc
        if history is not None:
            self.position_history.append(history)
            logger.info(
                f"Position closed: {history.side.value} {history.size} "
                f"{history.entry_avg:.8g} -> {history.exit_avg:.8g}, pnl={history.pnl:.8g}"
            )

        logger.debug(f"Trade executed: {trade.id} {trade.side.value} {qty} @ {fill_price}")
        return trade

    @staticmethod
    def _with_brackets(position: Position, order: Order) -> Position:
        """Exit levels from the opening order's percentages"""
        entry = position.entry_price
        sign = 1 if position.side == Side.BUY else -1
        stop_loss = entry * (1 - sign * order.sl_pct) if order.sl_pct is not None else None
        take_profit = entry * (1 + sign * order.tp_pct) if order.tp_pct is not None else None
        return replace(position, stop_loss=stop_loss, take_profit=take_profit)

    def _check_exits(self, tick: Tick) -> List[Trade]:
        """Close positions whose stop-loss or take-profit was crossed"""
        price = tick.price
        fills = []

        for symbol, position in list(self.positions.items()):
            if position.side == Side.BUY:
                stop_hit = position.stop_loss is not None and price <= position.stop_loss
                take_hit = position.take_profit is not None and price >= position.take_profit
            else:
                stop_hit = position.stop_loss is not None and price >= position.stop_loss
                take_hit = position.take_profit is not None and price <= position.take_profit
            if not (stop_hit or take_hit):
                continue

            exit_order = Order(
                id=str(uuid.uuid4()),
                timestamp=tick.time,
                symbol=symbol,
                side=position.side.opposite,
                order_type=OrderType.MARKET,
                qty=position.qty,
                slippage_pct=self.slippage_pct,
                reduce_only=True
            )
            fill_price = MatchingEngine.market_fill_price(exit_order.side, price, exit_order.slippage_pct)
            fills.append(self._execute(exit_order, fill_price, position.qty, tick.time))
            self._add_order(replace(exit_order, status=OrderStatus.FILLED, price=fill_price))

            logger.info(
                f"{'Stop-loss' if stop_hit else 'Take-profit'} hit on {symbol} at {price}: "
                f"closed {position.qty} {position.side.value}"
            )

        return fills

    def _mark_to_market(self, price: float):
        for symbol, position in self.positions.items():
            self.positions[symbol] = replace(position, unrealized_pnl=unrealized_pnl(position, price))

    # ========================================================================
    # ORDER STORE
    # ========================================================================

    def _add_order(self, order: Order):
        self._sequence[order.id] = self._next_sequence
        self._next_sequence += 1
        self._orders.add(order)
        self._trim_orders()

    def _update_order(self, order: Order, **changes) -> Order:
        updated = Order(**{**order.__dict__, **changes})
        self._orders.remove(order)
        self._orders.add(updated)
        return updated

    def _trim_orders(self):
        """Drop the oldest finished orders beyond max_records"""
        while len(self._orders) > self.max_records:
            victim = next((o for o in self._orders if o.is_terminal), None)
            if victim is None:
                break
            self._orders.remove(victim)
            self._sequence.pop(victim.id, None)

    def _reject(self, order: Order, reason: str) -> PlaceResult:
        logger.warning(f"Order rejected: {order.side.value} {order.order_type.value} qty={order.qty} - {reason}")
        return PlaceResult(rejected=True, rejection_reason=reason)

    # ========================================================================
    # PERSISTENCE
    # ========================================================================

    def _persist(self):
        if self.journal is None:
            return
        self.journal.save(list(self._orders), self.trades, self.position_history)

    def hydrate(self):
        """Restore orders, trades and history from the journal"""
        if self.journal is None:
            return

        restored = self.journal.load()
        self._orders.clear()
        self._sequence.clear()
        for order in reversed(restored.orders):
            self._add_order(order)
        self.trades = deque(reversed(restored.trades), maxlen=self.max_records)
        self.position_history = deque(reversed(restored.position_history), maxlen=self.max_records)

        logger.info(
            f"Hydrated {len(restored.orders)} orders, {len(restored.trades)} trades, "
            f"{len(restored.position_history)} closed positions"
        )
