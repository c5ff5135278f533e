"""
JSON-compatible dict views of the domain types.
One format serves the websocket feed, the HTTP API and the journal, so
anything a client receives can be stored and restored unchanged.
"""
from typing import Optional

from ..core.types import (
    AccountSnapshot, Candle, CandleUpdate, EventImpactSummary, Order,
    OrderStatus, OrderType, Position, PositionHistory, Side, SimEvent,
    TickResult, Trade
)
from ..ledger.positions import isolated_margin, liquidation_price, roe_pct


def serialize_candle(candle: Candle) -> dict:
    return {
        'time': candle.time,
        'open': candle.open,
        'high': candle.high,
        'low': candle.low,
        'close': candle.close,
        'volume': candle.volume
    }


def serialize_candle_update(update: CandleUpdate) -> dict:
    return {'mode': update.mode, 'candle': serialize_candle(update.candle)}


def serialize_event(event: SimEvent) -> dict:
    return {
        'id': event.id,
        'timestamp': event.timestamp,
        'type': event.type,
        'text': event.text,
        'impact': event.impact,
        'volatility_boost': event.volatility_boost,
        'half_life_sec': event.half_life_sec
    }


def serialize_effects(effects: EventImpactSummary) -> dict:
    return {
        'price_jump_multiplier': effects.price_jump_multiplier,
        'drift_boost': effects.drift_boost,
        'volatility_boost_multiplier': effects.volatility_boost_multiplier,
        'new_events': [serialize_event(e) for e in effects.new_events]
    }

# ============================================================================
# LEDGER RECORDS
# ============================================================================

def serialize_order(order: Order) -> dict:
    return {
        'id': order.id,
        'timestamp': order.timestamp,
        'symbol': order.symbol,
        'side': order.side.value,
        'type': order.order_type.value,
        'qty': order.qty,
        'price': order.price,
        'trigger': order.trigger,
        'sl_pct': order.sl_pct,
        'tp_pct': order.tp_pct,
        'slippage_pct': order.slippage_pct,
        'reduce_only': order.reduce_only,
        'status': order.status.value
    }


def deserialize_order(d: dict) -> Order:
    return Order(
        id=d['id'],
        timestamp=d['timestamp'],
        symbol=d['symbol'],
        side=Side(d['side']),
        order_type=OrderType(d['type']),
        qty=d['qty'],
        price=d.get('price'),
        trigger=d.get('trigger'),
        sl_pct=d.get('sl_pct'),
        tp_pct=d.get('tp_pct'),
        slippage_pct=d.get('slippage_pct', 0.0),
        reduce_only=d.get('reduce_only', False),
        status=OrderStatus(d['status'])
    )


def serialize_trade(trade: Trade) -> dict:
    return {
        'id': trade.id,
        'order_id': trade.order_id,
        'side': trade.side.value,
        'price': trade.price,
        'qty': trade.qty,
        'fee': trade.fee,
        'timestamp': trade.timestamp
    }


def deserialize_trade(d: dict) -> Trade:
    return Trade(**{**d, 'side': Side(d['side'])})


def serialize_history(h: PositionHistory) -> dict:
    return {
        'id': h.id,
        'symbol': h.symbol,
        'side': h.side.value,
        'size': h.size,
        'entry_avg': h.entry_avg,
        'exit_avg': h.exit_avg,
        'notional': h.notional,
        'pnl': h.pnl,
        'fees': h.fees,
        'open_timestamp': h.open_timestamp,
        'close_timestamp': h.close_timestamp,
        'duration_sec': h.duration_sec
    }


def deserialize_history(d: dict) -> PositionHistory:
    return PositionHistory(**{**d, 'side': Side(d['side'])})


def serialize_position(position: Position, max_leverage: Optional[float] = None) -> dict:
    """Live position; with max_leverage also its isolated-margin view"""
    data = {
        'symbol': position.symbol,
        'side': position.side.value,
        'qty': position.qty,
        'entry_price': position.entry_price,
        'stop_loss': position.stop_loss,
        'take_profit': position.take_profit,
        'unrealized_pnl': position.unrealized_pnl,
        'accumulated_fees': position.accumulated_fees
    }
    if max_leverage is not None:
        data['leverage'] = max_leverage
        data['liquidation_price'] = liquidation_price(position, max_leverage)
        data['margin'] = isolated_margin(position, max_leverage)
        data['roe_pct'] = roe_pct(position, max_leverage)
    return data

# ============================================================================
# AGGREGATES
# ============================================================================

def serialize_account(snapshot: AccountSnapshot, limit: Optional[int] = 100) -> dict:
    """Account view; ledgers are newest first and cut to `limit` entries"""
    return {
        'symbol': snapshot.symbol,
        'last_price': snapshot.last_price,
        'orders': [serialize_order(o) for o in snapshot.orders[:limit]],
        'positions': [serialize_position(p, snapshot.max_leverage) for p in snapshot.positions],
        'trades': [serialize_trade(t) for t in snapshot.trades[:limit]],
        'position_history': [serialize_history(h) for h in snapshot.position_history[:limit]],
        'realized_by_symbol': dict(snapshot.realized_by_symbol),
        'fills': [serialize_trade(t) for t in snapshot.fills]
    }


def serialize_tick_result(result: TickResult, limit: Optional[int] = 100) -> dict:
    return {
        'type': 'tick',
        'time': result.tick.time,
        'price': result.tick.price,
        'volume': result.tick.volume,
        'regime': result.regime.value,
        'candle': serialize_candle_update(result.candle_update),
        'events': serialize_effects(result.events),
        'account': serialize_account(result.account, limit=limit)
    }
