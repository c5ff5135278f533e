"""
Domain models for the tick simulation.
Records handed to observers are immutable; only the candle under
construction is mutated in place by the aggregator.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple, Dict

# ============================================================================
# ENUMS
# ============================================================================

class Side(Enum):
    BUY = "buy"
    SELL = "sell"

    @property
    def opposite(self) -> 'Side':
        return Side.SELL if self is Side.BUY else Side.BUY

class OrderType(Enum):
    MARKET = "market"
    LIMIT = "limit"
    IOC = "ioc"  # Immediate or cancel, filled like a market order

class OrderStatus(Enum):
    NEW = "new"
    PARTIALLY_FILLED = "partfilled"
    FILLED = "filled"
    CANCELLED = "canceled"
    REJECTED = "rejected"

class Regime(Enum):
    BULL = "bull"
    BEAR = "bear"
    RANGE = "range"
    MANIA = "mania"
    RUG_RISK = "rugRisk"

# ============================================================================
# MARKET MODELS
# ============================================================================

@dataclass(frozen=True)
class Tick:
    """One simulated print"""
    time: int      # unix ms
    price: float
    volume: float

@dataclass
class Candle:
    """OHLCV candlestick, mutable while its bucket is open"""
    time: int      # bucket start, unix sec
    open: float
    high: float
    low: float
    close: float
    volume: float

@dataclass(frozen=True)
class CandleUpdate:
    """Result of folding one tick into the candle series"""
    mode: str  # 'new' or 'update'
    candle: Candle

@dataclass(frozen=True)
class SimEvent:
    """News event with a one-shot price jump and a decaying tail"""
    id: str
    timestamp: int  # unix ms
    type: str
    text: str
    impact: float  # [-0.4, 0.4], multiplicative jump factor - 1
    volatility_boost: float
    half_life_sec: float

@dataclass(frozen=True)
class EventImpactSummary:
    """Aggregate effect of all active events on one tick"""
    price_jump_multiplier: float = 1.0
    drift_boost: float = 0.0
    volatility_boost_multiplier: float = 1.0
    new_events: Tuple[SimEvent, ...] = ()

# ============================================================================
# TRADING MODELS (Immutable)
# ============================================================================

@dataclass(frozen=True)
class Order:
    """Immutable order representation"""
    id: str
    timestamp: int
    symbol: str
    side: Side
    order_type: OrderType
    qty: float
    price: Optional[float] = None  # limit price, or fill price once a market order fills
    trigger: Optional[float] = None  # stop trigger
    sl_pct: Optional[float] = None
    tp_pct: Optional[float] = None
    slippage_pct: float = 0.0
    reduce_only: bool = False
    status: OrderStatus = OrderStatus.NEW

    @property
    def is_terminal(self) -> bool:
        return self.status in (OrderStatus.FILLED, OrderStatus.CANCELLED, OrderStatus.REJECTED)

@dataclass(frozen=True)
class Trade:
    """Immutable fill record"""
    id: str
    order_id: str
    price: float
    qty: float
    fee: float
    timestamp: int
    side: Side

@dataclass(frozen=True)
class Position:
    """Open exposure on one symbol"""
    symbol: str
    side: Side
    qty: float
    entry_price: float
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
    unrealized_pnl: float = 0.0
    accumulated_fees: float = 0.0

@dataclass(frozen=True)
class PositionHistory:
    """Closed round trip"""
    id: str
    symbol: str
    side: Side
    size: float
    entry_avg: float
    exit_avg: float
    notional: float
    pnl: float
    fees: float
    open_timestamp: int
    close_timestamp: int
    duration_sec: int

@dataclass(frozen=True)
class RiskLimits:
    max_risk_usd: float = 200.0
    max_orders_per_minute: int = 20
    max_leverage: float = 3.0

# ============================================================================
# RESULTS
# ============================================================================

@dataclass(frozen=True)
class RiskCheck:
    """Outcome of a pre-trade risk check"""
    ok: bool
    reason: Optional[str] = None

@dataclass(frozen=True)
class PlaceResult:
    """Result of an order submission"""
    order: Optional[Order] = None
    rejected: bool = False
    rejection_reason: Optional[str] = None

@dataclass(frozen=True)
class AccountSnapshot:
    """Read-only view of the ledger published after every tick"""
    symbol: str
    last_price: float
    orders: Tuple[Order, ...] = ()  # newest first
    positions: Tuple[Position, ...] = ()
    trades: Tuple[Trade, ...] = ()  # newest first
    position_history: Tuple[PositionHistory, ...] = ()  # newest first
    realized_by_symbol: Dict[str, float] = field(default_factory=dict)
    fills: Tuple[Trade, ...] = ()  # trades produced by the latest tick
    max_leverage: float = 3.0

@dataclass(frozen=True)
class TickResult:
    """Everything one simulation step produced"""
    tick: Tick
    regime: Regime
    candle_update: CandleUpdate
    events: EventImpactSummary
    account: AccountSnapshot
