"""
Synthetic Tick Simulation Engine

A deterministic, regime-switching jump-diffusion market simulator for a
single symbol, with event shocks, candle aggregation and a paper-trading
ledger.
"""

__version__ = "1.0.0"

from .core.config import ConfigurationError, EnginesConfig, load_config
from .core.rng import RNG
from .core.types import (
    Candle, Order, OrderStatus, OrderType, Position, PositionHistory,
    Regime, Side, Tick, TickResult, Trade
)
from .ledger.account import TradingAccount
from .simulation import MarketSimulation

__all__ = [
    "MarketSimulation",
    "TradingAccount",
    "EnginesConfig",
    "ConfigurationError",
    "load_config",
    "RNG",
    "Candle",
    "Order",
    "OrderStatus",
    "OrderType",
    "Position",
    "PositionHistory",
    "Regime",
    "Side",
    "Tick",
    "TickResult",
    "Trade"
]
