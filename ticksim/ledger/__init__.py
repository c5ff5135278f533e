"""
Paper-trading ledger: order matching, positions, risk checks.
"""

from .account import TradingAccount
from .matching import MatchingEngine
from .positions import (
    apply_fill, isolated_margin, liquidation_price, record_fill_for_history, roe_pct
)
from .risk import RateLimiter, validate_risk

__all__ = [
    "TradingAccount",
    "MatchingEngine",
    "apply_fill",
    "record_fill_for_history",
    "liquidation_price",
    "isolated_margin",
    "roe_pct",
    "RateLimiter",
    "validate_risk"
]
