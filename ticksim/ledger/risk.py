"""
Pre-trade checks: a simplified dollar-risk limit, the reduce-only guard
and a per-minute submission limiter.
"""
from typing import Optional
import logging

from ..core.types import Order, Position, RiskCheck, RiskLimits

logger = logging.getLogger(__name__)

DEFAULT_SL_PCT = 0.01
RATE_WINDOW_MS = 60_000


def validate_risk(
    order: Order,
    last_price: float,
    limits: RiskLimits,
    position: Optional[Position] = None
) -> RiskCheck:
    """
    Check an order before it is queued.

    Risk is approximated as qty * |sl_pct| with qty quoted in USD, so
    last_price does not enter the estimate.
    """
    if order.qty <= 0:
        return RiskCheck(ok=False, reason="qty<=0")

    sl_pct = abs(order.sl_pct if order.sl_pct is not None else DEFAULT_SL_PCT)
    risk_usd = order.qty * sl_pct
    if risk_usd > limits.max_risk_usd:
        return RiskCheck(ok=False, reason=f"risk>{limits.max_risk_usd}")

    if order.reduce_only:
        if position is None or position.qty <= 0:
            return RiskCheck(ok=False, reason="reduceOnly-without-position")
        if position.side == order.side:
            return RiskCheck(ok=False, reason="reduceOnly increases exposure")

    return RiskCheck(ok=True)


class RateLimiter:
    """Fixed 60 second window submission counter"""

    def __init__(self):
        self.window_start: Optional[int] = None
        self.count = 0

    def rate_limit(self, now_ms: int, limit_per_minute: int) -> bool:
        """Count one submission; True while the window is under its limit"""
        if self.window_start is None or now_ms - self.window_start > RATE_WINDOW_MS:
            self.window_start = now_ms
            self.count = 0

        self.count += 1
        allowed = self.count <= limit_per_minute
        if not allowed:
            logger.warning(f"Rate limit hit: {self.count} submissions in window (limit {limit_per_minute})")
        return allowed

    def reset(self):
        self.window_start = None
        self.count = 0
