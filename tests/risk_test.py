from ticksim.core.types import Order, OrderType, Position, RiskLimits, Side
from ticksim.ledger.risk import RateLimiter, validate_risk


def _order(qty, side=Side.BUY, sl_pct=None, reduce_only=False):
    return Order(
        id="o1",
        timestamp=0,
        symbol="MEME/USDC",
        side=side,
        order_type=OrderType.MARKET,
        qty=qty,
        sl_pct=sl_pct,
        reduce_only=reduce_only
    )


def test_default_stop_distance_used_for_risk():
    limits = RiskLimits(max_risk_usd=100)
    assert validate_risk(_order(10_000), 1.0, limits).ok
    check = validate_risk(_order(10_001), 1.0, limits)
    assert not check.ok
    assert check.reason == "risk>100"


def test_negative_stop_pct_uses_magnitude():
    limits = RiskLimits(max_risk_usd=10)
    assert not validate_risk(_order(100, sl_pct=-0.2), 1.0, limits).ok


def test_reduce_only_checks_position_side():
    limits = RiskLimits()
    long = Position(symbol="MEME/USDC", side=Side.BUY, qty=5, entry_price=1.0)

    assert validate_risk(_order(1, Side.SELL, reduce_only=True), 1.0, limits).reason == "reduceOnly-without-position"
    assert validate_risk(_order(1, Side.BUY, reduce_only=True), 1.0, limits, long).reason == "reduceOnly increases exposure"
    assert validate_risk(_order(1, Side.SELL, reduce_only=True), 1.0, limits, long).ok


def test_rate_limit_window():
    limiter = RateLimiter()
    assert all(limiter.rate_limit(0, 20) for _ in range(20))
    assert not limiter.rate_limit(1_000, 20)
    assert not limiter.rate_limit(60_000, 20)
    assert limiter.rate_limit(60_001, 20)
    assert limiter.count == 1


def test_rate_limit_reset():
    limiter = RateLimiter()
    limiter.rate_limit(0, 1)
    assert not limiter.rate_limit(0, 1)
    limiter.reset()
    assert limiter.rate_limit(0, 1)
