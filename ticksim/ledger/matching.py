"""
Pure functional fill rules.
All functions are stateless: given an order and the last price, decide
whether and at what price it fills.
"""
from typing import Optional

from ..core.types import Order, OrderType, Side


class MatchingEngine:
    """
    Stateless tick matcher.
    No book depth: every fill happens against the simulated last price.
    """

    @staticmethod
    def is_triggered(order: Order, last_price: float) -> bool:
        """A stop trigger passes once price crosses it in the order's direction"""
        if order.trigger is None:
            return True
        if order.side == Side.BUY:
            return last_price >= order.trigger
        return last_price <= order.trigger

    @staticmethod
    def market_fill_price(side: Side, last_price: float, slippage_pct: float) -> float:
        """Last price moved against the taker by slippage_pct percent"""
        if side == Side.BUY:
            return last_price * (1 + slippage_pct / 100)
        return last_price * (1 - slippage_pct / 100)

    @staticmethod
    def can_limit_fill(order: Order, last_price: float) -> bool:
        """Price has reached the limit in the order's favour"""
        if order.order_type != OrderType.LIMIT or order.price is None:
            return False
        if order.side == Side.BUY:
            return last_price <= order.price
        return last_price >= order.price

    @staticmethod
    def fill_price(order: Order, last_price: float) -> Optional[float]:
        """
        Price this order fills at on a tick, or None if it keeps waiting.

        Market and IOC fill fully once triggered; untriggered they act as
        stop orders. Limits fill at their own price once triggered and crossed.
        """
        if not MatchingEngine.is_triggered(order, last_price):
            return None

        if order.order_type in (OrderType.MARKET, OrderType.IOC):
            return MatchingEngine.market_fill_price(order.side, last_price, order.slippage_pct)

        if MatchingEngine.can_limit_fill(order, last_price):
            return order.price

        return None
