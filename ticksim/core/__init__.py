"""
Core simulation components.
"""

from .aggregator import CandleAggregator
from .config import ConfigurationError, EnginesConfig, load_config
from .events import EventEngine
from .price import PriceEngine
from .rng import RNG
from .time_engine import TickScheduler

__all__ = [
    "CandleAggregator",
    "ConfigurationError",
    "EnginesConfig",
    "load_config",
    "EventEngine",
    "PriceEngine",
    "RNG",
    "TickScheduler"
]
