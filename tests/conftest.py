import copy

import pytest

from ticksim.core.config import DEFAULT_CONFIG, EnginesConfig
from ticksim.ledger.account import TradingAccount


@pytest.fixture
def raw_config():
    return copy.deepcopy(DEFAULT_CONFIG)


@pytest.fixture
def quiet_config(raw_config):
    """Default engines with no automatic event arrivals"""
    for params in raw_config["regimes"].values():
        params["eventRate"] = 0
    return EnginesConfig.parse(raw_config)


@pytest.fixture
def account():
    """Fee-free, slippage-free account on a frozen clock"""
    return TradingAccount(fee_bps=0.0, slippage_pct=0.0, clock=lambda: 0)
