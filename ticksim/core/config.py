"""
Typed engine configuration.
Validated eagerly: a malformed file fails at load time, never mid-simulation.
"""
import json
import logging
from pathlib import Path
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, Field, ValidationError, model_validator

from .types import Regime

logger = logging.getLogger(__name__)


class ConfigurationError(ValueError):
    """Invalid regime, transition or event parameters"""


# ============================================================================
# SECTIONS
# ============================================================================

class RegimeParams(BaseModel):
    """Per-regime process statistics, all per simulated second"""
    mu: float
    sigma: float = Field(ge=0)
    lambda_: float = Field(ge=0, alias="lambda")
    kappa: float = Field(ge=0)
    event_rate: float = Field(ge=0, alias="eventRate")

    model_config = {"populate_by_name": True}


class TransitionEdge(BaseModel):
    to: Regime
    p: float = Field(ge=0)


class EventDef(BaseModel):
    impact_mean: float = Field(alias="impactMean")
    impact_std: float = Field(ge=0, alias="impactStd")
    vol_boost: float = Field(gt=0, alias="volBoost")
    mu_boost: float = Field(alias="muBoost")
    half_life_sec: float = Field(gt=0, alias="halfLifeSec")
    weight: float = Field(default=1.0, ge=0)
    text: str = ""

    model_config = {"populate_by_name": True}


class InitialConfig(BaseModel):
    price: float = Field(gt=0)
    supply: float = Field(default=1_000_000_000, gt=0)


class VolumeConfig(BaseModel):
    """Volume model overrides"""
    base: float = 120
    sigma_scale: float = Field(default=2500, alias="sigmaScale")
    ret_scale: float = Field(default=8000, alias="retScale")
    ewma_alpha: float = Field(default=0.15, ge=0, le=1, alias="ewmaAlpha")
    noise_std: float = Field(default=0.35, ge=0, alias="noiseStd")
    min: float = Field(default=5, ge=0)
    max: float = Field(default=50000, gt=0)
    drift_std: float = Field(default=25, ge=0, alias="driftStd")
    season_amp: float = Field(default=0.15, ge=0, le=1, alias="seasonAmp")
    season_sec: float = Field(default=300, gt=0, alias="seasonSec")

    model_config = {"populate_by_name": True}

    @model_validator(mode="after")
    def _check_range(self) -> "VolumeConfig":
        if self.min > self.max:
            raise ValueError(f"volume min {self.min} exceeds max {self.max}")
        return self


# ============================================================================
# ROOT
# ============================================================================

class EnginesConfig(BaseModel):
    """Full configuration of the event and price engines"""
    initial: InitialConfig
    start_price: Optional[float] = Field(default=None, gt=0, alias="startPrice")
    regimes: Dict[Regime, RegimeParams]
    transitions: Dict[Regime, List[TransitionEdge]] = Field(default_factory=dict)
    transition_check_sec: float = Field(gt=0, alias="transitionCheckSec")
    event_defs: Dict[str, EventDef] = Field(alias="eventDefs")
    mr_tau_sec: float = Field(default=60, gt=0, alias="mrTauSec")
    mr_k: float = Field(default=0, ge=0, alias="mrK")
    volume: VolumeConfig = Field(default_factory=VolumeConfig)

    model_config = {"populate_by_name": True}

    @model_validator(mode="after")
    def _check_tables(self) -> "EnginesConfig":
        missing = [r.value for r in Regime if r not in self.regimes]
        if missing:
            raise ValueError(f"missing regime parameters: {missing}")
        if not self.event_defs:
            raise ValueError("at least one event type must be defined")
        if sum(d.weight for d in self.event_defs.values()) <= 0:
            raise ValueError("event type weights must not all be zero")
        return self

    @property
    def opening_price(self) -> float:
        return self.start_price if self.start_price is not None else self.initial.price

    @classmethod
    def parse(cls, data: dict) -> "EnginesConfig":
        """Validate a raw mapping, raising ConfigurationError on any problem"""
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid engine configuration: {e}") from e

    @classmethod
    def default(cls) -> "EnginesConfig":
        return cls.parse(DEFAULT_CONFIG)


def load_config(path: Union[str, Path]) -> EnginesConfig:
    """Load and validate a JSON configuration file"""
    path = Path(path)
    try:
        with open(path) as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Cannot read configuration {path}: {e}") from e

    config = EnginesConfig.parse(data)
    logger.info(
        f"Loaded configuration from {path}: {len(config.event_defs)} event types, "
        f"opening price {config.opening_price}"
    )
    return config


DEFAULT_CONFIG = {
    "initial": {"price": 0.0001, "supply": 1_000_000_000},
    "regimes": {
        "bull": {"mu": 0.0004, "sigma": 0.006, "lambda": 0.01, "kappa": 0.02, "eventRate": 0.02},
        "bear": {"mu": -0.0004, "sigma": 0.007, "lambda": 0.01, "kappa": 0.025, "eventRate": 0.02},
        "range": {"mu": 0.0, "sigma": 0.004, "lambda": 0.005, "kappa": 0.015, "eventRate": 0.01},
        "mania": {"mu": 0.0015, "sigma": 0.014, "lambda": 0.04, "kappa": 0.04, "eventRate": 0.05},
        "rugRisk": {"mu": -0.001, "sigma": 0.012, "lambda": 0.03, "kappa": 0.06, "eventRate": 0.04},
    },
    "transitions": {
        "bull": [{"to": "bull", "p": 0.6}, {"to": "range", "p": 0.25}, {"to": "mania", "p": 0.1}, {"to": "bear", "p": 0.05}],
        "bear": [{"to": "bear", "p": 0.6}, {"to": "range", "p": 0.3}, {"to": "rugRisk", "p": 0.1}],
        "range": [{"to": "range", "p": 0.5}, {"to": "bull", "p": 0.25}, {"to": "bear", "p": 0.25}],
        "mania": [{"to": "mania", "p": 0.4}, {"to": "bull", "p": 0.3}, {"to": "rugRisk", "p": 0.3}],
        "rugRisk": [{"to": "rugRisk", "p": 0.3}, {"to": "bear", "p": 0.5}, {"to": "range", "p": 0.2}],
    },
    "transitionCheckSec": 30,
    "eventDefs": {
        "CT_Hype": {
            "impactMean": 0.06, "impactStd": 0.04, "volBoost": 1.8, "muBoost": 0.0008,
            "halfLifeSec": 60, "weight": 0.5, "text": "CT hype post goes viral",
        },
        "Dev_Rug_Rumor": {
            "impactMean": -0.1, "impactStd": 0.05, "volBoost": 2.2, "muBoost": -0.001,
            "halfLifeSec": 90, "weight": 0.3, "text": "Dev wallet rumor spreads",
        },
        "Listing_Tier3": {
            "impactMean": 0.12, "impactStd": 0.06, "volBoost": 1.5, "muBoost": 0.0006,
            "halfLifeSec": 120, "weight": 0.2, "text": "Listing on a tier-3 exchange",
        },
    },
}
