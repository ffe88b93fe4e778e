"""
config.py - Engine configuration from YAML and the environment

Reads a YAML file, loads a .env file if one is present, replaces ${VAR}
references with environment values and builds frozen dataclasses. The
builders at the bottom turn a validated configuration into live objects.

Usage:
    engine = load_engine("config.example.yaml")

or, step by step:
    cfg = load_config("config.example.yaml")
    configure_logging(cfg.log_level)
    engine = build_engine(cfg)
"""

from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union
import logging
import os
import re

import yaml
from dotenv import load_dotenv

from .core import (
    ENGINE_ACCOUNT, LIQUIDATION_BONUS, LIQUIDATION_PRECISION, LIQUIDATION_THRESHOLD,
    ConfigurationError, FungibleToken, RiskParameters, StableUnitSupply,
    to_feed, to_wad,
)
from .engine import StableEngine
from .logging_setup import configure_logging
from .pricing_source import PriceOracle, StaticPriceOracle
from .registry import AssetRegistry
from .tokens import InMemoryStableUnit, InMemoryToken

logger = logging.getLogger(__name__)


# ============================================================================
# CONFIGURATION DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True)
class CollateralConfig:
    """One approved collateral asset and its oracle reference."""
    asset: str = ""
    oracle: str = ""
    initial_price: Optional[str] = None


@dataclass(frozen=True)
class RiskConfig:
    """Risk parameters as written in the file; min_health_factor is human-scale."""
    liquidation_threshold: int = LIQUIDATION_THRESHOLD
    liquidation_bonus: int = LIQUIDATION_BONUS
    liquidation_precision: int = LIQUIDATION_PRECISION
    min_health_factor: str = "1"


@dataclass(frozen=True)
class EngineConfig:
    """
    Complete engine configuration.

    Attributes:
        name: Label used in log output
        stable_symbol: Symbol of the in-memory stable unit
        address: Account identifier of the engine on its collaborators
        strict_ordering: Perform external transfers only after every check
        log_level: Root logging level applied by load_engine
        collateral: Approved assets, in registration order
        risk: Liquidation threshold, bonus and minimum health factor
    """
    name: str = "stable-engine"
    stable_symbol: str = "DSC"
    address: str = ENGINE_ACCOUNT
    strict_ordering: bool = False
    log_level: str = "INFO"
    collateral: Tuple[CollateralConfig, ...] = ()
    risk: RiskConfig = field(default_factory=RiskConfig)


# ============================================================================
# ENVIRONMENT INTERPOLATION
# ============================================================================

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)}")


def _interpolate_env(value: Any) -> Any:
    """Recursively replace ${VAR} references with environment variable values."""
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _interpolate_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_env(item) for item in value]
    return value


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


# ============================================================================
# YAML TO DATACLASS
# ============================================================================

def _build_collateral(raw: List[Dict[str, Any]]) -> Tuple[CollateralConfig, ...]:
    entries: List[CollateralConfig] = []
    for item in raw:
        price = item.get("initial_price")
        entries.append(
            CollateralConfig(
                asset=str(item.get("asset", "")),
                oracle=str(item.get("oracle", "")),
                initial_price=None if price in (None, "") else str(price),
            )
        )
    return tuple(entries)


def _build_risk(raw: Dict[str, Any]) -> RiskConfig:
    return RiskConfig(
        liquidation_threshold=int(raw.get("liquidation_threshold", LIQUIDATION_THRESHOLD)),
        liquidation_bonus=int(raw.get("liquidation_bonus", LIQUIDATION_BONUS)),
        liquidation_precision=int(raw.get("liquidation_precision", LIQUIDATION_PRECISION)),
        min_health_factor=str(raw.get("min_health_factor", "1")),
    )


def _build_engine_config(raw: Dict[str, Any]) -> EngineConfig:
    engine_raw = raw.get("engine", {}) or {}
    return EngineConfig(
        name=str(engine_raw.get("name", "stable-engine")),
        stable_symbol=str(engine_raw.get("stable_symbol", "DSC")),
        address=str(engine_raw.get("address", ENGINE_ACCOUNT)),
        strict_ordering=_as_bool(engine_raw.get("strict_ordering", False)),
        log_level=str(engine_raw.get("log_level", "INFO")),
        collateral=_build_collateral(raw.get("collateral", []) or []),
        risk=_build_risk(raw.get("risk", {}) or {}),
    )


# ============================================================================
# LOADING AND VALIDATION
# ============================================================================

def load_config(config_path: Union[str, Path]) -> EngineConfig:
    """
    Load and validate engine configuration from YAML + .env.

    Args:
        config_path: Path to the YAML file

    Raises:
        FileNotFoundError: If the file does not exist
        ConfigurationError: If the configuration is inconsistent
    """
    load_dotenv()

    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    cfg = _build_engine_config(_interpolate_env(raw))
    _validate(cfg)
    logger.info("Configuration loaded from %s", config_path)
    return cfg


def _validate(cfg: EngineConfig) -> None:
    """Raise ConfigurationError on invalid configuration."""
    if not cfg.collateral:
        raise ConfigurationError("At least one collateral asset must be configured")
    for entry in cfg.collateral:
        if not entry.asset:
            raise ConfigurationError("Collateral entry has no asset")
        if not entry.oracle:
            raise ConfigurationError(f"Collateral '{entry.asset}' has no oracle")
    build_registry(cfg)
    build_risk_parameters(cfg)


# ============================================================================
# BUILDERS
# ============================================================================

def build_registry(cfg: EngineConfig) -> AssetRegistry:
    return AssetRegistry(
        [entry.asset for entry in cfg.collateral],
        [entry.oracle for entry in cfg.collateral],
    )


def build_risk_parameters(cfg: EngineConfig) -> RiskParameters:
    try:
        min_health_factor = to_wad(cfg.risk.min_health_factor)
    except ArithmeticError as e:
        raise ConfigurationError(
            f"Invalid min_health_factor {cfg.risk.min_health_factor!r}"
        ) from e
    return RiskParameters(
        liquidation_threshold=cfg.risk.liquidation_threshold,
        liquidation_bonus=cfg.risk.liquidation_bonus,
        liquidation_precision=cfg.risk.liquidation_precision,
        min_health_factor=min_health_factor,
    )


def build_static_oracle(cfg: EngineConfig) -> StaticPriceOracle:
    """Static oracle seeded with every configured initial_price."""
    prices: Dict[str, int] = {}
    for entry in cfg.collateral:
        if entry.initial_price is not None:
            prices[entry.oracle] = to_feed(entry.initial_price)
    return StaticPriceOracle(prices)


def build_engine(
    cfg: EngineConfig,
    oracle: Optional[PriceOracle] = None,
    collateral_tokens: Optional[Mapping[str, FungibleToken]] = None,
    stable_unit: Optional[StableUnitSupply] = None,
) -> StableEngine:
    """
    Wire an engine from configuration.

    Missing collaborators are replaced by in-memory ones: a static oracle
    seeded from the config and one InMemoryToken per collateral asset.
    """
    if oracle is None:
        oracle = build_static_oracle(cfg)
    if collateral_tokens is None:
        collateral_tokens = {
            entry.asset: InMemoryToken(entry.asset, operator=cfg.address)
            for entry in cfg.collateral
        }
    if stable_unit is None:
        stable_unit = InMemoryStableUnit(cfg.stable_symbol, operator=cfg.address)

    engine = StableEngine(
        build_registry(cfg),
        oracle,
        collateral_tokens,
        stable_unit,
        risk=build_risk_parameters(cfg),
        strict_ordering=cfg.strict_ordering,
        address=cfg.address,
    )
    logger.info(
        "Engine %s built: %d collateral assets, strict_ordering=%s",
        cfg.name, len(cfg.collateral), cfg.strict_ordering,
    )
    return engine


def load_engine(
    config_path: Union[str, Path],
    oracle: Optional[PriceOracle] = None,
    collateral_tokens: Optional[Mapping[str, FungibleToken]] = None,
    stable_unit: Optional[StableUnitSupply] = None,
) -> StableEngine:
    """
    Load a configuration file, apply its log level and build the engine.

    Collaborators not passed in are built as in build_engine().
    """
    cfg = load_config(config_path)
    configure_logging(cfg.log_level)
    return build_engine(cfg, oracle, collateral_tokens, stable_unit)
