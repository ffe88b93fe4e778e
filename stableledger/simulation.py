"""
simulation.py - Price-path stress simulation

Drives an engine through simulated collateral prices and lets a keeper
liquidate whatever becomes insolvent along the way.

Components:
- generate_price_paths: seeded geometric Brownian motion paths (numpy)
- load_price_paths: feeds the paths into a TimeSeriesPriceOracle
- run_stress_simulation: step the oracle clock, liquidate, collect a report

The engine under test must have been built on the TimeSeriesPriceOracle that
receives the paths. Rejected liquidations are expected (a position may not
improve, or the keeper may run out of stable units) and are counted by
exception type in the report.
"""

from __future__ import annotations
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Mapping, Optional, Tuple
import logging

import numpy as np

from .core import FEED_DECIMALS, EngineError
from .engine import StableEngine
from .pricing_source import TimeSeriesPriceOracle

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SimulationReport:
    """
    Outcome of a stress run.

    Attributes:
        steps: Number of price steps simulated
        liquidations_attempted: Liquidation calls made by the keeper
        liquidations_succeeded: Calls that completed
        rejections: Exception class name -> count of rejected calls
        insolvent_accounts: Accounts still below the minimum at the end
        conservation_valid: Result of verify_conservation() at the end
        final_prices: Oracle reference -> last 8-decimal price
    """
    steps: int
    liquidations_attempted: int
    liquidations_succeeded: int
    rejections: Mapping[str, int]
    insolvent_accounts: Tuple[str, ...]
    conservation_valid: bool
    final_prices: Mapping[str, int]


def generate_price_paths(
    initial_prices: Mapping[str, int],
    steps: int,
    volatility: float = 0.8,
    drift: float = 0.0,
    dt: float = 1.0 / 365.0,
    seed: Optional[int] = None,
) -> Dict[str, np.ndarray]:
    """
    Simulate geometric Brownian motion for each feed.

    Args:
        initial_prices: Oracle reference -> starting 8-decimal price
        steps: Number of steps after the starting point
        volatility: Annualized volatility
        drift: Annualized drift
        dt: Step length in years
        seed: Seed for numpy's default_rng; the same seed gives the same paths

    Returns:
        Oracle reference -> int64 array of length steps + 1, starting with the
        initial price, in 8-decimal units (never below 1)
    """
    if steps < 0:
        raise ValueError(f"steps must be non-negative, got {steps}")
    rng = np.random.default_rng(seed)
    paths: Dict[str, np.ndarray] = {}
    scale = 10 ** FEED_DECIMALS
    for ref in sorted(initial_prices):
        shocks = rng.standard_normal(steps)
        log_returns = (drift - 0.5 * volatility ** 2) * dt + volatility * np.sqrt(dt) * shocks
        start = initial_prices[ref] / scale
        levels = start * np.exp(np.concatenate(([0.0], np.cumsum(log_returns))))
        paths[ref] = np.maximum(np.floor(levels * scale), 1).astype(np.int64)
        paths[ref][0] = initial_prices[ref]
    return paths


def load_price_paths(
    oracle: TimeSeriesPriceOracle,
    paths: Mapping[str, np.ndarray],
    start_time: datetime,
    interval: timedelta = timedelta(days=1),
) -> List[datetime]:
    """Add every path point to oracle, one interval apart; return the timestamps."""
    lengths = {len(path) for path in paths.values()}
    if len(lengths) > 1:
        raise ValueError(f"Price paths differ in length: {sorted(lengths)}")
    length = lengths.pop() if lengths else 0
    timestamps = [start_time + i * interval for i in range(length)]
    for ref, path in paths.items():
        for ts, price in zip(timestamps, path):
            oracle.add_price(ref, ts, int(price))
    return timestamps


def _keeper_round(
    engine: StableEngine,
    keeper: str,
    close_factor: float,
    rejections: Counter,
) -> Tuple[int, int]:
    attempted = succeeded = 0
    for target in engine.liquidatable_accounts():
        if target == keeper:
            continue
        debt = engine.get_debt(target)
        debt_to_cover = max(int(debt * close_factor), 1)
        asset = max(
            engine.get_collateral_assets(),
            key=lambda a: engine.get_collateral_balance_of_user(target, a),
        )
        attempted += 1
        try:
            engine.liquidate(keeper, asset, target, debt_to_cover)
        except EngineError as exc:
            rejections[type(exc).__name__] += 1
            logger.debug("keeper could not liquidate %s: %s", target, exc)
        else:
            succeeded += 1
    return attempted, succeeded


def run_stress_simulation(
    engine: StableEngine,
    oracle: TimeSeriesPriceOracle,
    timestamps: List[datetime],
    keeper: str,
    close_factor: float = 0.5,
) -> SimulationReport:
    """
    Step through timestamps, letting keeper liquidate after each price move.

    The keeper must already hold stable units and have approved the engine to
    pull them.

    Args:
        engine: Engine priced by oracle
        oracle: Time-series oracle loaded with the price paths
        timestamps: Clock values to visit, ascending
        keeper: Liquidator account
        close_factor: Share of a target's debt covered per liquidation
    """
    if not 0 < close_factor <= 1:
        raise ValueError(f"close_factor must be in (0, 1], got {close_factor}")

    rejections: Counter = Counter()
    attempted = succeeded = 0
    for ts in timestamps:
        oracle.advance_time(ts)
        a, s = _keeper_round(engine, keeper, close_factor, rejections)
        attempted += a
        succeeded += s

    conservation = engine.verify_conservation()
    final_prices = {
        ref: oracle.latest_price(ref).price
        for ref in (engine.get_price_feed(asset) for asset in engine.get_collateral_assets())
    }
    report = SimulationReport(
        steps=len(timestamps),
        liquidations_attempted=attempted,
        liquidations_succeeded=succeeded,
        rejections=dict(rejections),
        insolvent_accounts=tuple(engine.liquidatable_accounts()),
        conservation_valid=conservation['valid'],
        final_prices=final_prices,
    )
    logger.info(
        "simulation finished: %d steps, %d/%d liquidations succeeded, %d still insolvent",
        report.steps, succeeded, attempted, len(report.insolvent_accounts),
    )
    return report
