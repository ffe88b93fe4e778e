"""
pricing_source.py - Price feeds for collateral valuation

Provides the oracle side of the engine:

Classes:
- PriceReading: One feed answer (8-decimal signed USD price plus metadata)
- PriceOracle: Protocol defining the feed interface
- StaticPriceOracle: Prices that change only when updated explicitly
- TimeSeriesPriceOracle: Time-varying prices driven by a logical clock
- OracleAdapter: Normalizes readings to the engine's 18-decimal USD scale

Readings are used exactly as reported. No staleness, sign or bounds check is
applied anywhere in this module.
"""

from __future__ import annotations
from bisect import bisect_right
from datetime import datetime
from typing import Dict, List, NamedTuple, Optional, Protocol, Tuple, runtime_checkable
import logging

from .core import ADDITIONAL_FEED_PRECISION
from .registry import AssetRegistry

logger = logging.getLogger(__name__)


class PriceReading(NamedTuple):
    """Feed answer; ``price`` carries 8 fractional digits."""
    price: int
    updated_at: Optional[datetime] = None
    round_id: int = 0


@runtime_checkable
class PriceOracle(Protocol):
    """
    Protocol for price sources.

    A price oracle answers with the latest reading for an oracle reference,
    denominated in USD with 8 fractional digits.
    """

    def latest_price(self, oracle_ref: str) -> PriceReading:
        """Return the latest reading for a feed."""
        ...


class StaticPriceOracle:
    """
    Oracle with explicitly managed prices.

    Prices stay constant until update_price() is called. Every update starts a
    new round.
    """

    def __init__(self, prices: Optional[Dict[str, int]] = None):
        """
        Args:
            prices: Mapping of oracle reference to 8-decimal price
        """
        self.prices: Dict[str, int] = dict(prices or {})
        self._rounds: Dict[str, int] = {ref: 1 for ref in self.prices}

    def latest_price(self, oracle_ref: str) -> PriceReading:
        if oracle_ref not in self.prices:
            raise LookupError(f"No price for feed {oracle_ref!r}")
        return PriceReading(self.prices[oracle_ref], None, self._rounds[oracle_ref])

    def update_price(self, oracle_ref: str, price: int) -> None:
        """Publish a new price for a feed."""
        self.prices[oracle_ref] = int(price)
        self._rounds[oracle_ref] = self._rounds.get(oracle_ref, 0) + 1

    def update_prices(self, prices: Dict[str, int]) -> None:
        """Update multiple prices at once."""
        for ref, price in prices.items():
            self.update_price(ref, price)

    def __repr__(self):
        return f"StaticPriceOracle({len(self.prices)} feeds)"


class TimeSeriesPriceOracle:
    """
    Oracle with time-varying prices.

    Stores historical observations and answers with the most recent one at or
    before its logical clock. The clock only moves forward.

    Supports two initialization patterns:
    - Empty initialization for incremental price addition via add_price()
    - Batch initialization with complete price paths for simulations
    """

    def __init__(
        self,
        price_paths: Optional[Dict[str, List[Tuple[datetime, int]]]] = None,
        start_time: Optional[datetime] = None,
    ):
        """
        Initialize the oracle.

        Args:
            price_paths: Optional dict mapping oracle references to lists of
                        (timestamp, price) tuples
            start_time: Initial logical time (default: earliest observation,
                        or 1970-01-01 when there is none)

        Examples:
            oracle = TimeSeriesPriceOracle({
                'ETH/USD': [(t0, 2000_00000000), (t1, 1800_00000000)],
            })
            oracle.advance_time(t1)
        """
        self.price_history: Dict[str, List[Tuple[datetime, int]]] = {}

        if price_paths:
            for ref, path in price_paths.items():
                if not path:
                    continue
                self.price_history[ref] = sorted(path, key=lambda x: x[0])

        if start_time is None:
            earliest = [path[0][0] for path in self.price_history.values()]
            start_time = min(earliest) if earliest else datetime(1970, 1, 1)
        self._current_time = start_time

    @property
    def current_time(self) -> datetime:
        return self._current_time

    def advance_time(self, new_time: datetime) -> None:
        """
        Move the logical clock forward.

        Raises:
            ValueError: If new_time is before the current time
        """
        if new_time < self._current_time:
            raise ValueError(
                f"Cannot move time backwards: {new_time} < {self._current_time}"
            )
        self._current_time = new_time

    def add_price(self, oracle_ref: str, timestamp: datetime, price: int) -> None:
        """Add an observation for a feed, keeping history sorted by time."""
        history = self.price_history.setdefault(oracle_ref, [])
        history.append((timestamp, int(price)))
        history.sort(key=lambda x: x[0])

    def add_prices(self, prices: Dict[str, int], timestamp: datetime) -> None:
        """Add observations for several feeds at the same timestamp."""
        for ref, price in prices.items():
            self.add_price(ref, timestamp, price)

    def latest_price(self, oracle_ref: str) -> PriceReading:
        """
        Return the most recent observation at or before the current time.

        Uses binary search for O(log n) lookup. The round id is the
        observation's 1-based position in the history.

        Raises:
            LookupError: If the feed has no observation yet
        """
        history = self.price_history.get(oracle_ref)
        if not history:
            raise LookupError(f"No price for feed {oracle_ref!r}")

        timestamps = [ts for ts, _ in history]
        idx = bisect_right(timestamps, self._current_time)
        if idx == 0:
            raise LookupError(
                f"No price for feed {oracle_ref!r} at or before {self._current_time}"
            )
        ts, price = history[idx - 1]
        return PriceReading(price, ts, idx)

    def get_all_timestamps(self, oracle_ref: Optional[str] = None) -> List[datetime]:
        """
        Get all observation timestamps.

        Args:
            oracle_ref: If specified, timestamps of that feed only.
                        If None, union across all feeds.
        """
        if oracle_ref:
            return [ts for ts, _ in self.price_history.get(oracle_ref, [])]

        all_times = set()
        for path in self.price_history.values():
            all_times.update(ts for ts, _ in path)
        return sorted(all_times)

    def __repr__(self):
        total_observations = sum(len(history) for history in self.price_history.values())
        return (
            f"TimeSeriesPriceOracle({len(self.price_history)} feeds, "
            f"{total_observations} observations, t={self._current_time})"
        )


class OracleAdapter:
    """
    Converts raw feed readings for registered assets to 18-decimal USD prices.

    Holds no cache: every call reads the feed again.
    """

    def __init__(self, registry: AssetRegistry, oracle: PriceOracle):
        self.registry = registry
        self.oracle = oracle

    def reading(self, asset: str) -> PriceReading:
        """Raw feed answer for an asset (raises UnsupportedAsset if unknown)."""
        return self.oracle.latest_price(self.registry.oracle_for(asset))

    def price_usd(self, asset: str) -> int:
        """USD price of one whole unit of asset, 18 fractional digits."""
        reading = self.reading(asset)
        logger.debug("price %s: %s (round %s)", asset, reading.price, reading.round_id)
        return reading.price * ADDITIONAL_FEED_PRECISION
