"""
registry.py - Approved collateral assets and their price sources

The registry is built once from two parallel sequences and never changes
afterwards. Adding or removing assets means building a new engine.
"""

from __future__ import annotations
from types import MappingProxyType
from typing import Iterator, Mapping, Sequence, Tuple

from .core import ConfigurationError, UnsupportedAsset


class AssetRegistry:
    """
    Immutable mapping from collateral asset to oracle reference.

    Example:
        registry = AssetRegistry(["WETH", "WBTC"], ["ETH/USD", "BTC/USD"])
        registry.oracle_for("WETH")  # "ETH/USD"
    """

    __slots__ = ("_assets", "_oracles")

    def __init__(self, assets: Sequence[str], oracle_refs: Sequence[str]):
        """
        Args:
            assets: Collateral asset identifiers, in registration order
            oracle_refs: Oracle reference for each asset, same length

        Raises:
            ConfigurationError: If the sequences differ in length, are empty,
                or an asset appears twice
        """
        assets = tuple(assets)
        oracle_refs = tuple(oracle_refs)
        if len(assets) != len(oracle_refs):
            raise ConfigurationError(
                f"Asset and oracle lists must be the same length "
                f"({len(assets)} assets, {len(oracle_refs)} oracles)"
            )
        if not assets:
            raise ConfigurationError("At least one collateral asset is required")
        if len(set(assets)) != len(assets):
            raise ConfigurationError(f"Duplicate collateral asset in {assets}")
        for asset in assets:
            if not asset or not str(asset).strip():
                raise ConfigurationError("Collateral asset identifier cannot be empty")

        self._assets: Tuple[str, ...] = assets
        self._oracles: Mapping[str, str] = MappingProxyType(dict(zip(assets, oracle_refs)))

    @property
    def assets(self) -> Tuple[str, ...]:
        return self._assets

    def is_supported(self, asset: str) -> bool:
        return asset in self._oracles

    def oracle_for(self, asset: str) -> str:
        """Return the oracle reference of an asset, or raise UnsupportedAsset."""
        try:
            return self._oracles[asset]
        except KeyError:
            raise UnsupportedAsset(asset) from None

    def __contains__(self, asset: object) -> bool:
        return asset in self._oracles

    def __iter__(self) -> Iterator[str]:
        return iter(self._assets)

    def __len__(self) -> int:
        return len(self._assets)

    def __setattr__(self, name, value):
        if hasattr(self, "_oracles"):
            raise AttributeError("AssetRegistry is immutable")
        object.__setattr__(self, name, value)

    def __repr__(self) -> str:
        pairs = ", ".join(f"{a}->{o}" for a, o in self._oracles.items())
        return f"AssetRegistry({pairs})"
