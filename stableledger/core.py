"""
Core types and pure helpers for the stable-unit issuance engine.

This module provides the foundational pieces shared by every other module:
1. Constants: fixed-point scales and the default risk parameters
2. Fixed-point helpers: conversion between human Decimals and ledger integers
3. Exceptions: EngineError and the four failure families below it
4. Protocols: the collaborator interfaces the engine consumes
5. Immutable data structures: RiskParameters, AccountInformation, events

All amounts handled by the engine are Python ints carrying an implied number
of fractional decimal digits. Ledger quantities, USD values and health factors
use 18 digits; raw oracle readings use 8. Every division is a floor division,
so a reported value is never rounded in the account holder's favour.
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal, ROUND_DOWN, localcontext
from enum import Enum
from typing import Any, Dict, Protocol, Tuple, Union, runtime_checkable


# ============================================================================
# CONSTANTS
# ============================================================================

# Fractional digits of ledger quantities, USD values and health factors.
WAD_DECIMALS = 18

# Fractional digits of raw oracle readings.
FEED_DECIMALS = 8

# Fixed-point scale (1.0 == PRECISION).
PRECISION = 10 ** WAD_DECIMALS

# Multiplier lifting an 8-decimal feed reading to the 18-decimal scale.
ADDITIONAL_FEED_PRECISION = 10 ** (WAD_DECIMALS - FEED_DECIMALS)

# Collateral is counted at 50% of its USD value (threshold / precision).
LIQUIDATION_THRESHOLD = 50
LIQUIDATION_BONUS = 10
LIQUIDATION_PRECISION = 100

MIN_HEALTH_FACTOR = PRECISION

# Health factor reported for an account without debt.
MAX_HEALTH_FACTOR = 2 ** 256 - 1

# Account identifier the engine uses when it holds tokens itself.
ENGINE_ACCOUNT = "stable-engine"


# ============================================================================
# TYPE ALIASES
# ============================================================================

# Mapping from asset identifier to deposited quantity for one account.
CollateralBalances = Dict[str, int]

# Anything accepted by the human-value helpers.
HumanAmount = Union[Decimal, int, str]


# ============================================================================
# FIXED-POINT HELPERS
# ============================================================================

def _to_fixed(value: HumanAmount, decimals: int) -> int:
    if isinstance(value, float):
        raise ValueError(f"Use Decimal or str for fixed-point values, got float {value!r}")
    with localcontext() as ctx:
        ctx.prec = 80
        scaled = Decimal(value) * (Decimal(10) ** decimals)
        return int(scaled.to_integral_value(rounding=ROUND_DOWN))


def to_wad(value: HumanAmount) -> int:
    """
    Convert a human quantity to an 18-decimal ledger integer.

    Truncates toward zero beyond the 18th digit.

    Example:
        to_wad("1.5") == 1_500_000_000_000_000_000
    """
    return _to_fixed(value, WAD_DECIMALS)


def to_feed(value: HumanAmount) -> int:
    """Convert a human USD price to an 8-decimal oracle integer."""
    return _to_fixed(value, FEED_DECIMALS)


def from_wad(amount: int) -> Decimal:
    """Convert an 18-decimal ledger integer back to a Decimal."""
    with localcontext() as ctx:
        ctx.prec = 80
        return Decimal(amount) / (Decimal(10) ** WAD_DECIMALS)


def require_amount(amount: Any, name: str = "amount") -> int:
    """
    Validate an unsigned fixed-point amount and require it to be positive.

    Raises:
        ValueError: If amount is not an int (bools and floats are rejected)
        AmountMustBeMoreThanZero: If amount <= 0
    """
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValueError(f"{name} must be an int fixed-point amount, got {type(amount).__name__}")
    if amount <= 0:
        raise AmountMustBeMoreThanZero(f"{name} must be more than zero, got {amount}")
    return amount


# ============================================================================
# EXCEPTIONS
# ============================================================================

class EngineError(Exception):
    """Base exception for all engine errors."""
    pass


class ValidationError(EngineError):
    """Input rejected before any state was touched."""
    pass


class BalanceError(EngineError):
    """A ledger subtraction would have produced a negative quantity."""
    pass


class CollaboratorError(EngineError):
    """An external token collaborator reported failure."""
    pass


class InvariantViolation(EngineError):
    """An operation would leave a position in a forbidden state."""
    pass


class ConfigurationError(ValidationError):
    """Raised when the asset registry or engine configuration is inconsistent."""
    pass


class AmountMustBeMoreThanZero(ValidationError):
    """Raised when an operation amount is zero or negative."""
    pass


class UnsupportedAsset(ValidationError):
    """Raised when an asset is not in the registry."""

    def __init__(self, asset: str):
        super().__init__(f"Asset {asset!r} is not an approved collateral asset")
        self.asset = asset


class SelfLiquidation(ValidationError):
    """Raised when a liquidator targets its own position."""
    pass


class InsufficientBalance(BalanceError):
    """Raised when collateral would fall below zero."""

    def __init__(self, user: str, asset: str, balance: int, requested: int):
        super().__init__(
            f"{user} holds {balance} of {asset}, cannot remove {requested}"
        )
        self.user = user
        self.asset = asset
        self.balance = balance
        self.requested = requested


class InsufficientDebt(BalanceError):
    """Raised when debt would fall below zero."""

    def __init__(self, user: str, debt: int, requested: int):
        super().__init__(f"{user} owes {debt}, cannot burn {requested}")
        self.user = user
        self.debt = debt
        self.requested = requested


class TransferFailed(CollaboratorError):
    """Raised when a token transfer or transfer_from returns False."""
    pass


class MintingFailed(CollaboratorError):
    """Raised when the stable-unit supply refuses to mint."""
    pass


class HealthFactorBroken(InvariantViolation):
    """Raised when an account's health factor is below the minimum."""

    def __init__(self, user: str, health_factor: int):
        super().__init__(f"Health factor of {user} is broken: {health_factor}")
        self.user = user
        self.health_factor = health_factor


class PositionHealthy(InvariantViolation):
    """Raised when liquidating a position that is not below the minimum."""

    def __init__(self, user: str, health_factor: int):
        super().__init__(f"Position of {user} is healthy ({health_factor}), cannot liquidate")
        self.user = user
        self.health_factor = health_factor


class DebtExceedsPosition(InvariantViolation):
    """Raised when a liquidator tries to cover more than the target owes."""

    def __init__(self, debt_to_cover: int, target_debt: int):
        super().__init__(f"Cannot cover {debt_to_cover}, position only owes {target_debt}")
        self.debt_to_cover = debt_to_cover
        self.target_debt = target_debt


class LiquidationDidNotImprovePosition(InvariantViolation):
    """Raised when a liquidation leaves the target no healthier than before."""

    def __init__(self, starting_health: int, ending_health: int):
        super().__init__(
            f"Liquidation did not improve health factor: {starting_health} -> {ending_health}"
        )
        self.starting_health = starting_health
        self.ending_health = ending_health


class ReentrantCall(EngineError):
    """Raised when a mutating call starts while another one is still running."""
    pass


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class FungibleToken(Protocol):
    """
    Transfer interface of a collateral token or of the stable unit.

    The engine is the token's operator: transfer() moves the engine's own
    holdings and transfer_from() spends an allowance granted to the engine.
    A False return is a hard failure.
    """

    def transfer_from(self, payer: str, payee: str, amount: int) -> bool:
        ...

    def transfer(self, payee: str, amount: int) -> bool:
        ...

    def balance_of(self, holder: str) -> int:
        ...


@runtime_checkable
class StableUnitSupply(FungibleToken, Protocol):
    """Supply controls of the stable unit, callable only by the engine."""

    def mint(self, to: str, amount: int) -> bool:
        ...

    def burn(self, amount: int) -> None:
        """Burn from the engine's own balance."""
        ...

    def total_supply(self) -> int:
        ...


@runtime_checkable
class SupportsSnapshot(Protocol):
    """
    Collaborator state that can be captured and restored.

    The engine snapshots every collaborator implementing this protocol when a
    mutating call starts and restores them if the call fails, standing in for
    the transaction-level rollback of a host runtime.
    """

    def snapshot(self) -> Any:
        ...

    def restore(self, snapshot: Any) -> None:
        ...


# ============================================================================
# ENUMS
# ============================================================================

class PositionState(Enum):
    """
    Lifecycle state of an account.

    EMPTY: no collateral and no debt
    COLLATERALIZED: collateral deposited, nothing minted
    ACTIVE: debt outstanding, health factor at or above the minimum
    INSOLVENT: health factor below the minimum, open to liquidation
    """
    EMPTY = "empty"
    COLLATERALIZED = "collateralized"
    ACTIVE = "active"
    INSOLVENT = "insolvent"


# ============================================================================
# DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class RiskParameters:
    """
    Immutable risk settings used by every health-factor computation.

    Attributes:
        liquidation_threshold: Share of collateral value counted toward solvency
        liquidation_bonus: Extra share of seized collateral paid to a liquidator
        liquidation_precision: Denominator of threshold and bonus
        min_health_factor: Fixed-point solvency floor
    """
    liquidation_threshold: int = LIQUIDATION_THRESHOLD
    liquidation_bonus: int = LIQUIDATION_BONUS
    liquidation_precision: int = LIQUIDATION_PRECISION
    min_health_factor: int = MIN_HEALTH_FACTOR

    def __post_init__(self):
        if self.liquidation_precision <= 0:
            raise ConfigurationError("liquidation_precision must be positive")
        if not 0 < self.liquidation_threshold <= self.liquidation_precision:
            raise ConfigurationError(
                f"liquidation_threshold must be in (0, {self.liquidation_precision}]"
            )
        if self.liquidation_bonus < 0:
            raise ConfigurationError("liquidation_bonus cannot be negative")
        if self.min_health_factor <= 0:
            raise ConfigurationError("min_health_factor must be positive")


DEFAULT_RISK_PARAMETERS = RiskParameters()


@dataclass(frozen=True, slots=True)
class AccountInformation:
    """Debt and collateral value of one account, both 18-decimal."""
    total_minted: int
    collateral_value_usd: int


@dataclass(frozen=True, slots=True)
class CollateralDeposited:
    sequence: int
    user: str
    asset: str
    amount: int


@dataclass(frozen=True, slots=True)
class CollateralRedeemed:
    sequence: int
    redeemed_from: str
    redeemed_to: str
    asset: str
    amount: int


@dataclass(frozen=True, slots=True)
class StableMinted:
    sequence: int
    user: str
    amount: int


@dataclass(frozen=True, slots=True)
class StableBurned:
    sequence: int
    on_behalf_of: str
    payer: str
    amount: int


@dataclass(frozen=True, slots=True)
class Liquidation:
    """
    Record of a completed liquidation.

    Attributes:
        liquidator: Account that covered the debt
        target: Account whose position was closed
        asset: Collateral asset seized
        debt_covered: Stable units burned on behalf of the target
        collateral_seized: Asset quantity paid out, bonus included
        bonus: Bonus part of collateral_seized
        starting_health: Target health factor before the call
        ending_health: Target health factor after the call
    """
    sequence: int
    liquidator: str
    target: str
    asset: str
    debt_covered: int
    collateral_seized: int
    bonus: int
    starting_health: int
    ending_health: int


EngineEvent = Union[CollateralDeposited, CollateralRedeemed, StableMinted, StableBurned, Liquidation]


# Seized quantities of a liquidation: (token_amount, bonus, total_seized)
Seizure = Tuple[int, int, int]


def describe_health_factor(health_factor: int) -> str:
    """Human-readable health factor (``inf`` for the no-debt sentinel)."""
    if health_factor == MAX_HEALTH_FACTOR:
        return "inf"
    # Precision must cover every integer digit or quantize raises InvalidOperation
    with localcontext() as ctx:
        ctx.prec = max(80, len(str(abs(health_factor))) + 8)
        value = Decimal(health_factor) / (Decimal(10) ** WAD_DECIMALS)
        return format(value.quantize(Decimal("0.0001"), rounding=ROUND_DOWN), "f")
