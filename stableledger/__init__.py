"""
stableledger - Over-collateralized Stable-Unit Engine

Users deposit approved collateral, mint a stable unit against it up to a risk
limit, and third parties liquidate positions whose health factor falls below
the minimum in exchange for a collateral bonus.

Usage:
    from stableledger import (
        AssetRegistry, StableEngine, StaticPriceOracle,
        InMemoryToken, InMemoryStableUnit, to_wad, to_feed,
    )

    registry = AssetRegistry(["WETH"], ["ETH/USD"])
    oracle = StaticPriceOracle({"ETH/USD": to_feed("2000")})
    weth = InMemoryToken("WETH")
    stable = InMemoryStableUnit("DSC")
    engine = StableEngine(registry, oracle, {"WETH": weth}, stable)

    weth.faucet("alice", to_wad("1"))
    weth.approve("alice", engine.address, to_wad("1"))
    engine.deposit_and_mint("alice", "WETH", to_wad("1"), to_wad("1000"))
    engine.health_factor("alice")  # == 10**18
"""

# Core types
from .core import (
    # Constants
    WAD_DECIMALS,
    FEED_DECIMALS,
    PRECISION,
    ADDITIONAL_FEED_PRECISION,
    LIQUIDATION_THRESHOLD,
    LIQUIDATION_BONUS,
    LIQUIDATION_PRECISION,
    MIN_HEALTH_FACTOR,
    MAX_HEALTH_FACTOR,
    ENGINE_ACCOUNT,
    DEFAULT_RISK_PARAMETERS,
    # Helpers
    to_wad,
    to_feed,
    from_wad,
    require_amount,
    describe_health_factor,
    # Protocols
    FungibleToken,
    StableUnitSupply,
    SupportsSnapshot,
    # Data structures
    PositionState,
    RiskParameters,
    AccountInformation,
    CollateralDeposited,
    CollateralRedeemed,
    StableMinted,
    StableBurned,
    Liquidation,
    EngineEvent,
    # Exceptions
    EngineError,
    ValidationError,
    BalanceError,
    CollaboratorError,
    InvariantViolation,
    ConfigurationError,
    AmountMustBeMoreThanZero,
    UnsupportedAsset,
    SelfLiquidation,
    InsufficientBalance,
    InsufficientDebt,
    TransferFailed,
    MintingFailed,
    HealthFactorBroken,
    PositionHealthy,
    DebtExceedsPosition,
    LiquidationDidNotImprovePosition,
    ReentrantCall,
)

# Registry and pricing
from .registry import AssetRegistry
from .pricing_source import (
    PriceReading,
    PriceOracle,
    StaticPriceOracle,
    TimeSeriesPriceOracle,
    OracleAdapter,
)

# Ledgers
from .positions import PositionLedger

# Health-factor arithmetic
from .health import (
    usd_value,
    token_amount_from_usd,
    calculate_collateral_value,
    calculate_health_factor,
    is_healthy,
    liquidation_seizure,
    max_mintable,
    accounts_below,
)

# Engine
from .engine import StableEngine

# Reference collaborators
from .tokens import InMemoryToken, InMemoryStableUnit

__all__ = [
    # Constants
    'WAD_DECIMALS', 'FEED_DECIMALS', 'PRECISION', 'ADDITIONAL_FEED_PRECISION',
    'LIQUIDATION_THRESHOLD', 'LIQUIDATION_BONUS', 'LIQUIDATION_PRECISION',
    'MIN_HEALTH_FACTOR', 'MAX_HEALTH_FACTOR', 'ENGINE_ACCOUNT', 'DEFAULT_RISK_PARAMETERS',
    # Helpers
    'to_wad', 'to_feed', 'from_wad', 'require_amount', 'describe_health_factor',
    # Protocols
    'FungibleToken', 'StableUnitSupply', 'SupportsSnapshot', 'PriceOracle',
    # Data structures
    'PositionState', 'RiskParameters', 'AccountInformation', 'PriceReading',
    'CollateralDeposited', 'CollateralRedeemed', 'StableMinted', 'StableBurned',
    'Liquidation', 'EngineEvent',
    # Exceptions
    'EngineError', 'ValidationError', 'BalanceError', 'CollaboratorError',
    'InvariantViolation', 'ConfigurationError', 'AmountMustBeMoreThanZero',
    'UnsupportedAsset', 'SelfLiquidation', 'InsufficientBalance', 'InsufficientDebt',
    'TransferFailed', 'MintingFailed', 'HealthFactorBroken', 'PositionHealthy',
    'DebtExceedsPosition', 'LiquidationDidNotImprovePosition', 'ReentrantCall',
    # Registry / pricing / ledgers
    'AssetRegistry', 'StaticPriceOracle', 'TimeSeriesPriceOracle', 'OracleAdapter',
    'PositionLedger',
    # Health
    'usd_value', 'token_amount_from_usd', 'calculate_collateral_value',
    'calculate_health_factor', 'is_healthy', 'liquidation_seizure', 'max_mintable',
    'accounts_below',
    # Engine and collaborators
    'StableEngine', 'InMemoryToken', 'InMemoryStableUnit',
]

__version__ = '1.0.0'
