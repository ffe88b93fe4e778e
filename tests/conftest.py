"""
conftest.py - Shared pytest fixtures for engine tests

Provides common fixtures used across unit, functional and conformance tests:
- Two-asset registry (WETH, WBTC) with a static oracle
- In-memory collateral tokens and stable unit
- Engines in several states: empty, deposited, minted, insolvent
"""

import pytest

from stableledger import (
    AssetRegistry, StableEngine, StaticPriceOracle,
    InMemoryToken, InMemoryStableUnit,
    ENGINE_ACCOUNT,
    to_wad, to_feed,
)
from tests.helpers import (
    AMOUNT_TO_MINT, BTC_USD_PRICE, COLLATERAL_AMOUNT, ETH_USD_PRICE, STARTING_BALANCE,
    fund,
)


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def registry():
    return AssetRegistry(["WETH", "WBTC"], ["ETH/USD", "BTC/USD"])


@pytest.fixture
def oracle():
    return StaticPriceOracle({"ETH/USD": ETH_USD_PRICE, "BTC/USD": BTC_USD_PRICE})


@pytest.fixture
def weth():
    return InMemoryToken("WETH")


@pytest.fixture
def wbtc():
    return InMemoryToken("WBTC")


@pytest.fixture
def dsc():
    return InMemoryStableUnit("DSC")


@pytest.fixture
def tokens(weth, wbtc, dsc):
    return {"WETH": weth, "WBTC": wbtc, "DSC": dsc}


@pytest.fixture
def engine(registry, oracle, weth, wbtc, dsc):
    return StableEngine(registry, oracle, {"WETH": weth, "WBTC": wbtc}, dsc)


@pytest.fixture
def strict_engine(registry, oracle, weth, wbtc, dsc):
    return StableEngine(
        registry, oracle, {"WETH": weth, "WBTC": wbtc}, dsc, strict_ordering=True
    )


@pytest.fixture
def user(weth, wbtc):
    fund(weth, "alice", STARTING_BALANCE)
    fund(wbtc, "alice", STARTING_BALANCE)
    return "alice"


@pytest.fixture
def liquidator(weth, wbtc):
    fund(weth, "liquidator", STARTING_BALANCE)
    fund(wbtc, "liquidator", STARTING_BALANCE)
    return "liquidator"


@pytest.fixture
def engine_deposited(engine, user):
    engine.deposit_collateral(user, "WETH", COLLATERAL_AMOUNT)
    return engine


@pytest.fixture
def engine_minted(engine, user):
    engine.deposit_and_mint(user, "WETH", COLLATERAL_AMOUNT, AMOUNT_TO_MINT)
    return engine


@pytest.fixture
def engine_insolvent(engine_minted, oracle, dsc, liquidator):
    """
    alice: 10 WETH, 100 DSC debt; ETH drops to 18 USD -> health factor 0.9.
    liquidator: 20 WETH deposited, 100 DSC minted and approved for burning.
    """
    engine_minted.deposit_and_mint(liquidator, "WETH", to_wad("20"), AMOUNT_TO_MINT)
    dsc.approve(liquidator, ENGINE_ACCOUNT, AMOUNT_TO_MINT)
    oracle.update_price("ETH/USD", to_feed("18"))
    return engine_minted
