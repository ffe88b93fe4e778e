"""
helpers.py - Constants and helper functions shared by the test modules

Fixtures live in conftest.py; plain values and functions that test modules
import directly live here.
"""

from typing import Dict, NamedTuple

from stableledger import (
    ENGINE_ACCOUNT, AssetRegistry, InMemoryStableUnit, InMemoryToken, StableEngine,
    StaticPriceOracle, to_feed, to_wad,
)


# =============================================================================
# CONSTANTS
# =============================================================================

ETH_USD_PRICE = to_feed("2000")
BTC_USD_PRICE = to_feed("60000")

COLLATERAL_AMOUNT = to_wad("10")
AMOUNT_TO_MINT = to_wad("100")
STARTING_BALANCE = to_wad("1000")


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def fund(token: InMemoryToken, user: str, amount: int, spender: str = ENGINE_ACCOUNT) -> None:
    """Give user amount of token and approve the engine to pull all of it."""
    token.faucet(user, amount)
    token.approve(user, spender, token.allowance(user, spender) + amount)


def token_balances(tokens: Dict[str, InMemoryToken], holders) -> Dict[tuple, int]:
    """Snapshot of balances for comparison before and after a call."""
    return {
        (symbol, holder): token.balance_of(holder)
        for symbol, token in tokens.items()
        for holder in holders
    }


def engine_state(engine: StableEngine) -> dict:
    """Everything a failed operation must leave untouched."""
    return {
        'accounts': {
            user: (
                engine.get_debt(user),
                {a: engine.get_collateral_balance_of_user(user, a) for a in engine.get_collateral_assets()},
            )
            for user in engine.list_accounts()
        },
        'events': list(engine.event_log),
    }


# =============================================================================
# ENGINE BUILDERS
# =============================================================================

class World(NamedTuple):
    engine: StableEngine
    oracle: StaticPriceOracle
    weth: InMemoryToken
    wbtc: InMemoryToken
    dsc: InMemoryStableUnit


def build_world(eth_price: int = ETH_USD_PRICE, btc_price: int = BTC_USD_PRICE,
                strict_ordering: bool = False) -> World:
    """
    Fresh two-asset engine with its collaborators.

    Hypothesis re-runs a test body many times, so property-based tests build
    their engine here instead of taking function-scoped fixtures.
    """
    oracle = StaticPriceOracle({"ETH/USD": eth_price, "BTC/USD": btc_price})
    weth = InMemoryToken("WETH")
    wbtc = InMemoryToken("WBTC")
    dsc = InMemoryStableUnit("DSC")
    engine = StableEngine(
        AssetRegistry(["WETH", "WBTC"], ["ETH/USD", "BTC/USD"]),
        oracle,
        {"WETH": weth, "WBTC": wbtc},
        dsc,
        strict_ordering=strict_ordering,
    )
    return World(engine, oracle, weth, wbtc, dsc)
