#!/usr/bin/env python3
"""
demo.py - Walkthrough: Deposit, Mint, Price Crash, Liquidation

Each step builds on the previous one. Press Enter to advance.

WHAT YOU'LL SEE:
  1-2:  Setup        - Registry, oracle, tokens, engine
  3-5:  Positions    - Deposit, mint to the limit, rejected over-mint
  6-7:  Price crash  - Health factor falls, position becomes insolvent
  8-9:  Liquidation  - Keeper covers debt, seizes collateral plus bonus
  10:   Conservation - Stable supply still equals recorded debt

Run:
    python demo.py                 # Interactive mode (press Enter for each step)
    python demo.py --quick         # Run all steps without pausing
    python demo.py --simulate      # Also run a 90-day stress simulation
    python demo.py --config config.example.yaml   # Engine, prices and log level from a config file
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
import sys

from stableledger import (
    AssetRegistry, StableEngine, StaticPriceOracle, TimeSeriesPriceOracle,
    InMemoryToken, InMemoryStableUnit, EngineError,
    to_wad, to_feed, from_wad, describe_health_factor,
)
from stableledger.config import load_engine
from stableledger.logging_setup import configure_logging
from stableledger.simulation import generate_price_paths, load_price_paths, run_stress_simulation


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the walkthrough. Modify these to experiment."""
    eth_price: Decimal = Decimal("2000")
    crash_price: Decimal = Decimal("1800")
    alice_collateral: Decimal = Decimal("1")
    alice_mint: Decimal = Decimal("1000")
    keeper_collateral: Decimal = Decimal("5")
    keeper_mint: Decimal = Decimal("1000")
    debt_to_cover: Decimal = Decimal("500")
    simulation_days: int = 90
    simulation_seed: int = 7


CONFIG = DemoConfig()
QUICK = "--quick" in sys.argv
CONFIG_PATH = sys.argv[sys.argv.index("--config") + 1] if "--config" in sys.argv else None


def step(number: int, title: str) -> None:
    print()
    print("=" * 72)
    print(f"STEP {number}: {title}")
    print("=" * 72)
    if not QUICK:
        input("(press Enter) ")


def show_position(engine: StableEngine, user: str) -> None:
    info = engine.get_account_information(user)
    print(f"  {user:8s} debt={from_wad(info.total_minted):>10} DSC  "
          f"collateral=${from_wad(info.collateral_value_usd):>12}  "
          f"health={describe_health_factor(engine.health_factor(user))}  "
          f"state={engine.position_state(user).value}")


def build_engine_for_demo():
    """Engine, oracle and tokens for the walkthrough, from --config if given."""
    if CONFIG_PATH is not None:
        engine = load_engine(CONFIG_PATH)
        return engine, engine.oracle, engine.get_collateral_token("WETH"), engine.stable_unit

    configure_logging("WARNING")
    registry = AssetRegistry(["WETH"], ["ETH/USD"])
    oracle = StaticPriceOracle({"ETH/USD": to_feed(CONFIG.eth_price)})
    weth = InMemoryToken("WETH")
    dsc = InMemoryStableUnit("DSC")
    return StableEngine(registry, oracle, {"WETH": weth}, dsc), oracle, weth, dsc


def main() -> None:
    step(1, "Register collateral, price oracle and tokens")
    engine, oracle, weth, dsc = build_engine_for_demo()
    print(f"  {engine.registry}")
    print(f"  ETH/USD = {from_wad(engine.get_usd_value('WETH', to_wad('1')))} "
          f"({oracle.latest_price('ETH/USD').price} raw, 8 decimals)")

    step(2, "Create the engine")
    print(f"  {engine}")
    print(f"  strict ordering: {engine.strict_ordering}")

    step(3, "Alice deposits 1 WETH")
    weth.faucet("alice", to_wad(CONFIG.alice_collateral))
    weth.approve("alice", engine.address, to_wad(CONFIG.alice_collateral))
    engine.deposit_collateral("alice", "WETH", to_wad(CONFIG.alice_collateral))
    show_position(engine, "alice")

    step(4, "Alice mints up to the limit")
    engine.mint("alice", to_wad(CONFIG.alice_mint))
    show_position(engine, "alice")

    step(5, "One more unit is rejected")
    try:
        engine.mint("alice", to_wad("1"))
    except EngineError as exc:
        print(f"  rejected: {type(exc).__name__}: {exc}")
    show_position(engine, "alice")

    step(6, "A keeper prepares stable units")
    weth.faucet("keeper", to_wad(CONFIG.keeper_collateral))
    weth.approve("keeper", engine.address, to_wad(CONFIG.keeper_collateral))
    engine.deposit_and_mint("keeper", "WETH", to_wad(CONFIG.keeper_collateral), to_wad(CONFIG.keeper_mint))
    show_position(engine, "keeper")

    step(7, f"ETH drops to {CONFIG.crash_price}")
    oracle.update_price("ETH/USD", to_feed(CONFIG.crash_price))
    show_position(engine, "alice")
    print(f"  liquidatable: {engine.liquidatable_accounts()}")

    step(8, f"Keeper covers {CONFIG.debt_to_cover} DSC of Alice's debt")
    dsc.approve("keeper", engine.address, to_wad(CONFIG.debt_to_cover))
    event = engine.liquidate("keeper", "WETH", "alice", to_wad(CONFIG.debt_to_cover))
    print(f"  seized {from_wad(event.collateral_seized)} WETH (bonus {from_wad(event.bonus)})")

    step(9, "Positions after liquidation")
    show_position(engine, "alice")
    show_position(engine, "keeper")
    print(f"  keeper wallet WETH = {from_wad(weth.balance_of('keeper'))}")

    step(10, "Conservation check")
    result = engine.verify_conservation()
    print(f"  valid={result['valid']} supply={from_wad(result['stable_supply'])} "
          f"debt={from_wad(result['total_debt'])}")

    if "--simulate" in sys.argv:
        simulate()


def simulate() -> None:
    print()
    print("=" * 72)
    print(f"STRESS SIMULATION: {CONFIG.simulation_days} days")
    print("=" * 72)
    start = datetime(2025, 1, 1)
    oracle = TimeSeriesPriceOracle(start_time=start)
    paths = generate_price_paths(
        {"ETH/USD": to_feed(CONFIG.eth_price)}, CONFIG.simulation_days, seed=CONFIG.simulation_seed,
    )
    timestamps = load_price_paths(oracle, paths, start)

    weth = InMemoryToken("WETH")
    dsc = InMemoryStableUnit("DSC")
    engine = StableEngine(AssetRegistry(["WETH"], ["ETH/USD"]), oracle, {"WETH": weth}, dsc)

    for i in range(20):
        user = f"user_{i:02d}"
        collateral = to_wad(1 + i % 5)
        weth.faucet(user, collateral)
        weth.approve(user, engine.address, collateral)
        engine.deposit_and_mint(user, "WETH", collateral, engine.get_usd_value("WETH", collateral) * 2 // 5)

    weth.faucet("keeper", to_wad("100"))
    weth.approve("keeper", engine.address, to_wad("100"))
    engine.deposit_and_mint("keeper", "WETH", to_wad("100"), to_wad("50000"))
    dsc.approve("keeper", engine.address, to_wad("50000"))

    report = run_stress_simulation(engine, oracle, timestamps, "keeper")
    print(f"  final ETH/USD raw price: {report.final_prices['ETH/USD']}")
    print(f"  liquidations: {report.liquidations_succeeded}/{report.liquidations_attempted}")
    print(f"  rejections:   {dict(report.rejections)}")
    print(f"  insolvent:    {list(report.insolvent_accounts)}")
    print(f"  conservation: {report.conservation_valid}")


if __name__ == "__main__":
    main()
