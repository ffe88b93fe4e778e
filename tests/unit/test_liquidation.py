"""
test_liquidation.py - Unit tests for StableEngine.liquidate

Tests:
- Successful full and partial liquidation (seizure, bonus, debt, supply)
- Rejections: healthy target, over-coverage, self-liquidation, zero amount
- Liquidator solvency check
- Insufficient collateral and missing stable units
- All-or-nothing behavior on every rejection
"""

import logging

import pytest

from stableledger import (
    ENGINE_ACCOUNT, MAX_HEALTH_FACTOR, PRECISION,
    Liquidation, PositionState, StableBurned, CollateralRedeemed,
    AmountMustBeMoreThanZero, DebtExceedsPosition, HealthFactorBroken,
    InsufficientBalance, PositionHealthy, SelfLiquidation, TransferFailed,
    UnsupportedAsset,
    to_feed, to_wad,
)
from tests.helpers import (
    AMOUNT_TO_MINT, COLLATERAL_AMOUNT, STARTING_BALANCE,
    engine_state, fund, token_balances,
)

# 100 USD of WETH at 18 USD, rounded down, and its 10% bonus
TOKEN_AMOUNT = 5_555555555555555555
BONUS = 555555555555555555
TOTAL_SEIZED = TOKEN_AMOUNT + BONUS


class TestSuccessfulLiquidation:

    def test_full_cover(self, engine_insolvent, user, liquidator, weth, dsc):
        assert engine_insolvent.health_factor(user) == 9 * PRECISION // 10

        event = engine_insolvent.liquidate(liquidator, "WETH", user, AMOUNT_TO_MINT)

        assert event.collateral_seized == TOTAL_SEIZED
        assert event.bonus == BONUS
        assert engine_insolvent.get_debt(user) == 0
        assert engine_insolvent.get_collateral_balance_of_user(user, "WETH") == COLLATERAL_AMOUNT - TOTAL_SEIZED
        assert engine_insolvent.health_factor(user) == MAX_HEALTH_FACTOR
        assert weth.balance_of(liquidator) == STARTING_BALANCE - to_wad("20") + TOTAL_SEIZED
        assert dsc.balance_of(liquidator) == 0

    def test_liquidator_position_untouched(self, engine_insolvent, user, liquidator):
        engine_insolvent.liquidate(liquidator, "WETH", user, AMOUNT_TO_MINT)
        assert engine_insolvent.get_debt(liquidator) == AMOUNT_TO_MINT
        assert engine_insolvent.get_collateral_balance_of_user(liquidator, "WETH") == to_wad("20")

    def test_supply_tracks_debt(self, engine_insolvent, user, liquidator, dsc):
        engine_insolvent.liquidate(liquidator, "WETH", user, AMOUNT_TO_MINT)
        assert dsc.total_supply() == AMOUNT_TO_MINT
        assert engine_insolvent.verify_conservation()['valid']

    def test_partial_cover_improves(self, engine_insolvent, user, liquidator):
        start = engine_insolvent.health_factor(user)
        event = engine_insolvent.liquidate(liquidator, "WETH", user, to_wad("50"))
        assert event.starting_health == start
        assert event.ending_health == engine_insolvent.health_factor(user)
        assert event.ending_health > start
        assert engine_insolvent.get_debt(user) == to_wad("50")
        assert engine_insolvent.position_state(user) == PositionState.ACTIVE

    def test_events(self, engine_insolvent, user, liquidator):
        logged = len(engine_insolvent.event_log)
        event = engine_insolvent.liquidate(liquidator, "WETH", user, AMOUNT_TO_MINT)
        new_events = engine_insolvent.event_log[logged:]
        assert [type(e) for e in new_events] == [CollateralRedeemed, StableBurned, Liquidation]
        redeemed, burned, liquidation = new_events
        assert (redeemed.redeemed_from, redeemed.redeemed_to) == (user, liquidator)
        assert (burned.on_behalf_of, burned.payer) == (user, liquidator)
        assert liquidation is event
        assert [e.sequence for e in new_events] == [logged, logged + 1, logged + 2]

    def test_no_longer_liquidatable(self, engine_insolvent, user, liquidator):
        assert engine_insolvent.liquidatable_accounts() == [user]
        engine_insolvent.liquidate(liquidator, "WETH", user, AMOUNT_TO_MINT)
        assert engine_insolvent.liquidatable_accounts() == []

    def test_liquidator_without_position(self, engine_insolvent, user, liquidator, dsc):
        """Any account holding stable units can liquidate."""
        dsc.send(liquidator, "carol", AMOUNT_TO_MINT)
        dsc.approve("carol", ENGINE_ACCOUNT, AMOUNT_TO_MINT)
        engine_insolvent.liquidate("carol", "WETH", user, AMOUNT_TO_MINT)
        assert engine_insolvent.health_factor("carol") == MAX_HEALTH_FACTOR
        assert engine_insolvent.get_debt(user) == 0

    def test_one_wei_of_debt_left(self, engine, weth, wbtc, dsc, oracle, caplog):
        """A huge ending health factor is still reported and committed."""
        debt = to_wad("100000000")
        fund(weth, "whale", to_wad("100000"))
        fund(wbtc, "keeper", to_wad("10000"))
        engine.deposit_and_mint("whale", "WETH", to_wad("100000"), debt)
        engine.deposit_and_mint("keeper", "WBTC", to_wad("10000"), debt)
        dsc.approve("keeper", ENGINE_ACCOUNT, debt)
        oracle.update_price("ETH/USD", to_feed("1999"))

        with caplog.at_level(logging.INFO, logger="stableledger.engine"):
            event = engine.liquidate("keeper", "WETH", "whale", debt - 1)

        assert engine.get_debt("whale") == 1
        assert event.ending_health > 10 ** 42
        assert engine.health_factor("whale") == event.ending_health
        assert engine.event_log[-1] is event
        assert "keeper liquidated whale" in caplog.text


class TestRejectedLiquidation:

    def test_healthy_target(self, engine_minted, user, liquidator):
        with pytest.raises(PositionHealthy) as exc_info:
            engine_minted.liquidate(liquidator, "WETH", user, AMOUNT_TO_MINT)
        assert exc_info.value.health_factor == 100 * PRECISION

    def test_target_exactly_at_minimum(self, engine, user, liquidator):
        engine.deposit_and_mint(user, "WETH", to_wad("1"), to_wad("1000"))
        with pytest.raises(PositionHealthy):
            engine.liquidate(liquidator, "WETH", user, to_wad("1"))

    def test_target_without_debt(self, engine_deposited, user, liquidator):
        with pytest.raises(PositionHealthy):
            engine_deposited.liquidate(liquidator, "WETH", user, 1)

    def test_cover_exceeds_debt(self, engine_insolvent, user, liquidator):
        with pytest.raises(DebtExceedsPosition) as exc_info:
            engine_insolvent.liquidate(liquidator, "WETH", user, AMOUNT_TO_MINT + 1)
        assert exc_info.value.target_debt == AMOUNT_TO_MINT

    def test_self_liquidation(self, engine_insolvent, user):
        with pytest.raises(SelfLiquidation):
            engine_insolvent.liquidate(user, "WETH", user, AMOUNT_TO_MINT)

    @pytest.mark.parametrize("amount", [0, -5])
    def test_non_positive_cover(self, engine_insolvent, user, liquidator, amount):
        with pytest.raises(AmountMustBeMoreThanZero, match="debt_to_cover"):
            engine_insolvent.liquidate(liquidator, "WETH", user, amount)

    def test_unsupported_asset(self, engine_insolvent, user, liquidator):
        with pytest.raises(UnsupportedAsset):
            engine_insolvent.liquidate(liquidator, "DOGE", user, AMOUNT_TO_MINT)

    def test_asset_not_held_by_target(self, engine_insolvent, user, liquidator):
        with pytest.raises(InsufficientBalance):
            engine_insolvent.liquidate(liquidator, "WBTC", user, AMOUNT_TO_MINT)

    def test_seizure_exceeds_collateral(self, engine_insolvent, user, liquidator, oracle):
        # At 5 USD, 100 USD of debt is 20 WETH but alice holds 10
        oracle.update_price("ETH/USD", to_feed("5"))
        with pytest.raises(InsufficientBalance):
            engine_insolvent.liquidate(liquidator, "WETH", user, AMOUNT_TO_MINT)

    def test_liquidator_without_stable_units(self, engine_insolvent, user, liquidator, dsc):
        dsc.approve(liquidator, ENGINE_ACCOUNT, 0)
        with pytest.raises(TransferFailed):
            engine_insolvent.liquidate(liquidator, "WETH", user, AMOUNT_TO_MINT)

    def test_unhealthy_liquidator(self, engine_minted, user, weth, dsc, oracle):
        fund(weth, "bob", to_wad("1"))
        engine_minted.deposit_and_mint("bob", "WETH", to_wad("1"), to_wad("1000"))
        dsc.approve("bob", ENGINE_ACCOUNT, AMOUNT_TO_MINT)
        oracle.update_price("ETH/USD", to_feed("18"))

        with pytest.raises(HealthFactorBroken) as exc_info:
            engine_minted.liquidate("bob", "WETH", user, AMOUNT_TO_MINT)
        assert exc_info.value.user == "bob"
        assert engine_minted.get_debt(user) == AMOUNT_TO_MINT


class TestLiquidationAtomicity:
    """A rejected liquidation leaves ledgers, tokens and events untouched."""

    @pytest.mark.parametrize("setup, error", [
        (lambda dsc, oracle: dsc.approve("liquidator", ENGINE_ACCOUNT, 0), TransferFailed),
        (lambda dsc, oracle: oracle.update_price("ETH/USD", to_feed("5")), InsufficientBalance),
        (lambda dsc, oracle: dsc.fail_next("transfer_from"), TransferFailed),
    ])
    def test_state_unchanged(self, engine_insolvent, user, liquidator, tokens, dsc, oracle, setup, error):
        setup(dsc, oracle)
        holders = [user, liquidator, ENGINE_ACCOUNT]
        state_before = engine_state(engine_insolvent)
        balances_before = token_balances(tokens, holders)
        supply_before = dsc.total_supply()

        with pytest.raises(error):
            engine_insolvent.liquidate(liquidator, "WETH", user, AMOUNT_TO_MINT)

        assert engine_state(engine_insolvent) == state_before
        assert token_balances(tokens, holders) == balances_before
        assert dsc.total_supply() == supply_before
        assert engine_insolvent.active_operation is None
