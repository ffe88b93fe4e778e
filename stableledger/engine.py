"""
engine.py - Stable-unit issuance engine

StableEngine is the only component that changes position state. It owns the
collateral and debt ledgers, prices them through the oracle adapter, and moves
tokens through the collaborator interfaces defined in core.py.

Key responsibilities:
    - Position operations: deposit, redeem, mint, burn and their composites
    - Liquidation of positions whose health factor fell below the minimum
    - Health-factor gate after every operation that can reduce solvency
    - One global guard around every mutating entry point
    - All-or-nothing execution: a failed call restores ledgers, event log and
      every snapshot-capable collaborator to their state at entry

Mutating calls take the acting account as their first argument. Read methods
are never guarded and may be called at any time, including from inside a
collaborator callback while an operation is running.

Operation ordering (ledger update, external call, health check) matches the
documented per-operation sequence. strict_ordering=True moves every external
side effect after the ledger update and the health check instead.
"""

from __future__ import annotations
from contextlib import contextmanager
from functools import wraps
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple
import logging
import threading

from .core import (
    # Constants
    ENGINE_ACCOUNT, DEFAULT_RISK_PARAMETERS,
    # Types
    AccountInformation, EngineEvent, FungibleToken, PositionState,
    RiskParameters, StableUnitSupply, SupportsSnapshot,
    CollateralDeposited, CollateralRedeemed, StableMinted, StableBurned, Liquidation,
    # Exceptions
    ConfigurationError, DebtExceedsPosition, HealthFactorBroken,
    LiquidationDidNotImprovePosition, MintingFailed, PositionHealthy,
    ReentrantCall, SelfLiquidation, TransferFailed, UnsupportedAsset,
    # Helpers
    describe_health_factor, require_amount,
)
from .health import (
    accounts_below, calculate_collateral_value, calculate_health_factor, is_healthy,
    liquidation_seizure, max_mintable, token_amount_from_usd, usd_value,
)
from .positions import PositionLedger
from .pricing_source import OracleAdapter, PriceOracle
from .registry import AssetRegistry

logger = logging.getLogger(__name__)


def mutating(func):
    """Run a public operation as one guarded, all-or-nothing unit of work."""
    @wraps(func)
    def wrapper(self, *args, **kwargs):
        with self._unit_of_work(func.__name__):
            return func(self, *args, **kwargs)
    return wrapper


class StableEngine:
    """
    Over-collateralized stable-unit engine.

    Example:
        registry = AssetRegistry(["WETH"], ["ETH/USD"])
        oracle = StaticPriceOracle({"ETH/USD": to_feed("2000")})
        weth = InMemoryToken("WETH")
        stable = InMemoryStableUnit("DSC")
        engine = StableEngine(registry, oracle, {"WETH": weth}, stable)

        weth.faucet("alice", to_wad("1"))
        weth.approve("alice", engine.address, to_wad("1"))
        engine.deposit_and_mint("alice", "WETH", to_wad("1"), to_wad("1000"))

    Thread Safety:
        A mutating call made while another one holds the guard, from any
        thread or from a collaborator callback, raises ReentrantCall instead
        of waiting.
    """

    def __init__(
        self,
        registry: AssetRegistry,
        oracle: PriceOracle,
        collateral_tokens: Mapping[str, FungibleToken],
        stable_unit: StableUnitSupply,
        risk: RiskParameters = DEFAULT_RISK_PARAMETERS,
        strict_ordering: bool = False,
        address: str = ENGINE_ACCOUNT,
    ):
        """
        Create an engine.

        Args:
            registry: Approved collateral assets and their oracle references
            oracle: Price source answering for every oracle reference
            collateral_tokens: Token collaborator for each registered asset
            stable_unit: Stable-unit collaborator the engine mints and burns
            risk: Threshold, bonus and minimum health factor
            strict_ordering: Perform external transfers only after every check
            address: Account identifier of the engine on its collaborators

        Raises:
            ConfigurationError: If the token set does not match the registry
        """
        missing = [a for a in registry.assets if a not in collateral_tokens]
        extra = [a for a in collateral_tokens if a not in registry]
        if missing or extra:
            raise ConfigurationError(
                f"Collateral tokens must match registered assets "
                f"(missing={missing}, unregistered={extra})"
            )

        self.registry = registry
        self.oracle = oracle
        self.collateral_tokens: Dict[str, FungibleToken] = dict(collateral_tokens)
        self.stable_unit = stable_unit
        self.risk = risk
        self.strict_ordering = strict_ordering
        self.address = address

        self._ledger = PositionLedger()
        self._prices = OracleAdapter(registry, oracle)
        self.event_log: List[EngineEvent] = []
        self._next_sequence: int = 0

        self._guard = threading.Lock()
        self._active_operation: Optional[str] = None

    # ========================================================================
    # GUARD AND ATOMICITY
    # ========================================================================

    @property
    def active_operation(self) -> Optional[str]:
        """Name of the mutating call currently holding the guard, if any."""
        return self._active_operation

    def _collaborators(self) -> List[Any]:
        seen: Dict[int, Any] = {}
        for token in (*self.collateral_tokens.values(), self.stable_unit):
            seen.setdefault(id(token), token)
        return list(seen.values())

    def _snapshot(self) -> Tuple[Any, int, int, List[Tuple[SupportsSnapshot, Any]]]:
        external = [
            (c, c.snapshot()) for c in self._collaborators()
            if isinstance(c, SupportsSnapshot)
        ]
        return self._ledger.snapshot(), len(self.event_log), self._next_sequence, external

    def _restore(self, snapshot) -> None:
        ledger_state, log_length, sequence, external = snapshot
        self._ledger.restore(ledger_state)
        del self.event_log[log_length:]
        self._next_sequence = sequence
        for collaborator, state in external:
            collaborator.restore(state)

    @contextmanager
    def _unit_of_work(self, operation: str) -> Iterator[None]:
        if not self._guard.acquire(blocking=False):
            logger.warning("%s rejected: %s is already running", operation, self._active_operation)
            raise ReentrantCall(
                f"{operation} cannot start while {self._active_operation} is running"
            )
        self._active_operation = operation
        logger.debug("guard acquired by %s", operation)
        snapshot = self._snapshot()
        try:
            yield
        except Exception as exc:
            self._restore(snapshot)
            logger.warning("%s rejected: %s: %s", operation, type(exc).__name__, exc)
            raise
        finally:
            self._active_operation = None
            self._guard.release()
            logger.debug("guard released by %s", operation)

    def _record(self, event_type, **fields) -> EngineEvent:
        event = event_type(sequence=self._next_sequence, **fields)
        self._next_sequence += 1
        self.event_log.append(event)
        return event

    # ========================================================================
    # READ-ONLY QUERIES
    # ========================================================================

    @property
    def risk_parameters(self) -> RiskParameters:
        return self.risk

    def get_collateral_assets(self) -> Tuple[str, ...]:
        """Registered collateral assets in registration order."""
        return self.registry.assets

    def get_price_feed(self, asset: str) -> str:
        return self.registry.oracle_for(asset)

    def get_collateral_token(self, asset: str) -> FungibleToken:
        if asset not in self.collateral_tokens:
            raise UnsupportedAsset(asset)
        return self.collateral_tokens[asset]

    def get_debt(self, user: str) -> int:
        """Stable units minted by user and not yet burned."""
        return self._ledger.debt_of(user)

    def get_collateral_balance_of_user(self, user: str, asset: str) -> int:
        return self._ledger.collateral_of(user, asset)

    def list_accounts(self) -> List[str]:
        return self._ledger.list_accounts()

    def get_usd_value(self, asset: str, amount: int) -> int:
        """USD value (18-decimal) of amount of asset at the current price."""
        return usd_value(self._prices.price_usd(asset), amount)

    def get_token_amount_from_usd(self, asset: str, usd_amount: int) -> int:
        """Quantity of asset worth usd_amount at the current price."""
        return token_amount_from_usd(self._prices.price_usd(asset), usd_amount)

    def account_collateral_value_usd(self, user: str) -> int:
        """
        Total USD value of the collateral deposited by user.

        Reads a fresh price for every registered asset with a nonzero balance.
        """
        balances = {
            asset: self._ledger.collateral_of(user, asset) for asset in self.registry.assets
        }
        prices = {
            asset: self._prices.price_usd(asset) for asset, amount in balances.items() if amount
        }
        return calculate_collateral_value(balances, prices)

    get_account_collateral_value = account_collateral_value_usd

    def get_account_information(self, user: str) -> AccountInformation:
        return AccountInformation(
            total_minted=self._ledger.debt_of(user),
            collateral_value_usd=self.account_collateral_value_usd(user),
        )

    def calculate_health_factor(self, total_minted: int, collateral_value_usd: int) -> int:
        """Health factor a position with these totals would have."""
        return calculate_health_factor(total_minted, collateral_value_usd, self.risk)

    def health_factor(self, user: str) -> int:
        """
        Current health factor of user.

        MAX_HEALTH_FACTOR when user has no debt; otherwise the haircut
        collateral value divided by the debt, 18-decimal, rounded down.
        """
        debt = self._ledger.debt_of(user)
        if debt == 0:
            return self.calculate_health_factor(0, 0)
        return self.calculate_health_factor(debt, self.account_collateral_value_usd(user))

    def assert_healthy(self, user: str) -> None:
        """
        Raises:
            HealthFactorBroken: If user's health factor is below the minimum
        """
        health_factor = self.health_factor(user)
        if not is_healthy(health_factor, self.risk):
            raise HealthFactorBroken(user, health_factor)

    def position_state(self, user: str) -> PositionState:
        debt = self._ledger.debt_of(user)
        if debt == 0:
            if any(self._ledger.collateral_balances(user).values()):
                return PositionState.COLLATERALIZED
            return PositionState.EMPTY
        if is_healthy(self.health_factor(user), self.risk):
            return PositionState.ACTIVE
        return PositionState.INSOLVENT

    def get_max_mintable(self, user: str) -> int:
        """Stable units user could still mint at current prices."""
        info = self.get_account_information(user)
        return max_mintable(info.collateral_value_usd, info.total_minted, self.risk)

    def liquidatable_accounts(self) -> List[str]:
        """Known accounts with debt whose health factor is below the minimum."""
        indebted = [u for u in self._ledger.list_accounts() if self._ledger.debt_of(u) > 0]
        return list(accounts_below(((u, self.health_factor(u)) for u in indebted), self.risk))

    def verify_conservation(self) -> Dict[str, Any]:
        """
        Check the engine's books against its collaborators.

        Verifies that:
        1. Stable-unit supply equals the sum of all recorded debt
        2. For every asset, the engine holds at least the recorded deposits

        Returns:
            Dict with keys:
            - 'valid': bool - True if both checks hold
            - 'total_debt': int - Sum of debt across accounts
            - 'stable_supply': int - Supply reported by the stable unit
            - 'collateral_value_usd': int - Value of all deposits (informational)
            - 'discrepancies': List[Dict] - One entry per failed check
        """
        discrepancies = []
        total_debt = self._ledger.total_debt()
        supply = self.stable_unit.total_supply()
        if supply != total_debt:
            discrepancies.append({
                'check': 'stable_supply',
                'expected': total_debt,
                'actual': supply,
                'difference': supply - total_debt,
            })

        collateral_value = 0
        for asset in self.registry.assets:
            recorded = self._ledger.total_collateral(asset)
            held = self.collateral_tokens[asset].balance_of(self.address)
            if held < recorded:
                discrepancies.append({
                    'check': 'collateral_shortfall',
                    'asset': asset,
                    'expected': recorded,
                    'actual': held,
                    'difference': held - recorded,
                })
            if recorded:
                collateral_value += self.get_usd_value(asset, recorded)

        return {
            'valid': len(discrepancies) == 0,
            'total_debt': total_debt,
            'stable_supply': supply,
            'collateral_value_usd': collateral_value,
            'discrepancies': discrepancies,
        }

    # ========================================================================
    # INTERNAL STEPS (unguarded, called inside a unit of work)
    # ========================================================================

    def _pull(self, token: FungibleToken, payer: str, amount: int) -> None:
        if not token.transfer_from(payer, self.address, amount):
            raise TransferFailed(f"transfer_from {payer} of {amount} failed")

    def _send(self, token: FungibleToken, payee: str, amount: int) -> None:
        if not token.transfer(payee, amount):
            raise TransferFailed(f"transfer to {payee} of {amount} failed")

    def _deposit_collateral(self, user: str, asset: str, amount: int) -> None:
        require_amount(amount)
        if not self.registry.is_supported(asset):
            raise UnsupportedAsset(asset)
        token = self.collateral_tokens[asset]
        if self.strict_ordering:
            self._pull(token, user, amount)
            self._ledger.credit_collateral(user, asset, amount)
            self._record(CollateralDeposited, user=user, asset=asset, amount=amount)
        else:
            self._ledger.credit_collateral(user, asset, amount)
            self._record(CollateralDeposited, user=user, asset=asset, amount=amount)
            self._pull(token, user, amount)

    def _debit_collateral(self, asset: str, amount: int, from_user: str, to_user: str) -> None:
        self._ledger.debit_collateral(from_user, asset, amount)
        self._record(
            CollateralRedeemed,
            redeemed_from=from_user, redeemed_to=to_user, asset=asset, amount=amount,
        )

    def _redeem_collateral(self, asset: str, amount: int, from_user: str, to_user: str) -> None:
        self._debit_collateral(asset, amount, from_user, to_user)
        self._send(self.collateral_tokens[asset], to_user, amount)

    def _redeem_checked(self, user: str, asset: str, amount: int) -> None:
        require_amount(amount)
        if not self.registry.is_supported(asset):
            raise UnsupportedAsset(asset)
        if self.strict_ordering:
            self._debit_collateral(asset, amount, user, user)
            self.assert_healthy(user)
            self._send(self.collateral_tokens[asset], user, amount)
        else:
            self._redeem_collateral(asset, amount, user, user)
            self.assert_healthy(user)

    def _mint(self, user: str, amount: int) -> None:
        require_amount(amount)
        self._ledger.add_debt(user, amount)
        self.assert_healthy(user)
        if not self.stable_unit.mint(user, amount):
            raise MintingFailed(f"mint of {amount} to {user} failed")
        self._record(StableMinted, user=user, amount=amount)

    def _burn(self, amount: int, on_behalf_of: str, payer: str) -> None:
        self._ledger.reduce_debt(on_behalf_of, amount)
        self._settle_burn(amount, on_behalf_of, payer)

    def _settle_burn(self, amount: int, on_behalf_of: str, payer: str) -> None:
        """Pull payer's stable units and destroy them; the debt is already reduced."""
        self._pull(self.stable_unit, payer, amount)
        self.stable_unit.burn(amount)
        self._record(StableBurned, on_behalf_of=on_behalf_of, payer=payer, amount=amount)

    # ========================================================================
    # POSITION OPERATIONS (Mutating)
    # ========================================================================

    @mutating
    def deposit_collateral(self, user: str, asset: str, amount: int) -> None:
        """
        Deposit collateral for user.

        Credits the ledger, then pulls amount from user. Deposits cannot
        reduce solvency, so there is no health check.

        Raises:
            AmountMustBeMoreThanZero: If amount <= 0
            UnsupportedAsset: If asset is not registered
            TransferFailed: If the token refuses the transfer
        """
        self._deposit_collateral(user, asset, amount)
        logger.info("%s deposited %s %s", user, amount, asset)

    @mutating
    def redeem_collateral(self, user: str, asset: str, amount: int) -> None:
        """
        Withdraw collateral to user.

        Debits the ledger, pays out, then checks user's health factor.

        Raises:
            AmountMustBeMoreThanZero: If amount <= 0
            InsufficientBalance: If user has less than amount deposited
            TransferFailed: If the token refuses the transfer
            HealthFactorBroken: If the withdrawal leaves user under the minimum
        """
        self._redeem_checked(user, asset, amount)
        logger.info("%s redeemed %s %s", user, amount, asset)

    @mutating
    def mint(self, user: str, amount: int) -> None:
        """
        Mint stable units against user's collateral.

        Raises:
            AmountMustBeMoreThanZero: If amount <= 0
            HealthFactorBroken: If the new debt breaks user's health factor
            MintingFailed: If the stable unit refuses to mint
        """
        self._mint(user, amount)
        logger.info("%s minted %s", user, amount)

    @mutating
    def burn(self, user: str, amount: int) -> None:
        """
        Repay debt by burning stable units taken from user.

        Raises:
            AmountMustBeMoreThanZero: If amount <= 0
            InsufficientDebt: If user owes less than amount
            TransferFailed: If the stable units cannot be pulled from user
        """
        require_amount(amount)
        self._burn(amount, user, user)
        logger.info("%s burned %s", user, amount)

    @mutating
    def deposit_and_mint(self, user: str, asset: str, collateral_amount: int, debt_amount: int) -> None:
        """Deposit collateral, then mint, as a single call."""
        self._deposit_collateral(user, asset, collateral_amount)
        self._mint(user, debt_amount)
        logger.info(
            "%s deposited %s %s and minted %s", user, collateral_amount, asset, debt_amount
        )

    @mutating
    def redeem_for_burn(self, user: str, asset: str, collateral_amount: int, debt_amount: int) -> None:
        """
        Burn stable units, then redeem collateral, as a single call.

        The health check inside the redeem step is the only gate.
        """
        require_amount(debt_amount, "debt_amount")
        self._burn(debt_amount, user, user)
        self._redeem_checked(user, asset, collateral_amount)
        logger.info(
            "%s burned %s and redeemed %s %s", user, debt_amount, collateral_amount, asset
        )

    # ========================================================================
    # LIQUIDATION (Mutating)
    # ========================================================================

    @mutating
    def liquidate(self, liquidator: str, asset: str, target_user: str, debt_to_cover: int) -> Liquidation:
        """
        Close part of an insolvent position for a bonus.

        The liquidator burns debt_to_cover of their own stable units on behalf
        of target_user and receives collateral worth debt_to_cover plus the
        liquidation bonus.

        Steps:
        1. Require debt_to_cover > 0 and a liquidator distinct from the target
        2. Require the target to be below the minimum health factor
        3. Require debt_to_cover <= the target's debt
        4. Price debt_to_cover in units of asset and add the bonus
        5. Move the seized collateral from the target to the liquidator
        6. Reduce the target's debt; pull and burn the liquidator's stable units
        7. Require the target's health factor to have strictly improved
        8. Require the liquidator to be at or above the minimum

        With strict_ordering, steps 5 and 6 only update the ledgers; the
        stable units are pulled and burned and the collateral is paid out
        after step 8.

        Args:
            liquidator: Account covering the debt
            asset: Collateral asset to seize
            target_user: Account being liquidated
            debt_to_cover: Stable units to burn (18-decimal)

        Returns:
            The Liquidation event recorded for this call

        Raises:
            AmountMustBeMoreThanZero: If debt_to_cover <= 0
            SelfLiquidation: If liquidator == target_user
            PositionHealthy: If the target is not liquidatable
            DebtExceedsPosition: If debt_to_cover exceeds the target's debt
            InsufficientBalance: If the target holds less than the seizure
            TransferFailed: If a token transfer fails
            LiquidationDidNotImprovePosition: If the target is no healthier
            HealthFactorBroken: If the liquidator ends below the minimum
        """
        require_amount(debt_to_cover, "debt_to_cover")
        if liquidator == target_user:
            raise SelfLiquidation(f"{liquidator} cannot liquidate its own position")

        starting_health = self.health_factor(target_user)
        if is_healthy(starting_health, self.risk):
            raise PositionHealthy(target_user, starting_health)

        target_debt = self._ledger.debt_of(target_user)
        if debt_to_cover > target_debt:
            raise DebtExceedsPosition(debt_to_cover, target_debt)

        token_amount = self.get_token_amount_from_usd(asset, debt_to_cover)
        _, bonus, total_seized = liquidation_seizure(token_amount, self.risk)

        if self.strict_ordering:
            self._debit_collateral(asset, total_seized, target_user, liquidator)
            self._ledger.reduce_debt(target_user, debt_to_cover)
        else:
            self._redeem_collateral(asset, total_seized, target_user, liquidator)
            self._burn(debt_to_cover, target_user, liquidator)

        ending_health = self.health_factor(target_user)
        if ending_health <= starting_health:
            raise LiquidationDidNotImprovePosition(starting_health, ending_health)

        self.assert_healthy(liquidator)

        if self.strict_ordering:
            self._settle_burn(debt_to_cover, target_user, liquidator)
            self._send(self.collateral_tokens[asset], liquidator, total_seized)

        event = self._record(
            Liquidation,
            liquidator=liquidator, target=target_user, asset=asset,
            debt_covered=debt_to_cover, collateral_seized=total_seized, bonus=bonus,
            starting_health=starting_health, ending_health=ending_health,
        )
        logger.info(
            "%s liquidated %s: covered %s, seized %s %s, health %s -> %s",
            liquidator, target_user, debt_to_cover, total_seized, asset,
            describe_health_factor(starting_health), describe_health_factor(ending_health),
        )
        return event

    def __repr__(self) -> str:
        return (
            f"StableEngine({len(self.registry)} assets, "
            f"{len(self._ledger.list_accounts())} accounts, "
            f"total_debt={self._ledger.total_debt()})"
        )
