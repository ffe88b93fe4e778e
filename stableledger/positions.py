"""
positions.py - Collateral and Debt Ledgers

The PositionLedger holds the two ledgers the engine owns:
    - collateral[user][asset]: deposited quantity per account and asset
    - debt[user]: stable units minted by each account

It is the only object that stores position state. The engine mutates it through
the credit/debit methods below and never touches the dictionaries directly.

Every subtraction is checked. A result below zero raises instead of wrapping,
so a ledger balance can never go negative.
"""

from __future__ import annotations
from collections import defaultdict
from typing import Any, Dict, List, Tuple

from .core import CollateralBalances, InsufficientBalance, InsufficientDebt


LedgerSnapshot = Tuple[Dict[str, Dict[str, int]], Dict[str, int], Tuple[str, ...]]


class PositionLedger:
    """
    Per-account collateral and debt balances, all unsigned 18-decimal ints.

    Accounts come into existence on their first ledger entry and are never
    removed, even once every balance is back to zero.

    Thread Safety:
        Not thread-safe. The engine serializes all mutations.
    """

    def __init__(self):
        self._collateral: Dict[str, Dict[str, int]] = defaultdict(dict)
        self._debt: Dict[str, int] = {}
        # Insertion-ordered registry of known accounts
        self._accounts: Dict[str, None] = {}

    # ========================================================================
    # READS
    # ========================================================================

    def collateral_of(self, user: str, asset: str) -> int:
        """Deposited quantity of asset for user (0 if none)."""
        balances = self._collateral.get(user)
        if balances is None:
            return 0
        return balances.get(asset, 0)

    def debt_of(self, user: str) -> int:
        return self._debt.get(user, 0)

    def collateral_balances(self, user: str) -> CollateralBalances:
        """Copy of every collateral balance held by user."""
        return dict(self._collateral.get(user, {}))

    def list_accounts(self) -> List[str]:
        """Known accounts in order of first appearance."""
        return list(self._accounts)

    def has_account(self, user: str) -> bool:
        return user in self._accounts

    def total_debt(self) -> int:
        """Sum of debt across all accounts."""
        return sum(self._debt.values())

    def total_collateral(self, asset: str) -> int:
        """Sum of deposits of one asset across all accounts."""
        return sum(balances.get(asset, 0) for balances in self._collateral.values())

    # ========================================================================
    # MUTATIONS
    # ========================================================================

    def _touch(self, user: str) -> None:
        if user not in self._accounts:
            self._accounts[user] = None

    def credit_collateral(self, user: str, asset: str, amount: int) -> int:
        """Add to a collateral balance and return the new balance."""
        self._touch(user)
        new_balance = self.collateral_of(user, asset) + amount
        self._collateral[user][asset] = new_balance
        return new_balance

    def debit_collateral(self, user: str, asset: str, amount: int) -> int:
        """
        Remove from a collateral balance and return the new balance.

        Raises:
            InsufficientBalance: If the balance is smaller than amount
        """
        current = self.collateral_of(user, asset)
        if amount > current:
            raise InsufficientBalance(user, asset, current, amount)
        self._touch(user)
        self._collateral[user][asset] = current - amount
        return current - amount

    def add_debt(self, user: str, amount: int) -> int:
        """Increase debt and return the new total."""
        self._touch(user)
        new_debt = self.debt_of(user) + amount
        self._debt[user] = new_debt
        return new_debt

    def reduce_debt(self, user: str, amount: int) -> int:
        """
        Decrease debt and return the new total.

        Raises:
            InsufficientDebt: If the account owes less than amount
        """
        current = self.debt_of(user)
        if amount > current:
            raise InsufficientDebt(user, current, amount)
        self._touch(user)
        self._debt[user] = current - amount
        return current - amount

    # ========================================================================
    # SNAPSHOT / RESTORE
    # ========================================================================

    def snapshot(self) -> LedgerSnapshot:
        """
        Capture the full ledger state.

        The returned structure shares nothing mutable with the ledger, so later
        mutations do not leak into it.
        """
        collateral = {user: dict(balances) for user, balances in self._collateral.items()}
        return collateral, dict(self._debt), tuple(self._accounts)

    def restore(self, snapshot: Any) -> None:
        """Replace the ledger state with a previously captured snapshot."""
        collateral, debt, accounts = snapshot
        self._collateral = defaultdict(dict, {u: dict(b) for u, b in collateral.items()})
        self._debt = dict(debt)
        self._accounts = dict.fromkeys(accounts)

    def clone(self) -> PositionLedger:
        """Independent deep copy of this ledger."""
        cloned = PositionLedger()
        cloned.restore(self.snapshot())
        return cloned

    def __repr__(self) -> str:
        return f"PositionLedger({len(self._accounts)} accounts, total_debt={self.total_debt()})"
