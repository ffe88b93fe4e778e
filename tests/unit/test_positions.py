"""
test_positions.py - Unit tests for PositionLedger

Tests:
- Credits and debits of collateral
- Debt bookkeeping
- Checked subtraction (no negative balances)
- Account registry ordering
- Snapshot, restore and clone independence
"""

import pytest

from stableledger import InsufficientBalance, InsufficientDebt, PositionLedger


@pytest.fixture
def ledger():
    return PositionLedger()


class TestCollateral:

    def test_unknown_account_reads_zero(self, ledger):
        assert ledger.collateral_of("nobody", "WETH") == 0
        assert ledger.collateral_balances("nobody") == {}

    def test_credit_and_debit(self, ledger):
        assert ledger.credit_collateral("alice", "WETH", 10) == 10
        assert ledger.credit_collateral("alice", "WETH", 5) == 15
        assert ledger.debit_collateral("alice", "WETH", 7) == 8
        assert ledger.collateral_of("alice", "WETH") == 8

    def test_debit_more_than_balance(self, ledger):
        ledger.credit_collateral("alice", "WETH", 10)
        with pytest.raises(InsufficientBalance) as exc_info:
            ledger.debit_collateral("alice", "WETH", 11)
        assert exc_info.value.balance == 10
        assert exc_info.value.requested == 11
        assert ledger.collateral_of("alice", "WETH") == 10

    def test_debit_from_unknown_account(self, ledger):
        with pytest.raises(InsufficientBalance):
            ledger.debit_collateral("nobody", "WETH", 1)
        assert not ledger.has_account("nobody")

    def test_balances_are_a_copy(self, ledger):
        ledger.credit_collateral("alice", "WETH", 10)
        balances = ledger.collateral_balances("alice")
        balances["WETH"] = 999
        assert ledger.collateral_of("alice", "WETH") == 10

    def test_total_collateral(self, ledger):
        ledger.credit_collateral("alice", "WETH", 10)
        ledger.credit_collateral("bob", "WETH", 5)
        ledger.credit_collateral("bob", "WBTC", 1)
        assert ledger.total_collateral("WETH") == 15
        assert ledger.total_collateral("WBTC") == 1
        assert ledger.total_collateral("LINK") == 0


class TestDebt:

    def test_add_and_reduce(self, ledger):
        assert ledger.add_debt("alice", 100) == 100
        assert ledger.reduce_debt("alice", 40) == 60
        assert ledger.debt_of("alice") == 60

    def test_reduce_more_than_owed(self, ledger):
        ledger.add_debt("alice", 100)
        with pytest.raises(InsufficientDebt) as exc_info:
            ledger.reduce_debt("alice", 101)
        assert exc_info.value.debt == 100
        assert ledger.debt_of("alice") == 100

    def test_total_debt(self, ledger):
        ledger.add_debt("alice", 100)
        ledger.add_debt("bob", 50)
        assert ledger.total_debt() == 150


class TestAccounts:

    def test_first_appearance_order(self, ledger):
        ledger.add_debt("carol", 1)
        ledger.credit_collateral("alice", "WETH", 1)
        ledger.credit_collateral("carol", "WETH", 1)
        ledger.add_debt("bob", 1)
        assert ledger.list_accounts() == ["carol", "alice", "bob"]

    def test_accounts_survive_zero_balances(self, ledger):
        ledger.credit_collateral("alice", "WETH", 1)
        ledger.debit_collateral("alice", "WETH", 1)
        assert ledger.has_account("alice")
        assert "alice" in ledger.list_accounts()


class TestSnapshot:

    def test_restore_undoes_changes(self, ledger):
        ledger.credit_collateral("alice", "WETH", 10)
        ledger.add_debt("alice", 5)
        snap = ledger.snapshot()

        ledger.credit_collateral("alice", "WETH", 1)
        ledger.add_debt("bob", 7)
        ledger.restore(snap)

        assert ledger.collateral_of("alice", "WETH") == 10
        assert ledger.debt_of("alice") == 5
        assert ledger.debt_of("bob") == 0
        assert ledger.list_accounts() == ["alice"]

    def test_snapshot_is_isolated(self, ledger):
        ledger.credit_collateral("alice", "WETH", 10)
        snap = ledger.snapshot()
        ledger.credit_collateral("alice", "WETH", 10)
        collateral, _, _ = snap
        assert collateral["alice"]["WETH"] == 10

    def test_snapshot_survives_repeated_restore(self, ledger):
        ledger.credit_collateral("alice", "WETH", 10)
        snap = ledger.snapshot()
        ledger.restore(snap)
        ledger.credit_collateral("alice", "WETH", 5)
        ledger.restore(snap)
        assert ledger.collateral_of("alice", "WETH") == 10

    def test_clone_is_independent(self, ledger):
        ledger.add_debt("alice", 5)
        cloned = ledger.clone()
        cloned.add_debt("alice", 5)
        assert ledger.debt_of("alice") == 5
        assert cloned.debt_of("alice") == 10

    def test_repr(self, ledger):
        ledger.add_debt("alice", 5)
        assert "1 accounts" in repr(ledger)
