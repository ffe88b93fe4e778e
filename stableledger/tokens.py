"""
tokens.py - In-memory token collaborators

Reference implementations of the FungibleToken and StableUnitSupply
protocols, used by the tests, the demo and the stress simulation.

Each token has an operator: the account on whose behalf transfer() and
transfer_from() act. The engine is the operator of every token it is given,
so its calls are implicitly scoped to its own holdings and allowances.

Both classes implement SupportsSnapshot, which lets the engine undo token
movements of a failed call.
"""

from __future__ import annotations
from typing import Any, Callable, Dict, Optional, Set, Tuple

from .core import ENGINE_ACCOUNT

# Called as hook(method, payer, payee, amount) after a successful movement.
TransferHook = Callable[[str, str, str, int], None]


class InMemoryToken:
    """
    ERC-20-like fungible token held in memory.

    Failures are reported by returning False, never by raising, matching the
    boolean contract of the FungibleToken protocol.

    Example:
        weth = InMemoryToken("WETH")
        weth.faucet("alice", 10**18)
        weth.approve("alice", ENGINE_ACCOUNT, 10**18)
    """

    def __init__(self, symbol: str, operator: str = ENGINE_ACCOUNT):
        self.symbol = symbol
        self.operator = operator
        self._balances: Dict[str, int] = {}
        self._allowances: Dict[Tuple[str, str], int] = {}
        self._supply: int = 0
        self._fail_next: Set[str] = set()
        self.on_transfer: Optional[TransferHook] = None

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def balance_of(self, holder: str) -> int:
        return self._balances.get(holder, 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self._allowances.get((owner, spender), 0)

    def total_supply(self) -> int:
        return self._supply

    # ------------------------------------------------------------------
    # Holder-side actions
    # ------------------------------------------------------------------

    def approve(self, owner: str, spender: str, amount: int) -> bool:
        if amount < 0:
            return False
        self._allowances[(owner, spender)] = amount
        return True

    def faucet(self, holder: str, amount: int) -> None:
        """Create amount out of thin air for holder (test funding)."""
        if amount < 0:
            raise ValueError("faucet amount cannot be negative")
        self._balances[holder] = self.balance_of(holder) + amount
        self._supply += amount

    def send(self, sender: str, payee: str, amount: int) -> bool:
        """Holder-initiated transfer between two accounts."""
        return self._move(sender, payee, amount)

    def fail_next(self, method: str) -> None:
        """Make the next call to method ('transfer', 'transfer_from', 'mint') fail."""
        self._fail_next.add(method)

    def _should_fail(self, method: str) -> bool:
        if method in self._fail_next:
            self._fail_next.discard(method)
            return True
        return False

    # ------------------------------------------------------------------
    # Operator-side actions (FungibleToken protocol)
    # ------------------------------------------------------------------

    def _move(self, payer: str, payee: str, amount: int) -> bool:
        if amount < 0 or self.balance_of(payer) < amount:
            return False
        self._balances[payer] = self.balance_of(payer) - amount
        self._balances[payee] = self.balance_of(payee) + amount
        return True

    def transfer(self, payee: str, amount: int) -> bool:
        if self._should_fail("transfer"):
            return False
        if not self._move(self.operator, payee, amount):
            return False
        if self.on_transfer is not None:
            self.on_transfer("transfer", self.operator, payee, amount)
        return True

    def transfer_from(self, payer: str, payee: str, amount: int) -> bool:
        if self._should_fail("transfer_from"):
            return False
        allowed = self.allowance(payer, self.operator)
        if allowed < amount:
            return False
        if not self._move(payer, payee, amount):
            return False
        self._allowances[(payer, self.operator)] = allowed - amount
        if self.on_transfer is not None:
            self.on_transfer("transfer_from", payer, payee, amount)
        return True

    # ------------------------------------------------------------------
    # SupportsSnapshot
    # ------------------------------------------------------------------

    def snapshot(self) -> Any:
        return dict(self._balances), dict(self._allowances), self._supply

    def restore(self, snapshot: Any) -> None:
        balances, allowances, supply = snapshot
        self._balances = dict(balances)
        self._allowances = dict(allowances)
        self._supply = supply

    def __repr__(self):
        return f"{type(self).__name__}({self.symbol}, supply={self._supply})"


class InMemoryStableUnit(InMemoryToken):
    """
    Stable unit whose supply only the operator can change.

    mint() credits any account; burn() destroys units from the operator's own
    balance, which the engine fills with transfer_from() beforehand.
    """

    def mint(self, to: str, amount: int) -> bool:
        if self._should_fail("mint") or amount <= 0:
            return False
        self._balances[to] = self.balance_of(to) + amount
        self._supply += amount
        return True

    def burn(self, amount: int) -> None:
        """
        Raises:
            ValueError: If the operator holds less than amount
        """
        held = self.balance_of(self.operator)
        if amount < 0 or held < amount:
            raise ValueError(f"burn of {amount} exceeds operator balance {held}")
        self._balances[self.operator] = held - amount
        self._supply -= amount
