"""
tokens.py - Reference token ledgers for collateral and the issued asset

In-memory implementations of the collaborator protocols the engine consumes:

- CollateralToken: balances, allowances, transfer / transfer_from returning
  bool, snapshot / restore so the engine can roll failed operations back
- StableCoin: the pegged issued asset; a CollateralToken whose owner alone
  may mint and burn

Every call names its caller explicitly. A transfer that cannot be honoured
(insufficient balance or allowance) returns False; misuse that a real token
would reject outright (unauthorized mint, zero recipient) raises TokenError.
"""

from __future__ import annotations
import logging
from typing import Any, Callable, Dict, Optional, Tuple

from .core import TokenError, ZERO_ADDRESS


logger = logging.getLogger(__name__)

# Called after every balance movement: (token, sender, recipient, amount)
TransferHook = Callable[["CollateralToken", str, str, int], None]


class CollateralToken:
    """
    Fungible token with allowance-based delegated transfers.

    Example:
        weth = CollateralToken("WETH")
        weth.mint_to("alice", 10 * 10**18)
        weth.approve("alice", "engine", 10 * 10**18)
        weth.transfer_from("engine", "alice", "engine", 10**18)   # True
    """

    def __init__(self, symbol: str, name: Optional[str] = None, decimals: int = 18):
        if not symbol or not symbol.strip():
            raise ValueError("Token symbol cannot be empty")
        self.symbol = symbol
        self.name = name or symbol
        self.decimals = decimals
        self.balances: Dict[str, int] = {}
        self.allowances: Dict[Tuple[str, str], int] = {}
        self.on_transfer: Optional[TransferHook] = None

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def balance_of(self, account: str) -> int:
        return self.balances.get(account, 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self.allowances.get((owner, spender), 0)

    def total_supply(self) -> int:
        return sum(self.balances[a] for a in sorted(self.balances))

    # ------------------------------------------------------------------
    # Transfers
    # ------------------------------------------------------------------

    def approve(self, owner: str, spender: str, amount: int) -> bool:
        if amount < 0:
            raise TokenError(f"allowance cannot be negative, got {amount}")
        self.allowances[(owner, spender)] = amount
        return True

    def transfer(self, caller: str, to: str, amount: int) -> bool:
        """Move ``amount`` from the caller to ``to``; False if underfunded."""
        return self._move(caller, to, amount)

    def transfer_from(self, caller: str, sender: str, to: str, amount: int) -> bool:
        """
        Move ``amount`` from ``sender`` to ``to`` on the caller's allowance.

        Returns False when the allowance or the sender's balance is short.
        """
        allowed = self.allowance(sender, caller)
        if caller != sender and allowed < amount:
            return False
        if self.balance_of(sender) < amount:
            return False
        if caller != sender:
            self.allowances[(sender, caller)] = allowed - amount
        return self._move(sender, to, amount)

    def _move(self, sender: str, to: str, amount: int) -> bool:
        if amount < 0:
            return False
        if to == ZERO_ADDRESS:
            raise TokenError("cannot transfer to the zero address")
        if self.balance_of(sender) < amount:
            return False
        self.balances[sender] = self.balance_of(sender) - amount
        self.balances[to] = self.balance_of(to) + amount
        if self.on_transfer is not None:
            self.on_transfer(self, sender, to, amount)
        return True

    def mint_to(self, account: str, amount: int) -> None:
        """Credit ``account`` out of thin air (faucet for tests and demos)."""
        if amount <= 0:
            raise TokenError(f"mint amount must be positive, got {amount}")
        self.balances[account] = self.balance_of(account) + amount

    # ------------------------------------------------------------------
    # Rollback support
    # ------------------------------------------------------------------

    def snapshot(self) -> Any:
        return dict(self.balances), dict(self.allowances)

    def restore(self, snapshot: Any) -> None:
        balances, allowances = snapshot
        self.balances = dict(balances)
        self.allowances = dict(allowances)

    def __repr__(self):
        return f"{type(self).__name__}({self.symbol!r}, supply={self.total_supply()})"


class StableCoin(CollateralToken):
    """
    The pegged issued asset.

    Only the owner (the engine's custody address once ownership is handed
    over) may mint or burn. Burning destroys tokens held by the owner.
    """

    def __init__(self, owner: str, symbol: str = "DSC", name: str = "Decentralized Stable Coin"):
        super().__init__(symbol, name, decimals=18)
        self.owner = owner

    def transfer_ownership(self, caller: str, new_owner: str) -> None:
        self._only_owner(caller)
        if not new_owner or new_owner == ZERO_ADDRESS:
            raise TokenError("new owner cannot be the zero address")
        self.owner = new_owner

    def _only_owner(self, caller: str) -> None:
        if caller != self.owner:
            raise TokenError(f"{caller} is not the owner of {self.symbol}")

    def mint(self, caller: str, to: str, amount: int) -> bool:
        self._only_owner(caller)
        if to == ZERO_ADDRESS:
            raise TokenError("cannot mint to the zero address")
        if amount <= 0:
            raise TokenError(f"mint amount must be more than zero, got {amount}")
        self.balances[to] = self.balance_of(to) + amount
        logger.debug("%s minted %d to %s", self.symbol, amount, to)
        return True

    def burn(self, caller: str, amount: int) -> None:
        self._only_owner(caller)
        if amount <= 0:
            raise TokenError(f"burn amount must be more than zero, got {amount}")
        if self.balance_of(caller) < amount:
            raise TokenError(
                f"burn amount {amount} exceeds balance {self.balance_of(caller)}"
            )
        self.balances[caller] = self.balance_of(caller) - amount
        logger.debug("%s burned %d", self.symbol, amount)
