"""
ledger.py - Stateful Collateral and Debt Ledger

The PositionLedger is the central state manager for the engine. It is the only
module that mutates positions, ensuring controlled and auditable changes.

Key responsibilities:
    - Holds the collateral book (user -> asset -> amount) and the debt book
      (user -> amount); neither may go negative
    - Applies changes only inside an explicit transaction: all changes of an
      operation commit together or are rolled back together
    - Keeps an append-only log of committed operations
    - Rebuilds state from the log (replay) and clones itself for what-if use
"""

from __future__ import annotations
from collections import defaultdict
from contextlib import contextmanager
import copy
import logging
from typing import Dict, Iterator, List, Optional, Set, Tuple

from .core import (
    # Types
    Book, OperationRecord, OperationType, PositionChange,
    # Exceptions
    InsufficientBalance, LedgerError,
    # Helpers
    require_positive,
)


logger = logging.getLogger(__name__)


class _Journal:
    """Changes and events accumulated by the transaction in flight."""

    __slots__ = ("operation", "initiator", "changes", "events")

    def __init__(self, operation: OperationType, initiator: str):
        self.operation = operation
        self.initiator = initiator
        self.changes: List[PositionChange] = []
        self.events: List[object] = []


class PositionLedger:
    """
    Collateral and debt books with transactional updates and an audit trail.

    Design Principles:
        - Never negative: debits that would overdraw raise InsufficientBalance
          instead of clamping or wrapping.
        - Always transactional: mutation primitives raise LedgerError unless a
          transaction is open.
        - Always logs: every committed transaction lands in transaction_log,
          enabling replay() for state reconstruction.

    Thread Safety:
        Not thread-safe. A single writer applies operations one at a time.

    Example:
        ledger = PositionLedger("main")
        with ledger.transaction(OperationType.DEPOSIT, "alice"):
            ledger.credit_collateral("alice", "WETH", 10**18)
        ledger.get_collateral("alice", "WETH")   # 10**18
    """

    def __init__(self, name: str = "positions"):
        self.name = name
        self.collateral: Dict[str, Dict[str, int]] = {}
        self.debt: Dict[str, int] = {}
        self.transaction_log: List[OperationRecord] = []
        self._next_sequence: int = 0
        self._journal: Optional[_Journal] = None
        # Inverted index asset -> {user -> amount} for per-asset totals
        self._deposits_by_asset: Dict[str, Dict[str, int]] = defaultdict(dict)

    # ========================================================================
    # READ-ONLY ACCESS
    # ========================================================================

    def get_collateral(self, user: str, asset: str) -> int:
        """Deposited amount of ``asset`` for ``user`` (0 if none)."""
        return self.collateral.get(user, {}).get(asset, 0)

    def get_collateral_balances(self, user: str) -> Dict[str, int]:
        """All non-zero collateral balances of ``user``."""
        return {a: q for a, q in self.collateral.get(user, {}).items() if q}

    def get_debt(self, user: str) -> int:
        """Minted debt of ``user`` (0 if none)."""
        return self.debt.get(user, 0)

    def get_depositors(self, asset: str) -> Dict[str, int]:
        """All non-zero positions in ``asset`` across users."""
        return dict(self._deposits_by_asset.get(asset, {}))

    def total_deposited(self, asset: str) -> int:
        """Sum of all users' deposits of ``asset``, summed in sorted user order."""
        positions = self._deposits_by_asset.get(asset, {})
        return sum(positions[u] for u in sorted(positions))

    def total_debt(self) -> int:
        """Sum of all users' debt."""
        return sum(self.debt[u] for u in sorted(self.debt))

    def list_accounts(self) -> Set[str]:
        """Users holding any non-zero collateral or debt."""
        accounts = {u for u, q in self.debt.items() if q}
        for user, balances in self.collateral.items():
            if any(balances.values()):
                accounts.add(user)
        return accounts

    @property
    def in_transaction(self) -> bool:
        return self._journal is not None

    # ========================================================================
    # MUTATION PRIMITIVES (inside a transaction only)
    # ========================================================================

    def _require_journal(self) -> _Journal:
        if self._journal is None:
            raise LedgerError("Positions can only change inside a transaction")
        return self._journal

    def credit_collateral(self, user: str, asset: str, amount: int) -> int:
        """Increase a collateral position; returns the new balance."""
        require_positive(amount)
        return self._apply(PositionChange(Book.COLLATERAL, user, asset, amount))

    def debit_collateral(self, user: str, asset: str, amount: int) -> int:
        """
        Decrease a collateral position; returns the new balance.

        Raises:
            InsufficientBalance: If amount exceeds the deposited balance
        """
        require_positive(amount)
        current = self.get_collateral(user, asset)
        if amount > current:
            raise InsufficientBalance(
                f"{user} {asset}: cannot remove {amount}, only {current} deposited"
            )
        return self._apply(PositionChange(Book.COLLATERAL, user, asset, -amount))

    def credit_debt(self, user: str, amount: int) -> int:
        """Increase a debt position; returns the new debt."""
        require_positive(amount)
        return self._apply(PositionChange(Book.DEBT, user, None, amount))

    def debit_debt(self, user: str, amount: int) -> int:
        """
        Decrease a debt position; returns the new debt.

        Raises:
            InsufficientBalance: If amount exceeds the outstanding debt
        """
        require_positive(amount)
        current = self.get_debt(user)
        if amount > current:
            raise InsufficientBalance(
                f"{user}: cannot burn {amount}, only {current} minted"
            )
        return self._apply(PositionChange(Book.DEBT, user, None, -amount))

    def record_event(self, event: object) -> None:
        """Attach a notification to the transaction in flight."""
        self._require_journal().events.append(event)

    def _apply(self, change: PositionChange) -> int:
        journal = self._require_journal()
        new_balance = self._apply_change(change)
        journal.changes.append(change)
        return new_balance

    def _apply_change(self, change: PositionChange) -> int:
        """Apply one change to the books and keep the index in sync."""
        if change.book is Book.COLLATERAL:
            balances = self.collateral.setdefault(change.account, {})
            new_balance = balances.get(change.asset, 0) + change.delta
            if new_balance < 0:
                raise InsufficientBalance(
                    f"{change.account} {change.asset}: balance would be {new_balance}"
                )
            balances[change.asset] = new_balance
            self._update_position_index(change.account, change.asset, new_balance)
        else:
            new_balance = self.debt.get(change.account, 0) + change.delta
            if new_balance < 0:
                raise InsufficientBalance(
                    f"{change.account}: debt would be {new_balance}"
                )
            self.debt[change.account] = new_balance
        return new_balance

    def _update_position_index(self, user: str, asset: str, quantity: int) -> None:
        """Keep asset -> {user -> amount} in sync; zero positions are dropped."""
        if quantity:
            self._deposits_by_asset[asset][user] = quantity
        else:
            self._deposits_by_asset[asset].pop(user, None)

    # ========================================================================
    # TRANSACTIONS
    # ========================================================================

    def _generate_exec_id(self, sequence: int) -> str:
        """Format: exec:{ledger_name}:{sequence:012d}"""
        return f"exec:{self.name}:{sequence:012d}"

    def _snapshot(self) -> Tuple[Dict[str, Dict[str, int]], Dict[str, int]]:
        return copy.deepcopy(self.collateral), dict(self.debt)

    def _restore(self, snapshot: Tuple[Dict[str, Dict[str, int]], Dict[str, int]]) -> None:
        collateral, debt = snapshot
        self.collateral = collateral
        self.debt = debt
        self._rebuild_index()

    def _rebuild_index(self) -> None:
        self._deposits_by_asset = defaultdict(dict)
        for user, balances in self.collateral.items():
            for asset, quantity in balances.items():
                self._update_position_index(user, asset, quantity)

    @contextmanager
    def transaction(self, operation: OperationType, initiator: str) -> Iterator[_Journal]:
        """
        Open a transaction for one operation.

        All changes made inside the block commit together when it exits
        normally; any exception restores the books to their state on entry and
        propagates. Committed transactions are appended to transaction_log,
        including ones that changed nothing.

        Raises:
            LedgerError: If a transaction is already open
        """
        if self._journal is not None:
            raise LedgerError(
                f"Transaction already open for {self._journal.operation.value}"
            )
        snapshot = self._snapshot()
        journal = _Journal(operation, initiator)
        self._journal = journal
        try:
            yield journal
        except BaseException:
            self._restore(snapshot)
            raise
        finally:
            self._journal = None

        sequence = self._next_sequence
        self._next_sequence += 1
        record = OperationRecord(
            operation=operation,
            initiator=initiator,
            changes=tuple(journal.changes),
            events=tuple(journal.events),
            sequence_number=sequence,
            exec_id=self._generate_exec_id(sequence),
            ledger_name=self.name,
        )
        self.transaction_log.append(record)
        logger.debug("committed %s by %s (%d changes)",
                     operation.value, initiator, len(record.changes))

    @property
    def last_record(self) -> Optional[OperationRecord]:
        return self.transaction_log[-1] if self.transaction_log else None

    # ========================================================================
    # LEDGER OPERATIONS
    # ========================================================================

    def clone(self) -> PositionLedger:
        """
        Create a deep copy of this ledger.

        All state is fully independent: modifications to the clone will not
        affect the original ledger, and vice versa. The log is shared by
        reference to its immutable records.
        """
        if self._journal is not None:
            raise LedgerError("Cannot clone while a transaction is open")
        cloned = PositionLedger(self.name)
        cloned.collateral = copy.deepcopy(self.collateral)
        cloned.debt = dict(self.debt)
        cloned.transaction_log = list(self.transaction_log)
        cloned._next_sequence = self._next_sequence
        cloned._rebuild_index()
        return cloned

    def replay(self, from_tx: int = 0) -> PositionLedger:
        """
        Create a new ledger by replaying the transaction log.

        Reconstructs positions by re-applying every logged change in order, so
        the result equals the live state when replayed from the beginning.

        Args:
            from_tx: Starting transaction index (0 = replay from beginning)

        Returns:
            New PositionLedger with replayed state

        Raises:
            LedgerError: If a logged change cannot be re-applied
        """
        replayed = PositionLedger(f"{self.name}_replayed")
        for record in self.transaction_log[from_tx:]:
            try:
                with replayed.transaction(record.operation, record.initiator) as journal:
                    for change in record.changes:
                        replayed._apply(change)
                    journal.events.extend(record.events)
            except InsufficientBalance as e:
                raise LedgerError(f"Replay failed at {record.exec_id}: {e}") from e
        return replayed

    def state_equals(self, other: PositionLedger) -> bool:
        """True when both ledgers hold the same non-zero positions."""
        def nonzero(ledger: PositionLedger):
            coll = {
                (u, a): q
                for u, bals in ledger.collateral.items()
                for a, q in bals.items() if q
            }
            debt = {u: q for u, q in ledger.debt.items() if q}
            return coll, debt
        return nonzero(self) == nonzero(other)

    def __repr__(self) -> str:
        return (f"PositionLedger({self.name!r}, accounts={len(self.list_accounts())}, "
                f"ops={len(self.transaction_log)})")
