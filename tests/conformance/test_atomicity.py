"""
Atomicity Conformance Tests

INVARIANT: Operations are all-or-nothing.

    ∀ operation O:
        O succeeds ⟹ every ledger change and token movement of O is applied
        O fails ⟹ ledgers, token balances, allowances and the log are unchanged

Failures are injected at each stage: validation, ledger update, token call,
final health check.
"""

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from pegledger import EngineError, TokenError
from tests.fakes import (
    build_system, fund, open_position, approve_dsc, snapshot_state,
    FailingToken, DecliningStableCoin, ONE,
)


class TestAtomicityProperties:
    """Property-based atomicity tests."""

    @given(
        collateral=st.integers(min_value=1, max_value=10 * ONE),
        debt=st.integers(min_value=1, max_value=30000 * ONE),
    )
    @settings(max_examples=60, deadline=None)
    def test_deposit_and_mint_all_or_nothing(self, collateral, debt):
        """
        PROPERTY: deposit_collateral_and_mint either applies both halves or neither.
        """
        system = build_system()
        fund(system, "alice", "WETH", 10 * ONE)
        before = snapshot_state(system)

        try:
            system.engine.deposit_collateral_and_mint("alice", "WETH", collateral, debt)
        except EngineError:
            assert snapshot_state(system) == before
        else:
            assert system.engine.get_collateral_balance_of_user("alice", "WETH") == collateral
            assert system.engine.get_debt("alice") == debt
            assert system.dsc.balance_of("alice") == debt
            assert system.weth.balance_of("alice") == 10 * ONE - collateral

    @given(
        redeem=st.integers(min_value=1, max_value=2 * ONE),
        burn=st.integers(min_value=1, max_value=1200 * ONE),
    )
    @settings(max_examples=60, deadline=None)
    def test_redeem_for_burn_all_or_nothing(self, redeem, burn):
        """
        PROPERTY: redeem_collateral_for_burn never burns without redeeming or vice versa.
        """
        system = build_system()
        open_position(system, "alice", ONE, 1000 * ONE)
        approve_dsc(system, "alice", 1000 * ONE)
        before = snapshot_state(system)

        try:
            system.engine.redeem_collateral_for_burn("alice", "WETH", redeem, burn)
        except EngineError:
            assert snapshot_state(system) == before
        else:
            assert system.engine.get_debt("alice") == 1000 * ONE - burn
            assert system.engine.get_collateral_balance_of_user("alice", "WETH") == ONE - redeem
            assert system.dsc.total_supply() == 1000 * ONE - burn


class TestAtomicityExamples:
    """Explicit atomicity examples, one per failure stage."""

    def test_failure_after_ledger_update(self):
        """Token refuses after the ledger was credited."""
        weth = FailingToken()
        system = build_system(weth=weth)
        fund(system, "alice", "WETH", ONE)
        weth.fail_transfer_from = True
        before = snapshot_state(system)
        with pytest.raises(EngineError):
            system.engine.deposit_collateral("alice", "WETH", ONE)
        assert snapshot_state(system) == before

    def test_failure_after_token_movement(self):
        """Collateral already left custody when the health check fails."""
        system = build_system()
        open_position(system, "alice", ONE, 1000 * ONE)
        before = snapshot_state(system)
        with pytest.raises(EngineError):
            system.engine.redeem_collateral("alice", "WETH", ONE // 2)
        assert snapshot_state(system) == before

    def test_failure_in_issued_asset(self):
        """Issued asset declines the mint after debt was recorded."""
        dsc = DecliningStableCoin()
        system = build_system(dsc=dsc)
        fund(system, "alice", "WETH", ONE)
        dsc.decline_mint = True
        before = snapshot_state(system)
        with pytest.raises(EngineError):
            system.engine.deposit_collateral_and_mint("alice", "WETH", ONE, ONE)
        assert snapshot_state(system) == before

    def test_non_engine_error_also_rolls_back(self):
        """A collaborator raising its own error type still unwinds everything."""
        system = build_system()
        open_position(system, "alice", ONE, 100 * ONE)

        def explode(token, sender, to, amount):
            raise TokenError("transfer hook failure")

        system.weth.on_transfer = explode
        before = snapshot_state(system)
        with pytest.raises(TokenError):
            system.engine.redeem_collateral("alice", "WETH", ONE // 10)
        assert snapshot_state(system) == before

    def test_engine_usable_after_failure(self):
        system = build_system()
        fund(system, "alice", "WETH", ONE)
        with pytest.raises(EngineError):
            system.engine.deposit_collateral_and_mint("alice", "WETH", ONE, 1001 * ONE)
        system.engine.deposit_collateral_and_mint("alice", "WETH", ONE, 1000 * ONE)
        assert system.engine.get_debt("alice") == 1000 * ONE
