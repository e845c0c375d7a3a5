"""
test_tokens.py - Unit tests for the reference token ledgers

Tests:
- CollateralToken transfers, allowances and underfunded calls
- Transfer hooks
- Snapshot / restore
- StableCoin owner-only mint and burn
"""

import pytest

from pegledger import CollateralToken, StableCoin, Snapshottable, TokenError, ZERO_ADDRESS


class TestCollateralToken:
    """Tests for CollateralToken."""

    def test_transfer(self):
        token = CollateralToken("WETH")
        token.mint_to("alice", 100)
        assert token.transfer("alice", "bob", 40) is True
        assert token.balance_of("alice") == 60
        assert token.balance_of("bob") == 40
        assert token.total_supply() == 100

    def test_underfunded_transfer_returns_false(self):
        token = CollateralToken("WETH")
        token.mint_to("alice", 10)
        assert token.transfer("alice", "bob", 11) is False
        assert token.balance_of("alice") == 10

    def test_transfer_from_spends_allowance(self):
        token = CollateralToken("WETH")
        token.mint_to("alice", 100)
        token.approve("alice", "engine", 50)
        assert token.transfer_from("engine", "alice", "engine", 30) is True
        assert token.allowance("alice", "engine") == 20
        assert token.balance_of("engine") == 30

    def test_transfer_from_without_allowance_returns_false(self):
        token = CollateralToken("WETH")
        token.mint_to("alice", 100)
        assert token.transfer_from("engine", "alice", "engine", 1) is False
        assert token.balance_of("alice") == 100

    def test_transfer_from_own_balance_needs_no_allowance(self):
        token = CollateralToken("WETH")
        token.mint_to("alice", 100)
        assert token.transfer_from("alice", "alice", "bob", 10) is True

    def test_transfer_to_zero_address_raises(self):
        token = CollateralToken("WETH")
        token.mint_to("alice", 100)
        with pytest.raises(TokenError):
            token.transfer("alice", ZERO_ADDRESS, 1)

    def test_negative_allowance_raises(self):
        with pytest.raises(TokenError):
            CollateralToken("WETH").approve("alice", "engine", -1)

    def test_hook_sees_every_movement(self):
        token = CollateralToken("WETH")
        seen = []
        token.on_transfer = lambda t, sender, to, amount: seen.append((sender, to, amount))
        token.mint_to("alice", 100)
        token.transfer("alice", "bob", 5)
        assert seen == [("alice", "bob", 5)]

    def test_snapshot_restore(self):
        token = CollateralToken("WETH")
        token.mint_to("alice", 100)
        token.approve("alice", "engine", 10)
        snap = token.snapshot()
        token.transfer_from("engine", "alice", "bob", 10)
        token.restore(snap)
        assert token.balance_of("alice") == 100
        assert token.balance_of("bob") == 0
        assert token.allowance("alice", "engine") == 10

    def test_is_snapshottable(self):
        assert isinstance(CollateralToken("WETH"), Snapshottable)

    def test_empty_symbol_rejected(self):
        with pytest.raises(ValueError):
            CollateralToken("")


class TestStableCoin:
    """Tests for StableCoin."""

    def test_owner_mints(self):
        dsc = StableCoin(owner="engine")
        assert dsc.mint("engine", "alice", 100) is True
        assert dsc.balance_of("alice") == 100

    def test_non_owner_cannot_mint(self):
        dsc = StableCoin(owner="engine")
        with pytest.raises(TokenError, match="not the owner"):
            dsc.mint("alice", "alice", 100)

    def test_mint_to_zero_address_rejected(self):
        dsc = StableCoin(owner="engine")
        with pytest.raises(TokenError):
            dsc.mint("engine", ZERO_ADDRESS, 100)

    def test_mint_zero_rejected(self):
        dsc = StableCoin(owner="engine")
        with pytest.raises(TokenError):
            dsc.mint("engine", "alice", 0)

    def test_burn_from_owner_balance(self):
        dsc = StableCoin(owner="engine")
        dsc.mint("engine", "engine", 100)
        dsc.burn("engine", 40)
        assert dsc.balance_of("engine") == 60
        assert dsc.total_supply() == 60

    def test_burn_more_than_balance_rejected(self):
        dsc = StableCoin(owner="engine")
        dsc.mint("engine", "engine", 10)
        with pytest.raises(TokenError, match="exceeds balance"):
            dsc.burn("engine", 11)

    def test_transfer_ownership(self):
        dsc = StableCoin(owner="deployer")
        dsc.transfer_ownership("deployer", "engine")
        assert dsc.owner == "engine"
        with pytest.raises(TokenError):
            dsc.mint("deployer", "alice", 1)
