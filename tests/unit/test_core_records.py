"""
test_core_records.py - Unit tests for core value types

Tests:
- require_positive validation
- AssetRegistry construction, lookup and ordering
- RiskParameters validation
- PositionChange validation
- OperationRecord intent ids, touched accounts and repr
- Error taxonomy
"""

import pytest

from pegledger import (
    require_positive, AssetRegistry, RiskParameters, PositionChange,
    OperationRecord, OperationType, Book,
    InvalidAmount, AssetNotSupported, ConfigurationError, BreaksHealthFactor,
    EngineError, OracleError, StalePrice, OracleUnavailable, TokenError,
    CollateralDeposited,
    LIQUIDATION_THRESHOLD, LIQUIDATION_BONUS, MIN_HEALTH_FACTOR,
)


class TestRequirePositive:
    """Tests for require_positive."""

    def test_positive_int_passes_through(self):
        assert require_positive(5) == 5

    @pytest.mark.parametrize("bad", [0, -1, -10**18])
    def test_non_positive_rejected(self, bad):
        with pytest.raises(InvalidAmount):
            require_positive(bad)

    @pytest.mark.parametrize("bad", [1.0, "1", None, True])
    def test_non_int_rejected(self, bad):
        """Floats, strings and bools are not amounts."""
        with pytest.raises(InvalidAmount):
            require_positive(bad)

    def test_name_appears_in_message(self):
        with pytest.raises(InvalidAmount, match="debt_to_cover"):
            require_positive(0, "debt_to_cover")


class TestAssetRegistry:
    """Tests for AssetRegistry."""

    def test_from_lists_preserves_order(self):
        registry = AssetRegistry.from_lists(["WETH", "WBTC"], ["ETH/USD", "BTC/USD"])
        assert registry.assets == ("WETH", "WBTC")
        assert list(registry) == ["WETH", "WBTC"]
        assert len(registry) == 2

    def test_feed_lookup(self):
        registry = AssetRegistry.from_lists(["WETH"], ["ETH/USD"])
        assert registry.feed_for("WETH") == "ETH/USD"
        assert "WETH" in registry
        assert "DOGE" not in registry

    def test_unknown_asset_raises(self):
        registry = AssetRegistry.from_lists(["WETH"], ["ETH/USD"])
        with pytest.raises(AssetNotSupported):
            registry.feed_for("DOGE")

    def test_length_mismatch_raises(self):
        with pytest.raises(ConfigurationError, match="same length"):
            AssetRegistry.from_lists(["WETH", "WBTC"], ["ETH/USD"])

    def test_duplicate_asset_raises(self):
        with pytest.raises(ConfigurationError, match="twice"):
            AssetRegistry.from_lists(["WETH", "WETH"], ["ETH/USD", "ETH/USD2"])

    def test_empty_feed_raises(self):
        with pytest.raises(ConfigurationError):
            AssetRegistry.from_lists(["WETH"], [""])

    def test_registry_is_immutable(self):
        registry = AssetRegistry.from_lists(["WETH"], ["ETH/USD"])
        with pytest.raises(AttributeError):
            registry.entries = ()


class TestRiskParameters:
    """Tests for RiskParameters validation."""

    def test_defaults(self):
        params = RiskParameters()
        assert params.liquidation_threshold == LIQUIDATION_THRESHOLD
        assert params.liquidation_bonus == LIQUIDATION_BONUS
        assert params.min_health_factor == MIN_HEALTH_FACTOR

    def test_threshold_above_precision_rejected(self):
        with pytest.raises(ValueError):
            RiskParameters(liquidation_threshold=101)

    def test_zero_threshold_rejected(self):
        with pytest.raises(ValueError):
            RiskParameters(liquidation_threshold=0)

    def test_negative_bonus_rejected(self):
        with pytest.raises(ValueError):
            RiskParameters(liquidation_bonus=-1)

    def test_float_rejected(self):
        with pytest.raises(ValueError, match="must be an int"):
            RiskParameters(liquidation_threshold=0.5)


class TestPositionChange:
    """Tests for PositionChange validation."""

    def test_collateral_change(self):
        change = PositionChange(Book.COLLATERAL, "alice", "WETH", 10)
        assert change.delta == 10
        assert "alice/WETH" in repr(change)

    def test_zero_delta_rejected(self):
        with pytest.raises(ValueError):
            PositionChange(Book.DEBT, "alice", None, 0)

    def test_collateral_needs_asset(self):
        with pytest.raises(ValueError):
            PositionChange(Book.COLLATERAL, "alice", None, 10)

    def test_debt_carries_no_asset(self):
        with pytest.raises(ValueError):
            PositionChange(Book.DEBT, "alice", "WETH", 10)

    def test_empty_account_rejected(self):
        with pytest.raises(ValueError):
            PositionChange(Book.DEBT, " ", None, 10)


class TestOperationRecord:
    """Tests for OperationRecord."""

    def _record(self, changes, initiator="alice"):
        return OperationRecord(
            operation=OperationType.DEPOSIT,
            initiator=initiator,
            changes=tuple(changes),
            events=(CollateralDeposited("alice", "WETH", 10),),
            sequence_number=0,
            exec_id="exec:test:000000000000",
            ledger_name="test",
        )

    def test_intent_id_is_deterministic(self):
        changes = [PositionChange(Book.COLLATERAL, "alice", "WETH", 10)]
        assert self._record(changes).intent_id == self._record(changes).intent_id
        assert len(self._record(changes).intent_id) == 16

    def test_intent_id_depends_on_changes(self):
        a = self._record([PositionChange(Book.COLLATERAL, "alice", "WETH", 10)])
        b = self._record([PositionChange(Book.COLLATERAL, "alice", "WETH", 11)])
        assert a.intent_id != b.intent_id

    def test_accounts_auto_populated(self):
        record = self._record([
            PositionChange(Book.COLLATERAL, "alice", "WETH", -10),
            PositionChange(Book.DEBT, "bob", None, -5),
        ], initiator="carol")
        assert record.accounts == frozenset({"alice", "bob"})

    def test_repr_lists_changes_and_events(self):
        record = self._record([PositionChange(Book.COLLATERAL, "alice", "WETH", 10)])
        text = repr(record)
        assert "exec:test:000000000000" in text
        assert "Changes (1)" in text
        assert "Events (1)" in text


class TestErrorTaxonomy:
    """Every engine error shares one root; oracle errors share a branch."""

    def test_hierarchy(self):
        assert issubclass(StalePrice, OracleError)
        assert issubclass(OracleUnavailable, OracleError)
        assert issubclass(OracleError, EngineError)
        assert issubclass(InvalidAmount, EngineError)
        assert not issubclass(TokenError, EngineError)

    def test_breaks_health_factor_carries_value(self):
        err = BreaksHealthFactor(999, "alice")
        assert err.health_factor == 999
        assert err.user == "alice"
        assert "999" in str(err)
