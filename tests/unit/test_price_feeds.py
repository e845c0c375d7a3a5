"""
test_price_feeds.py - Unit tests for feeds, the logical clock and the oracle

Tests:
- LogicalClock monotonicity
- StaticPriceFeed rounds and stamps
- TimeSeriesPriceFeed lookup by clock time
- StalenessCheckedOracle staleness rules and unavailable quotes
"""

import pytest
from datetime import datetime, timedelta

from pegledger import (
    LogicalClock, RoundData, PriceFeed, StaticPriceFeed, TimeSeriesPriceFeed,
    StalenessCheckedOracle, OracleUnavailable, DEFAULT_PRICE_TIMEOUT,
)


T0 = datetime(2025, 1, 15, 9, 0)


class TestLogicalClock:
    """Tests for LogicalClock."""

    def test_advance(self):
        clock = LogicalClock(T0)
        assert clock.advance_by(timedelta(hours=1)) == T0 + timedelta(hours=1)
        assert clock() == clock.now()

    def test_cannot_move_backwards(self):
        clock = LogicalClock(T0)
        with pytest.raises(ValueError):
            clock.advance_time(T0 - timedelta(seconds=1))


class TestStaticPriceFeed:
    """Tests for StaticPriceFeed."""

    def test_updates_advance_rounds(self):
        clock = LogicalClock(T0)
        feed = StaticPriceFeed(2000_00000000, clock=clock)
        clock.advance_by(timedelta(minutes=5))
        round_data = feed.update_answer(1900_00000000)
        assert round_data.round_id == 2
        assert round_data.answered_in_round == 2
        assert round_data.updated_at == T0 + timedelta(minutes=5)
        assert feed.latest_answer == 1900_00000000

    def test_empty_feed(self):
        feed = StaticPriceFeed()
        assert feed.latest_round_data() is None
        assert feed.latest_answer is None

    def test_satisfies_protocol(self):
        assert isinstance(StaticPriceFeed(1), PriceFeed)


class TestTimeSeriesPriceFeed:
    """Tests for TimeSeriesPriceFeed."""

    def test_answers_latest_observation_at_or_before_now(self):
        clock = LogicalClock(T0)
        feed = TimeSeriesPriceFeed(clock=clock)
        feed.add_price(T0 + timedelta(hours=2), 1800_00000000)
        feed.add_price(T0, 2000_00000000)

        assert feed.latest_round_data().answer == 2000_00000000
        clock.advance_by(timedelta(hours=1))
        assert feed.latest_round_data().answer == 2000_00000000
        clock.advance_by(timedelta(hours=1))
        assert feed.latest_round_data().answer == 1800_00000000
        assert feed.latest_round_data().round_id == 2

    def test_nothing_before_first_observation(self):
        clock = LogicalClock(T0)
        feed = TimeSeriesPriceFeed([(T0 + timedelta(hours=1), 1)], clock=clock)
        assert feed.latest_round_data() is None

    def test_batch_path_is_sorted(self):
        feed = TimeSeriesPriceFeed([(T0 + timedelta(hours=1), 2), (T0, 1)])
        assert feed.get_all_timestamps() == [T0, T0 + timedelta(hours=1)]


class TestStalenessCheckedOracle:
    """Tests for StalenessCheckedOracle."""

    def _oracle(self):
        clock = LogicalClock(T0)
        feed = StaticPriceFeed(2000_00000000, clock=clock)
        return StalenessCheckedOracle({"ETH/USD": feed}, clock=clock), feed, clock

    def test_fresh_quote(self):
        oracle, _, _ = self._oracle()
        assert oracle.latest_price("ETH/USD") == (2000_00000000, False)
        assert oracle.decimals("ETH/USD") == 8

    def test_exactly_at_timeout_is_fresh(self):
        oracle, _, clock = self._oracle()
        clock.advance_by(DEFAULT_PRICE_TIMEOUT)
        assert oracle.latest_price("ETH/USD") == (2000_00000000, False)

    def test_past_timeout_is_stale(self):
        oracle, _, clock = self._oracle()
        clock.advance_by(DEFAULT_PRICE_TIMEOUT + timedelta(seconds=1))
        assert oracle.latest_price("ETH/USD") == (2000_00000000, True)

    def test_refresh_clears_staleness(self):
        oracle, feed, clock = self._oracle()
        clock.advance_by(timedelta(hours=4))
        feed.update_answer(2100_00000000)
        assert oracle.latest_price("ETH/USD") == (2100_00000000, False)

    def test_carried_over_answer_is_stale(self):
        oracle, feed, _ = self._oracle()
        feed.set_round_data(RoundData(
            round_id=5, answer=2000_00000000, started_at=T0, updated_at=T0,
            answered_in_round=4,
        ))
        assert oracle.latest_price("ETH/USD")[1] is True

    def test_incomplete_round_is_stale(self):
        oracle, feed, _ = self._oracle()
        feed.set_round_data(RoundData(
            round_id=2, answer=2000_00000000, started_at=T0, updated_at=None,
            answered_in_round=2,
        ))
        assert oracle.latest_price("ETH/USD")[1] is True

    def test_unknown_feed_unavailable(self):
        oracle, _, _ = self._oracle()
        with pytest.raises(OracleUnavailable):
            oracle.latest_price("BTC/USD")

    def test_empty_feed_unavailable(self):
        oracle = StalenessCheckedOracle({"ETH/USD": StaticPriceFeed()})
        with pytest.raises(OracleUnavailable):
            oracle.latest_price("ETH/USD")

    def test_non_positive_answer_unavailable(self):
        oracle, feed, _ = self._oracle()
        feed.update_answer(0)
        with pytest.raises(OracleUnavailable):
            oracle.latest_price("ETH/USD")

    def test_duplicate_registration_rejected(self):
        oracle, feed, _ = self._oracle()
        with pytest.raises(ValueError):
            oracle.register_feed("ETH/USD", feed)
