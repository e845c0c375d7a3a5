"""
pricing_source.py - Price feeds and the staleness-checked oracle adapter

Provides the price infrastructure the risk engine values collateral with.

Classes:
- LogicalClock: Monotonic logical time shared by feeds and the oracle
- RoundData: One answer from a price feed
- PriceFeed: Protocol defining the feed interface
- StaticPriceFeed: Single settable answer (mock aggregator)
- TimeSeriesPriceFeed: Time-varying answers with historical data
- StalenessCheckedOracle: OracleAdapter that flags stale answers

All answers are ints scaled by the feed's ``decimals`` (8 by default).
"""

from __future__ import annotations
from bisect import bisect_right
from dataclasses import dataclass
from datetime import datetime, timedelta
import logging
from typing import Dict, List, Mapping, Optional, Protocol, Tuple, runtime_checkable

from .core import DEFAULT_FEED_DECIMALS, OracleUnavailable


logger = logging.getLogger(__name__)

# Quotes older than this are stale.
DEFAULT_PRICE_TIMEOUT = timedelta(hours=3)


class LogicalClock:
    """
    Logical time source.

    Time can only move forward, never backward.
    """

    def __init__(self, initial_time: Optional[datetime] = None):
        self._current_time: datetime = initial_time or datetime(1970, 1, 1)

    def now(self) -> datetime:
        return self._current_time

    def advance_time(self, new_time: datetime) -> None:
        """
        Advance the clock to a new time.

        Raises:
            ValueError: If new_time is before the current time
        """
        if new_time < self._current_time:
            raise ValueError(
                f"Cannot move time backwards: {new_time} < {self._current_time}"
            )
        self._current_time = new_time

    def advance_by(self, delta: timedelta) -> datetime:
        """Advance by a positive offset and return the new time."""
        self.advance_time(self._current_time + delta)
        return self._current_time

    def __call__(self) -> datetime:
        return self._current_time

    def __repr__(self):
        return f"LogicalClock({self._current_time.isoformat()})"


@dataclass(frozen=True, slots=True)
class RoundData:
    """
    One feed answer.

    Attributes:
        round_id: Monotonic round identifier
        answer: Price scaled by the feed's decimals
        started_at: When the round started
        updated_at: When the answer was written (None if never)
        answered_in_round: Round in which the answer was computed
    """
    round_id: int
    answer: int
    started_at: Optional[datetime]
    updated_at: Optional[datetime]
    answered_in_round: int


@runtime_checkable
class PriceFeed(Protocol):
    """
    Protocol for price feeds.

    Implementations expose their fixed-point ``decimals`` and the latest round.
    ``latest_round_data`` returns None when the feed has never been written.
    """
    decimals: int

    def latest_round_data(self) -> Optional[RoundData]:
        ...


class StaticPriceFeed:
    """
    Feed with a single answer that is replaced on update.

    The answer is stamped with the clock time of the update, so a feed that is
    not refreshed goes stale as the clock moves on.
    """

    def __init__(
        self,
        initial_answer: Optional[int] = None,
        decimals: int = DEFAULT_FEED_DECIMALS,
        clock: Optional[LogicalClock] = None,
    ):
        """
        Args:
            initial_answer: First answer (None leaves the feed empty)
            decimals: Fixed-point scale of answers
            clock: Time source used to stamp updates
        """
        self.decimals = decimals
        self.clock = clock or LogicalClock()
        self._round: Optional[RoundData] = None
        if initial_answer is not None:
            self.update_answer(initial_answer)

    def update_answer(self, answer: int, updated_at: Optional[datetime] = None) -> RoundData:
        """Write a new answer as the next round."""
        stamp = updated_at or self.clock.now()
        round_id = self._round.round_id + 1 if self._round else 1
        self._round = RoundData(
            round_id=round_id,
            answer=int(answer),
            started_at=stamp,
            updated_at=stamp,
            answered_in_round=round_id,
        )
        return self._round

    def set_round_data(self, round_data: RoundData) -> None:
        """Install an arbitrary round, e.g. an incomplete one."""
        self._round = round_data

    def latest_round_data(self) -> Optional[RoundData]:
        return self._round

    @property
    def latest_answer(self) -> Optional[int]:
        return self._round.answer if self._round else None

    def __repr__(self):
        return f"StaticPriceFeed(answer={self.latest_answer}, decimals={self.decimals})"


class TimeSeriesPriceFeed:
    """
    Feed with time-varying answers.

    Stores historical observations and answers with the most recent
    observation at or before the clock's current time. Each observation is its
    own round.

    Supports two initialization patterns:
    - Empty initialization for incremental addition via add_price()
    - Batch initialization with a complete price path for simulations
    """

    def __init__(
        self,
        price_path: Optional[List[Tuple[datetime, int]]] = None,
        decimals: int = DEFAULT_FEED_DECIMALS,
        clock: Optional[LogicalClock] = None,
    ):
        """
        Args:
            price_path: Optional list of (timestamp, answer) tuples.
            decimals: Fixed-point scale of answers
            clock: Time source deciding which observation is current

        Examples:
            feed = TimeSeriesPriceFeed(clock=clock)
            feed.add_price(datetime(2025, 1, 15), 2000_00000000)

            feed = TimeSeriesPriceFeed([(t0, 2000_00000000), (t1, 1800_00000000)], clock=clock)
        """
        self.decimals = decimals
        self.clock = clock or LogicalClock()
        self.history: List[Tuple[datetime, int]] = []
        if price_path:
            self.history = sorted(((ts, int(p)) for ts, p in price_path), key=lambda x: x[0])

    def add_price(self, timestamp: datetime, answer: int) -> None:
        """Add an observation, keeping history sorted by timestamp."""
        self.history.append((timestamp, int(answer)))
        self.history.sort(key=lambda x: x[0])

    def latest_round_data(self) -> Optional[RoundData]:
        """
        Latest observation at or before the current clock time.

        Uses binary search for O(log n) lookup.
        """
        if not self.history:
            return None
        timestamps = [ts for ts, _ in self.history]
        idx = bisect_right(timestamps, self.clock.now())
        if idx == 0:
            return None
        ts, answer = self.history[idx - 1]
        return RoundData(
            round_id=idx,
            answer=answer,
            started_at=ts,
            updated_at=ts,
            answered_in_round=idx,
        )

    def get_all_timestamps(self) -> List[datetime]:
        return [ts for ts, _ in self.history]

    def __repr__(self):
        return f"TimeSeriesPriceFeed({len(self.history)} observations, decimals={self.decimals})"


class StalenessCheckedOracle:
    """
    OracleAdapter over a set of price feeds.

    ``latest_price`` reports a quote as stale when:
    - the round was never completed (``updated_at`` missing),
    - the answer was carried over from an earlier round
      (``answered_in_round < round_id``), or
    - the answer is older than ``timeout`` relative to the clock.

    Unknown feeds, empty feeds and non-positive answers raise
    OracleUnavailable: there is no quote at all to judge.
    """

    def __init__(
        self,
        feeds: Optional[Mapping[str, PriceFeed]] = None,
        clock: Optional[LogicalClock] = None,
        timeout: timedelta = DEFAULT_PRICE_TIMEOUT,
    ):
        self.feeds: Dict[str, PriceFeed] = dict(feeds or {})
        self.clock = clock or LogicalClock()
        self.timeout = timeout

    def register_feed(self, feed_id: str, feed: PriceFeed) -> None:
        if feed_id in self.feeds:
            raise ValueError(f"Feed {feed_id} already registered")
        self.feeds[feed_id] = feed

    def _feed(self, feed_id: str) -> PriceFeed:
        feed = self.feeds.get(feed_id)
        if feed is None:
            raise OracleUnavailable(f"No price feed registered as {feed_id}")
        return feed

    def decimals(self, feed_id: str) -> int:
        return self._feed(feed_id).decimals

    def is_stale(self, round_data: RoundData) -> bool:
        if round_data.updated_at is None:
            return True
        if round_data.answered_in_round < round_data.round_id:
            return True
        return self.clock.now() - round_data.updated_at > self.timeout

    def latest_price(self, feed_id: str) -> Tuple[int, bool]:
        round_data = self._feed(feed_id).latest_round_data()
        if round_data is None:
            raise OracleUnavailable(f"Feed {feed_id} has no answer")
        if round_data.answer <= 0:
            raise OracleUnavailable(f"Feed {feed_id} answered {round_data.answer}")
        stale = self.is_stale(round_data)
        if stale:
            logger.debug("stale quote from %s: %r", feed_id, round_data)
        return round_data.answer, stale

    def __repr__(self):
        return f"StalenessCheckedOracle({len(self.feeds)} feeds, timeout={self.timeout})"
