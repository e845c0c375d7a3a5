"""
stress.py - Price paths and liquidation scans

Tools for exercising an engine under moving prices:

- generate_gbm_path: Geometric Brownian Motion path in feed units (numpy)
- apply_price_shock: exact integer price after a fractional shock
- find_liquidatable_accounts: every account below the minimum health factor
- simulate_price_path: walk a feed along a path, recording solvency and
  liquidatable accounts at every step

Nothing here mutates positions; liquidations are left to the caller.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timedelta
import logging
from typing import Any, Dict, List, Sequence, Tuple

import numpy as np

from .engine import CollateralEngine
from .pricing_source import LogicalClock, StaticPriceFeed


logger = logging.getLogger(__name__)

_SECONDS_PER_YEAR = 365 * 24 * 3600
_BPS = 10_000


def generate_gbm_path(
    start_price: int,
    start_time: datetime,
    num_steps: int,
    volatility: float,
    drift: float = 0.0,
    seed: int = 42,
    step: timedelta = timedelta(hours=1),
) -> List[Tuple[datetime, int]]:
    """
    Generate a Geometric Brownian Motion price path.

    Uses the discrete GBM formula:
        S(t+dt) = S(t) * exp((mu - 0.5*sigma^2)*dt + sigma*sqrt(dt)*Z)

    where Z ~ N(0,1) and dt is ``step`` in years.

    Args:
        start_price: Initial answer S(0) in feed units (e.g. 2000_00000000)
        start_time: Timestamp of the first observation
        num_steps: Number of observations, including the first
        volatility: Annualized volatility (e.g., 0.8 for 80%)
        drift: Annualized drift
        seed: Random seed for reproducibility
        step: Spacing between observations; keep it under the oracle timeout

    Returns:
        List of (datetime, int answer) tuples for TimeSeriesPriceFeed or
        simulate_price_path. Answers are floored at 1.
    """
    if start_price <= 0:
        raise ValueError(f"start_price must be positive, got {start_price}")
    if num_steps < 1:
        raise ValueError(f"num_steps must be at least 1, got {num_steps}")

    rng = np.random.default_rng(seed)
    dt = step.total_seconds() / _SECONDS_PER_YEAR
    z = rng.standard_normal(num_steps - 1)
    log_returns = (drift - 0.5 * volatility ** 2) * dt + volatility * np.sqrt(dt) * z
    prices = start_price * np.exp(np.concatenate(([0.0], np.cumsum(log_returns))))

    path = [(start_time, int(start_price))]
    for i in range(1, num_steps):
        path.append((start_time + i * step, max(1, int(round(float(prices[i]))))))
    return path


def apply_price_shock(price: int, shock: float) -> int:
    """
    Price after a relative move, e.g. ``shock=-0.3`` for a 30% drop.

    The shock is rounded to whole basis points so the result is exact
    integer arithmetic: apply_price_shock(2000_00000000, -0.3) == 1400_00000000.

    Raises:
        ValueError: if the shocked price would not be positive
    """
    bps = int(round(shock * _BPS))
    shocked = price * (_BPS + bps) // _BPS
    if shocked <= 0:
        raise ValueError(f"shock {shock} leaves no positive price for {price}")
    return shocked


@dataclass(frozen=True, slots=True)
class LiquidationCandidate:
    """An account that can currently be liquidated."""
    user: str
    health_factor: int
    total_debt: int
    collateral_value_usd: int


@dataclass(frozen=True, slots=True)
class StressStep:
    """
    Engine state after one observation of a simulated path.

    Attributes:
        timestamp: Clock time of the observation
        price: Answer written to the feed
        solvency: verify_solvency() report at this step
        liquidatable: Users below the minimum health factor, worst first
    """
    timestamp: datetime
    price: int
    solvency: Dict[str, Any]
    liquidatable: Tuple[str, ...]


def find_liquidatable_accounts(engine: CollateralEngine) -> List[LiquidationCandidate]:
    """Accounts below the minimum health factor, lowest health factor first."""
    min_hf = engine.get_min_health_factor()
    candidates = []
    for user in sorted(engine.positions.list_accounts()):
        info = engine.get_account_information(user)
        if info.health_factor < min_hf:
            candidates.append(LiquidationCandidate(
                user=user,
                health_factor=info.health_factor,
                total_debt=info.total_debt,
                collateral_value_usd=info.collateral_value_usd,
            ))
    candidates.sort(key=lambda c: (c.health_factor, c.user))
    return candidates


def simulate_price_path(
    engine: CollateralEngine,
    feed: StaticPriceFeed,
    clock: LogicalClock,
    path: Sequence[Tuple[datetime, int]],
) -> List[StressStep]:
    """
    Replay ``path`` through ``feed`` and record the engine's state at each step.

    The clock is advanced to each timestamp before the answer is written, so
    the feed never reports a stale quote as long as the path is dense enough.

    Example:
        path = generate_gbm_path(2000_00000000, clock.now(), 48, volatility=0.9)
        steps = simulate_price_path(engine, eth_feed, clock, path)
        first_breach = next((s for s in steps if s.liquidatable), None)
    """
    steps: List[StressStep] = []
    for timestamp, price in path:
        clock.advance_time(timestamp)
        feed.update_answer(price)
        report = engine.verify_solvency()
        liquidatable = tuple(c.user for c in find_liquidatable_accounts(engine))
        if liquidatable:
            logger.debug("%s at %d: %d liquidatable", timestamp.isoformat(), price, len(liquidatable))
        steps.append(StressStep(timestamp, price, report, liquidatable))
    return steps
