"""
conftest.py - Shared pytest fixtures for engine tests

Provides common fixtures used across unit, conformance and functional tests:
- A fresh engine system (clock, feeds, oracle, tokens, engine)
- Funded users with approvals in place
- An open position at exactly the minimum health factor
"""

import pytest

from tests.fakes import (
    System, build_system, fund, open_position, ONE,
)


@pytest.fixture
def system() -> System:
    """Engine with WETH (2000 USD) and WBTC (1000 USD) collateral."""
    return build_system()


@pytest.fixture
def engine(system):
    return system.engine


@pytest.fixture
def clock(system):
    return system.clock


@pytest.fixture
def weth(system):
    return system.weth


@pytest.fixture
def dsc(system):
    return system.dsc


@pytest.fixture
def funded_alice(system) -> str:
    """alice holds 10 WETH and 10 WBTC, all approved to the engine."""
    fund(system, "alice", "WETH", 10 * ONE)
    fund(system, "alice", "WBTC", 10 * ONE)
    return "alice"


@pytest.fixture
def alice_at_minimum(system) -> str:
    """alice has 1 WETH deposited and 1000 DSC minted: health factor 1.0."""
    open_position(system, "alice", ONE, 1000 * ONE)
    return "alice"
