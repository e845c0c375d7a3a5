#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: Learn the Collateral Engine Step by Step

This is a pedagogical demonstration of how the overcollateralized engine works.
Each step builds on the previous one. Press Enter to advance.

WHAT YOU'LL LEARN:
  1-3:  Foundation   - Feeds, tokens, the engine, the first deposit and mint
  4-6:  Risk         - Health factors, rejections, price moves, liquidation
  7-8:  Operations   - Oracle outages, the audit log and replay
  9:    Stress       - Simulated price paths and liquidation scans

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
import sys

from pegledger import (
    # Engine and collaborators
    CollateralEngine, CollateralToken, StableCoin,
    # Pricing
    LogicalClock, StaticPriceFeed, StalenessCheckedOracle,
    # Errors
    BreaksHealthFactor, StalePrice,
    # Stress tooling
    generate_gbm_path, apply_price_shock, find_liquidatable_accounts,
    simulate_price_path,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

ONE = 10**18


@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    start_time: datetime = datetime(2025, 1, 1, 9, 0, 0)

    # Feed answers carry 8 decimals
    eth_price: int = 2000_00000000
    btc_price: int = 1000_00000000

    # Positions
    alice_weth: int = 1 * ONE
    alice_mint: int = 1000 * ONE
    keeper_weth: int = 50 * ONE
    keeper_mint: int = 5000 * ONE

    # Price move that makes alice liquidatable
    crash: float = -0.30

    # Stress path
    stress_steps: int = 48
    stress_volatility: float = 1.2


CONFIG = DemoConfig()

QUICK_MODE = "--quick" in sys.argv


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    """Print a step header with learning objective."""
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def section_header(text: str):
    print(f"\n--- {text} ---\n")


def usd(amount: int) -> str:
    return f"${amount / ONE:,.2f}"


def hf(value: int) -> str:
    return "inf" if value > 10**60 else f"{value / ONE:.4f}"


# ============================================================================
# STEPS
# ============================================================================

@dataclass
class World:
    clock: LogicalClock
    eth_feed: StaticPriceFeed
    btc_feed: StaticPriceFeed
    weth: CollateralToken
    dsc: StableCoin
    engine: CollateralEngine


def step_01_setup() -> World:
    step_header(1, "Wiring the Engine",
        "An engine needs collateral tokens, price feeds and an issued asset it may mint.")

    clock = LogicalClock(CONFIG.start_time)
    eth_feed = StaticPriceFeed(CONFIG.eth_price, clock=clock)
    btc_feed = StaticPriceFeed(CONFIG.btc_price, clock=clock)
    oracle = StalenessCheckedOracle({"ETH/USD": eth_feed, "BTC/USD": btc_feed}, clock=clock)
    weth = CollateralToken("WETH", "Wrapped Ether")
    wbtc = CollateralToken("WBTC", "Wrapped Bitcoin")
    dsc = StableCoin(owner="deployer")

    print(">>> engine = CollateralEngine(['WETH', 'WBTC'], ['ETH/USD', 'BTC/USD'], dsc, tokens, oracle)")
    engine = CollateralEngine(
        ["WETH", "WBTC"], ["ETH/USD", "BTC/USD"],
        issued_asset=dsc,
        collateral_tokens={"WETH": weth, "WBTC": wbtc},
        oracle=oracle,
        verbose=True,
    )
    print(">>> dsc.transfer_ownership('deployer', engine.address)")
    dsc.transfer_ownership("deployer", engine.address)

    section_header("Configuration")
    print(f"Collateral:           {engine.get_collateral_tokens()}")
    print(f"Liquidation threshold: {engine.get_liquidation_threshold()}% (200% collateral required)")
    print(f"Liquidation bonus:     {engine.get_liquidation_bonus()}%")
    print(f"1 WETH is worth:       {usd(engine.get_usd_value('WETH', ONE))}")

    wait_for_enter()
    return World(clock, eth_feed, btc_feed, weth, dsc, engine)


def step_02_deposit_and_mint(world: World):
    step_header(2, "Deposit and Mint",
        "Lock collateral, then mint the issued asset against it in one operation.")

    engine = world.engine
    world.weth.mint_to("alice", CONFIG.alice_weth)
    world.weth.approve("alice", engine.address, CONFIG.alice_weth)

    print(">>> engine.deposit_collateral_and_mint('alice', 'WETH', 1 WETH, 1000 DSC)")
    engine.deposit_collateral_and_mint("alice", "WETH", CONFIG.alice_weth, CONFIG.alice_mint)

    info = engine.get_account_information("alice")
    section_header("Alice")
    print(f"Collateral value: {usd(info.collateral_value_usd)}")
    print(f"Debt:             {usd(info.total_debt)}")
    print(f"Health factor:    {hf(info.health_factor)}")

    section_header("Key Insight")
    print("""
    1000 DSC against 2000 USD of collateral is exactly the 200% minimum.
    A health factor of 1.0 is allowed; anything below is not.
    """)
    wait_for_enter()


def step_03_rejection(world: World):
    step_header(3, "Rejected Operations Change Nothing",
        "A mint that would break the health factor fails and leaves no trace.")

    engine = world.engine
    log_before = len(engine.positions.transaction_log)
    print(">>> engine.mint('alice', 1 DSC)")
    try:
        engine.mint("alice", ONE)
    except BreaksHealthFactor as e:
        print(f"Rejected: health factor would be {hf(e.health_factor)}")

    print(f"Debt still:       {usd(engine.get_debt('alice'))}")
    print(f"DSC supply still: {usd(world.dsc.total_supply())}")
    print(f"Log entries:      {log_before} -> {len(engine.positions.transaction_log)}")
    wait_for_enter()


def step_04_keeper(world: World):
    step_header(4, "A Well-Collateralized Keeper",
        "Liquidators need the issued asset; they mint it like anyone else.")

    engine = world.engine
    world.weth.mint_to("keeper", CONFIG.keeper_weth)
    world.weth.approve("keeper", engine.address, CONFIG.keeper_weth)
    engine.deposit_collateral_and_mint("keeper", "WETH", CONFIG.keeper_weth, CONFIG.keeper_mint)
    world.dsc.approve("keeper", engine.address, CONFIG.keeper_mint)
    print(f"Keeper health factor: {hf(engine.get_health_factor('keeper'))}")
    wait_for_enter()


def step_05_price_drop(world: World):
    step_header(5, "The Price Drops",
        "Health factors are recomputed from live prices; nothing is stored.")

    world.clock.advance_by(timedelta(minutes=30))
    new_price = apply_price_shock(CONFIG.eth_price, CONFIG.crash)
    print(f">>> eth_feed.update_answer({new_price})")
    world.eth_feed.update_answer(new_price)

    for candidate in find_liquidatable_accounts(world.engine):
        print(f"Liquidatable: {candidate.user:8s} hf={hf(candidate.health_factor)} "
              f"debt={usd(candidate.total_debt)} collateral={usd(candidate.collateral_value_usd)}")
    wait_for_enter()


def step_06_liquidation(world: World):
    step_header(6, "Liquidation",
        "The keeper burns its DSC to cover alice's debt and receives collateral plus a bonus.")

    engine = world.engine
    debt = engine.get_debt("alice")
    print(f">>> engine.liquidate('keeper', 'alice', 'WETH', {usd(debt)})")
    engine.liquidate("keeper", "alice", "WETH", debt)

    seized = world.weth.balance_of("keeper")
    section_header("Outcome")
    print(f"Keeper received:  {seized / ONE:.6f} WETH worth {usd(engine.get_usd_value('WETH', seized))}")
    print(f"Alice debt:       {usd(engine.get_debt('alice'))}")
    print(f"Alice keeps:      {engine.get_collateral_balance_of_user('alice', 'WETH') / ONE:.6f} WETH")
    wait_for_enter()


def step_07_oracle_outage(world: World):
    step_header(7, "Oracle Outage",
        "A stale price is fatal: operations that need it abort instead of guessing.")

    world.clock.advance_by(timedelta(hours=4))
    print(">>> clock.advance_by(4 hours); engine.mint('keeper', 1 DSC)")
    try:
        world.engine.mint("keeper", ONE)
    except StalePrice as e:
        print(f"Rejected: {e}")

    world.eth_feed.update_answer(world.eth_feed.latest_answer)
    world.btc_feed.update_answer(world.btc_feed.latest_answer)
    print("Feeds refreshed; solvency:", world.engine.verify_solvency()["valid"])
    wait_for_enter()


def step_08_audit(world: World):
    step_header(8, "The Audit Log",
        "Every committed operation is recorded; replaying the log rebuilds the books.")

    positions = world.engine.positions
    for record in positions.transaction_log:
        print(f"{record.exec_id}  {record.operation.value:18s} by {record.initiator:8s} "
              f"intent={record.intent_id}")
    replayed = positions.replay()
    print(f"\nReplay matches live state: {replayed.state_equals(positions)}")
    wait_for_enter()


def step_09_stress(world: World):
    step_header(9, "Stress Path",
        "Walk the ETH feed along a simulated path and watch for liquidatable accounts.")

    engine = world.engine
    world.engine.verbose = False
    world.weth.mint_to("bob", 3 * ONE)
    world.weth.approve("bob", engine.address, 3 * ONE)
    engine.deposit_collateral_and_mint("bob", "WETH", 3 * ONE, 1500 * ONE)

    start = world.clock.now() + timedelta(hours=1)
    path = generate_gbm_path(
        world.eth_feed.latest_answer, start, CONFIG.stress_steps,
        volatility=CONFIG.stress_volatility, drift=-2.0,
    )
    steps = simulate_price_path(engine, world.eth_feed, world.clock, path)
    first = next((s for s in steps if s.liquidatable), None)
    low = min(s.price for s in steps)
    print(f"Lowest ETH price on path: {low / 10**8:,.2f}")
    if first:
        print(f"First breach at {first.timestamp}: {first.liquidatable}")
    else:
        print("No account became liquidatable on this path.")


def main():
    """Run the complete tutorial."""
    print("=" * 70)
    print("       PEGLEDGER - INTERACTIVE TUTORIAL")
    print("=" * 70)

    world = step_01_setup()
    step_02_deposit_and_mint(world)
    step_03_rejection(world)
    step_04_keeper(world)
    step_05_price_drop(world)
    step_06_liquidation(world)
    step_07_oracle_outage(world)
    step_08_audit(world)
    step_09_stress(world)

    print(f"\n{'='*70}")
    print("Tutorial complete.")


if __name__ == "__main__":
    main()
