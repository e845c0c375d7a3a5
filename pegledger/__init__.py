"""
pegledger - Overcollateralized Pegged-Asset Ledger

Collateral and debt accounting, health factors and liquidation for an
overcollateralized issued asset priced through staleness-checked feeds.

Usage:
    from pegledger import (
        CollateralEngine, CollateralToken, StableCoin,
        LogicalClock, StaticPriceFeed, StalenessCheckedOracle,
    )

    clock = LogicalClock()
    oracle = StalenessCheckedOracle(
        {"ETH/USD": StaticPriceFeed(2000_00000000, clock=clock)}, clock=clock
    )
    weth = CollateralToken("WETH")
    dsc = StableCoin(owner="deployer")
    engine = CollateralEngine(["WETH"], ["ETH/USD"], dsc, {"WETH": weth}, oracle)
    dsc.transfer_ownership("deployer", engine.address)

    weth.mint_to("alice", 10**18)
    weth.approve("alice", engine.address, 10**18)
    engine.deposit_collateral_and_mint("alice", "WETH", 10**18, 1000 * 10**18)
    engine.get_health_factor("alice")   # 10**18
"""

# Core types
from .core import (
    # Constants
    PRECISION,
    ADDITIONAL_FEED_PRECISION,
    DEFAULT_FEED_DECIMALS,
    LIQUIDATION_THRESHOLD,
    LIQUIDATION_PRECISION,
    LIQUIDATION_BONUS,
    MIN_HEALTH_FACTOR,
    MAX_HEALTH_FACTOR,
    ZERO_ADDRESS,
    # Exceptions
    EngineError,
    InvalidAmount,
    AssetNotSupported,
    TransferFailed,
    InsufficientBalance,
    MintFailed,
    BreaksHealthFactor,
    HealthFactorOkay,
    HealthFactorNotImproved,
    OracleError,
    OracleUnavailable,
    StalePrice,
    ReentrantCall,
    ConfigurationError,
    LedgerError,
    TokenError,
    # Protocols
    IssuedAsset,
    CollateralTransfer,
    OracleAdapter,
    Snapshottable,
    # Types
    OperationType,
    Book,
    AssetRegistry,
    RiskParameters,
    AccountInformation,
    LiquidationQuote,
    PositionChange,
    OperationRecord,
    require_positive,
    # Events
    CollateralDeposited,
    CollateralRedeemed,
    DebtMinted,
    DebtBurned,
)

# Pricing
from .pricing_source import (
    DEFAULT_PRICE_TIMEOUT,
    LogicalClock,
    RoundData,
    PriceFeed,
    StaticPriceFeed,
    TimeSeriesPriceFeed,
    StalenessCheckedOracle,
)

# Positions
from .ledger import PositionLedger

# Risk (pure calculation functions + ledger-bound engine)
from .risk import (
    feed_precision_adjustment,
    calculate_usd_value,
    calculate_asset_amount_from_usd,
    calculate_health_factor,
    calculate_liquidation_quote,
    RiskEngine,
)

# Tokens
from .tokens import CollateralToken, StableCoin

# Engine
from .engine import CollateralEngine

# Stress tooling
from .stress import (
    generate_gbm_path,
    apply_price_shock,
    find_liquidatable_accounts,
    simulate_price_path,
    LiquidationCandidate,
    StressStep,
)


__all__ = [
    # Constants
    'PRECISION', 'ADDITIONAL_FEED_PRECISION', 'DEFAULT_FEED_DECIMALS',
    'LIQUIDATION_THRESHOLD', 'LIQUIDATION_PRECISION', 'LIQUIDATION_BONUS',
    'MIN_HEALTH_FACTOR', 'MAX_HEALTH_FACTOR', 'ZERO_ADDRESS',
    # Exceptions
    'EngineError', 'InvalidAmount', 'AssetNotSupported', 'TransferFailed',
    'InsufficientBalance', 'MintFailed', 'BreaksHealthFactor', 'HealthFactorOkay',
    'HealthFactorNotImproved', 'OracleError', 'OracleUnavailable', 'StalePrice',
    'ReentrantCall', 'ConfigurationError', 'LedgerError', 'TokenError',
    # Protocols
    'IssuedAsset', 'CollateralTransfer', 'OracleAdapter', 'Snapshottable',
    # Types
    'OperationType', 'Book', 'AssetRegistry', 'RiskParameters',
    'AccountInformation', 'LiquidationQuote', 'PositionChange', 'OperationRecord',
    'require_positive',
    # Events
    'CollateralDeposited', 'CollateralRedeemed', 'DebtMinted', 'DebtBurned',
    # Pricing
    'DEFAULT_PRICE_TIMEOUT', 'LogicalClock', 'RoundData', 'PriceFeed',
    'StaticPriceFeed', 'TimeSeriesPriceFeed', 'StalenessCheckedOracle',
    # Positions
    'PositionLedger',
    # Risk
    'feed_precision_adjustment', 'calculate_usd_value',
    'calculate_asset_amount_from_usd', 'calculate_health_factor',
    'calculate_liquidation_quote', 'RiskEngine',
    # Tokens
    'CollateralToken', 'StableCoin',
    # Engine
    'CollateralEngine',
    # Stress
    'generate_gbm_path', 'apply_price_shock', 'find_liquidatable_accounts',
    'simulate_price_path', 'LiquidationCandidate', 'StressStep',
]

__version__ = '1.0.0'
