"""
Core types and constants for the collateral engine.

This module provides the foundational data structures and protocols:
1. Constants: fixed-point scales and risk parameters
2. Exceptions: EngineError and the operation error taxonomy
3. Protocols: collaborator interfaces (issued asset, collateral token, oracle)
4. Immutable data structures: AssetRegistry, PositionChange, OperationRecord
5. Events: notifications emitted by mutating operations

All amounts are Python ints in fixed point. Divisions truncate (``//``).
Nothing in this module mutates engine state.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
import hashlib
from typing import (
    Any, FrozenSet, Optional, Protocol, Sequence,
    Tuple, runtime_checkable,
)


# ============================================================================
# CONSTANTS
# ============================================================================

# 18-decimal fixed point used for USD values, debt and health factors.
PRECISION = 10**18

# Scale that lifts an 8-decimal feed answer to 18 decimals.
ADDITIONAL_FEED_PRECISION = 10**10

# Decimals assumed for a feed answer when the feed does not say otherwise.
DEFAULT_FEED_DECIMALS = 8

# 50/100 -> collateral must be worth 200% of debt.
LIQUIDATION_THRESHOLD = 50
LIQUIDATION_PRECISION = 100

# 10% of the seized base amount goes to the liquidator on top.
LIQUIDATION_BONUS = 10

MIN_HEALTH_FACTOR = 10**18

# Health factor reported for an account without debt.
MAX_HEALTH_FACTOR = 2**256 - 1

# Address that cannot receive issued asset (mirrors the zero address).
ZERO_ADDRESS = "0x0"


# ============================================================================
# EXCEPTIONS
# ============================================================================

class EngineError(Exception):
    """Base exception for all engine errors."""
    pass


class InvalidAmount(EngineError):
    """Raised when an amount must be a positive integer and is not."""
    pass


class AssetNotSupported(EngineError):
    """Raised when an asset is not part of the registry."""
    pass


class TransferFailed(EngineError):
    """Raised when a token transfer or transfer_from reported failure."""
    pass


class InsufficientBalance(EngineError):
    """Raised when a ledger decrement would drive a position negative."""
    pass


class MintFailed(EngineError):
    """Raised when the issued-asset ledger declines a mint request."""
    pass


class BreaksHealthFactor(EngineError):
    """Raised when an account's health factor ends below the minimum."""

    def __init__(
        self,
        health_factor: int,
        user: Optional[str] = None,
        min_health_factor: int = MIN_HEALTH_FACTOR,
    ):
        self.health_factor = health_factor
        self.user = user
        self.min_health_factor = min_health_factor
        who = f" for {user}" if user else ""
        super().__init__(f"health factor {health_factor}{who} below {min_health_factor}")


class HealthFactorOkay(EngineError):
    """Raised when liquidation is attempted against a healthy account."""
    pass


class HealthFactorNotImproved(EngineError):
    """Raised when a liquidation does not strictly raise the target's health factor."""
    pass


class OracleError(EngineError):
    """Base class for price feed failures."""
    pass


class OracleUnavailable(OracleError):
    """Raised when no usable quote exists for a feed."""
    pass


class StalePrice(OracleError):
    """Raised when the only available quote is stale."""
    pass


class ReentrantCall(EngineError):
    """Raised when a mutating operation starts while another is in flight."""
    pass


class ConfigurationError(EngineError):
    """Raised when the engine is constructed with inconsistent configuration."""
    pass


class LedgerError(EngineError):
    """Raised on misuse of the position ledger (e.g. mutation outside a transaction)."""
    pass


class TokenError(Exception):
    """Raised by reference tokens on unauthorized or malformed calls."""
    pass


# ============================================================================
# PROTOCOLS
# ============================================================================

class IssuedAsset(Protocol):
    """
    The ledger of the pegged asset minted against collateral.

    Every call carries the calling address explicitly; the engine always passes
    its own custody address.
    """

    def mint(self, caller: str, to: str, amount: int) -> bool:
        ...

    def burn(self, caller: str, amount: int) -> None:
        ...

    def transfer(self, caller: str, to: str, amount: int) -> bool:
        ...

    def transfer_from(self, caller: str, sender: str, to: str, amount: int) -> bool:
        ...


class CollateralTransfer(Protocol):
    """Transfer capability for one registered collateral asset."""

    def transfer(self, caller: str, to: str, amount: int) -> bool:
        ...

    def transfer_from(self, caller: str, sender: str, to: str, amount: int) -> bool:
        ...


class OracleAdapter(Protocol):
    """
    Per-feed price lookup.

    ``latest_price`` returns ``(price, is_stale)``. A stale quote is a fatal
    input for the engine. ``decimals`` gives the fixed-point scale of the price.
    """

    def latest_price(self, feed_id: str) -> Tuple[int, bool]:
        ...

    def decimals(self, feed_id: str) -> int:
        ...


@runtime_checkable
class Snapshottable(Protocol):
    """
    Collaborator whose state can be captured and restored.

    Collaborators implementing this take part in the engine's rollback so a
    failed operation leaves no token movement behind.
    """

    def snapshot(self) -> Any:
        ...

    def restore(self, snapshot: Any) -> None:
        ...


# ============================================================================
# ENUMS
# ============================================================================

class OperationType(Enum):
    """Mutating operations recorded in the transaction log."""
    DEPOSIT = "deposit"
    MINT = "mint"
    DEPOSIT_AND_MINT = "deposit_and_mint"
    REDEEM = "redeem"
    BURN = "burn"
    REDEEM_FOR_BURN = "redeem_for_burn"
    LIQUIDATE = "liquidate"


class Book(Enum):
    """Which side of the position ledger a change touches."""
    COLLATERAL = "collateral"
    DEBT = "debt"


# ============================================================================
# VALIDATION HELPERS
# ============================================================================

def require_positive(amount: Any, name: str = "amount") -> int:
    """Return ``amount`` if it is a positive int, else raise InvalidAmount."""
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidAmount(f"{name} must be an int, got {type(amount).__name__}")
    if amount <= 0:
        raise InvalidAmount(f"{name} must be more than zero, got {amount}")
    return amount


# ============================================================================
# ASSET REGISTRY
# ============================================================================

@dataclass(frozen=True, slots=True)
class AssetRegistry:
    """
    Ordered, immutable mapping of collateral asset -> price feed id.

    Built once at engine construction. Iteration order is the order the
    assets were supplied, which is also the summation order for collateral
    values.
    """
    entries: Tuple[Tuple[str, str], ...]

    def __post_init__(self):
        seen = set()
        for asset, feed_id in self.entries:
            if not asset or not str(asset).strip():
                raise ConfigurationError("Collateral asset identifier cannot be empty")
            if not feed_id or not str(feed_id).strip():
                raise ConfigurationError(f"Asset {asset} has no price feed")
            if asset in seen:
                raise ConfigurationError(f"Asset {asset} registered twice")
            seen.add(asset)

    @classmethod
    def from_lists(cls, assets: Sequence[str], feed_ids: Sequence[str]) -> AssetRegistry:
        """Pair two equal-length lists; a length mismatch fails immediately."""
        if len(assets) != len(feed_ids):
            raise ConfigurationError(
                "Collateral assets and price feeds must be the same length "
                f"({len(assets)} != {len(feed_ids)})"
            )
        return cls(tuple(zip(assets, feed_ids)))

    @property
    def assets(self) -> Tuple[str, ...]:
        return tuple(asset for asset, _ in self.entries)

    def feed_for(self, asset: str) -> str:
        """Return the feed id for ``asset`` or raise AssetNotSupported."""
        for known, feed_id in self.entries:
            if known == asset:
                return feed_id
        raise AssetNotSupported(f"Asset {asset} is not an allowed collateral")

    def __contains__(self, asset: object) -> bool:
        return any(known == asset for known, _ in self.entries)

    def __iter__(self):
        return iter(self.assets)

    def __len__(self) -> int:
        return len(self.entries)


# ============================================================================
# RISK PARAMETERS
# ============================================================================

@dataclass(frozen=True, slots=True)
class RiskParameters:
    """
    Immutable risk configuration for one engine.

    The defaults encode a 200% minimum collateralization ratio and a 10%
    liquidation bonus.
    """
    liquidation_threshold: int = LIQUIDATION_THRESHOLD
    liquidation_bonus: int = LIQUIDATION_BONUS
    liquidation_precision: int = LIQUIDATION_PRECISION
    min_health_factor: int = MIN_HEALTH_FACTOR
    precision: int = PRECISION

    def __post_init__(self):
        for name in ("liquidation_threshold", "liquidation_bonus", "liquidation_precision",
                     "min_health_factor", "precision"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"{name} must be an int, got {type(value).__name__}")
        if self.liquidation_precision <= 0:
            raise ValueError("liquidation_precision must be positive")
        if not 0 < self.liquidation_threshold <= self.liquidation_precision:
            raise ValueError(
                f"liquidation_threshold must be in (0, {self.liquidation_precision}], "
                f"got {self.liquidation_threshold}"
            )
        if self.liquidation_bonus < 0:
            raise ValueError(f"liquidation_bonus cannot be negative, got {self.liquidation_bonus}")
        if self.min_health_factor <= 0 or self.precision <= 0:
            raise ValueError("min_health_factor and precision must be positive")


# ============================================================================
# VALUE TYPES
# ============================================================================

@dataclass(frozen=True, slots=True)
class AccountInformation:
    """Debt and collateral value of one account at a point in time."""
    total_debt: int
    collateral_value_usd: int
    health_factor: int


@dataclass(frozen=True, slots=True)
class LiquidationQuote:
    """Collateral seized for covering a given amount of debt."""
    debt_to_cover: int
    base_amount: int
    bonus_amount: int

    @property
    def total_seized(self) -> int:
        return self.base_amount + self.bonus_amount


# ============================================================================
# EVENTS
# ============================================================================

@dataclass(frozen=True, slots=True)
class CollateralDeposited:
    user: str
    asset: str
    amount: int


@dataclass(frozen=True, slots=True)
class CollateralRedeemed:
    redeemed_from: str
    redeemed_to: str
    asset: str
    amount: int


@dataclass(frozen=True, slots=True)
class DebtMinted:
    user: str
    amount: int


@dataclass(frozen=True, slots=True)
class DebtBurned:
    on_behalf_of: str
    funded_by: str
    amount: int


Event = Any


# ============================================================================
# LEDGER RECORDS
# ============================================================================

@dataclass(frozen=True, slots=True)
class PositionChange:
    """
    A single signed change to one position.

    Attributes:
        book: COLLATERAL or DEBT
        account: The user whose position changed
        asset: Collateral asset (None for debt)
        delta: Signed amount applied (never zero)
    """
    book: Book
    account: str
    asset: Optional[str]
    delta: int

    def __post_init__(self):
        if not self.account or not self.account.strip():
            raise ValueError("PositionChange account cannot be empty")
        if isinstance(self.delta, bool) or not isinstance(self.delta, int):
            raise ValueError(f"PositionChange delta must be int, got {type(self.delta)}")
        if self.delta == 0:
            raise ValueError("PositionChange delta cannot be zero")
        if self.book is Book.COLLATERAL and not self.asset:
            raise ValueError("Collateral changes need an asset")
        if self.book is Book.DEBT and self.asset is not None:
            raise ValueError("Debt changes carry no asset")

    def __repr__(self) -> str:
        where = f"{self.account}/{self.asset}" if self.asset else self.account
        return f"PositionChange({self.book.value} {where} {self.delta:+d})"


def _compute_intent_id(
    operation: OperationType,
    initiator: str,
    changes: Tuple[PositionChange, ...],
) -> str:
    """Deterministic content hash of what an operation did to the books."""
    parts = [f"op:{operation.value}", f"by:{initiator}"]
    for c in changes:
        parts.append(f"chg:{c.book.value}|{c.account}|{c.asset or ''}|{c.delta}")
    return hashlib.sha256("|".join(parts).encode()).hexdigest()[:16]


@dataclass(frozen=True, slots=True)
class OperationRecord:
    """
    An executed, immutable record of one committed operation.

    Attributes:
        operation: Which public operation ran
        initiator: The caller (user or liquidator)
        changes: Position changes, in application order
        events: Notifications emitted by the operation
        sequence_number: Monotonic sequence within the ledger
        exec_id: Unique execution identifier (ledger + sequence)
        ledger_name: Name of the ledger that committed this
        intent_id: Content hash of operation, initiator and changes
        accounts: Accounts touched by the changes (auto-populated)
    """
    operation: OperationType
    initiator: str
    changes: Tuple[PositionChange, ...]
    events: Tuple[Event, ...]
    sequence_number: int
    exec_id: str
    ledger_name: str
    intent_id: str = ""
    accounts: FrozenSet[str] = None

    def __post_init__(self):
        if not self.intent_id:
            object.__setattr__(
                self, 'intent_id',
                _compute_intent_id(self.operation, self.initiator, self.changes),
            )
        if self.accounts is None:
            object.__setattr__(self, 'accounts', frozenset(c.account for c in self.changes))

    def __repr__(self) -> str:
        w = 80
        bar = "─" * w

        def pad(text: str) -> str:
            if len(text) > w:
                return text[:w-3] + "..."
            return text + " " * (w - len(text))

        lines = [
            "",
            f"┌{bar}┐",
            f"│{pad(' Operation: ' + self.exec_id)}│",
            f"├{bar}┤",
            f"│{pad('   operation : ' + self.operation.value)}│",
            f"│{pad('   initiator : ' + self.initiator)}│",
            f"│{pad('   sequence  : ' + str(self.sequence_number))}│",
            f"│{pad('   intent_id : ' + self.intent_id)}│",
            f"├{bar}┤",
            f"│{pad(' Changes (' + str(len(self.changes)) + '):')}│",
        ]
        for i, c in enumerate(self.changes):
            lines.append(f"│{pad(f'   [{i}] {c!r}')}│")
        if self.events:
            lines.append(f"├{bar}┤")
            lines.append(f"│{pad(' Events (' + str(len(self.events)) + '):')}│")
            for ev in self.events:
                lines.append(f"│{pad('   ' + repr(ev))}│")
        lines.append(f"└{bar}┘")
        return "\n".join(lines)
