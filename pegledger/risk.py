"""
risk.py - Collateral Valuation and Health Factors

This module values collateral and computes health factors using a pure
function architecture with explicit inputs.

ARCHITECTURE (Pure Function Pattern):
=====================================

1. PURE CALCULATION FUNCTIONS (calculate_*):
   - Take all inputs explicitly as parameters (prices, amounts, parameters)
   - No ledger, no oracle, no hidden state
   - Example: calculate_health_factor(total_debt, collateral_value) -> int

2. RISK ENGINE (RiskEngine):
   - Binds the asset registry, the position ledger and the oracle adapter
   - The ONLY place that reads prices for valuation
   - Delegates all arithmetic to the calculate_* functions

Key Formulas (all integer, truncating):
    usd_value     = price * feed_adjustment * amount // PRECISION
    asset_amount  = usd_amount * PRECISION // (price * feed_adjustment)
    health_factor = (collateral_usd * threshold // liquidation_precision) * PRECISION // debt
    bonus         = base * liquidation_bonus // liquidation_precision
"""

from __future__ import annotations
import logging
from typing import Dict, Optional, Tuple

from .core import (
    AccountInformation, AssetRegistry, LiquidationQuote, OracleAdapter,
    RiskParameters,
    PRECISION, MAX_HEALTH_FACTOR, DEFAULT_FEED_DECIMALS,
    BreaksHealthFactor, OracleUnavailable, StalePrice,
)
from .ledger import PositionLedger


logger = logging.getLogger(__name__)

_DEFAULT_PARAMETERS = RiskParameters()


# ============================================================================
# PURE CALCULATION FUNCTIONS - All Inputs Explicit
# ============================================================================

def feed_precision_adjustment(feed_decimals: int = DEFAULT_FEED_DECIMALS) -> int:
    """
    Scale lifting a feed answer to 18 decimals.

    8-decimal feeds give 10**10.

    Raises:
        ValueError: if the feed has more than 18 decimals
    """
    if feed_decimals < 0 or feed_decimals > 18:
        raise ValueError(f"feed decimals must be in [0, 18], got {feed_decimals}")
    return 10 ** (18 - feed_decimals)


def calculate_usd_value(price: int, amount: int, adjustment: int) -> int:
    """
    USD value (18 decimals) of ``amount`` at ``price``.

    PURE FUNCTION - All inputs explicit.
    """
    return price * adjustment * amount // PRECISION


def calculate_asset_amount_from_usd(price: int, usd_amount: int, adjustment: int) -> int:
    """
    Asset amount worth ``usd_amount`` at ``price``; inverse of calculate_usd_value.

    PURE FUNCTION - All inputs explicit.

    Raises:
        ValueError: if price is not positive
    """
    if price <= 0:
        raise ValueError(f"price must be positive, got {price}")
    return usd_amount * PRECISION // (price * adjustment)


def calculate_health_factor(
    total_debt: int,
    collateral_value_usd: int,
    parameters: RiskParameters = _DEFAULT_PARAMETERS,
) -> int:
    """
    Health factor from explicit inputs.

    PURE FUNCTION - All inputs explicit.

    An account without debt has MAX_HEALTH_FACTOR. Otherwise the
    threshold-adjusted collateral value is divided by the debt in 18-decimal
    fixed point, so 10**18 means exactly at the minimum ratio.

    Example:
        # 2000 USD of collateral against 1000 USD of debt -> exactly 1.0
        calculate_health_factor(1000 * 10**18, 2000 * 10**18) == 10**18
    """
    if total_debt == 0:
        return MAX_HEALTH_FACTOR
    adjusted = (
        collateral_value_usd * parameters.liquidation_threshold
        // parameters.liquidation_precision
    )
    return adjusted * parameters.precision // total_debt


def calculate_liquidation_quote(
    price: int,
    debt_to_cover: int,
    adjustment: int,
    parameters: RiskParameters = _DEFAULT_PARAMETERS,
) -> LiquidationQuote:
    """
    Collateral seized for covering ``debt_to_cover``.

    PURE FUNCTION - All inputs explicit.

    The base amount is worth exactly the covered debt; the bonus is a fixed
    share of the base. No attempt is made to cap the bonus when the account
    holds less than base + bonus; the seizure then fails downstream.
    """
    base = calculate_asset_amount_from_usd(price, debt_to_cover, adjustment)
    bonus = base * parameters.liquidation_bonus // parameters.liquidation_precision
    return LiquidationQuote(debt_to_cover=debt_to_cover, base_amount=base, bonus_amount=bonus)


# ============================================================================
# RISK ENGINE
# ============================================================================

class RiskEngine:
    """
    Values collateral and computes health factors from live state.

    Pure function of the position ledger and the oracle's current quotes:
    calling any method twice with no intervening mutation and unchanged
    prices returns identical results.
    """

    def __init__(
        self,
        registry: AssetRegistry,
        positions: PositionLedger,
        oracle: OracleAdapter,
        parameters: Optional[RiskParameters] = None,
    ):
        self.registry = registry
        self.positions = positions
        self.oracle = oracle
        self.parameters = parameters or _DEFAULT_PARAMETERS

    # ------------------------------------------------------------------
    # Prices
    # ------------------------------------------------------------------

    def quote(self, asset: str) -> Tuple[int, int]:
        """
        Fresh ``(price, adjustment)`` for a registered asset.

        Raises:
            AssetNotSupported: asset not in the registry
            StalePrice: the feed's latest answer is stale
            OracleUnavailable: the feed has no usable answer or unsupported decimals
        """
        feed_id = self.registry.feed_for(asset)
        price, is_stale = self.oracle.latest_price(feed_id)
        if is_stale:
            raise StalePrice(f"Price for {asset} ({feed_id}) is stale")
        if price <= 0:
            raise OracleUnavailable(f"Price for {asset} ({feed_id}) is {price}")
        try:
            adjustment = feed_precision_adjustment(self.oracle.decimals(feed_id))
        except ValueError as e:
            raise OracleUnavailable(f"Feed {feed_id} for {asset}: {e}") from e
        return price, adjustment

    def value_of(self, asset: str, amount: int) -> int:
        """USD value of ``amount`` of ``asset``."""
        price, adjustment = self.quote(asset)
        return calculate_usd_value(price, amount, adjustment)

    def amount_from_usd(self, asset: str, usd_amount: int) -> int:
        """Amount of ``asset`` worth ``usd_amount``."""
        price, adjustment = self.quote(asset)
        return calculate_asset_amount_from_usd(price, usd_amount, adjustment)

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def collateral_values(self, user: str) -> Dict[str, int]:
        """Per-asset USD value of a user's deposits, in registry order."""
        values: Dict[str, int] = {}
        for asset in self.registry:
            amount = self.positions.get_collateral(user, asset)
            # zero balances contribute zero without a price lookup
            values[asset] = self.value_of(asset, amount) if amount else 0
        return values

    def total_collateral_value(self, user: str) -> int:
        return sum(self.collateral_values(user).values())

    def account_information(self, user: str) -> AccountInformation:
        total_debt = self.positions.get_debt(user)
        collateral_value = self.total_collateral_value(user)
        return AccountInformation(
            total_debt=total_debt,
            collateral_value_usd=collateral_value,
            health_factor=calculate_health_factor(total_debt, collateral_value, self.parameters),
        )

    def health_factor(self, user: str) -> int:
        total_debt = self.positions.get_debt(user)
        if total_debt == 0:
            return MAX_HEALTH_FACTOR
        return calculate_health_factor(
            total_debt, self.total_collateral_value(user), self.parameters
        )

    def is_healthy(self, user: str) -> bool:
        return self.health_factor(user) >= self.parameters.min_health_factor

    def assert_healthy(self, user: str) -> int:
        """
        Return the user's health factor, or raise if it is below the minimum.

        Raises:
            BreaksHealthFactor: health factor < min_health_factor
        """
        hf = self.health_factor(user)
        if hf < self.parameters.min_health_factor:
            logger.debug("health factor of %s broken: %d", user, hf)
            raise BreaksHealthFactor(hf, user, self.parameters.min_health_factor)
        return hf

    def quote_liquidation(self, asset: str, debt_to_cover: int) -> LiquidationQuote:
        price, adjustment = self.quote(asset)
        return calculate_liquidation_quote(price, debt_to_cover, adjustment, self.parameters)

    # ------------------------------------------------------------------
    # System
    # ------------------------------------------------------------------

    def system_collateral_values(self) -> Dict[str, int]:
        """USD value of every asset's total deposits, in registry order."""
        values: Dict[str, int] = {}
        for asset in self.registry:
            total = self.positions.total_deposited(asset)
            values[asset] = self.value_of(asset, total) if total else 0
        return values
