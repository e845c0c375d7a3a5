"""
engine.py - Collateral Engine

Implements deposit, mint, redeem, burn and liquidate as atomic state
transitions over the (collateral, debt) positions of each account.

Execution order of every mutating operation:
1. Acquire the reentrancy lock (a nested call is rejected outright)
2. Snapshot snapshottable collaborators and open a ledger transaction
3. Validate preconditions
4. Update the ledger, then record the notification
5. Call out to token collaborators
6. Re-check the health factor of every account the operation can weaken
7. Commit: append the operation record, dispatch events to subscribers

Any exception in steps 3-6 restores the ledger and the collaborators to their
state on entry and propagates to the caller. Nothing is retried.
"""

from __future__ import annotations
from contextlib import contextmanager
import functools
import inspect
import logging
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from .core import (
    # Types
    AccountInformation, AssetRegistry, CollateralTransfer, IssuedAsset,
    OperationRecord, OperationType, OracleAdapter, RiskParameters, Snapshottable,
    # Events
    CollateralDeposited, CollateralRedeemed, DebtBurned, DebtMinted,
    # Constants
    ADDITIONAL_FEED_PRECISION,
    # Exceptions
    AssetNotSupported, ConfigurationError, HealthFactorNotImproved,
    HealthFactorOkay, MintFailed, ReentrantCall, TransferFailed,
    # Helpers
    require_positive,
)
from .ledger import PositionLedger
from .risk import RiskEngine, calculate_health_factor


logger = logging.getLogger(__name__)

# Receives each event of a committed operation together with its record.
Subscriber = Callable[[Any, OperationRecord], None]


def nonreentrant(operation: OperationType):
    """
    Run a public mutating method as one atomic, non-reentrant operation.

    The first parameter after ``self`` is the initiator (the caller on whose
    behalf the operation runs); it may be passed positionally or by name.
    """
    def decorator(method):
        signature = inspect.signature(method)
        initiator_param = list(signature.parameters)[1]

        @functools.wraps(method)
        def wrapper(self: CollateralEngine, *args, **kwargs):
            initiator = signature.bind(self, *args, **kwargs).arguments[initiator_param]
            with self._operation(operation, initiator):
                return method(self, *args, **kwargs)
        return wrapper
    return decorator


class CollateralEngine:
    """
    Overcollateralized issuance engine for a pegged asset.

    Users deposit registered collateral into the engine's custody, mint the
    issued asset against it, and can be liquidated once their health factor
    drops below the minimum. The engine exclusively owns the collateral and
    debt books.

    Thread Safety:
        Not thread-safe. Operations are applied one at a time by one writer.

    Example:
        engine = CollateralEngine(
            ["WETH"], ["ETH/USD"],
            issued_asset=dsc,
            collateral_tokens={"WETH": weth},
            oracle=oracle,
        )
        engine.deposit_collateral_and_mint("alice", "WETH", 10**18, 1000 * 10**18)
    """

    def __init__(
        self,
        collateral_assets: Sequence[str],
        price_feeds: Sequence[str],
        issued_asset: IssuedAsset,
        collateral_tokens: Mapping[str, CollateralTransfer],
        oracle: OracleAdapter,
        address: str = "engine",
        parameters: Optional[RiskParameters] = None,
        name: str = "engine",
        verbose: bool = False,
    ):
        """
        Create an engine.

        Args:
            collateral_assets: Ordered collateral asset identifiers
            price_feeds: Feed id for each asset, same order and length
            issued_asset: Ledger of the pegged asset (engine must be its minter)
            collateral_tokens: Transfer capability per registered asset
            oracle: Price adapter used for every valuation
            address: The engine's custody address on the token ledgers
            parameters: Risk configuration (defaults: 200% ratio, 10% bonus)
            name: Name of the position ledger
            verbose: Print each committed operation record

        Raises:
            ConfigurationError: mismatched list lengths, an asset without a
                token, or an empty address
        """
        self.registry = AssetRegistry.from_lists(list(collateral_assets), list(price_feeds))
        missing = [asset for asset in self.registry if asset not in collateral_tokens]
        if missing:
            raise ConfigurationError(f"No token handle for collateral {missing}")
        if not address or not address.strip():
            raise ConfigurationError("Engine address cannot be empty")

        self.address = address
        self.issued_asset = issued_asset
        self.collateral_tokens: Dict[str, CollateralTransfer] = {
            asset: collateral_tokens[asset] for asset in self.registry
        }
        self.oracle = oracle
        self.parameters = parameters or RiskParameters()
        self.positions = PositionLedger(name)
        self.risk = RiskEngine(self.registry, self.positions, oracle, self.parameters)
        self.verbose = verbose

        self._locked = False
        self._subscribers: List[Subscriber] = []

    # ========================================================================
    # OPERATION FRAME
    # ========================================================================

    def _snapshottables(self) -> List[Snapshottable]:
        seen = set()
        found: List[Snapshottable] = []
        for collaborator in (self.issued_asset, *self.collateral_tokens.values()):
            if id(collaborator) in seen:
                continue
            seen.add(id(collaborator))
            if isinstance(collaborator, Snapshottable):
                found.append(collaborator)
        return found

    @contextmanager
    def _operation(self, operation: OperationType, initiator: str) -> Iterator[None]:
        if self._locked:
            logger.info("%s by %s rejected: reentrant call", operation.value, initiator)
            raise ReentrantCall(
                f"{operation.value} by {initiator} while another operation is in progress"
            )
        self._locked = True
        try:
            snapshots = [(c, c.snapshot()) for c in self._snapshottables()]
            try:
                with self.positions.transaction(operation, initiator):
                    yield
            except BaseException as e:
                for collaborator, snap in reversed(snapshots):
                    collaborator.restore(snap)
                logger.info("%s by %s rejected: %s: %s",
                            operation.value, initiator, type(e).__name__, e)
                raise
        finally:
            self._locked = False

        record = self.positions.last_record
        logger.debug("%s by %s applied as %s", operation.value, initiator, record.exec_id)
        if self.verbose:
            print(repr(record))
        self._dispatch(record)

    def _dispatch(self, record: OperationRecord) -> None:
        for event in record.events:
            for subscriber in list(self._subscribers):
                try:
                    subscriber(event, record)
                except Exception:
                    # already committed
                    logger.exception("subscriber %r failed on %s from %s",
                                     subscriber, type(event).__name__, record.exec_id)

    def subscribe(self, subscriber: Subscriber) -> None:
        """
        Receive every event of every committed operation.

        Exceptions raised by a subscriber are logged and do not reach the
        caller of the operation or stop delivery to other subscribers.
        """
        self._subscribers.append(subscriber)

    def unsubscribe(self, subscriber: Subscriber) -> None:
        self._subscribers.remove(subscriber)

    def _require_allowed(self, asset: str) -> None:
        if asset not in self.registry:
            raise AssetNotSupported(f"Asset {asset} is not an allowed collateral")

    # ========================================================================
    # MUTATING OPERATIONS
    # ========================================================================

    @nonreentrant(OperationType.DEPOSIT)
    def deposit_collateral(self, user: str, asset: str, amount: int) -> None:
        """
        Deposit collateral into engine custody.

        Raises:
            InvalidAmount, AssetNotSupported, TransferFailed
        """
        self._deposit_collateral(user, asset, amount)

    @nonreentrant(OperationType.MINT)
    def mint(self, user: str, amount: int) -> None:
        """
        Mint ``amount`` of the issued asset against the user's collateral.

        The debt is recorded and checked before the mint is requested, so a
        failed check leaves nothing issued.

        Raises:
            InvalidAmount, BreaksHealthFactor, MintFailed
        """
        self._mint(user, amount)

    @nonreentrant(OperationType.DEPOSIT_AND_MINT)
    def deposit_collateral_and_mint(
        self, user: str, asset: str, collateral_amount: int, debt_amount: int
    ) -> None:
        """Deposit then mint, as one operation."""
        self._deposit_collateral(user, asset, collateral_amount)
        self._mint(user, debt_amount)

    @nonreentrant(OperationType.REDEEM)
    def redeem_collateral(self, user: str, asset: str, amount: int) -> None:
        """
        Withdraw collateral back to the user.

        Raises:
            InvalidAmount, AssetNotSupported, InsufficientBalance,
            TransferFailed, BreaksHealthFactor
        """
        require_positive(amount, "amount_collateral")
        self._require_allowed(asset)
        self._redeem_collateral(asset, amount, user, user)
        self.risk.assert_healthy(user)

    @nonreentrant(OperationType.BURN)
    def burn(self, user: str, amount: int) -> None:
        """
        Repay ``amount`` of the user's debt with the user's issued asset.

        Raises:
            InvalidAmount, InsufficientBalance, TransferFailed
        """
        require_positive(amount)
        self._burn(amount, user, user)
        # burning cannot lower the health factor; kept as a safety net
        self.risk.assert_healthy(user)

    @nonreentrant(OperationType.REDEEM_FOR_BURN)
    def redeem_collateral_for_burn(
        self, user: str, asset: str, collateral_amount: int, debt_amount: int
    ) -> None:
        """Burn debt first, then redeem collateral, then check once."""
        require_positive(collateral_amount, "amount_collateral")
        require_positive(debt_amount, "amount_to_burn")
        self._require_allowed(asset)
        self._burn(debt_amount, user, user)
        self._redeem_collateral(asset, collateral_amount, user, user)
        self.risk.assert_healthy(user)

    @nonreentrant(OperationType.LIQUIDATE)
    def liquidate(self, liquidator: str, user: str, asset: str, debt_to_cover: int) -> None:
        """
        Cover part of an unhealthy account's debt in exchange for collateral.

        The liquidator burns ``debt_to_cover`` of their own issued asset on the
        user's behalf and receives collateral worth that much plus the
        liquidation bonus. The user's health factor must strictly improve and
        the liquidator must stay healthy.

        When the account is at or below 100% collateralization the bonus cannot
        be funded and the seizure fails with InsufficientBalance.

        Raises:
            InvalidAmount, AssetNotSupported, HealthFactorOkay,
            InsufficientBalance, TransferFailed, HealthFactorNotImproved,
            BreaksHealthFactor
        """
        require_positive(debt_to_cover, "debt_to_cover")
        self._require_allowed(asset)

        starting_health_factor = self.risk.health_factor(user)
        if starting_health_factor >= self.parameters.min_health_factor:
            raise HealthFactorOkay(
                f"{user} has health factor {starting_health_factor}, nothing to liquidate"
            )

        quote = self.risk.quote_liquidation(asset, debt_to_cover)
        if quote.total_seized:
            self._redeem_collateral(asset, quote.total_seized, user, liquidator)
        self._burn(debt_to_cover, user, liquidator)

        ending_health_factor = self.risk.health_factor(user)
        if ending_health_factor <= starting_health_factor:
            raise HealthFactorNotImproved(
                f"{user} health factor {starting_health_factor} -> {ending_health_factor}"
            )
        self.risk.assert_healthy(liquidator)

    # ------------------------------------------------------------------
    # Internal transitions (run inside an open operation)
    # ------------------------------------------------------------------

    def _deposit_collateral(self, user: str, asset: str, amount: int) -> None:
        require_positive(amount, "amount_collateral")
        self._require_allowed(asset)
        self.positions.credit_collateral(user, asset, amount)
        self.positions.record_event(CollateralDeposited(user, asset, amount))
        token = self.collateral_tokens[asset]
        if not token.transfer_from(self.address, user, self.address, amount):
            raise TransferFailed(f"{asset} transfer of {amount} from {user} failed")

    def _mint(self, user: str, amount: int) -> None:
        require_positive(amount, "amount_to_mint")
        self.positions.credit_debt(user, amount)
        self.risk.assert_healthy(user)
        if not self.issued_asset.mint(self.address, user, amount):
            raise MintFailed(f"mint of {amount} to {user} declined")
        self.positions.record_event(DebtMinted(user, amount))

    def _redeem_collateral(self, asset: str, amount: int, redeemed_from: str, redeemed_to: str) -> None:
        self.positions.debit_collateral(redeemed_from, asset, amount)
        self.positions.record_event(CollateralRedeemed(redeemed_from, redeemed_to, asset, amount))
        token = self.collateral_tokens[asset]
        if not token.transfer(self.address, redeemed_to, amount):
            raise TransferFailed(f"{asset} transfer of {amount} to {redeemed_to} failed")

    def _burn(self, amount: int, on_behalf_of: str, funded_by: str) -> None:
        self.positions.debit_debt(on_behalf_of, amount)
        if not self.issued_asset.transfer_from(self.address, funded_by, self.address, amount):
            raise TransferFailed(f"pulling {amount} issued asset from {funded_by} failed")
        self.issued_asset.burn(self.address, amount)
        self.positions.record_event(DebtBurned(on_behalf_of, funded_by, amount))

    # ========================================================================
    # READ OPERATIONS
    # ========================================================================

    def get_account_information(self, user: str) -> AccountInformation:
        return self.risk.account_information(user)

    def get_collateral_balance_of_user(self, user: str, asset: str) -> int:
        return self.positions.get_collateral(user, asset)

    def get_debt(self, user: str) -> int:
        return self.positions.get_debt(user)

    def get_account_collateral_value(self, user: str) -> int:
        return self.risk.total_collateral_value(user)

    def get_health_factor(self, user: str) -> int:
        return self.risk.health_factor(user)

    def get_usd_value(self, asset: str, amount: int) -> int:
        return self.risk.value_of(asset, amount)

    def get_token_amount_from_usd(self, asset: str, usd_amount: int) -> int:
        return self.risk.amount_from_usd(asset, usd_amount)

    def calculate_health_factor(self, total_debt: int, collateral_value_usd: int) -> int:
        return calculate_health_factor(total_debt, collateral_value_usd, self.parameters)

    def get_precision(self) -> int:
        return self.parameters.precision

    def get_additional_feed_precision(self) -> int:
        return ADDITIONAL_FEED_PRECISION

    def get_liquidation_threshold(self) -> int:
        return self.parameters.liquidation_threshold

    def get_liquidation_bonus(self) -> int:
        return self.parameters.liquidation_bonus

    def get_liquidation_precision(self) -> int:
        return self.parameters.liquidation_precision

    def get_min_health_factor(self) -> int:
        return self.parameters.min_health_factor

    def get_collateral_tokens(self) -> Tuple[str, ...]:
        return self.registry.assets

    def get_collateral_token_price_feed(self, asset: str) -> Optional[str]:
        """Feed id of ``asset``, or None when the asset is not registered."""
        return self.registry.feed_for(asset) if asset in self.registry else None

    def get_issued_asset(self) -> IssuedAsset:
        return self.issued_asset

    # ========================================================================
    # SYSTEM CHECKS
    # ========================================================================

    def verify_solvency(self) -> Dict[str, Any]:
        """
        Verify that total collateral value covers total issued debt.

        Also cross-checks, where the collaborators expose balances, that the
        engine's custody balance of each asset equals the ledger's deposits and
        that the issued asset's supply equals the recorded debt.

        Returns:
            Dict with keys:
            - 'valid': bool - True if every check holds
            - 'collateral_value': int - USD value of all deposits
            - 'total_debt': int - Sum of all debt positions
            - 'per_asset': Dict[str, int] - USD value of deposits per asset
            - 'discrepancies': List[Dict] - Details of any violated check

        Example:
            report = engine.verify_solvency()
            assert report['valid'], report['discrepancies']
        """
        per_asset = self.risk.system_collateral_values()
        collateral_value = sum(per_asset.values())
        total_debt = self.positions.total_debt()
        discrepancies: List[Dict[str, Any]] = []

        if collateral_value < total_debt:
            discrepancies.append({
                'check': 'solvency',
                'expected': total_debt,
                'actual': collateral_value,
                'difference': total_debt - collateral_value,
            })

        for asset, token in self.collateral_tokens.items():
            balance_of = getattr(token, 'balance_of', None)
            if balance_of is None:
                continue
            held = balance_of(self.address)
            recorded = self.positions.total_deposited(asset)
            if held != recorded:
                discrepancies.append({
                    'check': 'custody',
                    'asset': asset,
                    'expected': recorded,
                    'actual': held,
                    'difference': held - recorded,
                })

        total_supply = getattr(self.issued_asset, 'total_supply', None)
        if total_supply is not None:
            supply = total_supply()
            if supply != total_debt:
                discrepancies.append({
                    'check': 'issued_supply',
                    'expected': total_debt,
                    'actual': supply,
                    'difference': supply - total_debt,
                })

        return {
            'valid': len(discrepancies) == 0,
            'collateral_value': collateral_value,
            'total_debt': total_debt,
            'per_asset': per_asset,
            'discrepancies': discrepancies,
        }

    def __repr__(self) -> str:
        return (f"CollateralEngine({self.address!r}, assets={list(self.registry.assets)}, "
                f"accounts={len(self.positions.list_accounts())})")
