"""MultiSender service — unified facade for the fee and batch engine.

This is the primary interface for programmatic access to MultiSender.
It owns the one explicit mutable state struct and orchestrates:
- VIP packages (catalog) and VIP membership (purchase, grant, revoke)
- Fee schedule (per-recipient fee with a floor, waived for VIPs)
- Batch transfers (validate, price, sweep, transfer, all or nothing)
- Administration (owner-gated mutators, asset recovery, ownership)
- Audit (every accepted mutation appends an event to the log)

Every public operation runs under a single service-wide lock, so no two
operations ever interleave. Each one either completes, with its audit
event appended, or raises and leaves catalog, memberships, fee
parameters and ledger balances exactly as they were.
"""

from __future__ import annotations

import functools
import logging
import threading
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Optional, Sequence, Tuple, TypeVar

from multisender.clock import Clock, SystemClock
from multisender.config import MultiSenderConfig
from multisender.errors import (
    InsufficientPayment,
    InvalidRecipient,
    LedgerTransferFailed,
    MultiSendError,
    RollbackFailed,
    UnknownPackage,
)
from multisender.fees.policy import FeePolicy
from multisender.governance.ownership import OwnershipGuard
from multisender.models.multisend import (
    Amount,
    BatchReceipt,
    BatchRequest,
    FeeParameters,
    MembershipState,
    VipPackage,
    is_null_account,
    to_amount,
)
from multisender.persistence.event_log import EventKind, EventLog, EventRecord
from multisender.persistence.replay import replay
from multisender.transfer.engine import NATIVE_ASSET, BatchTransferEngine, sweep_native
from multisender.transfer.journal import CompensationJournal
from multisender.transfer.ledger import LedgerRegistry, NativeRail, TransferReceipt
from multisender.vip.catalog import PackageCatalog
from multisender.vip.membership import MembershipRegistry

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


def _serialized(method: F) -> F:
    """Run the method while holding the service lock."""
    @functools.wraps(method)
    def wrapper(self: MultiSenderService, *args: Any, **kwargs: Any) -> Any:
        with self._lock:
            return method(self, *args, **kwargs)
    return wrapper  # type: ignore[return-value]


@dataclass
class MultiSenderState:
    """All persistent state, in one place.

    Owner, fee receiver, fee parameters, catalog and memberships are only
    ever mutated through the service that owns this struct.
    """
    ownership: OwnershipGuard
    fee_receiver: str
    fee_policy: FeePolicy
    catalog: PackageCatalog
    memberships: MembershipRegistry
    allow_undefined_packages: bool = False


class MultiSenderService:
    """Batch transfer, fee and VIP engine facade.

    Usage:
        config = MultiSenderConfig.from_config_dir(config_dir)
        ledgers = LedgerRegistry()
        ledgers.register(InMemoryAssetLedger("TKN"))
        native = InMemoryNativeRail("multisender")
        service = MultiSenderService(config, ledgers, native)

        # Paying users
        service.purchase_vip("alice", package_id=0, paid_amount=Decimal("0.1"))
        service.send_batch("bob", "TKN", ["carol", "dave"], [5, 7], Decimal("0.02"))

        # Owner
        service.set_minimum_fee(config.owner, Decimal("0.01"))

    Persistence (optional):
        service = MultiSenderService(config, ledgers, native, event_log=log)
        # A log that already holds events is replayed instead of reading
        # config; a fresh log receives the deployment events.
    """

    def __init__(
        self,
        config: MultiSenderConfig,
        ledgers: LedgerRegistry,
        native: NativeRail,
        clock: Optional[Clock] = None,
        event_log: Optional[EventLog] = None,
    ) -> None:
        errors = config.validate()
        if errors:
            raise ValueError("Invalid configuration: " + "; ".join(errors))

        self._lock = threading.RLock()
        self._ledgers = ledgers
        self._native = native
        self._clock = clock if clock is not None else SystemClock()
        self._event_log = event_log if event_log is not None else EventLog()
        self._event_counter = self._event_log.count

        if self._event_log.count:
            self._state = self._state_from_log(config)
        else:
            self._state = self._state_from_config(config)

        self._engine = BatchTransferEngine(
            ledgers,
            native,
            self._state.fee_policy,
            self._state.memberships,
            self._clock,
        )

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def owner(self) -> str:
        return self._state.ownership.owner

    @property
    def fee_receiver(self) -> str:
        return self._state.fee_receiver

    @property
    def fee_parameters(self) -> FeeParameters:
        return self._state.fee_policy.parameters

    @property
    def event_log(self) -> EventLog:
        return self._event_log

    def get_package(self, package_id: int) -> Tuple[Decimal, int]:
        """(price, validity); an unset id reads as (0, 0)."""
        return self._state.catalog.get_package(package_id)

    def lookup_package(self, package_id: int) -> Optional[VipPackage]:
        return self._state.catalog.lookup(package_id)

    def list_packages(self) -> list[VipPackage]:
        return self._state.catalog.packages()

    def is_vip(self, account: str) -> bool:
        return self._state.memberships.is_active(account, self._clock.now())

    def vip_expiry(self, account: str) -> Optional[int]:
        return self._state.memberships.expiry_of(account)

    def membership_state(self, account: str) -> MembershipState:
        return self._state.memberships.state_of(account, self._clock.now())

    def compute_fee(self, recipient_count: int) -> Decimal:
        return self._state.fee_policy.compute_fee(recipient_count)

    def effective_fee(self, account: str, recipient_count: int) -> Decimal:
        return self._engine.quote(account, recipient_count)

    # ------------------------------------------------------------------
    # Paying operations
    # ------------------------------------------------------------------

    @_serialized
    def purchase_vip(self, caller: str, package_id: int, paid_amount: Amount) -> int:
        """Buy a VIP package. Returns the new expiry timestamp.

        The whole paid amount goes to the fee receiver, including anything
        above the price. Expiry becomes now + validity, replacing (never
        extending) any current membership.
        """
        if is_null_account(caller):
            raise InvalidRecipient("Purchaser must not be the null account")
        package = self._state.catalog.lookup(package_id)
        if package is None:
            if not self._state.allow_undefined_packages:
                raise UnknownPackage(package_id)
            package = VipPackage(package_id=package_id, price=Decimal("0"), validity=0)
        paid = to_amount(paid_amount, "paid_amount")
        if paid < package.price:
            raise InsufficientPayment(package.price, paid, what=f"VIP package {package_id}")

        memberships = self._state.memberships
        journal = CompensationJournal()
        try:
            sweep_native(self._native, caller, self._state.fee_receiver, paid, journal)
            previous = memberships.expiry_of(caller)
            expiry = memberships.apply_purchase(caller, package, self._clock.now())
            journal.record(
                f"membership of {caller}",
                lambda: memberships.set_expiry(caller, previous),
            )
            self._record(EventKind.MEMBERSHIP_GRANTED, caller, {
                "account": caller,
                "package_id": package_id,
                "price": str(package.price),
                "paid": str(paid),
                "expiry": expiry,
            })
        except (MultiSendError, ValueError, OSError) as exc:
            journal.unwind(exc)
            raise

        logger.info(
            "VIP package %d bought by %s for %s, active until %d",
            package_id, caller, paid, expiry,
        )
        return expiry

    @_serialized
    def send_batch(
        self,
        caller: str,
        asset: Optional[str],
        recipients: Sequence[str],
        amounts: Sequence[Amount],
        attached_value: Amount,
    ) -> BatchReceipt:
        """Transfer amounts[i] of asset from caller to recipients[i], atomically.

        Raises InvalidAsset, BatchSizeViolation, LengthMismatch,
        InsufficientPayment or LedgerTransferFailed; after any of them no
        transfer and no fee movement is observable.
        """
        if is_null_account(caller):
            raise InvalidRecipient("Caller must not be the null account")
        recipients = tuple(recipients)
        amounts = tuple(amounts)
        # Shape errors outrank malformed amounts or payment.
        self._engine.check_shape(asset, recipients, amounts)
        request = BatchRequest.build(caller, asset, recipients, amounts, attached_value)
        journal = CompensationJournal()
        receipt = self._engine.execute(request, self._state.fee_receiver, journal)
        try:
            self._record(EventKind.BATCH_SENT, caller, {
                "account": caller,
                "asset": receipt.asset,
                "recipients": receipt.recipient_count,
                "total_amount": str(receipt.total_amount),
                "fee": str(receipt.fee_required),
                "value_swept": str(receipt.value_swept),
            })
        except (ValueError, OSError) as exc:
            journal.unwind(exc)
            raise
        return receipt

    # ------------------------------------------------------------------
    # Administration (owner only)
    # ------------------------------------------------------------------

    @_serialized
    def set_package(
        self, caller: str, package_id: int, price: Amount, validity: int,
    ) -> VipPackage:
        """Create or overwrite a VIP package."""
        self._state.ownership.require_owner(caller, "set_package")
        catalog = self._state.catalog
        previous = catalog.lookup(package_id)
        package = catalog.set_package(package_id, price, validity)

        def _rollback() -> None:
            if previous is None:
                catalog.discard(package_id)
            else:
                catalog.set_package(previous.package_id, previous.price, previous.validity)

        self._record_or_rollback(EventKind.PACKAGE_UPDATED, caller, {
            "package_id": package_id,
            "price": str(package.price),
            "validity": package.validity,
        }, _rollback)
        logger.info(
            "Package %d set to price %s, validity %ds",
            package_id, package.price, package.validity,
        )
        return package

    @_serialized
    def set_per_recipient_fee(self, caller: str, amount: Amount) -> FeeParameters:
        self._state.ownership.require_owner(caller, "set_per_recipient_fee")
        policy = self._state.fee_policy
        previous = policy.parameters.per_recipient_fee
        params = policy.set_per_recipient_fee(amount)
        self._record_or_rollback(
            EventKind.PER_RECIPIENT_FEE_UPDATED, caller,
            {"amount": str(params.per_recipient_fee)},
            lambda: policy.set_per_recipient_fee(previous),
        )
        logger.info("Per-recipient fee set to %s", params.per_recipient_fee)
        return params

    @_serialized
    def set_minimum_fee(self, caller: str, amount: Amount) -> FeeParameters:
        self._state.ownership.require_owner(caller, "set_minimum_fee")
        policy = self._state.fee_policy
        previous = policy.parameters.minimum_fee
        params = policy.set_minimum_fee(amount)
        self._record_or_rollback(
            EventKind.MINIMUM_FEE_UPDATED, caller,
            {"amount": str(params.minimum_fee)},
            lambda: policy.set_minimum_fee(previous),
        )
        logger.info("Minimum fee set to %s", params.minimum_fee)
        return params

    @_serialized
    def set_fee_receiver(self, caller: str, account: Optional[str]) -> None:
        self._state.ownership.require_owner(caller, "set_fee_receiver")
        if is_null_account(account):
            raise InvalidRecipient("Fee receiver must not be the null account")
        previous = self._state.fee_receiver
        self._state.fee_receiver = account

        def _rollback() -> None:
            self._state.fee_receiver = previous

        self._record_or_rollback(EventKind.FEE_RECEIVER_UPDATED, caller, {
            "previous": previous,
            "fee_receiver": account,
        }, _rollback)
        logger.info("Fee receiver changed from %s to %s", previous, account)

    @_serialized
    def grant_vip(self, caller: str, account: Optional[str], expiry: int) -> None:
        """Set an account's VIP expiry directly, without payment."""
        self._state.ownership.require_owner(caller, "grant_vip")
        if is_null_account(account):
            raise InvalidRecipient("Cannot grant VIP to the null account")
        memberships = self._state.memberships
        previous = memberships.expiry_of(account)
        memberships.grant(account, expiry)
        self._record_or_rollback(EventKind.MEMBERSHIP_GRANTED, caller, {
            "account": account,
            "package_id": None,
            "price": "0",
            "paid": "0",
            "expiry": expiry,
        }, lambda: memberships.set_expiry(account, previous))
        logger.info("VIP granted to %s until %d", account, expiry)

    @_serialized
    def revoke_vip(self, caller: str, account: Optional[str]) -> None:
        self._state.ownership.require_owner(caller, "revoke_vip")
        if is_null_account(account):
            raise InvalidRecipient("Cannot revoke VIP from the null account")
        memberships = self._state.memberships
        previous = memberships.expiry_of(account)
        memberships.revoke(account)
        self._record_or_rollback(
            EventKind.MEMBERSHIP_REVOKED, caller, {"account": account},
            lambda: memberships.set_expiry(account, previous),
        )
        logger.info("VIP revoked for %s", account)

    @_serialized
    def recover_asset(
        self, caller: str, asset: Optional[str], recipient: Optional[str], amount: Amount,
    ) -> None:
        """Move asset units held by the system itself to recipient."""
        self._state.ownership.require_owner(caller, "recover_asset")
        if is_null_account(recipient):
            raise InvalidRecipient("Recovery recipient must not be the null account")
        ledger = self._ledgers.resolve(asset)
        value = to_amount(amount)
        holder = self._native.system_account
        try:
            accepted = ledger.transfer(holder, recipient, value)
        except Exception as exc:  # noqa: BLE001
            raise LedgerTransferFailed(
                ledger.asset_id, recipient, value, reason=str(exc),
            ) from exc
        if not accepted:
            raise LedgerTransferFailed(ledger.asset_id, recipient, value)

        receipt = TransferReceipt(
            asset=ledger.asset_id, spender=None,
            source=holder, destination=recipient, amount=value,
        )
        self._record_or_rollback(EventKind.ASSET_RECOVERED, caller, {
            "asset": ledger.asset_id,
            "recipient": recipient,
            "amount": str(value),
        }, lambda: ledger.revert_transfer(receipt))
        logger.info("Recovered %s %s to %s", value, ledger.asset_id, recipient)

    @_serialized
    def recover_native(self, caller: str, recipient: Optional[str], amount: Amount) -> None:
        """Pay native currency held by the system to recipient."""
        self._state.ownership.require_owner(caller, "recover_native")
        if is_null_account(recipient):
            raise InvalidRecipient("Recovery recipient must not be the null account")
        value = to_amount(amount)
        try:
            accepted = self._native.pay(recipient, value)
        except Exception as exc:  # noqa: BLE001
            raise LedgerTransferFailed(
                NATIVE_ASSET, recipient, value, reason=str(exc),
            ) from exc
        if not accepted:
            raise LedgerTransferFailed(NATIVE_ASSET, recipient, value)

        def _rollback() -> None:
            if not self._native.collect(recipient, value):
                raise ValueError(f"Could not reclaim {value} from {recipient}")

        self._record_or_rollback(EventKind.NATIVE_RECOVERED, caller, {
            "recipient": recipient,
            "amount": str(value),
        }, _rollback)
        logger.info("Recovered %s native to %s", value, recipient)

    @_serialized
    def transfer_ownership(self, caller: str, new_owner: Optional[str]) -> None:
        ownership = self._state.ownership
        previous = ownership.transfer(caller, new_owner)
        self._record_or_rollback(EventKind.OWNERSHIP_TRANSFERRED, caller, {
            "previous_owner": previous,
            "new_owner": new_owner,
        }, lambda: ownership.restore(previous))
        logger.info("Ownership transferred from %s to %s", previous, new_owner)

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    @_serialized
    def status(self) -> dict[str, Any]:
        now = self._clock.now()
        params = self.fee_parameters
        return {
            "owner": self.owner,
            "fee_receiver": self.fee_receiver,
            "fees": {
                "per_recipient_fee": str(params.per_recipient_fee),
                "minimum_fee": str(params.minimum_fee),
            },
            "packages": {
                str(p.package_id): {"price": str(p.price), "validity": p.validity}
                for p in self.list_packages()
            },
            "active_vips": len(self._state.memberships.active_members(now)),
            "assets": self._ledgers.assets(),
            "native_holdings": str(self._native.balance(self._native.system_account)),
            "events": self._event_log.count,
            "timestamp": now,
        }

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _state_from_config(self, config: MultiSenderConfig) -> MultiSenderState:
        """Fresh deployment: build state and emit the deployment events."""
        state = MultiSenderState(
            ownership=OwnershipGuard(config.owner),
            fee_receiver=config.fee_receiver,
            fee_policy=FeePolicy(FeeParameters(
                per_recipient_fee=config.per_recipient_fee,
                minimum_fee=config.minimum_fee,
            )),
            catalog=PackageCatalog(),
            memberships=MembershipRegistry(),
            allow_undefined_packages=config.allow_undefined_packages,
        )
        for initial in config.packages:
            state.catalog.set_package(initial.package_id, initial.price, initial.validity_seconds)

        owner = config.owner
        self._record(EventKind.OWNERSHIP_TRANSFERRED, owner, {
            "previous_owner": None, "new_owner": owner,
        })
        self._record(EventKind.FEE_RECEIVER_UPDATED, owner, {
            "previous": None, "fee_receiver": config.fee_receiver,
        })
        self._record(EventKind.PER_RECIPIENT_FEE_UPDATED, owner, {
            "amount": str(state.fee_policy.parameters.per_recipient_fee),
        })
        self._record(EventKind.MINIMUM_FEE_UPDATED, owner, {
            "amount": str(state.fee_policy.parameters.minimum_fee),
        })
        for package in state.catalog.packages():
            self._record(EventKind.PACKAGE_UPDATED, owner, {
                "package_id": package.package_id,
                "price": str(package.price),
                "validity": package.validity,
            })
        logger.info(
            "MultiSender deployed: owner %s, fee receiver %s, %d package(s)",
            owner, config.fee_receiver, len(state.catalog),
        )
        return state

    def _state_from_log(self, config: MultiSenderConfig) -> MultiSenderState:
        """Restart: rebuild state from the persisted events."""
        replayed = replay(self._event_log.events())
        if not replayed.complete:
            raise ValueError(
                "Event log does not describe a complete deployment; "
                "refusing to mix replayed and configured state"
            )
        logger.info("Replayed %d event(s) from log", replayed.events_applied)
        return MultiSenderState(
            ownership=OwnershipGuard(replayed.owner),
            fee_receiver=replayed.fee_receiver,
            fee_policy=FeePolicy(FeeParameters(
                per_recipient_fee=replayed.per_recipient_fee,
                minimum_fee=replayed.minimum_fee,
            )),
            catalog=replayed.catalog,
            memberships=replayed.memberships,
            allow_undefined_packages=config.allow_undefined_packages,
        )

    def _next_event_id(self) -> str:
        self._event_counter += 1
        return f"evt_{self._event_counter:08d}"

    def _record(self, kind: EventKind, actor_id: str, payload: dict[str, Any]) -> EventRecord:
        """Append an audit event. Raises ValueError/OSError on log failure."""
        event_id = self._next_event_id()
        event = EventRecord.create(
            event_id=event_id,
            event_kind=kind,
            actor_id=actor_id,
            payload=payload,
            timestamp=self._clock.now(),
        )
        try:
            self._event_log.append(event)
        except (ValueError, OSError):
            self._event_counter -= 1
            raise
        return event

    def _record_or_rollback(
        self,
        kind: EventKind,
        actor_id: str,
        payload: dict[str, Any],
        on_rollback: Callable[[], None],
    ) -> None:
        """Record the audit event; if that fails, undo the mutation and re-raise."""
        try:
            self._record(kind, actor_id, payload)
        except (ValueError, OSError) as exc:
            logger.error("Audit write failed for %s, rolling back: %s", kind.value, exc)
            try:
                on_rollback()
            except Exception as undo_exc:  # noqa: BLE001
                logger.error("Rollback of %s failed: %s", kind.value, undo_exc)
                raise RollbackFailed(exc, [f"{kind.value}: {undo_exc}"]) from exc
            raise
