"""Batch transfer engine — one caller, many recipients, all or nothing.

A batch runs in four phases:
1. Validate the request (asset, size, alignment, recipients).
2. Price it: zero for an active VIP, otherwise the fee schedule.
3. Sweep the entire attached value to the fee receiver.
4. Move amounts[i] of the asset from the caller to recipients[i], in order.

Any failure after phase 1 unwinds everything already applied in this
call, including the fee sweep, so the caller observes either a complete
batch or no change at all. Overpayment is not refunded on success: the
whole attached value belongs to the fee receiver.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Optional, Sequence

from multisender.clock import Clock
from multisender.errors import (
    BatchSizeViolation,
    InsufficientPayment,
    InvalidRecipient,
    LedgerTransferFailed,
    LengthMismatch,
    MultiSendError,
)
from multisender.fees.policy import FeePolicy
from multisender.models.multisend import (
    MAX_BATCH_SIZE,
    BatchReceipt,
    BatchRequest,
    is_null_account,
)
from multisender.transfer.journal import CompensationJournal
from multisender.transfer.ledger import (
    AssetLedger,
    LedgerRegistry,
    NativeRail,
    TransferReceipt,
)
from multisender.vip.membership import MembershipRegistry

logger = logging.getLogger(__name__)

NATIVE_ASSET = "native"


def sweep_native(
    native: NativeRail,
    payer: str,
    receiver: str,
    amount: Decimal,
    journal: CompensationJournal,
) -> None:
    """Collect amount from payer and forward all of it to receiver.

    Both legs are journaled so a later failure returns the money to the
    payer. A zero amount touches nothing.
    """
    if amount == 0:
        return
    if not _native_ok(native.collect, payer, amount):
        raise LedgerTransferFailed(
            NATIVE_ASSET, native.system_account, amount,
            reason=f"could not collect attached value from {payer}",
        )
    journal.record(
        f"collect {amount} from {payer}",
        lambda: _require(native.pay(payer, amount), f"refund {amount} to {payer}"),
    )
    if not _native_ok(native.pay, receiver, amount):
        raise LedgerTransferFailed(
            NATIVE_ASSET, receiver, amount, reason="fee sweep rejected",
        )
    journal.record(
        f"sweep {amount} to {receiver}",
        lambda: _require(
            native.collect(receiver, amount), f"reclaim {amount} from {receiver}",
        ),
    )


class BatchTransferEngine:
    """Validates, prices and executes batch transfers.

    Usage:
        engine = BatchTransferEngine(ledgers, native, fee_policy, memberships, clock)
        request = BatchRequest.build(caller, "TKN", ["bob", "carol"], [5, 7], "0.02")
        receipt = engine.execute(request, fee_receiver="treasury")
    """

    def __init__(
        self,
        ledgers: LedgerRegistry,
        native: NativeRail,
        fee_policy: FeePolicy,
        memberships: MembershipRegistry,
        clock: Clock,
    ) -> None:
        self._ledgers = ledgers
        self._native = native
        self._fee_policy = fee_policy
        self._memberships = memberships
        self._clock = clock

    def check_shape(
        self,
        asset: Optional[str],
        recipients: Sequence[Optional[str]],
        amounts: Sequence[object],
    ) -> AssetLedger:
        """Check asset and batch shape on raw inputs; return the serving ledger.

        Order matters: asset, then size, then alignment, so a misaligned
        batch is reported as such no matter how much value is attached.
        Amounts are only counted here, never parsed.
        """
        ledger = self._ledgers.resolve(asset)
        size = len(recipients)
        if size < 1 or size >= MAX_BATCH_SIZE:
            raise BatchSizeViolation(size, MAX_BATCH_SIZE)
        if size != len(amounts):
            raise LengthMismatch(size, len(amounts))
        for index, recipient in enumerate(recipients):
            if is_null_account(recipient):
                raise InvalidRecipient(f"Recipient at index {index} is null")
        return ledger

    def validate(self, request: BatchRequest) -> AssetLedger:
        return self.check_shape(request.asset, request.recipients, request.amounts)

    def quote(self, caller: str, recipient_count: int) -> Decimal:
        return self._fee_policy.effective_fee(
            caller, recipient_count, self._memberships, self._clock.now(),
        )

    def execute(
        self,
        request: BatchRequest,
        fee_receiver: str,
        journal: Optional[CompensationJournal] = None,
    ) -> BatchReceipt:
        """Run a batch to completion or leave no trace.

        Pass a journal to keep the applied effects reversible after this
        returns (the service does, so a failed audit write can still undo
        the batch).
        """
        ledger = self.validate(request)
        fee = self.quote(request.caller, request.size)
        if request.attached_value < fee:
            raise InsufficientPayment(fee, request.attached_value, what="batch fee")

        if journal is None:
            journal = CompensationJournal()
        try:
            sweep_native(
                self._native, request.caller, fee_receiver,
                request.attached_value, journal,
            )
            for index, (recipient, amount) in enumerate(
                zip(request.recipients, request.amounts)
            ):
                receipt = self._transfer(ledger, request.caller, recipient, amount, index)
                journal.record(
                    f"transfer #{index} of {amount} to {recipient}",
                    lambda r=receipt: ledger.revert_transfer(r),
                )
        except MultiSendError as exc:
            logger.warning(
                "Batch from %s on %s aborted, unwinding %d effect(s): %s",
                request.caller, ledger.asset_id, len(journal), exc,
            )
            journal.unwind(exc)
            raise

        logger.info(
            "Batch from %s on %s accepted: %d recipients, fee %s, swept %s",
            request.caller, ledger.asset_id, request.size, fee, request.attached_value,
        )
        return BatchReceipt(
            caller=request.caller,
            asset=ledger.asset_id,
            recipient_count=request.size,
            total_amount=request.total_amount,
            fee_required=fee,
            value_swept=request.attached_value,
            vip=fee == 0 and self._memberships.is_active(
                request.caller, self._clock.now(),
            ),
        )

    def _transfer(
        self,
        ledger: AssetLedger,
        caller: str,
        recipient: str,
        amount: Decimal,
        index: int,
    ) -> TransferReceipt:
        spender = self._native.system_account
        try:
            accepted = ledger.transfer_from(spender, caller, recipient, amount)
        except Exception as exc:  # noqa: BLE001
            raise LedgerTransferFailed(
                ledger.asset_id, recipient, amount, index=index, reason=str(exc),
            ) from exc
        if not accepted:
            raise LedgerTransferFailed(ledger.asset_id, recipient, amount, index=index)
        return TransferReceipt(
            asset=ledger.asset_id,
            spender=spender,
            source=caller,
            destination=recipient,
            amount=amount,
        )


def _native_ok(move, account: str, amount: Decimal) -> bool:
    """Call a native primitive, folding a raised failure into False."""
    try:
        return bool(move(account, amount))
    except Exception as exc:  # noqa: BLE001
        logger.warning("Native transfer of %s with %s raised: %s", amount, account, exc)
        return False


def _require(accepted: bool, description: str) -> None:
    if not accepted:
        raise ValueError(f"Compensating move rejected: {description}")
