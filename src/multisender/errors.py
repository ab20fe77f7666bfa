"""Error kinds raised by the MultiSender core.

Every public operation either completes in full or raises one of these.
A raised error always means the operation left no trace: catalog,
memberships, fee parameters and ledger balances are exactly as they were
before the call.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Optional


class MultiSendError(Exception):
    """Base class for all MultiSender rejections."""


class Unauthorized(MultiSendError):
    """Raised when a caller without the owner capability attempts an
    administrative operation."""

    def __init__(self, caller: Optional[str], operation: str) -> None:
        self.caller = caller
        self.operation = operation
        super().__init__(f"{operation}: caller {caller!r} is not the owner")


class InsufficientPayment(MultiSendError):
    """Raised when the attached or paid amount is below the required
    price or fee."""

    def __init__(self, required: Decimal, supplied: Decimal, what: str = "fee") -> None:
        self.required = required
        self.supplied = supplied
        self.what = what
        super().__init__(
            f"Insufficient payment for {what}: required {required}, supplied {supplied}"
        )


class InvalidAsset(MultiSendError):
    """Raised when the asset identifier is null or not served by any ledger."""


class InvalidRecipient(MultiSendError):
    """Raised when a null account is supplied where a concrete one is required."""


class BatchSizeViolation(MultiSendError):
    """Raised when a batch has no recipients or too many."""

    def __init__(self, size: int, limit: int) -> None:
        self.size = size
        self.limit = limit
        super().__init__(
            f"Batch size {size} out of range: must be at least 1 and below {limit}"
        )


class LengthMismatch(MultiSendError):
    """Raised when recipients and amounts are not index-aligned."""

    def __init__(self, recipients: int, amounts: int) -> None:
        self.recipients = recipients
        self.amounts = amounts
        super().__init__(
            f"Recipients ({recipients}) and amounts ({amounts}) differ in length"
        )


class EmptyBatch(MultiSendError):
    """Raised when a fee is requested for zero recipients."""


class UnknownPackage(MultiSendError):
    """Raised when a purchase names a package that was never configured."""

    def __init__(self, package_id: int) -> None:
        self.package_id = package_id
        super().__init__(f"Unknown VIP package: {package_id}")


class LedgerTransferFailed(MultiSendError):
    """Raised when an external ledger rejects a transfer.

    ``index`` is the batch position of the rejected transfer, or None
    for single transfers (recovery, fee sweep).
    """

    def __init__(
        self,
        asset: str,
        destination: str,
        amount: Decimal,
        index: Optional[int] = None,
        reason: str = "",
    ) -> None:
        self.asset = asset
        self.destination = destination
        self.amount = amount
        self.index = index
        self.reason = reason
        where = f" at index {index}" if index is not None else ""
        detail = f": {reason}" if reason else ""
        super().__init__(
            f"Ledger {asset} rejected transfer of {amount} to {destination}{where}{detail}"
        )


class RollbackFailed(MultiSendError):
    """Raised when a compensating action could not undo an applied effect.

    This is the one outcome where external state may be left inconsistent;
    it wraps the original failure that triggered the rollback.
    """

    def __init__(self, original: Exception, failures: list[str]) -> None:
        self.original = original
        self.failures = failures
        super().__init__(
            f"Rollback after '{original}' left {len(failures)} effect(s) "
            f"unreverted: {'; '.join(failures)}"
        )
