"""Tests for the batch transfer engine — proves batches are all or nothing.

Covers:
- Validation order: asset, size, alignment, then payment.
- Batch size boundaries at 0, 199 and 200.
- Fee floor example: 3 recipients at 10 each with floor 50.
- Overpayment is swept in full.
- A ledger rejection at index k leaves no transfer and no fee movement.
"""

import pytest
from decimal import Decimal

from multisender.clock import ManualClock
from multisender.errors import (
    BatchSizeViolation,
    InsufficientPayment,
    InvalidAsset,
    InvalidRecipient,
    LedgerTransferFailed,
    LengthMismatch,
    RollbackFailed,
)
from multisender.fees.policy import FeePolicy
from multisender.models.multisend import ZERO_ACCOUNT, BatchRequest, FeeParameters
from multisender.transfer.engine import BatchTransferEngine
from multisender.transfer.journal import CompensationJournal
from multisender.transfer.ledger import (
    InMemoryAssetLedger,
    InMemoryNativeRail,
    LedgerRegistry,
    TransferReceipt,
)
from multisender.vip.membership import MembershipRegistry

SYSTEM = "multisender"
TREASURY = "treasury"


class ExplodingLedger(InMemoryAssetLedger):
    """Raises instead of returning False for one destination."""

    def __init__(self, asset_id: str, explode_on: str) -> None:
        super().__init__(asset_id)
        self._explode_on = explode_on

    def transfer_from(self, spender, source, destination, amount) -> bool:
        if destination == self._explode_on:
            raise RuntimeError("node unavailable")
        return super().transfer_from(spender, source, destination, amount)


class StuckLedger(InMemoryAssetLedger):
    """Applies transfers but can never revert them."""

    def revert_transfer(self, receipt: TransferReceipt) -> None:
        raise RuntimeError("revert not supported")


class Harness:
    def __init__(self, token: InMemoryAssetLedger) -> None:
        self.clock = ManualClock(1_000_000)
        self.token = token
        self.token.mint("alice", Decimal("10000"))
        self.token.approve("alice", SYSTEM, Decimal("10000"))
        self.native = InMemoryNativeRail(SYSTEM)
        self.native.credit("alice", Decimal("100000"))
        self.ledgers = LedgerRegistry()
        self.ledgers.register(token)
        self.memberships = MembershipRegistry()
        self.fee_policy = FeePolicy(FeeParameters(Decimal("10"), Decimal("50")))
        self.engine = BatchTransferEngine(
            self.ledgers, self.native, self.fee_policy, self.memberships, self.clock,
        )

    def send(self, recipients, amounts, attached, asset="TKN"):
        request = BatchRequest.build("alice", asset, recipients, amounts, attached)
        return self.engine.execute(request, TREASURY)

    def assert_untouched(self) -> None:
        assert self.token.balance_of("alice") == Decimal("10000")
        assert self.token.allowance("alice", SYSTEM) == Decimal("10000")
        assert self.native.balance("alice") == Decimal("100000")
        assert self.native.balance(TREASURY) == Decimal("0")
        assert self.native.balance(SYSTEM) == Decimal("0")


@pytest.fixture
def h() -> Harness:
    return Harness(InMemoryAssetLedger("TKN"))


def _recipients(n: int) -> list[str]:
    return [f"r{i}" for i in range(n)]


class TestValidation:
    def test_null_asset(self, h: Harness) -> None:
        with pytest.raises(InvalidAsset):
            h.send(["bob"], [1], 50, asset=None)

    def test_unregistered_asset(self, h: Harness) -> None:
        with pytest.raises(InvalidAsset):
            h.send(["bob"], [1], 50, asset="OTHER")

    def test_empty_batch(self, h: Harness) -> None:
        with pytest.raises(BatchSizeViolation) as exc_info:
            h.send([], [], 50)
        assert exc_info.value.size == 0

    def test_two_hundred_recipients_rejected(self, h: Harness) -> None:
        with pytest.raises(BatchSizeViolation):
            h.send(_recipients(200), [1] * 200, Decimal("5000"))
        h.assert_untouched()

    def test_one_hundred_ninety_nine_recipients_accepted(self, h: Harness) -> None:
        receipt = h.send(_recipients(199), [1] * 199, Decimal("1990"))
        assert receipt.recipient_count == 199
        assert h.token.balance_of("r198") == Decimal("1")
        assert h.token.balance_of("alice") == Decimal("9801")

    def test_length_mismatch_reported_regardless_of_payment(self, h: Harness) -> None:
        with pytest.raises(LengthMismatch):
            h.send(["bob", "carol"], [1], 0)
        with pytest.raises(LengthMismatch):
            h.send(["bob", "carol"], [1], Decimal("1000"))
        h.assert_untouched()

    def test_null_recipient(self, h: Harness) -> None:
        with pytest.raises(InvalidRecipient):
            h.send(["bob", ZERO_ACCOUNT], [1, 1], 50)
        h.assert_untouched()

    def test_negative_amount(self, h: Harness) -> None:
        with pytest.raises(ValueError):
            h.send(["bob"], [-1], 50)


class TestFeeCollection:
    def test_fee_floor_example(self, h: Harness) -> None:
        with pytest.raises(InsufficientPayment) as exc_info:
            h.send(["bob", "carol", "dave"], [1, 2, 3], 49)
        assert exc_info.value.required == Decimal("50")
        assert exc_info.value.supplied == Decimal("49")
        h.assert_untouched()

        receipt = h.send(["bob", "carol", "dave"], [1, 2, 3], 50)
        assert receipt.fee_required == Decimal("50")
        assert h.native.balance(TREASURY) == Decimal("50")

    def test_overpayment_swept_in_full(self, h: Harness) -> None:
        receipt = h.send(["bob"], [1], 80)
        assert receipt.value_swept == Decimal("80")
        assert h.native.balance(TREASURY) == Decimal("80")
        assert h.native.balance(SYSTEM) == Decimal("0")

    def test_vip_sends_for_free(self, h: Harness) -> None:
        h.memberships.grant("alice", h.clock.now() + 10)
        receipt = h.send(["bob", "carol"], [5, 5], 0)
        assert receipt.fee_required == Decimal("0")
        assert receipt.vip
        assert h.native.balance(TREASURY) == Decimal("0")

    def test_vip_tip_still_swept(self, h: Harness) -> None:
        h.memberships.grant("alice", h.clock.now() + 10)
        h.send(["bob"], [5], 3)
        assert h.native.balance(TREASURY) == Decimal("3")

    def test_quote_matches_policy(self, h: Harness) -> None:
        assert h.engine.quote("alice", 12) == Decimal("120")


class TestAtomicity:
    def test_rejection_midway_rolls_back_everything(self, h: Harness) -> None:
        h.token.freeze("r2")
        with pytest.raises(LedgerTransferFailed) as exc_info:
            h.send(_recipients(5), [10, 20, 30, 40, 50], 60)
        assert exc_info.value.index == 2
        assert h.token.balance_of("r0") == Decimal("0")
        assert h.token.balance_of("r1") == Decimal("0")
        h.assert_untouched()

    def test_rejection_at_first_index(self, h: Harness) -> None:
        h.token.freeze("r0")
        with pytest.raises(LedgerTransferFailed) as exc_info:
            h.send(_recipients(3), [1, 1, 1], 50)
        assert exc_info.value.index == 0
        h.assert_untouched()

    def test_rejection_at_last_index(self, h: Harness) -> None:
        h.token.approve("alice", SYSTEM, Decimal("15"))
        with pytest.raises(LedgerTransferFailed) as exc_info:
            h.send(_recipients(3), [5, 5, 6], 50)
        assert exc_info.value.index == 2
        assert h.token.allowance("alice", SYSTEM) == Decimal("15")
        assert h.token.balance_of("alice") == Decimal("10000")
        assert h.native.balance(TREASURY) == Decimal("0")

    def test_raised_failure_treated_like_rejection(self) -> None:
        h = Harness(ExplodingLedger("TKN", explode_on="r1"))
        with pytest.raises(LedgerTransferFailed) as exc_info:
            h.send(_recipients(3), [1, 1, 1], 50)
        assert exc_info.value.index == 1
        assert "node unavailable" in exc_info.value.reason
        h.assert_untouched()

    def test_caller_without_native_funds(self, h: Harness) -> None:
        h.native = InMemoryNativeRail(SYSTEM)
        h.engine = BatchTransferEngine(
            h.ledgers, h.native, h.fee_policy, h.memberships, h.clock,
        )
        with pytest.raises(LedgerTransferFailed):
            h.send(["bob"], [1], 50)
        assert h.token.balance_of("bob") == Decimal("0")

    def test_failed_compensation_is_reported(self) -> None:
        h = Harness(StuckLedger("TKN"))
        h.token.freeze("r1")
        with pytest.raises(RollbackFailed) as exc_info:
            h.send(_recipients(2), [1, 1], 50)
        assert isinstance(exc_info.value.original, LedgerTransferFailed)
        assert len(exc_info.value.failures) == 1

    def test_external_journal_can_undo_accepted_batch(self, h: Harness) -> None:
        journal = CompensationJournal()
        request = BatchRequest.build("alice", "TKN", ["bob", "carol"], [5, 5], 50)
        h.engine.execute(request, TREASURY, journal)
        assert h.token.balance_of("bob") == Decimal("5")
        journal.unwind(RuntimeError("audit write failed"))
        h.assert_untouched()
