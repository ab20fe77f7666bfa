"""Fee policy — what a non-VIP caller owes for a batch.

    fee(n) = max(per_recipient_fee * n, minimum_fee)     for n >= 1

Active VIPs owe nothing. A fee for zero recipients is undefined and
rejected rather than read as zero.
"""

from __future__ import annotations

from decimal import Decimal

from multisender.errors import EmptyBatch
from multisender.models.multisend import Amount, FeeParameters
from multisender.vip.membership import MembershipRegistry


class FeePolicy:
    """Computes batch fees from the current fee parameters.

    Usage:
        policy = FeePolicy(FeeParameters(Decimal("10"), Decimal("50")))
        policy.compute_fee(3)  # Decimal("50")
    """

    def __init__(self, parameters: FeeParameters) -> None:
        self._parameters = parameters

    @property
    def parameters(self) -> FeeParameters:
        return self._parameters

    def compute_fee(self, recipient_count: int) -> Decimal:
        if recipient_count <= 0:
            raise EmptyBatch(
                f"Cannot compute a fee for {recipient_count} recipients"
            )
        fee = self._parameters.per_recipient_fee * recipient_count
        return max(fee, self._parameters.minimum_fee)

    def effective_fee(
        self,
        account: str,
        recipient_count: int,
        memberships: MembershipRegistry,
        now: int,
    ) -> Decimal:
        """Zero for an active VIP, otherwise compute_fee()."""
        if memberships.is_active(account, now):
            return Decimal("0")
        return self.compute_fee(recipient_count)

    def set_per_recipient_fee(self, amount: Amount) -> FeeParameters:
        self._parameters = FeeParameters(
            per_recipient_fee=amount,
            minimum_fee=self._parameters.minimum_fee,
        )
        return self._parameters

    def set_minimum_fee(self, amount: Amount) -> FeeParameters:
        self._parameters = FeeParameters(
            per_recipient_fee=self._parameters.per_recipient_fee,
            minimum_fee=amount,
        )
        return self._parameters
