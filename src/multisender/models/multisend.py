"""MultiSender models — VIP packages, memberships, fee parameters, batches.

All monetary values use Decimal for exact arithmetic. No floats in finance.
Timestamps and durations are integer epoch seconds.

Invariants enforced by these models:
- Prices, fees and validities are never negative
- Membership is active only while expiry is strictly in the future
- A batch request carries index-aligned recipients and amounts
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Optional, Sequence, Tuple, Union

ZERO_ACCOUNT = "0x" + "0" * 40

# Batches must be strictly smaller than this.
MAX_BATCH_SIZE = 200

Amount = Union[Decimal, int, str]


def is_null_account(account: Optional[str]) -> bool:
    """True for None, the empty string, or the all-zero address."""
    if account is None:
        return True
    text = account.strip()
    return text == "" or text.lower() == ZERO_ACCOUNT


def to_amount(value: Amount, field_name: str = "amount") -> Decimal:
    """Coerce to a non-negative Decimal.

    Floats are refused outright; use a string or Decimal instead.
    """
    if isinstance(value, float):
        raise ValueError(f"{field_name} must not be a float: {value!r}")
    if isinstance(value, bool):
        raise ValueError(f"{field_name} must be numeric, got {value!r}")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(value)
    except InvalidOperation as exc:
        raise ValueError(f"{field_name} is not a decimal amount: {value!r}") from exc
    if not amount.is_finite():
        raise ValueError(f"{field_name} must be finite, got {amount}")
    if amount < 0:
        raise ValueError(f"{field_name} must be non-negative, got {amount}")
    return amount


class MembershipState(str, enum.Enum):
    """VIP status of an account.

    State machine (no terminal state):
        INACTIVE → ACTIVE   (purchase, grant)
        ACTIVE → ACTIVE     (purchase, grant — expiry overwritten)
        ACTIVE → INACTIVE   (revoke, or time passes expiry)
    """
    INACTIVE = "inactive"
    ACTIVE = "active"


@dataclass(frozen=True)
class VipPackage:
    """A purchasable VIP package: pay ``price`` to be VIP for ``validity`` seconds."""
    package_id: int
    price: Decimal
    validity: int

    def __post_init__(self) -> None:
        if self.package_id < 0:
            raise ValueError(f"Package id must be non-negative, got {self.package_id}")
        object.__setattr__(self, "price", to_amount(self.price, "price"))
        if self.validity < 0:
            raise ValueError(f"Validity must be non-negative, got {self.validity}")

    def as_tuple(self) -> Tuple[Decimal, int]:
        return self.price, self.validity


@dataclass(frozen=True)
class FeeParameters:
    """Fee schedule for non-VIP batches.

    fee(n) = max(per_recipient_fee * n, minimum_fee)
    """
    per_recipient_fee: Decimal
    minimum_fee: Decimal

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "per_recipient_fee",
            to_amount(self.per_recipient_fee, "per_recipient_fee"),
        )
        object.__setattr__(
            self, "minimum_fee", to_amount(self.minimum_fee, "minimum_fee"),
        )


@dataclass(frozen=True)
class BatchRequest:
    """One batch submission. Exists only for the duration of a send_batch call."""
    caller: str
    asset: Optional[str]
    recipients: Tuple[str, ...]
    amounts: Tuple[Decimal, ...]
    attached_value: Decimal

    @staticmethod
    def build(
        caller: str,
        asset: Optional[str],
        recipients: Sequence[str],
        amounts: Sequence[Amount],
        attached_value: Amount,
    ) -> BatchRequest:
        """Normalise raw inputs into a request. Amounts must be non-negative."""
        return BatchRequest(
            caller=caller,
            asset=asset,
            recipients=tuple(recipients),
            amounts=tuple(
                to_amount(a, f"amounts[{i}]") for i, a in enumerate(amounts)
            ),
            attached_value=to_amount(attached_value, "attached_value"),
        )

    @property
    def size(self) -> int:
        return len(self.recipients)

    @property
    def total_amount(self) -> Decimal:
        return sum(self.amounts, Decimal("0"))


@dataclass(frozen=True)
class BatchReceipt:
    """Returned when a batch is accepted. There is no partial variant."""
    caller: str
    asset: str
    recipient_count: int
    total_amount: Decimal
    fee_required: Decimal
    value_swept: Decimal
    vip: bool
