"""Core data models for MultiSender."""

from multisender.models.multisend import (
    MAX_BATCH_SIZE,
    ZERO_ACCOUNT,
    BatchReceipt,
    BatchRequest,
    FeeParameters,
    MembershipState,
    VipPackage,
    is_null_account,
    to_amount,
)

__all__ = [
    "MAX_BATCH_SIZE",
    "ZERO_ACCOUNT",
    "BatchReceipt",
    "BatchRequest",
    "FeeParameters",
    "MembershipState",
    "VipPackage",
    "is_null_account",
    "to_amount",
]
