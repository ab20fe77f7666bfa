"""Membership registry — per-account VIP expiry timestamps.

An account is VIP while its expiry is strictly in the future. Nothing is
ever removed: a membership simply lapses when the clock passes it.

Expiry is overwritten, never extended: buying a 30-day package while
10 days remain leaves 30 days, not 40.

Pure state, like the catalog. Payment collection and the owner check for
grant/revoke are handled by the service layer.
"""

from __future__ import annotations

from typing import Dict, Optional

from multisender.models.multisend import MembershipState, VipPackage


class MembershipRegistry:
    """Maps accounts to VIP expiry timestamps.

    Usage:
        registry = MembershipRegistry()
        expiry = registry.apply_purchase("alice", package, now=1_000)
        registry.is_active("alice", now=1_001)  # True
    """

    def __init__(self) -> None:
        self._expiry: Dict[str, int] = {}

    def expiry_of(self, account: str) -> Optional[int]:
        """Return the stored expiry, or None if the account was never VIP."""
        return self._expiry.get(account)

    def raw_expiry(self, account: str) -> int:
        """Expiry with the unset case read as 0."""
        return self._expiry.get(account, 0)

    def is_active(self, account: str, now: int) -> bool:
        return self._expiry.get(account, 0) > now

    def state_of(self, account: str, now: int) -> MembershipState:
        if self.is_active(account, now):
            return MembershipState.ACTIVE
        return MembershipState.INACTIVE

    def apply_purchase(self, account: str, package: VipPackage, now: int) -> int:
        """Set expiry to now + validity and return it."""
        expiry = now + package.validity
        self._expiry[account] = expiry
        return expiry

    def grant(self, account: str, expiry: int) -> int:
        if expiry < 0:
            raise ValueError(f"Expiry must be non-negative, got {expiry}")
        self._expiry[account] = expiry
        return expiry

    def revoke(self, account: str) -> None:
        self._expiry[account] = 0

    def active_members(self, now: int) -> list[str]:
        return sorted(a for a, e in self._expiry.items() if e > now)

    def set_expiry(self, account: str, expiry: Optional[int]) -> None:
        """Restore a previous value exactly, including the unset case."""
        if expiry is None:
            self._expiry.pop(account, None)
        else:
            self._expiry[account] = expiry
