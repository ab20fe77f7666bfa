"""Governance subsystem — owner capability for administrative calls."""

from multisender.governance.ownership import OwnershipGuard

__all__ = ["OwnershipGuard"]
