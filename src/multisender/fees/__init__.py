"""Fee subsystem — batch fee schedule with a floor and VIP waiver."""

from multisender.fees.policy import FeePolicy

__all__ = ["FeePolicy"]
