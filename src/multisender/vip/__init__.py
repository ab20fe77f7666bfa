"""VIP subsystem — package catalog and membership registry."""

from multisender.vip.catalog import PackageCatalog
from multisender.vip.membership import MembershipRegistry

__all__ = [
    "MembershipRegistry",
    "PackageCatalog",
]
