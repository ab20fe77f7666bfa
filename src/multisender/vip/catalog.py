"""Package catalog — the priced, time-limited VIP packages on sale.

Packages are keyed by a small integer id. They are never deleted, only
overwritten; an overwrite replaces price and validity together.

The catalog is pure state — no authorization, no event emission. The
service layer gates writes on the owner and records audit events.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from multisender.models.multisend import Amount, VipPackage


class PackageCatalog:
    """Indexed table of VIP packages.

    Usage:
        catalog = PackageCatalog()
        catalog.set_package(0, Decimal("0.1"), 30 * 86400)
        price, validity = catalog.get_package(0)
    """

    def __init__(self) -> None:
        self._packages: Dict[int, VipPackage] = {}

    def set_package(self, package_id: int, price: Amount, validity: int) -> VipPackage:
        """Create or wholly replace a package."""
        package = VipPackage(package_id=package_id, price=price, validity=validity)
        self._packages[package_id] = package
        return package

    def discard(self, package_id: int) -> None:
        """Forget a package. Only used to undo a write that failed audit."""
        self._packages.pop(package_id, None)

    def lookup(self, package_id: int) -> Optional[VipPackage]:
        """Return the package, or None if it was never configured."""
        return self._packages.get(package_id)

    def get_package(self, package_id: int) -> Tuple[Decimal, int]:
        """Return (price, validity); an unset id reads as (0, 0)."""
        package = self._packages.get(package_id)
        if package is None:
            return Decimal("0"), 0
        return package.as_tuple()

    def packages(self) -> List[VipPackage]:
        """All configured packages, ordered by id."""
        return [self._packages[k] for k in sorted(self._packages)]

    def __contains__(self, package_id: int) -> bool:
        return package_id in self._packages

    def __len__(self) -> int:
        return len(self._packages)
