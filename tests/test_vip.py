"""Tests for the VIP package catalog and membership registry.

Proves:
- Unset packages read as (0, 0) but are distinguishable from configured ones.
- Overwriting a package replaces price and validity together.
- Purchases overwrite expiry; they never stack.
- Membership is active only while expiry is strictly in the future.
"""

import pytest
from decimal import Decimal

from multisender.models.multisend import MembershipState, VipPackage
from multisender.vip.catalog import PackageCatalog
from multisender.vip.membership import MembershipRegistry


class TestPackageCatalog:
    def test_unset_package_reads_as_zero(self) -> None:
        catalog = PackageCatalog()
        assert catalog.get_package(7) == (Decimal("0"), 0)
        assert catalog.lookup(7) is None
        assert 7 not in catalog

    def test_set_and_get(self) -> None:
        catalog = PackageCatalog()
        catalog.set_package(1, Decimal("0.1"), 3_600)
        assert catalog.get_package(1) == (Decimal("0.1"), 3_600)
        assert 1 in catalog

    def test_overwrite_replaces_both_fields(self) -> None:
        catalog = PackageCatalog()
        catalog.set_package(1, Decimal("5"), 100)
        catalog.set_package(1, Decimal("9"), 0)
        assert catalog.get_package(1) == (Decimal("9"), 0)
        assert len(catalog) == 1

    def test_free_package_is_still_configured(self) -> None:
        catalog = PackageCatalog()
        catalog.set_package(2, Decimal("0"), 0)
        assert catalog.lookup(2) == VipPackage(2, Decimal("0"), 0)

    def test_packages_listed_by_id(self) -> None:
        catalog = PackageCatalog()
        catalog.set_package(3, "3", 3)
        catalog.set_package(1, "1", 1)
        assert [p.package_id for p in catalog.packages()] == [1, 3]

    @pytest.mark.parametrize("price,validity", [("-1", 10), ("1", -10)])
    def test_negative_values_rejected(self, price: str, validity: int) -> None:
        catalog = PackageCatalog()
        with pytest.raises(ValueError):
            catalog.set_package(1, price, validity)
        assert catalog.lookup(1) is None


class TestMembershipRegistry:
    def test_unknown_account_is_inactive(self) -> None:
        registry = MembershipRegistry()
        assert registry.expiry_of("alice") is None
        assert registry.raw_expiry("alice") == 0
        assert not registry.is_active("alice", now=0)
        assert registry.state_of("alice", now=0) == MembershipState.INACTIVE

    def test_purchase_sets_expiry(self) -> None:
        registry = MembershipRegistry()
        expiry = registry.apply_purchase("alice", VipPackage(0, Decimal("1"), 100), now=1_000)
        assert expiry == 1_100
        assert registry.is_active("alice", now=1_099)

    def test_repurchase_while_active_does_not_stack(self) -> None:
        registry = MembershipRegistry()
        package = VipPackage(0, Decimal("1"), 100)
        registry.apply_purchase("alice", package, now=1_000)
        expiry = registry.apply_purchase("alice", package, now=1_050)
        assert expiry == 1_150

    def test_repurchase_after_lapse_resets(self) -> None:
        registry = MembershipRegistry()
        package = VipPackage(0, Decimal("1"), 100)
        registry.apply_purchase("alice", package, now=1_000)
        expiry = registry.apply_purchase("alice", package, now=1_200)
        assert expiry == 1_300

    def test_shorter_package_can_shorten_membership(self) -> None:
        registry = MembershipRegistry()
        registry.apply_purchase("alice", VipPackage(0, Decimal("1"), 1_000), now=0)
        registry.apply_purchase("alice", VipPackage(1, Decimal("1"), 10), now=5)
        assert registry.expiry_of("alice") == 15

    def test_expiry_boundary_is_strict(self) -> None:
        registry = MembershipRegistry()
        registry.grant("alice", 1_000)
        assert registry.is_active("alice", now=999)
        assert not registry.is_active("alice", now=1_000)

    def test_zero_validity_package_never_activates(self) -> None:
        registry = MembershipRegistry()
        registry.apply_purchase("alice", VipPackage(0, Decimal("0"), 0), now=500)
        assert not registry.is_active("alice", now=500)

    def test_revoke_sets_zero(self) -> None:
        registry = MembershipRegistry()
        registry.grant("alice", 1_000)
        registry.revoke("alice")
        assert registry.expiry_of("alice") == 0
        assert registry.state_of("alice", now=0) == MembershipState.INACTIVE

    def test_grant_in_past_is_inactive(self) -> None:
        registry = MembershipRegistry()
        registry.grant("alice", 10)
        assert not registry.is_active("alice", now=10)

    def test_negative_grant_rejected(self) -> None:
        registry = MembershipRegistry()
        with pytest.raises(ValueError):
            registry.grant("alice", -1)

    def test_set_expiry_restores_unset(self) -> None:
        registry = MembershipRegistry()
        registry.grant("alice", 100)
        registry.set_expiry("alice", None)
        assert registry.expiry_of("alice") is None

    def test_active_members(self) -> None:
        registry = MembershipRegistry()
        registry.grant("bob", 50)
        registry.grant("alice", 500)
        registry.grant("carol", 600)
        assert registry.active_members(now=100) == ["alice", "carol"]
