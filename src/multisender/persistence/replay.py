"""State reconstruction from the event log.

Every mutation of configuration or membership emits an event carrying
the literal new values, so folding the log in order reproduces the
persistent state exactly. Value-movement events (batches, recoveries)
carry no configuration and are skipped.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Optional

from multisender.persistence.event_log import EventKind, EventRecord
from multisender.vip.catalog import PackageCatalog
from multisender.vip.membership import MembershipRegistry


@dataclass
class ReplayedState:
    """Persistent state as reconstructed from events.

    Fields stay None until an event sets them.
    """
    owner: Optional[str] = None
    fee_receiver: Optional[str] = None
    per_recipient_fee: Optional[Decimal] = None
    minimum_fee: Optional[Decimal] = None
    catalog: PackageCatalog = field(default_factory=PackageCatalog)
    memberships: MembershipRegistry = field(default_factory=MembershipRegistry)
    events_applied: int = 0

    @property
    def complete(self) -> bool:
        """True once every singleton has been set at least once."""
        return None not in (
            self.owner, self.fee_receiver, self.per_recipient_fee, self.minimum_fee,
        )


def replay(events: Iterable[EventRecord]) -> ReplayedState:
    """Fold events, oldest first, into a ReplayedState."""
    state = ReplayedState()
    for event in events:
        p = event.payload
        kind = event.event_kind
        if kind == EventKind.PACKAGE_UPDATED:
            state.catalog.set_package(
                int(p["package_id"]), Decimal(p["price"]), int(p["validity"]),
            )
        elif kind == EventKind.PER_RECIPIENT_FEE_UPDATED:
            state.per_recipient_fee = Decimal(p["amount"])
        elif kind == EventKind.MINIMUM_FEE_UPDATED:
            state.minimum_fee = Decimal(p["amount"])
        elif kind == EventKind.FEE_RECEIVER_UPDATED:
            state.fee_receiver = p["fee_receiver"]
        elif kind == EventKind.OWNERSHIP_TRANSFERRED:
            state.owner = p["new_owner"]
        elif kind == EventKind.MEMBERSHIP_GRANTED:
            state.memberships.grant(p["account"], int(p["expiry"]))
        elif kind == EventKind.MEMBERSHIP_REVOKED:
            state.memberships.revoke(p["account"])
        else:
            continue
        state.events_applied += 1
    return state
