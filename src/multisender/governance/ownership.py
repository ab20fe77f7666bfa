"""Ownership — the single capability that gates every administrative call.

Exactly one owner exists at any time. The null account can never hold
the capability, so ownership can be handed over but never renounced.
"""

from __future__ import annotations

import logging
from typing import Optional

from multisender.errors import InvalidRecipient, Unauthorized
from multisender.models.multisend import is_null_account

logger = logging.getLogger(__name__)


class OwnershipGuard:
    """Holds the owner account and checks callers against it."""

    def __init__(self, owner: str) -> None:
        if is_null_account(owner):
            raise InvalidRecipient("Owner must not be the null account")
        self._owner = owner

    @property
    def owner(self) -> str:
        return self._owner

    def require_owner(self, caller: Optional[str], operation: str) -> None:
        """Raise Unauthorized unless caller is the current owner."""
        if caller is None or caller != self._owner:
            logger.warning("Rejected %s from non-owner %r", operation, caller)
            raise Unauthorized(caller, operation)

    def transfer(self, caller: Optional[str], new_owner: Optional[str]) -> str:
        """Hand the capability to new_owner. Returns the previous owner."""
        self.require_owner(caller, "transfer_ownership")
        if is_null_account(new_owner):
            raise InvalidRecipient("New owner must not be the null account")
        previous = self._owner
        self._owner = new_owner
        return previous

    def restore(self, owner: str) -> None:
        """Put back a previous owner after a failed audit write."""
        self._owner = owner
