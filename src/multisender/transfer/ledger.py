"""Ledger abstraction — the external services that actually move value.

The batch engine never touches balances. It drives two boundary
contracts and reacts to their answers:

- AssetLedger: one per asset (token). Moves asset units between accounts
  on behalf of the system account.
- NativeRail: moves native currency into and out of the system's holdings
  (attached fees in, swept fees and recoveries out).

A rejected move is reported either by a False return or by a raised
exception; callers treat the two identically.

Rollback uses compensating actions. Reversing an asset transfer needs a
privileged move back (the recipient never approved the system), so
AssetLedger exposes revert_transfer() for exactly that purpose. Native
moves are reversed with the ordinary collect/pay primitives.

In-memory implementations are provided for embedding and tests.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Optional, Protocol, Set, Tuple, runtime_checkable

from multisender.errors import InvalidAsset
from multisender.models.multisend import Amount, is_null_account, to_amount

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransferReceipt:
    """An asset move that has been applied and may need reverting."""
    asset: str
    spender: Optional[str]
    source: str
    destination: str
    amount: Decimal


@runtime_checkable
class AssetLedger(Protocol):
    """Contract for a per-asset external ledger.

    Adding a new asset = implement this Protocol + register it with
    LedgerRegistry. Zero changes to the batch engine or fee logic.
    """

    @property
    def asset_id(self) -> str:
        ...

    def transfer_from(
        self, spender: str, source: str, destination: str, amount: Decimal,
    ) -> bool:
        """Move amount from source to destination using spender's allowance."""
        ...

    def transfer(self, holder: str, destination: str, amount: Decimal) -> bool:
        """Move amount out of holder's own balance."""
        ...

    def revert_transfer(self, receipt: TransferReceipt) -> None:
        """Undo a previously applied move exactly. Raises if impossible."""
        ...


@runtime_checkable
class NativeRail(Protocol):
    """Contract for native-currency movement in and out of the system."""

    @property
    def system_account(self) -> str:
        ...

    def collect(self, account: str, amount: Decimal) -> bool:
        """Take amount from account into the system's holdings."""
        ...

    def pay(self, account: str, amount: Decimal) -> bool:
        """Pay amount from the system's holdings to account."""
        ...

    def balance(self, account: str) -> Decimal:
        ...


class InMemoryAssetLedger:
    """Token-style ledger with balances, allowances and frozen accounts.

    Frozen accounts can neither send nor receive, which is how an issuer
    blacklist looks from the outside.

    Usage:
        token = InMemoryAssetLedger("TKN")
        token.mint("alice", Decimal("100"))
        token.approve("alice", "system", Decimal("100"))
        token.transfer_from("system", "alice", "bob", Decimal("5"))
    """

    def __init__(self, asset_id: str) -> None:
        if is_null_account(asset_id):
            raise ValueError("Asset id must not be null")
        self._asset_id = asset_id
        self._balances: Dict[str, Decimal] = {}
        self._allowances: Dict[Tuple[str, str], Decimal] = {}
        self._frozen: Set[str] = set()

    @property
    def asset_id(self) -> str:
        return self._asset_id

    def mint(self, account: str, amount: Amount) -> None:
        value = to_amount(amount)
        self._balances[account] = self.balance_of(account) + value

    def approve(self, owner: str, spender: str, amount: Amount) -> None:
        self._allowances[(owner, spender)] = to_amount(amount)

    def freeze(self, account: str) -> None:
        self._frozen.add(account)

    def unfreeze(self, account: str) -> None:
        self._frozen.discard(account)

    def balance_of(self, account: str) -> Decimal:
        return self._balances.get(account, Decimal("0"))

    def allowance(self, owner: str, spender: str) -> Decimal:
        return self._allowances.get((owner, spender), Decimal("0"))

    def transfer_from(
        self, spender: str, source: str, destination: str, amount: Decimal,
    ) -> bool:
        if self.allowance(source, spender) < amount:
            return False
        if not self._move(source, destination, amount):
            return False
        self._allowances[(source, spender)] = self.allowance(source, spender) - amount
        return True

    def transfer(self, holder: str, destination: str, amount: Decimal) -> bool:
        return self._move(holder, destination, amount)

    def revert_transfer(self, receipt: TransferReceipt) -> None:
        if self.balance_of(receipt.destination) < receipt.amount:
            raise ValueError(
                f"Cannot revert {receipt.amount} {self._asset_id}: "
                f"{receipt.destination} holds only {self.balance_of(receipt.destination)}"
            )
        self._balances[receipt.destination] -= receipt.amount
        self._balances[receipt.source] = self.balance_of(receipt.source) + receipt.amount
        if receipt.spender is not None:
            key = (receipt.source, receipt.spender)
            self._allowances[key] = self.allowance(receipt.source, receipt.spender) + receipt.amount

    def _move(self, source: str, destination: str, amount: Decimal) -> bool:
        if amount < 0 or is_null_account(destination):
            return False
        if source in self._frozen or destination in self._frozen:
            return False
        if self.balance_of(source) < amount:
            return False
        self._balances[source] = self.balance_of(source) - amount
        self._balances[destination] = self.balance_of(destination) + amount
        return True


class InMemoryNativeRail:
    """Native-currency balances with a distinguished system account."""

    def __init__(self, system_account: str) -> None:
        if is_null_account(system_account):
            raise ValueError("System account must not be null")
        self._system_account = system_account
        self._balances: Dict[str, Decimal] = {}

    @property
    def system_account(self) -> str:
        return self._system_account

    def credit(self, account: str, amount: Amount) -> None:
        """Fund an account from outside the system (deposits, stray sends)."""
        self._balances[account] = self.balance(account) + to_amount(amount)

    def balance(self, account: str) -> Decimal:
        return self._balances.get(account, Decimal("0"))

    def collect(self, account: str, amount: Decimal) -> bool:
        return self._move(account, self._system_account, amount)

    def pay(self, account: str, amount: Decimal) -> bool:
        return self._move(self._system_account, account, amount)

    def _move(self, source: str, destination: str, amount: Decimal) -> bool:
        if amount < 0 or is_null_account(destination):
            return False
        if self.balance(source) < amount:
            return False
        self._balances[source] = self.balance(source) - amount
        self._balances[destination] = self.balance(destination) + amount
        return True


class LedgerRegistry:
    """Registry of asset ledgers, keyed by asset id.

    Enforces:
    - Every registered ledger implements the AssetLedger Protocol
    - Asset ids are unique and never null
    - Resolving a null or unknown asset raises InvalidAsset
    """

    def __init__(self) -> None:
        self._ledgers: Dict[str, AssetLedger] = {}

    def register(self, ledger: AssetLedger) -> None:
        if not isinstance(ledger, AssetLedger):
            raise TypeError(
                f"Ledger must implement AssetLedger Protocol, got {type(ledger)}",
            )
        if is_null_account(ledger.asset_id):
            raise ValueError("Ledger asset id must not be null")
        if ledger.asset_id in self._ledgers:
            raise ValueError(f"Asset already registered: {ledger.asset_id}")
        self._ledgers[ledger.asset_id] = ledger
        logger.info("Registered ledger for asset %s", ledger.asset_id)

    def remove(self, asset_id: str) -> None:
        if asset_id not in self._ledgers:
            raise ValueError(f"Unknown asset: {asset_id}")
        del self._ledgers[asset_id]

    def resolve(self, asset_id: Optional[str]) -> AssetLedger:
        if is_null_account(asset_id):
            raise InvalidAsset("Asset must not be null")
        ledger = self._ledgers.get(asset_id)
        if ledger is None:
            raise InvalidAsset(f"No ledger registered for asset: {asset_id}")
        return ledger

    def assets(self) -> List[str]:
        return sorted(self._ledgers)
