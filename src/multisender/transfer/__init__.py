"""Transfer subsystem — ledger contracts, batch engine, compensation journal."""

from multisender.transfer.engine import NATIVE_ASSET, BatchTransferEngine, sweep_native
from multisender.transfer.journal import CompensationJournal
from multisender.transfer.ledger import (
    AssetLedger,
    InMemoryAssetLedger,
    InMemoryNativeRail,
    LedgerRegistry,
    NativeRail,
    TransferReceipt,
)

__all__ = [
    "NATIVE_ASSET",
    "AssetLedger",
    "BatchTransferEngine",
    "CompensationJournal",
    "InMemoryAssetLedger",
    "InMemoryNativeRail",
    "LedgerRegistry",
    "NativeRail",
    "TransferReceipt",
    "sweep_native",
]
