"""Ledger boundary — node/signer protocols and the in-memory simulator."""

from supplychain_escrow.ledger.memory import InMemoryLedger
from supplychain_escrow.ledger.protocol import (
    FeeEstimationError,
    FeeOverride,
    LedgerError,
    LedgerNode,
    LedgerRevert,
    LedgerUnavailable,
    Signer,
    StaticSigner,
    TxHandle,
    TxReceipt,
    TxStatus,
)

__all__ = [
    "InMemoryLedger",
    "FeeEstimationError",
    "FeeOverride",
    "LedgerError",
    "LedgerNode",
    "LedgerRevert",
    "LedgerUnavailable",
    "Signer",
    "StaticSigner",
    "TxHandle",
    "TxReceipt",
    "TxStatus",
]
