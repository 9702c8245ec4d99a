"""Application services — intent orchestration and aggregation."""

from supplychain_escrow.services.snapshot import Snapshot
from supplychain_escrow.services.sync_engine import OperationOutcome, SyncEngine

__all__ = ["OperationOutcome", "Snapshot", "SyncEngine"]
