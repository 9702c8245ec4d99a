"""Typed ledger clients and the escrow/registry consistency guard."""

from supplychain_escrow.clients.consistency_guard import ConsistencyGuard
from supplychain_escrow.clients.escrow_client import EscrowClient
from supplychain_escrow.clients.registry_client import LotRegistryClient

__all__ = ["ConsistencyGuard", "EscrowClient", "LotRegistryClient"]
