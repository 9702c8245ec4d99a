"""Wiring helpers: build clients, guard and engine for a ledger node."""

from __future__ import annotations

from typing import TYPE_CHECKING

from supplychain_escrow.clients.consistency_guard import ConsistencyGuard
from supplychain_escrow.clients.escrow_client import EscrowClient
from supplychain_escrow.clients.registry_client import LotRegistryClient
from supplychain_escrow.config import Settings, get_settings
from supplychain_escrow.ledger.memory import InMemoryLedger
from supplychain_escrow.logging_config import get_logger
from supplychain_escrow.services.sync_engine import SyncEngine

if TYPE_CHECKING:
    from supplychain_escrow.ledger.protocol import LedgerNode

logger = get_logger(__name__)


def build_engine(
    node: LedgerNode,
    settings: Settings | None = None,
    account: str | None = None,
) -> SyncEngine:
    """Create a SyncEngine for the registry/escrow pair named in settings."""
    settings = settings or get_settings()
    guard = ConsistencyGuard(
        node,
        escrow_address=settings.escrow_address,
        registry_address=settings.registry_address,
        settings=settings,
    )
    registry = LotRegistryClient(node, settings.registry_address, settings)
    escrow = EscrowClient(node, settings.escrow_address, guard, settings)
    return SyncEngine(registry, escrow, settings=settings, account=account)


def build_simulated_engine(
    settings: Settings | None = None,
    account: str | None = None,
) -> tuple[SyncEngine, InMemoryLedger]:
    """Deploy both contracts on an InMemoryLedger at the configured addresses."""
    settings = settings or get_settings()
    ledger = InMemoryLedger()
    ledger.deploy_registry(settings.registry_address)
    ledger.deploy_escrow(settings.registry_address, settings.escrow_address)
    logger.info(
        "ledger.simulated",
        registry=settings.registry_address,
        escrow=settings.escrow_address,
    )
    return build_engine(ledger, settings, account=account), ledger
