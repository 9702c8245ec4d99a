"""Health check endpoint.

Verifies the ledger is reachable and the escrow is bound to the configured
registry, returns structured status. Used by container healthchecks, load
balancers, and monitoring systems.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from supplychain_escrow.api.deps import get_engine
from supplychain_escrow.domain.exceptions import ConfigurationMismatchError
from supplychain_escrow.logging_config import get_logger
from supplychain_escrow.schemas.payments import HealthResponse
from supplychain_escrow.services.sync_engine import SyncEngine

router = APIRouter(tags=["Health"])
logger = get_logger(__name__)


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Returns the health status of the application and its ledgers.",
)
async def health_check(engine: SyncEngine = Depends(get_engine)) -> HealthResponse:
    """Check ledger reachability and the escrow/registry binding."""
    ledger_status = "unknown"
    binding_status = "unknown"

    try:
        await engine.registry.next_lot_id()
        ledger_status = "healthy"
    except Exception as exc:
        ledger_status = f"unhealthy: {exc}"
        logger.error("health.ledger_check_failed", error=str(exc))

    try:
        await engine.escrow.guard.verify_binding()
        binding_status = "verified"
    except ConfigurationMismatchError as exc:
        binding_status = f"mismatch: {exc.bound_registry}"
    except Exception as exc:
        binding_status = f"unverified: {exc}"
        logger.error("health.binding_check_failed", error=str(exc))

    overall = "ok" if ledger_status == "healthy" and binding_status == "verified" else "degraded"

    return HealthResponse(
        status=overall,
        version="0.1.0",
        ledger=ledger_status,
        binding=binding_status,
        snapshot_generation=engine.snapshot.generation,
    )
