"""Snapshot routes: the aggregate view and the refresh intent.

Routes:
    GET    /api/v1/snapshot          — Last built snapshot
    POST   /api/v1/snapshot/refresh  — Rebuild from both ledgers
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from supplychain_escrow.api.deps import get_engine, get_optional_account
from supplychain_escrow.schemas.lots import FetchFailureResponse, LotResponse, SnapshotResponse
from supplychain_escrow.schemas.payments import PaymentResponse, StatsResponse
from supplychain_escrow.services.snapshot import Snapshot
from supplychain_escrow.services.sync_engine import SyncEngine

router = APIRouter(prefix="/api/v1/snapshot", tags=["Snapshot"])


def to_snapshot_response(snapshot: Snapshot) -> SnapshotResponse:
    return SnapshotResponse(
        generation=snapshot.generation,
        refreshed_at=snapshot.refreshed_at,
        lots=[LotResponse.from_domain(lot) for lot in snapshot.lots],
        payments=[PaymentResponse.from_domain(p) for p in snapshot.payments],
        stats=StatsResponse.model_validate(snapshot.stats),
        failures=[
            FetchFailureResponse(source=f.source, key=f.key, error=f.error)
            for f in snapshot.failures
        ],
    )


@router.get("", response_model=SnapshotResponse, summary="Current aggregate view")
async def get_snapshot(engine: SyncEngine = Depends(get_engine)) -> SnapshotResponse:
    return to_snapshot_response(engine.snapshot)


@router.post("/refresh", response_model=SnapshotResponse, summary="Rebuild the aggregate view")
async def refresh_snapshot(
    engine: SyncEngine = Depends(get_engine),
    account: str | None = Depends(get_optional_account),
) -> SnapshotResponse:
    """Re-read both ledgers. Items that fail are listed under `failures`."""
    return to_snapshot_response(await engine.refresh_all(account))
