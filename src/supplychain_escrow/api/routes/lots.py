"""Lot REST API routes.

Routes:
    GET    /api/v1/lots                                     — Lots from the current snapshot
    POST   /api/v1/lots                                     — Register a lot with its steps
    GET    /api/v1/lots/{lot_id}                            — Fresh read of one lot + payment
    POST   /api/v1/lots/{lot_id}/steps/{step_index}/validate — Validate one step
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from supplychain_escrow.api.deps import get_engine, get_optional_account, get_signer
from supplychain_escrow.domain.escrow_lifecycle import payment_state
from supplychain_escrow.domain.step_validation import can_validate, next_validatable_index
from supplychain_escrow.ledger.protocol import StaticSigner
from supplychain_escrow.logging_config import get_logger
from supplychain_escrow.schemas.lots import (
    CreateLotRequest,
    LotDetailResponse,
    LotResponse,
    OperationResponse,
)
from supplychain_escrow.schemas.payments import PaymentResponse
from supplychain_escrow.services.sync_engine import OperationOutcome, SyncEngine

router = APIRouter(prefix="/api/v1/lots", tags=["Lots"])
logger = get_logger(__name__)


def to_operation_response(outcome: OperationOutcome) -> OperationResponse:
    return OperationResponse(
        intent=outcome.intent.value,
        lot_id=outcome.lot_id,
        confirmed=outcome.confirmed,
        lot=LotResponse.from_domain(outcome.lot) if outcome.lot is not None else None,
    )


@router.get(
    "",
    response_model=list[LotResponse],
    summary="List recent lots",
)
async def list_lots(
    refresh: bool = False,
    engine: SyncEngine = Depends(get_engine),
) -> list[LotResponse]:
    """Return lots from the last snapshot, newest first. `refresh=true` rebuilds it first."""
    snapshot = await engine.refresh_all() if refresh else engine.snapshot
    return [LotResponse.from_domain(lot) for lot in snapshot.lots]


@router.post(
    "",
    response_model=OperationResponse,
    status_code=201,
    summary="Register a lot",
)
async def create_lot(
    request: CreateLotRequest,
    engine: SyncEngine = Depends(get_engine),
    signer: StaticSigner = Depends(get_signer),
) -> OperationResponse:
    """Register a lot and all its steps atomically. The caller becomes the creator."""
    outcome = await engine.create_lot(request.to_spec(), signer)
    return to_operation_response(outcome)


@router.get(
    "/{lot_id}",
    response_model=LotDetailResponse,
    summary="Get one lot with its payment",
)
async def get_lot(
    lot_id: int,
    engine: SyncEngine = Depends(get_engine),
    account: str | None = Depends(get_optional_account),
) -> LotDetailResponse:
    """Read the lot and its payment straight from the ledgers."""
    lot = await engine.registry.get_lot(lot_id)
    payment = await engine.escrow.find_payment(lot_id)

    can_validate_next = None
    if account is not None:
        index = next_validatable_index(lot)
        can_validate_next = index is not None and can_validate(lot, index, account)

    return LotDetailResponse(
        lot=LotResponse.from_domain(lot),
        payment=PaymentResponse.from_domain(payment) if payment is not None else None,
        payment_state=payment_state(payment),
        can_validate_next=can_validate_next,
    )


@router.post(
    "/{lot_id}/steps/{step_index}/validate",
    response_model=OperationResponse,
    summary="Validate a workflow step",
)
async def validate_step(
    lot_id: int,
    step_index: int,
    engine: SyncEngine = Depends(get_engine),
    signer: StaticSigner = Depends(get_signer),
) -> OperationResponse:
    """Validate step `step_index` as the calling account. Steps go strictly in order."""
    outcome = await engine.validate_step(lot_id, step_index, signer)
    return to_operation_response(outcome)
