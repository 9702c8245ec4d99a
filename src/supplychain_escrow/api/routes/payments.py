"""Escrow payment REST API routes.

Routes:
    GET    /api/v1/payments                    — Payments from the current snapshot
    GET    /api/v1/payments/stats              — Totals for the calling account
    POST   /api/v1/payments/{lot_id}/deposit   — Escrow the lot price
    POST   /api/v1/payments/{lot_id}/release   — Pay the seller (lot must be complete)
    POST   /api/v1/payments/{lot_id}/refund    — Return funds to the buyer
"""

from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends

from supplychain_escrow.api.deps import get_engine, get_optional_account, get_signer
from supplychain_escrow.api.routes.lots import to_operation_response
from supplychain_escrow.domain.exceptions import ValidationError
from supplychain_escrow.ledger.protocol import StaticSigner
from supplychain_escrow.schemas.lots import OperationResponse
from supplychain_escrow.schemas.payments import (
    DepositRequest,
    PaymentResponse,
    StatsResponse,
)
from supplychain_escrow.services.sync_engine import SyncEngine

router = APIRouter(prefix="/api/v1/payments", tags=["Payments"])


@router.get(
    "",
    response_model=list[PaymentResponse],
    summary="List recent payments",
)
async def list_payments(
    role: Literal["buyer", "seller"] | None = None,
    pending: bool = False,
    engine: SyncEngine = Depends(get_engine),
    account: str | None = Depends(get_optional_account),
) -> list[PaymentResponse]:
    """Most recent payments first, optionally filtered by the caller's role."""
    snapshot = engine.snapshot
    payments = snapshot.pending_payments() if pending else snapshot.payments
    if role is not None:
        if account is None:
            raise ValidationError("Filtering by role requires the X-Account header", field="role")
        mine = snapshot.payments_as_buyer(account) if role == "buyer" else snapshot.payments_as_seller(account)
        payments = tuple(p for p in payments if p in mine)
    return [PaymentResponse.from_domain(p) for p in payments]


@router.get(
    "/stats",
    response_model=StatsResponse,
    summary="Escrow totals",
)
async def get_stats(
    engine: SyncEngine = Depends(get_engine),
    account: str | None = Depends(get_optional_account),
) -> StatsResponse:
    """Totals received and spent by the caller, plus the custodial balance."""
    stats = await engine.escrow.get_aggregate_stats(account)
    return StatsResponse.model_validate(stats)


@router.post(
    "/{lot_id}/deposit",
    response_model=OperationResponse,
    summary="Escrow the lot price",
)
async def deposit_payment(
    lot_id: int,
    request: DepositRequest,
    engine: SyncEngine = Depends(get_engine),
    signer: StaticSigner = Depends(get_signer),
) -> OperationResponse:
    """The caller becomes the buyer. One payment per lot, amount equal to the price."""
    outcome = await engine.deposit_payment(lot_id, signer, amount=request.amount)
    return to_operation_response(outcome)


@router.post(
    "/{lot_id}/release",
    response_model=OperationResponse,
    summary="Release escrowed funds to the seller",
)
async def release_payment(
    lot_id: int,
    engine: SyncEngine = Depends(get_engine),
    signer: StaticSigner = Depends(get_signer),
) -> OperationResponse:
    outcome = await engine.release_payment(lot_id, signer)
    return to_operation_response(outcome)


@router.post(
    "/{lot_id}/refund",
    response_model=OperationResponse,
    summary="Refund escrowed funds to the buyer",
)
async def refund_payment(
    lot_id: int,
    engine: SyncEngine = Depends(get_engine),
    signer: StaticSigner = Depends(get_signer),
) -> OperationResponse:
    """Manual refund; no automatic trigger exists."""
    outcome = await engine.refund_payment(lot_id, signer)
    return to_operation_response(outcome)
