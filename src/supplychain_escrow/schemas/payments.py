"""Pydantic schemas for escrow payments and account totals."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from supplychain_escrow.domain.enums import PaymentState
from supplychain_escrow.domain.escrow_lifecycle import payment_state
from supplychain_escrow.domain.models import Payment


class DepositRequest(BaseModel):
    """Request body for escrowing a lot's price."""

    amount: int | None = Field(
        default=None,
        gt=0,
        description="Amount to escrow. Defaults to the lot price read at submission time.",
    )


class PaymentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    lot_id: int
    buyer: str
    seller: str
    amount: int
    created_at: int
    released_at: int | None
    released: bool
    refunded: bool
    state: PaymentState

    @classmethod
    def from_domain(cls, payment: Payment) -> PaymentResponse:
        return cls(
            lot_id=payment.lot_id,
            buyer=payment.buyer,
            seller=payment.seller,
            amount=payment.amount,
            created_at=payment.created_at,
            released_at=payment.released_at,
            released=payment.released,
            refunded=payment.refunded,
            state=payment_state(payment),
        )


class StatsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    account: str | None
    total_received: int
    total_spent: int
    contract_balance: int


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str = "0.1.0"
    ledger: str = "unknown"
    binding: str = "unknown"
    snapshot_generation: int = 0
