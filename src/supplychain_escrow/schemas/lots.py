"""Pydantic schemas for lots, steps and snapshot views.

These schemas define the request/response shapes of the HTTP boundary.
They are separate from the domain dataclasses so the API can evolve
without touching the rule engines.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from supplychain_escrow.domain.enums import PaymentState, StepStatus
from supplychain_escrow.domain.models import Lot, LotSpec, StepSpec
from supplychain_escrow.domain.step_validation import (
    is_complete,
    next_validatable_index,
    validation_progress,
)
from supplychain_escrow.schemas.payments import PaymentResponse, StatsResponse

# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------


class StepRequest(BaseModel):
    """One validation step of a lot being registered."""

    description: str = Field(
        ...,
        min_length=1,
        max_length=500,
        description="What has to be checked at this stage",
        examples=["Quality inspection at the warehouse"],
    )
    validators: list[str] = Field(
        default_factory=list,
        description="Accounts allowed to validate this step. Empty means anyone.",
    )


class CreateLotRequest(BaseModel):
    """Request body for registering a lot with its full workflow."""

    title: str = Field(..., min_length=1, max_length=200, examples=["Arabica beans, batch 12"])
    description: str = Field(..., min_length=1, max_length=5000)
    quantity: int = Field(..., gt=0, examples=[250])
    unit: str = Field(default="units", max_length=32, examples=["kg"])
    origin: str = Field(default="", max_length=200, examples=["Huila, Colombia"])
    price: int = Field(
        ...,
        gt=0,
        examples=[1000],
        description="Lot price in the smallest payment denomination",
    )
    steps: list[StepRequest] = Field(..., min_length=1)

    def to_spec(self) -> LotSpec:
        return LotSpec(
            title=self.title,
            description=self.description,
            quantity=self.quantity,
            unit=self.unit,
            origin=self.origin,
            price=self.price,
            steps=tuple(StepSpec(s.description, tuple(s.validators)) for s in self.steps),
        )


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------


class StepResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    description: str
    authorized_validators: list[str]
    status: StepStatus
    validated_by: str | None
    validated_at: int | None


class LotResponse(BaseModel):
    """A lot with its workflow progress."""

    id: int
    title: str
    description: str
    quantity: int
    unit: str
    origin: str
    price: int
    creator: str
    created_at: int
    steps: list[StepResponse]
    is_complete: bool
    validated_steps: int
    next_step: int | None = Field(description="Index of the step open for validation")

    @classmethod
    def from_domain(cls, lot: Lot) -> LotResponse:
        done, _ = validation_progress(lot)
        return cls(
            id=lot.id,
            title=lot.title,
            description=lot.description,
            quantity=lot.quantity,
            unit=lot.unit,
            origin=lot.origin,
            price=lot.price,
            creator=lot.creator,
            created_at=lot.created_at,
            steps=[StepResponse.model_validate(s) for s in lot.steps],
            is_complete=is_complete(lot),
            validated_steps=done,
            next_step=next_validatable_index(lot),
        )


class LotDetailResponse(BaseModel):
    """A fresh ledger read of one lot and its payment."""

    lot: LotResponse
    payment: PaymentResponse | None
    payment_state: PaymentState
    can_validate_next: bool | None = Field(
        default=None,
        description="Whether the calling account may validate the next step",
    )


class FetchFailureResponse(BaseModel):
    source: str
    key: int | str
    error: str


class OperationResponse(BaseModel):
    """Outcome of a state-changing intent."""

    intent: str
    lot_id: int | None
    confirmed: bool = Field(description="False when confirmation timed out; refresh later")
    lot: LotResponse | None = None


class SnapshotResponse(BaseModel):
    """The aggregate view last built by the sync engine."""

    generation: int
    refreshed_at: datetime | None
    lots: list[LotResponse]
    payments: list[PaymentResponse]
    stats: StatsResponse
    failures: list[FetchFailureResponse]
