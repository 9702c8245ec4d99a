"""Pydantic API schemas."""

from supplychain_escrow.schemas.lots import (
    CreateLotRequest,
    FetchFailureResponse,
    LotDetailResponse,
    LotResponse,
    OperationResponse,
    SnapshotResponse,
    StepRequest,
    StepResponse,
)
from supplychain_escrow.schemas.payments import (
    DepositRequest,
    HealthResponse,
    PaymentResponse,
    StatsResponse,
)

__all__ = [
    "CreateLotRequest",
    "DepositRequest",
    "FetchFailureResponse",
    "HealthResponse",
    "LotDetailResponse",
    "LotResponse",
    "OperationResponse",
    "PaymentResponse",
    "SnapshotResponse",
    "StatsResponse",
    "StepRequest",
    "StepResponse",
]
