"""Domain layer — pure business logic with zero framework dependencies."""

from supplychain_escrow.domain.enums import (
    Intent,
    PaymentState,
    StepStatus,
)
from supplychain_escrow.domain.escrow_lifecycle import (
    PaymentStateMachine,
    can_deposit,
    can_refund,
    can_release,
    payment_state,
)
from supplychain_escrow.domain.exceptions import (
    ConfigurationMismatchError,
    ConfirmationTimeout,
    InvalidTransitionError,
    LotNotFoundError,
    NotFoundError,
    PartialFetchFailure,
    PaymentNotFoundError,
    SubmissionError,
    SupplyChainError,
    ValidationError,
)
from supplychain_escrow.domain.models import (
    AccountStats,
    Lot,
    LotSpec,
    Payment,
    Step,
    StepSpec,
)
from supplychain_escrow.domain.step_validation import (
    apply_validation,
    can_validate,
    is_complete,
)

__all__ = [
    "Intent",
    "PaymentState",
    "StepStatus",
    "PaymentStateMachine",
    "can_deposit",
    "can_refund",
    "can_release",
    "payment_state",
    "ConfigurationMismatchError",
    "ConfirmationTimeout",
    "InvalidTransitionError",
    "LotNotFoundError",
    "NotFoundError",
    "PartialFetchFailure",
    "PaymentNotFoundError",
    "SubmissionError",
    "SupplyChainError",
    "ValidationError",
    "AccountStats",
    "Lot",
    "LotSpec",
    "Payment",
    "Step",
    "StepSpec",
    "apply_validation",
    "can_validate",
    "is_complete",
]
