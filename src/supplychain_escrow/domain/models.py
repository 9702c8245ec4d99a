"""Immutable domain records for lots, steps and payments.

These mirror what the two ledgers report. Instances are never patched in
place: a transition produces a new instance via dataclasses.replace, and
the ledger's last read is always the ground truth.

The domain layer has ZERO imports from the ledger, FastAPI or any I/O code.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from supplychain_escrow.domain.enums import StepStatus
from supplychain_escrow.domain.exceptions import ValidationError


def normalize_account(account: str) -> str:
    """Canonical form of an account identifier for comparisons."""
    return account.strip().lower()


def same_account(left: str | None, right: str | None) -> bool:
    """Case-insensitive account equality. None never matches."""
    if left is None or right is None:
        return False
    return normalize_account(left) == normalize_account(right)


@dataclass(frozen=True)
class Step:
    """One gate in a lot's validation workflow.

    Attributes:
        description: What has to be checked at this stage.
        authorized_validators: Accounts allowed to validate. Empty means any account.
        status: PENDING or VALIDATED.
        validated_by: Validating account, present iff VALIDATED.
        validated_at: Unix seconds of validation, present iff VALIDATED.
    """

    description: str
    authorized_validators: tuple[str, ...] = ()
    status: StepStatus = StepStatus.PENDING
    validated_by: str | None = None
    validated_at: int | None = None

    @property
    def is_validated(self) -> bool:
        return self.status is StepStatus.VALIDATED

    @property
    def is_open(self) -> bool:
        """True when any account may validate this step."""
        return not self.authorized_validators

    def is_authorized(self, account: str) -> bool:
        if self.is_open:
            return True
        return any(same_account(v, account) for v in self.authorized_validators)


@dataclass(frozen=True)
class Lot:
    """A registered batch of goods with its fixed, ordered workflow."""

    id: int
    title: str
    description: str
    quantity: int
    unit: str
    origin: str
    price: int
    creator: str
    created_at: int
    steps: tuple[Step, ...] = ()


@dataclass(frozen=True)
class Payment:
    """Escrowed payment for one lot.

    Attributes:
        lot_id: The registry lot this payment is for.
        buyer: Depositing account.
        seller: Account that receives the funds on release (the lot creator).
        amount: Smallest payment denomination; immutable after deposit.
        created_at: Unix seconds of the deposit.
        released_at: Unix seconds of the release, present iff released.
        released: True once funds went to the seller.
        refunded: True once funds went back to the buyer.
    """

    lot_id: int
    buyer: str
    seller: str
    amount: int
    created_at: int
    released_at: int | None = None
    released: bool = False
    refunded: bool = False

    @property
    def is_settled(self) -> bool:
        return self.released or self.refunded


@dataclass(frozen=True)
class AccountStats:
    """Per-account escrow totals plus the escrow-wide custodial balance."""

    account: str | None
    total_received: int = 0
    total_spent: int = 0
    contract_balance: int = 0


@dataclass(frozen=True)
class StepSpec:
    """One step of a lot being registered."""

    description: str
    validators: tuple[str, ...] = ()


@dataclass(frozen=True)
class LotSpec:
    """Input for registering a lot together with all of its steps."""

    title: str
    description: str
    quantity: int
    price: int
    unit: str = "units"
    origin: str = ""
    steps: tuple[StepSpec, ...] = field(default_factory=tuple)

    def validate(self) -> None:
        """Reject malformed input before anything is submitted.

        Raises:
            ValidationError: Naming the first offending field.
        """
        if not self.title.strip():
            raise ValidationError("Title must not be empty", field="title")
        if not self.description.strip():
            raise ValidationError("Description must not be empty", field="description")
        if self.quantity <= 0:
            raise ValidationError("Quantity must be greater than zero", field="quantity")
        if self.price <= 0:
            raise ValidationError("Price must be greater than zero", field="price")
        if not self.steps:
            raise ValidationError("A lot needs at least one validation step", field="steps")
        for index, step in enumerate(self.steps):
            if not step.description.strip():
                raise ValidationError(
                    f"Step {index} description must not be empty",
                    field=f"steps[{index}].description",
                )
            if any(not v.strip() for v in step.validators):
                raise ValidationError(
                    f"Step {index} has a blank validator address",
                    field=f"steps[{index}].validators",
                )
