"""Step Validation Engine — gating and authorization rules for lot workflows.

Pure functions over an in-memory Lot. No I/O: the registry client uses
them to fast-fail before submitting, and the sync engine uses
apply_validation to compute the optimistic lot it hands back while the
ledger confirms.

Rules for validating step i by an account:
    1. i is in range.
    2. step i is PENDING (a step is validated at most once).
    3. i == 0, or step i-1 is VALIDATED (sequential gating).
    4. the step is open (no authorized validators) or the account is listed,
       compared case-insensitively.
"""

from __future__ import annotations

from dataclasses import replace

from supplychain_escrow.domain.enums import StepStatus
from supplychain_escrow.domain.exceptions import InvalidTransitionError
from supplychain_escrow.domain.models import Lot


def explain_rejection(lot: Lot, index: int, account: str) -> str | None:
    """Return why `account` may not validate step `index`, or None if it may."""
    if index < 0 or index >= len(lot.steps):
        return f"step index {index} is out of range (lot has {len(lot.steps)} steps)"
    step = lot.steps[index]
    if step.is_validated:
        return f"step {index} is already validated"
    if index > 0 and not lot.steps[index - 1].is_validated:
        return f"step {index - 1} must be validated first"
    if not step.is_authorized(account):
        return f"account {account} is not an authorized validator for step {index}"
    return None


def can_validate(lot: Lot, index: int, account: str) -> bool:
    return explain_rejection(lot, index, account) is None


def apply_validation(lot: Lot, index: int, account: str, now: int) -> Lot:
    """Return a copy of `lot` with step `index` validated by `account`.

    Not idempotent: a second call for the same step raises.

    Raises:
        InvalidTransitionError: If can_validate() is False.
    """
    reason = explain_rejection(lot, index, account)
    if reason is not None:
        raise InvalidTransitionError(f"validate step {index}", reason, lot_id=lot.id)

    validated = replace(
        lot.steps[index],
        status=StepStatus.VALIDATED,
        validated_by=account,
        validated_at=now,
    )
    steps = lot.steps[:index] + (validated,) + lot.steps[index + 1:]
    return replace(lot, steps=steps)


def is_complete(lot: Lot) -> bool:
    """A lot is complete when it has steps and every one is validated."""
    return bool(lot.steps) and all(step.is_validated for step in lot.steps)


def next_validatable_index(lot: Lot) -> int | None:
    """Index of the step currently open for validation, if any.

    Because of sequential gating this is the first pending step.
    """
    for index, step in enumerate(lot.steps):
        if not step.is_validated:
            return index
    return None


def validation_progress(lot: Lot) -> tuple[int, int]:
    """Return (validated steps, total steps)."""
    done = sum(1 for step in lot.steps if step.is_validated)
    return done, len(lot.steps)
