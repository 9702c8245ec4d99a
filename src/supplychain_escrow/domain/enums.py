"""Domain enumerations for the supply-chain escrow coordinator.

These enums define the canonical states and intents used throughout the
system. They are framework-agnostic (no FastAPI, no ledger imports).
"""

import enum


class StepStatus(enum.IntEnum):
    """Status of one workflow step, as encoded by the registry (uint8)."""

    PENDING = 0
    VALIDATED = 1


class PaymentState(enum.StrEnum):
    """Custody states of the escrow for one lot.

    Transitions are enforced by PaymentStateMachine.
    See domain/escrow_lifecycle.py for the transition table.
    """

    NO_PAYMENT = "NO_PAYMENT"
    ESCROWED = "ESCROWED"
    RELEASED = "RELEASED"
    REFUNDED = "REFUNDED"


class Intent(enum.StrEnum):
    """Operations the presentation layer can ask the sync engine for."""

    CREATE_LOT = "create_lot"
    VALIDATE_STEP = "validate_step"
    DEPOSIT_PAYMENT = "deposit_payment"
    RELEASE_PAYMENT = "release_payment"
    REFUND_PAYMENT = "refund_payment"
    REFRESH = "refresh"
