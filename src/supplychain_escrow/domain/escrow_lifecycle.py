"""Escrow Lifecycle Engine — custody rules for one lot's payment.

Uses python-statemachine to enforce legal custody transitions at the domain
level. Whatever the API or a client does, an illegal transition (e.g.
RELEASED -> REFUNDED) raises TransitionNotAllowed here first.

Transition table:
    NO_PAYMENT -> ESCROWED   (deposit)
    ESCROWED   -> RELEASED   (release, only once the lot is complete)
    ESCROWED   -> REFUNDED   (refund)

RELEASED and REFUNDED are final and mutually exclusive.

The guard functions below (can_deposit, can_release, can_refund) add the
data conditions the table cannot express: price match and lot completeness.
"""

from __future__ import annotations

from statemachine import State, StateMachine
from statemachine.exceptions import TransitionNotAllowed

from supplychain_escrow.domain.enums import PaymentState
from supplychain_escrow.domain.exceptions import InvalidTransitionError
from supplychain_escrow.domain.models import Lot, Payment


class PaymentStateMachine(StateMachine):
    """State machine that guards the custody lifecycle of a lot's payment.

    Usage:
        sm = PaymentStateMachine(current_state="ESCROWED")
        sm.release()        # transitions to RELEASED
        sm.status           # "RELEASED"
    """

    # --- States ---
    NO_PAYMENT = State("NO_PAYMENT", initial=True)
    ESCROWED = State("ESCROWED")
    RELEASED = State("RELEASED", final=True)
    REFUNDED = State("REFUNDED", final=True)

    # --- Events / Transitions ---
    deposit = NO_PAYMENT.to(ESCROWED)
    release = ESCROWED.to(RELEASED)
    refund = ESCROWED.to(REFUNDED)

    def __init__(self, current_state: str = "NO_PAYMENT") -> None:
        """Initialize the state machine at a given custody state.

        Args:
            current_state: A PaymentState value (e.g., "ESCROWED").
        """
        valid_values = {s.value for s in self.states}
        if current_state not in valid_values:
            valid = ", ".join(sorted(valid_values))
            raise ValueError(f"Unknown payment state '{current_state}'. Valid states: {valid}")
        super().__init__(start_value=current_state)

    @property
    def status(self) -> PaymentState:
        return PaymentState(self.current_state.value)

    def get_allowed_events(self) -> list[str]:
        """Return a list of event names that can fire from the current state."""
        return [event.name for event in self.allowed_events]


def payment_state(payment: Payment | None) -> PaymentState:
    """Derive the custody state from what the escrow ledger reports."""
    if payment is None:
        return PaymentState.NO_PAYMENT
    if payment.released:
        return PaymentState.RELEASED
    if payment.refunded:
        return PaymentState.REFUNDED
    return PaymentState.ESCROWED


def validate_transition(current: PaymentState | str, event_name: str) -> PaymentState:
    """Fire `event_name` on a temporary machine and return the new state.

    Raises:
        TransitionNotAllowed: If the transition is illegal.
        ValueError: If the state or event name is invalid.
    """
    sm = PaymentStateMachine(current_state=str(current))
    event_method = getattr(sm, event_name, None)
    if event_name not in {"deposit", "release", "refund"} or not callable(event_method):
        raise ValueError(
            f"Unknown event '{event_name}'. "
            f"Allowed events from {current}: {sm.get_allowed_events()}"
        )
    event_method()
    return sm.status


def ensure_transition(payment: Payment | None, event_name: str, lot_id: int) -> PaymentState:
    """Like validate_transition, but raises the domain error for illegal moves."""
    current = payment_state(payment)
    try:
        return validate_transition(current, event_name)
    except TransitionNotAllowed as err:
        raise InvalidTransitionError(
            f"{event_name} payment",
            f"payment is {current.value}",
            lot_id=lot_id,
        ) from err


def can_deposit(existing_payment: Payment | None, lot: Lot | None, amount: int) -> bool:
    """A deposit needs an existing lot, no prior payment and the exact price."""
    if existing_payment is not None or lot is None:
        return False
    return amount == lot.price


def can_release(payment: Payment | None, lot_complete: bool) -> bool:
    return payment_state(payment) is PaymentState.ESCROWED and lot_complete


def can_refund(payment: Payment | None) -> bool:
    return payment_state(payment) is PaymentState.ESCROWED
