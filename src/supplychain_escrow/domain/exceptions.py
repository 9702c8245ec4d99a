"""Domain exceptions for the supply-chain escrow coordinator.

These exceptions are framework-agnostic and represent business rule
violations or ledger interaction outcomes. They are caught and translated
to HTTP responses by the API layer's middleware.
"""

from __future__ import annotations


class SupplyChainError(Exception):
    """Base exception for all domain errors."""

    def __init__(self, message: str, code: str = "SUPPLY_CHAIN_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(self.message)


# --- Input Errors ---


class ValidationError(SupplyChainError):
    """Raised when input is malformed. Always caught before submission."""

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message=message, code="VALIDATION_ERROR")
        self.field = field


# --- Transition Errors ---


class InvalidTransitionError(SupplyChainError):
    """Raised when gating, authorization or lifecycle rules forbid an action.

    Example: validating step 2 of a lot while step 1 is still pending.
    """

    def __init__(self, action: str, reason: str, lot_id: int | None = None) -> None:
        where = f" on lot {lot_id}" if lot_id is not None else ""
        super().__init__(
            message=f"Cannot {action}{where}: {reason}",
            code="INVALID_TRANSITION",
        )
        self.action = action
        self.reason = reason
        self.lot_id = lot_id


# --- Lookup Errors ---


class NotFoundError(SupplyChainError):
    """Raised when a ledger entity does not exist."""

    def __init__(self, message: str, code: str = "NOT_FOUND") -> None:
        super().__init__(message=message, code=code)


class LotNotFoundError(NotFoundError):
    """Raised when the registry reports no lot for an id."""

    def __init__(self, lot_id: int) -> None:
        super().__init__(message=f"Lot not found: {lot_id}", code="LOT_NOT_FOUND")
        self.lot_id = lot_id


class PaymentNotFoundError(NotFoundError):
    """Raised when the escrow holds no payment for a lot id."""

    def __init__(self, lot_id: int) -> None:
        super().__init__(
            message=f"No payment recorded for lot: {lot_id}",
            code="PAYMENT_NOT_FOUND",
        )
        self.lot_id = lot_id


# --- Configuration Errors ---


class ConfigurationMismatchError(SupplyChainError):
    """Raised when the escrow is bound to a different registry than configured.

    Fatal and non-retryable: payment writes would target a lot-id space the
    escrow cannot resolve.
    """

    def __init__(self, escrow_address: str, bound_registry: str, configured_registry: str) -> None:
        super().__init__(
            message=(
                f"Escrow {escrow_address} is bound to registry {bound_registry}, "
                f"but the configured registry is {configured_registry}"
            ),
            code="CONFIGURATION_MISMATCH",
        )
        self.escrow_address = escrow_address
        self.bound_registry = bound_registry
        self.configured_registry = configured_registry


# --- Ledger Write Errors ---


class SubmissionError(SupplyChainError):
    """Raised when the ledger rejected or failed to accept a write."""

    def __init__(self, method: str, message: str, tx_hash: str | None = None) -> None:
        super().__init__(message=f"{method} failed: {message}", code="SUBMISSION_ERROR")
        self.method = method
        self.tx_hash = tx_hash


class ConfirmationTimeout(SupplyChainError):
    """Raised when a submitted write was not confirmed within the wait budget.

    Non-fatal: the write may still land. Callers refresh later instead of
    treating this as a failure.
    """

    def __init__(self, method: str, tx_hash: str, waited_seconds: float) -> None:
        super().__init__(
            message=f"{method} ({tx_hash}) not confirmed after {waited_seconds:.1f}s",
            code="CONFIRMATION_TIMEOUT",
        )
        self.method = method
        self.tx_hash = tx_hash
        self.waited_seconds = waited_seconds


# --- Aggregation Errors ---


class PartialFetchFailure(SupplyChainError):
    """Describes one item that could not be fetched during an aggregate read.

    Recorded, logged and skipped; it never aborts a refresh.
    """

    def __init__(self, source: str, key: int | str, error: str) -> None:
        super().__init__(
            message=f"Failed to fetch {source} {key}: {error}",
            code="PARTIAL_FETCH_FAILURE",
        )
        self.source = source
        self.key = key
        self.error = error
