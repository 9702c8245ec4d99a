"""Ledger Node and Signer protocols.

Defines the boundary the clients talk to. These are Protocols (structural
subtyping) so a concrete node — a JSON-RPC gateway, the in-memory simulator —
only has to match the shape.

The ledger is an external, append-only store: every write is one atomic
state transition, reads are typed, and confirmation is observed by waiting
on the handle returned at submission.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

# --- Transport errors ---
# Raised by nodes; clients translate them into domain errors.


class LedgerError(Exception):
    """Base class for failures reported by a ledger node."""


class LedgerUnavailable(LedgerError):
    """Transient transport failure. Safe to retry reads."""


class LedgerRevert(LedgerError):
    """The call was rejected by the target's own rules."""

    def __init__(self, method: str, reason: str) -> None:
        super().__init__(f"{method} reverted: {reason}")
        self.method = method
        self.reason = reason


class FeeEstimationError(LedgerError):
    """The node could not estimate fees/resource limits for a write."""


# --- Write handles and receipts ---


class TxStatus(enum.StrEnum):
    CONFIRMED = "confirmed"
    REVERTED = "reverted"
    PENDING = "pending"


@dataclass(frozen=True)
class FeeOverride:
    """Explicit, conservative resource limits that bypass node estimation."""

    gas_limit: int
    gas_price: int | None = None


@dataclass(frozen=True)
class TxHandle:
    """Returned at submission; used to wait for confirmation."""

    tx_hash: str
    contract_address: str
    method: str


@dataclass(frozen=True)
class TxReceipt:
    """Outcome of a wait on a TxHandle.

    Attributes:
        tx_hash: Hash of the submitted write.
        status: CONFIRMED, REVERTED, or PENDING when the wait timed out.
        return_value: Value returned by the call (e.g. the new lot id).
        revert_reason: Set when status is REVERTED.
    """

    tx_hash: str
    status: TxStatus
    return_value: Any = None
    revert_reason: str | None = None


@runtime_checkable
class LedgerNode(Protocol):
    """Protocol every ledger node implementation must satisfy."""

    async def read(self, contract_address: str, method: str, args: tuple = ()) -> Any:
        """Execute a read-only call and return its typed result."""
        ...

    async def write(
        self,
        contract_address: str,
        method: str,
        args: tuple = (),
        *,
        sender: str,
        value: int = 0,
        fee_override: FeeOverride | None = None,
    ) -> TxHandle:
        """Submit a signed state-changing call and return its handle."""
        ...

    async def wait(self, handle: TxHandle, timeout: float) -> TxReceipt:
        """Wait up to `timeout` seconds; PENDING status means it timed out."""
        ...


@runtime_checkable
class Signer(Protocol):
    """Supplies the account that authorizes a write."""

    @property
    def account(self) -> str: ...


@dataclass(frozen=True)
class StaticSigner:
    """A signer bound to one account identifier."""

    account: str
