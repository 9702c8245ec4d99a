"""In-memory ledger node — simulates both contracts for tests and demos.

Plays the role the simulate mode of a payment service plays in a
development setup: the full read/write/wait surface of a ledger node, with
no network. Each write is applied atomically at submission; its receipt
becomes visible after a configurable number of polls, which reproduces the
"state changed but confirmation not yet observed" window of a real chain.

Failure injection:
    ledger.fail_fee_estimation("depositPayment", times=1)
    ledger.fail_submissions("releasePayment", times=2)
    ledger.fail_reads("getLot", (7,))
    ledger.fail_reads("lotRegistry", times=1)
    ledger.confirmation_delay = 3   # polls before a receipt confirms

Usage:
    ledger = InMemoryLedger()
    registry = ledger.deploy_registry()
    escrow = ledger.deploy_escrow(registry)
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from supplychain_escrow.ledger.protocol import (
    FeeEstimationError,
    FeeOverride,
    LedgerRevert,
    LedgerUnavailable,
    TxHandle,
    TxReceipt,
    TxStatus,
)
from supplychain_escrow.logging_config import get_logger

logger = get_logger(__name__)

ZERO_ADDRESS = "0x" + "0" * 40


def _new_address() -> str:
    return "0x" + uuid.uuid4().hex + uuid.uuid4().hex[:8]


def _new_tx_hash() -> str:
    return "0x" + uuid.uuid4().hex + uuid.uuid4().hex


@dataclass
class SubmittedWrite:
    """One write attempt as seen by the node, accepted or not."""

    contract_address: str
    method: str
    args: tuple
    sender: str
    value: int
    fee_override: FeeOverride | None
    accepted: bool = False


@dataclass
class _Tx:
    receipt: TxReceipt
    polls_left: int = 0


@dataclass
class _StepRecord:
    description: str
    validators: list[str]
    validated_by: str = ZERO_ADDRESS
    validated_at: int = 0
    status: int = 0


@dataclass
class _LotRecord:
    id: int
    title: str
    description: str
    quantity: int
    unit: str
    origin: str
    price: int
    creator: str
    created_at: int
    steps: list[_StepRecord] = field(default_factory=list)


@dataclass
class _PaymentRecord:
    lot_id: int
    buyer: str
    seller: str
    amount: int
    created_at: int
    released_at: int = 0
    released: bool = False
    refunded: bool = False


class _Contract:
    """Dispatches calls to `read_<method>` / `write_<method>` handlers."""

    def __init__(self, address: str, clock: Callable[[], int]) -> None:
        self.address = address
        self._clock = clock

    def call_read(self, method: str, args: tuple) -> Any:
        handler = getattr(self, f"read_{method}", None)
        if handler is None:
            raise LedgerRevert(method, "unknown method")
        return handler(*args)

    def call_write(self, method: str, sender: str, value: int, args: tuple) -> Any:
        handler = getattr(self, f"write_{method}", None)
        if handler is None:
            raise LedgerRevert(method, "unknown method")
        return handler(sender, value, *args)


class RegistryContract(_Contract):
    """Lot registry: lots with fixed, ordered, gated validation steps."""

    def __init__(self, address: str, clock: Callable[[], int]) -> None:
        super().__init__(address, clock)
        self._lots: dict[int, _LotRecord] = {}
        self._next_id = 0

    # --- writes ---

    def write_createLot(
        self,
        sender: str,
        value: int,
        title: str,
        description: str,
        quantity: int,
        unit: str,
        origin: str,
        price: int,
        step_descriptions: list[str],
        step_validators: list[list[str]],
    ) -> int:
        if not step_descriptions:
            raise LedgerRevert("createLot", "at least one step required")
        if len(step_descriptions) != len(step_validators):
            raise LedgerRevert("createLot", "steps and validators length mismatch")
        lot_id = self._next_id
        self._lots[lot_id] = _LotRecord(
            id=lot_id,
            title=title,
            description=description,
            quantity=quantity,
            unit=unit,
            origin=origin,
            price=price,
            creator=sender,
            created_at=self._clock(),
            steps=[
                _StepRecord(description=d, validators=list(v))
                for d, v in zip(step_descriptions, step_validators, strict=True)
            ],
        )
        self._next_id += 1
        return lot_id

    def write_validateStep(self, sender: str, value: int, lot_id: int, step_index: int) -> None:
        lot = self._require(lot_id, "validateStep")
        if step_index < 0 or step_index >= len(lot.steps):
            raise LedgerRevert("validateStep", "invalid step index")
        step = lot.steps[step_index]
        if step.status == 1:
            raise LedgerRevert("validateStep", "step already validated")
        if step_index > 0 and lot.steps[step_index - 1].status != 1:
            raise LedgerRevert("validateStep", "previous step not validated")
        if step.validators and sender.lower() not in {v.lower() for v in step.validators}:
            raise LedgerRevert("validateStep", "not authorized")
        step.status = 1
        step.validated_by = sender
        step.validated_at = self._clock()

    # --- reads ---

    def read_nextLotId(self) -> int:
        return self._next_id

    def read_getLot(self, lot_id: int) -> dict:
        lot = self._lots.get(lot_id)
        if lot is None:
            return {
                "id": 0, "title": "", "description": "", "quantity": 0, "unit": "",
                "origin": "", "price": 0, "creator": ZERO_ADDRESS, "createdAt": 0,
                "exists": False,
            }
        return {
            "id": lot.id,
            "title": lot.title,
            "description": lot.description,
            "quantity": lot.quantity,
            "unit": lot.unit,
            "origin": lot.origin,
            "price": lot.price,
            "creator": lot.creator,
            "createdAt": lot.created_at,
            "exists": True,
        }

    def read_getLotStepsCount(self, lot_id: int) -> int:
        return len(self._require(lot_id, "getLotStepsCount").steps)

    def read_getStep(self, lot_id: int, step_index: int) -> tuple:
        lot = self._require(lot_id, "getStep")
        if step_index < 0 or step_index >= len(lot.steps):
            raise LedgerRevert("getStep", "invalid step index")
        s = lot.steps[step_index]
        return (s.description, list(s.validators), s.validated_by, s.validated_at, s.status)

    # --- used by the escrow contract ---

    def lot(self, lot_id: int) -> _LotRecord | None:
        return self._lots.get(lot_id)

    def is_complete(self, lot_id: int) -> bool:
        lot = self._lots.get(lot_id)
        return lot is not None and bool(lot.steps) and all(s.status == 1 for s in lot.steps)

    def _require(self, lot_id: int, method: str) -> _LotRecord:
        lot = self._lots.get(lot_id)
        if lot is None:
            raise LedgerRevert(method, "lot does not exist")
        return lot


class EscrowContract(_Contract):
    """Escrow payment ledger, bound at creation to one registry."""

    def __init__(self, address: str, clock: Callable[[], int], registry: RegistryContract) -> None:
        super().__init__(address, clock)
        self._registry = registry
        self._payments: dict[int, _PaymentRecord] = {}
        self._order: list[int] = []
        self._balance = 0
        self._received: dict[str, int] = {}
        self._spent: dict[str, int] = {}

    # --- writes ---

    def write_depositPayment(self, sender: str, value: int, lot_id: int) -> None:
        lot = self._registry.lot(lot_id)
        if lot is None:
            raise LedgerRevert("depositPayment", "lot does not exist")
        if lot_id in self._payments:
            raise LedgerRevert("depositPayment", "payment already exists")
        if value != lot.price:
            raise LedgerRevert("depositPayment", "amount must equal lot price")
        self._payments[lot_id] = _PaymentRecord(
            lot_id=lot_id,
            buyer=sender,
            seller=lot.creator,
            amount=value,
            created_at=self._clock(),
        )
        self._order.append(lot_id)
        self._balance += value
        self._spent[sender.lower()] = self._spent.get(sender.lower(), 0) + value

    def write_releasePayment(self, sender: str, value: int, lot_id: int) -> None:
        payment = self._require_open(lot_id, "releasePayment")
        if sender.lower() not in {payment.buyer.lower(), payment.seller.lower()}:
            raise LedgerRevert("releasePayment", "only buyer or seller")
        if not self._registry.is_complete(lot_id):
            raise LedgerRevert("releasePayment", "lot not completed")
        payment.released = True
        payment.released_at = self._clock()
        self._balance -= payment.amount
        seller = payment.seller.lower()
        self._received[seller] = self._received.get(seller, 0) + payment.amount

    def write_refundPayment(self, sender: str, value: int, lot_id: int) -> None:
        payment = self._require_open(lot_id, "refundPayment")
        if sender.lower() != payment.seller.lower():
            raise LedgerRevert("refundPayment", "only seller")
        payment.refunded = True
        self._balance -= payment.amount
        buyer = payment.buyer.lower()
        self._spent[buyer] = self._spent.get(buyer, 0) - payment.amount

    # --- reads ---

    def read_lotRegistry(self) -> str:
        return self._registry.address

    def read_getPayment(self, lot_id: int) -> dict:
        payment = self._payments.get(lot_id)
        if payment is None:
            return self._as_struct(_PaymentRecord(0, ZERO_ADDRESS, ZERO_ADDRESS, 0, 0))
        return self._as_struct(payment)

    def read_getPaymentsCount(self) -> int:
        return len(self._order)

    def read_getPaymentByIndex(self, index: int) -> dict:
        if index < 0 or index >= len(self._order):
            raise LedgerRevert("getPaymentByIndex", "index out of range")
        return self._as_struct(self._payments[self._order[index]])

    def read_getContractBalance(self) -> int:
        return self._balance

    def read_totalReceived(self, account: str) -> int:
        return self._received.get(account.lower(), 0)

    def read_totalSpent(self, account: str) -> int:
        return self._spent.get(account.lower(), 0)

    def _require_open(self, lot_id: int, method: str) -> _PaymentRecord:
        payment = self._payments.get(lot_id)
        if payment is None:
            raise LedgerRevert(method, "no payment for lot")
        if payment.released:
            raise LedgerRevert(method, "payment already released")
        if payment.refunded:
            raise LedgerRevert(method, "payment already refunded")
        return payment

    @staticmethod
    def _as_struct(p: _PaymentRecord) -> dict:
        return {
            "lotId": p.lot_id,
            "buyer": p.buyer,
            "seller": p.seller,
            "amount": p.amount,
            "createdAt": p.created_at,
            "releasedAt": p.released_at,
            "released": p.released,
            "refunded": p.refunded,
        }


class InMemoryLedger:
    """A LedgerNode hosting any number of registry and escrow deployments."""

    def __init__(
        self,
        clock: Callable[[], int] | None = None,
        confirmation_delay: int = 0,
    ) -> None:
        self._clock = clock or (lambda: int(time.time()))
        self._contracts: dict[str, _Contract] = {}
        self._txs: dict[str, _Tx] = {}
        self._estimation_failures: dict[str, int] = {}
        self._submission_failures: dict[str, int] = {}
        self._read_failures: dict[tuple[str, tuple | None], Exception] = {}
        self._read_failures_left: dict[tuple[str, tuple | None], int] = {}
        self.confirmation_delay = confirmation_delay
        self.submissions: list[SubmittedWrite] = []
        self.reads: list[tuple[str, tuple]] = []

    # ------------------------------------------------------------------
    # Deployment
    # ------------------------------------------------------------------

    def deploy_registry(self, address: str | None = None) -> str:
        address = address or _new_address()
        self._contracts[address.lower()] = RegistryContract(address, self._clock)
        logger.debug("ledger.registry_deployed", address=address)
        return address

    def deploy_escrow(self, registry_address: str, address: str | None = None) -> str:
        registry = self._contracts.get(registry_address.lower())
        if not isinstance(registry, RegistryContract):
            raise ValueError(f"No registry deployed at {registry_address}")
        address = address or _new_address()
        self._contracts[address.lower()] = EscrowContract(address, self._clock, registry)
        logger.debug("ledger.escrow_deployed", address=address, registry=registry_address)
        return address

    # ------------------------------------------------------------------
    # Failure injection
    # ------------------------------------------------------------------

    def fail_fee_estimation(self, method: str, times: int = 1) -> None:
        """Make the next `times` auto-estimated submissions of `method` fail."""
        self._estimation_failures[method] = times

    def fail_submissions(self, method: str, times: int = 1) -> None:
        """Make the next `times` submissions of `method` fail, override or not."""
        self._submission_failures[method] = times

    def fail_reads(
        self,
        method: str,
        args: tuple | None = None,
        error: Exception | None = None,
        times: int | None = None,
    ) -> None:
        """Make reads of `method` (optionally only with `args`) raise.

        The failure lasts until cleared, or for the next `times` matching reads.
        """
        key = (method, args)
        self._read_failures[key] = error or LedgerUnavailable(f"{method} unavailable")
        if times is None:
            self._read_failures_left.pop(key, None)
        else:
            self._read_failures_left[key] = times

    def clear_read_failures(self) -> None:
        self._read_failures.clear()
        self._read_failures_left.clear()

    def writes_for(self, method: str) -> list[SubmittedWrite]:
        return [w for w in self.submissions if w.method == method]

    # ------------------------------------------------------------------
    # LedgerNode
    # ------------------------------------------------------------------

    async def read(self, contract_address: str, method: str, args: tuple = ()) -> Any:
        await asyncio.sleep(0)
        args = tuple(args)
        self.reads.append((method, args))
        key = (method, args) if (method, args) in self._read_failures else (method, None)
        failure = self._read_failures.get(key)
        if failure is not None:
            left = self._read_failures_left.get(key)
            if left is not None:
                if left <= 1:
                    del self._read_failures[key]
                    del self._read_failures_left[key]
                else:
                    self._read_failures_left[key] = left - 1
            raise failure
        return self._contract(contract_address, method).call_read(method, args)

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
        await asyncio.sleep(0)
        args = tuple(args)
        record = SubmittedWrite(contract_address, method, args, sender, value, fee_override)
        self.submissions.append(record)
        contract = self._contract(contract_address, method)

        if self._submission_failures.get(method, 0) > 0:
            self._submission_failures[method] -= 1
            raise LedgerUnavailable(f"node refused submission of {method}")
        if fee_override is None and self._estimation_failures.get(method, 0) > 0:
            self._estimation_failures[method] -= 1
            raise FeeEstimationError(f"could not estimate gas for {method}")

        tx_hash = _new_tx_hash()
        try:
            result = contract.call_write(method, sender, value, args)
        except LedgerRevert as exc:
            if fee_override is None:
                # Estimation executes the call and surfaces the revert up front.
                raise
            receipt = TxReceipt(tx_hash, TxStatus.REVERTED, revert_reason=exc.reason)
            self._txs[tx_hash] = _Tx(receipt, polls_left=self.confirmation_delay)
        else:
            receipt = TxReceipt(tx_hash, TxStatus.CONFIRMED, return_value=result)
            self._txs[tx_hash] = _Tx(receipt, polls_left=self.confirmation_delay)
        record.accepted = True
        return TxHandle(tx_hash=tx_hash, contract_address=contract_address, method=method)

    async def wait(self, handle: TxHandle, timeout: float) -> TxReceipt:
        tx = self._txs.get(handle.tx_hash)
        if tx is None:
            raise LedgerUnavailable(f"unknown transaction {handle.tx_hash}")
        if tx.polls_left > 0:
            tx.polls_left -= 1
            await asyncio.sleep(timeout)
            return TxReceipt(handle.tx_hash, TxStatus.PENDING)
        await asyncio.sleep(0)
        return tx.receipt

    def _contract(self, address: str, method: str) -> _Contract:
        contract = self._contracts.get(address.lower())
        if contract is None:
            raise LedgerRevert(method, f"no contract at {address}")
        return contract
