"""Sync/Aggregation Engine — the entry point for every presentation intent.

This is the application layer that coordinates between:
    - the pure rule engines (step gating, custody lifecycle)
    - the two ledger clients and the consistency guard
    - the immutable Snapshot readers consume

Every state-changing intent follows the same path:
    1. take the per-lot lock (same lot: strict FIFO; different lots: parallel)
    2. read fresh ledger state and fast-fail with the pure engines
    3. submit through the client and poll for confirmation
    4. on ConfirmationTimeout: log, wait the grace delay, carry on
    5. rebuild the snapshot with refresh_all

The ledger's last read is the ground truth. The local snapshot is a cache
that is rebuilt wholesale, never patched.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from contextlib import nullcontext
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from supplychain_escrow.config import Settings, get_settings
from supplychain_escrow.domain.enums import Intent
from supplychain_escrow.domain.escrow_lifecycle import (
    can_deposit,
    can_release,
    ensure_transition,
)
from supplychain_escrow.domain.exceptions import (
    ConfirmationTimeout,
    InvalidTransitionError,
    PartialFetchFailure,
)
from supplychain_escrow.domain.models import AccountStats, Lot, LotSpec, same_account
from supplychain_escrow.domain.step_validation import apply_validation, is_complete
from supplychain_escrow.logging_config import get_logger
from supplychain_escrow.services.keyed_lock import KeyedLock
from supplychain_escrow.services.snapshot import Snapshot

if TYPE_CHECKING:
    from supplychain_escrow.clients.escrow_client import EscrowClient
    from supplychain_escrow.clients.registry_client import LotRegistryClient
    from supplychain_escrow.ledger.protocol import Signer

logger = get_logger(__name__)


def _stats_fallback(previous: AccountStats, account: str | None) -> AccountStats:
    """Previous totals stand in only for the same account; the balance is escrow-wide."""
    if (previous.account is None and account is None) or same_account(previous.account, account):
        return previous
    return AccountStats(account=account, contract_balance=previous.contract_balance)


@dataclass(frozen=True)
class OperationOutcome:
    """Result of one state-changing intent.

    Attributes:
        intent: What was requested.
        lot_id: The lot acted on (the new id for a confirmed creation).
        confirmed: False when confirmation timed out; the write may still land.
        lot: The lot as expected after the operation. For validations this is
             the optimistic copy computed before submission.
        snapshot: The snapshot rebuilt after the operation.
    """

    intent: Intent
    lot_id: int | None
    confirmed: bool
    lot: Lot | None = None
    snapshot: Snapshot | None = None


class SyncEngine:
    """Serializes per-lot writes and owns the aggregate snapshot."""

    def __init__(
        self,
        registry: LotRegistryClient,
        escrow: EscrowClient,
        settings: Settings | None = None,
        account: str | None = None,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self._registry = registry
        self._escrow = escrow
        self._settings = settings or get_settings()
        self._account = account
        self._clock = clock or (lambda: int(time.time()))
        self._snapshot = Snapshot()
        self._refresh_lock = asyncio.Lock()
        self._lot_locks = KeyedLock()

    @property
    def snapshot(self) -> Snapshot:
        return self._snapshot

    @property
    def registry(self) -> LotRegistryClient:
        return self._registry

    @property
    def escrow(self) -> EscrowClient:
        return self._escrow

    def is_busy(self, lot_id: int) -> bool:
        """True while an operation on `lot_id` is running or queued."""
        return self._lot_locks.is_busy(lot_id)

    # ------------------------------------------------------------------
    # Aggregation
    # ------------------------------------------------------------------

    async def refresh_all(self, account: str | None = None) -> Snapshot:
        """Rebuild the snapshot from both ledgers.

        Never raises for fetch problems: failed items are recorded on the
        snapshot, and a section that could not be read at all keeps the
        previous generation's data.
        """
        account = account if account is not None else self._account
        async with self._refresh_lock:
            previous = self._snapshot
            lots_window = self._registry.list_recent_lots(self._settings.lot_window)
            payments_window = self._escrow.list_recent_payments(self._settings.payment_window)

            lots, payments, stats = await asyncio.gather(
                lots_window.collect(),
                payments_window.collect(),
                self._escrow.get_aggregate_stats(account),
                return_exceptions=True,
            )

            failures: list[PartialFetchFailure] = []
            lots = self._settle("lots", lots, previous.lots, failures)
            payments = self._settle("payments", payments, previous.payments, failures)
            stats = self._settle("stats", stats, _stats_fallback(previous.stats, account), failures)
            failures.extend(lots_window.failures)
            failures.extend(payments_window.failures)

            snapshot = Snapshot(
                lots=tuple(sorted(lots, key=lambda lot: lot.id, reverse=True)),
                payments=tuple(payments),
                stats=stats,
                failures=tuple(failures),
                generation=previous.generation + 1,
                refreshed_at=datetime.now(UTC),
            )
            self._snapshot = snapshot

        logger.info(
            "sync.refresh_completed",
            generation=snapshot.generation,
            lots=len(snapshot.lots),
            payments=len(snapshot.payments),
            failures=len(snapshot.failures),
        )
        return snapshot

    @staticmethod
    def _settle(section: str, result: Any, fallback: Any, failures: list[PartialFetchFailure]) -> Any:
        if isinstance(result, Exception):
            logger.warning("sync.section_failed", section=section, error=str(result))
            failures.append(PartialFetchFailure(section, "*", str(result)))
            return fallback
        if isinstance(result, BaseException):
            raise result
        return result

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def submit_and_confirm(
        self,
        intent: Intent,
        lot_id: int | None,
        submit: Callable[[Lot | None], Awaitable[int | None]],
        prepare: Callable[[], Awaitable[Lot | None]] | None = None,
    ) -> OperationOutcome:
        """Run one state-changing operation under the lot's lock.

        Args:
            intent: The operation, for logging and the outcome.
            lot_id: Serialization key; None for lot creation.
            submit: Submits and confirms through a client. Receives the value
                    `prepare` returned and may return a new lot id.
            prepare: Fresh reads and fast-fail checks. Errors propagate and
                     nothing is submitted.

        A confirmation timeout is not a failure: after the grace delay the
        engine refreshes and reports confirmed=False. Cancelling the caller
        stops the wait and skips the refresh; the submitted write proceeds.
        """
        lock = self._lot_locks.hold(lot_id) if lot_id is not None else nullcontext()
        async with lock:
            prepared = await prepare() if prepare is not None else None
            try:
                result = await submit(prepared)
                confirmed = True
            except ConfirmationTimeout as exc:
                logger.warning(
                    "sync.confirmation_timeout",
                    intent=intent.value,
                    lot_id=lot_id,
                    tx_hash=exc.tx_hash,
                    waited=exc.waited_seconds,
                )
                await asyncio.sleep(self._settings.confirm_grace_seconds)
                result = None
                confirmed = False

        if lot_id is None and isinstance(result, int):
            lot_id = result
        logger.info("sync.operation_done", intent=intent.value, lot_id=lot_id, confirmed=confirmed)
        snapshot = await self.refresh_all()
        return OperationOutcome(
            intent=intent,
            lot_id=lot_id,
            confirmed=confirmed,
            lot=prepared,
            snapshot=snapshot,
        )

    # ------------------------------------------------------------------
    # Intents
    # ------------------------------------------------------------------

    async def create_lot(self, spec: LotSpec, signer: Signer) -> OperationOutcome:
        spec.validate()

        async def submit(_: Lot | None) -> int:
            return await self._registry.create_lot(spec, signer)

        return await self.submit_and_confirm(Intent.CREATE_LOT, None, submit)

    async def validate_step(self, lot_id: int, step_index: int, signer: Signer) -> OperationOutcome:
        fresh: Lot | None = None

        async def prepare() -> Lot:
            nonlocal fresh
            fresh = await self._registry.get_lot(lot_id)
            return apply_validation(fresh, step_index, signer.account, self._clock())

        async def submit(_: Lot | None) -> None:
            await self._registry.validate_step(lot_id, step_index, signer, lot=fresh)

        return await self.submit_and_confirm(Intent.VALIDATE_STEP, lot_id, submit, prepare)

    async def deposit_payment(
        self,
        lot_id: int,
        signer: Signer,
        amount: int | None = None,
    ) -> OperationOutcome:
        """Escrow the lot price. `amount` defaults to the price just read."""

        async def prepare() -> Lot:
            await self._escrow.guard.verify_binding()
            lot = await self._registry.get_lot(lot_id)
            existing = await self._escrow.find_payment(lot_id)
            paid = lot.price if amount is None else amount
            if not can_deposit(existing, lot, paid):
                reason = (
                    "a payment already exists for this lot"
                    if existing is not None
                    else f"amount {paid} does not equal lot price {lot.price}"
                )
                raise InvalidTransitionError("deposit payment", reason, lot_id=lot_id)
            return lot

        async def submit(lot: Lot | None) -> None:
            paid = lot.price if amount is None else amount
            await self._escrow.deposit_payment(lot_id, paid, signer)

        return await self.submit_and_confirm(Intent.DEPOSIT_PAYMENT, lot_id, submit, prepare)

    async def release_payment(self, lot_id: int, signer: Signer) -> OperationOutcome:
        async def prepare() -> Lot:
            await self._escrow.guard.verify_binding()
            lot = await self._registry.get_lot(lot_id)
            payment = await self._escrow.find_payment(lot_id)
            ensure_transition(payment, "release", lot_id)
            if not can_release(payment, is_complete(lot)):
                raise InvalidTransitionError(
                    "release payment",
                    "not every validation step is complete",
                    lot_id=lot_id,
                )
            return lot

        async def submit(_: Lot | None) -> None:
            await self._escrow.release_payment(lot_id, signer)

        return await self.submit_and_confirm(Intent.RELEASE_PAYMENT, lot_id, submit, prepare)

    async def refund_payment(self, lot_id: int, signer: Signer) -> OperationOutcome:
        async def prepare() -> Lot:
            await self._escrow.guard.verify_binding()
            lot = await self._registry.get_lot(lot_id)
            payment = await self._escrow.find_payment(lot_id)
            ensure_transition(payment, "refund", lot_id)
            return lot

        async def submit(_: Lot | None) -> None:
            await self._escrow.refund_payment(lot_id, signer)

        return await self.submit_and_confirm(Intent.REFUND_PAYMENT, lot_id, submit, prepare)
