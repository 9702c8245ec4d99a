"""Tests for the SyncEngine: aggregation and serialized write intents.

These tests verify that:
    1. refresh_all builds a consistent, bounded, newest-first snapshot and
       records per-item and per-section failures without raising.
    2. Every intent fast-fails on gating, custody and binding rules before
       anything is submitted.
    3. A confirmation timeout is reported, not raised.
    4. Operations on the same lot run strictly one after another.
"""

from __future__ import annotations

import asyncio

import pytest

from conftest import BUYER, CREATOR, V1, X, lot_spec, make_settings
from supplychain_escrow.domain.enums import Intent, StepStatus
from supplychain_escrow.domain.exceptions import (
    ConfigurationMismatchError,
    InvalidTransitionError,
    LotNotFoundError,
    ValidationError,
)
from supplychain_escrow.ledger.memory import InMemoryLedger
from supplychain_escrow.services.bootstrap import build_engine
from supplychain_escrow.services.sync_engine import SyncEngine

TWO_STEPS = [("Harvest", ()), ("Ship", ())]


async def _create(engine: SyncEngine, steps=None, price: int = 2) -> int:
    outcome = await engine.create_lot(lot_spec(steps=steps, price=price), CREATOR)
    return outcome.lot_id


async def _complete(engine: SyncEngine, lot_id: int, count: int) -> None:
    for index in range(count):
        await engine.validate_step(lot_id, index, X)


class TestRefreshAll:
    @pytest.mark.asyncio
    async def test_empty_ledgers(self, engine: SyncEngine) -> None:
        snapshot = await engine.refresh_all()

        assert snapshot.generation == 1
        assert snapshot.lots == ()
        assert snapshot.payments == ()
        assert snapshot.failures == ()
        assert engine.snapshot is snapshot

    @pytest.mark.asyncio
    async def test_lots_newest_first_and_windowed(self, ledger: InMemoryLedger) -> None:
        engine = build_engine(ledger, make_settings(lot_window=3))
        for _ in range(5):
            await _create(engine)

        snapshot = await engine.refresh_all()

        assert [lot.id for lot in snapshot.lots] == [4, 3, 2]

    @pytest.mark.asyncio
    async def test_failed_lot_is_skipped_and_recorded(
        self, engine: SyncEngine, ledger: InMemoryLedger
    ) -> None:
        for _ in range(10):
            await _create(engine)
        ledger.fail_reads("getLot", (7,))

        snapshot = await engine.refresh_all()

        assert [lot.id for lot in snapshot.lots] == [9, 8, 6, 5, 4, 3, 2, 1, 0]
        assert snapshot.is_partial
        assert snapshot.failed_keys("lot") == {7}

    @pytest.mark.asyncio
    async def test_unreadable_section_keeps_previous_data(
        self, engine: SyncEngine, ledger: InMemoryLedger
    ) -> None:
        lot_id = await _create(engine)
        await engine.deposit_payment(lot_id, BUYER)
        assert len(engine.snapshot.payments) == 1

        ledger.fail_reads("getPaymentsCount")
        snapshot = await engine.refresh_all()

        assert [p.lot_id for p in snapshot.payments] == [lot_id]
        assert "*" in snapshot.failed_keys("payments")
        assert [lot.id for lot in snapshot.lots] == [lot_id]

    @pytest.mark.asyncio
    async def test_never_raises_when_everything_fails(
        self, engine: SyncEngine, ledger: InMemoryLedger
    ) -> None:
        ledger.fail_reads("nextLotId")
        ledger.fail_reads("getPaymentsCount")
        ledger.fail_reads("getContractBalance")

        snapshot = await engine.refresh_all()

        assert snapshot.generation == 1
        assert {f.source for f in snapshot.failures} == {"lots", "payments", "stats"}

    @pytest.mark.asyncio
    async def test_stats_for_account(self, ledger: InMemoryLedger, settings) -> None:
        engine = build_engine(ledger, settings, account=BUYER.account)
        lot_id = await _create(engine, price=3)
        await engine.deposit_payment(lot_id, BUYER)

        assert engine.snapshot.stats.total_spent == 3
        assert engine.snapshot.stats.contract_balance == 3

        other = await engine.refresh_all(CREATOR.account)
        assert other.stats.account == CREATOR.account
        assert other.stats.total_spent == 0

    @pytest.mark.asyncio
    async def test_failed_stats_never_carry_another_accounts_totals(
        self, ledger: InMemoryLedger, settings
    ) -> None:
        engine = build_engine(ledger, settings, account=BUYER.account)
        lot_id = await _create(engine, price=3)
        await engine.deposit_payment(lot_id, BUYER)
        ledger.fail_reads("totalReceived")

        same = await engine.refresh_all(BUYER.account)
        assert same.stats.total_spent == 3

        other = await engine.refresh_all(CREATOR.account)
        assert other.stats.account == CREATOR.account
        assert other.stats.total_spent == 0
        assert other.stats.total_received == 0
        assert other.stats.contract_balance == 3
        assert ("stats", "*") in {(f.source, f.key) for f in other.failures}


class TestCreateAndValidate:
    @pytest.mark.asyncio
    async def test_create_lot(self, engine: SyncEngine) -> None:
        outcome = await engine.create_lot(lot_spec(), CREATOR)

        assert outcome.intent is Intent.CREATE_LOT
        assert outcome.lot_id == 0
        assert outcome.confirmed
        assert outcome.snapshot.lot(0) is not None

    @pytest.mark.asyncio
    async def test_invalid_lot_rejected_before_submission(
        self, engine: SyncEngine, ledger: InMemoryLedger
    ) -> None:
        with pytest.raises(ValidationError):
            await engine.create_lot(lot_spec(title=""), CREATOR)
        assert ledger.submissions == []

    @pytest.mark.asyncio
    async def test_validate_step_returns_optimistic_lot(self, engine: SyncEngine) -> None:
        lot_id = await _create(engine)

        outcome = await engine.validate_step(lot_id, 0, X)

        assert outcome.confirmed
        assert outcome.lot.steps[0].status is StepStatus.VALIDATED
        assert outcome.lot.steps[0].validated_by == X.account
        assert outcome.snapshot.lot(lot_id).steps[0].is_validated

    @pytest.mark.asyncio
    async def test_validate_step_reads_the_lot_once_before_submitting(
        self, engine: SyncEngine, ledger: InMemoryLedger
    ) -> None:
        lot_id = await _create(engine)
        ledger.reads.clear()

        await engine.validate_step(lot_id, 0, X)

        # One fresh read for the checks, one from the refresh that follows.
        assert ledger.reads.count(("getLot", (lot_id,))) == 2

    @pytest.mark.asyncio
    async def test_out_of_order_never_submitted(
        self, engine: SyncEngine, ledger: InMemoryLedger
    ) -> None:
        lot_id = await _create(engine)

        with pytest.raises(InvalidTransitionError):
            await engine.validate_step(lot_id, 2, X)
        assert ledger.writes_for("validateStep") == []
        assert not engine.is_busy(lot_id)

    @pytest.mark.asyncio
    async def test_second_validation_of_same_step_rejected(
        self, engine: SyncEngine, ledger: InMemoryLedger
    ) -> None:
        lot_id = await _create(engine)
        await engine.validate_step(lot_id, 0, X)

        with pytest.raises(InvalidTransitionError, match="already validated"):
            await engine.validate_step(lot_id, 0, X)
        assert len(ledger.writes_for("validateStep")) == 1

    @pytest.mark.asyncio
    async def test_restricted_step(self, engine: SyncEngine) -> None:
        lot_id = await _create(engine, steps=[("Harvest", ()), ("Certify", (V1.account,))])
        await engine.validate_step(lot_id, 0, X)

        with pytest.raises(InvalidTransitionError, match="not an authorized validator"):
            await engine.validate_step(lot_id, 1, X)

        outcome = await engine.validate_step(lot_id, 1, V1)
        assert all(s.is_validated for s in outcome.snapshot.lot(lot_id).steps)

    @pytest.mark.asyncio
    async def test_unknown_lot(self, engine: SyncEngine) -> None:
        with pytest.raises(LotNotFoundError):
            await engine.validate_step(99, 0, X)


class TestPayments:
    @pytest.mark.asyncio
    async def test_full_lifecycle(self, engine: SyncEngine) -> None:
        lot_id = await _create(engine, steps=TWO_STEPS, price=2)
        await engine.deposit_payment(lot_id, BUYER)
        await _complete(engine, lot_id, 2)

        outcome = await engine.release_payment(lot_id, BUYER)

        payment = outcome.snapshot.payment_for(lot_id)
        assert outcome.confirmed
        assert payment.released
        assert payment.seller == CREATOR.account
        stats = await engine.escrow.get_aggregate_stats(CREATOR.account)
        assert stats.total_received == 2
        assert stats.contract_balance == 0

    @pytest.mark.asyncio
    async def test_release_before_completion_never_submitted(
        self, engine: SyncEngine, ledger: InMemoryLedger
    ) -> None:
        lot_id = await _create(engine, steps=TWO_STEPS)
        await engine.deposit_payment(lot_id, BUYER)
        await engine.validate_step(lot_id, 0, X)

        with pytest.raises(InvalidTransitionError, match="not every validation step is complete"):
            await engine.release_payment(lot_id, BUYER)
        assert ledger.writes_for("releasePayment") == []

    @pytest.mark.asyncio
    async def test_release_without_payment(self, engine: SyncEngine, ledger: InMemoryLedger) -> None:
        lot_id = await _create(engine, steps=TWO_STEPS)
        await _complete(engine, lot_id, 2)

        with pytest.raises(InvalidTransitionError, match="payment is NO_PAYMENT"):
            await engine.release_payment(lot_id, BUYER)
        assert ledger.writes_for("releasePayment") == []

    @pytest.mark.asyncio
    async def test_second_deposit_rejected(self, engine: SyncEngine, ledger: InMemoryLedger) -> None:
        lot_id = await _create(engine)
        await engine.deposit_payment(lot_id, BUYER)

        with pytest.raises(InvalidTransitionError, match="already exists"):
            await engine.deposit_payment(lot_id, BUYER)
        assert len(ledger.writes_for("depositPayment")) == 1

    @pytest.mark.asyncio
    async def test_zero_price_lot_from_another_client_cannot_be_paid(
        self, engine: SyncEngine, ledger: InMemoryLedger
    ) -> None:
        handle = await ledger.write(
            engine.registry.address,
            "createLot",
            ("Samples", "Free samples", 1, "kg", "", 0, ["Ship"], [[]]),
            sender=CREATOR.account,
        )
        lot_id = (await ledger.wait(handle, 0)).return_value

        for _ in range(2):
            with pytest.raises(ValidationError, match="greater than zero"):
                await engine.deposit_payment(lot_id, BUYER)
        assert ledger.writes_for("depositPayment") == []
        assert not engine.is_busy(lot_id)

    @pytest.mark.asyncio
    async def test_wrong_amount_rejected(self, engine: SyncEngine, ledger: InMemoryLedger) -> None:
        lot_id = await _create(engine, price=2)

        with pytest.raises(InvalidTransitionError, match="does not equal lot price 2"):
            await engine.deposit_payment(lot_id, BUYER, amount=3)
        assert ledger.writes_for("depositPayment") == []

    @pytest.mark.asyncio
    async def test_refund_then_release_rejected(self, engine: SyncEngine, ledger: InMemoryLedger) -> None:
        lot_id = await _create(engine, steps=TWO_STEPS)
        await engine.deposit_payment(lot_id, BUYER)

        outcome = await engine.refund_payment(lot_id, CREATOR)
        assert outcome.snapshot.payment_for(lot_id).refunded

        await _complete(engine, lot_id, 2)
        with pytest.raises(InvalidTransitionError, match="payment is REFUNDED"):
            await engine.release_payment(lot_id, BUYER)
        assert ledger.writes_for("releasePayment") == []

    @pytest.mark.asyncio
    async def test_miswired_escrow_refuses_every_payment_write(
        self, miswired_ledger: InMemoryLedger, settings
    ) -> None:
        engine = build_engine(miswired_ledger, settings)
        lot_id = await _create(engine)

        with pytest.raises(ConfigurationMismatchError):
            await engine.deposit_payment(lot_id, BUYER)
        with pytest.raises(ConfigurationMismatchError):
            await engine.refund_payment(lot_id, CREATOR)

        assert miswired_ledger.writes_for("depositPayment") == []
        assert miswired_ledger.writes_for("refundPayment") == []


class TestConfirmation:
    @pytest.mark.asyncio
    async def test_timeout_is_reported_not_raised(self, ledger: InMemoryLedger) -> None:
        engine = build_engine(
            ledger,
            make_settings(confirm_timeout_seconds=0.05, confirm_poll_interval_seconds=0.01),
        )
        lot_id = await _create(engine)
        ledger.confirmation_delay = 1_000

        outcome = await engine.validate_step(lot_id, 0, X)

        assert not outcome.confirmed
        # The write landed even though confirmation was never observed.
        assert outcome.snapshot.lot(lot_id).steps[0].is_validated

    @pytest.mark.asyncio
    async def test_slow_confirmation_within_budget(
        self, engine: SyncEngine, ledger: InMemoryLedger
    ) -> None:
        ledger.confirmation_delay = 3
        outcome = await engine.create_lot(lot_spec(), CREATOR)
        assert outcome.confirmed
        assert outcome.lot_id == 0

    @pytest.mark.asyncio
    async def test_cancelled_caller_does_not_undo_the_write(
        self, engine: SyncEngine, ledger: InMemoryLedger
    ) -> None:
        lot_id = await _create(engine)
        generation = engine.snapshot.generation
        ledger.confirmation_delay = 1_000

        task = asyncio.create_task(engine.validate_step(lot_id, 0, X))
        while not ledger.writes_for("validateStep"):
            await asyncio.sleep(0.005)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        lot = await engine.registry.get_lot(lot_id)
        assert lot.steps[0].is_validated
        assert not engine.is_busy(lot_id)
        assert engine.snapshot.generation == generation


class TestSerialization:
    @pytest.mark.asyncio
    async def test_same_lot_operations_run_in_order(
        self, engine: SyncEngine, ledger: InMemoryLedger
    ) -> None:
        lot_id = await _create(engine)
        ledger.confirmation_delay = 2

        # Each prepare sees the previous validation, so both succeed.
        first, second = await asyncio.gather(
            engine.validate_step(lot_id, 0, X),
            engine.validate_step(lot_id, 1, X),
        )

        assert first.confirmed and second.confirmed
        writes = [w.args for w in ledger.writes_for("validateStep")]
        assert writes == [(lot_id, 0), (lot_id, 1)]

    @pytest.mark.asyncio
    async def test_different_lots_proceed_independently(
        self, engine: SyncEngine, ledger: InMemoryLedger
    ) -> None:
        first_lot = await _create(engine)
        second_lot = await _create(engine)

        results = await asyncio.gather(
            engine.validate_step(first_lot, 0, X),
            engine.validate_step(second_lot, 0, X),
        )

        assert all(r.confirmed for r in results)
        assert len(engine._lot_locks) == 0
