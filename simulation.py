#!/usr/bin/env python3
"""Supply-Chain Escrow — End-to-End Simulation.

Runs four scenarios against an in-memory ledger with a CreatorBot, a
BuyerBot and two validator accounts:

    Scenario 1: Happy Path
        - Creator registers a lot with an open step and a restricted step
        - Buyer escrows the price, both steps are validated
        - Buyer releases -> seller receives the funds

    Scenario 2: Gating and Authorization
        - Validating step 1 before step 0 is refused locally
        - An unlisted account is refused on the restricted step
        - Releasing before completion is refused; the seller refunds instead

    Scenario 3: Miswired Deployment
        - The escrow is bound to a different registry than configured
        - Every payment write is refused before anything is submitted

    Scenario 4: Flaky Ledger
        - Fee estimation fails once -> retried with an explicit fee override
        - Confirmation is slower than the wait budget -> reported, not raised
        - One lot cannot be read -> the refresh is partial, not aborted

Usage:
    uv run python simulation.py
    uv run python simulation.py --scenario 2
"""

from __future__ import annotations

import argparse
import asyncio
from dataclasses import dataclass

# ---------------------------------------------------------------------------
# Configure structured logging BEFORE importing app modules
# ---------------------------------------------------------------------------
from supplychain_escrow.logging_config import get_logger, setup_logging

setup_logging(log_level="INFO", json_logs=False)
logger = get_logger("simulation")

from supplychain_escrow.config import Settings  # noqa: E402
from supplychain_escrow.domain.exceptions import (  # noqa: E402
    ConfigurationMismatchError,
    InvalidTransitionError,
)
from supplychain_escrow.domain.models import LotSpec, StepSpec  # noqa: E402
from supplychain_escrow.ledger.memory import InMemoryLedger  # noqa: E402
from supplychain_escrow.ledger.protocol import StaticSigner  # noqa: E402
from supplychain_escrow.services.bootstrap import build_engine  # noqa: E402
from supplychain_escrow.services.snapshot import Snapshot  # noqa: E402
from supplychain_escrow.services.sync_engine import SyncEngine  # noqa: E402

REGISTRY = "0x286A15f6fd612b8105F867aCB69Fb74Bf34e73A1"
ESCROW = "0x6Cf8fE211D0A02821e36e43eDD5f016A1Ab3f57e"

INSPECTOR = StaticSigner("0x" + "1a" * 20)  # listed on the restricted step
STRANGER = StaticSigner("0x" + "5e" * 20)  # may only validate open steps


def _settings(**overrides: object) -> Settings:
    values: dict[str, object] = {
        "registry_address": REGISTRY,
        "escrow_address": ESCROW,
        "confirm_timeout_seconds": 2.0,
        "confirm_poll_interval_seconds": 0.05,
        "confirm_grace_seconds": 0.1,
    }
    values.update(overrides)
    return Settings(**values)


def _ledger(bind_to_configured_registry: bool = True) -> InMemoryLedger:
    ledger = InMemoryLedger()
    ledger.deploy_registry(REGISTRY)
    if bind_to_configured_registry:
        ledger.deploy_escrow(REGISTRY, ESCROW)
    else:
        ledger.deploy_escrow(ledger.deploy_registry(), ESCROW)
    return ledger


# ---------------------------------------------------------------------------
# Bot Agents
# ---------------------------------------------------------------------------
@dataclass
class CreatorBot:
    """Registers lots and receives the escrowed funds on release."""

    signer: StaticSigner = StaticSigner("0x" + "c0" * 20)

    async def register(self, engine: SyncEngine, title: str, price: int) -> int:
        spec = LotSpec(
            title=title,
            description="Washed arabica, 1600 masl",
            quantity=250,
            unit="kg",
            origin="Huila, Colombia",
            price=price,
            steps=(
                StepSpec("Harvest and drying"),
                StepSpec("Export certification", (INSPECTOR.account,)),
            ),
        )
        outcome = await engine.create_lot(spec, self.signer)
        logger.info("🟤 CREATOR: Lot registered", lot_id=outcome.lot_id, price=price)
        return outcome.lot_id

    async def refund(self, engine: SyncEngine, lot_id: int) -> None:
        await engine.refund_payment(lot_id, self.signer)
        logger.info("🟤 CREATOR: Payment refunded", lot_id=lot_id)


@dataclass
class BuyerBot:
    """Escrows lot prices and releases them once a lot is complete."""

    signer: StaticSigner = StaticSigner("0x" + "b0" * 20)

    async def deposit(self, engine: SyncEngine, lot_id: int) -> None:
        outcome = await engine.deposit_payment(lot_id, self.signer)
        logger.info("🔵 BUYER: Price escrowed", lot_id=lot_id, confirmed=outcome.confirmed)

    async def release(self, engine: SyncEngine, lot_id: int) -> None:
        await engine.release_payment(lot_id, self.signer)
        logger.info("🔵 BUYER: Funds released", lot_id=lot_id)


async def validate(engine: SyncEngine, lot_id: int, index: int, signer: StaticSigner) -> None:
    outcome = await engine.validate_step(lot_id, index, signer)
    logger.info(
        "🟢 VALIDATOR: Step validated",
        lot_id=lot_id,
        step=index,
        by=signer.account[:10] + "...",
        confirmed=outcome.confirmed,
    )


# ---------------------------------------------------------------------------
# Print helpers
# ---------------------------------------------------------------------------
def banner(text: str) -> None:
    """Print a prominent banner."""
    width = 70
    print("\n" + "=" * width)
    print(f"  {text}")
    print("=" * width + "\n")


def section(text: str) -> None:
    """Print a section header."""
    print(f"\n--- {text} ---\n")


def refused(exc: Exception) -> None:
    print(f"  ⛔ Refused: {exc}")


def print_snapshot(snapshot: Snapshot) -> None:
    print(f"\n  📦 Snapshot generation {snapshot.generation}")
    for lot in snapshot.lots:
        done = sum(1 for s in lot.steps if s.is_validated)
        payment = snapshot.payment_for(lot.id)
        if payment is None:
            custody = "no payment"
        elif payment.released:
            custody = "released"
        elif payment.refunded:
            custody = "refunded"
        else:
            custody = f"escrowed {payment.amount}"
        print(f"    #{lot.id} {lot.title}: {done}/{len(lot.steps)} steps, {custody}")
    stats = snapshot.stats
    print(f"  💰 Contract balance: {stats.contract_balance}")
    for failure in snapshot.failures:
        print(f"  ⚠️  Could not fetch {failure.source} {failure.key}: {failure.error}")
    print()


# ===========================================================================
# Scenario 1: Happy Path
# ===========================================================================
async def scenario_1_happy_path() -> None:
    banner("SCENARIO 1: Happy Path")
    creator, buyer = CreatorBot(), BuyerBot()
    engine = build_engine(_ledger(), _settings(), account=creator.signer.account)

    section("Register and escrow")
    lot_id = await creator.register(engine, "Arabica beans, batch 12", price=1_000)
    await buyer.deposit(engine, lot_id)

    section("Validate the workflow")
    await validate(engine, lot_id, 0, STRANGER)
    await validate(engine, lot_id, 1, INSPECTOR)

    section("Release")
    await buyer.release(engine, lot_id)
    print_snapshot(await engine.refresh_all())
    print(f"  ✅ Seller received {engine.snapshot.stats.total_received}")


# ===========================================================================
# Scenario 2: Gating and Authorization
# ===========================================================================
async def scenario_2_gating() -> None:
    banner("SCENARIO 2: Gating and Authorization")
    creator, buyer = CreatorBot(), BuyerBot()
    engine = build_engine(_ledger(), _settings())

    lot_id = await creator.register(engine, "Cacao, lot 7", price=400)
    await buyer.deposit(engine, lot_id)

    section("Out of order")
    try:
        await validate(engine, lot_id, 1, INSPECTOR)
    except InvalidTransitionError as exc:
        refused(exc)

    section("Unlisted validator")
    await validate(engine, lot_id, 0, STRANGER)
    try:
        await validate(engine, lot_id, 1, STRANGER)
    except InvalidTransitionError as exc:
        refused(exc)

    section("Early release, then refund")
    try:
        await buyer.release(engine, lot_id)
    except InvalidTransitionError as exc:
        refused(exc)
    await creator.refund(engine, lot_id)
    print_snapshot(engine.snapshot)


# ===========================================================================
# Scenario 3: Miswired Deployment
# ===========================================================================
async def scenario_3_miswired() -> None:
    banner("SCENARIO 3: Miswired Deployment")
    creator, buyer = CreatorBot(), BuyerBot()
    ledger = _ledger(bind_to_configured_registry=False)
    engine = build_engine(ledger, _settings())

    lot_id = await creator.register(engine, "Vanilla pods, lot 3", price=250)
    try:
        await buyer.deposit(engine, lot_id)
    except ConfigurationMismatchError as exc:
        refused(exc)

    submitted = len(ledger.writes_for("depositPayment"))
    print(f"\n  🛡️  Deposits sent to the ledger: {submitted}")


# ===========================================================================
# Scenario 4: Flaky Ledger
# ===========================================================================
async def scenario_4_flaky_ledger() -> None:
    banner("SCENARIO 4: Flaky Ledger")
    creator, buyer = CreatorBot(), BuyerBot()
    ledger = _ledger()
    engine = build_engine(ledger, _settings(confirm_timeout_seconds=0.2))

    first = await creator.register(engine, "Tea leaves, lot 1", price=90)
    second = await creator.register(engine, "Tea leaves, lot 2", price=90)

    section("Fee estimation fails once")
    ledger.fail_fee_estimation("depositPayment", times=1)
    await buyer.deposit(engine, first)
    attempts = ledger.writes_for("depositPayment")
    print(f"  🔁 Submission attempts: {len(attempts)} (override on retry: {attempts[-1].fee_override})")

    section("Slow confirmation")
    ledger.confirmation_delay = 100
    await validate(engine, first, 0, STRANGER)
    ledger.confirmation_delay = 0

    section("Unreadable lot")
    ledger.fail_reads("getLot", (second,))
    print_snapshot(await engine.refresh_all())
    ledger.clear_read_failures()


# ===========================================================================
# Main
# ===========================================================================
SCENARIOS = {
    1: scenario_1_happy_path,
    2: scenario_2_gating,
    3: scenario_3_miswired,
    4: scenario_4_flaky_ledger,
}


async def run_all() -> None:
    """Run all scenarios sequentially."""
    print("\n" + "🚀" * 35)
    print("  SUPPLY-CHAIN ESCROW — SIMULATION")
    print("  Ledger: in-memory")
    print("🚀" * 35 + "\n")

    for scenario in SCENARIOS.values():
        await scenario()

    print("\n" + "=" * 70)
    print("  ✅ ALL SCENARIOS COMPLETED SUCCESSFULLY")
    print("=" * 70 + "\n")


async def run_scenario(num: int) -> None:
    """Run a specific scenario."""
    if num not in SCENARIOS:
        print(f"Unknown scenario {num}. Available: {', '.join(map(str, SCENARIOS))}")
        return
    await SCENARIOS[num]()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Supply-Chain Escrow Simulation")
    parser.add_argument(
        "--scenario",
        type=int,
        default=0,
        help="Run a specific scenario (1-4). Default: run all.",
    )
    args = parser.parse_args()

    if args.scenario == 0:
        asyncio.run(run_all())
    else:
        asyncio.run(run_scenario(args.scenario))
