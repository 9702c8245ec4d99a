"""Shared test fixtures for the supply-chain escrow test suite.

Provides:
    - Test settings with tiny confirmation/retry timings
    - An InMemoryLedger with the registry and escrow deployed
    - Clients and a SyncEngine wired to that ledger
    - Factory helpers for lots
Async tests use pytest-asyncio with explicit @pytest.mark.asyncio markers.
"""

from __future__ import annotations

import pytest

from supplychain_escrow.config import Settings
from supplychain_escrow.domain.enums import StepStatus
from supplychain_escrow.domain.models import Lot, LotSpec, Step, StepSpec
from supplychain_escrow.ledger.memory import InMemoryLedger
from supplychain_escrow.ledger.protocol import StaticSigner
from supplychain_escrow.services.bootstrap import build_engine
from supplychain_escrow.services.sync_engine import SyncEngine

REGISTRY = "0x286A15f6fd612b8105F867aCB69Fb74Bf34e73A1"
ESCROW = "0x6Cf8fE211D0A02821e36e43eDD5f016A1Ab3f57e"
OTHER_REGISTRY = "0x3D464790b395Ef1D4229eb7fbBE13EE581F242Ce"
ROGUE_ESCROW = "0x4529ab5ACAB18cFAe13ebD4b13B2bb03Bb234659"

CREATOR = StaticSigner("0x" + "c0" * 20)
BUYER = StaticSigner("0x" + "b0" * 20)
V1 = StaticSigner("0x" + "a1" * 20)
X = StaticSigner("0x" + "e5" * 20)

NOW = 1_700_000_000


def make_settings(**overrides: object) -> Settings:
    values: dict[str, object] = {
        "registry_address": REGISTRY,
        "escrow_address": ESCROW,
        "lot_window": 10,
        "payment_window": 50,
        "confirm_timeout_seconds": 1.0,
        "confirm_poll_interval_seconds": 0.01,
        "confirm_grace_seconds": 0.0,
        "binding_cache_ttl_seconds": 30.0,
        "read_max_attempts": 1,
        "read_retry_min_seconds": 0.0,
        "read_retry_max_seconds": 0.0,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def make_lot(
    steps: list[tuple[str, tuple[str, ...]]] | None = None,
    validated: int = 0,
    price: int = 2,
) -> Lot:
    """Build an in-memory lot whose first `validated` steps are done."""
    steps = steps if steps is not None else [("Harvest", ()), ("Inspect", ()), ("Ship", ())]
    built = []
    for index, (description, validators) in enumerate(steps):
        if index < validated:
            built.append(
                Step(description, validators, StepStatus.VALIDATED, validated_by=X.account, validated_at=NOW)
            )
        else:
            built.append(Step(description, validators))
    return Lot(
        id=0,
        title="Coffee",
        description="Green coffee beans",
        quantity=100,
        unit="kg",
        origin="Huila",
        price=price,
        creator=CREATOR.account,
        created_at=NOW,
        steps=tuple(built),
    )


def lot_spec(
    steps: list[tuple[str, tuple[str, ...]]] | None = None,
    price: int = 2,
    title: str = "Coffee",
) -> LotSpec:
    steps = steps if steps is not None else [("Harvest", ()), ("Inspect", ()), ("Ship", ())]
    return LotSpec(
        title=title,
        description="Green coffee beans",
        quantity=100,
        unit="kg",
        origin="Huila",
        price=price,
        steps=tuple(StepSpec(d, v) for d, v in steps),
    )


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def ledger() -> InMemoryLedger:
    """A ledger with the configured registry and a correctly bound escrow."""
    node = InMemoryLedger(clock=lambda: NOW)
    node.deploy_registry(REGISTRY)
    node.deploy_escrow(REGISTRY, ESCROW)
    return node


@pytest.fixture
def miswired_ledger() -> InMemoryLedger:
    """The configured escrow address is bound to a different registry."""
    node = InMemoryLedger(clock=lambda: NOW)
    node.deploy_registry(REGISTRY)
    node.deploy_registry(OTHER_REGISTRY)
    node.deploy_escrow(OTHER_REGISTRY, ESCROW)
    return node


@pytest.fixture
def engine(ledger: InMemoryLedger, settings: Settings) -> SyncEngine:
    return build_engine(ledger, settings)
