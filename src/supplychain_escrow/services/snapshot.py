"""Immutable aggregate view of both ledgers.

A Snapshot is built in one piece by SyncEngine.refresh_all and swapped in
with a single assignment. Nothing patches it afterwards, so a reader always
sees one consistent generation, together with the per-item failures that
generation could not fetch.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from supplychain_escrow.domain.exceptions import PartialFetchFailure
from supplychain_escrow.domain.models import AccountStats, Lot, Payment, same_account


@dataclass(frozen=True)
class Snapshot:
    """Lots (id-descending), payments (most recent first) and totals.

    Attributes:
        lots: Newest lots from the registry window.
        payments: Newest payments from the escrow window.
        stats: Totals for `stats.account` and the custodial balance.
        failures: Items or sections this generation could not fetch.
        generation: Increments with every rebuild; 0 means never refreshed.
        refreshed_at: When this generation was built.
    """

    lots: tuple[Lot, ...] = ()
    payments: tuple[Payment, ...] = ()
    stats: AccountStats = field(default_factory=lambda: AccountStats(account=None))
    failures: tuple[PartialFetchFailure, ...] = ()
    generation: int = 0
    refreshed_at: datetime | None = None

    @property
    def is_partial(self) -> bool:
        return bool(self.failures)

    def lot(self, lot_id: int) -> Lot | None:
        return next((lot for lot in self.lots if lot.id == lot_id), None)

    def payment_for(self, lot_id: int) -> Payment | None:
        return next((p for p in self.payments if p.lot_id == lot_id), None)

    def failed_keys(self, source: str) -> set[int | str]:
        return {f.key for f in self.failures if f.source == source}

    def payments_as_buyer(self, account: str) -> tuple[Payment, ...]:
        return tuple(p for p in self.payments if same_account(p.buyer, account))

    def payments_as_seller(self, account: str) -> tuple[Payment, ...]:
        return tuple(p for p in self.payments if same_account(p.seller, account))

    def pending_payments(self) -> tuple[Payment, ...]:
        """Payments still held in escrow."""
        return tuple(p for p in self.payments if not p.is_settled)
