"""Escrow Client — typed read/write façade over the payment ledger.

Writes (each one gated by the ConsistencyGuard):
    depositPayment(lotId)  payable, value = lot price
    releasePayment(lotId)
    refundPayment(lotId)

Reads:
    getPayment(lotId) -> struct; amount 0 means no payment
    getPaymentsCount() / getPaymentByIndex(index)
    getContractBalance() / totalReceived(account) / totalSpent(account)
    lotRegistry() -> bound registry address
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from supplychain_escrow.clients.base import ContractClient, RecentWindow
from supplychain_escrow.domain.exceptions import PaymentNotFoundError, ValidationError
from supplychain_escrow.domain.models import AccountStats, Payment
from supplychain_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from supplychain_escrow.clients.consistency_guard import ConsistencyGuard
    from supplychain_escrow.config import Settings
    from supplychain_escrow.ledger.protocol import LedgerNode, Signer

logger = get_logger(__name__)


def _decode_payment(raw: dict) -> Payment:
    released = bool(raw["released"])
    return Payment(
        lot_id=int(raw["lotId"]),
        buyer=raw["buyer"],
        seller=raw["seller"],
        amount=int(raw["amount"]),
        created_at=int(raw["createdAt"]),
        released_at=int(raw["releasedAt"]) if released else None,
        released=released,
        refunded=bool(raw.get("refunded", False)),
    )


class EscrowClient(ContractClient):
    """Client for one deployed escrow payment contract."""

    def __init__(
        self,
        node: LedgerNode,
        address: str,
        guard: ConsistencyGuard,
        settings: Settings | None = None,
    ) -> None:
        super().__init__(node, address, settings)
        self._guard = guard

    @property
    def guard(self) -> ConsistencyGuard:
        return self._guard

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def deposit_payment(self, lot_id: int, amount: int, signer: Signer) -> None:
        """Escrow `amount` for a lot; the signer becomes the buyer.

        The ledger rejects a second payment for the same lot and any amount
        other than the lot price.
        """
        if amount <= 0:
            raise ValidationError("Amount must be greater than zero", field="amount")
        await self._guard.verify_binding()
        await self._transact("depositPayment", (lot_id,), signer, value=amount)
        logger.info("escrow.deposited", lot_id=lot_id, amount=amount, buyer=signer.account)

    async def release_payment(self, lot_id: int, signer: Signer) -> None:
        """Pay the seller. Only valid once every step of the lot is validated."""
        await self._guard.verify_binding()
        await self._transact("releasePayment", (lot_id,), signer)
        logger.info("escrow.released", lot_id=lot_id, by=signer.account)

    async def refund_payment(self, lot_id: int, signer: Signer) -> None:
        """Return the escrowed amount to the buyer."""
        await self._guard.verify_binding()
        await self._transact("refundPayment", (lot_id,), signer)
        logger.info("escrow.refunded", lot_id=lot_id, by=signer.account)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_payment(self, lot_id: int) -> Payment:
        """Raises PaymentNotFoundError when the escrow reports a zero amount."""
        raw = await self._read("getPayment", lot_id)
        if int(raw["amount"]) == 0:
            raise PaymentNotFoundError(lot_id)
        return _decode_payment(raw)

    async def find_payment(self, lot_id: int) -> Payment | None:
        try:
            return await self.get_payment(lot_id)
        except PaymentNotFoundError:
            return None

    async def payments_count(self) -> int:
        return int(await self._read("getPaymentsCount"))

    async def get_payment_by_index(self, index: int) -> Payment:
        return _decode_payment(await self._read("getPaymentByIndex", index))

    async def contract_balance(self) -> int:
        return int(await self._read("getContractBalance"))

    async def bound_registry_address(self) -> str:
        return str(await self._read("lotRegistry"))

    async def get_aggregate_stats(self, account: str | None) -> AccountStats:
        """Totals received/spent by `account` plus the custodial balance."""
        balance = await self.contract_balance()
        if account is None:
            return AccountStats(account=None, contract_balance=balance)
        return AccountStats(
            account=account,
            total_received=int(await self._read("totalReceived", account)),
            total_spent=int(await self._read("totalSpent", account)),
            contract_balance=balance,
        )

    def list_recent_payments(self, max_count: int) -> RecentWindow[Payment]:
        """Newest `max_count` payments, most recent deposit first."""
        return RecentWindow("payment", self.payments_count, self.get_payment_by_index, max_count)
