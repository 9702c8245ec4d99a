"""Lot Registry Client — typed read/write façade over the lot/step ledger.

Writes:
    createLot(title, description, quantity, unit, origin, price,
              stepDescriptions, stepValidators) -> lotId
    validateStep(lotId, stepIndex)

Reads:
    nextLotId() -> int
    getLot(lotId) -> struct with an `exists` flag
    getLotStepsCount(lotId) -> int
    getStep(lotId, stepIndex) -> (description, validators, validatedBy, validatedAt, status)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from supplychain_escrow.clients.base import ContractClient, RecentWindow
from supplychain_escrow.domain.enums import StepStatus
from supplychain_escrow.domain.exceptions import InvalidTransitionError, LotNotFoundError
from supplychain_escrow.domain.models import Lot, LotSpec, Step
from supplychain_escrow.domain.step_validation import explain_rejection
from supplychain_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from supplychain_escrow.ledger.protocol import Signer

logger = get_logger(__name__)


def _decode_step(raw: tuple | list) -> Step:
    description, validators, validated_by, validated_at, status = raw
    status = StepStatus(int(status))
    validated = status is StepStatus.VALIDATED
    return Step(
        description=description,
        authorized_validators=tuple(validators),
        status=status,
        validated_by=validated_by if validated else None,
        validated_at=int(validated_at) if validated else None,
    )


class LotRegistryClient(ContractClient):
    """Client for one deployed lot registry."""

    async def create_lot(self, spec: LotSpec, signer: Signer) -> int:
        """Register a lot and all of its steps in one atomic write.

        Returns:
            The registry-assigned lot id, once the write is confirmed.

        Raises:
            ValidationError: Before submission, for malformed input.
            SubmissionError: If the ledger rejected the write.
            ConfirmationTimeout: If confirmation was not observed in time.
        """
        spec.validate()
        receipt = await self._transact(
            "createLot",
            (
                spec.title.strip(),
                spec.description.strip(),
                spec.quantity,
                spec.unit,
                spec.origin,
                spec.price,
                [s.description.strip() for s in spec.steps],
                [list(s.validators) for s in spec.steps],
            ),
            signer,
        )
        lot_id = int(receipt.return_value)
        logger.info("registry.lot_created", lot_id=lot_id, steps=len(spec.steps), creator=signer.account)
        return lot_id

    async def validate_step(
        self,
        lot_id: int,
        step_index: int,
        signer: Signer,
        lot: Lot | None = None,
    ) -> None:
        """Validate one step as the signer's account.

        The gating and authorization rules are re-checked locally first so an
        obviously doomed write is never sent; the registry still decides.

        Args:
            lot: A fresh read of the lot, if the caller already has one.
        """
        current = lot if lot is not None else await self.get_lot(lot_id)
        reason = explain_rejection(current, step_index, signer.account)
        if reason is not None:
            raise InvalidTransitionError(f"validate step {step_index}", reason, lot_id=lot_id)

        await self._transact("validateStep", (lot_id, step_index), signer)
        logger.info(
            "registry.step_validated",
            lot_id=lot_id,
            step_index=step_index,
            validator=signer.account,
        )

    async def next_lot_id(self) -> int:
        return int(await self._read("nextLotId"))

    async def get_lot(self, lot_id: int) -> Lot:
        """Read a lot with all of its steps.

        Raises:
            LotNotFoundError: If the registry has no lot with this id.
        """
        raw = await self._read("getLot", lot_id)
        if not raw["exists"]:
            raise LotNotFoundError(lot_id)

        count = int(await self._read("getLotStepsCount", lot_id))
        steps = tuple([_decode_step(await self._read("getStep", lot_id, i)) for i in range(count)])
        return Lot(
            id=int(raw["id"]),
            title=raw["title"],
            description=raw["description"],
            quantity=int(raw["quantity"]),
            unit=raw["unit"],
            origin=raw["origin"],
            price=int(raw["price"]),
            creator=raw["creator"],
            created_at=int(raw["createdAt"]),
            steps=steps,
        )

    def list_recent_lots(self, max_count: int) -> RecentWindow[Lot]:
        """Newest `max_count` lots, id-descending, re-read on every iteration."""
        return RecentWindow("lot", self.next_lot_id, self.get_lot, max_count)
