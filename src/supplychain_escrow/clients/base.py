"""Shared plumbing for the typed ledger clients.

ContractClient wraps one deployed contract on a LedgerNode:
    - reads retry transient transport failures with tenacity backoff;
    - writes are submitted once with automatic fee estimation and, on any
      submission-time failure, exactly once more with an explicit
      conservative FeeOverride before surfacing SubmissionError;
    - confirmation is polled with a bounded total wait.

RecentWindow is the backward pagination both ledgers share: newest key
first, a bounded number of keys, gaps skipped, per-item failures recorded.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from supplychain_escrow.config import Settings, get_settings
from supplychain_escrow.domain.exceptions import (
    ConfirmationTimeout,
    NotFoundError,
    PartialFetchFailure,
    SubmissionError,
)
from supplychain_escrow.ledger.protocol import (
    FeeOverride,
    LedgerError,
    LedgerUnavailable,
    TxHandle,
    TxReceipt,
    TxStatus,
)
from supplychain_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from tenacity import RetryCallState

    from supplychain_escrow.ledger.protocol import LedgerNode, Signer

logger = get_logger(__name__)

T = TypeVar("T")


def read_retrying(settings: Settings) -> AsyncRetrying:
    """Retry policy for read-only ledger calls: LedgerUnavailable only, with backoff."""
    return AsyncRetrying(
        stop=stop_after_attempt(settings.read_max_attempts),
        wait=wait_exponential(
            multiplier=settings.read_retry_min_seconds,
            min=settings.read_retry_min_seconds,
            max=settings.read_retry_max_seconds,
        ),
        retry=retry_if_exception_type(LedgerUnavailable),
        reraise=True,
    )


class ContractClient:
    """Base class for a client bound to one contract address."""

    def __init__(
        self,
        node: LedgerNode,
        address: str,
        settings: Settings | None = None,
    ) -> None:
        self._node = node
        self._address = address
        self._settings = settings or get_settings()

    @property
    def address(self) -> str:
        return self._address

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def _read(self, method: str, *args: Any) -> Any:
        """Call a read-only method, retrying LedgerUnavailable with backoff."""
        return await read_retrying(self._settings)(self._node.read, self._address, method, args)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _fee_override(self) -> FeeOverride:
        return FeeOverride(
            gas_limit=self._settings.fee_override_gas_limit,
            gas_price=self._settings.fee_override_gas_price,
        )

    async def _submit(
        self,
        method: str,
        args: tuple,
        signer: Signer,
        value: int = 0,
    ) -> TxHandle:
        """Submit one write; retry once with an explicit fee override.

        Raises:
            SubmissionError: If both attempts were rejected.
        """

        def _log_retry(retry_state: RetryCallState) -> None:
            logger.warning(
                "ledger.submission_retry_with_override",
                method=method,
                contract=self._address,
                error=str(retry_state.outcome.exception()) if retry_state.outcome else None,
            )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(2),
            retry=retry_if_exception_type(LedgerError),
            before_sleep=_log_retry,
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    first = attempt.retry_state.attempt_number == 1
                    handle = await self._node.write(
                        self._address,
                        method,
                        args,
                        sender=signer.account,
                        value=value,
                        fee_override=None if first else self._fee_override(),
                    )
        except LedgerError as exc:
            logger.error("ledger.submission_failed", method=method, error=str(exc))
            raise SubmissionError(method, str(exc)) from exc

        logger.info(
            "ledger.submitted",
            method=method,
            contract=self._address,
            tx_hash=handle.tx_hash,
            sender=signer.account,
        )
        return handle

    async def _confirm(self, handle: TxHandle) -> TxReceipt:
        """Poll for confirmation until the configured deadline.

        Raises:
            ConfirmationTimeout: If the deadline passed with no receipt.
            SubmissionError: If the write was mined but reverted.
        """
        settings = self._settings
        loop = asyncio.get_running_loop()
        started = loop.time()
        deadline = started + settings.confirm_timeout_seconds

        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise ConfirmationTimeout(handle.method, handle.tx_hash, loop.time() - started)
            interval = min(settings.confirm_poll_interval_seconds, remaining)
            try:
                receipt = await self._node.wait(handle, interval)
            except LedgerUnavailable as exc:
                logger.debug("ledger.poll_failed", tx_hash=handle.tx_hash, error=str(exc))
                await asyncio.sleep(interval)
                continue

            if receipt.status is TxStatus.CONFIRMED:
                logger.info("ledger.confirmed", method=handle.method, tx_hash=handle.tx_hash)
                return receipt
            if receipt.status is TxStatus.REVERTED:
                raise SubmissionError(
                    handle.method,
                    receipt.revert_reason or "reverted",
                    tx_hash=handle.tx_hash,
                )

    async def _transact(
        self,
        method: str,
        args: tuple,
        signer: Signer,
        value: int = 0,
    ) -> TxReceipt:
        """Submit then confirm.

        The submission is shielded: a caller that stops waiting does not
        cancel a write that is already on its way to the ledger.
        """
        handle = await asyncio.shield(self._submit(method, args, signer, value))
        return await self._confirm(handle)


class RecentWindow(Generic[T]):
    """Finite, restartable async view over the newest `max_count` keys.

    Each `async for` re-reads the key count and scans
    `[max(0, count - max_count), count)` newest first. NotFoundError is a
    gap and is skipped; any other per-item failure is logged, recorded in
    `failures` and skipped.
    """

    def __init__(
        self,
        source: str,
        count: Callable[[], Awaitable[int]],
        fetch: Callable[[int], Awaitable[T]],
        max_count: int,
    ) -> None:
        self.source = source
        self._count = count
        self._fetch = fetch
        self.max_count = max_count
        self.failures: list[PartialFetchFailure] = []
        self.scanned: range = range(0)

    async def __aiter__(self) -> AsyncIterator[T]:
        self.failures = []
        total = await self._count()
        start = max(0, total - self.max_count)
        self.scanned = range(total - 1, start - 1, -1)

        for key in self.scanned:
            try:
                item = await self._fetch(key)
            except NotFoundError:
                logger.debug("window.gap_skipped", source=self.source, key=key)
                continue
            except Exception as exc:
                failure = PartialFetchFailure(self.source, key, str(exc))
                logger.warning("window.item_failed", source=self.source, key=key, error=str(exc))
                self.failures.append(failure)
                continue
            yield item

    async def collect(self) -> list[T]:
        return [item async for item in self]
