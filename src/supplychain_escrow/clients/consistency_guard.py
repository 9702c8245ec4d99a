"""Consistency Guard — checks the escrow is bound to the configured registry.

The escrow contract records, at its own deployment, the one registry whose
lot ids it resolves. Both contracts are deployed and upgraded independently,
so the pairing is verified at runtime instead of assumed: if the escrow
points at a different registry, every payment write would target a lot-id
space it cannot see.

A successful check is cached for a short TTL. A mismatch is never cached;
it raises ConfigurationMismatchError every time.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from typing import TYPE_CHECKING

from supplychain_escrow.clients.base import read_retrying
from supplychain_escrow.config import Settings, get_settings
from supplychain_escrow.domain.exceptions import ConfigurationMismatchError
from supplychain_escrow.domain.models import same_account
from supplychain_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from supplychain_escrow.ledger.protocol import LedgerNode

logger = get_logger(__name__)


class ConsistencyGuard:
    """Verifies the escrow ↔ registry binding before payment writes."""

    def __init__(
        self,
        node: LedgerNode,
        escrow_address: str,
        registry_address: str,
        settings: Settings | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._node = node
        self._escrow_address = escrow_address
        self._registry_address = registry_address
        self._settings = settings or get_settings()
        self._ttl = self._settings.binding_cache_ttl_seconds
        self._clock = clock
        self._verified_at: float | None = None
        self._lock = asyncio.Lock()

    @property
    def registry_address(self) -> str:
        return self._registry_address

    @property
    def is_cached(self) -> bool:
        return self._verified_at is not None and self._clock() - self._verified_at < self._ttl

    def invalidate(self) -> None:
        self._verified_at = None

    async def verify_binding(self) -> str:
        """Confirm the escrow's bound registry equals the configured one.

        Returns:
            The bound registry address as reported by the escrow.

        Raises:
            ConfigurationMismatchError: Fatal; the triggering write must abort.
            LedgerUnavailable: If the binding could not be read after retries.
        """
        if self.is_cached:
            return self._registry_address

        async with self._lock:
            # Another task may have verified while we waited for the lock.
            if self.is_cached:
                return self._registry_address

            bound = await read_retrying(self._settings)(
                self._node.read, self._escrow_address, "lotRegistry", ()
            )
            if not same_account(bound, self._registry_address):
                self._verified_at = None
                logger.error(
                    "guard.binding_mismatch",
                    escrow=self._escrow_address,
                    bound_registry=bound,
                    configured_registry=self._registry_address,
                )
                raise ConfigurationMismatchError(self._escrow_address, bound, self._registry_address)

            self._verified_at = self._clock()
            logger.debug("guard.binding_verified", escrow=self._escrow_address, registry=bound)
            return bound
