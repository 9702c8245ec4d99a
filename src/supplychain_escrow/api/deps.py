"""FastAPI dependency injection providers.

These are used with Depends() in route handlers to inject the sync engine,
the acting account and its signer.
"""

from __future__ import annotations

from fastapi import Depends, Header, Request

from supplychain_escrow.domain.exceptions import ValidationError
from supplychain_escrow.ledger.protocol import StaticSigner
from supplychain_escrow.services.sync_engine import SyncEngine


def get_engine(request: Request) -> SyncEngine:
    """Provide the SyncEngine created during application startup."""
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise RuntimeError("Sync engine not initialized. Is the lifespan running?")
    return engine


def get_optional_account(x_account: str | None = Header(default=None)) -> str | None:
    """The acting account from the X-Account header, if any."""
    if x_account is None or not x_account.strip():
        return None
    return x_account.strip()


def get_signer(account: str | None = Depends(get_optional_account)) -> StaticSigner:
    """Provide a signer for write routes. The X-Account header is required."""
    if account is None:
        raise ValidationError("X-Account header is required for writes", field="X-Account")
    return StaticSigner(account)
