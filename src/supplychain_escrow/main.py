"""FastAPI application entry point for the supply-chain escrow coordinator.

Lifecycle:
    1. Startup: Initialize logging, build the sync engine, verify the
       escrow/registry binding, take the first snapshot.
    2. Running: Serve the REST API that the presentation layer talks to.
    3. Shutdown: Log and release the engine.

Only the in-memory ledger ships with this package. To run against a real
node, build a SyncEngine with services.bootstrap.build_engine() and pass it
to create_app().

Run with:
    uv run uvicorn supplychain_escrow.main:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI

from supplychain_escrow.config import get_settings
from supplychain_escrow.domain.exceptions import ConfigurationMismatchError
from supplychain_escrow.logging_config import get_logger, setup_logging

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from supplychain_escrow.services.sync_engine import SyncEngine


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown lifecycle."""
    settings = get_settings()

    # 1. Setup structured logging
    setup_logging(
        log_level=settings.app_log_level,
        json_logs=not settings.is_development,
    )
    logger = get_logger(__name__)
    logger.info("app.starting", env=settings.app_env, debug=settings.app_debug)

    # 2. Build the engine unless one was injected
    injected = getattr(app.state, "engine", None) is not None
    if not injected:
        if not settings.simulate_ledger:
            raise RuntimeError(
                "No ledger node configured. Pass a SyncEngine to create_app() "
                "or set SIMULATE_LEDGER=true."
            )
        from supplychain_escrow.services.bootstrap import build_simulated_engine

        app.state.engine, _ = build_simulated_engine(settings)

    engine: SyncEngine = app.state.engine

    # 3. Surface a miswired deployment to the operator; payment writes will refuse.
    try:
        await engine.escrow.guard.verify_binding()
    except ConfigurationMismatchError as exc:
        logger.error("app.binding_mismatch", error=exc.message)

    await engine.refresh_all()
    logger.info("app.started", host=settings.app_host, port=settings.app_port)

    yield

    logger.info("app.shutting_down")
    if not injected:
        app.state.engine = None
    logger.info("app.stopped")


def create_app(engine: SyncEngine | None = None) -> FastAPI:
    """Application factory — creates and configures the FastAPI app."""
    settings = get_settings()

    app = FastAPI(
        title="Supply-Chain Escrow",
        description=(
            "Lot validation workflows with escrowed payments, "
            "coordinated across a lot registry and an escrow ledger."
        ),
        version="0.1.0",
        lifespan=lifespan,
        debug=settings.app_debug,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )
    app.state.engine = engine

    # --- Middleware ---
    from supplychain_escrow.api.middleware import setup_middleware

    setup_middleware(app)

    # --- REST API Routes ---
    from supplychain_escrow.api.routes.health import router as health_router
    from supplychain_escrow.api.routes.lots import router as lots_router
    from supplychain_escrow.api.routes.payments import router as payments_router
    from supplychain_escrow.api.routes.snapshot import router as snapshot_router

    app.include_router(health_router)
    app.include_router(lots_router)
    app.include_router(payments_router)
    app.include_router(snapshot_router)

    return app


# The app instance used by Uvicorn
app = create_app()
