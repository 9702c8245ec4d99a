"""structlog setup for the escrow coordinator.

Two renderings of the same event stream:
    - development: colored console lines, with ledger addresses and
      transaction hashes shortened to `0x1234…abcd` so a lot's history
      fits on one screen;
    - production: one JSON object per line, values untouched, exceptions
      rendered into the `exception` key.

Log events are dotted `<component>.<what_happened>` names
(`registry.lot_created`, `guard.binding_mismatch`, `sync.refresh_completed`).
Inside an API request every entry also carries the request_id bound by the
middleware.

Usage:
    from supplychain_escrow.logging_config import setup_logging, get_logger
    setup_logging(log_level="INFO", json_logs=False)
    logger = get_logger(__name__)
    logger.info("escrow.deposited", lot_id=3, amount=1_000, buyer="0xb0b0...")
"""

from __future__ import annotations

import logging
import re
import sys

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

_HEX_VALUE = re.compile(r"^0x[0-9a-fA-F]{16,}$")

# Chatty at INFO, and never about the ledger.
_QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "statemachine", "asyncio")


def shorten_hex_values(_: WrappedLogger, __: str, event_dict: EventDict) -> EventDict:
    """Abbreviate long 0x-prefixed values (accounts, contracts, tx hashes)."""
    for key, value in event_dict.items():
        if key != "event" and isinstance(value, str) and _HEX_VALUE.match(value):
            event_dict[key] = f"{value[:6]}…{value[-4:]}"
    return event_dict


def setup_logging(log_level: str = "DEBUG", json_logs: bool = False) -> None:
    """Route structlog and stdlib logging through one stdout handler.

    Args:
        log_level: Root level name; unknown names fall back to DEBUG.
        json_logs: JSON lines when True, the shortened console view otherwise.
    """
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    render_processors: list[Processor]
    if json_logs:
        render_processors = [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        render_processors = [
            shorten_hex_values,
            structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()),
        ]

    structlog.configure(
        processors=[*shared_processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, *render_processors],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.DEBUG))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """A structlog logger; pass `__name__` to tag entries with the module."""
    return structlog.get_logger(name)
