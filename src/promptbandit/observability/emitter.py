"""Singleton emitter: configure once, emit everywhere.

The global emit() function is the only API modules need.
It's a no-op when not configured (zero overhead in tests).
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pyventus.core.processing.asyncio import AsyncIOProcessingService
from pyventus.events import EventEmitter

from promptbandit.observability.linker import PromptbanditEventLinker
from promptbandit.observability.logging import get_logger, setup_logging, shutdown_logging

if TYPE_CHECKING:
    from promptbandit.observability.config import ObservabilityConfig

_emitter: EventEmitter | None = None
_configured: bool = False


def emit(event: Any) -> None:
    """Fire-and-forget event emission. No-op if not configured."""
    if _emitter is not None:
        _emitter.emit(event)


def configure(config: ObservabilityConfig | None = None) -> EventEmitter:
    """Initialize logging, the global emitter, and its subscribers.

    Idempotent: a second call returns the existing emitter.
    """
    global _emitter, _configured

    if _configured and _emitter is not None:
        return _emitter

    from promptbandit.observability.config import ObservabilityConfig

    cfg = config or ObservabilityConfig()
    setup_logging(cfg)

    _emitter = EventEmitter(
        event_linker=PromptbanditEventLinker,
        event_processor=AsyncIOProcessingService(),
    )

    from promptbandit.observability.subscribers.structlog_sub import (
        register_structlog_subscriber,
    )

    register_structlog_subscriber()

    if cfg.jsonl_path:
        from promptbandit.observability.subscribers.jsonl import register_jsonl_subscriber

        register_jsonl_subscriber(cfg.jsonl_path)

    get_logger(__name__).debug(
        "observability.configured",
        formatter=cfg.log_formatter,
        destination=cfg.log_destination,
        jsonl=bool(cfg.jsonl_path),
    )

    _configured = True
    return _emitter


def is_configured() -> bool:
    return _configured


def reset() -> None:
    """Reset for testing."""
    global _emitter, _configured

    shutdown_logging()
    PromptbanditEventLinker.remove_all()
    _emitter = None
    _configured = False
