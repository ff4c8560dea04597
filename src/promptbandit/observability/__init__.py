"""promptbandit observability: typed events routed to structured logs.

Public API:
    emit(event)      Fire-and-forget event emission (no-op if not configured)
    configure(cfg)   Initialize logging + emitter + subscribers (call once)
    reset()          Reset for testing
    get_logger(name) Keyword-style structured logger
    traced(name)     OpenTelemetry span decorator

Modules import `emit` and fire typed events. They don't know about
logs or sinks. Subscribers handle routing.
"""

from promptbandit.observability.emitter import configure, emit, is_configured, reset
from promptbandit.observability.events import (
    LearningObservationRecorded,
    LearningPosteriorUpdated,
    LearningSelectionMade,
    LearningStoreFailed,
    LearningTraceCaptured,
)
from promptbandit.observability.logging import (
    LogDestination,
    LogFormatter,
    get_logger,
    register_destination,
    register_formatter,
)
from promptbandit.observability.tracing import traced

__all__ = [
    "emit",
    "configure",
    "is_configured",
    "reset",
    "get_logger",
    "LogFormatter",
    "LogDestination",
    "register_formatter",
    "register_destination",
    "traced",
    "LearningSelectionMade",
    "LearningTraceCaptured",
    "LearningObservationRecorded",
    "LearningPosteriorUpdated",
    "LearningStoreFailed",
]
