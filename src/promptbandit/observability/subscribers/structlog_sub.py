"""Routes learning events to structured log lines via the configured LogFormatter.

Always-on subscriber, registered by emitter.configure().
"""

from __future__ import annotations

from dataclasses import asdict

from promptbandit.observability.events import (
    LearningObservationRecorded,
    LearningPosteriorUpdated,
    LearningSelectionMade,
    LearningStoreFailed,
    LearningTraceCaptured,
)
from promptbandit.observability.linker import PromptbanditEventLinker
from promptbandit.observability.logging import get_logger


def _get_logger():
    """Lazy logger: always reflects the active formatter."""
    return get_logger("promptbandit.events")


def register_structlog_subscriber() -> None:
    """Register log handlers for every learning event."""

    @PromptbanditEventLinker.on(LearningSelectionMade)
    def _log_selection(event: LearningSelectionMade) -> None:
        _get_logger().info("learning.selection", **asdict(event))

    @PromptbanditEventLinker.on(LearningTraceCaptured)
    def _log_trace(event: LearningTraceCaptured) -> None:
        _get_logger().info("learning.trace", **asdict(event))

    @PromptbanditEventLinker.on(LearningObservationRecorded)
    def _log_observation(event: LearningObservationRecorded) -> None:
        _get_logger().info("learning.observation", **asdict(event))

    @PromptbanditEventLinker.on(LearningPosteriorUpdated)
    def _log_posterior(event: LearningPosteriorUpdated) -> None:
        _get_logger().debug("learning.posterior", **asdict(event))

    @PromptbanditEventLinker.on(LearningStoreFailed)
    def _log_store_failed(event: LearningStoreFailed) -> None:
        _get_logger().warning("learning.store.failed", **asdict(event))
