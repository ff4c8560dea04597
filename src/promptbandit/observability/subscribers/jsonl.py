"""JSONL file subscriber: writes every learning event to a JSONL file.

Each line is a complete JSON object with the event type name and all
fields.
"""

from __future__ import annotations

from dataclasses import asdict
from pathlib import Path

from promptbandit.observability.events import (
    LearningObservationRecorded,
    LearningPosteriorUpdated,
    LearningSelectionMade,
    LearningStoreFailed,
    LearningTraceCaptured,
)
from promptbandit.observability.linker import PromptbanditEventLinker
from promptbandit.observability.sinks.jsonl_sink import JsonlSink

_ALL_EVENTS = (
    LearningSelectionMade,
    LearningTraceCaptured,
    LearningObservationRecorded,
    LearningPosteriorUpdated,
    LearningStoreFailed,
)


def register_jsonl_subscriber(path: str) -> None:
    """Register a catch-all subscriber that appends every event to JSONL."""
    sink = JsonlSink(Path(path))

    @PromptbanditEventLinker.on(*_ALL_EVENTS)
    def _write_jsonl(event: object) -> None:
        sink.write({"event": type(event).__name__, **asdict(event)})  # type: ignore[arg-type]
