"""Event sinks: output destinations for emitted events."""

from promptbandit.observability.sinks.jsonl_sink import JsonlSink

__all__ = ["JsonlSink"]
