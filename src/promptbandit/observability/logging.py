"""Structured logging: formatter × destination, chosen by config.

    LogFormatter    how a record is structured (structlog or stdlib JSON)
    LogDestination  where the formatted line goes (stderr or a JSONL file)

setup_logging(config) builds both, hands the formatter to the
destination's handler and attaches that handler to the root logger.
Everything that logs through stdlib ``logging`` gets the same output.

Swapping:
    PROMPTBANDIT_LOG_FORMATTER=structlog   (default)
    PROMPTBANDIT_LOG_DESTINATION=stderr    (default)

    register_destination("datadog", MyDatadogDestination)
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import structlog

if TYPE_CHECKING:
    from promptbandit.observability.config import ObservabilityConfig


@runtime_checkable
class LogFormatter(Protocol):
    """How records are structured.

    setup() installs the processing pipeline and returns the
    logging.Formatter handlers should use. get_logger() returns a logger
    that accepts ``logger.info("event.name", key=value)``.
    """

    def setup(self, config: ObservabilityConfig) -> logging.Formatter: ...

    def get_logger(self, name: str, **kwargs: Any) -> Any: ...


@runtime_checkable
class LogDestination(Protocol):
    """Where formatted output is shipped."""

    def create_handler(self, formatter: logging.Formatter) -> logging.Handler: ...

    def shutdown(self) -> None: ...


# ---------------------------------------------------------------------------
# Formatters
# ---------------------------------------------------------------------------


class StructlogFormatter:
    """structlog processors rendered through the stdlib bridge."""

    def setup(self, config: ObservabilityConfig) -> logging.Formatter:
        shared: list = [
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
        ]

        if config.log_format == "console":
            renderer: structlog.types.Processor = structlog.dev.ConsoleRenderer()
        else:
            renderer = structlog.processors.JSONRenderer()

        structlog.configure(
            processors=[
                structlog.stdlib.filter_by_level,
                *shared,
                structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
            ],
            wrapper_class=structlog.stdlib.BoundLogger,
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=True,
        )

        return structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=[_merge_record_fields, *shared],
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )

    def get_logger(self, name: str, **kwargs: Any) -> Any:
        return structlog.get_logger(name, **kwargs)


def _merge_record_fields(logger: Any, method_name: str, event_dict: dict) -> dict:
    """Lift _KeywordLogger fields off a stdlib record into the event dict."""
    record = event_dict.get("_record")
    fields = getattr(record, "_fields", None)
    if fields:
        for key, value in fields.items():
            event_dict.setdefault(key, value)
    return event_dict


class StdlibFormatter:
    """Plain stdlib logging with a JSON line per record."""

    def setup(self, config: ObservabilityConfig) -> logging.Formatter:
        if config.log_format == "console":
            return logging.Formatter(
                "%(asctime)s %(levelname)-8s %(name)s: %(message)s",
                datefmt="%Y-%m-%dT%H:%M:%S",
            )
        return _JsonLineFormatter()

    def get_logger(self, name: str, **kwargs: Any) -> Any:
        return _KeywordLogger(logging.getLogger(name))


class _JsonLineFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        d: dict[str, Any] = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%SZ"),
            "level": record.levelname.lower(),
            "logger": record.name,
            "event": record.getMessage(),
        }
        fields = getattr(record, "_fields", None)
        if fields:
            d.update(fields)
        if record.exc_info and record.exc_info[1]:
            d["exception"] = self.formatException(record.exc_info)
        return json.dumps(d, default=str)


class _KeywordLogger:
    """Stdlib logger with structlog's ``event, **fields`` call shape.

    Fields ride on the LogRecord for _JsonLineFormatter to merge.
    """

    def __init__(self, logger: logging.Logger) -> None:
        self._logger = logger

    def _log(self, level: int, event: str, **fields: Any) -> None:
        if not self._logger.isEnabledFor(level):
            return
        exc_info = fields.pop("exc_info", None)
        record = self._logger.makeRecord(
            self._logger.name, level, "(unknown)", 0, event, (), None
        )
        if exc_info:
            record.exc_info = sys.exc_info()
        record._fields = fields  # type: ignore[attr-defined]
        self._logger.handle(record)

    def debug(self, event: str, **kw: Any) -> None:
        self._log(logging.DEBUG, event, **kw)

    def info(self, event: str, **kw: Any) -> None:
        self._log(logging.INFO, event, **kw)

    def warning(self, event: str, **kw: Any) -> None:
        self._log(logging.WARNING, event, **kw)

    def error(self, event: str, **kw: Any) -> None:
        self._log(logging.ERROR, event, **kw)

    def exception(self, event: str, **kw: Any) -> None:
        kw.setdefault("exc_info", True)
        self._log(logging.ERROR, event, **kw)


# ---------------------------------------------------------------------------
# Destinations
# ---------------------------------------------------------------------------


class StderrDestination:
    """Write to stderr. Default."""

    def create_handler(self, formatter: logging.Formatter) -> logging.Handler:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(formatter)
        return handler

    def shutdown(self) -> None:
        pass


class JsonlFileDestination:
    """Append to a JSONL file."""

    def __init__(self, config: ObservabilityConfig) -> None:
        self._path = Path(config.jsonl_path or "/tmp/promptbandit.jsonl")
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def create_handler(self, formatter: logging.Formatter) -> logging.Handler:
        handler = logging.FileHandler(str(self._path), mode="a", encoding="utf-8")
        handler.setFormatter(formatter)
        return handler

    def shutdown(self) -> None:
        pass


# ---------------------------------------------------------------------------
# Registries
# ---------------------------------------------------------------------------

_FORMATTERS: dict[str, type] = {
    "structlog": StructlogFormatter,
    "stdlib": StdlibFormatter,
}

_DESTINATIONS: dict[str, type] = {
    "stderr": StderrDestination,
    "jsonl": JsonlFileDestination,
}

# Destinations whose constructor takes the config
_CONFIGURED_DESTINATIONS: set[type] = {JsonlFileDestination}


def register_formatter(name: str, cls: type) -> None:
    """Register a custom log formatter. Call before configure()."""
    _FORMATTERS[name] = cls


def register_destination(name: str, cls: type, *, takes_config: bool = False) -> None:
    """Register a custom log destination. Call before configure()."""
    _DESTINATIONS[name] = cls
    if takes_config:
        _CONFIGURED_DESTINATIONS.add(cls)


# ---------------------------------------------------------------------------
# Module state
# ---------------------------------------------------------------------------

_active_formatter: LogFormatter | None = None
_active_destination: LogDestination | None = None


def setup_logging(config: ObservabilityConfig) -> None:
    """Compose formatter × destination from config and wire the root logger."""
    global _active_formatter, _active_destination

    formatter_cls = _FORMATTERS.get(config.log_formatter)
    if formatter_cls is None:
        raise ValueError(
            f"Unknown log formatter: {config.log_formatter!r}. "
            f"Available: {list(_FORMATTERS)}."
        )
    dest_cls = _DESTINATIONS.get(config.log_destination)
    if dest_cls is None:
        raise ValueError(
            f"Unknown log destination: {config.log_destination!r}. "
            f"Available: {list(_DESTINATIONS)}."
        )

    formatter = formatter_cls()
    destination = dest_cls(config) if dest_cls in _CONFIGURED_DESTINATIONS else dest_cls()

    handler = destination.create_handler(formatter.setup(config))

    # Replace only our own handler; pytest caplog and host handlers stay.
    handler._promptbandit_managed = True  # type: ignore[attr-defined]
    root = logging.getLogger()
    root.handlers = [h for h in root.handlers if not getattr(h, "_promptbandit_managed", False)]
    root.addHandler(handler)
    root.setLevel(getattr(logging, config.log_level.upper(), logging.INFO))

    _active_formatter = formatter
    _active_destination = destination


def get_logger(name: str = "", **kwargs: Any) -> Any:
    """Get a keyword-style logger from the active formatter.

    Before setup_logging() runs, returns a stdlib-backed wrapper so
    ``logger.info("event", key=value)`` still works.
    """
    if _active_formatter is not None:
        return _active_formatter.get_logger(name, **kwargs)
    return _KeywordLogger(logging.getLogger(name))


def shutdown_logging() -> None:
    """Flush and close the active destination and detach its handler."""
    global _active_formatter, _active_destination
    if _active_destination is not None:
        _active_destination.shutdown()
    root = logging.getLogger()
    for handler in [h for h in root.handlers if getattr(h, "_promptbandit_managed", False)]:
        root.removeHandler(handler)
        handler.close()
    _active_formatter = None
    _active_destination = None
