"""Logging setup for availability lookups.

Module code logs through plain ``logging.getLogger(__name__)``. ``configure_logging``
routes those records through structlog's ProcessorFormatter, so every line
carries the active ``lookup_id`` and the OTel trace/span ids. Output goes to
stderr as colored text or as JSON lines.
"""

from __future__ import annotations

import logging
import sys
from contextvars import ContextVar, Token

import structlog
from opentelemetry import trace

_lookup_context: ContextVar[str | None] = ContextVar("lookup_id", default=None)

_ZERO_TRACE_ID = "0" * 32
_ZERO_SPAN_ID = "0" * 16

# Per-request chatter from the HTTP stack; token URLs included.
_NOISE_LOGGERS = ("httpx", "httpcore")


def set_lookup_context(lookup_id: str | None) -> Token[str | None]:
    """Bind *lookup_id* to the running task; pass the token to ``reset_lookup_context``."""
    return _lookup_context.set(lookup_id)


def reset_lookup_context(token: Token[str | None]) -> None:
    _lookup_context.reset(token)


def get_lookup_context() -> str | None:
    return _lookup_context.get()


def add_lookup_context(_logger, _method_name: str, event_dict: dict) -> dict:
    event_dict["lookup_id"] = get_lookup_context()
    return event_dict


def add_otel_context(_logger, _method_name: str, event_dict: dict) -> dict:
    """Attach hex trace/span ids, or zeros outside a recording span."""
    span_context = trace.get_current_span().get_span_context()
    if span_context is not None and span_context.trace_id:
        event_dict["trace_id"] = format(span_context.trace_id, "032x")
        event_dict["span_id"] = format(span_context.span_id, "016x")
    else:
        event_dict["trace_id"] = _ZERO_TRACE_ID
        event_dict["span_id"] = _ZERO_SPAN_ID
    return event_dict


def _pre_chain(json_output: bool) -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso" if json_output else "%H:%M:%S"),
        add_lookup_context,
        add_otel_context,
        structlog.stdlib.ExtraAdder(),
    ]


def configure_logging(level: str = "INFO", fmt: str = "text") -> None:
    """Install a single stderr handler on the root logger.

    *fmt* is ``"text"`` or ``"json"``. Unknown level names fall back to INFO.
    Calling this again replaces the previous handler.
    """
    json_output = fmt == "json"
    pre_chain = _pre_chain(json_output)
    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    for name in _NOISE_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
