"""Structured logging setup (structlog over stdlib logging)."""
from __future__ import annotations

import logging
import sys
from typing import Any, Literal

import structlog

LogFormat = Literal["kv", "json"]


def _single_line(value: Any) -> Any:
    if isinstance(value, str):
        return (
            value.replace("\\", "\\\\")
            .replace("\n", "\\n")
            .replace("\r", "\\r")
            .replace("\t", "\\t")
        )
    if isinstance(value, (list, tuple)):
        return [_single_line(item) for item in value]
    if isinstance(value, dict):
        return {k: _single_line(v) for k, v in value.items()}
    return value


def single_line_processor(logger, method_name, event_dict):
    """Escape control characters so every entry stays on one line.

    Must run after ``format_exc_info`` so tracebacks are escaped too.
    """
    return {key: _single_line(value) for key, value in event_dict.items()}


def configure_logging(level: str = "INFO", fmt: LogFormat = "kv") -> None:
    """Route stdlib and structlog output to stdout as key=value (or JSON) lines."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(message)s"))

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(level.upper())

    access_logger = logging.getLogger("aiohttp.access")
    access_logger.handlers = []
    access_logger.propagate = True

    renderer: Any
    if fmt == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.processors.KeyValueRenderer(
            key_order=["timestamp", "level", "logger", "event"],
            drop_missing=True,
        )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            single_line_processor,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
