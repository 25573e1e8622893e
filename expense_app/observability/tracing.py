"""Minimal tracing primitives.

Events are single JSON objects so they can be shipped to any collector as-is.
Each event goes through the stdlib logger ``expense_app.<component>``, which
lets hosts route or silence one service without touching the others.
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any

_ROOT_LOGGER = "expense_app"


@dataclass
class Span:
    name: str
    trace_id: str
    span_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    start_ns: int = field(default_factory=time.time_ns)
    end_ns: int | None = None
    attributes: dict[str, Any] = field(default_factory=dict)

    def end(self) -> None:
        self.end_ns = time.time_ns()

    @property
    def duration_ms(self) -> float | None:
        if self.end_ns is None:
            return None
        return (self.end_ns - self.start_ns) / 1_000_000.0


def new_trace_id() -> str:
    return uuid.uuid4().hex


def get_logger(component: str | None = None) -> logging.Logger:
    if not component:
        return logging.getLogger(_ROOT_LOGGER)
    return logging.getLogger(f"{_ROOT_LOGGER}.{component}")


def configure_logging(level: str) -> logging.Logger:
    """Apply the configured level to every ``expense_app`` logger.

    A stderr handler that prints the bare JSON event is attached once.
    """
    logger = get_logger()
    logger.setLevel(level.upper())
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)
    return logger


def log_event(
    event: str,
    *,
    trace_id: str | None = None,
    span: Span | None = None,
    level: str = "info",
    component: str | None = None,
    **fields: Any,
) -> None:
    payload: dict[str, Any] = {"event": event, **fields}
    if trace_id is not None:
        payload["trace_id"] = trace_id
    if component is not None:
        payload["component"] = component
    if span is not None:
        payload["span"] = {
            "name": span.name,
            "span_id": span.span_id,
            "duration_ms": span.duration_ms,
            "attributes": span.attributes,
        }
    logger = get_logger(component)
    logger.log(
        logging.getLevelName(level.upper()),
        json.dumps(payload, ensure_ascii=False, default=str),
    )


def log_failure(component: str, event: str, exc: BaseException, **fields: Any) -> None:
    """Record a failed operation with the error class and its message."""
    log_event(
        event,
        level="error",
        component=component,
        error=type(exc).__name__,
        message=str(exc),
        **fields,
    )
