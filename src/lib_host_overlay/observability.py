"""Structured logging helpers shared by every synthesis stage.

Purpose
    Keep every emission of logging data predictable and contextual without
    forcing applications to adopt a specific logging backend.

Contents
    - ``TRACE_ID``: context variable storing the active run identifier.
    - ``get_logger``: returns the shared package logger (quiet by default).
    - ``bind_trace_id`` / ``new_trace_id``: bind, clear or mint run identifiers.
    - ``log_debug`` / ``log_info`` / ``log_warning`` / ``log_error``: emit
      structured entries via a single private emitter.
    - ``make_event``: convenience builder for per-operation event payloads.

System Integration
    The scanner, the executors and the cleanup stage call these helpers so a
    single synthesis run can be followed end to end by its ``trace_id``. The
    domain layer stays free from logging concerns.
"""

from __future__ import annotations

import logging
import uuid
from contextvars import ContextVar
from typing import Any, Final, Mapping

TRACE_ID: ContextVar[str | None] = ContextVar("lib_host_overlay_trace_id", default=None)
"""Identifier of the synthesis run currently being logged."""

_LOGGER: Final[logging.Logger] = logging.getLogger("lib_host_overlay")
_LOGGER.addHandler(logging.NullHandler())


def get_logger() -> logging.Logger:
    """Return the ``lib_host_overlay`` logger.

    Only a ``NullHandler`` is attached; the CLI (or an embedding tool) decides
    where records go.
    """

    return _LOGGER


def bind_trace_id(trace_id: str | None) -> None:
    """Set the run id attached to subsequent records (``None`` clears it).

    Examples
    --------
    >>> bind_trace_id('run-1')
    >>> TRACE_ID.get()
    'run-1'
    >>> bind_trace_id(None)
    >>> TRACE_ID.get() is None
    True
    """

    TRACE_ID.set(trace_id)


def new_trace_id() -> str:
    """Mint and bind a fresh run identifier, returning it.

    Examples
    --------
    >>> value = new_trace_id()
    >>> TRACE_ID.get() == value and len(value) == 12
    True
    >>> bind_trace_id(None)
    """

    trace_id = uuid.uuid4().hex[:12]
    bind_trace_id(trace_id)
    return trace_id


def log_debug(message: str, **fields: Any) -> None:
    """Log *message* at DEBUG with the run id merged into *fields*."""

    _emit(logging.DEBUG, message, fields)


def log_info(message: str, **fields: Any) -> None:
    """Log *message* at INFO with the run id merged into *fields*."""

    _emit(logging.INFO, message, fields)


def log_warning(message: str, **fields: Any) -> None:
    """Log *message* at WARNING with the run id merged into *fields*."""

    _emit(logging.WARNING, message, fields)


def log_error(message: str, **fields: Any) -> None:
    """Log *message* at ERROR with the run id merged into *fields*."""

    _emit(logging.ERROR, message, fields)


def make_event(
    stage: str,
    path: str | None,
    payload: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """Build a structured logging payload for a pipeline event.

    Inputs
        stage: Pipeline stage emitting the event (``scan``, ``merge``, ``copy``,
        ``cleanup``, ``watch``).
        path: Filesystem path associated with the event, if available.
        payload: Optional mapping with extra diagnostic detail.

    Examples
    --------
    >>> make_event('merge', '/repo/config.json', {'changed': True})
    {'stage': 'merge', 'path': '/repo/config.json', 'changed': True}
    """

    event: dict[str, Any] = {"stage": stage, "path": path}
    if payload:
        event |= dict(payload)
    return event


def _emit(level: int, message: str, fields: Mapping[str, Any]) -> None:
    """Route one record through the package logger."""

    _LOGGER.log(level, message, extra={"context": _with_trace(fields)})


def _with_trace(fields: Mapping[str, Any]) -> dict[str, Any]:
    """Prefix *fields* with the run id bound for this context."""

    context = {"trace_id": TRACE_ID.get()}
    context.update(fields)
    return context
