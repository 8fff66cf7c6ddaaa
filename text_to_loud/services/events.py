"""Structured event helpers shared across the application.

Every event is a single log line of the form ``[TYPE] message (key=value, ...)``
with the same details attached to the record as ``event_*`` extras.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, Optional


DEFAULT_EVENT_LOGGER = logging.getLogger("text_to_loud.events")

_MAX_VALUE_LENGTH = 120

EventLogger = logging.Logger | logging.LoggerAdapter


def sanitize_context_value(value: Any) -> Any:
    """Return a one-line, length-capped representation of *value*."""

    if value is None:
        return None
    if isinstance(value, Enum):
        value = value.value
    if isinstance(value, (bool, int, float)):
        return value
    # Spoken text can contain line breaks; keep each event on one line.
    trimmed = " ".join(str(value).split())
    if not trimmed:
        return None
    if len(trimmed) > _MAX_VALUE_LENGTH:
        return trimmed[:_MAX_VALUE_LENGTH] + "…"
    return trimmed


def _clean(values: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    cleaned: Dict[str, Any] = {}
    for key, raw_value in (values or {}).items():
        value = sanitize_context_value(raw_value)
        if key and value is not None:
            cleaned[str(key)] = value
    return cleaned


def emit_structured_event(
    event_type: str,
    message: str,
    *,
    payload: Optional[Dict[str, Any]] = None,
    correlation: Optional[Dict[str, Any]] = None,
    duration_ms: Optional[float] = None,
    level: int = logging.INFO,
    logger: EventLogger = DEFAULT_EVENT_LOGGER,
) -> None:
    base_message = str(message).strip()
    details = _clean(payload)
    request = _clean(correlation)

    text = f"[{event_type}] {base_message}"
    combined = {**request, **details}
    if combined:
        text += " (" + ", ".join(f"{key}={value}" for key, value in combined.items()) + ")"

    extra: Dict[str, Any] = {"event": base_message, "event_type": event_type}
    if details:
        extra["event_payload"] = details
    if request:
        extra["event_correlation"] = request
    if duration_ms is not None:
        extra["event_duration_ms"] = float(duration_ms)
    logger.log(level, text, extra=extra)


def emit_db_event(
    action: str,
    *,
    payload: Optional[Dict[str, Any]] = None,
    correlation: Optional[Dict[str, Any]] = None,
    duration_ms: Optional[float] = None,
    logger: EventLogger = DEFAULT_EVENT_LOGGER,
) -> None:
    """Record one repository query (DEBUG)."""

    emit_structured_event(
        "DB_QUERY",
        action,
        payload=payload,
        correlation=correlation,
        duration_ms=duration_ms,
        level=logging.DEBUG,
        logger=logger,
    )


def emit_playback_event(
    transition: str,
    *,
    payload: Optional[Dict[str, Any]] = None,
    level: int = logging.INFO,
) -> None:
    """Record a controller transition: play, pause, resume, restart, stop, complete or error."""

    emit_structured_event("PLAYBACK", transition, payload=payload, level=level)


def emit_app_event(
    message: str,
    *,
    payload: Optional[Dict[str, Any]] = None,
    correlation: Optional[Dict[str, Any]] = None,
    logger: EventLogger = DEFAULT_EVENT_LOGGER,
) -> None:
    emit_structured_event(
        "APP_EVENT", message, payload=payload, correlation=correlation, logger=logger
    )


__all__ = [
    "DEFAULT_EVENT_LOGGER",
    "emit_app_event",
    "emit_db_event",
    "emit_playback_event",
    "emit_structured_event",
    "sanitize_context_value",
]
