"""
Structured event logging for the agent pipeline.
Components emit typed AgentEvent records into one sink injected at the composition root.
"""

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional


@dataclass(frozen=True)
class AgentEvent:
    """A typed diagnostic event emitted by a pipeline component."""
    name: str
    status: str = "success"
    details: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)


class StructuredLogger:
    """Structured logger for channel, correlation, vector, tool and pipeline events."""

    STATUS_LEVELS = {
        "failed": logging.WARNING,
        "degraded": logging.WARNING,
        "ignored": logging.DEBUG,
    }

    def __init__(self, name: str = "glassmem", level: int = None):
        self.logger = logging.getLogger(name)
        if level is None:
            level = logging.DEBUG if os.getenv("DEBUG", "true").lower() == "true" else logging.INFO
        self.logger.setLevel(level)

        # One stream handler per named logger
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            ))
            self.logger.addHandler(handler)

    def emit(self, event: AgentEvent) -> None:
        """Render an event as a structured log line. Never raises."""
        try:
            level = self.STATUS_LEVELS.get(event.status, logging.INFO)
            self.log_operation(event.name, event.status, event.details, level=level)
        except Exception:
            pass

    def log_operation(self, operation: str, status: str, details: Dict[str, Any] = None,
                      level: int = logging.INFO):
        """Log a structured operation."""
        message = f"Operation: {operation}, Status: {status}"
        if details:
            message += f", Details: {details}"

        self.logger.log(level, message)


class RecordingEventSink:
    """In-memory sink that keeps every emitted event; used by tests and the API."""

    def __init__(self, forward_to: Optional[StructuredLogger] = None, max_events: int = 1000):
        self.events: List[AgentEvent] = []
        self.forward_to = forward_to
        self.max_events = max_events

    def emit(self, event: AgentEvent) -> None:
        self.events.append(event)
        if self.max_events and len(self.events) > self.max_events:
            del self.events[0]
        if self.forward_to is not None:
            self.forward_to.emit(event)

    def named(self, name: str) -> List[AgentEvent]:
        """Events with the given name, in emission order."""
        return [event for event in self.events if event.name == name]

    def names(self) -> List[str]:
        return [event.name for event in self.events]

    def clear(self) -> None:
        self.events.clear()


# Global logger instance
logger = StructuredLogger()


def emit_event(sink, name: str, status: str = "success", **details) -> None:
    """Build and emit an AgentEvent on ``sink`` (or the global logger), swallowing sink failures."""
    target = sink if sink is not None else logger
    try:
        target.emit(AgentEvent(name=name, status=status, details=details))
    except Exception:
        pass


def preview(text: Optional[str], max_length: int = 50) -> str:
    """Truncate text for log output."""
    if text is None:
        return ""
    return text[:max_length] + "..." if len(text) > max_length else text


SENSITIVE_FIELDS = ("secret", "password", "token", "api_key")


def sanitize_payload(payload: Any, reveal_sensitive: bool = False,
                     sensitive_fields: Iterable[str] = SENSITIVE_FIELDS) -> Any:
    """Make tool parameters and event details safe to log.

    Sensitive keys are redacted and raw sensor bytes are replaced by their length.
    """
    if isinstance(payload, dict):
        return {
            k: "[REDACTED]" if not reveal_sensitive and k in sensitive_fields
            else sanitize_payload(v, reveal_sensitive, sensitive_fields)
            for k, v in payload.items()
        }
    if isinstance(payload, (list, tuple)):
        return [sanitize_payload(item, reveal_sensitive, sensitive_fields) for item in payload]
    if isinstance(payload, str):
        return preview(payload, max_length=100)
    if isinstance(payload, (bytes, bytearray)):
        return f"<{len(payload)} bytes>"
    return payload
