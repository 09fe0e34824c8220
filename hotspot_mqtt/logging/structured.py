"""
Structured JSON Logger
=====================

Bounded Context: Observability Infrastructure

One JSON object per line for the engine's background paths (clustering
scans, fanout, bus delivery, geofence transitions, route scoring), where
log aggregators filter on `event` and on bound context such as
`service_id`.

Design:
- Typed events (LogEvent enum), never free-form event names
- Bound context: StructuredLogger.bind() returns a child logger whose
  fields are merged into every entry (e.g. service_id, user_id)
- Domain values in metadata (datetimes, enums, zones) are encoded, not
  rejected

Example:
    >>> logger = create_logger("clustering", service_id="engine_01")
    >>> logger.info(
    ...     event=LogEvent.ZONE_CREATED,
    ...     message="Created hotspot zone",
    ...     metadata={'zone_id': 7, 'risk_level': RiskLevel.HIGH}
    ... )

Output:
    {"timestamp": "2024-05-01T12:00:00.123456+00:00", "level": "INFO",
     "component": "clustering", "event": "zone.created",
     "message": "Created hotspot zone", "context": {"service_id": "engine_01"},
     "metadata": {"zone_id": 7, "risk_level": "high"}}
"""

import json
import logging
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from .events import LogEvent

LOGGER_PREFIX = "hotspot_mqtt"


def _encode(value: Any) -> Any:
    """json.dumps fallback for values found in engine metadata."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    to_dict = getattr(value, 'to_dict', None)
    if callable(to_dict):
        return to_dict()
    return str(value)


class JSONFormatter(logging.Formatter):
    """Passes through the JSON line built by StructuredLogger."""

    def format(self, record: logging.LogRecord) -> str:
        line = record.getMessage()
        if record.exc_info:
            # Keep one entry per line; the traceback goes on following lines
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


class StructuredLogger:
    """
    JSON logger for one engine component.

    Attributes:
        component: Component name ("clustering", "fanout", "geofence", ...)
        context: Fields merged into every entry
        logger: Underlying stdlib logger (shared by bound children)

    Thread Safety:
        Thread-safe via Python's logging module; context is never mutated
        after construction.
    """

    def __init__(
        self,
        component: str,
        level: int = logging.INFO,
        logger_name: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.component = component
        self.context: Dict[str, Any] = dict(context or {})
        self.logger = logging.getLogger(logger_name or f"{LOGGER_PREFIX}.{component}")
        self.logger.setLevel(level)

        if not self.logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(JSONFormatter())
            self.logger.addHandler(handler)
            self.logger.propagate = False

    def bind(self, **context: Any) -> 'StructuredLogger':
        """Child logger with extra context; the parent is unchanged."""
        child = StructuredLogger.__new__(StructuredLogger)
        child.component = self.component
        child.context = {**self.context, **context}
        child.logger = self.logger
        return child

    def entry(
        self,
        level: str,
        event: LogEvent,
        message: str,
        metadata: Optional[Dict[str, Any]] = None,
        exc_info: Optional[BaseException] = None,
    ) -> Dict[str, Any]:
        """Build the dict that is serialized for one log line."""
        record: Dict[str, Any] = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': level,
            'component': self.component,
            'event': event.value,
            'message': message,
        }
        if self.context:
            record['context'] = self.context
        if metadata:
            record['metadata'] = metadata
        if exc_info is not None:
            record['exception'] = {
                'type': type(exc_info).__name__,
                'message': str(exc_info),
            }
        return record

    def _log(
        self,
        level: str,
        event: LogEvent,
        message: str,
        metadata: Optional[Dict[str, Any]] = None,
        exc_info: Optional[BaseException] = None,
    ) -> None:
        log_level = getattr(logging, level)
        if not self.logger.isEnabledFor(log_level):
            return

        line = json.dumps(self.entry(level, event, message, metadata, exc_info), default=_encode)
        # Tracebacks only for errors; warnings carry the exception summary
        self.logger.log(log_level, line, exc_info=exc_info if level == 'ERROR' else None)

    def debug(self, event: LogEvent, message: str,
              metadata: Optional[Dict[str, Any]] = None) -> None:
        self._log('DEBUG', event, message, metadata)

    def info(self, event: LogEvent, message: str,
             metadata: Optional[Dict[str, Any]] = None) -> None:
        self._log('INFO', event, message, metadata)

    def warning(
        self,
        event: LogEvent,
        message: str,
        metadata: Optional[Dict[str, Any]] = None,
        exc_info: Optional[BaseException] = None,
    ) -> None:
        """
        Log a recoverable condition (retry scheduled, sink skipped, ...).

        Args:
            exc_info: Summarized into the entry, no traceback
        """
        self._log('WARNING', event, message, metadata, exc_info)

    def error(
        self,
        event: LogEvent,
        message: str,
        metadata: Optional[Dict[str, Any]] = None,
        exc_info: Optional[BaseException] = None,
    ) -> None:
        """
        Log a failure the component gave up on.

        Example:
            >>> logger.error(
            ...     event=LogEvent.CLUSTERING_ERROR,
            ...     message="Clustering scan failed",
            ...     exc_info=e,
            ...     metadata={'attempts': 3}
            ... )
        """
        self._log('ERROR', event, message, metadata, exc_info)


def create_logger(component: str, level: int = logging.INFO, **context: Any) -> StructuredLogger:
    """
    Create a component logger, optionally with bound context.

    Example:
        >>> logger = create_logger("fanout", service_id="engine_01")
    """
    return StructuredLogger(component=component, level=level, context=context)
