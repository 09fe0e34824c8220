"""
Structured Logging for Hotspot Messaging
========================================

Bounded Context: Observability

This module provides JSON-structured logging for production observability.

Design:
- JSON output (parseable by ELK, CloudWatch, Loki)
- Typed events (enums prevent typos)
- Contextual metadata (zone_id, user_id, topic, etc.)
- Thread-safe

Public API
----------
    LogEvent: Typed event names (enum)
    StructuredLogger: JSON logger implementation
    create_logger: Factory function

Example:
    >>> from hotspot_mqtt.logging import StructuredLogger, LogEvent
    >>> logger = StructuredLogger(component="fanout")
    >>> logger.info(
    ...     event=LogEvent.FANOUT_JOINED,
    ...     message="Session joined topic",
    ...     metadata={'session_id': 'abc', 'topic': 'incidents:kekgq4'}
    ... )
"""

from .events import LogEvent
from .structured import StructuredLogger, create_logger

__all__ = [
    'LogEvent',
    'StructuredLogger',
    'create_logger',
]
