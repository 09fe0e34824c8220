"""
Common Schema Types
==================

Bounded Context: Shared Data Structures

This module defines common types used across every bus message.

Design Principles:
- Immutability: frozen=True prevents accidental mutation
- Type Safety: All fields explicitly typed
- Serialization: to_dict() for JSON export
- Validation: Constructor validates invariants

Types:
- Timestamp: ISO 8601 timestamp wrapper
- BusMessage: Envelope (topic, event, payload, timestamp)
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Any


@dataclass(frozen=True)
class Timestamp:
    """
    Immutable ISO 8601 timestamp wrapper.

    Attributes:
        value: ISO 8601 formatted timestamp string (UTC offset included)

    Example:
        >>> ts = Timestamp.now()
        >>> ts.value
        '2025-10-24T15:30:45.123456+00:00'
    """
    value: str

    @classmethod
    def now(cls) -> 'Timestamp':
        """Create timestamp from current time."""
        return cls(value=datetime.now(timezone.utc).isoformat())

    @classmethod
    def from_datetime(cls, dt: datetime) -> 'Timestamp':
        """Create timestamp from datetime object."""
        return cls(value=dt.isoformat())

    def to_datetime(self) -> datetime:
        """Parse to datetime object.

        Raises:
            ValueError: If timestamp format invalid
        """
        try:
            return datetime.fromisoformat(self.value)
        except ValueError as e:
            raise ValueError(f"Invalid ISO timestamp: {self.value}") from e

    def to_dict(self) -> str:
        """Serialize to JSON (as string)."""
        return self.value


@dataclass(frozen=True)
class BusMessage:
    """
    Envelope delivered to bus subscribers.

    Attributes:
        topic: Logical topic (e.g. "incidents:kekgq4", "geofence:zones")
        event: Event name (e.g. "incident:new", "zone:created")
        payload: JSON-compatible body
        timestamp: Publication time

    Invariants:
        - topic and event are non-empty
    """
    topic: str
    event: str
    payload: Dict[str, Any] = field(default_factory=dict)
    timestamp: Timestamp = field(default_factory=Timestamp.now)

    def __post_init__(self):
        """Validate invariants."""
        if not self.topic:
            raise ValueError("BusMessage topic cannot be empty")
        if not self.event:
            raise ValueError("BusMessage event cannot be empty")

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        return {
            'topic': self.topic,
            'event': self.event,
            'payload': self.payload,
            'timestamp': self.timestamp.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BusMessage':
        """
        Deserialize from dict.

        Raises:
            ValueError: If required fields missing or invalid
        """
        try:
            return cls(
                topic=data['topic'],
                event=data['event'],
                payload=dict(data.get('payload') or {}),
                timestamp=Timestamp(data['timestamp']) if data.get('timestamp') else Timestamp.now(),
            )
        except KeyError as e:
            raise ValueError(f"Missing required BusMessage field: {e}")
