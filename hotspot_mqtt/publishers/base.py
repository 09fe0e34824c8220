"""
Base Publisher
==============

Bounded Context: Message Production

This module provides the abstract base class for event publishers.

Design:
- Publishes through any MessageBus (in-process or MQTT)
- Subclasses own topic naming and message formatting
- Per-publisher statistics (thread-safe)
- Structured logging integration

Architecture:
    BasePublisher (abstract)
        ↓
    ZoneEventPublisher, GeofenceEventPublisher, NotificationPublisher (concrete)

Responsibilities:
- Delivery to the bus
- Error handling and logging (publication never raises into callers)
- NOT responsible for: Message formatting (delegated to subclasses)
"""

import threading
from abc import ABC, abstractmethod
from typing import Dict, Any

from ..bus import MessageBus
from ..logging import StructuredLogger, LogEvent


class BasePublisher(ABC):
    """
    Abstract base class for bus publishers.

    Attributes:
        bus: Message bus used for delivery
        logger: Structured logger instance

    Thread Safety:
        Thread-safe; statistics are guarded by a lock.
    """

    def __init__(self, bus: MessageBus, logger: StructuredLogger):
        """
        Initialize publisher.

        Args:
            bus: Message bus (InProcessBus or MQTTBus)
            logger: Structured logger for observability
        """
        self.bus = bus
        self.logger = logger

        self._message_count = 0
        self._failure_count = 0
        self._stats_lock = threading.Lock()

    @abstractmethod
    def format_message(self, *args, **kwargs) -> Dict[str, Any]:
        """
        Format message for publication.

        Returns:
            Dictionary ready for JSON serialization
        """
        raise NotImplementedError("Subclasses must implement format_message()")

    def publish(self, topic: str, event: str, message_data: Dict[str, Any]) -> int:
        """
        Publish a formatted message.

        Args:
            topic: Logical bus topic
            event: Event name
            message_data: Message dictionary (already formatted)

        Returns:
            Number of deliveries reported by the bus (0 on failure)
        """
        try:
            delivered = self.bus.publish(topic, event, message_data)
        except Exception as e:
            with self._stats_lock:
                self._failure_count += 1
            self.logger.error(
                event=LogEvent.MQTT_PUBLISH_ERROR,
                message="Error publishing message",
                exc_info=e,
                metadata={'topic': topic, 'event': event}
            )
            return 0

        with self._stats_lock:
            self._message_count += 1

        self.logger.debug(
            event=LogEvent.BUS_PUBLISH_SUCCESS,
            message="Published message",
            metadata={'topic': topic, 'event': event, 'delivered': delivered}
        )
        return delivered

    def get_stats(self) -> Dict[str, Any]:
        """
        Get publisher statistics.

        Returns:
            Dictionary with message and failure counts
        """
        with self._stats_lock:
            return {
                'message_count': self._message_count,
                'failure_count': self._failure_count,
            }
