"""
Zone Event Publishers
=====================

Bounded Context: Zone Event Message Production

Design:
- ZoneEventPublisher: zone lifecycle broadcasts on "geofence:zones"
- GeofenceEventPublisher: per-user transitions on "geofence:user:<user_id>"
- Both inherit delivery, stats and error handling from BasePublisher

Message Flow:
    ZoneClusteringEngine → ZoneLifecycleEvent → ZoneEventPublisher → bus
    GeofenceService → GeofenceEvent → GeofenceEventPublisher → bus
"""

from typing import Dict, Any

from .base import BasePublisher
from ..bus import MessageBus
from ..schemas import ZoneLifecycleEvent, GeofenceEvent
from ..logging import StructuredLogger, LogEvent

ZONES_TOPIC = "geofence:zones"

_LIFECYCLE_LOG_EVENTS = {
    "zone:created": LogEvent.ZONE_CREATED,
    "zone:updated": LogEvent.ZONE_UPDATED,
    "zone:dissolved": LogEvent.ZONE_DISSOLVED,
}


def user_geofence_topic(user_id: str) -> str:
    return f"geofence:user:{user_id}"


class ZoneEventPublisher(BasePublisher):
    """
    Publisher for zone lifecycle broadcasts.

    Example:
        >>> publisher = ZoneEventPublisher(bus, logger)
        >>> publisher.publish_lifecycle(
        ...     ZoneLifecycleEvent.from_zone(ZoneLifecycleAction.CREATED, zone)
        ... )
    """

    def __init__(self, bus: MessageBus, logger: StructuredLogger, topic: str = ZONES_TOPIC):
        super().__init__(bus=bus, logger=logger)
        self.topic = topic

    def format_message(self, event: ZoneLifecycleEvent) -> Dict[str, Any]:
        return event.to_dict()

    def publish_lifecycle(self, event: ZoneLifecycleEvent) -> int:
        """
        Broadcast a zone lifecycle change.

        Returns:
            Deliveries reported by the bus
        """
        delivered = self.publish(self.topic, event.action.value, self.format_message(event))
        self.logger.info(
            event=_LIFECYCLE_LOG_EVENTS[event.action.value],
            message=f"Broadcast {event.action.value}",
            metadata={
                'zone_id': event.id,
                'zone_type': event.zone_type,
                'risk_level': event.risk_level,
                'incident_count': event.incident_count,
                'delivered': delivered
            }
        )
        return delivered


class GeofenceEventPublisher(BasePublisher):
    """Publisher for per-user zone transitions (entered / exited / approaching)."""

    def format_message(self, event: GeofenceEvent) -> Dict[str, Any]:
        return event.to_dict()

    def publish_geofence_event(self, user_id: str, event: GeofenceEvent) -> int:
        return self.publish(
            user_geofence_topic(user_id),
            event.event_name,
            self.format_message(event),
        )
