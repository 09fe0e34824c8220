"""
Event Publishers
================

Bounded Context: Message Production

Design:
- BasePublisher: Abstract base over a MessageBus
- ZoneEventPublisher: Zone lifecycle broadcasts
- GeofenceEventPublisher: Per-user zone transitions
- NotificationPublisher: Notification delivery requests

Example:
    >>> from hotspot_mqtt import InProcessBus, create_logger
    >>> from hotspot_mqtt.publishers import ZoneEventPublisher
    >>>
    >>> publisher = ZoneEventPublisher(InProcessBus(), create_logger("clustering"))
    >>> publisher.publish_lifecycle(lifecycle_event)
"""

from .base import BasePublisher
from .zone_event import (
    ZoneEventPublisher,
    GeofenceEventPublisher,
    ZONES_TOPIC,
    user_geofence_topic,
)
from .notification import NotificationPublisher, user_notification_topic, NOTIFICATION_EVENT

__all__ = [
    'BasePublisher',
    'ZoneEventPublisher',
    'GeofenceEventPublisher',
    'NotificationPublisher',
    'ZONES_TOPIC',
    'NOTIFICATION_EVENT',
    'user_geofence_topic',
    'user_notification_topic',
]
