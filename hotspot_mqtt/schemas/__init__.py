"""
Message Schemas
===============

Bounded Context: Bus payload data structures (immutable, JSON-serializable).
"""

from .common import Timestamp, BusMessage
from .zone_event import (
    ZoneLifecycleAction,
    ZoneLifecycleEvent,
    GeofenceAction,
    GeofenceEvent,
    NotificationRequest,
    NOTIFICATION_TITLE,
)
from .incident import IncidentEvent, INCIDENT_NEW

__all__ = [
    'Timestamp',
    'BusMessage',
    'ZoneLifecycleAction',
    'ZoneLifecycleEvent',
    'GeofenceAction',
    'GeofenceEvent',
    'NotificationRequest',
    'NOTIFICATION_TITLE',
    'IncidentEvent',
    'INCIDENT_NEW',
]
