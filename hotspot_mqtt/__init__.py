"""
Hotspot Messaging Package
=========================

Bounded Context: Event distribution for the incident intelligence engine

This package carries zone lifecycle broadcasts, per-user geofence events,
notification requests and geohash-partitioned incident fanout over a
topic-based message bus (in-process or MQTT).

Architecture:
- schemas/: Immutable payloads with to_dict()/from_dict()
- bus.py: MessageBus interface, InProcessBus, MQTTBus
- publishers/: Event producers over a bus
- logging/: Structured JSON logging for observability

Design Philosophy:
- Cohesion > Location: Each module has one reason to change
- Immutability: Frozen dataclasses for message DTOs
- Observability: Structured logs (JSON) for production queries

Public API
----------
Bus:
    MessageBus, Subscription, InProcessBus, MQTTBus

Schemas:
    Timestamp, BusMessage
    ZoneLifecycleAction, ZoneLifecycleEvent
    GeofenceAction, GeofenceEvent, NotificationRequest
    IncidentEvent

Publishers:
    ZoneEventPublisher, GeofenceEventPublisher, NotificationPublisher
    BasePublisher (for custom publishers)

Logging:
    LogEvent, StructuredLogger, create_logger

Example:
    >>> from hotspot_mqtt import InProcessBus, ZoneEventPublisher, create_logger
    >>>
    >>> bus = InProcessBus()
    >>> bus.subscribe("geofence:zones", lambda msg: print(msg.event, msg.payload['id']))
    >>> publisher = ZoneEventPublisher(bus, create_logger("clustering"))
    >>> publisher.publish_lifecycle(event)
    zone:created 7
"""

from .logging import LogEvent, StructuredLogger, create_logger
from .schemas import (
    Timestamp,
    BusMessage,
    ZoneLifecycleAction,
    ZoneLifecycleEvent,
    GeofenceAction,
    GeofenceEvent,
    NotificationRequest,
    IncidentEvent,
    INCIDENT_NEW,
)
from .bus import MessageBus, Subscription, Sink, InProcessBus, MQTTBus
from .publishers import (
    BasePublisher,
    ZoneEventPublisher,
    GeofenceEventPublisher,
    NotificationPublisher,
    ZONES_TOPIC,
)

__all__ = [
    # Logging
    'LogEvent',
    'StructuredLogger',
    'create_logger',
    # Schemas
    'Timestamp',
    'BusMessage',
    'ZoneLifecycleAction',
    'ZoneLifecycleEvent',
    'GeofenceAction',
    'GeofenceEvent',
    'NotificationRequest',
    'IncidentEvent',
    'INCIDENT_NEW',
    # Bus
    'MessageBus',
    'Subscription',
    'Sink',
    'InProcessBus',
    'MQTTBus',
    # Publishers
    'BasePublisher',
    'ZoneEventPublisher',
    'GeofenceEventPublisher',
    'NotificationPublisher',
    'ZONES_TOPIC',
]

__version__ = '1.0.0'
