"""
Structured Log Event Types
==========================

Bounded Context: Observability Event Taxonomy

This module defines typed event names for structured logging.

Design:
- Enum-based (prevents typos, enables autocomplete)
- Hierarchical naming (namespace.category.action)
- Searchable in log aggregators (Elasticsearch, CloudWatch Insights)

Event Naming Convention:
    <component>.<category>.<action>

    component: bus, mqtt, zone, clustering, geofence, fanout, route, error
    category: publish, scan, transition
    action: success, failed, started

Example Log Query (CloudWatch Insights):
    fields @timestamp, event, message, metadata.zone_id
    | filter event = "zone.dissolved"
    | stats count() by bin(1h)
"""

from enum import Enum


class LogEvent(str, Enum):
    """
    Typed log event names for structured logging.

    Categories:
    - bus.* / mqtt.*: Message bus and broker interactions
    - zone.*: Zone lifecycle
    - clustering.*: Scheduled clustering scans
    - geofence.*: Per-user transitions
    - fanout.*: Geohash topic routing
    - route.*: Route safety analysis
    - error.*: Error conditions
    """

    # ========== Bus / MQTT Events ==========
    MQTT_CONNECTED = "mqtt.connected"
    """MQTT broker connection established."""

    MQTT_DISCONNECTED = "mqtt.disconnected"
    """MQTT broker connection lost."""

    BUS_PUBLISH_SUCCESS = "bus.publish.success"
    """Message delivered to the bus."""

    BUS_PUBLISH_FAILED = "bus.publish.failed"
    """Message could not be delivered."""

    BUS_SUBSCRIBED = "bus.subscribed"
    """Sink subscribed to a topic."""

    BUS_UNSUBSCRIBED = "bus.unsubscribed"
    """Sink removed from a topic."""

    BUS_MESSAGE_RECEIVED = "bus.message.received"
    """Message received from the broker and dispatched."""

    # ========== Zone Lifecycle Events ==========
    ZONE_CREATED = "zone.created"
    """New hotspot zone created from a cluster."""

    ZONE_UPDATED = "zone.updated"
    """Existing zone updated in place."""

    ZONE_DISSOLVED = "zone.dissolved"
    """Zone deactivated below the dissolution threshold."""

    # ========== Clustering Events ==========
    CLUSTERING_SCAN_STARTED = "clustering.scan.started"
    """Clustering scan started."""

    CLUSTERING_SCAN_COMPLETED = "clustering.scan.completed"
    """Clustering scan applied successfully."""

    CLUSTERING_SCAN_RETRY = "clustering.scan.retry"
    """Clustering attempt failed and will be retried."""

    CLUSTERING_SCAN_DEFERRED = "clustering.scan.deferred"
    """All attempts failed; zones stay stale until the next run."""

    # ========== Geofence Events ==========
    GEOFENCE_TRANSITION = "geofence.transition"
    """User entered or exited zones."""

    GEOFENCE_APPROACHING = "geofence.approaching"
    """Premium user approaching zones."""

    NOTIFICATION_REQUESTED = "geofence.notification.requested"
    """Notification request handed to the delivery collaborator."""

    # ========== Fanout Events ==========
    FANOUT_JOINED = "fanout.joined"
    """Session joined a geohash topic."""

    FANOUT_LEFT = "fanout.left"
    """Session left a geohash topic."""

    FANOUT_BROADCAST = "fanout.broadcast"
    """Incident broadcast to its apron topics."""

    # ========== Route Events ==========
    ROUTE_ANALYZED = "route.analyzed"
    """Route safety report produced."""

    # ========== Error Events ==========
    SERIALIZATION_ERROR = "error.serialization"
    """Failed to serialize message to JSON."""

    DESERIALIZATION_ERROR = "error.deserialization"
    """Failed to deserialize message from JSON."""

    SINK_ERROR = "error.sink"
    """A subscriber sink raised while handling a message."""

    MQTT_CONNECTION_ERROR = "error.mqtt_connection"
    """Failed to connect to MQTT broker."""

    MQTT_PUBLISH_ERROR = "error.mqtt_publish"
    """Error during message publication."""

    CLUSTERING_ERROR = "error.clustering"
    """Clustering scan failed."""

    VALIDATION_ERROR = "error.validation"
    """Request rejected by input validation."""


# Event categories for filtering
BUS_EVENTS = {
    LogEvent.MQTT_CONNECTED,
    LogEvent.MQTT_DISCONNECTED,
    LogEvent.BUS_PUBLISH_SUCCESS,
    LogEvent.BUS_PUBLISH_FAILED,
    LogEvent.BUS_SUBSCRIBED,
    LogEvent.BUS_UNSUBSCRIBED,
    LogEvent.BUS_MESSAGE_RECEIVED,
}

ZONE_EVENTS = {
    LogEvent.ZONE_CREATED,
    LogEvent.ZONE_UPDATED,
    LogEvent.ZONE_DISSOLVED,
}

CLUSTERING_EVENTS = {
    LogEvent.CLUSTERING_SCAN_STARTED,
    LogEvent.CLUSTERING_SCAN_COMPLETED,
    LogEvent.CLUSTERING_SCAN_RETRY,
    LogEvent.CLUSTERING_SCAN_DEFERRED,
}

GEOFENCE_EVENTS = {
    LogEvent.GEOFENCE_TRANSITION,
    LogEvent.GEOFENCE_APPROACHING,
    LogEvent.NOTIFICATION_REQUESTED,
}

FANOUT_EVENTS = {
    LogEvent.FANOUT_JOINED,
    LogEvent.FANOUT_LEFT,
    LogEvent.FANOUT_BROADCAST,
}

ERROR_EVENTS = {
    LogEvent.SERIALIZATION_ERROR,
    LogEvent.DESERIALIZATION_ERROR,
    LogEvent.SINK_ERROR,
    LogEvent.MQTT_CONNECTION_ERROR,
    LogEvent.MQTT_PUBLISH_ERROR,
    LogEvent.CLUSTERING_ERROR,
    LogEvent.VALIDATION_ERROR,
}
