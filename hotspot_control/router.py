"""
GeohashFanoutRouter - location-partitioned incident fanout

Bounded Context: Topic routing for new-incident events
Responsibilities:
  - Validate and manage session subscriptions to "incidents:<geohash>"
  - Move a session's subscription when its geohash cell changes
  - Broadcast incident:new to the incident's cell plus its 8 neighbors

Delivery:
  - At-least-once per subscriber of an affected cell
  - A session present in two apron cells may receive the event twice;
    receivers de-duplicate on incident id
  - Topics are independent; a failing topic does not stop the others

Threading: Thread-safe (registry lock + bus thread safety)
"""

from dataclasses import dataclass
from typing import Dict, List, Optional

from hotspot_mqtt import (
    INCIDENT_NEW,
    IncidentEvent,
    LogEvent,
    MessageBus,
    Sink,
    StructuredLogger,
    create_logger,
)
from hotspot_zone import Coordinate, Incident
from hotspot_zone.geometry import geohash

from .subscriptions import SessionSubscription, SubscriptionRegistry

INCIDENT_TOPIC_PREFIX = "incidents:"


def incident_topic(topic_key: str) -> str:
    return f"{INCIDENT_TOPIC_PREFIX}{topic_key}"


@dataclass(frozen=True)
class FanoutResult:
    """Outcome of one incident broadcast."""
    incident_id: str
    geohash: str
    topics: List[str]
    deliveries: Dict[str, int]

    @property
    def total_deliveries(self) -> int:
        return sum(self.deliveries.values())


class GeohashFanoutRouter:
    """
    Routes incident:new events to sessions near the incident.

    Example:
        router = GeohashFanoutRouter(bus, precision=6)
        router.join("session-1", "kekgq4", sink)
        router.update_location("session-1", -26.2041, 28.0473)
        result = router.broadcast_new_incident(incident)
    """

    def __init__(
        self,
        bus: MessageBus,
        precision: int = 6,
        min_topic_length: int = geohash.MIN_TOPIC_LENGTH,
        max_topic_length: int = geohash.MAX_TOPIC_LENGTH,
        logger: Optional[StructuredLogger] = None,
        registry: Optional[SubscriptionRegistry] = None,
    ):
        if not min_topic_length <= precision <= max_topic_length:
            raise ValueError(
                f"precision must be in [{min_topic_length}, {max_topic_length}], got {precision}"
            )
        self.bus = bus
        self.precision = precision
        self.min_topic_length = min_topic_length
        self.max_topic_length = max_topic_length
        self.logger = logger or create_logger("fanout")
        self.registry = registry or SubscriptionRegistry()

    # ===== Topic computation =====

    def topic_key_for(self, latitude: float, longitude: float) -> str:
        """Geohash cell of a location at the router precision."""
        point = Coordinate(latitude, longitude)
        return geohash.encode(point.lat, point.lon, self.precision)

    def topics_for(self, latitude: float, longitude: float) -> List[str]:
        """Apron topics (cell + neighbors) for a location."""
        key = self.topic_key_for(latitude, longitude)
        return [incident_topic(cell) for cell in geohash.apron(key)]

    def validate_topic_key(self, topic_key: str) -> str:
        """
        Raises:
            InvalidTopicError: Malformed key or length outside the accepted range
        """
        return geohash.validate_topic_key(
            topic_key, self.min_topic_length, self.max_topic_length
        )

    # ===== Session subscriptions =====

    def join(self, session_id: str, topic_key: str, sink: Sink) -> str:
        """
        Subscribe a session to incidents:<topic_key>.

        A session holds one topic at a time; joining a new topic releases
        the previous one after the new subscription is live.

        Returns:
            The joined topic name

        Raises:
            InvalidTopicError: Rejected before any subscription change
        """
        self.validate_topic_key(topic_key)
        topic = incident_topic(topic_key)

        current = self.registry.get(session_id)
        if current is not None and current.topic == topic and current.sink is sink:
            return topic

        subscription = self.bus.subscribe(topic, sink)
        previous = self.registry.put(SessionSubscription(
            session_id=session_id,
            topic_key=topic_key,
            topic=topic,
            subscription=subscription,
            sink=sink,
        ))
        if previous is not None:
            self.bus.unsubscribe(previous.subscription)

        self.logger.info(
            event=LogEvent.FANOUT_JOINED,
            message="Session joined incident topic",
            metadata={
                'session_id': session_id,
                'topic': topic,
                'previous_topic': previous.topic if previous else None
            }
        )
        return topic

    def update_location(
        self,
        session_id: str,
        latitude: float,
        longitude: float,
    ) -> str:
        """
        Report a session's location.

        If the session is subscribed and its cell changed, the subscription
        moves to the new cell (leave old, join new).

        Returns:
            The session's geohash at the router precision

        Raises:
            ValidationError: Missing or out-of-range coordinates
        """
        key = self.topic_key_for(latitude, longitude)
        current = self.registry.get(session_id)
        if current is not None and current.topic_key != key:
            self.join(session_id, key, current.sink)
        return key

    def leave(self, session_id: str) -> bool:
        """Drop a session's subscription. Returns False if it had none."""
        previous = self.registry.remove(session_id)
        if previous is None:
            return False
        self.bus.unsubscribe(previous.subscription)
        self.logger.info(
            event=LogEvent.FANOUT_LEFT,
            message="Session left incident topic",
            metadata={'session_id': session_id, 'topic': previous.topic}
        )
        return True

    def current_topic(self, session_id: str) -> Optional[str]:
        entry = self.registry.get(session_id)
        return entry.topic if entry else None

    # ===== Broadcast =====

    def broadcast_new_incident(self, incident: Incident) -> FanoutResult:
        """
        Publish incident:new to the incident cell and its neighbors.

        Returns:
            FanoutResult with per-topic delivery counts
        """
        key = self.topic_key_for(incident.latitude, incident.longitude)
        topics = [incident_topic(cell) for cell in geohash.apron(key)]
        payload = IncidentEvent.from_incident(incident).to_dict()

        deliveries: Dict[str, int] = {}
        for topic in topics:
            try:
                deliveries[topic] = self.bus.publish(topic, INCIDENT_NEW, payload)
            except Exception as e:
                deliveries[topic] = 0
                self.logger.error(
                    event=LogEvent.MQTT_PUBLISH_ERROR,
                    message="Failed to publish incident to topic",
                    exc_info=e,
                    metadata={'incident_id': incident.id, 'topic': topic}
                )

        result = FanoutResult(
            incident_id=incident.id,
            geohash=key,
            topics=topics,
            deliveries=deliveries,
        )
        self.logger.info(
            event=LogEvent.FANOUT_BROADCAST,
            message="Broadcast new incident",
            metadata={
                'incident_id': incident.id,
                'geohash': key,
                'topics': len(topics),
                'deliveries': result.total_deliveries
            }
        )
        return result
