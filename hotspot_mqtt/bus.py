"""
Message Bus
===========

Bounded Context: Topic-based pub/sub substrate

This module provides the subscribe/publish interface used by the fanout
router and the event publishers, with two interchangeable substrates.

Design:
- MessageBus: structural interface {subscribe, unsubscribe, publish}
- InProcessBus: synchronous in-process delivery (tests, single node)
- MQTTBus: same interface over an MQTT broker (horizontal scaling)
- At-least-once per sink; a failing sink never blocks the other sinks

Topic Mapping (MQTTBus):
    "incidents:kekgq4"     → "<prefix>/incidents/kekgq4"
    "geofence:user:42"     → "<prefix>/geofence/user/42"

Example:
    >>> bus = InProcessBus()
    >>> sub = bus.subscribe("incidents:kekgq4", lambda msg: print(msg.event))
    >>> bus.publish("incidents:kekgq4", "incident:new", {"id": "inc-1"})
    incident:new
    1
    >>> bus.unsubscribe(sub)
"""

import itertools
import json
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Protocol

import paho.mqtt.client as mqtt

from .logging import StructuredLogger, LogEvent, create_logger
from .schemas import BusMessage

Sink = Callable[[BusMessage], None]


@dataclass(frozen=True)
class Subscription:
    """Handle returned by subscribe(); pass it back to unsubscribe()."""
    topic: str
    sink_id: int


class MessageBus(Protocol):
    """Minimal pub/sub interface shared by every substrate."""

    def subscribe(self, topic: str, sink: Sink) -> Subscription:
        ...

    def unsubscribe(self, subscription: Subscription) -> None:
        ...

    def publish(self, topic: str, event: str, payload: Dict[str, Any]) -> int:
        ...

    def subscriber_count(self, topic: str) -> int:
        ...


class _SinkTable:
    """
    Thread-safe topic → sinks table.

    Snapshot pattern: delivery copies the sink list under the lock and
    invokes sinks outside it, so sinks may (un)subscribe re-entrantly.
    """

    def __init__(self):
        self._sinks: Dict[str, Dict[int, Sink]] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def add(self, topic: str, sink: Sink) -> Subscription:
        with self._lock:
            sink_id = next(self._ids)
            self._sinks.setdefault(topic, {})[sink_id] = sink
            return Subscription(topic=topic, sink_id=sink_id)

    def remove(self, subscription: Subscription) -> bool:
        """Remove a sink. Returns True when the topic has no sinks left."""
        with self._lock:
            sinks = self._sinks.get(subscription.topic)
            if not sinks:
                return False
            sinks.pop(subscription.sink_id, None)
            if not sinks:
                del self._sinks[subscription.topic]
                return True
            return False

    def snapshot(self, topic: str) -> List[Sink]:
        with self._lock:
            return list(self._sinks.get(topic, {}).values())

    def topics(self) -> List[str]:
        with self._lock:
            return list(self._sinks.keys())

    def count(self, topic: str) -> int:
        with self._lock:
            return len(self._sinks.get(topic, {}))


def _deliver(
    sinks: List[Sink],
    message: BusMessage,
    logger: StructuredLogger,
) -> int:
    delivered = 0
    for sink in sinks:
        try:
            sink(message)
            delivered += 1
        except Exception as e:
            logger.error(
                event=LogEvent.SINK_ERROR,
                message="Subscriber sink raised while handling message",
                exc_info=e,
                metadata={'topic': message.topic, 'event': message.event}
            )
    return delivered


class InProcessBus:
    """
    Synchronous in-process message bus.

    publish() delivers to every sink of the topic before returning and
    reports how many sinks accepted the message.

    Thread Safety:
        subscribe/unsubscribe/publish may be called from any thread.
    """

    def __init__(self, logger: Optional[StructuredLogger] = None):
        self.logger = logger or create_logger("bus")
        self._table = _SinkTable()
        self._stats_lock = threading.Lock()
        self._published = 0
        self._delivered = 0

    def subscribe(self, topic: str, sink: Sink) -> Subscription:
        subscription = self._table.add(topic, sink)
        self.logger.debug(
            event=LogEvent.BUS_SUBSCRIBED,
            message="Sink subscribed",
            metadata={'topic': topic, 'sink_id': subscription.sink_id}
        )
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        self._table.remove(subscription)
        self.logger.debug(
            event=LogEvent.BUS_UNSUBSCRIBED,
            message="Sink unsubscribed",
            metadata={'topic': subscription.topic, 'sink_id': subscription.sink_id}
        )

    def publish(self, topic: str, event: str, payload: Dict[str, Any]) -> int:
        message = BusMessage(topic=topic, event=event, payload=payload)
        delivered = _deliver(self._table.snapshot(topic), message, self.logger)

        with self._stats_lock:
            self._published += 1
            self._delivered += delivered

        self.logger.debug(
            event=LogEvent.BUS_PUBLISH_SUCCESS,
            message="Published message",
            metadata={'topic': topic, 'event': event, 'delivered': delivered}
        )
        return delivered

    def subscriber_count(self, topic: str) -> int:
        return self._table.count(topic)

    def get_stats(self) -> Dict[str, Any]:
        with self._stats_lock:
            return {
                'published': self._published,
                'delivered': self._delivered,
                'topics': len(self._table.topics()),
            }


class MQTTBus:
    """
    Message bus over an MQTT broker.

    Local sinks are attached per topic; the broker subscription for a topic
    is created with its first sink and dropped with its last. Envelopes
    travel as JSON-encoded BusMessage dicts.

    Attributes:
        broker_host: MQTT broker hostname
        broker_port: MQTT broker port
        client_id: MQTT client identifier
        topic_prefix: Root of every MQTT topic
        qos: Quality of Service for publish and subscribe

    Thread Safety:
        Thread-safe via paho-mqtt's loop_start() and the sink table lock.
        Sinks run in the MQTT network thread; keep them fast.
    """

    def __init__(
        self,
        broker_host: str,
        broker_port: int = 1883,
        client_id: str = "hotspot_engine",
        logger: Optional[StructuredLogger] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        qos: int = 1,
        topic_prefix: str = "hotspot",
    ):
        self.broker_host = broker_host
        self.broker_port = broker_port
        self.client_id = client_id
        self.logger = logger or create_logger("bus")
        self.qos = qos
        self.topic_prefix = topic_prefix.rstrip("/")

        # MQTT client setup
        self.client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=client_id)
        if username and password:
            self.client.username_pw_set(username, password)

        # Callbacks
        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect
        self.client.on_message = self._on_message

        # State
        self._table = _SinkTable()
        self._connected = threading.Event()
        self._stats_lock = threading.Lock()
        self._published = 0
        self._received = 0

    def mqtt_topic(self, topic: str) -> str:
        """Map a logical topic to its MQTT topic."""
        return f"{self.topic_prefix}/{topic.replace(':', '/')}"

    # ===== Lifecycle =====

    def connect(self, timeout: float = 10.0) -> bool:
        """
        Connect to the broker and start the network loop.

        Returns:
            True if connected within timeout, False otherwise
        """
        try:
            self.client.connect(self.broker_host, self.broker_port, keepalive=60)
            self.client.loop_start()

            if self._connected.wait(timeout=timeout):
                return True

            self.logger.error(
                event=LogEvent.MQTT_CONNECTION_ERROR,
                message="Connection timeout",
                metadata={'timeout': timeout}
            )
            return False

        except Exception as e:
            self.logger.error(
                event=LogEvent.MQTT_CONNECTION_ERROR,
                message="Failed to connect to broker",
                exc_info=e,
                metadata={'broker': f"{self.broker_host}:{self.broker_port}"}
            )
            return False

    def disconnect(self) -> None:
        """Stop the network loop and disconnect."""
        try:
            self.client.loop_stop()
            self.client.disconnect()
            self._connected.clear()
            self.logger.info(
                event=LogEvent.MQTT_DISCONNECTED,
                message="Disconnected from broker",
                metadata=self.get_stats()
            )
        except Exception as e:
            self.logger.error(
                event=LogEvent.MQTT_CONNECTION_ERROR,
                message="Error during disconnect",
                exc_info=e
            )

    def is_connected(self) -> bool:
        return self._connected.is_set()

    # ===== MessageBus interface =====

    def subscribe(self, topic: str, sink: Sink) -> Subscription:
        first = self._table.count(topic) == 0
        subscription = self._table.add(topic, sink)
        if first and self._connected.is_set():
            self.client.subscribe(self.mqtt_topic(topic), qos=self.qos)
        self.logger.debug(
            event=LogEvent.BUS_SUBSCRIBED,
            message="Sink subscribed",
            metadata={'topic': topic, 'mqtt_topic': self.mqtt_topic(topic)}
        )
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        if self._table.remove(subscription) and self._connected.is_set():
            self.client.unsubscribe(self.mqtt_topic(subscription.topic))
        self.logger.debug(
            event=LogEvent.BUS_UNSUBSCRIBED,
            message="Sink unsubscribed",
            metadata={'topic': subscription.topic}
        )

    def publish(self, topic: str, event: str, payload: Dict[str, Any]) -> int:
        """
        Publish an envelope to the broker.

        Returns:
            1 if the broker client accepted the message, 0 otherwise
        """
        if not self._connected.is_set():
            self.logger.warning(
                event=LogEvent.BUS_PUBLISH_FAILED,
                message="Cannot publish: not connected to broker",
                metadata={'topic': topic, 'event': event}
            )
            return 0

        try:
            message = BusMessage(topic=topic, event=event, payload=payload)
            result = self.client.publish(
                topic=self.mqtt_topic(topic),
                payload=json.dumps(message.to_dict()),
                qos=self.qos,
            )
        except (TypeError, ValueError) as e:
            self.logger.error(
                event=LogEvent.SERIALIZATION_ERROR,
                message="Failed to serialize message",
                exc_info=e,
                metadata={'topic': topic, 'event': event}
            )
            return 0

        if result.rc != mqtt.MQTT_ERR_SUCCESS:
            self.logger.warning(
                event=LogEvent.BUS_PUBLISH_FAILED,
                message=f"Publish failed (rc={result.rc})",
                metadata={'topic': topic, 'event': event}
            )
            return 0

        with self._stats_lock:
            self._published += 1
        self.logger.debug(
            event=LogEvent.BUS_PUBLISH_SUCCESS,
            message="Published message",
            metadata={'topic': topic, 'event': event, 'qos': self.qos}
        )
        return 1

    def subscriber_count(self, topic: str) -> int:
        return self._table.count(topic)

    def get_stats(self) -> Dict[str, Any]:
        with self._stats_lock:
            return {
                'published': self._published,
                'received': self._received,
                'connected': self._connected.is_set(),
                'broker': f"{self.broker_host}:{self.broker_port}",
            }

    # ===== MQTT Callbacks (run in MQTT thread) =====

    def _on_connect(self, client, userdata, flags, reason_code, properties) -> None:
        if reason_code.is_failure:
            self.logger.error(
                event=LogEvent.MQTT_CONNECTION_ERROR,
                message=f"Failed to connect to broker (rc={reason_code})",
                metadata={'broker': f"{self.broker_host}:{self.broker_port}"}
            )
            return

        # Restore broker subscriptions after (re)connect
        for topic in self._table.topics():
            client.subscribe(self.mqtt_topic(topic), qos=self.qos)

        self._connected.set()
        self.logger.info(
            event=LogEvent.MQTT_CONNECTED,
            message="Connected to MQTT broker",
            metadata={
                'broker': f"{self.broker_host}:{self.broker_port}",
                'client_id': self.client_id,
                'topic_prefix': self.topic_prefix
            }
        )

    def _on_disconnect(self, client, userdata, flags, reason_code, properties) -> None:
        self._connected.clear()
        self.logger.warning(
            event=LogEvent.MQTT_DISCONNECTED,
            message="Disconnected from MQTT broker",
            metadata={
                'broker': f"{self.broker_host}:{self.broker_port}",
                'reason_code': str(reason_code)
            }
        )

    def _on_message(self, client, userdata, msg: mqtt.MQTTMessage) -> None:
        try:
            data = json.loads(msg.payload.decode('utf-8'))
            message = BusMessage.from_dict(data)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            self.logger.error(
                event=LogEvent.DESERIALIZATION_ERROR,
                message="Failed to decode JSON message",
                exc_info=e,
                metadata={'mqtt_topic': msg.topic}
            )
            return
        except ValueError as e:
            self.logger.error(
                event=LogEvent.DESERIALIZATION_ERROR,
                message="Message is not a valid envelope",
                exc_info=e,
                metadata={'mqtt_topic': msg.topic}
            )
            return

        with self._stats_lock:
            self._received += 1

        delivered = _deliver(self._table.snapshot(message.topic), message, self.logger)
        self.logger.debug(
            event=LogEvent.BUS_MESSAGE_RECEIVED,
            message="Dispatched message",
            metadata={'topic': message.topic, 'event': message.event, 'delivered': delivered}
        )
