"""
MQTTControlPlane - request/reply surface for the engine

Bounded Context: MQTT connection management + request reception
Responsibilities:
  - MQTT connection lifecycle (connect, disconnect)
  - Request reception (subscribe to request topic)
  - Reply publishing (request_id correlated)
  - Status publishing (retained)
  - Command delegation to CommandRegistry

QoS Policy:
  - Requests / replies: QoS 1 (at-least-once delivery)
  - Status: QoS 1 + retained (last status persisted)

Threading:
  - MQTT client runs own background thread (loop_start/loop_stop)
  - Callbacks (_on_connect, _on_message) run in MQTT thread
  - Command handlers run in MQTT thread (keep them fast!)
"""

import json
import logging
from datetime import datetime, timezone
from threading import Event
from typing import Any, Dict, Optional

import paho.mqtt.client as mqtt

from hotspot_zone import ValidationError

from .registry import CommandRegistry, CommandNotAvailableError

logger = logging.getLogger(__name__)


def build_reply(command: str, request_id: Optional[str], registry: CommandRegistry,
                command_data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Execute a request and wrap the outcome in a reply envelope.

    Validation errors and unknown commands become structured errors;
    unexpected failures are surfaced as errors too, never as empty results.
    """
    reply: Dict[str, Any] = {'request_id': request_id, 'command': command}
    try:
        reply['result'] = registry.execute(command, command_data)
        reply['ok'] = True
    except ValidationError as e:
        reply['ok'] = False
        reply['error'] = {'reason': e.reason}
    except CommandNotAvailableError as e:
        reply['ok'] = False
        reply['error'] = {'reason': str(e)}
    except Exception as e:
        logger.error(f"❌ Command '{command}' failed: {e}", exc_info=True)
        reply['ok'] = False
        reply['error'] = {'reason': f"{type(e).__name__}: {e}"}
    return reply


class MQTTControlPlane:
    """
    MQTT Control Plane for receiving engine requests and publishing replies.

    Features:
      - QoS 1 for reliable request delivery
      - Replies on reply_topic (or the request's own reply_to)
      - Retained status messages (last status persisted)
      - CommandRegistry pattern for command execution

    Example:
        control_plane = MQTTControlPlane(
            broker_host="localhost",
            broker_port=1883,
            request_topic="hotspot/engine/engine_01/requests",
            reply_topic="hotspot/engine/engine_01/replies",
            status_topic="hotspot/engine/engine_01/status",
            client_id="hotspot_engine_01_control"
        )
        control_plane.command_registry.register('list_zones', service.list_zones, "List zones")

        if control_plane.connect(timeout=5.0):
            print("Connected to MQTT broker")
    """

    def __init__(
        self,
        broker_host: str,
        broker_port: int,
        request_topic: str,
        reply_topic: str,
        status_topic: str,
        client_id: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
        command_registry: Optional[CommandRegistry] = None,
    ):
        self.broker_host = broker_host
        self.broker_port = broker_port
        self.request_topic = request_topic
        self.reply_topic = reply_topic
        self.status_topic = status_topic
        self.client_id = client_id

        # MQTT client
        self.client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=client_id)
        self.client.on_connect = self._on_connect
        self.client.on_message = self._on_message
        self.client.on_disconnect = self._on_disconnect

        # Authentication
        if username and password:
            self.client.username_pw_set(username, password)

        # Connection synchronization
        self._connected = Event()
        self._running = False

        # Command registry
        self.command_registry = command_registry or CommandRegistry()

    def connect(self, timeout: float = 5.0) -> bool:
        """
        Connect to MQTT broker with timeout.

        Returns:
            True if connected successfully, False otherwise
        """
        try:
            logger.info(f"🔌 Connecting to MQTT broker: {self.broker_host}:{self.broker_port}")
            self.client.connect(self.broker_host, self.broker_port, keepalive=60)
            self.client.loop_start()
            self._running = True

            if self._connected.wait(timeout=timeout):
                logger.info("✅ MQTT Control Plane connected")
                return True
            else:
                logger.error(f"❌ Connection timeout after {timeout}s")
                return False

        except Exception as e:
            logger.error(f"❌ Error connecting to MQTT: {e}")
            return False

    def disconnect(self) -> None:
        """
        Disconnect from MQTT broker.

        Thread Safety: Safe to call multiple times
        """
        if self._running:
            logger.info("🔌 Disconnecting from MQTT broker")
            self.publish_status("disconnected")
            self.client.loop_stop()
            self.client.disconnect()
            self._running = False
            self._connected.clear()
            logger.info("✅ MQTT Control Plane disconnected")

    def publish_status(self, status: str) -> None:
        """
        Publish status update to status topic (QoS 1, retained).

        Args:
            status: Status string (e.g., "connected", "running", "stopped")
        """
        message = {
            "status": status,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "client_id": self.client_id,
            "commands": self.command_registry.get_help(),
        }

        try:
            self.client.publish(
                self.status_topic,
                json.dumps(message),
                qos=1,
                retain=True,
            )
            logger.debug(f"📤 Status published: {status}")
        except Exception as e:
            logger.error(f"❌ Error publishing status: {e}")

    def publish_reply(self, reply: Dict[str, Any], reply_to: Optional[str] = None) -> None:
        topic = reply_to or self.reply_topic
        try:
            self.client.publish(topic, json.dumps(reply, default=str), qos=1)
            logger.debug(f"📤 Reply published to {topic}: {reply.get('command')}")
        except Exception as e:
            logger.error(f"❌ Error publishing reply: {e}")

    # ===== MQTT Callbacks (run in MQTT thread) =====

    def _on_connect(self, client, userdata, flags, reason_code, properties):
        if not reason_code.is_failure:
            logger.info(f"✅ Connected to broker (rc={reason_code})")

            client.subscribe(self.request_topic, qos=1)
            logger.info(f"📥 Subscribed to: {self.request_topic} (QoS 1)")

            self.publish_status("connected")
            self._connected.set()
        else:
            logger.error(f"❌ Connection failed (rc={reason_code})")
            self._connected.clear()

    def _on_disconnect(self, client, userdata, flags, reason_code, properties):
        if reason_code.is_failure:
            logger.warning(f"⚠️ Unexpected disconnection (rc={reason_code})")
        else:
            logger.info("✅ Disconnected from broker")
        self._connected.clear()

    def _on_message(self, client, userdata, msg):
        """
        MQTT callback: request message received.

        Every well-formed request gets exactly one reply.
        """
        try:
            payload = msg.payload.decode('utf-8')
            logger.debug(f"📦 Request received: {payload}")

            command_data = json.loads(payload)
            if not isinstance(command_data, dict):
                logger.warning("⚠️ Request payload is not a JSON object")
                return

            command = str(command_data.get('command', '')).lower()
            if not command:
                logger.warning("⚠️ Empty command received")
                return

            logger.info(f"🎯 Executing command: {command}")
            reply = build_reply(
                command,
                command_data.get('request_id'),
                self.command_registry,
                command_data,
            )
            if not reply['ok']:
                logger.warning(f"⚠️ Command '{command}' rejected: {reply['error']['reason']}")

            self.publish_reply(reply, command_data.get('reply_to'))

        except json.JSONDecodeError as e:
            logger.error(f"❌ Error decoding JSON: {msg.payload} ({e})")
        except Exception as e:
            logger.error(f"❌ Error processing message: {e}", exc_info=True)
