"""
MQTT client wrapper for sending requests to a running Hotspot Engine.

Handles MQTT connection, request publishing, reply correlation and
disconnection.
"""

import json
import threading
import uuid
from typing import Any, Dict, Optional

import paho.mqtt.client as mqtt


class MQTTRequestClient:
    """
    MQTT client for engine requests.

    Publishes a request with QoS 1 and waits for the reply carrying the
    same request_id on a private reply topic.
    """

    def __init__(
        self,
        broker: str = "localhost",
        port: int = 1883,
        username: Optional[str] = None,
        password: Optional[str] = None
    ):
        """
        Initialize MQTT request client.

        Args:
            broker: MQTT broker host
            port: MQTT broker port
            username: Optional MQTT username
            password: Optional MQTT password
        """
        self.broker = broker
        self.port = port

        self.client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2)

        if username and password:
            self.client.username_pw_set(username, password)

        self._reply: Optional[Dict[str, Any]] = None
        self._request_id: Optional[str] = None
        self._received = threading.Event()
        self.client.on_message = self._on_message

    def send_request(
        self,
        topic: str,
        request: Dict[str, Any],
        reply_topic: str,
        timeout: float = 10.0,
        qos: int = 1
    ) -> Dict[str, Any]:
        """
        Send a request and wait for its reply.

        Args:
            topic: Engine request topic (e.g., "hotspot/engine/engine_01/requests")
            request: Request dictionary; must contain 'command'
            reply_topic: Topic the engine should reply on
            timeout: Seconds to wait for the reply
            qos: Quality of Service (default: 1)

        Returns:
            Reply envelope {request_id, command, ok, result | error}

        Raises:
            ConnectionError: If unable to connect to MQTT broker
            TimeoutError: If no reply arrives within timeout
        """
        self._request_id = request.get('request_id') or uuid.uuid4().hex
        message = dict(request, request_id=self._request_id, reply_to=reply_topic)
        self._reply = None
        self._received.clear()

        try:
            self.client.connect(self.broker, self.port, keepalive=60)
        except ConnectionRefusedError:
            raise ConnectionError(
                f"Unable to connect to MQTT broker at {self.broker}:{self.port}. "
                "Is mosquitto running?"
            )

        self.client.loop_start()
        try:
            self.client.subscribe(reply_topic, qos=qos)
            result = self.client.publish(topic, json.dumps(message), qos=qos)
            result.wait_for_publish()

            if not self._received.wait(timeout):
                raise TimeoutError(
                    f"No reply to '{request.get('command')}' within {timeout}s"
                )
            return self._reply
        finally:
            self.client.loop_stop()
            self.client.disconnect()

    def _on_message(self, client, userdata, msg):
        try:
            reply = json.loads(msg.payload.decode('utf-8'))
        except (UnicodeDecodeError, json.JSONDecodeError):
            return
        if isinstance(reply, dict) and reply.get('request_id') == self._request_id:
            self._reply = reply
            self._received.set()
