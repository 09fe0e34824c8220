"""
Test Bus Pub/Sub and Request Surface (Without Real Broker)
==========================================================

This script tests the publish/subscribe flow and the engine request
handlers without requiring a real MQTT broker, by delivering messages
through the in-process bus and executing commands directly.

Usage:
    pytest test_bus_pubsub.py
    python test_bus_pubsub.py
"""

import json
from datetime import datetime, timezone

from hotspot_control import CommandRegistry, build_reply
from hotspot_engine import (
    EngineConfig,
    EngineStores,
    HotspotEngineService,
    session_topic,
)
from hotspot_engine.stores import Dataset
from hotspot_mqtt import BusMessage, InProcessBus, LogEvent, MQTTBus, create_logger
from hotspot_zone import HotspotZone, Incident, RiskLevel, User, ValidationError

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
CENTER = {"lat": -26.2041, "lon": 28.0473}
DESTINATION = {"lat": -26.1076, "lon": 28.0567}


def make_service():
    dataset = Dataset(
        incidents=[
            Incident(
                id=f"inc-{index}",
                type="mugging",
                latitude=CENTER["lat"] + 0.001 * index,
                longitude=CENTER["lon"],
                created_at=NOW,
            )
            for index in range(3)
        ],
        users=[User(id="user-1")],
        zones=[
            HotspotZone(
                id=1,
                zone_type="mugging",
                center_lat=CENTER["lat"],
                center_lon=CENTER["lon"],
                incident_count=12,
                risk_level="high",
            )
        ],
    )
    bus = InProcessBus(logger=create_logger("test"))
    service = HotspotEngineService(
        config=EngineConfig(),
        stores=EngineStores.from_dataset(dataset),
        bus=bus,
        clock=lambda: NOW,
    )
    service.setup()
    return service, bus


def test_message_serialization():
    """Test that envelopes survive the JSON hop the MQTT bus makes."""
    print("\n" + "=" * 60)
    print("TEST: Message Serialization/Deserialization")
    print("=" * 60)

    message = BusMessage(
        topic="incidents:kekgq4",
        event="incident:new",
        payload={"id": "inc-1", "type": "mugging"},
    )
    json_str = json.dumps(message.to_dict())
    print(f"✓ Serialized to JSON ({len(json_str)} bytes)")

    reconstructed = BusMessage.from_dict(json.loads(json_str))
    assert reconstructed == message
    print("✓ Verification passed: Original == Reconstructed")

    try:
        BusMessage.from_dict({"event": "incident:new"})
    except ValueError as e:
        print(f"✓ Missing topic rejected: {e}")
    else:
        raise AssertionError("envelope without topic was accepted")


def test_subscriber_callbacks():
    """Test sink invocation, failure isolation and unsubscribe."""
    print("\n" + "=" * 60)
    print("TEST: Subscriber Callbacks")
    print("=" * 60)

    bus = InProcessBus(logger=create_logger("test"))
    received = []

    def broken_sink(message):
        raise RuntimeError("sink exploded")

    bus.subscribe("geofence:zones", broken_sink)
    subscription = bus.subscribe("geofence:zones", received.append)
    bus.subscribe("geofence:user:42", received.append)
    print("✓ Sinks subscribed")

    delivered = bus.publish("geofence:zones", "zone:created", {"id": 1})
    print(f"  📥 zone:created delivered to {delivered} sink(s)")
    assert delivered == 1
    assert [m.event for m in received] == ["zone:created"]
    assert received[0].topic == "geofence:zones"

    bus.unsubscribe(subscription)
    assert bus.publish("geofence:zones", "zone:updated", {"id": 1}) == 0
    assert bus.subscriber_count("geofence:zones") == 1
    assert len(received) == 1
    print("✓ Unsubscribed sink no longer receives messages")

    stats = bus.get_stats()
    assert stats["published"] == 2
    assert stats["delivered"] == 1

    print("\n" + "=" * 60)
    print("✅ ALL CALLBACK TESTS PASSED")
    print("=" * 60)


def test_mqtt_topic_mapping():
    """Logical topics map under the configured prefix."""
    print("\n" + "=" * 60)
    print("TEST: MQTT Topic Mapping")
    print("=" * 60)

    bus = MQTTBus(broker_host="localhost", topic_prefix="hotspot/", logger=create_logger("test"))
    assert bus.mqtt_topic("incidents:kekgq4") == "hotspot/incidents/kekgq4"
    assert bus.mqtt_topic("geofence:user:42") == "hotspot/geofence/user/42"
    assert bus.publish("incidents:kekgq4", "incident:new", {}) == 0
    print("✓ Topics mapped; publish while disconnected reports 0 deliveries")


def test_structured_log_entry_carries_bound_context():
    logger = create_logger("test", service_id="engine_01")
    child = logger.bind(user_id="user-1")

    entry = child.entry(
        "INFO", LogEvent.GEOFENCE_TRANSITION, "Zone entered",
        metadata={"zone_id": 1, "risk_level": RiskLevel.HIGH, "at": NOW},
    )

    assert entry["event"] == "geofence.transition"
    assert entry["context"] == {"service_id": "engine_01", "user_id": "user-1"}
    assert logger.context == {"service_id": "engine_01"}

    line = json.loads(json.dumps(entry, default=str))
    assert line["metadata"]["zone_id"] == 1


def test_build_reply_envelopes():
    registry = CommandRegistry()

    def reject(data):
        raise ValidationError("missing user_id")

    def explode(data):
        raise KeyError("boom")

    registry.register("echo", lambda data: data, "Echo")
    registry.register("reject", reject, "Reject")
    registry.register("explode", explode, "Explode")
    assert list(registry.get_help()) == ["echo", "explode", "reject"]

    ok = build_reply("echo", "req-1", registry, {"x": 1})
    assert ok == {"request_id": "req-1", "command": "echo", "result": {"x": 1}, "ok": True}

    invalid = build_reply("reject", "req-2", registry, {})
    assert invalid["ok"] is False
    assert invalid["error"] == {"reason": "missing user_id"}

    unknown = build_reply("nope", "req-3", registry, {})
    assert unknown["ok"] is False
    assert "nope" in unknown["error"]["reason"]

    failed = build_reply("explode", "req-4", registry, {})
    assert failed["ok"] is False
    assert failed["error"]["reason"].startswith("KeyError")
    assert "result" not in failed


def test_service_location_update_pushes_to_session():
    print("\n" + "=" * 60)
    print("TEST: location_update through the request surface")
    print("=" * 60)

    service, bus = make_service()
    pushed = []
    bus.subscribe(session_topic("s-1"), pushed.append)

    reply = service.execute("location_update", {
        "user_id": "user-1",
        "latitude": CENTER["lat"],
        "longitude": CENTER["lon"],
        "session_id": "s-1",
    })
    print(f"  📥 reply: {reply}")

    assert reply["zones_entered"] == 1
    assert reply["zones_exited"] == 0
    assert len(reply["geohash"]) == 6
    assert [m.event for m in pushed] == ["zone:entered"]
    assert pushed[0].payload["zone_id"] == 1


def test_service_incident_fanout_reaches_joined_session():
    service, bus = make_service()
    pushed = []
    bus.subscribe(session_topic("s-2"), pushed.append)

    update = service.execute("location_update", {
        "user_id": "user-1", "lat": CENTER["lat"], "lon": CENTER["lon"], "session_id": "s-2",
    })
    joined = service.execute("join_incidents", {"session_id": "s-2", "topic_key": update["geohash"]})
    assert joined["topic"] == f"incidents:{update['geohash']}"

    result = service.execute("broadcast_incident", {"incident": {
        "id": "inc-new",
        "type": "hijacking",
        "latitude": CENTER["lat"],
        "longitude": CENTER["lon"],
        "created_at": "2024-05-01T12:00:00+00:00",
    }})

    assert result["geohash"] == update["geohash"]
    assert len(result["topics"]) == 9
    assert result["deliveries"] == 1
    assert pushed[-1].event == "incident:new"
    assert pushed[-1].payload["id"] == "inc-new"

    assert service.execute("leave_incidents", {"session_id": "s-2"}) == {"left": True}


def test_service_route_and_zone_commands():
    service, _ = make_service()

    report = service.execute("analyze_route", {"origin": CENTER, "destination": DESTINATION})
    # 3 muggings (6) + high zone (10)
    assert report["safety_score"] == 84
    assert report["risk_level"] == "safe"

    alternatives = service.execute("alternative_routes", {
        "origin": CENTER, "destination": DESTINATION, "radius": 500,
    })
    assert len(alternatives["alternative_routes"]) == 3

    update = service.execute("realtime_update", {"current": CENTER, "destination": DESTINATION})
    assert update["alerts"] == ["3 incident(s) reported nearby recently"]

    zones = service.execute("list_zones")
    assert [z["id"] for z in zones["zones"]] == [1]


def test_service_validation_errors_become_replies():
    service, _ = make_service()
    registry = service.command_registry

    missing = build_reply("location_update", "r-1", registry, {"user_id": "user-1"})
    assert missing["error"] == {"reason": "missing latitude or longitude"}

    bad_radius = build_reply("analyze_route", "r-2", registry, {
        "origin": CENTER, "destination": DESTINATION, "radius": -1,
    })
    assert bad_radius["error"] == {"reason": "invalid radius"}

    bad_key = build_reply("join_incidents", "r-3", registry, {
        "session_id": "s-3", "topic_key": "abc",
    })
    assert bad_key["error"] == {"reason": "invalid geohash"}

    bad_incident = build_reply("broadcast_incident", "r-4", registry, {"incident": {"id": "x"}})
    assert bad_incident["ok"] is False
    assert bad_incident["error"]["reason"].startswith("invalid incident")


def main():
    """Run all tests."""
    print("\n🧪 Bus Pub/Sub Test Suite")
    print("Testing without real MQTT broker (in-process bus)\n")

    try:
        test_message_serialization()
        test_subscriber_callbacks()
        test_mqtt_topic_mapping()
        test_structured_log_entry_carries_bound_context()
        test_build_reply_envelopes()
        test_service_location_update_pushes_to_session()
        test_service_incident_fanout_reaches_joined_session()
        test_service_route_and_zone_commands()
        test_service_validation_errors_become_replies()

        print("\n" + "=" * 60)
        print("🎉 ALL TESTS PASSED")
        print("=" * 60)

    except AssertionError as e:
        print(f"\n❌ TEST FAILED: {e}")
        raise
    except Exception as e:
        print(f"\n❌ ERROR: {e}")
        raise


if __name__ == "__main__":
    main()
