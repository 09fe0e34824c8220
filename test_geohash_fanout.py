"""
Test Geohash Fanout (In-Process Bus)
====================================

Geohash codec, topic key validation and apron broadcast of new incidents
to the incident cell and its neighbors, without a broker.

Usage:
    pytest test_geohash_fanout.py
"""

from datetime import datetime, timezone

import pytest

from hotspot_control import GeohashFanoutRouter, incident_topic
from hotspot_mqtt import INCIDENT_NEW, InProcessBus
from hotspot_zone import Incident, InvalidTopicError, ValidationError, geohash

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def make_incident(incident_id: str, lat: float, lon: float) -> Incident:
    return Incident(
        id=incident_id,
        type="mugging",
        latitude=lat,
        longitude=lon,
        created_at=NOW,
    )


def collector(received):
    def sink(message):
        received.append(message)
    return sink


def test_encode_known_values():
    assert geohash.encode(57.64911, 10.40744, 11) == "u4pruydqqvj"
    assert geohash.encode(42.6, -5.6, 5) == "ezs42"


def test_decode_contains_encoded_point():
    lat_lo, lat_hi, lon_lo, lon_hi = geohash.decode_bbox("ezs42")
    assert lat_lo <= 42.6 <= lat_hi
    assert lon_lo <= -5.6 <= lon_hi


def test_neighbors_are_adjacent_cells():
    cell = "ezs42"
    lat_lo, lat_hi, lon_lo, lon_hi = geohash.decode_bbox(cell)
    dlat = lat_hi - lat_lo
    dlon = lon_hi - lon_lo
    center_lat, center_lon = geohash.decode(cell)

    result = geohash.neighbors(cell)
    assert len(result) == 8
    assert len(set(result)) == 8
    assert cell not in result

    # n, e, s by bit arithmetic on the last character
    assert result[0] == "ezs48"
    assert result[2] == "ezs43"
    assert result[4] == "ezs40"

    for neighbor in result:
        assert len(neighbor) == len(cell)
        n_lat, n_lon = geohash.decode(neighbor)
        assert abs(n_lat - center_lat) == pytest.approx(dlat, abs=1e-9) or \
            abs(n_lat - center_lat) == pytest.approx(0.0, abs=1e-9)
        assert abs(n_lon - center_lon) == pytest.approx(dlon, abs=1e-9) or \
            abs(n_lon - center_lon) == pytest.approx(0.0, abs=1e-9)


def test_neighbors_wrap_antimeridian():
    cell = geohash.encode(0.01, 179.999, 6)
    east = geohash.neighbors(cell)[2]
    _, east_lon = geohash.decode(east)
    assert east_lon < 0


def test_neighbors_omitted_past_pole():
    cell = geohash.encode(89.999, 10.0, 6)
    result = geohash.neighbors(cell)
    assert len(result) == 5
    assert len(geohash.apron(cell)) == 6


@pytest.mark.parametrize("key", ["kekg", "kekgq4xy"])
def test_topic_key_wrong_length_rejected(key):
    router = GeohashFanoutRouter(InProcessBus())
    with pytest.raises(InvalidTopicError) as exc:
        router.join("session-1", key, lambda message: None)
    assert exc.value.reason == "invalid geohash"
    assert router.current_topic("session-1") is None


@pytest.mark.parametrize("key", ["KEKGQ4", "kekgqa", "kek gq", "kekgqi", "kekgq\n", "kekgq4\n"])
def test_topic_key_bad_characters_rejected(key):
    router = GeohashFanoutRouter(InProcessBus())
    with pytest.raises(InvalidTopicError):
        router.join("session-1", key, lambda message: None)


@pytest.mark.parametrize("key", ["kekgq", "kekgq4", "kekgq4x"])
def test_topic_key_accepted_lengths(key):
    bus = InProcessBus()
    router = GeohashFanoutRouter(bus)
    topic = router.join("session-1", key, lambda message: None)
    assert topic == incident_topic(key)
    assert bus.subscriber_count(topic) == 1


def test_broadcast_reaches_nine_topics():
    bus = InProcessBus()
    router = GeohashFanoutRouter(bus)
    incident = make_incident("inc-1", -26.2041, 28.0473)

    result = router.broadcast_new_incident(incident)

    assert result.geohash == geohash.encode(-26.2041, 28.0473, 6)
    assert len(result.topics) == 9
    assert result.topics[0] == incident_topic(result.geohash)
    assert result.total_deliveries == 0


def test_boundary_incident_delivered_to_adjacent_cell():
    """An incident just inside one cell reaches subscribers of the cell next door."""
    bus = InProcessBus()
    router = GeohashFanoutRouter(bus)

    home = geohash.encode(-26.2041, 28.0473, 6)
    lat_lo, lat_hi, lon_lo, lon_hi = geohash.decode_bbox(home)
    center_lat = (lat_lo + lat_hi) / 2
    east = geohash.encode(center_lat, lon_hi + 1e-6, 6)
    far_east = geohash.encode(center_lat, lon_hi + (lon_hi - lon_lo) * 1.5, 6)
    assert east in geohash.neighbors(home)
    assert far_east not in geohash.apron(home)

    home_inbox, east_inbox, far_inbox = [], [], []
    router.join("home", home, collector(home_inbox))
    router.join("east", east, collector(east_inbox))
    router.join("far", far_east, collector(far_inbox))

    incident = make_incident("inc-edge", center_lat, lon_hi - 1e-6)
    assert geohash.encode(incident.latitude, incident.longitude, 6) == home

    result = router.broadcast_new_incident(incident)

    assert len(home_inbox) == 1
    assert len(east_inbox) == 1
    assert far_inbox == []
    assert result.total_deliveries == 2
    assert east_inbox[0].event == INCIDENT_NEW
    assert east_inbox[0].payload["id"] == "inc-edge"
    assert east_inbox[0].payload["type"] == "mugging"


def test_join_replaces_previous_topic():
    bus = InProcessBus()
    router = GeohashFanoutRouter(bus)
    sink = lambda message: None

    router.join("session-1", "kekgq4", sink)
    router.join("session-1", "kekgq5", sink)

    assert router.current_topic("session-1") == "incidents:kekgq5"
    assert bus.subscriber_count("incidents:kekgq4") == 0
    assert bus.subscriber_count("incidents:kekgq5") == 1


def test_update_location_moves_subscription():
    bus = InProcessBus()
    router = GeohashFanoutRouter(bus)
    inbox = []

    start = router.update_location("session-1", -26.2041, 28.0473)
    assert router.current_topic("session-1") is None

    router.join("session-1", start, collector(inbox))
    same = router.update_location("session-1", -26.2041, 28.0473)
    assert same == start
    assert router.current_topic("session-1") == incident_topic(start)

    moved = router.update_location("session-1", -26.1076, 28.0567)
    assert moved != start
    assert router.current_topic("session-1") == incident_topic(moved)
    assert bus.subscriber_count(incident_topic(start)) == 0

    router.broadcast_new_incident(make_incident("inc-2", -26.1076, 28.0567))
    assert [m.payload["id"] for m in inbox] == ["inc-2"]


def test_update_location_missing_coordinates():
    router = GeohashFanoutRouter(InProcessBus())
    with pytest.raises(ValidationError) as exc:
        router.update_location("session-1", None, 28.0473)
    assert exc.value.reason == "missing latitude or longitude"


def test_leave_drops_subscription():
    bus = InProcessBus()
    router = GeohashFanoutRouter(bus)
    router.join("session-1", "kekgq4", lambda message: None)

    assert router.leave("session-1") is True
    assert router.leave("session-1") is False
    assert bus.subscriber_count("incidents:kekgq4") == 0


class FlakyBus(InProcessBus):
    """Fails publishing to one topic."""

    def __init__(self, failing_topic):
        super().__init__()
        self.failing_topic = failing_topic

    def publish(self, topic, event, payload):
        if topic == self.failing_topic:
            raise ConnectionError("broker unavailable")
        return super().publish(topic, event, payload)


def test_failing_topic_does_not_stop_other_topics():
    incident = make_incident("inc-3", -26.2041, 28.0473)
    home = geohash.encode(incident.latitude, incident.longitude, 6)
    bus = FlakyBus(incident_topic(home))
    router = GeohashFanoutRouter(bus)

    inbox = []
    neighbor = geohash.neighbors(home)[0]
    router.join("session-1", neighbor, collector(inbox))

    result = router.broadcast_new_incident(incident)

    assert result.deliveries[incident_topic(home)] == 0
    assert result.deliveries[incident_topic(neighbor)] == 1
    assert len(inbox) == 1
