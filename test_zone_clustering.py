"""
Test Zone Clustering (In-Memory Stores)
=======================================

Incident clustering into hotspot zones: coverage, idempotence,
dissolution, nearest-center tie-break and risk classification.

Usage:
    pytest test_zone_clustering.py
"""

import itertools
from datetime import datetime, timedelta, timezone

import pytest

from hotspot_engine import (
    ClusteringConfig,
    ClusteringScheduler,
    InMemoryIncidentStore,
    InMemoryZoneStore,
    RunStatus,
    ScanTimeoutError,
    StoreUnavailableError,
    ZoneClusteringEngine,
)
from hotspot_mqtt import InProcessBus, ZoneEventPublisher, ZONES_TOPIC, create_logger
from hotspot_zone import (
    HotspotZone,
    Incident,
    IncidentClusterer,
    IncidentType,
    RiskLevel,
    RiskPolicy,
    haversine_m,
)

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
CENTER = (-26.2041, 28.0473)

# Offsets in degrees (~100 m apart), all within one DBSCAN neighborhood
OFFSETS = [
    (0.0, 0.0), (0.0009, 0.0), (-0.0009, 0.0), (0.0, 0.0009),
    (0.0, -0.0009), (0.0006, 0.0006), (-0.0006, -0.0006), (0.0006, -0.0006),
]

_ids = itertools.count(1)


def make_incidents(count, incident_type="mugging", center=CENTER, hours_ago=1):
    incidents = []
    for index in range(count):
        dlat, dlon = OFFSETS[index % len(OFFSETS)]
        incidents.append(Incident(
            id=f"inc-{next(_ids):04d}",
            type=incident_type,
            latitude=center[0] + dlat,
            longitude=center[1] + dlon,
            created_at=NOW - timedelta(hours=hours_ago, minutes=index),
        ))
    return incidents


class Clock:
    def __init__(self, now=NOW):
        self.now = now

    def __call__(self):
        return self.now


def make_engine(incidents, zones=(), clock=None, bus=None, timer=None):
    incident_store = InMemoryIncidentStore(incidents)
    zone_store = InMemoryZoneStore(zones)
    publisher = ZoneEventPublisher(bus, create_logger("test")) if bus else None
    kwargs = {}
    if timer is not None:
        kwargs['timer'] = timer
    engine = ZoneClusteringEngine(
        incident_store,
        zone_store,
        ClusteringConfig(),
        publisher=publisher,
        clock=clock or Clock(),
        **kwargs,
    )
    return engine, incident_store, zone_store


def test_dense_incidents_form_covering_zone():
    incidents = make_incidents(6)
    engine, _, zones = make_engine(incidents)

    result = engine.run_once()

    active = zones.list_active()
    assert len(result.created) == 1
    assert len(active) == 1
    zone = active[0]
    assert zone.zone_type == IncidentType.MUGGING
    assert zone.incident_count == 6
    assert zone.radius_meters >= 1000
    assert zone.risk_level == RiskLevel.MEDIUM

    centroid_lat = sum(i.latitude for i in incidents) / len(incidents)
    centroid_lon = sum(i.longitude for i in incidents) / len(incidents)
    assert haversine_m(zone.center_lat, zone.center_lon, centroid_lat, centroid_lon) <= zone.radius_meters
    for incident in incidents:
        assert haversine_m(zone.center_lat, zone.center_lon,
                           incident.latitude, incident.longitude) <= zone.radius_meters


def test_sparse_incidents_form_no_zone():
    engine, _, zones = make_engine(make_incidents(4))
    result = engine.run_once()
    assert result.created == []
    assert zones.list_all() == []


def test_types_cluster_independently():
    incidents = make_incidents(5, "mugging") + make_incidents(5, "hijacking")
    engine, _, zones = make_engine(incidents)

    engine.run_once()

    types = sorted(zone.zone_type.value for zone in zones.list_active())
    assert types == ["hijacking", "mugging"]


def test_rerun_on_unchanged_input_is_idempotent():
    bus = InProcessBus()
    events = []
    bus.subscribe(ZONES_TOPIC, lambda message: events.append(message.event))
    engine, _, zones = make_engine(make_incidents(7), bus=bus)

    engine.run_once()
    first = zones.list_all()
    events_after_first = list(events)

    second = engine.run_once()

    assert zones.list_all() == first
    assert second.created == [] and second.updated == [] and second.dissolved == []
    assert events == events_after_first == ["zone:created"]


def test_new_incident_updates_matched_zone():
    bus = InProcessBus()
    received = []
    bus.subscribe(ZONES_TOPIC, received.append)
    engine, incident_store, zones = make_engine(make_incidents(6), bus=bus)
    engine.run_once()
    zone_id = zones.list_active()[0].id

    for incident in make_incidents(2, hours_ago=0):
        incident_store.add(incident)
    result = engine.run_once()

    assert [z.id for z in result.updated] == [zone_id]
    assert zones.get(zone_id).incident_count == 8
    assert len(zones.list_all()) == 1
    assert received[-1].event == "zone:updated"
    assert received[-1].payload["incident_count"] == 8


def test_stale_zone_dissolves_and_stays_dissolved():
    clock = Clock()
    bus = InProcessBus()
    received = []
    bus.subscribe(ZONES_TOPIC, received.append)
    engine, incident_store, zones = make_engine(make_incidents(6), clock=clock, bus=bus)
    engine.run_once()
    zone_id = zones.list_active()[0].id

    # Every incident falls out of the 7-day window
    clock.now = NOW + timedelta(days=8)
    result = engine.run_once()

    assert [z.id for z in result.dissolved] == [zone_id]
    assert zones.get(zone_id).is_active is False
    assert zones.list_active() == []
    assert received[-1].event == "zone:dissolved"
    assert received[-1].payload["is_active"] is False

    # Same stale incidents never bring it back
    again = engine.run_once()
    assert again.created == [] and again.updated == [] and again.dissolved == []
    assert zones.get(zone_id).is_active is False

    # Fresh incidents in the same place form a new zone with a new id
    for incident in make_incidents(5, hours_ago=1):
        incident_store.add(replace_created(incident, clock.now - timedelta(hours=1)))
    engine.run_once()
    active = zones.list_active()
    assert len(active) == 1
    assert active[0].id != zone_id
    assert zones.get(zone_id).is_active is False


def replace_created(incident, created_at):
    return Incident(
        id=incident.id,
        type=incident.type,
        latitude=incident.latitude,
        longitude=incident.longitude,
        created_at=created_at,
    )


def test_zone_below_threshold_dissolves():
    """A zone whose remaining incidents drop below 3 is deactivated."""
    clock = Clock()
    engine, incident_store, zones = make_engine([], clock=clock)
    zones.create(HotspotZone(
        id=0,
        zone_type="mugging",
        center_lat=CENTER[0],
        center_lon=CENTER[1],
        incident_count=6,
        risk_level="medium",
    ))
    for incident in make_incidents(2):
        incident_store.add(incident)

    result = engine.run_once()

    assert len(result.dissolved) == 1
    assert result.dissolved[0].incident_count == 2
    assert zones.list_active() == []


def test_unmatched_zone_with_enough_incidents_is_refreshed():
    engine, incident_store, zones = make_engine([])
    zone = zones.create(HotspotZone(
        id=0,
        zone_type="mugging",
        center_lat=CENTER[0],
        center_lon=CENTER[1],
        incident_count=12,
        risk_level="high",
    ))
    for incident in make_incidents(3):
        incident_store.add(incident)

    engine.run_once()

    refreshed = zones.get(zone.id)
    assert refreshed.is_active is True
    assert refreshed.incident_count == 3
    assert refreshed.risk_level == RiskLevel.LOW


def test_cluster_matches_nearest_zone():
    near_center = (CENTER[0] + 0.001, CENTER[1])   # ~110 m
    far_center = (CENTER[0] + 0.005, CENTER[1])    # ~550 m
    existing = [
        HotspotZone(id=1, zone_type="mugging", center_lat=far_center[0],
                    center_lon=far_center[1], incident_count=5),
        HotspotZone(id=2, zone_type="mugging", center_lat=near_center[0],
                    center_lon=near_center[1], incident_count=5),
    ]
    engine, _, zones = make_engine(make_incidents(6), zones=existing)

    result = engine.run_once()

    assert result.created == []
    assert [z.id for z in result.updated] == [2]
    assert zones.get(2).incident_count == 6
    assert zones.get(1).is_active is False


def test_equidistant_zones_tie_break_on_lowest_id():
    existing = [
        HotspotZone(id=7, zone_type="mugging", center_lat=CENTER[0] + 0.002,
                    center_lon=CENTER[1], incident_count=5),
        HotspotZone(id=4, zone_type="mugging", center_lat=CENTER[0] + 0.002,
                    center_lon=CENTER[1], incident_count=5),
    ]
    engine, _, zones = make_engine(make_incidents(6), zones=existing)

    result = engine.run_once()

    assert [z.id for z in result.updated] == [4]
    assert zones.get(4).is_active is True
    assert zones.get(4).incident_count == 6
    assert zones.get(7).is_active is False


def test_other_type_zone_is_never_matched():
    existing = [HotspotZone(id=1, zone_type="hijacking", center_lat=CENTER[0],
                            center_lon=CENTER[1], incident_count=5)]
    engine, _, zones = make_engine(make_incidents(6, "mugging"), zones=existing)

    result = engine.run_once()

    assert len(result.created) == 1
    assert result.created[0].zone_type == IncidentType.MUGGING
    assert zones.get(1).is_active is False


def test_overlapping_unmatched_zones_share_no_incident():
    """Unclaimed incidents count toward their nearest same-type zone only."""
    existing = [
        HotspotZone(id=1, zone_type="mugging", center_lat=CENTER[0],
                    center_lon=CENTER[1], incident_count=9, risk_level="medium"),
        HotspotZone(id=2, zone_type="mugging", center_lat=CENTER[0] + 0.004,
                    center_lon=CENTER[1], incident_count=9, risk_level="medium"),
    ]
    # Too few to form a cluster, but inside both zones
    incidents = make_incidents(4)
    for incident in incidents:
        assert haversine_m(existing[1].center_lat, existing[1].center_lon,
                           incident.latitude, incident.longitude) <= existing[1].radius_meters
    engine, _, zones = make_engine(incidents, zones=existing)

    result = engine.run_once()

    assert result.created == []
    assert [z.id for z in result.updated] == [1]
    assert zones.get(1).incident_count == 4
    assert zones.get(1).risk_level == RiskLevel.LOW
    assert [z.id for z in result.dissolved] == [2]
    assert zones.get(2).incident_count == 0
    assert sum(z.incident_count for z in zones.list_all()) == len(incidents)


def test_scan_timeout_writes_nothing():
    ticks = itertools.count(0, 100)
    engine, _, zones = make_engine(make_incidents(6), timer=lambda: next(ticks))

    with pytest.raises(ScanTimeoutError):
        engine.run_once()

    assert zones.list_all() == []


def test_clusterer_excludes_noise():
    members = make_incidents(5)
    outlier = make_incidents(1, center=(-26.30, 28.20))
    clusters = IncidentClusterer(neighborhood_m=1000, min_neighbors=5).cluster(members + outlier)

    assert len(clusters) == 1
    assert set(clusters[0].member_ids) == {i.id for i in members}


@pytest.mark.parametrize("recent", [True, False])
def test_risk_level_non_decreasing_in_count(recent):
    policy = RiskPolicy()
    last = NOW - timedelta(hours=1 if recent else 48)
    ranks = [policy.classify(count, last, NOW).rank for count in range(0, 40)]
    assert ranks == sorted(ranks)


def test_risk_thresholds():
    policy = RiskPolicy()
    recent = NOW - timedelta(hours=2)
    stale = NOW - timedelta(hours=30)
    assert policy.classify(5, recent, NOW) == RiskLevel.LOW
    assert policy.classify(6, recent, NOW) == RiskLevel.MEDIUM
    assert policy.classify(11, recent, NOW) == RiskLevel.HIGH
    assert policy.classify(20, recent, NOW) == RiskLevel.CRITICAL
    assert policy.classify(20, stale, NOW) == RiskLevel.HIGH
    assert policy.classify(25, None, NOW) == RiskLevel.HIGH


def test_invalid_risk_policy_rejected():
    with pytest.raises(ValueError):
        RiskPolicy(critical_threshold=5, high_threshold=11, medium_threshold=6)


class SaveFailsOnceZoneStore(InMemoryZoneStore):
    """Zone store whose first save() raises, after creates went through."""

    def __init__(self, zones=()):
        super().__init__(zones)
        self.save_failures = 1

    def save(self, zone):
        if self.save_failures:
            self.save_failures -= 1
            raise StoreUnavailableError("zone store down")
        return super().save(zone)


def test_partial_write_failure_still_announces_created_zone():
    stale = HotspotZone(id=1, zone_type="mugging", center_lat=-26.30,
                        center_lon=28.20, incident_count=6, risk_level="medium")
    zone_store = SaveFailsOnceZoneStore([stale])
    bus = InProcessBus()
    received = []
    bus.subscribe(ZONES_TOPIC, received.append)
    engine = ZoneClusteringEngine(
        InMemoryIncidentStore(make_incidents(6)),
        zone_store,
        ClusteringConfig(backoff_seconds=0),
        publisher=ZoneEventPublisher(bus, create_logger("test")),
        clock=Clock(),
    )

    outcome = ClusteringScheduler(engine).run_with_retry()

    assert outcome.status == RunStatus.COMPLETED
    assert outcome.attempts == 2
    assert [(z.id, z.is_active) for z in zone_store.list_all()] == [(1, False), (2, True)]
    assert [(m.event, m.payload["id"]) for m in received] == [
        ("zone:created", 2),
        ("zone:dissolved", 1),
    ]
