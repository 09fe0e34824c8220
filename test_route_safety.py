"""
Test Route Safety Scoring (In-Memory Stores)
============================================

Safety score, route reports, segment profile, alternative routes and
real-time journey alerts.

Usage:
    pytest test_route_safety.py
"""

import itertools
import random
from datetime import datetime, timedelta, timezone

import pytest

from hotspot_engine import (
    InMemoryIncidentStore,
    InMemoryZoneStore,
    RouteConfig,
    RouteSafetyScorer,
)
from hotspot_zone import (
    Coordinate,
    HotspotZone,
    Incident,
    ValidationError,
    calculate_safety_score,
    safety_level,
)

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
ORIGIN = Coordinate(-26.2041, 28.0473)
DESTINATION = Coordinate(-26.1076, 28.0567)

_ids = itertools.count(1)


def incident(incident_type, point, minutes_ago=60, expires_at=None):
    return Incident(
        id=f"inc-{next(_ids):04d}",
        type=incident_type,
        latitude=point.lat,
        longitude=point.lon,
        created_at=NOW - timedelta(minutes=minutes_ago),
        expires_at=expires_at,
    )


def zone(zone_id, risk_level, center, radius=1000, is_active=True, zone_type="mugging"):
    return HotspotZone(
        id=zone_id,
        zone_type=zone_type,
        center_lat=center.lat,
        center_lon=center.lon,
        radius_meters=radius,
        incident_count=10,
        risk_level=risk_level,
        is_active=is_active,
    )


def near(point, dlat=0.0, dlon=0.0):
    return Coordinate(point.lat + dlat, point.lon + dlon)


def make_scorer(incidents=(), zones=()):
    return RouteSafetyScorer(
        InMemoryIncidentStore(incidents),
        InMemoryZoneStore(zones),
        RouteConfig(),
        clock=lambda: NOW,
    )


def example_scorer():
    """8 qualifying incidents (2 hijacking, 4 mugging, 2 accident), 1 high + 1 medium zone."""
    qualifying = [
        incident("hijacking", near(ORIGIN, 0.001)),
        incident("hijacking", near(DESTINATION, -0.001)),
        incident("mugging", near(ORIGIN, 0.0, 0.002)),
        incident("mugging", near(ORIGIN, -0.002)),
        incident("mugging", near(DESTINATION, 0.0, -0.003)),
        incident("mugging", near(DESTINATION, 0.004)),
        incident("accident", ORIGIN),
        incident("accident", DESTINATION, minutes_ago=47 * 60),
    ]
    midpoint = Coordinate((ORIGIN.lat + DESTINATION.lat) / 2, (ORIGIN.lon + DESTINATION.lon) / 2)
    ignored = [
        incident("hijacking", near(ORIGIN, 0.001), minutes_ago=72 * 60),           # too old
        incident("mugging", near(ORIGIN, 0.001), expires_at=NOW - timedelta(hours=1)),  # expired
        incident("mugging", midpoint),                                              # far from endpoints
    ]
    zones = [
        zone(1, "high", near(ORIGIN, 0.01)),         # ~1.1 km, within 1000 + 1000
        zone(2, "medium", near(DESTINATION, -0.015)),  # ~1.7 km
        zone(3, "critical", midpoint),               # far from both endpoints
        zone(4, "critical", ORIGIN, is_active=False),
    ]
    return make_scorer(qualifying + ignored, zones)


def test_example_route_scores_69_moderate():
    report = example_scorer().analyze_route(ORIGIN, DESTINATION)

    assert report["safety_score"] == 69
    assert report["risk_level"] == "moderate"
    assert report["total_incidents"] == 8
    assert report["incident_counts"] == {"hijacking": 2, "mugging": 4, "accident": 2}
    assert report["hotspot_zones"] == {"total": 2, "critical": 0, "high": 1, "medium": 1, "low": 0}
    assert sorted(z["id"] for z in report["zones"]) == [1, 2]
    assert report["recommendations"] == ["No specific safety concerns detected"]
    assert report["radius_meters"] == 1000
    assert report["origin"] == {"lat": ORIGIN.lat, "lon": ORIGIN.lon}


def test_zone_summary_fields():
    report = example_scorer().analyze_route(ORIGIN, DESTINATION)
    summary = next(z for z in report["zones"] if z["id"] == 1)
    assert summary["type"] == "mugging"
    assert summary["risk_level"] == "high"
    assert summary["incident_count"] == 10
    assert summary["location"] == {"lat": ORIGIN.lat + 0.01, "lon": ORIGIN.lon}


def test_segments_partition_the_route():
    report = example_scorer().analyze_route(ORIGIN, DESTINATION)
    segments = report["segments"]

    assert [s["segment_number"] for s in segments] == [1, 2, 3, 4, 5]
    assert segments[0]["start_location"] == ORIGIN.to_dict()
    assert segments[-1]["end_location"]["lat"] == pytest.approx(DESTINATION.lat)
    assert segments[-1]["end_location"]["lon"] == pytest.approx(DESTINATION.lon)
    for previous, current in zip(segments, segments[1:]):
        assert previous["end_location"] == current["start_location"]

    # Origin-side incidents only reach the first segment
    assert segments[0]["incident_count"] > 0
    assert segments[2]["incident_count"] == 0
    assert segments[2]["safety_score"] == 100
    assert segments[0]["high_risk_zones"] == 1
    for segment in segments:
        assert segment["risk_level"] == safety_level(segment["safety_score"]).value


def test_score_is_order_invariant_and_clamped():
    incidents = [incident("mugging", ORIGIN) for _ in range(6)]
    zones = [zone(i, level, ORIGIN) for i, level in enumerate(["critical", "low", "high", "medium"], 1)]
    expected = calculate_safety_score(incidents, zones)
    assert expected == 100 - 12 - 20 - 2 - 10 - 5

    rng = random.Random(7)
    for _ in range(10):
        rng.shuffle(incidents)
        rng.shuffle(zones)
        assert calculate_safety_score(incidents, zones) == expected

    assert calculate_safety_score([], []) == 100
    many = [incident("hijacking", ORIGIN) for _ in range(60)]
    assert calculate_safety_score(many, zones) == 0


@pytest.mark.parametrize("score,level", [
    (100, "safe"), (80, "safe"), (79, "moderate"), (60, "moderate"),
    (59, "caution"), (40, "caution"), (39, "dangerous"), (0, "dangerous"),
])
def test_safety_level_buckets(score, level):
    assert safety_level(score).value == level


def test_recommendations_for_dangerous_route():
    incidents = [incident("hijacking", near(ORIGIN, 0.001 * i)) for i in range(6)]
    zones = [zone(1, "critical", ORIGIN), zone(2, "high", DESTINATION)]
    report = make_scorer(incidents, zones).analyze_route(ORIGIN, DESTINATION)

    assert report["safety_score"] == 100 - 12 - 20 - 10
    assert report["recommendations"] == [
        "Consider taking an alternative route",
        "1 critical hotspot zone(s) detected on this route",
        "High hijacking activity reported on this route",
    ]


def test_recommendations_for_safe_route():
    report = make_scorer().analyze_route(ORIGIN, DESTINATION)
    assert report["safety_score"] == 100
    assert report["risk_level"] == "safe"
    assert report["recommendations"] == ["Route appears safe based on recent activity"]


def test_custom_radius_changes_qualification():
    incidents = [incident("mugging", near(ORIGIN, 0.02))]   # ~2.2 km
    scorer = make_scorer(incidents)
    assert scorer.analyze_route(ORIGIN, DESTINATION)["total_incidents"] == 0
    assert scorer.analyze_route(ORIGIN, DESTINATION, 3000)["total_incidents"] == 1


@pytest.mark.parametrize("radius", [0, -5, "far", True])
def test_invalid_radius_rejected(radius):
    with pytest.raises(ValidationError) as exc:
        make_scorer().analyze_route(ORIGIN, DESTINATION, radius)
    assert exc.value.reason == "invalid radius"


def test_alternatives_ranked_with_direct_route():
    result = example_scorer().suggest_alternative_routes(ORIGIN, DESTINATION)

    direct = result["direct_route"]
    assert direct["route_name"] == "Direct Route"
    assert direct["safety_score"] == 69
    assert direct["estimated_detour_km"] == 0
    assert direct["total_zones"] == 2

    alternatives = result["alternative_routes"]
    assert sorted(r["route_name"] for r in alternatives) == [
        "Eastern Route", "Northern Route", "Southern Route",
    ]
    scores = [r["safety_score"] for r in alternatives]
    assert scores == sorted(scores, reverse=True)
    assert result["recommendation"] == "Direct route is the safest option"

    north = next(r for r in alternatives if r["route_name"] == "Northern Route")
    waypoint = north["waypoints"][1]
    mid_lat = (ORIGIN.lat + DESTINATION.lat) / 2
    assert waypoint["lat"] == pytest.approx(mid_lat + abs(DESTINATION.lat - ORIGIN.lat) * 0.1)
    assert north["waypoints"][0] == ORIGIN.to_dict()
    assert north["waypoints"][2] == DESTINATION.to_dict()
    assert north["estimated_detour_km"] >= 0
    assert north["estimated_detour_km"] == round(north["estimated_detour_km"], 1)


def test_alternative_recommended_when_direct_is_dangerous():
    # Every incident sits at the origin: the direct route pays for all of
    # them once, each detour only on its first leg.
    incidents = [incident("mugging", ORIGIN) for _ in range(25)]
    result = make_scorer(incidents).suggest_alternative_routes(ORIGIN, DESTINATION)

    assert result["direct_route"]["safety_score"] == 50
    best = result["alternative_routes"][0]
    assert best["safety_score"] == 75
    assert best["total_incidents"] == 25
    assert result["recommendation"] == "Consider taking an alternative route for better safety"


def test_realtime_alerts_prioritise_hijackings_and_critical_zones():
    current = ORIGIN
    incidents = [
        incident("hijacking", near(current, 0.018), minutes_ago=5),   # ~2 km, recent
        incident("mugging", near(current, -0.005), minutes_ago=3),
        incident("mugging", near(current, 0.001), minutes_ago=30),    # not recent
    ]
    zones = [
        zone(1, "high", near(current, 0.0, 0.012)),
        zone(2, "critical", near(current, 0.0135)),                  # ~1.5 km
    ]
    update = make_scorer(incidents, zones).realtime_updates(current, DESTINATION)

    assert [i["type"] for i in update["recent_incidents"]] == ["mugging", "hijacking"]
    hijacking = update["recent_incidents"][1]
    assert hijacking["minutes_ago"] == 5
    assert 1900 <= hijacking["distance_meters"] <= 2100

    assert [z["id"] for z in update["approaching_zones"]] == [1, 2]
    assert update["alerts"] == [
        "⚠️ Approaching CRITICAL hotspot zone in 1.5km - Consider alternative route",
        "⚠️ 1 hijacking(s) reported nearby in the last 10 minutes",
    ]
    assert update["remaining_route"]["total_incidents"] == 2


def test_realtime_generic_alerts():
    current = ORIGIN
    incidents = [incident("accident", near(current, 0.002), minutes_ago=2)]
    zones = [zone(1, "high", near(current, 0.0135))]
    update = make_scorer(incidents, zones).realtime_updates(current, DESTINATION)

    assert update["alerts"] == [
        "Approaching high risk zone in 1.5km",
        "1 incident(s) reported nearby recently",
    ]


def test_realtime_excludes_entered_and_distant_zones():
    current = ORIGIN
    zones = [
        zone(1, "critical", near(current, 0.005)),   # inside (~550 m < radius)
        zone(2, "critical", near(current, 0.03)),    # ~3.3 km, beyond 2 km
    ]
    update = make_scorer(zones=zones).realtime_updates(current, DESTINATION)

    assert update["approaching_zones"] == []
    assert update["recent_incidents"] == []
    assert update["alerts"] == ["No immediate safety concerns detected"]
