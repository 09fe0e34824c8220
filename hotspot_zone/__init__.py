"""
Hotspot Zone Domain
===================

Bounded Context: Geospatial incident domain (pure, no I/O).

Architecture:

    hotspot_zone/
    ├── models.py          # Incident, HotspotZone, UserZoneTracking, User
    ├── errors.py          # ValidationError, InvalidTopicError
    ├── geometry/          # Pure geometry (immutable, stateless)
    │   ├── shapes.py      # Coordinate, haversine
    │   ├── geohash.py     # Topic key codec
    │   └── detector.py    # ZoneDetector (containment / approaching)
    │
    └── analytics/         # Scoring & clustering (pure)
        ├── risk.py        # RiskPolicy, calculate_safety_score
        ├── clustering.py  # IncidentClusterer (DBSCAN)
        └── tracker.py     # GeofenceTracker (entry/exit detection)

Usage:

    from hotspot_zone import Coordinate, GeofenceTracker

    tracker = GeofenceTracker(approach_distance_m=2000)
    transitions = tracker.evaluate(
        Coordinate(-26.2041, 28.0473), active_zones, open_zone_ids
    )
"""

from hotspot_zone.errors import ValidationError, InvalidTopicError
from hotspot_zone.models import (
    Incident,
    IncidentType,
    HotspotZone,
    RiskLevel,
    User,
    UserZoneTracking,
    utc_now,
)
from hotspot_zone.geometry import Coordinate, ZoneDetector, haversine_m, geohash
from hotspot_zone.analytics import (
    RiskPolicy,
    SafetyLevel,
    calculate_safety_score,
    safety_level,
    IncidentClusterer,
    IncidentCluster,
    GeofenceTracker,
    ZoneTransitions,
)

__all__ = [
    "ValidationError",
    "InvalidTopicError",
    "Incident",
    "IncidentType",
    "HotspotZone",
    "RiskLevel",
    "User",
    "UserZoneTracking",
    "utc_now",
    "Coordinate",
    "ZoneDetector",
    "haversine_m",
    "geohash",
    "RiskPolicy",
    "SafetyLevel",
    "calculate_safety_score",
    "safety_level",
    "IncidentClusterer",
    "IncidentCluster",
    "GeofenceTracker",
    "ZoneTransitions",
]

__version__ = "1.0.0"
