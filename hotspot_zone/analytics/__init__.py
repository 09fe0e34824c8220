"""
Analytics Layer
===============

Bounded Context: Risk scoring, clustering and transition detection.

Responsibilities:
- Risk policy and safety score (pure)
- DBSCAN incident clustering (pure, numpy + scikit-learn)
- Geofence transition detection (pure)
"""

from hotspot_zone.analytics.risk import (
    RiskPolicy,
    SafetyLevel,
    ZONE_PENALTIES,
    calculate_safety_score,
    safety_level,
)
from hotspot_zone.analytics.clustering import IncidentClusterer, IncidentCluster
from hotspot_zone.analytics.tracker import GeofenceTracker, ZoneTransitions

__all__ = [
    "RiskPolicy",
    "SafetyLevel",
    "ZONE_PENALTIES",
    "calculate_safety_score",
    "safety_level",
    "IncidentClusterer",
    "IncidentCluster",
    "GeofenceTracker",
    "ZoneTransitions",
]
