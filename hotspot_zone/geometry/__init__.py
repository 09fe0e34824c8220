"""
Geometry Layer
==============

Bounded Context: Pure geographic shapes and spatial queries.

Responsibilities:
- Coordinates and great-circle distance
- Circle containment
- Geohash encoding, neighbors and topic key validation
- NO state, NO persistence, NO messaging
"""

from hotspot_zone.geometry.shapes import Coordinate, haversine_m, EARTH_RADIUS_M
from hotspot_zone.geometry.detector import ZoneDetector
from hotspot_zone.geometry import geohash

__all__ = [
    "Coordinate",
    "haversine_m",
    "EARTH_RADIUS_M",
    "ZoneDetector",
    "geohash",
]
