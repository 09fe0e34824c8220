"""
Geographic Shapes Module
========================

Pure geographic representations - NO state, NO side effects.

Design:
- Immutable shapes (frozen dataclass pattern)
- Great-circle (haversine) distance, never flat-earth
- Thread-safe by design (immutability)
"""

import math
from dataclasses import dataclass
from typing import Any, Dict

from hotspot_zone.errors import ValidationError

EARTH_RADIUS_M = 6371000.0


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Great-circle distance between two WGS84 points.

    Returns:
        Distance in meters
    """
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)

    a = (
        math.sin(dphi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_M * c


@dataclass(frozen=True)
class Coordinate:
    """
    Immutable WGS84 point.

    Attributes:
        lat: Latitude in degrees, [-90, 90]
        lon: Longitude in degrees, [-180, 180]
    """

    lat: float
    lon: float

    def __post_init__(self):
        """Validate ranges."""
        if self.lat is None or self.lon is None:
            raise ValidationError("missing latitude or longitude")
        if isinstance(self.lat, bool) or isinstance(self.lon, bool):
            raise ValidationError("latitude and longitude must be numbers")
        if not isinstance(self.lat, (int, float)) or not isinstance(self.lon, (int, float)):
            raise ValidationError("latitude and longitude must be numbers")
        if math.isnan(self.lat) or math.isnan(self.lon):
            raise ValidationError("latitude and longitude must be numbers")
        if not -90.0 <= self.lat <= 90.0:
            raise ValidationError(f"latitude out of range: {self.lat}")
        if not -180.0 <= self.lon <= 180.0:
            raise ValidationError(f"longitude out of range: {self.lon}")

    def distance_to(self, other: 'Coordinate') -> float:
        """Haversine distance in meters."""
        return haversine_m(self.lat, self.lon, other.lat, other.lon)

    def to_dict(self) -> Dict[str, float]:
        return {'lat': self.lat, 'lon': self.lon}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Coordinate':
        """
        Build from {lat, lon} or {latitude, longitude}.

        Raises:
            ValidationError: Missing or out-of-range fields
        """
        if not isinstance(data, dict):
            raise ValidationError("missing latitude or longitude")
        lat = data.get('lat', data.get('latitude'))
        lon = data.get('lon', data.get('longitude'))
        if lat is None or lon is None:
            raise ValidationError("missing latitude or longitude")
        return cls(lat=lat, lon=lon)
