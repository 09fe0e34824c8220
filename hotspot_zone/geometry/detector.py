"""
Zone Detector Module
====================

Stateless spatial queries - applies zone geometry to a location.

Design:
- Pure functions (no state)
- Works on any zone record exposing center_lat, center_lon, radius_meters
- Returns results sorted deterministically (distance, then id)
- Thread-safe (no mutations)
"""

from typing import Iterable, List, Set, Tuple, TYPE_CHECKING

from hotspot_zone.geometry.shapes import Coordinate, haversine_m

if TYPE_CHECKING:
    from hotspot_zone.models import HotspotZone


class ZoneDetector:
    """
    Stateless detector for applying circular zones to a point.

    Design Philosophy:
    - All methods are static (no instance state)
    - Callers pass only the zones they consider active
    """

    @staticmethod
    def distance_to_zone(point: Coordinate, zone: 'HotspotZone') -> float:
        """Haversine distance from point to the zone center, in meters."""
        return haversine_m(point.lat, point.lon, zone.center_lat, zone.center_lon)

    @staticmethod
    def zones_containing(
        point: Coordinate,
        zones: Iterable['HotspotZone'],
    ) -> List['HotspotZone']:
        """
        Zones whose circle contains the point (distance <= radius).

        Returns:
            Matching zones ordered by id
        """
        inside = [
            zone for zone in zones
            if ZoneDetector.distance_to_zone(point, zone) <= zone.radius_meters
        ]
        return sorted(inside, key=lambda z: z.id)

    @staticmethod
    def zones_approaching(
        point: Coordinate,
        zones: Iterable['HotspotZone'],
        approach_distance_m: float,
        exclude_ids: Set[int] = frozenset(),
    ) -> List[Tuple['HotspotZone', float]]:
        """
        Zones near but not containing the point.

        A zone qualifies when radius < distance <= approach_distance_m.

        Args:
            point: Current location
            zones: Candidate zones
            approach_distance_m: Look-ahead distance from the zone center
            exclude_ids: Zones to skip (e.g. already entered)

        Returns:
            (zone, distance_m) pairs, nearest first
        """
        result = []
        for zone in zones:
            if zone.id in exclude_ids:
                continue
            distance = ZoneDetector.distance_to_zone(point, zone)
            if zone.radius_meters < distance <= approach_distance_m:
                result.append((zone, distance))
        result.sort(key=lambda pair: (pair[1], pair[0].id))
        return result
