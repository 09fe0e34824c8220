"""
Geofence Tracker Module
=======================

Transition detection for one user's location sample.

Design:
- Pure computation: (point, active zones, open zone ids) -> transitions
- Persisting the transitions is the caller's job (all or nothing)
- "Approaching" is derived on every call, never stored

States per (user, zone): outside -> inside (entry) -> outside (exit).
"""

from dataclasses import dataclass
from typing import Iterable, Set, Tuple

from hotspot_zone.geometry.detector import ZoneDetector
from hotspot_zone.geometry.shapes import Coordinate
from hotspot_zone.models import HotspotZone


@dataclass(frozen=True)
class ZoneTransitions:
    """
    Result of evaluating one location sample.

    Attributes:
        inside: Active zones containing the point (ordered by id)
        entered: Zones in `inside` with no open tracking row
        exited_zone_ids: Open rows whose zone no longer contains the point
        approaching: (zone, distance_m) pairs, nearest first
    """

    inside: Tuple[HotspotZone, ...]
    entered: Tuple[HotspotZone, ...]
    exited_zone_ids: Tuple[int, ...]
    approaching: Tuple[Tuple[HotspotZone, float], ...] = ()


class GeofenceTracker:
    """
    Computes entries, exits and approaching zones for a location update.

    Usage:
        tracker = GeofenceTracker(approach_distance_m=2000)
        transitions = tracker.evaluate(point, active_zones, open_zone_ids, is_premium)
    """

    def __init__(self, approach_distance_m: float = 2000.0):
        if approach_distance_m <= 0:
            raise ValueError(f"approach_distance_m must be > 0, got {approach_distance_m}")
        self.approach_distance_m = approach_distance_m

    def evaluate(
        self,
        point: Coordinate,
        active_zones: Iterable[HotspotZone],
        open_zone_ids: Set[int],
        include_approaching: bool = False,
    ) -> ZoneTransitions:
        """
        Compare the zones containing point against the user's open rows.

        Args:
            point: Fresh location sample
            active_zones: Currently active zones
            open_zone_ids: Zone ids with an open tracking row for the user
            include_approaching: Compute approaching zones (premium users)

        Returns:
            ZoneTransitions
        """
        zones = [zone for zone in active_zones if zone.is_active]
        inside = ZoneDetector.zones_containing(point, zones)
        inside_ids = {zone.id for zone in inside}

        entered = tuple(zone for zone in inside if zone.id not in open_zone_ids)
        exited = tuple(sorted(zone_id for zone_id in open_zone_ids if zone_id not in inside_ids))

        approaching = ()
        if include_approaching:
            approaching = tuple(ZoneDetector.zones_approaching(
                point,
                zones,
                self.approach_distance_m,
                exclude_ids=inside_ids | set(open_zone_ids),
            ))

        return ZoneTransitions(
            inside=tuple(inside),
            entered=entered,
            exited_zone_ids=exited,
            approaching=approaching,
        )
