"""
Route Safety Scorer - safety reports for a planned or ongoing journey

Operations:
  - analyze_route: composite score, breakdown by type / risk level,
    per-zone summaries, a 5-segment profile and recommendations
  - suggest_alternative_routes: north / south / east single-waypoint
    detours, ranked by averaged leg score
  - realtime_updates: re-score the remaining path and surface very recent
    nearby incidents plus zones ahead within the approach distance

Proximity is measured to the nearest route endpoint, not to the segment
itself. Incidents near the midpoint of a long route are under-counted.

Each request reads one snapshot of incidents and active zones, so every
leg and segment of a report is scored against the same data.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from hotspot_mqtt import LogEvent, StructuredLogger, create_logger
from hotspot_zone import (
    Coordinate,
    HotspotZone,
    Incident,
    IncidentType,
    RiskLevel,
    ValidationError,
    calculate_safety_score,
    haversine_m,
    safety_level,
    utc_now,
)

from .config import RouteConfig
from .stores import IncidentStore, ZoneStore

DIRECT_ROUTE = "Direct Route"
NORTHERN_ROUTE = "Northern Route"
SOUTHERN_ROUTE = "Southern Route"
EASTERN_ROUTE = "Eastern Route"

# Alternatives must beat the direct score by more than this to be recommended
ALTERNATIVE_MARGIN = 10


def endpoint_distance(lat: float, lon: float, start: Coordinate, end: Coordinate) -> float:
    """Distance in meters from a point to the nearer of two endpoints."""
    return min(
        haversine_m(lat, lon, start.lat, start.lon),
        haversine_m(lat, lon, end.lat, end.lon),
    )


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _validate_radius(radius_m: Any) -> float:
    if isinstance(radius_m, bool) or not isinstance(radius_m, (int, float)):
        raise ValidationError("invalid radius")
    if math.isnan(radius_m) or radius_m <= 0:
        raise ValidationError("invalid radius")
    return float(radius_m)


def _interpolate(start: Coordinate, end: Coordinate, fraction: float) -> Coordinate:
    return Coordinate(
        start.lat + (end.lat - start.lat) * fraction,
        start.lon + (end.lon - start.lon) * fraction,
    )


def _location(lat: float, lon: float) -> Dict[str, float]:
    return {'lat': lat, 'lon': lon}


@dataclass(frozen=True)
class RouteSegment:
    """One linear slice of a route with its own score."""
    segment_number: int
    start: Coordinate
    end: Coordinate
    safety_score: int
    incident_count: int
    zone_count: int
    critical_zones: int
    high_risk_zones: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'segment_number': self.segment_number,
            'start_location': self.start.to_dict(),
            'end_location': self.end.to_dict(),
            'safety_score': self.safety_score,
            'risk_level': safety_level(self.safety_score).value,
            'incident_count': self.incident_count,
            'hotspot_zones': self.zone_count,
            'critical_zones': self.critical_zones,
            'high_risk_zones': self.high_risk_zones,
        }


@dataclass(frozen=True)
class RouteReport:
    """Safety report for a single origin → destination path."""
    origin: Coordinate
    destination: Coordinate
    radius_m: float
    safety_score: int
    incidents: Tuple[Incident, ...]
    zones: Tuple[HotspotZone, ...]
    segments: Tuple[RouteSegment, ...]
    analyzed_at: datetime
    recommendations: List[str] = field(default_factory=list)

    @property
    def risk_level(self) -> str:
        return safety_level(self.safety_score).value

    @property
    def total_incidents(self) -> int:
        return len(self.incidents)

    @property
    def total_zones(self) -> int:
        return len(self.zones)

    def incident_counts(self) -> Dict[str, int]:
        counts = {t.value: 0 for t in IncidentType}
        for incident in self.incidents:
            counts[incident.type.value] += 1
        return counts

    def zone_counts(self) -> Dict[str, int]:
        counts = {'total': len(self.zones)}
        for level in (RiskLevel.CRITICAL, RiskLevel.HIGH, RiskLevel.MEDIUM, RiskLevel.LOW):
            counts[level.value] = sum(1 for z in self.zones if z.risk_level == level)
        return counts

    def to_dict(self) -> Dict[str, Any]:
        return {
            'origin': self.origin.to_dict(),
            'destination': self.destination.to_dict(),
            'radius_meters': self.radius_m,
            'safety_score': self.safety_score,
            'risk_level': self.risk_level,
            'total_incidents': self.total_incidents,
            'incident_counts': self.incident_counts(),
            'hotspot_zones': self.zone_counts(),
            'zones': [
                {
                    'id': zone.id,
                    'type': zone.zone_type.value,
                    'risk_level': zone.risk_level.value,
                    'incident_count': zone.incident_count,
                    'location': _location(zone.center_lat, zone.center_lon),
                }
                for zone in self.zones
            ],
            'segments': [segment.to_dict() for segment in self.segments],
            'recommendations': list(self.recommendations),
            'analyzed_at': self.analyzed_at.isoformat(),
        }


def recommendations_for(
    score: int,
    incidents: Sequence[Incident],
    zones: Sequence[HotspotZone],
) -> List[str]:
    """Textual advice for a route report, in check order."""
    advice = []
    if score < 60:
        advice.append("Consider taking an alternative route")

    critical = sum(1 for z in zones if z.risk_level == RiskLevel.CRITICAL)
    if critical:
        advice.append(f"{critical} critical hotspot zone(s) detected on this route")

    hijackings = sum(1 for i in incidents if i.type == IncidentType.HIJACKING)
    if hijackings > 3:
        advice.append("High hijacking activity reported on this route")

    if score >= 80:
        advice.append("Route appears safe based on recent activity")

    return advice or ["No specific safety concerns detected"]


def realtime_alerts(
    recent_incidents: Sequence[Dict[str, Any]],
    approaching_zones: Sequence[Dict[str, Any]],
) -> List[str]:
    """Alert lines for a journey update, zone alert first. Never empty."""
    alerts = []

    if approaching_zones:
        critical = [z for z in approaching_zones if z['risk_level'] == RiskLevel.CRITICAL.value]
        if critical:
            km = critical[0]['distance_meters'] / 1000
            alerts.append(
                f"⚠️ Approaching CRITICAL hotspot zone in {km:.1f}km - Consider alternative route"
            )
        else:
            zone = approaching_zones[0]
            km = zone['distance_meters'] / 1000
            alerts.append(f"Approaching {zone['risk_level']} risk zone in {km:.1f}km")

    if recent_incidents:
        hijackings = [i for i in recent_incidents if i['type'] == IncidentType.HIJACKING.value]
        if hijackings:
            alerts.append(
                f"⚠️ {len(hijackings)} hijacking(s) reported nearby in the last 10 minutes"
            )
        else:
            alerts.append(f"{len(recent_incidents)} incident(s) reported nearby recently")

    return alerts or ["No immediate safety concerns detected"]


class RouteSafetyScorer:
    """
    Scores routes against recent incidents and active hotspot zones.

    Example:
        scorer = RouteSafetyScorer(incident_store, zone_store, RouteConfig())
        report = scorer.analyze_route(Coordinate(-26.2041, 28.0473),
                                      Coordinate(-26.1076, 28.0567))
        report['safety_score'], report['risk_level']
    """

    def __init__(
        self,
        incident_store: IncidentStore,
        zone_store: ZoneStore,
        config: Optional[RouteConfig] = None,
        approach_distance_m: float = 2000.0,
        clock: Callable[[], datetime] = utc_now,
        logger: Optional[StructuredLogger] = None,
    ):
        self.incident_store = incident_store
        self.zone_store = zone_store
        self.config = config or RouteConfig()
        self.approach_distance_m = approach_distance_m
        self.clock = clock
        self.logger = logger or create_logger("route")

    # ===== Public API =====

    def analyze_route(
        self,
        origin: Coordinate,
        destination: Coordinate,
        radius_m: Optional[float] = None,
    ) -> Dict[str, Any]:
        """
        Safety report for the direct path.

        Raises:
            ValidationError: Bad radius
            StoreUnavailableError: Propagated from the stores
        """
        radius = self._radius(radius_m)
        now = self.clock()
        incidents, zones = self._snapshot(now)

        report = self._analyze(origin, destination, radius, incidents, zones, now)
        self._log("analyze", report)
        return report.to_dict()

    def suggest_alternative_routes(
        self,
        origin: Coordinate,
        destination: Coordinate,
        radius_m: Optional[float] = None,
    ) -> Dict[str, Any]:
        """
        Direct route plus three single-waypoint detours, best score first.

        Each detour is scored as the half-up rounded mean of its two legs.
        """
        radius = self._radius(radius_m)
        now = self.clock()
        incidents, zones = self._snapshot(now)

        direct = self._analyze(origin, destination, radius, incidents, zones, now)
        direct_summary = {
            'route_name': DIRECT_ROUTE,
            'waypoints': [origin.to_dict(), destination.to_dict()],
            'safety_score': direct.safety_score,
            'total_incidents': direct.total_incidents,
            'total_zones': direct.total_zones,
            'estimated_detour_km': 0,
        }

        alternatives = [
            self._via(name, origin, destination, waypoint, radius, incidents, zones, now)
            for name, waypoint in self._waypoints(origin, destination)
        ]
        alternatives.sort(key=lambda route: route['safety_score'], reverse=True)

        better = any(
            route['safety_score'] > direct.safety_score + ALTERNATIVE_MARGIN
            for route in alternatives
        )
        if direct.safety_score < 60 and better:
            recommendation = "Consider taking an alternative route for better safety"
        else:
            recommendation = "Direct route is the safest option"

        self._log("alternatives", direct, alternatives=len(alternatives))
        return {
            'direct_route': direct_summary,
            'alternative_routes': alternatives,
            'recommendation': recommendation,
        }

    def realtime_updates(
        self,
        current: Coordinate,
        destination: Coordinate,
        radius_m: Optional[float] = None,
    ) -> Dict[str, Any]:
        """
        Journey update from the current position.

        Returns:
            {remaining_route, recent_incidents, approaching_zones, alerts}
        """
        radius = self._radius(radius_m)
        now = self.clock()
        incidents, zones = self._snapshot(now)

        remaining = self._analyze(current, destination, radius, incidents, zones, now)

        recent_since = now - timedelta(minutes=self.config.recent_minutes)
        recent_radius = radius * self.config.recent_radius_factor
        recent = []
        for incident in incidents:
            if incident.created_at <= recent_since:
                continue
            distance = haversine_m(incident.latitude, incident.longitude, current.lat, current.lon)
            if distance > recent_radius:
                continue
            recent.append({
                'id': incident.id,
                'type': incident.type.value,
                'distance_meters': round(distance),
                'minutes_ago': round((now - incident.created_at).total_seconds() / 60),
                'location': _location(incident.latitude, incident.longitude),
            })
        recent.sort(key=lambda item: (item['distance_meters'], item['id']))

        approaching = []
        for zone in zones:
            distance = haversine_m(zone.center_lat, zone.center_lon, current.lat, current.lon)
            if zone.radius_meters < distance <= self.approach_distance_m:
                approaching.append((distance, zone))
        approaching.sort(key=lambda pair: (pair[0], pair[1].id))
        approaching_zones = [
            {
                'id': zone.id,
                'type': zone.zone_type.value,
                'risk_level': zone.risk_level.value,
                'distance_meters': round(distance),
                'location': _location(zone.center_lat, zone.center_lon),
            }
            for distance, zone in approaching
        ]

        self._log("realtime", remaining, recent_incidents=len(recent),
                  approaching_zones=len(approaching_zones))
        return {
            'remaining_route': remaining.to_dict(),
            'recent_incidents': recent,
            'approaching_zones': approaching_zones,
            'alerts': realtime_alerts(recent, approaching_zones),
        }

    # ===== Internals =====

    def _radius(self, radius_m: Optional[float]) -> float:
        if radius_m is None:
            return self.config.default_radius_m
        return _validate_radius(radius_m)

    def _snapshot(self, now: datetime) -> Tuple[List[Incident], List[HotspotZone]]:
        window = max(
            timedelta(hours=self.config.incident_window_hours),
            timedelta(minutes=self.config.recent_minutes),
        )
        incidents = self.incident_store.recent(now - window, now)
        zones = [z for z in self.zone_store.list_active() if z.is_active]
        return incidents, zones

    def _analyze(
        self,
        origin: Coordinate,
        destination: Coordinate,
        radius: float,
        incidents: Sequence[Incident],
        zones: Sequence[HotspotZone],
        now: datetime,
    ) -> RouteReport:
        since = now - timedelta(hours=self.config.incident_window_hours)
        route_incidents = tuple(
            i for i in incidents
            if i.created_at >= since and i.is_live(now)
            and endpoint_distance(i.latitude, i.longitude, origin, destination) <= radius
        )
        route_zones = tuple(self._zones_near(origin, destination, radius, zones))
        score = calculate_safety_score(route_incidents, route_zones)

        return RouteReport(
            origin=origin,
            destination=destination,
            radius_m=radius,
            safety_score=score,
            incidents=route_incidents,
            zones=route_zones,
            segments=tuple(self._segments(origin, destination, radius, route_incidents, route_zones)),
            analyzed_at=now,
            recommendations=recommendations_for(score, route_incidents, route_zones),
        )

    @staticmethod
    def _zones_near(
        start: Coordinate,
        end: Coordinate,
        radius: float,
        zones: Sequence[HotspotZone],
    ) -> List[HotspotZone]:
        return [
            zone for zone in zones
            if endpoint_distance(zone.center_lat, zone.center_lon, start, end)
            <= zone.radius_meters + radius
        ]

    def _segments(
        self,
        origin: Coordinate,
        destination: Coordinate,
        radius: float,
        incidents: Sequence[Incident],
        zones: Sequence[HotspotZone],
    ) -> List[RouteSegment]:
        count = self.config.segment_count
        segments = []
        for index in range(count):
            start = _interpolate(origin, destination, index / count)
            end = _interpolate(origin, destination, (index + 1) / count)
            seg_incidents = [
                i for i in incidents
                if endpoint_distance(i.latitude, i.longitude, start, end) <= radius
            ]
            seg_zones = self._zones_near(start, end, radius, zones)
            segments.append(RouteSegment(
                segment_number=index + 1,
                start=start,
                end=end,
                safety_score=calculate_safety_score(seg_incidents, seg_zones),
                incident_count=len(seg_incidents),
                zone_count=len(seg_zones),
                critical_zones=sum(1 for z in seg_zones if z.risk_level == RiskLevel.CRITICAL),
                high_risk_zones=sum(1 for z in seg_zones if z.risk_level == RiskLevel.HIGH),
            ))
        return segments

    def _waypoints(
        self,
        origin: Coordinate,
        destination: Coordinate,
    ) -> List[Tuple[str, Coordinate]]:
        mid_lat = (origin.lat + destination.lat) / 2
        mid_lon = (origin.lon + destination.lon) / 2
        lat_offset = abs(destination.lat - origin.lat) * self.config.detour_fraction
        lon_offset = abs(destination.lon - origin.lon) * self.config.detour_fraction

        # Clamp so detours near the poles or antimeridian stay valid coordinates
        return [
            (NORTHERN_ROUTE, Coordinate(min(90.0, mid_lat + lat_offset), mid_lon)),
            (SOUTHERN_ROUTE, Coordinate(max(-90.0, mid_lat - lat_offset), mid_lon)),
            (EASTERN_ROUTE, Coordinate(mid_lat, min(180.0, mid_lon + lon_offset))),
        ]

    def _via(
        self,
        name: str,
        origin: Coordinate,
        destination: Coordinate,
        waypoint: Coordinate,
        radius: float,
        incidents: Sequence[Incident],
        zones: Sequence[HotspotZone],
        now: datetime,
    ) -> Dict[str, Any]:
        leg1 = self._analyze(origin, waypoint, radius, incidents, zones, now)
        leg2 = self._analyze(waypoint, destination, radius, incidents, zones, now)

        direct_m = origin.distance_to(destination)
        via_m = origin.distance_to(waypoint) + waypoint.distance_to(destination)

        return {
            'route_name': name,
            'waypoints': [origin.to_dict(), waypoint.to_dict(), destination.to_dict()],
            'safety_score': _round_half_up((leg1.safety_score + leg2.safety_score) / 2),
            'total_incidents': leg1.total_incidents + leg2.total_incidents,
            'total_zones': leg1.total_zones + leg2.total_zones,
            'estimated_detour_km': round((via_m - direct_m) / 1000, 1),
        }

    def _log(self, operation: str, report: RouteReport, **extra) -> None:
        metadata = {
            'operation': operation,
            'safety_score': report.safety_score,
            'risk_level': report.risk_level,
            'total_incidents': report.total_incidents,
            'total_zones': report.total_zones,
        }
        metadata.update(extra)
        self.logger.info(
            event=LogEvent.ROUTE_ANALYZED,
            message="Route analyzed",
            metadata=metadata,
        )
