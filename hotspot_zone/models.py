"""
Domain Models
=============

Bounded Context: Incident and zone records shared by every engine component.

Design:
- Immutable records (frozen dataclass); updates go through dataclasses.replace
- Timezone-aware UTC datetimes everywhere
- to_dict()/from_dict() for JSON datasets and bus payloads

Records:
- Incident: read-only input from the incident feed
- HotspotZone: circular geofence owned by the clustering engine
- UserZoneTracking: one (user, zone) visit, open while exited_at is None
- User: read-only input from the user feed
"""

from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Union

from hotspot_zone.geometry.shapes import Coordinate

DEFAULT_ZONE_RADIUS_M = 1000


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_datetime(value: Union[str, datetime, None]) -> Optional[datetime]:
    """
    Parse an ISO 8601 string (or pass through a datetime).

    Naive values are assumed to be UTC. A trailing 'Z' is accepted.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def format_datetime(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


class IncidentType(str, Enum):
    """Incident categories. Zones are always single-type."""
    HIJACKING = "hijacking"
    MUGGING = "mugging"
    ACCIDENT = "accident"


class RiskLevel(str, Enum):
    """Zone risk level, ordered low < medium < high < critical."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _RISK_RANK[self]


_RISK_RANK = {
    RiskLevel.LOW: 0,
    RiskLevel.MEDIUM: 1,
    RiskLevel.HIGH: 2,
    RiskLevel.CRITICAL: 3,
}


@dataclass(frozen=True)
class Incident:
    """
    Immutable incident report.

    Attributes:
        id: Incident identifier (opaque)
        type: Incident category
        latitude: WGS84 latitude in degrees
        longitude: WGS84 longitude in degrees
        created_at: Report time (aware UTC)
        expires_at: Soft-delete time; None means never expires
        description: Optional free text (public field)
        photo_url: Optional photo link (public field)
        verification_count: Number of community verifications
        is_verified: Moderation flag
    """
    id: str
    type: IncidentType
    latitude: float
    longitude: float
    created_at: datetime
    expires_at: Optional[datetime] = None
    description: Optional[str] = None
    photo_url: Optional[str] = None
    verification_count: int = 0
    is_verified: bool = False

    def __post_init__(self):
        """Validate coordinate and coerce enum."""
        object.__setattr__(self, 'type', IncidentType(self.type))
        Coordinate(self.latitude, self.longitude)

    @property
    def coordinate(self) -> Coordinate:
        return Coordinate(self.latitude, self.longitude)

    def is_live(self, now: datetime) -> bool:
        """True while the incident has not expired."""
        return self.expires_at is None or self.expires_at > now

    def to_public_dict(self) -> Dict[str, Any]:
        """Public fields broadcast with incident:new."""
        return {
            'id': self.id,
            'type': self.type.value,
            'latitude': self.latitude,
            'longitude': self.longitude,
            'description': self.description,
            'photo_url': self.photo_url,
            'verification_count': self.verification_count,
            'is_verified': self.is_verified,
            'inserted_at': format_datetime(self.created_at),
        }

    def to_dict(self) -> Dict[str, Any]:
        data = self.to_public_dict()
        data.pop('inserted_at')
        data['created_at'] = format_datetime(self.created_at)
        data['expires_at'] = format_datetime(self.expires_at)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Incident':
        """
        Deserialize from a feed record.

        Accepts either latitude/longitude or lat/lon keys.

        Raises:
            ValueError: If required fields are missing or invalid
        """
        try:
            return cls(
                id=str(data['id']),
                type=IncidentType(data['type']),
                latitude=float(data['latitude'] if 'latitude' in data else data['lat']),
                longitude=float(data['longitude'] if 'longitude' in data else data['lon']),
                created_at=parse_datetime(data.get('created_at') or data['inserted_at']),
                expires_at=parse_datetime(data.get('expires_at')),
                description=data.get('description'),
                photo_url=data.get('photo_url'),
                verification_count=int(data.get('verification_count', 0)),
                is_verified=bool(data.get('is_verified', False)),
            )
        except KeyError as e:
            raise ValueError(f"Missing required Incident field: {e}")


@dataclass(frozen=True)
class HotspotZone:
    """
    Circular geofence over a cluster of same-type incidents.

    Created and mutated only by the clustering engine. Dissolved zones keep
    their row with is_active=False.
    """
    id: int
    zone_type: IncidentType
    center_lat: float
    center_lon: float
    radius_meters: int = DEFAULT_ZONE_RADIUS_M
    incident_count: int = 0
    risk_level: RiskLevel = RiskLevel.LOW
    is_active: bool = True
    last_incident_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        object.__setattr__(self, 'zone_type', IncidentType(self.zone_type))
        object.__setattr__(self, 'risk_level', RiskLevel(self.risk_level))
        Coordinate(self.center_lat, self.center_lon)
        if self.radius_meters <= 0:
            raise ValueError(f"radius_meters must be > 0, got {self.radius_meters}")
        if self.incident_count < 0:
            raise ValueError(f"incident_count must be >= 0, got {self.incident_count}")

    @property
    def center(self) -> Coordinate:
        return Coordinate(self.center_lat, self.center_lon)

    def to_dict(self) -> Dict[str, Any]:
        """Lifecycle event / API representation."""
        return {
            'id': self.id,
            'zone_type': self.zone_type.value,
            'risk_level': self.risk_level.value,
            'incident_count': self.incident_count,
            'center': {'lat': self.center_lat, 'lon': self.center_lon},
            'radius_meters': self.radius_meters,
            'is_active': self.is_active,
            'last_incident_at': format_datetime(self.last_incident_at),
            'created_at': format_datetime(self.created_at),
            'updated_at': format_datetime(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'HotspotZone':
        try:
            center = data['center']
            return cls(
                id=int(data['id']),
                zone_type=IncidentType(data['zone_type']),
                center_lat=float(center['lat']),
                center_lon=float(center['lon']),
                radius_meters=int(data.get('radius_meters', DEFAULT_ZONE_RADIUS_M)),
                incident_count=int(data.get('incident_count', 0)),
                risk_level=RiskLevel(data.get('risk_level', 'low')),
                is_active=bool(data.get('is_active', True)),
                last_incident_at=parse_datetime(data.get('last_incident_at')),
                created_at=parse_datetime(data.get('created_at')),
                updated_at=parse_datetime(data.get('updated_at')),
            )
        except KeyError as e:
            raise ValueError(f"Missing required HotspotZone field: {e}")


@dataclass(frozen=True)
class UserZoneTracking:
    """One visit of a user inside a zone. Open while exited_at is None."""
    id: int
    user_id: str
    zone_id: int
    entered_at: datetime
    exited_at: Optional[datetime] = None
    notification_sent: bool = False

    def __post_init__(self):
        if self.exited_at is not None and self.exited_at < self.entered_at:
            raise ValueError(
                f"exited_at ({self.exited_at}) precedes entered_at ({self.entered_at})"
            )

    @property
    def is_open(self) -> bool:
        return self.exited_at is None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['entered_at'] = format_datetime(self.entered_at)
        data['exited_at'] = format_datetime(self.exited_at)
        return data


@dataclass(frozen=True)
class User:
    """Read model of a user: premium gate and notification preference."""
    id: str
    is_premium: bool = False
    alert_radius_m: int = 1000
    hotspot_zone_alerts: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'User':
        notification_config = data.get('notification_config') or {}
        return cls(
            id=str(data['id']),
            is_premium=bool(data.get('is_premium', False)),
            alert_radius_m=int(data.get('alert_radius_m', 1000)),
            hotspot_zone_alerts=bool(notification_config.get('hotspot_zone_alerts', True)),
        )
