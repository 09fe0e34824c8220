"""
Zone Event Message Schemas
==========================

Bounded Context: Zone Event Data Structures

This module defines the payloads emitted by the clustering engine and the
geofence tracker.

Design:
- ZoneLifecycleEvent: zone:created / zone:updated / zone:dissolved broadcast
- GeofenceEvent: per-user zone:entered / zone:exited / zone:approaching
- NotificationRequest: hand-off to the notification delivery collaborator

Message Flow:
    ZoneClusteringEngine → ZoneLifecycleEvent → ZoneEventPublisher → "geofence:zones"
    GeofenceService → GeofenceEvent → GeofenceEventPublisher → "geofence:user:<id>"
    GeofenceService → NotificationRequest → NotificationPublisher → "notifications:user:<id>"
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

NOTIFICATION_TITLE = "Hotspot Zone Alert"


class ZoneLifecycleAction(str, Enum):
    """Zone lifecycle event names."""
    CREATED = "zone:created"
    UPDATED = "zone:updated"
    DISSOLVED = "zone:dissolved"


class GeofenceAction(str, Enum):
    """Per-user geofence transitions."""
    ENTERED = "entered"
    EXITED = "exited"
    APPROACHING = "approaching"

    @property
    def event_name(self) -> str:
        return f"zone:{self.value}"


@dataclass(frozen=True)
class ZoneLifecycleEvent:
    """
    Broadcast describing a zone after a clustering change.

    Attributes:
        action: created / updated / dissolved
        id: Zone id
        zone_type: Incident type of the zone
        risk_level: Current risk level
        incident_count: Attributed incidents
        center_lat: Center latitude
        center_lon: Center longitude
        radius_meters: Zone radius
        is_active: False once dissolved
    """
    action: ZoneLifecycleAction
    id: int
    zone_type: str
    risk_level: str
    incident_count: int
    center_lat: float
    center_lon: float
    radius_meters: int
    is_active: bool

    @classmethod
    def from_zone(cls, action: ZoneLifecycleAction, zone: Any) -> 'ZoneLifecycleEvent':
        """Build from a HotspotZone record."""
        return cls(
            action=ZoneLifecycleAction(action),
            id=zone.id,
            zone_type=_enum_value(zone.zone_type),
            risk_level=_enum_value(zone.risk_level),
            incident_count=zone.incident_count,
            center_lat=zone.center_lat,
            center_lon=zone.center_lon,
            radius_meters=zone.radius_meters,
            is_active=zone.is_active,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the wire payload (action travels as the event name)."""
        return {
            'id': self.id,
            'zone_type': self.zone_type,
            'risk_level': self.risk_level,
            'incident_count': self.incident_count,
            'center': {'lat': self.center_lat, 'lon': self.center_lon},
            'radius_meters': self.radius_meters,
            'is_active': self.is_active,
        }

    @classmethod
    def from_dict(cls, action: str, data: Dict[str, Any]) -> 'ZoneLifecycleEvent':
        try:
            return cls(
                action=ZoneLifecycleAction(action),
                id=data['id'],
                zone_type=data['zone_type'],
                risk_level=data['risk_level'],
                incident_count=int(data['incident_count']),
                center_lat=float(data['center']['lat']),
                center_lon=float(data['center']['lon']),
                radius_meters=int(data['radius_meters']),
                is_active=bool(data['is_active']),
            )
        except KeyError as e:
            raise ValueError(f"Missing required ZoneLifecycleEvent field: {e}")


@dataclass(frozen=True)
class GeofenceEvent:
    """
    Per-user zone transition pushed to the user's session.

    Attributes:
        action: entered / exited / approaching
        zone_id: Zone id
        zone_type: Incident type of the zone
        risk_level: Zone risk level
        incident_count: Zone incident count
        center_lat: Zone center latitude
        center_lon: Zone center longitude
        radius_meters: Zone radius
        message: Human-readable alert text
        distance_meters: Distance to the zone center (approaching only)
    """
    action: GeofenceAction
    zone_id: int
    zone_type: str
    risk_level: str
    incident_count: int
    center_lat: float
    center_lon: float
    radius_meters: int
    message: str
    distance_meters: Optional[float] = None

    @property
    def event_name(self) -> str:
        return self.action.event_name

    @classmethod
    def from_zone(
        cls,
        action: GeofenceAction,
        zone: Any,
        message: str,
        distance_meters: Optional[float] = None,
    ) -> 'GeofenceEvent':
        """Build from a HotspotZone record."""
        return cls(
            action=GeofenceAction(action),
            zone_id=zone.id,
            zone_type=_enum_value(zone.zone_type),
            risk_level=_enum_value(zone.risk_level),
            incident_count=zone.incident_count,
            center_lat=zone.center_lat,
            center_lon=zone.center_lon,
            radius_meters=zone.radius_meters,
            message=message,
            distance_meters=distance_meters,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'zone_id': self.zone_id,
            'zone_type': self.zone_type,
            'risk_level': self.risk_level,
            'incident_count': self.incident_count,
            'center': {'lat': self.center_lat, 'lon': self.center_lon},
            'radius_meters': self.radius_meters,
            'action': self.action.value,
            'message': self.message,
        }
        if self.distance_meters is not None:
            data['distance_meters'] = round(self.distance_meters)
        return data


@dataclass(frozen=True)
class NotificationRequest:
    """
    Request for the external notification delivery collaborator.

    Attributes:
        user_id: Recipient
        body: Alert text
        zone_id: Zone the alert refers to
        zone_type: Zone incident type
        risk_level: Zone risk level
        action: entered / exited / approaching
        title: Notification title
    """
    user_id: str
    body: str
    zone_id: int
    zone_type: str
    risk_level: str
    action: GeofenceAction
    title: str = NOTIFICATION_TITLE

    @classmethod
    def from_event(cls, user_id: str, event: GeofenceEvent) -> 'NotificationRequest':
        return cls(
            user_id=user_id,
            body=event.message,
            zone_id=event.zone_id,
            zone_type=event.zone_type,
            risk_level=event.risk_level,
            action=event.action,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'user_id': self.user_id,
            'title': self.title,
            'body': self.body,
            'data': {
                'type': 'hotspot_zone',
                'zone_id': self.zone_id,
                'zone_type': self.zone_type,
                'risk_level': self.risk_level,
                'action': self.action.value,
            },
        }


def _enum_value(value: Any) -> str:
    return value.value if isinstance(value, Enum) else str(value)
