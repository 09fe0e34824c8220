"""
Incident Event Schema
=====================

Bounded Context: Incident fanout payloads

incident:new carries only the incident's public fields; receivers must
tolerate duplicates (a session may sit in two cells of the same apron).
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

INCIDENT_NEW = "incident:new"


@dataclass(frozen=True)
class IncidentEvent:
    """Public view of a new incident."""
    id: str
    type: str
    latitude: float
    longitude: float
    inserted_at: str
    description: Optional[str] = None
    photo_url: Optional[str] = None
    verification_count: int = 0
    is_verified: bool = False

    @classmethod
    def from_incident(cls, incident: Any) -> 'IncidentEvent':
        """Build from an Incident record."""
        return cls.from_dict(incident.to_public_dict())

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'type': self.type,
            'latitude': self.latitude,
            'longitude': self.longitude,
            'description': self.description,
            'photo_url': self.photo_url,
            'verification_count': self.verification_count,
            'is_verified': self.is_verified,
            'inserted_at': self.inserted_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'IncidentEvent':
        try:
            return cls(
                id=str(data['id']),
                type=data['type'],
                latitude=float(data['latitude']),
                longitude=float(data['longitude']),
                inserted_at=data['inserted_at'],
                description=data.get('description'),
                photo_url=data.get('photo_url'),
                verification_count=int(data.get('verification_count', 0)),
                is_verified=bool(data.get('is_verified', False)),
            )
        except KeyError as e:
            raise ValueError(f"Missing required IncidentEvent field: {e}")
