"""
Engine Stores - read models and owned state

This module defines the store interfaces the engine depends on, plus
thread-safe in-memory implementations used by tests, the CLI and
single-node deployments.

Stores:
- IncidentStore (read-only for the engine): incident feed
- UserStore (read-only): premium flag and notification preference
- ZoneStore (owned by the clustering engine): hotspot zones
- TrackingStore (owned by the geofence service): UserZoneTracking rows

Thread Safety:
- Each in-memory store guards its dict with a threading.Lock
- Records are immutable; reads return snapshots
- Zone writes are last-writer-wins per row
- TrackingStore.apply_transitions is all-or-nothing per user
"""

import itertools
import json
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

from hotspot_zone import HotspotZone, Incident, User, UserZoneTracking

from .errors import DuplicateOpenTrackingError


class IncidentStore(Protocol):
    def recent(self, since: datetime, now: datetime) -> List[Incident]:
        """Incidents created at or after `since` and not expired at `now`."""
        ...

    def get(self, incident_id: str) -> Optional[Incident]:
        ...


class UserStore(Protocol):
    def get(self, user_id: str) -> Optional[User]:
        ...


class ZoneStore(Protocol):
    def list_active(self) -> List[HotspotZone]:
        ...

    def list_all(self) -> List[HotspotZone]:
        ...

    def get(self, zone_id: int) -> Optional[HotspotZone]:
        ...

    def create(self, zone: HotspotZone) -> HotspotZone:
        """Persist a new zone; the store assigns the id."""
        ...

    def save(self, zone: HotspotZone) -> HotspotZone:
        """Replace an existing zone row."""
        ...


class TrackingStore(Protocol):
    def open_for_user(self, user_id: str) -> List[UserZoneTracking]:
        ...

    def apply_transitions(
        self,
        user_id: str,
        entered_zone_ids: Sequence[int],
        exited_zone_ids: Sequence[int],
        now: datetime,
    ) -> Tuple[List[UserZoneTracking], List[UserZoneTracking]]:
        """Open and close rows atomically. Returns (opened, closed)."""
        ...

    def mark_notification_sent(self, tracking_id: int) -> UserZoneTracking:
        ...


class InMemoryIncidentStore:
    """Incident feed held in memory."""

    def __init__(self, incidents: Iterable[Incident] = ()):
        self._incidents: Dict[str, Incident] = {}
        self._lock = threading.Lock()
        for incident in incidents:
            self.add(incident)

    def add(self, incident: Incident) -> Incident:
        with self._lock:
            self._incidents[incident.id] = incident
        return incident

    def get(self, incident_id: str) -> Optional[Incident]:
        with self._lock:
            return self._incidents.get(incident_id)

    def recent(self, since: datetime, now: datetime) -> List[Incident]:
        with self._lock:
            snapshot = list(self._incidents.values())
        return sorted(
            (i for i in snapshot if i.created_at >= since and i.is_live(now)),
            key=lambda i: (i.created_at, i.id),
        )

    def all(self) -> List[Incident]:
        with self._lock:
            return sorted(self._incidents.values(), key=lambda i: (i.created_at, i.id))


class InMemoryUserStore:
    """User feed held in memory."""

    def __init__(self, users: Iterable[User] = ()):
        self._users: Dict[str, User] = {}
        self._lock = threading.Lock()
        for user in users:
            self.add(user)

    def add(self, user: User) -> User:
        with self._lock:
            self._users[user.id] = user
        return user

    def get(self, user_id: str) -> Optional[User]:
        with self._lock:
            return self._users.get(user_id)


class InMemoryZoneStore:
    """Zone rows with sequential integer ids. Zones are never deleted."""

    def __init__(self, zones: Iterable[HotspotZone] = ()):
        self._zones: Dict[int, HotspotZone] = {}
        self._lock = threading.Lock()
        next_id = 1
        for zone in zones:
            self._zones[zone.id] = zone
            next_id = max(next_id, zone.id + 1)
        self._ids = itertools.count(next_id)

    def list_active(self) -> List[HotspotZone]:
        with self._lock:
            return sorted(
                (z for z in self._zones.values() if z.is_active),
                key=lambda z: z.id,
            )

    def list_all(self) -> List[HotspotZone]:
        with self._lock:
            return sorted(self._zones.values(), key=lambda z: z.id)

    def get(self, zone_id: int) -> Optional[HotspotZone]:
        with self._lock:
            return self._zones.get(zone_id)

    def create(self, zone: HotspotZone) -> HotspotZone:
        with self._lock:
            created = replace(zone, id=next(self._ids))
            self._zones[created.id] = created
            return created

    def save(self, zone: HotspotZone) -> HotspotZone:
        with self._lock:
            if zone.id not in self._zones:
                raise KeyError(f"Zone {zone.id} does not exist")
            self._zones[zone.id] = zone
            return zone


class InMemoryTrackingStore:
    """
    UserZoneTracking rows.

    Invariant: at most one open row per (user, zone). apply_transitions
    validates the whole batch before mutating anything.
    """

    def __init__(self):
        self._rows: Dict[int, UserZoneTracking] = {}
        self._open: Dict[Tuple[str, int], int] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def open_for_user(self, user_id: str) -> List[UserZoneTracking]:
        with self._lock:
            return sorted(
                (self._rows[row_id] for (uid, _), row_id in self._open.items() if uid == user_id),
                key=lambda row: row.zone_id,
            )

    def history(self, user_id: str) -> List[UserZoneTracking]:
        with self._lock:
            return sorted(
                (row for row in self._rows.values() if row.user_id == user_id),
                key=lambda row: row.id,
            )

    def apply_transitions(
        self,
        user_id: str,
        entered_zone_ids: Sequence[int],
        exited_zone_ids: Sequence[int],
        now: datetime,
    ) -> Tuple[List[UserZoneTracking], List[UserZoneTracking]]:
        with self._lock:
            # Check before create: nothing is written if any entry is a duplicate
            seen = set()
            for zone_id in entered_zone_ids:
                if (user_id, zone_id) in self._open or zone_id in seen:
                    raise DuplicateOpenTrackingError(user_id, zone_id)
                seen.add(zone_id)

            closed = []
            for zone_id in exited_zone_ids:
                row_id = self._open.pop((user_id, zone_id), None)
                if row_id is None:
                    continue
                row = replace(self._rows[row_id], exited_at=now)
                self._rows[row_id] = row
                closed.append(row)

            opened = []
            for zone_id in entered_zone_ids:
                row = UserZoneTracking(
                    id=next(self._ids),
                    user_id=user_id,
                    zone_id=zone_id,
                    entered_at=now,
                )
                self._rows[row.id] = row
                self._open[(user_id, zone_id)] = row.id
                opened.append(row)

            return opened, closed

    def mark_notification_sent(self, tracking_id: int) -> UserZoneTracking:
        with self._lock:
            row = replace(self._rows[tracking_id], notification_sent=True)
            self._rows[tracking_id] = row
            return row


@dataclass
class Dataset:
    """Records loaded from a JSON dataset file."""
    incidents: List[Incident] = field(default_factory=list)
    users: List[User] = field(default_factory=list)
    zones: List[HotspotZone] = field(default_factory=list)


@dataclass
class EngineStores:
    """The four stores wired into the engine."""
    incidents: InMemoryIncidentStore
    users: InMemoryUserStore
    zones: InMemoryZoneStore
    tracking: InMemoryTrackingStore

    @classmethod
    def from_dataset(cls, dataset: Optional[Dataset] = None) -> "EngineStores":
        dataset = dataset or Dataset()
        return cls(
            incidents=InMemoryIncidentStore(dataset.incidents),
            users=InMemoryUserStore(dataset.users),
            zones=InMemoryZoneStore(dataset.zones),
            tracking=InMemoryTrackingStore(),
        )


def load_dataset(path: Path) -> Dataset:
    """
    Load incidents, users and zones from a JSON file.

    Expected layout:
        {
          "incidents": [{"id": "...", "type": "mugging", "latitude": ..., ...}],
          "users": [{"id": "...", "is_premium": true}],
          "zones": [{"id": 1, "zone_type": "mugging", "center": {...}, ...}]
        }

    Raises:
        ValueError: If the file is not valid JSON or a record is invalid
    """
    with open(path) as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in {path}: {e}")

    return Dataset(
        incidents=[Incident.from_dict(item) for item in data.get("incidents", [])],
        users=[User.from_dict(item) for item in data.get("users", [])],
        zones=[HotspotZone.from_dict(item) for item in data.get("zones", [])],
    )
