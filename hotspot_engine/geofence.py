"""
Geofence Service - per-user zone entry / exit / approaching

One location update:
  1. Validate the sample (nothing is touched on bad input)
  2. Read: user, active zones, the user's open tracking rows
  3. Compute transitions (pure, GeofenceTracker)
  4. Write: open/close tracking rows in one atomic store call
  5. Emit: session events, bus events and notification requests

All reads happen before the single write, so a failing read (e.g. the
user store is unavailable) surfaces to the caller with no state change
and no events. Updates for one user are serialized in arrival order;
different users proceed concurrently.
"""

import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, Iterator, List, Optional

from hotspot_mqtt import (
    GeofenceAction,
    GeofenceEvent,
    GeofenceEventPublisher,
    LogEvent,
    NotificationPublisher,
    NotificationRequest,
    StructuredLogger,
    create_logger,
)
from hotspot_zone import Coordinate, GeofenceTracker, HotspotZone, User, utc_now

from .config import TrackingConfig
from .errors import UserNotFoundError
from .stores import TrackingStore, UserStore, ZoneStore

SessionSink = Callable[[GeofenceEvent], None]


def entry_message(zone: HotspotZone, lookback_days: int = 7) -> str:
    return (
        f"⚠️ Entering {zone.risk_level.value.upper()} RISK zone - "
        f"{zone.incident_count} {zone.zone_type.value} reported in this area "
        f"in the past {lookback_days} days. Stay alert."
    )


def exit_message(zone: HotspotZone) -> str:
    return "✓ You have left the hotspot zone. Stay safe."


def approaching_message(zone: HotspotZone) -> str:
    return (
        f"⚠️ Approaching {zone.risk_level.value.upper()} RISK zone ahead - "
        f"{zone.incident_count} {zone.zone_type.value} reported"
    )


@dataclass(frozen=True)
class LocationUpdateResult:
    """Outcome of one location update."""
    user_id: str
    zones_entered: int
    zones_exited: int
    events: List[GeofenceEvent] = field(default_factory=list)

    @property
    def approaching(self) -> List[GeofenceEvent]:
        return [e for e in self.events if e.action == GeofenceAction.APPROACHING]

    def to_reply(self) -> Dict[str, int]:
        return {'zones_entered': self.zones_entered, 'zones_exited': self.zones_exited}


@dataclass
class _UserLock:
    lock: threading.Lock = field(default_factory=threading.Lock)
    holders: int = 0


class GeofenceService:
    """
    Applies location samples to the per-user tracking state machine.

    Example:
        service = GeofenceService(zone_store, tracking_store, user_store,
                                  event_publisher=geofence_publisher,
                                  notification_publisher=notifications)
        result = service.location_update("user-1", -26.2041, 28.0473)
        result.to_reply()   # {'zones_entered': 1, 'zones_exited': 0}
    """

    def __init__(
        self,
        zone_store: ZoneStore,
        tracking_store: TrackingStore,
        user_store: UserStore,
        config: Optional[TrackingConfig] = None,
        event_publisher: Optional[GeofenceEventPublisher] = None,
        notification_publisher: Optional[NotificationPublisher] = None,
        lookback_days: int = 7,
        clock: Callable[[], datetime] = utc_now,
        logger: Optional[StructuredLogger] = None,
    ):
        self.zone_store = zone_store
        self.tracking_store = tracking_store
        self.user_store = user_store
        self.config = config or TrackingConfig()
        self.event_publisher = event_publisher
        self.notification_publisher = notification_publisher
        self.lookback_days = lookback_days
        self.clock = clock
        self.logger = logger or create_logger("geofence")
        self.tracker = GeofenceTracker(self.config.approach_distance_m)

        self._user_locks: Dict[str, _UserLock] = {}
        self._locks_guard = threading.Lock()

    @contextmanager
    def _serialized(self, user_id: str) -> Iterator[None]:
        """Hold the user's lock; the entry is dropped once nobody holds or waits on it."""
        with self._locks_guard:
            entry = self._user_locks.get(user_id)
            if entry is None:
                entry = self._user_locks[user_id] = _UserLock()
            entry.holders += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._locks_guard:
                entry.holders -= 1
                if entry.holders == 0:
                    del self._user_locks[user_id]

    def location_update(
        self,
        user_id: str,
        latitude: Optional[float],
        longitude: Optional[float],
        session_sink: Optional[SessionSink] = None,
    ) -> LocationUpdateResult:
        """
        Process one location sample for a user.

        Args:
            user_id: User sending the sample
            latitude: Degrees (None means missing)
            longitude: Degrees (None means missing)
            session_sink: Receives events pushed to the caller's session

        Returns:
            LocationUpdateResult

        Raises:
            ValidationError: Missing/out-of-range coordinates or unknown user
            StoreUnavailableError: A store read failed (no state change)
        """
        point = Coordinate(latitude, longitude)

        user = self.user_store.get(user_id)
        if user is None:
            raise UserNotFoundError(user_id)

        with self._serialized(user_id):
            # Reads
            active_zones = self.zone_store.list_active()
            open_rows = self.tracking_store.open_for_user(user_id)
            open_zone_ids = {row.zone_id for row in open_rows}

            transitions = self.tracker.evaluate(
                point,
                active_zones,
                open_zone_ids,
                include_approaching=user.is_premium,
            )

            zones_by_id = {zone.id: zone for zone in active_zones}
            exited_zones = {}
            for zone_id in transitions.exited_zone_ids:
                zone = zones_by_id.get(zone_id) or self.zone_store.get(zone_id)
                if zone is not None:
                    exited_zones[zone_id] = zone

            # Single atomic write
            now = self.clock()
            opened, _closed = self.tracking_store.apply_transitions(
                user_id,
                [zone.id for zone in transitions.entered],
                list(transitions.exited_zone_ids),
                now,
            )

            # Emit
            events: List[GeofenceEvent] = []
            for row, zone in zip(opened, transitions.entered):
                event = GeofenceEvent.from_zone(
                    GeofenceAction.ENTERED, zone, entry_message(zone, self.lookback_days)
                )
                events.append(event)
                self._push(user_id, event, session_sink)
                if not row.notification_sent and self._notify(user, event):
                    self.tracking_store.mark_notification_sent(row.id)

            for zone_id in transitions.exited_zone_ids:
                zone = exited_zones.get(zone_id)
                if zone is None:
                    continue
                event = GeofenceEvent.from_zone(GeofenceAction.EXITED, zone, exit_message(zone))
                events.append(event)
                self._push(user_id, event, session_sink)
                self._notify(user, event)

            for zone, distance in transitions.approaching:
                event = GeofenceEvent.from_zone(
                    GeofenceAction.APPROACHING, zone, approaching_message(zone),
                    distance_meters=distance,
                )
                events.append(event)
                self._push(user_id, event, session_sink)
                self._notify(user, event)

        result = LocationUpdateResult(
            user_id=user_id,
            zones_entered=len(transitions.entered),
            zones_exited=len(transitions.exited_zone_ids),
            events=events,
        )
        self._log(result, transitions.approaching)
        return result

    def _push(self, user_id: str, event: GeofenceEvent, session_sink: Optional[SessionSink]) -> None:
        if session_sink is not None:
            try:
                session_sink(event)
            except Exception as e:
                self.logger.error(
                    event=LogEvent.SINK_ERROR,
                    message="Session sink raised while handling geofence event",
                    exc_info=e,
                    metadata={'user_id': user_id, 'zone_id': event.zone_id}
                )
        if self.event_publisher is not None:
            self.event_publisher.publish_geofence_event(user_id, event)

    def _notify(self, user: User, event: GeofenceEvent) -> bool:
        """Request a notification. Returns False when skipped or unpublished."""
        if self.notification_publisher is None or not user.hotspot_zone_alerts:
            return False
        request = NotificationRequest.from_event(user.id, event)
        self.notification_publisher.request_notification(request)
        return True

    def _log(self, result: LocationUpdateResult, approaching) -> None:
        if result.zones_entered or result.zones_exited:
            self.logger.info(
                event=LogEvent.GEOFENCE_TRANSITION,
                message="Zone transitions applied",
                metadata={
                    'user_id': result.user_id,
                    'zones_entered': result.zones_entered,
                    'zones_exited': result.zones_exited,
                }
            )
        if approaching:
            self.logger.info(
                event=LogEvent.GEOFENCE_APPROACHING,
                message="User approaching zones",
                metadata={
                    'user_id': result.user_id,
                    'zone_ids': [zone.id for zone, _ in approaching],
                }
            )
