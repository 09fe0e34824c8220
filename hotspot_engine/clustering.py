"""
Zone Clustering Engine - incidents → hotspot zone lifecycle

One scan:
  1. Read live incidents from the lookback window
  2. Cluster them per type (DBSCAN)
  3. Plan: match clusters to active zones, refresh unmatched zones,
     dissolve zones that fell below the threshold, create new zones
  4. Apply the plan to the zone store and broadcast lifecycle events

Planning is pure and checks the wall-clock budget; applying is short and
never interrupted, so an aborted scan leaves no partial writes.

Matching rule:
  - Only active zones of the same type are candidates
  - A cluster matches a zone when the cluster center lies within the zone radius
  - Competing pairs resolve by closest center, then lowest zone id
  - A zone is claimed by at most one cluster per scan

Idempotence:
  - Writes whose fields are unchanged are skipped, so re-running a scan
    over unchanged incidents produces no writes and no events
  - Dissolved zones are never candidates, so they are never reactivated
"""

import time
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Set, Tuple

from hotspot_mqtt import (
    LogEvent,
    StructuredLogger,
    ZoneEventPublisher,
    ZoneLifecycleAction,
    ZoneLifecycleEvent,
    create_logger,
)
from hotspot_zone import (
    HotspotZone,
    Incident,
    IncidentCluster,
    IncidentClusterer,
    haversine_m,
    utc_now,
)

from .config import ClusteringConfig
from .errors import ScanTimeoutError
from .stores import IncidentStore, ZoneStore


@dataclass(frozen=True)
class ClusteringPlan:
    """Zone writes computed by one scan, not yet applied."""
    creates: Tuple[HotspotZone, ...] = ()
    updates: Tuple[HotspotZone, ...] = ()
    dissolves: Tuple[HotspotZone, ...] = ()
    incident_count: int = 0
    cluster_count: int = 0

    @property
    def is_empty(self) -> bool:
        return not (self.creates or self.updates or self.dissolves)


@dataclass(frozen=True)
class ScanResult:
    """Applied outcome of one scan."""
    started_at: datetime
    created: List[HotspotZone] = field(default_factory=list)
    updated: List[HotspotZone] = field(default_factory=list)
    dissolved: List[HotspotZone] = field(default_factory=list)
    incident_count: int = 0
    cluster_count: int = 0
    duration_seconds: float = 0.0

    def to_dict(self) -> Dict:
        return {
            'started_at': self.started_at.isoformat(),
            'created': [z.id for z in self.created],
            'updated': [z.id for z in self.updated],
            'dissolved': [z.id for z in self.dissolved],
            'incident_count': self.incident_count,
            'cluster_count': self.cluster_count,
            'duration_seconds': round(self.duration_seconds, 3),
        }


def _zone_state(zone: HotspotZone) -> tuple:
    return (
        zone.center_lat,
        zone.center_lon,
        zone.radius_meters,
        zone.incident_count,
        zone.risk_level,
        zone.is_active,
        zone.last_incident_at,
    )


class ZoneClusteringEngine:
    """
    Maintains hotspot zones from the recent incident population.

    Example:
        engine = ZoneClusteringEngine(incident_store, zone_store, ClusteringConfig(),
                                      publisher=zone_event_publisher)
        result = engine.run_once()
    """

    def __init__(
        self,
        incident_store: IncidentStore,
        zone_store: ZoneStore,
        config: Optional[ClusteringConfig] = None,
        publisher: Optional[ZoneEventPublisher] = None,
        clock: Callable[[], datetime] = utc_now,
        timer: Callable[[], float] = time.monotonic,
        logger: Optional[StructuredLogger] = None,
    ):
        self.incident_store = incident_store
        self.zone_store = zone_store
        self.config = config or ClusteringConfig()
        self.publisher = publisher
        self.clock = clock
        self.timer = timer
        self.logger = logger or create_logger("clustering")
        self.clusterer = IncidentClusterer(
            neighborhood_m=self.config.neighborhood_m,
            min_neighbors=self.config.min_neighbors,
            min_radius_m=self.config.min_radius_m,
        )

    # ===== Public API =====

    def run_once(self, deadline: Optional[float] = None) -> ScanResult:
        """
        Plan and apply one scan.

        Args:
            deadline: timer() value after which planning aborts
                      (default: now + max_scan_seconds)

        Raises:
            ScanTimeoutError: Budget exceeded while planning (nothing written)
            StoreUnavailableError: Propagated from the stores
        """
        started = self.timer()
        if deadline is None:
            deadline = started + self.config.max_scan_seconds
        now = self.clock()

        self.logger.info(
            event=LogEvent.CLUSTERING_SCAN_STARTED,
            message="Clustering scan started",
            metadata={'lookback_days': self.config.lookback_days}
        )

        plan = self.plan(now, deadline)
        result = self.apply(plan, now, started_at=now)
        result = replace(result, duration_seconds=self.timer() - started)

        self.logger.info(
            event=LogEvent.CLUSTERING_SCAN_COMPLETED,
            message="Clustering scan completed",
            metadata=result.to_dict()
        )
        return result

    def plan(self, now: datetime, deadline: Optional[float] = None) -> ClusteringPlan:
        """Compute zone writes for the incidents visible at `now`."""
        since = now - timedelta(days=self.config.lookback_days)
        incidents = self.incident_store.recent(since, now)
        self._check_deadline(deadline, "reading incidents")

        clusters = self.clusterer.cluster(incidents)
        self._check_deadline(deadline, "clustering")

        active = [z for z in self.zone_store.list_active() if z.is_active]
        matches = self._match(clusters, active)
        self._check_deadline(deadline, "matching")

        claimed_ids: Set[str] = {
            incident.id for cluster in clusters for incident in cluster.members
        }
        matched_zone_ids = set(matches.values())

        creates: List[HotspotZone] = []
        updates: List[HotspotZone] = []
        dissolves: List[HotspotZone] = []

        zones_by_id = {zone.id: zone for zone in active}
        for index, cluster in enumerate(clusters):
            zone_id = matches.get(index)
            if zone_id is None:
                creates.append(self._new_zone(cluster, now))
                continue
            current = zones_by_id[zone_id]
            updated = self._zone_from_cluster(current, cluster, now)
            if _zone_state(updated) != _zone_state(current):
                updates.append(updated)

        unmatched = [z for z in active if z.id not in matched_zone_ids]
        attributed = self._attribute_unclaimed(
            unmatched, [i for i in incidents if i.id not in claimed_ids]
        )
        for zone in unmatched:
            self._check_deadline(deadline, "refreshing zones")
            members = attributed.get(zone.id, [])
            if len(members) < self.config.dissolve_below:
                dissolves.append(replace(
                    zone,
                    is_active=False,
                    incident_count=len(members),
                    updated_at=now,
                ))
                continue
            last_at = max(i.created_at for i in members)
            refreshed = replace(
                zone,
                incident_count=len(members),
                risk_level=self.config.risk_policy.classify(len(members), last_at, now),
                last_incident_at=last_at,
            )
            if _zone_state(refreshed) != _zone_state(zone):
                updates.append(replace(refreshed, updated_at=now))

        return ClusteringPlan(
            creates=tuple(creates),
            updates=tuple(sorted(updates, key=lambda z: z.id)),
            dissolves=tuple(sorted(dissolves, key=lambda z: z.id)),
            incident_count=len(incidents),
            cluster_count=len(clusters),
        )

    def apply(
        self,
        plan: ClusteringPlan,
        now: datetime,
        started_at: Optional[datetime] = None,
    ) -> ScanResult:
        """
        Write a plan to the zone store and broadcast lifecycle events.

        Each event goes out right after its own write, so a store failure
        part way through never leaves a stored zone without its event.
        """
        created: List[HotspotZone] = []
        updated: List[HotspotZone] = []
        dissolved: List[HotspotZone] = []

        for zone in plan.creates:
            stored = self.zone_store.create(zone)
            created.append(stored)
            self._broadcast(ZoneLifecycleAction.CREATED, stored)

        for action, zones, written in (
            (ZoneLifecycleAction.UPDATED, plan.updates, updated),
            (ZoneLifecycleAction.DISSOLVED, plan.dissolves, dissolved),
        ):
            for zone in zones:
                stored = self.zone_store.save(zone)
                written.append(stored)
                self._broadcast(action, stored)

        return ScanResult(
            started_at=started_at or now,
            created=created,
            updated=updated,
            dissolved=dissolved,
            incident_count=plan.incident_count,
            cluster_count=plan.cluster_count,
        )

    # ===== Internals =====

    def _check_deadline(self, deadline: Optional[float], stage: str) -> None:
        if deadline is not None and self.timer() > deadline:
            raise ScanTimeoutError(
                f"Clustering scan exceeded {self.config.max_scan_seconds}s while {stage}"
            )

    @staticmethod
    def _match(
        clusters: List[IncidentCluster],
        zones: List[HotspotZone],
    ) -> Dict[int, int]:
        """
        Greedy nearest-center assignment.

        Returns:
            {cluster index: zone id}
        """
        candidates = []
        for index, cluster in enumerate(clusters):
            for zone in zones:
                if zone.zone_type != cluster.zone_type:
                    continue
                distance = haversine_m(
                    cluster.center.lat, cluster.center.lon,
                    zone.center_lat, zone.center_lon,
                )
                if distance <= zone.radius_meters:
                    candidates.append((distance, zone.id, index))

        matches: Dict[int, int] = {}
        claimed: Set[int] = set()
        for _, zone_id, index in sorted(candidates):
            if index in matches or zone_id in claimed:
                continue
            matches[index] = zone_id
            claimed.add(zone_id)
        return matches

    @staticmethod
    def _attribute_unclaimed(
        zones: List[HotspotZone],
        incidents: List[Incident],
    ) -> Dict[int, List[Incident]]:
        """Assign each incident to its nearest containing same-type zone."""
        attributed: Dict[int, List[Incident]] = {}
        for incident in incidents:
            best = None
            for zone in zones:
                if zone.zone_type != incident.type:
                    continue
                distance = haversine_m(
                    incident.latitude, incident.longitude,
                    zone.center_lat, zone.center_lon,
                )
                if distance <= zone.radius_meters:
                    key = (distance, zone.id)
                    if best is None or key < best:
                        best = key
            if best is not None:
                attributed.setdefault(best[1], []).append(incident)
        return attributed

    def _zone_from_cluster(
        self,
        zone: HotspotZone,
        cluster: IncidentCluster,
        now: datetime,
    ) -> HotspotZone:
        updated = replace(
            zone,
            center_lat=cluster.center.lat,
            center_lon=cluster.center.lon,
            radius_meters=cluster.radius_m,
            incident_count=cluster.incident_count,
            risk_level=self.config.risk_policy.classify(
                cluster.incident_count, cluster.last_incident_at, now
            ),
            last_incident_at=cluster.last_incident_at,
        )
        if _zone_state(updated) != _zone_state(zone):
            updated = replace(updated, updated_at=now)
        return updated

    def _new_zone(self, cluster: IncidentCluster, now: datetime) -> HotspotZone:
        return HotspotZone(
            id=0,
            zone_type=cluster.zone_type,
            center_lat=cluster.center.lat,
            center_lon=cluster.center.lon,
            radius_meters=cluster.radius_m,
            incident_count=cluster.incident_count,
            risk_level=self.config.risk_policy.classify(
                cluster.incident_count, cluster.last_incident_at, now
            ),
            is_active=True,
            last_incident_at=cluster.last_incident_at,
            created_at=now,
            updated_at=now,
        )

    def _broadcast(self, action: ZoneLifecycleAction, zone: HotspotZone) -> None:
        if self.publisher is None:
            return
        self.publisher.publish_lifecycle(ZoneLifecycleEvent.from_zone(action, zone))
