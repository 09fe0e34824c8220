"""
Incident Clustering Module
==========================

Density-based spatial clustering of incidents, one pass per incident type.

Design:
- scikit-learn DBSCAN with the haversine metric on radian coordinates
  (eps = neighborhood / earth radius)
- Input sorted by (created_at, id) so labels are reproducible
- Output clusters are immutable and sorted by (type, earliest member)
- NO persistence: matching clusters to zones is the engine's job
"""

import math
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Tuple

import numpy as np
from sklearn.cluster import DBSCAN

from hotspot_zone.geometry.shapes import Coordinate, EARTH_RADIUS_M, haversine_m
from hotspot_zone.models import Incident, IncidentType


@dataclass(frozen=True)
class IncidentCluster:
    """
    One dense group of same-type incidents.

    Attributes:
        zone_type: Shared incident type
        members: Member incidents, sorted by (created_at, id)
        center: Centroid of member coordinates
        radius_m: Max member distance from center, floored at the minimum radius
    """

    zone_type: IncidentType
    members: Tuple[Incident, ...]
    center: Coordinate
    radius_m: int

    @property
    def incident_count(self) -> int:
        return len(self.members)

    @property
    def last_incident_at(self) -> datetime:
        return max(incident.created_at for incident in self.members)

    @property
    def member_ids(self) -> Tuple[str, ...]:
        return tuple(incident.id for incident in self.members)


class IncidentClusterer:
    """
    DBSCAN clustering of incidents by type.

    Two incidents are reachable when within neighborhood_m of each other;
    a core incident needs min_neighbors incidents (itself included) in its
    neighborhood. Clusters smaller than min_neighbors are discarded.

    Example:
        >>> clusterer = IncidentClusterer(neighborhood_m=1000, min_neighbors=5)
        >>> clusters = clusterer.cluster(recent_incidents)
    """

    def __init__(
        self,
        neighborhood_m: float = 1000.0,
        min_neighbors: int = 5,
        min_radius_m: int = 1000,
    ):
        if neighborhood_m <= 0:
            raise ValueError(f"neighborhood_m must be > 0, got {neighborhood_m}")
        if min_neighbors < 1:
            raise ValueError(f"min_neighbors must be >= 1, got {min_neighbors}")
        if min_radius_m <= 0:
            raise ValueError(f"min_radius_m must be > 0, got {min_radius_m}")

        self.neighborhood_m = neighborhood_m
        self.min_neighbors = min_neighbors
        self.min_radius_m = min_radius_m

    def cluster(self, incidents: Iterable[Incident]) -> List[IncidentCluster]:
        """
        Cluster incidents independently per type.

        Args:
            incidents: Candidate incidents (already filtered to the window)

        Returns:
            Clusters sorted by (type, earliest member created_at, first id)
        """
        by_type: Dict[IncidentType, List[Incident]] = defaultdict(list)
        for incident in incidents:
            by_type[incident.type].append(incident)

        clusters: List[IncidentCluster] = []
        for incident_type in sorted(by_type, key=lambda t: t.value):
            clusters.extend(self._cluster_type(incident_type, by_type[incident_type]))

        clusters.sort(key=lambda c: (
            c.zone_type.value, c.members[0].created_at, c.members[0].id
        ))
        return clusters

    def _cluster_type(
        self,
        incident_type: IncidentType,
        incidents: List[Incident],
    ) -> List[IncidentCluster]:
        if len(incidents) < self.min_neighbors:
            return []

        ordered = sorted(incidents, key=lambda i: (i.created_at, i.id))
        coords = np.radians([[i.latitude, i.longitude] for i in ordered])

        labels = DBSCAN(
            eps=self.neighborhood_m / EARTH_RADIUS_M,
            min_samples=self.min_neighbors,
            metric='haversine',
            algorithm='ball_tree',
        ).fit_predict(coords)

        grouped: Dict[int, List[Incident]] = defaultdict(list)
        for incident, label in zip(ordered, labels):
            if label != -1:
                grouped[int(label)].append(incident)

        return [
            self._build_cluster(incident_type, members)
            for _, members in sorted(grouped.items())
            if len(members) >= self.min_neighbors
        ]

    def _build_cluster(
        self,
        incident_type: IncidentType,
        members: List[Incident],
    ) -> IncidentCluster:
        points = np.array([[m.latitude, m.longitude] for m in members])
        center_lat, center_lon = points.mean(axis=0)
        center = Coordinate(float(center_lat), float(center_lon))

        spread = max(
            haversine_m(center.lat, center.lon, m.latitude, m.longitude)
            for m in members
        )
        radius = max(self.min_radius_m, int(math.ceil(spread)))

        return IncidentCluster(
            zone_type=incident_type,
            members=tuple(members),
            center=center,
            radius_m=radius,
        )
