"""
Risk Scoring Module
===================

Pure, deterministic risk functions shared by the clustering engine, the
geofence messages and the route scorer.

Design:
- RiskPolicy: zone risk level from incident_count + recency (tunable cut points)
- calculate_safety_score: 0-100 composite from incidents and zone risk levels
- safety_level: score bucket (safe / moderate / caution / dangerous)
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Iterable, Optional

from hotspot_zone.models import RiskLevel

INCIDENT_PENALTY = 2

ZONE_PENALTIES = {
    RiskLevel.CRITICAL: 20,
    RiskLevel.HIGH: 10,
    RiskLevel.MEDIUM: 5,
    RiskLevel.LOW: 2,
}


class SafetyLevel(str, Enum):
    """Bucketed safety score."""
    SAFE = "safe"
    MODERATE = "moderate"
    CAUTION = "caution"
    DANGEROUS = "dangerous"


@dataclass(frozen=True)
class RiskPolicy:
    """
    Zone risk classification policy.

    Thresholds are minimum incident counts. Critical additionally requires
    an incident inside the recency window; without one the zone falls back
    to high, so the level stays non-decreasing in incident_count.

    Attributes:
        critical_threshold: Minimum count for critical (default 20)
        high_threshold: Minimum count for high (default 11)
        medium_threshold: Minimum count for medium (default 6)
        critical_recency_hours: Window for the critical recency check (default 24)
    """

    critical_threshold: int = 20
    high_threshold: int = 11
    medium_threshold: int = 6
    critical_recency_hours: float = 24.0

    def __post_init__(self):
        """Validate monotonic cut points."""
        if not self.critical_threshold >= self.high_threshold >= self.medium_threshold >= 1:
            raise ValueError(
                "Risk thresholds must satisfy critical >= high >= medium >= 1, got "
                f"{self.critical_threshold}/{self.high_threshold}/{self.medium_threshold}"
            )
        if self.critical_recency_hours <= 0:
            raise ValueError(
                f"critical_recency_hours must be > 0, got {self.critical_recency_hours}"
            )

    def classify(
        self,
        incident_count: int,
        last_incident_at: Optional[datetime],
        now: datetime,
    ) -> RiskLevel:
        """
        Risk level for a zone.

        Args:
            incident_count: Incidents attributed to the zone
            last_incident_at: Most recent member incident (None if unknown)
            now: Evaluation time

        Returns:
            RiskLevel (total: every input maps to a level)
        """
        recent = (
            last_incident_at is not None
            and now - last_incident_at <= timedelta(hours=self.critical_recency_hours)
        )
        if incident_count >= self.critical_threshold and recent:
            return RiskLevel.CRITICAL
        if incident_count >= self.high_threshold:
            return RiskLevel.HIGH
        if incident_count >= self.medium_threshold:
            return RiskLevel.MEDIUM
        return RiskLevel.LOW


def calculate_safety_score(incidents: Iterable, zones: Iterable) -> int:
    """
    Composite safety score.

    score = 100 - 2 * len(incidents) - sum(zone penalties), clamped to [0, 100].

    Args:
        incidents: Qualifying incidents (only counted)
        zones: Qualifying zones (anything with a risk_level)

    Returns:
        Integer score in [0, 100], independent of input order
    """
    incident_count = sum(1 for _ in incidents)
    penalty = sum(ZONE_PENALTIES[RiskLevel(zone.risk_level)] for zone in zones)
    score = 100 - INCIDENT_PENALTY * incident_count - penalty
    return max(0, min(100, score))


def safety_level(score: int) -> SafetyLevel:
    """Bucket a safety score."""
    if score >= 80:
        return SafetyLevel.SAFE
    if score >= 60:
        return SafetyLevel.MODERATE
    if score >= 40:
        return SafetyLevel.CAUTION
    return SafetyLevel.DANGEROUS
