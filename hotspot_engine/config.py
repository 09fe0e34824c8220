"""
Configuration schema for the Hotspot Engine service.

This module defines the configuration structure for the engine, including
clustering cadence and thresholds, geofence look-ahead, geohash fanout,
route scoring parameters and MQTT settings.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional
import yaml

from hotspot_zone.analytics.risk import RiskPolicy


@dataclass(frozen=True)
class ClusteringConfig:
    """Zone clustering job configuration."""

    interval_seconds: float = 600.0
    lookback_days: int = 7
    neighborhood_m: float = 1000.0
    min_neighbors: int = 5
    min_radius_m: int = 1000
    dissolve_below: int = 3
    max_attempts: int = 3
    backoff_seconds: float = 2.0
    max_scan_seconds: float = 120.0
    risk_policy: RiskPolicy = field(default_factory=RiskPolicy)

    def __post_init__(self):
        """Validate clustering configuration."""
        if self.interval_seconds <= 0:
            raise ValueError(
                f"interval_seconds must be > 0, got {self.interval_seconds}"
            )

        if self.lookback_days < 1:
            raise ValueError(
                f"lookback_days must be >= 1, got {self.lookback_days}"
            )

        if self.neighborhood_m <= 0:
            raise ValueError(
                f"neighborhood_m must be > 0, got {self.neighborhood_m}"
            )

        if self.min_neighbors < 2:
            raise ValueError(
                f"min_neighbors must be >= 2, got {self.min_neighbors}"
            )

        if self.min_radius_m <= 0:
            raise ValueError(
                f"min_radius_m must be > 0, got {self.min_radius_m}"
            )

        if self.dissolve_below < 1:
            raise ValueError(
                f"dissolve_below must be >= 1, got {self.dissolve_below}"
            )

        if not 1 <= self.max_attempts <= 10:
            raise ValueError(
                f"max_attempts must be in [1, 10], got {self.max_attempts}"
            )

        if self.backoff_seconds < 0:
            raise ValueError(
                f"backoff_seconds must be >= 0, got {self.backoff_seconds}"
            )

        if self.max_scan_seconds <= 0:
            raise ValueError(
                f"max_scan_seconds must be > 0, got {self.max_scan_seconds}"
            )


@dataclass(frozen=True)
class TrackingConfig:
    """Geofence tracking configuration."""

    approach_distance_m: float = 2000.0

    def __post_init__(self):
        if self.approach_distance_m <= 0:
            raise ValueError(
                f"approach_distance_m must be > 0, got {self.approach_distance_m}"
            )


@dataclass(frozen=True)
class FanoutConfig:
    """Geohash fanout configuration."""

    precision: int = 6
    min_topic_length: int = 5
    max_topic_length: int = 7

    def __post_init__(self):
        if not 1 <= self.min_topic_length <= self.max_topic_length <= 12:
            raise ValueError(
                "topic lengths must satisfy 1 <= min <= max <= 12, got "
                f"{self.min_topic_length}/{self.max_topic_length}"
            )
        if not self.min_topic_length <= self.precision <= self.max_topic_length:
            raise ValueError(
                f"precision must be in [{self.min_topic_length}, {self.max_topic_length}], "
                f"got {self.precision}"
            )


@dataclass(frozen=True)
class RouteConfig:
    """Route safety scoring configuration."""

    default_radius_m: float = 1000.0
    incident_window_hours: float = 48.0
    segment_count: int = 5
    detour_fraction: float = 0.1
    recent_minutes: float = 10.0
    recent_radius_factor: float = 5.0

    def __post_init__(self):
        if self.default_radius_m <= 0:
            raise ValueError(
                f"default_radius_m must be > 0, got {self.default_radius_m}"
            )
        if self.incident_window_hours <= 0:
            raise ValueError(
                f"incident_window_hours must be > 0, got {self.incident_window_hours}"
            )
        if self.segment_count < 1:
            raise ValueError(
                f"segment_count must be >= 1, got {self.segment_count}"
            )
        if not 0.0 < self.detour_fraction <= 1.0:
            raise ValueError(
                f"detour_fraction must be in (0, 1], got {self.detour_fraction}"
            )
        if self.recent_minutes <= 0:
            raise ValueError(
                f"recent_minutes must be > 0, got {self.recent_minutes}"
            )
        if self.recent_radius_factor <= 0:
            raise ValueError(
                f"recent_radius_factor must be > 0, got {self.recent_radius_factor}"
            )


@dataclass(frozen=True)
class MQTTConfig:
    """MQTT broker configuration. Disabled means an in-process bus."""

    enabled: bool = False
    broker: str = "localhost"
    port: int = 1883
    username: Optional[str] = None
    password: Optional[str] = None
    qos: int = 1
    topic_prefix: str = "hotspot"

    request_topic: str = "hotspot/engine/{service_id}/requests"
    reply_topic: str = "hotspot/engine/{service_id}/replies"
    status_topic: str = "hotspot/engine/{service_id}/status"

    def __post_init__(self):
        """Validate MQTT configuration."""
        if not 1 <= self.port <= 65535:
            raise ValueError(
                f"MQTT port must be in [1, 65535], got {self.port}"
            )

        if self.qos not in {0, 1, 2}:
            raise ValueError(
                f"MQTT QoS must be 0, 1, or 2, got {self.qos}"
            )

        if not self.topic_prefix:
            raise ValueError("topic_prefix cannot be empty")


@dataclass(frozen=True)
class EngineConfig:
    """
    Main configuration for the Hotspot Engine service.

    This configuration is loaded from YAML and validated at startup.
    Immutable after construction (frozen dataclass).
    """

    # Service identification
    service_id: str = "engine_01"

    # Optional JSON dataset (incidents, users, zones) for the in-memory stores
    dataset_path: Optional[Path] = None

    clustering: ClusteringConfig = field(default_factory=ClusteringConfig)
    tracking: TrackingConfig = field(default_factory=TrackingConfig)
    fanout: FanoutConfig = field(default_factory=FanoutConfig)
    route: RouteConfig = field(default_factory=RouteConfig)
    mqtt_config: MQTTConfig = field(default_factory=MQTTConfig)

    def __post_init__(self):
        """Validate engine configuration."""
        if not self.service_id:
            raise ValueError("service_id cannot be empty")

        if self.dataset_path is not None and not self.dataset_path.exists():
            raise FileNotFoundError(
                f"Dataset file not found: {self.dataset_path}\n"
                f"Create the file or update 'dataset_path' in config"
            )

    def topic(self, template: str) -> str:
        """Expand a {service_id} topic template."""
        return template.format(service_id=self.service_id)

    @classmethod
    def default(cls) -> "EngineConfig":
        return cls()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EngineConfig":
        data = data or {}

        clustering_data = dict(data.get("clustering", {}))
        risk_policy = RiskPolicy(**clustering_data.pop("risk_policy", {}))
        clustering = ClusteringConfig(risk_policy=risk_policy, **clustering_data)

        dataset_path = data.get("dataset_path")

        return cls(
            service_id=data.get("service_id", "engine_01"),
            dataset_path=Path(dataset_path) if dataset_path else None,
            clustering=clustering,
            tracking=TrackingConfig(**data.get("tracking", {})),
            fanout=FanoutConfig(**data.get("fanout", {})),
            route=RouteConfig(**data.get("route", {})),
            mqtt_config=MQTTConfig(**data.get("mqtt_config", {})),
        )

    @classmethod
    def from_yaml(cls, yaml_path: Path) -> "EngineConfig":
        """
        Load configuration from YAML file.

        Example YAML:
            service_id: "engine_01"
            dataset_path: "./data/sample_dataset.json"

            clustering:
              interval_seconds: 600
              lookback_days: 7
              neighborhood_m: 1000
              min_neighbors: 5
              risk_policy:
                critical_threshold: 20
                high_threshold: 11
                medium_threshold: 6

            tracking:
              approach_distance_m: 2000

            mqtt_config:
              enabled: true
              broker: "localhost"
              port: 1883
        """
        with open(yaml_path) as f:
            data = yaml.safe_load(f)

        return cls.from_dict(data)
