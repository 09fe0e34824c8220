"""
Hotspot Engine - service layer of the incident intelligence engine.

Components:
- config: YAML configuration (frozen dataclasses)
- stores: store protocols + thread-safe in-memory stores, JSON dataset loader
- clustering / scheduler: zone lifecycle from recent incidents
- geofence: per-user zone entry / exit / approaching
- route: route safety reports
- service: HotspotEngineService (request handlers + lifecycle)
"""

from .config import (
    EngineConfig,
    ClusteringConfig,
    TrackingConfig,
    FanoutConfig,
    RouteConfig,
    MQTTConfig,
)
from .errors import (
    ValidationError,
    InvalidTopicError,
    StoreUnavailableError,
    ScanTimeoutError,
    DuplicateOpenTrackingError,
    UserNotFoundError,
)
from .stores import (
    Dataset,
    EngineStores,
    InMemoryIncidentStore,
    InMemoryUserStore,
    InMemoryZoneStore,
    InMemoryTrackingStore,
    load_dataset,
)
from .clustering import ZoneClusteringEngine, ClusteringPlan, ScanResult
from .scheduler import ClusteringScheduler, RunOutcome, RunStatus
from .geofence import GeofenceService, LocationUpdateResult
from .route import RouteSafetyScorer, RouteReport, RouteSegment
from .service import HotspotEngineService, build_bus, session_topic

__all__ = [
    "EngineConfig",
    "ClusteringConfig",
    "TrackingConfig",
    "FanoutConfig",
    "RouteConfig",
    "MQTTConfig",
    "ValidationError",
    "InvalidTopicError",
    "StoreUnavailableError",
    "ScanTimeoutError",
    "DuplicateOpenTrackingError",
    "UserNotFoundError",
    "Dataset",
    "EngineStores",
    "InMemoryIncidentStore",
    "InMemoryUserStore",
    "InMemoryZoneStore",
    "InMemoryTrackingStore",
    "load_dataset",
    "ZoneClusteringEngine",
    "ClusteringPlan",
    "ScanResult",
    "ClusteringScheduler",
    "RunOutcome",
    "RunStatus",
    "GeofenceService",
    "LocationUpdateResult",
    "RouteSafetyScorer",
    "RouteReport",
    "RouteSegment",
    "HotspotEngineService",
    "build_bus",
    "session_topic",
]

__version__ = "1.0.0"
