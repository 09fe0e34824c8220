"""
Hotspot Engine Service - wires the engine components behind one request surface.

This module provides the HotspotEngineService class which owns the message
bus publishers, the geohash fanout router, the geofence service, the zone
clustering engine with its scheduler, and the route safety scorer, and
registers every request command with a CommandRegistry.

Architecture:
- One MessageBus (InProcessBus or MQTTBus) shared by every publisher
- Requests arrive through MQTTControlPlane (or are executed directly via
  the CommandRegistry in tests and the CLI)
- Clustering runs on the scheduler thread; requests never wait for it

Threading Model:
- Clustering Scheduler Thread (periodic scans)
- paho-mqtt network threads (control plane requests, bus deliveries)
- Request handlers run on the caller's thread; per-user ordering is
  enforced inside GeofenceService
"""

import logging
import threading
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from hotspot_control import CommandRegistry, GeohashFanoutRouter, MQTTControlPlane
from hotspot_mqtt import (
    BusMessage,
    GeofenceEvent,
    GeofenceEventPublisher,
    InProcessBus,
    MessageBus,
    MQTTBus,
    NotificationPublisher,
    Sink,
    StructuredLogger,
    ZoneEventPublisher,
    create_logger,
)
from hotspot_zone import Coordinate, Incident, ValidationError, utc_now

from .clustering import ZoneClusteringEngine
from .config import EngineConfig
from .geofence import GeofenceService
from .route import RouteSafetyScorer
from .scheduler import ClusteringScheduler
from .stores import EngineStores

logger = logging.getLogger(__name__)

SESSION_TOPIC_PREFIX = "sessions:"


def session_topic(session_id: str) -> str:
    """Topic a remote session listens on for pushed events."""
    return f"{SESSION_TOPIC_PREFIX}{session_id}"


def component_logger(config: EngineConfig, component: str) -> StructuredLogger:
    """Structured logger tagged with this engine's service_id."""
    return create_logger(component, service_id=config.service_id)


def build_bus(config: EngineConfig) -> MessageBus:
    """InProcessBus when MQTT is disabled, otherwise an (unconnected) MQTTBus."""
    mqtt_config = config.mqtt_config
    if not mqtt_config.enabled:
        return InProcessBus(logger=component_logger(config, "bus"))
    return MQTTBus(
        broker_host=mqtt_config.broker,
        broker_port=mqtt_config.port,
        client_id=f"hotspot_{config.service_id}_bus",
        logger=component_logger(config, "bus"),
        username=mqtt_config.username,
        password=mqtt_config.password,
        qos=mqtt_config.qos,
        topic_prefix=mqtt_config.topic_prefix,
    )


def _require(data: Dict[str, Any], key: str) -> Any:
    value = data.get(key)
    if value is None or value == "":
        raise ValidationError(f"missing {key}")
    return value


def _coordinate(data: Dict[str, Any], key: str) -> Coordinate:
    if data.get(key) is None:
        raise ValidationError(f"missing {key}")
    return Coordinate.from_dict(data[key])


class HotspotEngineService:
    """
    Incident intelligence engine service.

    Components:
    1. ZoneClusteringEngine + ClusteringScheduler (zone lifecycle)
    2. GeofenceService (per-user entry / exit / approaching)
    3. GeohashFanoutRouter (incident:new apron broadcast)
    4. RouteSafetyScorer (route reports)

    Usage:
        config = EngineConfig.from_yaml("config/engine_config.yaml")
        stores = EngineStores.from_dataset(load_dataset(config.dataset_path))
        bus = build_bus(config)
        control_plane = MQTTControlPlane(...)

        service = HotspotEngineService(config, stores, bus, control_plane)
        service.setup()
        service.start()
        service.wait()  # Blocks until stop()
    """

    def __init__(
        self,
        config: EngineConfig,
        stores: EngineStores,
        bus: MessageBus,
        control_plane: Optional[MQTTControlPlane] = None,
        clock: Callable[[], datetime] = utc_now,
        run_on_start: bool = True,
    ):
        """
        Initialize the engine service.

        Args:
            config: Engine configuration
            stores: Incident, user, zone and tracking stores
            bus: Message bus shared by publishers and the fanout router
            control_plane: Optional MQTT request surface
            clock: Time source (injected in tests)
            run_on_start: Run a clustering scan as soon as the scheduler starts
        """
        self.config = config
        self.stores = stores
        self.bus = bus
        self.control_plane = control_plane
        self.clock = clock

        self.command_registry = (
            control_plane.command_registry if control_plane else CommandRegistry()
        )

        # Publishers
        self.zone_event_publisher = ZoneEventPublisher(bus, component_logger(config, "zones"))
        self.geofence_publisher = GeofenceEventPublisher(bus, component_logger(config, "geofence"))
        self.notification_publisher = NotificationPublisher(bus, component_logger(config, "notifications"))

        # Components
        self.router = GeohashFanoutRouter(
            bus,
            precision=config.fanout.precision,
            min_topic_length=config.fanout.min_topic_length,
            max_topic_length=config.fanout.max_topic_length,
            logger=component_logger(config, "fanout"),
        )
        self.geofence = GeofenceService(
            zone_store=stores.zones,
            tracking_store=stores.tracking,
            user_store=stores.users,
            config=config.tracking,
            event_publisher=self.geofence_publisher,
            notification_publisher=self.notification_publisher,
            lookback_days=config.clustering.lookback_days,
            clock=clock,
            logger=component_logger(config, "geofence"),
        )
        self.clustering_engine = ZoneClusteringEngine(
            incident_store=stores.incidents,
            zone_store=stores.zones,
            config=config.clustering,
            publisher=self.zone_event_publisher,
            clock=clock,
            logger=component_logger(config, "clustering"),
        )
        self.scheduler = ClusteringScheduler(
            self.clustering_engine,
            config.clustering,
            structured_logger=component_logger(config, "clustering"),
            run_on_start=run_on_start,
        )
        self.scorer = RouteSafetyScorer(
            incident_store=stores.incidents,
            zone_store=stores.zones,
            config=config.route,
            approach_distance_m=config.tracking.approach_distance_m,
            clock=clock,
            logger=component_logger(config, "route"),
        )

        # Lifecycle state
        self._running = False
        self._stopped_event = threading.Event()
        self._handlers_registered = False

        logger.info(f"HotspotEngineService initialized for service_id={config.service_id}")

    # ===== Setup / lifecycle =====

    def setup(self) -> None:
        """Register request handlers. Must be called before start()."""
        if self._handlers_registered:
            return
        self._setup_handlers()
        self._handlers_registered = True

    def _setup_handlers(self) -> None:
        """
        Register all supported commands.

        Handlers take the full request payload and return the reply result;
        validation failures raise ValidationError, which the control plane
        turns into {"error": {"reason": ...}}.
        """
        registry = self.command_registry

        # Geofence
        registry.register(
            "location_update",
            self._handle_location_update,
            "Apply a user location sample (zone entry / exit / approaching)"
        )

        # Incident fanout
        registry.register(
            "join_incidents",
            self._handle_join_incidents,
            "Subscribe a session to incidents:<geohash>"
        )
        registry.register(
            "leave_incidents",
            self._handle_leave_incidents,
            "Drop a session's incident subscription"
        )
        registry.register(
            "broadcast_incident",
            self._handle_broadcast_incident,
            "Fan out incident:new to the incident cell and its neighbors"
        )

        # Route safety
        registry.register(
            "analyze_route",
            self._handle_analyze_route,
            "Safety report for a route"
        )
        registry.register(
            "alternative_routes",
            self._handle_alternative_routes,
            "Rank detours around the direct route"
        )
        registry.register(
            "realtime_update",
            self._handle_realtime_update,
            "Re-score the remaining route and surface nearby alerts"
        )

        # Zones
        registry.register(
            "cluster_now",
            self._handle_cluster_now,
            "Run a clustering scan immediately"
        )
        registry.register(
            "list_zones",
            self._handle_list_zones,
            "List hotspot zones"
        )

        logger.info(f"Request handlers registered: {sorted(registry.available_commands)}")

    def start(self) -> None:
        """
        Start the engine (non-blocking).

        Lifecycle:
        1. Connect the control plane (if any)
        2. Start the clustering scheduler
        3. Publish running status
        """
        if self._running:
            logger.warning("Service already running")
            return

        self.setup()
        logger.info("Starting hotspot engine service")

        if self.control_plane is not None and not self.control_plane.connect(timeout=5.0):
            raise RuntimeError("Failed to connect to MQTT broker (control plane)")

        self.scheduler.start()
        self._running = True
        self._stopped_event.clear()

        if self.control_plane is not None:
            self.control_plane.publish_status("running")
        logger.info("✅ Hotspot engine service started")

    def wait(self) -> None:
        """Block until stop() is called."""
        if not self._running:
            logger.warning("Service not running")
            return
        try:
            self._stopped_event.wait()
        except KeyboardInterrupt:
            logger.info("Received KeyboardInterrupt, stopping...")
            self.stop()

    def stop(self) -> None:
        """
        Stop the engine gracefully.

        Lifecycle:
        1. Stop the clustering scheduler
        2. Publish stopped status and disconnect the control plane
        """
        if not self._running:
            logger.warning("Service not running")
            return

        logger.info("Stopping hotspot engine service")
        self.scheduler.stop()

        if self.control_plane is not None:
            self.control_plane.publish_status("stopped")
            self.control_plane.disconnect()

        self._running = False
        self._stopped_event.set()
        logger.info("✅ Hotspot engine service stopped")

    def is_running(self) -> bool:
        return self._running

    def execute(self, command: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        """Run a registered command directly (no MQTT round trip)."""
        self.setup()
        return self.command_registry.execute(command, payload or {})

    # ===== Session delivery =====

    def _session_sink(self, session_id: str) -> Sink:
        """Sink that forwards bus messages to the session's own topic."""
        topic = session_topic(session_id)

        def forward(message: BusMessage) -> None:
            self.bus.publish(topic, message.event, message.payload)

        return forward

    def _geofence_session_sink(self, session_id: str):
        topic = session_topic(session_id)

        def forward(event: GeofenceEvent) -> None:
            self.bus.publish(topic, event.action.event_name, event.to_dict())

        return forward

    # ===== Command handlers =====

    def _handle_location_update(self, data: Dict[str, Any]) -> Dict[str, Any]:
        user_id = str(_require(data, "user_id"))
        latitude = data.get("latitude", data.get("lat"))
        longitude = data.get("longitude", data.get("lon"))
        session_id = data.get("session_id")

        sink = self._geofence_session_sink(session_id) if session_id else None
        result = self.geofence.location_update(user_id, latitude, longitude, session_sink=sink)

        reply = result.to_reply()
        if session_id:
            reply["geohash"] = self.router.update_location(session_id, latitude, longitude)
        return reply

    def _handle_join_incidents(self, data: Dict[str, Any]) -> Dict[str, Any]:
        session_id = str(_require(data, "session_id"))
        topic_key = _require(data, "topic_key")
        if not isinstance(topic_key, str):
            raise ValidationError("invalid geohash")
        topic = self.router.join(session_id, topic_key, self._session_sink(session_id))
        return {"topic": topic, "session_topic": session_topic(session_id)}

    def _handle_leave_incidents(self, data: Dict[str, Any]) -> Dict[str, Any]:
        session_id = str(_require(data, "session_id"))
        return {"left": self.router.leave(session_id)}

    def _handle_broadcast_incident(self, data: Dict[str, Any]) -> Dict[str, Any]:
        record = _require(data, "incident")
        try:
            incident = Incident.from_dict(record)
        except ValidationError:
            raise
        except (TypeError, ValueError) as e:
            raise ValidationError(f"invalid incident: {e}")
        result = self.router.broadcast_new_incident(incident)
        return {
            "incident_id": result.incident_id,
            "geohash": result.geohash,
            "topics": result.topics,
            "deliveries": result.total_deliveries,
        }

    def _handle_analyze_route(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return self.scorer.analyze_route(
            _coordinate(data, "origin"),
            _coordinate(data, "destination"),
            data.get("radius"),
        )

    def _handle_alternative_routes(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return self.scorer.suggest_alternative_routes(
            _coordinate(data, "origin"),
            _coordinate(data, "destination"),
            data.get("radius"),
        )

    def _handle_realtime_update(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return self.scorer.realtime_updates(
            _coordinate(data, "current"),
            _coordinate(data, "destination"),
            data.get("radius"),
        )

    def _handle_cluster_now(self, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return self.scheduler.run_with_retry(wait=False).to_dict()

    def _handle_list_zones(self, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        include_inactive = bool((data or {}).get("include_inactive", False))
        zones = (
            self.stores.zones.list_all() if include_inactive
            else self.stores.zones.list_active()
        )
        return {"zones": [zone.to_dict() for zone in zones]}

    def get_stats(self) -> Dict[str, Any]:
        return {
            "service_id": self.config.service_id,
            "running": self._running,
            "scheduler": self.scheduler.get_stats(),
            "publishers": {
                "zones": self.zone_event_publisher.get_stats(),
                "geofence": self.geofence_publisher.get_stats(),
                "notifications": self.notification_publisher.get_stats(),
            },
            "sessions": self.router.registry.count(),
        }
