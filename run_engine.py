#!/usr/bin/env python3
"""
Hotspot Engine Service - Entry Point
====================================

This script starts the Hotspot Engine, which:
- Clusters recent incidents into hotspot zones on a schedule
- Tracks per-user zone entry / exit / approaching from location updates
- Fans out new incidents to geohash topics (cell + 8 neighbors)
- Scores routes against recent incidents and active zones
- Responds to requests via the MQTT control plane

Usage:
    python run_engine.py --config config/engine_config.yaml
    python run_engine.py --config config/engine_config.yaml --dataset data/sample_dataset.json

Architecture:
    - HotspotEngineService: Main orchestrator (hotspot_engine)
    - MQTTControlPlane: Request handler (hotspot_control)
    - MessageBus: InProcessBus or MQTTBus (hotspot_mqtt)

Startup order: config, dataset, bus, control plane, service. SIGTERM and
SIGINT both stop the scheduler and control plane before the bus goes down.
Console and logs/engine.log share the --log-level threshold.
"""

import argparse
import dataclasses
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

from hotspot_control import MQTTControlPlane
from hotspot_engine import (
    EngineConfig,
    EngineStores,
    HotspotEngineService,
    build_bus,
    load_dataset,
)
from hotspot_mqtt import MessageBus, MQTTBus


# ─────────────────────────────────────────────────────────────────────────────
# Logging Setup
# ─────────────────────────────────────────────────────────────────────────────

def setup_logging(log_file: Optional[Path] = None, level: int = logging.INFO) -> logging.Logger:
    """Console plus optional file handler; structured component loggers keep their own JSON handler."""
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout),
            *(
                [logging.FileHandler(log_file)]
                if log_file
                else []
            )
        ]
    )

    return logging.getLogger("hotspot_engine.run")


# ─────────────────────────────────────────────────────────────────────────────
# Main Service
# ─────────────────────────────────────────────────────────────────────────────

class EngineApp:
    """Wires config, dataset, bus and control plane around one HotspotEngineService."""

    def __init__(
        self,
        config_path: Path,
        log_file: Optional[Path] = None,
        dataset_override: Optional[Path] = None,
        log_level: int = logging.INFO,
    ):
        self.config_path = config_path
        self.log_file = log_file
        self.dataset_override = dataset_override
        self.logger = setup_logging(log_file, log_level)

        # Components (initialized in setup())
        self.config: Optional[EngineConfig] = None
        self.bus: Optional[MessageBus] = None
        self.control_plane: Optional[MQTTControlPlane] = None
        self.service: Optional[HotspotEngineService] = None

        # Signal handling
        self._shutdown_requested = False

    def setup(self):
        """
        Setup all components.

        Steps:
        1. Load configuration from YAML
        2. Load dataset into stores
        3. Create and connect the bus
        4. Create control plane (when MQTT is enabled)
        5. Create HotspotEngineService and register handlers
        """
        self.logger.info("=" * 80)
        self.logger.info("🚀 Hotspot Engine - Starting")
        self.logger.info("=" * 80)

        # 1. Load configuration
        self.logger.info(f"📄 Loading configuration: {self.config_path}")
        self.config = EngineConfig.from_yaml(self.config_path)
        if self.dataset_override is not None:
            # Re-validates that the file exists
            self.config = dataclasses.replace(self.config, dataset_path=self.dataset_override)
        self.logger.info(
            f"✅ Configuration loaded (service_id={self.config.service_id}, "
            f"clustering every {self.config.clustering.interval_seconds}s)"
        )

        # 2. Stores
        if self.config.dataset_path is not None:
            self.logger.info(f"📦 Loading dataset: {self.config.dataset_path}")
            stores = EngineStores.from_dataset(load_dataset(self.config.dataset_path))
        else:
            self.logger.info("📦 No dataset configured, starting with empty stores")
            stores = EngineStores.from_dataset()

        # 3. Bus
        self.bus = build_bus(self.config)
        if isinstance(self.bus, MQTTBus):
            self.logger.info("🔌 Connecting message bus")
            if not self.bus.connect(timeout=10.0):
                raise RuntimeError("Failed to connect to MQTT broker (bus)")
        else:
            self.logger.info("🧩 MQTT disabled, using in-process bus")

        # 4. Control plane
        mqtt_config = self.config.mqtt_config
        if mqtt_config.enabled:
            self.logger.info("🔌 Creating MQTT control plane")
            self.control_plane = MQTTControlPlane(
                broker_host=mqtt_config.broker,
                broker_port=mqtt_config.port,
                request_topic=self.config.topic(mqtt_config.request_topic),
                reply_topic=self.config.topic(mqtt_config.reply_topic),
                status_topic=self.config.topic(mqtt_config.status_topic),
                client_id=f"hotspot_{self.config.service_id}_control",
                username=mqtt_config.username,
                password=mqtt_config.password,
            )

        # 5. Service
        self.logger.info("🏗️ Creating HotspotEngineService")
        self.service = HotspotEngineService(
            config=self.config,
            stores=stores,
            bus=self.bus,
            control_plane=self.control_plane,
        )
        self.service.setup()

        self.logger.info("✅ Setup complete")

    def run(self):
        """
        Run the service (blocks until stopped).

        Raises:
            RuntimeError: If setup() was not called
        """
        if not self.service:
            raise RuntimeError("Service not initialized. Call setup() first.")

        # Setup signal handlers
        signal.signal(signal.SIGTERM, self._signal_handler)
        signal.signal(signal.SIGINT, self._signal_handler)

        try:
            self.service.start()

            self.logger.info("✅ Service started successfully")
            self.logger.info("Press Ctrl+C to stop")
            self.logger.info("=" * 80)

            self.service.wait()

        except KeyboardInterrupt:
            self.logger.info("\n⚠️  KeyboardInterrupt received")
            self.shutdown()

        except Exception as e:
            self.logger.error(f"❌ Service error: {e}", exc_info=True)
            self.shutdown()
            sys.exit(1)

    def shutdown(self):
        """Stop the service (scheduler, control plane), then the bus. Idempotent."""
        if self._shutdown_requested:
            self.logger.warning("⚠️  Shutdown already in progress")
            return

        self._shutdown_requested = True

        self.logger.info("=" * 80)
        self.logger.info("🛑 Shutting down engine service")
        self.logger.info("=" * 80)

        if self.service and self.service.is_running():
            try:
                self.service.stop()
                self.logger.info("✅ Service stopped")
            except Exception as e:
                self.logger.error(f"❌ Error stopping service: {e}")

        if isinstance(self.bus, MQTTBus):
            try:
                self.bus.disconnect()
                self.logger.info("✅ Message bus disconnected")
            except Exception as e:
                self.logger.error(f"❌ Error disconnecting bus: {e}")

        self.logger.info("=" * 80)
        self.logger.info("✅ Shutdown complete")
        self.logger.info("=" * 80)

    def _signal_handler(self, signum, frame):
        signal_name = signal.Signals(signum).name
        self.logger.info(f"\n⚠️  Received signal {signal_name} ({signum})")
        self.shutdown()
        sys.exit(0)


# ─────────────────────────────────────────────────────────────────────────────
# CLI
# ─────────────────────────────────────────────────────────────────────────────

def parse_args():
    parser = argparse.ArgumentParser(
        description="Hotspot Engine - zone clustering, geofencing, fanout and route safety",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Default config
  python run_engine.py --config config/engine_config.yaml

  # Custom log file
  python run_engine.py --config config/engine_config.yaml --log-file logs/custom.log

  # Console only, verbose
  python run_engine.py --config config/engine_config.yaml --no-log-file --log-level DEBUG

  # Replay another dataset with the same settings
  python run_engine.py --config config/engine_config.yaml --dataset data/sample_dataset.json
        """
    )

    parser.add_argument(
        '--config',
        type=Path,
        required=True,
        help='Path to engine configuration YAML file'
    )

    parser.add_argument(
        '--log-file',
        type=Path,
        default=Path('logs/engine.log'),
        help='Path to log file (default: logs/engine.log)'
    )

    parser.add_argument(
        '--no-log-file',
        action='store_true',
        help='Disable file logging (console only)'
    )

    parser.add_argument(
        '--dataset',
        type=Path,
        default=None,
        help='Dataset JSON to load instead of the configured dataset_path'
    )

    parser.add_argument(
        '--log-level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        default='INFO',
        help='Console and file log level (default: INFO)'
    )

    return parser.parse_args()


def main():
    args = parse_args()

    log_file = None if args.no_log_file else args.log_file

    if not args.config.exists():
        print(f"❌ Error: Configuration file not found: {args.config}", file=sys.stderr)
        sys.exit(1)

    app = EngineApp(
        config_path=args.config,
        log_file=log_file,
        dataset_override=args.dataset,
        log_level=getattr(logging, args.log_level),
    )

    try:
        app.setup()
        app.run()
    except Exception as e:
        print(f"❌ Fatal error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == '__main__':
    main()
