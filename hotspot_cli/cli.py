"""
Hotspot CLI - Main entry point.

Offline analysis over a JSON dataset (geohash, clustering, route scoring)
and requests to a running Hotspot Engine over MQTT.
"""

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import yaml

from hotspot_engine import (
    EngineConfig,
    EngineStores,
    RouteSafetyScorer,
    ZoneClusteringEngine,
    load_dataset,
)
from hotspot_zone import Coordinate, geohash, utc_now
from hotspot_zone.models import parse_datetime

from .mqtt_client import MQTTRequestClient


def load_yaml_config(config_path: str) -> Dict[str, Any]:
    """
    Load YAML request file.

    Args:
        config_path: Path to YAML file

    Returns:
        Dictionary with request payload

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If YAML is invalid
    """
    path = Path(config_path)

    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    try:
        with open(path) as f:
            config = yaml.safe_load(f)
        return config
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {config_path}: {e}")


def print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str, ensure_ascii=False))


def send_request(
    request: Dict[str, Any],
    service_id: str = "engine_01",
    broker: str = "localhost",
    port: int = 1883,
    timeout: float = 10.0
) -> Dict[str, Any]:
    """
    Send a request to the engine via MQTT and return its reply.

    Args:
        request: Request dictionary (must contain 'command')
        service_id: Target engine service ID
        broker: MQTT broker host
        port: MQTT broker port
        timeout: Seconds to wait for the reply
    """
    topic = f"hotspot/engine/{service_id}/requests"
    reply_topic = f"hotspot/engine/{service_id}/replies/cli"

    client = MQTTRequestClient(broker=broker, port=port)
    return client.send_request(topic, request, reply_topic, timeout=timeout)


# ===== Offline analysis =====

def _engine_config(args) -> EngineConfig:
    if args.config:
        return EngineConfig.from_yaml(Path(args.config))
    return EngineConfig.default()


def _clock(args) -> Callable:
    if args.now:
        now = parse_datetime(args.now)
        return lambda: now
    return utc_now


def _offline_stores(args, config: EngineConfig) -> EngineStores:
    dataset_path = args.dataset or config.dataset_path
    if dataset_path is None:
        raise ValueError("--dataset is required (or set dataset_path in --config)")
    return EngineStores.from_dataset(load_dataset(Path(dataset_path)))


def _offline_scorer(args) -> RouteSafetyScorer:
    config = _engine_config(args)
    stores = _offline_stores(args, config)
    clock = _clock(args)
    if args.cluster_first:
        ZoneClusteringEngine(stores.incidents, stores.zones, config.clustering, clock=clock).run_once()
    return RouteSafetyScorer(
        stores.incidents,
        stores.zones,
        config.route,
        approach_distance_m=config.tracking.approach_distance_m,
        clock=clock,
    )


def run_geohash(args) -> None:
    cell = geohash.encode(args.latitude, args.longitude, args.precision)
    print_json({'geohash': cell, 'apron': geohash.apron(cell)})


def run_cluster(args) -> None:
    config = _engine_config(args)
    stores = _offline_stores(args, config)
    engine = ZoneClusteringEngine(
        stores.incidents, stores.zones, config.clustering, clock=_clock(args)
    )
    result = engine.run_once()
    print_json({
        'scan': result.to_dict(),
        'zones': [zone.to_dict() for zone in stores.zones.list_active()],
    })


def run_analyze_route(args) -> None:
    scorer = _offline_scorer(args)
    print_json(scorer.analyze_route(
        Coordinate(args.origin_lat, args.origin_lon),
        Coordinate(args.dest_lat, args.dest_lon),
        args.radius,
    ))


def run_alternatives(args) -> None:
    scorer = _offline_scorer(args)
    print_json(scorer.suggest_alternative_routes(
        Coordinate(args.origin_lat, args.origin_lon),
        Coordinate(args.dest_lat, args.dest_lon),
        args.radius,
    ))


def run_realtime(args) -> None:
    scorer = _offline_scorer(args)
    print_json(scorer.realtime_updates(
        Coordinate(args.origin_lat, args.origin_lon),
        Coordinate(args.dest_lat, args.dest_lon),
        args.radius,
    ))


def _add_route_arguments(parser: argparse.ArgumentParser, origin_name: str = "origin") -> None:
    parser.add_argument('origin_lat', type=float, help=f'{origin_name.capitalize()} latitude')
    parser.add_argument('origin_lon', type=float, help=f'{origin_name.capitalize()} longitude')
    parser.add_argument('dest_lat', type=float, help='Destination latitude')
    parser.add_argument('dest_lon', type=float, help='Destination longitude')
    parser.add_argument('--radius', type=float, default=None, help='Search radius in meters')
    parser.add_argument('--dataset', help='JSON dataset (incidents, users, zones)')
    parser.add_argument('--config', help='Engine config YAML')
    parser.add_argument('--now', help='Evaluation time (ISO 8601, default: now)')
    parser.add_argument(
        '--cluster-first',
        action='store_true',
        help='Run one clustering scan before scoring'
    )


def main(argv: Optional[list] = None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Hotspot CLI - Offline analysis and requests to the Hotspot Engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Geohash cell and apron for a location
  hotspot-cli geohash -26.2041 28.0473

  # Cluster a dataset into hotspot zones
  hotspot-cli cluster --dataset data/sample_dataset.json --now 2024-05-01T12:00:00Z

  # Score a route offline
  hotspot-cli analyze-route -26.2041 28.0473 -26.1076 28.0567 \\
      --dataset data/sample_dataset.json --cluster-first

  # Requests to a running engine
  hotspot-cli location-update user-1 -26.2041 28.0473
  hotspot-cli list-zones
  hotspot-cli cluster-now
  hotspot-cli request config/requests/analyze_route.yaml
"""
    )

    # Global arguments
    parser.add_argument(
        "--service-id",
        default="engine_01",
        help="Target engine service ID (default: engine_01)"
    )
    parser.add_argument(
        "--broker",
        default="localhost",
        help="MQTT broker host (default: localhost)"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=1883,
        help="MQTT broker port (default: 1883)"
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=10.0,
        help="Seconds to wait for a reply (default: 10)"
    )

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    # Offline commands
    geohash_cmd = subparsers.add_parser('geohash', help='Geohash cell and apron for a location')
    geohash_cmd.add_argument('latitude', type=float)
    geohash_cmd.add_argument('longitude', type=float)
    geohash_cmd.add_argument('--precision', type=int, default=6)

    cluster = subparsers.add_parser('cluster', help='Cluster a dataset into hotspot zones')
    cluster.add_argument('--dataset', help='JSON dataset (incidents, users, zones)')
    cluster.add_argument('--config', help='Engine config YAML')
    cluster.add_argument('--now', help='Evaluation time (ISO 8601, default: now)')

    _add_route_arguments(subparsers.add_parser('analyze-route', help='Score a route offline'))
    _add_route_arguments(subparsers.add_parser('alternatives', help='Rank detours offline'))
    _add_route_arguments(
        subparsers.add_parser('realtime', help='Journey update from a current position'),
        origin_name="current",
    )

    # Remote commands
    location = subparsers.add_parser('location-update', help='Send a user location sample')
    location.add_argument('user_id')
    location.add_argument('latitude', type=float)
    location.add_argument('longitude', type=float)
    location.add_argument('--session-id', help='Also move the session incident subscription')

    request = subparsers.add_parser('request', help='Send a request from a YAML file')
    request.add_argument('config', help='Path to request YAML (must contain "command")')

    subparsers.add_parser('list-zones', help='List active hotspot zones')
    subparsers.add_parser('cluster-now', help='Run a clustering scan on the engine')

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    offline = {
        'geohash': run_geohash,
        'cluster': run_cluster,
        'analyze-route': run_analyze_route,
        'alternatives': run_alternatives,
        'realtime': run_realtime,
    }

    try:
        if args.command in offline:
            offline[args.command](args)
            return

        if args.command == 'location-update':
            payload = {
                'command': 'location_update',
                'user_id': args.user_id,
                'latitude': args.latitude,
                'longitude': args.longitude,
            }
            if args.session_id:
                payload['session_id'] = args.session_id

        elif args.command == 'request':
            payload = load_yaml_config(args.config)

        else:
            payload = {'command': args.command.replace('-', '_')}

        reply = send_request(payload, args.service_id, args.broker, args.port, args.timeout)
        print_json(reply)
        if not reply.get('ok'):
            sys.exit(2)

    except Exception as e:
        print(f"❌ Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == '__main__':
    main()
