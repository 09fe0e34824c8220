"""
Hotspot CLI - Command-line interface for the Hotspot Engine.

This package provides offline analysis over a JSON dataset and a thin
MQTT request client for a running engine.

Usage:
    hotspot-cli geohash -26.2041 28.0473
    hotspot-cli cluster --dataset data/sample_dataset.json
    hotspot-cli analyze-route -26.2041 28.0473 -26.1076 28.0567 --dataset data/sample_dataset.json
    hotspot-cli location-update user-1 -26.2041 28.0473
    hotspot-cli list-zones
"""

__version__ = "1.0.0"
