"""
hotspot_control - Topic routing and request dispatch

Bounded Context: Who receives what, and how requests reach the engine
Responsibilities:
  - Geohash topic subscriptions per session (SubscriptionRegistry)
  - Apron fanout of new incidents (GeohashFanoutRouter)
  - Request registration and validation (CommandRegistry)
  - MQTT request/reply surface (MQTTControlPlane)

Design Philosophy:
  - Explicit registration (fail-fast, no runtime surprises)
  - Thread-safe (registries use locks)
  - Invalid topic keys are rejected, never coerced
"""

from .registry import CommandRegistry, CommandNotAvailableError
from .subscriptions import SubscriptionRegistry, SessionSubscription
from .router import GeohashFanoutRouter, FanoutResult, incident_topic
from .plane import MQTTControlPlane, build_reply

__all__ = [
    "CommandRegistry",
    "CommandNotAvailableError",
    "SubscriptionRegistry",
    "SessionSubscription",
    "GeohashFanoutRouter",
    "FanoutResult",
    "incident_topic",
    "MQTTControlPlane",
    "build_reply",
]
