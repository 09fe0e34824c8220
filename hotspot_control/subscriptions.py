"""
Subscription Registry - session → geohash topic bookkeeping

Bounded Context: Fanout session state
Responsibilities:
  - Remember which topic each session is subscribed to
  - Keep the bus subscription handle and sink for moves/leaves

Threading: Thread-safe (single lock, short critical sections)
Invariant: at most one topic per session, so subscription count is
bounded by active sessions rather than incident volume
"""

import threading
from dataclasses import dataclass
from typing import Dict, Optional

from hotspot_mqtt import Sink, Subscription


@dataclass(frozen=True)
class SessionSubscription:
    """A session's current topic membership."""
    session_id: str
    topic_key: str
    topic: str
    subscription: Subscription
    sink: Sink


class SubscriptionRegistry:
    """
    Thread-safe registry of session subscriptions.

    put() returns the replaced entry so the caller can release its bus
    subscription after the new one is live.
    """

    def __init__(self):
        self._sessions: Dict[str, SessionSubscription] = {}
        self._lock = threading.Lock()

    def get(self, session_id: str) -> Optional[SessionSubscription]:
        with self._lock:
            return self._sessions.get(session_id)

    def put(self, entry: SessionSubscription) -> Optional[SessionSubscription]:
        with self._lock:
            previous = self._sessions.get(entry.session_id)
            self._sessions[entry.session_id] = entry
            return previous

    def remove(self, session_id: str) -> Optional[SessionSubscription]:
        with self._lock:
            return self._sessions.pop(session_id, None)

    def count(self) -> int:
        with self._lock:
            return len(self._sessions)
