"""
Test Clustering Scheduler
=========================

Retry policy, timeout handling, overlap protection and the background
loop of the periodic clustering job.

Usage:
    pytest test_clustering_scheduler.py
"""

import threading
import time
from datetime import datetime, timezone

from hotspot_engine import (
    ClusteringConfig,
    ClusteringScheduler,
    InMemoryIncidentStore,
    InMemoryZoneStore,
    RunStatus,
    ScanResult,
    ScanTimeoutError,
    StoreUnavailableError,
    ZoneClusteringEngine,
)

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class ScriptedEngine:
    """Stands in for ZoneClusteringEngine; raises the scripted errors in order."""

    def __init__(self, failures=(), config=None):
        self.config = config or ClusteringConfig(backoff_seconds=0)
        self.failures = list(failures)
        self.calls = 0
        self.ran = threading.Event()

    def run_once(self):
        self.calls += 1
        self.ran.set()
        if self.failures:
            raise self.failures.pop(0)
        return ScanResult(started_at=NOW)


def test_transient_failures_are_retried():
    engine = ScriptedEngine([
        StoreUnavailableError("incident store down"),
        StoreUnavailableError("incident store down"),
    ])
    scheduler = ClusteringScheduler(engine)

    outcome = scheduler.run_with_retry()

    assert outcome.status == RunStatus.COMPLETED
    assert outcome.attempts == 3
    assert engine.calls == 3
    assert outcome.to_dict()['result']['created'] == []


def test_exhausted_retries_report_failure():
    engine = ScriptedEngine([StoreUnavailableError("down")] * 3)
    scheduler = ClusteringScheduler(engine)

    outcome = scheduler.run_with_retry()

    assert outcome.status == RunStatus.FAILED
    assert outcome.attempts == 3
    assert outcome.error == "StoreUnavailableError: down"
    stats = scheduler.get_stats()
    assert stats['run_count'] == 1
    assert stats['failure_count'] == 1
    assert stats['last_outcome']['status'] == "failed"


def test_timeout_is_not_retried():
    engine = ScriptedEngine([ScanTimeoutError("scan exceeded 120s")])
    scheduler = ClusteringScheduler(engine)

    outcome = scheduler.run_with_retry()

    assert outcome.status == RunStatus.TIMED_OUT
    assert outcome.attempts == 1
    assert engine.calls == 1


def test_overlapping_run_is_skipped():
    engine = ScriptedEngine()
    scheduler = ClusteringScheduler(engine)

    scheduler._run_lock.acquire()
    try:
        outcome = scheduler.run_with_retry(wait=False)
    finally:
        scheduler._run_lock.release()

    assert outcome.status == RunStatus.SKIPPED
    assert engine.calls == 0
    assert scheduler.run_with_retry(wait=False).status == RunStatus.COMPLETED


def test_background_loop_runs_on_start_and_stops():
    engine = ScriptedEngine(config=ClusteringConfig(interval_seconds=3600, backoff_seconds=0))
    scheduler = ClusteringScheduler(engine)

    scheduler.start()
    try:
        assert engine.ran.wait(timeout=5)
        assert scheduler.is_running()
    finally:
        scheduler.stop(timeout=5)

    assert not scheduler.is_running()
    assert engine.calls >= 1


def test_trigger_now_wakes_idle_loop():
    engine = ScriptedEngine(config=ClusteringConfig(interval_seconds=3600, backoff_seconds=0))
    scheduler = ClusteringScheduler(engine, run_on_start=False)

    scheduler.start()
    try:
        time.sleep(0.1)
        assert engine.calls == 0
        scheduler.trigger_now()
        assert engine.ran.wait(timeout=5)
    finally:
        scheduler.stop(timeout=5)


def test_scheduler_drives_real_engine():
    engine = ZoneClusteringEngine(
        InMemoryIncidentStore(),
        InMemoryZoneStore(),
        ClusteringConfig(),
        clock=lambda: NOW,
    )
    outcome = ClusteringScheduler(engine).run_with_retry()

    assert outcome.status == RunStatus.COMPLETED
    assert outcome.attempts == 1
    assert outcome.result.created == []
