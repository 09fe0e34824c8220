"""
Clustering Scheduler - periodic, non-overlapping clustering runs

Responsibilities:
  - Run ZoneClusteringEngine every interval on one background thread
  - Retry failed runs with bounded attempts and linear backoff
  - Abandon timed-out runs until the next interval (no retry)
  - Never let a failure escape the thread (zones go stale, never corrupt)

Threading:
  - A single worker thread owns the schedule
  - _run_lock guarantees at most one scan at a time, including scans
    triggered on demand from request handlers
  - stop() interrupts waits and backoff sleeps promptly
"""

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from hotspot_mqtt import LogEvent, StructuredLogger, create_logger

from .clustering import ScanResult, ZoneClusteringEngine
from .config import ClusteringConfig
from .errors import ScanTimeoutError

logger = logging.getLogger(__name__)


class RunStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class RunOutcome:
    """Outcome of one scheduled (or triggered) run."""
    status: RunStatus
    attempts: int = 0
    result: Optional[ScanResult] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            'status': self.status.value,
            'attempts': self.attempts,
            'result': self.result.to_dict() if self.result else None,
            'error': self.error,
        }


class ClusteringScheduler:
    """
    Periodic runner for the clustering engine.

    Example:
        scheduler = ClusteringScheduler(engine, config.clustering)
        scheduler.start()
        ...
        scheduler.stop()
    """

    def __init__(
        self,
        engine: ZoneClusteringEngine,
        config: Optional[ClusteringConfig] = None,
        structured_logger: Optional[StructuredLogger] = None,
        run_on_start: bool = True,
    ):
        self.engine = engine
        self.config = config or engine.config
        self.structured_logger = structured_logger or create_logger("clustering")
        self.run_on_start = run_on_start

        self._run_lock = threading.Lock()
        self._stop = threading.Event()
        self._wake = threading.Event()
        self._thread: Optional[threading.Thread] = None

        self._stats_lock = threading.Lock()
        self._run_count = 0
        self._failure_count = 0
        self._last_outcome: Optional[RunOutcome] = None

    # ===== Lifecycle =====

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            logger.warning("⚠️ Clustering scheduler already running")
            return

        self._stop.clear()
        self._thread = threading.Thread(
            target=self._loop,
            name="clustering-scheduler",
            daemon=True,
        )
        self._thread.start()
        logger.info(
            f"⏱️ Clustering scheduler started (interval={self.config.interval_seconds}s)"
        )

    def stop(self, timeout: float = 10.0) -> None:
        self._stop.set()
        self._wake.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.warning("⚠️ Clustering scheduler did not stop within timeout")
            self._thread = None
        logger.info("✅ Clustering scheduler stopped")

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def trigger_now(self) -> None:
        """Wake the worker for an immediate run."""
        self._wake.set()

    # ===== Runs =====

    def run_with_retry(self, wait: bool = True) -> RunOutcome:
        """
        Run one scan with bounded retries.

        Args:
            wait: Block until a running scan finishes; when False and a scan
                  is already in progress, return SKIPPED immediately

        Returns:
            RunOutcome (never raises for scan failures)
        """
        if not self._run_lock.acquire(blocking=wait):
            return RunOutcome(status=RunStatus.SKIPPED)

        try:
            outcome = self._attempt_runs()
        finally:
            self._run_lock.release()

        with self._stats_lock:
            self._run_count += 1
            if outcome.status != RunStatus.COMPLETED:
                self._failure_count += 1
            self._last_outcome = outcome
        return outcome

    def _attempt_runs(self) -> RunOutcome:
        max_attempts = self.config.max_attempts
        last_error: Optional[Exception] = None
        attempts_made = 0

        for attempt in range(1, max_attempts + 1):
            attempts_made = attempt
            try:
                result = self.engine.run_once()
                return RunOutcome(status=RunStatus.COMPLETED, attempts=attempt, result=result)

            except ScanTimeoutError as e:
                self.structured_logger.warning(
                    event=LogEvent.CLUSTERING_SCAN_DEFERRED,
                    message="Clustering scan timed out; deferred to next interval",
                    metadata={'attempt': attempt},
                    exc_info=e
                )
                return RunOutcome(status=RunStatus.TIMED_OUT, attempts=attempt, error=str(e))

            except Exception as e:
                last_error = e
                if attempt < max_attempts:
                    self.structured_logger.warning(
                        event=LogEvent.CLUSTERING_SCAN_RETRY,
                        message="Clustering scan failed; retrying",
                        metadata={'attempt': attempt, 'max_attempts': max_attempts},
                        exc_info=e
                    )
                    if self._stop.wait(self.config.backoff_seconds * attempt):
                        break

        self.structured_logger.error(
            event=LogEvent.CLUSTERING_ERROR,
            message="Clustering scan failed; zones stay stale until next interval",
            metadata={'attempts': attempts_made, 'max_attempts': max_attempts},
            exc_info=last_error
        )
        return RunOutcome(
            status=RunStatus.FAILED,
            attempts=attempts_made,
            error=f"{type(last_error).__name__}: {last_error}" if last_error else None,
        )

    def _loop(self) -> None:
        if not self.run_on_start:
            self._wake.wait(self.config.interval_seconds)
            self._wake.clear()

        while not self._stop.is_set():
            try:
                self.run_with_retry()
            except Exception as e:
                logger.error(f"❌ Unexpected scheduler error: {e}", exc_info=True)

            self._wake.wait(self.config.interval_seconds)
            self._wake.clear()

    def get_stats(self) -> dict:
        with self._stats_lock:
            return {
                'running': self.is_running(),
                'run_count': self._run_count,
                'failure_count': self._failure_count,
                'last_outcome': self._last_outcome.to_dict() if self._last_outcome else None,
                'interval_seconds': self.config.interval_seconds,
            }
