"""
Timeout sweeper
===============
Background thread that periodically applies step timeouts (auto-approve,
auto-reject, escalate, notify) to approval requests waiting in review and
retries policy checks that errored while the request was being submitted.

State lives entirely in the database, so a restarted process picks up
overdue requests on its first sweep.
"""
import threading
from datetime import datetime, timezone
from typing import Optional

from ..config import get_settings
from ..engine import EscalationScheduler, build_scheduler
from ..logging_config import worker_logger as logger


class TimeoutSweeper:
    """Run EscalationScheduler.sweep on a fixed interval"""

    def __init__(self, scheduler: EscalationScheduler, interval: float):
        self.scheduler = scheduler
        self.interval = interval
        self.running = False
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.last_sweep_at: Optional[datetime] = None
        self.last_stats: dict = {}
        self.sweeps = 0

    def start_background(self) -> bool:
        """Start sweeping in a daemon thread (non-blocking for FastAPI)"""
        if self.running:
            return False  # Already running

        self.running = True
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, daemon=True, name="timeout-sweeper")
        self._thread.start()

        logger.info("Timeout sweeper started", interval_seconds=self.interval)
        return True

    def stop(self) -> bool:
        """Stop sweeping gracefully"""
        if not self.running:
            return False

        self.running = False
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=self.interval)
        logger.info("Timeout sweeper stopped")
        return True

    def run_once(self) -> dict:
        stats = self.scheduler.sweep()
        self.last_sweep_at = datetime.now(timezone.utc)
        self.last_stats = stats
        self.sweeps += 1
        return stats

    def _loop(self):
        while not self._stop.is_set():
            try:
                self.run_once()
            except Exception as e:
                logger.error("Timeout sweep failed", error=e)
            self._stop.wait(self.interval)

    def get_status(self) -> dict:
        """Get sweeper status"""
        return {
            "running": self.running,
            "interval_seconds": self.interval,
            "sweeps": self.sweeps,
            "last_sweep_at": self.last_sweep_at.isoformat() if self.last_sweep_at else None,
            "last_stats": self.last_stats,
        }


# Global sweeper instance (initialized lazily)
_timeout_sweeper: Optional[TimeoutSweeper] = None


def get_timeout_sweeper() -> TimeoutSweeper:
    """Get or create the global timeout sweeper instance"""
    global _timeout_sweeper
    if _timeout_sweeper is None:
        _timeout_sweeper = TimeoutSweeper(
            build_scheduler(),
            interval=get_settings().escalation_sweep_interval_seconds,
        )
    return _timeout_sweeper
