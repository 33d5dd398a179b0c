"""
Fixed-rate scheduler for delivery sweeps.

The first sweep runs as soon as the scheduler starts, then one per interval.
Sweeps never overlap: a tick that finds the previous sweep still running is
skipped and logged rather than queued.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

from timecapsule.locks import InMemorySweepLock, SweepLock

logger = logging.getLogger(__name__)


class DeliveryScheduler:
    """Runs a sweep immediately on start, then once per interval, never two at once."""

    def __init__(
        self,
        sweep: Callable[[], object],
        interval_seconds: float,
        *,
        lock: Optional[SweepLock] = None,
    ):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.sweep = sweep
        self.interval_seconds = interval_seconds
        self.lock = lock or InMemorySweepLock()
        self._stop_event = threading.Event()
        self._timer_thread: Optional[threading.Thread] = None
        self._sweep_thread: Optional[threading.Thread] = None
        self.ticks = 0
        self.skipped_ticks = 0

    @property
    def running(self) -> bool:
        return self._timer_thread is not None and self._timer_thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._timer_thread = threading.Thread(
            target=self._run, name="delivery-scheduler", daemon=True
        )
        self._timer_thread.start()
        logger.info(
            "Message delivery scheduler started. Checking every %s seconds.",
            self.interval_seconds,
        )

    def stop(self, timeout: Optional[float] = None) -> None:
        """Cancel future ticks and wait for the timer and any in-flight sweep."""
        self._stop_event.set()
        if self._timer_thread is not None:
            self._timer_thread.join(timeout)
            self._timer_thread = None
        sweep_thread = self._sweep_thread
        if sweep_thread is not None:
            sweep_thread.join(timeout)
            if sweep_thread.is_alive():
                logger.warning("Delivery sweep still running after scheduler stop")
        logger.info("Message delivery scheduler stopped")

    def run_once(self) -> bool:
        """Run a single sweep on the calling thread. Returns False if one is in flight."""
        if not self._try_acquire():
            return False
        self._run_sweep()
        return True

    def _run(self) -> None:
        next_tick = time.monotonic()
        while not self._stop_event.is_set():
            self._tick()
            next_tick += self.interval_seconds
            delay = next_tick - time.monotonic()
            if delay < 0:
                # The process was suspended; realign instead of firing a burst.
                next_tick = time.monotonic()
                delay = 0
            if self._stop_event.wait(delay):
                break

    def _tick(self) -> None:
        self.ticks += 1
        if not self._try_acquire():
            self.skipped_ticks += 1
            logger.warning(
                "Previous delivery sweep still in progress, skipping this tick"
            )
            return
        thread = threading.Thread(
            target=self._run_sweep, name="delivery-sweep", daemon=True
        )
        self._sweep_thread = thread
        thread.start()

    def _try_acquire(self) -> bool:
        try:
            return self.lock.acquire()
        except Exception:
            logger.exception("Failed to acquire delivery sweep lock")
            return False

    def _run_sweep(self) -> None:
        try:
            self.sweep()
        except Exception:
            logger.exception("Error in message delivery sweep")
        finally:
            try:
                self.lock.release()
            except Exception:
                logger.exception("Failed to release delivery sweep lock")
