"""
Periodic and on-demand refresh scheduling.

All refresh work (timer-fired cycles, manual refreshes, the initial
refresh of a new subscription, channel deletion) runs on a single worker
thread, so cycles execute one at a time in submission order. The periodic
timer runs on its own single worker, so re-arming or cancelling it never
waits for a refresh that is in progress.

Example:
    >>> scheduler = RefreshScheduler(on_timer=lambda: service.refresh_all(True))
    >>> scheduler.set_interval(24)      # first run in 5 minutes, then daily
    >>> scheduler.set_interval(None)    # no more automatic refreshes
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from podcast_receiver.triggers.state import TriggerState

logger = logging.getLogger(__name__)

INITIAL_DELAY_SECONDS = 5 * 60
SECONDS_PER_HOUR = 3600


@dataclass
class _PeriodicTimer:
    """One armed periodic trigger; replaced wholesale, never mutated."""

    initial_delay: float
    period: float
    cancelled: threading.Event = field(default_factory=threading.Event)


class RefreshScheduler:
    """
    Owns the periodic trigger and the single-worker refresh queue.

    Attributes:
        on_timer: Called on the timer thread each time the trigger fires;
            expected to submit work (not to run it)
        initial_delay: Seconds between arming the trigger and its first firing
        state: Run bookkeeping for the periodic trigger
    """

    def __init__(
        self,
        on_timer: Callable[[], Any],
        initial_delay: float = INITIAL_DELAY_SECONDS,
    ) -> None:
        self.on_timer = on_timer
        self.initial_delay = initial_delay
        self.state = TriggerState(name="podcast_refresh", enabled=False)

        self._lock = threading.Lock()
        self._timer: Optional[_PeriodicTimer] = None
        self._live_timers = 0
        self._timer_executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="podcast-timer")
        self._refresh_executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="podcast-refresh")

    # ------------------------------------------------------------------
    #  Refresh queue
    # ------------------------------------------------------------------

    def submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Future:
        """Queue work behind every refresh submitted before it."""
        return self._refresh_executor.submit(fn, *args, **kwargs)

    # ------------------------------------------------------------------
    #  Periodic trigger
    # ------------------------------------------------------------------

    def set_interval(self, hours: Optional[float]) -> None:
        """
        Replace the periodic trigger.

        Args:
            hours: Hours between refreshes, or None to disable automatic
                refreshes. The first refresh fires ``initial_delay``
                seconds after this call.
        """
        with self._lock:
            if self._timer is not None:
                self._timer.cancelled.set()
                self._timer = None

            if hours is None:
                self.state.enabled = False
                logger.info("Automatic podcast update disabled.")
                return

            timer = _PeriodicTimer(
                initial_delay=self.initial_delay,
                period=float(hours) * SECONDS_PER_HOUR,
            )
            self._timer = timer
            self.state.enabled = True
            self._timer_executor.submit(self._run_timer, timer)

        first_time = datetime.now() + timedelta(seconds=timer.initial_delay)
        logger.info(
            "Automatic podcast update scheduled to run every %s hour(s), starting at %s",
            hours, first_time.strftime("%Y-%m-%d %H:%M:%S"),
        )

    def cancel(self) -> None:
        """Disable the periodic trigger."""
        self.set_interval(None)

    @property
    def is_scheduled(self) -> bool:
        """True while a periodic trigger is armed."""
        with self._lock:
            return self._timer is not None

    @property
    def live_timer_count(self) -> int:
        """Number of timer loops currently running (0 or 1 once settled)."""
        with self._lock:
            return self._live_timers

    def _run_timer(self, timer: _PeriodicTimer) -> None:
        with self._lock:
            if self._timer is not timer:
                return
            self._live_timers += 1
        try:
            delay = timer.initial_delay
            while not timer.cancelled.wait(delay):
                # Held while firing so a concurrent set_interval cannot
                # slip in between the check and the submission
                with self._lock:
                    if self._timer is not timer:
                        return
                    error = None
                    try:
                        self.on_timer()
                    except Exception as exc:
                        error = str(exc)
                        logger.exception("Periodic podcast refresh could not be queued")
                    self.state.record_run(error)
                delay = timer.period
        finally:
            with self._lock:
                self._live_timers -= 1

    # ------------------------------------------------------------------
    #  Lifecycle
    # ------------------------------------------------------------------

    def shutdown(self, wait: bool = True) -> None:
        """Cancel the trigger and stop both workers."""
        self.cancel()
        self._timer_executor.shutdown(wait=wait)
        self._refresh_executor.shutdown(wait=wait)
