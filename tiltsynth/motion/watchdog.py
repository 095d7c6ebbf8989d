"""SensorWatchdog

Background thread that periodically invokes a check callback (the bow
estimator's silence check) until cancelled. Cancellation is synchronous:
once ``cancel()`` returns, the callback never fires again.
"""

from threading import Event, Lock, Thread, current_thread
from typing import Callable

from ..constants import WATCHDOG_POLL_S
from .. import get_logger

logger = get_logger(__name__)


class SensorWatchdog(Thread):
    """Poll a check callback at a fixed interval.

    Parameters
    ----------
    check
        Callable invoked every ``interval_s`` seconds from the watchdog
        thread. Its return value is ignored. Exceptions are logged and
        do not stop the thread.
    interval_s
        Polling interval in seconds (default 0.1).
    """

    def __init__(
        self,
        check: Callable[[], object],
        *,
        interval_s: float = WATCHDOG_POLL_S,
        daemon: bool = True,
    ) -> None:
        super().__init__(daemon=daemon, name="SensorWatchdog")
        self._check = check
        self._interval = interval_s
        self._stop_event = Event()
        # held while the callback runs so cancel() can wait it out
        self._lock = Lock()

    def run(self) -> None:
        while not self._stop_event.wait(self._interval):
            with self._lock:
                if self._stop_event.is_set():
                    break
                try:
                    self._check()
                except Exception:  # pylint: disable=broad-except
                    logger.exception("Watchdog check failed")

    def cancel(self, *, timeout: float = 1.0) -> None:
        """Signal the thread to stop and wait for it."""
        self._stop_event.set()
        if current_thread() is self:
            return
        with self._lock:
            pass
        if self.is_alive():
            self.join(timeout)

    @property
    def cancelled(self) -> bool:
        return self._stop_event.is_set()
