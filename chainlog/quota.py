"""Fixed-window daily quota for ledger appends."""

import logging

from chainlog.models import QuotaState

logger = logging.getLogger(__name__)


class DailyQuota:
    """Admits at most ``limit`` appends per window.

    A slot is reserved when a line is admitted and released again if the
    append fails, so ``state.count`` counts successful plus in-flight
    appends and never exceeds ``limit``.
    """

    def __init__(self, limit: int, state: QuotaState, time_func):
        self._limit = limit
        self._state = state
        self._time_func = time_func
        if self._state.window_start == 0.0:
            self._state.window_start = time_func()

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def count(self) -> int:
        return self._state.count

    @property
    def remaining(self) -> int:
        return max(self._limit - self._state.count, 0)

    def _maybe_reset(self, now: float):
        if now >= self._state.window_start + self._state.window_length:
            if self._state.count:
                logger.info("Quota window elapsed, resetting count (was %d)", self._state.count)
            self._state.count = 0
            self._state.window_start = now

    def try_acquire(self, now: float | None = None) -> bool:
        """Reserve one slot. Returns False when the window is exhausted."""
        if now is None:
            now = self._time_func()
        self._maybe_reset(now)
        if self._state.count >= self._limit:
            return False
        self._state.count += 1
        return True

    @property
    def window_start(self) -> float:
        return self._state.window_start

    def release(self, window_start: float | None = None):
        """Give back a reserved slot whose append did not succeed.

        A slot reserved in a window that has since been reset is not released.
        """
        if window_start is not None and window_start != self._state.window_start:
            return
        if self._state.count > 0:
            self._state.count -= 1
