"""Ledger reachability tracking with throttled error reporting."""

import logging
import time
from enum import Enum
from typing import Callable

from chainlog.bounded import Throttle
from chainlog.errors import ConnectivityFailure

logger = logging.getLogger(__name__)

Listener = Callable[[str, str], None]


class Availability(Enum):
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"


class AvailabilityTracker:
    """Two-state machine: AVAILABLE <-> UNAVAILABLE.

    - A connectivity-class failure moves the tracker to UNAVAILABLE.
      Application-level failures (rejections, bad input) leave the state alone.
    - Error notifications of any kind are throttled to one per
      ``error_interval`` seconds; the failure that flips the state to
      UNAVAILABLE is always reported.
    - The first success while UNAVAILABLE emits one recovery notification.
    """

    def __init__(self, error_interval: float = 5.0, time_func=None):
        self._throttle = Throttle(error_interval, time_func or time.monotonic)
        self._state = Availability.AVAILABLE
        self._listeners: list[Listener] = []
        self.error_notifications = 0
        self.recovery_notifications = 0

    @property
    def state(self) -> Availability:
        return self._state

    @property
    def reachable(self) -> bool:
        return self._state is Availability.AVAILABLE

    def add_listener(self, listener: Listener):
        """Register ``listener(kind, message)``; kind is "error" or "recovered"."""
        self._listeners.append(listener)

    def record_success(self):
        if self._state is Availability.UNAVAILABLE:
            self._state = Availability.AVAILABLE
            self._throttle.reset()
            self.recovery_notifications += 1
            self._notify("recovered", "Ledger reconnected - entries are being appended again")

    def record_failure(self, exc: Exception):
        if isinstance(exc, ConnectivityFailure):
            if self._state is Availability.AVAILABLE:
                self._state = Availability.UNAVAILABLE
                self._throttle.force()
                self._emit_error(
                    f"Ledger not available - entries will be skipped until it is back: {exc}"
                )
                return
            if self._throttle.ready():
                self._emit_error(f"Ledger still unavailable: {exc}")
            return

        if self._throttle.ready():
            self._emit_error(f"Ledger call failed: {exc}")

    def _emit_error(self, message: str):
        self.error_notifications += 1
        self._notify("error", message)

    def _notify(self, kind: str, message: str):
        if kind == "error":
            logger.error(message)
        else:
            logger.info(message)
        for listener in self._listeners:
            try:
                listener(kind, message)
            except Exception:
                logger.exception("Availability listener failed")
