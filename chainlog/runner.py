"""Run an asyncio event loop in a background thread for synchronous callers."""

import asyncio
import logging
import threading

logger = logging.getLogger(__name__)


class LoopThread:
    """Owns an event loop running in a daemon thread.

    Flask views call ``call()`` to run a coroutine on the loop and wait for it.
    """

    def __init__(self, name: str = "chainlog-loop"):
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._started = threading.Event()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._loop

    def _run(self):
        asyncio.set_event_loop(self._loop)
        self._loop.call_soon(self._started.set)
        self._loop.run_forever()

    def start(self) -> "LoopThread":
        self._thread.start()
        self._started.wait(timeout=5)
        return self

    def call(self, coro, timeout: float | None = None):
        """Run ``coro`` on the loop and return its result (or raise its exception)."""
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        return future.result(timeout=timeout)

    def submit(self, coro):
        """Schedule ``coro`` without waiting. Returns a concurrent.futures.Future."""
        return asyncio.run_coroutine_threadsafe(coro, self._loop)

    def call_soon(self, callback, *args):
        self._loop.call_soon_threadsafe(callback, *args)

    def stop(self, timeout: float = 5.0):
        if not self._thread.is_alive():
            return
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout=timeout)
        if not self._loop.is_running():
            self._loop.close()
        logger.debug("Event loop thread stopped")
