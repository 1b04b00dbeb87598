"""Rate-limited, quota-enforcing ingestion pipeline.

Raw bytes -> LineAssembler -> DropOldestBuffer -> rate gate / daily quota
-> LedgerClient.append. Failures are reported through the client's
availability tracker and never retried.
"""

import asyncio
import logging
import threading
import time
from contextlib import aclosing
from typing import AsyncIterable, Callable

from chainlog.bounded import DropOldestBuffer, Throttle
from chainlog.client import LedgerClient
from chainlog.errors import LedgerError
from chainlog.line_buffer import LineAssembler
from chainlog.models import AppendReceipt, PendingLine, PipelineState, QuotaState
from chainlog.quota import DailyQuota

logger = logging.getLogger(__name__)


class IngestionPipeline:
    """Drains a bounded queue into the ledger at most once per ``dispatch_interval``.

    Admission (stop check, rate gate, dequeue, quota reservation and
    ``last_sent_at`` update) happens in one synchronous step on the event
    loop, so two dispatches can never pass the gate for the same slot.
    The append itself runs as a separate task and is allowed to finish
    after ``stop()``.
    """

    def __init__(
        self,
        client: LedgerClient,
        capacity: int = 50,
        dispatch_interval: float = 1.0,
        daily_quota: int = 1000,
        quota_window: float = 24 * 60 * 60,
        quota_log_interval: float = 60 * 60,
        state: PipelineState | None = None,
        time_func=None,
        echo: bool = False,
    ):
        self._client = client
        self._interval = dispatch_interval
        self._time = time_func or time.monotonic
        self._echo = echo
        self.state = state or PipelineState(quota=QuotaState(window_length=quota_window))
        self._queue = DropOldestBuffer(capacity)
        self._queue_lock = threading.Lock()
        self._assembler = LineAssembler()
        self._quota = DailyQuota(daily_quota, self.state.quota, self._time)
        self._quota_throttle = Throttle(quota_log_interval, self._time)
        self._wakeup = asyncio.Event()
        self._stop_event = asyncio.Event()
        self._in_flight: set[asyncio.Task] = set()
        self._append_listeners: list[Callable[[AppendReceipt], None]] = []

        self.enqueued = 0
        self.dropped = 0
        self.sent = 0
        self.failed = 0
        self.refused = 0

    @property
    def stopped(self) -> bool:
        return self.state.stopped

    @property
    def queued(self) -> int:
        return len(self._queue)

    def pending(self) -> list[PendingLine]:
        with self._queue_lock:
            return self._queue.snapshot()

    def add_append_listener(self, listener: Callable[[AppendReceipt], None]):
        self._append_listeners.append(listener)

    # ── intake ─────────────────────────────────────────────────────

    def feed(self, chunk: bytes) -> int:
        """Assemble lines from a raw chunk and enqueue them. Returns lines accepted."""
        if self.state.stopped:
            return 0
        accepted = 0
        for line in self._assembler.feed(chunk):
            if self._echo:
                print(line, flush=True)
            if self.enqueue(line):
                accepted += 1
        return accepted

    def enqueue(self, text: str) -> bool:
        """Queue one line; at capacity the oldest pending line is evicted."""
        if self.state.stopped:
            return False
        text = text.strip() if isinstance(text, str) else ""
        if not text:
            return False

        with self._queue_lock:
            evicted = self._queue.push(PendingLine(text=text, enqueued_at=self._time()))
        self.enqueued += 1
        if evicted is not None:
            self.dropped += 1
            logger.debug("Queue full, dropped oldest line queued at %.3f", evicted.enqueued_at)
        self._wakeup.set()
        return True

    async def consume(self, source: AsyncIterable[bytes]):
        """Feed chunks from ``source`` until it ends or fails, then stop.

        The source's iterator is closed on exit, so a command source is
        terminated even when the pipeline stops first.
        """
        try:
            async with aclosing(aiter(source)) as chunks:
                async for chunk in chunks:
                    if self.state.stopped:
                        break
                    self.feed(chunk)
            logger.info("Event source ended")
        except (OSError, RuntimeError, ValueError) as e:
            logger.error("Event source failed: %s", e)
        finally:
            self.stop()

    # ── dispatch ───────────────────────────────────────────────────

    def _delay_until_slot(self, now: float) -> float:
        if self.state.last_sent_at is None:
            return 0.0
        return max(self.state.last_sent_at + self._interval - now, 0.0)

    def _admit(self) -> tuple[PendingLine, float] | None:
        if self.state.stopped:
            return None
        now = self._time()
        if self._delay_until_slot(now) > 0:
            return None
        with self._queue_lock:
            if not self._queue:
                return None
            line = self._queue.pop()
        self.state.last_sent_at = now

        if not self._quota.try_acquire(now):
            self.refused += 1
            if self._quota_throttle.ready():
                logger.error(
                    "Daily append limit reached (%d per window). Lines are dropped "
                    "until the window resets.", self._quota.limit,
                )
            return None
        return line, self._quota.window_start

    async def _send(self, line: PendingLine, window_start: float) -> bool:
        try:
            receipt = await self._client.append(line.text)
        except LedgerError as e:
            self._quota.release(window_start)
            self.failed += 1
            logger.debug("Append failed, line dropped: %s", e)
            return False

        self.sent += 1
        for listener in self._append_listeners:
            listener(receipt)
        return True

    async def dispatch_once(self) -> bool:
        """Admit the oldest pending line and append it. Returns True on success."""
        admitted = self._admit()
        if admitted is None:
            return False
        return await self._send(*admitted)

    async def run(self):
        """Dispatch queued lines, one per slot, until stop() is called."""
        logger.info(
            "Pipeline running: capacity=%d, interval=%.3fs, quota=%d",
            self._queue.capacity, self._interval, self._quota.limit,
        )
        while not self.state.stopped:
            if not self._queue:
                self._wakeup.clear()
                await self._wakeup.wait()
                continue

            delay = self._delay_until_slot(self._time())
            if delay > 0:
                await self._sleep(delay)
                continue

            admitted = self._admit()
            if admitted is not None:
                task = asyncio.create_task(self._send(*admitted))
                self._in_flight.add(task)
                task.add_done_callback(self._in_flight.discard)
            else:
                # Let the clock move before re-evaluating the gate
                await asyncio.sleep(0)
        logger.info("Pipeline dispatcher exited")

    async def _sleep(self, delay: float):
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass

    # ── shutdown ───────────────────────────────────────────────────

    def stop(self):
        """Reject new lines, discard queued ones, and wake the dispatcher. Idempotent."""
        if self.state.stopped:
            return
        self.state.stopped = True
        with self._queue_lock:
            discarded = self._queue.clear()
        self._assembler.reset()
        self._stop_event.set()
        self._wakeup.set()
        logger.info("Pipeline stopped, discarded %d queued lines", discarded)

    async def wait_closed(self):
        """Wait for appends that were already in flight when stop() was called."""
        if self._in_flight:
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)

    def stats(self) -> dict:
        return {
            "queued": self.queued,
            "capacity": self._queue.capacity,
            "enqueued": self.enqueued,
            "dropped": self.dropped,
            "sent": self.sent,
            "failed": self.failed,
            "refused": self.refused,
            "in_flight": len(self._in_flight),
            "quota_used": self._quota.count,
            "quota_limit": self._quota.limit,
            "stopped": self.state.stopped,
        }
