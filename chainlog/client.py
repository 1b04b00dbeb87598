"""LedgerClient: timeouts, cost budgeting and error classification around a Ledger."""

import asyncio
import logging

from chainlog.availability import AvailabilityTracker
from chainlog.errors import (
    ConnectivityFailure,
    CostEstimationFailed,
    LedgerError,
    MalformedInput,
)
from chainlog.ledger import Ledger
from chainlog.models import AppendReceipt, LogEntry
from chainlog.tcp_ledger import TcpLedger

logger = logging.getLogger(__name__)


class LedgerClient:
    """Wraps a Ledger backend.

    Every call gets ``call_timeout``; timeouts and socket errors become
    ConnectivityFailure. Outcomes are reported to the tracker when one is set.
    """

    def __init__(
        self,
        ledger: Ledger,
        call_timeout: float = 5.0,
        cost_buffer: int = 100_000,
        min_cost: int = 200_000,
        bulk_read_budget: int = 8_000_000,
        tracker: AvailabilityTracker | None = None,
    ):
        self._ledger = ledger
        self._timeout = call_timeout
        self._cost_buffer = cost_buffer
        self._min_cost = min_cost
        self._bulk_read_budget = bulk_read_budget
        self.tracker = tracker

    @property
    def ledger(self) -> Ledger:
        return self._ledger

    async def _call(self, op: str, coro):
        try:
            result = await asyncio.wait_for(coro, timeout=self._timeout)
        except asyncio.TimeoutError as e:
            err = ConnectivityFailure(f"{op} timed out after {self._timeout:.1f}s")
            self._report_failure(err)
            raise err from e
        except LedgerError as e:
            self._report_failure(e)
            raise
        except (ConnectionError, OSError) as e:
            err = ConnectivityFailure(f"{op} failed: {e}")
            self._report_failure(err)
            raise err from e
        if self.tracker is not None:
            self.tracker.record_success()
        return result

    def _report_failure(self, exc: LedgerError):
        if self.tracker is not None:
            self.tracker.record_failure(exc)

    def budget_for(self, estimate: int) -> int:
        """Inflate a cost estimate by the buffer, never below ``min_cost``."""
        return max(estimate + self._cost_buffer, self._min_cost)

    async def estimate_append_cost(self, message: str) -> int:
        try:
            return await self._call("estimate", self._ledger.estimate_append_cost(message))
        except (ConnectivityFailure, CostEstimationFailed):
            raise
        except LedgerError as e:
            raise CostEstimationFailed(str(e)) from e

    async def append(self, message: str) -> AppendReceipt:
        """Estimate the cost of ``message`` and append it with a buffered budget."""
        if not isinstance(message, str) or not message.strip():
            raise MalformedInput("message must be a non-empty string")
        estimate = await self.estimate_append_cost(message)
        budget = self.budget_for(estimate)
        receipt = await self._call("append", self._ledger.append(message, budget))
        logger.debug("Appended index=%d cost=%d budget=%d", receipt.index, estimate, budget)
        return receipt

    async def read(self, index: int) -> LogEntry | None:
        return await self._call(f"read({index})", self._ledger.read(index))

    async def read_all(self) -> list[LogEntry]:
        return await self._call("read_all", self._ledger.read_all(self._bulk_read_budget))

    async def close(self):
        await self._ledger.close()


def client_from_config(config, ledger: Ledger | None = None) -> LedgerClient:
    """Build a tracked LedgerClient; defaults to a TcpLedger at the configured node."""
    if ledger is None:
        ledger = TcpLedger(config.ledger_host, config.ledger_port, producer=config.producer_id)
    return LedgerClient(
        ledger,
        call_timeout=config.call_timeout,
        cost_buffer=config.cost_buffer,
        min_cost=config.min_cost,
        bulk_read_budget=config.bulk_read_budget,
        tracker=AvailabilityTracker(config.error_throttle),
    )
