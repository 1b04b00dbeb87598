"""Ledger capability and the in-process backend.

A ledger is anything that can estimate the cost of an append, append one
message, and read one entry back by its sequential index. ``read_all`` is the
expensive bulk read used only as a retrieval fallback.
"""

import abc
import time
import uuid

from chainlog.errors import AppendRejected, CostEstimationFailed, MalformedInput
from chainlog.models import AppendReceipt, LogEntry

BASE_APPEND_COST = 21_000
COST_PER_BYTE = 16
READ_ALL_COST_PER_ENTRY = 5_000


def estimate_cost(message: str) -> int:
    """Cost units needed to append ``message``."""
    return BASE_APPEND_COST + COST_PER_BYTE * len(message.encode("utf-8"))


class Ledger(abc.ABC):
    """Async capability every backing store must provide."""

    @abc.abstractmethod
    async def estimate_append_cost(self, message: str) -> int:
        ...

    @abc.abstractmethod
    async def append(self, message: str, cost: int) -> AppendReceipt:
        ...

    @abc.abstractmethod
    async def read(self, index: int) -> LogEntry | None:
        """Return the entry at ``index`` or None when it does not exist."""

    @abc.abstractmethod
    async def read_all(self, cost: int) -> list[LogEntry]:
        ...

    async def close(self) -> None:
        pass


class LedgerStore:
    """Append-only list of entries with the cost rules enforced."""

    def __init__(self, entries: list[LogEntry] | None = None, time_func=None):
        self._entries: list[LogEntry] = list(entries or [])
        self._time_func = time_func or time.time

    def __len__(self) -> int:
        return len(self._entries)

    def estimate(self, message: str) -> int:
        if not isinstance(message, str) or not message:
            raise CostEstimationFailed("cannot estimate cost of an empty message")
        return estimate_cost(message)

    def prepare(self, message: str, cost: int, producer: str) -> LogEntry:
        """Validate an append and build the entry it would create, without storing it."""
        if not isinstance(message, str) or not message.strip():
            raise MalformedInput("message must be a non-empty string")
        required = estimate_cost(message)
        if cost < required:
            raise AppendRejected(
                f"out of cost budget: {cost} provided, {required} required"
            )
        return LogEntry(
            index=len(self._entries),
            message=message,
            producer=producer,
            created_at=self._time_func(),
        )

    def commit(self, entry: LogEntry) -> LogEntry:
        if entry.index != len(self._entries):
            raise AppendRejected(
                f"entry {entry.index} is stale, next index is {len(self._entries)}"
            )
        self._entries.append(entry)
        return entry

    def append(self, message: str, cost: int, producer: str) -> LogEntry:
        return self.commit(self.prepare(message, cost, producer))

    def read(self, index: int) -> LogEntry | None:
        if index < 0 or index >= len(self._entries):
            return None
        return self._entries[index]

    def read_all(self, cost: int) -> list[LogEntry]:
        required = READ_ALL_COST_PER_ENTRY * len(self._entries)
        if cost < required:
            raise AppendRejected(
                f"bulk read needs {required} cost units, {cost} provided"
            )
        return list(self._entries)


class MemoryLedger(Ledger):
    """In-process ledger. Counts calls so tests can assert on access patterns."""

    def __init__(self, producer: str = "memory", store: LedgerStore | None = None):
        self.producer = producer
        self.store = store or LedgerStore()
        self.reads = 0
        self.estimates = 0
        self.appends = 0

    async def estimate_append_cost(self, message: str) -> int:
        self.estimates += 1
        return self.store.estimate(message)

    async def append(self, message: str, cost: int) -> AppendReceipt:
        self.appends += 1
        entry = self.store.append(message, cost, self.producer)
        return AppendReceipt(index=entry.index, confirmation_id=uuid.uuid4().hex)

    async def read(self, index: int) -> LogEntry | None:
        self.reads += 1
        return self.store.read(index)

    async def read_all(self, cost: int) -> list[LogEntry]:
        return self.store.read_all(cost)
