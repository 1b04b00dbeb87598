"""Test doubles shared by the test modules."""

import asyncio

from chainlog.errors import ConnectivityFailure
from chainlog.ledger import LedgerStore, MemoryLedger
from chainlog.models import LogEntry


def make_store(size: int) -> LedgerStore:
    entries = [
        LogEntry(index=i, message=f"entry {i}", producer="test", created_at=float(i))
        for i in range(size)
    ]
    return LedgerStore(entries)


def make_ledger(size: int = 0) -> MemoryLedger:
    return MemoryLedger(producer="test", store=make_store(size))


class FakeClock:
    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FlakyLedger(MemoryLedger):
    """MemoryLedger with switchable failures and delays."""

    def __init__(self, size: int = 0):
        super().__init__(producer="test", store=make_store(size))
        self.read_error: Exception | None = None
        self.read_all_error: Exception | None = None
        self.estimate_error: Exception | None = None
        self.append_error: Exception | None = None
        self.gaps: set[int] = set()
        self.delay = 0.0

    async def _pause(self):
        if self.delay:
            await asyncio.sleep(self.delay)

    async def estimate_append_cost(self, message: str) -> int:
        await self._pause()
        if self.estimate_error is not None:
            self.estimates += 1
            raise self.estimate_error
        return await super().estimate_append_cost(message)

    async def append(self, message: str, cost: int):
        await self._pause()
        if self.append_error is not None:
            self.appends += 1
            raise self.append_error
        return await super().append(message, cost)

    async def read(self, index: int):
        await self._pause()
        if self.read_error is not None:
            self.reads += 1
            raise self.read_error
        if index in self.gaps:
            self.reads += 1
            return None
        return await super().read(index)

    async def read_all(self, cost: int):
        await self._pause()
        if self.read_all_error is not None:
            raise self.read_all_error
        entries = await super().read_all(cost)
        return [e for e in entries if e.index not in self.gaps]


def unreachable() -> ConnectivityFailure:
    return ConnectivityFailure("connection refused")
