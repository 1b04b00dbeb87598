"""Fetch the newest N entries given the highest known index."""

import logging

from chainlog.client import LedgerClient
from chainlog.errors import BulkReadExhausted, LedgerError
from chainlog.models import DiscoveredTail, LogEntry, TailResult

logger = logging.getLogger(__name__)


class TailReader:
    def __init__(self, client: LedgerClient):
        self._client = client
        self.skipped = 0

    async def fetch_latest(self, n: int, highest_index: int) -> list[LogEntry]:
        """Return up to ``n`` entries, newest first.

        Reads each index individually and skips absent ones. If a read fails,
        the whole batch is re-fetched with a single bulk read instead.
        """
        if n <= 0 or highest_index < 0:
            return []
        stop = max(0, highest_index - n + 1)
        entries: list[LogEntry] = []
        try:
            for index in range(highest_index, stop - 1, -1):
                entry = await self._client.read(index)
                if entry is None or not entry.message:
                    self.skipped += 1
                    logger.debug("Index %d is empty, skipping", index)
                    continue
                entries.append(entry)
        except LedgerError as e:
            logger.warning("Individual reads failed (%s), trying bulk read", e)
            return await self.fetch_bulk(n)
        return entries

    async def _read_everything(self) -> list[LogEntry]:
        try:
            return await self._client.read_all()
        except LedgerError as e:
            raise BulkReadExhausted(f"Failed to retrieve logs: {e}") from e

    async def fetch_bulk(self, n: int) -> list[LogEntry]:
        """One expensive read of the whole ledger, newest first, truncated to ``n``."""
        everything = await self._read_everything()
        return list(reversed(everything))[:n]

    async def read_tail(self, n: int, tail: DiscoveredTail) -> TailResult:
        if not tail.found:
            return TailResult(total_count=0, entries=[])
        entries = await self.fetch_latest(n, tail.highest_index)
        return TailResult(total_count=tail.highest_index + 1, entries=entries)

    async def read_bulk_tail(self, n: int) -> TailResult:
        everything = await self._read_everything()
        newest_first = list(reversed(everything))
        return TailResult(total_count=len(everything), entries=newest_first[:n])
