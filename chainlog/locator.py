"""Find the highest populated index of a ledger that has no count operation."""

import logging

from chainlog.client import LedgerClient
from chainlog.models import Confidence, DiscoveredTail

logger = logging.getLogger(__name__)


class IndexLocator:
    """Two-phase search for the newest entry.

    1. Coarse probe: read ``ceiling``, ``ceiling - stride``, ... down to 0 and
       stop at the first populated index. If none is populated, scan forward
       from 0 until the first absent index (at most ``scan_limit`` reads).
    2. Binary search the window ``[bound, bound + window]`` above the
       populated probe. The window slides up while its top is populated,
       so ledgers larger than ``ceiling + window`` still resolve exactly.

    Only an absent read narrows the search. Connectivity failures propagate.
    Assumes indices are dense: every index below the highest is populated.
    """

    def __init__(
        self,
        client: LedgerClient,
        ceiling: int = 10_000,
        stride: int = 500,
        window: int = 1000,
        scan_limit: int = 5000,
    ):
        self._client = client
        self._ceiling = ceiling
        self._stride = stride
        self._window = window
        self._scan_limit = scan_limit
        self.probes = 0

    async def _populated(self, index: int) -> bool:
        self.probes += 1
        entry = await self._client.read(index)
        return entry is not None and bool(entry.message)

    async def locate(self) -> DiscoveredTail:
        self.probes = 0
        bound = await self._coarse_probe()
        if bound is None:
            tail = await self._linear_scan()
        else:
            tail = DiscoveredTail(await self._refine(bound), Confidence.EXACT)
        logger.debug(
            "Located highest index %s (%s) in %d probes",
            tail.highest_index, tail.confidence.value, self.probes,
        )
        return tail

    async def _coarse_probe(self) -> int | None:
        index = self._ceiling
        while index >= 0:
            if await self._populated(index):
                return index
            index -= self._stride
        return None

    async def _refine(self, low: int) -> int:
        high = low + self._window
        while await self._populated(high):
            low = high
            high = low + self._window

        # low is populated, high is absent
        high -= 1
        while low < high:
            mid = (low + high + 1) // 2
            if await self._populated(mid):
                low = mid
            else:
                high = mid - 1
        return low

    async def _linear_scan(self) -> DiscoveredTail:
        highest = None
        for index in range(self._scan_limit):
            if not await self._populated(index):
                return DiscoveredTail(highest, Confidence.EXACT)
            highest = index
        logger.warning("Linear scan reached its limit of %d entries", self._scan_limit)
        return DiscoveredTail(highest, Confidence.APPROXIMATE)
