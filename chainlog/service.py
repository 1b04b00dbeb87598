"""LedgerService: submit, retrieve-latest and health operations over one client."""

import logging

from chainlog.client import LedgerClient
from chainlog.config import Config
from chainlog.errors import LedgerError, MalformedInput
from chainlog.locator import IndexLocator
from chainlog.models import AppendReceipt, DiscoveredTail, TailResult
from chainlog.tail_reader import TailReader

logger = logging.getLogger(__name__)


class LedgerService:
    """Inbound operations.

    The highest index is located afresh for every retrieval. With
    ``cache_tail`` on, the discovered tail is kept until a successful append
    made through this service or through an attached pipeline invalidates
    it; only enable that when this process is the ledger's sole producer.
    """

    def __init__(self, client: LedgerClient, config: Config | None = None):
        config = config or Config()
        self._client = client
        self._default_n = config.tail_size
        self._cache_tail = config.cache_tail
        self.locator = IndexLocator(
            client,
            ceiling=config.probe_ceiling,
            stride=config.probe_stride,
            window=config.search_window,
            scan_limit=config.scan_limit,
        )
        self.reader = TailReader(client)
        self._tail: DiscoveredTail | None = None
        self._generation = 0

    @property
    def client(self) -> LedgerClient:
        return self._client

    def invalidate(self, receipt: AppendReceipt | None = None):
        self._generation += 1
        self._tail = None

    async def submit(self, message) -> AppendReceipt:
        """Append one message immediately, bypassing the pipeline queue and quota."""
        if not isinstance(message, str) or not message.strip():
            raise MalformedInput('Please provide a "message" field as a non-empty string')
        receipt = await self._client.append(message.strip())
        self.invalidate(receipt)
        logger.info("Submitted entry %d", receipt.index)
        return receipt

    async def discover(self) -> DiscoveredTail:
        if not self._cache_tail:
            return await self.locator.locate()
        if self._tail is not None:
            return self._tail
        generation = self._generation
        tail = await self.locator.locate()
        # An append that landed while locating makes this result stale
        if generation == self._generation:
            self._tail = tail
        return tail

    async def retrieve_latest(self, n: int | None = None) -> TailResult:
        """Newest ``n`` entries plus the total count.

        If index discovery fails the whole request is served by one bulk
        read; if that fails too, BulkReadExhausted is raised.
        """
        if n is None:
            n = self._default_n
        if n <= 0:
            raise MalformedInput("n must be a positive integer")
        try:
            tail = await self.discover()
        except LedgerError as e:
            logger.warning("Index discovery failed (%s), trying bulk read", e)
            return await self.reader.read_bulk_tail(n)
        return await self.reader.read_tail(n, tail)

    def health_status(self) -> dict:
        tracker = self._client.tracker
        return {"reachable": tracker.reachable if tracker is not None else True}
