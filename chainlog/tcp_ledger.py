"""NDJSON-over-TCP backend talking to a ledger node."""

import asyncio
import json
import logging

from chainlog.errors import (
    AppendRejected,
    ConnectivityFailure,
    CostEstimationFailed,
    LedgerError,
)
from chainlog.ledger import Ledger
from chainlog.models import AppendReceipt, LogEntry

logger = logging.getLogger(__name__)

# read_all responses carry the whole ledger on one line
STREAM_LIMIT = 16 * 1024 * 1024

_ERROR_KINDS = {
    "rejected": AppendRejected,
    "estimation": CostEstimationFailed,
    "invalid": AppendRejected,
}


class TcpLedger(Ledger):
    """One request/response connection to a ledger node.

    Requests are serialised by a lock. The connection is opened lazily and
    dropped on any I/O error or cancellation, so a timed-out call never
    leaves a stale response behind for the next one.
    """

    def __init__(self, host: str, port: int, producer: str = "chainlog"):
        self._host = host
        self._port = port
        self._producer = producer
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None
        self._lock = asyncio.Lock()

    @property
    def connected(self) -> bool:
        return self._writer is not None and not self._writer.is_closing()

    async def _connect(self):
        try:
            self._reader, self._writer = await asyncio.open_connection(
                self._host, self._port, limit=STREAM_LIMIT
            )
        except OSError as e:
            raise ConnectivityFailure(
                f"cannot connect to ledger at {self._host}:{self._port}: {e}"
            ) from e
        logger.info("Connected to ledger at %s:%d", self._host, self._port)

    async def _drop(self):
        writer, self._reader, self._writer = self._writer, None, None
        if writer is None:
            return
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass

    async def _request(self, payload: dict) -> dict:
        async with self._lock:
            if not self.connected:
                await self._connect()
            try:
                self._writer.write(json.dumps(payload).encode() + b"\n")
                await self._writer.drain()
                line = await self._reader.readline()
            except asyncio.CancelledError:
                await self._drop()
                raise
            except (OSError, ValueError) as e:
                await self._drop()
                raise ConnectivityFailure(f"ledger connection lost: {e}") from e

            if not line:
                await self._drop()
                raise ConnectivityFailure("ledger closed the connection")
            try:
                response = json.loads(line)
            except json.JSONDecodeError as e:
                await self._drop()
                raise ConnectivityFailure(f"invalid response from ledger: {line[:200]!r}") from e

        if response.get("status") == "error":
            error_cls = _ERROR_KINDS.get(response.get("kind"), LedgerError)
            raise error_cls(response.get("message", "ledger error"))
        return response

    async def estimate_append_cost(self, message: str) -> int:
        response = await self._request({"op": "estimate", "message": message})
        return int(response["cost"])

    async def append(self, message: str, cost: int) -> AppendReceipt:
        response = await self._request({
            "op": "append",
            "message": message,
            "cost": cost,
            "producer": self._producer,
        })
        return AppendReceipt(
            index=int(response["index"]),
            confirmation_id=str(response["confirmation_id"]),
        )

    async def read(self, index: int) -> LogEntry | None:
        response = await self._request({"op": "read", "index": index})
        if response.get("status") == "absent":
            return None
        return LogEntry.from_dict(response["entry"])

    async def read_all(self, cost: int) -> list[LogEntry]:
        response = await self._request({"op": "read_all", "cost": cost})
        return [LogEntry.from_dict(e) for e in response["entries"]]

    async def close(self):
        async with self._lock:
            await self._drop()
