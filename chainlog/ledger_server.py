"""Reference ledger node: asyncio TCP server speaking NDJSON.

Each request line is a JSON object with an ``op`` field:

- ``{"op": "estimate", "message": str}`` -> ``{"status": "ok", "cost": int}``
- ``{"op": "append", "message": str, "cost": int, "producer": str}``
  -> ``{"status": "ok", "index": int, "confirmation_id": str}``
- ``{"op": "read", "index": int}`` -> ``{"status": "ok", "entry": {...}}``
  or ``{"status": "absent"}``
- ``{"op": "read_all", "cost": int}`` -> ``{"status": "ok", "entries": [...]}``

Failures answer ``{"status": "error", "kind": ..., "message": ...}``.
Appended entries are persisted one JSON object per line and reloaded at start.
"""

import asyncio
import json
import logging
import os
import uuid

import aiofiles

from chainlog.errors import AppendRejected, CostEstimationFailed, MalformedInput
from chainlog.ledger import LedgerStore
from chainlog.models import LogEntry
from chainlog.tcp_ledger import STREAM_LIMIT

logger = logging.getLogger(__name__)


class LedgerPersistence:
    """Append-only NDJSON file of ledger entries."""

    def __init__(self, path: str):
        self.path = path
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

    def load(self) -> list[LogEntry]:
        if not os.path.exists(self.path):
            return []
        entries = []
        with open(self.path, "r", encoding="utf-8") as f:
            for lineno, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    entries.append(LogEntry.from_dict(json.loads(line)))
                except (json.JSONDecodeError, KeyError, ValueError):
                    logger.warning("Skipping corrupt ledger line %d in %s", lineno, self.path)
        for expected, entry in enumerate(entries):
            if entry.index != expected:
                raise ValueError(
                    f"{self.path}: expected index {expected}, found {entry.index}"
                )
        return entries

    async def write(self, entry: LogEntry) -> None:
        async with aiofiles.open(self.path, mode="a", encoding="utf-8") as f:
            await f.write(json.dumps(entry.to_dict()) + "\n")


class LedgerNode:
    """Serves one LedgerStore to any number of NDJSON clients."""

    def __init__(self, host: str, port: int, data_file: str | None = None):
        self.host = host
        self.port = port
        self.persistence = LedgerPersistence(data_file) if data_file else None
        entries = self.persistence.load() if self.persistence else []
        self.store = LedgerStore(entries)
        self.server: asyncio.Server | None = None
        self.shutdown_event = asyncio.Event()
        self._append_lock = asyncio.Lock()

    async def start(self) -> None:
        """Start the node and serve until stop() is called."""
        self.server = await asyncio.start_server(
            self._client_connected, self.host, self.port, limit=STREAM_LIMIT
        )
        addrs = ", ".join(str(sock.getsockname()) for sock in self.server.sockets)
        logger.info("Ledger node listening on %s with %d entries", addrs, len(self.store))

        async with self.server:
            await self.shutdown_event.wait()

    async def stop(self) -> None:
        logger.info("Shutting down ledger node...")
        self.shutdown_event.set()
        if self.server is not None:
            self.server.close()
            await self.server.wait_closed()

    async def _client_connected(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        peer = writer.get_extra_info("peername")
        peer_str = f"{peer[0]}:{peer[1]}" if peer else "unknown"
        logger.info("Client connected: %s", peer_str)
        try:
            while True:
                line = await reader.readline()
                if not line:
                    break
                line_str = line.decode("utf-8", errors="replace").strip()
                if not line_str:
                    continue
                response = await self.handle_line(line_str)
                writer.write(json.dumps(response).encode() + b"\n")
                await writer.drain()
        except (ConnectionResetError, BrokenPipeError):
            logger.info("Connection reset by %s", peer_str)
        except Exception:
            logger.exception("Error in client handler for %s", peer_str)
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except OSError:
                pass
            logger.info("Client disconnected: %s", peer_str)

    async def handle_line(self, line: str) -> dict:
        try:
            request = json.loads(line)
        except json.JSONDecodeError:
            return _error("invalid", "invalid JSON")
        if not isinstance(request, dict):
            return _error("invalid", "request must be a JSON object")

        op = request.get("op")
        try:
            if op == "estimate":
                return {"status": "ok", "cost": self.store.estimate(request.get("message"))}
            if op == "append":
                return await self._append(request)
            if op == "read":
                entry = self.store.read(int(request["index"]))
                if entry is None:
                    return {"status": "absent"}
                return {"status": "ok", "entry": entry.to_dict()}
            if op == "read_all":
                entries = self.store.read_all(int(request.get("cost", 0)))
                return {"status": "ok", "entries": [e.to_dict() for e in entries]}
        except CostEstimationFailed as e:
            return _error("estimation", str(e))
        except AppendRejected as e:
            return _error("rejected", str(e))
        except (MalformedInput, KeyError, TypeError, ValueError) as e:
            return _error("invalid", str(e))
        return _error("invalid", f"unknown op {op!r}")

    async def _append(self, request: dict) -> dict:
        async with self._append_lock:
            entry = self.store.prepare(
                request.get("message"),
                int(request.get("cost", 0)),
                str(request.get("producer", "")),
            )
            if self.persistence is not None:
                try:
                    await self.persistence.write(entry)
                except OSError as e:
                    logger.error("Failed to persist entry %d: %s", entry.index, e)
                    return _error("rejected", f"entry could not be persisted: {e}")
            self.store.commit(entry)
        logger.debug("Appended entry %d from %s", entry.index, entry.producer)
        return {
            "status": "ok",
            "index": entry.index,
            "confirmation_id": uuid.uuid4().hex,
        }


def _error(kind: str, message: str) -> dict:
    return {"status": "error", "kind": kind, "message": message}
