"""Tests for the command and file event sources."""

import asyncio
import sys
from contextlib import aclosing

import pytest

from chainlog.client import LedgerClient
from chainlog.pipeline import IngestionPipeline
from chainlog.source import CommandSource, FileSource

from fakes import make_ledger


async def _collect(source, limit: int = 100) -> bytes:
    data = b""
    async with aclosing(source.__aiter__()) as chunks:
        async for chunk in chunks:
            data += chunk
            if len(data) >= limit:
                break
    return data


class TestCommandSource:
    @pytest.mark.asyncio
    async def test_reads_stdout(self):
        source = CommandSource([sys.executable, "-c", "print('one'); print('two')"])
        data = await _collect(source, limit=10_000)
        assert data.splitlines() == [b"one", b"two"]
        assert source.returncode == 0

    @pytest.mark.asyncio
    async def test_nonzero_exit_still_ends(self):
        source = CommandSource([sys.executable, "-c", "import sys; print('x'); sys.exit(3)"])
        await _collect(source, limit=10_000)
        assert source.returncode == 3

    @pytest.mark.asyncio
    async def test_missing_command_raises(self):
        source = CommandSource(["/nonexistent/definitely-not-a-command"])
        with pytest.raises(OSError):
            await _collect(source)

    def test_empty_command(self):
        with pytest.raises(ValueError):
            CommandSource("")

    def test_string_command_split(self):
        source = CommandSource("log stream --style compact")
        assert source._argv == ["log", "stream", "--style", "compact"]

    @pytest.mark.asyncio
    async def test_pipeline_consumes_command_output(self):
        pipeline = IngestionPipeline(LedgerClient(make_ledger()))
        script = "for i in range(3): print(f'event {i}')"
        await pipeline.consume(CommandSource([sys.executable, "-c", script]))
        assert pipeline.enqueued == 3
        assert pipeline.stopped

    @pytest.mark.asyncio
    async def test_pipeline_stops_on_spawn_failure(self):
        pipeline = IngestionPipeline(LedgerClient(make_ledger()))
        await pipeline.consume(CommandSource(["/nonexistent/definitely-not-a-command"]))
        assert pipeline.stopped
        assert pipeline.enqueued == 0


class TestFileSource:
    @pytest.mark.asyncio
    async def test_existing_content_from_start(self, tmp_path):
        path = tmp_path / "app.log"
        path.write_bytes(b"already here\n")
        source = FileSource(str(path), from_start=True)
        data = await asyncio.wait_for(_collect(source, limit=1), timeout=5.0)
        assert data == b"already here\n"

    @pytest.mark.asyncio
    async def test_follows_appends(self, tmp_path):
        path = tmp_path / "app.log"
        path.write_bytes(b"old line\n")
        source = FileSource(str(path))

        async def append_later():
            await asyncio.sleep(0.3)
            with open(path, "ab") as fh:
                fh.write(b"new line\n")

        writer = asyncio.create_task(append_later())
        data = await asyncio.wait_for(_collect(source, limit=1), timeout=10.0)
        await writer
        assert data == b"new line\n"

    @pytest.mark.asyncio
    async def test_close_ends_iteration(self, tmp_path):
        source = FileSource(str(tmp_path / "quiet.log"))

        async def close_later():
            await asyncio.sleep(0.2)
            source.close()

        closer = asyncio.create_task(close_later())
        data = await asyncio.wait_for(_collect(source), timeout=5.0)
        await closer
        assert data == b""
