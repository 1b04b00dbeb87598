"""Tests for the wiring helpers used by the entry scripts."""

import asyncio
import sys

import pytest

from chainlog.client import LedgerClient
from chainlog.config import Config
from chainlog.pipeline import IngestionPipeline
from chainlog.source import CommandSource, FileSource
from main import build_pipeline, build_source, stop_source

from fakes import make_ledger


async def _wait_for_first_line(pipeline: IngestionPipeline):
    for _ in range(500):
        if pipeline.enqueued:
            return
        await asyncio.sleep(0.01)
    raise AssertionError("command produced no output")


class TestWiring:
    def test_command_source_by_default(self):
        assert isinstance(build_source(Config()), CommandSource)

    def test_file_source_when_configured(self, tmp_path):
        config = Config(source_file=str(tmp_path / "app.log"))
        assert isinstance(build_source(config), FileSource)

    def test_pipeline_uses_config(self):
        config = Config(queue_capacity=7, daily_quota=3)
        pipeline = build_pipeline(config, LedgerClient(make_ledger()))
        stats = pipeline.stats()
        assert stats["capacity"] == 7
        assert stats["quota_limit"] == 3


class TestSourceShutdown:
    @pytest.mark.asyncio
    async def test_stop_source_ends_silent_command(self):
        source = CommandSource([
            sys.executable, "-c", "import time; print('up', flush=True); time.sleep(30)",
        ])
        pipeline = IngestionPipeline(LedgerClient(make_ledger()))
        consuming = asyncio.create_task(pipeline.consume(source))
        await _wait_for_first_line(pipeline)

        pipeline.stop()
        stop_source(source)
        await asyncio.wait_for(consuming, timeout=5.0)
        assert source.returncode is not None
        assert source.returncode != 0

    @pytest.mark.asyncio
    async def test_stopped_pipeline_terminates_command(self):
        script = "import time\nwhile True:\n    print('tick', flush=True)\n    time.sleep(0.1)\n"
        source = CommandSource([sys.executable, "-c", script])
        pipeline = IngestionPipeline(LedgerClient(make_ledger()))
        consuming = asyncio.create_task(pipeline.consume(source))
        await _wait_for_first_line(pipeline)

        pipeline.stop()
        await asyncio.wait_for(consuming, timeout=5.0)
        assert source.returncode is not None

    @pytest.mark.asyncio
    async def test_stop_source_closes_file_source(self, tmp_path):
        source = FileSource(str(tmp_path / "quiet.log"))
        pipeline = IngestionPipeline(LedgerClient(make_ledger()))
        consuming = asyncio.create_task(pipeline.consume(source))
        await asyncio.sleep(0.2)

        stop_source(source)
        await asyncio.wait_for(consuming, timeout=5.0)
        assert pipeline.stopped
