"""Entry point: stream events from a command or a followed file into the ledger."""

import asyncio
import logging
import signal
import sys

from chainlog.client import client_from_config
from chainlog.config import Config, load_config
from chainlog.pipeline import IngestionPipeline
from chainlog.source import CommandSource, FileSource


def build_source(config: Config):
    if config.source_file:
        return FileSource(config.source_file)
    return CommandSource(config.source_command)


def build_pipeline(config: Config, client) -> IngestionPipeline:
    return IngestionPipeline(
        client,
        capacity=config.queue_capacity,
        dispatch_interval=config.dispatch_interval,
        daily_quota=config.daily_quota,
        quota_window=config.quota_window,
        quota_log_interval=config.quota_log_interval,
        echo=config.echo_lines,
    )


def stop_source(source):
    """End an event source: kill the spawned command or stop following the file."""
    if isinstance(source, CommandSource):
        source.terminate()
    else:
        source.close()


async def stream(config: Config):
    logger = logging.getLogger(__name__)
    client = client_from_config(config)
    pipeline = build_pipeline(config, client)
    source = build_source(config)

    loop = asyncio.get_running_loop()

    def shutdown(signame: str):
        logger.info("Received %s, stopping log stream...", signame)
        pipeline.stop()
        stop_source(source)

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, shutdown, sig.name)

    logger.info("Appending events to ledger at %s:%d", config.ledger_host, config.ledger_port)
    dispatcher = asyncio.create_task(pipeline.run())
    try:
        await pipeline.consume(source)
    finally:
        pipeline.stop()
        await dispatcher
        await pipeline.wait_closed()
        await client.close()
        logger.info("Stream finished: %s", pipeline.stats())


def main():
    config = load_config(description="Stream events into the ledger")
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
        stream=sys.stderr,
    )
    asyncio.run(stream(config))


if __name__ == "__main__":
    main()
