"""Entry point for the HTTP API, optionally with the streaming pipeline attached."""

import concurrent.futures
import logging
import signal
import sys

from chainlog.api import create_app, run_api
from chainlog.client import client_from_config
from chainlog.config import load_config
from chainlog.runner import LoopThread
from chainlog.service import LedgerService
from main import build_pipeline, build_source, stop_source


def main():
    config = load_config(description="Ledger log API server")
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
        stream=sys.stderr,
    )
    logger = logging.getLogger(__name__)

    if config.cache_tail and not config.stream_events:
        logger.warning(
            "cache_tail is on without stream_events; appends from other producers "
            "will not show up in /logs"
        )

    runner = LoopThread().start()
    client = client_from_config(config)
    service = LedgerService(client, config)

    pipeline = None
    source = None
    consuming = None
    if config.stream_events:
        pipeline = build_pipeline(config, client)
        pipeline.add_append_listener(service.invalidate)
        source = build_source(config)
        runner.submit(pipeline.run())
        consuming = runner.submit(pipeline.consume(source))
        logger.info("Streaming events into the ledger")

    def signal_handler(signum, frame):
        logger.info("Received signal %d, shutting down...", signum)
        if pipeline is not None:
            runner.call_soon(pipeline.stop)
        raise KeyboardInterrupt

    signal.signal(signal.SIGTERM, signal_handler)

    app = create_app(service, runner, pipeline, request_timeout=config.call_timeout * 30)
    logger.info("API listening on http://%s:%d", config.api_host, config.api_port)
    logger.info("  POST /add-log  - Add a log entry")
    logger.info("  GET  /logs     - Latest %d entries (also /api/logs, /get)", config.tail_size)
    logger.info("  GET  /health   - Ledger reachability")
    logger.info("  GET  /stats    - Pipeline counters")
    try:
        run_api(app, config.api_host, config.api_port)
    except KeyboardInterrupt:
        pass
    finally:
        if pipeline is not None:
            runner.call_soon(pipeline.stop)
            runner.call_soon(stop_source, source)
            try:
                consuming.result(timeout=config.call_timeout)
            except concurrent.futures.TimeoutError:
                logger.warning("Event source did not end within %.1fs", config.call_timeout)
            runner.call(pipeline.wait_closed(), timeout=config.call_timeout * 2)
        runner.call(client.close(), timeout=config.call_timeout)
        runner.stop()
        logger.info("Server stopped")


if __name__ == "__main__":
    main()
