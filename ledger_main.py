"""Entry point for the reference ledger node."""

import asyncio
import logging
import signal
import sys

from chainlog.config import load_config
from chainlog.ledger_server import LedgerNode


async def serve(config):
    node = LedgerNode(config.ledger_host, config.ledger_port, config.ledger_data_file)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, lambda: asyncio.create_task(node.stop()))

    await node.start()


def main():
    config = load_config(description="Reference append-only ledger node")
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
        stream=sys.stderr,
    )
    asyncio.run(serve(config))


if __name__ == "__main__":
    main()
