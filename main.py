"""
Ticker feed runner - Main entry point.

Subscribes to the configured instruments and logs every ticker price.
Stops on SIGINT/SIGTERM; exit code reflects the session result.
"""

import argparse
import asyncio
import logging
import signal
import sys

from tickerfeed import TickerFeedClient, Ticker, load_feed_config
from tickerfeed.errors import ConfigurationError
from tickerfeed.observability.logs import setup_logging
from tickerfeed.util.async_tools import create_supervised_task, shutdown_supervised_tasks

logger = logging.getLogger(__name__)


def log_ticker(ticker: Ticker) -> None:
    logger.info(f"Current value of {ticker.product_id} is {ticker.price} ({ticker.ticker_type})")


async def main(symbols=None) -> int:
    """Run one feed session; returns the process exit code."""
    try:
        cfg = load_feed_config()
    except ConfigurationError as e:
        logging.basicConfig(level=logging.INFO)
        logger.error(f"Failed to load configuration: {e.message}")
        return 2

    setup_logging(cfg.log_level, cfg.log_file)
    symbols = symbols or cfg.symbols
    logger.info(f"Starting ticker feed on {cfg.ws_url} for {', '.join(symbols)}")

    client = TickerFeedClient(cfg)
    for symbol in symbols:
        client.register(symbol, log_ticker)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, client.stop)
        except NotImplementedError:
            # Windows event loops
            pass

    task = create_supervised_task(client.run(), name="ticker_feed")
    try:
        result = await task
    finally:
        await shutdown_supervised_tasks()

    logger.info(f"Session ended: {result.status.value} - {result.reason}")
    logger.info(f"Stats: {result.stats.as_dict()}")
    return 0 if result.ok else 1


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Stream ticker prices from the configured feed")
    parser.add_argument(
        "symbols",
        nargs="*",
        help="Instrument keys to subscribe to (default: TICKERFEED_SYMBOLS)",
    )
    args = parser.parse_args()

    try:
        sys.exit(asyncio.run(main([s.upper() for s in args.symbols] or None)))
    except KeyboardInterrupt:
        logger.info("Ticker feed stopped by user")
