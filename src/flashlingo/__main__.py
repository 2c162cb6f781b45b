"""Main entry point for the trainer."""
import asyncio
import logging
import signal

from flashlingo.app import FlashlingoBot
from flashlingo.config import ensure_directories
from flashlingo.logging_config import setup_logging

logger = logging.getLogger(__name__)


async def main() -> None:
    """Run the bot until a termination signal arrives."""
    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, stop_event.set)

    bot = FlashlingoBot()
    try:
        logger.info("Starting bot...")
        await bot.start()
        await stop_event.wait()
        logger.info("Received exit signal, shutting down...")
    finally:
        logger.info("Cleaning up...")
        await bot.stop()


def run() -> None:
    """Console entry point."""
    ensure_directories()
    setup_logging("Starting Flashlingo ...")

    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt, shutting down...")


if __name__ == "__main__":
    run()
