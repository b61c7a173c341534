"""
ChainLens daemon - periodic refresh of documentation sources.

Runs continuously, sweeping for sources whose refresh interval has elapsed
and re-indexing them.
"""
import asyncio
import logging
import signal
import sys
from typing import Optional

from ..config import Settings, configure_logging, load_settings

logger = logging.getLogger(__name__)


class ChainLensDaemon:
    """Refresh daemon."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.services = None
        self.shutdown_event = asyncio.Event()

    async def startup(self):
        """Initialize daemon resources."""
        from ..services import Services

        logger.info("Starting ChainLens daemon")
        logger.debug(f"Configuration: {self.settings.log_redacted()}")
        self.services = await Services.create(self.settings)

    async def run(self):
        """Main daemon loop."""
        interval = self.settings.scheduler.refresh_check_interval
        refresh_task = asyncio.create_task(
            self.services.scheduler.refresh_loop(interval, self.shutdown_event)
        )
        logger.info("Daemon running")

        # Wait for shutdown signal
        await self.shutdown_event.wait()
        logger.info("Shutdown signal received - stopping daemon")

        await asyncio.gather(refresh_task, return_exceptions=True)
        await self.services.close()

        logger.info("Daemon shutdown complete")

    def shutdown(self):
        """Signal shutdown."""
        logger.info("Shutdown requested")
        self.shutdown_event.set()


async def main_async(config_path: Optional[str] = None):
    """Async main entry point."""
    settings = load_settings(config_path)
    configure_logging(settings.logging)

    daemon = ChainLensDaemon(settings)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, daemon.shutdown)

    await daemon.startup()
    await daemon.run()


def main(config_path: Optional[str] = None):
    """CLI entry point."""
    try:
        asyncio.run(main_async(config_path))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)
