"""
DBGuard daemon - Main entry point.

This module runs the backup daemon for one back-office database:
- Daily scheduler (snapshot -> upload -> prune)
- Remote store connection, released on shutdown

Usage:
    dbguard-server
    python -m backoffice.dbguard.main

Configuration is entirely via environment variables.
See config.py for all available settings.

Invariants:
    - Graceful shutdown lets an in-flight backup cycle finish
    - Remote misconfiguration never prevents the daemon from starting

How to change safely:
    - Add new components with enable/disable flags
    - Test shutdown sequence thoroughly
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys

import json_log_formatter

from .config import BackupConfig
from .scheduler import BackupScheduler
from .service import BackupService

logger = logging.getLogger(__name__)


def setup_logging(config: BackupConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: DBGuard configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("aiobotocore").setLevel(logging.WARNING)


class BackupDaemon:
    """DBGuard daemon orchestrator.

    Attributes:
        config: DBGuard configuration
        service: Backup service facade
        scheduler: Daily backup scheduler (None when disabled)

    Example:
        >>> daemon = BackupDaemon()
        >>> await daemon.start()  # returns after request_shutdown()
        >>> await daemon.stop()
    """

    def __init__(self, config: BackupConfig | None = None) -> None:
        """Initialize the daemon.

        Args:
            config: Optional configuration (loaded from env if not provided)
        """
        self.config = config or BackupConfig.from_env()
        self._running = False
        self._shutdown_event = asyncio.Event()

        self.service: BackupService | None = None
        self.scheduler: BackupScheduler | None = None

    async def start(self) -> None:
        """Start the daemon and block until shutdown is requested."""
        if self._running:
            logger.warning("Daemon already running")
            return

        logger.info("Starting DBGuard daemon")
        self.config.log_config()

        try:
            self.service = BackupService.from_config(self.config)

            if self.config.scheduler.enabled:
                self.scheduler = self.service.create_scheduler(
                    hour=self.config.scheduler.hour,
                    minute=self.config.scheduler.minute,
                    run_on_start=self.config.scheduler.run_on_start,
                )
                await self.scheduler.start()
            else:
                logger.info("Backup scheduler disabled")

            self._running = True
            logger.info("DBGuard daemon started successfully")

            await self._shutdown_event.wait()

        except Exception as e:
            logger.error(f"Daemon startup failed: {e}", exc_info=True)
            await self.stop()
            raise

    async def stop(self) -> None:
        """Stop the daemon gracefully."""
        if not self._running and self.service is None:
            return

        logger.info("Stopping DBGuard daemon")

        if self.scheduler:
            await self.scheduler.stop()

        if self.service:
            await self.service.close()
            self.service = None

        self._running = False
        logger.info("DBGuard daemon stopped")

    def request_shutdown(self) -> None:
        """Request graceful shutdown."""
        self._shutdown_event.set()


def main() -> None:
    """Main entry point."""
    try:
        config = BackupConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(2)

    setup_logging(config)

    daemon = BackupDaemon(config)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    def handle_signal(sig: int) -> None:
        logger.info(f"Received signal {sig}, initiating shutdown")
        daemon.request_shutdown()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, handle_signal, sig)

    try:
        loop.run_until_complete(daemon.start())
    except KeyboardInterrupt:
        pass
    finally:
        loop.run_until_complete(daemon.stop())
        loop.close()


if __name__ == "__main__":
    main()
