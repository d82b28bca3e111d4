"""
Federator service.

This module contains the process-level service that builds both relay
directions from one configuration and drives them with the scheduler.
"""

import asyncio
import logging
import signal
from typing import Optional

from .config import AppConfig
from .federator import Federator
from .models import CycleResult
from .notifier import Notifier, build_notifier
from .scheduler import Scheduler

logger = logging.getLogger(__name__)


class FederatorService:
    """
    Runs the forward and reverse federators on a fixed cadence.

    Each tick runs the main-to-side direction, then the side-to-main
    direction, one after the other.
    """

    SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM, signal.SIGUSR1, signal.SIGUSR2)

    def __init__(
        self,
        config: AppConfig,
        federators: Optional[list[Federator]] = None,
        notifier: Optional[Notifier] = None
    ):
        """
        Initialize the service.

        Args:
            config: Process-wide configuration
            federators: Pre-built federators (built from config when omitted)
            notifier: Alert sink (built from config when omitted)
        """
        self.config = config
        self.notifier = notifier or build_notifier(config.telegram, config.federator_instance_id)

        if federators is None:
            federators = [
                Federator.from_config(direction_config, self.notifier)
                for direction_config in config.directions()
            ]
        self.federators = federators

        interval_seconds = config.monitoring.polling_interval_minutes * 60
        self.scheduler = Scheduler(interval_seconds, self.run_once, notifier=self.notifier)

    @classmethod
    def from_env(cls) -> "FederatorService":
        """
        Create a FederatorService from environment variables.

        Raises:
            ConfigError: If required environment variables are missing
        """
        config = AppConfig.from_env()
        config.log_config()
        return cls(config)

    async def run_once(self) -> list[CycleResult]:
        """Run one cycle of every direction, sequentially."""
        results = []
        for federator in self.federators:
            results.append(await federator.run())
        return results

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in self.SHUTDOWN_SIGNALS:
            try:
                loop.add_signal_handler(sig, self._on_signal, sig)
            except (NotImplementedError, RuntimeError):
                logger.debug(f"Cannot install handler for {sig.name} on this platform")

    def _on_signal(self, sig: signal.Signals) -> None:
        logger.info(f"Received {sig.name}, shutting down after the current cycle...")
        self.stop()

    async def run(self) -> None:
        """Main loop: run until a shutdown signal arrives."""
        logger.info("Token bridge federator starting...")
        logger.info(f"Directions: {', '.join(f.direction for f in self.federators)}")
        self._install_signal_handlers()
        try:
            await self.scheduler.start()
        finally:
            await self.notifier.close()
            logger.info("Token bridge federator stopped")

    def stop(self) -> None:
        """Stop the service between cycles."""
        self.scheduler.stop()
