"""Main application coordinator."""

from __future__ import annotations

import asyncio
import logging
import signal
from typing import Optional

from .ble.backend import ScanBackend
from .ble.scanner import Scanner
from .models import AppConfig
from .sinks import Sink, build_sinks

logger = logging.getLogger(__name__)


class CollectorApp:
    """Wires configuration, sinks and the scanner together and runs one mode."""

    def __init__(
        self,
        config: AppConfig,
        sinks: Optional[list[Sink]] = None,
        backend: Optional[ScanBackend] = None,
    ) -> None:
        self._config = config
        self._scanner = Scanner(
            config.peripherals,
            sinks if sinks is not None else build_sinks(config),
            backend,
        )

    @property
    def scanner(self) -> Scanner:
        return self._scanner

    async def run(self) -> None:
        """Run until the scan ends or a shutdown signal arrives.

        Configuration errors and fatal scan errors propagate to the caller.
        """
        if not self._scanner.sinks:
            logger.warning("No sinks enabled, measurements will only be logged")

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self._handle_shutdown)
            except (NotImplementedError, RuntimeError):
                pass

        try:
            logger.info("Initializing device %s", self._config.device)
            await self._scanner.open(self._config.device)
            logger.info("Starting ruuvicollector")

            if not self._config.daemon:
                await self._run_once()
            elif self._config.scan_interval == 0:
                await self._scanner.scan_continuously()
            else:
                await self._scanner.scan_with_interval(self._config.scan_interval)
        finally:
            for sig in (signal.SIGINT, signal.SIGTERM):
                try:
                    loop.remove_signal_handler(sig)
                except (NotImplementedError, RuntimeError):
                    pass
            await self._scanner.close()
            logger.info("Stopped ruuvicollector")

    async def _run_once(self) -> None:
        logger.info("Scanning once")
        outcome = await self._scanner.scan_once(self._config.scan_timeout)
        logger.info("Scan finished: %s", outcome.value)

    def _handle_shutdown(self) -> None:
        """Handle shutdown signal."""
        logger.info("Shutdown signal received")
        self._scanner.stop()
