"""BLE scan backends."""

from __future__ import annotations

import asyncio
import logging
import sys
from abc import ABC, abstractmethod
from typing import Callable, Optional

from bleak import BleakScanner as BleakScannerLib
from bleak.backends.device import BLEDevice
from bleak.backends.scanner import AdvertisementData

from .advertisement import RawFrame

logger = logging.getLogger(__name__)

IS_MACOS = sys.platform == "darwin"

AdvertisementHandler = Callable[[RawFrame], None]
FramePredicate = Callable[[RawFrame], bool]


class ScanBackend(ABC):
    """Source of raw advertisement frames."""

    @abstractmethod
    async def open(self, device: str) -> None:
        """
        Prepare the scanning device.

        Args:
            device: Adapter name, or "default" for the system adapter
        """

    @abstractmethod
    async def scan(
        self,
        on_advertisement: AdvertisementHandler,
        predicate: FramePredicate,
    ) -> None:
        """
        Scan until cancelled, passing accepted frames to on_advertisement.

        Args:
            on_advertisement: Called synchronously for each accepted frame
            predicate: Frames for which this returns False are dropped
        """

    @abstractmethod
    async def close(self) -> None:
        """Release the scanning device."""


class BleakBackend(ScanBackend):
    """Scan backend using Bleak with periodic restart.

    Restarts periodically to work around BlueZ/Bleak issues on Linux.
    """

    # BlueZ often silently stops after ~30-60s; macOS Core Bluetooth is more stable
    RESTART_INTERVAL_SECONDS = 300 if IS_MACOS else 60

    # Timeout for stop() operation - don't let it hang forever
    STOP_TIMEOUT_SECONDS = 10

    def __init__(self) -> None:
        self._adapter: Optional[str] = None
        self._scanner: Optional[BleakScannerLib] = None

    async def open(self, device: str) -> None:
        self._adapter = None if device in ("", "default") else device
        logger.info("Using BLE adapter: %s", self._adapter or "default")

    async def scan(
        self,
        on_advertisement: AdvertisementHandler,
        predicate: FramePredicate,
    ) -> None:
        def detection_callback(
            device: BLEDevice,
            advertisement_data: AdvertisementData,
        ) -> None:
            for company_id, payload in advertisement_data.manufacturer_data.items():
                frame = RawFrame(
                    address=device.address,
                    data=company_id.to_bytes(2, "little") + bytes(payload),
                )
                if predicate(frame):
                    on_advertisement(frame)

        kwargs = {"adapter": self._adapter} if self._adapter else {}
        cycle = 0

        while True:
            cycle += 1
            self._scanner = BleakScannerLib(detection_callback=detection_callback, **kwargs)
            await self._scanner.start()
            logger.debug("BLE scanner running (cycle %d)", cycle)
            try:
                await asyncio.sleep(self.RESTART_INTERVAL_SECONDS)
            finally:
                await self._stop_scanner_safe()
            logger.debug("Proactive scanner restart after %ds", self.RESTART_INTERVAL_SECONDS)

    async def close(self) -> None:
        await self._stop_scanner_safe()

    async def _stop_scanner_safe(self) -> None:
        """Stop scanner with timeout protection."""
        if self._scanner is None:
            return

        try:
            await asyncio.wait_for(
                self._scanner.stop(),
                timeout=self.STOP_TIMEOUT_SECONDS,
            )
        except asyncio.TimeoutError:
            logger.warning("Scanner stop() timed out after %ds", self.STOP_TIMEOUT_SECONDS)
        except Exception as e:
            logger.debug("Error stopping scanner: %s", e)
        finally:
            self._scanner = None
