"""RuuviTag scan orchestration with sink fan-out."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Callable, Mapping, Optional, Sequence

from ..errors import (
    DecodeError,
    InvalidInterval,
    NoPeripheralsConfigured,
    ScanError,
    SinkExportFailure,
    TooManyScanFailures,
)
from ..models import Measurement
from ..sinks.base import Sink
from ..timing import until_next_boundary
from .advertisement import RawFrame, accepts, normalize_address
from .backend import BleakBackend, ScanBackend
from .parsers import decode

QUEUE_SIZE = 128
EXPORT_TIMEOUT_SECONDS = 30.0
MAX_CONSECUTIVE_FAILURES = 3

# Marks the end of the producer's stream
_END = object()


class ScanState(Enum):
    """Lifecycle of a Scanner."""

    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"
    COMPLETED = "completed"
    FAILED = "failed"


class ScanOutcome(Enum):
    """How a single scan ended."""

    COMPLETED = "completed"
    DEADLINE = "deadline"
    STOPPED = "stopped"


@dataclass
class ScanSession:
    """Run-time state of one scan invocation."""

    quit: asyncio.Event = field(default_factory=asyncio.Event)
    seen: set[str] = field(default_factory=set)
    failures: int = 0


class Scanner:
    """Scans RuuviTag advertisements and exports measurements to sinks.

    A producer task runs the backend scan and enqueues decoded measurements;
    a consumer task exports them to every sink in registration order.
    """

    def __init__(
        self,
        peripherals: Mapping[str, str],
        sinks: Sequence[Sink] = (),
        backend: Optional[ScanBackend] = None,
        *,
        logger: Optional[logging.Logger] = None,
        export_timeout: float = EXPORT_TIMEOUT_SECONDS,
        queue_size: int = QUEUE_SIZE,
        max_failures: int = MAX_CONSECUTIVE_FAILURES,
        wall_clock: Callable[[], float] = time.time,
    ) -> None:
        self._peripherals = MappingProxyType(
            {normalize_address(addr): name for addr, name in peripherals.items()}
        )
        self._sinks = tuple(sinks)
        self._backend = backend or BleakBackend()
        self._logger = logger or logging.getLogger(__name__)
        self._export_timeout = export_timeout
        self._queue_size = queue_size
        self._max_failures = max_failures
        self._wall_clock = wall_clock
        self._state = ScanState.IDLE
        self._session: Optional[ScanSession] = None
        self._opened = False
        self._closed = False

    @property
    def state(self) -> ScanState:
        return self._state

    @property
    def peripherals(self) -> Mapping[str, str]:
        return self._peripherals

    @property
    def sinks(self) -> tuple[Sink, ...]:
        return self._sinks

    async def open(self, device: str = "default") -> None:
        """Open the scanning device."""
        try:
            await self._backend.open(device)
        except Exception as e:
            raise ScanError(f"failed to initialize device {device}: {e}") from e
        self._opened = True

        if self._peripherals:
            self._logger.info(
                "Reading from peripherals: %s",
                ", ".join(f"{addr} ({name})" for addr, name in self._peripherals.items()),
            )
        else:
            self._logger.info("Reading from all nearby BLE peripherals")

    async def scan_once(
        self,
        timeout: float,
        *,
        require_peripherals: bool = True,
    ) -> ScanOutcome:
        """Scan until every registered peripheral has reported once.

        Ends early on stop() and gives up after timeout seconds. With an
        empty registry there is nothing to wait for, so the scan runs until
        the timeout unless require_peripherals rejects it up front.
        """
        if require_peripherals and not self._peripherals:
            raise NoPeripheralsConfigured("at least one peripheral must be specified")

        session = self._begin()
        final_state = ScanState.STOPPED
        try:
            outcome = await self._scan_bounded(session, timeout)
            if outcome is ScanOutcome.COMPLETED:
                final_state = ScanState.COMPLETED
            return outcome
        except ScanError:
            final_state = ScanState.FAILED
            raise
        finally:
            self._end(session, final_state)

    async def scan_continuously(self) -> ScanOutcome:
        """Export measurements as they arrive until stopped."""
        self._logger.info("Listening for measurements")
        session = self._begin()
        final_state = ScanState.STOPPED
        try:
            outcome = await self._run_session(session, timeout=None, until_complete=False)
            if outcome is ScanOutcome.COMPLETED:
                final_state = ScanState.COMPLETED
            return outcome
        except ScanError:
            final_state = ScanState.FAILED
            raise
        finally:
            self._end(session, final_state)

    async def scan_with_interval(self, interval: float) -> None:
        """Run a bounded scan every interval seconds, aligned to the wall clock.

        Raises TooManyScanFailures after max_failures consecutive failed scans.
        """
        if interval <= 0:
            raise InvalidInterval("scan interval must be greater than zero")

        session = self._begin()
        try:
            delay = until_next_boundary(self._wall_clock(), interval)
            self._logger.info(
                "Sleeping until %s",
                datetime.fromtimestamp(self._wall_clock() + delay).strftime("%Y-%m-%d %H:%M:%S"),
            )
            if await self._sleep_or_quit(session, delay):
                return

            self._logger.info("Scanning measurements every %ss", interval)
            loop = asyncio.get_running_loop()
            next_tick = loop.time()

            while True:
                try:
                    outcome = await self._scan_bounded(session, interval)
                except ScanError as e:
                    session.failures += 1
                    self._logger.error(
                        "Scan failed (%d/%d): %s", session.failures, self._max_failures, e
                    )
                else:
                    if outcome is ScanOutcome.STOPPED:
                        return
                    if outcome is ScanOutcome.DEADLINE and self._peripherals:
                        session.failures += 1
                        missing = sorted(set(self._peripherals) - session.seen)
                        self._logger.warning(
                            "Scan deadline exceeded (%d/%d), no data from: %s",
                            session.failures,
                            self._max_failures,
                            ", ".join(missing),
                        )
                    else:
                        session.failures = 0

                if session.failures >= self._max_failures:
                    self._logger.critical("Too many failures, exiting scan")
                    self._end(session, ScanState.FAILED)
                    raise TooManyScanFailures(session.failures)

                # Fixed-period schedule; ticks missed by a slow scan are dropped
                next_tick += interval
                behind = loop.time() - next_tick
                if behind > interval:
                    next_tick += (behind // interval) * interval
                if await self._sleep_or_quit(session, max(0.0, next_tick - loop.time())):
                    return
        finally:
            self._end(session, ScanState.STOPPED)

    def stop(self) -> None:
        """Stop the running scan. No-op when nothing is running."""
        session = self._session
        if self._state is not ScanState.RUNNING or session is None or session.quit.is_set():
            return
        self._logger.info("Stopping")
        session.quit.set()

    async def close(self) -> list[Exception]:
        """Stop scanning, then close the device and every sink.

        Close failures are logged and returned rather than raised.
        """
        self.stop()
        if self._closed:
            return []
        self._closed = True

        errors: list[Exception] = []
        if self._opened:
            try:
                await self._backend.close()
            except Exception as e:
                self._logger.error("Error while stopping device: %s", e)
                errors.append(e)

        for sink in self._sinks:
            try:
                await sink.close()
            except Exception as e:
                self._logger.error("Failed to close sink %s: %s", sink.name, e)
                errors.append(e)
        return errors

    def _begin(self) -> ScanSession:
        # A session that was told to stop may still be tearing down; it no
        # longer owns the scanner state once a new session begins.
        if self._session is not None and not self._session.quit.is_set():
            raise RuntimeError("scan already running")
        self._session = ScanSession()
        self._state = ScanState.RUNNING
        return self._session

    def _end(self, session: ScanSession, state: ScanState) -> None:
        """Leave RUNNING for the given session. No-op once it was replaced."""
        if self._session is not session:
            return
        self._state = state
        self._session = None

    async def _sleep_or_quit(self, session: ScanSession, delay: float) -> bool:
        """Sleep for delay seconds. Returns True if stop() was requested."""
        try:
            await asyncio.wait_for(session.quit.wait(), timeout=delay)
            return True
        except asyncio.TimeoutError:
            return False

    async def _scan_bounded(self, session: ScanSession, timeout: float) -> ScanOutcome:
        session.seen = set()
        return await self._run_session(session, timeout=timeout, until_complete=True)

    async def _run_session(
        self,
        session: ScanSession,
        *,
        timeout: Optional[float],
        until_complete: bool,
    ) -> ScanOutcome:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._queue_size)
        producer = asyncio.create_task(self._produce(queue), name="ruuvi_scan")
        consumer = asyncio.create_task(
            self._consume(queue, session, until_complete),
            name="ruuvi_export",
        )
        quit_waiter = asyncio.create_task(session.quit.wait())

        try:
            done, _ = await asyncio.wait(
                {consumer, quit_waiter},
                timeout=timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            for task in (quit_waiter, consumer, producer):
                task.cancel()
            await asyncio.gather(producer, consumer, quit_waiter, return_exceptions=True)

        if not producer.cancelled() and producer.exception() is not None:
            raise ScanError(f"scan failed: {producer.exception()}") from producer.exception()

        if consumer in done:
            consumer.result()
            return ScanOutcome.COMPLETED
        if quit_waiter in done:
            return ScanOutcome.STOPPED
        return ScanOutcome.DEADLINE

    async def _produce(self, queue: asyncio.Queue) -> None:
        # The end marker waits for room so it never displaces a measurement.
        # A cancelled producer has no consumer left to tell.
        try:
            await self._backend.scan(
                lambda frame: self._handle_frame(frame, queue),
                self._accepts,
            )
        except asyncio.CancelledError:
            raise
        except Exception:
            await queue.put(_END)
            raise
        await queue.put(_END)

    async def _consume(
        self,
        queue: asyncio.Queue,
        session: ScanSession,
        until_complete: bool,
    ) -> None:
        while True:
            item = await queue.get()
            if item is _END:
                return

            session.seen.add(item.address)
            try:
                await self.export(item)
            except SinkExportFailure as e:
                self._logger.error("Failed to report measurement: %s", e)

            if until_complete and self._peripherals and session.seen.issuperset(self._peripherals):
                return

    async def export(self, measurement: Measurement) -> None:
        """Export to each sink in order under one shared deadline.

        Stops at the first failing sink and raises SinkExportFailure.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._export_timeout
        for sink in self._sinks:
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise SinkExportFailure(sink.name, asyncio.TimeoutError("export deadline exceeded"))
            self._logger.debug("Exporting measurement to %s", sink.name)
            try:
                await sink.export(measurement, remaining)
            except Exception as e:
                raise SinkExportFailure(sink.name, e) from e

    def _accepts(self, frame: RawFrame) -> bool:
        return accepts(frame.address, frame.data, self._peripherals)

    def _handle_frame(self, frame: RawFrame, queue: asyncio.Queue) -> None:
        self._logger.debug("Read sensor data from device %s", frame.address)
        if not self._accepts(frame):
            return

        try:
            values = decode(frame.data)
        except DecodeError as e:
            self._log_invalid_data(frame.data, e)
            return

        address = normalize_address(frame.address)
        measurement = Measurement.from_values(
            values,
            address=address,
            name=self._peripherals.get(address, ""),
            timestamp=datetime.now(timezone.utc),
        )
        self._offer(queue, measurement)

    def _offer(self, queue: asyncio.Queue, item: object) -> None:
        """Enqueue without blocking, dropping the oldest entry when full."""
        while True:
            try:
                queue.put_nowait(item)
                return
            except asyncio.QueueFull:
                dropped = queue.get_nowait()
                self._logger.warning(
                    "Measurement queue full, dropped reading from %s",
                    getattr(dropped, "address", "?"),
                )

    def _log_invalid_data(self, data: bytes, error: DecodeError) -> None:
        self._logger.error(
            "Error while parsing RuuviTag data (len=%d, header=%s): %s",
            len(data),
            bytes(data[:3]).hex(),
            error,
        )
