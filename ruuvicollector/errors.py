"""Exception hierarchy for the collector."""

from __future__ import annotations


class CollectorError(Exception):
    """Base class for all collector errors."""


class DecodeError(CollectorError):
    """A manufacturer data frame could not be decoded."""


class UnsupportedFormat(DecodeError):
    """Frame signature is not a supported RuuviTag data format."""


class MalformedFrame(DecodeError):
    """Frame has a valid signature but its payload is unusable."""


class ConfigurationError(CollectorError):
    """Invalid configuration, detected before scanning starts."""


class InvalidInterval(ConfigurationError, ValueError):
    """Scan interval is zero or negative."""


class NoPeripheralsConfigured(ConfigurationError):
    """A one-shot scan was requested without any peripherals to wait for."""


class InvalidPeripheralSpec(ConfigurationError, ValueError):
    """A peripheral entry is not of the form ``address=name``."""


class SinkError(CollectorError):
    """A sink adapter failed to deliver a measurement."""


class SinkExportFailure(CollectorError):
    """Exporting one measurement to one sink failed."""

    def __init__(self, sink_name: str, cause: BaseException) -> None:
        super().__init__(f"{sink_name}: {cause!r}")
        self.sink_name = sink_name
        self.cause = cause


class ScanError(CollectorError):
    """The underlying BLE scan failed."""


class TooManyScanFailures(CollectorError):
    """Interval scanning gave up after consecutive failed scans."""

    def __init__(self, failures: int) -> None:
        super().__init__(f"{failures} consecutive scan failures")
        self.failures = failures
