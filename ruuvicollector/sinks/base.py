"""Base class for measurement sinks."""

from abc import ABC, abstractmethod

from ..models import Measurement


class Sink(ABC):
    """Abstract destination for decoded measurements."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Display name used in logs."""

    @abstractmethod
    async def export(self, measurement: Measurement, timeout: float) -> None:
        """
        Deliver one measurement.

        Implementations must give up within timeout seconds and raise a
        timeout error instead of blocking. Retrying is left to the caller,
        so exporting the same measurement twice must be harmless.

        Args:
            measurement: Decoded measurement
            timeout: Seconds left before the shared export deadline
        """

    async def close(self) -> None:
        """Release resources held by the sink."""
