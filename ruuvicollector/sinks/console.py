"""Console sink for printing measurements."""

from __future__ import annotations

import sys
from typing import Optional, TextIO

from ..models import Measurement, dew_point
from .base import Sink


def format_measurement(m: Measurement) -> str:
    """One-line human readable representation of a measurement."""
    parts = [f"{m.temperature:.2f}°C"]
    if m.humidity is not None:
        parts.append(f"{m.humidity:.1f}%")
        dp = m.dew_point if m.dew_point is not None else dew_point(m.temperature, m.humidity)
        if dp is not None:
            parts.append(f"dew point {dp:.1f}°C")
    if m.pressure is not None:
        parts.append(f"{m.pressure:.2f} hPa")
    if m.battery_voltage_mv is not None:
        parts.append(f"{m.battery_voltage_mv} mV")
    if m.acceleration_x is not None:
        parts.append(f"acc {m.acceleration_x}/{m.acceleration_y}/{m.acceleration_z}")

    timestamp = m.timestamp.astimezone().strftime("%Y-%m-%d %H:%M:%S")
    return f"{timestamp} {m.display_name} ({m.address}): " + ", ".join(parts)


class ConsoleSink(Sink):
    """Prints each measurement on its own line."""

    def __init__(self, stream: Optional[TextIO] = None) -> None:
        self._stream = stream

    @property
    def name(self) -> str:
        return "Console"

    async def export(self, measurement: Measurement, timeout: float) -> None:
        stream = self._stream or sys.stdout
        print(format_measurement(measurement), file=stream, flush=True)
